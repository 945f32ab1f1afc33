"""Tests for the template rendering engine."""
from __future__ import annotations

from pathlib import Path

import pytest
from jinja2 import UndefinedError

from castd.templates import TemplateEngine


def _unit_context(instance: str) -> dict[str, object]:
    return {
        "instance_name": instance,
        "bundle_name": "myapp",
        "version": "1.0.0",
        "service_user": "cast",
        "working_directory": f"/opt/castd/applications/{instance}/current",
        "exec_start": "/usr/bin/env node server.js",
        "environment": ["NODE_ENV=production"],
    }


def test_render_to_string_uses_builtin_templates() -> None:
    """Built-in templates render with strict variables."""
    engine = TemplateEngine.with_overrides(None)

    output = engine.render_to_string("systemd/service.j2", _unit_context("alpha"))

    assert "castd instance alpha (myapp 1.0.0)" in output
    assert "User=cast" in output
    assert "Environment=NODE_ENV=production" in output


def test_missing_variables_are_errors() -> None:
    """``StrictUndefined`` turns missing context into an exception."""
    engine = TemplateEngine.with_overrides(None)

    with pytest.raises(UndefinedError):
        engine.render_to_string("systemd/service.j2", {"instance_name": "alpha"})


def test_render_to_path_writes_with_mode(tmp_path: Path) -> None:
    """Rendering to a file writes content and respects the requested mode."""
    engine = TemplateEngine.with_overrides(None)
    destination = tmp_path / "units" / "castd-beta@1.0.0.service"

    changed = engine.render_to_path(
        "systemd/service.j2", destination, _unit_context("beta"), mode=0o600
    )

    assert changed is True
    assert oct(destination.stat().st_mode & 0o777) == "0o600"
    assert not [path for path in destination.parent.iterdir() if path.name.startswith(".")]

    changed_again = engine.render_to_path(
        "systemd/service.j2", destination, _unit_context("beta"), mode=0o600
    )
    assert changed_again is False


def test_override_path_takes_precedence(tmp_path: Path) -> None:
    """Override templates shadow the built-in ones."""
    override_template = tmp_path / "templates" / "systemd" / "service.j2"
    override_template.parent.mkdir(parents=True)
    override_template.write_text("override {{ instance_name }}", encoding="utf-8")

    engine = TemplateEngine.with_overrides(tmp_path / "templates")

    assert engine.render_to_string("systemd/service.j2", {"instance_name": "gamma"}) == (
        "override gamma"
    )


def test_for_directory_preserves_whitespace(tmp_path: Path) -> None:
    """Bundle templates are rendered without block trimming."""
    (tmp_path / "app.conf").write_text(
        "{% if true %}\nname={{ name }}\n{% endif %}\n", encoding="utf-8"
    )

    engine = TemplateEngine.for_directory(tmp_path)

    assert engine.render_to_string("app.conf", {"name": "alpha"}) == "\nname=alpha\n\n"
