"""Jinja2 template rendering helpers.

Two flavours of engine exist: the built-in engine renders templates shipped
inside the ``castd`` package (optionally shadowed by an operator override
directory), while :meth:`TemplateEngine.for_directory` renders the template
files that application bundles declare in their manifest.
"""
from __future__ import annotations

import os
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from jinja2 import ChoiceLoader, Environment, FileSystemLoader, PackageLoader, StrictUndefined


@dataclass(frozen=True, slots=True)
class TemplateEngine:
    """Render templates with strict undefined-variable handling."""

    environment: Environment

    @classmethod
    def with_overrides(cls, override_dir: Path | None) -> TemplateEngine:
        """Return an engine for built-in templates shadowed by *override_dir*."""
        loaders: list[FileSystemLoader | PackageLoader] = []
        if override_dir is not None and Path(override_dir).is_dir():
            loaders.append(FileSystemLoader(str(override_dir)))
        loaders.append(PackageLoader("castd", "templates"))
        return cls(_make_environment(ChoiceLoader(loaders)))

    @classmethod
    def for_directory(cls, root: Path) -> TemplateEngine:
        """Return an engine that loads templates relative to *root*."""
        return cls(_make_environment(FileSystemLoader(str(root)), trim_blocks=False))

    def render_to_string(self, template_name: str, context: Mapping[str, object]) -> str:
        """Render *template_name* with *context* and return the text."""
        template = self.environment.get_template(template_name)
        return template.render(**dict(context))

    def render_to_path(
        self,
        template_name: str,
        destination: Path,
        context: Mapping[str, object],
        *,
        mode: int | None = None,
    ) -> bool:
        """Render to *destination*, returning ``False`` when content is unchanged."""
        content = self.render_to_string(template_name, context)
        if destination.exists() and destination.read_text(encoding="utf-8") == content:
            if mode is not None:
                os.chmod(destination, mode)
            return False

        destination.parent.mkdir(parents=True, exist_ok=True)
        tmp_fd, tmp_name = tempfile.mkstemp(
            dir=str(destination.parent), prefix=f".{destination.name}."
        )
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(tmp_fd, "w", encoding="utf-8") as handle:
                handle.write(content)
            if mode is not None:
                os.chmod(tmp_path, mode)
            os.replace(tmp_path, destination)
        finally:
            tmp_path.unlink(missing_ok=True)
        return True


def _make_environment(
    loader: ChoiceLoader | FileSystemLoader,
    *,
    trim_blocks: bool = True,
) -> Environment:
    return Environment(  # noqa: S701 - renders config files, not HTML
        loader=loader,
        undefined=StrictUndefined,
        keep_trailing_newline=True,
        trim_blocks=trim_blocks,
        lstrip_blocks=trim_blocks,
    )


__all__ = ["TemplateEngine"]
