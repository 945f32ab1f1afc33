"""Tests for bundle and service identifiers."""
from __future__ import annotations

import pytest

from castd.deployment.bundles import (
    BundleRef,
    full_bundle_name,
    parse_full_bundle_name,
    parse_service_name,
    service_name,
    validate_bundle_name,
    validate_instance_name,
    validate_version,
)
from castd.deployment.errors import InvalidNameError, ValidationError


@pytest.mark.parametrize(
    ("name", "version"),
    [
        ("myapp", "1.0.0"),
        ("my-app", "2.3.4-rc1"),
        ("web.front-end", "10.0"),
        ("svc_a", "0.1.0+build.5"),
    ],
)
def test_full_bundle_name_parses_back(name: str, version: str) -> None:
    """Full bundle names split back into the original name and version."""
    assert parse_full_bundle_name(full_bundle_name(name, version)) == (name, version)


def test_full_bundle_name_matches_directory_convention() -> None:
    """Version directories use ``<bundle>-<version>``."""
    assert full_bundle_name("myapp", "1.0.0") == "myapp-1.0.0"


@pytest.mark.parametrize("token", ["myapp", "myapp-", "-1.0", "myapp-beta"])
def test_parse_full_bundle_name_rejects_garbage(token: str) -> None:
    """Tokens without a digit-led version are rejected."""
    with pytest.raises(InvalidNameError):
        parse_full_bundle_name(token)


@pytest.mark.parametrize("name", ["alpha", "alpha-1", "A_b-C"])
def test_validate_instance_name_accepts(name: str) -> None:
    """Letters, digits, underscores and dashes are valid instance names."""
    assert validate_instance_name(name) == name


@pytest.mark.parametrize("name", ["", "has space", "../escape", "a/b", "dot.name"])
def test_validate_instance_name_rejects(name: str) -> None:
    """Anything outside ``[a-zA-Z0-9_-]`` is rejected as a validation error."""
    with pytest.raises(ValidationError):
        validate_instance_name(name)


def test_bundle_name_segments_cannot_start_with_digit() -> None:
    """A ``-`` followed by a digit would be ambiguous with the version."""
    assert validate_bundle_name("my-app") == "my-app"
    with pytest.raises(InvalidNameError):
        validate_bundle_name("app-2")


def test_versions_must_start_with_digit() -> None:
    """Versions begin with a digit."""
    assert validate_version("1.0.0") == "1.0.0"
    with pytest.raises(InvalidNameError):
        validate_version("v1.0.0")


def test_bundle_ref_parses_both_forms() -> None:
    """``name@version`` and ``name-version`` produce the same reference."""
    assert BundleRef.parse("myapp@1.0.0") == BundleRef("myapp", "1.0.0")
    assert BundleRef.parse("my-app-1.0.0") == BundleRef("my-app", "1.0.0")


def test_bundle_ref_identifiers() -> None:
    """References expose the on-disk and display identifiers."""
    ref = BundleRef("myapp", "1.0.0")

    assert ref.full_name == "myapp-1.0.0"
    assert ref.token == "myapp@1.0.0"
    assert str(ref) == "myapp@1.0.0"


def test_bundle_ref_validates() -> None:
    """Invalid halves are rejected on construction."""
    with pytest.raises(InvalidNameError):
        BundleRef("myapp", "latest")


def test_service_name_binding() -> None:
    """Service bindings join instance and version with ``@``."""
    assert service_name("alpha", "1.0.0") == "alpha@1.0.0"
    assert parse_service_name("alpha@1.0.0") == ("alpha", "1.0.0")
    with pytest.raises(InvalidNameError):
        parse_service_name("alpha")
