"""Bundle and service identifiers.

A bundle version lives on disk under its *full name* ``{name}-{version}``.
Bundle names are hyphen-separated segments in which every segment after the
first starts with a non-digit, and versions always start with a digit, so the
first ``-`` followed by a digit splits a full name unambiguously.

Services are bound to ``{instance}@{version}``.
"""
from __future__ import annotations

import re
from dataclasses import dataclass

from .errors import InvalidNameError

INSTANCE_NAME_RE = re.compile(r"[a-zA-Z0-9_-]+")
BUNDLE_NAME_RE = re.compile(r"[a-zA-Z0-9_.]+(?:-[a-zA-Z_.][a-zA-Z0-9_.]*)*")
VERSION_RE = re.compile(r"[0-9][a-zA-Z0-9_.+~-]*")


def validate_instance_name(name: str) -> str:
    """Return *name* if it is a valid instance name."""
    if not isinstance(name, str) or not INSTANCE_NAME_RE.fullmatch(name):
        raise InvalidNameError(f"Invalid instance name {name!r}; expected [a-zA-Z0-9_-]+.")
    return name


def validate_bundle_name(name: str) -> str:
    """Return *name* if it is a valid bundle name."""
    if not isinstance(name, str) or not BUNDLE_NAME_RE.fullmatch(name):
        raise InvalidNameError(
            f"Invalid bundle name {name!r}; segments after a '-' must not start with a digit."
        )
    return name


def validate_version(version: str) -> str:
    """Return *version* if it is a valid bundle version."""
    if not isinstance(version, str) or not VERSION_RE.fullmatch(version):
        raise InvalidNameError(
            f"Invalid bundle version {version!r}; versions must start with a digit."
        )
    return version


@dataclass(frozen=True, slots=True)
class BundleRef:
    """Logical identity of one bundle version."""

    name: str
    version: str

    def __post_init__(self) -> None:
        """Validate both halves of the reference."""
        validate_bundle_name(self.name)
        validate_version(self.version)

    @property
    def full_name(self) -> str:
        """On-disk identifier, ``{name}-{version}``."""
        return full_bundle_name(self.name, self.version)

    @property
    def token(self) -> str:
        """Display identifier, ``{name}@{version}``."""
        return f"{self.name}@{self.version}"

    @classmethod
    def parse(cls, token: str) -> BundleRef:
        """Parse either the ``name@version`` or the ``name-version`` form."""
        if "@" in token:
            name, _, version = token.partition("@")
            return cls(name, version)
        name, version = parse_full_bundle_name(token)
        return cls(name, version)

    def __str__(self) -> str:
        return self.token


def full_bundle_name(name: str, version: str) -> str:
    """Return the on-disk identifier for bundle *name* at *version*."""
    return f"{name}-{version}"


def parse_full_bundle_name(token: str) -> tuple[str, str]:
    """Split a full bundle name back into ``(name, version)``."""
    for index, char in enumerate(token):
        if char == "-" and index + 1 < len(token) and token[index + 1].isdigit():
            name, version = token[:index], token[index + 1 :]
            if BUNDLE_NAME_RE.fullmatch(name) and VERSION_RE.fullmatch(version):
                return name, version
            break
    raise InvalidNameError(f"Invalid bundle identifier {token!r}; expected <name>-<version>.")


def service_name(instance_name: str, version: str) -> str:
    """Return the service binding for *instance_name* running *version*."""
    return f"{instance_name}@{version}"


def parse_service_name(value: str) -> tuple[str, str]:
    """Split a service binding into ``(instance_name, version)``."""
    instance_name, sep, version = value.partition("@")
    if not sep or not INSTANCE_NAME_RE.fullmatch(instance_name) or not VERSION_RE.fullmatch(version):
        raise InvalidNameError(f"Invalid service name {value!r}; expected <instance>@<version>.")
    return instance_name, version


__all__ = [
    "BundleRef",
    "full_bundle_name",
    "parse_full_bundle_name",
    "parse_service_name",
    "service_name",
    "validate_bundle_name",
    "validate_instance_name",
    "validate_version",
]
