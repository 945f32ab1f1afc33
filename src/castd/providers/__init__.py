"""Service manager providers for castd."""
from __future__ import annotations

from .systemd import SystemdServiceManager

__all__ = ["SystemdServiceManager"]
