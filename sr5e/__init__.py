"""Shadowrun 5e system data migration."""

from .config import SYSTEM_VERSION

__version__ = SYSTEM_VERSION
