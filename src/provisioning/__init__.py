"""Orbit project provisioning pipeline."""

from src.shared.constants import VERSION

__version__ = VERSION
