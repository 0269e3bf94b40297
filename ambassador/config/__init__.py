"""Configuration package for ambassador orders."""
from .settings import get_settings, Settings

__all__ = ["Settings", "get_settings"]
