"""
Configuration settings for ShipOps

The settings implementation lives in settings.py using pydantic-settings.

Usage:
    from shipops.core.config import settings
    # or
    from shipops.core.settings import get_settings
    settings = get_settings()
"""
from shipops.core.settings import Settings, get_settings, settings

__all__ = ["Settings", "get_settings", "settings"]
