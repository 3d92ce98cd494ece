"""Configuration module for loading and managing application settings"""
from typing import Dict, Any, Optional
from .lib.load_settings_conf import (
    load_settings_conf, validate_settings, SettingsError, DEFAULTS
)

__all__ = ['load_settings_conf', 'validate_settings', 'default_settings', 'SettingsError', 'DEFAULTS']

def default_settings(overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Build validated settings from the defaults without reading a file.

    Args:
        overrides: Optional values replacing individual defaults

    Returns:
        Validated settings dictionary
    """
    settings = dict(DEFAULTS)
    if overrides:
        settings.update({key: str(value) for key, value in overrides.items()})
    return validate_settings(settings)
