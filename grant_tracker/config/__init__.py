"""Configuration loading."""

from .loader import (
    ConfigLoader,
    Settings,
    SourceEntry,
    load_settings,
    load_sources,
    substitute_env_vars,
)

__all__ = [
    "ConfigLoader",
    "Settings",
    "SourceEntry",
    "load_settings",
    "load_sources",
    "substitute_env_vars",
]
