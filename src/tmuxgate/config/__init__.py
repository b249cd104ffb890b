"""Configuration management for tmuxgate.

Loads and validates YAML-based configuration with Pydantic models.
Supports environment variable overrides, including the plain PORT
variable used by most hosting setups.
"""

from tmuxgate.config.settings import Settings, load_settings

__all__ = ["Settings", "load_settings"]
