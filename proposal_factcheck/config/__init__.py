"""Configuration: immutable run settings and logging setup."""

from proposal_factcheck.config.settings import Settings, load_settings

__all__ = ["Settings", "load_settings"]
