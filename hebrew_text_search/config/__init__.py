"""Configuration management for the Hebrew text search engine."""

from .settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
