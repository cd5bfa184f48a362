"""Configuration module for the competitor research pipeline."""

from product_research.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
