"""Configuration module for the review portal."""
from .settings import AppConfig, load_settings

__all__ = ["AppConfig", "load_settings"]
