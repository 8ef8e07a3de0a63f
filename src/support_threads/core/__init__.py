"""Core utilities for configuration, logging, and dependency wiring."""

from .config import AppSettings, StoreSettings, ThreadSettings, load_app_settings
from .container import ServiceContainer, build_container
from .logging import configure_logging

__all__ = [
    "AppSettings",
    "ServiceContainer",
    "StoreSettings",
    "ThreadSettings",
    "build_container",
    "configure_logging",
    "load_app_settings",
]
