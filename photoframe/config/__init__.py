"""Configuration management for photoframe."""

from .settings import ComposerSettings, LoggingSettings, PhotoFrameSettings, StoreSettings

__all__ = ["ComposerSettings", "LoggingSettings", "PhotoFrameSettings", "StoreSettings"]
