"""Configuration management for aibridge."""

from aibridge.config.settings import AIBridgeSettings, ProviderSettings, get_settings

__all__ = ["AIBridgeSettings", "ProviderSettings", "get_settings"]
