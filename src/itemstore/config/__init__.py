# src/itemstore/config/__init__.py
"""
Configuration module for the itemstore library.

Configuration files:
    - default_config.toml: Packaged defaults
    - User config: ~/.config/itemstore/config.toml
    - Custom config: load_config(config_file_path=...) or ``itemstore --config``

Environment variables:
    - Prefix: ITEMSTORE_
    - Nested keys use double underscores: ITEMSTORE_STORAGE__MONGO__URL
"""

from .loader import load_config
from .models import AppConfig, LoggingConfig, MongoConfig, RetryConfig, StorageConfig

__all__ = [
    "AppConfig",
    "LoggingConfig",
    "MongoConfig",
    "RetryConfig",
    "StorageConfig",
    "load_config",
]
