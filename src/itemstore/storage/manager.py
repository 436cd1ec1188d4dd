# src/itemstore/storage/manager.py
"""
Backend selection for itemstore.

Maps the configured storage type to a concrete store class and knows which
addresses each backend is connected with.
"""

import logging
from typing import Dict, Tuple, Type

from ..config.models import StorageConfig
from ..exceptions import ConfigError
from .base_store import BaseItemStore
from .file_store import FileItemStore
from .mongo_store import MongoItemStore

logger = logging.getLogger(__name__)

# --- Mapping from config type string to class ---
STORE_MAP: Dict[str, Type[BaseItemStore]] = {
    "mongo": MongoItemStore,
    "file": FileItemStore,
}


def _store_type(config: StorageConfig) -> str:
    store_type = str(config.type or "").lower()
    if store_type not in STORE_MAP:
        raise ConfigError(f"Unsupported storage type configured: '{config.type}'. "
                          f"Available types: {list(STORE_MAP.keys())}")
    return store_type


def create_store(config: StorageConfig) -> BaseItemStore:
    """
    Instantiate (but do not connect) the store selected by `config.type`.

    Raises:
        ConfigError: If the type is not one of `STORE_MAP`.
    """
    store_type = _store_type(config)
    if store_type == "mongo":
        store: BaseItemStore = MongoItemStore.from_config(config.mongo)
    else:
        store = STORE_MAP[store_type]()
    logger.info(f"Storage type '{store_type}' configured.")
    return store


def store_addresses(config: StorageConfig) -> Tuple[str, str]:
    """
    The ``(url, alt_url)`` pair handed to `connect` for the configured type.

    MongoDB connects to its URI and keeps local files in `data_path`; the file
    store uses `data_path` for both.
    """
    if _store_type(config) == "mongo":
        return config.mongo.url, config.data_path
    return config.data_path, ""
