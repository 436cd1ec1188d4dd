# src/itemstore/context.py
"""
Application context owning the configured store.

A server hosting itemstore creates one `AppContext`, starts it, and passes it
to whatever needs storage. Access to the store is serialized through an
asyncio lock: use ``async with ctx.locked() as store`` around every sequence
of store calls that must not interleave with other requests.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from .config import AppConfig, load_config
from .exceptions import StorageError
from .storage.base_store import BaseItemStore
from .storage.file_store import FileItemStore
from .storage.manager import create_store, store_addresses
from .storage.merger import MergeReport, merge_database
from .storage.mongo_store import MongoItemStore

logger = logging.getLogger(__name__)

EXTRA_ROUTE = "extra_route"
EXTRA_UNPROTECTED_ROUTE = "extra_unprotected_route"
EXTRA_REST_ROUTE = "extra_rest_route"
ROUTE_KINDS = (EXTRA_ROUTE, EXTRA_UNPROTECTED_ROUTE, EXTRA_REST_ROUTE)


class AppContext:
    """
    Holds the primary store and the lock guarding it.

    Args:
        config: Validated application configuration.
        store: Pre-built primary store; created from `config` when omitted.
        connect_timeout: Seconds to wait for a MongoDB store before raising
                         StoreConnectionError; None waits per the retry policy.
    """

    def __init__(
        self,
        config: AppConfig,
        store: Optional[BaseItemStore] = None,
        connect_timeout: Optional[float] = None,
    ) -> None:
        self.config = config
        self.store = store if store is not None else create_store(config.storage)
        self.connect_timeout = connect_timeout
        self._lock = asyncio.Lock()
        self._started = False

    @classmethod
    async def create(
        cls,
        config_overrides: Optional[Dict[str, Any]] = None,
        config_file_path: Optional[str] = None,
        connect_timeout: Optional[float] = None,
    ) -> "AppContext":
        """Load the configuration, build the store and connect it."""
        config = load_config(config_file_path=config_file_path, overrides=config_overrides)
        instance = cls(config, connect_timeout=connect_timeout)
        await instance.start()
        return instance

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        """Connect the primary store. A no-op when already started."""
        if self._started:
            return
        url, alt_url = store_addresses(self.config.storage)
        logger.info("Data storage: connecting")
        if self.connect_timeout is not None and isinstance(self.store, MongoItemStore):
            await self.store.connect_with_timeout(url, alt_url, self.connect_timeout)
        else:
            await self.store.connect(url, alt_url)
        self._started = True
        logger.info("Data storage: connected")

    async def close(self) -> None:
        if not self._started:
            return
        async with self._lock:
            await self.store.disconnect()
        self._started = False
        logger.info("Data storage: closed")

    @asynccontextmanager
    async def locked(self) -> AsyncIterator[BaseItemStore]:
        """Exclusive access to the primary store."""
        if not self._started:
            raise StorageError("Store accessed before AppContext.start().")
        async with self._lock:
            yield self.store

    async def first_run_merge(self) -> MergeReport:
        """
        Provision the primary store from the seed data in `data_path`.

        Does nothing (and returns an empty report) when the primary store is
        itself the file store.
        """
        if self.config.storage.type == "file":
            logger.warning("Primary store is the file store; nothing to merge")
            return MergeReport()

        logger.info("Flow: first run - merge database")
        seed = FileItemStore()
        await seed.connect(self.config.storage.data_path, "")
        try:
            async with self.locked() as store:
                return await merge_database(seed, store)
        finally:
            await seed.disconnect()

    async def extra_routes(self, kind: str) -> Dict[str, str]:
        """
        Extra HTTP routes declared in the internals document.

        Each entry of the `kind` map is ``"<path>:<method>"``; malformed
        entries are skipped.

        Returns:
            Mapping of route path to method name.
        """
        if kind not in ROUTE_KINDS:
            raise ValueError(f"Unknown route kind '{kind}'. Expected one of {list(ROUTE_KINDS)}")
        async with self.locked() as store:
            internals = await store.get_internals()

        routes: Dict[str, str] = {}
        for value in internals.safe_strstr(kind).values():
            parts = value.split(":")
            if len(parts) < 2 or not parts[0] or not parts[1]:
                logger.warning(f"Ignoring malformed {kind} entry {value!r}")
                continue
            routes[parts[0]] = parts[1]
            logger.info(f"Adding {kind.replace('_', ' ')}: {parts[0]} : {parts[1]}")
        return routes

    async def __aenter__(self) -> "AppContext":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
