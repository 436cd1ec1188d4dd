# src/itemstore/storage/item_files.py
"""
JSON file helpers for singleton documents (settings, internals) and for the
per-item files of the file-backed store. File operations are asynchronous
(aiofiles).
"""

import contextlib
import json
import logging
import os
from pathlib import Path
from typing import Optional

import aiofiles
import aiofiles.os as aios
from pydantic import ValidationError

from ..exceptions import StoreWriteError
from ..models import Item

logger = logging.getLogger(__name__)


async def read_item_file(path: str | Path) -> Optional[Item]:
    """
    Read one item file.

    Returns:
        The item, or None if the file is missing, unreadable or malformed.
    """
    try:
        if not await aios.path.exists(path):
            return None
        async with aiofiles.open(path, mode="r", encoding="utf-8") as f:
            content = await f.read()
        return Item.model_validate_json(content)
    except ValidationError as e:
        logger.warning(f"Ignoring malformed item file {path}: {e}")
    except OSError as e:
        logger.warning(f"Cannot read item file {path}: {e}")
    return None


async def load_item_file(path: str | Path) -> Item:
    """Read a singleton document; a missing or malformed file yields an empty Item."""
    item = await read_item_file(path)
    if item is None:
        logger.debug(f"Document {path} not available, using an empty one")
        return Item()
    return item


async def save_item_file(path: str | Path, item: Item) -> None:
    """
    Atomically write `item` to `path` (temporary file, then rename).

    Raises:
        StoreWriteError: If the file cannot be written.
    """
    path = Path(path)
    tmp_path = path.with_name(path.name + ".tmp")
    try:
        await aios.makedirs(path.parent, exist_ok=True)
        payload = json.dumps(item.to_document(), ensure_ascii=False)
        async with aiofiles.open(tmp_path, mode="w", encoding="utf-8") as f:
            await f.write(payload)
            await f.flush()
        await aios.replace(tmp_path, path)
    except OSError as e:
        logger.error(f"Error writing {path}: {e}")
        with contextlib.suppress(OSError):
            os.remove(tmp_path)
        raise StoreWriteError(f"Failed to write '{path}': {e}")
