#!/usr/bin/env python3
"""
OFFLINE CACHE - Last-known-good snapshots in a local key-value store

STORED KEYS:
✅ @cgpa_tracker_semesters - Full semester + course graph (JSON)
✅ @cgpa_tracker_profile - Student profile (JSON)
✅ @cgpa_tracker_last_sync - ISO timestamp of the last full fetch
✅ @cgpa_tracker_pending_sync - Queue of writes waiting for connectivity

ERROR STRATEGY:
Stores raise CacheError. OfflineCache logs it and carries on: reads become a
cache miss and writes are skipped, so a broken disk never blocks the
in-memory view.

Dependencies: pydantic for (de)serialisation
"""

import asyncio
import logging
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .data_models import PendingSyncItem, Profile, Semester, SemesterSnapshot
from .errors import CacheError

logger = logging.getLogger(__name__)

STORAGE_KEYS = {
    "SEMESTERS": "@cgpa_tracker_semesters",
    "PROFILE": "@cgpa_tracker_profile",
    "PENDING_SYNC": "@cgpa_tracker_pending_sync",
    "LAST_SYNC": "@cgpa_tracker_last_sync",
}

_SEMESTER_LIST = TypeAdapter(List[Semester])
_PENDING_LIST = TypeAdapter(List[PendingSyncItem])


class KeyValueStore(Protocol):
    """Async byte store; implementations raise CacheError on I/O failure"""

    async def get(self, key: str) -> Optional[bytes]: ...

    async def set(self, key: str, value: bytes) -> None: ...

    async def remove(self, key: str) -> None: ...


class MemoryStore:
    """In-process store, used for tests and ephemeral sessions"""

    def __init__(self):
        self._data: Dict[str, bytes] = {}

    async def get(self, key: str) -> Optional[bytes]:
        return self._data.get(key)

    async def set(self, key: str, value: bytes) -> None:
        self._data[key] = bytes(value)

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._data


class JsonFileStore:
    """One file per key under a cache directory"""

    def __init__(self, directory: Path):
        self.directory = Path(directory).expanduser()

    def _path(self, key: str) -> Path:
        safe = "".join(ch if ch.isalnum() or ch in "-_" else "_" for ch in key.lstrip("@"))
        return self.directory / f"{safe}.json"

    def _read(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_bytes()

    def _write(self, key: str, value: bytes) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp = path.with_suffix(".tmp")
        tmp.write_bytes(value)
        tmp.replace(path)

    def _delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    async def get(self, key: str) -> Optional[bytes]:
        try:
            return await asyncio.to_thread(self._read, key)
        except OSError as e:
            raise CacheError(f"Failed to read {key}: {e}") from e

    async def set(self, key: str, value: bytes) -> None:
        try:
            await asyncio.to_thread(self._write, key, value)
        except OSError as e:
            raise CacheError(f"Failed to write {key}: {e}") from e

    async def remove(self, key: str) -> None:
        try:
            await asyncio.to_thread(self._delete, key)
        except OSError as e:
            raise CacheError(f"Failed to remove {key}: {e}") from e


class OfflineCache:
    """Typed snapshot persistence on top of a KeyValueStore"""

    def __init__(self, store: KeyValueStore):
        self.store = store

    # =========================
    # Semesters
    # =========================

    async def save_semesters(self, semesters: List[Semester], synced_at: Optional[datetime] = None) -> None:
        synced_at = synced_at or datetime.now()
        try:
            await self.store.set(STORAGE_KEYS["SEMESTERS"], _SEMESTER_LIST.dump_json(list(semesters)))
            await self.store.set(STORAGE_KEYS["LAST_SYNC"], synced_at.isoformat().encode("utf-8"))
        except CacheError as e:
            logger.error(f"Failed to save semesters locally: {e}")

    async def load_semesters(self) -> Optional[List[Semester]]:
        try:
            raw = await self.store.get(STORAGE_KEYS["SEMESTERS"])
        except CacheError as e:
            logger.error(f"Failed to load semesters locally: {e}")
            return None
        if raw is None:
            return None
        try:
            return _SEMESTER_LIST.validate_json(raw)
        except PydanticValidationError as e:
            logger.error(f"Cached semesters are corrupt, ignoring: {e.error_count()} errors")
            return None

    async def load_snapshot(self) -> Optional[SemesterSnapshot]:
        """Cached semesters as a stale snapshot, or None on a cache miss"""
        semesters = await self.load_semesters()
        if semesters is None:
            return None
        return SemesterSnapshot(
            semesters=tuple(semesters),
            last_sync=await self.get_last_sync_time(),
            stale=True,
        )

    async def get_last_sync_time(self) -> Optional[datetime]:
        try:
            raw = await self.store.get(STORAGE_KEYS["LAST_SYNC"])
        except CacheError as e:
            logger.error(f"Failed to get last sync time: {e}")
            return None
        if not raw:
            return None
        try:
            return datetime.fromisoformat(raw.decode("utf-8"))
        except ValueError:
            logger.warning(f"Unparseable last sync time {raw!r}")
            return None

    # =========================
    # Profile
    # =========================

    async def save_profile(self, profile: Profile) -> None:
        try:
            await self.store.set(STORAGE_KEYS["PROFILE"], profile.model_dump_json().encode("utf-8"))
        except CacheError as e:
            logger.error(f"Failed to save profile locally: {e}")

    async def load_profile(self) -> Optional[Profile]:
        try:
            raw = await self.store.get(STORAGE_KEYS["PROFILE"])
        except CacheError as e:
            logger.error(f"Failed to load profile locally: {e}")
            return None
        if raw is None:
            return None
        try:
            return Profile.model_validate_json(raw)
        except PydanticValidationError as e:
            logger.error(f"Cached profile is corrupt, ignoring: {e.error_count()} errors")
            return None

    # =========================
    # Pending sync queue
    # =========================

    async def get_pending_sync_items(self) -> List[PendingSyncItem]:
        try:
            raw = await self.store.get(STORAGE_KEYS["PENDING_SYNC"])
        except CacheError as e:
            logger.error(f"Failed to get pending sync items: {e}")
            return []
        if not raw:
            return []
        try:
            return _PENDING_LIST.validate_json(raw)
        except PydanticValidationError as e:
            logger.error(f"Pending sync queue is corrupt, ignoring: {e.error_count()} errors")
            return []

    async def _write_pending(self, items: List[PendingSyncItem]) -> None:
        await self.store.set(STORAGE_KEYS["PENDING_SYNC"], _PENDING_LIST.dump_json(items))

    async def add_pending_sync(self, entity: str, action: str, data: Dict[str, Any]) -> Optional[PendingSyncItem]:
        item = PendingSyncItem(
            id=f"{int(datetime.now().timestamp() * 1000)}-{uuid.uuid4().hex[:9]}",
            entity=entity,
            action=action,
            data=data,
        )
        items = await self.get_pending_sync_items()
        items.append(item)
        try:
            await self._write_pending(items)
        except CacheError as e:
            logger.error(f"Failed to add pending sync item: {e}")
            return None
        return item

    async def remove_pending_sync_item(self, item_id: str) -> None:
        items = [item for item in await self.get_pending_sync_items() if item.id != item_id]
        try:
            await self._write_pending(items)
        except CacheError as e:
            logger.error(f"Failed to remove pending sync item: {e}")

    async def clear_pending_sync_items(self) -> None:
        try:
            await self.store.remove(STORAGE_KEYS["PENDING_SYNC"])
        except CacheError as e:
            logger.error(f"Failed to clear pending sync items: {e}")

    async def clear_all_local_data(self) -> None:
        for key in STORAGE_KEYS.values():
            try:
                await self.store.remove(key)
            except CacheError as e:
                logger.error(f"Failed to clear local data ({key}): {e}")


__all__ = [
    "STORAGE_KEYS",
    "KeyValueStore",
    "MemoryStore",
    "JsonFileStore",
    "OfflineCache",
]
