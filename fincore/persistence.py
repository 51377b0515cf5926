"""Persistence collaborators for the record store.

``PersistenceBackend`` is the async contract the store writes through.
``InMemoryBackend`` keeps rows in a dict, ``LocalCacheBackend`` keeps one
JSON snapshot per entity type in a ``LocalCache`` directory, and
``StorageSyncBridge`` watches that directory for writes made by other
processes and reloads the affected collections.
"""

import asyncio
import copy
import hashlib
import json
import logging
import os
import re
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

from fincore.schema import ENTITY_TYPES

logger = logging.getLogger(__name__)


class PersistenceBackend(ABC):
    """Rows are plain dicts keyed by ``id`` and scoped to an owner."""

    @abstractmethod
    async def load_all(self, entity_type: str, owner_id: str) -> List[dict]:
        pass

    @abstractmethod
    async def insert(self, entity_type: str, owner_id: str, record: dict) -> dict:
        """Store ``record`` and return it as stored, with the id the backend kept."""

    @abstractmethod
    async def update(self, entity_type: str, owner_id: str, entity_id: str, changes: dict) -> None:
        pass

    @abstractmethod
    async def delete(self, entity_type: str, owner_id: str, entity_id: str) -> None:
        pass


class InMemoryBackend(PersistenceBackend):

    def __init__(self):
        self._tables: Dict[tuple, Dict[str, dict]] = {}

    def _table(self, entity_type: str, owner_id: str) -> Dict[str, dict]:
        return self._tables.setdefault((entity_type, owner_id), {})

    async def load_all(self, entity_type, owner_id):
        return [copy.deepcopy(r) for r in self._table(entity_type, owner_id).values()]

    async def insert(self, entity_type, owner_id, record):
        table = self._table(entity_type, owner_id)
        if record["id"] in table:
            raise ValueError(f"duplicate id {record['id']} in {entity_type}")
        table[record["id"]] = copy.deepcopy(record)
        return copy.deepcopy(record)

    async def update(self, entity_type, owner_id, entity_id, changes):
        table = self._table(entity_type, owner_id)
        if entity_id not in table:
            raise LookupError(f"{entity_type} {entity_id} is not owned by {owner_id}")
        table[entity_id].update(copy.deepcopy(changes))

    async def delete(self, entity_type, owner_id, entity_id):
        table = self._table(entity_type, owner_id)
        if entity_id not in table:
            raise LookupError(f"{entity_type} {entity_id} is not owned by {owner_id}")
        del table[entity_id]


class LocalCache:
    """Synchronous key-value store, one JSON file per key.

    The cache remembers the digest of every file it has read or written.
    ``changed_keys`` reports watched keys whose file now differs, which is
    how writes from another process become visible here.
    """

    def __init__(self, directory):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._seen: Dict[str, Optional[str]] = {}

    def path_for(self, key: str) -> Path:
        return self.directory / (re.sub(r"[^A-Za-z0-9_.-]", "_", key) + ".json")

    def _digest(self, key: str) -> Optional[str]:
        try:
            return hashlib.sha256(self.path_for(key).read_bytes()).hexdigest()
        except FileNotFoundError:
            return None

    def get(self, key: str, default: Any = None, track: bool = True) -> Any:
        """Read ``key``. With ``track`` the file counts as seen by this process."""
        path = self.path_for(key)
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            if track:
                self._seen[key] = None
            return default
        if track:
            self._seen[key] = hashlib.sha256(raw).hexdigest()
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ValueError(f"cache entry {key!r} is not valid JSON: {exc}") from exc

    def set(self, key: str, value: Any) -> None:
        """Write ``value`` atomically.

        The new digest only counts as seen when the file still held what this
        process last saw. Otherwise another process wrote in between, and the
        key keeps showing up in ``changed_keys`` until it is read again.
        """
        before = self._digest(key)
        fresh = self._seen.get(key, before) == before
        raw = json.dumps(value, indent=2, sort_keys=True).encode("utf-8")
        fd, tmp = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(raw)
            os.replace(tmp, self.path_for(key))
        except OSError:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise
        if fresh:
            self._seen[key] = hashlib.sha256(raw).hexdigest()

    def remove(self, key: str) -> None:
        try:
            self.path_for(key).unlink()
        except FileNotFoundError:
            pass
        self._seen[key] = None

    def watch(self, key: str) -> None:
        self._seen[key] = self._digest(key)

    def changed_keys(self) -> List[str]:
        return [key for key, digest in self._seen.items() if self._digest(key) != digest]


def cache_key(entity_type: str, owner_id: str) -> str:
    return f"{ENTITY_TYPES[entity_type].storage_key}:{owner_id}"


class LocalCacheBackend(PersistenceBackend):
    """Keeps each collection as a JSON list snapshot under its storage key."""

    def __init__(self, cache: LocalCache):
        self.cache = cache

    def _rows(self, entity_type: str, owner_id: str, track: bool = False) -> List[dict]:
        rows = self.cache.get(cache_key(entity_type, owner_id), [], track=track)
        if not isinstance(rows, list):
            raise ValueError(f"cache entry for {entity_type} is not a list")
        return rows

    async def load_all(self, entity_type, owner_id):
        return self._rows(entity_type, owner_id, track=True)

    async def insert(self, entity_type, owner_id, record):
        rows = self._rows(entity_type, owner_id)
        if any(r.get("id") == record["id"] for r in rows):
            raise ValueError(f"duplicate id {record['id']} in {entity_type}")
        rows.append(record)
        self.cache.set(cache_key(entity_type, owner_id), rows)
        return record

    async def update(self, entity_type, owner_id, entity_id, changes):
        rows = self._rows(entity_type, owner_id)
        for row in rows:
            if row.get("id") == entity_id:
                row.update(changes)
                break
        else:
            raise LookupError(f"{entity_type} {entity_id} is not in the local cache")
        self.cache.set(cache_key(entity_type, owner_id), rows)

    async def delete(self, entity_type, owner_id, entity_id):
        rows = self._rows(entity_type, owner_id)
        kept = [r for r in rows if r.get("id") != entity_id]
        if len(kept) == len(rows):
            raise LookupError(f"{entity_type} {entity_id} is not in the local cache")
        self.cache.set(cache_key(entity_type, owner_id), kept)


class StorageSyncBridge:
    """Feeds writes made by other processes back into a ``FinanceStore``.

    Each reloaded collection publishes its usual change event with
    ``origin="external"``, so subscribers cannot tell a local change from
    a remote one and all of them converge on the cached state.
    """

    def __init__(self, cache: LocalCache, store, owner_id: str):
        self.cache = cache
        self.store = store
        self.owner_id = owner_id
        self._names = {cache_key(name, owner_id): name for name in ENTITY_TYPES}
        for key in self._names:
            cache.watch(key)

    def poll(self) -> List[str]:
        reloaded = []
        for key in self.cache.changed_keys():
            name = self._names.get(key)
            if name is None:
                continue
            if self.store.queue.has_pending(name):
                # reloading now would drop the queued local change; retried after the flush
                logger.debug("External change to %s deferred, local writes pending", name)
                continue
            try:
                rows = self.cache.get(key, [])
            except ValueError as exc:
                logger.error("Unreadable external change to %s: %s", key, exc)
                rows = None
            logger.info("External change to %s, reloading", name)
            self.store.collection(name).load(rows, origin="external")
            reloaded.append(name)
        return reloaded

    async def run(self, interval: float, stop: Optional[asyncio.Event] = None) -> None:
        stop = stop or asyncio.Event()
        while not stop.is_set():
            self.poll()
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
