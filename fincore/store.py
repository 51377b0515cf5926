"""In-memory record store with write-behind persistence.

A ``RecordStore`` owns one entity collection. Mutations are applied to
memory first, a change event is published, and the matching backend
write is queued; ``FinanceStore.flush`` drains the queue in call order.
A failed write is reported but the in-memory change stays.
"""

import asyncio
import dataclasses
import logging
import threading
import uuid
from collections import deque
from datetime import datetime
from typing import Awaitable, Callable, Dict, Generic, List, NamedTuple, Optional, Tuple, TypeVar

from fincore import events
from fincore.errors import NotFoundError, PersistenceError, ReentrantMutationError, ValidationError
from fincore.events import EventBus
from fincore.functional import Maybe, from_optional
from fincore.persistence import PersistenceBackend
from fincore.schema import ENTITY_TYPES, EntityType, changed_fields, from_records, to_record
from fincore.transforms import append, find_by_id, rekey, remove_by_id, replace_by_id

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PendingWrite(NamedTuple):
    entity_type: str
    operation: str
    entity_id: str
    run: Callable[[], Awaitable[None]]


class WriteQueue:
    """FIFO of backend writes shared by every collection of one store."""

    def __init__(self, bus: EventBus):
        self._bus = bus
        self._pending = deque()
        self._lock: Optional[asyncio.Lock] = None
        self._lock_loop = None

    def __len__(self) -> int:
        return len(self._pending)

    def enqueue(self, write: PendingWrite) -> None:
        self._pending.append(write)

    def has_pending(self, entity_type: str) -> bool:
        return any(w.entity_type == entity_type for w in self._pending)

    async def flush(self) -> List[PersistenceError]:
        errors = []
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            # one lock per event loop; the dashboard runs a fresh loop per rerun
            self._lock, self._lock_loop = asyncio.Lock(), loop
        async with self._lock:
            while self._pending:
                write = self._pending.popleft()
                try:
                    await write.run()
                except Exception as exc:
                    error = PersistenceError(write.entity_type, write.operation, write.entity_id, str(exc))
                    error.__cause__ = exc
                    logger.error("Persistence %s of %s %s failed: %s",
                                 write.operation, write.entity_type, write.entity_id, exc)
                    errors.append(error)
                    self._bus.publish(events.PERSISTENCE_FAILED, {
                        "entity_type": write.entity_type,
                        "operation": write.operation,
                        "id": write.entity_id,
                        "error": str(exc),
                    })
        if errors:
            logger.warning("Flush finished with %d failed write(s)", len(errors))
        return errors


class RecordStore(Generic[T]):

    def __init__(
        self,
        entity: EntityType,
        backend: PersistenceBackend,
        owner_id: str,
        bus: EventBus,
        queue: WriteQueue,
        clock: Callable[[], datetime],
        id_factory: Callable[[], str],
        lock: threading.RLock,
        strict: bool = False,
    ):
        self.entity = entity
        self._backend = backend
        self._owner_id = owner_id
        self._bus = bus
        self._queue = queue
        self._clock = clock
        self._id_factory = id_factory
        self._lock = lock
        self._strict = strict
        self._items: Tuple[T, ...] = ()
        self._aliases: Dict[str, str] = {}

    # --- reads

    def list(self) -> Tuple[T, ...]:
        return self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self._items)

    def get(self, entity_id: str) -> Maybe[T]:
        return from_optional(find_by_id(self._items, entity_id))

    # --- writes

    def add(self, **fields) -> T:
        """Create an entity from ``fields``; id and creation time are assigned here."""
        self._guard()
        now = self._clock()
        if "id" in fields or "created_at" in fields:
            raise ValidationError({"error": "assigned_field", "field": "id",
                                   "message": "id and created_at are assigned by the store"})
        try:
            entity = self.entity.cls(id=self._id_factory(), created_at=now.isoformat(), **fields)
        except TypeError as exc:
            raise ValidationError({"error": "bad_fields", "field": None, "message": str(exc)}) from exc
        entity = self._checked(self.entity.stamp(entity, now), now, creating=True)

        with self._lock:
            self._items = append(self._items, entity)

        record = to_record(entity)
        self._queue.enqueue(PendingWrite(self.entity.name, "insert", entity.id,
                                         lambda: self._write_insert(entity.id, record)))
        self._notify("add", entity.id)
        return entity

    def update(self, entity: T) -> bool:
        """Replace the stored entity with the same id. Returns False for unknown ids.

        An id the backend has since replaced still finds the re-keyed entity.
        """
        self._guard()
        now = self._clock()
        with self._lock:
            current = find_by_id(self._items, self._backend_id(entity.id))
            if current is None:
                return self._missing(entity.id, "update")
            entity = dataclasses.replace(entity, id=current.id, created_at=current.created_at)
            entity = self._checked(self.entity.stamp(entity, now), now, creating=False)
            self._items = replace_by_id(self._items, entity)

        changes = changed_fields(current, entity)
        if changes:
            self._queue.enqueue(PendingWrite(self.entity.name, "update", entity.id,
                                             lambda: self._write_update(entity.id, changes)))
        self._notify("update", entity.id)
        return True

    def remove(self, entity_id: str) -> bool:
        self._guard()
        entity_id = self._backend_id(entity_id)
        with self._lock:
            if find_by_id(self._items, entity_id) is None:
                return self._missing(entity_id, "remove")
            self._items = remove_by_id(self._items, entity_id)

        self._queue.enqueue(PendingWrite(self.entity.name, "delete", entity_id,
                                         lambda: self._write_delete(entity_id)))
        self._notify("remove", entity_id)
        return True

    def load(self, records, origin: str = "load") -> bool:
        """Replace the whole collection. Any malformed record empties it instead."""
        self._guard()
        if isinstance(records, (list, tuple)):
            result = from_records(self.entity.cls, records)
        else:
            result = None

        with self._lock:
            if result is not None and result.is_right():
                self._items = result.get_or_else(())
                accepted = True
            else:
                problem = result.get_error()["message"] if result is not None else "snapshot is not a list"
                logger.error("Rejected %s snapshot (%s); collection emptied", self.entity.name, problem)
                self._items = ()
                accepted = False
            self._aliases.clear()

        logger.debug("Loaded %d %s record(s) from %s", len(self._items), self.entity.name, origin)
        self._notify("load", None, origin=origin)
        return accepted

    async def refresh(self) -> bool:
        """Reload from the backend; on a failed read the current snapshot stays."""
        try:
            records = await self._backend.load_all(self.entity.name, self._owner_id)
        except Exception as exc:
            logger.error("Loading %s failed, keeping %d record(s) in memory: %s",
                         self.entity.name, len(self._items), exc)
            raise PersistenceError(self.entity.name, "load", message=str(exc)) from exc
        return self.load(records)

    # --- internals

    def _guard(self) -> None:
        if self._bus.dispatching:
            raise ReentrantMutationError(
                f"{self.entity.name} cannot be changed from inside a change handler")

    def _checked(self, entity: T, now: datetime, creating: bool) -> T:
        result = self.entity.validate(entity, now.date(), creating)
        if result.is_left():
            raise ValidationError(result.get_error())
        return result.get_or_else(entity)

    def _missing(self, entity_id: str, operation: str) -> bool:
        if self._strict:
            raise NotFoundError(self.entity.name, entity_id)
        logger.warning("%s of unknown %s id %s ignored", operation, self.entity.name, entity_id)
        return False

    def _notify(self, operation: str, entity_id: Optional[str], origin: str = "local") -> None:
        self._bus.publish(self.entity.event, {
            "entity_type": self.entity.name,
            "operation": operation,
            "id": entity_id,
            "origin": origin,
        })

    def _backend_id(self, entity_id: str) -> str:
        return self._aliases.get(entity_id, entity_id)

    async def _write_insert(self, entity_id: str, record: dict) -> None:
        stored = await self._backend.insert(self.entity.name, self._owner_id, record)
        new_id = (stored or {}).get("id") or entity_id
        if new_id != entity_id:
            self._aliases[entity_id] = new_id
            with self._lock:
                current = find_by_id(self._items, entity_id)
                if current is not None:
                    self._items = rekey(self._items, entity_id, dataclasses.replace(current, id=new_id))
            logger.info("Backend re-keyed %s %s as %s", self.entity.name, entity_id, new_id)
            self._notify("rekey", new_id)

    async def _write_update(self, entity_id: str, changes: dict) -> None:
        await self._backend.update(self.entity.name, self._owner_id, self._backend_id(entity_id), changes)

    async def _write_delete(self, entity_id: str) -> None:
        await self._backend.delete(self.entity.name, self._owner_id, self._backend_id(entity_id))


class FinanceStore:
    """One ``RecordStore`` per entity type, sharing bus, clock, ids, lock and write queue."""

    def __init__(
        self,
        backend: PersistenceBackend,
        owner_id: str,
        bus: Optional[EventBus] = None,
        clock: Optional[Callable[[], datetime]] = None,
        id_factory: Optional[Callable[[], str]] = None,
        strict: bool = False,
    ):
        self.backend = backend
        self.owner_id = owner_id
        self.clock = clock or datetime.now
        self.bus = bus or EventBus(clock=self.clock)
        self.queue = WriteQueue(self.bus)
        lock = threading.RLock()
        id_factory = id_factory or (lambda: str(uuid.uuid4()))
        self._collections: Dict[str, RecordStore] = {
            name: RecordStore(et, backend, owner_id, self.bus, self.queue, self.clock, id_factory, lock, strict)
            for name, et in ENTITY_TYPES.items()
        }

    def collection(self, name: str) -> RecordStore:
        return self._collections[name]

    @property
    def transactions(self) -> RecordStore:
        return self._collections["transactions"]

    @property
    def expenses(self) -> RecordStore:
        return self._collections["expenses"]

    @property
    def incomes(self) -> RecordStore:
        return self._collections["incomes"]

    @property
    def credit_cards(self) -> RecordStore:
        return self._collections["credit_cards"]

    @property
    def loans(self) -> RecordStore:
        return self._collections["loans"]

    @property
    def goals(self) -> RecordStore:
        return self._collections["goals"]

    @property
    def investments(self) -> RecordStore:
        return self._collections["investments"]

    @property
    def budget_lines(self) -> RecordStore:
        return self._collections["budget_lines"]

    @property
    def pending_writes(self) -> int:
        return len(self.queue)

    async def flush(self) -> List[PersistenceError]:
        return await self.queue.flush()

    async def load_all(self) -> List[PersistenceError]:
        """Flush queued writes, then reload every collection from the backend."""
        errors = await self.flush()
        for name, records in self._collections.items():
            try:
                await records.refresh()
            except PersistenceError as exc:
                errors.append(exc)
        logger.info("Loaded store for %s: %s", self.owner_id,
                    ", ".join(f"{n}={len(c)}" for n, c in self._collections.items()))
        return errors

    def seed(self, data: Dict[str, tuple]) -> None:
        """Add seed entities through the normal add path so they get persisted."""
        for name, entities in data.items():
            collection = self._collections[name]
            for entity in entities:
                fields = {k: v for k, v in dataclasses.asdict(entity).items() if k not in ("id", "created_at")}
                collection.add(**fields)
