import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, List, NamedTuple, Optional

from fincore.errors import ReentrantMutationError

__all__ = [
    'ChangeEvent', 'EventBus', 'ALL',
    'TRANSACTIONS_CHANGED', 'EXPENSES_CHANGED', 'INCOMES_CHANGED', 'CREDIT_CARDS_CHANGED',
    'LOANS_CHANGED', 'GOALS_CHANGED', 'INVESTMENTS_CHANGED', 'BUDGET_LINES_CHANGED',
    'FILTERS_CHANGED', 'PERSISTENCE_FAILED',
]

logger = logging.getLogger(__name__)

ALL = "*"

TRANSACTIONS_CHANGED = "transactions_changed"
EXPENSES_CHANGED = "expenses_changed"
INCOMES_CHANGED = "incomes_changed"
CREDIT_CARDS_CHANGED = "credit_cards_changed"
LOANS_CHANGED = "loans_changed"
GOALS_CHANGED = "goals_changed"
INVESTMENTS_CHANGED = "investments_changed"
BUDGET_LINES_CHANGED = "budget_lines_changed"
FILTERS_CHANGED = "filters_changed"
PERSISTENCE_FAILED = "persistence_failed"


class ChangeEvent(NamedTuple):
    name: str
    ts: str
    payload: dict


Handler = Callable[[ChangeEvent, dict], Any]


class EventBus:
    """Broadcast channel for change notifications.

    Handlers subscribe to one event name or to ``ALL``. Publishing calls
    every matching handler synchronously, in subscription order, and
    returns their results. A handler that raises is logged and yields
    ``None`` while the others still run. ``dispatching`` is true while
    handlers run so the store can refuse mutations made from inside one.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._subscribers: Dict[str, List[Handler]] = {}
        self._clock = clock or datetime.now
        self._local = threading.local()

    @property
    def dispatching(self) -> bool:
        return getattr(self._local, "depth", 0) > 0

    def subscribe(self, name: str, handler: Handler) -> Callable[[], None]:
        self._subscribers.setdefault(name, []).append(handler)
        return lambda: self.unsubscribe(name, handler)

    def unsubscribe(self, name: str, handler: Handler) -> None:
        handlers = self._subscribers.get(name, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, name: str, payload: Optional[dict] = None) -> List[Any]:
        payload = dict(payload or {})
        handlers = list(self._subscribers.get(name, [])) + list(self._subscribers.get(ALL, []))
        if not handlers:
            return []

        event = ChangeEvent(name=name, ts=self._clock().isoformat(), payload=payload)
        logger.debug("publishing %s to %d handler(s)", name, len(handlers))

        results = []
        self._local.depth = getattr(self._local, "depth", 0) + 1
        try:
            for handler in handlers:
                try:
                    results.append(handler(event, payload))
                except ReentrantMutationError:
                    raise
                except Exception:
                    logger.exception("handler %r failed on %s", handler, name)
                    results.append(None)
        finally:
            self._local.depth -= 1
        return results
