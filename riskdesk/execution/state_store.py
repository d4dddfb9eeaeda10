"""Latest-known broker snapshot with subscriber fan-out."""

import logging
import threading
from typing import Any, Callable, Mapping

from riskdesk.execution.broker import BrokerSnapshot

log = logging.getLogger(__name__)


__all__ = ["BrokerStateStore", "SnapshotListener", "get_state_store"]


SnapshotListener = Callable[[BrokerSnapshot], None]


class BrokerStateStore:
    """Single owner of the live account snapshot.

    Update-then-notify: :meth:`update_snapshot` swaps the stored reference
    under a lock, then calls every subscriber synchronously outside the
    lock. A subscriber that raises is logged and the rest still run.
    Reads take the lock only for the reference read.
    """

    def __init__(self, initial: BrokerSnapshot | None = None):
        self._lock = threading.Lock()
        self._snapshot: BrokerSnapshot | None = initial
        self._listeners: list[SnapshotListener] = []

    def get_snapshot(self) -> BrokerSnapshot | None:
        """Return the last snapshot, or ``None`` if nothing has been received."""
        with self._lock:
            return self._snapshot

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            self.unsubscribe(listener)

        return _unsubscribe

    def unsubscribe(self, listener: SnapshotListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def update_snapshot(
        self, snapshot: BrokerSnapshot | Mapping[str, Any]
    ) -> BrokerSnapshot:
        """
        Replace the current snapshot and notify subscribers.

        Args:
            snapshot: A snapshot, or a raw broker payload to normalise

        Returns:
            The snapshot now stored
        """
        if not isinstance(snapshot, BrokerSnapshot):
            snapshot = BrokerSnapshot.from_raw(snapshot)

        with self._lock:
            self._snapshot = snapshot
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(snapshot)
            except Exception as e:
                name = getattr(listener, "__name__", repr(listener))
                log.error(
                    "Snapshot listener %s failed: %s", name, e, exc_info=True
                )

        return snapshot

    def clear(self) -> None:
        """Forget the stored snapshot (listeners are kept)."""
        with self._lock:
            self._snapshot = None


# Lazy singleton
_store: BrokerStateStore | None = None


def get_state_store() -> BrokerStateStore:
    """Get the process-wide broker state store."""
    global _store
    if _store is None:
        _store = BrokerStateStore()
    return _store
