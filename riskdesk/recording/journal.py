"""Trade journal: the closed-trade history read by the tilt and policy layers."""

import itertools
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Iterator, Mapping, Protocol

from riskdesk.time_utils import days_ago, now_utc, parse_timestamp

log = logging.getLogger(__name__)


__all__ = ["InMemoryTradeJournal", "JournalEntry", "TradeJournal"]


@dataclass(frozen=True)
class JournalEntry:
    """One journaled trade."""

    id: str
    created_at: datetime
    symbol: str = "UNKNOWN"
    playbook: str | None = None
    status: str = "closed"  # planned | executed | closed | cancelled
    result_r: float | None = None
    outcome: str | None = None  # "Win" | "Loss" | "BE" | "Open"
    result_pnl: float | None = None
    source: str = "manual"
    environment: str = "sim"

    @property
    def r(self) -> float:
        """
        Realised R of the trade.

        Explicit ``result_r`` wins; otherwise Win=+1, Loss=-1, anything
        else (open, breakeven, unknown) is 0.
        """
        if self.result_r is not None:
            return float(self.result_r)
        if self.outcome == "Win":
            return 1.0
        if self.outcome == "Loss":
            return -1.0
        return 0.0

    @property
    def is_closed(self) -> bool:
        return self.status == "closed" or self.outcome in ("Win", "Loss")

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "JournalEntry":
        """Build an entry from a camelCase or snake_case mapping."""
        created = raw.get("created_at", raw.get("createdAt"))
        result_r = raw.get("result_r", raw.get("resultR"))
        pnl = raw.get("result_pnl", raw.get("resultPnl"))
        return cls(
            id=str(raw.get("id") or ""),
            created_at=parse_timestamp(created) if created is not None else now_utc(),
            symbol=str(raw.get("symbol") or "UNKNOWN").upper(),
            playbook=raw.get("playbook"),
            status=str(raw.get("status") or "closed"),
            result_r=float(result_r) if result_r is not None else None,
            outcome=raw.get("outcome"),
            result_pnl=float(pnl) if pnl is not None else None,
            source=str(raw.get("source") or "manual"),
            environment=str(raw.get("environment") or "sim"),
        )


class TradeJournal(Protocol):
    """Read side of the journal consumed by TiltService and DeskPolicyEngine."""

    async def list_entries(
        self,
        *,
        days: float | None = None,
        status: str | None = None,
        symbol: str | None = None,
        playbook: str | None = None,
    ) -> list[JournalEntry]:
        ...


@dataclass
class InMemoryTradeJournal:
    """
    Journal kept in process memory, newest entry first.

    Durable journals implement the :class:`TradeJournal` protocol.
    """

    entries: list[JournalEntry] = field(default_factory=list)
    _ids: Iterator[int] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        self._ids = itertools.count(len(self.entries) + 1)

    def log_entry(self, entry: JournalEntry | Mapping[str, Any]) -> JournalEntry:
        if not isinstance(entry, JournalEntry):
            entry = JournalEntry.from_dict(entry)
        if not entry.id:
            entry = replace(entry, id=f"entry_{next(self._ids)}")
        self.entries.insert(0, entry)
        log.debug("Journal entry logged: %s", entry.id)
        return entry

    def update_entry(self, entry_id: str, **updates: Any) -> JournalEntry:
        """
        Replace an entry with updated fields.

        Raises:
            KeyError: If no entry has ``entry_id``
        """
        for idx, e in enumerate(self.entries):
            if e.id == entry_id:
                updated = replace(e, **updates)
                self.entries[idx] = updated
                return updated
        raise KeyError(f"Journal entry {entry_id} not found.")

    async def list_entries(
        self,
        *,
        days: float | None = None,
        status: str | None = None,
        symbol: str | None = None,
        playbook: str | None = None,
    ) -> list[JournalEntry]:
        out = list(self.entries)
        if symbol:
            s = symbol.upper()
            out = [e for e in out if e.symbol == s]
        if status:
            out = [e for e in out if e.status == status]
        if playbook:
            out = [e for e in out if e.playbook and playbook in e.playbook]
        if days:
            cutoff = days_ago(days)
            out = [e for e in out if e.created_at >= cutoff]
        return out
