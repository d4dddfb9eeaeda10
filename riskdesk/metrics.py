"""Performance metrics over journaled trades, in R."""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Sequence

import numpy as np

from riskdesk.recording.journal import JournalEntry


__all__ = [
    "PlaybookStats",
    "Streak",
    "consecutive_losses",
    "max_drawdown",
    "playbook_health",
    "playbook_stats",
    "recent_streak",
]

UNCATEGORIZED = "Uncategorized"

# Playbook health thresholds
MIN_SAMPLE_SIZE = 5
GREEN_WIN_RATE = 0.50
GREEN_AVG_R = 0.5
GREEN_MAX_DD_R = -3.0
RED_WIN_RATE = 0.30
RED_AVG_R = 0.0


@dataclass(frozen=True)
class PlaybookStats:
    """Aggregated results of one playbook."""
    name: str
    count: int
    wins: int
    win_rate: float
    total_r: float
    avg_r: float
    max_drawdown_r: float
    last_trade_at: datetime | None = None
    last_result_r: float = 0.0


@dataclass(frozen=True)
class Streak:
    consecutive_losses: int
    last_n_r: float


def max_drawdown(equity: Sequence[float]) -> float:
    """Calculate maximum drawdown from an equity (or cumulative R) curve."""
    if len(equity) == 0:
        return 0.0
    curve = np.asarray(equity, dtype=np.float64)
    peaks = np.maximum.accumulate(curve)
    return float(min(0.0, np.min(curve - peaks)))  # negative number


def _oldest_first(entries: Iterable[JournalEntry]) -> list[JournalEntry]:
    return sorted(entries, key=lambda e: e.created_at)


def consecutive_losses(
    entries: Iterable[JournalEntry], *, breakeven_breaks: bool = False
) -> int:
    """
    Count the current run of losses, walking newest to oldest.

    A win always ends the run. With ``breakeven_breaks=False`` trades at
    0R (open, breakeven, unknown outcome) are skipped without ending it.

    Args:
        entries: Journal entries in any order
        breakeven_breaks: Whether a 0R trade ends the run

    Returns:
        Number of losses in the current run
    """
    losses = 0
    for e in reversed(_oldest_first(entries)):
        r = e.r
        if r < 0:
            losses += 1
        elif r > 0 or breakeven_breaks:
            break
    return losses


def recent_streak(entries: Iterable[JournalEntry], last_n: int = 5) -> Streak:
    """Loss streak and summed R over the ``last_n`` most recent trades."""
    recent = list(reversed(_oldest_first(entries)))[:last_n]
    return Streak(
        consecutive_losses=consecutive_losses(recent, breakeven_breaks=True),
        last_n_r=float(sum(e.r for e in recent)),
    )


def playbook_stats(entries: Iterable[JournalEntry]) -> list[PlaybookStats]:
    """
    Compute per-playbook statistics.

    Playbook names are grouped case-insensitively; the first spelling seen
    is kept for display. Entries with no playbook go to ``Uncategorized``.

    Returns:
        Stats sorted by total R, best first
    """
    groups: dict[str, tuple[str, list[JournalEntry]]] = {}
    for e in _oldest_first(entries):
        display = e.playbook or UNCATEGORIZED
        key = display.strip().lower()
        if key not in groups:
            groups[key] = (display, [])
        groups[key][1].append(e)

    out: list[PlaybookStats] = []
    for display, trades in groups.values():
        rs = np.array([t.r for t in trades], dtype=np.float64)
        wins = int(np.count_nonzero(rs > 0))
        count = len(trades)
        total_r = float(rs.sum())
        last = trades[-1]
        out.append(
            PlaybookStats(
                name=display,
                count=count,
                wins=wins,
                win_rate=wins / count,
                total_r=total_r,
                avg_r=total_r / count,
                max_drawdown_r=max_drawdown(np.cumsum(rs)),
                last_trade_at=last.created_at,
                last_result_r=last.r,
            )
        )

    out.sort(key=lambda s: s.total_r, reverse=True)
    return out


def playbook_health(stats: PlaybookStats) -> str:
    """
    Classify a playbook as ``green``, ``amber``, ``red`` or ``gray``.

    gray: fewer than MIN_SAMPLE_SIZE trades.
    red: negative expectancy or win rate under 30%.
    green: win rate >= 50%, avg R >= 0.5 and drawdown better than -3R.
    """
    if stats.count < MIN_SAMPLE_SIZE:
        return "gray"
    if stats.avg_r < RED_AVG_R or stats.win_rate < RED_WIN_RATE:
        return "red"
    if (
        stats.win_rate >= GREEN_WIN_RATE
        and stats.avg_r >= GREEN_AVG_R
        and stats.max_drawdown_r > GREEN_MAX_DD_R
    ):
        return "green"
    return "amber"
