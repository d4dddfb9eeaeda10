"""
Daily desk policy derived from recent playbook performance.

The policy is advisory unless its mode is ``enforced``; enforced policies
can be threaded into the execution guard via ``GuardLimits.tightened_by``.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from riskdesk.metrics import playbook_stats, recent_streak
from riskdesk.recording.journal import TradeJournal
from riskdesk.time_utils import now_utc

if TYPE_CHECKING:
    from riskdesk.desk.tilt import TiltState

log = logging.getLogger(__name__)


__all__ = ["DeskPolicy", "DeskPolicyEngine", "format_policy_for_prompt"]

ADVISORY = "advisory"
ENFORCED = "enforced"

LOOKBACK_DAYS = 60
STREAK_WINDOW = 5

DEFAULT_RISK_PERCENT = 0.5
COLD_STREAK_RISK_PERCENT = 0.25
COLD_STREAK_LOSSES = 2
STOP_TRADING_LOSSES = 4

# Green playbook thresholds
GREEN_MIN_COUNT = 3
GREEN_MIN_WIN_RATE = 0.4
GREEN_MIN_AVG_R = 0.2


@dataclass(frozen=True)
class DeskPolicy:
    mode: str = ADVISORY
    max_risk_per_trade: float = DEFAULT_RISK_PERCENT
    max_daily_loss_r: float = -3.0
    max_trades_per_day: int = 5
    allowed_playbooks: tuple[str, ...] = ("*",)
    notes: str = ""
    id: str = ""
    created_at: datetime | None = None
    date: date | None = None
    context_stats: dict[str, Any] = field(default_factory=dict)

    @property
    def is_enforced(self) -> bool:
        return self.mode == ENFORCED

    def with_note(self, note: str) -> DeskPolicy:
        notes = f"{self.notes}\n{note}" if self.notes else note
        return replace(self, notes=notes)


def format_policy_for_prompt(policy: DeskPolicy | None) -> str:
    if policy is None:
        return "No desk policy available."
    playbooks = ", ".join(policy.allowed_playbooks)
    lines = [
        f"DESK POLICY ({policy.mode.upper()})",
        f"Max Risk/Trade: {policy.max_risk_per_trade:.2f}%",
        f"Max Daily Loss: {policy.max_daily_loss_r:.1f}R",
        f"Max Trades/Day: {policy.max_trades_per_day}",
        f"Allowed Playbooks: {playbooks}",
    ]
    if policy.notes:
        lines.append("Notes:")
        lines.extend(f"  {n}" for n in policy.notes.splitlines())
    return "\n".join(lines)


class DeskPolicyEngine:
    """
    Builds and caches the desk policy for the current UTC day.

    Args:
        journal: Source of closed trades
    """

    _policy_ids = itertools.count(1)

    def __init__(self, journal: TradeJournal):
        self._journal = journal
        self._current: DeskPolicy | None = None

    async def generate_daily_policy(self) -> DeskPolicy:
        """
        Generate a fresh policy from the last 60 days of closed trades.

        Risk per trade is 0.5% by default, halved to 0.25% on a cold
        streak (2+ losses) and zeroed at 4+ losses. Green playbooks form
        the allow-list; ``*`` allows everything when none qualify.
        """
        history = await self._journal.list_entries(days=LOOKBACK_DAYS)
        closed = [e for e in history if e.is_closed]
        stats = playbook_stats(closed)
        streak = recent_streak(closed, last_n=STREAK_WINDOW)

        green = [
            s.name
            for s in stats
            if s.count >= GREEN_MIN_COUNT
            and s.win_rate >= GREEN_MIN_WIN_RATE
            and s.avg_r > GREEN_MIN_AVG_R
        ]

        notes: list[str] = []
        losses = streak.consecutive_losses
        if losses >= STOP_TRADING_LOSSES:
            max_risk = 0.0
            notes.append("Stop Trading Recommended. 4+ consecutive losses.")
        elif losses >= COLD_STREAK_LOSSES:
            max_risk = COLD_STREAK_RISK_PERCENT
            notes.append(
                f"Cold Streak Detected ({losses} losses). Risk halved to 0.25%."
            )
        else:
            max_risk = DEFAULT_RISK_PERCENT
            notes.append("Standard risk allowed.")

        if green:
            notes.append(f"Focus Playbooks: {', '.join(green)}")
        else:
            notes.append(
                f"No high-performing playbooks found in last {LOOKBACK_DAYS} days. "
                "Trade with caution."
            )

        best = stats[0] if stats else None
        now = now_utc()
        policy = DeskPolicy(
            mode=ADVISORY,
            max_risk_per_trade=max_risk,
            allowed_playbooks=tuple(green) if green else ("*",),
            notes="\n".join(notes),
            id=f"pol_{int(now.timestamp() * 1000)}_{next(self._policy_ids)}",
            created_at=now,
            date=now.date(),
            context_stats={
                "win_rate": best.win_rate if best else 0.0,
                "avg_r": best.avg_r if best else 0.0,
                "best_playbook": best.name if best else "None",
            },
        )
        log.info(
            "Desk policy generated: risk=%.2f%% streak=%d playbooks=%s",
            max_risk, losses, ",".join(policy.allowed_playbooks),
        )
        return await self.save_policy(policy)

    async def get_current_policy(self) -> DeskPolicy:
        """Return today's policy, generating one if missing or stale."""
        current = self._current
        if current is None or current.date != now_utc().date():
            return await self.generate_daily_policy()
        return current

    async def save_policy(self, policy: DeskPolicy) -> DeskPolicy:
        self._current = policy
        return policy

    async def effective_policy(self, tilt_state: TiltState | None = None) -> DeskPolicy:
        """Today's policy adjusted by the trader's current defense mode."""
        from riskdesk.desk.tilt import apply_defense_mode

        policy = await self.get_current_policy()
        if tilt_state is None:
            return policy
        return apply_defense_mode(policy, tilt_state.defense_mode)
