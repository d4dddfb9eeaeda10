"""
Behavioural risk state from today's closed trades.

Precedence, most severe first:
    daily R <= -3 or 5+ losses in a row  -> lockdown / lockdown
    4 losses                             -> tilt_risk / defense
    2-3 losses                           -> hot / caution
    1 loss                               -> warming / normal
    otherwise                            -> normal / normal
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Iterable

from riskdesk.desk.policy import ENFORCED, DeskPolicy
from riskdesk.execution.broker import BrokerSnapshot
from riskdesk.execution.state_store import BrokerStateStore
from riskdesk.metrics import consecutive_losses
from riskdesk.recording.journal import JournalEntry, TradeJournal
from riskdesk.time_utils import now_utc

log = logging.getLogger(__name__)


__all__ = [
    "DefenseMode",
    "RiskState",
    "TiltService",
    "TiltSignal",
    "TiltState",
    "apply_defense_mode",
]


class RiskState(str, Enum):
    NORMAL = "normal"
    WARMING = "warming"
    HOT = "hot"
    TILT_RISK = "tilt_risk"
    LOCKDOWN = "lockdown"


class DefenseMode(str, Enum):
    NORMAL = "normal"
    CAUTION = "caution"
    DEFENSE = "defense"
    LOCKDOWN = "lockdown"


CAUTION_RISK_CAP = 0.25


@dataclass(frozen=True)
class TiltSignal:
    timestamp: datetime
    reason: str  # rapid_losses | session_dd_hit | overtrading
    details: str


@dataclass(frozen=True)
class TiltState:
    risk_state: RiskState = RiskState.NORMAL
    defense_mode: DefenseMode = DefenseMode.NORMAL
    tilt_signals: tuple[TiltSignal, ...] = ()
    consecutive_losses: int = 0
    daily_r: float = 0.0
    trades_today: int = 0
    last_update: datetime = field(default_factory=now_utc)


def apply_defense_mode(policy: DeskPolicy, mode: DefenseMode | str) -> DeskPolicy:
    """
    Adapt a desk policy to the current defense mode.

    Args:
        policy: Policy to adapt, left untouched
        mode: Defense mode from the tilt state

    Returns:
        A new policy; caution caps risk at 0.25%, defense and lockdown
        zero it and force enforcement
    """
    mode = DefenseMode(mode)
    if mode is DefenseMode.CAUTION:
        return replace(
            policy, max_risk_per_trade=min(policy.max_risk_per_trade, CAUTION_RISK_CAP)
        ).with_note("[DEFENSE] Mode: CAUTION. Risk capped at 0.25%.")
    if mode is DefenseMode.DEFENSE:
        return replace(policy, max_risk_per_trade=0.0, mode=ENFORCED).with_note(
            "[DEFENSE] Mode: DEFENSE. New risk blocked. Manage existing only."
        )
    if mode is DefenseMode.LOCKDOWN:
        return replace(policy, max_risk_per_trade=0.0, mode=ENFORCED).with_note(
            "[DEFENSE] Mode: LOCKDOWN. Trading suspended."
        )
    return policy


class TiltService:
    """
    Detects losing streaks, session drawdown and overtrading.

    Args:
        journal: Source of today's trades
        state_store: Optional broker state, attached for context
        overtrading_limit: Trades per day before ``overtrading`` fires
        rapid_losses_count: Streak length that emits ``rapid_losses``
        daily_stop_r: Daily R at or below which the session is locked down
    """

    def __init__(
        self,
        journal: TradeJournal,
        state_store: BrokerStateStore | None = None,
        *,
        overtrading_limit: int = 5,
        rapid_losses_count: int = 2,
        daily_stop_r: float = -3.0,
    ):
        self._journal = journal
        self._state_store = state_store
        self.overtrading_limit = overtrading_limit
        self.rapid_losses_count = rapid_losses_count
        self.daily_stop_r = daily_stop_r

    async def get_tilt_state(self) -> TiltState:
        entries = await self._journal.list_entries(days=1)
        snapshot = self._state_store.get_snapshot() if self._state_store else None
        state = self.analyze(entries, snapshot)
        if state.risk_state is not RiskState.NORMAL:
            log.info(
                "Tilt state %s (%s): %d losses, %.2fR today",
                state.risk_state.value, state.defense_mode.value,
                state.consecutive_losses, state.daily_r,
            )
        return state

    def analyze(
        self,
        entries: Iterable[JournalEntry],
        snapshot: BrokerSnapshot | None = None,
        now: datetime | None = None,
    ) -> TiltState:
        """
        Derive the tilt state from journal entries.

        Only closed entries created on the current UTC day count. The
        snapshot is informational and does not affect the result.
        """
        now = now or now_utc()
        today = [
            e for e in entries
            if e.is_closed and e.created_at.date() == now.date()
        ]
        today.sort(key=lambda e: e.created_at)

        losses = consecutive_losses(today)
        daily_r = float(sum(e.r for e in today))

        signals: list[TiltSignal] = []
        if losses >= self.rapid_losses_count:
            signals.append(TiltSignal(now, "rapid_losses", f"{losses} consecutive losses"))
        if daily_r <= self.daily_stop_r:
            signals.append(TiltSignal(now, "session_dd_hit", f"Daily R is {daily_r:.2f}R"))
        if len(today) > self.overtrading_limit:
            signals.append(TiltSignal(now, "overtrading", f"{len(today)} trades today"))

        if daily_r <= self.daily_stop_r or losses >= 5:
            risk, mode = RiskState.LOCKDOWN, DefenseMode.LOCKDOWN
        elif losses >= 4:
            risk, mode = RiskState.TILT_RISK, DefenseMode.DEFENSE
        elif losses >= 2:
            risk, mode = RiskState.HOT, DefenseMode.CAUTION
        elif losses >= 1:
            risk, mode = RiskState.WARMING, DefenseMode.NORMAL
        else:
            risk, mode = RiskState.NORMAL, DefenseMode.NORMAL

        return TiltState(
            risk_state=risk,
            defense_mode=mode,
            tilt_signals=tuple(signals),
            consecutive_losses=losses,
            daily_r=daily_r,
            trades_today=len(today),
            last_update=now,
        )

    def apply_defense_mode(self, policy: DeskPolicy, mode: DefenseMode | str) -> DeskPolicy:
        return apply_defense_mode(policy, mode)
