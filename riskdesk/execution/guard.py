"""Pre-trade risk guard.

Given a broker snapshot and a trade command, decide whether the command may
go ahead. Everything here is a pure function of its inputs: no I/O, no
module state, so a verdict can be recomputed at will (previews, retries).

Rules for opens:
  - no valid equity -> hard block
  - daily drawdown at or beyond the cap
  - max open positions, max positions per symbol (BOTH counts as two)
  - estimated risk of the trade as % of equity
  - under an enforced policy, no new risk at a 0% cap or when risk is unknown
Closes are always allowed. Modifies may only tighten the stop.
"""

import math
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Mapping

from riskdesk.commands import (
    CloseCommand,
    CommandError,
    ModifyCommand,
    OpenCommand,
    TradeCommand,
    parse_command,
)
from riskdesk.execution.broker import BrokerSnapshot
from riskdesk.types import Direction, OrderSide

if TYPE_CHECKING:
    from riskdesk.desk.policy import DeskPolicy


__all__ = [
    "GuardLimits",
    "GuardVerdict",
    "RiskEstimate",
    "compute_open_risk",
    "evaluate_trade_command",
]

# Fraction of the single-trade cap above which a warning is raised.
HIGH_RISK_WARNING_RATIO = 0.75


@dataclass(frozen=True)
class GuardLimits:
    """Thresholds enforced by the guard."""

    max_daily_dd_percent: float = 4.0
    max_open_positions: int = 5
    max_positions_per_symbol: int = 3
    max_single_trade_risk_percent: float = 1.0
    # None means no playbook restriction
    allowed_playbooks: tuple[str, ...] | None = None
    # set by tightened_by for enforced policies
    policy_enforced: bool = False

    def tightened_by(self, policy: "DeskPolicy | None") -> "GuardLimits":
        """
        Return limits tightened by an enforced desk policy.

        Advisory policies (and ``None``) leave the limits unchanged. An
        enforced policy can only lower the single-trade risk cap, never
        raise it, restricts opens to its allowed playbooks and refuses
        opens whose risk cannot be estimated.
        """
        if policy is None or not policy.is_enforced:
            return self
        cap = min(self.max_single_trade_risk_percent, float(policy.max_risk_per_trade))
        playbooks = tuple(policy.allowed_playbooks)
        return replace(
            self,
            max_single_trade_risk_percent=cap,
            allowed_playbooks=None if "*" in playbooks else playbooks,
            policy_enforced=True,
        )


@dataclass(frozen=True)
class GuardVerdict:
    """Outcome of evaluating a command.

    ``reasons`` explain a block; ``warnings`` never change ``allowed``.
    """

    allowed: bool
    hard_blocked: bool = False
    reasons: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    metrics: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.hard_blocked and self.allowed:
            raise ValueError("A hard-blocked verdict cannot be allowed")

    @classmethod
    def hard_block(cls, reason: str) -> "GuardVerdict":
        return cls(allowed=False, hard_blocked=True, reasons=(reason,))


@dataclass(frozen=True)
class RiskEstimate:
    """Rough monetary risk of an open: |entry - stop| * qty."""

    risk_value: float | None
    risk_percent: float | None
    reason: str | None = None


def _positive(value: float | None) -> bool:
    return value is not None and math.isfinite(value) and value > 0


def _fail(reason: str) -> RiskEstimate:
    return RiskEstimate(risk_value=None, risk_percent=None, reason=reason)


def compute_open_risk(snapshot: BrokerSnapshot, command: OpenCommand) -> RiskEstimate:
    """
    Estimate the account risk of an open command.

    For BOTH, each leg counts only when the single stop protects it
    (long leg: stop below price, short leg: stop above price).

    Args:
        snapshot: Account state (equity is the denominator)
        command: The open command

    Returns:
        A RiskEstimate; on failure ``reason`` is set and values are None
    """
    equity = snapshot.equity
    if not _positive(equity):
        return _fail("MissingOrInvalidEquity")

    size = command.qty
    if not _positive(size):
        return _fail("MissingOrInvalidSize")

    entry = command.price
    sl = command.sl_price
    if not _positive(entry) or not _positive(sl):
        return _fail("MissingEntryOrStopLoss")

    if command.side is OrderSide.BOTH:
        long_risk = (entry - sl) * size if sl < entry else 0.0
        short_risk = (sl - entry) * size if sl > entry else 0.0
        total = long_risk + short_risk
        if total <= 0:
            return _fail("StopLossNotProtectiveForEitherLeg")
        return RiskEstimate(risk_value=total, risk_percent=total * 100.0 / equity)

    distance = entry - sl if command.side is OrderSide.BUY else sl - entry
    if distance <= 0:
        return _fail("StopLossNotProtective")

    risk_value = distance * size
    return RiskEstimate(risk_value=risk_value, risk_percent=risk_value * 100.0 / equity)


def _playbook_allowed(playbook: str | None, allowed: tuple[str, ...]) -> bool:
    if not playbook:
        return False
    pb = playbook.strip().lower()
    return any(p.strip().lower() == pb for p in allowed)


def _evaluate_open(
    snapshot: BrokerSnapshot, command: OpenCommand, limits: GuardLimits
) -> GuardVerdict:
    reasons: list[str] = []
    warnings: list[str] = []

    equity = snapshot.equity
    balance = snapshot.balance
    daily_pnl = snapshot.daily_pnl
    if daily_pnl is None or not math.isfinite(daily_pnl):
        daily_pnl = 0.0
    open_positions = snapshot.open_positions
    new_positions = command.side.legs

    metrics: dict[str, Any] = {
        "equity": equity,
        "balance": balance,
        "daily_pnl": daily_pnl,
        "daily_drawdown_percent": None,
        "open_positions_count": len(open_positions),
        "new_positions_count": new_positions,
        "same_symbol_open_positions": 0,
        "estimated_risk_value": None,
        "estimated_risk_percent": None,
        "max_single_trade_risk_percent": limits.max_single_trade_risk_percent,
    }

    if not _positive(equity):
        return GuardVerdict(
            allowed=False, hard_blocked=True, reasons=("InvalidEquity",), metrics=metrics
        )

    if _positive(balance):
        dd_percent = daily_pnl * 100.0 / balance
        metrics["daily_drawdown_percent"] = dd_percent
        if dd_percent <= -abs(limits.max_daily_dd_percent):
            reasons.append("DailyDrawdownLimitExceeded")

    if len(open_positions) + new_positions > limits.max_open_positions:
        reasons.append("MaxOpenPositionsExceeded")

    if command.symbol:
        same_symbol = len(snapshot.positions_for_symbol(command.symbol))
        metrics["same_symbol_open_positions"] = same_symbol
        if same_symbol + new_positions > limits.max_positions_per_symbol:
            reasons.append("MaxPositionsPerSymbolExceeded")

    risk = compute_open_risk(snapshot, command)
    metrics["estimated_risk_value"] = risk.risk_value
    metrics["estimated_risk_percent"] = risk.risk_percent

    cap = limits.max_single_trade_risk_percent
    if risk.reason is not None:
        warnings.append(f"CouldNotEstimateRisk ({risk.reason})")
    elif risk.risk_percent is not None:
        if risk.risk_percent > cap:
            reasons.append("SingleTradeRiskTooHigh")
        elif risk.risk_percent > cap * HIGH_RISK_WARNING_RATIO:
            warnings.append("HighSingleTradeRisk")

    if limits.policy_enforced and (cap <= 0 or risk.reason is not None):
        reasons.append("NewRiskBlockedByPolicy")

    if limits.allowed_playbooks is not None and not _playbook_allowed(
        command.playbook, limits.allowed_playbooks
    ):
        reasons.append("PlaybookNotAllowed")

    return GuardVerdict(
        allowed=not reasons,
        hard_blocked=False,
        reasons=tuple(reasons),
        warnings=tuple(warnings),
        metrics=metrics,
    )


def _evaluate_close(snapshot: BrokerSnapshot, command: CloseCommand) -> GuardVerdict:
    # Closing reduces risk, so it is never blocked here.
    position = snapshot.find_position(command.position_id)
    warnings = () if position else ("PositionNotFoundInSnapshot",)
    return GuardVerdict(
        allowed=True,
        warnings=warnings,
        metrics={"closing_size": command.qty, "position_found": position is not None},
    )


def _evaluate_modify(snapshot: BrokerSnapshot, command: ModifyCommand) -> GuardVerdict:
    position = snapshot.find_position(command.position_id)
    metrics = {"position_found": position is not None}

    new = command.sl_price
    if new is not None and not math.isfinite(new):
        return GuardVerdict(
            allowed=False, hard_blocked=True, reasons=("InvalidStopLoss",), metrics=metrics
        )

    if position is None:
        return GuardVerdict(
            allowed=True, warnings=("PositionNotFoundInSnapshot",), metrics=metrics
        )

    current = position.stop_loss
    if current is None or new is None or not math.isfinite(current):
        return GuardVerdict(allowed=True, metrics=metrics)

    # Stops may only move toward price: up for longs, down for shorts.
    if position.side is Direction.LONG and new < current:
        return GuardVerdict(
            allowed=False, reasons=("CannotWidenStopLossForLong",), metrics=metrics
        )
    if position.side is Direction.SHORT and new > current:
        return GuardVerdict(
            allowed=False, reasons=("CannotWidenStopLossForShort",), metrics=metrics
        )
    return GuardVerdict(allowed=True, metrics=metrics)


def evaluate_trade_command(
    snapshot: BrokerSnapshot | Mapping[str, Any] | None,
    command: TradeCommand | Mapping[str, Any] | None,
    limits: GuardLimits | None = None,
) -> GuardVerdict:
    """
    Evaluate a trade command against the account snapshot.

    Malformed input never raises: a missing snapshot, a missing or unknown
    command type are hard blocks.

    Args:
        snapshot: Current account snapshot (or a raw payload)
        command: A TradeCommand or a raw mapping with a ``type`` key
        limits: Thresholds to apply; defaults to GuardLimits()

    Returns:
        The GuardVerdict
    """
    if snapshot is None:
        return GuardVerdict.hard_block("NoBrokerSnapshot")
    if not isinstance(snapshot, BrokerSnapshot):
        snapshot = BrokerSnapshot.from_raw(snapshot)

    if command is None:
        return GuardVerdict.hard_block("MissingCommandType")
    if not isinstance(command, (OpenCommand, CloseCommand, ModifyCommand)):
        try:
            command = parse_command(command)
        except CommandError as e:
            return GuardVerdict.hard_block(e.code)

    limits = limits or GuardLimits()

    if isinstance(command, OpenCommand):
        return _evaluate_open(snapshot, command, limits)
    if isinstance(command, CloseCommand):
        return _evaluate_close(snapshot, command)
    if isinstance(command, ModifyCommand):
        return _evaluate_modify(snapshot, command)
    return GuardVerdict.hard_block("UnknownCommandType")
