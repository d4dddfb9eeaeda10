"""
Execution engine: the single entry point for trade commands.

Order of checks for every command:
    1. global kill switch (hard block, guard not consulted)
       then unknown mode or environment (hard block)
    2. sim or live routing
    3. guard verdict on the current snapshot
    4. mode gating (confirm never executes; live auto needs the opt-in flag)
    5. dispatch to the sim or live broker

Broker failures are reported in the result, never raised.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Mapping

from riskdesk.commands import (
    CloseCommand,
    ModifyCommand,
    OpenCommand,
    TradeCommand,
    parse_command,
)
from riskdesk.events import EventDispatcher, ExecutionCompletedEvent, get_dispatcher
from riskdesk.execution.broker import BrokerError, BrokerSnapshot, LiveBroker
from riskdesk.execution.guard import GuardLimits, evaluate_trade_command
from riskdesk.execution.session import SessionStateProvider
from riskdesk.execution.state_store import BrokerStateStore
from riskdesk.providers.sim import SimBroker
from riskdesk.types import Direction, Environment, ExecutionMode, OrderSide

if TYPE_CHECKING:
    from riskdesk.desk.policy import DeskPolicy

log = logging.getLogger(__name__)


__all__ = [
    "ExecutionEngine",
    "ExecutionResult",
    "PartialFillError",
    "PolicyProvider",
    "evaluate_trade_command",
]

KILL_SWITCH_REASON = "GLOBAL_KILL_SWITCH_ACTIVE"
AUTO_EXECUTE_DISABLED_REASON = "AutoExecuteDisabledEnvVar"
INVALID_MODE_REASON = "InvalidExecutionMode"
INVALID_ENVIRONMENT_REASON = "InvalidEnvironment"

PolicyProvider = Callable[[], Awaitable["DeskPolicy | None"]]


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of one ``execute_trade_command`` call."""

    mode: ExecutionMode
    source: str
    environment: Environment
    executed: bool = False
    requires_confirmation: bool = False
    allowed_by_guard: bool = False
    hard_blocked: bool = False
    reasons: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    guard_metrics: dict[str, Any] = field(default_factory=dict)
    broker_snapshot: BrokerSnapshot | None = None
    broker_result: Any = None


class PartialFillError(BrokerError):
    """One leg of a BOTH-side open filled and the other failed."""

    def __init__(self, message: str, surviving: dict[str, Any], compensated: bool):
        super().__init__(message)
        self.surviving = surviving
        self.compensated = compensated


def _position_id(response: Any) -> str | None:
    if not isinstance(response, Mapping):
        return None
    for key in ("position_id", "positionId", "id"):
        if response.get(key):
            return str(response[key])
    return None


def _command_type(command: Any) -> str:
    if isinstance(command, (OpenCommand, CloseCommand, ModifyCommand)):
        return command.type
    if isinstance(command, Mapping):
        return str(command.get("type") or "unknown")
    return "unknown"


def _command_dict(command: Any) -> dict[str, Any]:
    if isinstance(command, (OpenCommand, CloseCommand, ModifyCommand)):
        return command.to_dict()
    if isinstance(command, Mapping):
        return dict(command)
    return {}


class ExecutionEngine:
    """
    Routes trade commands through the guard to a sim or live broker.

    Args:
        session: Kill-switch and execution-mode provider, read per call
        state_store: Live account snapshot source
        live_broker: Live brokerage client; live dispatch fails without one
        sim_broker: Simulated broker; sim dispatch fails without one
        limits: Guard thresholds
        allow_auto_execute: Whether live ``auto`` commands may execute
        dispatcher: Event dispatcher for execution outcomes
        policy_provider: Optional coroutine returning the desk policy; an
            enforced policy tightens ``limits``
    """

    def __init__(
        self,
        *,
        session: SessionStateProvider,
        state_store: BrokerStateStore,
        live_broker: LiveBroker | None = None,
        sim_broker: SimBroker | None = None,
        limits: GuardLimits | None = None,
        allow_auto_execute: bool = False,
        dispatcher: EventDispatcher | None = None,
        policy_provider: PolicyProvider | None = None,
    ):
        self.session = session
        self.state_store = state_store
        self.live_broker = live_broker
        self.sim_broker = sim_broker
        self.limits = limits or GuardLimits()
        self.allow_auto_execute = allow_auto_execute
        self.dispatcher = dispatcher or get_dispatcher()
        self.policy_provider = policy_provider

    async def execute_trade_command(
        self,
        mode: ExecutionMode | str | None,
        command: TradeCommand | Mapping[str, Any] | None,
        source: str = "unknown",
        environment: Environment | str = Environment.LIVE,
    ) -> ExecutionResult:
        """
        Execute, or propose, a trade command.

        Args:
            mode: ``confirm`` (never executes) or ``auto``, any case; defaults
                to confirm
            command: A TradeCommand or a raw mapping with a ``type`` key
            source: Caller label carried into the result
            environment: ``sim`` or ``live``

        Returns:
            A fully populated ExecutionResult
        """
        result = await self._execute(mode, command, source or "unknown", environment)
        await self.dispatcher.publish(
            ExecutionCompletedEvent(
                command_type=_command_type(command),
                command=_command_dict(command),
                result=result,
            )
        )
        return result

    async def _execute(
        self,
        raw_mode: ExecutionMode | str | None,
        command: TradeCommand | Mapping[str, Any] | None,
        source: str,
        raw_environment: Environment | str | None,
    ) -> ExecutionResult:
        session = await self.session.get_session_state()
        mode = ExecutionMode.parse(raw_mode) if raw_mode else ExecutionMode.CONFIRM
        environment = (
            Environment.parse(raw_environment) if raw_environment else Environment.LIVE
        )

        rejection = None
        if session.trading_halted:
            log.warning("Command from %s rejected: kill switch active", source)
            rejection = KILL_SWITCH_REASON
        elif mode is None:
            log.warning("Command from %s rejected: unknown mode %r", source, raw_mode)
            rejection = INVALID_MODE_REASON
        elif environment is None:
            log.warning(
                "Command from %s rejected: unknown environment %r", source, raw_environment
            )
            rejection = INVALID_ENVIRONMENT_REASON
        if rejection is not None:
            return ExecutionResult(
                mode=mode or ExecutionMode.CONFIRM,
                source=source,
                environment=environment or Environment.LIVE,
                hard_blocked=True,
                reasons=(rejection,),
            )

        is_sim = environment is Environment.SIM or session.execution_mode == Environment.SIM
        target = Environment.SIM if is_sim else Environment.LIVE

        if is_sim and self.sim_broker is not None:
            snapshot = self.sim_broker.snapshot()
        else:
            snapshot = self.state_store.get_snapshot()

        verdict = evaluate_trade_command(snapshot, command, await self._limits())

        base = dict(
            mode=mode,
            source=source,
            environment=target,
            allowed_by_guard=verdict.allowed,
            hard_blocked=verdict.hard_blocked,
            reasons=verdict.reasons,
            warnings=verdict.warnings,
            guard_metrics=verdict.metrics,
            broker_snapshot=snapshot,
        )

        if verdict.hard_blocked:
            log.info("Command from %s hard blocked: %s", source, ", ".join(verdict.reasons))
            return ExecutionResult(**base)

        if mode is ExecutionMode.CONFIRM:
            return ExecutionResult(**base, requires_confirmation=not verdict.allowed)

        if not is_sim and not self.allow_auto_execute:
            log.info("Auto execution from %s refused: auto-execute disabled", source)
            base["reasons"] = verdict.reasons + (AUTO_EXECUTE_DISABLED_REASON,)
            return ExecutionResult(**base, requires_confirmation=True)

        if not verdict.allowed:
            log.info("Auto execution from %s blocked: %s", source, ", ".join(verdict.reasons))
            return ExecutionResult(**base, requires_confirmation=True)

        # the guard already rejected anything that does not parse
        if isinstance(command, (OpenCommand, CloseCommand, ModifyCommand)):
            parsed = command
        else:
            parsed = parse_command(command)
        try:
            if is_sim:
                broker_result = self._dispatch_sim(parsed)
            else:
                broker_result = await self._dispatch_live(parsed)
        except PartialFillError as e:
            log.error("Partial fill on %s from %s: %s", parsed.type, source, e)
            base["reasons"] = verdict.reasons + (
                f"ExecutionError: {e}",
                "PartialFillCompensated" if e.compensated else "PartialFillUncompensated",
            )
            return ExecutionResult(**base, broker_result=e.surviving)
        except Exception as e:
            log.error("Execution of %s from %s failed: %s", parsed.type, source, e, exc_info=True)
            base["reasons"] = verdict.reasons + (f"ExecutionError: {e}",)
            return ExecutionResult(**base)

        log.info("Executed %s from %s on %s", parsed.type, source, target.value)
        return ExecutionResult(
            **base,
            executed=True,
            requires_confirmation=False,
            broker_result=broker_result,
        )

    async def _limits(self) -> GuardLimits:
        if self.policy_provider is None:
            return self.limits
        return self.limits.tightened_by(await self.policy_provider())

    # ------------------------------------------------------------------
    # Simulated dispatch

    def _dispatch_sim(self, command: TradeCommand) -> Any:
        sim = self.sim_broker
        if sim is None:
            raise BrokerError("No simulated broker configured")

        if isinstance(command, OpenCommand):
            legs = (
                [OrderSide.BUY, OrderSide.SELL]
                if command.side is OrderSide.BOTH
                else [command.side]
            )
            out = {}
            for side in legs:
                position = sim.open_sim_position(
                    symbol=command.symbol,
                    direction=Direction.LONG if side is OrderSide.BUY else Direction.SHORT,
                    size=command.qty or 0.0,
                    entry_price=command.price or 0.0,
                    stop_price=command.sl_price,
                    take_profit=command.tp_price,
                )
                out[side.value] = asdict(position)
            return out if command.side is OrderSide.BOTH else out[command.side.value]

        if isinstance(command, CloseCommand):
            price = command.price
            if price is None:
                current = next(
                    (p for p in sim.get_sim_positions() if p.id == command.position_id), None
                )
                price = current.entry_price if current else None
            return asdict(sim.close_sim_position(command.position_id, price))

        if isinstance(command, ModifyCommand):
            return asdict(
                sim.modify_sim_position(
                    command.position_id,
                    stop_price=command.sl_price,
                    take_profit=command.tp_price,
                )
            )

        raise BrokerError(f"Unsupported command {command!r}")

    # ------------------------------------------------------------------
    # Live dispatch

    async def _dispatch_live(self, command: TradeCommand) -> Any:
        broker = self.live_broker
        if broker is None:
            raise BrokerError("No live broker configured")

        if isinstance(command, OpenCommand):
            if command.side is OrderSide.BOTH:
                return await self._open_both_live(broker, command)
            return await self._place(broker, command, command.side, command.client_order_id)

        if isinstance(command, CloseCommand):
            return await broker.close_position(command.position_id, command.qty or 0)

        if isinstance(command, ModifyCommand):
            return await broker.modify_position(
                command.position_id,
                sl_price=command.sl_price,
                tp_price=command.tp_price,
            )

        raise BrokerError(f"Unsupported command {command!r}")

    async def _place(
        self,
        broker: LiveBroker,
        command: OpenCommand,
        side: OrderSide,
        client_order_id: str | None,
    ) -> dict[str, Any]:
        return await broker.place_order(
            symbol=command.symbol,
            side=side.value,
            qty=command.qty or 0.0,
            order_type=command.entry_type,
            validity="IOC",
            price=command.price,
            stop_price=command.stop_price,
            sl_price=command.sl_price,
            tp_price=command.tp_price,
            route_id=command.route_id,
            client_order_id=client_order_id,
            instrument_id=command.instrument_id,
        )

    async def _open_both_live(
        self, broker: LiveBroker, command: OpenCommand
    ) -> dict[str, Any]:
        """
        Send BUY and SELL legs concurrently.

        If exactly one leg fails the surviving leg is closed and
        PartialFillError reports whether that close succeeded.
        """
        sides = (OrderSide.BUY, OrderSide.SELL)
        base_id = command.client_order_id
        results = await asyncio.gather(
            *(
                self._place(
                    broker, command, side, f"{base_id}-{side.value}" if base_id else None
                )
                for side in sides
            ),
            return_exceptions=True,
        )
        legs = dict(zip((s.value for s in sides), results))
        failed = {k: v for k, v in legs.items() if isinstance(v, BaseException)}

        if not failed:
            return legs
        if len(failed) == len(legs):
            raise BrokerError(
                "; ".join(f"{side} leg failed: {err}" for side, err in failed.items())
            )

        bad_side, err = next(iter(failed.items()))
        good_side, survivor = next((k, v) for k, v in legs.items() if k not in failed)
        message = f"{bad_side} leg failed: {err}"

        position_id = _position_id(survivor)
        if position_id is None:
            log.warning("Cannot compensate %s leg: no position id in response", good_side)
            raise PartialFillError(message, {good_side: survivor}, compensated=False)
        try:
            await broker.close_position(position_id, 0)
        except Exception:
            log.exception("Compensating close of %s leg %s failed", good_side, position_id)
            raise PartialFillError(message, {good_side: survivor}, compensated=False)
        log.warning("Closed surviving %s leg %s after partial fill", good_side, position_id)
        raise PartialFillError(message, {good_side: survivor}, compensated=True)
