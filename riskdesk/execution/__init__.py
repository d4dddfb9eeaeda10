from .broker import BrokerError, BrokerSnapshot, LiveBroker, Position
from .engine import ExecutionEngine, ExecutionResult, PartialFillError
from .guard import GuardLimits, GuardVerdict, compute_open_risk, evaluate_trade_command
from .session import SessionController, SessionState, SessionStateProvider
from .state_store import BrokerStateStore, get_state_store

__all__ = [
    "BrokerError",
    "BrokerSnapshot",
    "BrokerStateStore",
    "ExecutionEngine",
    "ExecutionResult",
    "GuardLimits",
    "GuardVerdict",
    "LiveBroker",
    "PartialFillError",
    "Position",
    "SessionController",
    "SessionState",
    "SessionStateProvider",
    "compute_open_risk",
    "evaluate_trade_command",
    "get_state_store",
]
