# tests/conftest.py
import os
import sys
from unittest.mock import AsyncMock, MagicMock

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from riskdesk.events import EventDispatcher
from riskdesk.execution.broker import BrokerSnapshot, LiveBroker
from riskdesk.execution.session import SessionController, SessionState
from riskdesk.execution.state_store import BrokerStateStore
from riskdesk.providers.sim import SimBroker
from riskdesk.recording.journal import InMemoryTradeJournal
from riskdesk.types import Environment


@pytest.fixture
def snapshot():
    """A flat 10k account with no open positions."""
    return BrokerSnapshot(equity=10000.0, balance=10000.0, daily_pnl=0.0)


@pytest.fixture
def state_store(snapshot):
    return BrokerStateStore(snapshot)


@pytest.fixture
def live_session():
    return SessionController(SessionState(execution_mode=Environment.LIVE))


@pytest.fixture
def sim_broker():
    return SimBroker()


@pytest.fixture
def journal():
    return InMemoryTradeJournal()


@pytest.fixture
def dispatcher():
    return EventDispatcher()


@pytest.fixture
def live_broker():
    """LiveBroker mock whose calls succeed with minimal responses."""
    broker = MagicMock(spec=LiveBroker)
    broker.place_order = AsyncMock(
        side_effect=lambda **kw: {"orderId": f"O-{kw['side']}", "position_id": f"POS-{kw['side']}"}
    )
    broker.close_position = AsyncMock(return_value={"status": "closed"})
    broker.modify_position = AsyncMock(return_value={"status": "modified"})
    return broker
