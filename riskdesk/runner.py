"""
Logging setup and wiring of the desk components.
"""

import logging
import sys
from dataclasses import dataclass

from riskdesk.config import Settings
from riskdesk.desk.policy import DeskPolicy, DeskPolicyEngine
from riskdesk.desk.tilt import TiltService
from riskdesk.events import EventDispatcher, get_dispatcher
from riskdesk.execution.broker import LiveBroker
from riskdesk.execution.engine import ExecutionEngine
from riskdesk.execution.session import SessionController
from riskdesk.execution.state_store import BrokerStateStore, get_state_store
from riskdesk.providers.sim import SimBroker
from riskdesk.recording.journal import InMemoryTradeJournal, TradeJournal


log = logging.getLogger(__name__)


__all__ = [
    "Desk",
    "build_desk",
    "configure_logging",
]


def configure_logging(level: str = "INFO", force: bool = False) -> None:
    """
    Configure root logger with console output.

    Non-destructive by default: if the root logger already has handlers,
    the application is assumed to have configured logging and nothing
    changes.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        force: If True, clear existing handlers and force this configuration
    """
    root_logger = logging.getLogger()

    if root_logger.hasHandlers() and not force:
        return

    root_logger.setLevel(level.upper())

    if force:
        root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root_logger.addHandler(handler)


@dataclass
class Desk:
    """The wired components of one trading desk."""
    settings: Settings
    session: SessionController
    state_store: BrokerStateStore
    sim_broker: SimBroker
    journal: TradeJournal
    tilt: TiltService
    policy_engine: DeskPolicyEngine
    engine: ExecutionEngine

    async def effective_policy(self) -> DeskPolicy:
        """Today's policy adjusted by the current tilt state."""
        return await self.policy_engine.effective_policy(await self.tilt.get_tilt_state())


def build_desk(
    settings: Settings | None = None,
    *,
    journal: TradeJournal | None = None,
    live_broker: LiveBroker | None = None,
    sim_broker: SimBroker | None = None,
    session: SessionController | None = None,
    state_store: BrokerStateStore | None = None,
    dispatcher: EventDispatcher | None = None,
    enforce_policy: bool = False,
    setup_logging: bool = True,
) -> Desk:
    """
    Wire the engine, tilt service and policy engine together.

    Args:
        settings: Runtime settings; read from the environment when omitted
        journal: Trade history; an empty in-memory journal when omitted
        live_broker: Live brokerage client, if any
        sim_broker: Simulated broker; a fresh one when omitted
        session: Kill-switch controller
        state_store: Live snapshot store; the process-wide one when omitted
        dispatcher: Event dispatcher for execution outcomes
        enforce_policy: Let the tilt-adjusted desk policy tighten the guard
        setup_logging: If True, configure the root logger from settings

    Returns:
        The wired Desk
    """
    settings = settings or Settings.from_env()
    if setup_logging:
        configure_logging(settings.log_level)

    journal = journal if journal is not None else InMemoryTradeJournal()
    state_store = state_store or get_state_store()
    sim_broker = sim_broker or SimBroker()
    session = session or SessionController()

    tilt = TiltService(
        journal, state_store, overtrading_limit=settings.overtrading_limit
    )
    policy_engine = DeskPolicyEngine(journal)

    desk = Desk(
        settings=settings,
        session=session,
        state_store=state_store,
        sim_broker=sim_broker,
        journal=journal,
        tilt=tilt,
        policy_engine=policy_engine,
        engine=ExecutionEngine(
            session=session,
            state_store=state_store,
            live_broker=live_broker,
            sim_broker=sim_broker,
            limits=settings.guard_limits(),
            allow_auto_execute=settings.allow_auto_execute,
            dispatcher=dispatcher or get_dispatcher(),
        ),
    )
    if enforce_policy:
        desk.engine.policy_provider = desk.effective_policy

    log.info(
        "Desk ready: auto-execute %s, live broker %s, policy %s",
        "on" if settings.allow_auto_execute else "off",
        type(live_broker).__name__ if live_broker else "none",
        "enforced" if enforce_policy else "advisory",
    )
    return desk
