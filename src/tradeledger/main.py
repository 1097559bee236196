"""Entry point for the ledger settlement service.

Wires all components together, optionally embeds the FastAPI API, and
arms the daily scheduler. When the API is enabled (default), the scheduler
and the API share a single asyncio event loop via uvicorn's programmatic API
and FastAPI's lifespan context manager.

Handles SIGINT/SIGTERM for graceful shutdown: the scheduler stops arming new
firings and any in-flight settlement cycle finishes first.

Component wiring order (in _build_components):
1. AppSettings (configuration)
2. Logging setup
3. LedgerDatabase (connected by the caller)
4. AccountStore, RuleStore, ScheduleStore
5. RuleTable
6. SettlementEngine, DeactivationEngine
7. Scheduler (owns both daily jobs)
8. ScheduleService (schedule reads/updates, re-arms the Scheduler)
"""

import asyncio
import signal
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI

from tradeledger.config import AppSettings
from tradeledger.data.account_store import AccountStore
from tradeledger.data.database import LedgerDatabase
from tradeledger.data.rule_store import RuleStore
from tradeledger.data.schedule_store import ScheduleStore
from tradeledger.logging import get_logger, setup_logging
from tradeledger.rules.table import RuleTable
from tradeledger.scheduling.scheduler import Scheduler
from tradeledger.scheduling.service import ScheduleService
from tradeledger.settlement.deactivation import DeactivationEngine
from tradeledger.settlement.engine import SettlementEngine


def _build_components(settings: AppSettings) -> dict[str, Any]:
    """Build all components from settings.

    Note: Does NOT connect the database or start the scheduler -- that
    happens in the lifespan (API mode) or run() (scheduler-only mode).
    """
    database = LedgerDatabase(settings.database.path)

    account_store = AccountStore(database)
    rule_store = RuleStore(database)
    schedule_store = ScheduleStore(database)

    rule_table = RuleTable(rule_store)

    settlement_engine = SettlementEngine(account_store, rule_table, settings.settlement)
    deactivation_engine = DeactivationEngine(account_store, settings.settlement)

    scheduler = Scheduler(
        settlement_engine=settlement_engine,
        deactivation_engine=deactivation_engine,
        schedule_store=schedule_store,
        settings=settings.schedule,
    )
    schedule_service = ScheduleService(schedule_store, scheduler, settings.schedule)

    return {
        "database": database,
        "account_store": account_store,
        "rule_store": rule_store,
        "schedule_store": schedule_store,
        "rule_table": rule_table,
        "settlement_engine": settlement_engine,
        "deactivation_engine": deactivation_engine,
        "scheduler": scheduler,
        "schedule_service": schedule_service,
    }


def _setup_signal_handlers(stop_event: asyncio.Event) -> None:
    """Register SIGINT/SIGTERM to set stop_event.

    Must be called after the asyncio event loop is running.
    """
    logger = get_logger("tradeledger.main")
    loop = asyncio.get_running_loop()

    def _graceful_handler() -> None:
        logger.info("graceful_shutdown_signal")
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _graceful_handler)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage component lifecycle within the FastAPI application.

    On startup: stores components on app.state, connects the database,
    arms the scheduler.

    On shutdown: stops the scheduler (letting an in-flight cycle finish),
    closes the database.
    """
    logger = get_logger("tradeledger.main")
    components = app.state.components

    app.state.account_store = components["account_store"]
    app.state.rule_table = components["rule_table"]
    app.state.scheduler = components["scheduler"]
    app.state.schedule_service = components["schedule_service"]

    await components["database"].connect()
    await components["scheduler"].start()

    logger.info("lifespan_started")

    yield

    await components["scheduler"].stop()
    await components["database"].close()

    logger.info("tradeledger_stopped")


async def run() -> None:
    """Run the settlement service.

    When the API is enabled (API_ENABLED=true, the default):
    - Creates the FastAPI app with lifespan
    - Runs scheduler and API in a single asyncio event loop via uvicorn

    When the API is disabled (API_ENABLED=false):
    - Arms the scheduler directly and waits for SIGINT/SIGTERM
    """
    # 1. Load settings
    settings = AppSettings()

    # 2. Setup logging
    setup_logging(settings.log_level)
    logger = get_logger("tradeledger.main")

    # 3-8. Build all components
    components = _build_components(settings)

    if settings.api.enabled:
        from tradeledger.api.app import create_app

        app = create_app(lifespan=lifespan)
        app.state.settings = settings
        app.state.components = components

        logger.info(
            "starting_with_api",
            host=settings.api.host,
            port=settings.api.port,
        )

        config = uvicorn.Config(
            app,
            host=settings.api.host,
            port=settings.api.port,
            log_level="warning",  # Suppress uvicorn access logs
        )
        server = uvicorn.Server(config)
        await server.serve()
    else:
        stop_event = asyncio.Event()
        _setup_signal_handlers(stop_event)

        logger.info("starting_without_api", db_path=settings.database.path)

        try:
            await components["database"].connect()
            await components["scheduler"].start()
            await stop_event.wait()
        finally:
            await components["scheduler"].stop()
            await components["database"].close()
            logger.info("tradeledger_stopped")


def main() -> None:
    """Synchronous entry point."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
