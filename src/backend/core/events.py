"""
Application lifecycle event handlers.

Startup probes the ledger backend once, builds the anti-abuse engine
(restoring persisted referral ledgers) and loads the cooldown ledger, so
request handlers only touch the in-memory view; shutdown flushes pending ledger
checkpoints and closes the backend.
"""

from typing import Callable

import structlog
from fastapi import FastAPI
from starlette.concurrency import run_in_threadpool

from core.config import settings

logger = structlog.get_logger(__name__)


def create_start_app_handler(app: FastAPI) -> Callable:
    """Create startup event handler."""

    async def start_app() -> None:
        logger.info("app_starting", app=settings.APP_NAME, env=settings.APP_ENV)

        from services.engine import get_engine
        from services.storage_service import LedgerStore

        engine = await run_in_threadpool(get_engine)
        await run_in_threadpool(engine.store.warm, LedgerStore.NS_GAME_COOLDOWNS)
        app.state.engine = engine
        logger.info("app_started", ledger_backend=engine.store.backend_name)

    return start_app


def create_stop_app_handler(app: FastAPI) -> Callable:
    """Create shutdown event handler."""

    async def stop_app() -> None:
        logger.info("app_stopping", app=settings.APP_NAME)

        from services.engine import reset_engine
        from services.storage_service import close_ledger_store

        reset_engine()
        close_ledger_store()
        logger.info("app_stopped")

    return stop_app
