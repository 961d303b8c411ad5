"""Application lifespan: wire the wizard on startup, flush it on shutdown.

Usage:
    from workbridge.services.lifecycle import lifespan
    app = FastAPI(lifespan=lifespan, ...)

A background sweep releases wizard sessions that have been idle for
WIZARD_SESSION_IDLE_SECONDS. Shutdown flushes every open wizard so that
debounced saves still pending when the process stops are written before
the engine closes.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from workbridge.config import settings
from workbridge.database import async_session, engine
from workbridge.services.storage import LocalStorage
from workbridge.services.wizard import WizardSessions, build_wizard_sessions
from workbridge.utils.rate_limit import build_rate_limiter, close_redis

logger = logging.getLogger("workbridge.lifecycle")


async def _sweep_loop(sessions: WizardSessions, interval: float) -> None:
    """Evict idle wizard sessions every `interval` seconds."""
    while True:
        await asyncio.sleep(interval)
        try:
            await sessions.evict_idle()
        except Exception:
            logger.exception("Unhandled error evicting idle wizard sessions")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan: build shared services on startup, flush on shutdown."""
    storage = LocalStorage(settings.storage_root)
    limiter = build_rate_limiter(settings.upload_rate_limit_backend)
    sessions = build_wizard_sessions(async_session, storage, limiter)
    app.state.storage = storage
    app.state.wizard_sessions = sessions
    sweeper = asyncio.create_task(_sweep_loop(sessions, settings.wizard_session_sweep_seconds))
    logger.info(
        f"Onboarding wizard ready (storage={storage.root}, "
        f"rate limiter={settings.upload_rate_limit_backend})"
    )
    try:
        yield
    finally:
        sweeper.cancel()
        try:
            await sweeper
        except asyncio.CancelledError:
            pass
        await sessions.close_all()
        await close_redis()
        await engine.dispose()
        logger.info("Onboarding wizard stopped")
