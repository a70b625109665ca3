"""rtdb-bridge entry point: logging setup plus a managed QueryEngine lifetime.

Invariants:
    - Logging is configured from Settings before the engine is built
    - The engine (liveness tracking, listeners, backend app or HTTP client) is always closed on exit

Design Decisions:
    - Async context manager mirrors an application lifespan: startup, yield, shutdown
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from rtdb_bridge.config import Settings, get_settings
from rtdb_bridge.core.backend_protocols import RealtimeDatabase, SessionLike
from rtdb_bridge.infrastructure.observability import setup_logging
from rtdb_bridge.services.query_engine import QueryEngine

logger = logging.getLogger(__name__)


@asynccontextmanager
async def open_bridge(
    session: SessionLike,
    database: RealtimeDatabase | None = None,
    settings: Settings | None = None,
) -> AsyncIterator[QueryEngine]:
    """Startup/shutdown lifecycle of one QueryEngine."""
    settings = settings or get_settings()
    setup_logging(settings.log_level, settings.log_format)
    engine = QueryEngine(session, database, settings)
    logger.info("rtdb-bridge started", extra={"database_url": engine.database.url})
    try:
        yield engine
    finally:
        await engine.close()
        logger.info("rtdb-bridge shut down", extra={"database_url": engine.database.url})
