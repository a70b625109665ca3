"""Database Factory: the single point where the admin/client backend is chosen.

Invariants:
    - The choice is made once, from session.admin, when the engine is built
    - The admin backend receives the session's credential (None means Application Default
      Credentials); the client backend receives its get_token()
"""

import logging

from rtdb_bridge.config import Settings, get_settings
from rtdb_bridge.core.backend_protocols import RealtimeDatabase, SessionLike
from rtdb_bridge.core.errors import RTDBError
from rtdb_bridge.infrastructure.admin_database import AdminDatabase
from rtdb_bridge.infrastructure.client_database import ClientDatabase

logger = logging.getLogger(__name__)


def open_database(session: SessionLike, settings: Settings | None = None) -> RealtimeDatabase:
    settings = settings or get_settings()
    if session.admin is None:
        raise RTDBError("Session has no admin flag: sign in before opening the database")

    database_url = session.database_url or settings.database_url
    logger.info(
        f"Opening {'admin' if session.admin else 'client'} database",
        extra={"database_url": database_url, "admin": session.admin},
    )
    if session.admin:
        return AdminDatabase.connect(database_url, session.credential, settings)
    return ClientDatabase.connect(database_url, session.get_token, settings)
