"""Session: authentication state and lifecycle events consumed by the query engine.

Invariants:
    - admin is fixed at construction; an admin session signs in with a service account,
      a client session with a Firebase ID token
    - sign-in emits "sign-in" then exactly one of "signed-in" / "sign-in-error"
    - sign_out() emits "sign-out", delete() emits "deleting-client"
    - Misuse (double sign-in, sign-out before sign-in, reuse after delete) raises ClientError
    - An admin session holds a firebase_admin certificate credential; a client session
      holds an ID token served by get_token()

Design Decisions:
    - Credentials are installed before the "sign-in" event fires, so listeners reacting to
      it can already authenticate
    - Token minting and refresh for admin sessions belong to the Admin SDK app built from
      the credential, never to this class
"""

import logging
from collections.abc import Callable, Mapping

from firebase_admin import credentials

from rtdb_bridge.config import Settings, get_settings
from rtdb_bridge.core.domain_types import SessionEvent, SignState
from rtdb_bridge.core.enforce_credentials import check_json_credential
from rtdb_bridge.core.errors import ClientError
from rtdb_bridge.core.event_emitter import EventEmitter, Handler

logger = logging.getLogger(__name__)


class Session:
    """One authenticated identity against one database URL."""

    def __init__(
        self,
        database_url: str | None = None,
        admin: bool = False,
        settings: Settings | None = None,
    ):
        settings = settings or get_settings()
        self.database_url = (database_url or settings.database_url).rstrip("/")
        self.admin = admin
        self._emitter = EventEmitter()
        self._sign_state = SignState.NOT_YET
        self._initialised = True
        self._deleted = False
        self._credential: credentials.Certificate | None = None
        self._id_token: str | None = None

    @classmethod
    def from_service_account(
        cls,
        info: Mapping,
        database_url: str | None = None,
        settings: Settings | None = None,
    ) -> "Session":
        """Admin session, signed in on construction."""
        session = cls(database_url, admin=True, settings=settings)
        session._load_service_account(info)
        session._sign_state = SignState.SIGNED_IN
        return session

    # ─── State ───────────────────────────────────────────────────

    @property
    def client_initialised(self) -> bool:
        return self._initialised

    @property
    def client_deleted(self) -> bool:
        return self._deleted

    @property
    def sign_state(self) -> SignState:
        return self._sign_state

    @property
    def credential(self) -> credentials.Certificate | None:
        return self._credential

    def on(self, event: str, handler: Handler) -> "Session":
        self._emitter.on(event, handler)
        return self

    def once(self, event: str, handler: Handler) -> "Session":
        self._emitter.once(event, handler)
        return self

    def off(self, event: str, handler: Handler) -> "Session":
        self._emitter.off(event, handler)
        return self

    # ─── Sign-in / sign-out ──────────────────────────────────────

    def sign_in_with_service_account(self, info: Mapping) -> None:
        if not self.admin:
            raise ClientError("Service-account sign-in requires an admin session")
        self._wrap_sign_in(lambda: self._load_service_account(info))

    def sign_in_with_id_token(self, id_token: str) -> None:
        if self.admin:
            raise ClientError("ID-token sign-in requires a client session")
        if not isinstance(id_token, str) or not id_token.strip():
            raise ClientError("ID token must be a non-empty string")

        def sign_in() -> None:
            self._id_token = id_token.strip()

        self._wrap_sign_in(sign_in)

    def sign_out(self) -> None:
        if self._sign_state is SignState.NOT_YET:
            raise ClientError("sign_out called before sign in")
        if self._sign_state is SignState.SIGN_OUT:
            raise ClientError("sign_out already called")
        if self._deleted:
            raise ClientError("Client deleted")

        self._sign_state = SignState.SIGN_OUT
        self._emitter.emit(SessionEvent.SIGN_OUT)
        self._forget_credentials()
        logger.info("Signed out", extra={"database_url": self.database_url})

    def delete(self) -> None:
        if self._deleted:
            raise ClientError("Client already deleted")

        self._deleted = True
        self._emitter.emit(SessionEvent.DELETING_CLIENT)
        self._forget_credentials()
        logger.info("Session deleted", extra={"database_url": self.database_url})

    def _wrap_sign_in(self, sign_in: Callable[[], None]) -> None:
        if self._sign_state is SignState.SIGNED_IN:
            raise ClientError("Client already Signed in, Sign out before")
        if self._deleted:
            raise ClientError("Client deleted")

        success = False
        try:
            self._sign_state = SignState.SIGN_IN
            sign_in()
            success = True
        finally:
            self._emitter.emit(SessionEvent.SIGN_IN)
            if success:
                self._sign_state = SignState.SIGNED_IN
            else:
                self._sign_state = SignState.ERROR
                self._forget_credentials()
                logger.warning("Sign-in failed", extra={"database_url": self.database_url})
            self._emitter.emit(SessionEvent.SIGNED_IN if success else SessionEvent.SIGN_IN_ERROR)

    # ─── Credentials ─────────────────────────────────────────────

    async def get_token(self) -> str:
        """Firebase ID token of a client session."""
        if self._deleted:
            raise ClientError("Client deleted")
        if self.admin:
            raise ClientError("Admin sessions authenticate through their credential")
        if self._id_token is None:
            raise ClientError("Client not signed in")
        return self._id_token

    def _load_service_account(self, info: Mapping) -> None:
        checked = check_json_credential(info)
        try:
            self._credential = credentials.Certificate(checked)
        except ValueError as e:
            raise ClientError(f"Invalid service account: {e}")

    def _forget_credentials(self) -> None:
        self._credential = None
        self._id_token = None
