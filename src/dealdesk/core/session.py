"""Session store: token, user id and role held in client-resident storage.

One SessionStore is built at startup (build_session_store) and passed to
every component that needs credentials. Nothing reads session state from
module globals. The store never touches the network.

Persisted keys: ``token``, ``userId``, ``userRole`` and the optional
``apiUrl`` base-URL override. ``lastVisited`` and ``preferences`` are
treated as non-essential and are the first to go when a write hits the
storage quota.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

import structlog
from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt

from src.dealdesk.config import Settings
from src.dealdesk.core.logging import token_preview
from src.dealdesk.core.storage import ClientStorage, JsonFileStorage, StorageQuotaExceeded

logger = structlog.get_logger(__name__)

TOKEN_KEY = "token"
USER_ID_KEY = "userId"
ROLE_KEY = "userRole"
API_URL_KEY = "apiUrl"

SESSION_KEYS = (TOKEN_KEY, USER_ID_KEY, ROLE_KEY)
NON_ESSENTIAL_KEYS = ("lastVisited", "preferences")


class Role(str, Enum):
    """Principal role carried by a session."""

    BUYER = "buyer"
    SELLER = "seller"
    ADMIN = "admin"


@dataclass(frozen=True)
class Session:
    """Authenticated identity for the current client."""

    token: str
    user_id: str
    role: Role | None = None


def _parse_role(value: str | Role | None) -> Role | None:
    if value is None or isinstance(value, Role):
        return value
    try:
        return Role(value.strip().lower())
    except ValueError:
        return None


class SessionStore:
    """Read, write and invalidate the client session.

    Args:
        storage: Backing ClientStorage (memory or JSON file).
    """

    def __init__(self, storage: ClientStorage) -> None:
        self._storage = storage

    # ── Write ──────────────────────────────────────────────────────────────

    def establish(self, token: str, user_id: str, role: Role | str) -> Session | None:
        """Persist a new session.

        The token is stripped before storage. If the write exceeds the
        storage quota, non-essential keys are dropped and the write is
        retried once. A second failure is logged and swallowed. Whatever
        the failed attempts wrote is cleared along with the previous
        session, so the caller sees None and the client stays
        unauthenticated.

        Returns:
            The stored Session, or None if persistence failed.
        """
        session = Session(
            token=token.strip(),
            user_id=user_id.strip(),
            role=_parse_role(role),
        )

        retrying = Retrying(
            stop=stop_after_attempt(2),
            retry=retry_if_exception_type(StorageQuotaExceeded),
            before_sleep=self._prune_non_essential,
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    self._write(session)
        except StorageQuotaExceeded:
            logger.error(
                "session_store.establish_failed",
                user_id=session.user_id,
                reason="quota_exceeded",
            )
            # The keys are written one by one; never leave a mixed session.
            self.invalidate()
            return None

        logger.info(
            "session_store.established",
            user_id=session.user_id,
            role=session.role.value if session.role else None,
            token=token_preview(session.token),
        )
        return session

    def _write(self, session: Session) -> None:
        self._storage.set(TOKEN_KEY, session.token)
        self._storage.set(USER_ID_KEY, session.user_id)
        if session.role is not None:
            self._storage.set(ROLE_KEY, session.role.value)
        else:
            self._storage.remove(ROLE_KEY)

    def _prune_non_essential(self, retry_state: RetryCallState) -> None:
        logger.warning(
            "session_store.quota_retry",
            attempt=retry_state.attempt_number,
            dropped=list(NON_ESSENTIAL_KEYS),
        )
        for key in NON_ESSENTIAL_KEYS:
            self._storage.remove(key)

    def establish_from_link(self, params: Mapping[str, str | None]) -> Session | None:
        """Establish a session from incoming-link query parameters.

        ``token`` and ``userId`` from the link take precedence. When the
        link carries no token the previously cached session is returned
        unchanged. A link token without a user id reuses the cached one.
        The role defaults to buyer, matching the external redirect flow.
        """
        link_token = (params.get("token") or "").strip()
        if not link_token:
            return self.read()

        cached = self.read()
        user_id = (params.get("userId") or "").strip() or (cached.user_id if cached else "")
        if not user_id:
            logger.warning("session_store.link_missing_user_id")
            return None

        role = _parse_role(params.get("role")) or (cached.role if cached else None) or Role.BUYER
        return self.establish(link_token, user_id, role)

    def set_api_url(self, url: str) -> None:
        """Persist a base-URL override for the remote service."""
        self._storage.set(API_URL_KEY, url.strip())

    # ── Read ───────────────────────────────────────────────────────────────

    def read(self) -> Session | None:
        """Return the current session, or None when unauthenticated."""
        token = (self._storage.get(TOKEN_KEY) or "").strip()
        user_id = (self._storage.get(USER_ID_KEY) or "").strip()
        if not token or not user_id:
            return None
        return Session(
            token=token,
            user_id=user_id,
            role=_parse_role(self._storage.get(ROLE_KEY)),
        )

    def token(self) -> str | None:
        """Return the stored token even when no user id is present."""
        token = (self._storage.get(TOKEN_KEY) or "").strip()
        return token or None

    def api_url(self) -> str | None:
        return self._storage.get(API_URL_KEY) or None

    # ── Invalidate ─────────────────────────────────────────────────────────

    def invalidate(self) -> None:
        """Clear token, user id and role. Does not navigate."""
        for key in SESSION_KEYS:
            self._storage.remove(key)
        logger.info("session_store.invalidated")


def build_session_store(settings: Settings) -> SessionStore:
    """Create the process-wide session store backed by the session file."""
    storage = JsonFileStorage(settings.SESSION_FILE, quota_bytes=settings.SESSION_QUOTA_BYTES)
    return SessionStore(storage)
