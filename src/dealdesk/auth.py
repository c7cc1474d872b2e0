"""Sign-in, incoming-link callback and sign-out against the deal service.

Every path that creates credentials ends in SessionStore.establish, and
the only path that removes them without a 401 is sign_out().
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import structlog

from src.dealdesk.core.errors import AuthRequired, RemoteFailure
from src.dealdesk.core.http import RemoteClient
from src.dealdesk.core.session import Role, Session

logger = structlog.get_logger(__name__)

NO_CODE_MESSAGE = "No authorization code received"


def _credentials_from_response(data: Any) -> tuple[str, str]:
    payload = data if isinstance(data, dict) else {}
    token = payload.get("access_token") or payload.get("token") or ""
    user = payload.get("user") if isinstance(payload.get("user"), dict) else {}
    user_id = user.get("id") or user.get("_id") or payload.get("userId") or ""
    return str(token), str(user_id)


class AuthGateway:
    """Login and callback flows that populate the injected session store.

    Args:
        remote: RemoteClient; login requests are sent unauthenticated.
    """

    def __init__(self, remote: RemoteClient) -> None:
        self._remote = remote
        self._store = remote.store

    async def _login(self, path: str, body: dict[str, Any], role: Role) -> Session:
        data = await self._remote.request(
            "POST",
            path,
            operation="log in",
            json=body,
            authenticated=False,
        )
        token, user_id = _credentials_from_response(data)
        if not token or not user_id:
            logger.warning("auth.login_incomplete", role=role.value, has_token=bool(token))
            raise RemoteFailure("Login response did not include an access token and user id")

        session = self._store.establish(token, user_id, role)
        if session is None:
            raise RemoteFailure("Could not persist the session")
        logger.info("auth.logged_in", role=role.value, user_id=user_id)
        return session

    async def login_buyer(self, email: str, password: str) -> Session:
        """POST /auth/login and store a buyer session."""
        return await self._login(
            "/auth/login",
            {"email": email, "password": password},
            Role.BUYER,
        )

    async def login_seller(self, email: str, password: str) -> Session:
        """POST /auth/seller/login and store a seller session."""
        return await self._login(
            "/auth/seller/login",
            {"email": email, "password": password, "userType": "seller"},
            Role.SELLER,
        )

    def handle_callback(self, params: Mapping[str, str | None]) -> Session:
        """Complete a redirect sign-in that carries ``token`` and ``userId``.

        Raises:
            AuthRequired: The redirect carried an error or no credentials.
        """
        token = (params.get("token") or "").strip()
        user_id = (params.get("userId") or "").strip()
        if token and user_id:
            session = self._store.establish_from_link(params)
            if session is not None:
                return session

        reason = params.get("error") or NO_CODE_MESSAGE
        logger.warning("auth.callback_failed", reason=reason)
        raise AuthRequired(reason=reason)

    def sign_out(self) -> None:
        self._store.invalidate()
        logger.info("auth.signed_out")
