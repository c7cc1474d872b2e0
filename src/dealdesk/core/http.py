"""Bearer-authenticated async HTTP plumbing for the remote deal service.

RemoteClient is the single seam where transport results become the error
taxonomy:
- no stored token            -> AuthRequired("missing_token"), no I/O
- 401                        -> session invalidated, AuthRequired("session_expired")
- other non-2xx              -> RemoteFailure with the body's message
- httpx transport error      -> RemoteFailure(status_code=None)

No retries and no backoff: a failed call is terminal and the user retries
by hand. The timeout is Settings.HTTP_TIMEOUT.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from src.dealdesk.config import Settings, get_settings
from src.dealdesk.core.errors import AuthRequired, RemoteFailure
from src.dealdesk.core.session import SessionStore

logger = structlog.get_logger(__name__)


def _error_message(response: httpx.Response, fallback: str) -> str:
    """Pull ``message`` out of an error body, else use the fallback."""
    try:
        body = response.json()
    except ValueError:
        text = response.text.strip()
        return f"{fallback} - {text}" if text else fallback
    if isinstance(body, dict):
        message = body.get("message")
        if isinstance(message, list):
            message = "; ".join(str(m) for m in message)
        if message:
            return str(message)
    return fallback


class RemoteClient:
    """Async client for the deal service with session-aware auth.

    The base URL is resolved per request so an ``apiUrl`` override written
    to the session store takes effect without rebuilding the client.

    Args:
        store: Injected SessionStore supplying the bearer token.
        settings: Client settings (defaults to get_settings()).
        transport: Optional httpx transport, used by tests.
    """

    def __init__(
        self,
        store: SessionStore,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._store = store
        self._settings = settings or get_settings()
        self._client = httpx.AsyncClient(
            timeout=self._settings.HTTP_TIMEOUT,
            transport=transport,
        )

    @property
    def store(self) -> SessionStore:
        return self._store

    def base_url(self) -> str:
        return self._settings.resolved_api_url(self._store.api_url())

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> RemoteClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def request(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        json: Any = None,
        authenticated: bool = True,
    ) -> Any:
        """Send one request and return the decoded JSON body.

        Args:
            method: HTTP method.
            path: Path relative to the base URL (leading slash).
            operation: Human-readable operation name used in synthesized
                error messages, e.g. "fetch pending deals".
            json: Optional JSON body.
            authenticated: Attach the bearer token (and require one).

        Returns:
            Decoded JSON, or None for an empty / non-JSON success body.

        Raises:
            AuthRequired: No token, or the remote answered 401.
            RemoteFailure: Any other failure.
        """
        headers = {"Content-Type": "application/json"}
        role = None
        if authenticated:
            token = self._store.token()
            if not token:
                logger.warning("remote.missing_token", operation=operation)
                raise AuthRequired(reason="missing_token")
            session = self._store.read()
            role = session.role.value if session and session.role else None
            headers["Authorization"] = f"Bearer {token}"

        url = f"{self.base_url()}{path}"
        try:
            response = await self._client.request(method, url, headers=headers, json=json)
        except httpx.HTTPError as exc:
            logger.error(
                "remote.transport_error",
                operation=operation,
                method=method,
                path=path,
                error=str(exc),
            )
            raise RemoteFailure(f"Failed to {operation}: {exc}") from exc

        if response.status_code == 401 and authenticated:
            logger.warning("remote.unauthorized", operation=operation, path=path)
            self._store.invalidate()
            raise AuthRequired(reason="session_expired", role=role)

        if not response.is_success:
            message = _error_message(
                response,
                fallback=f"Failed to {operation}: {response.status_code}",
            )
            logger.warning(
                "remote.request_failed",
                operation=operation,
                method=method,
                path=path,
                status_code=response.status_code,
            )
            raise RemoteFailure(message, status_code=response.status_code)

        logger.debug(
            "remote.request_completed",
            operation=operation,
            method=method,
            path=path,
            status_code=response.status_code,
        )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return None
