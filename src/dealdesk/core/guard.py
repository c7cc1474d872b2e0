"""Session Lifecycle Guard: gate privileged views on a valid session.

A guard is built per view with the role that view requires. It is
checked before any privileged call; a missing session or a wrong role
ends in a redirect through the injected Navigator instead of a request.
AuthRequired raised mid-view (a 401 after the check passed) is routed
back through on_auth_required.
"""

from __future__ import annotations

import functools
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol, TypeVar

import structlog

from src.dealdesk.core.errors import AuthRequired
from src.dealdesk.core.session import Role, Session, SessionStore

logger = structlog.get_logger(__name__)

T = TypeVar("T")

GENERIC_LOGIN_ROUTE = "/login"
EXPIRED_QUERY = "session=expired"

LOGIN_ROUTES: dict[Role, str] = {
    Role.BUYER: "/buyer/login",
    Role.SELLER: "/seller/login",
    Role.ADMIN: "/admin/login",
}

WRONG_ROLE_ROUTES: dict[Role, str] = {
    Role.BUYER: "/select-role",
    Role.SELLER: "/seller/login",
    Role.ADMIN: "/access-denied",
}


def login_route(role: Role | None) -> str:
    if role is None:
        return f"{GENERIC_LOGIN_ROUTE}?{EXPIRED_QUERY}"
    return LOGIN_ROUTES[role]


def expired_route(role: Role | None) -> str:
    """Login route with the session-expired marker."""
    return f"{LOGIN_ROUTES.get(role, GENERIC_LOGIN_ROUTE)}?{EXPIRED_QUERY}"


class Navigator(Protocol):
    """Whatever hosts the views: a router, a CLI, a test recorder."""

    def navigate(self, route: str) -> None: ...


@dataclass
class RecordingNavigator:
    """Navigator that records routes instead of acting on them."""

    history: list[str] = field(default_factory=list)

    def navigate(self, route: str) -> None:
        self.history.append(route)

    @property
    def current(self) -> str | None:
        return self.history[-1] if self.history else None


@dataclass(frozen=True)
class GuardDecision:
    allowed: bool
    redirect: str | None = None
    session: Session | None = None


class SessionGuard:
    """Checks the session and role before a view does anything privileged.

    Args:
        store: Injected SessionStore.
        navigator: Receives redirect routes.
        required_role: Role the guarded view requires, or None for any.
    """

    def __init__(
        self,
        store: SessionStore,
        navigator: Navigator,
        required_role: Role | None = None,
    ) -> None:
        self._store = store
        self._navigator = navigator
        self.required_role = Role(required_role) if required_role else None

    def check(self) -> GuardDecision:
        session = self._store.read()
        if session is None:
            return GuardDecision(allowed=False, redirect=login_route(self.required_role))
        if self.required_role is not None and session.role != self.required_role:
            return GuardDecision(
                allowed=False,
                redirect=WRONG_ROLE_ROUTES[self.required_role],
                session=session,
            )
        return GuardDecision(allowed=True, session=session)

    def enforce(self) -> Session | None:
        """Redirect and return None if the check fails, else the session."""
        decision = self.check()
        if decision.allowed:
            return decision.session
        logger.info(
            "session_guard.redirect",
            required_role=self.required_role.value if self.required_role else None,
            actual_role=decision.session.role.value if decision.session and decision.session.role else None,
            route=decision.redirect,
        )
        self._navigator.navigate(decision.redirect)
        return None

    def on_auth_required(self, exc: AuthRequired) -> None:
        """Navigate to the expired-session login after a mid-view 401.

        The store was already cleared by RemoteClient; this only navigates.
        """
        role = self.required_role
        if role is None and exc.role:
            try:
                role = Role(exc.role)
            except ValueError:
                role = None
        route = expired_route(role)
        logger.info("session_guard.auth_required", reason=exc.reason, route=route)
        self._navigator.navigate(route)

    def protect(
        self, handler: Callable[..., Awaitable[T]]
    ) -> Callable[..., Awaitable[T | None]]:
        """Decorate an async view handler so it only runs with a valid session."""

        @functools.wraps(handler)
        async def wrapper(*args: Any, **kwargs: Any) -> T | None:
            if self.enforce() is None:
                return None
            try:
                return await handler(*args, **kwargs)
            except AuthRequired as exc:
                self.on_auth_required(exc)
                return None

        return wrapper
