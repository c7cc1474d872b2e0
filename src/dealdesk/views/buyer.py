"""Buyer deals view: the three-tab deal list behind a buyer session guard."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping

import structlog

from src.dealdesk.core.errors import AuthRequired, RemoteFailure
from src.dealdesk.core.guard import Navigator, SessionGuard
from src.dealdesk.core.scope import ViewScope
from src.dealdesk.core.session import Role, SessionStore
from src.dealdesk.deals.gateway import DealGateway
from src.dealdesk.deals.schemas import BuyerProfile
from src.dealdesk.deals.status_client import DealStatusClient

logger = structlog.get_logger(__name__)


class BuyerDealsView:
    """Hosts a DealStatusClient for one buyer page lifetime.

    Args:
        store: Injected SessionStore.
        gateway: DealGateway for deal and profile calls.
        navigator: Receives guard redirects.
    """

    def __init__(self, store: SessionStore, gateway: DealGateway, navigator: Navigator) -> None:
        self._store = store
        self._gateway = gateway
        self.guard = SessionGuard(store, navigator, required_role=Role.BUYER)
        self.scope = ViewScope("buyer_deals")
        self.deals = DealStatusClient(gateway, store, scope=self.scope)
        self.profile: BuyerProfile | None = None

    async def open(self, params: Mapping[str, str | None] | None = None) -> bool:
        """Show the view.

        A ``token`` in the incoming link parameters is stored first, so a
        buyer arriving from an external link lands signed in.

        Returns:
            True if the view loaded; False if it redirected or was closed.
        """
        if params and params.get("token"):
            self._store.establish_from_link(params)
        if self.guard.enforce() is None:
            return False
        return await self._refresh()

    async def on_visible(self) -> bool:
        """Refresh deals and profile when the view becomes visible again."""
        if self.scope.closed:
            return False
        return await self._refresh()

    def close(self) -> None:
        self.scope.close()

    async def _load_profile(self) -> None:
        try:
            profile = await self._gateway.fetch_buyer_profile()
        except RemoteFailure as exc:
            logger.warning("buyer_view.profile_failed", error=exc.message)
            return
        if not self.scope.closed:
            self.profile = profile

    async def _load(self) -> None:
        await asyncio.gather(self.deals.load_all(), self._load_profile())

    async def _refresh(self) -> bool:
        try:
            await self.scope.run(self._load())
        except AuthRequired as exc:
            self.guard.on_auth_required(exc)
            return False
        except asyncio.CancelledError:
            if self.scope.closed:
                return False
            raise
        return not self.scope.closed
