"""Seller deal view: invitation status summary for one listing."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping

import structlog

from src.dealdesk.core.errors import AuthRequired, RemoteFailure, ValidationFailure
from src.dealdesk.core.guard import Navigator, SessionGuard
from src.dealdesk.core.scope import ViewScope
from src.dealdesk.core.session import Role, SessionStore
from src.dealdesk.deals.aggregator import InvitationAggregator
from src.dealdesk.deals.gateway import DealGateway
from src.dealdesk.deals.schemas import StatusSummary

logger = structlog.get_logger(__name__)

SELLER_DASHBOARD_ROUTE = "/seller/dashboard"


class SellerDealView:
    """Hosts an InvitationAggregator for one seller deal page.

    Args:
        store: Injected SessionStore.
        gateway: DealGateway for the summary and buyer lookups.
        navigator: Receives guard and validation redirects.
    """

    def __init__(self, store: SessionStore, gateway: DealGateway, navigator: Navigator) -> None:
        self._navigator = navigator
        self.guard = SessionGuard(store, navigator, required_role=Role.SELLER)
        self.scope = ViewScope("seller_deal")
        self.aggregator = InvitationAggregator(gateway, scope=self.scope)
        self.error: str | None = None

    @property
    def summary(self) -> StatusSummary | None:
        return self.aggregator.last_summary

    async def open(self, params: Mapping[str, str | None]) -> StatusSummary | None:
        """Show the summary for the deal named by the ``id`` parameter."""
        if self.guard.enforce() is None:
            return None
        try:
            deal_id = self._deal_id(params)
        except ValidationFailure as exc:
            logger.warning("seller_view.invalid_params", error=exc.message)
            self._navigator.navigate(exc.redirect)
            return None
        return await self._aggregate(self.aggregator.build_summary(deal_id))

    async def on_visible(self) -> StatusSummary | None:
        if self.scope.closed:
            return None
        return await self._aggregate(self.aggregator.on_visible())

    def close(self) -> None:
        self.scope.close()

    def dismiss_error(self) -> None:
        self.error = None

    @staticmethod
    def _deal_id(params: Mapping[str, str | None]) -> str:
        deal_id = (params.get("id") or "").strip()
        if not deal_id:
            raise ValidationFailure("No deal ID provided", redirect=SELLER_DASHBOARD_ROUTE)
        return deal_id

    async def _aggregate(self, coro) -> StatusSummary | None:
        try:
            summary = await self.scope.run(coro)
        except AuthRequired as exc:
            self.guard.on_auth_required(exc)
            return None
        except RemoteFailure as exc:
            if not self.scope.closed:
                self.error = exc.message
            return None
        except asyncio.CancelledError:
            if self.scope.closed:
                return None
            raise
        if not self.scope.closed:
            self.error = None
        return summary
