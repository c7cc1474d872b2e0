"""Deal Remote Gateway: the operation set over the external deal service.

Every method goes through RemoteClient, which owns auth and error mapping
(see src.dealdesk.core.http). The gateway never caches: callers re-fetch
after a write.

Buyer-facing:
    fetch_by_status, fetch_by_id, request_transition, fetch_buyer_profile
Seller-facing:
    fetch_status_summary_raw, fetch_buyer_detail, fetch_seller_profile,
    fetch_my_deals, fetch_matching_buyers, target_buyers, update_listing_status
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

import structlog

from src.dealdesk.core.errors import RemoteFailure
from src.dealdesk.core.http import RemoteClient
from src.dealdesk.deals.mapping import (
    buyer_profile_from_raw,
    deal_from_raw,
    identity_from_raw,
    matching_buyer_from_raw,
    seller_profile_from_raw,
)
from src.dealdesk.deals.schemas import (
    BuyerIdentity,
    BuyerProfile,
    Deal,
    DealStatus,
    ListingStatus,
    MatchingBuyer,
    RawStatusSummary,
    SellerProfile,
    TransitionAction,
)

logger = structlog.get_logger(__name__)

TRANSITION_NOTES: dict[TransitionAction, str] = {
    TransitionAction.ACTIVATE: "Buyer interested in deal",
    TransitionAction.REJECT: "Deal passed by buyer",
    TransitionAction.SET_PENDING: "Deal set back to pending",
}


def _records(data: Any, operation: str) -> list[dict[str, Any]]:
    if not isinstance(data, list):
        logger.warning("deal_gateway.unexpected_payload", operation=operation, kind=type(data).__name__)
        return []
    return [item for item in data if isinstance(item, dict)]


class DealGateway:
    """Thin async operation set over the deal service.

    Args:
        remote: RemoteClient carrying the injected session store.
    """

    def __init__(self, remote: RemoteClient) -> None:
        self._remote = remote

    @property
    def remote(self) -> RemoteClient:
        return self._remote

    # ── Buyer deal buckets ──────────────────────────────────────────────────

    async def fetch_by_status(self, status: DealStatus) -> list[Deal]:
        """GET /buyers/deals/{status} mapped to Deal records.

        Args:
            status: Bucket to fetch (pending, active or rejected).

        Returns:
            Deals in that bucket for the current buyer, in server order.
        """
        status = DealStatus(status)
        operation = f"fetch {status.value} deals"
        data = await self._remote.request("GET", f"/buyers/deals/{status.value}", operation=operation)
        deals = [deal_from_raw(raw) for raw in _records(data, operation)]
        logger.info("deal_gateway.fetch_by_status", status=status.value, count=len(deals))
        return deals

    async def fetch_by_id(self, deal_id: str) -> Deal:
        data = await self._remote.request("GET", f"/deals/{deal_id}", operation="load deal details")
        if not isinstance(data, dict):
            raise RemoteFailure(f"Deal {deal_id} returned an empty payload")
        return deal_from_raw(data)

    async def request_transition(
        self,
        deal_id: str,
        action: TransitionAction,
        notes: str | None = None,
    ) -> bool:
        """POST /buyers/deals/{id}/{action}.

        Each action is a single idempotent remote write. The gateway does
        not update any local state; the caller re-fetches.

        Returns:
            True once the remote accepted the write.

        Raises:
            AuthRequired: On a missing token or 401.
            RemoteFailure: On any other failure.
        """
        action = TransitionAction(action)
        body = {"notes": notes if notes is not None else TRANSITION_NOTES[action]}
        await self._remote.request(
            "POST",
            f"/buyers/deals/{deal_id}/{action.value}",
            operation="update deal status",
            json=body,
        )
        logger.info("deal_gateway.transition_accepted", deal_id=deal_id, action=action.value)
        return True

    async def fetch_buyer_profile(self) -> BuyerProfile:
        data = await self._remote.request("GET", "/buyers/profile", operation="fetch buyer profile")
        return buyer_profile_from_raw(data if isinstance(data, dict) else {})

    # ── Seller: invitations ─────────────────────────────────────────────────

    async def fetch_status_summary_raw(self, deal_id: str) -> RawStatusSummary:
        """GET /deals/{id}/status-summary, unprocessed.

        The invitation map is read from ``deal.invitationStatus``, falling
        back to a top-level ``invitationStatus``. Missing means empty.
        """
        data = await self._remote.request(
            "GET",
            f"/deals/{deal_id}/status-summary",
            operation="fetch status summary",
        )
        payload = data if isinstance(data, dict) else {}
        deal = payload.get("deal") if isinstance(payload.get("deal"), dict) else {}
        invitations = deal.get("invitationStatus")
        if not isinstance(invitations, dict):
            invitations = payload.get("invitationStatus")
        if not isinstance(invitations, dict):
            invitations = {}
        return RawStatusSummary(
            deal_id=deal_id,
            deal=deal,
            invitations={str(k): v if isinstance(v, dict) else {} for k, v in invitations.items()},
        )

    async def fetch_buyer_detail(self, buyer_id: str) -> BuyerIdentity | None:
        """GET /buyers/{id}; None on failure so one bad lookup stays isolated.

        AuthRequired still propagates: a 401 has already cleared the session.
        """
        try:
            data = await self._remote.request("GET", f"/buyers/{buyer_id}", operation=f"fetch buyer {buyer_id}")
        except RemoteFailure as exc:
            logger.warning(
                "deal_gateway.buyer_lookup_failed",
                buyer_id=buyer_id,
                status_code=exc.status_code,
                error=exc.message,
            )
            return None
        if not isinstance(data, dict):
            return None
        return identity_from_raw(buyer_id, data)

    # ── Seller: listings ────────────────────────────────────────────────────

    async def fetch_seller_profile(self) -> SellerProfile:
        data = await self._remote.request("GET", "/sellers/profile", operation="fetch seller profile")
        return seller_profile_from_raw(data if isinstance(data, dict) else {})

    async def fetch_my_deals(self) -> list[Deal]:
        operation = "fetch seller deals"
        data = await self._remote.request("GET", "/deals/my-deals", operation=operation)
        return [deal_from_raw(raw) for raw in _records(data, operation)]

    async def fetch_matching_buyers(self, deal_id: str) -> list[MatchingBuyer]:
        """Ask the remote matching service which buyers fit a deal."""
        operation = "fetch matching buyers"
        data = await self._remote.request("GET", f"/deals/{deal_id}/matching-buyers", operation=operation)
        return [matching_buyer_from_raw(raw) for raw in _records(data, operation)]

    async def target_buyers(self, deal_id: str, buyer_ids: list[str]) -> dict[str, Any]:
        """Invite buyers to a deal; the service creates the invitation records."""
        data = await self._remote.request(
            "POST",
            f"/deals/{deal_id}/target-buyers",
            operation="target deal to buyers",
            json={"buyerIds": list(buyer_ids)},
        )
        logger.info("deal_gateway.buyers_targeted", deal_id=deal_id, count=len(buyer_ids))
        return data if isinstance(data, dict) else {}

    async def update_listing_status(
        self,
        deal_id: str,
        status: ListingStatus,
        final_sale_price: Decimal | float | None = None,
    ) -> dict[str, Any]:
        """PATCH /deals/{id} with the seller-side listing status."""
        status = ListingStatus(status)
        body: dict[str, Any] = {"status": status.value}
        if status == ListingStatus.COMPLETED and final_sale_price:
            body["financialDetails"] = {"finalSalePrice": float(final_sale_price)}
        data = await self._remote.request(
            "PATCH",
            f"/deals/{deal_id}",
            operation="update deal status",
            json=body,
        )
        logger.info("deal_gateway.listing_status_updated", deal_id=deal_id, status=status.value)
        return data if isinstance(data, dict) else {}
