"""Invitation Aggregator: seller-facing summary of every targeted buyer.

For one deal, reads the invitation map from the status-summary endpoint,
resolves every buyer identity concurrently, classifies each invitation
into active / pending / rejected and derives the counts from the bucket
sizes. A failed identity lookup degrades that one entry to a placeholder;
it never drops the entry and never fails the summary.

Counts are always computed here, never trusted from the remote service.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import structlog

from src.dealdesk.core.errors import AuthRequired, PartialLookupFailure
from src.dealdesk.core.scope import ViewScope
from src.dealdesk.deals.gateway import DealGateway
from src.dealdesk.deals.mapping import invitation_from_raw
from src.dealdesk.deals.schemas import (
    BuyerIdentity,
    BuyerSummaryEntry,
    DealStatus,
    InvitationRecord,
    InvitationResponse,
    StatusSummary,
    SummaryCounts,
)

logger = structlog.get_logger(__name__)

_ACTIVE_RESPONSES = frozenset({InvitationResponse.ACCEPTED, InvitationResponse.INTERESTED})
_REJECTED_RESPONSES = frozenset({InvitationResponse.REJECTED, InvitationResponse.DECLINED})


def classify_response(response: InvitationResponse | None) -> DealStatus:
    """accepted/interested -> active, rejected/declined -> rejected, else pending."""
    if response in _ACTIVE_RESPONSES:
        return DealStatus.ACTIVE
    if response in _REJECTED_RESPONSES:
        return DealStatus.REJECTED
    return DealStatus.PENDING


def fold_summary(
    deal_id: str,
    deal: dict,
    pairs: list[tuple[BuyerIdentity, InvitationRecord]],
) -> StatusSummary:
    """Bucket identity/invitation pairs and derive the counts.

    Pure: the input order is preserved inside each bucket.
    """
    buckets: dict[DealStatus, list[BuyerSummaryEntry]] = {status: [] for status in DealStatus}
    for identity, invitation in pairs:
        bucket = classify_response(invitation.response)
        buckets[bucket].append(
            BuyerSummaryEntry(identity=identity, invitation=invitation, bucket=bucket)
        )

    active = buckets[DealStatus.ACTIVE]
    pending = buckets[DealStatus.PENDING]
    rejected = buckets[DealStatus.REJECTED]
    return StatusSummary(
        deal_id=deal_id,
        deal=deal,
        active=active,
        pending=pending,
        rejected=rejected,
        summary=SummaryCounts(
            total_targeted=len(active) + len(pending) + len(rejected),
            total_active=len(active),
            total_pending=len(pending),
            total_rejected=len(rejected),
        ),
    )


class InvitationAggregator:
    """Builds and holds the latest StatusSummary for one seller view.

    Args:
        gateway: DealGateway for the summary and buyer lookups.
        scope: Optional ViewScope; once closed, results are not committed.
    """

    def __init__(self, gateway: DealGateway, scope: ViewScope | None = None) -> None:
        self._gateway = gateway
        self._scope = scope
        self.deal_id: str | None = None
        self.last_summary: StatusSummary | None = None
        self.degraded: list[str] = []
        self.last_built_at: datetime | None = None

    async def _resolve(self, buyer_id: str) -> tuple[BuyerIdentity, PartialLookupFailure | None]:
        identity = await self._gateway.fetch_buyer_detail(buyer_id)
        if identity is not None:
            return identity, None
        return BuyerIdentity.placeholder_for(buyer_id), PartialLookupFailure(buyer_id)

    async def build_summary(self, deal_id: str) -> StatusSummary:
        """Aggregate the invitation status of every targeted buyer.

        Raises:
            AuthRequired: The session is missing or was rejected.
            RemoteFailure: The status-summary request itself failed.
        """
        raw = await self._gateway.fetch_status_summary_raw(deal_id)
        invitations = [
            invitation_from_raw(deal_id, buyer_id, entry)
            for buyer_id, entry in raw.invitations.items()
        ]

        results = await asyncio.gather(
            *(self._resolve(inv.buyer_id) for inv in invitations),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, AuthRequired):
                raise result
        for result in results:
            if isinstance(result, BaseException):
                raise result
        resolved = results

        failures = [failure for _, failure in resolved if failure is not None]
        for failure in failures:
            logger.warning(
                "aggregator.buyer_lookup_failed",
                deal_id=deal_id,
                buyer_id=failure.buyer_id,
                error=str(failure),
            )

        summary = fold_summary(
            deal_id,
            raw.deal,
            [(identity, invitation) for (identity, _), invitation in zip(resolved, invitations)],
        )

        if self._scope is not None and self._scope.closed:
            logger.info("aggregator.summary_discarded", deal_id=deal_id, reason="scope_closed")
            return summary

        self.deal_id = deal_id
        self.last_summary = summary
        self.degraded = [failure.buyer_id for failure in failures]
        self.last_built_at = datetime.now(timezone.utc)
        logger.info(
            "aggregator.summary_built",
            deal_id=deal_id,
            total=summary.summary.total_targeted,
            active=summary.summary.total_active,
            pending=summary.summary.total_pending,
            rejected=summary.summary.total_rejected,
            degraded=len(failures),
        )
        return summary

    async def on_visible(self) -> StatusSummary | None:
        """Re-aggregate the current deal when its view becomes visible again."""
        if self.deal_id is None:
            return None
        return await self.build_summary(self.deal_id)
