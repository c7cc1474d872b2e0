"""Tests for InvitationAggregator and the pure summary fold."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from src.dealdesk.core.errors import AuthRequired, RemoteFailure
from src.dealdesk.core.scope import ViewScope
from src.dealdesk.deals.aggregator import InvitationAggregator, classify_response, fold_summary
from src.dealdesk.deals.schemas import (
    BuyerIdentity,
    DealStatus,
    InvitationRecord,
    InvitationResponse,
    RawStatusSummary,
)


def _summary_route(service, invitations: dict, deal_id: str = "d1") -> None:
    service.add(
        "GET",
        f"/deals/{deal_id}/status-summary",
        body={"deal": {"_id": deal_id, "title": "Acme", "invitationStatus": invitations}},
    )


def _buyer_route(service, buyer_id: str, name: str) -> None:
    service.add(
        "GET",
        f"/buyers/{buyer_id}",
        body={"fullName": name, "email": f"{name.lower()}@example.com", "companyName": f"{name} Capital"},
    )


class TestClassifyResponse:
    """Response to bucket mapping."""

    @pytest.mark.parametrize(
        ("response", "bucket"),
        [
            (InvitationResponse.ACCEPTED, DealStatus.ACTIVE),
            (InvitationResponse.INTERESTED, DealStatus.ACTIVE),
            (InvitationResponse.REJECTED, DealStatus.REJECTED),
            (InvitationResponse.DECLINED, DealStatus.REJECTED),
            (InvitationResponse.PENDING, DealStatus.PENDING),
            (None, DealStatus.PENDING),
        ],
    )
    def test_classify(self, response, bucket):
        assert classify_response(response) == bucket


class TestFoldSummary:
    """fold_summary derives counts from bucket sizes."""

    def test_empty(self):
        summary = fold_summary("d1", {}, [])

        assert summary.active == summary.pending == summary.rejected == []
        assert summary.summary.total_targeted == 0
        assert summary.summary.total_active == 0
        assert summary.summary.total_pending == 0
        assert summary.summary.total_rejected == 0

    def test_counts_and_order(self):
        pairs = []
        for buyer_id, response in [
            ("b1", InvitationResponse.INTERESTED),
            ("b2", None),
            ("b3", InvitationResponse.ACCEPTED),
        ]:
            record = InvitationRecord(
                deal_id="d1",
                buyer_id=buyer_id,
                response=response,
                responded_at=None if response is None else "2024-01-01T00:00:00Z",
            )
            pairs.append((BuyerIdentity.placeholder_for(buyer_id), record))

        summary = fold_summary("d1", {"title": "Acme"}, pairs)

        assert [e.buyer_id for e in summary.active] == ["b1", "b3"]
        assert [e.buyer_id for e in summary.pending] == ["b2"]
        assert summary.summary.total_targeted == 3
        assert summary.summary.total_active == 2
        assert summary.bucket(DealStatus.PENDING)[0].bucket == DealStatus.PENDING


class TestBuildSummary:
    """End-to-end aggregation against the fake service."""

    @pytest.mark.asyncio
    async def test_mixed_responses_with_failed_lookup(self, seller_store, gateway, service):
        _summary_route(
            service,
            {
                "buyer0001": {"invitedAt": "2024-03-01T00:00:00Z", "respondedAt": "2024-03-02T00:00:00Z", "response": "accepted"},
                "buyer0002": {"invitedAt": "2024-03-01T00:00:00Z"},
                "buyer0003": {"invitedAt": "2024-03-01T00:00:00Z", "respondedAt": "2024-03-03T00:00:00Z", "response": "declined"},
            },
        )
        _buyer_route(service, "buyer0001", "Alice")
        service.add("GET", "/buyers/buyer0002", status=500)
        _buyer_route(service, "buyer0003", "Carol")
        aggregator = InvitationAggregator(gateway)

        summary = await aggregator.build_summary("d1")

        assert [e.identity.name for e in summary.active] == ["Alice"]
        (pending,) = summary.pending
        assert pending.identity.name == "Buyer 0002"
        assert pending.identity.email == "Email not available"
        assert pending.identity.company == "Company not available"
        assert pending.identity.placeholder is True
        assert [e.identity.name for e in summary.rejected] == ["Carol"]
        assert summary.summary.total_targeted == 3
        assert summary.summary.total_active == 1
        assert summary.summary.total_pending == 1
        assert summary.summary.total_rejected == 1
        assert aggregator.degraded == ["buyer0002"]
        assert aggregator.last_summary is summary
        assert summary.deal["title"] == "Acme"

    @pytest.mark.asyncio
    async def test_empty_invitation_map(self, seller_store, gateway, service):
        _summary_route(service, {})

        summary = await InvitationAggregator(gateway).build_summary("d1")

        assert summary.summary.total_targeted == 0
        assert [p for p in service.paths() if p[1].startswith("/buyers/")] == []

    @pytest.mark.asyncio
    async def test_every_buyer_is_present_even_when_all_lookups_fail(self, seller_store, gateway, service):
        _summary_route(service, {"aaaa1111": {}, "bbbb2222": {"response": "interested"}})
        aggregator = InvitationAggregator(gateway)

        summary = await aggregator.build_summary("d1")

        assert summary.summary.total_targeted == 2
        assert {e.buyer_id for e in summary.pending + summary.active} == {"aaaa1111", "bbbb2222"}
        assert sorted(aggregator.degraded) == ["aaaa1111", "bbbb2222"]

    @pytest.mark.asyncio
    async def test_summary_request_failure_raises(self, seller_store, gateway, service):
        service.add("GET", "/deals/d1/status-summary", status=500)

        with pytest.raises(RemoteFailure):
            await InvitationAggregator(gateway).build_summary("d1")

    @pytest.mark.asyncio
    async def test_401_on_lookup_propagates(self, seller_store, gateway, service):
        _summary_route(service, {"buyer0001": {}})
        service.add("GET", "/buyers/buyer0001", status=401)

        with pytest.raises(AuthRequired):
            await InvitationAggregator(gateway).build_summary("d1")
        assert seller_store.read() is None

    @pytest.mark.asyncio
    async def test_401_waits_for_sibling_lookups(self):
        gateway = AsyncMock()
        gateway.fetch_status_summary_raw.return_value = RawStatusSummary(
            deal_id="d1", invitations={"b0001": {}, "b0002": {}}
        )
        finished = []

        async def lookup(buyer_id):
            if buyer_id == "b0001":
                raise AuthRequired("session_expired")
            await asyncio.sleep(0.01)
            finished.append(buyer_id)
            return BuyerIdentity(buyer_id=buyer_id, name=buyer_id)

        gateway.fetch_buyer_detail.side_effect = lookup

        with pytest.raises(AuthRequired):
            await InvitationAggregator(gateway).build_summary("d1")

        assert finished == ["b0002"]

    @pytest.mark.asyncio
    async def test_lookups_run_concurrently(self):
        gateway = AsyncMock()
        gateway.fetch_status_summary_raw.return_value = RawStatusSummary(
            deal_id="d1", invitations={"b0001": {}, "b0002": {}, "b0003": {}}
        )
        in_flight = 0
        peak = 0

        async def lookup(buyer_id):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0)
            in_flight -= 1
            return BuyerIdentity(buyer_id=buyer_id, name=buyer_id)

        gateway.fetch_buyer_detail.side_effect = lookup

        await InvitationAggregator(gateway).build_summary("d1")

        assert peak == 3

    @pytest.mark.asyncio
    async def test_on_visible_reaggregates_current_deal(self, seller_store, gateway, service):
        aggregator = InvitationAggregator(gateway)
        assert await aggregator.on_visible() is None

        _summary_route(service, {})
        await aggregator.build_summary("d1")
        _summary_route(service, {"buyer0009": {"response": "accepted"}})
        _buyer_route(service, "buyer0009", "Ivy")

        summary = await aggregator.on_visible()

        assert summary.summary.total_active == 1
        assert aggregator.last_summary is summary

    @pytest.mark.asyncio
    async def test_closed_scope_does_not_commit(self, seller_store, gateway, service):
        _summary_route(service, {})
        scope = ViewScope("test")
        aggregator = InvitationAggregator(gateway, scope=scope)
        scope.close()

        await aggregator.build_summary("d1")

        assert aggregator.last_summary is None

    @pytest.mark.asyncio
    async def test_short_buyer_ids(self, seller_store, gateway, service):
        _summary_route(service, {"b1": {"response": "accepted"}, "b2": {}, "b3": {"response": "declined"}})
        _buyer_route(service, "b1", "Alice")
        service.add("GET", "/buyers/b2", status=502)
        _buyer_route(service, "b3", "Carol")

        summary = await InvitationAggregator(gateway).build_summary("d1")

        assert [e.buyer_id for e in summary.active] == ["b1"]
        assert [e.identity.name for e in summary.pending] == ["Buyer b2"]
        assert [e.buyer_id for e in summary.rejected] == ["b3"]
        assert summary.summary.total_targeted == 3
