"""Pydantic schemas for deals, buyer-relative status and invitation summaries.

Defines all structured types for the buyer/seller deal lifecycle:
- Enums: DealStatus, DealTab, TransitionAction, InvitationResponse, ListingStatus
- Deal shape: FinancialDetails, BusinessModel, ManagementPreferences, Deal
- Buyer perspective: DealView (deal + perspective + status)
- Invitations: InvitationRecord, BuyerIdentity, BuyerSummaryEntry
- Seller aggregate: SummaryCounts, StatusSummary, RawStatusSummary
- Profiles: BuyerProfile, SellerProfile, MatchingBuyer

A Deal deliberately has no status field. Status is relative to a buyer and
lives on DealView.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ── Enums ───────────────────────────────────────────────────────────────────


class DealStatus(str, Enum):
    """Bucket a deal falls into relative to one buyer."""

    PENDING = "pending"
    ACTIVE = "active"
    REJECTED = "rejected"


class DealTab(str, Enum):
    """Buyer-facing tab; ``passed`` is the label for the rejected bucket."""

    PENDING = "pending"
    ACTIVE = "active"
    PASSED = "passed"

    @property
    def status(self) -> DealStatus:
        return _TAB_TO_STATUS[self]

    @classmethod
    def for_status(cls, status: DealStatus) -> DealTab:
        return _STATUS_TO_TAB[status]


_TAB_TO_STATUS: dict[DealTab, DealStatus] = {
    DealTab.PENDING: DealStatus.PENDING,
    DealTab.ACTIVE: DealStatus.ACTIVE,
    DealTab.PASSED: DealStatus.REJECTED,
}
_STATUS_TO_TAB: dict[DealStatus, DealTab] = {v: k for k, v in _TAB_TO_STATUS.items()}


class TransitionAction(str, Enum):
    """Buyer command sent to the remote service."""

    ACTIVATE = "activate"
    REJECT = "reject"
    SET_PENDING = "set-pending"


class InvitationResponse(str, Enum):
    """A buyer's recorded response to an invitation."""

    ACCEPTED = "accepted"
    INTERESTED = "interested"
    PENDING = "pending"
    REJECTED = "rejected"
    DECLINED = "declined"


class ListingStatus(str, Enum):
    """Seller-side listing state set via PATCH /deals/{id}."""

    COMPLETED = "completed"
    OFF_MARKET = "off-market"
    ACTIVE = "active"


# ── Deal ────────────────────────────────────────────────────────────────────


class FinancialDetails(BaseModel):
    """Financial attributes; every amount defaults to zero when absent."""

    trailing_revenue: Decimal = Decimal(0)
    trailing_revenue_currency: str | None = None
    trailing_ebitda: Decimal = Decimal(0)
    trailing_ebitda_currency: str | None = None
    average_growth: Decimal = Decimal(0)
    net_income: Decimal = Decimal(0)
    asking_price: Decimal = Decimal(0)
    final_sale_price: Decimal | None = None


class BusinessModel(BaseModel):
    recurring_revenue: bool = False
    project_based: bool = False
    asset_light: bool = False
    asset_heavy: bool = False


class ManagementPreferences(BaseModel):
    retiring_divesting: bool = False
    staff_stay: bool = False


class Deal(BaseModel):
    """A sellable business opportunity as published by a seller."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str = ""
    company_description: str = ""
    industry: str = ""
    geography: str = ""
    years_in_business: int = 0
    financials: FinancialDetails = Field(default_factory=FinancialDetails)
    business_model: BusinessModel = Field(default_factory=BusinessModel)
    management_preferences: ManagementPreferences = Field(default_factory=ManagementPreferences)
    documents: list[Any] = Field(default_factory=list)

    # Convenience accessors mirroring the flattened buyer-facing shape.

    @property
    def trailing_revenue(self) -> Decimal:
        return self.financials.trailing_revenue

    @property
    def asking_price(self) -> Decimal:
        return self.financials.asking_price


class DealView(BaseModel):
    """A deal as seen by one buyer: the status is the buyer's, not the deal's."""

    model_config = ConfigDict(frozen=True)

    deal: Deal
    perspective: str
    status: DealStatus

    @property
    def deal_id(self) -> str:
        return self.deal.id

    @property
    def tab(self) -> DealTab:
        return DealTab.for_status(self.status)


# ── Invitations ─────────────────────────────────────────────────────────────


class InvitationRecord(BaseModel):
    """One (deal, buyer) invitation. responded_at is set iff response is set."""

    deal_id: str
    buyer_id: str
    invited_at: datetime | None = None
    responded_at: datetime | None = None
    response: InvitationResponse | None = None
    notes: str = ""

    @model_validator(mode="after")
    def _responded_iff_response(self) -> InvitationRecord:
        if (self.responded_at is None) != (self.response is None):
            raise ValueError("responded_at must be set if and only if response is set")
        return self


class BuyerIdentity(BaseModel):
    """Name, email and company of a buyer, or a placeholder for one."""

    buyer_id: str
    name: str
    email: str = "Email not available"
    company: str = "Company not available"
    placeholder: bool = False

    @classmethod
    def placeholder_for(cls, buyer_id: str) -> BuyerIdentity:
        """Fallback identity derived from the last four characters of the id."""
        return cls(
            buyer_id=buyer_id,
            name=f"Buyer {buyer_id[-4:]}",
            placeholder=True,
        )


class BuyerSummaryEntry(BaseModel):
    """A buyer identity joined with its invitation record."""

    identity: BuyerIdentity
    invitation: InvitationRecord
    bucket: DealStatus

    @property
    def buyer_id(self) -> str:
        return self.identity.buyer_id


class SummaryCounts(BaseModel):
    total_targeted: int = 0
    total_active: int = 0
    total_pending: int = 0
    total_rejected: int = 0


class StatusSummary(BaseModel):
    """Seller-facing aggregate of every buyer targeted for one deal."""

    deal_id: str
    deal: dict[str, Any] = Field(default_factory=dict)
    active: list[BuyerSummaryEntry] = Field(default_factory=list)
    pending: list[BuyerSummaryEntry] = Field(default_factory=list)
    rejected: list[BuyerSummaryEntry] = Field(default_factory=list)
    summary: SummaryCounts = Field(default_factory=SummaryCounts)

    @model_validator(mode="after")
    def _counts_match_buckets(self) -> StatusSummary:
        s = self.summary
        if (
            s.total_active != len(self.active)
            or s.total_pending != len(self.pending)
            or s.total_rejected != len(self.rejected)
            or s.total_targeted != len(self.active) + len(self.pending) + len(self.rejected)
        ):
            raise ValueError("summary counts must be derived from bucket sizes")
        return self

    def bucket(self, status: DealStatus) -> list[BuyerSummaryEntry]:
        return {
            DealStatus.ACTIVE: self.active,
            DealStatus.PENDING: self.pending,
            DealStatus.REJECTED: self.rejected,
        }[status]


class RawStatusSummary(BaseModel):
    """Unprocessed status-summary payload: deal shell plus invitation map."""

    deal_id: str
    deal: dict[str, Any] = Field(default_factory=dict)
    invitations: dict[str, dict[str, Any]] = Field(default_factory=dict)


# ── Profiles ────────────────────────────────────────────────────────────────


class BuyerProfile(BaseModel):
    id: str
    full_name: str = ""
    email: str = ""
    company_name: str = ""
    role: str = "buyer"
    profile_picture: str | None = None


class SellerProfile(BaseModel):
    id: str
    full_name: str = ""
    email: str = ""
    company_name: str = ""
    role: str = "seller"
    profile_picture: str | None = None


class MatchingBuyer(BaseModel):
    """A buyer the remote matching service proposes for a deal."""

    buyer_id: str
    full_name: str = ""
    email: str = ""
    company_name: str = ""
    match_score: float | None = None
