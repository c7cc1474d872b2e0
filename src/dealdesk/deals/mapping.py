"""Conversions between raw deal-service payloads and internal schemas.

Defines:
- deal_from_raw(): raw deal record -> Deal, defaulting missing financials to 0
- business_model_label() / management_preference_label(): flag sets -> display strings
- invitation_from_raw(): one invitationStatus entry -> InvitationRecord
- identity_from_raw(): buyer record -> BuyerIdentity
- buyer_profile_from_raw() / seller_profile_from_raw() / matching_buyer_from_raw()

The service is a black box; every reader here tolerates missing or
malformed sub-fields instead of rejecting the whole record.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from src.dealdesk.deals.schemas import (
    BusinessModel,
    BuyerIdentity,
    BuyerProfile,
    Deal,
    FinancialDetails,
    InvitationRecord,
    InvitationResponse,
    ManagementPreferences,
    MatchingBuyer,
    SellerProfile,
)

NOT_SPECIFIED = "Not specified"


# ── Scalars ─────────────────────────────────────────────────────────────────


def _amount(value: Any) -> Decimal:
    """Signed decimal amount; anything missing or unparseable is zero."""
    if value is None or isinstance(value, bool):
        return Decimal(0)
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal(0)
    if not amount.is_finite():
        return Decimal(0)
    return amount


def _optional_amount(value: Any) -> Decimal | None:
    if value is None:
        return None
    return _amount(value)


def _int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return 0


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _timestamp(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _mapping(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


# ── Deals ───────────────────────────────────────────────────────────────────


def financials_from_raw(raw: Any) -> FinancialDetails:
    data = _mapping(raw)
    return FinancialDetails(
        trailing_revenue=_amount(data.get("trailingRevenueAmount")),
        trailing_revenue_currency=_text(data.get("trailingRevenueCurrency")) or None,
        trailing_ebitda=_amount(data.get("trailingEBITDAAmount")),
        trailing_ebitda_currency=_text(data.get("trailingEBITDACurrency")) or None,
        average_growth=_amount(data.get("avgRevenueGrowth")),
        net_income=_amount(data.get("netIncome")),
        asking_price=_amount(data.get("askingPrice")),
        final_sale_price=_optional_amount(data.get("finalSalePrice")),
    )


def deal_from_raw(raw: dict[str, Any]) -> Deal:
    """Map one raw deal record to a Deal.

    ``_id`` is preferred over ``id``. Missing financial sub-fields become
    zero, missing flag groups become all-False.
    """
    business = _mapping(raw.get("businessModel"))
    management = _mapping(raw.get("managementPreferences"))
    documents = raw.get("documents")
    return Deal(
        id=str(raw.get("_id") or raw.get("id") or ""),
        title=_text(raw.get("title")),
        company_description=_text(raw.get("companyDescription")),
        industry=_text(raw.get("industrySector")),
        geography=_text(raw.get("geographySelection")),
        years_in_business=_int(raw.get("yearsInBusiness")),
        financials=financials_from_raw(raw.get("financialDetails")),
        business_model=BusinessModel(
            recurring_revenue=bool(business.get("recurringRevenue")),
            project_based=bool(business.get("projectBased")),
            asset_light=bool(business.get("assetLight")),
            asset_heavy=bool(business.get("assetHeavy")),
        ),
        management_preferences=ManagementPreferences(
            retiring_divesting=bool(management.get("retiringDivesting")),
            staff_stay=bool(management.get("staffStay")),
        ),
        documents=documents if isinstance(documents, list) else [],
    )


def business_model_label(model: BusinessModel) -> str:
    labels = []
    if model.recurring_revenue:
        labels.append("Recurring Revenue")
    if model.project_based:
        labels.append("Project-Based")
    if model.asset_light:
        labels.append("Asset Light")
    if model.asset_heavy:
        labels.append("Asset Heavy")
    return ", ".join(labels) or NOT_SPECIFIED


def management_preference_label(prefs: ManagementPreferences) -> str:
    labels = []
    if prefs.retiring_divesting:
        labels.append("Retiring/Divesting")
    if prefs.staff_stay:
        labels.append("Staff willing to stay")
    return ", ".join(labels) or NOT_SPECIFIED


# ── Invitations ─────────────────────────────────────────────────────────────


def _response(value: Any) -> InvitationResponse | None:
    if not isinstance(value, str):
        return None
    try:
        return InvitationResponse(value.strip().lower())
    except ValueError:
        return None


def invitation_from_raw(deal_id: str, buyer_id: str, raw: Any) -> InvitationRecord:
    """Parse one invitationStatus entry, normalizing to the iff invariant.

    - Unknown response strings are treated as no response.
    - respondedAt without a response is dropped.
    - A response without respondedAt is stamped with invitedAt (or now).
    """
    data = _mapping(raw)
    invited_at = _timestamp(data.get("invitedAt"))
    response = _response(data.get("response"))
    responded_at = _timestamp(data.get("respondedAt"))

    if response is None:
        responded_at = None
    elif responded_at is None:
        responded_at = invited_at or datetime.now(timezone.utc)

    return InvitationRecord(
        deal_id=deal_id,
        buyer_id=buyer_id,
        invited_at=invited_at,
        responded_at=responded_at,
        response=response,
        notes=_text(data.get("notes")),
    )


# ── Buyers / sellers ────────────────────────────────────────────────────────


def identity_from_raw(buyer_id: str, raw: dict[str, Any]) -> BuyerIdentity:
    """Build a BuyerIdentity, filling gaps field by field."""
    fallback = BuyerIdentity.placeholder_for(buyer_id)
    return BuyerIdentity(
        buyer_id=buyer_id,
        name=_text(raw.get("fullName")) or _text(raw.get("name")) or fallback.name,
        email=_text(raw.get("email")) or fallback.email,
        company=_text(raw.get("companyName")) or _text(raw.get("company")) or fallback.company,
    )


def buyer_profile_from_raw(raw: dict[str, Any]) -> BuyerProfile:
    return BuyerProfile(
        id=str(raw.get("_id") or raw.get("id") or ""),
        full_name=_text(raw.get("fullName")),
        email=_text(raw.get("email")),
        company_name=_text(raw.get("companyName")),
        role=_text(raw.get("role")) or "buyer",
        profile_picture=_text(raw.get("profilePicture")) or None,
    )


def seller_profile_from_raw(raw: dict[str, Any]) -> SellerProfile:
    return SellerProfile(
        id=str(raw.get("_id") or raw.get("id") or ""),
        full_name=_text(raw.get("fullName")),
        email=_text(raw.get("email")),
        company_name=_text(raw.get("companyName")),
        role=_text(raw.get("role")) or "seller",
        profile_picture=_text(raw.get("profilePicture")) or None,
    )


def matching_buyer_from_raw(raw: dict[str, Any]) -> MatchingBuyer:
    score = raw.get("matchScore", raw.get("score"))
    return MatchingBuyer(
        buyer_id=str(raw.get("_id") or raw.get("buyerId") or raw.get("id") or ""),
        full_name=_text(raw.get("fullName")) or _text(raw.get("buyerName")),
        email=_text(raw.get("email")) or _text(raw.get("buyerEmail")),
        company_name=_text(raw.get("companyName")),
        match_score=float(score) if isinstance(score, (int, float)) and not isinstance(score, bool) else None,
    )
