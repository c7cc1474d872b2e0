"""Deal Status Client: the buyer-facing view of deals across three buckets.

The remote service exposes pending, active and rejected deals as three
independent collections. load_all() fetches them concurrently, tags each
deal with the bucket it came from, and commits the merged collection only
after all three have settled. Every refresh rebuilds the collection from
scratch; nothing is patched in place, so a deal never lingers in a stale
bucket.

Transitions are never applied locally. A successful command triggers a
full load_all() so the remote service stays the only authority on status.

A deal reported under two buckets at once shows up twice. That is a
remote inconsistency and is deliberately not deduplicated here.
"""

from __future__ import annotations

import asyncio

import structlog

from src.dealdesk.core.errors import AuthRequired, RemoteFailure
from src.dealdesk.core.scope import ViewScope
from src.dealdesk.core.session import SessionStore
from src.dealdesk.deals.gateway import DealGateway
from src.dealdesk.deals.mapping import business_model_label
from src.dealdesk.deals.schemas import Deal, DealStatus, DealTab, DealView, TransitionAction
from src.dealdesk.deals.transitions import (
    ACTION_DESTINATION,
    InvalidTransitionError,
    validate_transition,
)

logger = structlog.get_logger(__name__)

# Merge order of the unified collection.
BUCKET_ORDER: tuple[DealStatus, ...] = (
    DealStatus.PENDING,
    DealStatus.ACTIVE,
    DealStatus.REJECTED,
)


# ── Pure filtering ──────────────────────────────────────────────────────────


def _search_fields(deal: Deal) -> tuple[str, ...]:
    return (
        deal.title,
        deal.company_description,
        deal.industry,
        deal.geography,
        business_model_label(deal.business_model),
    )


def filter_deals(views: list[DealView], tab: DealTab | str, query: str = "") -> list[DealView]:
    """Restrict views to one tab, then to a case-insensitive text match.

    The query is matched against title, description, industry, geography
    and the business-model label. A blank query keeps the whole tab.
    """
    tab = DealTab(tab)
    in_tab = [view for view in views if view.status == tab.status]
    needle = query.strip().lower()
    if not needle:
        return in_tab
    return [
        view
        for view in in_tab
        if any(needle in field.lower() for field in _search_fields(view.deal))
    ]


# ── Client ──────────────────────────────────────────────────────────────────


class DealStatusClient:
    """Buyer-local deal collection with filtering and transition commands.

    State a UI binds to:
        views: unified collection of DealView (last committed load)
        active_tab: currently selected tab
        search_query: current search text
        error: dismissible banner text, or None
        loading: True while a load is in flight

    Args:
        gateway: DealGateway for remote calls.
        store: Injected SessionStore; the session user id is the perspective.
        scope: Optional ViewScope; once closed, results are not committed.
    """

    def __init__(
        self,
        gateway: DealGateway,
        store: SessionStore,
        scope: ViewScope | None = None,
    ) -> None:
        self._gateway = gateway
        self._store = store
        self._scope = scope
        self.views: list[DealView] = []
        self.active_tab: DealTab = DealTab.PENDING
        self.search_query: str = ""
        self.error: str | None = None
        self.loading: bool = False

    def _detached(self) -> bool:
        return self._scope is not None and self._scope.closed

    # ── Loading ─────────────────────────────────────────────────────────────

    async def load_all(self) -> list[DealView]:
        """Fetch all three buckets concurrently and commit the merged result.

        On RemoteFailure from any bucket the previous collection is kept
        and ``error`` is set; a partial merge is never committed.

        Returns:
            The committed collection.

        Raises:
            AuthRequired: The session is missing or was rejected.
        """
        session = self._store.read()
        perspective = session.user_id if session else ""

        self.loading = True
        try:
            results = await asyncio.gather(
                *(self._gateway.fetch_by_status(status) for status in BUCKET_ORDER),
                return_exceptions=True,
            )
        finally:
            self.loading = False

        for result in results:
            if isinstance(result, AuthRequired):
                raise result
        for result in results:
            if isinstance(result, BaseException) and not isinstance(result, RemoteFailure):
                raise result

        failures = [r for r in results if isinstance(r, RemoteFailure)]
        if failures:
            logger.warning(
                "status_client.load_all_failed",
                failed=len(failures),
                error=failures[0].message,
            )
            if not self._detached():
                self.error = failures[0].message
            return self.views

        merged = [
            DealView(deal=deal, perspective=perspective, status=status)
            for status, deals in zip(BUCKET_ORDER, results)
            for deal in deals
        ]

        if self._detached():
            logger.info("status_client.load_all_discarded", reason="scope_closed")
            return self.views

        self.views = merged
        logger.info(
            "status_client.load_all_committed",
            total=len(merged),
            **{status.value: len(deals) for status, deals in zip(BUCKET_ORDER, results)},
        )
        return self.views

    # ── Filtering ───────────────────────────────────────────────────────────

    def filter(self, tab: DealTab | str, query: str = "") -> list[DealView]:
        return filter_deals(self.views, tab, query)

    def visible(self) -> list[DealView]:
        """Views for the active tab and current search query."""
        return self.filter(self.active_tab, self.search_query)

    def set_tab(self, tab: DealTab | str) -> None:
        self.active_tab = DealTab(tab)

    def set_search(self, query: str) -> None:
        self.search_query = query

    def counts(self) -> dict[DealTab, int]:
        return {tab: sum(1 for view in self.views if view.status == tab.status) for tab in DealTab}

    def dismiss_error(self) -> None:
        self.error = None

    # ── Transitions ─────────────────────────────────────────────────────────

    def _check_local(self, deal_id: str, action: TransitionAction) -> str | None:
        """Return an error message if the action must not be sent at all.

        Only set-pending is refused. For activate and reject the remote
        service is the authority; an edge missing from the local rules is
        logged and the command is still sent.
        """
        if action == TransitionAction.SET_PENDING:
            return "Moving a deal back to pending is not available"
        statuses = {view.status for view in self.views if view.deal_id == deal_id}
        errors = []
        for status in statuses:
            try:
                validate_transition(status, action)
                return None
            except InvalidTransitionError as exc:
                errors.append(str(exc))
        if errors:
            logger.info(
                "status_client.transition_outside_local_rules",
                deal_id=deal_id,
                action=action.value,
                detail=errors[0],
            )
        return None

    async def transition(self, deal_id: str, action: TransitionAction | str) -> bool:
        """Send a transition command, then resynchronize from the remote.

        On success the collection is reloaded in full and the active tab
        follows the deal (activate -> active, reject -> passed). On failure
        the collection is left untouched and ``error`` carries the reason.

        Returns:
            True if the remote accepted the command.

        Raises:
            AuthRequired: The session is missing or was rejected.
        """
        action = TransitionAction(action)
        local_error = self._check_local(deal_id, action)
        if local_error:
            logger.warning("status_client.transition_refused", deal_id=deal_id, action=action.value)
            self.error = local_error
            return False

        try:
            await self._gateway.request_transition(deal_id, action)
        except RemoteFailure as exc:
            logger.warning(
                "status_client.transition_failed",
                deal_id=deal_id,
                action=action.value,
                status_code=exc.status_code,
            )
            if not self._detached():
                self.error = f"Failed to update deal status: {exc.message}"
            return False

        if not self._detached():
            self.error = None
        await self.load_all()
        if not self._detached():
            self.active_tab = DealTab.for_status(ACTION_DESTINATION[action])
        logger.info("status_client.transition_completed", deal_id=deal_id, action=action.value)
        return True

    async def approve_terms(self, deal_id: str) -> bool:
        """Buyer approves access terms: the deal becomes active."""
        return await self.transition(deal_id, TransitionAction.ACTIVATE)

    async def pass_deal(self, deal_id: str) -> bool:
        """Buyer passes on a deal: it moves to the passed tab."""
        return await self.transition(deal_id, TransitionAction.REJECT)
