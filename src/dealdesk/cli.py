"""Command-line client for the deal service.

Usage:
    dealdesk login --role buyer --email jane@example.com --password secret
    dealdesk link --token TOKEN --user-id USER_ID
    dealdesk deals --tab active --query saas
    dealdesk activate DEAL_ID
    dealdesk reject DEAL_ID
    dealdesk summary DEAL_ID
    dealdesk show DEAL_ID
    dealdesk listings
    dealdesk matches DEAL_ID
    dealdesk target DEAL_ID BUYER_ID [BUYER_ID ...]
    dealdesk listing-status DEAL_ID completed --final-price 2500000
    dealdesk logout

The session is cached in DEALDESK_SESSION_FILE between invocations.
Exit codes: 0 success, 1 remote failure, 2 authentication required.
"""

from __future__ import annotations

import argparse
import asyncio
import sys

import structlog

from src.dealdesk.auth import AuthGateway
from src.dealdesk.config import Settings, get_settings
from src.dealdesk.core.errors import AuthRequired, RemoteFailure
from src.dealdesk.core.guard import RecordingNavigator, SessionGuard
from src.dealdesk.core.http import RemoteClient
from src.dealdesk.core.logging import configure_structlog
from src.dealdesk.core.session import Role, SessionStore, build_session_store
from src.dealdesk.deals.gateway import DealGateway
from src.dealdesk.deals.mapping import business_model_label, management_preference_label
from src.dealdesk.deals.schemas import Deal, DealTab, ListingStatus, StatusSummary
from src.dealdesk.views import BuyerDealsView, SellerDealView

logger = structlog.get_logger(__name__)

EXIT_OK = 0
EXIT_REMOTE_FAILURE = 1
EXIT_AUTH_REQUIRED = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dealdesk", description="Deal marketplace client")
    sub = parser.add_subparsers(dest="command", required=True)

    login = sub.add_parser("login", help="Sign in with email and password")
    login.add_argument("--role", choices=[Role.BUYER.value, Role.SELLER.value], default=Role.BUYER.value)
    login.add_argument("--email", required=True)
    login.add_argument("--password", required=True)

    link = sub.add_parser("link", help="Store a session from an incoming link")
    link.add_argument("--token", required=True)
    link.add_argument("--user-id", default=None)
    link.add_argument("--role", choices=[r.value for r in Role], default=None)

    sub.add_parser("logout", help="Clear the stored session")

    deals = sub.add_parser("deals", help="List deals for one tab")
    deals.add_argument("--tab", choices=[t.value for t in DealTab], default=DealTab.PENDING.value)
    deals.add_argument("--query", default="")

    for name, help_text in (("activate", "Approve terms for a deal"), ("reject", "Pass on a deal")):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("deal_id")

    summary = sub.add_parser("summary", help="Seller: invitation status for a deal")
    summary.add_argument("deal_id")

    show = sub.add_parser("show", help="Show one deal's details")
    show.add_argument("deal_id")

    sub.add_parser("listings", help="Seller: list your deals")

    matches = sub.add_parser("matches", help="Seller: buyers matching a deal")
    matches.add_argument("deal_id")

    target = sub.add_parser("target", help="Seller: invite buyers to a deal")
    target.add_argument("deal_id")
    target.add_argument("buyer_ids", nargs="+")

    listing_status = sub.add_parser("listing-status", help="Seller: change a listing's status")
    listing_status.add_argument("deal_id")
    listing_status.add_argument("status", choices=[s.value for s in ListingStatus])
    listing_status.add_argument("--final-price", type=float, default=None)

    return parser


# ── Output ──────────────────────────────────────────────────────────────────


def _print_deals(view: BuyerDealsView) -> None:
    counts = view.deals.counts()
    print("  ".join(f"{tab.value}: {counts[tab]}" for tab in DealTab))
    for item in view.deals.visible():
        deal = item.deal
        print(
            f"{deal.id}  {deal.title or '(untitled)'}  [{deal.industry or '-'} / {deal.geography or '-'}]  "
            f"revenue={deal.trailing_revenue}  asking={deal.asking_price}  "
            f"model={business_model_label(deal.business_model)}"
        )


def _print_deal_line(deal: Deal) -> None:
    print(
        f"{deal.id}  {deal.title or '(untitled)'}  [{deal.industry or '-'} / {deal.geography or '-'}]  "
        f"revenue={deal.trailing_revenue}  asking={deal.asking_price}"
    )


def _print_deal_detail(deal: Deal) -> None:
    _print_deal_line(deal)
    if deal.company_description:
        print(deal.company_description)
    print(f"years in business: {deal.years_in_business}")
    print(f"business model: {business_model_label(deal.business_model)}")
    print(f"management: {management_preference_label(deal.management_preferences)}")


def _print_summary(summary: StatusSummary, degraded: list[str]) -> None:
    counts = summary.summary
    print(
        f"targeted: {counts.total_targeted}  active: {counts.total_active}  "
        f"pending: {counts.total_pending}  rejected: {counts.total_rejected}"
    )
    for label, entries in (("active", summary.active), ("pending", summary.pending), ("rejected", summary.rejected)):
        for entry in entries:
            identity = entry.identity
            response = entry.invitation.response.value if entry.invitation.response else "-"
            print(f"{label:<9}{identity.name}  <{identity.email}>  {identity.company}  response={response}")
    if degraded:
        print(f"buyer details unavailable for: {', '.join(degraded)}", file=sys.stderr)


def _redirected(navigator: RecordingNavigator) -> int:
    print(f"Sign-in required: {navigator.current}", file=sys.stderr)
    return EXIT_AUTH_REQUIRED


# ── Commands ────────────────────────────────────────────────────────────────


async def _cmd_login(args: argparse.Namespace, remote: RemoteClient) -> int:
    auth = AuthGateway(remote)
    if args.role == Role.SELLER.value:
        session = await auth.login_seller(args.email, args.password)
    else:
        session = await auth.login_buyer(args.email, args.password)
    print(f"Signed in as {session.role.value} {session.user_id}")
    return EXIT_OK


def _cmd_link(args: argparse.Namespace, store: SessionStore) -> int:
    session = store.establish_from_link({"token": args.token, "userId": args.user_id, "role": args.role})
    if session is None:
        print("Could not store a session from the link", file=sys.stderr)
        return EXIT_AUTH_REQUIRED
    print(f"Signed in as {session.role.value if session.role else 'unknown'} {session.user_id}")
    return EXIT_OK


async def _cmd_deals(args: argparse.Namespace, store: SessionStore, gateway: DealGateway) -> int:
    navigator = RecordingNavigator()
    view = BuyerDealsView(store, gateway, navigator)
    try:
        if not await view.open():
            return _redirected(navigator)

        if args.command in ("activate", "reject"):
            if args.command == "activate":
                ok = await view.deals.approve_terms(args.deal_id)
            else:
                ok = await view.deals.pass_deal(args.deal_id)
            if navigator.current:
                return _redirected(navigator)
            if not ok:
                print(f"Error: {view.deals.error}", file=sys.stderr)
                return EXIT_REMOTE_FAILURE
        else:
            view.deals.set_tab(args.tab)
            view.deals.set_search(args.query)

        if view.deals.error:
            print(f"Error: {view.deals.error}", file=sys.stderr)
            return EXIT_REMOTE_FAILURE
        _print_deals(view)
        return EXIT_OK
    finally:
        view.close()


async def _cmd_summary(args: argparse.Namespace, store: SessionStore, gateway: DealGateway) -> int:
    navigator = RecordingNavigator()
    view = SellerDealView(store, gateway, navigator)
    try:
        summary = await view.open({"id": args.deal_id})
        if summary is None:
            if navigator.current:
                return _redirected(navigator)
            print(f"Error: {view.error}", file=sys.stderr)
            return EXIT_REMOTE_FAILURE
        _print_summary(summary, view.aggregator.degraded)
        return EXIT_OK
    finally:
        view.close()


SELLER_COMMANDS = ("listings", "matches", "target", "listing-status")


async def _cmd_listing(args: argparse.Namespace, store: SessionStore, gateway: DealGateway) -> int:
    """show (any role) and the seller listing commands, behind a SessionGuard."""
    navigator = RecordingNavigator()
    role = Role.SELLER if args.command in SELLER_COMMANDS else None
    guard = SessionGuard(store, navigator, required_role=role)

    @guard.protect
    async def handle() -> int:
        if args.command == "show":
            _print_deal_detail(await gateway.fetch_by_id(args.deal_id))
        elif args.command == "listings":
            profile = await gateway.fetch_seller_profile()
            deals = await gateway.fetch_my_deals()
            print(f"{profile.full_name or profile.id}: {len(deals)} listing(s)")
            for deal in deals:
                _print_deal_line(deal)
        elif args.command == "matches":
            for match in await gateway.fetch_matching_buyers(args.deal_id):
                score = "-" if match.match_score is None else f"{match.match_score:g}"
                print(f"{match.buyer_id}  {match.full_name or '-'}  <{match.email or '-'}>  score={score}")
        elif args.command == "target":
            await gateway.target_buyers(args.deal_id, args.buyer_ids)
            print(f"Targeted {len(args.buyer_ids)} buyer(s) for {args.deal_id}")
        else:
            await gateway.update_listing_status(args.deal_id, ListingStatus(args.status), args.final_price)
            print(f"{args.deal_id} is now {args.status}")
        return EXIT_OK

    result = await handle()
    if result is None:
        return _redirected(navigator)
    return result


async def run(args: argparse.Namespace, settings: Settings) -> int:
    store = build_session_store(settings)

    if args.command == "link":
        return _cmd_link(args, store)

    async with RemoteClient(store, settings) as remote:
        gateway = DealGateway(remote)
        try:
            if args.command == "login":
                return await _cmd_login(args, remote)
            if args.command == "logout":
                AuthGateway(remote).sign_out()
                print("Signed out")
                return EXIT_OK
            if args.command == "summary":
                return await _cmd_summary(args, store, gateway)
            if args.command == "show" or args.command in SELLER_COMMANDS:
                return await _cmd_listing(args, store, gateway)
            return await _cmd_deals(args, store, gateway)
        except AuthRequired as exc:
            print(f"Authentication required ({exc.reason})", file=sys.stderr)
            return EXIT_AUTH_REQUIRED
        except RemoteFailure as exc:
            logger.debug("cli.remote_failure", command=args.command, status_code=exc.status_code)
            print(f"Error: {exc.message}", file=sys.stderr)
            return EXIT_REMOTE_FAILURE


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_structlog(settings)
    return asyncio.run(run(args, settings))


if __name__ == "__main__":
    sys.exit(main())
