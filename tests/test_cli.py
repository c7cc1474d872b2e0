"""Tests for the dealdesk command-line client.

RemoteClient is swapped for one bound to FakeDealService; the session is
persisted to the temp SESSION_FILE from the settings fixture.
"""

from __future__ import annotations

import httpx
import pytest
import structlog

from src.dealdesk import cli
from src.dealdesk.config import get_settings
from src.dealdesk.core.http import RemoteClient
from src.dealdesk.core.logging import token_preview
from src.dealdesk.core.session import Role, build_session_store


@pytest.fixture
def run_cli(settings, service, monkeypatch):
    def client_factory(store, client_settings):
        return RemoteClient(store, client_settings, transport=httpx.MockTransport(service.handle))

    monkeypatch.setattr(cli, "RemoteClient", client_factory)

    async def _run(*argv: str) -> int:
        args = cli.build_parser().parse_args(list(argv))
        return await cli.run(args, settings)

    return _run


@pytest.fixture
def signed_in_buyer(settings):
    build_session_store(settings).establish("buyer-token", "buyer-1", Role.BUYER)


def _serve_buckets(service, pending=(), active=(), rejected=()) -> None:
    for status, ids in (("pending", pending), ("active", active), ("rejected", rejected)):
        service.add("GET", f"/buyers/deals/{status}", body=[{"_id": d, "title": f"Deal {d}"} for d in ids])
    service.add("GET", "/buyers/profile", body={"_id": "buyer-1"})


class TestParser:
    def test_requires_command(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([])

    def test_deals_defaults(self):
        args = cli.build_parser().parse_args(["deals"])
        assert args.tab == "pending"
        assert args.query == ""


class TestSessionCommands:
    """login / link / logout persist to the session file."""

    @pytest.mark.asyncio
    async def test_login_persists_session(self, run_cli, service, settings, capsys):
        service.add("POST", "/auth/login", body={"access_token": "tok", "user": {"id": "b1"}})

        code = await run_cli("login", "--email", "jane@example.com", "--password", "secret")

        assert code == cli.EXIT_OK
        assert build_session_store(settings).read().user_id == "b1"
        assert "Signed in as buyer b1" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_login_failure_exit_code(self, run_cli, service, capsys):
        service.add("POST", "/auth/seller/login", status=401, body={"message": "Invalid credentials"})

        code = await run_cli("login", "--role", "seller", "--email", "s@example.com", "--password", "x")

        assert code == cli.EXIT_REMOTE_FAILURE
        assert "Invalid credentials" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_link_then_logout(self, run_cli, settings):
        assert await run_cli("link", "--token", "tok", "--user-id", "b9") == cli.EXIT_OK
        assert build_session_store(settings).read().user_id == "b9"

        assert await run_cli("logout") == cli.EXIT_OK
        assert build_session_store(settings).read() is None

    @pytest.mark.asyncio
    async def test_link_without_user_id_fails(self, run_cli):
        assert await run_cli("link", "--token", "tok") == cli.EXIT_AUTH_REQUIRED


class TestDealCommands:
    """deals / activate / reject."""

    @pytest.mark.asyncio
    async def test_deals_without_session(self, run_cli, service, capsys):
        code = await run_cli("deals")

        assert code == cli.EXIT_AUTH_REQUIRED
        assert "/buyer/login" in capsys.readouterr().err
        assert service.calls == []

    @pytest.mark.asyncio
    async def test_deals_lists_tab(self, run_cli, service, signed_in_buyer, capsys):
        _serve_buckets(service, pending=["p1"], active=["a1", "a2"])

        code = await run_cli("deals", "--tab", "active")

        out = capsys.readouterr().out
        assert code == cli.EXIT_OK
        assert "pending: 1  active: 2  passed: 0" in out
        assert "Deal a1" in out
        assert "Deal p1" not in out

    @pytest.mark.asyncio
    async def test_deals_remote_failure(self, run_cli, service, signed_in_buyer, capsys):
        _serve_buckets(service)
        service.add("GET", "/buyers/deals/pending", status=500)

        assert await run_cli("deals") == cli.EXIT_REMOTE_FAILURE
        assert "Failed to fetch pending deals: 500" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_activate(self, run_cli, service, signed_in_buyer, capsys):
        _serve_buckets(service, pending=["d1"])
        service.add("POST", "/buyers/deals/d1/activate", body={"ok": True})

        assert await run_cli("activate", "d1") == cli.EXIT_OK
        assert ("POST", "/buyers/deals/d1/activate") in service.paths()

    @pytest.mark.asyncio
    async def test_activate_passed_deal(self, run_cli, service, signed_in_buyer, capsys):
        _serve_buckets(service, rejected=["d1"])
        service.add("POST", "/buyers/deals/d1/activate", body={"ok": True})

        assert await run_cli("activate", "d1") == cli.EXIT_OK
        assert ("POST", "/buyers/deals/d1/activate") in service.paths()

    @pytest.mark.asyncio
    async def test_activate_rejected_by_remote(self, run_cli, service, signed_in_buyer, capsys):
        _serve_buckets(service, active=["d1"])
        service.add("POST", "/buyers/deals/d1/activate", status=409, body={"message": "Already active"})

        assert await run_cli("activate", "d1") == cli.EXIT_REMOTE_FAILURE
        assert "Failed to update deal status: Already active" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_expired_session(self, run_cli, service, signed_in_buyer, settings, capsys):
        _serve_buckets(service)
        service.add("GET", "/buyers/deals/active", status=401)

        assert await run_cli("deals") == cli.EXIT_AUTH_REQUIRED
        assert "/buyer/login?session=expired" in capsys.readouterr().err
        assert build_session_store(settings).read() is None


class TestSummaryCommand:
    @pytest.mark.asyncio
    async def test_summary(self, run_cli, service, settings, capsys):
        build_session_store(settings).establish("seller-token", "seller-1", Role.SELLER)
        service.add(
            "GET",
            "/deals/d1/status-summary",
            body={"deal": {"invitationStatus": {"buyer0001": {"response": "accepted"}, "buyer0002": {}}}},
        )
        service.add("GET", "/buyers/buyer0001", body={"fullName": "Alice", "email": "alice@example.com"})

        code = await run_cli("summary", "d1")

        captured = capsys.readouterr()
        assert code == cli.EXIT_OK
        assert "targeted: 2  active: 1  pending: 1  rejected: 0" in captured.out
        assert "Buyer 0002" in captured.out
        assert "buyer0002" in captured.err


class TestListingCommands:
    """show / listings / matches / target / listing-status."""

    @pytest.fixture
    def signed_in_seller(self, settings):
        build_session_store(settings).establish("seller-token", "seller-1", Role.SELLER)

    @pytest.mark.asyncio
    async def test_show_deal(self, run_cli, service, signed_in_buyer, capsys):
        service.add(
            "GET",
            "/deals/d1",
            body={"_id": "d1", "title": "Acme", "yearsInBusiness": 12, "managementPreferences": {"staffStay": True}},
        )

        assert await run_cli("show", "d1") == cli.EXIT_OK

        out = capsys.readouterr().out
        assert "Acme" in out
        assert "years in business: 12" in out
        assert "management: Staff willing to stay" in out

    @pytest.mark.asyncio
    async def test_listings(self, run_cli, service, signed_in_seller, capsys):
        service.add("GET", "/sellers/profile", body={"_id": "seller-1", "fullName": "Sam Seller"})
        service.add("GET", "/deals/my-deals", body=[{"_id": "d1", "title": "Acme"}, {"_id": "d2", "title": "Blue"}])

        assert await run_cli("listings") == cli.EXIT_OK

        out = capsys.readouterr().out
        assert "Sam Seller: 2 listing(s)" in out
        assert "d2  Blue" in out

    @pytest.mark.asyncio
    async def test_matches(self, run_cli, service, signed_in_seller, capsys):
        service.add("GET", "/deals/d1/matching-buyers", body=[{"_id": "b1", "fullName": "Jane", "matchScore": 87}])

        assert await run_cli("matches", "d1") == cli.EXIT_OK
        assert "b1  Jane" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_target(self, run_cli, service, signed_in_seller):
        service.add("POST", "/deals/d1/target-buyers", body={"_id": "d1"})

        assert await run_cli("target", "d1", "b1", "b2") == cli.EXIT_OK
        assert service.body_of(0) == {"buyerIds": ["b1", "b2"]}

    @pytest.mark.asyncio
    async def test_listing_status(self, run_cli, service, signed_in_seller):
        service.add("PATCH", "/deals/d1", body={"_id": "d1", "status": "completed"})

        assert await run_cli("listing-status", "d1", "completed", "--final-price", "2500000") == cli.EXIT_OK
        assert service.body_of(0) == {"status": "completed", "financialDetails": {"finalSalePrice": 2500000.0}}

    @pytest.mark.asyncio
    async def test_seller_commands_require_seller_role(self, run_cli, service, signed_in_buyer, capsys):
        assert await run_cli("listings") == cli.EXIT_AUTH_REQUIRED
        assert "/select-role" in capsys.readouterr().err
        assert service.calls == []

    @pytest.mark.asyncio
    async def test_401_on_listing_command(self, run_cli, service, signed_in_seller, settings, capsys):
        service.add("GET", "/deals/d1/matching-buyers", status=401)

        assert await run_cli("matches", "d1") == cli.EXIT_AUTH_REQUIRED
        assert "/seller/login?session=expired" in capsys.readouterr().err
        assert build_session_store(settings).read() is None

    @pytest.mark.asyncio
    async def test_listing_remote_failure(self, run_cli, service, signed_in_seller, capsys):
        service.add("GET", "/deals/d1", status=404, body={"message": "Deal not found"})

        assert await run_cli("show", "d1") == cli.EXIT_REMOTE_FAILURE
        assert "Deal not found" in capsys.readouterr().err


class TestMain:
    """Entry point wiring: settings from the environment, logging configured."""

    @pytest.fixture(autouse=True)
    def _isolate(self, monkeypatch, tmp_path):
        monkeypatch.setenv("DEALDESK_SESSION_FILE", str(tmp_path / "main-session.json"))
        monkeypatch.setenv("DEALDESK_ENVIRONMENT", "production")
        get_settings.cache_clear()
        yield
        get_settings.cache_clear()
        structlog.reset_defaults()

    def test_link_writes_session_file(self, tmp_path):
        assert cli.main(["link", "--token", "tok", "--user-id", "b1"]) == cli.EXIT_OK
        assert (tmp_path / "main-session.json").exists()

    def test_token_preview(self):
        assert token_preview("abcdefghijklmnop") == "abcdefghij..."
        assert token_preview(None) == "None"
