"""
HTTP tests for the wallet API using FastAPI's TestClient.
"""

import pytest
from decimal import Decimal

from fastapi.testclient import TestClient

from wallet.api import create_app
from wallet.config import Settings
from wallet.service import WalletService
from wallet.storage import InMemoryStorage


ADMIN = {"username": "boss", "password": "hunter2"}


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        session_secret="test-secret",
        admin_username=ADMIN["username"],
        admin_password=ADMIN["password"],
        log_format="console",
    )


@pytest.fixture
def app(settings):
    service = WalletService(storage=InMemoryStorage(), settings=settings)
    return create_app(settings=settings, service=service)


@pytest.fixture
def new_client(app):
    """Factory for clients with their own session cookie jar."""
    return lambda: TestClient(app)


def register(client: TestClient, username: str, referral_code=None) -> dict:
    body = {"username": username, "password": "pw"}
    if referral_code:
        body["referralCode"] = referral_code
    response = client.post("/api/register", json=body)
    assert response.status_code == 201, response.text
    return response.json()


def deposit(client: TestClient, amount: str, utr: str = "412345678901"):
    return client.post("/api/balance", json={"amount": amount, "utrNumber": utr})


def admin_client(new_client) -> TestClient:
    client = new_client()
    assert client.post("/api/login", json=ADMIN).status_code == 200
    return client


class TestAuthRoutes:
    """Tests for register, login, logout and session user."""

    def test_health(self, new_client):
        assert new_client().get("/health").json()["status"] == "healthy"

    def test_register_logs_in(self, new_client):
        client = new_client()

        user = register(client, "alice")

        assert user["username"] == "alice"
        assert Decimal(user["walletBalance"]) == Decimal("0")
        assert user["referralRewardClaimed"] is False
        assert "passwordHash" not in user and "password_hash" not in user
        assert client.get("/api/user").json()["id"] == user["id"]

    def test_register_duplicate_username(self, new_client):
        register(new_client(), "alice")

        response = new_client().post("/api/register", json={"username": "alice", "password": "x"})

        assert response.status_code == 400

    def test_register_invalid_referral_code(self, new_client):
        response = new_client().post(
            "/api/register", json={"username": "bob", "password": "pw", "referralCode": "BADCODE"}
        )

        assert response.status_code == 400

    def test_register_malformed(self, new_client):
        response = new_client().post("/api/register", json={"username": "bob"})

        assert response.status_code == 400
        assert response.json() == {"message": "Invalid input data"}

    def test_login_and_logout(self, new_client):
        register(new_client(), "alice")
        client = new_client()

        assert client.post("/api/login", json={"username": "alice", "password": "wrong"}).status_code == 401
        assert client.post("/api/login", json={"username": "alice", "password": "pw"}).status_code == 200
        assert client.get("/api/user").status_code == 200

        assert client.post("/api/logout").status_code == 200
        assert client.get("/api/user").status_code == 401

    @pytest.mark.parametrize("path", [
        "/api/user", "/api/balance", "/api/transactions", "/api/otp-services", "/api/referral-stats",
    ])
    def test_requires_session(self, new_client, path):
        assert new_client().get(path).status_code == 401


class TestWalletRoutes:
    """Tests for balance, deposits, history and catalog."""

    def test_deposit_flow(self, new_client):
        client = new_client()
        register(client, "alice")

        response = deposit(client, "150")

        assert response.status_code == 200
        body = response.json()
        assert body["transaction"]["status"] == "pending"
        assert body["transaction"]["utrNumber"] == "412345678901"
        assert Decimal(body["user"]["walletBalance"]) == Decimal("150")
        assert Decimal(client.get("/api/balance").json()["balance"]) == Decimal("150")

    @pytest.mark.parametrize("payload", [
        {"amount": "abc", "utrNumber": "1"},
        {"amount": "-5", "utrNumber": "1"},
        {"amount": "150"},
        {"amount": "150", "utrNumber": ""},
    ])
    def test_deposit_malformed(self, new_client, payload):
        client = new_client()
        register(client, "alice")

        assert client.post("/api/balance", json=payload).status_code == 400

    def test_deposit_below_minimum(self, new_client):
        client = new_client()
        register(client, "alice")

        assert deposit(client, "50").status_code == 400
        assert client.get("/api/transactions").json() == []

    def test_deposit_requires_session(self, new_client):
        assert deposit(new_client(), "150").status_code == 401

    def test_transactions_newest_first(self, new_client):
        client = new_client()
        register(client, "alice")
        deposit(client, "150", "FIRST")
        deposit(client, "200", "SECOND")

        history = client.get("/api/transactions").json()

        assert [t["utrNumber"] for t in history] == ["SECOND", "FIRST"]
        assert all("createdAt" in t for t in history)

    def test_otp_services(self, new_client):
        client = new_client()
        register(client, "alice")

        services = client.get("/api/otp-services").json()

        assert services[0] == {"id": 1, "name": "Google Photos", "price": "4.53", "icon": "SiGooglephotos"}


class TestReferralRoutes:
    """Tests for referral code validation and stats."""

    def test_validate_referral_unauthenticated(self, new_client):
        alice = register(new_client(), "alice")
        client = new_client()

        assert client.get(f"/api/validate-referral/{alice['referCode']}").json() == {"valid": True}
        assert client.get("/api/validate-referral/NOPE").json() == {"valid": False}

    def test_referral_scenario(self, new_client):
        alice_client = new_client()
        alice = register(alice_client, "alice")
        deposit(alice_client, "150")

        bob_client = new_client()
        bob = register(bob_client, "bob", referral_code=alice["referCode"])
        assert bob["referredBy"] == alice["referCode"]

        body = deposit(bob_client, "150").json()

        assert Decimal(body["user"]["walletBalance"]) == Decimal("180")
        assert Decimal(alice_client.get("/api/balance").json()["balance"]) == Decimal("180")

        bonuses = [t for t in bob_client.get("/api/transactions").json() if t["type"] == "referral_bonus"]
        assert len(bonuses) == 1

        stats = alice_client.get("/api/referral-stats").json()
        assert stats["totalInvites"] == 1
        assert stats["successfulReferrals"] == 1
        assert Decimal(stats["totalEarned"]) == Decimal("30")


class TestAdminRoutes:
    """Tests for admin-only routes."""

    @pytest.mark.parametrize("method,path", [
        ("get", "/api/admin/stats"),
        ("get", "/api/admin/pending-transactions"),
        ("post", "/api/admin/update-transaction/1"),
    ])
    def test_non_admin_rejected(self, new_client, method, path):
        client = new_client()
        register(client, "alice")

        response = client.request(method.upper(), path, json={"status": "approved"})

        assert response.status_code == 401

    def test_pending_and_approve(self, new_client, settings):
        settings.credit_on_submit = False
        user_client = new_client()
        register(user_client, "alice")
        transaction = deposit(user_client, "150").json()["transaction"]
        admin = admin_client(new_client)

        pending = admin.get("/api/admin/pending-transactions").json()
        assert [(p["id"], p["username"]) for p in pending] == [(transaction["id"], "alice")]

        response = admin.post(f"/api/admin/update-transaction/{transaction['id']}", json={"status": "approved"})
        assert response.status_code == 200
        assert response.json() == {"message": "Transaction updated successfully"}

        assert Decimal(user_client.get("/api/balance").json()["balance"]) == Decimal("150")
        assert admin.get("/api/admin/pending-transactions").json() == []

        stats = admin.get("/api/admin/stats").json()
        assert stats["totalUsers"] == 2
        assert Decimal(stats["totalDeposits"]) == Decimal("150")
        assert Decimal(stats["todayDeposits"]) == Decimal("150")

    def test_reject(self, new_client, settings):
        settings.credit_on_submit = False
        user_client = new_client()
        register(user_client, "alice")
        transaction = deposit(user_client, "150").json()["transaction"]
        admin = admin_client(new_client)

        admin.post(f"/api/admin/update-transaction/{transaction['id']}", json={"status": "rejected"})

        assert Decimal(user_client.get("/api/balance").json()["balance"]) == Decimal("0")
        assert user_client.get("/api/transactions").json()[0]["status"] == "rejected"

    def test_update_unknown_transaction(self, new_client):
        admin = admin_client(new_client)

        response = admin.post("/api/admin/update-transaction/999", json={"status": "approved"})

        assert response.status_code == 500

    @pytest.mark.parametrize("status_value", ["pending", "paid"])
    def test_update_invalid_status(self, new_client, status_value):
        admin = admin_client(new_client)

        response = admin.post("/api/admin/update-transaction/1", json={"status": status_value})

        assert response.status_code == 400

    def test_admin_username_cannot_be_registered(self, new_client):
        squatter = new_client()

        response = squatter.post("/api/register", json={"username": ADMIN["username"], "password": "attacker-pw"})

        assert response.status_code == 400
        assert squatter.get("/api/admin/stats").status_code == 401
        assert squatter.post("/api/login", json={"username": ADMIN["username"], "password": "attacker-pw"}).status_code == 401

        admin = admin_client(new_client)
        assert admin.get("/api/user").json()["isAdmin"] is True
        assert admin.get("/api/admin/stats").status_code == 200


class RecordingLogger:
    def __init__(self):
        self.events = []

    def warning(self, event, **kw):
        self.events.append(("warning", event))

    def info(self, event, **kw):
        self.events.append(("info", event))

    def exception(self, event, **kw):
        self.events.append(("exception", event))


class TestStartupChecks:
    """Tests for configuration checks made when the app is built."""

    def test_default_session_secret_warns(self, monkeypatch):
        recorder = RecordingLogger()
        monkeypatch.setattr("wallet.api.logger", recorder)

        create_app(settings=Settings(_env_file=None, log_format="console"))

        assert ("warning", "default_session_secret") in recorder.events

    def test_custom_session_secret_is_quiet(self, monkeypatch, settings):
        recorder = RecordingLogger()
        monkeypatch.setattr("wallet.api.logger", recorder)

        create_app(settings=settings)

        assert ("warning", "default_session_secret") not in recorder.events
