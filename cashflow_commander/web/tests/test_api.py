"""Tests for the CashFlow Commander HTTP API."""
import pytest
import tempfile
from pathlib import Path
from fastapi.testclient import TestClient


ALICE = {"X-User-Id": "user_alice"}
BOB = {"X-User-Id": "user_bob"}
FOUNDER = {"X-User-Id": "user_founder"}


class TestCashflowAPI:
    """Tests for the API endpoints."""

    @pytest.fixture
    def temp_service(self):
        """Create a temporary service for testing."""
        from cashflow_commander.api.cashflow_service import CashflowService

        with tempfile.TemporaryDirectory() as tmpdir:
            db_path = Path(tmpdir) / "test.db"

            with CashflowService(db_path=db_path) as service:
                service.set_user_role("user_founder", "founder")
                yield service

    @pytest.fixture
    def client(self, temp_service):
        """Create test client with temp service."""
        from cashflow_commander.web.api import app, get_service

        # Override the dependency
        app.dependency_overrides[get_service] = lambda: temp_service
        yield TestClient(app)
        app.dependency_overrides.clear()

    @pytest.fixture
    def account_id(self, client) -> int:
        response = client.post(
            "/api/accounts",
            json={"name": "Checking", "account_type": "checking", "balance": 1000},
            headers=ALICE
        )
        return response.json()["id"]

    # === Identity ===

    def test_me_anonymous(self, client):
        response = client.get("/api/me")
        assert response.status_code == 200
        assert response.json() is None

    def test_me(self, client):
        response = client.get("/api/me", headers=ALICE)
        assert response.status_code == 200
        data = response.json()
        assert data["user_id"] == "user_alice"
        assert data["role"] == "user"
        assert data["profile"] is None

    # === Accounts ===

    def test_accounts_anonymous_list_is_empty(self, client, account_id):
        response = client.get("/api/accounts")
        assert response.status_code == 200
        assert response.json() == []

    def test_create_account_requires_identity(self, client):
        response = client.post("/api/accounts", json={"name": "Checking"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Not authenticated"

    def test_create_account_invalid_type(self, client):
        response = client.post(
            "/api/accounts", json={"name": "Loan", "account_type": "mortgage"}, headers=ALICE
        )
        assert response.status_code == 400

    def test_create_and_list_accounts(self, client, account_id):
        response = client.get("/api/accounts", headers=ALICE)
        assert response.status_code == 200
        accounts = response.json()
        assert len(accounts) == 1
        assert accounts[0]["id"] == account_id
        assert accounts[0]["balance"] == 1000

        assert client.get("/api/accounts", headers=BOB).json() == []

    def test_update_account(self, client, account_id):
        response = client.put(f"/api/accounts/{account_id}", json={"name": "Main"}, headers=ALICE)
        assert response.status_code == 200
        assert response.json()["name"] == "Main"

    def test_update_foreign_account(self, client, account_id):
        foreign = client.put(f"/api/accounts/{account_id}", json={"name": "X"}, headers=BOB)
        missing = client.put("/api/accounts/9999", json={"name": "X"}, headers=BOB)

        assert foreign.status_code == missing.status_code == 404
        assert foreign.json() == missing.json() == {"detail": "Account not found"}

    # === Transactions ===

    def test_transaction_updates_balance(self, client, account_id):
        response = client.post(
            "/api/transactions",
            json={
                "account_id": account_id,
                "type": "expense",
                "amount": 125.5,
                "category": "Food",
                "description": "Groceries",
            },
            headers=ALICE
        )
        assert response.status_code == 200

        total = client.get("/api/accounts/total-balance", headers=ALICE).json()
        assert total["total_balance"] == 874.5

        txns = client.get("/api/transactions", headers=ALICE).json()
        assert len(txns) == 1
        assert txns[0]["account"]["name"] == "Checking"

    @pytest.mark.parametrize("literal", ["Infinity", "NaN", "-Infinity"])
    def test_non_finite_amount_rejected(self, client, account_id, literal):
        """Non-finite JSON numbers are a 400 and leave the read paths working."""
        body = (
            f'{{"account_id": {account_id}, "type": "expense", '
            f'"amount": {literal}, "category": "Food"}}'
        )
        response = client.post(
            "/api/transactions",
            content=body,
            headers={**ALICE, "Content-Type": "application/json"}
        )
        assert response.status_code == 400

        accounts = client.get("/api/accounts", headers=ALICE)
        assert accounts.status_code == 200
        assert accounts.json()[0]["balance"] == 1000
        assert client.get("/api/summary", headers=ALICE).status_code == 200

    def test_transaction_missing_fields(self, client, account_id):
        response = client.post(
            "/api/transactions", json={"account_id": account_id, "type": "expense"}, headers=ALICE
        )
        assert response.status_code == 422

    def test_monthly_stats_and_breakdown(self, client, account_id):
        for amount in (50, 30):
            client.post(
                "/api/transactions",
                json={"account_id": account_id, "type": "expense", "amount": amount, "category": "Food"},
                headers=ALICE
            )

        stats = client.get("/api/transactions/monthly-stats", headers=ALICE).json()
        assert stats["expenses"] == 80
        assert stats["income"] == 0

        breakdown = client.get(
            "/api/transactions/category-breakdown",
            params={"type": "expense", "days": 30},
            headers=ALICE
        ).json()
        assert breakdown == [{"category": "Food", "amount": 80}]

    def test_monthly_stats_bad_month(self, client):
        response = client.get(
            "/api/transactions/monthly-stats", params={"month": 13}, headers=ALICE
        )
        assert response.status_code == 400

    # === Budgets ===

    def test_budget_progress(self, client, account_id):
        response = client.post(
            "/api/budgets", json={"category": "Food", "amount": 100, "period": "monthly"}, headers=ALICE
        )
        assert response.status_code == 200
        budget_id = response.json()["id"]

        client.post(
            "/api/transactions",
            json={"account_id": account_id, "type": "expense", "amount": 40, "category": "Food"},
            headers=ALICE
        )

        (budget,) = client.get("/api/budgets", headers=ALICE).json()
        assert budget["spent"] == 40
        assert budget["remaining"] == 60
        assert budget["percentage"] == 40

        response = client.put(f"/api/budgets/{budget_id}", json={"is_active": False}, headers=ALICE)
        assert response.status_code == 200
        assert client.get("/api/budgets", headers=ALICE).json() == []

    # === Categories ===

    def test_default_categories(self, client):
        first = client.post("/api/categories/defaults", headers=ALICE)
        second = client.post("/api/categories/defaults", headers=ALICE)

        assert first.json() == {"created": 13}
        assert second.json() == {"created": 0}

        income = client.get("/api/categories", params={"type": "income"}, headers=ALICE).json()
        assert len(income) == 5

    def test_create_category(self, client):
        response = client.post(
            "/api/categories",
            json={"name": "Pets", "icon": "🐶", "type": "expense"},
            headers=ALICE
        )
        assert response.status_code == 200
        assert [c["name"] for c in client.get("/api/categories", headers=ALICE).json()] == ["Pets"]

    # === Insights ===

    def test_insights_lifecycle(self, client, account_id):
        client.post(
            "/api/transactions",
            json={"account_id": account_id, "type": "expense", "amount": 60, "category": "Food"},
            headers=ALICE
        )

        generated = client.post("/api/insights/generate", headers=ALICE).json()
        assert generated["generated"] > 0

        insights = client.get("/api/insights", headers=ALICE).json()
        assert len(insights) == generated["generated"]

        read = client.post(f"/api/insights/{insights[0]['id']}/read", headers=ALICE)
        assert read.status_code == 200
        assert read.json()["is_read"] is True

        foreign = client.post(f"/api/insights/{insights[0]['id']}/read", headers=BOB)
        assert foreign.status_code == 404

        cleared = client.delete("/api/insights", headers=ALICE).json()
        assert cleared == {"removed": len(insights)}

    # === Profiles ===

    def test_profile_upsert(self, client):
        response = client.put(
            "/api/profile",
            json={"username": "alice", "bio": "Hi", "profile_picture_url": "https://example.com/a.png"},
            headers=ALICE
        )
        assert response.status_code == 200
        assert response.json()["username"] == "alice"

        public = client.get("/api/profiles/user_alice").json()
        assert public["bio"] == "Hi"

        removed = client.delete("/api/profile/picture", headers=ALICE).json()
        assert removed["profile_picture_url"] is None

    def test_profile_validation(self, client):
        response = client.put("/api/profile", json={"username": "a"}, headers=ALICE)
        assert response.status_code == 400
        assert response.json()["detail"] == "Username must be at least 2 characters"

    def test_profile_anonymous(self, client):
        assert client.get("/api/profile").json() is None
        assert client.put("/api/profile", json={"username": "ghost"}).status_code == 401

    # === Badges ===

    def test_is_founder(self, client):
        assert client.get("/api/badges/is-founder", headers=FOUNDER).json() == {"is_founder": True}
        assert client.get("/api/badges/is-founder", headers=ALICE).json() == {"is_founder": False}
        assert client.get("/api/badges/is-founder").json() == {"is_founder": False}

    def test_badge_administration(self, client):
        badge = {"name": "VIP", "display_name": "VIP", "icon": "⭐"}

        assert client.post("/api/badges", json=badge, headers=ALICE).status_code == 403

        created = client.post("/api/badges", json=badge, headers=FOUNDER)
        assert created.status_code == 200
        badge_id = created.json()["id"]
        assert client.post("/api/badges", json=badge, headers=FOUNDER).status_code == 409

        assignment = {"user_id": "user_alice", "badge_id": badge_id}
        assert client.post("/api/badges/assign", json=assignment, headers=ALICE).status_code == 403
        assert client.post("/api/badges/assign", json=assignment, headers=FOUNDER).status_code == 200
        assert client.post("/api/badges/assign", json=assignment, headers=FOUNDER).status_code == 409

        mine = client.get("/api/badges/mine", headers=ALICE).json()
        assert [b["name"] for b in mine] == ["VIP"]
        assert client.get("/api/users/user_alice/badges").json() == mine

        assert client.post("/api/badges/revoke", json=assignment, headers=FOUNDER).status_code == 200
        assert client.post("/api/badges/revoke", json=assignment, headers=FOUNDER).status_code == 404
        assert client.get("/api/badges/mine", headers=ALICE).json() == []

    def test_founder_badge(self, client):
        response = client.post("/api/badges/founder", headers=FOUNDER)
        assert response.status_code == 200
        assert response.json()["assigned"] is True

        profile = client.get("/api/profile/badges", headers=FOUNDER).json()
        assert [b["name"] for b in profile["badges"]] == ["FOUNDER"]
        assert [b["name"] for b in client.get("/api/badges").json()] == ["FOUNDER"]

    def test_admin_users(self, client):
        client.put("/api/profile", json={"username": "alice"}, headers=ALICE)

        users = client.get("/api/admin/users", headers=FOUNDER).json()
        assert [u["username"] for u in users] == ["alice"]

        assert client.get("/api/admin/users", headers=ALICE).json() == []
