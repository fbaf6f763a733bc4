"""Tests for badges and founder authorization."""
import pytest

from cashflow_commander.api.errors import (
    NotAuthenticatedError,
    NotFoundError,
    ForbiddenError,
    ConflictError,
    InvalidFieldError,
)


class TestRoles:
    def test_new_user_gets_user_role(self, service, alice):
        assert alice.role == "user"
        assert service.is_founder(alice) is False
        assert service.is_founder(None) is False

    def test_founder_role(self, service, founder):
        assert founder.role == "founder"
        assert service.is_founder(founder) is True

    def test_founder_allow_list(self, temp_db_path, fixed_now, monkeypatch):
        """Users in the founder list are registered as founders."""
        from cashflow_commander.api import cashflow_service
        from cashflow_commander.api.cashflow_service import CashflowService

        monkeypatch.setattr(cashflow_service, "FOUNDER_USER_IDS", frozenset({"user_root"}))

        with CashflowService(db_path=temp_db_path, clock=lambda: fixed_now) as service:
            assert service.resolve_identity("user_root").role == "founder"
            assert service.resolve_identity("user_other").role == "user"

    def test_set_role_rejects_unknown(self, service):
        with pytest.raises(InvalidFieldError):
            service.set_user_role("user_alice", "admin")

    def test_anonymous_identity(self, service):
        assert service.resolve_identity(None) is None
        assert service.resolve_identity("") is None


class TestBadges:
    """Badge definitions and assignments."""

    def test_create_badge(self, service, founder):
        badge_id = service.create_badge(founder, "VIP", "VIP", "Valued member", "⭐", "#000")

        (badge,) = service.list_badges()
        assert badge["id"] == badge_id
        assert badge["display_name"] == "VIP"

    def test_non_founder_cannot_create(self, service, alice):
        with pytest.raises(ForbiddenError) as exc:
            service.create_badge(alice, "VIP", "VIP", "", "⭐", "#000")

        assert exc.value.message == "Only the founder can create badges"
        assert service.list_badges() == []

    def test_anonymous_cannot_create(self, service):
        with pytest.raises(NotAuthenticatedError):
            service.create_badge(None, "VIP", "VIP", "", "⭐", "#000")

    def test_duplicate_name(self, service, founder):
        service.create_badge(founder, "VIP", "VIP", "", "⭐", "#000")

        with pytest.raises(ConflictError) as exc:
            service.create_badge(founder, "VIP", "Other", "", "⭐", "#000")
        assert exc.value.message == "Badge with this name already exists"

    def test_assign_and_revoke(self, service, founder, alice):
        badge_id = service.create_badge(founder, "VIP", "VIP", "", "⭐", "#000")

        service.assign_badge(founder, "user_alice", badge_id)
        (badge,) = service.get_user_badges("user_alice")
        assert badge["assigned_by"] == "user_founder"
        assert service.get_my_badges(alice) == service.get_user_badges("user_alice")

        service.revoke_badge(founder, "user_alice", badge_id)
        assert service.get_user_badges("user_alice") == []

    def test_assign_twice(self, service, founder):
        badge_id = service.create_badge(founder, "VIP", "VIP", "", "⭐", "#000")
        service.assign_badge(founder, "user_alice", badge_id)

        with pytest.raises(ConflictError) as exc:
            service.assign_badge(founder, "user_alice", badge_id)
        assert exc.value.message == "User already has this badge"

    def test_assign_missing_badge(self, service, founder):
        with pytest.raises(NotFoundError) as exc:
            service.assign_badge(founder, "user_alice", 999)
        assert exc.value.message == "Badge not found"

    def test_revoke_unheld_badge(self, service, founder):
        badge_id = service.create_badge(founder, "VIP", "VIP", "", "⭐", "#000")

        with pytest.raises(NotFoundError) as exc:
            service.revoke_badge(founder, "user_alice", badge_id)
        assert exc.value.message == "User does not have this badge"

    def test_non_founder_cannot_assign_or_revoke(self, service, founder, alice):
        badge_id = service.create_badge(founder, "VIP", "VIP", "", "⭐", "#000")

        with pytest.raises(ForbiddenError):
            service.assign_badge(alice, "user_alice", badge_id)

        service.assign_badge(founder, "user_alice", badge_id)
        with pytest.raises(ForbiddenError):
            service.revoke_badge(alice, "user_alice", badge_id)

    def test_my_badges_anonymous(self, service):
        assert service.get_my_badges(None) == []


class TestFounderBadge:
    def test_initialize_for_founder(self, service, founder):
        first = service.initialize_founder_badge(founder)
        second = service.initialize_founder_badge(founder)

        assert first["already_exists"] is False
        assert first["assigned"] is True
        assert second == {"badge_id": first["badge_id"], "already_exists": True, "assigned": True}
        assert [b["name"] for b in service.get_my_badges(founder)] == ["FOUNDER"]

    def test_initialize_for_regular_user(self, service, alice):
        result = service.initialize_founder_badge(alice)

        assert result["assigned"] is False
        assert service.get_my_badges(alice) == []
        assert service.list_badges()[0]["icon"] == "👑"

    def test_initialize_anonymous(self, service):
        assert service.initialize_founder_badge(None)["badge_id"] is None
        assert service.list_badges() == []


class TestListAllUsers:
    def test_founder_sees_profiles_with_badges(self, service, founder, alice, bob):
        service.upsert_profile(alice, "alice")
        service.upsert_profile(bob, "bob")
        badge_id = service.create_badge(founder, "VIP", "VIP", "", "⭐", "#000")
        service.assign_badge(founder, "user_bob", badge_id)

        users = service.list_all_users(founder)

        assert [u["username"] for u in users] == ["alice", "bob"]
        assert users[0]["badges"] == []
        assert [b["name"] for b in users[1]["badges"]] == ["VIP"]

    def test_regular_user_gets_empty_list(self, service, alice):
        service.upsert_profile(alice, "alice")

        assert service.list_all_users(alice) == []
        assert service.list_all_users(None) == []
