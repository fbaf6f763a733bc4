"""Tests for profile operations."""
import pytest

from cashflow_commander.api.errors import NotAuthenticatedError, NotFoundError, InvalidFieldError


class TestProfiles:
    """Profile upsert, validation and lookup."""

    def test_upsert_creates_profile(self, service, alice, now_ms):
        profile = service.upsert_profile(alice, "alice", bio="Saving for a bike")

        assert profile["user_id"] == "user_alice"
        assert profile["username"] == "alice"
        assert profile["bio"] == "Saving for a bike"
        assert profile["is_profile_complete"] is True
        assert profile["created_at"] == profile["updated_at"] == now_ms

    def test_upsert_updates_existing(self, service, alice):
        first = service.upsert_profile(alice, "alice")
        second = service.upsert_profile(alice, "alice_b", bio="New bio")

        assert second["id"] == first["id"]
        assert second["username"] == "alice_b"
        assert service.get_profile("user_alice")["bio"] == "New bio"

    def test_picture_kept_when_not_given(self, service, alice):
        service.upsert_profile(alice, "alice", profile_picture_url="https://example.com/a.png")

        profile = service.upsert_profile(alice, "alice", bio="Updated")

        assert profile["profile_picture_url"] == "https://example.com/a.png"

    def test_remove_picture(self, service, alice):
        service.upsert_profile(alice, "alice", profile_picture_url="data:image/png;base64,AAAA")

        profile = service.remove_profile_picture(alice)

        assert profile["profile_picture_url"] is None

    def test_remove_picture_without_profile(self, service, alice):
        with pytest.raises(NotFoundError):
            service.remove_profile_picture(alice)

    @pytest.mark.parametrize("username,message", [
        ("a", "Username must be at least 2 characters"),
        ("x" * 31, "Username cannot exceed 30 characters"),
    ])
    def test_username_length(self, service, alice, username, message):
        with pytest.raises(InvalidFieldError) as exc:
            service.upsert_profile(alice, username)
        assert exc.value.message == message

    def test_username_bounds_inclusive(self, service, alice):
        assert service.upsert_profile(alice, "ab")["username"] == "ab"
        assert service.upsert_profile(alice, "y" * 30)["username"] == "y" * 30

    def test_bio_too_long(self, service, alice):
        with pytest.raises(InvalidFieldError) as exc:
            service.upsert_profile(alice, "alice", bio="b" * 151)
        assert exc.value.message == "Bio cannot exceed 150 characters"

    def test_invalid_picture_url(self, service, alice):
        with pytest.raises(InvalidFieldError):
            service.upsert_profile(alice, "alice", profile_picture_url="ftp://example.com/a.png")

    def test_anonymous(self, service):
        assert service.get_my_profile(None) is None
        assert service.get_current_user(None) is None
        with pytest.raises(NotAuthenticatedError):
            service.upsert_profile(None, "ghost")

    def test_current_user(self, service, alice):
        service.upsert_profile(alice, "alice")

        me = service.get_current_user(alice)

        assert me["user_id"] == "user_alice"
        assert me["role"] == "user"
        assert me["profile"]["username"] == "alice"

    def test_profile_with_badges(self, service, alice, founder):
        service.upsert_profile(alice, "alice")
        badge_id = service.create_badge(founder, "EARLY", "Early Adopter", "", "🌱", "#0f0")
        service.assign_badge(founder, "user_alice", badge_id)

        profile = service.get_my_profile_with_badges(alice)

        assert profile["username"] == "alice"
        assert [b["name"] for b in profile["badges"]] == ["EARLY"]

    def test_profile_with_badges_without_profile(self, service, bob):
        profile = service.get_my_profile_with_badges(bob)

        assert profile == {"user_id": "user_bob", "badges": []}
