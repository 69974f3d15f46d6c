"""Tests for token signing, password hashing and the auth service."""

from datetime import timedelta

import pytest

from cryptofolio.core import security
from cryptofolio.core.config import settings
from cryptofolio.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    DomainValidationError,
    NotFoundError,
)
from cryptofolio.services.auth_service import AuthService


class TestTokens:
    """Tests for sign and verify."""

    def test_round_trip(self):
        token = security.sign({"sub": "7", "role": "ADMIN"})
        claims = security.verify(token)
        assert claims["sub"] == "7"
        assert claims["role"] == "ADMIN"
        assert claims["exp"] > claims["iat"]

    def test_expired_token(self):
        token = security.sign({"sub": "7"}, ttl=timedelta(seconds=-1))
        with pytest.raises(AuthenticationError, match="expired"):
            security.verify(token)

    def test_wrong_secret(self):
        token = security.sign({"sub": "7"}, secret="one-secret")
        with pytest.raises(AuthenticationError):
            security.verify(token, secret="another-secret")

    def test_garbage(self):
        with pytest.raises(AuthenticationError):
            security.verify("not-a-token")


class TestPasswords:
    def test_hash_and_check(self):
        hashed = security.hash_password("s3cret-pass")
        assert hashed != "s3cret-pass"
        assert security.check_password("s3cret-pass", hashed)
        assert not security.check_password("wrong", hashed)

    def test_over_long_password(self):
        hashed = security.hash_password("p" * 72)
        assert security.check_password("p" * 72, hashed)

        with pytest.raises(DomainValidationError):
            security.hash_password("x" * 100)
        assert not security.check_password("p" * 100, hashed)

    def test_limit_counts_bytes(self):
        with pytest.raises(DomainValidationError):
            security.hash_password("\u00e9" * 40)


class TestAuthService:
    """Tests for accounts and login."""

    @pytest.fixture
    def auth(self, session_factory):
        return AuthService(session_factory)

    async def test_login_issues_token_for_user(self, auth):
        created = await auth.create_user("Admin@Example.com", "password123", "Admin", "ADMIN")

        user, token = await auth.login("admin@example.com", "password123")
        assert user.id == created.id
        assert user.email == "admin@example.com"

        resolved = await auth.get_user_by_token(token)
        assert resolved.id == created.id
        assert resolved.role == "ADMIN"

    async def test_wrong_password(self, auth):
        await auth.create_user("user@example.com", "password123", "User")
        with pytest.raises(AuthenticationError):
            await auth.login("user@example.com", "nope")
        with pytest.raises(AuthenticationError):
            await auth.login("missing@example.com", "password123")

    async def test_duplicate_email_is_conflict(self, auth):
        await auth.create_user("user@example.com", "password123", "User")
        with pytest.raises(DomainValidationError) as exc_info:
            await auth.create_user("USER@example.com", "password456", "Other")
        assert exc_info.value.conflict is True
        assert len(await auth.list_users()) == 1

    async def test_unknown_role(self, auth):
        with pytest.raises(DomainValidationError):
            await auth.create_user("user@example.com", "password123", "User", role="ROOT")

    async def test_token_for_deleted_user(self, auth):
        token = security.sign({"sub": "999"})
        with pytest.raises(AuthenticationError):
            await auth.get_user_by_token(token)

    async def test_ensure_super_admin(self, auth, monkeypatch):
        monkeypatch.setattr(settings, "SUPER_ADMIN_EMAIL", "root@example.com")
        monkeypatch.setattr(settings, "SUPER_ADMIN_PASSWORD", "password123")

        first = await auth.ensure_super_admin()
        second = await auth.ensure_super_admin()

        assert first.role == "ADMIN"
        assert second.id == first.id
        assert len(await auth.list_users()) == 1

    async def test_ensure_super_admin_unconfigured(self, auth):
        assert await auth.ensure_super_admin() is None

    async def test_login_with_over_long_password(self, auth):
        await auth.create_user("user@example.com", "password123", "User")
        with pytest.raises(AuthenticationError):
            await auth.login("user@example.com", "x" * 100)


class TestUserManagement:
    """Tests for registration and admin user maintenance."""

    @pytest.fixture
    def auth(self, session_factory):
        return AuthService(session_factory)

    async def test_register_creates_plain_user(self, auth):
        user = await auth.register("New@Example.com", "password123", "New User")
        assert user.role == "USER"
        assert user.email == "new@example.com"

        _, token = await auth.login("new@example.com", "password123")
        assert token

    async def test_register_disabled(self, auth, monkeypatch):
        monkeypatch.setattr(settings, "REGISTRATION_ENABLED", False)
        with pytest.raises(AuthorizationError):
            await auth.register("new@example.com", "password123", "New User")
        assert await auth.list_users() == []

    async def test_get_user(self, auth):
        created = await auth.create_user("user@example.com", "password123", "User")
        assert (await auth.get_user(created.id)).email == "user@example.com"
        with pytest.raises(NotFoundError):
            await auth.get_user(created.id + 1)

    async def test_update_user(self, auth):
        created = await auth.create_user("user@example.com", "password123", "User")

        updated = await auth.update_user(
            created.id, full_name="Renamed", password="newpassword1", role="ADMIN"
        )

        assert updated.full_name == "Renamed"
        assert updated.role == "ADMIN"
        assert updated.is_active is True
        user, _ = await auth.login("user@example.com", "newpassword1")
        assert user.id == created.id
        with pytest.raises(AuthenticationError):
            await auth.login("user@example.com", "password123")

    async def test_deactivated_user_cannot_log_in(self, auth):
        created = await auth.create_user("user@example.com", "password123", "User")
        await auth.update_user(created.id, is_active=False)
        with pytest.raises(AuthenticationError, match="inactive"):
            await auth.login("user@example.com", "password123")

    async def test_update_rejects_unknown_role_and_missing_user(self, auth):
        created = await auth.create_user("user@example.com", "password123", "User")
        with pytest.raises(DomainValidationError):
            await auth.update_user(created.id, role="ROOT")
        with pytest.raises(NotFoundError):
            await auth.update_user(created.id + 1, full_name="Ghost")

    async def test_delete_user(self, auth):
        created = await auth.create_user("user@example.com", "password123", "User")

        await auth.delete_user(created.id)

        assert await auth.list_users() == []
        with pytest.raises(NotFoundError):
            await auth.delete_user(created.id)
