"""
Authentication and session tests.

Verifies:
- password strength rules and bcrypt verification
- login issues a bearer token that resolves to a SessionContext
- idle, expired and revoked sessions are rejected
"""

from datetime import timedelta

import pytest

from stocksnap.errors import AuthError, ConflictError, ValidationError
from stocksnap.extensions import db
from stocksnap.models import SessionToken
from stocksnap.services import auth_service, session_service
from stocksnap.services.auth_service import PasswordValidationError

TEST_PASSWORD = "Password123"


class TestPasswords:
    @pytest.mark.parametrize("password", ["short1", "allletters", "12345678", None])
    def test_weak_passwords_rejected(self, password):
        with pytest.raises(PasswordValidationError):
            auth_service.validate_password_strength(password)

    def test_hash_and_verify(self):
        hashed = auth_service.hash_password("Password123", rounds=4)
        assert hashed != "Password123"
        assert auth_service.verify_password("Password123", hashed)
        assert not auth_service.verify_password("Password124", hashed)

    def test_verify_garbage_hash(self):
        assert auth_service.verify_password("Password123", "not-a-hash") is False


class TestUsers:
    def test_email_normalized(self, db_session):
        user = auth_service.create_user("  Mixed@Case.Test ", TEST_PASSWORD, "Mixed", bcrypt_rounds=4)
        assert user.email == "mixed@case.test"
        assert user.role == "seller"

    def test_duplicate_email(self, seller):
        with pytest.raises(ConflictError):
            auth_service.create_user(seller.email.upper(), TEST_PASSWORD, "Again", bcrypt_rounds=4)

    def test_unknown_role(self, db_session):
        with pytest.raises(ValidationError):
            auth_service.create_user("x@y.test", TEST_PASSWORD, "X", role="owner", bcrypt_rounds=4)

    def test_authenticate(self, seller):
        user = auth_service.authenticate("seller@stocksnap.test", TEST_PASSWORD)
        assert user.id == seller.id
        assert user.last_login_at is not None

    @pytest.mark.parametrize(
        "email,password",
        [
            ("seller@stocksnap.test", "WrongPass1"),
            ("nobody@stocksnap.test", TEST_PASSWORD),
            ("not-an-email", TEST_PASSWORD),
        ],
    )
    def test_authenticate_failures(self, seller, email, password):
        with pytest.raises(AuthError):
            auth_service.authenticate(email, password)

    def test_disabled_account(self, seller):
        seller.is_active = False
        db.session.commit()
        with pytest.raises(AuthError):
            auth_service.authenticate(seller.email, TEST_PASSWORD)


class TestSessions:
    def test_token_stored_hashed(self, seller):
        session, token = session_service.create_session(seller.id, user_agent="pytest")
        assert session.token_hash == session_service.hash_token(token)
        assert session.token_hash != token

    def test_validate_returns_context(self, seller):
        _, token = session_service.create_session(seller.id)
        context = session_service.validate_session(token)

        assert context is not None
        assert context.user_id == seller.id

    def test_unknown_token(self, db_session):
        assert session_service.validate_session("deadbeef") is None

    def test_revoked(self, seller):
        _, token = session_service.create_session(seller.id)
        assert session_service.revoke_session(token) is True
        assert session_service.validate_session(token) is None
        assert session_service.revoke_session(token) is False

    def test_idle_timeout_revokes(self, seller):
        session, token = session_service.create_session(seller.id)
        session.last_used_at = session.last_used_at - session_service.SESSION_IDLE_TIMEOUT - timedelta(minutes=1)
        db.session.commit()

        assert session_service.validate_session(token) is None
        assert db.session.get(SessionToken, session.id).revoked_reason == "Idle timeout"

    def test_absolute_expiry(self, seller):
        session, token = session_service.create_session(seller.id)
        session.expires_at = session.created_at - timedelta(seconds=1)
        db.session.commit()

        assert session_service.validate_session(token) is None

    def test_deactivated_user(self, seller):
        _, token = session_service.create_session(seller.id)
        seller.is_active = False
        db.session.commit()

        assert session_service.validate_session(token) is None
