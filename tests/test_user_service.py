import jwt
import pytest

from todoapp.application.services.user_service import UserService
from todoapp.domain.errors import (
    AlreadyVerified,
    DuplicateIdentity,
    EmailNotVerified,
    InvalidCredentials,
    InvalidOrExpiredToken,
    NotFound,
    ValidationError,
)

from conftest import JWT_SECRET


def test_registration_requires_email_verification(user_service: UserService):
    user, token = user_service.create_user("alice", "Alice@Example.com", "secret123")

    assert token is not None and len(token) == 64
    assert user.email == "alice@example.com"
    assert user.email_verified is False
    assert not hasattr(user, "password_hash")

    with pytest.raises(EmailNotVerified):
        user_service.authenticate_user("alice", "secret123")

    verified = user_service.verify_email(token)
    assert verified.email_verified is True
    assert user_service.authenticate_user("alice", "secret123").id == user.id


def test_auto_verified_registration_has_no_token(user_service: UserService):
    user, token = user_service.create_user("seeded", "seeded@example.com", "secret123", auto_verify=True)
    assert token is None
    assert user.email_verified is True


def test_authentication_failures(user_service: UserService, alice):
    with pytest.raises(NotFound):
        user_service.authenticate_user("nobody", "secret123")
    with pytest.raises(InvalidCredentials):
        user_service.authenticate_user("alice", "wrong-password")


def test_wrong_password_is_reported_before_missing_verification(user_service: UserService):
    user_service.create_user("erin", "erin@example.com", "secret123")
    with pytest.raises(InvalidCredentials):
        user_service.authenticate_user("erin", "not-it")


@pytest.mark.parametrize(
    "username, email",
    [
        ("alice", "other@example.com"),
        ("someone", "alice@example.com"),
        ("someone", "ALICE@example.com"),
    ],
)
def test_duplicate_identity_is_rejected(user_service: UserService, alice, username, email):
    with pytest.raises(DuplicateIdentity):
        user_service.create_user(username, email, "secret123")


@pytest.mark.parametrize(
    "username, email, password",
    [
        ("ab", "short@example.com", "secret123"),
        ("bad name!", "badname@example.com", "secret123"),
        ("x" * 31, "long@example.com", "secret123"),
        ("valid_user", "not-an-email", "secret123"),
        ("valid_user", "throwaway@mailinator.com", "secret123"),
        ("valid_user", "valid@example.com", "12345"),
    ],
)
def test_invalid_registration_input_stores_nothing(user_service: UserService, username, email, password):
    with pytest.raises(ValidationError):
        user_service.create_user(username, email, password)
    assert user_service.get_user_by_email("valid@example.com") is None
    assert user_service.get_user_by_username(username) is None


def test_verification_token_is_single_use(user_service: UserService):
    _, token = user_service.create_user("frank", "frank@example.com", "secret123")
    user_service.verify_email(token)
    with pytest.raises(InvalidOrExpiredToken):
        user_service.verify_email(token)


class CompetingVerification:
    """Repository wrapper where another request consumes the token right after lookup."""

    def __init__(self, inner):
        self._inner = inner

    def __getattr__(self, name):
        return getattr(self._inner, name)

    def get_user_by_verification_token(self, token, now_ms):
        user = self._inner.get_user_by_verification_token(token, now_ms)
        if user is not None:
            assert self._inner.mark_email_verified(user.id, token) is not None
        return user


def test_concurrent_verification_succeeds_only_once(persistence, hasher, clock, user_service: UserService):
    _, token = user_service.create_user("ivan", "ivan@example.com", "secret123")
    racing = UserService(CompetingVerification(persistence), hasher, jwt_secret=JWT_SECRET, clock=clock)

    with pytest.raises(InvalidOrExpiredToken):
        racing.verify_email(token)
    assert user_service.get_user_by_username("ivan").email_verified is True


def test_consuming_a_token_twice_at_the_store(persistence, user_service: UserService):
    user, token = user_service.create_user("judy", "judy@example.com", "secret123")
    assert persistence.mark_email_verified(user.id, token).email_verified is True
    assert persistence.mark_email_verified(user.id, token) is None


def test_unknown_verification_token(user_service: UserService):
    with pytest.raises(InvalidOrExpiredToken):
        user_service.verify_email("0" * 64)
    with pytest.raises(InvalidOrExpiredToken):
        user_service.verify_email("")


def test_expired_verification_token(user_service: UserService, clock):
    _, token = user_service.create_user("grace", "grace@example.com", "secret123")
    clock.advance(hours=25)
    with pytest.raises(InvalidOrExpiredToken):
        user_service.verify_email(token)


def test_resend_verification_rotates_token(user_service: UserService):
    _, first = user_service.create_user("heidi", "heidi@example.com", "secret123")
    user, second = user_service.resend_verification(" HEIDI@example.com ")

    assert second != first
    assert user.username == "heidi"
    with pytest.raises(InvalidOrExpiredToken):
        user_service.verify_email(first)
    assert user_service.verify_email(second).email_verified is True


def test_resend_verification_errors(user_service: UserService, alice):
    with pytest.raises(NotFound):
        user_service.resend_verification("missing@example.com")
    with pytest.raises(AlreadyVerified):
        user_service.resend_verification("alice@example.com")


def test_lookups(user_service: UserService, alice):
    assert user_service.get_user_by_id(alice.id).username == "alice"
    assert user_service.get_user_by_email("ALICE@example.com").id == alice.id
    assert user_service.get_user_by_username("alice").id == alice.id
    assert user_service.get_user_by_id(9999) is None
    assert user_service.get_user_by_username("missing") is None


def test_demo_user_can_log_in(user_service: UserService):
    demo = user_service.get_demo_user()
    assert demo is not None
    assert demo.email_verified
    assert user_service.authenticate_user("demo", "demo123").id == demo.id


def test_access_token_round_trip(user_service: UserService, alice):
    token = user_service.issue_access_token(alice)

    claims = jwt.decode(token, JWT_SECRET, algorithms=["HS256"])
    assert claims["sub"] == str(alice.id)
    assert claims["username"] == "alice"
    assert claims["exp"] - claims["iat"] == 24 * 3600

    assert user_service.resolve_access_token(token).id == alice.id


def test_tampered_or_foreign_tokens_are_rejected(user_service: UserService, alice):
    token = user_service.issue_access_token(alice)
    with pytest.raises(InvalidOrExpiredToken):
        user_service.resolve_access_token(token[:-2] + ("aa" if token[-2:] != "aa" else "bb"))

    forged = jwt.encode({"sub": str(alice.id)}, "another-secret-that-is-also-long-enough", algorithm="HS256")
    with pytest.raises(InvalidOrExpiredToken):
        user_service.resolve_access_token(forged)

    orphan = jwt.encode({"sub": "9999"}, JWT_SECRET, algorithm="HS256")
    with pytest.raises(InvalidOrExpiredToken):
        user_service.resolve_access_token(orphan)


def test_expired_access_token(persistence, hasher, alice):
    service = UserService(persistence, hasher, jwt_secret=JWT_SECRET, jwt_expiration_hours=-1)
    token = service.issue_access_token(alice)
    with pytest.raises(InvalidOrExpiredToken, match="expired"):
        service.resolve_access_token(token)


def test_empty_jwt_secret_is_refused(persistence, hasher):
    with pytest.raises(RuntimeError):
        UserService(persistence, hasher, jwt_secret="")
