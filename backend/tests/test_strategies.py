from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from app.auth.identity import AuthenticatedIdentity
from app.auth.strategies import (
    BearerCredentials,
    BearerStrategy,
    DelegatedStrategy,
    PasswordCredentials,
    PasswordStrategy,
    authenticate,
    resolve_strategy,
)
from app.core.errors import Conflict, NotFound, TokenError, Unauthorized
from app.core.tokens import TokenClaims
from app.models.user import User
from app.services.users import DelegatedProfile


# ---------------------------------------------------------------------------
# Password
# ---------------------------------------------------------------------------


def test_password_strategy_success(db_session, users):
    user_a, _, _ = users
    identity = authenticate(db_session, PasswordCredentials("TEST@example.com", "test_password_123"))

    assert isinstance(identity, AuthenticatedIdentity)
    assert identity.user_id == user_a.id
    assert identity.email == "test@example.com"
    assert identity.has_password is True
    assert not hasattr(identity, "password_hash")


@pytest.mark.parametrize(
    "email, password",
    [
        ("test@example.com", "wrong_password"),
        ("nobody@example.com", "test_password_123"),
        # Provider-only account has no password to check.
        ("octo@example.com", ""),
    ],
)
def test_password_strategy_failures_share_one_message(db_session, users, email, password):
    with pytest.raises(Unauthorized) as exc:
        authenticate(db_session, PasswordCredentials(email, password))
    assert exc.value.message == "Invalid email or password"


def test_password_credentials_repr_hides_password():
    assert "hunter2" not in repr(PasswordCredentials("a@x.com", "hunter2"))


# ---------------------------------------------------------------------------
# Bearer
# ---------------------------------------------------------------------------


def _access_for(codec, user: User, **kwargs) -> str:
    return codec.sign_access(TokenClaims(user_id=user.id, email=user.email), **kwargs).token


def test_bearer_strategy_success(db_session, users, codec):
    user_a, _, _ = users
    identity = authenticate(db_session, BearerCredentials(_access_for(codec, user_a)), codec=codec)
    assert identity.user_id == user_a.id
    assert identity.name == "Test User"


def test_bearer_strategy_missing_token(db_session, codec):
    with pytest.raises(Unauthorized, match="Missing Authorization header"):
        authenticate(db_session, BearerCredentials(None), codec=codec)


def test_bearer_strategy_invalid_token(db_session, codec):
    with pytest.raises(TokenError):
        authenticate(db_session, BearerCredentials("not-a-jwt"), codec=codec)


def test_bearer_strategy_expired_token(db_session, users, codec):
    user_a, _, _ = users
    token = _access_for(codec, user_a, now=datetime.now(timezone.utc) - timedelta(hours=1))
    with pytest.raises(TokenError):
        authenticate(db_session, BearerCredentials(token), codec=codec)


def test_bearer_strategy_rejects_refresh_token(db_session, users, codec):
    user_a, _, _ = users
    refresh = codec.sign_refresh(TokenClaims(user_id=user_a.id, email=user_a.email)).token
    with pytest.raises(TokenError):
        authenticate(db_session, BearerCredentials(refresh), codec=codec)


def test_bearer_strategy_unknown_subject(db_session, users, codec):
    user_a, _, _ = users
    token = _access_for(codec, user_a)
    db_session.delete(user_a)
    db_session.commit()

    with pytest.raises(Unauthorized, match="User not found"):
        authenticate(db_session, BearerCredentials(token), codec=codec)


def test_optional_bearer_never_raises(db_session, users, codec):
    user_a, _, _ = users
    strategy = BearerStrategy(codec, optional=True)

    assert strategy.authenticate(db_session, BearerCredentials(None)) is None
    assert strategy.authenticate(db_session, BearerCredentials("garbage")) is None

    identity = strategy.authenticate(db_session, BearerCredentials(_access_for(codec, user_a)))
    assert identity is not None and identity.user_id == user_a.id


# ---------------------------------------------------------------------------
# Delegated identity
# ---------------------------------------------------------------------------


def test_delegated_creates_provider_only_account(db_session):
    profile = DelegatedProfile(
        provider="google",
        external_id="g-100",
        email="New.Person@Example.com",
        display_name="New Person",
        avatar_url="https://example.com/a.png",
    )
    identity = authenticate(db_session, profile)

    assert identity.email == "new.person@example.com"
    assert identity.google_id == "g-100"
    assert identity.has_password is False
    assert identity.avatar == "https://example.com/a.png"
    assert db_session.query(User).count() == 1


def test_delegated_is_idempotent_by_provider_id(db_session):
    profile = DelegatedProfile(provider="google", external_id="g-100", email="p@example.com")
    first = authenticate(db_session, profile)
    # Same provider id, different email reported later: still the same account.
    second = authenticate(db_session, DelegatedProfile(provider="google", external_id="g-100", email="x@example.com"))

    assert first.user_id == second.user_id
    assert db_session.query(User).count() == 1


def test_delegated_refuses_email_of_password_account(db_session, users):
    user_a, _, _ = users
    with pytest.raises(Conflict):
        DelegatedStrategy().authenticate(
            db_session,
            DelegatedProfile(provider="github", external_id="4242", email="test@example.com"),
        )

    db_session.refresh(user_a)
    assert user_a.github_id is None
    assert db_session.query(User).count() == 3


def test_delegated_refuses_fallback_address_registered_with_password(db_session, users):
    # Someone registered the address GitHub user "victim" would be given.
    squatter = User(email="victim@github.com", name="Squatter", password_hash="x")
    db_session.add(squatter)
    db_session.commit()

    with pytest.raises(Conflict):
        authenticate(
            db_session,
            DelegatedProfile(provider="github", external_id="999", email=None, username="victim"),
        )

    db_session.refresh(squatter)
    assert squatter.github_id is None


def test_delegated_refuses_fallback_address_of_provider_only_account(db_session, users):
    existing = User(email="hubber@github.com", name="Hubber", google_id="g-1")
    db_session.add(existing)
    db_session.commit()

    with pytest.raises(Conflict):
        authenticate(
            db_session,
            DelegatedProfile(provider="github", external_id="77", username="hubber"),
        )


def test_delegated_links_provider_only_account_by_asserted_email(db_session, users):
    _, _, user_gh = users
    identity = DelegatedStrategy().authenticate(
        db_session,
        DelegatedProfile(
            provider="google",
            external_id="g-4242",
            email="Octo@Example.com",
            avatar_url="https://avatars.example.com/4242",
        ),
    )

    assert identity.user_id == user_gh.id
    assert identity.google_id == "g-4242"
    assert identity.github_id == "583231"
    assert identity.has_password is False
    assert identity.avatar == "https://avatars.example.com/4242"


def test_delegated_refuses_to_relink_email_owned_by_other_provider_id(db_session, users):
    # octo@example.com is already linked to github id 583231
    with pytest.raises(Conflict):
        authenticate(
            db_session,
            DelegatedProfile(provider="github", external_id="999", email="octo@example.com"),
        )


def test_delegated_github_email_fallback(db_session):
    identity = authenticate(
        db_session,
        DelegatedProfile(provider="github", external_id="77", email=None, username="Hubber"),
    )
    assert identity.email == "hubber@github.com"
    assert identity.name == "Hubber"


def test_delegated_google_email_and_name_fallback(db_session):
    identity = authenticate(db_session, DelegatedProfile(provider="google", external_id="g-9"))
    assert identity.email == "g-9@google.local"
    assert identity.name == "Google User"


def test_delegated_unsupported_provider(db_session):
    with pytest.raises(NotFound):
        authenticate(db_session, DelegatedProfile(provider="myspace", external_id="1"))


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def test_resolve_strategy_by_credential_type(codec):
    assert isinstance(resolve_strategy(PasswordCredentials("a@x.com", "pw")), PasswordStrategy)
    assert isinstance(resolve_strategy(BearerCredentials("t"), codec=codec), BearerStrategy)
    assert isinstance(resolve_strategy(DelegatedProfile("github", "1")), DelegatedStrategy)


def test_resolve_strategy_rejects_unknown_credentials():
    with pytest.raises(TypeError):
        resolve_strategy({"email": "a@x.com"})


def test_bearer_requires_codec():
    with pytest.raises(ValueError):
        resolve_strategy(BearerCredentials("t"))
