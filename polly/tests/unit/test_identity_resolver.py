from __future__ import annotations

from datetime import timedelta

import pytest

from polly.core.config import get_settings
from polly.services.identity import IdentityResolver, RequestCredentials
from polly.tests.utils.auth import issue_token


def _bearer(token: str) -> RequestCredentials:
    return RequestCredentials(authorization=f"Bearer {token}")


def test_valid_bearer_token_resolves_subject() -> None:
    principal = IdentityResolver().resolve(_bearer(issue_token("user-1")))

    assert principal.is_authenticated
    assert principal.subject_id == "user-1"


def test_session_cookie_is_used_without_header() -> None:
    credentials = RequestCredentials(session_token=issue_token("user-2"))

    assert IdentityResolver().resolve(credentials).subject_id == "user-2"


def test_header_wins_over_cookie() -> None:
    credentials = RequestCredentials(
        authorization=f"bearer {issue_token('from-header')}",
        session_token=issue_token("from-cookie"),
    )

    assert IdentityResolver().resolve(credentials).subject_id == "from-header"


@pytest.mark.parametrize(
    "credentials",
    [
        None,
        RequestCredentials(),
        RequestCredentials(authorization="Basic dXNlcjpwYXNz"),
        RequestCredentials(authorization="Bearer "),
        RequestCredentials(authorization="Bearer not-a-jwt"),
    ],
)
def test_missing_or_garbled_credentials_are_anonymous(credentials) -> None:
    assert not IdentityResolver().resolve(credentials).is_authenticated


@pytest.mark.parametrize(
    "token_kwargs",
    [
        {"expires_in": timedelta(seconds=-30)},
        {"secret": "some-other-signing-secret-of-decent-length"},
        {"audience": "another-app"},
        {"extra_claims": {"sub": "   "}},
    ],
)
def test_invalid_tokens_are_anonymous(token_kwargs) -> None:
    token = issue_token("user-1", **token_kwargs)

    assert not IdentityResolver().resolve(_bearer(token)).is_authenticated


def test_token_without_subject_is_anonymous() -> None:
    assert not IdentityResolver().resolve(_bearer(issue_token(None))).is_authenticated


def test_audience_check_can_be_disabled(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AUTH_JWT_AUDIENCE", "")
    get_settings.cache_clear()
    token = issue_token("user-1", audience=None)

    assert IdentityResolver(get_settings()).resolve(_bearer(token)).subject_id == "user-1"
