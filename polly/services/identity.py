from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Mapping

import jwt

from polly.core.config import Settings, get_settings
from polly.domain.principal import Principal


logger = logging.getLogger(__name__)

_BEARER_PREFIX = "bearer "


@dataclass(frozen=True)
class RequestCredentials:
    # Raw credential material lifted off an inbound request.
    authorization: str | None = None
    session_token: str | None = None

    @classmethod
    def from_headers(
        cls, headers: Mapping[str, str], cookies: Mapping[str, str], *, cookie_name: str
    ) -> "RequestCredentials":
        return cls(
            authorization=headers.get("authorization"),
            session_token=cookies.get(cookie_name),
        )

    def token(self) -> str | None:
        # Prefer an explicit bearer header over the browser session cookie.
        if self.authorization and self.authorization.lower().startswith(_BEARER_PREFIX):
            candidate = self.authorization[len(_BEARER_PREFIX) :].strip()
            if candidate:
                return candidate
        if self.session_token and self.session_token.strip():
            return self.session_token.strip()
        return None


class IdentityResolver:
    """Answer "who is asking" for a request.

    Tokens are verified for signature, expiry and, when configured, audience.
    Anything missing, expired, malformed or signed with the wrong key resolves
    to the anonymous principal; :meth:`resolve` never raises.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()

    def _decode(self, token: str) -> dict[str, Any]:
        audience = self._settings.auth_jwt_audience or None
        return jwt.decode(
            token,
            self._settings.auth_jwt_secret,
            algorithms=[self._settings.auth_jwt_algorithm],
            audience=audience,
            options={"require": ["sub", "exp"], "verify_aud": audience is not None},
        )

    def resolve(self, credentials: RequestCredentials | None) -> Principal:
        token = credentials.token() if credentials is not None else None
        if token is None:
            return Principal.anonymous()
        try:
            claims = self._decode(token)
        except jwt.PyJWTError as exc:
            logger.info("identity_token_rejected reason=%s", type(exc).__name__)
            return Principal.anonymous()
        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject.strip():
            return Principal.anonymous()
        return Principal.authenticated(subject.strip())
