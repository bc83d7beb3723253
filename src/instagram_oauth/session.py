"""Per-attempt Instagram authentication state.

An ``InstagramSession`` is created by ``InstagramProvider.begin_auth``, travels
through the browser redirect as the string produced by ``marshal()`` and is
completed by ``authorize()`` once Instagram calls back with a code.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

from pydantic import ConfigDict, Field, ValidationError, field_serializer, field_validator

from instagram_oauth.contracts import (
    DecodeError,
    ExchangeFailedError,
    InvalidTokenError,
    NotInitializedError,
    Params,
)
from instagram_oauth.models import OAuthBaseModel

if TYPE_CHECKING:
    from instagram_oauth.provider import InstagramProvider

logger = logging.getLogger(__name__)

# Serialized as "0001-01-01T00:00:00Z" when no expiry is known.
ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)

# Tokens this close to expiry are already treated as expired.
EXPIRY_DELTA = timedelta(seconds=10)


class Token(OAuthBaseModel):
    """OAuth2 token as returned by the token endpoint."""

    access_token: str = ""
    token_type: str = "Bearer"
    refresh_token: str = ""
    expiry: datetime | None = None
    # Platform-specific fields, e.g. Instagram's ``user_id``.
    extra: dict[str, Any] = Field(default_factory=dict)

    @property
    def valid(self) -> bool:
        if not self.access_token:
            return False
        if self.expiry is None:
            return True
        return self.expiry - EXPIRY_DELTA > datetime.now(timezone.utc)


class InstagramSession(OAuthBaseModel):
    """Session state for one Instagram authentication attempt."""

    # Mutated by authorize(); unknown keys in stored payloads are ignored.
    model_config = ConfigDict(
        extra="ignore",
        frozen=False,
        populate_by_name=True,
        validate_assignment=True,
    )

    auth_url: str = Field(default="", alias="AuthURL")
    access_token: str = Field(default="", alias="AccessToken")
    refresh_token: str = Field(default="", alias="RefreshToken")
    expires_at: datetime = Field(default=ZERO_TIME, alias="ExpiresAt")
    token: Token | None = Field(default=None, exclude=True)

    @field_validator("expires_at")
    @classmethod
    def _normalize_to_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        try:
            return value.astimezone(timezone.utc)
        except OverflowError as exc:
            raise ValueError("ExpiresAt is outside the representable UTC range") from exc

    @field_serializer("expires_at")
    def _serialize_expires_at(self, value: datetime) -> str:
        return value.isoformat().replace("+00:00", "Z")

    def get_auth_url(self) -> str:
        """Return the authorization URL generated by ``begin_auth``.

        Raises:
            NotInitializedError: If the flow was never begun.
        """
        if not self.auth_url:
            raise NotInitializedError("an AuthURL has not been set")
        return self.auth_url

    async def authorize(self, provider: InstagramProvider, params: Params | None) -> str:
        """Exchange the callback ``code`` for an access token.

        On success the access token, the full token and its expiry (when
        Instagram reports one) are stored on the session.

        Raises:
            ExchangeFailedError: If the callback has no code or the exchange fails.
            InvalidTokenError: If the returned token is missing or already expired.
        """
        code = params.get("code") if params is not None else None
        if not code:
            logger.warning(
                "Authorization callback carried no code",
                extra={"provider": provider.name},
            )
            raise ExchangeFailedError("authorization callback is missing the 'code' parameter")

        token = await provider.exchange_code(code)
        if not token.valid:
            logger.warning(
                "Token endpoint returned an unusable token",
                extra={"provider": provider.name, "endpoint": "token"},
            )
            raise InvalidTokenError("Invalid token received from provider")

        self.access_token = token.access_token
        self.token = token
        if token.expiry is not None:
            self.expires_at = token.expiry
        return token.access_token

    def marshal(self) -> str:
        """Serialize the session for storage by the host (e.g. in a cookie).

        Only the four public fields are written; the full ``token`` object is
        not, so a restored authorized session has ``token=None`` and does not
        compare equal to the original.
        """
        return self.model_dump_json(by_alias=True)

    def __str__(self) -> str:
        return self.marshal()

    @classmethod
    def deserialize(cls, data: str) -> InstagramSession:
        """Rebuild a session from ``marshal()`` output.

        Raises:
            DecodeError: If ``data`` is not a valid session payload.
        """
        try:
            return cls.model_validate_json(data)
        except ValidationError as exc:
            raise DecodeError(f"Invalid session payload: {exc.error_count()} error(s)") from exc
