"""Contracts and shared types between the adapter and its host auth framework.

The host framework drives every identity-platform adapter through the same two
capability sets: a long-lived ``Provider`` and a per-attempt ``Session``. Both
are declared here as runtime-checkable protocols, together with the generic
``User`` record the host consumes and the error hierarchy raised by adapters.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from instagram_oauth.models import OAuthBaseModel


class ProviderError(Exception):
    """Standardized provider error with HTTP-style status information."""

    def __init__(self, error: str, description: str | None = None, status_code: int = 400):
        super().__init__(description or error)
        self.error = error
        self.description = description
        self.status_code = status_code


class MissingCredentialError(ProviderError):
    """The session has no access token to call the identity platform with."""

    def __init__(self, description: str | None = None):
        super().__init__("missing_credential", description, status_code=401)


class ProviderHTTPError(ProviderError):
    """The identity platform answered with an unexpected HTTP status."""

    def __init__(self, provider: str, status_code: int, description: str | None = None):
        super().__init__(
            "http_error",
            description or f"{provider} responded with a {status_code}",
            status_code=status_code,
        )
        self.provider = provider


class DecodeError(ProviderError):
    """A response body or serialized session did not match the expected shape."""

    def __init__(self, description: str | None = None, status_code: int = 400):
        super().__init__("decode_error", description, status_code=status_code)


class ExchangeFailedError(ProviderError):
    """The authorization-code exchange failed at the transport or protocol level."""

    def __init__(self, description: str | None = None, status_code: int = 400):
        super().__init__("exchange_failed", description, status_code=status_code)


class InvalidTokenError(ProviderError):
    """The exchange succeeded but returned a token that is not usable."""

    def __init__(self, description: str | None = None):
        super().__init__("invalid_token", description, status_code=400)


class NotInitializedError(ProviderError):
    """The auth flow was never begun for this session."""

    def __init__(self, description: str | None = None):
        super().__init__("not_initialized", description, status_code=400)


class UnsupportedError(ProviderError):
    """The identity platform does not support the requested operation."""

    def __init__(self, description: str | None = None):
        super().__init__("unsupported", description, status_code=501)


class User(OAuthBaseModel):
    """Generic user record handed back to the host framework."""

    provider: str
    user_id: str = ""
    name: str = ""
    nick_name: str = ""
    email: str = ""
    avatar_url: str = ""
    access_token: str = ""
    refresh_token: str = ""
    expires_at: datetime | None = None
    raw_data: dict[str, Any] | None = None


@runtime_checkable
class Params(Protocol):
    """Key/value lookup over the callback request parameters."""

    def get(self, key: str, /) -> Any:
        """Return the value for ``key`` or ``None`` when absent."""


@runtime_checkable
class Session(Protocol):
    """State of one authentication attempt, persisted across the redirect."""

    def get_auth_url(self) -> str:
        """Return the URL the user must be sent to."""

    async def authorize(self, provider: Provider, params: Params | None) -> str:
        """Exchange the callback code for an access token and return it."""

    def marshal(self) -> str:
        """Serialize the session to an opaque string."""


@runtime_checkable
class Provider(Protocol):
    """Interface all identity-platform adapters must implement."""

    name: str

    def begin_auth(self, state: str) -> Session:
        """Start a flow and return a session holding the authorization URL."""

    async def fetch_user(self, session: Session) -> User:
        """Fetch the user profile for an authorized session."""

    async def refresh_token(self, refresh_token: str) -> Any:
        """Refresh an access token."""

    def refresh_token_available(self) -> bool:
        """Report whether ``refresh_token`` is supported."""

    def unmarshal_session(self, data: str) -> Session:
        """Rebuild a session from ``Session.marshal`` output."""


__all__ = [
    "DecodeError",
    "ExchangeFailedError",
    "InvalidTokenError",
    "MissingCredentialError",
    "NotInitializedError",
    "Params",
    "Provider",
    "ProviderError",
    "ProviderHTTPError",
    "Session",
    "UnsupportedError",
    "User",
]
