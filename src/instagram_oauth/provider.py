"""Instagram OAuth2 provider for the host authentication framework."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import urlencode

import httpx
from mcp.shared._httpx_utils import create_mcp_http_client
from pydantic import ConfigDict, ValidationError

from instagram_oauth.config import DEFAULT_PROVIDER_NAME, InstagramAuthConfigModel
from instagram_oauth.contracts import (
    DecodeError,
    ExchangeFailedError,
    MissingCredentialError,
    Provider,
    ProviderHTTPError,
    UnsupportedError,
    User,
)
from instagram_oauth.models import OAuthBaseModel
from instagram_oauth.session import ZERO_TIME, InstagramSession, Token

logger = logging.getLogger(__name__)

PROFILE_FIELDS = "id,username"


class _InstagramTokenResponse(OAuthBaseModel):
    """Token endpoint response (successful or error)."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    access_token: str | None = None
    token_type: str | None = None
    refresh_token: str | None = None
    expires_in: float | None = None

    error: str | None = None
    error_type: str | None = None
    error_message: str | None = None
    error_description: str | None = None

    @property
    def error_code(self) -> str | None:
        return self.error or self.error_type


_TOKEN_FIELDS = frozenset(_InstagramTokenResponse.model_fields)


class _InstagramProfileResponse(OAuthBaseModel):
    """The `/me?fields=id,username` response."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str | int
    username: str

    @property
    def resolved_user_id(self) -> str:
        return str(self.id)


class InstagramProvider(Provider):
    """Instagram implementation of the host ``Provider`` capability set."""

    def __init__(
        self,
        instagram_config: InstagramAuthConfigModel,
        *,
        http_client_factory: Callable[[], httpx.AsyncClient] | None = None,
    ):
        self._config = instagram_config
        self._name = instagram_config.name or DEFAULT_PROVIDER_NAME
        self._http_client_factory = http_client_factory

    @classmethod
    def create(
        cls,
        client_key: str,
        secret: str,
        callback_url: str,
        *scopes: str,
        http_client_factory: Callable[[], httpx.AsyncClient] | None = None,
    ) -> InstagramProvider:
        """Build a provider from credentials; no scopes means the default scope."""
        config = InstagramAuthConfigModel(
            client_id=client_key,
            client_secret=secret,
            callback_url=callback_url,
            scopes=list(dict.fromkeys(scopes)),
        )
        return cls(config, http_client_factory=http_client_factory)

    # ── configuration ────────────────────────────────────────────────────────
    @property
    def name(self) -> str:
        """Name used by the host to look this provider up."""
        return self._name

    @name.setter
    def name(self, value: str) -> None:
        # Needed when several Instagram providers are registered side by side.
        self._name = value

    @property
    def client_key(self) -> str:
        return self._config.client_id

    @property
    def secret(self) -> str:
        return self._config.client_secret

    @property
    def callback_url(self) -> str:
        return self._config.callback_url

    @property
    def scopes(self) -> tuple[str, ...]:
        return self._config.resolved_scopes

    @property
    def auth_url(self) -> str:
        return self._config.auth_url

    @property
    def token_url(self) -> str:
        return self._config.token_url

    @property
    def profile_url(self) -> str:
        return self._config.profile_url

    def client(self) -> httpx.AsyncClient:
        """Return a new HTTP client, from the injected factory if one was given."""
        if self._http_client_factory is not None:
            return self._http_client_factory()
        return create_mcp_http_client()

    # ── flow ─────────────────────────────────────────────────────────────────
    def begin_auth(self, state: str) -> InstagramSession:
        """Start a flow; ``state`` is the host's opaque CSRF token."""
        params: list[tuple[str, str]] = [
            ("client_id", self.client_key),
            ("redirect_uri", self.callback_url),
            ("response_type", "code"),
            ("scope", " ".join(self.scopes)),
            ("state", state),
        ]
        return InstagramSession(auth_url=f"{self.auth_url}?{urlencode(params)}")

    async def exchange_code(self, code: str) -> Token:
        """Exchange an authorization code for a token at the token endpoint.

        Raises:
            ExchangeFailedError: On transport errors, non-200 responses,
                malformed payloads or OAuth error payloads.
        """
        payload: dict[str, str] = {
            "grant_type": "authorization_code",
            "client_id": self.client_key,
            "client_secret": self.secret,
            "redirect_uri": self.callback_url,
            "code": code,
        }
        try:
            async with self.client() as client:
                resp = await client.post(
                    self.token_url,
                    data=payload,
                    headers={
                        "Content-Type": "application/x-www-form-urlencoded",
                        "Accept": "application/json",
                    },
                )
        except httpx.HTTPError as exc:
            logger.warning(
                "Instagram token request failed",
                extra={"provider": self.name, "endpoint": "token"},
            )
            raise ExchangeFailedError("Instagram token request failed") from exc

        return self._parse_token_response(resp)

    async def fetch_user(self, session: InstagramSession) -> User:
        """Fetch the ``id`` and ``username`` of the session's user.

        Raises:
            MissingCredentialError: If the session has no access token.
            ProviderHTTPError: If Instagram does not answer with 200.
            DecodeError: If the profile payload is malformed.
        """
        if not session.access_token:
            # data is not yet retrieved since the access token is still empty
            raise MissingCredentialError(
                f"{self.name} cannot get user information without accessToken"
            )

        payload = await self._fetch_profile(session.access_token)
        profile = _InstagramProfileResponse.model_validate(payload)
        logger.debug("Fetched Instagram profile", extra={"provider": self.name})

        return User(
            provider=self.name,
            user_id=profile.resolved_user_id,
            name=profile.username,
            nick_name=profile.username,
            access_token=session.access_token,
            refresh_token=session.refresh_token,
            expires_at=None if session.expires_at == ZERO_TIME else session.expires_at,
            raw_data=payload,
        )

    async def refresh_token(self, refresh_token: str) -> Token:
        raise UnsupportedError("refresh token is not provided by Instagram")

    def refresh_token_available(self) -> bool:
        return False

    def unmarshal_session(self, data: str) -> InstagramSession:
        return InstagramSession.deserialize(data)

    # ── helpers ──────────────────────────────────────────────────────────────
    async def _fetch_profile(self, access_token: str) -> dict[str, Any]:
        async with self.client() as client:
            resp = await client.get(
                self.profile_url,
                params={"fields": PROFILE_FIELDS, "access_token": access_token},
            )

        if resp.status_code != 200:
            logger.warning(
                "Instagram profile endpoint returned non-200",
                extra={
                    "provider": self.name,
                    "endpoint": "profile",
                    "status_code": resp.status_code,
                },
            )
            raise ProviderHTTPError(
                self.name,
                resp.status_code,
                f"{self.name} responded with a {resp.status_code} trying to fetch user information",
            )

        try:
            payload = resp.json()
        except ValueError as exc:
            logger.warning(
                "Instagram profile endpoint returned invalid JSON",
                extra={"provider": self.name, "endpoint": "profile"},
            )
            raise DecodeError("Instagram profile response was invalid") from exc

        if not isinstance(payload, dict):
            raise DecodeError("Instagram profile response was not an object")

        try:
            _InstagramProfileResponse.model_validate(payload)
        except ValidationError as exc:
            raise DecodeError("Instagram profile response is missing id or username") from exc
        return payload

    def _parse_token_response(self, resp: Any) -> Token:
        if resp.status_code != 200:
            error_code = self._try_extract_oauth_error_code(resp)
            logger.warning(
                "Instagram token endpoint returned non-200",
                extra={
                    "provider": self.name,
                    "endpoint": "token",
                    "status_code": resp.status_code,
                    "provider_error": error_code,
                },
            )
            raise ExchangeFailedError(
                f"Instagram token request failed ({error_code or 'unknown error'})",
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError as exc:
            logger.warning(
                "Instagram token endpoint returned invalid JSON",
                extra={"provider": self.name, "endpoint": "token"},
            )
            raise ExchangeFailedError("Invalid token response payload") from exc

        if not isinstance(data, dict):
            raise ExchangeFailedError("Invalid token response payload")

        try:
            parsed = _InstagramTokenResponse.model_validate(data)
        except ValidationError as exc:
            raise ExchangeFailedError("Invalid token response payload") from exc

        if parsed.error_code is not None:
            logger.warning(
                "Instagram token endpoint returned OAuth error",
                extra={
                    "provider": self.name,
                    "endpoint": "token",
                    "provider_error": parsed.error_code,
                },
            )
            raise ExchangeFailedError(
                parsed.error_message or parsed.error_description or parsed.error_code
            )

        expiry = None
        if parsed.expires_in is not None:
            try:
                expiry = datetime.now(timezone.utc) + timedelta(seconds=parsed.expires_in)
            except (OverflowError, ValueError) as exc:
                logger.warning(
                    "Instagram token endpoint returned an unusable expires_in",
                    extra={"provider": self.name, "endpoint": "token"},
                )
                raise ExchangeFailedError("Invalid token expiry in response") from exc

        return Token(
            access_token=parsed.access_token or "",
            token_type=parsed.token_type or "Bearer",
            refresh_token=parsed.refresh_token or "",
            expiry=expiry,
            extra={key: value for key, value in data.items() if key not in _TOKEN_FIELDS},
        )

    def _try_extract_oauth_error_code(self, resp: Any) -> str | None:
        """Best-effort extraction of the OAuth error code from a response."""
        try:
            payload = resp.json()
        except ValueError:
            return None
        if not isinstance(payload, Mapping):
            return None
        error = payload.get("error") or payload.get("error_type")
        return error if isinstance(error, str) and error else None
