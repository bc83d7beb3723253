from datetime import datetime, timezone
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest
from pytest import MonkeyPatch

from http_testkit import (
    FakeAsyncHttpClient,
    FakeResponse,
    FakeResponseJsonError,
    patch_http_client,
)
from instagram_oauth.config import DEFAULT_SCOPE, InstagramAuthConfigModel
from instagram_oauth.contracts import (
    DecodeError,
    ExchangeFailedError,
    MissingCredentialError,
    Provider,
    ProviderError,
    ProviderHTTPError,
    UnsupportedError,
)
from instagram_oauth.provider import InstagramProvider
from instagram_oauth.session import InstagramSession


def test_new_provider_holds_configuration(provider: InstagramProvider) -> None:
    assert provider.client_key == "client_id"
    assert provider.secret == "secret"
    assert provider.callback_url == "http://localhost/callback"
    assert provider.name == "instagram"


def test_provider_implements_host_interface(provider: InstagramProvider) -> None:
    assert isinstance(provider, Provider)


def test_set_name(provider: InstagramProvider) -> None:
    provider.name = "instagram-business"
    assert provider.name == "instagram-business"
    # Only the name is mutable.
    with pytest.raises(AttributeError):
        provider.client_key = "other"  # type: ignore[misc]


def test_begin_auth_builds_authorize_url(provider: InstagramProvider) -> None:
    session = provider.begin_auth("state")

    assert "api.instagram.com/oauth/authorize" in session.auth_url
    assert "client_id=client_id" in session.auth_url
    assert "scope=basic" in session.auth_url
    assert "state=state" in session.auth_url

    query = parse_qs(urlsplit(session.auth_url).query)
    assert query["redirect_uri"] == ["http://localhost/callback"]
    assert query["response_type"] == ["code"]


def test_begin_auth_scenario() -> None:
    session = InstagramProvider.create("id1", "sec1", "http://cb").begin_auth("xyz")
    assert "client_id=id1" in session.auth_url
    assert "state=xyz" in session.auth_url
    assert session.access_token == ""


def test_default_scope_when_none_given(provider: InstagramProvider) -> None:
    query = parse_qs(urlsplit(provider.begin_auth("s").auth_url).query)
    assert query["scope"] == [DEFAULT_SCOPE]
    assert provider.scopes == (DEFAULT_SCOPE,)


def test_explicit_scopes_are_space_joined_in_order() -> None:
    provider = InstagramProvider.create(
        "cid", "secret", "http://cb", "user_profile", "user_media", "user_profile"
    )
    query = parse_qs(urlsplit(provider.begin_auth("s").auth_url).query)
    assert query["scope"] == ["user_profile user_media"]


def test_provider_uses_configured_endpoints_and_name() -> None:
    config = InstagramAuthConfigModel(
        client_id="cid",
        client_secret="secret",
        callback_url="http://cb",
        name="ig",
        auth_url="https://proxy.local/authorize",
    )
    provider = InstagramProvider(config)

    assert provider.name == "ig"
    assert provider.begin_auth("s").auth_url.startswith("https://proxy.local/authorize?")
    assert provider.scopes == (DEFAULT_SCOPE,)


def test_client_uses_injected_factory() -> None:
    fake_client = FakeAsyncHttpClient()
    provider = InstagramProvider.create(
        "cid", "secret", "http://cb", http_client_factory=lambda: fake_client  # type: ignore[arg-type,return-value]
    )
    assert provider.client() is fake_client


def test_refresh_token_not_available(provider: InstagramProvider) -> None:
    assert provider.refresh_token_available() is False


@pytest.mark.asyncio
async def test_refresh_token_is_unsupported(provider: InstagramProvider) -> None:
    with pytest.raises(UnsupportedError) as excinfo:
        await provider.refresh_token("anything")
    assert excinfo.value.error == "unsupported"


def test_unmarshal_session(provider: InstagramProvider) -> None:
    session = provider.unmarshal_session(
        '{"AuthURL":"https://api.instagram.com/oauth/authorize","AccessToken":"1234567890"}'
    )
    assert isinstance(session, InstagramSession)
    assert session.auth_url == "https://api.instagram.com/oauth/authorize"
    assert session.access_token == "1234567890"


@pytest.mark.asyncio
async def test_fetch_user_without_token_makes_no_request(
    monkeypatch: MonkeyPatch, provider: InstagramProvider
) -> None:
    fake_client = FakeAsyncHttpClient()
    patch_http_client(monkeypatch, fake_client)

    with pytest.raises(MissingCredentialError) as excinfo:
        await provider.fetch_user(InstagramSession())
    assert "without accessToken" in str(excinfo.value)
    assert fake_client.get_calls == []


@pytest.mark.asyncio
async def test_fetch_user_happy_path(
    monkeypatch: MonkeyPatch, provider: InstagramProvider
) -> None:
    fake_client = FakeAsyncHttpClient(
        get_response=FakeResponse(200, {"id": "17841400000000000", "username": "jane"})
    )
    patch_http_client(monkeypatch, fake_client)

    user = await provider.fetch_user(InstagramSession(access_token="at"))

    assert user.provider == "instagram"
    assert user.access_token == "at"
    assert user.user_id == "17841400000000000"
    assert user.nick_name == "jane"
    assert user.name == "jane"
    assert user.expires_at is None
    assert user.raw_data == {"id": "17841400000000000", "username": "jane"}

    url, kwargs = fake_client.get_calls[0]
    assert url == "https://graph.instagram.com/me"
    assert kwargs["params"] == {"fields": "id,username", "access_token": "at"}


@pytest.mark.asyncio
async def test_fetch_user_reports_renamed_provider(
    monkeypatch: MonkeyPatch, provider: InstagramProvider
) -> None:
    fake_client = FakeAsyncHttpClient(get_response=FakeResponse(200, {"id": 1, "username": "u"}))
    patch_http_client(monkeypatch, fake_client)
    provider.name = "ig2"
    expiry = datetime(2030, 1, 1, tzinfo=timezone.utc)

    user = await provider.fetch_user(InstagramSession(access_token="at", expires_at=expiry))

    assert user.provider == "ig2"
    assert user.user_id == "1"
    assert user.expires_at == expiry


@pytest.mark.asyncio
async def test_fetch_user_non_200_raises_http_error(
    monkeypatch: MonkeyPatch, provider: InstagramProvider
) -> None:
    fake_client = FakeAsyncHttpClient(get_response=FakeResponse(400, {"error": "bad"}))
    patch_http_client(monkeypatch, fake_client)

    with pytest.raises(ProviderHTTPError) as excinfo:
        await provider.fetch_user(InstagramSession(access_token="at"))
    assert excinfo.value.status_code == 400
    assert excinfo.value.provider == "instagram"
    assert "responded with a 400" in str(excinfo.value)
    assert not isinstance(excinfo.value, httpx.HTTPError)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        FakeResponseJsonError(200, None),
        FakeResponse(200, ["not", "an", "object"]),
        FakeResponse(200, {"username": "missing-id"}),
    ],
    ids=["invalid-json", "non-object", "missing-id"],
)
async def test_fetch_user_malformed_payload_raises_decode_error(
    monkeypatch: MonkeyPatch, provider: InstagramProvider, response: FakeResponse
) -> None:
    patch_http_client(monkeypatch, FakeAsyncHttpClient(get_response=response))

    with pytest.raises(DecodeError):
        await provider.fetch_user(InstagramSession(access_token="at"))


@pytest.mark.asyncio
async def test_exchange_code_happy_path(
    monkeypatch: MonkeyPatch, provider: InstagramProvider
) -> None:
    fake_client = FakeAsyncHttpClient(
        post_response=FakeResponse(200, {"access_token": "at", "user_id": 42})
    )
    patch_http_client(monkeypatch, fake_client)

    token = await provider.exchange_code("code")

    assert token.access_token == "at"
    assert token.token_type == "Bearer"
    assert token.expiry is None
    assert token.extra == {"user_id": 42}
    assert token.valid

    url, kwargs = fake_client.post_calls[0]
    assert url == "https://api.instagram.com/oauth/access_token"
    assert kwargs["data"] == {
        "grant_type": "authorization_code",
        "client_id": "client_id",
        "client_secret": "secret",
        "redirect_uri": "http://localhost/callback",
        "code": "code",
    }


@pytest.mark.asyncio
async def test_exchange_code_sets_expiry_from_expires_in(
    monkeypatch: MonkeyPatch, provider: InstagramProvider
) -> None:
    fake_client = FakeAsyncHttpClient(
        post_response=FakeResponse(200, {"access_token": "at", "expires_in": 3600})
    )
    patch_http_client(monkeypatch, fake_client)

    token = await provider.exchange_code("code")

    assert token.expiry is not None
    assert token.expiry > datetime.now(timezone.utc)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        FakeResponse(400, {"error_type": "OAuthException", "error_message": "bad code"}),
        FakeResponseJsonError(200, None),
        FakeResponse(200, "not-an-object"),
        FakeResponse(200, {"error": "invalid_grant"}),
        FakeResponse(200, {"access_token": "at", "expires_in": 1e20}),
    ],
    ids=["non-200", "invalid-json", "non-object", "oauth-error", "expiry-overflow"],
)
async def test_exchange_code_failures_raise_exchange_failed(
    monkeypatch: MonkeyPatch, provider: InstagramProvider, response: FakeResponse
) -> None:
    patch_http_client(monkeypatch, FakeAsyncHttpClient(post_response=response))

    with pytest.raises(ExchangeFailedError) as excinfo:
        await provider.exchange_code("code")
    assert isinstance(excinfo.value, ProviderError)
    assert excinfo.value.error == "exchange_failed"


@pytest.mark.asyncio
async def test_exchange_code_non_200_keeps_status_code(
    monkeypatch: MonkeyPatch, provider: InstagramProvider
) -> None:
    response = FakeResponse(400, {"error_type": "OAuthException", "code": 400})
    patch_http_client(monkeypatch, FakeAsyncHttpClient(post_response=response))

    with pytest.raises(ExchangeFailedError) as excinfo:
        await provider.exchange_code("code")
    assert excinfo.value.status_code == 400
    assert "OAuthException" in str(excinfo.value)


@pytest.mark.asyncio
async def test_exchange_code_transport_error_raises_exchange_failed() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    provider = InstagramProvider.create(
        "cid",
        "secret",
        "http://cb",
        http_client_factory=lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )

    with pytest.raises(ExchangeFailedError) as excinfo:
        await provider.exchange_code("code")
    assert isinstance(excinfo.value.__cause__, httpx.ConnectError)
