"""Instagram OAuth2 provider adapter for a host authentication framework.

The adapter builds Instagram's authorization URL, exchanges the callback code
for an access token, fetches the user's ``id`` and ``username`` and
(de)serializes the in-flight session so the host can carry it across the
redirect.

## Quick Example

```python
from instagram_oauth import InstagramProvider

provider = InstagramProvider.create("client-id", "client-secret", "https://app/callback")
session = provider.begin_auth(state="csrf-token")
redirect_to(session.get_auth_url())
cookie = session.marshal()

# ... Instagram redirects back with ?code=...&state=...
session = provider.unmarshal_session(cookie)
await session.authorize(provider, request.query_params)
user = await provider.fetch_user(session)
```
"""

from .config import (
    DEFAULT_PROVIDER_NAME,
    DEFAULT_SCOPE,
    InstagramAuthConfigModel,
    load_instagram_config,
)
from .contracts import (
    DecodeError,
    ExchangeFailedError,
    InvalidTokenError,
    MissingCredentialError,
    NotInitializedError,
    Params,
    Provider,
    ProviderError,
    ProviderHTTPError,
    Session,
    UnsupportedError,
    User,
)
from .provider import InstagramProvider
from .session import InstagramSession, Token

__all__ = [
    # Configuration
    "DEFAULT_PROVIDER_NAME",
    "DEFAULT_SCOPE",
    "InstagramAuthConfigModel",
    "load_instagram_config",
    # Contracts
    "Params",
    "Provider",
    "Session",
    "User",
    # Errors
    "DecodeError",
    "ExchangeFailedError",
    "InvalidTokenError",
    "MissingCredentialError",
    "NotInitializedError",
    "ProviderError",
    "ProviderHTTPError",
    "UnsupportedError",
    # Instagram
    "InstagramProvider",
    "InstagramSession",
    "Token",
]
