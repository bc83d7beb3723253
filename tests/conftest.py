"""
Global pytest configuration and fixtures.
"""

import pytest

from instagram_oauth.provider import InstagramProvider


@pytest.fixture
def provider() -> InstagramProvider:
    return InstagramProvider.create("client_id", "secret", "http://localhost/callback")
