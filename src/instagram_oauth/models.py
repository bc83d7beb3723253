"""Base Pydantic models for instagram-oauth.

This module provides the base model class that the package's Pydantic models
inherit from. It establishes consistent configuration across all models:

- Strict field validation (no extra fields allowed)
- Immutable instances, safe to share between concurrent auth flows

Models that need mutability (e.g., the in-flight ``InstagramSession``) override
``model_config`` explicitly.

Example:
    >>> from instagram_oauth.models import OAuthBaseModel
    >>>
    >>> class Endpoint(OAuthBaseModel):
    ...     url: str
    >>>
    >>> Endpoint(url="https://example.com").model_dump()
    {'url': 'https://example.com'}
"""

from pydantic import BaseModel, ConfigDict


class OAuthBaseModel(BaseModel):
    """Base model for all instagram-oauth Pydantic models.

    - extra="forbid": Rejects any fields not defined in the model
    - frozen=True: Makes instances immutable
    """

    model_config = ConfigDict(extra="forbid", frozen=True)
