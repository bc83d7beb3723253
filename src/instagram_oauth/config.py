"""Configuration for the Instagram provider.

The provider can be built directly from arguments or from an
``InstagramAuthConfigModel``, usually loaded from YAML::

    instagram:
      client_id: ${INSTAGRAM_KEY}
      client_secret: ${INSTAGRAM_SECRET}
      callback_url: https://app.example.com/auth/instagram/callback
      scopes: [basic]

Values written exactly as ``${VAR_NAME}`` are read from the environment.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, ValidationError

from instagram_oauth.models import OAuthBaseModel

logger = logging.getLogger(__name__)

AUTH_URL = "https://api.instagram.com/oauth/authorize"
TOKEN_URL = "https://api.instagram.com/oauth/access_token"
PROFILE_URL = "https://graph.instagram.com/me"

DEFAULT_SCOPE = "basic"
DEFAULT_PROVIDER_NAME = "instagram"

CONFIG_ENV_VAR = "INSTAGRAM_OAUTH_CONFIG"
CONFIG_SECTION = "instagram"

ENV_VAR_PATTERN = re.compile(r"\${([A-Za-z0-9_]+)}")


class InstagramAuthConfigModel(OAuthBaseModel):
    """Instagram OAuth provider configuration.

    Endpoint URLs default to Instagram's public endpoints and only need to be
    overridden when pointing the adapter at a proxy or a test double.
    """

    client_id: str
    client_secret: str
    callback_url: str
    # Empty means DEFAULT_SCOPE is requested.
    scopes: list[str] = Field(default_factory=list)
    name: str = DEFAULT_PROVIDER_NAME
    auth_url: str = AUTH_URL
    token_url: str = TOKEN_URL
    profile_url: str = PROFILE_URL

    @property
    def resolved_scopes(self) -> tuple[str, ...]:
        return tuple(self.scopes) if self.scopes else (DEFAULT_SCOPE,)


def load_instagram_config(config_path: Path | None = None) -> InstagramAuthConfigModel:
    """Load Instagram provider configuration from a YAML file.

    Args:
        config_path: Optional path to the YAML file.
                    If not provided, looks for:
                    1. INSTAGRAM_OAUTH_CONFIG environment variable
                    2. ./instagram.yaml

    Returns:
        Validated InstagramAuthConfigModel

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config is invalid
    """
    if config_path is None:
        env_path = os.environ.get(CONFIG_ENV_VAR)
        config_path = Path(env_path) if env_path else Path.cwd() / "instagram.yaml"

    if not config_path.exists():
        raise FileNotFoundError(f"Instagram config file not found at {config_path}")

    logger.debug(f"Loading Instagram config from: {config_path}")

    try:
        with open(config_path) as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Failed to parse YAML config file {config_path}: {e}") from e

    if not isinstance(raw_config, dict) or not isinstance(raw_config.get(CONFIG_SECTION), dict):
        raise ValueError(f"Config file {config_path} has no '{CONFIG_SECTION}' section")

    section = _resolve_env_refs(raw_config[CONFIG_SECTION])

    try:
        return InstagramAuthConfigModel.model_validate(section)
    except ValidationError as e:
        raise ValueError(f"Invalid Instagram config: {e}") from e


def _resolve_env_refs(value: Any) -> Any:
    """Replace ``${VAR}`` strings with environment values, recursively."""
    if isinstance(value, dict):
        return {key: _resolve_env_refs(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_resolve_env_refs(item) for item in value]
    if isinstance(value, str):
        match = ENV_VAR_PATTERN.fullmatch(value)
        if match:
            var_name = match.group(1)
            resolved = os.environ.get(var_name)
            if resolved is None:
                raise ValueError(f"Environment variable not found: {var_name}")
            return resolved
    return value
