"""OAuth flow configuration.

``FlowOptions`` is the immutable configuration a handler runs with.
``OAuthSettings`` loads the same values from environment variables
(``OAUTHFLOW_`` prefix), a ``.env`` file, or a YAML/TOML file.

Example: OAUTHFLOW_CLIENT_ID=abc sets client_id.
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx
import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from oauthflow.events import FlowEvents
from oauthflow.state import SignedStateCodec

DEFAULT_SCHEME = "OAuth"
DEFAULT_SCOPES = ("user",)
DEFAULT_BACKCHANNEL_TIMEOUT = 60.0
DEFAULT_MAX_RESPONSE_SIZE = 10 * 1024 * 1024  # 10 MB
DEFAULT_CORRELATION_MAX_AGE = 900

_MISSING_OPTION = "Missing required option: {0}"


@dataclass(frozen=True)
class FlowOptions:
    """Configuration for an OAuth authorization code flow.

    Validated eagerly: a handler can never be built from options that
    lack a client id, client secret, endpoint or callback path.
    """

    client_id: str
    client_secret: str = field(repr=False)
    authorization_endpoint: str
    token_endpoint: str
    callback_path: str
    scopes: tuple[str, ...] = DEFAULT_SCOPES
    backchannel_timeout: float = DEFAULT_BACKCHANNEL_TIMEOUT
    save_tokens_as_claims: bool = False
    # None means "use the sign-in collaborator's scheme"
    sign_in_scheme: str | None = None
    scheme: str = DEFAULT_SCHEME
    events: FlowEvents = field(default_factory=FlowEvents, compare=False)
    user_information_endpoint: str | None = None
    claims_issuer: str | None = None
    automatic_challenge: bool = False
    path_base: str = ""
    correlation_cookie_max_age: int = DEFAULT_CORRELATION_MAX_AGE
    backchannel_transport: httpx.AsyncBaseTransport | None = field(
        default=None, compare=False, repr=False
    )
    backchannel_max_response_size: int = DEFAULT_MAX_RESPONSE_SIZE

    def __post_init__(self) -> None:
        """Validate required options and normalise collections."""
        for name in (
            "scheme",
            "client_id",
            "client_secret",
            "authorization_endpoint",
            "token_endpoint",
            "callback_path",
        ):
            if not getattr(self, name):
                raise ValueError(_MISSING_OPTION.format(name))

        if not self.callback_path.startswith("/"):
            raise ValueError("callback_path must start with '/'")
        if self.path_base and not self.path_base.startswith("/"):
            raise ValueError("path_base must be empty or start with '/'")
        if self.backchannel_timeout <= 0:
            raise ValueError("backchannel_timeout must be positive")

        if isinstance(self.scopes, str):
            raise ValueError("scopes must be a sequence of scope names, not a string")
        object.__setattr__(self, "scopes", tuple(self.scopes))
        if self.events is None:
            object.__setattr__(self, "events", FlowEvents())

    @property
    def issuer(self) -> str:
        return self.claims_issuer or self.scheme


def load_config_from_file(path: str | Path, section: str = "oauth") -> dict[str, Any]:
    """Read flow settings from a YAML or TOML file.

    Settings may sit at the top level or under a ``section`` table, so
    the flow can share a file with the rest of an application's config.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: On an unknown suffix, a syntax error or a non-mapping document
    """
    path = Path(path)
    if path.suffix in (".yaml", ".yml"):
        fmt, parse, parse_error = "YAML", yaml.safe_load, yaml.YAMLError
    elif path.suffix == ".toml":
        fmt, parse, parse_error = "TOML", tomllib.loads, tomllib.TOMLDecodeError
    else:
        raise ValueError(f"Unsupported config format: {path.suffix}")

    try:
        data = parse(path.read_text(encoding="utf-8")) or {}
    except parse_error as e:
        raise ValueError(f"Invalid {fmt} in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    settings = data.get(section, data)
    if not isinstance(settings, dict):
        raise ValueError(f"Config section '{section}' in {path} must be a mapping")
    return settings


class OAuthSettings(BaseSettings):
    """OAuth flow settings loaded from the environment.

    All settings can be overridden via environment variables:
    - OAUTHFLOW_CLIENT_ID / OAUTHFLOW_CLIENT_SECRET: client credentials
    - OAUTHFLOW_AUTHORIZATION_ENDPOINT / OAUTHFLOW_TOKEN_ENDPOINT: provider URLs
    - OAUTHFLOW_SCOPES: JSON list, e.g. '["user", "repo"]'
    """

    model_config = SettingsConfigDict(
        env_prefix="OAUTHFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    client_id: str = ""
    client_secret: str = Field(default="", repr=False)
    authorization_endpoint: str = ""
    token_endpoint: str = ""
    callback_path: str = ""
    user_information_endpoint: str | None = None
    scopes: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SCOPES),
        description="Scopes to request, space-joined on the wire.",
    )
    backchannel_timeout: float = Field(
        default=DEFAULT_BACKCHANNEL_TIMEOUT,
        description="Timeout in seconds for the token endpoint call.",
    )
    save_tokens_as_claims: bool = False
    sign_in_scheme: str | None = None
    scheme: str = DEFAULT_SCHEME
    automatic_challenge: bool = Field(
        default=False,
        description="Challenge on any 401, not only on explicit challenges.",
    )
    path_base: str = ""
    state_secret: str | None = Field(
        default=None,
        repr=False,
        description="Secret for signing the state parameter.",
    )

    @classmethod
    def from_file(cls, path: str | Path) -> OAuthSettings:
        """Load settings from a YAML/TOML file (an ``oauth`` table if present)."""
        return cls(**load_config_from_file(path))

    def to_options(
        self,
        events: FlowEvents | None = None,
        backchannel_transport: httpx.AsyncBaseTransport | None = None,
    ) -> FlowOptions:
        return FlowOptions(
            client_id=self.client_id,
            client_secret=self.client_secret,
            authorization_endpoint=self.authorization_endpoint,
            token_endpoint=self.token_endpoint,
            callback_path=self.callback_path,
            scopes=tuple(self.scopes),
            backchannel_timeout=self.backchannel_timeout,
            save_tokens_as_claims=self.save_tokens_as_claims,
            sign_in_scheme=self.sign_in_scheme,
            scheme=self.scheme,
            events=events or FlowEvents(),
            user_information_endpoint=self.user_information_endpoint,
            automatic_challenge=self.automatic_challenge,
            path_base=self.path_base,
            backchannel_transport=backchannel_transport,
        )

    def build_state_codec(self) -> SignedStateCodec:
        """Create the state codec, signing with ``state_secret`` when set."""
        secret = self.state_secret.encode("utf-8") if self.state_secret else None
        return SignedStateCodec(secret, purpose=self.scheme)
