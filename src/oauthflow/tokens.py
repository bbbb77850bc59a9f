"""Backchannel token exchange against the provider's token endpoint.

Failures are returned, never raised: a transport error, non-2xx status
or unreadable body all produce a ``TokenResponse`` carrying ``error``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx
import structlog

if TYPE_CHECKING:
    from oauthflow.config import FlowOptions

logger = structlog.get_logger()

USER_AGENT = "oauthflow"


class TokenExchangeError(Exception):
    """The token or user information endpoint returned an unusable response."""


def _as_str(value: Any) -> str | None:
    """Coerce a JSON scalar to a string; anything else counts as absent."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(value)
    return None


@dataclass
class TokenResponse:
    """Parsed token endpoint response.

    Built through ``success`` or ``failed`` so that a response never has
    both an access token and an error.
    """

    payload: dict[str, Any] = field(default_factory=dict)
    access_token: str | None = None
    token_type: str | None = None
    refresh_token: str | None = None
    expires_in: str | None = None
    error: BaseException | None = None

    @classmethod
    def success(cls, payload: dict[str, Any]) -> TokenResponse:
        return cls(
            payload=payload,
            access_token=_as_str(payload.get("access_token")),
            token_type=_as_str(payload.get("token_type")),
            refresh_token=_as_str(payload.get("refresh_token")),
            expires_in=_as_str(payload.get("expires_in")),
        )

    @classmethod
    def failed(cls, error: BaseException) -> TokenResponse:
        return cls(error=error)


def _display(response: httpx.Response) -> str:
    headers = ", ".join(f"{name}: {value}" for name, value in response.headers.items())
    return f"Status: {response.status_code};Headers: {headers};Body: {response.text};"


class TokenExchangeClient:
    """Exchanges authorization codes for tokens over a shared HTTP client.

    One client is shared by all requests a handler serves. Pass
    ``client`` to supply a preconfigured ``httpx.AsyncClient``, or set
    ``backchannel_transport`` on the options to swap the transport only.
    """

    def __init__(self, options: FlowOptions, client: httpx.AsyncClient | None = None):
        self._options = options
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(options.backchannel_timeout),
            transport=options.backchannel_transport,
            headers={"User-Agent": USER_AGENT},
        )

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def exchange(self, code: str, redirect_uri: str) -> TokenResponse:
        """Exchange an authorization code for tokens.

        Args:
            code: The authorization code from the callback
            redirect_uri: The redirect URI sent with the authorization request

        Returns:
            TokenResponse with tokens on success, or ``error`` set on failure
        """
        options = self._options
        data = {
            "client_id": options.client_id,
            "redirect_uri": redirect_uri,
            "client_secret": options.client_secret,
            "code": code,
            "grant_type": "authorization_code",
        }

        try:
            response = await self._client.post(
                options.token_endpoint,
                data=data,
                headers={"Accept": "application/json"},
            )
        except Exception as e:
            # Custom transports may raise outside httpx's hierarchy
            logger.error(
                "OAuth token endpoint unreachable",
                endpoint=options.token_endpoint,
                error=str(e),
                error_type=type(e).__name__,
            )
            return TokenResponse.failed(e)

        if len(response.content) > options.backchannel_max_response_size:
            logger.error("OAuth token response too large", size=len(response.content))
            return TokenResponse.failed(
                TokenExchangeError("OAuth token endpoint failure: response body too large")
            )

        if not response.is_success:
            logger.error(
                "OAuth token endpoint failure",
                endpoint=options.token_endpoint,
                status=response.status_code,
            )
            return TokenResponse.failed(
                TokenExchangeError("OAuth token endpoint failure: " + _display(response))
            )

        try:
            payload = response.json()
        except ValueError as e:
            logger.error("OAuth token response is not JSON", error=str(e))
            return TokenResponse.failed(
                TokenExchangeError(f"OAuth token response is not valid JSON: {e}")
            )

        if not isinstance(payload, dict):
            return TokenResponse.failed(
                TokenExchangeError("OAuth token response is not a JSON object")
            )

        return TokenResponse.success(payload)

    async def fetch_user_info(self, endpoint: str, access_token: str) -> dict[str, Any]:
        """GET a JSON user profile with a bearer token.

        Raises:
            TokenExchangeError: On transport failure, non-2xx or non-object body
        """
        try:
            response = await self._client.get(
                endpoint,
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Accept": "application/json",
                },
            )
        except httpx.HTTPError as e:
            raise TokenExchangeError(f"User information request failed: {e}") from e

        if not response.is_success:
            raise TokenExchangeError("User information endpoint failure: " + _display(response))

        try:
            user_info = response.json()
        except ValueError as e:
            raise TokenExchangeError(f"User information response is not valid JSON: {e}") from e

        if not isinstance(user_info, dict):
            raise TokenExchangeError("User information response is not a JSON object")
        return user_info
