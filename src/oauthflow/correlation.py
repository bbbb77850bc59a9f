"""CSRF correlation between the challenge redirect and the callback.

On challenge a random marker is written both into the properties (which
travel inside the signed ``state``) and into a short-lived cookie. On
callback the two must match exactly. The marker is single use: it is
removed from the properties, deleted on the response and hidden from
any later lookup on the same request, whatever the result.
"""

from __future__ import annotations

import secrets
from typing import TYPE_CHECKING

import structlog

from oauthflow.context import FlowContext
from oauthflow.tickets import AuthProperties

if TYPE_CHECKING:
    from oauthflow.config import FlowOptions

logger = structlog.get_logger()

CORRELATION_KEY_PREFIX = ".xsrf."
CORRELATION_COOKIE_PREFIX = ".oauthflow.correlation."
MARKER_BYTES = 32


class CorrelationGuard:
    """Stamps and validates correlation markers for one flow scheme."""

    def __init__(self, options: FlowOptions) -> None:
        self._options = options
        self.properties_key = CORRELATION_KEY_PREFIX + options.scheme
        self.cookie_name = CORRELATION_COOKIE_PREFIX + options.scheme

    def stamp(self, flow: FlowContext, properties: AuthProperties) -> None:
        marker = secrets.token_urlsafe(MARKER_BYTES)
        properties.items[self.properties_key] = marker
        flow.set_cookie(
            self.cookie_name,
            marker,
            max_age=self._options.correlation_cookie_max_age,
            httponly=True,
            secure=flow.is_secure,
            samesite="Lax",
            path="/",
        )

    def validate(self, flow: FlowContext, properties: AuthProperties) -> bool:
        """Check the marker in ``properties`` against the inbound cookie.

        Returns:
            True only if both are present and equal
        """
        cookie = flow.get_cookie(self.cookie_name)
        expected = properties.items.pop(self.properties_key, None)

        if cookie is not None:
            flow.delete_cookie(self.cookie_name)

        if not cookie:
            logger.warning("Correlation cookie not found", cookie=self.cookie_name)
            return False
        if not expected:
            logger.warning("Correlation marker missing from state")
            return False
        if not secrets.compare_digest(cookie.encode("utf-8"), expected.encode("utf-8")):
            logger.warning("Correlation marker mismatch")
            return False
        return True
