"""Tamper-evident encoding of AuthProperties for the ``state`` parameter.

The handler treats the codec as an opaque protect/unprotect service.
``SignedStateCodec`` is the default: a JSON payload signed with
HMAC-SHA256 under a key derived from a secret and a purpose string.

Token layout::

    base64url(json payload) "." base64url(hmac-sha256 signature)
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import secrets
import time
from typing import Protocol

import structlog

from oauthflow.tickets import AuthProperties

logger = structlog.get_logger()

DEFAULT_STATE_MAX_AGE = 900.0


class StateCodec(Protocol):
    """Converts properties to and from an opaque state string."""

    def protect(self, properties: AuthProperties) -> str: ...

    def unprotect(self, protected: str | None) -> AuthProperties | None: ...


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _b64decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


class SignedStateCodec:
    """HMAC-signed JSON state codec.

    Tokens signed under one purpose do not verify under another, so two
    flows sharing a secret cannot replay each other's state.
    """

    def __init__(
        self,
        secret_key: bytes | None = None,
        *,
        purpose: str = "OAuth",
        max_age: float | None = DEFAULT_STATE_MAX_AGE,
    ) -> None:
        """Initialize the codec.

        Args:
            secret_key: Signing secret. A random per-process secret is used
                when omitted, so state will not survive a restart or verify
                on another instance.
            purpose: Scheme name or other discriminator mixed into the key.
            max_age: Reject state older than this many seconds (None disables).
        """
        if secret_key is None:
            secret_key = secrets.token_bytes(32)
            logger.debug("State codec using ephemeral secret", purpose=purpose)
        self._key = hmac.new(secret_key, purpose.encode("utf-8"), hashlib.sha256).digest()
        self._max_age = max_age

    def _sign(self, payload: bytes) -> bytes:
        return hmac.new(self._key, payload, hashlib.sha256).digest()

    def protect(self, properties: AuthProperties) -> str:
        payload = json.dumps(
            {"items": properties.items, "iat": int(time.time())},
            separators=(",", ":"),
            sort_keys=True,
        ).encode("utf-8")
        return f"{_b64encode(payload)}.{_b64encode(self._sign(payload))}"

    def unprotect(self, protected: str | None) -> AuthProperties | None:
        """Decode and verify a state string; None when invalid."""
        if not protected or "." not in protected:
            return None

        encoded_payload, _, encoded_signature = protected.partition(".")
        try:
            payload = _b64decode(encoded_payload)
            signature = _b64decode(encoded_signature)
        except (binascii.Error, ValueError):
            return None

        if not hmac.compare_digest(signature, self._sign(payload)):
            logger.debug("State signature mismatch")
            return None

        try:
            data = json.loads(payload)
        except ValueError:
            return None

        if not isinstance(data, dict):
            return None
        items = data.get("items")
        if not isinstance(items, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in items.items()
        ):
            return None

        issued_at = data.get("iat")
        if self._max_age is not None:
            if not isinstance(issued_at, int) or time.time() - issued_at > self._max_age:
                logger.debug("State expired", issued_at=issued_at)
                return None

        return AuthProperties(items=dict(items))
