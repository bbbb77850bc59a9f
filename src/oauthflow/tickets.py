"""Identity and ticket types produced by the OAuth flow.

A ticket pairs a claims identity with the properties that travelled
through the authorization redirect. A ticket without an identity is an
authentication failure; its properties carry a human-readable message.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace

CLAIM_VALUE_STRING = "http://www.w3.org/2001/XMLSchema#string"
DEFAULT_NAME_CLAIM = "name"
DEFAULT_ROLE_CLAIM = "role"

REDIRECT_KEY = ".redirect"
MESSAGE_KEY = "message"


@dataclass(frozen=True)
class Claim:
    """A single statement about the authenticated subject."""

    type: str
    value: str
    value_type: str = CLAIM_VALUE_STRING
    issuer: str = "LOCAL AUTHORITY"


@dataclass
class ClaimsIdentity:
    """A set of claims issued under an authentication scheme.

    The identity counts as authenticated only when it carries a
    non-empty authentication type.
    """

    authentication_type: str | None = None
    claims: list[Claim] = field(default_factory=list)
    name_claim_type: str = DEFAULT_NAME_CLAIM
    role_claim_type: str = DEFAULT_ROLE_CLAIM

    @property
    def is_authenticated(self) -> bool:
        return bool(self.authentication_type)

    @property
    def name(self) -> str | None:
        claim = self.find_first(self.name_claim_type)
        return claim.value if claim else None

    def add_claim(self, claim: Claim) -> None:
        self.claims.append(claim)

    def find_first(self, claim_type: str) -> Claim | None:
        for claim in self.claims:
            if claim.type == claim_type:
                return claim
        return None

    def find_all(self, claim_type: str) -> list[Claim]:
        return [claim for claim in self.claims if claim.type == claim_type]

    def with_authentication_type(self, authentication_type: str) -> ClaimsIdentity:
        """Copy this identity under a different authentication type."""
        return replace(self, authentication_type=authentication_type, claims=list(self.claims))


@dataclass
class AuthProperties:
    """String key/value state carried across the authorization round trip.

    The redirect target is stored in the same bag under a reserved key so
    that it survives state serialization without special handling.
    """

    items: dict[str, str] = field(default_factory=dict)

    @property
    def redirect_uri(self) -> str | None:
        return self.items.get(REDIRECT_KEY)

    @redirect_uri.setter
    def redirect_uri(self, value: str | None) -> None:
        if value is None:
            self.items.pop(REDIRECT_KEY, None)
        else:
            self.items[REDIRECT_KEY] = value


@dataclass
class Ticket:
    """Outcome of the callback: an identity plus its properties."""

    identity: ClaimsIdentity | None
    properties: AuthProperties = field(default_factory=AuthProperties)
    # Underlying cause when the ticket denotes a failure
    failure: BaseException | None = None

    @property
    def succeeded(self) -> bool:
        return self.identity is not None and self.identity.is_authenticated

    @property
    def message(self) -> str | None:
        return self.properties.items.get(MESSAGE_KEY)


def error_ticket(
    message: str,
    properties: AuthProperties | None = None,
    failure: BaseException | None = None,
) -> Ticket:
    """Build a failure ticket carrying ``message`` in its properties."""
    properties = properties if properties is not None else AuthProperties()
    properties.items[MESSAGE_KEY] = message
    return Ticket(identity=None, properties=properties, failure=failure)
