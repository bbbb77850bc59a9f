"""Builds the authentication ticket from exchanged tokens."""

from __future__ import annotations

from typing import TYPE_CHECKING

from oauthflow.context import FlowContext
from oauthflow.events import CreatingTicketContext, FlowOutcome
from oauthflow.tickets import AuthProperties, Claim, ClaimsIdentity, Ticket
from oauthflow.tokens import TokenExchangeClient, TokenResponse

if TYPE_CHECKING:
    from oauthflow.config import FlowOptions


class TicketFactory:
    """Creates tickets and runs the creating-ticket hook once per exchange."""

    def __init__(self, options: FlowOptions, backchannel: TokenExchangeClient) -> None:
        self._options = options
        self._backchannel = backchannel

    def add_token_claims(self, identity: ClaimsIdentity, tokens: TokenResponse) -> None:
        issuer = self._options.issuer
        for claim_type, value in (
            ("access_token", tokens.access_token),
            ("refresh_token", tokens.refresh_token),
            ("token_type", tokens.token_type),
            ("expires_in", tokens.expires_in),
        ):
            if value:
                identity.add_claim(Claim(claim_type, value, issuer=issuer))

    async def create(
        self,
        flow: FlowContext,
        identity: ClaimsIdentity,
        properties: AuthProperties,
        tokens: TokenResponse,
    ) -> tuple[Ticket | None, FlowOutcome]:
        """Build a ticket and let the creating-ticket hook enrich or replace it.

        Returns:
            The resulting ticket (None if the hook discarded it) and the
            outcome the hook decided
        """
        if self._options.save_tokens_as_claims:
            self.add_token_claims(identity, tokens)

        ticket = Ticket(identity=identity, properties=properties)
        context = CreatingTicketContext(flow, self._options, ticket, tokens, self._backchannel)
        outcome = await self._options.events.creating_ticket(context)
        return context.ticket, outcome
