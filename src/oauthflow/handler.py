"""OAuth 2.0 authorization code flow handler.

This module provides the OAuthFlowHandler class which drives both halves
of the protocol for a single request:

- Challenge: stamp a correlation marker, protect the properties into
  ``state`` and redirect the user agent to the authorization endpoint
- Callback: validate ``state`` and correlation, exchange the code for
  tokens, build the ticket, then sign in or report the failure

Protocol and transport failures never raise; they become error tickets
and are offered to the remote-failure hook. Only a remote failure that
no hook claims escapes, as ``UnhandledRemoteFailureError``.

The handler holds no per-request state, so one instance serves
concurrent requests.
"""

from __future__ import annotations

from urllib.parse import quote, urlencode

import httpx
import structlog

from oauthflow.config import FlowOptions
from oauthflow.context import FlowContext
from oauthflow.correlation import CorrelationGuard
from oauthflow.events import (
    FlowOutcome,
    RedirectContext,
    RemoteFailureContext,
    TicketReceivedContext,
)
from oauthflow.factory import TicketFactory
from oauthflow.session import SignIn
from oauthflow.state import SignedStateCodec, StateCodec
from oauthflow.tickets import AuthProperties, ClaimsIdentity, Ticket, error_ticket
from oauthflow.tokens import TokenExchangeClient

logger = structlog.get_logger()

INVALID_RETURN_STATE = "Invalid return state, unable to redirect."


class RemoteAuthenticationError(Exception):
    """The callback did not produce an authenticated identity."""


class UnhandledRemoteFailureError(Exception):
    """A remote failure that no hook handled or skipped."""

    def __init__(self, failure: BaseException) -> None:
        super().__init__("Unhandled remote failure.")
        self.failure = failure


def add_query_string(uri: str, name: str, value: str) -> str:
    """Append one query parameter to ``uri``, keeping any fragment last."""
    base, hash_mark, fragment = uri.partition("#")
    separator = "&" if "?" in base else "?"
    return f"{base}{separator}{quote(name, safe='')}={quote(value, safe='')}{hash_mark}{fragment}"


class OAuthFlowHandler:
    """Runs the challenge and callback paths of the authorization code flow."""

    def __init__(
        self,
        options: FlowOptions,
        state_codec: StateCodec | None = None,
        sign_in: SignIn | None = None,
        backchannel: httpx.AsyncClient | None = None,
    ):
        """Initialize the handler.

        Args:
            options: Validated flow options
            state_codec: Codec for the ``state`` parameter (signed JSON by default)
            sign_in: Host sign-in collaborator; its ``scheme`` is the default
                sign-in scheme
            backchannel: Preconfigured HTTP client for the token endpoint
        """
        self.options = options
        self.state_codec = state_codec or SignedStateCodec(purpose=options.scheme)
        self.sign_in = sign_in
        self.sign_in_scheme = options.sign_in_scheme or (sign_in.scheme if sign_in else None)
        self.backchannel = TokenExchangeClient(options, backchannel)
        self.correlation = CorrelationGuard(options)
        self.tickets = TicketFactory(options, self.backchannel)

    async def aclose(self) -> None:
        await self.backchannel.aclose()

    # URL helpers

    def build_redirect_uri(self, flow: FlowContext) -> str:
        return flow.request_prefix() + self.options.path_base + self.options.callback_path

    def build_current_uri(self, flow: FlowContext) -> str:
        return flow.request_prefix() + self.options.path_base + flow.request.path_qs

    def format_scope(self) -> str:
        # OAuth2 3.3 space separated
        return " ".join(self.options.scopes)

    def build_challenge_url(self, properties: AuthProperties, redirect_uri: str) -> str:
        params = {
            "client_id": self.options.client_id,
            "scope": self.format_scope(),
            "response_type": "code",
            "redirect_uri": redirect_uri,
            "state": self.state_codec.protect(properties),
        }
        endpoint = self.options.authorization_endpoint
        separator = "&" if "?" in endpoint else "?"
        return f"{endpoint}{separator}{urlencode(params, quote_via=quote)}"

    # Challenge

    async def challenge(self, flow: FlowContext, properties: AuthProperties | None = None) -> bool:
        """Redirect the user agent to the authorization endpoint.

        Args:
            flow: The current request context
            properties: State to carry through the round trip

        Returns:
            True if a response was written (redirect or hook response)
        """
        if properties is None:
            properties = AuthProperties()
        if not properties.redirect_uri:
            properties.redirect_uri = self.build_current_uri(flow)

        # OAuth2 10.12 CSRF
        self.correlation.stamp(flow, properties)

        authorization_url = self.build_challenge_url(properties, self.build_redirect_uri(flow))
        context = RedirectContext(flow, self.options, properties, authorization_url)
        outcome = await self.options.events.redirect_to_authorization_endpoint(context)

        if outcome is FlowOutcome.CONTINUE:
            flow.redirect(context.redirect_uri)
            logger.debug("OAuth challenge issued", scheme=self.options.scheme)
            return True
        return outcome is FlowOutcome.HANDLED_RESPONSE

    # Callback

    def is_callback(self, flow: FlowContext) -> bool:
        return flow.path == self.options.callback_path

    def _fail(
        self,
        message: str,
        properties: AuthProperties | None = None,
        failure: BaseException | None = None,
    ) -> tuple[Ticket, FlowOutcome]:
        logger.warning("OAuth authentication failed", scheme=self.options.scheme, reason=message)
        return error_ticket(message, properties, failure), FlowOutcome.CONTINUE

    async def authenticate(self, flow: FlowContext) -> Ticket | None:
        """Validate the callback and build a ticket (error ticket on failure)."""
        ticket, _ = await self._authenticate(flow)
        return ticket

    async def _authenticate(self, flow: FlowContext) -> tuple[Ticket | None, FlowOutcome]:
        query = flow.request.query

        errors = query.getall("error", [])
        if errors:
            message = "".join(errors)
            error_description = query.get("error_description")
            if error_description:
                message += ";Description=" + error_description
            error_uri = query.get("error_uri")
            if error_uri:
                message += ";Uri=" + error_uri
            return self._fail(message)

        properties = self.state_codec.unprotect(query.get("state"))
        if properties is None:
            return self._fail("The oauth state was missing or invalid.")

        # OAuth2 10.12 CSRF
        if not self.correlation.validate(flow, properties):
            return self._fail("Correlation failed.", properties)

        code = query.get("code")
        if not code:
            return self._fail("Code was not found.", properties)

        tokens = await self.backchannel.exchange(code, self.build_redirect_uri(flow))
        if tokens.error is not None:
            return self._fail(str(tokens.error), properties, tokens.error)
        if not tokens.access_token:
            return self._fail("Failed to retrieve access token.", properties)

        identity = ClaimsIdentity(authentication_type=self.options.scheme)
        try:
            return await self.tickets.create(flow, identity, properties, tokens)
        except Exception as e:
            return self._fail(str(e) or type(e).__name__, properties, e)

    async def invoke(self, flow: FlowContext) -> bool:
        """Process the request if it targets the callback path.

        Returns:
            True if the request was fully handled, False to pass it on

        Raises:
            UnhandledRemoteFailureError: Authentication failed and no hook
                handled or skipped the failure
        """
        if not self.is_callback(flow):
            return False

        ticket, outcome = await self._authenticate(flow)
        if outcome is not FlowOutcome.CONTINUE:
            logger.debug("Creating ticket hook preempted the callback", outcome=outcome.value)
            return outcome is FlowOutcome.HANDLED_RESPONSE

        if ticket is None or not ticket.succeeded:
            return await self._remote_failure(flow, ticket)

        context = TicketReceivedContext(
            flow,
            self.options,
            ticket,
            sign_in_scheme=self.sign_in_scheme,
            redirect_uri=ticket.properties.redirect_uri,
        )
        outcome = await self.options.events.ticket_received(context)
        if outcome is FlowOutcome.HANDLED_RESPONSE:
            logger.debug("Ticket received hook handled the response")
            return True
        if outcome is FlowOutcome.SKIPPED:
            logger.debug("Ticket received hook skipped")
            return False

        identity = context.identity
        if context.sign_in_scheme and identity is not None:
            if identity.authentication_type != context.sign_in_scheme:
                identity = identity.with_authentication_type(context.sign_in_scheme)
            if self.sign_in is None:
                logger.warning("No sign-in collaborator configured", scheme=context.sign_in_scheme)
            else:
                await self.sign_in.sign_in(flow, context.properties, identity)

        if not context.request_completed and context.redirect_uri:
            redirect_uri = context.redirect_uri
            if context.identity is None:
                # Hint to the target that sign-in failed
                redirect_uri = add_query_string(redirect_uri, "error", "access_denied")
            flow.redirect(redirect_uri)
            context.complete_request()

        return context.request_completed

    async def _remote_failure(self, flow: FlowContext, ticket: Ticket | None) -> bool:
        message = (ticket.message if ticket else None) or INVALID_RETURN_STATE
        failure = RemoteAuthenticationError(message)
        if ticket is not None and ticket.failure is not None:
            failure.__cause__ = ticket.failure
        logger.warning("OAuth remote failure", scheme=self.options.scheme, reason=message)

        context = RemoteFailureContext(flow, self.options, failure, ticket)
        outcome = await self.options.events.remote_failure(context)
        if outcome is FlowOutcome.HANDLED_RESPONSE:
            return True
        if outcome is FlowOutcome.SKIPPED:
            return False

        raise UnhandledRemoteFailureError(context.failure) from context.failure
