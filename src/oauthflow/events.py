"""Extensibility hooks for the OAuth flow.

Four interception points are exposed, each receiving a context object:

- ``creating_ticket``: after token exchange, to enrich or replace the ticket
- ``redirect_to_authorization_endpoint``: before the challenge redirect
- ``remote_failure``: when the callback fails authentication
- ``ticket_received``: before sign-in

A hook decides the outcome either by returning a ``FlowOutcome`` or by
calling ``handle_response()`` / ``skip_to_next_middleware()`` on its
context. Hooks may be plain functions or coroutines. Each invocation
resolves to exactly one ``FlowOutcome``, which the handler reads once
the hook has completed.

Example:

    async def on_remote_failure(context):
        context.response.set_status(403)
        context.response.text = "Sign-in failed"
        return FlowOutcome.HANDLED_RESPONSE

    events = FlowEvents(on_remote_failure=on_remote_failure)
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import TYPE_CHECKING, Any, Union

from aiohttp import web

from oauthflow.context import FlowContext
from oauthflow.tickets import AuthProperties, ClaimsIdentity, Ticket
from oauthflow.tokens import TokenExchangeClient, TokenExchangeError, TokenResponse

if TYPE_CHECKING:
    from oauthflow.config import FlowOptions


class FlowOutcome(Enum):
    """Decision reported by a hook invocation."""

    CONTINUE = "continue"
    HANDLED_RESPONSE = "handled_response"
    SKIPPED = "skipped"


class BaseContext:
    """State shared by all hook contexts."""

    def __init__(self, flow: FlowContext, options: FlowOptions) -> None:
        self.flow = flow
        self.options = options
        self._outcome = FlowOutcome.CONTINUE

    @property
    def request(self) -> web.Request:
        return self.flow.request

    @property
    def response(self) -> web.Response:
        return self.flow.response

    @property
    def outcome(self) -> FlowOutcome:
        return self._outcome

    @property
    def handled_response(self) -> bool:
        return self._outcome is FlowOutcome.HANDLED_RESPONSE

    @property
    def skipped(self) -> bool:
        return self._outcome is FlowOutcome.SKIPPED

    def _decide(self, outcome: FlowOutcome) -> None:
        if self._outcome is not FlowOutcome.CONTINUE:
            raise RuntimeError(f"Hook outcome already decided: {self._outcome.value}")
        self._outcome = outcome

    def handle_response(self) -> None:
        """Stop processing; the hook has written the full response."""
        self._decide(FlowOutcome.HANDLED_RESPONSE)

    def skip_to_next_middleware(self) -> None:
        """Stop processing here and let the next pipeline stage run."""
        self._decide(FlowOutcome.SKIPPED)


class CreatingTicketContext(BaseContext):
    """Context for enriching the ticket after a successful token exchange."""

    def __init__(
        self,
        flow: FlowContext,
        options: FlowOptions,
        ticket: Ticket,
        tokens: TokenResponse,
        backchannel: TokenExchangeClient,
    ) -> None:
        super().__init__(flow, options)
        self.ticket: Ticket | None = ticket
        self.tokens = tokens
        self.backchannel = backchannel

    @property
    def identity(self) -> ClaimsIdentity | None:
        return self.ticket.identity if self.ticket else None

    @identity.setter
    def identity(self, value: ClaimsIdentity | None) -> None:
        if self.ticket is None:
            self.ticket = Ticket(identity=value)
        else:
            self.ticket.identity = value

    @property
    def properties(self) -> AuthProperties | None:
        return self.ticket.properties if self.ticket else None

    @property
    def access_token(self) -> str | None:
        return self.tokens.access_token

    @property
    def refresh_token(self) -> str | None:
        return self.tokens.refresh_token

    @property
    def token_type(self) -> str | None:
        return self.tokens.token_type

    @property
    def expires_in(self) -> str | None:
        return self.tokens.expires_in

    async def fetch_user_info(self) -> dict[str, Any]:
        """Fetch the user profile from ``user_information_endpoint``."""
        if not self.options.user_information_endpoint:
            raise TokenExchangeError("No user information endpoint configured")
        if not self.access_token:
            raise TokenExchangeError("No access token available")
        return await self.backchannel.fetch_user_info(
            self.options.user_information_endpoint, self.access_token
        )


class RedirectContext(BaseContext):
    """Context for the challenge redirect; ``redirect_uri`` may be overridden."""

    def __init__(
        self,
        flow: FlowContext,
        options: FlowOptions,
        properties: AuthProperties,
        redirect_uri: str,
    ) -> None:
        super().__init__(flow, options)
        self.properties = properties
        self.redirect_uri = redirect_uri


class RemoteFailureContext(BaseContext):
    """Context for a failed callback."""

    def __init__(
        self,
        flow: FlowContext,
        options: FlowOptions,
        failure: Exception,
        ticket: Ticket | None = None,
    ) -> None:
        super().__init__(flow, options)
        self.failure = failure
        self.ticket = ticket


class TicketReceivedContext(BaseContext):
    """Context for a successful callback, invoked before sign-in."""

    def __init__(
        self,
        flow: FlowContext,
        options: FlowOptions,
        ticket: Ticket,
        sign_in_scheme: str | None,
        redirect_uri: str | None,
    ) -> None:
        super().__init__(flow, options)
        self.ticket = ticket
        self.sign_in_scheme = sign_in_scheme
        self.redirect_uri = redirect_uri
        self.request_completed = False

    @property
    def identity(self) -> ClaimsIdentity | None:
        return self.ticket.identity

    @identity.setter
    def identity(self, value: ClaimsIdentity | None) -> None:
        self.ticket.identity = value

    @property
    def properties(self) -> AuthProperties:
        return self.ticket.properties

    def complete_request(self) -> None:
        self.request_completed = True


HookResult = Union[FlowOutcome, None, Awaitable[Union[FlowOutcome, None]]]
Hook = Callable[[Any], HookResult]


def _noop(context: BaseContext) -> None:
    return None


async def _invoke(hook: Hook, context: BaseContext) -> FlowOutcome:
    result = hook(context)
    if inspect.isawaitable(result):
        result = await result
    if isinstance(result, FlowOutcome) and result is not FlowOutcome.CONTINUE:
        if context.outcome is not result:
            context._decide(result)
    return context.outcome


class FlowEvents:
    """Default hook set; every hook passes through unless replaced.

    Override by passing callables to the constructor or by subclassing
    and overriding the coroutine methods.
    """

    def __init__(
        self,
        on_creating_ticket: Hook | None = None,
        on_redirect_to_authorization_endpoint: Hook | None = None,
        on_remote_failure: Hook | None = None,
        on_ticket_received: Hook | None = None,
    ) -> None:
        self.on_creating_ticket = on_creating_ticket or _noop
        self.on_redirect_to_authorization_endpoint = on_redirect_to_authorization_endpoint or _noop
        self.on_remote_failure = on_remote_failure or _noop
        self.on_ticket_received = on_ticket_received or _noop

    async def creating_ticket(self, context: CreatingTicketContext) -> FlowOutcome:
        return await _invoke(self.on_creating_ticket, context)

    async def redirect_to_authorization_endpoint(self, context: RedirectContext) -> FlowOutcome:
        return await _invoke(self.on_redirect_to_authorization_endpoint, context)

    async def remote_failure(self, context: RemoteFailureContext) -> FlowOutcome:
        return await _invoke(self.on_remote_failure, context)

    async def ticket_received(self, context: TicketReceivedContext) -> FlowOutcome:
        return await _invoke(self.on_ticket_received, context)
