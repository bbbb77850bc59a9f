"""OAuth 2.0 authorization code flow as a pluggable aiohttp stage.

The handler issues authorization redirects, validates the provider's
callback (state + CSRF correlation), exchanges the code for tokens over
a backchannel and produces a ticket: an identity plus claims that the
host signs in. Four event hooks let callers intercept each transition.

Example usage:

    from oauthflow import (
        Claim,
        FlowEvents,
        OAuthFlowHandler,
        SessionManager,
        SessionSignIn,
        create_github_options,
        setup_oauth,
    )

    async def on_creating_ticket(context):
        user = await context.fetch_user_info()
        context.identity.add_claim(Claim("name", user["login"]))

    options = create_github_options(
        client_id="...",
        client_secret="...",
        events=FlowEvents(on_creating_ticket=on_creating_ticket),
    )
    handler = OAuthFlowHandler(options, sign_in=SessionSignIn(SessionManager()))
    setup_oauth(app, handler)
"""

from oauthflow.config import (
    FlowOptions,
    OAuthSettings,
    load_config_from_file,
)
from oauthflow.context import FlowContext
from oauthflow.correlation import CorrelationGuard
from oauthflow.events import (
    CreatingTicketContext,
    FlowEvents,
    FlowOutcome,
    RedirectContext,
    RemoteFailureContext,
    TicketReceivedContext,
)
from oauthflow.factory import TicketFactory
from oauthflow.handler import (
    OAuthFlowHandler,
    RemoteAuthenticationError,
    UnhandledRemoteFailureError,
)
from oauthflow.middleware import (
    oauth_middleware,
    request_challenge,
    setup_oauth,
)
from oauthflow.providers import (
    create_github_options,
    create_options,
)
from oauthflow.session import (
    Session,
    SessionManager,
    SessionSignIn,
    SignIn,
)
from oauthflow.state import (
    SignedStateCodec,
    StateCodec,
)
from oauthflow.tickets import (
    AuthProperties,
    Claim,
    ClaimsIdentity,
    Ticket,
    error_ticket,
)
from oauthflow.tokens import (
    TokenExchangeClient,
    TokenExchangeError,
    TokenResponse,
)

__all__ = [
    # Configuration
    "FlowOptions",
    "OAuthSettings",
    "load_config_from_file",
    "create_github_options",
    "create_options",
    # Handler
    "OAuthFlowHandler",
    "RemoteAuthenticationError",
    "UnhandledRemoteFailureError",
    "FlowContext",
    "CorrelationGuard",
    "TicketFactory",
    # Events
    "FlowEvents",
    "FlowOutcome",
    "CreatingTicketContext",
    "RedirectContext",
    "RemoteFailureContext",
    "TicketReceivedContext",
    # aiohttp
    "oauth_middleware",
    "request_challenge",
    "setup_oauth",
    # Sign-in
    "SignIn",
    "Session",
    "SessionManager",
    "SessionSignIn",
    # State
    "StateCodec",
    "SignedStateCodec",
    # Tickets and tokens
    "AuthProperties",
    "Claim",
    "ClaimsIdentity",
    "Ticket",
    "error_ticket",
    "TokenExchangeClient",
    "TokenExchangeError",
    "TokenResponse",
]
