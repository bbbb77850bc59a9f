"""aiohttp integration for the OAuth flow handler.

Example usage:

    from aiohttp import web
    from oauthflow import (
        FlowOptions, OAuthFlowHandler, SessionManager, SessionSignIn,
        request_challenge, setup_oauth,
    )

    sessions = SessionManager()
    sign_in = SessionSignIn(sessions)
    handler = OAuthFlowHandler(
        FlowOptions(
            client_id="...",
            client_secret="...",
            authorization_endpoint="https://github.com/login/oauth/authorize",
            token_endpoint="https://github.com/login/oauth/access_token",
            callback_path="/oauth/return",
        ),
        sign_in=sign_in,
    )

    async def protected(request):
        identity = await sign_in.authenticate(request)
        if identity is None:
            request_challenge(request, "OAuth")
            raise web.HTTPUnauthorized()
        return web.Response(text=f"Hello {identity.name}")

    app = web.Application()
    app.router.add_get("/", protected)
    setup_oauth(app, handler)
"""

from __future__ import annotations

from aiohttp import web

from oauthflow.context import FlowContext
from oauthflow.handler import OAuthFlowHandler
from oauthflow.session import SessionSignIn
from oauthflow.tickets import AuthProperties

CHALLENGES_KEY = web.RequestKey("oauthflow_challenges", dict)


def request_challenge(
    request: web.Request,
    scheme: str,
    properties: AuthProperties | None = None,
) -> None:
    """Ask the flow registered for ``scheme`` to challenge on a 401 response."""
    challenges = request.get(CHALLENGES_KEY)
    if challenges is None:
        challenges = {}
        request[CHALLENGES_KEY] = challenges
    challenges[scheme] = properties or AuthProperties()


def _lookup_challenge(request: web.Request, oauth: OAuthFlowHandler) -> AuthProperties | None:
    challenges = request.get(CHALLENGES_KEY) or {}
    if oauth.options.scheme in challenges:
        return challenges[oauth.options.scheme]
    if oauth.options.automatic_challenge and not challenges:
        return AuthProperties()
    return None


def oauth_middleware(oauth: OAuthFlowHandler):
    """Create a middleware that runs ``oauth`` in front of the app's handlers.

    Callback requests are answered by the flow. Any other request goes
    downstream; a 401 from downstream that addresses this scheme is
    turned into a challenge redirect. Cookie changes the flow made while
    falling through (the consumed correlation cookie) are carried onto
    whatever downstream answers with, raised HTTP errors included.
    """

    @web.middleware
    async def middleware(request: web.Request, handler) -> web.StreamResponse:
        flow = FlowContext(request)
        if await oauth.invoke(flow):
            return flow.response

        try:
            response = await handler(request)
        except web.HTTPException as exc:
            if exc.status == 401:
                properties = _lookup_challenge(request, oauth)
                if properties is not None and await oauth.challenge(flow, properties):
                    return flow.response
            flow.apply_cookies(exc)
            raise

        if response.status == 401:
            properties = _lookup_challenge(request, oauth)
            if properties is not None and await oauth.challenge(flow, properties):
                return flow.response

        flow.apply_cookies(response)
        return response

    return middleware


def setup_oauth(app: web.Application, oauth: OAuthFlowHandler) -> None:
    """Install the flow middleware and tie its resources to the app lifecycle.

    The backchannel client is closed on cleanup. When the default
    ``SessionSignIn`` is used, its session expiry task runs between
    startup and cleanup.
    """
    app.middlewares.append(oauth_middleware(oauth))

    if isinstance(oauth.sign_in, SessionSignIn):
        sign_in = oauth.sign_in

        async def _start_sessions(app: web.Application) -> None:
            await sign_in.start()

        async def _stop_sessions(app: web.Application) -> None:
            await sign_in.stop()

        app.on_startup.append(_start_sessions)
        app.on_cleanup.append(_stop_sessions)

    async def _close_backchannel(app: web.Application) -> None:
        await oauth.aclose()

    app.on_cleanup.append(_close_backchannel)
