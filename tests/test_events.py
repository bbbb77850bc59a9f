"""Tests for hook dispatch and outcome resolution."""

from __future__ import annotations

import pytest
from aiohttp.test_utils import make_mocked_request

from oauthflow.config import FlowOptions
from oauthflow.context import FlowContext
from oauthflow.events import FlowEvents, FlowOutcome, RedirectContext
from oauthflow.tickets import AuthProperties


def make_context() -> RedirectContext:
    options = FlowOptions(
        client_id="id",
        client_secret="secret",
        authorization_endpoint="https://idp/authorize",
        token_endpoint="https://idp/token",
        callback_path="/cb",
    )
    flow = FlowContext(make_mocked_request("GET", "/", headers={"Host": "app.test"}))
    return RedirectContext(flow, options, AuthProperties(), "https://idp/authorize?x=1")


class TestFlowEvents:
    """Tests for FlowEvents."""

    @pytest.mark.asyncio
    async def test_default_continues(self):
        """Test that the default hooks pass through."""
        context = make_context()
        assert await FlowEvents().redirect_to_authorization_endpoint(context) is FlowOutcome.CONTINUE
        assert context.redirect_uri == "https://idp/authorize?x=1"

    @pytest.mark.asyncio
    async def test_sync_hook_method_call(self):
        """Test that a plain function can decide through its context."""
        events = FlowEvents(on_redirect_to_authorization_endpoint=lambda c: c.handle_response())
        context = make_context()
        assert await events.redirect_to_authorization_endpoint(context) is FlowOutcome.HANDLED_RESPONSE
        assert context.handled_response
        assert not context.skipped

    @pytest.mark.asyncio
    async def test_async_hook_returned_outcome(self):
        """Test that a coroutine hook can return its outcome."""

        async def hook(context):
            return FlowOutcome.SKIPPED

        context = make_context()
        assert await FlowEvents(on_redirect_to_authorization_endpoint=hook).redirect_to_authorization_endpoint(
            context
        ) is FlowOutcome.SKIPPED
        assert context.skipped

    @pytest.mark.asyncio
    async def test_returned_continue_keeps_method_decision(self):
        """Test that returning CONTINUE does not undo an earlier decision."""

        def hook(context):
            context.skip_to_next_middleware()
            return FlowOutcome.CONTINUE

        context = make_context()
        assert await FlowEvents(on_redirect_to_authorization_endpoint=hook).redirect_to_authorization_endpoint(
            context
        ) is FlowOutcome.SKIPPED

    def test_outcome_decided_once(self):
        """Test that a second, different decision is rejected."""
        context = make_context()
        context.handle_response()
        with pytest.raises(RuntimeError, match="already decided"):
            context.skip_to_next_middleware()

    @pytest.mark.asyncio
    async def test_subclass_override(self):
        """Test overriding hooks by subclassing."""

        class Events(FlowEvents):
            async def redirect_to_authorization_endpoint(self, context):
                context.redirect_uri = "https://other/authorize"
                return FlowOutcome.CONTINUE

        context = make_context()
        await Events().redirect_to_authorization_endpoint(context)
        assert context.redirect_uri == "https://other/authorize"
