"""Pre-configured OAuth provider templates.

Factory functions that fill in provider endpoints so callers only
supply credentials and a callback path.
"""

from __future__ import annotations

from typing import Any

from oauthflow.config import FlowOptions

DEFAULT_CALLBACK_PATH = "/oauth/return"


def create_github_options(
    client_id: str,
    client_secret: str,
    callback_path: str = DEFAULT_CALLBACK_PATH,
    **kwargs: Any,
) -> FlowOptions:
    """Create GitHub OAuth options.

    GitHub uses plain OAuth2, so endpoints are specified manually. The
    user information endpoint returns the user profile for
    ``CreatingTicketContext.fetch_user_info``.

    Args:
        client_id: GitHub OAuth App client ID
        client_secret: GitHub OAuth App client secret
        callback_path: Path the provider redirects back to
        **kwargs: Further FlowOptions fields (scopes, events, ...)

    Returns:
        FlowOptions for GitHub
    """
    kwargs.setdefault("scopes", ("user:email",))
    kwargs.setdefault("scheme", "GitHub")
    return FlowOptions(
        client_id=client_id,
        client_secret=client_secret,
        authorization_endpoint="https://github.com/login/oauth/authorize",
        token_endpoint="https://github.com/login/oauth/access_token",
        user_information_endpoint="https://api.github.com/user",
        callback_path=callback_path,
        **kwargs,
    )


def create_options(
    provider_type: str,
    client_id: str,
    client_secret: str,
    **kwargs: Any,
) -> FlowOptions:
    """Factory to create flow options from a provider type name.

    Args:
        provider_type: "github" or "generic"
        client_id: OAuth client ID
        client_secret: OAuth client secret
        **kwargs: Passed through to the provider factory; "generic" needs
            authorization_endpoint, token_endpoint and callback_path

    Raises:
        ValueError: If provider_type is unknown or required args are missing
    """
    provider_type = provider_type.lower()

    if provider_type == "github":
        return create_github_options(client_id, client_secret, **kwargs)

    elif provider_type == "generic":
        kwargs.setdefault("callback_path", DEFAULT_CALLBACK_PATH)
        kwargs.setdefault("authorization_endpoint", "")
        kwargs.setdefault("token_endpoint", "")
        return FlowOptions(client_id=client_id, client_secret=client_secret, **kwargs)

    else:
        raise ValueError(
            f"Unknown provider type: {provider_type}. Supported: 'github', 'generic'"
        )
