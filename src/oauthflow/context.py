"""Per-request view of the host request and the response being built."""

from __future__ import annotations

from typing import Any

from aiohttp import web


class FlowContext:
    """Request accessors and a pending response for one run of the flow.

    The handler and the event hooks write into ``response``. Cookie
    operations are also recorded so the middleware can replay them onto
    a downstream response when the flow falls through.
    """

    def __init__(self, request: web.Request) -> None:
        self.request = request
        self.response = web.Response()
        self._cookie_ops: list[tuple[str, str, str | None, dict[str, Any]]] = []
        self._consumed_cookies: set[str] = set()

    @property
    def scheme(self) -> str:
        return self.request.scheme

    @property
    def host(self) -> str:
        return self.request.host

    @property
    def path(self) -> str:
        return self.request.path

    @property
    def is_secure(self) -> bool:
        return self.request.secure

    def request_prefix(self) -> str:
        return f"{self.request.scheme}://{self.request.host}"

    def get_cookie(self, name: str) -> str | None:
        """Read an inbound cookie, hiding ones already consumed."""
        if name in self._consumed_cookies:
            return None
        return self.request.cookies.get(name)

    def set_cookie(self, name: str, value: str, **options: Any) -> None:
        self.response.set_cookie(name, value, **options)
        self._cookie_ops.append(("set", name, value, options))

    def delete_cookie(self, name: str, path: str = "/") -> None:
        self._consumed_cookies.add(name)
        self.response.del_cookie(name, path=path)
        self._cookie_ops.append(("delete", name, None, {"path": path}))

    def redirect(self, location: str) -> None:
        self.response.set_status(302)
        self.response.headers["Location"] = location

    def apply_cookies(self, response: web.StreamResponse) -> None:
        """Replay recorded cookie operations onto another response."""
        for op, name, value, options in self._cookie_ops:
            if op == "set":
                response.set_cookie(name, value, **options)
            else:
                response.del_cookie(name, **options)
