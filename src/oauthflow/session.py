"""Cookie session sign-in for identities produced by the OAuth flow.

The handler hands a successful identity to a ``SignIn`` collaborator.
``SessionSignIn`` is the default: it keeps the identity in an in-memory
session store and sends only a random session ID to the client.
"""

from __future__ import annotations

import asyncio
import contextlib
import secrets
import time
from dataclasses import dataclass, field
from typing import Protocol

import structlog
from aiohttp import web

from oauthflow.context import FlowContext
from oauthflow.tickets import AuthProperties, ClaimsIdentity

logger = structlog.get_logger()

DEFAULT_SIGN_IN_SCHEME = "Cookies"
DEFAULT_SESSION_DURATION = 86400  # 24 hours


class SignIn(Protocol):
    """Host sign-in mechanism; ``scheme`` is the host default sign-in scheme."""

    scheme: str

    async def sign_in(
        self,
        flow: FlowContext,
        properties: AuthProperties,
        identity: ClaimsIdentity,
    ) -> None: ...


@dataclass
class Session:
    """A signed-in identity.

    Sessions are identified by a cryptographically secure session_id.
    """

    session_id: str
    identity: ClaimsIdentity
    properties: AuthProperties = field(default_factory=AuthProperties)
    created_at: float = field(default_factory=time.time)
    expires_at: float = 0.0

    def __post_init__(self):
        if self.expires_at == 0.0:
            self.expires_at = self.created_at + DEFAULT_SESSION_DURATION

    @property
    def is_expired(self) -> bool:
        return time.time() > self.expires_at

    @property
    def remaining_seconds(self) -> float:
        return max(0.0, self.expires_at - time.time())


class SessionManager:
    """In-memory session storage with expiration cleanup.

    Safe for concurrent access via an asyncio lock.
    """

    def __init__(
        self,
        cleanup_interval: float = 300.0,
        session_duration: int = DEFAULT_SESSION_DURATION,
    ):
        """Initialize session manager.

        Args:
            cleanup_interval: How often to run cleanup in seconds (default 5 min)
            session_duration: Default session duration in seconds (default 24 hours)
        """
        self._sessions: dict[str, Session] = {}
        self._cleanup_interval = cleanup_interval
        self._session_duration = session_duration
        self._cleanup_task: asyncio.Task | None = None
        self._lock = asyncio.Lock()

    async def start(self) -> None:
        """Start the background cleanup task."""
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())

    async def stop(self) -> None:
        """Stop the background cleanup task."""
        if self._cleanup_task:
            self._cleanup_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._cleanup_task
            self._cleanup_task = None

    async def create_session(
        self,
        identity: ClaimsIdentity,
        properties: AuthProperties | None = None,
        duration: int | None = None,
    ) -> Session:
        session_id = secrets.token_urlsafe(32)
        duration = duration or self._session_duration
        now = time.time()

        session = Session(
            session_id=session_id,
            identity=identity,
            properties=properties or AuthProperties(),
            created_at=now,
            expires_at=now + duration,
        )

        async with self._lock:
            self._sessions[session_id] = session

        return session

    async def get_session(self, session_id: str) -> Session | None:
        """Retrieve a session by ID.

        Returns None if the session doesn't exist or has expired.
        Expired sessions are removed when accessed.
        """
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None

            if session.is_expired:
                del self._sessions[session_id]
                return None

            return session

    async def delete_session(self, session_id: str) -> bool:
        async with self._lock:
            return self._sessions.pop(session_id, None) is not None

    async def get_session_count(self) -> int:
        async with self._lock:
            return len(self._sessions)

    async def _cleanup_loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(self._cleanup_interval)
                await self._cleanup_expired()
            except asyncio.CancelledError:
                break

    async def _cleanup_expired(self) -> int:
        """Remove all expired sessions.

        Returns:
            Number of sessions removed
        """
        now = time.time()
        async with self._lock:
            expired_ids = [
                sid for sid, session in self._sessions.items() if session.expires_at < now
            ]
            for sid in expired_ids:
                del self._sessions[sid]
        return len(expired_ids)


class SessionSignIn:
    """Signs identities in by issuing a session cookie."""

    def __init__(
        self,
        session_manager: SessionManager,
        scheme: str = DEFAULT_SIGN_IN_SCHEME,
        cookie_name: str = "_oauthflow_session",
    ) -> None:
        self.scheme = scheme
        self.cookie_name = cookie_name
        self._sessions = session_manager

    @property
    def session_manager(self) -> SessionManager:
        return self._sessions

    async def start(self) -> None:
        """Start expiring sessions in the background."""
        await self._sessions.start()

    async def stop(self) -> None:
        await self._sessions.stop()

    async def sign_in(
        self,
        flow: FlowContext,
        properties: AuthProperties,
        identity: ClaimsIdentity,
    ) -> None:
        session = await self._sessions.create_session(identity, properties)
        flow.set_cookie(
            self.cookie_name,
            session.session_id,
            max_age=int(session.remaining_seconds),
            httponly=True,
            secure=flow.is_secure,
            samesite="Lax",
            path="/",
        )
        logger.info("User signed in", scheme=self.scheme, user=identity.name)

    async def authenticate(self, request: web.Request) -> ClaimsIdentity | None:
        """Resolve the identity signed in for ``request``, if any."""
        session_id = request.cookies.get(self.cookie_name)
        if not session_id:
            return None
        session = await self._sessions.get_session(session_id)
        return session.identity if session else None

    async def sign_out(self, flow: FlowContext) -> bool:
        session_id = flow.get_cookie(self.cookie_name)
        flow.delete_cookie(self.cookie_name)
        if not session_id:
            return False
        deleted = await self._sessions.delete_session(session_id)
        if deleted:
            logger.info("User signed out", scheme=self.scheme)
        return deleted
