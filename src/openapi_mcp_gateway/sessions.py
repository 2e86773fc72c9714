"""
Client session lifecycle.

A channel starts ``PENDING_INIT`` and becomes ``ACTIVE`` once its bearer token
has been accepted by the upstream identity endpoint. ``CLOSED`` is terminal and
a closed session id is never looked up again.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional

import httpx

from .exceptions import AuthenticationError, SessionNotFoundError

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


class SessionState(str, Enum):
    PENDING_INIT = "pending_init"
    ACTIVE = "active"
    CLOSED = "closed"


@dataclass
class SessionTransport:
    """The channel a session is bound to."""

    session_id: str
    state: SessionState = SessionState.PENDING_INIT
    _close_callbacks: List[Callable[["SessionTransport"], None]] = field(
        default_factory=list, repr=False
    )

    def on_close(self, callback: Callable[["SessionTransport"], None]) -> None:
        self._close_callbacks.append(callback)

    def activate(self) -> None:
        if self.state is not SessionState.PENDING_INIT:
            raise ValueError(f"cannot activate a {self.state.value} channel")
        self.state = SessionState.ACTIVE

    def close(self) -> None:
        if self.state is SessionState.CLOSED:
            return
        self.state = SessionState.CLOSED
        for callback in self._close_callbacks:
            callback(self)


@dataclass
class Session:
    session_id: str
    token: str
    user_agent: str
    category: str
    transport: SessionTransport
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def age(self) -> float:
        """Seconds since the session was initialized."""
        return (datetime.now(timezone.utc) - self.created_at).total_seconds()


class SessionRegistry:
    """Active sessions and their transports, keyed by session id."""

    def __init__(self):
        self.sessions: Dict[str, Session] = {}
        self.transports: Dict[str, SessionTransport] = {}

    def __contains__(self, session_id: str) -> bool:
        return session_id in self.sessions

    def __len__(self) -> int:
        return len(self.sessions)

    def add(self, session: Session) -> None:
        self.sessions[session.session_id] = session
        self.transports[session.session_id] = session.transport

    def get(self, session_id: str) -> Optional[Session]:
        return self.sessions.get(session_id)

    def remove(self, session_id: str) -> Optional[Session]:
        self.transports.pop(session_id, None)
        return self.sessions.pop(session_id, None)

    def ids(self) -> List[str]:
        return list(self.sessions)


def extract_bearer_token(auth_header: Optional[str]) -> Optional[str]:
    if auth_header and auth_header.startswith(BEARER_PREFIX):
        return auth_header[len(BEARER_PREFIX):]
    return None


class TokenValidator:
    """Checks a bearer token against the upstream identity endpoint."""

    def __init__(self, base_url: str, client: httpx.AsyncClient, identity_path: str = "/api/gateway/v1/me/"):
        self.url = f"{base_url.rstrip('/')}{identity_path}"
        self.client = client

    async def validate(self, token: str) -> None:
        """Raise AuthenticationError unless the identity endpoint accepts the token."""
        try:
            response = await self.client.get(
                self.url,
                headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            logger.error("Token validation failed: %s", e)
            raise AuthenticationError(f"Token validation failed: {e}")

        if not response.is_success:
            logger.error("Token validation failed: %s %s", response.status_code, response.reason_phrase)
            raise AuthenticationError(
                f"Token validation failed: Authentication failed: "
                f"{response.status_code} {response.reason_phrase}"
            )


class SessionManager:
    """Creates, looks up and closes sessions."""

    def __init__(
        self,
        registry: SessionRegistry,
        validator: TokenValidator,
        resolve_category: Callable[[Optional[str]], str],
    ):
        """Initialize the manager.

        Args:
            registry: Registry shared with the gateway
            validator: Identity check used during initialization
            resolve_category: Maps a requested category to a configured one,
                or to the catchall category
        """
        self.registry = registry
        self.validator = validator
        self.resolve_category = resolve_category

    def open_channel(self) -> SessionTransport:
        """Create a channel in ``PENDING_INIT`` with a fresh session id."""
        return SessionTransport(session_id=str(uuid.uuid4()))

    async def initialize(
        self,
        transport: SessionTransport,
        authorization: Optional[str],
        user_agent: Optional[str] = None,
        category: Optional[str] = None,
    ) -> Session:
        """Validate the token and activate the channel.

        Raises:
            AuthenticationError: If no bearer token is given or it is rejected;
                the channel is closed and never registered
        """
        token = extract_bearer_token(authorization)
        if not token:
            logger.warning("No bearer token provided")
            transport.close()
            raise AuthenticationError("No bearer token provided")

        try:
            await self.validator.validate(token)
        except AuthenticationError:
            transport.close()
            raise

        transport.activate()
        session = Session(
            session_id=transport.session_id,
            token=token,
            user_agent=user_agent or "unknown",
            category=self.resolve_category(category),
            transport=transport,
        )
        transport.on_close(self._forget)
        self.registry.add(session)
        logger.info(
            "Stored session data for %s: userAgent=%s, category=%s",
            session.session_id,
            session.user_agent,
            session.category,
        )
        return session

    def _forget(self, transport: SessionTransport) -> None:
        if self.registry.remove(transport.session_id) is not None:
            logger.info("Transport closed, removed session data for %s", transport.session_id)

    def get(self, session_id: Optional[str]) -> Session:
        """Return the active session for ``session_id``.

        Raises:
            SessionNotFoundError: If the id is missing, unknown or closed
        """
        session = self.registry.get(session_id) if session_id else None
        if session is None or session.transport.state is not SessionState.ACTIVE:
            raise SessionNotFoundError("Invalid or missing session ID")
        return session

    def close(self, session_id: str) -> bool:
        """Close a session; returns False if it was not active."""
        session = self.registry.get(session_id)
        if session is None:
            return False
        session.transport.close()
        # no-op when the close callback already removed it
        self.registry.remove(session_id)
        logger.info("Closed session %s after %.1fs", session_id, session.age())
        return True

    def close_all(self) -> int:
        """Close every session, as done on shutdown."""
        logger.info("Closing %d active session(s)", len(self.registry))
        count = 0
        for session_id in self.registry.ids():
            if self.close(session_id):
                count += 1
        return count
