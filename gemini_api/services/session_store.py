"""
In-memory store of live chat sessions.

Sessions are keyed by session id and owned by the client identity (IP
address) that created them. Each identity has at most one live session.
Sessions expire a fixed time after their last successful access and are
purged by a background sweep task.
"""

import asyncio
import contextlib
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional
import logging

from ..config import settings
from ..errors import IdentityMismatchError, SessionExpiredError, SessionNotFoundError
from ..model_registry import resolve_model
from ..models import HistoryEntry, SessionSnapshot
from ..utils import generate_session_id, log_processing_info, utc_now
from .gemini_client import ConversationClient

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class ChatSession:
    """A live conversation and its local bookkeeping."""
    session_id: str
    client_identity: str
    model_id: str
    conversation: Any = field(repr=False)
    created_at: datetime
    last_accessed_at: datetime
    expires_at: datetime
    history: List[HistoryEntry] = field(default_factory=list)
    total_tokens: int = 0
    # Held for the duration of a turn
    turn_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at < now

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            session_id=self.session_id,
            model=self.model_id,
            client_identity=self.client_identity,
            history=[entry.model_copy(deep=True) for entry in self.history],
            created_at=self.created_at,
            last_accessed=self.last_accessed_at,
            expires_at=self.expires_at,
            total_tokens=self.total_tokens,
        )


class SessionStore:
    """Concurrency-safe registry of live chat sessions."""

    def __init__(
        self,
        client: ConversationClient,
        ttl: Optional[timedelta] = None,
        cleanup_interval: Optional[timedelta] = None,
        clock: Callable[[], datetime] = utc_now,
        default_preprompt: Optional[str] = None,
    ):
        self.client = client
        self.ttl = ttl or settings.session_ttl
        self.cleanup_interval = cleanup_interval or settings.session_cleanup_interval
        self.clock = clock
        self.default_preprompt = settings.default_preprompt if default_preprompt is None else default_preprompt
        self._sessions: Dict[str, ChatSession] = {}
        self._lock = asyncio.Lock()
        self._sweeper: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    @property
    def is_running(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    async def create(self, client_identity: str, model_id: Optional[str] = None,
                     system_preamble: Optional[str] = None) -> ChatSession:
        """
        Start a new session for a client, replacing any session it already has.

        Raises:
            InvalidModelError: If model_id is not a supported model
            UpstreamError: If the conversation could not be opened
        """
        model = resolve_model(model_id)
        conversation = await self.client.open(model.model, model.location, system_preamble or self.default_preprompt)

        now = self.clock()
        session = ChatSession(
            session_id=generate_session_id(),
            client_identity=client_identity,
            model_id=model.model,
            conversation=conversation,
            created_at=now,
            last_accessed_at=now,
            expires_at=now + self.ttl,
        )

        async with self._lock:
            evicted = self._evict_identity(client_identity)
            self._sessions[session.session_id] = session

        log_processing_info("Chat session created", {
            "session_id": session.session_id,
            "client": client_identity,
            "model": session.model_id,
            "replaced_sessions": evicted
        })
        return session

    async def resolve(self, session_id: str, client_identity: str) -> ChatSession:
        """
        Return the live session owned by client_identity.

        An expired session is evicted when it is observed here.

        Raises:
            SessionNotFoundError, IdentityMismatchError, SessionExpiredError
        """
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError()

            expired = session.is_expired(self.clock())
            if expired:
                del self._sessions[session_id]
                logger.info(f"Evicted expired session {session_id}")

            if session.client_identity != client_identity:
                raise IdentityMismatchError()
            if expired:
                raise SessionExpiredError()
            return session

    async def lookup(self, session_id: str, client_identity: str) -> Optional[ChatSession]:
        try:
            return await self.resolve(session_id, client_identity)
        except (SessionNotFoundError, IdentityMismatchError, SessionExpiredError):
            return None

    async def ensure_live(self, session: ChatSession) -> None:
        """
        Check that a previously resolved session is still the stored one.

        Raises:
            SessionNotFoundError: If it was deleted or replaced
            SessionExpiredError: If it expired; it is evicted
        """
        async with self._lock:
            if self._sessions.get(session.session_id) is not session:
                raise SessionNotFoundError()
            if session.is_expired(self.clock()):
                del self._sessions[session.session_id]
                logger.info(f"Evicted expired session {session.session_id}")
                raise SessionExpiredError()

    async def touch(self, session_id: str) -> bool:
        """Extend a session's lifetime from now. Returns False if it is gone."""
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False
            self._touch(session)
            return True

    async def record_turn(self, session: ChatSession, history: List[HistoryEntry], tokens: int) -> bool:
        """
        Apply a completed turn to a session.

        Returns whether the session is still live in the store; a session
        deleted or replaced mid-turn is updated but not reinserted.
        """
        async with self._lock:
            session.history = history
            session.total_tokens += tokens
            self._touch(session)
            return self._sessions.get(session.session_id) is session

    async def delete(self, session_id: str, client_identity: str) -> bool:
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None or session.client_identity != client_identity:
                return False
            del self._sessions[session_id]
            return True

    async def delete_all_for_identity(self, client_identity: str) -> int:
        async with self._lock:
            return self._evict_identity(client_identity)

    async def list_for_identity(self, client_identity: str) -> List[ChatSession]:
        async with self._lock:
            now = self.clock()
            sessions = []
            for session_id, session in list(self._sessions.items()):
                if session.client_identity != client_identity:
                    continue
                if session.is_expired(now):
                    del self._sessions[session_id]
                    continue
                sessions.append(session)
            return sessions

    async def sweep(self) -> int:
        """Evict every expired session that has no turn in flight."""
        async with self._lock:
            now = self.clock()
            expired = [
                session_id for session_id, session in self._sessions.items()
                if session.is_expired(now) and not session.turn_lock.locked()
            ]
            for session_id in expired:
                del self._sessions[session_id]

        if expired:
            log_processing_info("Expired sessions swept", {"count": len(expired), "remaining": len(self._sessions)})
        return len(expired)

    def start(self) -> None:
        """Start the periodic sweep task on the running event loop."""
        if self.is_running:
            return
        self._sweeper = asyncio.create_task(self._sweep_loop(), name="chat-session-sweeper")
        logger.info(f"Session sweeper started (interval={self.cleanup_interval}, ttl={self.ttl})")

    async def stop(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._sweeper
        self._sweeper = None
        logger.info("Session sweeper stopped")

    async def _sweep_loop(self) -> None:
        interval = self.cleanup_interval.total_seconds()
        while True:
            await asyncio.sleep(interval)
            try:
                await self.sweep()
            except Exception as e:
                logger.error(f"Session sweep failed: {e}", exc_info=True)

    def _touch(self, session: ChatSession) -> None:
        now = max(self.clock(), session.last_accessed_at)
        session.last_accessed_at = now
        session.expires_at = now + self.ttl

    def _evict_identity(self, client_identity: str) -> int:
        stale = [sid for sid, s in self._sessions.items() if s.client_identity == client_identity]
        for session_id in stale:
            del self._sessions[session_id]
        return len(stale)
