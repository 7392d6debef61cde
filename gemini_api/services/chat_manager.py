"""
Chat manager that runs conversation turns against stored sessions.
"""

import asyncio
from pathlib import Path
from typing import List, Optional
import logging

from ..config import settings
from ..content import redact_history
from ..errors import AttachmentReadError, UpstreamTimeoutError
from ..models import MessageResponse, SessionSnapshot, TokenCount
from ..utils import PDF_MIME_TYPE, handle_processing_error, log_processing_info, measure_time
from .gemini_client import Attachment, ConversationClient
from .session_store import ChatSession, SessionStore

logger = logging.getLogger(__name__)


async def read_attachment(path: str, mime_type: str = PDF_MIME_TYPE) -> Attachment:
    """Load a staged upload from disk."""
    try:
        data = await asyncio.to_thread(Path(path).read_bytes)
    except OSError as e:
        handle_processing_error("attachment_read", e, {"path": path})
        raise AttachmentReadError() from e
    return Attachment(data=data, mime_type=mime_type)


class ChatManager:
    """Creates sessions and relays chat turns to Gemini."""

    def __init__(self, store: SessionStore, upstream_timeout: Optional[float] = None):
        self.store = store
        self.client: ConversationClient = store.client
        self.upstream_timeout = upstream_timeout or settings.upstream_timeout_seconds

    async def start(self) -> None:
        self.store.start()

    async def stop(self) -> None:
        await self.store.stop()

    async def create_session(self, client_identity: str, preprompt: Optional[str] = None,
                             model: Optional[str] = None) -> SessionSnapshot:
        session = await self.store.create(client_identity, model, preprompt)
        return session.snapshot()

    @measure_time
    async def send_message(self, session_id: str, client_identity: str, message: str,
                           attachment_path: Optional[str] = None) -> MessageResponse:
        """
        Run one conversation turn.

        Args:
            session_id: Target session
            client_identity: Identity of the caller, must own the session
            message: User message text
            attachment_path: Optional path to a staged PDF; left on disk

        Returns:
            MessageResponse with the reply, redacted session snapshot and token usage

        Raises:
            SessionNotFoundError, IdentityMismatchError, SessionExpiredError,
            AttachmentReadError, UpstreamError
        """
        session = await self.store.resolve(session_id, client_identity)
        attachment = await read_attachment(attachment_path) if attachment_path else None

        async with session.turn_lock:
            # The session may have gone while this turn waited for the lock
            await self.store.ensure_live(session)

            prompt_tokens = await self._count_tokens(session, message, attachment)
            result = await self._send_turn(session, message, attachment)
            response_tokens = await self._count_tokens(session, result.text)

            turn_tokens = prompt_tokens + response_tokens
            live = await self.store.record_turn(session, redact_history(result.history), turn_tokens)

        if not live:
            logger.warning(f"Session {session_id} was removed while a turn was in flight")

        log_processing_info("Chat turn completed", {
            "session_id": session_id,
            "model": session.model_id,
            "has_attachment": attachment is not None,
            "prompt_tokens": prompt_tokens,
            "response_tokens": response_tokens,
            "total_tokens": session.total_tokens
        })

        return MessageResponse(
            response=result.text,
            session_data=session.snapshot(),
            token_count=TokenCount(
                prompt_tokens=prompt_tokens,
                response_tokens=response_tokens,
                total_tokens=turn_tokens,
            ),
        )

    async def get_session(self, session_id: str, client_identity: str) -> Optional[SessionSnapshot]:
        session = await self.store.lookup(session_id, client_identity)
        return session.snapshot() if session else None

    async def list_sessions(self, client_identity: str) -> List[SessionSnapshot]:
        return [session.snapshot() for session in await self.store.list_for_identity(client_identity)]

    async def delete_session(self, session_id: str, client_identity: str) -> bool:
        return await self.store.delete(session_id, client_identity)

    async def delete_all_sessions(self, client_identity: str) -> int:
        return await self.store.delete_all_for_identity(client_identity)

    async def _send_turn(self, session: ChatSession, message: str, attachment: Optional[Attachment]):
        try:
            return await asyncio.wait_for(
                self.client.send_turn(session.conversation, message, attachment),
                timeout=self.upstream_timeout,
            )
        except asyncio.TimeoutError as e:
            raise UpstreamTimeoutError(
                f"Gemini did not respond within {self.upstream_timeout:g} seconds"
            ) from e

    async def _count_tokens(self, session: ChatSession, content: str,
                            attachment: Optional[Attachment] = None) -> int:
        # Token counts are for reporting only
        try:
            return await asyncio.wait_for(
                self.client.count_tokens(session.conversation, content, attachment),
                timeout=self.upstream_timeout,
            )
        except Exception as e:
            handle_processing_error("count_tokens", e, {"session_id": session.session_id})
            return 0
