"""
Conversation client for Google Gemini built on LangChain.
"""

import base64
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Protocol

from google.genai import Client, types
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_google_genai import ChatGoogleGenerativeAI, HarmBlockThreshold, HarmCategory

from ..config import Settings, settings
from ..content import BinaryPart, Part, TextPart, Turn, UnknownPart
from ..errors import ContentBlockedError, UpstreamError, UpstreamUnavailableError
from ..utils import PDF_MIME_TYPE, handle_processing_error, log_processing_info
import logging

logger = logging.getLogger(__name__)

SAFETY_SETTINGS = {
    HarmCategory.HARM_CATEGORY_HATE_SPEECH: HarmBlockThreshold.BLOCK_ONLY_HIGH,
    HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT: HarmBlockThreshold.BLOCK_ONLY_HIGH,
    HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT: HarmBlockThreshold.BLOCK_ONLY_HIGH,
    HarmCategory.HARM_CATEGORY_HARASSMENT: HarmBlockThreshold.BLOCK_ONLY_HIGH,
}

BLOCKED_FINISH_REASONS = {"SAFETY", "BLOCKLIST", "PROHIBITED_CONTENT", "SPII", "RECITATION"}


@dataclass(frozen=True)
class Attachment:
    """A binary document sent along with a user turn."""
    data: bytes
    mime_type: str = PDF_MIME_TYPE


@dataclass
class TurnResult:
    text: str
    history: List[Turn]


class Conversation:
    """An open multi-turn dialogue with one Gemini model."""

    def __init__(self, model_id: str, region: str, llm: Any, system_preamble: str = ""):
        self.model_id = model_id
        self.region = region
        self.llm = llm
        self.messages: List[BaseMessage] = []
        if system_preamble:
            self.messages.append(SystemMessage(content=system_preamble))

    def history(self) -> List[Turn]:
        """The conversation so far, system instruction excluded."""
        turns = []
        for message in self.messages:
            if isinstance(message, SystemMessage):
                continue
            role = "model" if isinstance(message, AIMessage) else "user"
            turns.append(Turn(role=role, parts=_content_to_parts(message.content)))
        return turns


class ConversationClient(Protocol):
    """What the session core needs from the upstream chat service."""

    async def open(self, model_id: str, region: str, system_preamble: str = "") -> Any:
        ...

    async def send_turn(self, conversation: Any, text: str, attachment: Optional[Attachment] = None) -> TurnResult:
        ...

    async def count_tokens(self, conversation: Any, content: str,
                           attachment: Optional[Attachment] = None) -> int:
        ...


class GeminiConversationClient:
    """Conversation client backed by ChatGoogleGenerativeAI."""

    def __init__(self, app_settings: Settings = None, llm_factory: Callable[..., Any] = None,
                 genai_client: Any = None):
        self.settings = app_settings or settings
        self.llm_factory = llm_factory or ChatGoogleGenerativeAI
        self._genai_client = genai_client

    @property
    def genai_client(self) -> Any:
        """google-genai client used for token counting, created on first use."""
        if self._genai_client is None:
            self._genai_client = Client(api_key=self.settings.google_api_key)
        return self._genai_client

    def _initialize_llm(self, model_id: str) -> Any:
        return self.llm_factory(
            model=model_id,
            google_api_key=self.settings.google_api_key,
            temperature=self.settings.gemini_temperature,
            top_p=self.settings.gemini_top_p,
            max_output_tokens=self.settings.gemini_max_output_tokens,
            safety_settings=SAFETY_SETTINGS,
        )

    async def open(self, model_id: str, region: str, system_preamble: str = "") -> Conversation:
        try:
            llm = self._initialize_llm(model_id)
        except Exception as e:
            handle_processing_error("conversation_open", e, {"model": model_id, "region": region})
            raise UpstreamUnavailableError(f"Failed to initialize model {model_id}: {e}") from e

        log_processing_info("Conversation opened", {
            "model": model_id,
            "region": region,
            "has_preamble": bool(system_preamble)
        })
        return Conversation(model_id, region, llm, system_preamble)

    async def send_turn(self, conversation: Conversation, text: str,
                        attachment: Optional[Attachment] = None) -> TurnResult:
        message = HumanMessage(content=_user_content(text, attachment))

        try:
            reply = await conversation.llm.ainvoke(conversation.messages + [message])
        except Exception as e:
            handle_processing_error("send_turn", e, {"model": conversation.model_id})
            raise UpstreamError(str(e)) from e

        finish_reason = (reply.response_metadata or {}).get("finish_reason")
        if finish_reason in BLOCKED_FINISH_REASONS:
            raise ContentBlockedError(f"Response blocked by Gemini (finish reason: {finish_reason})")

        # Only a successful turn becomes part of the conversation
        conversation.messages.extend([message, reply])
        return TurnResult(text=_message_text(reply.content), history=conversation.history())

    async def count_tokens(self, conversation: Conversation, content: str,
                           attachment: Optional[Attachment] = None) -> int:
        """Count the tokens of a user turn, attachment included."""
        parts = _genai_parts(content, attachment)
        if not parts:
            return 0

        response = await self.genai_client.aio.models.count_tokens(
            model=conversation.model_id,
            contents=[types.Content(role="user", parts=parts)],
        )
        return response.total_tokens or 0


def _user_content(text: str, attachment: Optional[Attachment]) -> Any:
    if attachment is None:
        return text
    return [
        {"type": "text", "text": text},
        {"type": "media", "mime_type": attachment.mime_type, "data": attachment.data},
    ]


def _genai_parts(text: str, attachment: Optional[Attachment]) -> List[types.Part]:
    parts = []
    if text:
        parts.append(types.Part(text=text))
    if attachment is not None:
        parts.append(types.Part.from_bytes(data=attachment.data, mime_type=attachment.mime_type))
    return parts


def _content_to_parts(content: Any) -> List[Part]:
    if isinstance(content, str):
        return [TextPart(content)]

    parts: List[Part] = []
    for item in content or []:
        if isinstance(item, str):
            parts.append(TextPart(item))
        elif isinstance(item, dict) and item.get("type") == "text":
            parts.append(TextPart(item.get("text", "")))
        elif isinstance(item, dict) and item.get("type") == "media" and "data" in item:
            data = item["data"]
            if isinstance(data, bytes):
                data = base64.b64encode(data).decode("ascii")
            parts.append(BinaryPart(mime_type=item.get("mime_type", "application/octet-stream"), data=data))
        else:
            parts.append(UnknownPart(item))
    return parts


def _message_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    return "".join(part.text for part in _content_to_parts(content) if isinstance(part, TextPart))
