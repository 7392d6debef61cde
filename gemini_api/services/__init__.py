"""
Services package for the Gemini PDF Chat Gateway.
"""

from .gemini_client import GeminiConversationClient
from .session_store import SessionStore
from .chat_manager import ChatManager
from .generation_service import GenerationService

__all__ = [
    "GeminiConversationClient",
    "SessionStore",
    "ChatManager",
    "GenerationService"
]
