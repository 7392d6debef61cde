"""
One-shot content generation from a PDF and a prompt.
"""

import asyncio
from typing import Optional
import logging

from ..config import Settings, settings
from ..errors import UpstreamTimeoutError
from ..model_registry import resolve_model
from ..utils import log_processing_info, measure_time
from .chat_manager import read_attachment
from .gemini_client import ConversationClient

logger = logging.getLogger(__name__)


class GenerationService:
    """Generates a single response without keeping a session."""

    def __init__(self, client: ConversationClient, app_settings: Settings = None):
        self.client = client
        self.settings = app_settings or settings

    @measure_time
    async def generate(self, pdf_path: str, prompt: str, preprompt: Optional[str] = None,
                       model: Optional[str] = None) -> str:
        """
        Generate content for a prompt about a PDF document.

        Args:
            pdf_path: Path to the staged PDF file
            prompt: User prompt
            preprompt: Optional system instruction
            model: Optional model name, the default model when omitted

        Returns:
            Generated text
        """
        model_config = resolve_model(model)
        attachment = await read_attachment(pdf_path)

        conversation = await self.client.open(
            model_config.model,
            model_config.location,
            preprompt or self.settings.default_preprompt,
        )
        try:
            result = await asyncio.wait_for(
                self.client.send_turn(conversation, prompt, attachment),
                timeout=self.settings.upstream_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise UpstreamTimeoutError(
                f"Gemini did not respond within {self.settings.upstream_timeout_seconds:g} seconds"
            ) from e

        log_processing_info("Content generated", {
            "model": model_config.model,
            "prompt_length": len(prompt),
            "pdf_size": len(attachment.data),
            "result_length": len(result.text)
        })
        return result.text
