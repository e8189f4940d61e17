"""Generative backend built on Google's Gemini models.

The rest of the engine only sees the ``GenerativeBackend`` and ``ChatHandle``
protocols. ``build_backend`` returns ``None`` when no API key is configured,
which callers treat as degraded mode.
"""

import base64
from typing import AsyncIterator, Optional, Protocol

import google.generativeai as genai
import structlog

from ..config import Settings

logger = structlog.get_logger()


class ChatHandle(Protocol):
    """A live multi-turn exchange with the assistant."""

    def stream(self, message: str) -> AsyncIterator[str]:
        """Send one user turn and yield response text increments in order."""
        ...


class GenerativeBackend(Protocol):
    """Narrow contract the engine needs from a generative service."""

    async def generate_text(self, prompt: str) -> str:
        ...

    async def generate_image(self, prompt: str) -> Optional[str]:
        """Return an embeddable data URL, or ``None`` when no image came back."""
        ...

    def start_chat(self, system_instruction: str) -> ChatHandle:
        ...


def _response_text(response) -> str:
    """Join the text parts of a response without tripping on non-text parts."""
    pieces = []
    for candidate in getattr(response, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            text = getattr(part, "text", "")
            if text:
                pieces.append(text)
    return "".join(pieces)


class GeminiChatHandle:
    """Wraps ``genai.ChatSession`` so the history lives with the handle."""

    def __init__(self, session: genai.ChatSession) -> None:
        self._session = session

    async def stream(self, message: str) -> AsyncIterator[str]:
        response = await self._session.send_message_async(message, stream=True)
        async for chunk in response:
            text = _response_text(chunk)
            if text:
                yield text


class GeminiBackend:
    """Gemini-backed implementation of ``GenerativeBackend``."""

    def __init__(self, api_key: str, text_model: str, image_model: str) -> None:
        genai.configure(api_key=api_key)
        self.text_model_name = text_model
        self.image_model_name = image_model
        self.model = genai.GenerativeModel(text_model)
        self.image_model = genai.GenerativeModel(image_model)
        logger.info("gemini_backend_init", text_model=text_model, image_model=image_model)

    async def generate_text(self, prompt: str) -> str:
        response = await self.model.generate_content_async(prompt)
        return _response_text(response)

    async def generate_image(self, prompt: str) -> Optional[str]:
        response = await self.image_model.generate_content_async(prompt)
        for candidate in getattr(response, "candidates", None) or []:
            for part in getattr(candidate.content, "parts", None) or []:
                inline = getattr(part, "inline_data", None)
                if inline is not None and inline.data:
                    encoded = base64.b64encode(inline.data).decode("ascii")
                    return f"data:{inline.mime_type or 'image/png'};base64,{encoded}"
        logger.warning("gemini_image_missing", model=self.image_model_name)
        return None

    def start_chat(self, system_instruction: str) -> GeminiChatHandle:
        model = genai.GenerativeModel(self.text_model_name, system_instruction=system_instruction)
        return GeminiChatHandle(model.start_chat())


def build_backend(settings: Settings) -> Optional[GeminiBackend]:
    """Create the Gemini backend, or ``None`` when the API key is absent."""
    if not settings.ai_configured:
        logger.warning("gemini_api_key_missing", degraded_mode=True)
        return None
    return GeminiBackend(
        api_key=settings.gemini_api_key,
        text_model=settings.text_model,
        image_model=settings.image_model,
    )
