"""
Gemini access for skyline images and weather roasts.

Wraps the google-genai async client. Image responses are scanned for the
first content part carrying inline binary data, which is returned as a
base64 data URL.
"""
import base64
import logging
from typing import Any, Optional

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

logger = logging.getLogger(__name__)

MISCONFIGURED_MESSAGE = "Server misconfigured: missing Gemini API key"
DEFAULT_IMAGE_MIME = "image/png"


class GenerationError(Exception):
    """Generation failed; the message is safe to show to the caller."""


class GeneratorMisconfiguredError(GenerationError):
    def __init__(self, message: str = MISCONFIGURED_MESSAGE):
        super().__init__(message)


class NoImageReturnedError(GenerationError):
    """Model answered without any inline image part."""


def _first_parts(response: Any) -> list:
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return []
    content = getattr(candidates[0], "content", None)
    return list(getattr(content, "parts", None) or [])


def extract_image_data_url(response: Any) -> Optional[str]:
    """Return a data URL for the first inline-data part, or None."""
    for part in _first_parts(response):
        inline = getattr(part, "inline_data", None)
        data = getattr(inline, "data", None) if inline is not None else None
        if not data:
            continue
        if isinstance(data, bytes):
            data = base64.b64encode(data).decode("ascii")
        mime_type = getattr(inline, "mime_type", None) or DEFAULT_IMAGE_MIME
        return f"data:{mime_type};base64,{data}"
    return None


def extract_text(response: Any) -> str:
    parts = _first_parts(response)
    text = getattr(parts[0], "text", None) if parts else None
    if not text:
        raise GenerationError("No text response from model")
    return text


class GeminiGateway:
    """Thin async facade over google-genai for the two generation calls."""

    def __init__(
        self,
        api_key: Optional[str],
        image_model: str,
        text_model: str,
        client: Optional[Any] = None,
    ):
        self.image_model = image_model
        self.text_model = text_model
        if client is None and api_key:
            client = genai.Client(api_key=api_key)
        self.client = client

    @property
    def configured(self) -> bool:
        return self.client is not None

    def _require_client(self):
        if self.client is None:
            raise GeneratorMisconfiguredError()
        return self.client

    async def generate_image_data_url(self, prompt: str) -> str:
        client = self._require_client()
        try:
            response = await client.aio.models.generate_content(
                model=self.image_model,
                contents=prompt,
                config=types.GenerateContentConfig(response_modalities=["IMAGE", "TEXT"]),
            )
        except genai_errors.APIError as e:
            logger.error("Image generation error: %s", e)
            raise GenerationError(e.message or str(e)) from e

        data_url = extract_image_data_url(response)
        if data_url is None:
            logger.error("No image in response from %s. Parts: %r", self.image_model, _first_parts(response))
            raise NoImageReturnedError(
                f'No image returned from model "{self.image_model}". Check server logs.'
            )
        return data_url

    async def generate_text(self, prompt: str) -> str:
        client = self._require_client()
        try:
            response = await client.aio.models.generate_content(
                model=self.text_model,
                contents=prompt,
            )
        except genai_errors.APIError as e:
            logger.error("Text generation error: %s", e)
            raise GenerationError(e.message or str(e)) from e
        return extract_text(response)
