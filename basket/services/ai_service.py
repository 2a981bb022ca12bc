import logging
import os
from typing import AsyncGenerator, Optional

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types
from pydantic import BaseModel

from basket.errors import ErrorCode, UpstreamError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Schema helper for Gemini API compatibility
# ---------------------------------------------------------------------------


def _strip_additional_properties(schema: dict) -> dict:
    """
    Recursively remove 'additionalProperties' from a JSON schema dict.
    The Gemini API doesn't support this OpenAPI 3.1 field that Pydantic v2 adds.
    """
    if isinstance(schema, dict):
        schema.pop("additionalProperties", None)
        for value in schema.values():
            if isinstance(value, dict):
                _strip_additional_properties(value)
            elif isinstance(value, list):
                for item in value:
                    if isinstance(item, dict):
                        _strip_additional_properties(item)
    return schema


class GeminiService:
    """Service for interacting with Google Gemini API"""

    def __init__(self, api_key: Optional[str] = None):
        key = api_key or os.getenv("GOOGLE_API_KEY")
        if not key:
            raise ValueError("GOOGLE_API_KEY environment variable not set")

        self.client = genai.Client(api_key=key)
        self.model_name = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")

    async def stream_json(
        self,
        prompt: str,
        schema: type[BaseModel],
        *,
        temperature: float | None = None,
    ) -> AsyncGenerator[str, None]:
        """
        Yield raw JSON text chunks as Gemini streams a structured response.

        Concatenating every chunk gives one JSON document matching ``schema``.
        Chunks already yielded stay delivered if the call fails part-way; the
        failure is raised as UpstreamError afterwards.
        """
        config_kwargs: dict = {
            "response_mime_type": "application/json",
            "response_schema": _strip_additional_properties(schema.model_json_schema()),
        }
        if temperature is not None:
            config_kwargs["temperature"] = temperature

        logger.info("🤖 AI CALL: stream_json (schema=%s, prompt_len=%d)", schema.__name__, len(prompt))
        chunk_count = 0
        try:
            stream = await self.client.aio.models.generate_content_stream(
                model=self.model_name,
                contents=prompt,
                config=types.GenerateContentConfig(**config_kwargs),
            )
            async for chunk in stream:
                if chunk.text:
                    chunk_count += 1
                    yield chunk.text
        except genai_errors.APIError as e:
            logger.error("Gemini stream failed after %d chunks: %s", chunk_count, e)
            raise UpstreamError(ErrorCode.ASSISTANT_FAILED, f"The assistant failed to respond: {e}") from e
        except httpx.HTTPError as e:
            logger.error("Gemini transport failed after %d chunks: %r", chunk_count, e)
            raise UpstreamError(ErrorCode.ASSISTANT_FAILED, "The assistant could not be reached") from e
        logger.info("✅ AI RESPONSE: stream_json → %d chunks", chunk_count)
