# src/collab_tracker/llm/client.py

from __future__ import annotations

import logging
from typing import Any

import httpx
import openai
from openai import OpenAI

from ..core.errors import ValidationError
from ..tasks.image_analysis import ImageAnalysis, parse_data_url, parse_image_analysis

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You convert images of workspaces, whiteboards, or screenshots into structured task plans."

_PROMPT = """You are an expert product manager and technical lead helping break down work from visual inputs.
Analyze the provided image and extract actionable engineering or product tasks.

Return ONLY valid JSON matching this shape:
{
  "summary": string,
  "totalEstimatedHours": number (optional),
  "confidence": number between 0 and 1 (optional),
  "tasks": [
    {
      "id": string,
      "title": string,
      "description": string (optional),
      "notes": string (optional),
      "priority": "low" | "medium" | "high" (optional),
      "estimatedHours": number (optional)
    }
  ]
}

Guidelines:
- Include 1-8 tasks max.
- Use concise, specific titles.
- Provide best-guess hours if possible (use decimals for partial hours).
- Default priority to "medium" if unsure.
- Confidence reflects your overall certainty (0.0-1.0).
- Never include additional commentary outside the JSON."""


def build_prompt(context: str | None) -> str:
    if context and context.strip():
        return f"{_PROMPT}\n\nProject context: {context.strip()}"
    return _PROMPT


def friendly_llm_error_message(err: Exception) -> str:
    if isinstance(err, openai.AuthenticationError | openai.PermissionDeniedError):
        return "Image analysis authentication failed. Check TRACKER_OPENROUTER_API_KEY."
    if isinstance(err, openai.RateLimitError):
        return "Image analysis is rate-limited. Try again later."
    if isinstance(err, openai.APIConnectionError):
        return "Image analysis network/timeout error. Try again later."
    return str(err).strip() or "Image analysis failed."


class OpenAIImageTaskExtractor:
    """
    Vision extractor over an OpenAI-compatible chat completions endpoint.

    The client is created lazily so no secrets are needed at import time, and
    automatic retries are disabled so a failing request surfaces quickly.
    """

    def __init__(
        self,
        *,
        api_key: str | None,
        base_url: str,
        model: str,
        timeout_seconds: float = 30.0,
        max_tokens: int = 1200,
        client: OpenAI | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url
        self.model = model
        self.timeout_seconds = float(timeout_seconds)
        self.max_tokens = int(max_tokens)
        self._client = client

    @classmethod
    def from_settings(cls, settings: Any) -> OpenAIImageTaskExtractor:
        return cls(
            api_key=getattr(settings, "openrouter_api_key", None),
            base_url=str(getattr(settings, "openrouter_base_url", "") or ""),
            model=str(getattr(settings, "vision_model", "") or ""),
            timeout_seconds=max(30.0, float(getattr(settings, "http_timeout_seconds", 30.0))),
        )

    def _get_client(self) -> OpenAI:
        if self._client is not None:
            return self._client

        if not self.api_key or not str(self.api_key).strip():
            raise RuntimeError("Image analysis API key is not set. Set TRACKER_OPENROUTER_API_KEY in your .env.")
        if not self.base_url.strip():
            raise RuntimeError("Image analysis base URL is not set. Set TRACKER_OPENROUTER_BASE_URL in your .env.")

        self._client = OpenAI(
            base_url=self.base_url,
            api_key=str(self.api_key),
            timeout=httpx.Timeout(self.timeout_seconds, connect=5.0),
            max_retries=0,
        )
        return self._client

    def extract(self, image_data_url: str, context: str | None = None) -> ImageAnalysis:
        parse_data_url(image_data_url)
        if not self.model:
            raise RuntimeError("Vision model is not set. Set TRACKER_VISION_MODEL in your .env.")

        client = self._get_client()
        logger.info("Image analysis: model=%s", self.model)

        response = client.chat.completions.create(
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=0,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": build_prompt(context)},
                        {"type": "image_url", "image_url": {"url": image_data_url}},
                    ],
                },
            ],
        )

        text = ""
        if response.choices:
            text = response.choices[0].message.content or ""
        if not text.strip():
            raise ValidationError("Image analysis response did not include text content")

        analysis = parse_image_analysis(text)
        logger.debug("Image analysis: model=%s tasks=%s", self.model, len(analysis.tasks))
        return analysis
