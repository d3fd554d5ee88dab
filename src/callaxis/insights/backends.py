"""
Generative text backends for the insight summarizer.
"""

from __future__ import annotations

import anyio
import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from callaxis.insights.models import InsightGenerationError
from callaxis.shared.logging import get_logger

logger = get_logger(__name__)


class GeminiBackend:
    """Google Gemini via the google-generativeai SDK."""

    def __init__(self, api_key: str) -> None:
        if not api_key.strip():
            raise InsightGenerationError("GEMINI_API_KEY is missing")
        genai.configure(api_key=api_key)
        self._models: dict[str, genai.GenerativeModel] = {}

    def _get_model(self, name: str) -> genai.GenerativeModel:
        model_name = name.strip()
        if not model_name:
            raise InsightGenerationError("Gemini model name was empty")
        if model_name not in self._models:
            self._models[model_name] = genai.GenerativeModel(model_name)
        return self._models[model_name]

    def _generate_sync(self, model: str, prompt: str) -> str:
        response = self._get_model(model).generate_content(prompt)
        return (getattr(response, "text", "") or "").strip()

    async def generate(self, model: str, prompt: str) -> str:
        try:
            return await anyio.to_thread.run_sync(self._generate_sync, model, prompt)
        except google_exceptions.NotFound as e:
            logger.warning("Gemini model not available", extra={"model": model, "error": str(e)})
            self._models.pop(model, None)
            raise InsightGenerationError(f"Gemini model {model} not available", details={"model": model}) from e
        except google_exceptions.GoogleAPIError as e:
            raise InsightGenerationError(f"Gemini request failed for {model}: {e}", details={"model": model}) from e
        except ValueError as e:
            # response.text raises ValueError when the candidate was blocked
            raise InsightGenerationError(f"Gemini returned no text for {model}", details={"model": model}) from e
