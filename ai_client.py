"""Thin wrapper around the Gemini SDK."""

import logging
import re

from google import genai

from config import GEMINI_API_KEY, GEMINI_MODEL
from errors import AIProviderError, AIQuotaExceeded, ConfigurationError

logger = logging.getLogger(__name__)

NO_RESPONSE = "No response"
QUOTA_MESSAGE = "AI limit reached right now. Try again in a minute (or increase your Gemini quota)."
PROVIDER_MESSAGE = "AI service error. Please try again."

_QUOTA_PATTERN = re.compile(r"\b429\b|RESOURCE_EXHAUSTED|quota|rate.?limit|\brate\b", re.IGNORECASE)


def _status_of(exc):
    for candidate in (
        getattr(exc, "code", None),
        getattr(exc, "status_code", None),
        getattr(getattr(exc, "response", None), "status_code", None),
        getattr(exc, "status", None),
    ):
        if isinstance(candidate, int) and not isinstance(candidate, bool):
            return candidate
    return None


def classify_provider_error(exc: Exception) -> AIProviderError:
    """Map an SDK failure to ``AIQuotaExceeded`` or ``AIProviderError``."""
    status = _status_of(exc)
    message = str(exc or "")
    if status == 429 or _QUOTA_PATTERN.search(message):
        return AIQuotaExceeded(QUOTA_MESSAGE, detail=message[:400])
    if status is None or not 400 <= status <= 599:
        status = 502
    return AIProviderError(PROVIDER_MESSAGE, status_code=status, detail=message[:400])


def extract_text(response) -> str:
    """Join the text parts of the first candidate; ``NO_RESPONSE`` when empty."""
    candidates = getattr(response, "candidates", None) or []
    parts = []
    if candidates:
        content = getattr(candidates[0], "content", None)
        parts = getattr(content, "parts", None) or []
    text = "".join(p.text for p in parts if isinstance(getattr(p, "text", None), str)).strip()
    return text or NO_RESPONSE


class GeminiClient:
    def __init__(self, api_key: str, model: str = GEMINI_MODEL):
        self.model = model
        self._client = genai.Client(api_key=api_key)

    def generate(self, prompt: str) -> str:
        try:
            response = self._client.models.generate_content(
                model=self.model,
                contents=[{"role": "user", "parts": [{"text": prompt}]}],
            )
        except Exception as exc:
            error = classify_provider_error(exc)
            logger.warning("Gemini request failed (%s): %s", error.code, error.detail)
            raise error from exc
        return extract_text(response)


def get_client(api_key: str | None = None) -> GeminiClient:
    key = (api_key or GEMINI_API_KEY or "").strip()
    if not key:
        raise ConfigurationError("Missing GEMINI_API_KEY")
    return GeminiClient(key)
