"""Text-in/text-out clients for the LLM backends.

Three wire dialects cover every backend the service talks to:
OpenAI-compatible chat completions (OpenAI, Groq, Perplexity), Anthropic
Messages, and Gemini generateContent. Each backend exposes a single
``complete(prompt) -> str``; anything other than a 2xx with non-empty text
raises ``ProviderFailure``.
"""

import asyncio
import logging
from enum import StrEnum
from typing import Any

import httpx

from config.settings import Settings
from core.exceptions import ProviderFailure

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"


class BackendKind(StrEnum):
    OPENAI_COMPATIBLE = "openai_compatible"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"


class LLMBackend:
    """One configured LLM endpoint."""

    def __init__(
        self,
        name: str,
        kind: BackendKind,
        api_key: str,
        model: str,
        url: str,
        timeout: float = 25.0,
        supports_json_mode: bool = True,
        max_retries: int = 1,
    ):
        """Initialize the backend.

        Args:
            name: Backend id used in logs and provider ids ("groq", "openai", ...)
            kind: Wire dialect
            api_key: API key for the endpoint
            model: Model name sent with each request
            url: Full endpoint URL (Gemini: the model path is appended)
            timeout: HTTP timeout in seconds
            supports_json_mode: Whether the endpoint accepts a JSON response format
            max_retries: Retries on HTTP 429
        """
        self.name = name
        self.kind = kind
        self.api_key = api_key
        self.model = model
        self.url = url
        self.timeout = timeout
        self.supports_json_mode = supports_json_mode
        self.max_retries = max_retries
        self._client: httpx.AsyncClient | None = None

    def __repr__(self) -> str:
        return f"LLMBackend(name={self.name!r}, model={self.model!r})"

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    # -------------------------------------------------------------------------
    # Request building / response parsing per dialect
    # -------------------------------------------------------------------------

    def _build_request(
        self,
        prompt: str,
        system: str | None,
        json_mode: bool,
        temperature: float,
        max_tokens: int,
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        if self.kind == BackendKind.ANTHROPIC:
            body: dict[str, Any] = {
                "model": self.model,
                "max_tokens": max_tokens,
                "temperature": temperature,
                "messages": [{"role": "user", "content": prompt}],
            }
            if system:
                body["system"] = system
            headers = {
                "x-api-key": self.api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "content-type": "application/json",
            }
            return self.url, headers, body

        if self.kind == BackendKind.GEMINI:
            text = f"{system}\n\n{prompt}" if system else prompt
            generation_config: dict[str, Any] = {
                "temperature": temperature,
                "maxOutputTokens": max_tokens,
            }
            if json_mode:
                generation_config["responseMimeType"] = "application/json"
            body = {
                "contents": [{"parts": [{"text": text}]}],
                "generationConfig": generation_config,
            }
            url = f"{self.url.rstrip('/')}/{self.model}:generateContent"
            return url, {"x-goog-api-key": self.api_key}, body

        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        body = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode and self.supports_json_mode:
            body["response_format"] = {"type": "json_object"}
        return self.url, {"Authorization": f"Bearer {self.api_key}"}, body

    def _extract_text(self, data: dict[str, Any]) -> str:
        try:
            if self.kind == BackendKind.ANTHROPIC:
                return "".join(
                    block.get("text", "")
                    for block in data.get("content", [])
                    if block.get("type") == "text"
                )
            if self.kind == BackendKind.GEMINI:
                parts = data["candidates"][0]["content"]["parts"]
                return "".join(part.get("text", "") for part in parts)
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderFailure(self.name, "malformed_response") from e

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def complete(
        self,
        prompt: str,
        system: str | None = None,
        json_mode: bool = False,
        temperature: float = 0.1,
        max_tokens: int = 4000,
    ) -> str:
        """Send a prompt and return the model's text.

        Raises:
            ProviderFailure: On transport errors, non-2xx status, or empty text
        """
        url, headers, body = self._build_request(
            prompt, system, json_mode, temperature, max_tokens
        )
        client = await self._get_client()

        for attempt in range(self.max_retries + 1):
            try:
                response = await client.post(url, headers=headers, json=body)
            except httpx.TimeoutException as e:
                raise ProviderFailure(self.name, "timeout") from e
            except httpx.RequestError as e:
                raise ProviderFailure(self.name, f"request_error:{type(e).__name__}") from e

            if response.status_code == 429 and attempt < self.max_retries:
                delay = 2**attempt
                logger.warning(f"{self.name} rate limit hit, retrying in {delay}s")
                await asyncio.sleep(delay)
                continue

            if not response.is_success:
                raise ProviderFailure(self.name, f"http_{response.status_code}")

            try:
                data = response.json()
            except ValueError as e:
                raise ProviderFailure(self.name, "malformed_response") from e

            text = self._extract_text(data).strip()
            if not text:
                raise ProviderFailure(self.name, "empty")
            return text

        raise ProviderFailure(self.name, "http_429")


# =============================================================================
# Registry
# =============================================================================

# Ordered cheapest/fastest first.
BACKEND_ORDER = ("groq", "openai", "anthropic", "gemini", "perplexity")


def build_backends(settings: Settings) -> dict[str, LLMBackend]:
    """Create a backend for every LLM whose API key is configured.

    Returns:
        Mapping of backend name to backend, in BACKEND_ORDER
    """
    timeout = settings.llm_timeout
    candidates = {
        "groq": (
            settings.groq_api_key,
            BackendKind.OPENAI_COMPATIBLE,
            settings.groq_model,
            "https://api.groq.com/openai/v1/chat/completions",
            True,
        ),
        "openai": (
            settings.openai_api_key,
            BackendKind.OPENAI_COMPATIBLE,
            settings.openai_model,
            "https://api.openai.com/v1/chat/completions",
            True,
        ),
        "anthropic": (
            settings.anthropic_api_key,
            BackendKind.ANTHROPIC,
            settings.anthropic_model,
            "https://api.anthropic.com/v1/messages",
            False,
        ),
        "gemini": (
            settings.gemini_api_key,
            BackendKind.GEMINI,
            settings.gemini_model,
            "https://generativelanguage.googleapis.com/v1beta/models",
            True,
        ),
        "perplexity": (
            settings.perplexity_api_key,
            BackendKind.OPENAI_COMPATIBLE,
            settings.perplexity_model,
            "https://api.perplexity.ai/chat/completions",
            False,
        ),
    }

    backends: dict[str, LLMBackend] = {}
    for name in BACKEND_ORDER:
        api_key, kind, model, url, json_mode = candidates[name]
        if not api_key:
            logger.debug(f"{name.upper()}_API_KEY not set - {name} backend disabled")
            continue
        backends[name] = LLMBackend(
            name=name,
            kind=kind,
            api_key=api_key,
            model=model,
            url=url,
            timeout=timeout,
            supports_json_mode=json_mode,
        )
    logger.info(f"LLM backends configured: {list(backends) or 'none'}")
    return backends
