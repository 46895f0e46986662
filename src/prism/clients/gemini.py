"""Google Generative Language (Gemini) API client.

Provides async access to the ``generateContent`` endpoint, reduced to the
pipeline's backend contract: ``ask(prompt, variant) -> text``.

API Documentation: https://ai.google.dev/api/generate-content

Usage:
    from prism.clients.gemini import GeminiClient

    async with GeminiClient(api_key="your_key") as client:
        text = await client.ask("Summarize ...", ModelVariant.FLASH)
"""

from typing import Any

from prism.clients.base import BaseAsyncClient
from prism.models import ModelVariant

DEFAULT_MODELS = {
    ModelVariant.FLASH: "gemini-2.0-flash-lite",
    ModelVariant.PRO: "gemini-2.5-pro",
}


class GeminiClient(BaseAsyncClient):
    """Async client for the Gemini generateContent API.

    Args:
        api_key: Generative Language API key
        base_url: API root (default: public v1 endpoint)
        models: Variant -> model name mapping
        rate_limit: Max requests per second (default: 5)
        timeout: HTTP timeout in seconds
        max_retries: Extra attempts on transient failures
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://generativelanguage.googleapis.com/v1",
        models: dict[ModelVariant, str] | None = None,
        rate_limit: int = 5,
        timeout: float = 60.0,
        max_retries: int = 0,
    ) -> None:
        super().__init__(
            base_url=base_url,
            headers={"Content-Type": "application/json"},
            rate_limit=rate_limit,
            timeout=timeout,
            max_retries=max_retries,
        )
        self.api_key = api_key
        self.models = {**DEFAULT_MODELS, **(models or {})}

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Override to inject the API key into params."""
        params = params or {}
        params["key"] = self.api_key
        return await super()._request(method, endpoint, params, json_data)

    def model_name(self, variant: ModelVariant | str | None) -> str:
        """Resolve a variant selector to a concrete model name."""
        return self.models[ModelVariant.coerce(variant)]

    async def generate_content(self, prompt: str, model: str) -> dict[str, Any]:
        """Raw generateContent call for a single-turn text prompt."""
        return await self.post(
            f"/models/{model}:generateContent",
            json_data={"contents": [{"parts": [{"text": prompt}]}]},
        )

    async def ask(self, prompt: str, variant: ModelVariant | str | None = None) -> str:
        """Send a prompt and return the first candidate's text.

        Returns:
            Stripped response text; empty string when the response has no
            text part (e.g. safety-blocked candidates).

        Raises:
            APIProviderError: On HTTP or transport failure
        """
        data = await self.generate_content(prompt, self.model_name(variant))
        return extract_text(data)


def extract_text(data: dict[str, Any]) -> str:
    """Pull ``candidates[0].content.parts[*].text`` out of a response body."""
    candidates = data.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    texts = [part.get("text", "") for part in parts if isinstance(part, dict)]
    return "".join(texts).strip()
