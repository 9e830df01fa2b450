"""OpenRouter chat-completions client with error classification."""

import httpx

from geoscale.services.exceptions import (
    ExternalServiceError,
    LLMRateLimitError,
    LLMResponseError,
    PermanentServiceError,
)


class OpenRouterClient:
    """Minimal chat-completions client for the OpenRouter API."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = "https://openrouter.ai/api/v1",
        referer: str = "",
        timeout: float = 120.0,
    ):
        """Initialize OpenRouter client.

        Args:
            api_key: OpenRouter API key (from OPENROUTER_API_KEY env var)
            model: Model identifier (e.g., "x-ai/grok-4.1-fast")
            base_url: API base URL
            referer: Site URL sent as HTTP-Referer for OpenRouter attribution
            timeout: HTTP timeout in seconds
        """
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": referer,
            "X-Title": "GeoScale",
        }

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/chat/completions"

    async def complete(
        self,
        prompt: str,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Send a single user message and return the assistant's reply text.

        Args:
            prompt: User message content
            temperature: Sampling temperature (model default when None)
            max_tokens: Reply length cap (model default when None)

        Returns:
            Generated text

        Raises:
            ExternalServiceError: Network timeout, rate limit (429), service unavailable (5xx)
            PermanentServiceError: Missing or invalid API key (401, 403), bad request (400)
            LLMResponseError: Response carried no generated text
        """
        if not self.api_key:
            raise PermanentServiceError("OPENROUTER_API_KEY not configured")

        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
        }
        if temperature is not None:
            payload["temperature"] = temperature
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.endpoint, headers=self.headers, json=payload)
        except httpx.TimeoutException as e:
            raise ExternalServiceError(f"OpenRouter request timeout: {e}") from e
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"OpenRouter network error: {e}") from e

        # Error classification
        if response.status_code == 429:
            raise LLMRateLimitError(f"Rate limit exceeded: {response.text}")
        elif response.status_code >= 500:
            raise ExternalServiceError(
                f"OpenRouter API error: {response.status_code} - {response.text}"
            )
        elif response.status_code in (401, 403):
            raise PermanentServiceError(
                f"OpenRouter rejected credentials ({response.status_code}). "
                "Check OPENROUTER_API_KEY configuration."
            )
        elif response.status_code >= 400:
            raise PermanentServiceError(
                f"OpenRouter API error: {response.status_code} - {response.text}"
            )

        try:
            data = response.json()
            generated = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise LLMResponseError(f"Malformed OpenRouter response: {e}") from e

        if not generated:
            raise LLMResponseError("No content generated from OpenRouter")

        return generated
