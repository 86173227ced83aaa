"""Structured-output generation provider.

Wraps the OpenAI Responses API with a strict JSON schema. Callers get a
parsed dict or an ``AIProviderError``; they never see raw HTTP errors.
"""

import logging
from abc import ABC, abstractmethod

import httpx

from flowops.core.config import settings
from flowops.services.ai_response_validation import parse_json_object

logger = logging.getLogger(__name__)

MAX_ERROR_SNIPPET = 300


class AIProviderError(Exception):
    """Generation failed (configuration, transport, or unusable output)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class AIProviderTimeoutError(AIProviderError):
    pass


class AIProvider(ABC):
    """Abstract base class for structured generators."""

    @abstractmethod
    async def generate(
        self,
        system: str,
        user: str,
        schema_name: str,
        schema: dict,
        timeout: float,
    ) -> dict:
        """Return a JSON object that conforms to ``schema``."""
        pass


def extract_output_text(data: dict) -> str:
    """
    Pull assistant text out of a Responses API payload.

    Prefers the ``output_text`` convenience field, then falls back to the
    ``output[].content[]`` message parts.
    """
    direct = data.get("output_text")
    if isinstance(direct, str) and direct.strip():
        return direct.strip()

    output = data.get("output") if isinstance(data.get("output"), list) else []
    texts: list[str] = []
    for item in output:
        if not isinstance(item, dict) or item.get("type") != "message":
            continue
        for part in item.get("content") or []:
            if isinstance(part, dict) and part.get("type") == "output_text":
                text = (part.get("text") or "").strip()
                if text:
                    texts.append(text)
    if texts:
        return "\n".join(texts)

    types = [item.get("type") for item in output if isinstance(item, dict)]
    raise AIProviderError(f"Model returned no assistant output text (output types={types})")


class OpenAIProvider(AIProvider):
    """OpenAI Responses API with strict JSON-schema output."""

    def __init__(
        self,
        api_key: str,
        default_model: str = "gpt-4o-mini",
        base_url: str = "https://api.openai.com/v1",
    ):
        self.api_key = api_key
        self.default_model = default_model
        self.base_url = base_url.rstrip("/")

    async def generate(
        self,
        system: str,
        user: str,
        schema_name: str,
        schema: dict,
        timeout: float,
    ) -> dict:
        if not self.api_key:
            raise AIProviderError("OPENAI_API_KEY is not configured")

        body = {
            "model": self.default_model,
            "input": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "text": {
                "format": {
                    "type": "json_schema",
                    "name": schema_name,
                    "strict": True,
                    "schema": schema,
                }
            },
        }

        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.post(
                    f"{self.base_url}/responses",
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json=body,
                )
        except httpx.TimeoutException as exc:
            raise AIProviderTimeoutError(f"Model request timed out after {timeout}s") from exc
        except httpx.HTTPError as exc:
            raise AIProviderError(f"Model request failed: {type(exc).__name__}") from exc

        if response.status_code >= 400:
            raise AIProviderError(
                f"Model API error {response.status_code}: {response.text[:MAX_ERROR_SNIPPET]}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise AIProviderError("Model API returned a non-JSON body") from exc

        text = extract_output_text(data)
        parsed = parse_json_object(text)
        if parsed is None:
            raise AIProviderError(
                f"Failed to parse JSON from model output. Snippet={text[:MAX_ERROR_SNIPPET]!r}"
            )
        return parsed


_provider: AIProvider | None = None


def get_ai_provider() -> AIProvider:
    global _provider
    if _provider is None:
        _provider = OpenAIProvider(
            api_key=settings.OPENAI_API_KEY,
            default_model=settings.OPENAI_MODEL,
            base_url=settings.OPENAI_BASE_URL,
        )
    return _provider


def set_ai_provider(provider: AIProvider | None) -> None:
    """Override the process-wide provider (tests, alternative backends)."""
    global _provider
    _provider = provider
