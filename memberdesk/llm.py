"""Text-generation collaborator.

The member desk only ever asks for short completions: classify this
message, pull these fields out, phrase this reply. ``TextGenerator`` is the
seam; ``OllamaTextGenerator`` talks to a local Ollama server over HTTP.
Output is untrusted free text and every caller handles a bad answer.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional

import httpx

from memberdesk.errors import GenerationError

log = logging.getLogger("memberdesk.llm")


class ModelSize(str, Enum):
    SMALL = "small"
    LARGE = "large"


class TextGenerator(ABC):
    """Produce a completion for an instruction."""

    @abstractmethod
    async def generate(
        self,
        instruction: str,
        *,
        stop: Optional[list[str]] = None,
        size: ModelSize = ModelSize.SMALL,
    ) -> str:
        """Return the raw completion text.

        Raises:
            GenerationError: the service failed or could not be reached.
        """


class OllamaTextGenerator(TextGenerator):
    """Non-streaming completions from Ollama's ``/api/generate``."""

    def __init__(
        self,
        base_url: str,
        small_model: str,
        large_model: str,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._models = {ModelSize.SMALL: small_model, ModelSize.LARGE: large_model}
        self._timeout = timeout
        self._transport = transport

    def model_for(self, size: ModelSize) -> str:
        return self._models[size]

    async def generate(
        self,
        instruction: str,
        *,
        stop: Optional[list[str]] = None,
        size: ModelSize = ModelSize.SMALL,
    ) -> str:
        payload: dict[str, Any] = {
            "model": self.model_for(size),
            "prompt": instruction,
            "stream": False,
        }
        if stop:
            payload["options"] = {"stop": stop}

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(f"{self.base_url}/api/generate", json=payload)
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as exc:
            log.error("Ollama returned %s for model %s", exc.response.status_code, payload["model"])
            raise GenerationError(f"text generation failed (status {exc.response.status_code})") from exc
        except httpx.HTTPError as exc:
            log.error("Ollama request failed: %s", exc)
            raise GenerationError("text generation service unreachable") from exc
        except ValueError as exc:
            raise GenerationError("text generation returned invalid JSON") from exc

        text = data.get("response", "") if isinstance(data, dict) else ""
        log.debug("Generated %d chars with %s", len(text), payload["model"])
        return text


def build_text_generator(settings) -> TextGenerator:
    """Construct the configured generator from application settings."""
    if settings.llm_provider != "ollama":
        raise ValueError(f"Unsupported LLM_PROVIDER: {settings.llm_provider!r}")
    return OllamaTextGenerator(
        base_url=settings.ollama_url,
        small_model=settings.ollama_model_small,
        large_model=settings.ollama_model_large,
        timeout=settings.llm_timeout,
    )
