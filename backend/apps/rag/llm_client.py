"""
LLM Client Abstraction Layer.

Provides a unified interface for answer generation that can switch between:
- Groq (OpenAI-compatible chat completions API, default)
- Ollama (local inference)

Embeddings never go through this module; see apps.indexing.embedder.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional

import httpx
from django.conf import settings

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.1
DEFAULT_MAX_TOKENS = 800


@dataclass
class LLMMessage:
    """A message in a chat conversation."""
    role: str  # "system", "user", or "assistant"
    content: str


@dataclass
class LLMResponse:
    """Response from an LLM call."""
    content: str
    model: str
    usage: Optional[Dict[str, int]] = None  # token usage if available


class GenerationServiceError(Exception):
    """Raised when the generation service call fails or returns garbage."""
    pass


class BaseLLMClient(ABC):
    """Abstract base class for LLM clients."""

    @abstractmethod
    def chat(
        self,
        messages: List[LLMMessage],
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> LLMResponse:
        """
        Send a chat completion request.

        Returns:
            LLMResponse; ``content`` may be empty if the model produced nothing

        Raises:
            GenerationServiceError: If the request fails
        """
        pass


class GroqClient(BaseLLMClient):
    """
    Client for Groq's OpenAI-compatible chat completions endpoint.

    Any OpenAI-compatible server works by pointing GROQ_BASE_URL at it.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.api_key = api_key if api_key is not None else getattr(settings, 'GROQ_API_KEY', '')
        self.base_url = (base_url or getattr(settings, 'GROQ_BASE_URL', 'https://api.groq.com/openai/v1')).rstrip('/')
        self.model = model or getattr(settings, 'LLM_MODEL', 'llama-3.1-8b-instant')
        self.timeout = timeout or getattr(settings, 'LLM_TIMEOUT', 120)

    def chat(
        self,
        messages: List[LLMMessage],
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> LLMResponse:
        if not self.api_key:
            raise GenerationServiceError("GROQ_API_KEY not configured")

        logger.info(f"Calling Groq: model={self.model}, temp={temperature}")

        try:
            with httpx.Client(timeout=float(self.timeout)) as client:
                response = client.post(
                    f"{self.base_url}/chat/completions",
                    json={
                        "model": self.model,
                        "messages": [{"role": m.role, "content": m.content} for m in messages],
                        "temperature": temperature,
                        "max_tokens": max_tokens,
                    },
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Groq HTTP error: {e}")
            raise GenerationServiceError(f"Generation service error: {e.response.status_code}")
        except httpx.TimeoutException:
            logger.error("Groq request timed out")
            raise GenerationServiceError("Generation service timed out")
        except httpx.RequestError as e:
            logger.error(f"Groq connection error: {e}")
            raise GenerationServiceError("Could not connect to generation service")
        except ValueError:
            raise GenerationServiceError("Invalid JSON from generation service")

        choices = data.get("choices") if isinstance(data, dict) else None
        if not isinstance(choices, list) or not choices:
            raise GenerationServiceError("No choices in generation response")

        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        if not isinstance(message, dict):
            raise GenerationServiceError("Malformed choice in generation response")

        content = message.get("content") or ""
        if not isinstance(content, str):
            raise GenerationServiceError("Non-text content in generation response")
        logger.info(f"Groq response: {len(content)} chars")
        return LLMResponse(content=content, model=self.model, usage=data.get("usage"))


class OllamaClient(BaseLLMClient):
    """LLM client for Ollama local inference."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = (base_url or getattr(settings, 'OLLAMA_BASE_URL', 'http://ollama:11434')).rstrip('/')
        self.model = model or getattr(settings, 'OLLAMA_CHAT_MODEL', 'llama3.2')
        self.timeout = timeout or getattr(settings, 'LLM_TIMEOUT', 120)

    def chat(
        self,
        messages: List[LLMMessage],
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> LLMResponse:
        logger.info(f"Calling Ollama chat: model={self.model}, temp={temperature}")

        try:
            with httpx.Client(timeout=float(self.timeout)) as client:
                response = client.post(
                    f"{self.base_url}/api/chat",
                    json={
                        "model": self.model,
                        "messages": [{"role": m.role, "content": m.content} for m in messages],
                        "stream": False,
                        "options": {
                            "temperature": temperature,
                            "num_predict": max_tokens,
                        },
                    },
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Ollama HTTP error: {e}")
            raise GenerationServiceError(f"Ollama service error: {e.response.status_code}")
        except httpx.TimeoutException:
            logger.error("Ollama request timed out")
            raise GenerationServiceError("Ollama service timed out")
        except httpx.RequestError as e:
            logger.error(f"Ollama connection error: {e}")
            raise GenerationServiceError("Could not connect to Ollama")
        except ValueError:
            raise GenerationServiceError("Invalid JSON from Ollama")

        if not isinstance(data, dict):
            raise GenerationServiceError("Invalid response from Ollama")

        message = data.get("message")
        content = (message.get("content") if isinstance(message, dict) else None) or ""
        if not isinstance(content, str):
            raise GenerationServiceError("Non-text content in Ollama response")
        logger.info(f"Ollama response: {len(content)} chars")
        return LLMResponse(content=content, model=self.model)


def get_llm_client() -> BaseLLMClient:
    """
    Build the configured LLM client.

    Uses the LLM_PROVIDER setting:
    - "groq" (default): Groq or another OpenAI-compatible API
    - "ollama": Local Ollama inference
    """
    provider = getattr(settings, 'LLM_PROVIDER', 'groq').lower()

    if provider == 'ollama':
        logger.debug("Using Ollama for answer generation")
        return OllamaClient()

    logger.debug("Using Groq for answer generation")
    return GroqClient()
