"""
Embedding generation via the Cohere v2 embed API.

The same client serves the indexing pipeline (document mode) and the query
path (query mode). Inputs are truncated and split into sub-batches before
they are sent; the returned vectors are positionally aligned with the input.
"""
import logging
from enum import Enum
from typing import List, Optional, Sequence

import requests
from django.conf import settings

logger = logging.getLogger(__name__)

# Embedding model configuration
DEFAULT_EMBEDDING_MODEL = "embed-english-v3.0"
DEFAULT_EMBEDDING_BASE_URL = "https://api.cohere.com"
DEFAULT_BATCH_SIZE = 90  # provider limit is 96 inputs per request
DEFAULT_MAX_INPUT_CHARS = 4000
DEFAULT_TIMEOUT = 60


class EmbeddingServiceError(Exception):
    """Raised when the embedding service fails or returns misaligned vectors."""
    pass


class EmbedMode(str, Enum):
    """
    Which side of a search the text is on.

    The value is sent to the provider as ``input_type``; documents and
    queries are embedded differently and must not be mixed up.
    """
    DOCUMENT = "search_document"
    QUERY = "search_query"


def truncate_for_embedding(text: str, max_chars: int = DEFAULT_MAX_INPUT_CHARS) -> str:
    """Cut text to the provider's input limit. Stored chunk text is untouched."""
    return text[:max_chars]


class EmbeddingClient:
    """
    Client for the external embedding service.

    Settings:
        EMBEDDING_BASE_URL, EMBEDDING_API_KEY, EMBEDDING_MODEL,
        EMBEDDING_TIMEOUT, EMBEDDING_BATCH_SIZE, EMBEDDING_MAX_INPUT_CHARS
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        batch_size: Optional[int] = None,
        max_input_chars: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = (base_url or getattr(settings, 'EMBEDDING_BASE_URL', DEFAULT_EMBEDDING_BASE_URL)).rstrip('/')
        self.api_key = api_key if api_key is not None else getattr(settings, 'EMBEDDING_API_KEY', '')
        self.model = model or getattr(settings, 'EMBEDDING_MODEL', DEFAULT_EMBEDDING_MODEL)
        self.batch_size = batch_size or getattr(settings, 'EMBEDDING_BATCH_SIZE', DEFAULT_BATCH_SIZE)
        self.max_input_chars = max_input_chars or getattr(
            settings, 'EMBEDDING_MAX_INPUT_CHARS', DEFAULT_MAX_INPUT_CHARS
        )
        self.timeout = timeout or getattr(settings, 'EMBEDDING_TIMEOUT', DEFAULT_TIMEOUT)

    @property
    def embed_url(self) -> str:
        return f"{self.base_url}/v2/embed"

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _build_payload(self, texts: Sequence[str], mode: EmbedMode) -> dict:
        return {
            "model": self.model,
            "input_type": mode.value,
            "embedding_types": ["float"],
            "inputs": [
                {"content": [{"type": "text", "text": truncate_for_embedding(t, self.max_input_chars)}]}
                for t in texts
            ],
        }

    def _embed_batch(self, texts: Sequence[str], mode: EmbedMode) -> List[List[float]]:
        """
        Embed one sub-batch.

        Raises:
            EmbeddingServiceError: On transport failure, non-2xx status,
                malformed body or a vector count that differs from the input
        """
        if not self.api_key:
            raise EmbeddingServiceError("EMBEDDING_API_KEY is not configured")

        try:
            response = requests.post(
                self.embed_url,
                headers=self._headers(),
                json=self._build_payload(texts, mode),
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout:
            raise EmbeddingServiceError("Embedding service timed out")
        except requests.exceptions.ConnectionError:
            raise EmbeddingServiceError(f"Cannot connect to embedding service at {self.base_url}")
        except requests.exceptions.RequestException as e:
            raise EmbeddingServiceError(f"Request failed: {e}")

        if not response.ok:
            error_detail = response.text[:500] if response.text else "No details"
            raise EmbeddingServiceError(
                f"Embedding service returned {response.status_code}: {error_detail}"
            )

        try:
            data = response.json()
            vectors = data["embeddings"]["float"]
        except (ValueError, KeyError, TypeError):
            raise EmbeddingServiceError("Invalid response from embedding service")

        if not isinstance(vectors, list) or len(vectors) != len(texts):
            got = len(vectors) if isinstance(vectors, list) else 'no'
            raise EmbeddingServiceError(
                f"Embedding service returned {got} vectors for {len(texts)} inputs"
            )

        return vectors

    def embed(self, texts: Sequence[str], mode: EmbedMode) -> List[List[float]]:
        """
        Generate embeddings for a sequence of texts.

        Sub-batches are sent one after another. If any of them fails the
        whole call fails and nothing is returned.

        Args:
            texts: Texts to embed
            mode: EmbedMode.DOCUMENT when indexing, EmbedMode.QUERY for questions

        Returns:
            List of embedding vectors, same length and order as ``texts``

        Raises:
            EmbeddingServiceError: If any sub-batch fails
        """
        if not texts:
            return []

        embeddings: List[List[float]] = []
        total = len(texts)

        for start in range(0, total, self.batch_size):
            batch = list(texts[start:start + self.batch_size])
            try:
                embeddings.extend(self._embed_batch(batch, mode))
            except EmbeddingServiceError as e:
                logger.error(
                    f"Failed to embed batch {start // self.batch_size + 1} "
                    f"({len(batch)} texts, mode={mode.value}): {e}"
                )
                raise

        logger.info(f"Generated {len(embeddings)} embeddings (mode={mode.value})")
        return embeddings

    def embed_one(self, text: str, mode: EmbedMode = EmbedMode.QUERY) -> List[float]:
        """Embed a single text."""
        return self.embed([text], mode)[0]

    def check_connection(self) -> bool:
        """
        Test if the embedding service is reachable with the configured key.

        Returns:
            True if a one-word embedding request succeeds, False otherwise
        """
        try:
            self._embed_batch(["ping"], EmbedMode.QUERY)
            logger.info(f"Embedding service OK, model {self.model} available")
            return True
        except EmbeddingServiceError as e:
            logger.error(f"Embedding service connection test failed: {e}")
            return False


def get_embedding_client() -> EmbeddingClient:
    """Build an embedding client from Django settings."""
    return EmbeddingClient()
