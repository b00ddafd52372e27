"""
Query normalization and embedding for RAG queries.

Questions are embedded with the same client and model as document chunks,
but in query mode.
"""
import logging
import re
from typing import List, Optional

from apps.indexing.embedder import (
    EmbedMode,
    EmbeddingClient,
    EmbeddingServiceError,
    get_embedding_client,
)

logger = logging.getLogger(__name__)

MAX_QUERY_LENGTH = 2000


class QueryValidationError(Exception):
    """Raised when query validation fails."""
    pass


def normalize_query(query: str) -> str:
    """
    Normalize a user query for embedding.

    - Strip leading/trailing whitespace
    - Collapse multiple whitespace to single space
    - Raise if empty or too long

    Raises:
        QueryValidationError: If the query is empty after normalization or
            longer than MAX_QUERY_LENGTH
    """
    if not query or not isinstance(query, str):
        raise QueryValidationError("Query cannot be empty")

    normalized = re.sub(r'\s+', ' ', query.strip())

    if not normalized:
        raise QueryValidationError("Query cannot be empty")

    if len(normalized) > MAX_QUERY_LENGTH:
        raise QueryValidationError(f"Query too long (max {MAX_QUERY_LENGTH} characters)")

    return normalized


def embed_query(query: str, client: Optional[EmbeddingClient] = None) -> List[float]:
    """
    Generate the embedding vector for a user query.

    Raises:
        EmbeddingServiceError: If the embedding call fails
    """
    client = client or get_embedding_client()
    vector = client.embed_one(query, EmbedMode.QUERY)
    if not vector:
        raise EmbeddingServiceError("Embedding service returned an empty query vector")

    logger.debug(f"Generated query embedding with {len(vector)} dimensions")
    return vector
