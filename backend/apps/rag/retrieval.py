"""
Retrieval service for RAG queries.

Performs a user-scoped similarity search over every indexed chunk the user
owns: load candidates, embed the query, score each candidate by cosine
similarity, rank, apply the relevance threshold, keep the top K.
"""
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from apps.docs.store import (
    DocumentStore,
    StorageInconsistency,
    get_document_store,
    parse_embedding,
)
from apps.indexing.embedder import EmbeddingClient, EmbeddingServiceError, get_embedding_client
from apps.rag.embeddings import embed_query

logger = logging.getLogger(__name__)

# Default number of chunks to retrieve
DEFAULT_TOP_K = 5
MAX_TOP_K = 20

# Minimum cosine similarity for a chunk to count as relevant
RELEVANCE_THRESHOLD = 0.05


class RetrievalStatus(str, Enum):
    OK = "ok"
    NO_CONTENT = "no_content"  # nothing indexed to search


@dataclass
class Match:
    """A scored candidate chunk. Lives only for one query."""
    doc_id: str
    chunk_index: int
    page_number: int
    text: str
    document_title: str
    score: float

    def to_dict(self) -> dict:
        return {
            "docId": self.doc_id,
            "chunkIndex": self.chunk_index,
            "page": self.page_number,
            "documentTitle": self.document_title,
            "score": round(self.score, 4),
        }


@dataclass
class RetrievalResult:
    """Result of a retrieval query."""
    query: str
    status: RetrievalStatus
    matches: List[Match] = field(default_factory=list)
    candidate_count: int = 0

    @property
    def has_content(self) -> bool:
        return self.status == RetrievalStatus.OK

    def to_dict(self) -> dict:
        return {
            "query": self.query,
            "status": self.status.value,
            "matches": [m.to_dict() for m in self.matches],
        }


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two vectors.

    Only the first ``min(len(a), len(b))`` dimensions are compared, so a
    length mismatch never raises. A zero-norm vector scores 0.0.
    """
    dim = min(len(a), len(b))
    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0

    for i in range(dim):
        x = a[i]
        y = b[i]
        dot += x * y
        norm_a += x * x
        norm_b += y * y

    if not norm_a or not norm_b:
        return 0.0
    return dot / (math.sqrt(norm_a) * math.sqrt(norm_b))


def select_top_matches(
    matches: List[Match],
    top_k: int = DEFAULT_TOP_K,
    threshold: float = RELEVANCE_THRESHOLD,
) -> List[Match]:
    """
    Rank, threshold and truncate scored matches.

    Ranking is a stable descending sort, so equal scores keep their input
    order. Matches below ``threshold`` are dropped unless that would drop
    all of them, in which case the full ranked list is used.
    """
    ranked = sorted(matches, key=lambda m: m.score, reverse=True)
    relevant = [m for m in ranked if m.score >= threshold]

    if not relevant and ranked:
        # Policy choice: off-topic questions can reach the LLM this way
        logger.info(
            f"No match reached threshold {threshold}; keeping all {len(ranked)} candidates"
        )
        relevant = ranked

    return relevant[:top_k]


class Retriever:
    """
    Exhaustive similarity search over a user's ready chunks.

    Every query scans every chunk of every ready document the user owns.
    That is O(chunks) per query with no index structure; an approximate
    nearest-neighbour index would replace ``_score_candidates`` if corpora
    grow large.
    """

    def __init__(
        self,
        store: DocumentStore,
        embedder: EmbeddingClient,
        threshold: float = RELEVANCE_THRESHOLD,
    ):
        self.store = store
        self.embedder = embedder
        self.threshold = threshold

    def retrieve(self, user_id: str, query: str, top_k: int = DEFAULT_TOP_K) -> RetrievalResult:
        """
        Find the chunks most relevant to ``query`` among the user's documents.

        Returns:
            RetrievalResult with status NO_CONTENT when the user has nothing
            searchable, otherwise OK with up to ``top_k`` matches, best first

        Raises:
            EmbeddingServiceError: If the query cannot be embedded
            ValueError: If top_k < 1
        """
        if top_k < 1:
            raise ValueError(f"top_k must be at least 1, got {top_k}")

        documents = self.store.list_ready_documents(user_id)
        logger.info(f"User {user_id}: {len(documents)} ready documents")
        if not documents:
            return RetrievalResult(query=query, status=RetrievalStatus.NO_CONTENT)

        try:
            chunks = self.store.list_chunks([d.id for d in documents])
        except StorageInconsistency as e:
            logger.warning(f"Documents vanished during retrieval for user {user_id}: {e}")
            return RetrievalResult(query=query, status=RetrievalStatus.NO_CONTENT)

        logger.info(f"User {user_id}: {len(chunks)} candidate chunks")
        if not chunks:
            return RetrievalResult(query=query, status=RetrievalStatus.NO_CONTENT)

        query_vector = parse_embedding(embed_query(query, self.embedder))
        if query_vector is None:
            raise EmbeddingServiceError("Embedding service returned a malformed query vector")

        scored = self._score_candidates(query_vector, chunks)
        logger.info(f"Scored {len(scored)} of {len(chunks)} chunks (others had no valid embedding)")

        if not scored:
            return RetrievalResult(query=query, status=RetrievalStatus.NO_CONTENT)

        top = select_top_matches(scored, top_k=top_k, threshold=self.threshold)
        if top:
            logger.info(f"Using {len(top)} matches. Best similarity: {top[0].score:.4f}")

        return RetrievalResult(
            query=query,
            status=RetrievalStatus.OK,
            matches=top,
            candidate_count=len(scored),
        )

    @staticmethod
    def _score_candidates(query_vector: List[float], chunks) -> List[Match]:
        matches = []
        for chunk in chunks:
            if not chunk.embedding:
                continue
            matches.append(Match(
                doc_id=chunk.doc_id,
                chunk_index=chunk.chunk_index,
                page_number=chunk.page_number,
                text=chunk.text,
                document_title=chunk.document_title,
                score=cosine_similarity(query_vector, chunk.embedding),
            ))
        return matches


def get_retriever(store: Optional[DocumentStore] = None, embedder: Optional[EmbeddingClient] = None) -> Retriever:
    return Retriever(store or get_document_store(), embedder or get_embedding_client())
