"""
Question answering over a user's documents.

SearchService runs retrieval and answer synthesis and maps every way a
search can end to one of four outcomes. Only ``answered`` carries model
output; the other three return fixed user-facing messages and never leak
the underlying error.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from apps.indexing.embedder import EmbeddingServiceError
from apps.rag.chat import AnswerSynthesizer, Source, get_answer_synthesizer
from apps.rag.llm_client import GenerationServiceError
from apps.rag.retrieval import DEFAULT_TOP_K, Retriever, get_retriever

logger = logging.getLogger(__name__)

NO_CONTENT_ANSWER = (
    "I couldn't find any indexed content for your documents yet. "
    "Try uploading a document first."
)
NO_MATCH_ANSWER = (
    "I couldn't find relevant information in your uploaded documents for that question. "
    "Please ask something that clearly relates to them."
)
SEARCH_FAILED_MESSAGE = "Search failed."


class SearchOutcome(str, Enum):
    ANSWERED = "answered"
    NO_CONTENT = "no_content"  # user has nothing indexed
    NO_MATCH = "no_match"  # content exists but nothing relevant
    FAILED = "failed"  # an external service failed


@dataclass
class SearchResponse:
    answer: str
    outcome: SearchOutcome
    sources: List[Source] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "answer": self.answer,
            "sources": [s.to_dict() for s in self.sources],
        }


class SearchService:
    """Retriever + AnswerSynthesizer behind one call."""

    def __init__(self, retriever: Retriever, synthesizer: AnswerSynthesizer):
        self.retriever = retriever
        self.synthesizer = synthesizer

    def search(self, user_id: str, query: str, top_k: int = DEFAULT_TOP_K) -> SearchResponse:
        try:
            result = self.retriever.retrieve(user_id, query, top_k)
        except EmbeddingServiceError as e:
            logger.error(f"Query embedding failed for user {user_id}: {e}")
            return SearchResponse(answer=SEARCH_FAILED_MESSAGE, outcome=SearchOutcome.FAILED)

        if not result.has_content:
            return SearchResponse(answer=NO_CONTENT_ANSWER, outcome=SearchOutcome.NO_CONTENT)

        if not result.matches:
            return SearchResponse(answer=NO_MATCH_ANSWER, outcome=SearchOutcome.NO_MATCH)

        try:
            response = self.synthesizer.synthesize(query, result.matches)
        except GenerationServiceError as e:
            logger.error(f"Answer generation failed for user {user_id}: {e}")
            return SearchResponse(answer=SEARCH_FAILED_MESSAGE, outcome=SearchOutcome.FAILED)

        if response.is_refusal:
            # The model declined; sources still show what was searched
            return SearchResponse(
                answer=response.answer,
                outcome=SearchOutcome.NO_MATCH,
                sources=response.sources,
            )

        return SearchResponse(
            answer=response.answer,
            outcome=SearchOutcome.ANSWERED,
            sources=response.sources,
        )


def get_search_service(
    retriever: Optional[Retriever] = None,
    synthesizer: Optional[AnswerSynthesizer] = None,
) -> SearchService:
    return SearchService(retriever or get_retriever(), synthesizer or get_answer_synthesizer())
