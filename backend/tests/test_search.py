"""
Tests for SearchService outcome mapping.
"""
from unittest.mock import MagicMock

import pytest

from apps.indexing.embedder import EmbeddingServiceError
from apps.rag.chat import NO_RELEVANT_ANSWER, AnswerSynthesizer, ChatResponse, Source
from apps.rag.llm_client import GenerationServiceError
from apps.rag.retrieval import Match, RetrievalResult, RetrievalStatus, Retriever
from apps.rag.search import (
    NO_CONTENT_ANSWER,
    NO_MATCH_ANSWER,
    SEARCH_FAILED_MESSAGE,
    SearchOutcome,
    SearchService,
)

SOURCE = Source(title="report.pdf", page=1, relevance="90%", snippet="Revenue grew 15%.")


def a_match():
    return Match(doc_id="doc-1", chunk_index=0, page_number=1, text="Revenue grew 15%.",
                 document_title="report.pdf", score=0.9)


@pytest.fixture
def retriever():
    retriever = MagicMock(spec=Retriever)
    retriever.retrieve.return_value = RetrievalResult(
        query="q", status=RetrievalStatus.OK, matches=[a_match()], candidate_count=1
    )
    return retriever


@pytest.fixture
def synthesizer():
    synthesizer = MagicMock(spec=AnswerSynthesizer)
    synthesizer.synthesize.return_value = ChatResponse(answer="Revenue grew 15%.", sources=[SOURCE])
    return synthesizer


class TestSearchService:

    def test_answered(self, retriever, synthesizer):
        response = SearchService(retriever, synthesizer).search("user-1", "q", 5)

        assert response.outcome == SearchOutcome.ANSWERED
        assert response.to_dict() == {"answer": "Revenue grew 15%.", "sources": [SOURCE.to_dict()]}
        retriever.retrieve.assert_called_once_with("user-1", "q", 5)

    def test_no_content(self, retriever, synthesizer):
        retriever.retrieve.return_value = RetrievalResult(query="q", status=RetrievalStatus.NO_CONTENT)

        response = SearchService(retriever, synthesizer).search("user-1", "q")

        assert response.outcome == SearchOutcome.NO_CONTENT
        assert response.answer == NO_CONTENT_ANSWER
        assert response.sources == []
        synthesizer.synthesize.assert_not_called()

    def test_no_match(self, retriever, synthesizer):
        retriever.retrieve.return_value = RetrievalResult(query="q", status=RetrievalStatus.OK, matches=[])

        response = SearchService(retriever, synthesizer).search("user-1", "q")

        assert response.outcome == SearchOutcome.NO_MATCH
        assert response.answer == NO_MATCH_ANSWER
        synthesizer.synthesize.assert_not_called()

    def test_model_refusal_is_no_match(self, retriever, synthesizer):
        synthesizer.synthesize.return_value = ChatResponse(answer=NO_RELEVANT_ANSWER, sources=[SOURCE])

        response = SearchService(retriever, synthesizer).search("user-1", "q")

        assert response.outcome == SearchOutcome.NO_MATCH
        assert response.sources == [SOURCE]

    def test_padded_refusal_is_no_match(self, retriever, synthesizer):
        synthesizer.synthesize.return_value = ChatResponse(answer=f"{NO_RELEVANT_ANSWER}\n", sources=[SOURCE])

        response = SearchService(retriever, synthesizer).search("user-1", "q")

        assert response.outcome == SearchOutcome.NO_MATCH

    def test_embedding_failure(self, retriever, synthesizer):
        retriever.retrieve.side_effect = EmbeddingServiceError("secret upstream detail")

        response = SearchService(retriever, synthesizer).search("user-1", "q")

        assert response.outcome == SearchOutcome.FAILED
        assert response.answer == SEARCH_FAILED_MESSAGE

    def test_generation_failure(self, retriever, synthesizer):
        synthesizer.synthesize.side_effect = GenerationServiceError("secret upstream detail")

        response = SearchService(retriever, synthesizer).search("user-1", "q")

        assert response.outcome == SearchOutcome.FAILED
        assert "secret" not in response.answer
