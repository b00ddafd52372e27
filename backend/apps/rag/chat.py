"""
Answer synthesis for RAG.

Builds a grounded prompt from ranked matches, asks the generation service
for an answer restricted to those excerpts, and turns the matches into
source citations for the UI.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional

from apps.rag.llm_client import (
    BaseLLMClient,
    LLMMessage,
    get_llm_client,
)
from apps.rag.retrieval import Match

logger = logging.getLogger(__name__)

# Near-deterministic sampling
ANSWER_TEMPERATURE = 0.1
ANSWER_MAX_TOKENS = 800

SNIPPET_MAX_LENGTH = 160

UNKNOWN_DOCUMENT_TITLE = "Unknown Document"

# Returned verbatim when the excerpts cannot answer the question
NO_RELEVANT_ANSWER = (
    "I couldn't find relevant information in the uploaded documents for that question."
)

SYSTEM_PROMPT = (
    "You are a retrieval-augmented assistant. You MUST answer ONLY using the "
    "information in the 'Document excerpts' below. If the documents do not "
    "contain enough information to answer, reply exactly with: "
    f"\"{NO_RELEVANT_ANSWER}\" "
    "Do not use any external or general knowledge."
)


@dataclass
class Source:
    """A citation shown next to the answer."""
    title: str
    page: int
    relevance: str  # e.g. "87%"
    snippet: str

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "page": self.page,
            "relevance": self.relevance,
            "snippet": self.snippet,
        }


@dataclass
class ChatResponse:
    """Answer text plus the sources it was grounded on."""
    answer: str
    sources: List[Source] = field(default_factory=list)
    model: Optional[str] = None

    @property
    def is_refusal(self) -> bool:
        return self.answer.strip() == NO_RELEVANT_ANSWER

    def to_dict(self) -> dict:
        return {
            "answer": self.answer,
            "sources": [s.to_dict() for s in self.sources],
        }


def create_snippet(text: str, max_length: int = SNIPPET_MAX_LENGTH) -> str:
    """First ``max_length`` characters, whitespace collapsed, '...' if cut."""
    snippet = re.sub(r'\s+', ' ', text[:max_length])
    if len(text) > max_length:
        snippet += "..."
    return snippet


def relevance_percent(score: float) -> int:
    """Similarity as a whole percentage clamped to 0-100."""
    return max(0, min(100, round(score * 100)))


def build_context_block(matches: List[Match]) -> str:
    """
    Build the labeled excerpt block, one entry per match in rank order.

    Format:
        Source 1 — report.pdf, Page 2:
        The text content here...
    """
    parts = []
    for i, match in enumerate(matches, 1):
        title = match.document_title or UNKNOWN_DOCUMENT_TITLE
        parts.append(f"Source {i} — {title}, Page {match.page_number or 1}:\n{match.text}")
    return "\n\n".join(parts)


def build_user_message(question: str, context: str) -> str:
    return f"User question:\n{question}\n\nDocument excerpts:\n{context}"


def build_sources(matches: List[Match]) -> List[Source]:
    return [
        Source(
            title=match.document_title or UNKNOWN_DOCUMENT_TITLE,
            page=match.page_number or 1,
            relevance=f"{relevance_percent(match.score)}%",
            snippet=create_snippet(match.text),
        )
        for match in matches
    ]


class AnswerSynthesizer:
    """Turns ranked matches into a grounded answer with citations."""

    def __init__(self, llm_client: BaseLLMClient):
        self.llm_client = llm_client

    def synthesize(self, question: str, matches: List[Match]) -> ChatResponse:
        """
        Generate an answer from the given matches.

        With no matches the fixed refusal is returned and the generation
        service is not called.

        Raises:
            GenerationServiceError: If the generation call fails
        """
        if not matches:
            logger.info("No context available, returning default response")
            return ChatResponse(answer=NO_RELEVANT_ANSWER, sources=[])

        context = build_context_block(matches)
        logger.debug(f"Context length: {len(context)} chars from {len(matches)} matches")

        messages = [
            LLMMessage(role="system", content=SYSTEM_PROMPT),
            LLMMessage(role="user", content=build_user_message(question, context)),
        ]

        response = self.llm_client.chat(
            messages,
            temperature=ANSWER_TEMPERATURE,
            max_tokens=ANSWER_MAX_TOKENS,
        )

        answer = response.content.strip() or NO_RELEVANT_ANSWER

        return ChatResponse(
            answer=answer,
            sources=build_sources(matches),
            model=response.model,
        )


def get_answer_synthesizer(llm_client: Optional[BaseLLMClient] = None) -> AnswerSynthesizer:
    return AnswerSynthesizer(llm_client or get_llm_client())

