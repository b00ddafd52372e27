"""
RAG API views.

Provides endpoints for:
- POST /api/search - Full RAG: retrieve + answer with sources
- POST /api/rag/retrieve - Ranked matches only, for inspecting retrieval
"""
import json
import logging

from django.http import JsonResponse
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt

from apps.indexing.embedder import EmbeddingServiceError
from apps.rag.embeddings import QueryValidationError, normalize_query
from apps.rag.retrieval import DEFAULT_TOP_K, MAX_TOP_K, get_retriever
from apps.rag.search import SEARCH_FAILED_MESSAGE, SearchOutcome, get_search_service

logger = logging.getLogger(__name__)


class RequestError(Exception):
    """Invalid request body; the message is safe to show."""
    pass


def parse_search_request(request):
    """
    Parse and validate a {query, userId, topK?} JSON body.

    Returns:
        (user_id, query, top_k)

    Raises:
        RequestError: If any field is missing or invalid
    """
    try:
        body = json.loads(request.body or b'{}')
    except json.JSONDecodeError:
        raise RequestError("Invalid JSON")

    if not isinstance(body, dict):
        raise RequestError("Invalid JSON")

    user_id = body.get("userId")
    if not user_id or not isinstance(user_id, str):
        raise RequestError("Missing query or userId")

    raw_query = body.get("query", "")
    try:
        normalize_query(raw_query)
    except QueryValidationError as e:
        raise RequestError(str(e))
    # Validated in normalized form; the question itself is passed on as typed
    query = raw_query.strip()

    top_k = body.get("topK")
    if top_k is None:
        top_k = DEFAULT_TOP_K
    if isinstance(top_k, bool) or not isinstance(top_k, int) or top_k < 1 or top_k > MAX_TOP_K:
        raise RequestError(f"topK must be an integer between 1 and {MAX_TOP_K}")

    return user_id, query, top_k


@method_decorator(csrf_exempt, name='dispatch')
class SearchView(View):
    """
    POST /api/search

    Request body:
        {
            "query": "How much did revenue grow?",
            "userId": "user-123",
            "topK": 5  // optional, default 5
        }

    Response:
        {
            "answer": "Revenue grew 15%.",
            "sources": [
                {"title": "report.pdf", "page": 1, "relevance": "82%", "snippet": "..."}
            ]
        }

    "No indexed content" and "no relevant match" are answered with 200 and
    a fixed message; a failed external call returns 500 with a generic error.
    """

    def post(self, request):
        try:
            user_id, query, top_k = parse_search_request(request)
        except RequestError as e:
            return JsonResponse({"error": str(e)}, status=400)

        logger.info(f"Search for user {user_id} (topK={top_k}): {query[:100]}")

        response = get_search_service().search(user_id, query, top_k)

        if response.outcome == SearchOutcome.FAILED:
            return JsonResponse({"error": SEARCH_FAILED_MESSAGE}, status=500)

        data = response.to_dict()
        data["outcome"] = response.outcome.value
        return JsonResponse(data)


@method_decorator(csrf_exempt, name='dispatch')
class RetrieveView(View):
    """
    POST /api/rag/retrieve

    Same body as /api/search; returns the ranked matches without calling
    the generation service.

    Response:
        {
            "query": "...",
            "status": "ok" | "no_content",
            "matches": [
                {"docId": "...", "chunkIndex": 0, "page": 1, "documentTitle": "...", "score": 0.8123}
            ]
        }
    """

    def post(self, request):
        try:
            user_id, query, top_k = parse_search_request(request)
        except RequestError as e:
            return JsonResponse({"error": str(e)}, status=400)

        try:
            result = get_retriever().retrieve(user_id, query, top_k)
        except EmbeddingServiceError as e:
            logger.error(f"Embedding failed: {e}")
            return JsonResponse({"error": "Failed to process query"}, status=503)

        return JsonResponse(result.to_dict())
