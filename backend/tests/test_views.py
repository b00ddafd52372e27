"""
HTTP tests for the document, search and health endpoints.
"""
import json
from unittest.mock import MagicMock, patch

import pytest
from django.conf import settings as django_settings
from django.core.cache import cache
from django.core.files.uploadedfile import SimpleUploadedFile
from django.db import DatabaseError

from apps.docs.models import Document, DocumentStatus, IndexJob, IndexJobStatus
from apps.docs.store import ChunkRow
from apps.indexing.embedder import EmbeddingServiceError
from apps.indexing.models import DocumentChunk
from apps.rag.chat import Source
from apps.rag.retrieval import RetrievalResult, RetrievalStatus
from apps.rag.search import NO_CONTENT_ANSWER, SEARCH_FAILED_MESSAGE, SearchOutcome, SearchResponse


def post_json(client, url, data):
    return client.post(url, data=json.dumps(data), content_type="application/json")


def upload(client, name="notes.txt", content=b"Revenue grew 15%.", content_type="text/plain", user_id="alice"):
    data = {"file": SimpleUploadedFile(name, content, content_type=content_type)}
    if user_id:
        data["userId"] = user_id
    return client.post("/api/docs/upload", data)


@pytest.mark.django_db
class TestUpload:

    def test_upload_queues_indexing(self, client, upload_root):
        response = upload(client)

        assert response.status_code == 201
        body = response.json()
        assert body["doc"]["status"] == "processing"
        assert body["doc"]["userId"] == "alice"

        document = Document.objects.get(id=body["doc"]["id"])
        assert (upload_root / document.storage_path).read_bytes() == b"Revenue grew 15%."
        job = IndexJob.objects.get(id=body["jobId"])
        assert job.status == IndexJobStatus.QUEUED

    def test_octet_stream_uses_extension(self, client):
        response = upload(client, name="readme.md", content_type="application/octet-stream")

        assert response.status_code == 201
        assert response.json()["doc"]["contentType"] == "text/markdown"

    def test_missing_user(self, client):
        assert upload(client, user_id=None).status_code == 400

    def test_missing_file(self, client):
        response = client.post("/api/docs/upload", {"userId": "alice"})
        assert response.status_code == 400
        assert response.json()["code"] == "MISSING_FILE"

    def test_bad_extension(self, client):
        response = upload(client, name="virus.exe", content_type="application/x-msdownload")

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_FILE_TYPE"
        assert Document.objects.count() == 0

    def test_bad_content_type(self, client):
        response = upload(client, name="image.pdf", content_type="image/png")
        assert response.status_code == 400

    def test_too_large(self, client, settings):
        settings.MAX_UPLOAD_SIZE = 10

        response = upload(client, content=b"x" * 11)

        assert response.status_code == 400
        assert response.json()["code"] == "FILE_TOO_LARGE"

    def test_failed_enqueue_rolls_back_row_and_file(self, client, upload_root):
        with patch("apps.docs.views.enqueue_document", side_effect=DatabaseError("queue unavailable")):
            response = upload(client)

        assert response.status_code == 500
        assert response.json()["code"] == "STORAGE_ERROR"
        assert Document.objects.count() == 0
        assert not any(path.is_file() for path in upload_root.rglob("*"))


@pytest.mark.django_db
class TestDocumentEndpoints:

    def test_list_is_scoped_to_user(self, client, make_document):
        make_document(user_id="alice", filename="a.txt")
        make_document(user_id="bob", filename="b.txt")

        response = client.get("/api/docs", {"userId": "alice"})

        assert response.status_code == 200
        assert [d["filename"] for d in response.json()["documents"]] == ["a.txt"]

    def test_list_requires_user(self, client):
        assert client.get("/api/docs").status_code == 400

    def test_detail(self, client, make_document, store):
        document = make_document(user_id="alice")
        store.insert_chunks(document.id, [ChunkRow(0, 1, "text", [1.0])])

        response = client.get(f"/api/docs/{document.id}", {"userId": "alice"})

        assert response.status_code == 200
        assert response.json()["chunkCount"] == 1
        assert response.json()["status"] == "ready"

    def test_detail_of_other_users_document(self, client, make_document):
        document = make_document(user_id="alice")
        assert client.get(f"/api/docs/{document.id}", {"userId": "bob"}).status_code == 404

    def test_delete_removes_chunks_and_file(self, client, store, upload_root):
        body = upload(client).json()
        document = Document.objects.get(id=body["doc"]["id"])
        store.insert_chunks(document.id, [ChunkRow(0, 1, "text", [1.0])])

        response = post_json(client, f"/api/docs/{document.id}/delete", {"userId": "alice"})

        assert response.status_code == 200
        assert not Document.objects.filter(id=document.id).exists()
        assert DocumentChunk.objects.count() == 0
        assert not store.list_ready_documents("alice")
        assert not (upload_root / document.storage_path).exists()

    def test_delete_by_other_user(self, client, make_document):
        document = make_document(user_id="alice")

        response = post_json(client, f"/api/docs/{document.id}/delete", {"userId": "bob"})

        assert response.status_code == 404
        assert Document.objects.filter(id=document.id).exists()

    def test_reindex(self, client, make_document, store):
        document = make_document(user_id="alice")
        store.insert_chunks(document.id, [ChunkRow(0, 1, "text", [1.0])])

        response = post_json(client, f"/api/docs/{document.id}/reindex", {"userId": "alice"})

        assert response.status_code == 202
        document.refresh_from_db()
        assert document.status == DocumentStatus.PROCESSING
        assert store.count_chunks(document.id) == 0
        assert IndexJob.objects.get(id=response.json()["jobId"]).status == IndexJobStatus.QUEUED

    def test_get_chunk(self, client, make_document, store):
        document = make_document(user_id="alice", filename="report.txt")
        store.insert_chunks(document.id, [ChunkRow(0, 1, "first", [1.0]), ChunkRow(1, 1, "second", [1.0])])

        response = client.get(f"/api/docs/{document.id}/chunks/1", {"userId": "alice"})

        assert response.status_code == 200
        assert response.json()["text"] == "second"
        assert response.json()["filename"] == "report.txt"
        assert client.get(f"/api/docs/{document.id}/chunks/9", {"userId": "alice"}).status_code == 404


class TestSearchView:

    def test_answer(self, client):
        service = MagicMock()
        service.search.return_value = SearchResponse(
            answer="Revenue grew 15%.",
            outcome=SearchOutcome.ANSWERED,
            sources=[Source(title="report.pdf", page=1, relevance="82%", snippet="Revenue grew 15%.")],
        )

        with patch("apps.rag.views.get_search_service", return_value=service):
            response = post_json(client, "/api/search", {"query": "  How much   did revenue grow? ", "userId": "alice"})

        assert response.status_code == 200
        assert response.json()["answer"] == "Revenue grew 15%."
        assert response.json()["sources"][0]["relevance"] == "82%"
        # Passed on as typed apart from the outer whitespace
        service.search.assert_called_once_with("alice", "How much   did revenue grow?", 5)

    def test_no_content_is_200(self, client):
        service = MagicMock()
        service.search.return_value = SearchResponse(answer=NO_CONTENT_ANSWER, outcome=SearchOutcome.NO_CONTENT)

        with patch("apps.rag.views.get_search_service", return_value=service):
            response = post_json(client, "/api/search", {"query": "q", "userId": "alice"})

        assert response.status_code == 200
        assert response.json() == {"answer": NO_CONTENT_ANSWER, "sources": [], "outcome": "no_content"}

    def test_failure_is_generic_500(self, client):
        service = MagicMock()
        service.search.return_value = SearchResponse(answer=SEARCH_FAILED_MESSAGE, outcome=SearchOutcome.FAILED)

        with patch("apps.rag.views.get_search_service", return_value=service):
            response = post_json(client, "/api/search", {"query": "q", "userId": "alice"})

        assert response.status_code == 500
        assert response.json() == {"error": SEARCH_FAILED_MESSAGE}

    @pytest.mark.parametrize("body", [
        {"query": "q"},
        {"userId": "alice"},
        {"query": "   ", "userId": "alice"},
        {"query": "q", "userId": "alice", "topK": 0},
        {"query": "q", "userId": "alice", "topK": 21},
        {"query": "q", "userId": "alice", "topK": "5"},
        {"query": "q", "userId": "alice", "topK": True},
        {"query": "x" * 2001, "userId": "alice"},
    ])
    def test_invalid_requests(self, client, body):
        with patch("apps.rag.views.get_search_service") as factory:
            response = post_json(client, "/api/search", body)

        assert response.status_code == 400
        factory.assert_not_called()

    def test_invalid_json(self, client):
        response = client.post("/api/search", data="{not json", content_type="application/json")
        assert response.status_code == 400

    def test_get_not_allowed(self, client):
        assert client.get("/api/search").status_code == 405


class TestRetrieveView:

    def test_matches(self, client):
        retriever = MagicMock()
        retriever.retrieve.return_value = RetrievalResult(query="q", status=RetrievalStatus.NO_CONTENT)

        with patch("apps.rag.views.get_retriever", return_value=retriever):
            response = post_json(client, "/api/rag/retrieve", {"query": "q", "userId": "alice", "topK": 3})

        assert response.status_code == 200
        assert response.json() == {"query": "q", "status": "no_content", "matches": []}
        retriever.retrieve.assert_called_once_with("alice", "q", 3)

    def test_embedding_failure(self, client):
        retriever = MagicMock()
        retriever.retrieve.side_effect = EmbeddingServiceError("down")

        with patch("apps.rag.views.get_retriever", return_value=retriever):
            response = post_json(client, "/api/rag/retrieve", {"query": "q", "userId": "alice"})

        assert response.status_code == 503


@pytest.mark.django_db
class TestHealth:

    @pytest.fixture(autouse=True)
    def clear_cache(self):
        cache.clear()
        yield
        cache.clear()

    def test_healthz(self, client):
        assert client.get("/healthz").json()["status"] == "healthy"

    def test_readyz_with_embedding_down(self, client):
        embedder = MagicMock()
        embedder.check_connection.return_value = False

        with patch("config.health.get_embedding_client", return_value=embedder):
            response = client.get("/readyz")

        assert response.status_code == 200
        assert response.json()["checks"] == {"database": "ok", "embedding": "degraded"}

    def test_readyz_reuses_embedding_check(self, client):
        embedder = MagicMock()
        embedder.check_connection.return_value = True

        with patch("config.health.get_embedding_client", return_value=embedder):
            first = client.get("/readyz")
            second = client.get("/readyz")

        assert first.json()["checks"]["embedding"] == "ok"
        assert second.json()["checks"]["embedding"] == "ok"
        embedder.check_connection.assert_called_once()

    def test_rag_logger_defaults_to_info(self):
        assert django_settings.LOGGING["loggers"]["apps.rag"]["level"] == "INFO"
