"""
Tests for the document/chunk store.

Covers transactional chunk replacement, cascade delete, ready-only reads
and validation of stored embeddings.
"""
from datetime import timedelta

import pytest
from django.db import IntegrityError, transaction
from django.utils import timezone

from apps.docs.models import Document, DocumentStatus
from apps.docs.store import ChunkRow, StorageInconsistency, parse_embedding
from apps.indexing.models import DocumentChunk


def rows(n, dim=3):
    return [
        ChunkRow(chunk_index=i, page_number=1 + i // 5, text=f"chunk {i}", embedding=[float(i + 1)] * dim)
        for i in range(n)
    ]


class TestParseEmbedding:

    def test_list_of_numbers(self):
        assert parse_embedding([1, 2.5, -3]) == [1.0, 2.5, -3.0]

    def test_json_string(self):
        assert parse_embedding("[0.1, 0.2]") == [0.1, 0.2]

    @pytest.mark.parametrize("raw", [
        None,
        [],
        "",
        "not json",
        "{\"a\": 1}",
        [1, "two", 3],
        [1, None],
        [True, 1.0],
        [float("nan"), 1.0],
        [float("inf")],
        42,
    ])
    def test_malformed_is_none(self, raw):
        assert parse_embedding(raw) is None


@pytest.mark.django_db
class TestDocuments:

    def test_create_defaults_to_processing(self, make_document):
        document = make_document()
        assert document.status == DocumentStatus.PROCESSING

    def test_get_owned_document(self, store, make_document):
        document = make_document(user_id="alice")

        assert store.get_owned_document(document.id, "alice") == document
        assert store.get_owned_document(document.id, "bob") is None

    def test_list_ready_documents_scoped_and_ordered(self, store, make_document):
        older = make_document(user_id="alice", status=DocumentStatus.READY)
        newer = make_document(user_id="alice", status=DocumentStatus.READY)
        make_document(user_id="alice", status=DocumentStatus.PROCESSING)
        make_document(user_id="bob", status=DocumentStatus.READY)
        Document.objects.filter(id=older.id).update(created_at=timezone.now() - timedelta(hours=1))

        assert [d.id for d in store.list_ready_documents("alice")] == [older.id, newer.id]

    def test_update_status_of_missing_document(self, store, make_document):
        document = make_document()
        document.delete()

        with pytest.raises(StorageInconsistency):
            store.update_document_status(document.id, DocumentStatus.ERROR)

    def test_reset_for_reindex(self, store, make_document):
        document = make_document()
        store.insert_chunks(document.id, rows(3))

        store.reset_for_reindex(document.id)

        document.refresh_from_db()
        assert document.status == DocumentStatus.PROCESSING
        assert store.count_chunks(document.id) == 0


@pytest.mark.django_db
class TestChunks:

    def test_insert_marks_ready(self, store, make_document):
        document = make_document()

        assert store.insert_chunks(document.id, rows(4)) == 4

        document.refresh_from_db()
        assert document.status == DocumentStatus.READY
        assert store.count_chunks(document.id) == 4

    def test_insert_replaces_previous_chunks(self, store, make_document):
        document = make_document()
        store.insert_chunks(document.id, rows(5))
        store.insert_chunks(document.id, rows(2))

        assert store.count_chunks(document.id) == 2

    def test_insert_for_deleted_document(self, store, make_document):
        document = make_document()
        document.delete()

        with pytest.raises(StorageInconsistency):
            store.insert_chunks(document.id, rows(1))
        assert DocumentChunk.objects.count() == 0

    def test_insert_is_all_or_nothing(self, store, make_document):
        document = make_document()
        duplicate = rows(2) + [rows(1)[0]]

        with pytest.raises(IntegrityError):
            store.insert_chunks(document.id, duplicate)

        document.refresh_from_db()
        assert document.status == DocumentStatus.PROCESSING
        assert store.count_chunks(document.id) == 0

    def test_chunk_index_unique_per_document(self, make_document):
        document = make_document()
        DocumentChunk.objects.create(document=document, chunk_index=0, text="a", embedding=[1.0])

        with pytest.raises(IntegrityError):
            with transaction.atomic():
                DocumentChunk.objects.create(document=document, chunk_index=0, text="b", embedding=[1.0])

    def test_list_chunks_in_extraction_order(self, store, make_document):
        first = make_document(filename="a.txt")
        second = make_document(filename="b.txt")
        store.insert_chunks(second.id, rows(2))
        store.insert_chunks(first.id, rows(3))
        Document.objects.filter(id=first.id).update(created_at=timezone.now() - timedelta(hours=1))

        chunks = store.list_chunks([second.id, first.id])

        assert [(c.document_title, c.chunk_index) for c in chunks] == [
            ("a.txt", 0), ("a.txt", 1), ("a.txt", 2), ("b.txt", 0), ("b.txt", 1),
        ]
        assert chunks[0].embedding == [1.0, 1.0, 1.0]

    def test_list_chunks_malformed_embedding_is_none(self, store, make_document):
        document = make_document()
        store.insert_chunks(document.id, rows(2))
        DocumentChunk.objects.filter(document=document, chunk_index=1).update(embedding=["oops"])

        chunks = store.list_chunks([document.id])

        assert chunks[0].embedding is not None
        assert chunks[1].embedding is None

    def test_list_chunks_skips_documents_no_longer_ready(self, store, make_document):
        ready = make_document()
        reindexing = make_document()
        store.insert_chunks(ready.id, rows(1))
        store.insert_chunks(reindexing.id, rows(1))
        store.update_document_status(reindexing.id, DocumentStatus.PROCESSING)

        chunks = store.list_chunks([ready.id, reindexing.id])

        assert {c.doc_id for c in chunks} == {str(ready.id)}

    def test_list_chunks_all_vanished(self, store, make_document):
        document = make_document()
        store.insert_chunks(document.id, rows(1))
        store.delete_document_cascade(document.id)

        with pytest.raises(StorageInconsistency):
            store.list_chunks([document.id])

    def test_list_chunks_empty_request(self, store):
        assert store.list_chunks([]) == []

    def test_get_chunk_by_index(self, store, make_document):
        document = make_document()
        store.insert_chunks(document.id, rows(3))

        assert store.get_chunk(document.id, 2).text == "chunk 2"
        assert store.get_chunk(document.id, 7) is None


@pytest.mark.django_db
class TestDeleteCascade:

    def test_delete_removes_chunks(self, store, make_document):
        document = make_document(user_id="alice")
        other = make_document(user_id="alice")
        store.insert_chunks(document.id, rows(3))
        store.insert_chunks(other.id, rows(1))

        deleted = store.delete_document_cascade(document.id)

        assert deleted.id == document.id
        assert DocumentChunk.objects.filter(document_id=document.id).count() == 0
        remaining = store.list_chunks([d.id for d in store.list_ready_documents("alice")])
        assert {c.doc_id for c in remaining} == {str(other.id)}

    def test_delete_missing(self, store):
        assert store.delete_document_cascade("00000000-0000-0000-0000-000000000000") is None
