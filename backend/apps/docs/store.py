"""
Document and chunk persistence.

DocumentStore is the one handle the indexing pipeline and the retriever use
to reach the database. Every multi-row write runs in a single transaction:

- chunk replacement and the final ``ready`` status are committed together,
  so no reader sees a ready document with missing chunks;
- deleting a document removes its chunks in the same transaction (FK
  cascade), so no reader sees chunks of a deleted document.

Stored embeddings are JSON. ``parse_embedding`` turns them back into typed
vectors and maps anything malformed to None instead of raising.
"""
import json
import logging
import math
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Sequence

from django.db import transaction

from apps.docs.models import Document, DocumentStatus
from apps.indexing.models import DocumentChunk

logger = logging.getLogger(__name__)


class StorageInconsistency(Exception):
    """A document referenced by an operation vanished, usually a concurrent delete."""
    pass


@dataclass
class ChunkRow:
    """A chunk ready to be written: text, position and its embedding."""
    chunk_index: int
    page_number: int
    text: str
    embedding: List[float]


@dataclass
class StoredChunk:
    """A chunk read back for retrieval, with its embedding already validated."""
    doc_id: str
    chunk_index: int
    page_number: int
    text: str
    document_title: str
    embedding: Optional[List[float]]


def parse_embedding(raw: Any) -> Optional[List[float]]:
    """
    Validate a stored embedding.

    Accepts a list of numbers or a JSON string encoding one. Returns None
    for anything else: missing values, empty lists, non-numeric entries,
    NaN or infinity.
    """
    if raw is None:
        return None

    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError:
            return None

    if not isinstance(raw, (list, tuple)) or not raw:
        return None

    vector = []
    for value in raw:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        value = float(value)
        if not math.isfinite(value):
            return None
        vector.append(value)

    return vector


class DocumentStore:
    """Django ORM implementation of the document/chunk store."""

    # Documents

    def create_document(
        self,
        owner_user_id: str,
        filename: str,
        content_type: str,
        size_bytes: int,
        storage_path: str = '',
    ) -> Document:
        document = Document.objects.create(
            owner_user_id=owner_user_id,
            filename=filename,
            content_type=content_type,
            size_bytes=size_bytes,
            storage_path=storage_path,
            status=DocumentStatus.PROCESSING,
        )
        logger.info(f"Created document {document.id} ({filename}) for user {owner_user_id}")
        return document

    def get_document(self, doc_id) -> Optional[Document]:
        return Document.objects.filter(id=doc_id).first()

    def get_owned_document(self, doc_id, user_id: str) -> Optional[Document]:
        """Fetch a document only if it belongs to ``user_id``."""
        return Document.objects.filter(id=doc_id, owner_user_id=user_id).first()

    def list_documents(self, user_id: str) -> List[Document]:
        """All of a user's documents, newest first."""
        return list(Document.objects.filter(owner_user_id=user_id).order_by('-created_at'))

    def list_ready_documents(self, user_id: str) -> List[Document]:
        """A user's indexed documents, oldest first."""
        return list(
            Document.objects.filter(
                owner_user_id=user_id,
                status=DocumentStatus.READY,
            ).order_by('created_at', 'id')
        )

    def set_storage_path(self, doc_id, storage_path: str) -> None:
        updated = Document.objects.filter(id=doc_id).update(storage_path=storage_path)
        if not updated:
            raise StorageInconsistency(f"Document {doc_id} no longer exists")

    def update_document_status(self, doc_id, status: str) -> None:
        """
        Set a document's status.

        Raises:
            StorageInconsistency: If the document was deleted
        """
        with transaction.atomic():
            document = Document.objects.select_for_update().filter(id=doc_id).first()
            if document is None:
                raise StorageInconsistency(f"Document {doc_id} no longer exists")
            document.status = status
            document.save(update_fields=['status', 'updated_at'])
        logger.info(f"Document {doc_id} status -> {status}")

    def reset_for_reindex(self, doc_id) -> None:
        """
        Clear a document's chunks and put it back into processing.

        Both happen in one transaction, so queries stop seeing the old
        chunks at the same moment the document stops being ready.
        """
        with transaction.atomic():
            document = Document.objects.select_for_update().filter(id=doc_id).first()
            if document is None:
                raise StorageInconsistency(f"Document {doc_id} no longer exists")
            deleted, _ = DocumentChunk.objects.filter(document_id=doc_id).delete()
            document.status = DocumentStatus.PROCESSING
            document.save(update_fields=['status', 'updated_at'])
        logger.info(f"Document {doc_id} reset for re-indexing ({deleted} chunks cleared)")

    def delete_document_cascade(self, doc_id) -> Optional[Document]:
        """
        Delete a document together with its chunks and jobs.

        Returns:
            The deleted Document (its storage_path is still readable), or
            None if it did not exist
        """
        with transaction.atomic():
            document = Document.objects.select_for_update().filter(id=doc_id).first()
            if document is None:
                return None
            pk = document.pk
            chunk_count = DocumentChunk.objects.filter(document_id=doc_id).delete()[0]
            document.delete()
            # delete() clears the pk on the instance
            document.pk = pk
        logger.info(f"Deleted document {doc_id} and {chunk_count} chunks")
        return document

    # Chunks

    def insert_chunks(self, doc_id, rows: Sequence[ChunkRow], mark_ready: bool = True) -> int:
        """
        Atomically replace a document's chunks.

        Any chunks left by an earlier run are removed first, then all rows
        are inserted. With ``mark_ready`` the status flip to ready is the
        last write of the same transaction. Either everything commits or
        nothing does.

        Raises:
            StorageInconsistency: If the document was deleted meanwhile
        """
        with transaction.atomic():
            document = Document.objects.select_for_update().filter(id=doc_id).first()
            if document is None:
                raise StorageInconsistency(f"Document {doc_id} no longer exists")

            DocumentChunk.objects.filter(document=document).delete()
            DocumentChunk.objects.bulk_create([
                DocumentChunk(
                    document=document,
                    chunk_index=row.chunk_index,
                    page_number=row.page_number,
                    text=row.text,
                    embedding=row.embedding,
                )
                for row in rows
            ])

            if mark_ready:
                document.status = DocumentStatus.READY
                document.save(update_fields=['status', 'updated_at'])

        logger.info(f"Stored {len(rows)} chunks for document {doc_id}")
        return len(rows)

    def list_chunks(self, doc_ids: Iterable) -> List[StoredChunk]:
        """
        Load chunks of the given documents, in extraction order.

        Only documents that are still ready contribute. Embeddings are
        validated here; a malformed one comes back as None.

        Raises:
            StorageInconsistency: If none of the requested documents is
                still ready (all deleted or re-indexing since they were listed)
        """
        doc_ids = [str(d) for d in doc_ids]
        if not doc_ids:
            return []

        live_ids = set(
            str(pk) for pk in Document.objects.filter(
                id__in=doc_ids,
                status=DocumentStatus.READY,
            ).values_list('id', flat=True)
        )
        if not live_ids:
            raise StorageInconsistency(
                f"None of the {len(doc_ids)} requested documents is still available"
            )

        rows = (
            DocumentChunk.objects
            .filter(document_id__in=live_ids, document__status=DocumentStatus.READY)
            .select_related('document')
            .order_by('document__created_at', 'document_id', 'chunk_index')
        )

        return [
            StoredChunk(
                doc_id=str(row.document_id),
                chunk_index=row.chunk_index,
                page_number=row.page_number,
                text=row.text,
                document_title=row.document.filename,
                embedding=parse_embedding(row.embedding),
            )
            for row in rows
        ]

    def count_chunks(self, doc_id) -> int:
        return DocumentChunk.objects.filter(document_id=doc_id).count()

    def get_chunk(self, doc_id, chunk_index: int) -> Optional[DocumentChunk]:
        return DocumentChunk.objects.filter(document_id=doc_id, chunk_index=chunk_index).first()


def get_document_store() -> DocumentStore:
    return DocumentStore()
