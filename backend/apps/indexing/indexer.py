"""
Per-document indexing pipeline.

    extract -> chunk -> embed (document mode) -> store

Chunks are written only after every embedding batch for the document has
succeeded, and they are written together with the ``ready`` status in one
transaction. Any failure along the way leaves the document in ``error``
with no chunks from this run.
"""
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from django.conf import settings
from django.db import DatabaseError

from apps.docs.models import Document, DocumentStatus, IndexJobStage
from apps.docs.storage import FileStorage
from apps.docs.store import ChunkRow, DocumentStore, StorageInconsistency
from apps.indexing.chunker import (
    DEFAULT_CHUNK_OVERLAP,
    DEFAULT_CHUNK_SIZE,
    TextChunk,
    chunk_text,
    validate_chunk_params,
)
from apps.indexing.embedder import EmbedMode, EmbeddingClient, EmbeddingServiceError
from apps.indexing.extractor import ExtractionError, extract_text

logger = logging.getLogger(__name__)

# Outcome for a document deleted while it was being indexed
DELETED = 'deleted'

ProgressCallback = Callable[[str, int], None]


@dataclass
class IndexOutcome:
    """What happened to one document."""
    doc_id: str
    status: str  # DocumentStatus value, or DELETED
    chunk_count: int = 0
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == DocumentStatus.READY


class Indexer:
    """
    Runs the indexing pipeline for one document at a time.

    The store, embedding client and file storage are passed in; the
    indexer holds no other state, so several indexers may run side by side
    on different documents.
    """

    def __init__(
        self,
        store: DocumentStore,
        embedder: EmbeddingClient,
        file_storage: FileStorage,
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
    ):
        self.store = store
        self.embedder = embedder
        self.file_storage = file_storage
        self.chunk_size = chunk_size if chunk_size is not None else getattr(
            settings, 'CHUNK_SIZE', DEFAULT_CHUNK_SIZE
        )
        self.chunk_overlap = chunk_overlap if chunk_overlap is not None else getattr(
            settings, 'CHUNK_OVERLAP', DEFAULT_CHUNK_OVERLAP
        )
        # Fail at construction rather than on the first document
        validate_chunk_params(self.chunk_size, self.chunk_overlap)

    def index(self, document: Document, on_progress: Optional[ProgressCallback] = None) -> IndexOutcome:
        """
        Index one document and record the result on its status.

        Never raises for pipeline failures; they are logged and returned
        in the outcome.
        """
        doc_id = str(document.id)

        def progress(stage: str, percent: int) -> None:
            if on_progress:
                on_progress(stage, percent)

        try:
            # Stage 1: EXTRACT
            progress(IndexJobStage.EXTRACT, 10)
            file_path = self.file_storage.get_path(document.storage_path)
            if not self.file_storage.exists(document.storage_path):
                raise ExtractionError(f"File not found: {file_path}")

            text = extract_text(file_path, document.content_type)
            logger.info(f"Extracted {len(text)} characters from {document.filename}")

            # Stage 2: CHUNK
            progress(IndexJobStage.CHUNK, 30)
            chunks = chunk_text(text, self.chunk_size, self.chunk_overlap)

            if not chunks:
                # Nothing to search is not a failure
                logger.warning(f"No usable text in {document.filename}, marking ready with 0 chunks")
                progress(IndexJobStage.STORE, 90)
                self.store.insert_chunks(doc_id, [], mark_ready=True)
                return IndexOutcome(doc_id=doc_id, status=DocumentStatus.READY, chunk_count=0)

            for chunk in chunks[:3]:
                preview = chunk.text[:100].replace('\n', ' ')
                logger.debug(f"  Chunk {chunk.chunk_index} (page {chunk.page_number}): {preview}...")

            # Stage 3: EMBED
            progress(IndexJobStage.EMBED, 40)
            vectors = self.embedder.embed([c.text for c in chunks], EmbedMode.DOCUMENT)
            rows = self._build_rows(chunks, vectors)

            # Stage 4: STORE (chunks + ready status in one transaction)
            progress(IndexJobStage.STORE, 90)
            stored = self.store.insert_chunks(doc_id, rows, mark_ready=True)

            logger.info(f"Document indexed: {document.filename} ({stored} chunks)")
            return IndexOutcome(doc_id=doc_id, status=DocumentStatus.READY, chunk_count=stored)

        except StorageInconsistency as e:
            logger.warning(f"Document {doc_id} disappeared during indexing: {e}")
            return IndexOutcome(doc_id=doc_id, status=DELETED, error=str(e))
        except ExtractionError as e:
            return self._fail(doc_id, f"Extraction error: {e}")
        except EmbeddingServiceError as e:
            return self._fail(doc_id, f"Embedding error: {e}")
        except DatabaseError as e:
            logger.exception(f"Failed to store chunks for document {doc_id}")
            return self._fail(doc_id, f"Storage error: {e}")

    @staticmethod
    def _build_rows(chunks: List[TextChunk], vectors: List[List[float]]) -> List[ChunkRow]:
        if len(vectors) != len(chunks):
            # EmbeddingClient already checks per batch; this guards the total
            raise EmbeddingServiceError(
                f"Got {len(vectors)} vectors for {len(chunks)} chunks"
            )
        try:
            return [
                ChunkRow(
                    chunk_index=chunk.chunk_index,
                    page_number=chunk.page_number,
                    text=chunk.text,
                    embedding=[float(x) for x in vector],
                )
                for chunk, vector in zip(chunks, vectors)
            ]
        except (TypeError, ValueError):
            raise EmbeddingServiceError("Embedding service returned non-numeric vectors")

    def _fail(self, doc_id: str, message: str) -> IndexOutcome:
        logger.error(f"Indexing failed for document {doc_id}: {message}")
        try:
            self.store.update_document_status(doc_id, DocumentStatus.ERROR)
        except StorageInconsistency:
            logger.warning(f"Document {doc_id} was deleted before its failure could be recorded")
            return IndexOutcome(doc_id=doc_id, status=DELETED, error=message)
        return IndexOutcome(doc_id=doc_id, status=DocumentStatus.ERROR, error=message)
