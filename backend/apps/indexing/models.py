"""
Document chunk model for storing text chunks with embeddings.
"""
import uuid
from django.db import models

from apps.docs.models import Document


class DocumentChunk(models.Model):
    """
    A contiguous slice of a document's extracted text with its embedding.

    The embedding is kept as a JSON list of floats. Its length is whatever
    the configured embedding model produces, so the schema does not pin a
    dimension. Rows are written once per indexing run and never updated.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    document = models.ForeignKey(
        Document,
        on_delete=models.CASCADE,
        related_name='chunks',
        help_text="The source document"
    )

    # Chunk ordering (0-indexed, contiguous per document)
    chunk_index = models.PositiveIntegerField(
        help_text="Index of this chunk within the document (0-based)"
    )

    page_number = models.PositiveIntegerField(
        default=1,
        help_text="Synthetic page label used in citations (1-based)"
    )

    text = models.TextField(
        help_text="The text content of this chunk"
    )

    embedding = models.JSONField(
        null=True,
        blank=True,
        help_text="Embedding vector as a list of floats"
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'doc_chunks'
        ordering = ['document', 'chunk_index']
        constraints = [
            models.UniqueConstraint(
                fields=['document', 'chunk_index'],
                name='unique_document_chunk'
            )
        ]

    def __str__(self):
        preview = self.text[:50] + '...' if len(self.text) > 50 else self.text
        return f"Chunk {self.chunk_index} of {self.document.filename}: {preview}"
