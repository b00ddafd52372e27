"""
Document and IndexJob models.

A Document is one uploaded source file owned by a user. IndexJob rows form
the indexing queue: the upload view enqueues one, a worker claims it and
drives the document through extract -> chunk -> embed -> store.
"""
import uuid
from django.db import models


class DocumentStatus(models.TextChoices):
    """Status of a document in the indexing pipeline."""
    PROCESSING = 'processing', 'Processing'
    READY = 'ready', 'Ready'
    ERROR = 'error', 'Error'


class IndexJobStatus(models.TextChoices):
    """Status of an indexing job."""
    QUEUED = 'QUEUED', 'Queued'
    RUNNING = 'RUNNING', 'Running'
    COMPLETE = 'COMPLETE', 'Complete'
    FAILED = 'FAILED', 'Failed'


class IndexJobStage(models.TextChoices):
    """Current stage of an indexing job."""
    RECEIVED = 'RECEIVED', 'Received'
    EXTRACT = 'EXTRACT', 'Extracting text'
    CHUNK = 'CHUNK', 'Chunking text'
    EMBED = 'EMBED', 'Generating embeddings'
    STORE = 'STORE', 'Storing chunks'


class Document(models.Model):
    """
    A document uploaded by a user for retrieval.

    The file itself lives on disk (see apps.docs.storage); this row tracks
    its metadata and where it is in the indexing pipeline. Deleting a
    document cascades to its chunks and index jobs.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    owner_user_id = models.CharField(
        max_length=255,
        db_index=True,
        help_text="Identifier of the owning user"
    )

    # File metadata
    filename = models.CharField(
        max_length=255,
        help_text="Original filename, used as the display name"
    )
    content_type = models.CharField(
        max_length=100,
        help_text="MIME type of the file"
    )
    size_bytes = models.PositiveIntegerField(
        help_text="File size in bytes"
    )

    # Storage location
    storage_path = models.CharField(
        max_length=500,
        help_text="Path to file on disk (relative to upload root)"
    )

    status = models.CharField(
        max_length=20,
        choices=DocumentStatus.choices,
        default=DocumentStatus.PROCESSING,
        db_index=True,
        help_text="processing until indexing finishes, then ready or error"
    )

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'documents'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['owner_user_id', 'created_at']),
        ]

    def __str__(self):
        return f"{self.filename} ({self.status})"

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        return {
            'id': str(self.id),
            'userId': self.owner_user_id,
            'filename': self.filename,
            'contentType': self.content_type,
            'sizeBytes': self.size_bytes,
            'status': self.status,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
        }


class IndexJob(models.Model):
    """
    An indexing job for a document.

    A document can accumulate several jobs over time (upload, re-index),
    but the queue never runs two of them at once.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    document = models.ForeignKey(
        Document,
        on_delete=models.CASCADE,
        related_name='index_jobs',
        help_text="The document being indexed"
    )

    status = models.CharField(
        max_length=20,
        choices=IndexJobStatus.choices,
        default=IndexJobStatus.QUEUED,
        db_index=True,
        help_text="Current job status"
    )

    stage = models.CharField(
        max_length=20,
        choices=IndexJobStage.choices,
        default=IndexJobStage.RECEIVED,
        help_text="Current processing stage"
    )

    # Progress tracking (0-100)
    progress = models.PositiveSmallIntegerField(
        default=0,
        help_text="Progress percentage (0-100)"
    )

    error_message = models.TextField(
        null=True,
        blank=True,
        help_text="Error message if job failed"
    )

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'index_jobs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['document', 'created_at']),
        ]

    def __str__(self):
        return f"Job {self.id} for {self.document.filename} ({self.status}/{self.stage})"

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        return {
            'id': str(self.id),
            'status': self.status,
            'stage': self.stage,
            'progress': self.progress,
            'errorMessage': self.error_message,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
        }
