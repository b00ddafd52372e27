"""
Indexing job queue backed by the index_jobs table.

Upload and re-index requests enqueue a job and return immediately; workers
claim jobs and run the Indexer. The queue keeps at most one job per
document in flight:

- enqueueing reuses a document's existing QUEUED job instead of adding one;
- a QUEUED job is not claimable while another job of the same document is
  RUNNING.
"""
import logging
from datetime import timedelta
from typing import Optional

from django.db import transaction
from django.utils import timezone

from apps.docs.models import Document, IndexJob, IndexJobStage, IndexJobStatus
from apps.docs.store import DocumentStore, StorageInconsistency

logger = logging.getLogger(__name__)


def enqueue_document(document: Document) -> IndexJob:
    """
    Queue a document for indexing.

    Returns:
        The new job, or the document's already queued one

    Raises:
        StorageInconsistency: If the document no longer exists
    """
    with transaction.atomic():
        # Lock the document row so concurrent enqueues serialize
        locked = Document.objects.select_for_update().filter(id=document.id).first()
        if locked is None:
            raise StorageInconsistency(f"Document {document.id} no longer exists")

        existing = (
            IndexJob.objects
            .filter(document=locked, status=IndexJobStatus.QUEUED)
            .order_by('created_at')
            .first()
        )
        if existing:
            logger.info(f"Document {document.id} already queued as job {existing.id}")
            return existing

        job = IndexJob.objects.create(
            document=locked,
            status=IndexJobStatus.QUEUED,
            stage=IndexJobStage.RECEIVED,
            progress=0,
        )

    logger.info(f"Queued job {job.id} for document {document.id}")
    return job


def request_reindex(store: DocumentStore, document: Document) -> IndexJob:
    """Clear a document's chunks, set it back to processing and queue it."""
    store.reset_for_reindex(document.id)
    return enqueue_document(document)


def claim_next_job() -> Optional[IndexJob]:
    """
    Atomically claim the oldest claimable job.

    On PostgreSQL the row is locked with SKIP LOCKED so concurrent workers
    never claim the same job.

    Returns:
        The claimed IndexJob (now RUNNING), or None if nothing is claimable
    """
    with transaction.atomic():
        job = (
            IndexJob.objects
            .select_for_update(skip_locked=True)
            .filter(status=IndexJobStatus.QUEUED)
            .exclude(document__index_jobs__status=IndexJobStatus.RUNNING)
            .order_by('created_at')
            .first()
        )
        if job is None:
            return None

        job.status = IndexJobStatus.RUNNING
        job.stage = IndexJobStage.RECEIVED
        job.progress = 0
        job.save(update_fields=['status', 'stage', 'progress', 'updated_at'])

    logger.info(f"Claimed job {job.id} for document {job.document_id}")
    return job


def requeue_stale_jobs(max_age_seconds: int) -> int:
    """
    Put RUNNING jobs back in the queue when they have not progressed for
    ``max_age_seconds``, e.g. after a worker was killed mid-run.

    Returns:
        Number of jobs requeued
    """
    cutoff = timezone.now() - timedelta(seconds=max_age_seconds)
    requeued = IndexJob.objects.filter(
        status=IndexJobStatus.RUNNING,
        updated_at__lt=cutoff,
    ).update(
        status=IndexJobStatus.QUEUED,
        stage=IndexJobStage.RECEIVED,
        progress=0,
        updated_at=timezone.now(),
    )
    if requeued:
        logger.warning(f"Requeued {requeued} stale running jobs")
    return requeued
