"""
Indexing worker - processes queued documents through the RAG pipeline.

This worker:
1. Claims queued jobs atomically (see apps.indexing.jobs)
2. Runs the Indexer: extract, chunk, embed, store
3. Records the outcome on the job row

Run as: python manage.py run_worker
"""
import signal
import time
import logging
from pathlib import Path
from typing import Optional

from django.conf import settings

from apps.docs.models import DocumentStatus, IndexJob, IndexJobStage, IndexJobStatus
from apps.docs.storage import get_storage
from apps.docs.store import StorageInconsistency, get_document_store
from apps.indexing.embedder import get_embedding_client
from apps.indexing.indexer import DELETED, Indexer, IndexOutcome
from apps.indexing.jobs import claim_next_job, requeue_stale_jobs

logger = logging.getLogger(__name__)

# Configuration
POLL_INTERVAL = 2  # seconds between job checks
MAX_CONSECUTIVE_ERRORS = 5  # Stop if too many errors in a row
HEARTBEAT_FILE = '/tmp/worker_heartbeat'
STALE_JOB_SECONDS = 1800  # RUNNING jobs idle this long are requeued at start-up


def touch_heartbeat(path: str = HEARTBEAT_FILE):
    """Touch heartbeat file for health checks."""
    try:
        Path(path).touch()
    except OSError as e:
        logger.warning(f"Failed to update heartbeat: {e}")


def build_indexer() -> Indexer:
    """Indexer wired to the default store, embedding client and file storage."""
    return Indexer(
        store=get_document_store(),
        embedder=get_embedding_client(),
        file_storage=get_storage(),
    )


class IndexingWorker:
    """
    Worker that processes document indexing jobs one at a time.

    Several workers may run against the same database; the job queue keeps
    them off each other's jobs and documents.
    """

    def __init__(self, indexer: Optional[Indexer] = None):
        self.running = False
        self.consecutive_errors = 0
        self.indexer = indexer or build_indexer()
        self.poll_interval = getattr(settings, 'WORKER_POLL_INTERVAL', POLL_INTERVAL)
        self.heartbeat_file = getattr(settings, 'WORKER_HEARTBEAT_FILE', HEARTBEAT_FILE)
        self.stale_job_seconds = getattr(settings, 'WORKER_STALE_JOB_SECONDS', STALE_JOB_SECONDS)

    def update_job_progress(self, job: IndexJob, stage: str, progress: int):
        """Record the current stage and progress on the job row."""
        job.stage = stage
        job.progress = progress
        job.save(update_fields=['stage', 'progress', 'updated_at'])

    def fail_job(self, job: IndexJob, error_message: str):
        """Mark a job as failed."""
        logger.error(f"Job {job.id} failed: {error_message}")

        job.status = IndexJobStatus.FAILED
        job.error_message = error_message
        job.save(update_fields=['status', 'error_message', 'updated_at'])

    def complete_job(self, job: IndexJob, outcome: IndexOutcome):
        """Mark a job as complete."""
        logger.info(f"Job {job.id} completed successfully ({outcome.chunk_count} chunks)")

        job.status = IndexJobStatus.COMPLETE
        job.stage = IndexJobStage.STORE
        job.progress = 100
        job.save(update_fields=['status', 'stage', 'progress', 'updated_at'])

    def abandon_job(self, job: IndexJob, error_message: str) -> IndexOutcome:
        """
        Record a run that ended without an outcome from the indexer.

        The document goes to error so it is not left in processing; a
        document deleted meanwhile is reported as such.
        """
        doc_id = str(job.document_id)
        try:
            self.indexer.store.update_document_status(doc_id, DocumentStatus.ERROR)
        except StorageInconsistency:
            return IndexOutcome(doc_id=doc_id, status=DELETED, error=error_message)
        return IndexOutcome(doc_id=doc_id, status=DocumentStatus.ERROR, error=error_message)

    def process_job(self, job: IndexJob) -> IndexOutcome:
        """Run the indexing pipeline for the job's document and record the result."""
        try:
            outcome = self.indexer.index(
                job.document,
                on_progress=lambda stage, progress: self.update_job_progress(job, stage, progress),
            )
        except Exception as e:
            logger.exception(f"Unexpected error processing job {job.id}")
            outcome = self.abandon_job(job, f"Unexpected error: {e}")

        if outcome.status == DELETED:
            # The job row went away with its document
            logger.info(f"Job {job.id}: document deleted during indexing")
        elif outcome.succeeded:
            self.complete_job(job, outcome)
        else:
            self.fail_job(job, outcome.error or "Indexing failed")

        return outcome

    def run_once(self) -> bool:
        """
        Try to claim and process one job.

        Returns:
            True if a job was processed, False if no jobs available
        """
        touch_heartbeat(self.heartbeat_file)

        job = claim_next_job()
        if not job:
            return False

        self.process_job(job)
        self.consecutive_errors = 0
        return True

    def run(self):
        """
        Main worker loop.

        Continuously polls for jobs and processes them until SIGTERM/SIGINT.
        """
        logger.info("Starting indexing worker...")

        if not self.indexer.embedder.check_connection():
            logger.error("Cannot reach the embedding service. Jobs will fail until it is available.")

        requeue_stale_jobs(self.stale_job_seconds)

        self.running = True

        def handle_signal(signum, frame):
            logger.info(f"Received signal {signum}, shutting down...")
            self.running = False

        signal.signal(signal.SIGTERM, handle_signal)
        signal.signal(signal.SIGINT, handle_signal)

        while self.running:
            try:
                if self.run_once():
                    continue
                time.sleep(self.poll_interval)

            except Exception as e:
                logger.exception(f"Error in worker loop: {e}")
                self.consecutive_errors += 1

                if self.consecutive_errors >= MAX_CONSECUTIVE_ERRORS:
                    logger.error("Too many consecutive errors, stopping worker")
                    break

                time.sleep(self.poll_interval * 2)

        logger.info("Worker stopped")
