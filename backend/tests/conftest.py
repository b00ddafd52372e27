"""
Shared fixtures for the backend test suite.
"""
import pytest
from unittest.mock import MagicMock

from apps.docs.store import DocumentStore
from apps.indexing.embedder import EmbeddingClient


@pytest.fixture(autouse=True)
def upload_root(settings, tmp_path):
    """Keep uploaded files inside the test's temp directory."""
    root = tmp_path / "uploads"
    settings.UPLOAD_ROOT = root
    return root


@pytest.fixture
def store():
    return DocumentStore()


@pytest.fixture
def mock_embedder():
    """EmbeddingClient double; set .embed.side_effect / .embed_one.return_value per test."""
    return MagicMock(spec=EmbeddingClient)


@pytest.fixture
def make_document(store):
    """Factory for Document rows owned by a given user."""
    def _make(user_id="user-1", filename="report.txt", content_type="text/plain", status=None, storage_path=''):
        document = store.create_document(
            owner_user_id=user_id,
            filename=filename,
            content_type=content_type,
            size_bytes=42,
            storage_path=storage_path,
        )
        if status is not None:
            document.status = status
            document.save(update_fields=['status'])
        return document
    return _make
