"""
Tests for on-disk file storage.
"""
import io

from apps.docs.storage import FileStorage, get_storage


class TestFileStorage:

    def test_save_names_file_after_document(self, tmp_path):
        storage = FileStorage(tmp_path)
        path = storage.save("doc-1", ".txt", io.BytesIO(b"content"))

        assert path == "doc-1.txt"
        assert (tmp_path / "doc-1.txt").read_bytes() == b"content"
        assert storage.exists(path)

    def test_extension_without_dot(self, tmp_path):
        storage = FileStorage(tmp_path)
        assert storage.save("doc-2", "md", io.BytesIO(b"#")) == "doc-2.md"

    def test_exists_rejects_empty_path(self, tmp_path):
        assert FileStorage(tmp_path).exists("") is False

    def test_delete(self, tmp_path):
        storage = FileStorage(tmp_path)
        path = storage.save("doc-3", ".txt", io.BytesIO(b"x"))

        assert storage.delete(path) is True
        assert not storage.exists(path)
        assert storage.delete(path) is False
        assert storage.delete("") is False

    def test_default_root_from_settings(self, upload_root):
        storage = get_storage()
        assert storage.root == upload_root
        assert upload_root.is_dir()
