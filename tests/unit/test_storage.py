"""Unit tests for the draft key-value stores."""

import os

import pytest

from feedback_wizard.models import StorageError
from feedback_wizard.storage import FileStore, MemoryStore


class TestMemoryStore:
    """Test cases for MemoryStore."""

    def test_get_set_delete(self):
        store = MemoryStore({"a": "1"})

        store.set("b", "2")
        store.delete("a")
        store.delete("missing")

        assert store.get("a") is None
        assert store.get("b") == "2"
        assert store.keys() == ["b"]

    def test_rejects_non_text(self):
        """Only strings can be stored, like browser localStorage."""
        with pytest.raises(StorageError):
            MemoryStore().set("k", {"not": "text"})


class TestFileStore:
    """Test cases for FileStore."""

    def test_round_trip(self, tmp_path):
        """Values survive a new store on the same directory."""
        FileStore(tmp_path).set("design_feedback_proj-1", '{"data": 1}')

        assert FileStore(tmp_path).get("design_feedback_proj-1") == '{"data": 1}'

    def test_absent_key(self, tmp_path):
        assert FileStore(tmp_path).get("nothing") is None

    def test_delete_is_idempotent(self, tmp_path):
        store = FileStore(tmp_path)
        store.set("k", "v")

        store.delete("k")
        store.delete("k")

        assert store.get("k") is None

    def test_keys_are_sanitised_without_collisions(self, tmp_path):
        """URL-scoped keys map to distinct safe filenames."""
        store = FileStore(tmp_path)
        first = "design_feedback_https://example.com/a"
        second = "design_feedback_https://example.com_a"

        store.set(first, "one")
        store.set(second, "two")

        assert store.path_for(first) != store.path_for(second)
        assert "/" not in store.path_for(first).name
        assert store.get(first) == "one"
        assert store.get(second) == "two"

    def test_write_leaves_no_temp_files(self, tmp_path):
        store = FileStore(tmp_path)
        store.set("k", "v1")
        store.set("k", "v2")

        assert sorted(p.name for p in tmp_path.iterdir()) == [store.path_for("k").name]
        assert store.get("k") == "v2"

    def test_unreadable_file_raises_storage_error(self, tmp_path):
        """Undecodable bytes surface as StorageError."""
        store = FileStore(tmp_path)
        store.path_for("k").write_bytes(b"\xff\xfe\xfa")

        with pytest.raises(StorageError):
            store.get("k")

    def test_directory_is_created(self, tmp_path):
        target = tmp_path / "nested" / "drafts"

        FileStore(target)

        assert target.is_dir()

    def test_uncreatable_directory_raises(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")

        with pytest.raises(StorageError):
            FileStore(blocker / "drafts")

    @pytest.mark.skipif(os.name == "nt" or os.geteuid() == 0, reason="requires POSIX permissions as non-root")
    def test_read_only_directory_raises_on_write(self, tmp_path):
        store = FileStore(tmp_path / "ro")
        store.directory.chmod(0o500)
        try:
            with pytest.raises(StorageError):
                store.set("k", "v")
        finally:
            store.directory.chmod(0o700)
