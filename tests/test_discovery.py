"""Tests for sync folder layout and remote discovery."""

import pytest
from unittest.mock import MagicMock

from bucketsync.config import SyncConfig
from bucketsync.errors import ConnectivityError, FilesystemError
from bucketsync.models import Bucket
from bucketsync.sync import (
    find_remotes,
    find_remotes_nonlocal,
    get_device_id,
    setup_local_remote,
)
from bucketsync.sync.discovery import remote_device_id


def touch(path):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"")
    return path


class TestFindRemotes:
    """Tests for store file discovery."""

    def test_finds_store_files(self, tmp_path):
        """Test every device folder's store file is found, sorted."""
        b = touch(tmp_path / "dev-b" / "events.db")
        a = touch(tmp_path / "dev-a" / "events.db")

        assert find_remotes(tmp_path) == [a, b]

    def test_filters_extension(self, tmp_path):
        """Test files with other extensions are ignored."""
        db = touch(tmp_path / "dev-a" / "events.db")
        touch(tmp_path / "dev-a" / "events.db-journal")
        touch(tmp_path / "dev-a" / "notes.txt")

        assert find_remotes(tmp_path) == [db]

    def test_ignores_top_level_files(self, tmp_path):
        """Test only files inside device folders count."""
        touch(tmp_path / "stray.db")
        assert find_remotes(tmp_path) == []

    def test_ignores_nested_directories(self, tmp_path):
        """Test directories named like store files are skipped."""
        (tmp_path / "dev-a" / "odd.db").mkdir(parents=True)
        assert find_remotes(tmp_path) == []

    def test_custom_extension(self, tmp_path):
        """Test a configured extension is honoured."""
        store = touch(tmp_path / "dev-a" / "events.sqlite")
        touch(tmp_path / "dev-b" / "events.db")

        assert find_remotes(tmp_path, ".sqlite") == [store]

    def test_missing_directory(self, tmp_path):
        """Test a missing sync folder raises FilesystemError."""
        with pytest.raises(FilesystemError):
            find_remotes(tmp_path / "missing")

    def test_sync_dir_is_a_file(self, tmp_path):
        """Test a file in place of the sync folder raises FilesystemError."""
        path = touch(tmp_path / "not-a-dir")
        with pytest.raises(FilesystemError):
            find_remotes(path)

    def test_nonlocal_excludes_own_device(self, tmp_path):
        """Test our own staging store is not a remote."""
        touch(tmp_path / "laptop" / "events.db")
        other = touch(tmp_path / "desktop" / "events.db")

        assert find_remotes_nonlocal(tmp_path, "laptop") == [other]

    def test_remote_device_id(self, tmp_path):
        """Test the device id comes from the subfolder name."""
        assert remote_device_id(tmp_path / "desktop" / "events.db") == "desktop"


class TestSetupLocalRemote:
    """Tests for the staging store bootstrap."""

    def test_creates_store(self, tmp_path):
        """Test the folder and store file are created."""
        sync_dir = tmp_path / "sync"
        store = setup_local_remote(sync_dir, "laptop")
        store.close()

        assert (sync_dir / "laptop" / "events.db").is_file()

    def test_idempotent(self, tmp_path):
        """Test calling it again reuses the existing store."""
        store = setup_local_remote(tmp_path, "laptop")
        store.create_bucket(Bucket(id="afk", hostname="laptop"))
        store.close()

        again = setup_local_remote(tmp_path, "laptop")
        assert list(again.get_buckets()) == ["afk"]
        again.close()

    def test_configured_filename(self, tmp_path):
        """Test the store file name comes from the config."""
        config = SyncConfig(store_filename="staging.db")
        store = setup_local_remote(tmp_path, "laptop", config)
        store.close()

        assert (tmp_path / "laptop" / "staging.db").is_file()

    def test_unwritable_location(self, tmp_path):
        """Test a sync folder that cannot be created raises FilesystemError."""
        blocker = touch(tmp_path / "blocker")
        with pytest.raises(FilesystemError):
            setup_local_remote(blocker / "sync", "laptop")


class TestGetDeviceId:
    """Tests for device identity."""

    def test_reads_info(self):
        """Test the id comes from the server info."""
        server = MagicMock()
        server.get_info.return_value = {"device_id": "laptop", "hostname": "h"}
        assert get_device_id(server) == "laptop"

    def test_unreachable(self):
        """Test connectivity failures propagate."""
        server = MagicMock()
        server.get_info.side_effect = ConnectivityError("refused")
        with pytest.raises(ConnectivityError):
            get_device_id(server)
