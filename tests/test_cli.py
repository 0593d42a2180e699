"""Tests for the command line interface."""

import json
import logging
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

from bucketsync.__main__ import JSONFormatter, build_parser, main, setup_logging
from bucketsync.errors import ConnectivityError
from bucketsync.models import Bucket, Event
from bucketsync.stores import FileStore
from bucketsync.sync import PassResult, SyncReport, sync_one


class TestParser:
    """Tests for argument parsing."""

    def test_global_flags(self, tmp_path):
        """Test the global connection and folder flags."""
        args = build_parser().parse_args(
            ["--testing", "--port", "7000", "--sync-dir", str(tmp_path), "sync", "--buckets", "afk"]
        )

        assert args.testing
        assert args.port == 7000
        assert args.sync_dir == tmp_path
        assert args.buckets == "afk"

    def test_no_command(self, capsys):
        """Test running without a command prints help and fails."""
        assert main([]) == 1
        assert "usage" in capsys.readouterr().out


class TestSeedTest:
    """Tests for the seed-test command."""

    def test_writes_remotes(self, tmp_path, capsys):
        """Test fake remotes are written into the sync folder."""
        assert main(["--sync-dir", str(tmp_path), "seed-test", "-n", "3"]) == 0

        for n in range(3):
            store = FileStore(tmp_path / f"test-remote-{n}" / "events.db")
            assert store.get_event_count("bucket") == 3
            store.close()
        assert "test-remote-2" in capsys.readouterr().out

    def test_rerun_appends(self, tmp_path):
        """Test seeding again adds events to the existing bucket."""
        main(["--sync-dir", str(tmp_path), "seed-test", "-n", "1"])
        main(["--sync-dir", str(tmp_path), "seed-test", "-n", "1"])

        store = FileStore(tmp_path / "test-remote-0" / "events.db")
        assert store.get_event_count("bucket") == 6
        store.close()


class TestSyncCommand:
    """Tests for the sync command."""

    def test_success(self, tmp_path, capsys):
        """Test a pass summary is printed."""
        result = PassResult(
            device_id="laptop",
            push=SyncReport(source="server", destination="staging", is_push=True),
        )
        with patch("bucketsync.__main__.sync_run", return_value=result) as mock_run:
            code = main(["--sync-dir", str(tmp_path), "sync", "--buckets", "afk, window"])

        assert code == 0
        assert mock_run.call_args[1]["buckets"] == ["afk", "window"]
        assert mock_run.call_args[1]["start"] is None
        out = capsys.readouterr().out
        assert "Synced device laptop" in out
        assert "Pushed 0 events to staging" in out

    def test_all_buckets_by_default(self, tmp_path):
        """Test no --buckets leaves the choice to the config."""
        result = PassResult(
            device_id="laptop",
            push=SyncReport(source="server", destination="staging", is_push=True),
        )
        with patch("bucketsync.__main__.sync_run", return_value=result) as mock_run:
            main(["--sync-dir", str(tmp_path), "sync", "--start-date", "2024-01-01T00:00:00Z"])

        assert mock_run.call_args[1]["buckets"] is None
        assert mock_run.call_args[1]["start"].year == 2024

    def test_failure_returns_error(self, tmp_path):
        """Test sync errors exit with status 1."""
        with patch(
            "bucketsync.__main__.sync_run", side_effect=ConnectivityError("refused")
        ):
            assert main(["--sync-dir", str(tmp_path), "sync"]) == 1

    def test_bad_start_date(self, tmp_path):
        """Test an unparseable start date exits with status 1."""
        with patch("bucketsync.__main__.sync_run") as mock_run:
            assert main(["--sync-dir", str(tmp_path), "sync", "--start-date", "soon"]) == 1
        mock_run.assert_not_called()

    def test_invalid_config(self, tmp_path):
        """Test a bad config file exits with status 1."""
        path = tmp_path / "config.yaml"
        path.write_text("sync:\n  store_filename: events.txt\n")

        assert main(["-c", str(path), "sync"]) == 1


class TestListCommand:
    """Tests for the list command."""

    def test_text_output(self, capsys):
        """Test the human-readable report."""
        report = {"ServerStore(http://localhost:5600)": {"afk": 3}, "FileStore(x)": {}}
        with patch("bucketsync.__main__.list_buckets", return_value=report):
            assert main(["list"]) == 0

        out = capsys.readouterr().out
        assert "  - afk: 3 events" in out
        assert "(no buckets)" in out

    def test_json_output(self, capsys):
        """Test the JSON report."""
        report = {"FileStore(x)": {"afk": 3}}
        with patch("bucketsync.__main__.list_buckets", return_value=report):
            assert main(["list", "--json"]) == 0

        assert json.loads(capsys.readouterr().out) == report

    def test_failure_returns_error(self):
        """Test store errors exit with status 1."""
        with patch(
            "bucketsync.__main__.list_buckets", side_effect=ConnectivityError("refused")
        ):
            assert main(["list"]) == 1


class TestJSONFormatter:
    """Tests for structured log output."""

    def test_format(self):
        """Test records become JSON lines."""
        record = logging.LogRecord(
            "bucketsync.sync", logging.INFO, __file__, 1, "Synced %d new events", (3,), None
        )
        data = json.loads(JSONFormatter().format(record))

        assert data["level"] == "INFO"
        assert data["component"] == "bucketsync.sync"
        assert data["message"] == "Synced 3 new events"

    def test_sync_context_fields(self):
        """Test bucket and store context passed via extra is kept."""
        record = logging.LogRecord(
            "bucketsync.sync.engine", logging.INFO, __file__, 1, "Synced 2 new events", (), None
        )
        record.bucket_id = "afk-synced-from-laptop"
        record.store = "FileStore(events.db)"
        data = json.loads(JSONFormatter().format(record))

        assert data["bucket_id"] == "afk-synced-from-laptop"
        assert data["store"] == "FileStore(events.db)"

    def test_context_fields_omitted_when_absent(self):
        """Test plain records carry no context keys."""
        record = logging.LogRecord("bucketsync", logging.INFO, __file__, 1, "hello", (), None)
        data = json.loads(JSONFormatter().format(record))

        assert "bucket_id" not in data
        assert "store" not in data

    def test_engine_log_carries_bucket(self):
        """Test the merge summary is logged with its bucket and store."""
        source = FileStore(":memory:")
        source.create_bucket(Bucket(id="afk", hostname="laptop"))
        source.insert_events("afk", [Event(timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc))])
        destination = FileStore(":memory:")
        destination.create_bucket(Bucket(id="afk", hostname="laptop"))
        log = MagicMock()

        sync_one(source, destination, source.get_bucket("afk"), destination.get_bucket("afk"), log=log)

        extras = [c.kwargs["extra"] for c in log.info.call_args_list if "extra" in c.kwargs]
        assert extras == [{"bucket_id": "afk", "store": "FileStore(:memory:)"}]
        source.close()
        destination.close()


class TestSetupLogging:
    """Tests for logging configuration."""

    def test_http_request_logs_quiet(self):
        """Test httpx request lines are hidden unless debugging."""
        setup_logging(log_level="info")
        assert logging.getLogger("httpx").level == logging.WARNING

        setup_logging(verbose=True)
        assert logging.getLogger("httpx").level == logging.DEBUG
