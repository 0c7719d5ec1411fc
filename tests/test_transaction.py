"""Tests for transaction logging."""

import json
from pathlib import Path
from unittest.mock import patch

from archive_backup_ng.transaction import (
    get_transaction_log,
    get_transaction_stats,
    log_transaction,
    read_transaction_log,
    set_transaction_log,
)


class TestSetTransactionLog:
    """Tests for set_transaction_log function."""

    def test_set_path(self, tmp_path):
        """Test setting transaction log path."""
        log_path = tmp_path / "transactions.jsonl"
        set_transaction_log(log_path)

        log_transaction(action="job", status="success")

        assert log_path.exists()
        assert get_transaction_log() == log_path

    def test_set_none_disables_logging(self, tmp_path):
        """Test setting None disables logging."""
        log_path = tmp_path / "transactions.jsonl"
        set_transaction_log(log_path)
        set_transaction_log(None)

        log_transaction(action="job", status="success")

        assert not log_path.exists()
        assert get_transaction_log() is None

    def test_creates_parent_directories(self, tmp_path):
        """Test creates parent directories if needed."""
        log_path = tmp_path / "deep" / "nested" / "transactions.jsonl"
        set_transaction_log(log_path)

        assert log_path.parent.exists()

    def test_accepts_string_path(self, tmp_path):
        """Test accepts string path."""
        log_path = str(tmp_path / "transactions.jsonl")
        set_transaction_log(log_path)

        log_transaction(action="job", status="success")

        assert Path(log_path).exists()


class TestLogTransaction:
    """Tests for log_transaction function."""

    def test_logs_basic_transaction(self, tmp_path):
        """Test logging a basic transaction."""
        log_path = tmp_path / "transactions.jsonl"
        set_transaction_log(log_path)

        log_transaction(action="archive", status="completed")

        record = json.loads(log_path.read_text().strip())
        assert record["action"] == "archive"
        assert record["status"] == "completed"
        assert "timestamp" in record
        assert "pid" in record

    def test_logs_all_fields(self, tmp_path):
        """Test logging transaction with all optional fields."""
        log_path = tmp_path / "transactions.jsonl"
        set_transaction_log(log_path)

        log_transaction(
            action="transfer",
            status="completed",
            job="Docs",
            target="nas",
            instance="Docs_20260101-120000",
            size_bytes=1024000,
            duration_seconds=15.5,
            attempts=2,
            error=None,
            details={"parts": 3},
        )

        record = json.loads(log_path.read_text().strip())
        assert record["job"] == "Docs"
        assert record["target"] == "nas"
        assert record["instance"] == "Docs_20260101-120000"
        assert record["size_bytes"] == 1024000
        assert record["duration_seconds"] == 15.5
        assert record["attempts"] == 2
        assert record["details"] == {"parts": 3}
        assert "error" not in record  # None values not included

    def test_appends_to_log(self, tmp_path):
        """Test transactions are appended to log."""
        log_path = tmp_path / "transactions.jsonl"
        set_transaction_log(log_path)

        log_transaction(action="archive", status="completed")
        log_transaction(action="transfer", status="completed")
        log_transaction(action="job", status="success")

        lines = log_path.read_text().strip().split("\n")
        assert [json.loads(line)["action"] for line in lines] == ["archive", "transfer", "job"]

    def test_does_nothing_when_disabled(self):
        """Test does nothing when logging is disabled."""
        set_transaction_log(None)
        log_transaction(action="job", status="success")

    def test_rounds_duration(self, tmp_path):
        """Test duration is rounded to 3 decimal places."""
        log_path = tmp_path / "transactions.jsonl"
        set_transaction_log(log_path)

        log_transaction(action="job", status="success", duration_seconds=1.23456789)

        record = json.loads(log_path.read_text().strip())
        assert record["duration_seconds"] == 1.235

    def test_handles_write_error(self, tmp_path):
        """Test write errors are logged, not raised."""
        set_transaction_log(tmp_path / "transactions.jsonl")

        with patch("builtins.open", side_effect=OSError("Disk full")):
            log_transaction(action="job", status="success")


class TestReadTransactionLog:
    """Tests for read_transaction_log function."""

    def _write(self, path, *records):
        path.write_text("".join(json.dumps(r) + "\n" for r in records))

    def test_missing_file_returns_empty(self, tmp_path):
        """Test a missing log reads as empty."""
        assert read_transaction_log(tmp_path / "none.jsonl") == []

    def test_limit_returns_most_recent(self, tmp_path):
        """Test limit keeps the last records."""
        path = tmp_path / "log.jsonl"
        self._write(path, *({"action": "job", "status": str(i)} for i in range(5)))

        records = read_transaction_log(path, limit=2)

        assert [r["status"] for r in records] == ["3", "4"]

    def test_filter_by_action(self, tmp_path):
        """Test filtering by action."""
        path = tmp_path / "log.jsonl"
        self._write(
            path,
            {"action": "job", "status": "success"},
            {"action": "transfer", "status": "completed"},
        )

        records = read_transaction_log(path, action="transfer")

        assert len(records) == 1
        assert records[0]["status"] == "completed"

    def test_skips_malformed_lines(self, tmp_path):
        """Test malformed lines are ignored."""
        path = tmp_path / "log.jsonl"
        path.write_text('{"action": "job", "status": "success"}\nnot json\n\n')

        assert len(read_transaction_log(path)) == 1


class TestGetTransactionStats:
    """Tests for get_transaction_stats function."""

    def test_counts_and_bytes(self, tmp_path):
        """Test statistics by action, bytes and last job status."""
        path = tmp_path / "log.jsonl"
        set_transaction_log(path)
        log_transaction(action="transfer", status="completed", job="Docs", size_bytes=100)
        log_transaction(action="transfer", status="completed", job="Docs", size_bytes=50)
        log_transaction(action="transfer", status="failed", job="Docs", size_bytes=999)
        log_transaction(action="job", status="failure", job="Docs")
        log_transaction(action="job", status="success", job="Docs")

        stats = get_transaction_stats()

        assert stats["total"] == 5
        assert stats["by_action"]["transfer"] == {"completed": 2, "failed": 1}
        assert stats["bytes_transferred"] == 150
        assert stats["last_job_status"] == {"Docs": "success"}

    def test_empty_log(self, tmp_path):
        """Test statistics of an empty log."""
        stats = get_transaction_stats(tmp_path / "missing.jsonl")

        assert stats["total"] == 0
        assert stats["by_action"] == {}
