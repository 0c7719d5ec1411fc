"""Structured transaction log for archive-backup-ng.

Each job, archive, transfer and retention event is appended to a JSON-lines
file so runs can be audited and summarized later by the status command.
Logging is disabled until a path is set with set_transaction_log().
"""

import json
import logging
import os
import threading
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

_transaction_log_path: Optional[Path] = None
_lock = threading.Lock()


def set_transaction_log(path: str | Path | None) -> None:
    """Enable transaction logging to ``path`` (None disables it)."""
    global _transaction_log_path

    if path is None:
        _transaction_log_path = None
        return

    path = Path(path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    _transaction_log_path = path
    logger.debug("Transaction log: %s", path)


def get_transaction_log() -> Optional[Path]:
    return _transaction_log_path


def log_transaction(
    action: str,
    status: str,
    job: Optional[str] = None,
    target: Optional[str] = None,
    instance: Optional[str] = None,
    size_bytes: Optional[int] = None,
    duration_seconds: Optional[float] = None,
    attempts: Optional[int] = None,
    error: Optional[str] = None,
    details: Optional[dict[str, Any]] = None,
) -> None:
    """Append one transaction record.

    Fields with a None value are left out. Write failures are logged and
    never propagate to the caller.
    """
    path = _transaction_log_path
    if path is None:
        return

    record: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "pid": os.getpid(),
        "action": action,
        "status": status,
    }
    optional = {
        "job": job,
        "target": target,
        "instance": instance,
        "size_bytes": size_bytes,
        "duration_seconds": (
            round(duration_seconds, 3) if duration_seconds is not None else None
        ),
        "attempts": attempts,
        "error": error,
        "details": details,
    }
    record.update({k: v for k, v in optional.items() if v is not None})

    try:
        with _lock:
            with open(path, "a", encoding="utf-8") as f:
                f.write(json.dumps(record) + "\n")
    except OSError as e:
        logger.warning("Could not write transaction log %s: %s", path, e)


def read_transaction_log(
    path: str | Path | None = None,
    limit: Optional[int] = None,
    action: Optional[str] = None,
) -> list[dict[str, Any]]:
    """Read transaction records, most recent last.

    Malformed lines are skipped.
    """
    path = Path(path) if path is not None else _transaction_log_path
    if path is None or not path.exists():
        return []

    records = []
    with open(path, encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError:
                logger.debug("Skipping malformed transaction line: %r", line)
                continue
            if action and record.get("action") != action:
                continue
            records.append(record)

    if limit is not None:
        records = records[-limit:]
    return records


def get_transaction_stats(path: str | Path | None = None) -> dict[str, Any]:
    """Summarize the transaction log by action and status."""
    records = read_transaction_log(path)
    by_action: dict[str, Counter] = {}
    total_bytes = 0
    last_job: dict[str, str] = {}

    for record in records:
        counter = by_action.setdefault(record.get("action", "unknown"), Counter())
        counter[record.get("status", "unknown")] += 1
        if record.get("action") == "transfer" and record.get("status") == "completed":
            total_bytes += record.get("size_bytes", 0) or 0
        if record.get("action") == "job" and record.get("job"):
            last_job[record["job"]] = record.get("status", "unknown")

    return {
        "total": len(records),
        "by_action": {k: dict(v) for k, v in by_action.items()},
        "bytes_transferred": total_bytes,
        "last_job_status": last_job,
    }
