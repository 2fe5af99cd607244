"""Observability logging for the Content Hub daemon - JSONL event tracking."""

import fcntl
import json
import os
import sys
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any


class ObservabilityLogger:
    """JSONL event log for generation cycles, keywords and LLM calls.

    One file per day. Appends take an fcntl lock, so the scheduler threads,
    the API and a concurrent --once run can all write to the same file.
    """

    def __init__(self, base_dir: Path | None = None):
        """Initialize observability logger.

        Args:
            base_dir: Directory for JSONL files. Defaults to
                $XDG_DATA_HOME/contenthub/observability
        """
        if base_dir is None:
            data_home = os.environ.get(
                "XDG_DATA_HOME", str(Path.home() / ".local" / "share")
            )
            base_dir = Path(data_home) / "contenthub" / "observability"

        self.base_dir = base_dir
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def log(self, event: str, **metadata: Any) -> None:
        """Log an event with metadata to the daily JSONL file.

        Gracefully degrades on failure - prints to stderr but doesn't crash.

        Args:
            event: Event name (e.g., "generation.cycle.start", "llm.call")
            **metadata: Additional event metadata
        """
        today = datetime.now().strftime("%Y-%m-%d")
        log_file = self.base_dir / f"{today}_events.jsonl"

        entry = {
            "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "event": event,
            **metadata,
        }

        for attempt in range(3):
            try:
                with open(log_file, "a") as f:
                    fcntl.flock(f.fileno(), fcntl.LOCK_EX)
                    try:
                        f.write(json.dumps(entry, default=str) + "\n")
                        f.flush()
                    finally:
                        fcntl.flock(f.fileno(), fcntl.LOCK_UN)
                return
            except BlockingIOError:
                if attempt < 2:
                    time.sleep(0.01 * (attempt + 1))  # 10ms, 20ms
                else:
                    print(
                        f"[Observability] Failed to log event after 3 attempts: {event}",
                        file=sys.stderr,
                    )
            except Exception as e:
                print(
                    f"[Observability] Error logging event '{event}': {e}",
                    file=sys.stderr,
                )
                return

    def cleanup_old_files(self, retention_days: int = 30) -> int:
        """Remove daily event files older than retention_days.

        Run once a day by the scheduler. Files whose names don't parse as
        a date are left alone.

        Args:
            retention_days: Number of days of event files to keep

        Returns:
            Number of files removed
        """
        if not self.base_dir.exists():
            return 0

        cutoff_date = datetime.now() - timedelta(days=retention_days)
        removed_count = 0

        for file_path in self.base_dir.glob("*_events.jsonl"):
            try:
                date_str = file_path.stem.split("_")[0]
                file_date = datetime.strptime(date_str, "%Y-%m-%d")

                if file_date < cutoff_date:
                    file_path.unlink()
                    removed_count += 1
            except (ValueError, IndexError):
                continue  # Not one of ours
            except OSError as e:
                print(
                    f"[Observability] Error removing old file {file_path}: {e}",
                    file=sys.stderr,
                )

        return removed_count


_logger: ObservabilityLogger | None = None


def get_logger() -> ObservabilityLogger:
    """Get the process-wide event logger.

    Returns:
        The singleton ObservabilityLogger, created on first use under
        $XDG_DATA_HOME/contenthub/observability
    """
    global _logger
    if _logger is None:
        _logger = ObservabilityLogger()
    return _logger


def log(event: str, **metadata: Any) -> None:
    """Convenience function to log events using the global logger.

    Usage:
        from contenthub_daemon.observability import log
        log("generation.cycle.start", websites=3)
        log("llm.call", action="generate_article", tokens=1830)
    """
    get_logger().log(event, **metadata)
