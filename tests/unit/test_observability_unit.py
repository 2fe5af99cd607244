"""Unit tests for the JSONL event log."""

import json
from datetime import datetime, timedelta
from pathlib import Path

from contenthub_daemon import observability


def test_log_appends_one_json_line_per_event(isolated_observability: Path) -> None:
    observability.log("generation.keyword", keyword="hiking boots", outcome="generated")
    observability.log("llm.call", tokens=1500)

    files = list(isolated_observability.glob("*_events.jsonl"))
    assert len(files) == 1
    entries = [json.loads(line) for line in files[0].read_text().splitlines()]
    assert [e["event"] for e in entries] == ["generation.keyword", "llm.call"]
    assert entries[0]["keyword"] == "hiking boots"
    assert entries[0]["ts"].endswith("Z")


def test_cleanup_removes_only_expired_event_files(tmp_path: Path) -> None:
    logger = observability.ObservabilityLogger(tmp_path)
    old = (datetime.now() - timedelta(days=45)).strftime("%Y-%m-%d")
    recent = (datetime.now() - timedelta(days=2)).strftime("%Y-%m-%d")
    (tmp_path / f"{old}_events.jsonl").write_text("{}\n")
    (tmp_path / f"{recent}_events.jsonl").write_text("{}\n")
    (tmp_path / "notes_events.jsonl").write_text("{}\n")

    removed = logger.cleanup_old_files(retention_days=30)

    assert removed == 1
    assert sorted(p.name for p in tmp_path.iterdir()) == [
        f"{recent}_events.jsonl",
        "notes_events.jsonl",
    ]
