"""Tests for the append-only settlement event log."""

import json
from datetime import datetime, timezone

import pytest

from splitsettle.persistence.event_log import EventKind, EventLog, EventRecord


def _event(event_id: str = "evt_1", payment_id: str = "sp_1") -> EventRecord:
    return EventRecord.create(
        event_id=event_id,
        event_kind=EventKind.SPLIT_PAYMENT_CREATED,
        actor_id="system",
        payload={"payment_id": payment_id, "order_id": "order_1"},
        timestamp_utc=datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc),
    )


class TestEventLog:
    def test_append_and_filter(self) -> None:
        log = EventLog()
        log.append(_event("evt_1", "sp_1"))
        log.append(_event("evt_2", "sp_2"))
        assert log.count == 2
        assert log.last_event.event_id == "evt_2"
        assert [e.event_id for e in log.events_for("sp_1")] == ["evt_1"]
        assert len(log.events(EventKind.SPLIT_PAYMENT_CREATED)) == 2
        assert log.events(EventKind.SPLIT_PAYMENT_REFUNDED) == []

    def test_duplicate_event_id_rejected(self) -> None:
        log = EventLog()
        log.append(_event())
        with pytest.raises(ValueError, match="Duplicate event ID"):
            log.append(_event())

    def test_hash_is_deterministic(self) -> None:
        assert _event().event_hash == _event().event_hash
        assert _event("evt_1").event_hash != _event("evt_2").event_hash


class TestPersistence:
    def test_reload_from_jsonl(self, tmp_path) -> None:
        path = tmp_path / "events.jsonl"
        log = EventLog(storage_path=path)
        log.append(_event("evt_1"))
        log.append(_event("evt_2"))

        reloaded = EventLog(storage_path=path)
        assert reloaded.count == 2
        assert reloaded.last_event.event_hash == log.last_event.event_hash
        assert reloaded.last_event.event_kind == EventKind.SPLIT_PAYMENT_CREATED

    def test_tampered_record_rejected(self, tmp_path) -> None:
        path = tmp_path / "events.jsonl"
        EventLog(storage_path=path).append(_event())

        record = json.loads(path.read_text(encoding="utf-8"))
        record["payload"]["order_id"] = "order_2"
        path.write_text(json.dumps(record) + "\n", encoding="utf-8")

        with pytest.raises(ValueError, match="Integrity check failed"):
            EventLog(storage_path=path)

    def test_duplicate_on_recovery_rejected(self, tmp_path) -> None:
        path = tmp_path / "events.jsonl"
        EventLog(storage_path=path).append(_event())
        line = path.read_text(encoding="utf-8")
        path.write_text(line + line, encoding="utf-8")

        with pytest.raises(ValueError, match="Duplicate event ID on recovery"):
            EventLog(storage_path=path)
