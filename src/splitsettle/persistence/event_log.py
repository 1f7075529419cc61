"""Append-only audit log for financial state changes.

Every ledger transition and every commission line written by the engine
produces an event record appended here. Records are immutable once
written; the log is the audit trail that lets a split payment's history
be replayed and checked against the gateway.

Each record carries a SHA-256 hash over its canonical JSON, verified on
reload. Duplicate event ids are rejected both on append and on reload.
Appends are serialized: ledger writers for different payments share one
log.
"""

from __future__ import annotations

import enum
import hashlib
import json
import threading
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
HASH_PREFIX = "sha256:"


class EventKind(str, enum.Enum):
    """Classification of settlement events."""
    SPLIT_PAYMENT_CREATED = "split_payment_created"
    SPLIT_PAYMENT_INTENT_ATTACHED = "split_payment_intent_attached"
    SPLIT_PAYMENT_AUTHORIZED = "split_payment_authorized"
    SPLIT_PAYMENT_CAPTURED = "split_payment_captured"
    SPLIT_PAYMENT_REFUNDED = "split_payment_refunded"
    SPLIT_PAYMENT_FAILED = "split_payment_failed"
    SPLIT_PAYMENT_CANCELED = "split_payment_canceled"
    GATEWAY_EVENT_APPLIED = "gateway_event_applied"
    COMMISSION_LINE_CREATED = "commission_line_created"


def _digest(fields: Dict[str, Any]) -> str:
    """Hash of the record's fields, ``event_hash`` excluded."""
    canonical = json.dumps(fields, sort_keys=True, ensure_ascii=False)
    return HASH_PREFIX + hashlib.sha256(canonical.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class EventRecord:
    """One audit event. ``event_hash`` seals the other five fields."""
    event_id: str
    event_kind: EventKind
    timestamp_utc: str
    actor_id: str
    payload: Dict[str, Any]
    event_hash: str

    @classmethod
    def create(
        cls,
        event_id: str,
        event_kind: EventKind,
        actor_id: str,
        payload: Dict[str, Any],
        timestamp_utc: Optional[datetime] = None,
    ) -> EventRecord:
        when = (timestamp_utc or datetime.now(timezone.utc)).strftime(TIMESTAMP_FORMAT)
        fields = {
            "event_id": event_id,
            "event_kind": event_kind.value,
            "timestamp_utc": when,
            "actor_id": actor_id,
            "payload": payload,
        }
        return cls(
            event_id=event_id,
            event_kind=event_kind,
            timestamp_utc=when,
            actor_id=actor_id,
            payload=payload,
            event_hash=_digest(fields),
        )

    def to_json(self) -> Dict[str, Any]:
        record = asdict(self)
        record["event_kind"] = self.event_kind.value
        return record

    @classmethod
    def from_json(cls, record: Dict[str, Any]) -> EventRecord:
        """Rebuild a stored record. Raises ValueError if its hash does not match."""
        stored_hash = record["event_hash"]
        fields = {k: v for k, v in record.items() if k != "event_hash"}
        computed = _digest(fields)
        if stored_hash != computed:
            raise ValueError(
                f"Integrity check failed: event {record['event_id']} "
                f"stored hash {stored_hash} != computed {computed}"
            )
        return cls(
            event_id=record["event_id"],
            event_kind=EventKind(record["event_kind"]),
            timestamp_utc=record["timestamp_utc"],
            actor_id=record["actor_id"],
            payload=record["payload"],
            event_hash=stored_hash,
        )


class EventLog:
    """Append-only settlement event log, optionally mirrored to a JSONL file.

    Usage:
        log = EventLog(storage_path=Path("data/settlement_events.jsonl"))
        log.append(EventRecord.create("evt_1", EventKind.SPLIT_PAYMENT_CREATED,
                                      "system", {"payment_id": "sp_1"}))
        log.events_for("sp_1")
    """

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._storage_path = storage_path
        self._records: List[EventRecord] = []
        self._seen: set[str] = set()
        self._lock = threading.Lock()
        if storage_path is not None and storage_path.exists():
            self._replay(storage_path)

    def append(self, event: EventRecord) -> None:
        """Append an event. Raises ValueError on a duplicate event_id."""
        with self._lock:
            if event.event_id in self._seen:
                raise ValueError(f"Duplicate event ID: {event.event_id}")
            if self._storage_path is not None:
                with self._storage_path.open("a", encoding="utf-8") as handle:
                    handle.write(json.dumps(event.to_json(), sort_keys=True, ensure_ascii=False))
                    handle.write("\n")
            self._records.append(event)
            self._seen.add(event.event_id)

    def events(self, kind: Optional[EventKind] = None) -> List[EventRecord]:
        """All events in append order, optionally only those of ``kind``."""
        return [e for e in self._records if kind is None or e.event_kind == kind]

    def events_for(self, payment_id: str) -> List[EventRecord]:
        """Every event whose payload names this payment."""
        return [e for e in self._records if e.payload.get("payment_id") == payment_id]

    @property
    def count(self) -> int:
        return len(self._records)

    @property
    def last_event(self) -> Optional[EventRecord]:
        return self._records[-1] if self._records else None

    def _replay(self, path: Path) -> None:
        """Load a JSONL file, rejecting tampered records and repeated ids."""
        for line_num, raw in enumerate(path.read_text(encoding="utf-8").splitlines(), 1):
            if not raw.strip():
                continue
            try:
                event = EventRecord.from_json(json.loads(raw))
            except ValueError as exc:
                raise ValueError(f"Line {line_num}: {exc}") from exc
            if event.event_id in self._seen:
                raise ValueError(
                    f"Duplicate event ID on recovery (line {line_num}): {event.event_id}"
                )
            self._records.append(event)
            self._seen.add(event.event_id)
