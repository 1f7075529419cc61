"""Persistence — append-only audit log."""

from splitsettle.persistence.event_log import EventKind, EventLog, EventRecord

__all__ = ["EventKind", "EventLog", "EventRecord"]
