# src/trigger_pipeline/sink.py

import json
import logging
import os
import threading
import time

from .models import AuditEntry
from .retry import NonRetryableError

logger = logging.getLogger(__name__)

AUDIT_JOURNAL_FILE = "audit_log.jsonl"
DATA_JOURNAL_FILE = "data_logs.jsonl"

# Fields update_audit_entry is allowed to touch.
_UPDATABLE_FIELDS = ('process_status', 'car_type', 'use_type', 'trigger_id')


class AuditError(NonRetryableError):
    pass


class AuditSink:
    """
    In-process persistence for audit entries and final records.

    All methods are safe to call from any worker thread. When 'journal_dir' is
    given, every change is also appended to a JSON-lines journal.
    """

    def __init__(self, journal_dir=None):
        self._lock = threading.Lock()
        self._entries = {}
        self._final_records = []
        self._next_id = 1
        self.journal_dir = journal_dir
        if journal_dir:
            os.makedirs(journal_dir, exist_ok=True)

    def _journal(self, filename, entry):
        if not self.journal_dir:
            return
        path = os.path.join(self.journal_dir, filename)
        with open(path, 'a') as f:
            f.write(json.dumps(entry) + '\n')

    def _require(self, entry_id):
        entry = self._entries.get(entry_id)
        if entry is None:
            raise AuditError(f"Unknown audit entry id {entry_id}")
        return entry

    def create_audit_entry(self, record):
        now = time.time()
        with self._lock:
            entry = AuditEntry(
                id=self._next_id,
                vin=record.vin,
                trigger_timestamp=record.timestamp,
                car_type=record.car_type,
                use_type=record.usage_type,
                trigger_id=record.trigger_id,
                created_at=now,
                updated_at=now,
            )
            self._entries[entry.id] = entry
            self._next_id += 1
            self._journal(AUDIT_JOURNAL_FILE, {"event": "create", **entry.to_dict()})
        return entry.id

    def update_audit_entry(self, entry_id, fields):
        unknown = set(fields) - set(_UPDATABLE_FIELDS)
        if unknown:
            raise AuditError(f"Cannot update audit fields: {sorted(unknown)}")
        with self._lock:
            entry = self._require(entry_id)
            for name, value in fields.items():
                setattr(entry, name, value)
            entry.updated_at = time.time()
            self._journal(AUDIT_JOURNAL_FILE, {"event": "update", "id": entry_id, **fields})

    def append_audit_log(self, entry_id, stage_name):
        with self._lock:
            entry = self._require(entry_id)
            # A retried append must not duplicate the marker.
            if entry.process_log and entry.process_log[-1] == stage_name:
                return
            entry.process_log.append(stage_name)
            entry.updated_at = time.time()
            self._journal(AUDIT_JOURNAL_FILE, {"event": "append", "id": entry_id, "stage": stage_name})

    def persist_final(self, record):
        data = record.to_dict()
        with self._lock:
            self._final_records.append(data)
            self._journal(DATA_JOURNAL_FILE, data)

    def get_audit_entry(self, entry_id):
        """Returns a copy of the entry, or None."""
        with self._lock:
            entry = self._entries.get(entry_id)
            if entry is None:
                return None
            return AuditEntry(**{**entry.to_dict(), "process_log": list(entry.process_log)})

    def audit_entry_count(self):
        with self._lock:
            return len(self._entries)

    def final_records(self):
        with self._lock:
            return list(self._final_records)
