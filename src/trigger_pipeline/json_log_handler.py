# src/trigger_pipeline/json_log_handler.py

import json
import logging
import threading


class JSONLogHandler(logging.Handler):
    """Keeps structured log records in memory and optionally appends them as JSON lines."""

    def __init__(self, filepath=None, max_records=10000, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.filepath = filepath
        self.max_records = max_records
        self.log_records = []
        self._records_lock = threading.Lock()

    def to_entry(self, record):
        entry = {
            "time": self.formatter.formatTime(record) if self.formatter else record.created,
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = logging.Formatter().formatException(record.exc_info)
        return entry

    def emit(self, record):
        try:
            entry = self.to_entry(record)
            with self._records_lock:
                self.log_records.append(entry)
                if len(self.log_records) > self.max_records:
                    del self.log_records[0]
            if self.filepath:
                with open(self.filepath, 'a') as f:
                    f.write(json.dumps(entry) + '\n')
        except Exception:
            self.handleError(record)
