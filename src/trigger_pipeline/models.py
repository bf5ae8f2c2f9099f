# src/trigger_pipeline/models.py

import json
from dataclasses import dataclass, field
from enum import Enum

from .retry import NonRetryableError


class UsageType(str, Enum):
    PRODUCTION = "production"
    TEST_DRIVE = "test_drive"
    MEDIA = "media"
    INTERNAL = "internal"
    NONE = "none"


class PayloadError(NonRetryableError):
    """A queue payload that can't be turned into a TriggerRecord."""


_WIRE_FIELDS = (
    'vin', 'timestamp', 'car_type', 'usage_type', 'trigger_id', 'log_id',
    'is_crash', 'threshold_log', 'type', 'status',
)


@dataclass
class TriggerRecord:
    vin: str
    timestamp: int
    car_type: str = ""
    usage_type: str = ""
    trigger_id: int = 0
    log_id: object = None

    # Filled in by later stages
    is_crash: int = 0
    threshold_log: str = ""
    type: str = ""
    status: str = ""

    # Fields added by stages this version doesn't know about
    extra: dict = field(default_factory=dict)

    def to_dict(self):
        data = dict(self.extra)
        data.update({name: getattr(self, name) for name in _WIRE_FIELDS})
        return data

    def to_json(self):
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict):
            raise PayloadError(f"Trigger payload must be a JSON object, got {type(data).__name__}")
        for required in ('vin', 'timestamp'):
            if required not in data:
                raise PayloadError(f"Trigger payload is missing '{required}'")
        known = {name: data[name] for name in _WIRE_FIELDS if name in data}
        extra = {key: value for key, value in data.items() if key not in _WIRE_FIELDS}
        return cls(extra=extra, **known)

    @classmethod
    def from_json(cls, payload):
        if isinstance(payload, bytes):
            payload = payload.decode('utf-8', errors='replace')
        try:
            data = json.loads(payload)
        except (TypeError, ValueError) as e:
            raise PayloadError(f"Failed to decode trigger payload: {e}") from e
        return cls.from_dict(data)


@dataclass
class AuditEntry:
    id: int
    vin: str
    trigger_timestamp: int
    car_type: str
    use_type: str
    trigger_id: int
    process_status: str = ""
    process_log: list = field(default_factory=list)
    created_at: float = 0.0
    updated_at: float = 0.0

    def to_dict(self):
        return {
            "id": self.id,
            "vin": self.vin,
            "trigger_timestamp": self.trigger_timestamp,
            "car_type": self.car_type,
            "use_type": self.use_type,
            "trigger_id": self.trigger_id,
            "process_status": self.process_status,
            "process_log": list(self.process_log),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
