# src/can_decoder/capture.py

import logging
import os
import struct
from dataclasses import dataclass, field

import can

from .errors import CaptureError, DecodeError
from .frame_decoder import decode_message
from .log_scanner import iter_candump_frames

logger = logging.getLogger(__name__)

# Binary capture record: timestamp (us), CAN ID, data length, 8 data bytes.
CAPTURE_RECORD_FORMAT = struct.Struct('<QIB8s')
MAX_CLASSIC_DLC = 8
TEXT_CAPTURE_SUFFIXES = ('.log', '.txt', '.can')


@dataclass
class CanData:
    timestamp: int
    vehicle_id: str
    vehicle_type: str
    signals: dict = field(default_factory=dict)
    raw_data: bytes = b""

    def to_dict(self):
        return {
            "timestamp": self.timestamp,
            "vehicle_id": self.vehicle_id,
            "vehicle_type": self.vehicle_type,
            "signals": dict(self.signals),
            "raw_data": self.raw_data.hex(),
        }


def unpack_record(record):
    """Unpacks one binary capture record into (timestamp, can.Message)."""
    timestamp, frame_id, length, payload = CAPTURE_RECORD_FORMAT.unpack(record)
    length = min(length, MAX_CLASSIC_DLC)
    msg = can.Message(
        timestamp=timestamp / 1_000_000,
        arbitration_id=frame_id,
        is_extended_id=frame_id > 0x7FF,
        dlc=length,
        data=payload[:length],
    )
    return timestamp, msg


def iter_binary_frames(path):
    record_size = CAPTURE_RECORD_FORMAT.size
    try:
        with open(path, 'rb') as f:
            while True:
                record = f.read(record_size)
                if not record:
                    break
                if len(record) < record_size:
                    logger.warning(f"Ignoring trailing partial record ({len(record)} bytes) in '{path}'")
                    break
                yield unpack_record(record)
    except OSError as e:
        raise CaptureError(f"Failed to read capture file '{path}': {e}") from e


class CaptureParser:
    """
    Turns an uploaded CAN capture into decoded CanData rows. Frames that fail
    to decode are logged and skipped; the rest of the capture is still parsed.
    """

    def __init__(self, dictionary):
        self.dictionary = dictionary

    def _frames(self, path):
        if os.path.splitext(path)[1].lower() in TEXT_CAPTURE_SUFFIXES:
            for _, timestamp, msg in iter_candump_frames(path):
                yield timestamp, msg
        else:
            yield from iter_binary_frames(path)

    def parse_capture(self, path, vehicle_id, vehicle_type):
        logger.info(f"Parsing capture '{path}' (vehicle {vehicle_id}, type {vehicle_type})")
        if not os.path.isfile(path):
            raise CaptureError(f"Capture file not found: '{path}'")

        results = []
        failures = 0
        for timestamp, msg in self._frames(path):
            try:
                signals = decode_message(self.dictionary, msg)
            except DecodeError as e:
                failures += 1
                logger.debug(f"Failed to decode frame at {timestamp}: {e}")
                continue
            results.append(CanData(
                timestamp=timestamp,
                vehicle_id=vehicle_id,
                vehicle_type=vehicle_type,
                signals=signals,
                raw_data=bytes(msg.data),
            ))

        logger.info(f"Parsed '{path}': {len(results)} frames decoded, {failures} skipped")
        return results

    def parse_stream(self, record, vehicle_id, vehicle_type):
        """Decodes a single binary record received over a stream."""
        if len(record) < CAPTURE_RECORD_FORMAT.size:
            raise CaptureError(
                f"Record too short: expected {CAPTURE_RECORD_FORMAT.size} bytes, got {len(record)}"
            )
        timestamp, msg = unpack_record(record[:CAPTURE_RECORD_FORMAT.size])
        signals = decode_message(self.dictionary, msg)
        return CanData(
            timestamp=timestamp,
            vehicle_id=vehicle_id,
            vehicle_type=vehicle_type,
            signals=signals,
            raw_data=bytes(msg.data),
        )


def pack_record(timestamp, frame_id, data):
    data = bytes(data)[:MAX_CLASSIC_DLC]
    return CAPTURE_RECORD_FORMAT.pack(timestamp, frame_id, len(data), data)


def parse_capture(path, vehicle_id, vehicle_type, dictionary):
    return CaptureParser(dictionary).parse_capture(path, vehicle_id, vehicle_type)
