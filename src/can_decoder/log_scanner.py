# src/can_decoder/log_scanner.py

import logging
import re
from dataclasses import dataclass, field

import can
import numpy as np

from .errors import NoSignalDataError, ScanError
from .frame_decoder import decode_signals

logger = logging.getLogger(__name__)

_TIMESTAMP_PATTERN = re.compile(r'[+-]?\d+')
_HEX_ID_PATTERN = re.compile(r'[0-9A-Fa-f]+')
_MAX_FRAME_ID = 0xFFFFFFFF
_MAX_STANDARD_ID = 0x7FF


@dataclass
class SignalTable:
    """Signal values keyed by capture timestamp, plus the sorted timestamps."""
    values: dict = field(default_factory=dict)
    timestamps: list = field(default_factory=list)

    def __len__(self):
        return len(self.timestamps)

    def value_count(self):
        return sum(len(signals) for signals in self.values.values())

    def get(self, timestamp, signal_name, default=None):
        return self.values.get(timestamp, {}).get(signal_name, default)

    def as_matrix(self, signal_names):
        """
        Returns a float64 array of shape (len(timestamps), len(signal_names)),
        rows in timestamp order and columns in 'signal_names' order. Missing
        values are NaN.
        """
        matrix = np.full((len(self.timestamps), len(signal_names)), np.nan, dtype=np.float64)
        for row, ts in enumerate(self.timestamps):
            signals = self.values.get(ts, {})
            for col, name in enumerate(signal_names):
                if name in signals:
                    matrix[row, col] = signals[name]
        return matrix


def parse_candump_line(line, path=None, line_number=None):
    """
    Tokenises one '(timestamp) bus id#hexdata' line.
    Returns (timestamp, can.Message) or raises ScanError.
    """
    parts = line.split()
    if len(parts) < 3:
        raise ScanError("Invalid line format, expected at least 3 fields", path, line_number)

    timestamp_str = parts[0].strip('()')
    if not _TIMESTAMP_PATTERN.fullmatch(timestamp_str):
        raise ScanError(f"Failed to parse timestamp '{timestamp_str}'", path, line_number)
    timestamp = int(timestamp_str)

    frame_parts = parts[2].split('#')
    if len(frame_parts) != 2:
        raise ScanError(f"Invalid CAN frame '{parts[2]}'", path, line_number)
    id_str, data_str = frame_parts

    if not _HEX_ID_PATTERN.fullmatch(id_str) or int(id_str, 16) > _MAX_FRAME_ID:
        raise ScanError(f"Failed to parse CAN ID '{id_str}'", path, line_number)
    frame_id = int(id_str, 16)

    if len(data_str) % 2 != 0:
        raise ScanError(f"CAN payload must have an even length, got {len(data_str)}", path, line_number)
    try:
        data = bytes.fromhex(data_str)
    except ValueError as e:
        raise ScanError(f"Failed to decode CAN payload '{data_str}': {e}", path, line_number) from e

    msg = can.Message(
        timestamp=float(timestamp),
        arbitration_id=frame_id,
        is_extended_id=frame_id > _MAX_STANDARD_ID,
        dlc=len(data),
        data=data,
        channel=parts[1],
    )
    return timestamp, msg


def iter_candump_frames(path):
    """Yields (line_number, timestamp, can.Message) for every non-blank line."""
    try:
        with open(path, 'r') as f:
            for line_number, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                timestamp, msg = parse_candump_line(line, path, line_number)
                yield line_number, timestamp, msg
    except OSError as e:
        raise ScanError(f"Failed to read capture log: {e}", path) from e
    except UnicodeDecodeError as e:
        raise ScanError(f"Capture log is not text: {e}", path) from e


def scan(log_path, dictionary, target_signal_names):
    """
    Decodes a candump-style log with 'dictionary' and collects the values of
    'target_signal_names' per timestamp.

    Any malformed line aborts the scan with a ScanError carrying its line
    number. Frames whose ID isn't in the dictionary are skipped. Raises
    NoSignalDataError if no target signal was found in the whole file.
    """
    targets = set(target_signal_names)
    values = {}
    skipped_ids = set()

    for line_number, timestamp, msg in iter_candump_frames(log_path):
        message = dictionary.get_message(msg.arbitration_id)
        if message is None:
            if msg.arbitration_id not in skipped_ids:
                skipped_ids.add(msg.arbitration_id)
                logger.debug(f"Line {line_number}: ID 0x{msg.arbitration_id:x} not in DBC, skipping")
            continue

        signals = decode_signals(message, msg.data, targets)
        if not signals:
            continue
        values.setdefault(timestamp, {}).update(signals)

    table = SignalTable(values=values, timestamps=sorted(values))
    if table.value_count() == 0:
        raise NoSignalDataError(
            "No signal data found, check the DBC and the target signal names", log_path
        )

    logger.info(f"Scanned '{log_path}': {len(table)} timestamps, {table.value_count()} values")
    return table
