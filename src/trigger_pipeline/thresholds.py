# src/trigger_pipeline/thresholds.py

import logging
from dataclasses import dataclass

import numpy as np

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignalThreshold:
    display_name: str
    signal_name: str
    threshold: float


@dataclass(frozen=True)
class ThresholdResult:
    exceeded: bool
    index: int = 0  # 1-based position of the matching threshold, 0 if none
    timestamp: int = None
    value: float = None
    reason: str = ""


NOT_EXCEEDED = ThresholdResult(exceeded=False, reason="No threshold exceeded")


def load_threshold_config(path):
    """
    Reads an ordered threshold list, one 'display_name,signal_name,threshold'
    entry per line. Blank lines and '#' comments are skipped.
    """
    thresholds = []
    with open(path, 'r') as f:
        for line_number, line in enumerate(f, start=1):
            line = line.strip()
            if not line or line.startswith('#'):
                continue
            parts = [p.strip() for p in line.split(',')]
            if len(parts) != 3 or not all(parts):
                raise ValueError(f"{path}:{line_number}: expected 'display_name,signal_name,threshold'")
            try:
                value = float(parts[2])
            except ValueError:
                raise ValueError(f"{path}:{line_number}: invalid threshold '{parts[2]}'") from None
            thresholds.append(SignalThreshold(parts[0], parts[1], value))
    logger.info(f"Loaded {len(thresholds)} thresholds from '{path}'")
    return thresholds


def evaluate_thresholds(table, thresholds):
    """
    Scans timestamps in ascending order and, at each one, the thresholds in
    declared order. The first value strictly above its threshold wins. A
    signal missing at a timestamp never exceeds.
    """
    if not thresholds or len(table) == 0:
        return NOT_EXCEEDED

    values = table.as_matrix([t.signal_name for t in thresholds])
    limits = np.array([t.threshold for t in thresholds], dtype=np.float64)

    # NaN compares False, so missing values drop out here.
    hits = np.argwhere(values > limits)
    if hits.size == 0:
        return NOT_EXCEEDED

    # argwhere is row-major: first row is the earliest timestamp, then the
    # earliest threshold within it.
    row, col = hits[0]
    threshold = thresholds[col]
    timestamp = table.timestamps[row]
    value = float(values[row, col])
    reason = (f"{threshold.display_name} ({threshold.signal_name}) = {value:g} "
              f"exceeded threshold {threshold.threshold:g} at {timestamp}")
    return ThresholdResult(
        exceeded=True,
        index=int(col) + 1,
        timestamp=timestamp,
        value=value,
        reason=reason,
    )
