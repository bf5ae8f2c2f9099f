# src/can_decoder/dbc.py

import logging
import re
from dataclasses import dataclass, field
from types import MappingProxyType

from .errors import DbcParseError, NoMessagesError

logger = logging.getLogger(__name__)

BIG_ENDIAN = 'big_endian'
LITTLE_ENDIAN = 'little_endian'

_NUMBER = r'[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?'

# BO_ <id> <name>: <dlc> <sender>
MESSAGE_PATTERN = re.compile(r'^BO_\s+(\d+)\s+(\w+)\s*:\s*(\d+)\s+(\w+)')

# SG_ <name> [M|mN] : <start>|<length>@<0|1><+|-> (<factor>,<offset>) [<min>|<max>] "<unit>" <receivers>
SIGNAL_PATTERN = re.compile(
    r'^SG_\s+(?P<name>\w+)\s*(?:[Mm]\d*\s*)?:\s*'
    r'(?P<start>\d+)\|(?P<length>\d+)@(?P<order>[01])(?P<sign>[+-])\s*'
    rf'\(\s*(?P<factor>{_NUMBER})\s*,\s*(?P<offset>{_NUMBER})\s*\)\s*'
    rf'\[\s*(?P<minimum>{_NUMBER})\s*\|\s*(?P<maximum>{_NUMBER})\s*\]\s*'
    r'"(?P<unit>[^"]*)"\s*(?P<receivers>.*)$'
)


@dataclass(frozen=True)
class SignalDefinition:
    name: str
    start_bit: int
    length: int
    byte_order: str = BIG_ENDIAN
    is_signed: bool = False
    factor: float = 1.0
    offset: float = 0.0
    minimum: float = 0.0
    maximum: float = 0.0
    unit: str = ""
    receivers: tuple = ()

    @property
    def is_big_endian(self):
        return self.byte_order == BIG_ENDIAN


@dataclass(frozen=True)
class MessageDefinition:
    frame_id: int
    name: str
    dlc: int
    sender: str = ""
    signals: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))

    def get_signal(self, name):
        return self.signals.get(name)


class SignalDictionary:
    """
    Read-only mapping from frame ID to MessageDefinition, built once from DBC
    text. Nothing mutates it after construction, so worker threads may share a
    single instance without locking.
    """

    def __init__(self, messages):
        self._messages = MappingProxyType(dict(messages))

    def get_message(self, frame_id):
        return self._messages.get(frame_id)

    def all_messages(self):
        return self._messages

    def signal_names(self):
        return {name for message in self._messages.values() for name in message.signals}

    def __contains__(self, frame_id):
        return frame_id in self._messages

    def __len__(self):
        return len(self._messages)

    def __repr__(self):
        return f"SignalDictionary({len(self._messages)} messages)"


def _parse_signal(match):
    receivers = tuple(r for r in re.split(r'[\s,]+', match.group('receivers').strip()) if r)
    return SignalDefinition(
        name=match.group('name'),
        start_bit=int(match.group('start')),
        length=int(match.group('length')),
        byte_order=LITTLE_ENDIAN if match.group('order') == '1' else BIG_ENDIAN,
        is_signed=match.group('sign') == '-',
        factor=float(match.group('factor')),
        offset=float(match.group('offset')),
        minimum=float(match.group('minimum')),
        maximum=float(match.group('maximum')),
        unit=match.group('unit'),
        receivers=receivers,
    )


def parse_dbc(text):
    """
    Parses DBC text into a SignalDictionary.

    Only BO_ and SG_ lines are interpreted. Lines that don't match are skipped,
    SG_ lines seen before the first BO_ are ignored, and a repeated message ID
    replaces the earlier definition. Raises NoMessagesError when the whole
    source yields no message.
    """
    messages = {}
    current = None  # (header tuple, signals dict) of the open message

    def close_current():
        if current is not None:
            (frame_id, name, dlc, sender), signals = current
            messages[frame_id] = MessageDefinition(
                frame_id=frame_id, name=name, dlc=dlc, sender=sender,
                signals=MappingProxyType(signals),
            )

    for line_number, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.strip()
        if not line:
            continue

        match = MESSAGE_PATTERN.match(line)
        if match:
            close_current()
            header = (int(match.group(1)), match.group(2), int(match.group(3)), match.group(4))
            current = (header, {})
            continue

        if line.startswith('SG_'):
            if current is None:
                logger.debug(f"Ignoring signal outside of a message at line {line_number}")
                continue
            match = SIGNAL_PATTERN.match(line)
            if not match:
                logger.warning(f"Skipping malformed signal line {line_number}: {line}")
                continue
            signal = _parse_signal(match)
            current[1][signal.name] = signal

    close_current()

    if not messages:
        raise NoMessagesError("No valid message definitions found in DBC source")

    logger.info(f"Parsed DBC: {len(messages)} messages, "
                f"{sum(len(m.signals) for m in messages.values())} signals")
    return SignalDictionary(messages)


def load_file(path, encoding='utf-8'):
    try:
        with open(path, 'r', encoding=encoding, errors='replace') as f:
            text = f.read()
    except OSError as e:
        raise DbcParseError(f"Failed to read DBC file '{path}': {e}") from e
    return parse_dbc(text)
