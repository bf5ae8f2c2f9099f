# src/can_decoder/frame_decoder.py

import logging

from .errors import PayloadTooShortError, SignalRangeError, UnknownMessageError

logger = logging.getLogger(__name__)


def motorola_msb_position(start_bit):
    """
    Converts a DBC big-endian start bit (sawtooth numbering, bit 7 is the MSB
    of byte 0) into the MSB-first sequential position used by the extractor,
    where position 0 is the MSB of byte 0 and 8 is the MSB of byte 1.
    """
    return (start_bit // 8) * 8 + (7 - start_bit % 8)


def _extract_big_endian(signal, data):
    position = motorola_msb_position(signal.start_bit)
    length = signal.length
    if position + length > len(data) * 8:
        raise SignalRangeError(signal.name, signal.start_bit, length, len(data))

    value = 0
    for i in range(length):
        bit_pos = position + i
        bit = (data[bit_pos // 8] >> (7 - bit_pos % 8)) & 0x01
        value |= bit << (length - 1 - i)
    return value


def _extract_little_endian(signal, data):
    start, length = signal.start_bit, signal.length
    if start + length > len(data) * 8:
        raise SignalRangeError(signal.name, start, length, len(data))

    data_int = int.from_bytes(data, byteorder='little')
    return (data_int >> start) & ((1 << length) - 1)


def extract_raw(signal, data):
    """Returns the raw (unscaled) integer for 'signal', sign-extended if signed."""
    if signal.length <= 0:
        raise SignalRangeError(signal.name, signal.start_bit, signal.length, len(data))

    if signal.is_big_endian:
        raw_value = _extract_big_endian(signal, data)
    else:
        raw_value = _extract_little_endian(signal, data)

    if signal.is_signed and raw_value & (1 << (signal.length - 1)):
        raw_value -= (1 << signal.length)
    return raw_value


def physical_value(signal, data):
    return float(extract_raw(signal, data) * signal.factor + signal.offset)


def decode_signals(message, data, signal_names=None):
    """
    Decodes every signal of 'message' (or only those in 'signal_names').

    This is the streaming path: there is no DLC check, and a signal whose bit
    range doesn't fit the payload is logged and left out of the result while
    the other signals are still decoded.
    """
    decoded = {}
    for name, signal in message.signals.items():
        if signal_names is not None and name not in signal_names:
            continue
        try:
            decoded[name] = physical_value(signal, data)
        except SignalRangeError as e:
            logger.warning(f"Skipping signal in 0x{message.frame_id:x} ({message.name}): {e}")
    return decoded


def decode(dictionary, frame_id, data, signal_names=None):
    """
    Decodes one frame into {signal_name: physical_value}.

    Raises UnknownMessageError if the ID is not in the dictionary and
    PayloadTooShortError if the payload is shorter than the declared DLC.
    """
    message = dictionary.get_message(frame_id)
    if message is None:
        raise UnknownMessageError(frame_id)

    data = bytes(data)
    if len(data) < message.dlc:
        raise PayloadTooShortError(frame_id, message.dlc, len(data))

    return decode_signals(message, data, signal_names)


def decode_message(dictionary, msg, signal_names=None):
    """Same as decode() for a python-can Message."""
    return decode(dictionary, msg.arbitration_id, msg.data, signal_names)
