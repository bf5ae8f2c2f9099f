# src/can_decoder/errors.py


class CanDecoderError(Exception):
    """Base class for everything raised by the decoder package."""


class DbcParseError(CanDecoderError):
    pass


class NoMessagesError(DbcParseError):
    """The DBC source contained no valid BO_ message definitions."""


class DecodeError(CanDecoderError):
    pass


class UnknownMessageError(DecodeError):
    def __init__(self, frame_id):
        super().__init__(f"No message definition for ID 0x{frame_id:x} ({frame_id})")
        self.frame_id = frame_id


class PayloadTooShortError(DecodeError):
    def __init__(self, frame_id, expected, actual):
        super().__init__(
            f"Payload for ID 0x{frame_id:x} too short: expected {expected} bytes, got {actual}"
        )
        self.frame_id = frame_id
        self.expected = expected
        self.actual = actual


class SignalRangeError(DecodeError):
    def __init__(self, signal_name, start_bit, length, payload_length):
        super().__init__(
            f"Signal '{signal_name}' ({start_bit}|{length}) exceeds a {payload_length}-byte payload"
        )
        self.signal_name = signal_name


class ScanError(CanDecoderError):
    """
    Fatal error while scanning a capture log. 'line_number' is 1-based and is
    None when the failure is not tied to a line (e.g. the file is unreadable).
    """

    def __init__(self, message, path=None, line_number=None):
        location = path or "<capture>"
        if line_number is not None:
            location = f"{location}:{line_number}"
        super().__init__(f"[{location}] {message}")
        self.path = path
        self.line_number = line_number
        self.reason = message


class NoSignalDataError(ScanError):
    pass


class CaptureError(CanDecoderError):
    pass
