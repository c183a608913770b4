"""Exceptions raised by the currency service.

Transport failures are not wrapped: they surface as the ``OSError`` raised by
the socket layer.
"""


class CurrencyError(Exception):
    pass


class ProtocolError(CurrencyError):
    """The peer sent bytes that do not form a valid message."""


class DecodeError(ProtocolError):
    pass


class FrameTooLarge(ProtocolError):
    def __init__(self, size: int, limit: int):
        super().__init__(f"frame exceeds {limit} bytes (got {size})")
        self.size = size
        self.limit = limit


class EndOfStream(CurrencyError):
    """The peer closed the stream cleanly between frames."""


class IncompleteFrame(EndOfStream):
    """The peer closed the stream in the middle of a frame."""

    def __init__(self, partial: bytes):
        super().__init__(f"stream closed after {len(partial)} bytes of an unterminated frame")
        self.partial = partial


class DialError(CurrencyError):
    def __init__(self, address, attempts: int, cause: BaseException, temporary: bool):
        kind = "temporary" if temporary else "permanent"
        super().__init__(f"unable to connect to {address} after {attempts} attempt(s) ({kind}): {cause}")
        self.address = address
        self.attempts = attempts
        self.cause = cause
        self.temporary = temporary


class DatasetError(CurrencyError):
    pass


class UnsupportedNetwork(CurrencyError, ValueError):
    def __init__(self, network: str):
        super().__init__(f"unsupported network protocol: {network!r}")
        self.network = network


class AddressError(CurrencyError, ValueError):
    pass


class TLSConfigError(CurrencyError):
    pass
