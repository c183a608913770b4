"""Message framing over a byte stream.

Messages on the wire are bare JSON values, one after another, optionally
separated by whitespace:

  {"Get":"USD"}\\n[{"code":"USD",...}]\\n

``FrameReader`` pulls bytes in bounded chunks and cuts the stream at the end
of each top-level object or array. Brackets inside string literals are
ignored, so a ``}`` in a currency name does not end the frame early.

Input that is not an object or array (``hello``, ``42``) is cut at the next
newline or stray closing bracket and handed back as its own frame, which
lets the caller answer it with an error and keep reading. A bare top-level
string (``"abc"``) has no closing bracket, so it only ends at a newline.

A raw newline inside a string literal is invalid JSON and always ends the
frame, at any depth. An unterminated string (``{"Get":"USD}``) therefore
cannot swallow the requests that follow it on the next lines.
"""
import socket
from typing import Optional, Tuple

from currency.errors import EndOfStream, FrameTooLarge, IncompleteFrame

DEFAULT_CHUNK_SIZE = 1024
DEFAULT_MAX_FRAME_SIZE = 64 * 1024

_OPEN = frozenset(b"{[")
_CLOSE = frozenset(b"}]")
_SPACE = frozenset(b" \t\r\n")
_QUOTE = ord('"')
_BACKSLASH = ord("\\")
_NEWLINE = ord("\n")


class FrameReader:
    def __init__(self, conn: socket.socket, chunk_size: int = DEFAULT_CHUNK_SIZE,
                 max_frame_size: Optional[int] = DEFAULT_MAX_FRAME_SIZE):
        if chunk_size < 1:
            raise ValueError("chunk_size must be positive")
        self.conn = conn
        self.chunk_size = chunk_size
        self.max_frame_size = max_frame_size
        self._buf = bytearray()
        self._reset()

    def _reset(self) -> None:
        self._pos = 0
        self._start: Optional[int] = None
        self._depth = 0
        self._in_string = False
        self._escape = False

    @property
    def pending(self) -> bytes:
        """Bytes received but not yet returned as a frame."""
        return bytes(self._buf)

    def read_frame(self) -> bytes:
        """Return the next complete frame.

        Raises ``EndOfStream`` when the peer closes between frames,
        ``IncompleteFrame`` when it closes inside one and ``FrameTooLarge``
        when a frame outgrows ``max_frame_size`` (``None`` disables the limit).
        Socket errors propagate.
        """
        while True:
            found = self._scan()
            if found is not None:
                end, consumed = found
                frame = bytes(self._buf[self._start:end])
                del self._buf[:consumed]
                self._reset()
                return frame

            if self._start is None:
                # only whitespace so far
                self._buf.clear()
                self._pos = 0
            elif self.max_frame_size is not None and len(self._buf) - self._start > self.max_frame_size:
                raise FrameTooLarge(len(self._buf) - self._start, self.max_frame_size)

            chunk = self.conn.recv(self.chunk_size)
            if not chunk:
                partial = bytes(self._buf[self._start or 0:])
                self._buf.clear()
                self._reset()
                if partial:
                    raise IncompleteFrame(partial)
                raise EndOfStream("peer closed the stream")
            self._buf += chunk

    def _scan(self) -> Optional[Tuple[int, int]]:
        buf = self._buf
        for i in range(self._pos, len(buf)):
            b = buf[i]
            if self._start is None:
                if b in _SPACE:
                    continue
                self._start = i

            if self._in_string:
                if b == _NEWLINE:
                    # raw newlines are not allowed inside JSON strings
                    return i, i + 1
                if self._escape:
                    self._escape = False
                elif b == _BACKSLASH:
                    self._escape = True
                elif b == _QUOTE:
                    self._in_string = False
                continue

            if b == _QUOTE:
                self._in_string = True
            elif b in _OPEN:
                self._depth += 1
            elif b in _CLOSE:
                if self._depth <= 1:
                    return i + 1, i + 1
                self._depth -= 1
            elif b == _NEWLINE and self._depth == 0:
                return i, i + 1

        self._pos = len(buf)
        return None


def write_all(conn: socket.socket, data: bytes) -> None:
    """Write every byte of ``data``, retrying partial sends."""
    view = memoryview(data)
    while view:
        sent = conn.send(view)
        if sent == 0:
            raise ConnectionError("socket connection broken")
        view = view[sent:]
