"""Client side of the currency protocol: one request, one response."""
import logging
import socket
from typing import Callable, Optional

from currency import codec
from currency.errors import DecodeError, EndOfStream, ProtocolError
from currency.framing import DEFAULT_CHUNK_SIZE, FrameReader, write_all
from currency.store import Record

log = logging.getLogger(__name__)

PROMPT = "currency> "
USAGE = "Enter search string or *"
QUIT_WORDS = ("quit", "exit")

# a "*" reply over a large dataset easily passes the server's request limit
CLIENT_MAX_FRAME_SIZE = 16 * 1024 * 1024


def format_record(record: Record) -> str:
    return f"{record.code:<4} {record.symbol:<5} {record.name} ({record.country})"


def format_result(result: codec.Result) -> str:
    if isinstance(result, codec.ErrorReply):
        return f"error: {result.message}"
    if not result.records:
        return "no match"
    return "\n".join(format_record(r) for r in result.records)


class ClientSession:
    def __init__(self, conn: socket.socket, chunk_size: int = DEFAULT_CHUNK_SIZE,
                 max_frame_size: Optional[int] = CLIENT_MAX_FRAME_SIZE):
        self.conn = conn
        self.reader = FrameReader(conn, chunk_size=chunk_size, max_frame_size=max_frame_size)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def close(self) -> None:
        self.conn.close()

    def query(self, selector: str) -> codec.Result:
        """Send one query and wait for its response.

        Socket errors, ``EndOfStream`` and ``FrameTooLarge`` propagate: the
        session is over.
        A response that cannot be decoded is reported as an ``ErrorReply``.
        """
        write_all(self.conn, codec.encode_request(codec.Query(selector)))
        frame = self.reader.read_frame()
        try:
            return codec.decode_response(frame)
        except DecodeError as err:
            log.warning("undecodable response %r: %s", frame[:80], err)
            return codec.ErrorReply(f"bad response from server: {err}")

    def repl(self, input_fn: Callable[[str], str] = input,
             output: Callable[[str], None] = print) -> None:
        """Read selectors interactively until EOF or ``quit``."""
        output(USAGE)
        while True:
            try:
                line = input_fn(PROMPT)
            except EOFError:
                return
            selector = line.strip()
            if not selector:
                output("Usage: <search string or *>")
                continue
            if selector.lower() in QUIT_WORDS:
                return
            try:
                result = self.query(selector)
            except EndOfStream:
                output("server closed the connection")
                raise
            except ProtocolError as err:
                output(f"unreadable response: {err}")
                raise
            except OSError as err:
                output(f"failed to send request: {err}")
                raise
            output(format_result(result))
