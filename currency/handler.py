"""Per-connection command loop.

Each accepted connection is served by one ``ConnectionHandler``:

  await frame -> decode -> dispatch -> encode -> write -> await frame ...

A malformed request is answered with an error object and the loop keeps
going. The loop ends when the peer closes the stream or the socket fails,
and the connection is always closed on the way out.
"""
import logging
import socket
from typing import Any, Callable, Dict, Optional

from currency import codec
from currency.errors import DecodeError, EndOfStream, FrameTooLarge, IncompleteFrame
from currency.framing import DEFAULT_CHUNK_SIZE, DEFAULT_MAX_FRAME_SIZE, FrameReader, write_all
from currency.store import CurrencyStore

log = logging.getLogger(__name__)

EventCallback = Callable[[str, Dict[str, Any]], None]


def handle_frame(frame: bytes, store: CurrencyStore) -> codec.Result:
    """Decode one request frame and run it against the store."""
    try:
        query = codec.decode_request(frame)
    except DecodeError as err:
        return codec.ErrorReply(str(err))
    return codec.Results(store.find(query.selector))


class ConnectionHandler:
    def __init__(self, conn: socket.socket, store: CurrencyStore, address=None,
                 chunk_size: int = DEFAULT_CHUNK_SIZE,
                 max_frame_size: int = DEFAULT_MAX_FRAME_SIZE,
                 on_event: Optional[EventCallback] = None,
                 conn_id: Optional[int] = None):
        self.conn = conn
        self.store = store
        self.address = address if address is not None else _peer_name(conn)
        self.reader = FrameReader(conn, chunk_size=chunk_size, max_frame_size=max_frame_size)
        self.on_event = on_event
        self.conn_id = conn_id
        self.requests = 0
        self.errors = 0

    def _emit(self, event: str, **data) -> None:
        """Report ``event`` to ``on_event`` tagged with this connection."""
        if self.on_event is None:
            return
        data["conn_id"] = self.conn_id
        data["address"] = self.address
        self.on_event(event, data)

    def run(self) -> None:
        """Serve requests until the peer leaves, then close the socket."""
        try:
            self._loop()
        finally:
            self.close()
            log.info("connection %s closed (%d requests, %d errors)",
                     self.address, self.requests, self.errors)

    def _loop(self) -> None:
        """Read, answer and count frames until the stream ends or fails."""
        while True:
            try:
                frame = self.reader.read_frame()
            except IncompleteFrame as err:
                log.warning("connection %s: %s", self.address, err)
                return
            except EndOfStream:
                log.debug("connection %s: end of stream", self.address)
                return
            except FrameTooLarge as err:
                log.warning("connection %s: %s", self.address, err)
                self._reply(codec.ErrorReply(str(err)))
                return
            except OSError as err:
                log.error("connection %s: read error: %s", self.address, err)
                return

            result = handle_frame(frame, self.store)
            self.requests += 1
            if isinstance(result, codec.ErrorReply):
                self.errors += 1
                log.info("connection %s: bad request %r: %s", self.address, frame[:80], result.message)
                self._emit("query_rejected", error=result.message)
            else:
                log.debug("connection %s: %d match(es)", self.address, len(result.records))
                self._emit("query_served", matches=len(result.records))

            if not self._reply(result):
                return

    def _reply(self, result: codec.Result) -> bool:
        """Send one response; False when the peer can no longer be written to."""
        try:
            write_all(self.conn, codec.encode_response(result))
        except OSError as err:
            log.error("connection %s: write error: %s", self.address, err)
            return False
        return True

    def close(self) -> None:
        """Close the connection; safe to call from another thread."""
        try:
            self.conn.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # already disconnected
        try:
            self.conn.close()
        except OSError as err:
            log.debug("connection %s: error closing: %s", self.address, err)


def _peer_name(conn: socket.socket):
    try:
        peer = conn.getpeername()
    except OSError:
        return "<unknown>"
    if isinstance(peer, tuple):
        return f"{peer[0]}:{peer[1]}"
    return peer or "<unix>"
