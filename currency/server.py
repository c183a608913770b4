"""
Currency lookup server.

Accepts connections on a plaintext or TLS listener and serves each one on its
own thread. Keeps a registry of live connections for the admin dashboard.
"""

import logging
import os
import socket
import ssl
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from currency import transport
from currency.framing import DEFAULT_CHUNK_SIZE, DEFAULT_MAX_FRAME_SIZE
from currency.handler import ConnectionHandler
from currency.store import CurrencyStore

log = logging.getLogger(__name__)

ACCEPT_POLL_INTERVAL = 1.0


@dataclass
class ClientConnection:
    """A connected client as seen by the admin surface."""
    conn_id: int
    address: str
    handler: Optional[ConnectionHandler] = None
    connected_at: datetime = field(default_factory=datetime.now)
    requests: int = 0
    errors: int = 0

    def connection_duration(self) -> str:
        delta = datetime.now() - self.connected_at
        minutes, seconds = divmod(int(delta.total_seconds()), 60)
        hours, minutes = divmod(minutes, 60)
        if hours > 0:
            return f"{hours}h {minutes}m"
        elif minutes > 0:
            return f"{minutes}m {seconds}s"
        return f"{seconds}s"


class CurrencyServer:
    """Stream server answering currency queries."""

    def __init__(self, store: CurrencyStore, network: str = "tcp", endpoint: str = ":4040",
                 tls_context: Optional[ssl.SSLContext] = None,
                 chunk_size: int = DEFAULT_CHUNK_SIZE,
                 max_frame_size: int = DEFAULT_MAX_FRAME_SIZE,
                 idle_timeout: Optional[float] = None,
                 backlog: int = 16):
        transport.check_network(network)
        self.store = store
        self.network = network
        self.endpoint = endpoint
        self.tls_context = tls_context
        self.chunk_size = chunk_size
        self.max_frame_size = max_frame_size
        self.idle_timeout = idle_timeout
        self.backlog = backlog

        self.server_socket: Optional[socket.socket] = None
        self.running = False
        self.lock = threading.Lock()
        self.clients: Dict[int, ClientConnection] = {}
        self.total_connections = 0
        self.total_requests = 0
        self.total_errors = 0
        self._next_id = 0
        self._accept_thread: Optional[threading.Thread] = None
        self._listeners: List[Callable[[str, dict], None]] = []

    @property
    def secure(self) -> bool:
        return self.tls_context is not None

    @property
    def address(self):
        """Bound address of the listener (resolves port 0)."""
        if self.server_socket is None:
            return None
        return self.server_socket.getsockname()

    def add_listener(self, callback: Callable[[str, dict], None]) -> None:
        """Register a callback receiving ``(event, data)`` notifications."""
        self._listeners.append(callback)

    def _notify_listeners(self, event: str, data: Optional[dict] = None) -> None:
        for listener in self._listeners:
            try:
                listener(event, data or {})
            except Exception:
                log.exception("event listener failed on %s", event)

    def bind(self) -> None:
        if self.server_socket is not None:
            return
        self.server_socket = transport.open_listener(self.network, self.endpoint, self.backlog)
        self.server_socket.settimeout(ACCEPT_POLL_INTERVAL)
        self.running = True
        bound = transport.format_address(self.address)
        log.info("**** Global Currency Service ****")
        log.info("service started: (%s%s) %s", self.network, "+tls" if self.secure else "", bound)
        self._notify_listeners("server_started", {
            "network": self.network, "address": bound, "tls": self.secure,
        })

    def start(self) -> None:
        """Bind and run the accept loop on a background thread."""
        if self.running:
            return
        self.bind()
        self._accept_thread = threading.Thread(
            target=self._accept_connections, name="currency-accept", daemon=True
        )
        self._accept_thread.start()

    def serve_forever(self) -> None:
        """Bind and run the accept loop on the calling thread."""
        self.bind()
        try:
            self._accept_connections()
        finally:
            self.stop()

    def stop(self) -> None:
        if self.server_socket is None:
            return
        self.running = False
        sock, self.server_socket = self.server_socket, None
        sock.close()
        if self.network == "unix":
            try:
                os.unlink(self.endpoint)
            except FileNotFoundError:
                pass
            except OSError as err:
                log.warning("could not remove socket file %s: %s", self.endpoint, err)

        with self.lock:
            handlers = [c.handler for c in self.clients.values() if c.handler]
        for handler in handlers:
            handler.close()

        thread = self._accept_thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(ACCEPT_POLL_INTERVAL * 2)
        self._accept_thread = None
        log.info("service stopped")
        self._notify_listeners("server_stopped", {})

    def _accept_connections(self) -> None:
        while self.running:
            sock = self.server_socket
            if sock is None:
                break
            try:
                conn, peer = sock.accept()
            except socket.timeout:
                continue
            except OSError as err:
                if not self.running:
                    break
                log.error("accept failed: %s", err)
                continue
            threading.Thread(
                target=self._handle_client, args=(conn, peer), daemon=True
            ).start()

    def _register(self, address: str) -> ClientConnection:
        with self.lock:
            self._next_id += 1
            client = ClientConnection(conn_id=self._next_id, address=address)
            self.clients[client.conn_id] = client
            self.total_connections += 1
        return client

    def _handle_client(self, conn: socket.socket, peer) -> None:
        address = _describe_peer(peer, self.endpoint)
        conn.settimeout(self.idle_timeout)
        if self.tls_context is not None:
            try:
                conn = self.tls_context.wrap_socket(conn, server_side=True)
            except (ssl.SSLError, OSError) as err:
                log.warning("TLS handshake with %s failed: %s", address, err)
                conn.close()
                return

        client = self._register(address)
        log.info("connected to %s", address)
        handler = ConnectionHandler(
            conn, self.store, address=address,
            chunk_size=self.chunk_size, max_frame_size=self.max_frame_size,
            on_event=self._on_handler_event, conn_id=client.conn_id,
        )
        client.handler = handler
        if not self.running:
            handler.close()
        self._notify_listeners("client_connected", {"conn_id": client.conn_id, "address": address})
        try:
            handler.run()
        finally:
            with self.lock:
                self.clients.pop(client.conn_id, None)
            self._notify_listeners("client_disconnected", {"conn_id": client.conn_id, "address": address})

    def _on_handler_event(self, event: str, data: Dict[str, Any]) -> None:
        with self.lock:
            self.total_requests += 1
            client = self.clients.get(data.get("conn_id"))
            if client is not None:
                client.requests += 1
            if event == "query_rejected":
                self.total_errors += 1
                if client is not None:
                    client.errors += 1
        self._notify_listeners(event, data)

    def kick_client(self, conn_id: int) -> bool:
        """Close one client connection (admin action)."""
        with self.lock:
            client = self.clients.get(conn_id)
        if client is None or client.handler is None:
            return False
        log.info("closing connection %s on request", client.address)
        client.handler.close()
        return True

    def get_clients_info(self) -> List[dict]:
        with self.lock:
            return [
                {
                    "conn_id": c.conn_id,
                    "address": c.address,
                    "duration": c.connection_duration(),
                    "requests": c.requests,
                    "errors": c.errors,
                }
                for c in self.clients.values()
            ]

    def get_stats(self) -> dict:
        with self.lock:
            return {
                "active": len(self.clients),
                "connections": self.total_connections,
                "requests": self.total_requests,
                "errors": self.total_errors,
                "currencies": len(self.store),
            }


def _describe_peer(peer, endpoint: str) -> str:
    if isinstance(peer, tuple):
        return transport.format_address(peer[:2])
    return peer or f"unix:{endpoint}"
