"""Outbound connections with bounded retry.

``Dialer.dial`` walks IDLE -> DIALING -> CONNECTED | FAILED. Failed attempts
are classified: temporary errors (refused, reset, timed out, unreachable)
are retried after a backoff sleep while attempts remain; anything else fails
immediately.
"""
import errno
import enum
import logging
import socket
import ssl
import time
from dataclasses import dataclass
from typing import Callable, Optional

from currency import transport
from currency.errors import DialError

log = logging.getLogger(__name__)

TEMPORARY_ERRNOS = frozenset(
    getattr(errno, name) for name in (
        "ECONNREFUSED", "ECONNRESET", "ECONNABORTED", "ETIMEDOUT", "EAGAIN",
        "EHOSTUNREACH", "ENETUNREACH", "ENETDOWN", "EHOSTDOWN", "EINTR",
    ) if hasattr(errno, name)
)

Connector = Callable[[str, str, Optional[float], Optional[float]], socket.socket]


class DialState(enum.Enum):
    IDLE = "idle"
    DIALING = "dialing"
    CONNECTED = "connected"
    FAILED = "failed"


@dataclass
class RetryState:
    max_attempts: int
    delay: float
    attempts: int = 0
    state: DialState = DialState.IDLE


def is_temporary(err: BaseException) -> bool:
    """Whether a failed connection attempt is worth retrying."""
    if isinstance(err, ssl.SSLError):
        return False
    if isinstance(err, socket.gaierror):
        return err.errno == getattr(socket, "EAI_AGAIN", None)
    if isinstance(err, (ConnectionRefusedError, ConnectionResetError,
                        ConnectionAbortedError, TimeoutError, socket.timeout,
                        BlockingIOError, InterruptedError)):
        return True
    if isinstance(err, OSError):
        return err.errno in TEMPORARY_ERRNOS
    return False


class Dialer:
    def __init__(self, timeout: Optional[float] = 300.0, keepalive: Optional[float] = 300.0,
                 max_attempts: int = 3, backoff: float = 1.0, backoff_factor: float = 1.0,
                 max_backoff: float = 30.0,
                 tls_context: Optional[ssl.SSLContext] = None,
                 server_hostname: Optional[str] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 connector: Optional[Connector] = None):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.timeout = timeout
        self.keepalive = keepalive
        self.max_attempts = max_attempts
        self.backoff = backoff
        self.backoff_factor = backoff_factor
        self.max_backoff = max_backoff
        self.tls_context = tls_context
        self.server_hostname = server_hostname
        self.sleep = sleep
        self.connector = connector or transport.connect
        self.last_state: Optional[RetryState] = None

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed ``attempt`` (1-based), capped at ``max_backoff``."""
        return min(self.backoff * self.backoff_factor ** (attempt - 1), self.max_backoff)

    def dial(self, network: str, endpoint: str) -> socket.socket:
        """Return a connected socket or raise ``DialError``.

        Temporary failures are retried up to ``max_attempts`` connection
        attempts; ``last_state`` records how the last dial went.
        """
        transport.check_network(network)
        retry = RetryState(max_attempts=self.max_attempts, delay=self.delay_for(1))
        self.last_state = retry
        retry.state = DialState.DIALING

        while True:
            retry.attempts += 1
            log.info("creating connection socket to %s (attempt %d/%d)",
                     endpoint, retry.attempts, retry.max_attempts)
            try:
                conn = self._attempt(network, endpoint)
            except (OSError, ValueError) as err:
                temporary = is_temporary(err)
                log.warning("failed to create socket: %s", err)
                if not temporary or retry.attempts >= retry.max_attempts:
                    retry.state = DialState.FAILED
                    raise DialError(endpoint, retry.attempts, err, temporary) from err
                retry.delay = self.delay_for(retry.attempts)
                log.info("trying again in %.1fs", retry.delay)
                self.sleep(retry.delay)
                continue

            retry.state = DialState.CONNECTED
            return conn

    def _attempt(self, network: str, endpoint: str) -> socket.socket:
        """Connect once and run the TLS handshake when configured.

        The plain socket is closed if the handshake fails.
        """
        conn = self.connector(network, endpoint, self.timeout,
                              None if network == "unix" else self.keepalive)
        if self.tls_context is None:
            return conn
        hostname = self.server_hostname
        if hostname is None and network != "unix":
            hostname = transport.parse_endpoint(network, endpoint, default_host="localhost")[0]
        try:
            conn.settimeout(self.timeout)
            tls_conn = self.tls_context.wrap_socket(conn, server_hostname=hostname)
            tls_conn.settimeout(None)
        except BaseException:
            conn.close()
            raise
        return tls_conn
