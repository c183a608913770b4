"""Socket construction for plaintext and TLS transports.

Endpoints follow the ``host:port`` convention of the command line tools:
``:4040`` listens on every interface, ``[::1]:4040`` is an IPv6 literal and,
for the ``unix`` network, the endpoint is a filesystem path.
"""
import logging
import os
import socket
import ssl
import stat
from typing import Optional, Tuple, Union

from currency.errors import AddressError, TLSConfigError, UnsupportedNetwork

log = logging.getLogger(__name__)

NETWORKS = ("tcp", "tcp4", "tcp6", "unix")

Address = Union[str, Tuple[str, int]]


def check_network(network: str) -> str:
    if network not in NETWORKS:
        raise UnsupportedNetwork(network)
    return network


def family_for(network: str) -> int:
    check_network(network)
    if network == "unix":
        return socket.AF_UNIX
    if network == "tcp6":
        return socket.AF_INET6
    return socket.AF_INET


def parse_endpoint(network: str, endpoint: str, default_host: str = "") -> Address:
    """Turn an endpoint string into an address usable by ``bind``/``connect``."""
    check_network(network)
    if network == "unix":
        if not endpoint:
            raise AddressError("unix endpoint needs a socket path")
        return endpoint

    host, sep, port = endpoint.rpartition(":")
    if not sep:
        raise AddressError(f"missing port in address {endpoint!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    try:
        port_num = int(port)
    except ValueError:
        raise AddressError(f"invalid port in address {endpoint!r}") from None
    if not 0 <= port_num <= 65535:
        raise AddressError(f"port out of range in address {endpoint!r}")

    if not host:
        host = default_host or ("::" if network == "tcp6" else "0.0.0.0")
    return host, port_num


def format_address(address: Address) -> str:
    if isinstance(address, tuple):
        host = address[0]
        if ":" in host:
            host = f"[{host}]"
        return f"{host}:{address[1]}"
    return str(address)


def _remove_stale_socket(path: str) -> None:
    try:
        mode = os.stat(path).st_mode
    except FileNotFoundError:
        return
    if stat.S_ISSOCK(mode):
        log.info("removing stale socket file %s", path)
        os.unlink(path)


def open_listener(network: str, endpoint: str, backlog: int = 16) -> socket.socket:
    """Create a bound, listening socket. Bind failures raise ``OSError``."""
    address = parse_endpoint(network, endpoint)
    sock = socket.socket(family_for(network), socket.SOCK_STREAM)
    try:
        if network == "unix":
            _remove_stale_socket(address)
        else:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind(address)
        sock.listen(backlog)
    except OSError:
        sock.close()
        raise
    return sock


def set_keepalive(sock: socket.socket, interval: float) -> None:
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
    seconds = max(1, int(interval))
    for name in ("TCP_KEEPIDLE", "TCP_KEEPINTVL"):
        option = getattr(socket, name, None)
        if option is not None:
            sock.setsockopt(socket.IPPROTO_TCP, option, seconds)


def connect(network: str, endpoint: str, timeout: Optional[float] = None,
            keepalive: Optional[float] = None) -> socket.socket:
    """Open one outbound connection. The socket is closed if connecting fails."""
    address = parse_endpoint(network, endpoint, default_host="localhost")
    if network == "unix":
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            sock.settimeout(timeout)
            sock.connect(address)
            sock.settimeout(None)
        except BaseException:
            sock.close()
            raise
        return sock

    family = socket.AF_INET6 if network == "tcp6" else socket.AF_INET
    if network == "tcp":
        family = socket.AF_UNSPEC
    host, port = address
    last_err: Optional[OSError] = None
    for af, socktype, proto, _, sockaddr in socket.getaddrinfo(host, port, family, socket.SOCK_STREAM):
        sock = socket.socket(af, socktype, proto)
        try:
            sock.settimeout(timeout)
            sock.connect(sockaddr)
            sock.settimeout(None)
            if keepalive:
                set_keepalive(sock, keepalive)
            return sock
        except OSError as err:
            sock.close()
            last_err = err
        except BaseException:
            sock.close()
            raise
    if last_err is None:
        raise OSError(f"no addresses found for {endpoint}")
    raise last_err


def server_tls_context(certfile: str, keyfile: str) -> ssl.SSLContext:
    ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    try:
        ctx.load_cert_chain(certfile, keyfile)
    except (OSError, ssl.SSLError) as err:
        raise TLSConfigError(f"cannot load certificate {certfile} / key {keyfile}: {err}") from err
    return ctx


def client_tls_context(cafile: Optional[str] = None, insecure: bool = False) -> ssl.SSLContext:
    ctx = ssl.create_default_context()
    try:
        if cafile:
            ctx.load_verify_locations(cafile)
    except (OSError, ssl.SSLError) as err:
        raise TLSConfigError(f"cannot load CA file {cafile}: {err}") from err
    if insecure:
        # self-signed test certificates
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
    return ctx
