import datetime
import io
import ipaddress
import os
import socket
import threading

from currency import store

SAMPLE_CSV = """code,name,country,symbol
USD,US Dollar,United States,$
EUR,Euro,European Union,€
GBP,Pound Sterling,United Kingdom,£
AUD,Australian Dollar,Australia,$
CAD,Canadian Dollar,Canada,$
"""


def sample_store():
    return store.load(io.StringIO(SAMPLE_CSV))


def make_socket_pair():
    # Try to use socketpair if available
    if hasattr(socket, "socketpair"):
        a, b = socket.socketpair()
        return a, b

    # Fallback: create a real TCP connection on localhost
    listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    listener.bind(("127.0.0.1", 0))
    listener.listen(1)
    port = listener.getsockname()[1]

    pair = {}

    def acceptor():
        s, _ = listener.accept()
        pair['server'] = s

    t = threading.Thread(target=acceptor, daemon=True)
    t.start()

    client = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    client.connect(("127.0.0.1", port))
    t.join(1)
    server = pair.get('server')
    listener.close()
    return server, client


class ChunkedConn:
    """Socket stand-in that hands out pre-recorded chunks."""

    def __init__(self, chunks):
        self.chunks = list(chunks)
        self.sizes = []

    def recv(self, n):
        self.sizes.append(n)
        if not self.chunks:
            return b""
        chunk = self.chunks.pop(0)
        if len(chunk) > n:
            self.chunks.insert(0, chunk[n:])
            chunk = chunk[:n]
        return chunk


def make_self_signed_cert(directory):
    """Write a throwaway certificate/key pair for localhost, return the paths."""
    from cryptography import x509
    from cryptography.hazmat.primitives import hashes, serialization
    from cryptography.hazmat.primitives.asymmetric import ec
    from cryptography.x509.oid import NameOID

    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "localhost")])
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(minutes=5))
        .not_valid_after(now + datetime.timedelta(days=1))
        .add_extension(
            x509.SubjectAlternativeName([
                x509.DNSName("localhost"),
                x509.IPAddress(ipaddress.ip_address("127.0.0.1")),
            ]),
            critical=False,
        )
        .sign(key, hashes.SHA256())
    )

    cert_path = os.path.join(directory, "cert.pem")
    key_path = os.path.join(directory, "key.pem")
    with open(cert_path, "wb") as f:
        f.write(cert.public_bytes(serialization.Encoding.PEM))
    with open(key_path, "wb") as f:
        f.write(key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        ))
    return cert_path, key_path
