"""Currency lookup service over TCP, unix domain sockets or TLS.

Clients send JSON requests such as {"Get":"USD"} and receive a JSON array of
matching currencies, or {"error": "..."} when the request is malformed.

Usage: currency-server [options]
  -e host endpoint or socket path, default ":4040"
  -n network protocol [tcp, tcp4, tcp6, unix], default "tcp"
  --cert/--key enable TLS with the given certificate and private key

Netcat can be used for rudimentary testing:
  printf '{"Get":"USD"}' | nc localhost 4040
"""
import argparse
import logging
import sys

from currency import store, transport
from currency.config import Config
from currency.errors import CurrencyError
from currency.log import configure_logging
from currency.server import CurrencyServer

log = logging.getLogger("currency_server")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Global currency lookup service")
    parser.add_argument("-e", "--endpoint", help="service endpoint [ip addr or socket path]")
    parser.add_argument("-n", "--network", help="network protocol [tcp,tcp4,tcp6,unix]")
    parser.add_argument("--cert", help="public certificate (PEM), enables TLS with --key")
    parser.add_argument("--key", help="private key (PEM)")
    parser.add_argument("--data", help="currency CSV file (default: bundled dataset)")
    parser.add_argument("--chunk-size", type=int, help="read chunk size in bytes")
    parser.add_argument("--idle-timeout", type=float, help="close connections idle for this many seconds")
    parser.add_argument("--config", help="TOML configuration file")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING, ERROR")
    return parser


def make_server(args, cfg: Config) -> CurrencyServer:
    srv = cfg.server
    network = args.network or srv.network
    transport.check_network(network)

    cert = args.cert or srv.cert
    key = args.key or srv.key
    tls_context = None
    if cert or key:
        if not (cert and key):
            raise CurrencyError("TLS needs both --cert and --key")
        tls_context = transport.server_tls_context(cert, key)

    dataset = store.load(args.data or srv.data or store.DEFAULT_DATASET)
    return CurrencyServer(
        dataset,
        network=network,
        endpoint=args.endpoint or srv.endpoint,
        tls_context=tls_context,
        chunk_size=args.chunk_size or srv.chunk_size,
        max_frame_size=srv.max_frame_size,
        idle_timeout=args.idle_timeout if args.idle_timeout is not None else srv.idle_timeout,
        backlog=srv.backlog,
    )


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    try:
        cfg = Config.load(args.config) if args.config else Config()
        configure_logging(args.log_level or cfg.logging.level, cfg.logging.format)
        server = make_server(args, cfg)
        server.bind()
    except (CurrencyError, ValueError, OSError) as err:
        print(f"currency-server: {err}", file=sys.stderr)
        return 1

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        log.info("interrupted")
    finally:
        server.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
