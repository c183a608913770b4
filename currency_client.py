"""Client for the currency lookup service.

Sends JSON requests ({"Get":"USD"}) and prints the currencies returned by
the server. Connecting is retried with a backoff when the server is not
reachable yet.

Usage: currency-client [options] [selector]
  -e service endpoint or socket path, default localhost:4040
  -n network protocol name [tcp, tcp4, tcp6, unix], default tcp

Without a selector an interactive prompt is started.
"""
import argparse
import logging
import sys

from currency import transport
from currency.config import Config
from currency.dialer import Dialer
from currency.errors import CurrencyError, DialError, EndOfStream, ProtocolError
from currency.log import configure_logging
from currency.session import ClientSession, format_result

log = logging.getLogger("currency_client")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Global currency lookup client")
    parser.add_argument("selector", nargs="?", help="currency code, name, country or *")
    parser.add_argument("-e", "--endpoint", help="service endpoint or socket path")
    parser.add_argument("-n", "--network", help="network protocol [tcp,tcp4,tcp6,unix]")
    parser.add_argument("--tls", action="store_true", default=None, help="connect over TLS")
    parser.add_argument("--cafile", help="CA certificate used to verify the server")
    parser.add_argument("--insecure", action="store_true", default=None,
                        help="skip certificate verification (self-signed servers)")
    parser.add_argument("--retries", type=int, help="maximum connection attempts")
    parser.add_argument("--backoff", type=float, help="seconds to wait between attempts")
    parser.add_argument("--timeout", type=float, help="connect timeout in seconds")
    parser.add_argument("--config", help="TOML configuration file")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING, ERROR")
    return parser


def _pick(value, default):
    return default if value is None else value


def make_dialer(args, cfg: Config) -> Dialer:
    cli = cfg.client
    tls_context = None
    if _pick(args.tls, cli.tls):
        tls_context = transport.client_tls_context(
            cafile=args.cafile or cli.cafile,
            insecure=_pick(args.insecure, cli.insecure),
        )
    return Dialer(
        timeout=_pick(args.timeout, cli.timeout),
        keepalive=cli.keepalive,
        max_attempts=_pick(args.retries, cli.max_attempts),
        backoff=_pick(args.backoff, cli.backoff),
        backoff_factor=cli.backoff_factor,
        max_backoff=cli.max_backoff,
        tls_context=tls_context,
    )


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    try:
        cfg = Config.load(args.config) if args.config else Config()
        configure_logging(args.log_level or cfg.logging.level, cfg.logging.format)
        network = args.network or cfg.client.network
        endpoint = args.endpoint or cfg.client.endpoint
        dialer = make_dialer(args, cfg)
        conn = dialer.dial(network, endpoint)
    except DialError as err:
        print(f"unable to recover: {err}", file=sys.stderr)
        return 1
    except (CurrencyError, ValueError, OSError) as err:
        print(f"currency-client: {err}", file=sys.stderr)
        return 1

    print("connected to currency service:", endpoint)
    with ClientSession(conn, max_frame_size=cfg.client.max_frame_size) as session:
        try:
            if args.selector:
                print(format_result(session.query(args.selector)))
            else:
                session.repl()
        except (EndOfStream, ProtocolError, OSError) as err:
            log.error("session ended: %s", err)
            return 1
        except KeyboardInterrupt:
            print()
    return 0


if __name__ == "__main__":
    sys.exit(main())
