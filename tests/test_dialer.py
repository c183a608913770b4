import errno
import socket
import unittest

from currency.dialer import DialState, Dialer, is_temporary
from currency.errors import DialError, UnsupportedNetwork


class FakeConn:
    def __init__(self):
        self.closed = False

    def close(self):
        self.closed = True


class ScriptedConnector:
    """Raises the scripted errors in order, then connects."""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = []
        self.conn = FakeConn()

    def __call__(self, network, endpoint, timeout, keepalive):
        self.calls.append((network, endpoint, timeout, keepalive))
        if self.errors:
            raise self.errors.pop(0)
        return self.conn


class AlwaysFailing:
    def __init__(self, error):
        self.error = error
        self.calls = 0

    def __call__(self, *args):
        self.calls += 1
        raise self.error


class ClassificationTest(unittest.TestCase):
    def test_temporary_errors(self):
        for err in (ConnectionRefusedError(), ConnectionResetError(), TimeoutError(),
                    socket.timeout(), OSError(errno.EHOSTUNREACH, "unreachable"),
                    OSError(errno.ENETUNREACH, "unreachable")):
            self.assertTrue(is_temporary(err), err)

    def test_permanent_errors(self):
        for err in (FileNotFoundError(errno.ENOENT, "no socket"),
                    PermissionError(errno.EACCES, "denied"),
                    socket.gaierror(socket.EAI_NONAME, "unknown host"),
                    ValueError("bad address")):
            self.assertFalse(is_temporary(err), err)

    def test_dns_try_again_is_temporary(self):
        self.assertTrue(is_temporary(socket.gaierror(socket.EAI_AGAIN, "try again")))


class DialerTest(unittest.TestCase):
    def setUp(self):
        self.sleeps = []

    def make(self, connector, **kwargs):
        kwargs.setdefault("max_attempts", 3)
        return Dialer(connector=connector, sleep=self.sleeps.append, **kwargs)

    def test_connects_first_time(self):
        connector = ScriptedConnector()
        dialer = self.make(connector, timeout=5.0, keepalive=60.0)
        conn = dialer.dial("tcp", "localhost:4040")
        self.assertIs(conn, connector.conn)
        self.assertEqual(connector.calls, [("tcp", "localhost:4040", 5.0, 60.0)])
        self.assertEqual(dialer.last_state.state, DialState.CONNECTED)
        self.assertEqual(self.sleeps, [])

    def test_retries_temporary_errors(self):
        connector = ScriptedConnector(ConnectionRefusedError(), ConnectionRefusedError())
        dialer = self.make(connector, backoff=0.5)
        self.assertIs(dialer.dial("tcp", ":4040"), connector.conn)
        self.assertEqual(len(connector.calls), 3)
        self.assertEqual(self.sleeps, [0.5, 0.5])
        self.assertEqual(dialer.last_state.attempts, 3)

    def test_exactly_n_attempts_on_temporary_failure(self):
        for n in (1, 2, 5):
            connector = AlwaysFailing(ConnectionRefusedError("refused"))
            self.sleeps.clear()
            dialer = self.make(connector, max_attempts=n)
            with self.assertRaises(DialError) as ctx:
                dialer.dial("tcp", "localhost:4040")
            self.assertEqual(connector.calls, n)
            self.assertEqual(ctx.exception.attempts, n)
            self.assertTrue(ctx.exception.temporary)
            self.assertEqual(len(self.sleeps), n - 1)
            self.assertEqual(dialer.last_state.state, DialState.FAILED)

    def test_permanent_failure_stops_immediately(self):
        connector = AlwaysFailing(socket.gaierror(socket.EAI_NONAME, "unknown host"))
        dialer = self.make(connector, max_attempts=5)
        with self.assertRaises(DialError) as ctx:
            dialer.dial("tcp", "nowhere.invalid:4040")
        self.assertEqual(connector.calls, 1)
        self.assertFalse(ctx.exception.temporary)
        self.assertIsInstance(ctx.exception.cause, socket.gaierror)
        self.assertEqual(self.sleeps, [])

    def test_exponential_backoff_is_capped(self):
        connector = AlwaysFailing(ConnectionRefusedError())
        dialer = self.make(connector, max_attempts=5, backoff=1.0, backoff_factor=2.0, max_backoff=5.0)
        with self.assertRaises(DialError):
            dialer.dial("tcp", ":4040")
        self.assertEqual(self.sleeps, [1.0, 2.0, 4.0, 5.0])

    def test_unix_dial_skips_keepalive(self):
        connector = ScriptedConnector()
        self.make(connector).dial("unix", "/tmp/currency.sock")
        self.assertIsNone(connector.calls[0][3])

    def test_unsupported_network(self):
        with self.assertRaises(UnsupportedNetwork):
            self.make(ScriptedConnector()).dial("udp", ":4040")

    def test_bad_endpoint_is_permanent(self):
        dialer = Dialer(max_attempts=3, sleep=self.sleeps.append)
        with self.assertRaises(DialError) as ctx:
            dialer.dial("tcp", "localhost")
        self.assertEqual(ctx.exception.attempts, 1)
        self.assertFalse(ctx.exception.temporary)

    def test_invalid_max_attempts(self):
        with self.assertRaises(ValueError):
            Dialer(max_attempts=0)

    def test_refused_by_real_socket(self):
        # grab a free port and close it so nothing listens there
        spare = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        spare.bind(("127.0.0.1", 0))
        port = spare.getsockname()[1]
        spare.close()

        dialer = Dialer(max_attempts=2, timeout=2.0, sleep=self.sleeps.append)
        with self.assertRaises(DialError) as ctx:
            dialer.dial("tcp4", f"127.0.0.1:{port}")
        self.assertEqual(ctx.exception.attempts, 2)
        self.assertTrue(ctx.exception.temporary)
        self.assertEqual(len(self.sleeps), 1)


if __name__ == "__main__":
    unittest.main()
