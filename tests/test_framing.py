import threading
import unittest

from currency.errors import EndOfStream, FrameTooLarge, IncompleteFrame
from currency.framing import FrameReader, write_all
from helpers import ChunkedConn, make_socket_pair


class FrameReaderTest(unittest.TestCase):
    def test_reassembles_message_larger_than_chunk(self):
        message = b'{"Get":"' + b"x" * 100 + b'"}'
        reader = FrameReader(ChunkedConn([message]), chunk_size=4)
        self.assertEqual(reader.read_frame(), message)

    def test_arbitrary_fragmentation(self):
        message = b'[{"code":"USD","name":"US Dollar"},{"code":"EUR","name":"Euro"}]'
        for cut in range(1, len(message)):
            chunks = [message[:cut], message[cut:]]
            reader = FrameReader(ChunkedConn(chunks), chunk_size=3)
            self.assertEqual(reader.read_frame(), message, f"cut at {cut}")

    def test_back_to_back_frames_are_separated(self):
        conn = ChunkedConn([b'{"Get":"USD"}{"Get":"EUR"}\n{"Get":"*"}'])
        reader = FrameReader(conn, chunk_size=5)
        self.assertEqual(reader.read_frame(), b'{"Get":"USD"}')
        self.assertEqual(reader.read_frame(), b'{"Get":"EUR"}')
        self.assertEqual(reader.read_frame(), b'{"Get":"*"}')
        with self.assertRaises(EndOfStream):
            reader.read_frame()

    def test_trailing_bytes_stay_buffered(self):
        reader = FrameReader(ChunkedConn([b'{"Get":"USD"}{"Ge']), chunk_size=64)
        self.assertEqual(reader.read_frame(), b'{"Get":"USD"}')
        self.assertEqual(reader.pending, b'{"Ge')

    def test_brackets_inside_strings_are_ignored(self):
        message = b'{"Get":"a}b]c{d\\"}"}'
        reader = FrameReader(ChunkedConn([message + b"\n"]), chunk_size=2)
        self.assertEqual(reader.read_frame(), message)

    def test_nested_values(self):
        message = b'{"a":[1,{"b":[]}],"c":{}}'
        reader = FrameReader(ChunkedConn([message]), chunk_size=1)
        self.assertEqual(reader.read_frame(), message)

    def test_leading_whitespace_is_skipped(self):
        reader = FrameReader(ChunkedConn([b"  \r\n\t", b'{"Get":"USD"}']))
        self.assertEqual(reader.read_frame(), b'{"Get":"USD"}')

    def test_junk_line_is_its_own_frame(self):
        reader = FrameReader(ChunkedConn([b'hello there\n{"Get":"USD"}']), chunk_size=4)
        self.assertEqual(reader.read_frame(), b"hello there")
        self.assertEqual(reader.read_frame(), b'{"Get":"USD"}')

    def test_stray_closing_bracket_ends_junk(self):
        reader = FrameReader(ChunkedConn([b'oops}{"Get":"USD"}']))
        self.assertEqual(reader.read_frame(), b"oops}")
        self.assertEqual(reader.read_frame(), b'{"Get":"USD"}')

    def test_clean_end_of_stream(self):
        reader = FrameReader(ChunkedConn([b"\n\n"]))
        with self.assertRaises(EndOfStream) as ctx:
            reader.read_frame()
        self.assertNotIsInstance(ctx.exception, IncompleteFrame)

    def test_end_of_stream_inside_frame(self):
        reader = FrameReader(ChunkedConn([b'{"Get":"US']))
        with self.assertRaises(IncompleteFrame) as ctx:
            reader.read_frame()
        self.assertEqual(ctx.exception.partial, b'{"Get":"US')

    def test_frame_too_large(self):
        reader = FrameReader(ChunkedConn([b'{"Get":"' + b"x" * 200]), chunk_size=16, max_frame_size=64)
        with self.assertRaises(FrameTooLarge):
            reader.read_frame()

    def test_unterminated_string_ends_at_newline(self):
        conn = ChunkedConn([b'{"Get":"USD}\n{"Get":"EUR"}\n'])
        reader = FrameReader(conn, chunk_size=4)
        self.assertEqual(reader.read_frame(), b'{"Get":"USD}')
        self.assertEqual(reader.read_frame(), b'{"Get":"EUR"}')

    def test_newline_in_nested_string_ends_frame(self):
        reader = FrameReader(ChunkedConn([b'[{"a":"b\n{"Get":"*"}']))
        self.assertEqual(reader.read_frame(), b'[{"a":"b')
        self.assertEqual(reader.read_frame(), b'{"Get":"*"}')

    def test_no_size_limit(self):
        message = b'["' + b"x" * 200 + b'"]'
        reader = FrameReader(ChunkedConn([message]), chunk_size=16, max_frame_size=None)
        self.assertEqual(reader.read_frame(), message)

    def test_reads_in_bounded_chunks(self):
        conn = ChunkedConn([b'{"Get":"USD"}'])
        FrameReader(conn, chunk_size=4).read_frame()
        self.assertTrue(all(n == 4 for n in conn.sizes))

    def test_invalid_chunk_size(self):
        with self.assertRaises(ValueError):
            FrameReader(ChunkedConn([]), chunk_size=0)

    def test_over_socket(self):
        s1, s2 = make_socket_pair()
        try:
            reader = FrameReader(s2, chunk_size=4)
            s1.sendall(b'{"Get":"United States"}{"Get":"*"}')
            self.assertEqual(reader.read_frame(), b'{"Get":"United States"}')
            self.assertEqual(reader.read_frame(), b'{"Get":"*"}')
            s1.close()
            with self.assertRaises(EndOfStream):
                reader.read_frame()
        finally:
            s1.close()
            s2.close()


class PartialSender:
    def __init__(self, limit):
        self.limit = limit
        self.data = bytearray()
        self.calls = 0

    def send(self, view):
        self.calls += 1
        chunk = bytes(view[:self.limit])
        self.data += chunk
        return len(chunk)


class WriteAllTest(unittest.TestCase):
    def test_retries_partial_sends(self):
        conn = PartialSender(3)
        write_all(conn, b'[{"code":"USD"}]\n')
        self.assertEqual(bytes(conn.data), b'[{"code":"USD"}]\n')
        self.assertEqual(conn.calls, 6)

    def test_zero_byte_send_is_an_error(self):
        with self.assertRaises(ConnectionError):
            write_all(PartialSender(0), b"{}")

    def test_large_payload_over_socket(self):
        s1, s2 = make_socket_pair()
        payload = b"[" + b'{"code":"XXX"},' * 50000 + b"{}]"
        received = bytearray()

        def drain():
            while True:
                chunk = s2.recv(65536)
                if not chunk:
                    break
                received.extend(chunk)

        t = threading.Thread(target=drain, daemon=True)
        t.start()
        try:
            write_all(s1, payload)
            s1.close()
            t.join(5)
            self.assertEqual(bytes(received), payload)
        finally:
            s1.close()
            s2.close()


if __name__ == "__main__":
    unittest.main()
