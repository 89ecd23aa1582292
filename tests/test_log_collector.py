import gzip
import os
import tempfile
import unittest

from collector.log_collector import LogParseError, LogParser, iter_lines

TESTDATA = os.path.join(os.path.dirname(__file__), "testdata")

COMBINED = '192.168.0.1 - frank [10/Oct/2023:13:55:36 +0200] "GET /index.html HTTP/1.1" 200 1024 "http://example.com/" "Mozilla/5.0 (X11)"'
COMMON = '10.0.0.7 - - [10/Oct/2023:23:59:59 -0500] "GET /favicon.ico HTTP/1.1" 404 -'


class TestLogParser(unittest.TestCase):

    def setUp(self):
        self.parser = LogParser()

    def test_combined_line(self):
        parsed = self.parser.parse(COMBINED)
        self.assertEqual(parsed["rhost"], "192.168.0.1")
        self.assertEqual(parsed["logname"], "-")
        self.assertEqual(parsed["user"], "frank")
        self.assertEqual(parsed["datetime"], "10/Oct/2023:13:55:36 +0200")
        self.assertEqual(parsed["date"], "10/Oct/2023")
        self.assertEqual(parsed["time"], "13:55:36")
        self.assertEqual(parsed["timezone"], "+0200")
        self.assertEqual(parsed["request"], "GET /index.html HTTP/1.1")
        self.assertEqual(parsed["method"], "GET")
        self.assertEqual(parsed["path"], "/index.html")
        self.assertEqual(parsed["proto"], "HTTP/1.1")
        self.assertEqual(parsed["status"], "200")
        self.assertEqual(parsed["bytes"], "1024")
        self.assertEqual(parsed["referer"], "http://example.com/")
        self.assertEqual(parsed["agent"], "Mozilla/5.0 (X11)")

    def test_common_line_has_no_referer_or_agent(self):
        parsed = self.parser.parse(COMMON)
        self.assertEqual(parsed["status"], "404")
        self.assertEqual(parsed["bytes"], "-")
        self.assertEqual(parsed["timezone"], "-0500")
        self.assertNotIn("referer", parsed)
        self.assertNotIn("agent", parsed)

    def test_escaped_quote_in_request(self):
        line = '1.2.3.4 - - [10/Oct/2023:13:55:36 +0000] "GET /a\\"b HTTP/1.0" 200 5'
        parsed = self.parser.parse(line)
        self.assertEqual(parsed["request"], 'GET /a\\"b HTTP/1.0')

    def test_dash_request_has_no_method(self):
        parsed = self.parser.parse('1.2.3.4 - - [10/Oct/2023:13:55:36 +0000] "-" 408 -')
        self.assertEqual(parsed["request"], "-")
        self.assertNotIn("method", parsed)

    def test_malformed_line(self):
        with self.assertRaises(LogParseError):
            self.parser.parse("this is not an access log line")

    def test_blank_line(self):
        with self.assertRaises(LogParseError):
            self.parser.parse("")


class TestIterLines(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()

    def test_numbers_and_strips_lines(self):
        lines = list(iter_lines(os.path.join(TESTDATA, "access.log")))
        self.assertEqual(len(lines), 3)
        self.assertEqual(lines[0][0], 1)
        self.assertEqual(lines[2][0], 3)
        self.assertFalse(lines[0][1].endswith("\n"))

    def test_crlf_stripped(self):
        path = os.path.join(self.tmpdir, "crlf.log")
        with open(path, "w", newline="") as fh:
            fh.write("one\r\ntwo")
        self.assertEqual(list(iter_lines(path)), [(1, "one"), (2, "two")])

    def test_undecodable_bytes_kept_as_escapes(self):
        path = os.path.join(self.tmpdir, "latin1.log")
        with open(path, "wb") as fh:
            fh.write(b'1.2.3.4 - - [10/Oct/2023:13:55:36 +0000] "GET /caf\xe9 HTTP/1.1" 200 5\n')
        [(lineno, line)] = list(iter_lines(path))
        self.assertIn("GET /caf\\xe9 HTTP/1.1", line)
        self.assertNotIn("\ufffd", line)

    def test_gzip_file(self):
        path = os.path.join(self.tmpdir, "access.log.gz")
        with gzip.open(path, "wt") as fh:
            fh.write(COMMON + "\n")
        self.assertEqual(list(iter_lines(path)), [(1, COMMON)])

    def test_missing_file(self):
        with self.assertRaises(OSError):
            list(iter_lines(os.path.join(self.tmpdir, "nope.log")))


if __name__ == "__main__":
    unittest.main()
