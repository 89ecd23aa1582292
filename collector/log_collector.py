import gzip
import logging
import re
from typing import Dict, Iterator, Tuple

logger = logging.getLogger("accesslog2es.collector")

# Apache common / combined log format. referer and agent only exist in "combined".
COMBINED_RE = re.compile(
    r'^(?P<rhost>\S+)\s+'
    r'(?P<logname>\S+)\s+'
    r'(?P<user>\S+)\s+'
    r'\[(?P<datetime>(?P<date>[^:\]]+):(?P<time>\d{2}:\d{2}:\d{2})\s+(?P<timezone>[^\]]+))\]\s+'
    r'"(?P<request>(?:[^"\\]|\\.)*)"\s+'
    r'(?P<status>\S+)\s+'
    r'(?P<bytes>\S+)'
    r'(?:\s+"(?P<referer>(?:[^"\\]|\\.)*)"\s+"(?P<agent>(?:[^"\\]|\\.)*)")?'
    r'\s*$'
)


class LogParseError(ValueError):
    pass


class LogParser:
    """Parses one access log line into a dict of string fields."""

    def parse(self, line: str) -> Dict[str, str]:
        m = COMBINED_RE.match(line)
        if not m:
            raise LogParseError(f"line does not match the access log format: {line[:200]!r}")

        parsed = {k: v for k, v in m.groupdict().items() if v is not None}
        parts = parsed["request"].split(" ")
        if len(parts) == 3:
            parsed["method"], parsed["path"], parsed["proto"] = parts
        elif len(parts) == 2:
            parsed["method"], parsed["path"] = parts
        return parsed


def iter_lines(path: str) -> Iterator[Tuple[int, str]]:
    """Yield (line_number, line) pairs in file order, newline stripped. *.gz is decompressed."""
    opener = gzip.open if str(path).endswith(".gz") else open
    with opener(path, "rt", encoding="utf-8", errors="backslashreplace") as fh:
        logger.debug("Opened %s", path)
        for lineno, line in enumerate(fh, 1):
            yield lineno, line.rstrip("\r\n")
