import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Apache writes e.g. "10/Oct/2023:13:55:36 +0200"
LOG_TIME_FORMAT = "%d/%b/%Y:%H:%M:%S %z"
ISO_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

DROPPED_FIELDS = ("date", "time", "timezone")
NUMERIC_FIELDS = ("bytes", "status")

NUMBER_RE = re.compile(
    r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?\s*$"
)
INTEGER_RE = re.compile(r"^\s*[+-]?\d+\s*$")
# strptime %z also takes "Z" and "+02:00", Apache only writes +hhmm
OFFSET_RE = re.compile(r"\s[+-]\d{4}$")


class TimestampParseError(ValueError):
    pass


def looks_like_number(value: Any) -> bool:
    """
    True for ints/floats and for text holding a plain integer or decimal
    literal (optional sign and exponent). "-", "", "nan" and "1_000" are not numbers.
    """
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    if not isinstance(value, str):
        return False
    return NUMBER_RE.match(value) is not None


def to_number(value: Any):
    if isinstance(value, (int, float)):
        return value
    if INTEGER_RE.match(value):
        return int(value)
    return float(value)


def normalize_timestamp(raw_timestamp: Optional[str]) -> str:
    """
    Convert an Apache log timestamp to UTC ISO 8601 with Zulu time and second precision.
    """
    if not raw_timestamp or not isinstance(raw_timestamp, str):
        raise TimestampParseError(f"missing datetime field (got {raw_timestamp!r})")
    if not OFFSET_RE.search(raw_timestamp.strip()):
        raise TimestampParseError(f"invalid datetime {raw_timestamp!r}: UTC offset must be +hhmm or -hhmm")
    try:
        dt = datetime.strptime(raw_timestamp.strip(), LOG_TIME_FORMAT)
    except ValueError as exc:
        raise TimestampParseError(f"invalid datetime {raw_timestamp!r}: {exc}") from exc
    return dt.astimezone(timezone.utc).strftime(ISO_FORMAT)


def transform(record: Dict[str, Any], vhost: str, host: Optional[str] = None) -> Dict[str, Any]:
    """
    Turn a parsed log line into the document that gets indexed.

    The input mapping is left untouched. Fields other than the ones below pass through:
    - date, time, timezone are dropped (datetime carries all of them)
    - bytes and status become numbers when they look like one ("-" stays "-")
    - @timestamp is the UTC form of datetime
    - vhost is always set, host only when one was configured
    """
    if not vhost:
        raise ValueError("vhost must be a non-empty string")

    doc = {k: v for k, v in record.items() if k not in DROPPED_FIELDS}

    for key in NUMERIC_FIELDS:
        if key in doc and looks_like_number(doc[key]):
            doc[key] = to_number(doc[key])

    doc["@timestamp"] = normalize_timestamp(record.get("datetime"))
    doc["vhost"] = vhost
    if host is not None:
        doc["host"] = host
    return doc
