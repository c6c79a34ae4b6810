from datetime import datetime, timezone
import re

# e.g., "20s", "5m", "1h30m", "2d3h", "90m", "  2h  ", "1.5s"
DELAY_RE = re.compile(r"(?i)^\s*(?:(\d+)\s*d)?\s*(?:(\d+)\s*h)?\s*(?:(\d+)\s*m)?\s*(?:(\d+(?:\.\d+)?)\s*s)?\s*$")


def parse_delay_to_seconds(s) -> float:
    """
    Parse delay strings like '20s', '5m', '1h30m', '2d3h', '0.5s'.
    Plain numbers (int, float or numeric strings) are taken as seconds.
    Returns total seconds (float). Raises ValueError on bad or negative input.
    """
    if isinstance(s, bool):
        raise ValueError(f"Invalid delay: {s!r}")
    if isinstance(s, str):
        if not s.strip():
            raise ValueError("delay string is empty")
        try:
            s = float(s)
        except ValueError:
            pass
    if isinstance(s, (int, float)):
        if s < 0:
            raise ValueError("delay must be >= 0 seconds")
        return float(s)

    m = DELAY_RE.match(s)
    if not m or not any(m.groups()):
        raise ValueError(f"Invalid delay format: {s!r}")
    d, h, m_, s_ = m.groups()
    total = 0.0
    if d:  total += int(d) * 86400
    if h:  total += int(h) * 3600
    if m_: total += int(m_) * 60
    if s_: total += float(s_)
    return total


def now_iso() -> str:
    """UTC timestamp like '2025-11-06T09:12:34.123456Z'."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


def parse_iso(ts: str) -> datetime:
    return datetime.fromisoformat(ts.replace("Z", "+00:00"))


def seconds_between(start: str, end: str) -> float:
    """Elapsed seconds between two ``now_iso()`` timestamps."""
    return (parse_iso(end) - parse_iso(start)).total_seconds()
