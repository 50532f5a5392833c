from __future__ import annotations

import re


_PART_RE = re.compile(r"(?P<value>\d+(?:\.\d+)?)(?P<unit>ms|s|m|h)")

_UNIT_SECONDS = {
    "ms": 0.001,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration_to_seconds(raw: str) -> float:
    """Parse duration strings like '500ms', '10s', '5m', '1h' or '1m30s' into seconds."""
    text = raw.strip()
    if not text:
        raise ValueError("duration must match <number><unit> where unit is ms|s|m|h")

    total = 0.0
    pos = 0
    for match in _PART_RE.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group("value")) * _UNIT_SECONDS[match.group("unit")]
        pos = match.end()

    if pos != len(text):
        raise ValueError("duration must match <number><unit> where unit is ms|s|m|h")

    return total


def format_seconds(seconds: float) -> str:
    """Render seconds in the shortest k6-style form ('90s' -> '1m30s')."""
    if seconds < 1:
        return f"{round(seconds * 1000)}ms"

    whole = int(seconds)
    if whole != seconds:
        return f"{seconds:g}s"

    hours, rem = divmod(whole, 3600)
    minutes, secs = divmod(rem, 60)
    parts = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if secs or not parts:
        parts.append(f"{secs}s")
    return "".join(parts)
