"""Timestamp helpers for recognizer output in ``hh:mm:ss.mmm`` form."""

import re

# "[00:00:06.640 --> 00:00:10.660]  text"
TIMESTAMP_LINE_PATTERN = re.compile(
    r'\[(\d+:\d+:\d+\.\d+)\s+-->\s+(\d+:\d+:\d+\.\d+)\]\s*(.*)')

# Bracketed timestamp pair anywhere in a line
TIMESTAMP_TOKEN_PATTERN = re.compile(
    r'\[\d+:\d+:\d+\.\d+\s+-->\s+\d+:\d+:\d+\.\d+\]\s*')

_TIMESTAMP_PATTERN = re.compile(r'^(\d+):(\d{1,2}):(\d{1,2})\.(\d{1,3})$')

# Block header printed by the streaming recognizer, e.g.
# "### Transcription 3 START | t0 = 90000 ms | t1 = 120000 ms"
_STREAM_OFFSET_PATTERN = re.compile(r't0 = (\d+) ms')


def timestamp_to_ms(timestamp: str) -> int:
    """Convert ``hh:mm:ss.mmm`` to milliseconds.

    The fractional part is read as a whole number of milliseconds, the way
    the recognizer prints it. Raises ValueError for anything else.
    """
    m = _TIMESTAMP_PATTERN.match(timestamp.strip())
    if not m:
        raise ValueError(f"Malformed timestamp: {timestamp!r}")
    hours, minutes, seconds, millis = (int(g) for g in m.groups())
    if minutes >= 60 or seconds >= 60:
        raise ValueError(f"Malformed timestamp: {timestamp!r}")
    return hours * 3600000 + minutes * 60000 + seconds * 1000 + millis


def ms_to_timestamp(ms: int) -> str:
    """Format milliseconds as zero-padded ``HH:MM:SS.mmm``."""
    if ms < 0:
        raise ValueError(f"Negative offset: {ms}")
    hours, rest = divmod(int(ms), 3600000)
    minutes, rest = divmod(rest, 60000)
    seconds, millis = divmod(rest, 1000)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}.{millis:03d}"


def format_timestamp_line(start_ms: int, end_ms: int, text: str) -> str:
    """Render one recognizer line: ``[start --> end] text``."""
    return f"[{ms_to_timestamp(start_ms)} --> {ms_to_timestamp(end_ms)}] {text}"


def rebase_stream_log(log: str) -> str:
    """Turn a raw streaming-recognizer log into absolute timestamp lines.

    The recognizer restarts its clock for every block it emits and announces
    the block start with a ``t0 = N ms`` header. Each timestamp line is
    shifted by the most recent header offset. Lines before the first header,
    non-timestamp lines and lines with unparseable timestamps are dropped.
    """
    offset = None
    lines = []
    for line in log.split('\n'):
        header = _STREAM_OFFSET_PATTERN.search(line)
        if header:
            offset = int(header.group(1))
            continue
        if offset is None:
            continue
        m = TIMESTAMP_LINE_PATTERN.search(line)
        if not m:
            continue
        try:
            start = timestamp_to_ms(m.group(1))
            end = timestamp_to_ms(m.group(2))
        except ValueError:
            continue
        lines.append(format_timestamp_line(offset + start, offset + end, m.group(3).strip()))
    return '\n'.join(lines)
