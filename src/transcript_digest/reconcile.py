"""
Reconcile overlapping and repeated recognizer segments into one timeline.

The streaming recognizer re-emits the same speech several times while its
decoding window slides: a later segment may cover an earlier one, extend
it, or repeat its tail, and windows can arrive out of chronological order.
The reconciler reorders segments by start time and makes a single scan
that decides which ones to keep.
"""

import re
from dataclasses import dataclass, replace
from typing import Optional

from transcript_digest.shared import (
    tprint as print,
    DigestConfig, DigestData,
    TRANSCRIPT_REBASED_TXT, TRANSCRIPT_CLEAN_TXT, TRANSCRIPT_CLEAN_TIMED_TXT,
    _should_skip,
)
from transcript_digest.timestamps import (
    TIMESTAMP_LINE_PATTERN, TIMESTAMP_TOKEN_PATTERN,
    format_timestamp_line, rebase_stream_log, timestamp_to_ms,
)

CONTAINMENT_TOLERANCE_MS = 100

_NON_WORD_PATTERN = re.compile(r'[^\w\s]')


@dataclass(frozen=True, eq=False)
class TranscriptSegment:
    """One timestamped utterance from the recognizer.

    Identity is the position in the raw input (original_index), never the
    text: two segments with identical words are still distinct segments.
    """
    text: str
    start_ms: int
    end_ms: int
    original_index: int
    sort_index: int = 0

    def __eq__(self, other):
        if not isinstance(other, TranscriptSegment):
            return NotImplemented
        return self.original_index == other.original_index

    def __hash__(self):
        return hash(self.original_index)

    def __str__(self):
        return format_timestamp_line(self.start_ms, self.end_ms, self.text)


def normalize_text(text: str) -> str:
    """Drop everything except word characters and whitespace, then lowercase."""
    return _NON_WORD_PATTERN.sub('', text).lower()


def parse_segments(transcript: str) -> list[TranscriptSegment]:
    """Parse ``[hh:mm:ss.mmm --> hh:mm:ss.mmm] text`` lines into segments.

    Lines that do not match, or whose timestamps are malformed or reversed,
    are skipped silently. original_index counts accepted lines only.
    """
    segments = []
    for line in transcript.split('\n'):
        m = TIMESTAMP_LINE_PATTERN.search(line)
        if not m:
            continue
        try:
            start_ms = timestamp_to_ms(m.group(1))
            end_ms = timestamp_to_ms(m.group(2))
        except ValueError:
            continue
        if start_ms > end_ms:
            continue
        index = len(segments)
        segments.append(TranscriptSegment(
            text=m.group(3).strip(), start_ms=start_ms, end_ms=end_ms,
            original_index=index, sort_index=index))
    return segments


def sort_segments(segments: list[TranscriptSegment]) -> list[TranscriptSegment]:
    """Stable-sort segments by start time and renumber sort_index."""
    ordered = sorted(segments, key=lambda seg: seg.start_ms)
    return [replace(seg, sort_index=i) for i, seg in enumerate(ordered)]


def temporally_contains(other: TranscriptSegment, cur: TranscriptSegment,
                        tolerance_ms: int = CONTAINMENT_TOLERANCE_MS) -> bool:
    """True if other's time window covers cur's, give or take tolerance_ms."""
    return (other.start_ms - tolerance_ms <= cur.start_ms
            and other.end_ms + tolerance_ms >= cur.end_ms)


def _covered_by_another(cur: TranscriptSegment, ordered: list,
                        keep: dict, tolerance_ms: int) -> bool:
    """True if a not-yet-rejected segment with at least as much text spans cur."""
    return any(
        keep[other.original_index] is not False
        and other.original_index != cur.original_index
        and len(other.text) >= len(cur.text)
        and temporally_contains(other, cur, tolerance_ms)
        for other in ordered
    )


def reconcile_segments(segments: list[TranscriptSegment],
                       tolerance_ms: int = CONTAINMENT_TOLERANCE_MS) -> list[TranscriptSegment]:
    """Deduplicate segments and return the survivors in start-time order.

    Single left-to-right scan. ``keep`` maps original_index to None
    (undetermined) or False (rejected); segments are never removed from the
    working sequence, only filtered at the end. ``previous`` is the last
    segment that was not rejected when the scan passed it.

    Rules, first match wins:
      1. cur lies inside the window of another live segment whose text is
         at least as long: reject cur.
      2. cur's text starts with previous's text: reject previous (cur
         extends it).
      3. previous's text ends with cur's text: reject cur (a truncated or
         exact repeat of the tail).
    """
    ordered = sort_segments(segments)
    if not ordered:
        return []

    keep: dict[int, Optional[bool]] = {seg.original_index: None for seg in ordered}
    previous = ordered[0]

    for cur in ordered:
        if _covered_by_another(cur, ordered, keep, tolerance_ms):
            keep[cur.original_index] = False
        elif cur != previous and keep[previous.original_index] is not False:
            cur_norm = normalize_text(cur.text)
            prev_norm = normalize_text(previous.text)
            if cur.original_index > 0 and cur_norm.startswith(prev_norm):
                keep[previous.original_index] = False
            elif prev_norm.endswith(cur_norm):
                keep[cur.original_index] = False

        if keep[cur.original_index] is not False:
            previous = cur

    return [seg for seg in ordered if keep[seg.original_index] is not False]


def render_segments(segments: list[TranscriptSegment]) -> str:
    """Format segments back into timestamped recognizer lines."""
    return '\n'.join(str(seg) for seg in segments)


def segments_to_text(segments: list[TranscriptSegment]) -> str:
    """Join segment texts one per line, dropping any stray timestamp tokens."""
    text = '\n'.join(seg.text for seg in segments)
    return TIMESTAMP_TOKEN_PATTERN.sub('', text)


def reconcile_transcript(transcript: str,
                         tolerance_ms: int = CONTAINMENT_TOLERANCE_MS) -> str:
    """Parse, reorder and deduplicate a raw transcript into plain text."""
    return segments_to_text(reconcile_segments(parse_segments(transcript), tolerance_ms))


def clean_transcript(config: DigestConfig, data: DigestData) -> None:
    """Pipeline stage: write the reconciled transcript next to the raw one."""
    print()
    print("[clean] Reconciling transcript segments...")

    source = config.input_path
    if config.stream_log:
        rebased_path = config.output_dir / TRANSCRIPT_REBASED_TXT
        if not _should_skip(config, rebased_path, "rebase stream log", source):
            rebased = rebase_stream_log(source.read_text())
            rebased_path.write_text(rebased + "\n" if rebased else "")
            print(f"  Rebased stream log: {rebased_path.name}")
        source = rebased_path
    data.raw_path = source

    clean_path = config.output_dir / TRANSCRIPT_CLEAN_TXT
    timed_path = config.output_dir / TRANSCRIPT_CLEAN_TIMED_TXT

    if _should_skip(config, clean_path, "reconcile transcript", source):
        if clean_path.exists():
            data.clean_path = clean_path
        if timed_path.exists():
            data.clean_timed_path = timed_path
        return

    segments = parse_segments(source.read_text())
    kept = reconcile_segments(segments, config.containment_tolerance_ms)
    print(f"  Segments: {len(segments)} parsed, {len(kept)} kept, "
          f"{len(segments) - len(kept)} dropped")
    if config.verbose:
        kept_ids = {seg.original_index for seg in kept}
        for seg in segments:
            if seg.original_index not in kept_ids:
                print(f"    dropped: {seg}")

    text = segments_to_text(kept)
    clean_path.write_text(text + "\n" if text else "")
    timed = render_segments(kept)
    timed_path.write_text(timed + "\n" if timed else "")

    data.clean_path = clean_path
    data.clean_timed_path = timed_path
    data.segment_counts = {"parsed": len(segments), "kept": len(kept)}
    print(f"  Clean transcript saved: {clean_path.name}")
