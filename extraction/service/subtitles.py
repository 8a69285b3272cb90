"""Caption format conversion. Everything is stored as SRT."""

import math
import re

TIMESTAMP_LINE = re.compile(
    r'(\d{1,2}:)?\d{2}:\d{2}[.,]\d{3}\s*-->\s*(\d{1,2}:)?\d{2}:\d{2}[.,]\d{3}'
)
# Caption offsets are capped at this many seconds
MAX_OFFSET = 10_000_000


def format_timestamp(seconds):
    """Format seconds as an SRT timestamp (HH:MM:SS,mmm)"""
    millis = int(round(max(float(seconds), 0) * 1000))
    hours, millis = divmod(millis, 3_600_000)
    minutes, millis = divmod(millis, 60_000)
    secs, millis = divmod(millis, 1000)
    return f'{hours:02d}:{minutes:02d}:{secs:02d},{millis:03d}'


def _seconds(value, scale=1):
    """Finite non-negative offset in seconds, 0 when unusable"""
    try:
        seconds = float(value or 0) / scale
    except (TypeError, ValueError, OverflowError):
        return 0.0
    if not math.isfinite(seconds) or seconds <= 0:
        return 0.0
    return min(seconds, MAX_OFFSET)


def segments_to_srt(segments):
    """
    Convert transcript segments to SRT.

    Segments are dicts with text plus either start/end or start/duration
    (offset/duration in milliseconds is also accepted).
    """
    blocks = []
    for segment in segments:
        if not isinstance(segment, dict):
            continue
        text = str(segment.get('text') or segment.get('snippet') or '').strip()
        if not text:
            continue

        if 'offset' in segment:
            start = _seconds(segment.get('offset'), scale=1000)
            end = start + _seconds(segment.get('duration'), scale=1000)
        else:
            start = _seconds(segment.get('start'))
            if segment.get('end') is not None:
                end = _seconds(segment['end'])
            else:
                end = start + _seconds(segment.get('duration') or segment.get('dur'))

        blocks.append(
            f'{len(blocks) + 1}\n{format_timestamp(start)} --> {format_timestamp(end)}\n{text}'
        )
    return '\n\n'.join(blocks) + ('\n' if blocks else '')


def vtt_to_srt(vtt_text):
    """Convert WebVTT to SRT, dropping headers, cue settings and inline tags"""
    blocks = []
    current_time = None
    current_lines = []

    def flush():
        if current_time and current_lines:
            blocks.append(
                f'{len(blocks) + 1}\n{current_time}\n' + '\n'.join(current_lines)
            )

    for raw_line in vtt_text.splitlines():
        line = raw_line.strip()
        if '-->' in line:
            flush()
            current_lines = []
            start, _, rest = line.partition('-->')
            end = rest.strip().split(' ')[0]
            current_time = f'{_srt_time(start.strip())} --> {_srt_time(end)}'
            continue
        if not line:
            flush()
            current_time = None
            current_lines = []
            continue
        if current_time is None:
            # Header, NOTE block, STYLE block or cue identifier
            continue
        clean = re.sub(r'<[^>]+>', '', line).strip()
        # Auto-generated tracks repeat the previous line
        if clean and (not current_lines or current_lines[-1] != clean):
            current_lines.append(clean)
    flush()

    return '\n\n'.join(blocks) + ('\n' if blocks else '')


def _srt_time(vtt_time):
    if vtt_time.count(':') == 1:
        vtt_time = f'00:{vtt_time}'
    return vtt_time.replace('.', ',')


def to_srt(data):
    """
    Convert whatever a provider returned as captions into SRT.

    Returns None when nothing usable is found.
    """
    if not data:
        return None
    if isinstance(data, list):
        srt = segments_to_srt(data)
        return srt or None
    if isinstance(data, str):
        text = data.strip()
        if not text:
            return None
        if text.startswith('WEBVTT'):
            return vtt_to_srt(text) or None
        if TIMESTAMP_LINE.search(text):
            return text.replace('\r\n', '\n') + '\n'
        # Plain transcript without timing
        return f'1\n{format_timestamp(0)} --> {format_timestamp(0)}\n{text}\n'
    return None


def srt_to_plain_text(srt):
    """Strip indices and timestamps from SRT, keeping caption text"""
    lines = []
    for line in srt.splitlines():
        stripped = line.strip()
        if not stripped or stripped.isdigit() or TIMESTAMP_LINE.search(stripped):
            continue
        lines.append(stripped)
    return '\n'.join(lines)


def caption_stats(srt):
    """Character and caption-entry counts of an SRT payload"""
    if not srt:
        return {'chars': 0, 'entries': 0}
    text = srt_to_plain_text(srt)
    entries = sum(1 for line in srt.splitlines() if TIMESTAMP_LINE.search(line))
    return {'chars': len(text), 'entries': entries}
