"""
Normalization of provider payloads.

Provider responses disagree on field names and types. Everything here turns
them into NormalizedMedia without raising: bad counters become 0, bad
durations and timestamps become None.
"""

import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone as dt_timezone
from typing import Optional

MAX_URL_LENGTH = 2000
# Column ranges of the counters (BigIntegerField) and duration (IntegerField)
MAX_COUNT = 2**63 - 1
MAX_DURATION = 2**31 - 1


@dataclass
class NormalizedMedia:
    """Provider-independent media description"""

    platform: str
    title: Optional[str] = None
    author: Optional[str] = None
    likes: int = 0
    views: int = 0
    shares: int = 0
    duration_seconds: Optional[int] = None
    thumbnail_url: Optional[str] = None
    published_at: Optional[datetime] = None
    source_lang: Optional[str] = None
    captions: Optional[str] = None
    download_url: Optional[str] = None


def to_count(value) -> int:
    """Coerce a counter to a non-negative int, 0 when unusable"""
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, str):
        cleaned = value.strip().replace(',', '').lower()
        multiplier = 1
        if cleaned.endswith('k'):
            multiplier, cleaned = 1_000, cleaned[:-1]
        elif cleaned.endswith('m'):
            multiplier, cleaned = 1_000_000, cleaned[:-1]
        elif cleaned.endswith('b'):
            multiplier, cleaned = 1_000_000_000, cleaned[:-1]
        try:
            value = float(cleaned) * multiplier
        except ValueError:
            return 0
    if isinstance(value, float):
        if not math.isfinite(value):
            return 0
        value = int(value)
    if isinstance(value, int):
        return min(max(value, 0), MAX_COUNT)
    return 0


def to_duration(value) -> Optional[int]:
    """
    Coerce a duration to whole seconds.

    Accepts numbers, numeric strings, "mm:ss", "hh:mm:ss" and ISO-8601
    durations such as "PT1M30S". Returns None when unusable.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _whole_seconds(value)
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    if ':' in text:
        parts = text.split(':')
        if len(parts) not in (2, 3) or not all(p.isdigit() for p in parts):
            return None
        seconds = 0
        for part in parts:
            seconds = seconds * 60 + int(part)
        return _whole_seconds(seconds)

    iso = re.fullmatch(r'P(?:(\d+)D)?T?(?:(\d+)H)?(?:(\d+)M)?(?:(\d+(?:\.\d+)?)S)?', text.upper())
    if iso and text.upper() not in ('P', 'PT'):
        days, hours, minutes, secs = iso.groups()
        try:
            return _whole_seconds(
                int(days or 0) * 86400
                + int(hours or 0) * 3600
                + int(minutes or 0) * 60
                + float(secs or 0)
            )
        except OverflowError:
            return None

    try:
        return _whole_seconds(float(text))
    except ValueError:
        return None


def _whole_seconds(seconds) -> Optional[int]:
    """None for NaN, infinite, negative or out-of-range durations"""
    if isinstance(seconds, float) and not math.isfinite(seconds):
        return None
    if seconds < 0 or seconds > MAX_DURATION:
        return None
    return int(seconds)


def to_timestamp(value) -> Optional[datetime]:
    """
    Coerce a publish time to an aware datetime.

    Accepts epoch seconds (or milliseconds), ISO-8601 strings and yt-dlp's
    YYYYMMDD upload dates. Returns None when unusable.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=dt_timezone.utc)

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if re.fullmatch(r'\d{8}', text):
            try:
                return datetime.strptime(text, '%Y%m%d').replace(tzinfo=dt_timezone.utc)
            except ValueError:
                return None
        if re.fullmatch(r'\d+(\.\d+)?', text):
            value = float(text)
        else:
            try:
                parsed = datetime.fromisoformat(text.replace('Z', '+00:00'))
            except ValueError:
                return None
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=dt_timezone.utc)

    if isinstance(value, (int, float)):
        if value != value or value <= 0:
            return None
        # Millisecond epochs
        if value > 1e11:
            value = value / 1000
        try:
            return datetime.fromtimestamp(value, tz=dt_timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    return None


def to_text(value, max_length=None) -> Optional[str]:
    """Trim text; blank or non-text values become None"""
    if value is None:
        return None
    if not isinstance(value, str):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)
        else:
            return None
    text = value.strip()
    if not text:
        return None
    if max_length:
        text = text[:max_length]
    return text


def to_url(value) -> Optional[str]:
    """Trim an http(s) URL and cap it at MAX_URL_LENGTH"""
    text = to_text(value)
    if not text or not re.match(r'^https?://', text, re.IGNORECASE):
        return None
    return text[:MAX_URL_LENGTH]


def dig(data, *paths):
    """
    Return the first non-empty value found at any dotted path.

    >>> dig({'author': {'nickname': 'x'}}, 'author.name', 'author.nickname')
    'x'
    """
    for path in paths:
        current = data
        for key in path.split('.'):
            if isinstance(current, dict):
                current = current.get(key)
            elif isinstance(current, list) and key.isdigit() and int(key) < len(current):
                current = current[int(key)]
            else:
                current = None
                break
        if current not in (None, '', [], {}):
            return current
    return None


def normalize_metadata(raw, platform, captions=None, download_url=None) -> NormalizedMedia:
    """Build NormalizedMedia from a raw provider payload"""
    raw = raw if isinstance(raw, dict) else {}

    if platform == 'tiktok':
        title = dig(raw, 'desc', 'title', 'description')
        author = dig(raw, 'author.nickname', 'author.uniqueId', 'author.unique_id', 'author')
        likes = dig(raw, 'statistics.digg_count', 'digg_count', 'likes')
        views = dig(raw, 'statistics.play_count', 'play_count', 'views')
        shares = dig(raw, 'statistics.share_count', 'share_count', 'shares')
        duration = dig(raw, 'duration', 'video.duration')
        published = dig(raw, 'create_time', 'createTime', 'timestamp')
        thumbnail = dig(raw, 'cover', 'thumbnail', 'video.cover')
    else:
        title = dig(raw, 'title', 'snippet.title', 'videoDetails.title')
        author = dig(raw, 'author', 'channelTitle', 'snippet.channelTitle', 'uploader', 'channel')
        likes = dig(raw, 'statistics.likeCount', 'likeCount', 'like_count', 'likes')
        views = dig(raw, 'statistics.viewCount', 'viewCount', 'view_count', 'views')
        shares = dig(raw, 'statistics.shareCount', 'shareCount', 'share_count', 'shares')
        duration = dig(raw, 'duration', 'contentDetails.duration', 'lengthSeconds')
        published = dig(raw, 'publishedAt', 'upload_date', 'timestamp', 'snippet.publishedAt')
        thumbnail = dig(
            raw,
            'thumbnail',
            'snippet.thumbnails.high.url',
            'videoDetails.thumbnail.thumbnails.0.url',
        )

    if isinstance(author, dict):
        author = dig(author, 'nickname', 'name', 'uniqueId')

    return NormalizedMedia(
        platform=platform,
        title=to_text(title, max_length=500),
        author=to_text(author, max_length=200),
        likes=to_count(likes),
        views=to_count(views),
        shares=to_count(shares),
        duration_seconds=to_duration(duration),
        thumbnail_url=to_url(thumbnail),
        published_at=to_timestamp(published),
        source_lang=to_text(dig(raw, 'language', 'lang'), max_length=16),
        captions=to_text(captions),
        download_url=to_url(download_url),
    )
