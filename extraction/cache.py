"""
Result cache for downloadable media references.

Keyed by a fingerprint of the canonical video URL, so share links, Shorts
links and tracking parameters for the same video hit the same entry.
"""

import hashlib
from datetime import timedelta
from urllib.parse import urlparse

from django.utils import timezone

from extraction.models import VideoCache
from extraction.service.config import get_cache_ttl_hours
from extraction.service.providers import detect_platform, tiktok_video_id, youtube_video_id


def canonical_url(url):
    """Reduce a URL to the form used for fingerprinting"""
    platform = detect_platform(url)
    if platform == 'youtube':
        video_id = youtube_video_id(url)
        if video_id:
            return f'youtube:{video_id}'
    elif platform == 'tiktok':
        video_id = tiktok_video_id(url)
        if video_id:
            return f'tiktok:{video_id}'

    parsed = urlparse(url.strip())
    host = (parsed.hostname or '').lower()
    if host.startswith('www.'):
        host = host[4:]
    return f'{host}{parsed.path.rstrip("/")}'


def fingerprint(url):
    return hashlib.sha256(canonical_url(url).encode('utf-8')).hexdigest()


def lookup(key, now=None):
    """Return the live cache entry for a fingerprint, or None"""
    now = now or timezone.now()
    return VideoCache.objects.filter(fingerprint=key, expires_at__gt=now).first()


def store(url, platform, download_url, ttl_hours=None, logger=None):
    """
    Record a download URL for url. Never raises.

    Returns:
        VideoCache | None
    """

    def log(message):
        if logger:
            logger(message)

    if ttl_hours is None:
        ttl_hours = get_cache_ttl_hours()

    try:
        entry, _ = VideoCache.objects.update_or_create(
            fingerprint=fingerprint(url),
            defaults={
                'platform': platform,
                'original_url': url,
                'download_url': download_url,
                'expires_at': timezone.now() + timedelta(hours=ttl_hours),
            },
        )
    except Exception as e:
        log(f'Cache store failed: {type(e).__name__}: {e}')
        return None

    log(f'Cached download URL for {ttl_hours}h')
    return entry


def purge_expired(now=None):
    """Delete expired entries; returns the number removed"""
    now = now or timezone.now()
    deleted, _ = VideoCache.objects.filter(expires_at__lte=now).delete()
    return deleted
