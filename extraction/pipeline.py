"""
Task pipeline.

Steps for one task:
1. pending -> processing: claim the task
2. Cache lookup (media files only); on a hit the providers are skipped
3. Provider fetch with primary/backup fallback
4. Metadata write, duration check
5. Media reference: storage upload or the original URL with a short expiry
6. processing -> extracted
7. extracted -> translating -> completed when a translation or a rewrite
   was requested

Every write is conditional on the expected status. When one fails, another
execution or the watchdog owns the task and this run stops quietly.
"""

import time
from datetime import timedelta

from django.conf import settings
from django.db import DatabaseError
from django.utils import timezone

from extraction import cache
from extraction.models import MediaTask
from extraction.service.config import get_heartbeat_interval, get_providers, get_storage_platforms
from extraction.service.fallback import ProviderFallbackError, fetch_with_fallback
from extraction.service.plan_limits import PlanLimits
from extraction.service.storage import ORIGINAL_PREFIX, upload_to_storage
from extraction.service.subtitles import caption_stats
from extraction.service.textgen import (
    TextGenerationError,
    clean_translation,
    rewrite_captions,
    translate_captions,
)
from extraction.task_state import Failure, StaleTaskWrite, advance, heartbeat, mark_failed
from extraction.utils import write_log


class TaskPersistenceError(Exception):
    """Raised when provider data could not be written to the task"""

    pass


class DurationLimitExceeded(Exception):
    """Raised when the media is longer than the owner's plan allows"""

    pass


def run_task(guid, logger=None):
    """
    Advance a task as far as it can go.

    Safe to call more than once for the same task, including concurrently.

    Args:
        guid: MediaTask GUID
        logger: Optional callable(message), in addition to the task log

    Returns:
        str | None: the task's status afterwards, None if it does not exist
    """
    try:
        task = MediaTask.objects.get(guid=guid)
    except MediaTask.DoesNotExist:
        return None

    log_path = task.get_log_path()

    def log(message):
        write_log(log_path, message)
        if logger:
            logger(message)

    failure = None
    try:
        if task.status == MediaTask.STATUS_PENDING:
            log('=== TASK STARTED ===')
            log(f'URL: {task.source_url}')
            log(f'Output: {task.output_kind}')
            extract(task, log)
            task.refresh_from_db()
            if task.translation_pending:
                generate_text(task, log, mode='translate')
        elif task.has_pending_work:
            generate_text(task, log, mode='rewrite' if task.rewrite_requested else 'translate')
        elif task.status in (MediaTask.STATUS_PROCESSING, MediaTask.STATUS_TRANSLATING):
            log(f'Task is already {task.status}; another execution owns it')
        else:
            log(f'Nothing to do for task in status {task.status}')
    except StaleTaskWrite as e:
        log(f'Stopping: {e}. Another execution or the watchdog owns this task')
    except ProviderFallbackError as e:
        failure = Failure(MediaTask.FAILURE_PROVIDER, str(e))
    except TaskPersistenceError as e:
        failure = Failure(MediaTask.FAILURE_PERSISTENCE, str(e))
    except TextGenerationError as e:
        failure = Failure(MediaTask.FAILURE_TEXT_GENERATION, str(e))
    except DurationLimitExceeded as e:
        failure = Failure(MediaTask.FAILURE_PLAN_LIMIT, str(e))
    except Exception as e:
        failure = Failure(MediaTask.FAILURE_INTERNAL, f'{type(e).__name__}: {e}')

    if failure:
        log('=== FAILED ===')
        log(f'Error: {failure.detail}')
        if mark_failed(guid, failure):
            log('Marked failed; credits refunded')
        else:
            log('Task already terminal; failure not recorded')

    return MediaTask.objects.filter(pk=guid).values_list('status', flat=True).first()


def extract(task, log):
    """pending -> processing -> extracted"""
    guid = task.guid
    processing = MediaTask.STATUS_PROCESSING

    advance(guid, MediaTask.STATUS_PENDING, processing, progress=10)
    log('=== PROCESSING ===')

    if task.output_kind == MediaTask.OUTPUT_MEDIA_FILE:
        hit = cache.lookup(cache.fingerprint(task.source_url))
        if hit:
            log(f'Cache hit, skipping providers (expires {hit.expires_at.isoformat()})')
            advance(guid, processing, progress=30)
            store_media_reference(task, hit.download_url, log)
            advance(guid, processing, MediaTask.STATUS_EXTRACTED, progress=100)
            log('=== EXTRACTED ===')
            return

    heartbeat(guid, processing, progress=20)
    primary, backup = get_providers()
    media = fetch_with_fallback(
        task.source_url, task.output_kind, primary, backup, logger=log
    )

    if task.output_kind == MediaTask.OUTPUT_MEDIA_FILE and media.download_url:
        cache.store(task.source_url, task.platform, media.download_url, logger=log)

    try:
        advance(
            guid,
            processing,
            progress=30,
            title=media.title or '',
            author=media.author or '',
            likes=media.likes,
            views=media.views,
            shares=media.shares,
            duration_seconds=media.duration_seconds,
            thumbnail_url=media.thumbnail_url or '',
            published_at=media.published_at,
            source_lang=media.source_lang or '',
        )
    except DatabaseError as e:
        raise TaskPersistenceError(f'Metadata update failed: {e}') from e
    log(f'Title: {media.title}')
    if media.duration_seconds:
        log(f'Duration: {media.duration_seconds}s')

    limits = PlanLimits.from_settings()
    if not limits.duration_allowed(media.duration_seconds):
        raise DurationLimitExceeded(
            f'Video is {media.duration_seconds}s long; the plan allows '
            f'{limits.max_duration_seconds}s'
        )

    heartbeat(guid, processing, progress=40)

    if task.output_kind == MediaTask.OUTPUT_MEDIA_FILE:
        store_media_reference(task, media.download_url, log)

    text_follows = bool(task.target_lang and media.captions)
    fields = {}
    if media.captions:
        fields['captions'] = media.captions
        stats = caption_stats(media.captions)
        log(f"Captions: {stats['entries']} entries, {stats['chars']} characters")
    try:
        advance(
            guid,
            processing,
            MediaTask.STATUS_EXTRACTED,
            progress=60 if text_follows else 100,
            **fields,
        )
    except DatabaseError as e:
        raise TaskPersistenceError(f'Caption update failed: {e}') from e
    log('=== EXTRACTED ===')


def store_media_reference(task, download_url, log):
    """
    Record where the media can be downloaded.

    Platforms whose links expire quickly are copied to storage; when that is
    not possible the original URL is kept with a short expiry.
    """
    now = timezone.now()
    if task.platform in get_storage_platforms():
        identifier = upload_to_storage(download_url, logger=log)
        if identifier:
            advance(
                task.guid,
                MediaTask.STATUS_PROCESSING,
                progress=70,
                storage_ref=identifier,
                storage_expires_at=now + timedelta(hours=settings.VIDSCRIBE_STORAGE_EXPIRY_HOURS),
            )
            log(f'Stored media as {identifier}')
            return
        log('Storage upload unavailable; using original URL')

    advance(
        task.guid,
        MediaTask.STATUS_PROCESSING,
        progress=70,
        storage_ref=f'{ORIGINAL_PREFIX}{download_url}',
        storage_expires_at=now + timedelta(hours=settings.VIDSCRIBE_ORIGINAL_EXPIRY_HOURS),
    )


def generate_text(task, log, mode):
    """
    extracted -> translating -> completed

    mode is 'translate' (captions into task.target_lang) or 'rewrite'
    (captions in task.rewrite_style).
    """
    guid = task.guid
    translating = MediaTask.STATUS_TRANSLATING

    advance(guid, MediaTask.STATUS_EXTRACTED, translating, progress=70)
    if mode == 'translate':
        log(f'=== TRANSLATING to {task.target_lang} ===')
        chunks = translate_captions(task.captions, task.target_lang)
    else:
        log(f'=== REWRITING ({task.rewrite_style}) ===')
        chunks = rewrite_captions(task.captions, task.rewrite_style, task.rewrite_instruction)

    interval = get_heartbeat_interval()
    parts = []
    beats = 0
    last_beat = time.monotonic()
    for chunk in chunks:
        parts.append(chunk)
        if time.monotonic() - last_beat >= interval:
            beats += 1
            heartbeat(guid, translating, progress=min(95, 70 + beats * 5))
            last_beat = time.monotonic()

    text = ''.join(parts)
    if not text.strip():
        raise TextGenerationError('Text generation returned no content')

    if mode == 'translate':
        fields = {'translated_captions': clean_translation(text)}
    else:
        fields = {'rewritten_text': text.strip()}

    try:
        advance(guid, translating, MediaTask.STATUS_COMPLETED, progress=100, **fields)
    except DatabaseError as e:
        raise TaskPersistenceError(f'Result update failed: {e}') from e
    log(f'Generated {len(text)} characters')
    log('=== COMPLETED ===')
