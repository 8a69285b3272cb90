"""
Retention of downloadable media.

A task's storage reference is served until storage_expires_at. Purging deletes
the stored object and clears the reference; references to the platform's own
URL have nothing to delete and are only cleared.
"""

from django.conf import settings
from django.utils import timezone

from extraction.models import MediaTask
from extraction.service.storage import ORIGINAL_PREFIX, delete_from_storage
from extraction.utils import write_log


def is_expired(task, now=None):
    now = now or timezone.now()
    return task.storage_expires_at is not None and task.storage_expires_at <= now


def expired_references(now=None):
    now = now or timezone.now()
    return MediaTask.objects.exclude(storage_ref='').filter(storage_expires_at__lte=now)


def purge_expired_storage(now=None, limit=None, logger=None):
    """
    Delete expired stored media and clear the task references.

    A reference whose delete fails is left in place for the next run.

    Args:
        now: reference time (default: now)
        limit: maximum references handled per call (default from settings)
        logger: Optional callable(message) for logging

    Returns:
        int: number of references cleared
    """

    def log(message):
        if logger:
            logger(message)

    if limit is None:
        limit = settings.VIDSCRIBE_STORAGE_PURGE_BATCH

    expired = (
        expired_references(now)
        .order_by('storage_expires_at')
        .only('guid', 'storage_ref')[:limit]
    )
    purged = 0
    for task in expired:
        ref = task.storage_ref
        if not ref.startswith(ORIGINAL_PREFIX) and not delete_from_storage(ref, logger=log):
            continue
        # Only clear the reference that was deleted
        if MediaTask.objects.filter(pk=task.guid, storage_ref=ref).update(storage_ref=''):
            write_log(task.get_log_path(), 'Media link expired; storage reference purged')
            purged += 1

    log(f'Purged {purged} expired storage reference(s)')
    return purged


def storage_stats(now=None):
    """Counts of tasks holding a storage reference"""
    total = MediaTask.objects.exclude(storage_ref='').count()
    expired = expired_references(now).count()
    return {'total': total, 'expired': expired, 'active': total - expired}
