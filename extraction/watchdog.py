"""
Soft-timeout watchdog.

Tasks whose heartbeat (updated_at) stops while they should be making progress
are failed and refunded. Safe to run from any number of places at once.
"""

from datetime import timedelta

from django.utils import timezone

from extraction.models import MediaTask
from extraction.service.config import get_watchdog_timeout
from extraction.task_state import EXPECTING_PROGRESS, Failure, mark_failed
from extraction.utils import write_log


def sweep(now=None, timeout_seconds=None, owner=None):
    """
    Fail every task with no heartbeat for timeout_seconds that should be making
    progress: pending, processing or translating, or extracted with a
    translation or rewrite still owed.

    Args:
        now: reference time (default: now)
        timeout_seconds: staleness threshold (default from settings)
        owner: restrict the sweep to one owner's tasks

    Returns:
        int: number of tasks this call failed
    """
    now = now or timezone.now()
    if timeout_seconds is None:
        timeout_seconds = get_watchdog_timeout()
    cutoff = now - timedelta(seconds=timeout_seconds)

    stale = MediaTask.objects.filter(EXPECTING_PROGRESS, updated_at__lt=cutoff)
    if owner is not None:
        stale = stale.filter(owner=owner)

    swept = 0
    for task in stale.only('guid', 'status', 'updated_at'):
        idle = int((now - task.updated_at).total_seconds())
        failure = Failure(
            MediaTask.FAILURE_TIMEOUT,
            f'Task timeout (watchdog): no progress for {idle} seconds while {task.status}',
        )
        # Re-check staleness in the update itself so a heartbeat that lands
        # between the select and the update wins
        if mark_failed(
            task.guid,
            failure,
            EXPECTING_PROGRESS,
            updated_at__lt=cutoff,
        ):
            write_log(task.get_log_path(), f'=== FAILED === {failure.detail}')
            swept += 1
    return swept
