"""
Conditional task transitions.

Every write is an UPDATE guarded by the status the writer expects the task to
be in. A write that matches no row means another execution (or the watchdog)
owns the task now; the writer must stop.
"""

from dataclasses import dataclass

from django.db import transaction
from django.db.models import PositiveSmallIntegerField, Q, Value
from django.db.models.functions import Greatest
from django.utils import timezone

from extraction.ledger import refund
from extraction.models import MediaTask

TERMINAL_STATUSES = (MediaTask.STATUS_COMPLETED, MediaTask.STATUS_FAILED)

# Statuses in which a task is expected to make progress
WATCHED_STATUSES = (
    MediaTask.STATUS_PENDING,
    MediaTask.STATUS_PROCESSING,
    MediaTask.STATUS_TRANSLATING,
)

# Extracted tasks that still owe a translation or a rewrite
PENDING_WORK = Q(status=MediaTask.STATUS_EXTRACTED) & (
    (~Q(target_lang='') & ~Q(captions='') & Q(translated_captions=''))
    | (~Q(rewrite_style='') & Q(rewritten_text=''))
)

# Everything the watchdog sweeps
EXPECTING_PROGRESS = Q(status__in=WATCHED_STATUSES) | PENDING_WORK


@dataclass
class Failure:
    """Why a task failed, and the message shown to its owner"""

    reason: str
    detail: str

    def __str__(self):
        return self.detail


class StaleTaskWrite(Exception):
    """Raised when a conditional write finds the task in an unexpected state"""

    def __init__(self, guid, expected):
        super().__init__(f'Task {guid} is no longer {expected}')
        self.guid = guid
        self.expected = expected


def advance(guid, expected, new_status=None, progress=None, **fields):
    """
    Move a task from `expected` to `new_status` and write `fields`.

    Progress never decreases. updated_at is refreshed on every call.

    Raises:
        StaleTaskWrite: the task was not in `expected`
    """
    values = dict(fields)
    values['updated_at'] = timezone.now()
    if new_status is not None:
        values['status'] = new_status
    if progress is not None:
        values['progress'] = Greatest('progress', Value(progress), output_field=PositiveSmallIntegerField())

    updated = MediaTask.objects.filter(pk=guid, status=expected).update(**values)
    if not updated:
        raise StaleTaskWrite(guid, expected)


def heartbeat(guid, expected, progress=None):
    """Refresh liveness (and optionally progress) without changing status"""
    advance(guid, expected, progress=progress)


def mark_failed(guid, failure, *filters, **conditions):
    """
    Fail a non-terminal task and refund its consumption.

    Extra Q filters and keyword conditions narrow the update further (the
    watchdog passes its staleness cutoff). The first terminal write wins.

    Returns:
        bool: True if this call moved the task to failed
    """
    with transaction.atomic():
        updated = (
            MediaTask.objects.filter(*filters, pk=guid, **conditions)
            .exclude(status__in=TERMINAL_STATUSES)
            .update(
                status=MediaTask.STATUS_FAILED,
                failure_reason=failure.reason,
                error_message=failure.detail,
                updated_at=timezone.now(),
            )
        )
        if not updated:
            return False

        credit_id = MediaTask.objects.filter(pk=guid).values_list('credit_id', flat=True).first()
        if credit_id is not None:
            refund(credit_id)
    return True
