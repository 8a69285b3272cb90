from django.conf import settings
from huey import crontab
from huey.contrib.djhuey import db_periodic_task, db_task

from extraction import cache, retention, watchdog
from extraction.pipeline import run_task


@db_task(retries=settings.VIDSCRIBE_QUEUE_RETRIES, retry_delay=5)
def process_media_task(payload):
    """
    Queue consumer for dispatched tasks.

    payload is {taskId, url, outputKind, owner}. Only taskId is needed; the
    rest is carried so the queue contents can be inspected. run_task records
    pipeline failures on the task itself, so only infrastructure errors
    (e.g. the database being unreachable) raise here and trigger a retry.
    """
    return run_task(payload['taskId'])


@db_periodic_task(crontab(minute='*'))
def sweep_stale_tasks():
    """Fail tasks whose heartbeat stopped"""
    return watchdog.sweep()


@db_periodic_task(crontab(minute='17'))
def purge_expired_cache():
    return cache.purge_expired()


@db_periodic_task(crontab(minute='*/15'))
def purge_expired_storage():
    """Delete stored media whose link expired"""
    return retention.purge_expired_storage()
