"""
High-level operations that can be used by views, tasks, and management commands.

This module provides testable functions that encapsulate business logic,
making it easy to test operations without going through Django views or
management commands.
"""

import re

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.exceptions import PermissionDenied
from django.db import DatabaseError, transaction

from extraction import watchdog
from extraction.dispatch import build_dispatcher
from extraction.ledger import consume, spendable_balance
from extraction.models import MediaTask
from extraction.retention import is_expired
from extraction.service.config import get_dispatch_config, get_task_cost
from extraction.service.plan_limits import PlanLimits
from extraction.service.providers import detect_platform
from extraction.service.storage import ORIGINAL_PREFIX, storage_download_url
from extraction.service.textgen import REWRITE_STYLES
from extraction.task_state import StaleTaskWrite, advance
from extraction.utils import write_log

LANG_CODE = re.compile(r'^[A-Za-z]{2,3}(-[A-Za-z0-9]{2,8})?$')


class InvalidSubmission(Exception):
    """Raised for requests rejected before anything is persisted"""

    pass


class MediaUnavailable(Exception):
    """Raised when a task has no downloadable media"""

    pass


class MediaExpired(MediaUnavailable):
    """Raised when a task's media link has passed its expiry"""

    pass


class TaskSubmitter:
    """
    Validates a submission, reserves credits and starts execution.

    Args:
        config: DispatchConfig (default built from settings)
        dispatcher: Dispatcher (default built from config)
        plan_limits: PlanLimits (default built from settings)
        prefer_free_trial: spend a free trial even when credits would cover
            the cost (default from settings)
    """

    def __init__(self, config=None, dispatcher=None, plan_limits=None, prefer_free_trial=None):
        self.config = config or get_dispatch_config()
        self.dispatcher = dispatcher or build_dispatcher(self.config)
        self.plan_limits = plan_limits or PlanLimits.from_settings()
        if prefer_free_trial is None:
            prefer_free_trial = settings.VIDSCRIBE_PREFER_FREE_TRIAL
        self.prefer_free_trial = prefer_free_trial

    def submit(self, owner, url, output_kind, target_lang=None, logger=None):
        """
        Create a task and start it.

        Args:
            owner: User submitting the task
            url: YouTube or TikTok URL
            output_kind: 'captions' or 'media_file'
            target_lang: Optional language code to translate captions into
            logger: Optional callable(message) for logging

        Returns:
            MediaTask: the created task, still pending

        Raises:
            InvalidSubmission: bad URL, output kind or language
            QuotaExceeded: too many tasks in progress
            InsufficientCredits: no free trial and not enough credits
        """

        def log(message):
            if logger:
                logger(message)

        if not isinstance(url, str):
            raise InvalidSubmission('URL must be a string')
        if target_lang is not None and not isinstance(target_lang, str):
            raise InvalidSubmission('Target language must be a string')

        url = url.strip()
        platform = detect_platform(url) if re.match(r'^https?://', url, re.IGNORECASE) else None
        if not platform:
            raise InvalidSubmission('URL must be a YouTube or TikTok link')
        if not isinstance(output_kind, str) or output_kind not in (
            MediaTask.OUTPUT_CAPTIONS,
            MediaTask.OUTPUT_MEDIA_FILE,
        ):
            raise InvalidSubmission('Output kind must be captions or media_file')
        target_lang = (target_lang or '').strip()
        if target_lang and not LANG_CODE.match(target_lang):
            raise InvalidSubmission(f'Invalid target language: {target_lang}')

        swept = watchdog.sweep()
        if swept:
            log(f'Watchdog failed {swept} stale task(s)')

        cost = get_task_cost(output_kind)

        with transaction.atomic():
            # Serializes submissions per owner so the cap and the free trial
            # are checked against committed state
            get_user_model().objects.select_for_update().filter(pk=owner.pk).first()

            self.plan_limits.check_concurrency(owner)
            use_free_trial = self._use_free_trial(owner, cost)

            credit = None
            if not use_free_trial:
                credit = consume(
                    owner,
                    cost,
                    description=f'{output_kind} extraction: {url}'[:500],
                )

            task = MediaTask.objects.create(
                owner=owner,
                platform=platform,
                source_url=url,
                output_kind=output_kind,
                target_lang=target_lang,
                credit=credit,
                is_free_trial=use_free_trial,
            )

        if use_free_trial:
            log(f'Created task {task.guid} (free trial)')
        else:
            log(f'Created task {task.guid} ({cost} credits)')

        log_path = task.get_log_path()
        write_log(log_path, '=== SUBMITTED ===')
        write_log(log_path, f'Owner: {owner.pk}')
        write_log(log_path, 'Free trial' if use_free_trial else f'Charged {cost} credits')

        strategy = self.dispatcher.dispatch(task)
        log(f'Dispatched via {strategy}' if strategy else 'Dispatch failed; task left pending')
        return task

    def _use_free_trial(self, owner, cost):
        if not self.plan_limits.free_trial_available(owner):
            return False
        if spendable_balance(owner) < cost:
            return True
        return self.prefer_free_trial


def submit_task(owner, url, output_kind, target_lang=None, logger=None):
    """Submit with the settings-derived configuration"""
    return TaskSubmitter().submit(owner, url, output_kind, target_lang=target_lang, logger=logger)


def get_owned_task(owner, guid):
    """
    Raises:
        MediaTask.DoesNotExist: unknown guid
        PermissionDenied: task belongs to someone else
    """
    task = MediaTask.objects.get(guid=guid)
    if task.owner_id != owner.pk:
        raise PermissionDenied('Task belongs to another user')
    return task


def get_task_status(owner, guid):
    """
    Sweep stale tasks, then return the task's projection.

    A failing sweep does not block the read.
    """
    try:
        watchdog.sweep()
    except DatabaseError as e:
        write_log(MediaTask(guid=guid).get_log_path(), f'Watchdog sweep failed: {e}')
    return task_projection(get_owned_task(owner, guid))


def task_projection(task):
    """Public view of a task"""

    def iso(value):
        return value.isoformat() if value else None

    return {
        'taskId': task.guid,
        'status': task.status,
        'progress': task.progress,
        'platform': task.platform,
        'url': task.source_url,
        'outputKind': task.output_kind,
        'targetLang': task.target_lang or None,
        'title': task.title or None,
        'author': task.author or None,
        'likes': task.likes,
        'views': task.views,
        'shares': task.shares,
        'duration': task.duration_seconds,
        'thumbnailUrl': task.thumbnail_url or None,
        'publishedAt': iso(task.published_at),
        'sourceLang': task.source_lang or None,
        'captions': task.captions or None,
        'translatedCaptions': task.translated_captions or None,
        'rewrittenText': task.rewritten_text or None,
        'rewriteStyle': task.rewrite_style or None,
        'storageRef': None if is_expired(task) else task.storage_ref or None,
        'storageExpiresAt': iso(task.storage_expires_at),
        'failureReason': task.failure_reason or None,
        'errorMessage': task.error_message or None,
        'isFreeTrial': task.is_free_trial,
        'createdAt': iso(task.created_at),
        'updatedAt': iso(task.updated_at),
    }


def get_download_link(owner, guid):
    """
    Resolve a task's storage reference into a URL the owner can download.

    Returns:
        dict: {downloadUrl, expiresAt}

    Raises:
        MediaTask.DoesNotExist: unknown guid
        PermissionDenied: task belongs to someone else
        MediaExpired: the link passed storage_expires_at
        MediaUnavailable: the task has no media reference
    """
    task = get_owned_task(owner, guid)
    if is_expired(task):
        raise MediaExpired('Media link has expired')
    if not task.storage_ref:
        raise MediaUnavailable('Media not available')

    if task.storage_ref.startswith(ORIGINAL_PREFIX):
        download_url = task.storage_ref[len(ORIGINAL_PREFIX):]
    else:
        download_url = storage_download_url(task.storage_ref)
    if not download_url:
        raise MediaUnavailable('Failed to generate download URL')

    return {
        'downloadUrl': download_url,
        'expiresAt': task.storage_expires_at.isoformat() if task.storage_expires_at else None,
    }


def request_rewrite(owner, guid, style, instruction=None, dispatcher=None):
    """
    Ask for the task's captions to be rewritten in a style preset.

    The task must be extracted and have captions. Rewriting is covered by the
    submission cost.

    Returns:
        MediaTask
    """
    if not isinstance(guid, str):
        raise InvalidSubmission('Task ID must be a string')
    if not isinstance(style, str) or style not in REWRITE_STYLES:
        raise InvalidSubmission(
            f'Unknown style: {style}. Choose one of: {", ".join(REWRITE_STYLES)}'
        )
    if instruction is not None and not isinstance(instruction, str):
        raise InvalidSubmission('Instruction must be a string')
    task = get_owned_task(owner, guid)
    if task.status != MediaTask.STATUS_EXTRACTED:
        raise InvalidSubmission(
            f'Task is not ready for rewriting. Current status: {task.status}'
        )
    if not task.captions.strip():
        raise InvalidSubmission('No captions to rewrite')

    try:
        advance(
            guid,
            MediaTask.STATUS_EXTRACTED,
            rewrite_style=style,
            rewrite_instruction=(instruction or '').strip(),
            rewritten_text='',
        )
    except StaleTaskWrite:
        raise InvalidSubmission('Task changed while the rewrite was requested')

    task.refresh_from_db()
    write_log(task.get_log_path(), f'Rewrite requested: {style}')
    dispatcher = dispatcher or build_dispatcher(get_dispatch_config())
    dispatcher.dispatch(task)
    return task


def redispatch(guid, dispatcher=None):
    """Dispatch an existing task again; returns the strategy name or None"""
    task = MediaTask.objects.get(guid=guid)
    dispatcher = dispatcher or build_dispatcher(get_dispatch_config())
    return dispatcher.dispatch(task)


def credit_summary(owner):
    limits = PlanLimits.from_settings()
    return {
        'balance': spendable_balance(owner),
        'freeTrialAvailable': limits.free_trial_available(owner),
        'costs': {
            MediaTask.OUTPUT_CAPTIONS: get_task_cost(MediaTask.OUTPUT_CAPTIONS),
            MediaTask.OUTPUT_MEDIA_FILE: get_task_cost(MediaTask.OUTPUT_MEDIA_FILE),
        },
    }
