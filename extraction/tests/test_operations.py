"""
Tests for extraction/operations.py
"""

from datetime import timedelta

from django.contrib.auth import get_user_model
from django.core.exceptions import PermissionDenied
from django.test import override_settings
from django.utils import timezone

from extraction import ledger
from extraction.models import CreditEntry, MediaTask
from extraction.operations import (
    InvalidSubmission,
    MediaExpired,
    MediaUnavailable,
    TaskSubmitter,
    credit_summary,
    get_download_link,
    get_task_status,
    request_rewrite,
    task_projection,
)
from extraction.service.plan_limits import PlanLimits, QuotaExceeded
from extraction.tests.base import (
    SAMPLE_SRT,
    TIKTOK_URL,
    YOUTUBE_URL,
    RecordingDispatcher,
    TaskTestCase,
)


class SubmitTest(TaskTestCase):
    def setUp(self):
        super().setUp()
        self.dispatcher = RecordingDispatcher()

    def submitter(self, **kwargs):
        kwargs.setdefault('plan_limits', PlanLimits(max_active_tasks=2, free_trial_tasks=1, max_duration_seconds=0))
        return TaskSubmitter(dispatcher=self.dispatcher, **kwargs)

    def test_submit_charges_and_dispatches(self):
        task = self.submitter().submit(self.user, YOUTUBE_URL, MediaTask.OUTPUT_CAPTIONS)

        self.assertEqual(task.status, MediaTask.STATUS_PENDING)
        self.assertEqual(task.platform, 'youtube')
        self.assertFalse(task.is_free_trial)
        self.assertEqual(task.credit.amount, -10)
        self.assertEqual(ledger.spendable_balance(self.user), 90)
        self.assertEqual(self.dispatcher.dispatched, [task.guid])
        self.assertIn('=== SUBMITTED ===', self.read_task_log(task))

    def test_media_file_costs_more(self):
        task = self.submitter().submit(self.user, TIKTOK_URL, MediaTask.OUTPUT_MEDIA_FILE)

        self.assertEqual(task.platform, 'tiktok')
        self.assertEqual(ledger.spendable_balance(self.user), 85)

    def test_target_lang_is_stored(self):
        task = self.submitter().submit(self.user, YOUTUBE_URL, MediaTask.OUTPUT_CAPTIONS, target_lang='zh-CN')

        self.assertEqual(task.target_lang, 'zh-CN')

    def test_invalid_requests_persist_nothing(self):
        cases = [
            ('ftp://youtube.com/watch?v=abc', MediaTask.OUTPUT_CAPTIONS, None),
            ('https://vimeo.com/12345', MediaTask.OUTPUT_CAPTIONS, None),
            ('not a url', MediaTask.OUTPUT_CAPTIONS, None),
            (YOUTUBE_URL, 'audio', None),
            (YOUTUBE_URL, MediaTask.OUTPUT_CAPTIONS, 'english please'),
            (123, MediaTask.OUTPUT_CAPTIONS, None),
            (None, MediaTask.OUTPUT_CAPTIONS, None),
            (YOUTUBE_URL, {'kind': 'captions'}, None),
            (YOUTUBE_URL, MediaTask.OUTPUT_CAPTIONS, 5),
        ]
        for url, kind, lang in cases:
            with self.subTest(url=url, kind=kind, lang=lang):
                with self.assertRaises(InvalidSubmission):
                    self.submitter().submit(self.user, url, kind, target_lang=lang)

        self.assertFalse(MediaTask.objects.exists())
        self.assertEqual(ledger.spendable_balance(self.user), 100)
        self.assertEqual(self.dispatcher.dispatched, [])

    def test_dispatch_failure_leaves_task_pending(self):
        self.dispatcher = RecordingDispatcher(accept=False)

        task = self.submitter().submit(self.user, YOUTUBE_URL, MediaTask.OUTPUT_CAPTIONS)

        task.refresh_from_db()
        self.assertEqual(task.status, MediaTask.STATUS_PENDING)
        self.assertEqual(ledger.spendable_balance(self.user), 90)

    def test_concurrency_cap(self):
        submitter = self.submitter()
        submitter.submit(self.user, YOUTUBE_URL, MediaTask.OUTPUT_CAPTIONS)
        submitter.submit(self.user, YOUTUBE_URL, MediaTask.OUTPUT_CAPTIONS)

        with self.assertRaises(QuotaExceeded):
            submitter.submit(self.user, YOUTUBE_URL, MediaTask.OUTPUT_CAPTIONS)

        self.assertEqual(MediaTask.objects.count(), 2)
        self.assertEqual(ledger.spendable_balance(self.user), 80)

    def test_extracted_tasks_do_not_count_against_cap(self):
        self.create_task(status=MediaTask.STATUS_EXTRACTED)
        self.create_task(status=MediaTask.STATUS_EXTRACTED)

        task = self.submitter().submit(self.user, YOUTUBE_URL, MediaTask.OUTPUT_CAPTIONS)

        self.assertEqual(task.status, MediaTask.STATUS_PENDING)

    def test_stale_tasks_are_swept_before_the_cap_check(self):
        first = self.create_task(status=MediaTask.STATUS_PROCESSING)
        second = self.create_task(status=MediaTask.STATUS_PROCESSING)
        long_ago = first.updated_at - timedelta(minutes=10)
        MediaTask.objects.filter(pk__in=[first.pk, second.pk]).update(updated_at=long_ago)

        task = self.submitter().submit(self.user, YOUTUBE_URL, MediaTask.OUTPUT_CAPTIONS)

        first.refresh_from_db()
        self.assertEqual(first.status, MediaTask.STATUS_FAILED)
        self.assertEqual(task.status, MediaTask.STATUS_PENDING)
        # Both stale tasks were refunded, then the new one charged
        self.assertEqual(ledger.spendable_balance(self.user), 90)


class FreeTrialTest(TaskTestCase):
    initial_credits = 0

    def submitter(self, **kwargs):
        return TaskSubmitter(
            dispatcher=RecordingDispatcher(),
            plan_limits=PlanLimits(max_active_tasks=5, free_trial_tasks=1, max_duration_seconds=0),
            **kwargs,
        )

    def test_insufficient_credits_without_trial(self):
        ledger.grant(self.user, 5)
        self.submitter().submit(self.user, YOUTUBE_URL, MediaTask.OUTPUT_CAPTIONS)

        with self.assertRaises(ledger.InsufficientCredits) as ctx:
            self.submitter().submit(self.user, YOUTUBE_URL, MediaTask.OUTPUT_CAPTIONS)

        self.assertEqual(ctx.exception.required, 10)
        self.assertEqual(ctx.exception.available, 5)
        self.assertEqual(MediaTask.objects.count(), 1)

    def test_trial_used_when_balance_is_short(self):
        task = self.submitter().submit(self.user, YOUTUBE_URL, MediaTask.OUTPUT_CAPTIONS)

        self.assertTrue(task.is_free_trial)
        self.assertIsNone(task.credit)
        self.assertFalse(CreditEntry.objects.filter(kind=CreditEntry.KIND_CONSUMPTION).exists())

    def test_credits_preferred_when_they_cover_the_cost(self):
        ledger.grant(self.user, 10)

        task = self.submitter().submit(self.user, YOUTUBE_URL, MediaTask.OUTPUT_CAPTIONS)

        self.assertFalse(task.is_free_trial)
        self.assertEqual(ledger.spendable_balance(self.user), 0)

    def test_prefer_free_trial(self):
        ledger.grant(self.user, 10)

        task = self.submitter(prefer_free_trial=True).submit(self.user, YOUTUBE_URL, MediaTask.OUTPUT_CAPTIONS)

        self.assertTrue(task.is_free_trial)
        self.assertEqual(ledger.spendable_balance(self.user), 10)

    @override_settings(VIDSCRIBE_PREFER_FREE_TRIAL=True)
    def test_prefer_free_trial_from_settings(self):
        ledger.grant(self.user, 10)

        submitter = TaskSubmitter(dispatcher=RecordingDispatcher())

        self.assertTrue(submitter.prefer_free_trial)


class StatusTest(TaskTestCase):
    def test_projection_of_owned_task(self):
        task = self.create_task(status=MediaTask.STATUS_EXTRACTED, progress=100, captions=SAMPLE_SRT, title='Hi')

        data = get_task_status(self.user, task.guid)

        self.assertEqual(data['taskId'], task.guid)
        self.assertEqual(data['status'], MediaTask.STATUS_EXTRACTED)
        self.assertEqual(data['progress'], 100)
        self.assertEqual(data['captions'], SAMPLE_SRT)
        self.assertEqual(data['title'], 'Hi')
        self.assertIsNone(data['translatedCaptions'])

    def test_status_read_sweeps_stale_tasks(self):
        task = self.create_task(status=MediaTask.STATUS_PROCESSING)
        MediaTask.objects.filter(pk=task.pk).update(updated_at=task.updated_at - timedelta(minutes=5))

        data = get_task_status(self.user, task.guid)

        self.assertEqual(data['status'], MediaTask.STATUS_FAILED)
        self.assertEqual(data['failureReason'], MediaTask.FAILURE_TIMEOUT)

    def test_other_owner_is_denied(self):
        task = self.create_task()
        other = get_user_model().objects.create_user(username='mallory', password='secret')

        with self.assertRaises(PermissionDenied):
            get_task_status(other, task.guid)

    def test_unknown_task(self):
        with self.assertRaises(MediaTask.DoesNotExist):
            get_task_status(self.user, 'missing')

    def test_projection_serializes_dates(self):
        task = self.create_task()

        data = task_projection(task)

        self.assertEqual(data['createdAt'], task.created_at.isoformat())
        self.assertIsNone(data['publishedAt'])

    def test_projection_hides_expired_storage_ref(self):
        task = self.create_task(
            storage_ref='videos/abc.mp4', storage_expires_at=timezone.now() - timedelta(minutes=1)
        )

        data = task_projection(task)

        self.assertIsNone(data['storageRef'])
        self.assertEqual(data['storageExpiresAt'], task.storage_expires_at.isoformat())


@override_settings(VIDSCRIBE_STORAGE_PUBLIC_URL='https://media.example.com/')
class DownloadLinkTest(TaskTestCase):
    def create_media_task(self, storage_ref, expires_in_hours=2):
        return self.create_task(
            url=TIKTOK_URL,
            output_kind=MediaTask.OUTPUT_MEDIA_FILE,
            status=MediaTask.STATUS_EXTRACTED,
            storage_ref=storage_ref,
            storage_expires_at=timezone.now() + timedelta(hours=expires_in_hours),
        )

    def test_stored_media(self):
        task = self.create_media_task('videos/abc.mp4')

        data = get_download_link(self.user, task.guid)

        self.assertEqual(data['downloadUrl'], 'https://media.example.com/videos/abc.mp4')
        self.assertEqual(data['expiresAt'], task.storage_expires_at.isoformat())

    def test_original_link(self):
        task = self.create_media_task('original:https://cdn.example.com/video.mp4')

        data = get_download_link(self.user, task.guid)

        self.assertEqual(data['downloadUrl'], 'https://cdn.example.com/video.mp4')

    def test_expired_link(self):
        task = self.create_media_task('videos/abc.mp4', expires_in_hours=-1)

        with self.assertRaises(MediaExpired):
            get_download_link(self.user, task.guid)

    def test_purged_link_is_still_reported_expired(self):
        task = self.create_media_task('', expires_in_hours=-1)

        with self.assertRaises(MediaExpired):
            get_download_link(self.user, task.guid)

    def test_no_media(self):
        task = self.create_task(status=MediaTask.STATUS_EXTRACTED, captions=SAMPLE_SRT)

        with self.assertRaises(MediaUnavailable):
            get_download_link(self.user, task.guid)

    @override_settings(VIDSCRIBE_STORAGE_PUBLIC_URL='')
    def test_public_url_not_configured(self):
        task = self.create_media_task('videos/abc.mp4')

        with self.assertRaises(MediaUnavailable):
            get_download_link(self.user, task.guid)

    def test_other_owner_is_denied(self):
        task = self.create_media_task('videos/abc.mp4')
        other = get_user_model().objects.create_user(username='mallory', password='secret')

        with self.assertRaises(PermissionDenied):
            get_download_link(other, task.guid)


class RewriteRequestTest(TaskTestCase):
    def test_rewrite_dispatches_extracted_task(self):
        task = self.create_task(status=MediaTask.STATUS_EXTRACTED, progress=100, captions=SAMPLE_SRT)
        dispatcher = RecordingDispatcher()

        task = request_rewrite(self.user, task.guid, 'redbook', instruction=' warm ', dispatcher=dispatcher)

        self.assertEqual(task.rewrite_style, 'redbook')
        self.assertEqual(task.rewrite_instruction, 'warm')
        self.assertTrue(task.rewrite_requested)
        self.assertEqual(dispatcher.dispatched, [task.guid])
        self.assertEqual(ledger.spendable_balance(self.user), 90)

    def test_unknown_style(self):
        task = self.create_task(status=MediaTask.STATUS_EXTRACTED, captions=SAMPLE_SRT)

        with self.assertRaises(InvalidSubmission):
            request_rewrite(self.user, task.guid, 'sonnet', dispatcher=RecordingDispatcher())

    def test_task_must_be_extracted(self):
        for status in (MediaTask.STATUS_PROCESSING, MediaTask.STATUS_COMPLETED, MediaTask.STATUS_FAILED):
            with self.subTest(status=status):
                task = self.create_task(status=status, captions=SAMPLE_SRT)
                with self.assertRaises(InvalidSubmission):
                    request_rewrite(self.user, task.guid, 'tiktok', dispatcher=RecordingDispatcher())

    def test_task_needs_captions(self):
        task = self.create_task(status=MediaTask.STATUS_EXTRACTED)

        with self.assertRaises(InvalidSubmission):
            request_rewrite(self.user, task.guid, 'tiktok', dispatcher=RecordingDispatcher())


class CreditSummaryTest(TaskTestCase):
    def test_summary(self):
        summary = credit_summary(self.user)

        self.assertEqual(summary['balance'], 100)
        self.assertTrue(summary['freeTrialAvailable'])
        self.assertEqual(summary['costs'], {'captions': 10, 'media_file': 15})
