"""
Tests for extraction management commands
"""

import json
from datetime import timedelta
from io import StringIO
from unittest.mock import patch

from django.core.management import call_command
from django.core.management.base import CommandError
from django.utils import timezone

from extraction import ledger
from extraction.models import CreditEntry, MediaTask
from extraction.service.textgen import StepCheck, TextGenHealth
from extraction.tests.base import SAMPLE_SRT, YOUTUBE_URL, FakeProvider, TaskTestCase, success_result


class GrantCreditsCommandTest(TaskTestCase):
    initial_credits = 0

    def test_grant(self):
        out = StringIO()

        call_command('grant_credits', 'alice', '40', '--days', '7', stdout=out)

        self.assertIn('Balance: 40', out.getvalue())
        entry = CreditEntry.objects.get(owner=self.user)
        self.assertEqual(entry.remaining, 40)
        self.assertIsNotNone(entry.expires_at)

    def test_unknown_user(self):
        with self.assertRaises(CommandError):
            call_command('grant_credits', 'nobody', '10', stdout=StringIO())

    def test_amount_must_be_positive(self):
        with self.assertRaises(CommandError):
            call_command('grant_credits', 'alice', '0', stdout=StringIO())


class SweepTasksCommandTest(TaskTestCase):
    def test_sweep(self):
        task = self.create_task(status=MediaTask.STATUS_PROCESSING)
        MediaTask.objects.filter(pk=task.pk).update(updated_at=task.updated_at - timedelta(minutes=10))
        out = StringIO()

        call_command('sweep_tasks', stdout=out)

        self.assertIn('Failed 1 stale task(s)', out.getvalue())
        task.refresh_from_db()
        self.assertEqual(task.status, MediaTask.STATUS_FAILED)

    def test_nothing_to_sweep(self):
        out = StringIO()

        call_command('sweep_tasks', '--timeout', '60', stdout=out)

        self.assertIn('No stale tasks', out.getvalue())


class SubmitCommandTest(TaskTestCase):
    @patch('extraction.pipeline.get_providers')
    def test_submit_and_wait(self, mock_get_providers):
        mock_get_providers.return_value = (
            FakeProvider('primary', result=success_result('primary')),
            FakeProvider('backup'),
        )
        out = StringIO()

        call_command('submit', 'alice', YOUTUBE_URL, '--wait', '--json', stdout=out)

        data = json.loads(out.getvalue())
        self.assertEqual(data['status'], MediaTask.STATUS_EXTRACTED)
        self.assertEqual(data['captions'], SAMPLE_SRT)
        self.assertEqual(ledger.spendable_balance(self.user), 90)

    def test_invalid_url(self):
        with self.assertRaises(CommandError):
            call_command('submit', 'alice', 'https://vimeo.com/1', '--wait', stdout=StringIO())


class RunTaskCommandTest(TaskTestCase):
    def test_unknown_task(self):
        with self.assertRaises(CommandError):
            call_command('run_task', 'missing', stdout=StringIO())

    @patch('extraction.pipeline.get_providers')
    def test_run(self, mock_get_providers):
        mock_get_providers.return_value = (
            FakeProvider('primary', result=success_result('primary')),
            FakeProvider('backup'),
        )
        task = self.create_task()
        out = StringIO()

        call_command('run_task', task.guid, stdout=out)

        self.assertIn('Status: extracted (100%)', out.getvalue())


class CheckTextgenCommandTest(TaskTestCase):
    @patch('extraction.management.commands.check_textgen.check_text_generation')
    def test_not_reachable(self, mock_check):
        mock_check.return_value = TextGenHealth(reachable=False, error='Ollama not reachable at http://ollama:11434')

        with self.assertRaises(CommandError) as ctx:
            call_command('check_textgen', stdout=StringIO())

        self.assertIn('not reachable', str(ctx.exception))
        self.assertIn('ollama serve', str(ctx.exception))

    @patch('extraction.management.commands.check_textgen.check_text_generation')
    def test_runs_translate_and_rewrite(self, mock_check):
        mock_check.return_value = TextGenHealth(
            reachable=True,
            models=['llama3.2:latest'],
            steps=[StepCheck('translate', ok=True, chars=120, seconds=1.5), StepCheck('rewrite', ok=True, chars=80)],
        )
        out = StringIO()

        call_command('check_textgen', '--lang', 'fr', '--style', 'script', stdout=out)

        mock_check.assert_called_once_with(('translate', 'rewrite'), target_lang='fr', style='script')
        self.assertIn('translate (fr): OK, 120 characters in 1.5s', out.getvalue())
        self.assertIn('rewrite (script): OK', out.getvalue())
        self.assertIn('Text generation is ready', out.getvalue())

    @patch('extraction.management.commands.check_textgen.check_text_generation')
    def test_failed_step(self, mock_check):
        mock_check.return_value = TextGenHealth(
            reachable=True,
            models=['llama3.2:latest'],
            steps=[StepCheck('translate', ok=False, error='Translation came back without SRT timestamps')],
        )
        out = StringIO()

        with self.assertRaises(CommandError) as ctx:
            call_command('check_textgen', stdout=out)

        self.assertIn('translate (es): FAILED', out.getvalue())
        self.assertIn('without SRT timestamps', out.getvalue())
        self.assertIn('NOT ready', str(ctx.exception))

    @patch('extraction.management.commands.check_textgen.check_text_generation')
    def test_models_only(self, mock_check):
        mock_check.return_value = TextGenHealth(reachable=True, models=['llama3.2:latest'])
        out = StringIO()

        call_command('check_textgen', '--models-only', stdout=out)

        self.assertEqual(mock_check.call_args[0][0], ())
        self.assertIn('Installed models: llama3.2:latest', out.getvalue())


class PurgeStorageCommandTest(TaskTestCase):
    def setUp(self):
        super().setUp()
        self.task = self.create_task(
            output_kind=MediaTask.OUTPUT_MEDIA_FILE,
            status=MediaTask.STATUS_EXTRACTED,
            storage_ref='original:https://cdn.example.com/video.mp4',
            storage_expires_at=timezone.now() - timedelta(hours=1),
        )

    def test_purge(self):
        out = StringIO()

        call_command('purge_storage', stdout=out)

        self.assertIn('Purged 1 expired storage references', out.getvalue())
        self.assertIn('With media: 0, expired: 0, active: 0', out.getvalue())
        self.task.refresh_from_db()
        self.assertEqual(self.task.storage_ref, '')

    def test_dry_run(self):
        out = StringIO()

        call_command('purge_storage', '--dry-run', stdout=out)

        self.assertNotIn('Purged', out.getvalue())
        self.assertIn('With media: 1, expired: 1, active: 0', out.getvalue())
        self.task.refresh_from_db()
        self.assertTrue(self.task.storage_ref)
