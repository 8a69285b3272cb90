"""
Management command to submit a URL for extraction on behalf of a user.

With --wait the pipeline runs in the foreground instead of being dispatched,
which is useful for CLI workflows and debugging.
"""

import json

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError

from extraction.dispatch import Dispatcher, InlineStrategy
from extraction.ledger import InsufficientCredits
from extraction.models import MediaTask
from extraction.operations import InvalidSubmission, TaskSubmitter, task_projection
from extraction.service.plan_limits import QuotaExceeded


class Command(BaseCommand):
    help = 'Submit a YouTube or TikTok URL for extraction'

    def add_arguments(self, parser):
        parser.add_argument('username', type=str, help='Owner of the task')
        parser.add_argument('url', type=str, help='URL to extract')
        parser.add_argument(
            '--kind',
            type=str,
            choices=[MediaTask.OUTPUT_CAPTIONS, MediaTask.OUTPUT_MEDIA_FILE],
            default=MediaTask.OUTPUT_CAPTIONS,
            help='Output kind (default: captions)',
        )
        parser.add_argument('--lang', type=str, default=None, help='Translate captions into this language')
        parser.add_argument('--wait', action='store_true', help='Run in the foreground')
        parser.add_argument('--verbose', action='store_true', help='Verbose output')
        parser.add_argument('--json', action='store_true', help='JSON output')

    def handle(self, *args, **options):
        User = get_user_model()
        try:
            user = User.objects.get(username=options['username'])
        except User.DoesNotExist:
            raise CommandError(f"User not found: {options['username']}")

        verbose = options['verbose']

        def log(message):
            if verbose:
                self.stdout.write(message)

        submitter = TaskSubmitter(dispatcher=Dispatcher([InlineStrategy()])) if options['wait'] else TaskSubmitter()

        try:
            task = submitter.submit(
                user, options['url'], options['kind'], target_lang=options['lang'], logger=log
            )
        except (InvalidSubmission, InsufficientCredits, QuotaExceeded) as e:
            raise CommandError(str(e))

        task.refresh_from_db()
        if options['json']:
            self.stdout.write(json.dumps(task_projection(task), indent=2))
            return

        self.stdout.write(f'Task: {task.guid}')
        self.stdout.write(f'Status: {task.status} ({task.progress}%)')
        if task.status == MediaTask.STATUS_FAILED:
            self.stdout.write(self.style.ERROR(f'Error: {task.error_message}'))
        elif task.title:
            self.stdout.write(self.style.SUCCESS(f'Title: {task.title}'))
        self.stdout.write(f'Log: {task.get_log_path()}')
