"""
Management command to run or re-dispatch a task.

Usage:
    ./manage.py run_task <guid>              # run in this process
    ./manage.py run_task <guid> --dispatch   # hand to the dispatcher
"""

from django.core.management.base import BaseCommand, CommandError

from extraction.models import MediaTask
from extraction.operations import redispatch
from extraction.pipeline import run_task


class Command(BaseCommand):
    help = 'Run the pipeline for a task synchronously, or dispatch it again'

    def add_arguments(self, parser):
        parser.add_argument('guid', type=str, help='Task GUID')
        parser.add_argument(
            '--dispatch',
            action='store_true',
            help='Use the dispatch strategies instead of running here',
        )

    def handle(self, *args, **options):
        guid = options['guid']
        if not MediaTask.objects.filter(guid=guid).exists():
            raise CommandError(f'Task not found: {guid}')

        if options['dispatch']:
            strategy = redispatch(guid)
            if strategy:
                self.stdout.write(self.style.SUCCESS(f'Dispatched via {strategy}'))
            else:
                self.stdout.write(self.style.ERROR('All dispatch strategies failed'))
            return

        status = run_task(guid, logger=self.stdout.write)
        task = MediaTask.objects.get(guid=guid)
        if status == MediaTask.STATUS_FAILED:
            self.stdout.write(self.style.ERROR(f'Failed: {task.error_message}'))
        else:
            self.stdout.write(self.style.SUCCESS(f'Status: {status} ({task.progress}%)'))
