"""
Management command to fail tasks whose heartbeat stopped.

Usage:
    ./manage.py sweep_tasks
    ./manage.py sweep_tasks --timeout 300
"""

from django.core.management.base import BaseCommand

from extraction import watchdog


class Command(BaseCommand):
    help = 'Fail and refund tasks with no progress for longer than the watchdog timeout'

    def add_arguments(self, parser):
        parser.add_argument(
            '--timeout',
            type=int,
            default=None,
            help='Staleness threshold in seconds (default: VIDSCRIBE_WATCHDOG_TIMEOUT_SECONDS)',
        )

    def handle(self, *args, **options):
        swept = watchdog.sweep(timeout_seconds=options['timeout'])
        if swept:
            self.stdout.write(self.style.WARNING(f'Failed {swept} stale task(s)'))
        else:
            self.stdout.write(self.style.SUCCESS('No stale tasks'))
