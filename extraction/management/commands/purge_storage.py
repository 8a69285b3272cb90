"""Management command to delete stored media whose link expired."""

from django.core.management.base import BaseCommand

from extraction import retention


class Command(BaseCommand):
    help = 'Delete expired stored media and clear the task storage references'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Only print storage statistics, delete nothing',
        )
        parser.add_argument(
            '--limit',
            type=int,
            default=None,
            help='Maximum references to purge (default from VIDSCRIBE_STORAGE_PURGE_BATCH)',
        )

    def handle(self, *args, **options):
        if not options['dry_run']:
            purged = retention.purge_expired_storage(
                limit=options['limit'], logger=lambda msg: self.stdout.write(msg)
            )
            self.stdout.write(self.style.SUCCESS(f'Purged {purged} expired storage references'))

        stats = retention.storage_stats()
        self.stdout.write(
            f"With media: {stats['total']}, expired: {stats['expired']}, active: {stats['active']}"
        )
