"""Management command to delete expired result-cache entries."""

from django.core.management.base import BaseCommand

from extraction import cache


class Command(BaseCommand):
    help = 'Delete expired result cache entries'

    def handle(self, *args, **options):
        deleted = cache.purge_expired()
        self.stdout.write(self.style.SUCCESS(f'Deleted {deleted} expired cache entries'))
