"""
Management command to grant credits to a user.

Usage:
    ./manage.py grant_credits alice 100
    ./manage.py grant_credits alice 50 --days 30
"""

from datetime import timedelta

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from extraction import ledger


class Command(BaseCommand):
    help = 'Grant credits to a user'

    def add_arguments(self, parser):
        parser.add_argument('username', type=str, help='Username to credit')
        parser.add_argument('amount', type=int, help='Number of credits')
        parser.add_argument(
            '--days',
            type=int,
            default=None,
            help='Expire the grant after this many days (default: never)',
        )
        parser.add_argument('--description', type=str, default='', help='Ledger description')

    def handle(self, *args, **options):
        User = get_user_model()
        try:
            user = User.objects.get(username=options['username'])
        except User.DoesNotExist:
            raise CommandError(f"User not found: {options['username']}")

        if options['amount'] <= 0:
            raise CommandError('Amount must be positive')

        expires_at = None
        if options['days']:
            expires_at = timezone.now() + timedelta(days=options['days'])

        ledger.grant(
            user,
            options['amount'],
            expires_at=expires_at,
            description=options['description'] or 'Granted via management command',
        )
        balance = ledger.spendable_balance(user)
        self.stdout.write(
            self.style.SUCCESS(
                f"Granted {options['amount']} credits to {user.username}. Balance: {balance}"
            )
        )
