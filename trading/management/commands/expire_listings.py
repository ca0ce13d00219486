# Expire Listings Management Command
from django.core.management.base import BaseCommand
from django.utils import timezone

from trading.lifecycle import expire_stale_listings


class Command(BaseCommand):
    help = 'Marks active listings past their expiry as expired and notifies their owners.'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Report how many listings would expire without saving changes.',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        now = timezone.now()

        self.stdout.write('Checking for expired listings...')
        count = expire_stale_listings(now=now, dry_run=dry_run)

        if dry_run:
            self.stdout.write(f'  [DRY-RUN] {count} listings would be marked expired.')
            self.stdout.write(self.style.SUCCESS('Dry run completed. No changes saved.'))
        else:
            self.stdout.write(self.style.SUCCESS(f'Marked {count} listings as expired.'))
