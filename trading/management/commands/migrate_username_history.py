# Migrate Username History Management Command
from django.core.management.base import BaseCommand

from trading.identity import INITIAL_REGISTRATION
from trading.models import User, UsernameHistory


class Command(BaseCommand):
    help = 'Reserves the current username of every user that has no username history record.'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Run the command without saving changes to the database.',
        )
        parser.add_argument(
            '--batch-size',
            type=int,
            default=1000,
            help='Batch size for bulk processing.',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        batch_size = options['batch_size']

        self.stdout.write('Backfilling username history...')
        reserved = set(UsernameHistory.objects.values_list('username', flat=True))
        pending = []
        count = 0
        created = 0

        for user in User.objects.order_by('id').iterator(chunk_size=batch_size):
            count += 1
            username = (user.username or '').lower()
            if not username or username in reserved:
                continue

            reserved.add(username)
            created += 1
            if dry_run:
                self.stdout.write(f'  [DRY-RUN] User {user.id}: reserve {username}')
                continue

            pending.append(UsernameHistory(
                username=username,
                user=user,
                changed_at=user.date_joined,
                reason=INITIAL_REGISTRATION,
            ))
            if len(pending) >= batch_size:
                UsernameHistory.objects.bulk_create(pending, ignore_conflicts=True)
                pending = []

        if pending:
            UsernameHistory.objects.bulk_create(pending, ignore_conflicts=True)

        self.stdout.write(f'Processed {count} users total.')

        if dry_run:
            self.stdout.write(self.style.SUCCESS(
                f'Dry run completed. {created} usernames would be reserved. No changes saved.'
            ))
        else:
            self.stdout.write(self.style.SUCCESS(f'Reserved {created} usernames.'))
