"""
Tests for the expire_listings and migrate_username_history management commands.
"""

from datetime import timedelta
from io import StringIO

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone

from trading.identity import INITIAL_REGISTRATION
from trading.lifecycle import create_listing
from trading.models import Company, Listing, Notification, UsernameHistory

User = get_user_model()


class ExpireListingsCommandTestCase(TestCase):

    def setUp(self):
        self.owner = User.objects.create_user(
            username='owner',
            email='owner@example.com',
            password='testpass123'
        )
        company = Company.objects.create(name='Lumen Energy', sector='Energy')
        self.stale = create_listing(self.owner, 'sell', company, '75.00', 40)
        self.fresh = create_listing(self.owner, 'buy', company, '70.00', 40)
        Listing.objects.filter(pk=self.stale.pk).update(expires_at=timezone.now() - timedelta(days=1))

    def test_marks_stale_listings_expired(self):
        out = StringIO()
        with self.captureOnCommitCallbacks(execute=True):
            call_command('expire_listings', stdout=out)

        self.assertIn('Marked 1 listings as expired.', out.getvalue())
        self.stale.refresh_from_db()
        self.fresh.refresh_from_db()
        self.assertEqual(self.stale.status, 'expired')
        self.assertEqual(self.fresh.status, 'active')
        self.assertTrue(
            Notification.objects.filter(recipient=self.owner, notification_type='listing_expired').exists()
        )

    def test_dry_run(self):
        out = StringIO()
        call_command('expire_listings', '--dry-run', stdout=out)

        output = out.getvalue()
        self.assertIn('[DRY-RUN] 1 listings would be marked expired.', output)
        self.assertIn('Dry run completed. No changes saved.', output)
        self.stale.refresh_from_db()
        self.assertEqual(self.stale.status, 'active')

    def test_second_run_finds_nothing(self):
        call_command('expire_listings', stdout=StringIO())

        out = StringIO()
        call_command('expire_listings', stdout=out)

        self.assertIn('Marked 0 listings as expired.', out.getvalue())


class MigrateUsernameHistoryCommandTestCase(TestCase):

    def setUp(self):
        self.users = [
            User.objects.create_user(
                username=f'legacy_{index}',
                email=f'legacy{index}@example.com',
                password='testpass123'
            )
            for index in range(3)
        ]
        # Simulate accounts created before usernames were reserved
        UsernameHistory.objects.all().delete()

    def test_backfills_missing_history(self):
        out = StringIO()
        call_command('migrate_username_history', '--batch-size', '2', stdout=out)

        self.assertIn('Reserved 3 usernames.', out.getvalue())
        for user in self.users:
            entry = UsernameHistory.objects.get(username=user.username)
            self.assertEqual(entry.user, user)
            self.assertEqual(entry.reason, INITIAL_REGISTRATION)

    def test_skips_reserved_usernames(self):
        call_command('migrate_username_history', stdout=StringIO())

        out = StringIO()
        call_command('migrate_username_history', stdout=out)

        self.assertIn('Reserved 0 usernames.', out.getvalue())
        self.assertEqual(UsernameHistory.objects.count(), 3)

    def test_dry_run(self):
        out = StringIO()
        call_command('migrate_username_history', '--dry-run', stdout=out)

        output = out.getvalue()
        self.assertIn('[DRY-RUN] User', output)
        self.assertIn('3 usernames would be reserved', output)
        self.assertEqual(UsernameHistory.objects.count(), 0)
