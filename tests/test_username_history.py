"""
Tests for username retirement.

Test Coverage:
- Registration reserves the initial username
- Changing a username retires the old one for everyone, including its holder
- Availability checks against live users and history
- Random username generation
"""

from unittest import mock

from django.contrib.auth import get_user_model
from django.test import TestCase

from trading import identity
from trading.exceptions import Conflict, InvalidOperation
from trading.identity import (
    INITIAL_REGISTRATION,
    USER_CHANGED_USERNAME,
    change_username,
    check_username_availability,
    generate_username,
)
from trading.models import UsernameHistory

User = get_user_model()


def make_user(username, email=None):
    return User.objects.create_user(
        username=username,
        email=email or f'{username}@example.com',
        password='testpass123'
    )


class RegistrationReservationTestCase(TestCase):

    def test_registration_reserves_username(self):
        user = make_user('alice')

        entry = UsernameHistory.objects.get(username='alice')
        self.assertEqual(entry.user, user)
        self.assertEqual(entry.reason, INITIAL_REGISTRATION)
        self.assertEqual(user.previous_usernames, [])

    def test_uppercase_username_is_stored_lowercase(self):
        user = make_user('CarolDev', email='carol@example.com')

        self.assertEqual(user.username, 'caroldev')
        self.assertTrue(UsernameHistory.objects.filter(username='caroldev').exists())

    def test_cannot_register_retired_username(self):
        UsernameHistory.objects.create(username='ghost', reason=USER_CHANGED_USERNAME)

        with self.assertRaises(Conflict):
            make_user('ghost')

        self.assertFalse(User.objects.filter(username='ghost').exists())


class ChangeUsernameTestCase(TestCase):

    def setUp(self):
        self.alice = make_user('alice')

    def test_change_retires_old_username(self):
        change_username(self.alice, 'bob')

        self.alice.refresh_from_db()
        self.assertEqual(self.alice.username, 'bob')

        entry = UsernameHistory.objects.get(username='alice')
        self.assertEqual(entry.user, self.alice)
        self.assertEqual(entry.reason, USER_CHANGED_USERNAME)

        self.assertEqual(len(self.alice.previous_usernames), 1)
        self.assertEqual(self.alice.previous_usernames[0]['username'], 'alice')
        self.assertIn('changed_at', self.alice.previous_usernames[0])

        # The new name is not retired until it is changed away from
        self.assertFalse(
            UsernameHistory.objects.filter(username='bob', reason=USER_CHANGED_USERNAME).exists()
        )

    def test_nobody_can_register_retired_name(self):
        change_username(self.alice, 'bob')

        with self.assertRaises(Conflict):
            make_user('alice', email='someone@example.com')

        self.assertFalse(check_username_availability('alice'))

    def test_user_cannot_take_back_own_old_name(self):
        change_username(self.alice, 'bob')

        with self.assertRaises(Conflict):
            change_username(self.alice, 'alice')

        self.alice.refresh_from_db()
        self.assertEqual(self.alice.username, 'bob')

    def test_cannot_take_live_username(self):
        make_user('dave')

        with self.assertRaises(Conflict):
            change_username(self.alice, 'dave')

    def test_invalid_format(self):
        for candidate in ('ab', 'has space', 'x' * 21, 'bad-dash'):
            with self.subTest(candidate=candidate):
                with self.assertRaises(InvalidOperation):
                    change_username(self.alice, candidate)

        self.alice.refresh_from_db()
        self.assertEqual(self.alice.username, 'alice')

    def test_same_username_is_a_no_op(self):
        change_username(self.alice, 'ALICE')

        self.alice.refresh_from_db()
        self.assertEqual(self.alice.previous_usernames, [])

    def test_successive_changes_build_log(self):
        change_username(self.alice, 'bob')
        change_username(self.alice, 'carol')

        self.alice.refresh_from_db()
        self.assertEqual(
            [entry['username'] for entry in self.alice.previous_usernames],
            ['alice', 'bob']
        )
        self.assertEqual(
            set(UsernameHistory.objects.filter(user=self.alice).values_list('username', flat=True)),
            {'alice', 'bob'}
        )
        self.assertEqual(self.alice.username, 'carol')


class AvailabilityTestCase(TestCase):

    def test_free_username(self):
        self.assertTrue(check_username_availability('fresh_name'))

    def test_live_username_any_case(self):
        make_user('erin')
        self.assertFalse(check_username_availability('erin'))
        self.assertFalse(check_username_availability('ERIN'))

    def test_retired_username(self):
        erin = make_user('erin')
        change_username(erin, 'erin_two')

        self.assertFalse(check_username_availability('erin'))

    def test_malformed_username(self):
        for candidate in ('a!', 'ab', 'bad-dash', 'x' * 21):
            with self.subTest(candidate=candidate):
                self.assertFalse(check_username_availability(candidate))

    def test_empty_username(self):
        self.assertFalse(check_username_availability(''))
        self.assertFalse(check_username_availability(None))


class GenerateUsernameTestCase(TestCase):

    def test_generated_username_is_available(self):
        username = generate_username()

        self.assertTrue(check_username_availability(username))
        user = make_user(username, email='generated@example.com')
        self.assertEqual(user.username, username)

    def test_gives_up_after_max_attempts(self):
        with mock.patch.object(identity, 'check_username_availability', return_value=False) as check:
            with self.assertRaises(Conflict):
                generate_username(max_attempts=5)

        self.assertEqual(check.call_count, 5)
