"""
Tests for the admin hooks that guard listings and retired usernames.
"""

from decimal import Decimal
from unittest import mock

from django.contrib import admin
from django.contrib.auth import get_user_model
from django.contrib.messages import get_messages
from django.contrib.messages.storage.fallback import FallbackStorage
from django.test import RequestFactory, TestCase

from trading.admin import ListingAdmin, UserAdminCreationForm
from trading.identity import change_username
from trading.lifecycle import create_listing
from trading.models import Company, Listing

User = get_user_model()


class ListingAdminSaveTestCase(TestCase):

    def setUp(self):
        self.staff = User.objects.create_superuser(
            username='staffer',
            email='staff@example.com',
            password='testpass123'
        )
        self.owner = User.objects.create_user(
            username='owner',
            email='owner@example.com',
            password='testpass123'
        )
        company = Company.objects.create(name='Orbit Foods', sector='FMCG')
        self.listing = create_listing(self.owner, 'sell', company, '100.00', 50)
        self.model_admin = ListingAdmin(Listing, admin.site)

    def make_request(self):
        request = RequestFactory().post('/admin/trading/listing/')
        request.user = self.staff
        setattr(request, 'session', 'session')
        setattr(request, '_messages', FallbackStorage(request))
        return request

    def test_change_bumps_version(self):
        obj = Listing.objects.get(pk=self.listing.pk)
        obj.price = Decimal('120.00')
        form = mock.Mock(changed_data=['price'])

        self.model_admin.save_model(self.make_request(), obj, form, change=True)

        stored = Listing.objects.get(pk=self.listing.pk)
        self.assertEqual(stored.price, Decimal('120.00'))
        self.assertEqual(stored.version, self.listing.version + 1)
        self.assertEqual(obj.version, stored.version)

    def test_stale_change_is_refused(self):
        stale = Listing.objects.get(pk=self.listing.pk)

        # Someone else writes the row after the admin page was loaded
        current = Listing.objects.get(pk=self.listing.pk)
        current.quantity = 40
        current.save_guarded(['quantity'])

        stale.price = Decimal('1.00')
        request = self.make_request()
        self.model_admin.save_model(request, stale, mock.Mock(changed_data=['price']), change=True)

        stored = Listing.objects.get(pk=self.listing.pk)
        self.assertEqual(stored.price, Decimal('100.00'))
        self.assertEqual(stored.quantity, 40)
        self.assertEqual(stored.version, current.version)

        errors = [str(message) for message in get_messages(request)]
        self.assertEqual(len(errors), 1)
        self.assertIn('modified by another request', errors[0])


class UserAdminCreationFormTestCase(TestCase):

    def form_data(self, username):
        return {
            'username': username,
            'email': f'{username.lower()}@example.com',
            'full_name': 'Admin Created',
            'password1': 'SecurePass123!',
            'password2': 'SecurePass123!',
        }

    def test_retired_username_is_a_form_error(self):
        carol = User.objects.create_user(
            username='carol',
            email='carol@example.com',
            password='testpass123'
        )
        change_username(carol, 'carol_new')

        form = UserAdminCreationForm(data=self.form_data('Carol'))

        self.assertFalse(form.is_valid())
        self.assertIn('username', form.errors)
        self.assertFalse(User.objects.filter(email='carol@example.com', username='carol').exists())

    def test_fresh_username_is_accepted(self):
        form = UserAdminCreationForm(data=self.form_data('Dana_Admin'))

        form.is_valid()

        self.assertNotIn('username', form.errors)
        self.assertEqual(form.cleaned_data['username'], 'dana_admin')
