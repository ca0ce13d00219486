"""
Tests for the Listing, Company and UsernameHistory models.
"""

from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.test import TestCase
from django.utils import timezone

from trading.exceptions import ConcurrentModification
from trading.models import Company, Listing, UsernameHistory

User = get_user_model()


class ListingModelTestCase(TestCase):

    def setUp(self):
        self.owner = User.objects.create_user(
            username='owner',
            email='owner@example.com',
            password='testpass123'
        )
        self.company = Company.objects.create(name='Nova Pharma', sector='Healthcare')

    def build_listing(self, **kwargs):
        defaults = {
            'owner': self.owner,
            'owner_username': self.owner.username,
            'listing_type': 'sell',
            'company': self.company,
            'company_name': self.company.name,
            'price': Decimal('250.00'),
            'quantity': 100,
        }
        defaults.update(kwargs)
        return Listing(**defaults)

    def test_defaults(self):
        listing = self.build_listing()
        listing.save()

        self.assertEqual(listing.status, 'active')
        self.assertEqual(listing.min_lot, 1)
        self.assertEqual(listing.version, 0)
        self.assertEqual(listing.views, 0)
        self.assertGreater(listing.expires_at, timezone.now() + timedelta(days=29))
        self.assertEqual(str(listing), 'Sell 100 x Nova Pharma @ 250.00')

    def test_clean_rejects_invalid_terms(self):
        invalid = [
            {'price': Decimal('0')},
            {'price': Decimal('-5.00')},
            {'quantity': 0},
            {'quantity': 10, 'min_lot': 11},
            {'bids': [{'id': 'a'}], 'offers': [{'id': 'b'}]},
            {'listing_type': 'sell', 'offers': [{'id': 'b'}]},
            {'listing_type': 'buy', 'bids': [{'id': 'a'}]},
        ]
        for kwargs in invalid:
            with self.subTest(kwargs=kwargs):
                with self.assertRaises(ValidationError):
                    self.build_listing(**kwargs).save()

        self.assertEqual(Listing.objects.count(), 0)

    def test_bid_field_follows_type(self):
        sell = self.build_listing(listing_type='sell')
        buy = self.build_listing(listing_type='buy')

        self.assertEqual(sell.bid_field, 'bids')
        self.assertEqual(sell.bid_noun, 'bid')
        self.assertEqual(buy.bid_field, 'offers')
        self.assertEqual(buy.bid_noun, 'offer')

    def test_is_live(self):
        now = timezone.now()
        listing = self.build_listing(expires_at=now + timedelta(minutes=1))
        self.assertTrue(listing.is_live(now))
        self.assertFalse(listing.is_live(now + timedelta(minutes=2)))

        listing.status = 'sold'
        self.assertFalse(listing.is_live(now))

    def test_live_queryset_applies_expiry(self):
        live = self.build_listing()
        live.save()
        timed_out = self.build_listing(expires_at=timezone.now() - timedelta(seconds=1))
        timed_out.save()

        self.assertEqual(list(Listing.objects.live()), [live])

    def test_boost_window(self):
        now = timezone.now()
        listing = self.build_listing(is_boosted=True, boost_expires_at=now + timedelta(hours=1))
        self.assertTrue(listing.is_boost_active(now))
        self.assertFalse(listing.is_boost_active(now + timedelta(hours=2)))

        listing.is_boosted = False
        self.assertFalse(listing.is_boost_active(now))

    def test_bid_helpers(self):
        listing = self.build_listing(bids=[
            {'id': 'a1', 'bidder_id': 7, 'status': 'pending'},
            {'id': 'b2', 'bidder_id': 9, 'status': 'accepted'},
            {'id': 'c3', 'bidder_id': 7, 'status': 'rejected'},
        ])

        self.assertEqual(listing.find_bid('b2')['bidder_id'], 9)
        self.assertIsNone(listing.find_bid('zz'))
        self.assertTrue(listing.has_accepted_bid())
        self.assertEqual(listing.bidder_ids(), [7, 9])

    def test_save_guarded_increments_version(self):
        listing = self.build_listing()
        listing.save()

        listing.price = Decimal('260.00')
        listing.save_guarded(['price'])

        self.assertEqual(listing.version, 1)
        listing.refresh_from_db()
        self.assertEqual(listing.price, Decimal('260.00'))
        self.assertEqual(listing.version, 1)

    def test_save_guarded_rejects_stale_version(self):
        listing = self.build_listing()
        listing.save()
        stale = Listing.objects.get(pk=listing.pk)

        listing.quantity = 80
        listing.save_guarded(['quantity'])

        stale.quantity = 60
        with self.assertRaises(ConcurrentModification):
            stale.save_guarded(['quantity'])

        listing.refresh_from_db()
        self.assertEqual(listing.quantity, 80)
        self.assertEqual(listing.version, 1)

    def test_delete_guarded(self):
        listing = self.build_listing()
        listing.save()
        stale = Listing.objects.get(pk=listing.pk)

        listing.description = 'Lock-in ends in March'
        listing.save_guarded(['description'])

        with self.assertRaises(ConcurrentModification):
            stale.delete_guarded()
        self.assertTrue(Listing.objects.filter(pk=listing.pk).exists())

        listing.delete_guarded()
        self.assertFalse(Listing.objects.filter(pk=listing.pk).exists())

    def test_company_counter_signal(self):
        self.build_listing().save()
        self.build_listing(listing_type='buy').save()

        self.company.refresh_from_db()
        self.assertEqual(self.company.total_listings, 2)

        # Updates do not count as new listings
        listing = Listing.objects.first()
        listing.description = 'edited'
        listing.save()
        self.company.refresh_from_db()
        self.assertEqual(self.company.total_listings, 2)


class CompanyModelTestCase(TestCase):

    def test_blank_isin_stored_as_null(self):
        first = Company.objects.create(name='Alpha', sector='SaaS', isin='')
        second = Company.objects.create(name='Beta', sector='SaaS', isin='')

        self.assertIsNone(first.isin)
        self.assertIsNone(second.isin)

    def test_requires_name_and_sector(self):
        with self.assertRaises(ValidationError):
            Company.objects.create(name='   ', sector='SaaS')
        with self.assertRaises(ValidationError):
            Company.objects.create(name='Gamma', sector='')


class UsernameHistoryModelTestCase(TestCase):

    def test_username_normalized_on_save(self):
        entry = UsernameHistory.objects.create(username='  MixedCase ')
        self.assertEqual(entry.username, 'mixedcase')

    def test_history_survives_user_deletion(self):
        user = User.objects.create_user(
            username='leaver',
            email='leaver@example.com',
            password='testpass123'
        )
        user.delete()

        entry = UsernameHistory.objects.get(username='leaver')
        self.assertIsNone(entry.user)
