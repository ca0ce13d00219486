"""
Listing lifecycle: creation, edits, boosting, closing, renewal, deletion and expiry.

Expiry is a read-time predicate (Listing.is_live / ListingQuerySet.live);
expire_stale_listings() only records it in the stored status and tells owners.
"""

import logging
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import F, Q
from django.utils import timezone

from .exceptions import ConcurrentModification, Conflict, InvalidOperation, NotFound, Unauthorized
from .models import Company, FeeTransaction, Listing, default_listing_expiry
from .negotiation import clean_price, clean_quantity
from .notifications import notify

logger = logging.getLogger(__name__)


def _listing_label(listing):
    return 'sell post' if listing.listing_type == 'sell' else 'buy request'


def _ensure_owner(listing, actor, action):
    if listing.owner_id != actor.id:
        raise Unauthorized(f'Not authorized to {action} this listing.')


def _apply(listing, changes):
    """Set attributes and write them with a version check, rolling back the instance on failure."""
    previous = {name: getattr(listing, name) for name in changes}
    for name, value in changes.items():
        setattr(listing, name, value)
    try:
        listing.save_guarded(list(changes))
    except ConcurrentModification:
        for name, value in previous.items():
            setattr(listing, name, value)
        logger.warning(
            f"Concurrent modification rejected. Listing ID: {listing.id}, Version: {listing.version}"
        )
        raise


def _notify_bidders_of_cancellation(listing):
    for bidder_id in listing.bidder_ids():
        notify(
            bidder_id,
            'listing_cancelled',
            'Listing Cancelled',
            f"The {_listing_label(listing)} for {listing.company_name} you "
            f"{'bid on' if listing.listing_type == 'sell' else 'made an offer on'} has been cancelled.",
            listing_id=listing.id,
            company_name=listing.company_name,
        )


def create_listing(owner, listing_type, company, price, quantity, min_lot=1,
                   description='', company_segmentation=None):
    """
    Create a sell post or buy request.

    Args:
        owner: User creating the listing
        listing_type: 'sell' or 'buy'
        company: Company instance or primary key
        price: Price per share
        quantity: Number of shares
        min_lot: Smallest tradeable lot (defaults to 1)
        description: Optional free text (max 500 characters)
        company_segmentation: Optional segment label

    Returns:
        Listing: The created listing

    Raises:
        NotFound: Company does not exist
        InvalidOperation: Inactive company or invalid terms
    """
    if listing_type not in ('sell', 'buy'):
        raise InvalidOperation("Listing type must be 'sell' or 'buy'.")

    if not isinstance(company, Company):
        try:
            company = Company.objects.get(pk=company)
        except (Company.DoesNotExist, ValueError, TypeError):
            raise NotFound('Company not found.')

    if not company.is_active:
        raise InvalidOperation('This company is not accepting new listings.')

    price = clean_price(price)
    quantity = clean_quantity(quantity)
    min_lot = clean_quantity(min_lot or 1)

    if min_lot > quantity:
        raise InvalidOperation('Minimum lot cannot exceed quantity.')

    listing = Listing(
        owner=owner,
        owner_username=owner.username,
        listing_type=listing_type,
        company=company,
        company_name=company.name,
        company_segmentation=company_segmentation or None,
        price=price,
        quantity=quantity,
        min_lot=min_lot,
        description=description or '',
        status='active',
        expires_at=default_listing_expiry(),
    )

    try:
        with transaction.atomic():
            listing.save()
    except ValidationError as e:
        raise InvalidOperation(' '.join(e.messages))

    logger.info(
        f"Listing created. "
        f"Listing ID: {listing.id}, Type: {listing_type}, "
        f"Company: {company.name} (ID: {company.id}), "
        f"Owner: {owner.username} (ID: {owner.id}), "
        f"Price: {price}, Quantity: {quantity}"
    )
    return listing


def update_listing(listing, actor, price=None, quantity=None, min_lot=None, description=None):
    """
    Edit the terms of a live listing.

    Only the fields passed (not None) are changed.

    Returns:
        list: Names of the fields that were updated

    Raises:
        Unauthorized: Actor is not the owner
        InvalidOperation: Listing not live or invalid terms
    """
    _ensure_owner(listing, actor, 'update')

    if not listing.is_live():
        raise InvalidOperation('Only active listings can be updated.')

    changes = {}
    if price is not None:
        changes['price'] = clean_price(price)
    if quantity is not None:
        changes['quantity'] = clean_quantity(quantity)
    if min_lot is not None:
        changes['min_lot'] = clean_quantity(min_lot)
    if description is not None:
        if len(description) > 500:
            raise InvalidOperation('Description cannot exceed 500 characters.')
        changes['description'] = description

    if changes.get('min_lot', listing.min_lot) > changes.get('quantity', listing.quantity):
        raise InvalidOperation('Minimum lot cannot exceed quantity.')

    if not changes:
        return []

    _apply(listing, changes)

    logger.info(
        f"Listing updated. Listing ID: {listing.id}, Fields: {', '.join(changes)}, Owner ID: {actor.id}"
    )
    return list(changes)


def boost_listing(listing, actor):
    """
    Boost a listing for BOOST_DURATION_HOURS from now.

    Boosting again restarts the window from the current time; windows never
    stack. A boost fee is recorded in the fee ledger.

    Returns:
        datetime: The new boost_expires_at

    Raises:
        Unauthorized: Actor is not the owner
    """
    _ensure_owner(listing, actor, 'boost')

    now = timezone.now()
    boost_expires_at = now + timedelta(hours=settings.BOOST_DURATION_HOURS)
    amount = Decimal(str(settings.BOOST_PRICE))

    with transaction.atomic():
        _apply(listing, {'is_boosted': True, 'boost_expires_at': boost_expires_at})

        FeeTransaction.objects.create(
            transaction_type='boost_fee',
            listing=listing,
            seller=actor,
            amount=amount,
            company_name=listing.company_name,
            description=f'Boost fee for {listing.listing_type} post',
        )

        notify(
            listing.owner_id,
            'boost_activated',
            'Listing Boosted',
            f"Your {_listing_label(listing)} for {listing.company_name} is boosted for "
            f"the next {settings.BOOST_DURATION_HOURS} hours.",
            listing_id=listing.id,
            amount=amount,
            company_name=listing.company_name,
        )

    logger.info(
        f"Listing boosted. Listing ID: {listing.id}, Owner ID: {actor.id}, "
        f"Boost Expires At: {boost_expires_at.isoformat()}, Fee: {amount}"
    )
    return boost_expires_at


def delete_listing(listing, actor):
    """
    Delete a listing and tell every distinct bidder that it is gone.

    Raises:
        Unauthorized: Actor is not the owner
        Conflict: A bid or offer on the listing has been accepted
    """
    _ensure_owner(listing, actor, 'delete')

    if listing.has_accepted_bid():
        logger.warning(
            f"Listing deletion blocked by accepted bid. Listing ID: {listing.id}, Owner ID: {actor.id}"
        )
        raise Conflict(
            'This listing has an accepted bid and cannot be deleted. Please contact admin.'
        )

    listing_id = listing.id
    with transaction.atomic():
        _notify_bidders_of_cancellation(listing)
        listing.delete_guarded()

    logger.info(f"Listing deleted. Listing ID: {listing_id}, Owner ID: {actor.id}")


def close_listing(listing, actor, status):
    """
    Mark an active listing as sold or cancelled.

    Cancelling notifies every distinct bidder and, like deletion, is blocked
    by an accepted bid.

    Raises:
        Unauthorized: Actor is not the owner
        InvalidOperation: Unknown target status or listing not active
        Conflict: Cancelling a listing with an accepted bid
    """
    if status not in ('sold', 'cancelled'):
        raise InvalidOperation("Status must be 'sold' or 'cancelled'.")

    _ensure_owner(listing, actor, 'close')

    if not listing.is_live():
        state = listing.status if listing.status != 'active' else 'expired'
        raise InvalidOperation(f'Listing is already {state}.')

    if status == 'cancelled' and listing.has_accepted_bid():
        raise Conflict(
            'This listing has an accepted bid and cannot be cancelled. Please contact admin.'
        )

    with transaction.atomic():
        _apply(listing, {'status': status})
        if status == 'cancelled':
            _notify_bidders_of_cancellation(listing)

    logger.info(f"Listing closed. Listing ID: {listing.id}, Status: {status}, Owner ID: {actor.id}")


def renew_listing(listing, actor):
    """
    Re-activate a listing for another full lifetime.

    Returns:
        datetime: The new expires_at

    Raises:
        Unauthorized: Actor is not the owner
        InvalidOperation: Listing was sold or cancelled
    """
    _ensure_owner(listing, actor, 'renew')

    if listing.status not in ('active', 'expired'):
        raise InvalidOperation('Only active or expired listings can be renewed.')

    _apply(listing, {'status': 'active', 'expires_at': default_listing_expiry()})

    logger.info(
        f"Listing renewed. Listing ID: {listing.id}, Expires At: {listing.expires_at.isoformat()}"
    )
    return listing.expires_at


def register_view(listing):
    """Count a detail view without touching the listing's version."""
    Listing.objects.filter(pk=listing.pk).update(views=F('views') + 1)


def marketplace_listings(viewer=None, listing_type=None, company_id=None, search=None,
                         sort='-created_at'):
    """
    Live listings for the marketplace, boosted first.

    Args:
        viewer: Authenticated user whose own listings are hidden, if any
        listing_type: Optional 'sell' or 'buy' filter
        company_id: Optional company filter
        search: Optional case-insensitive company name search
        sort: Secondary ordering ('-created_at', 'created_at', 'price', '-price')
    """
    queryset = Listing.objects.marketplace(sort=sort).select_related('company', 'owner')

    if listing_type:
        queryset = queryset.filter(listing_type=listing_type)
    if company_id:
        queryset = queryset.filter(company_id=company_id)
    if search:
        queryset = queryset.filter(company_name__icontains=search)
    if viewer is not None and viewer.is_authenticated:
        queryset = queryset.exclude(owner=viewer)

    return queryset


def owner_listings(owner, listing_type=None, status='active'):
    """
    The owner's listings, newest first.

    Filtering on 'active' applies the expiry predicate; filtering on
    'expired' includes active listings whose expiry has passed.
    """
    now = timezone.now()
    queryset = Listing.objects.filter(owner=owner).select_related('company')

    if listing_type:
        queryset = queryset.filter(listing_type=listing_type)

    if status == 'active':
        queryset = queryset.live(now)
    elif status == 'expired':
        queryset = queryset.filter(Q(status='expired') | Q(status='active', expires_at__lte=now))
    elif status:
        queryset = queryset.filter(status=status)

    return queryset.order_by('-created_at', '-id')


def expire_stale_listings(now=None, dry_run=False):
    """
    Record expiry for active listings past expires_at and notify their owners.

    Listings changed concurrently are skipped; the next run picks them up.

    Returns:
        int: Number of listings marked expired (or that would be, on a dry run)
    """
    if now is None:
        now = timezone.now()

    stale = Listing.objects.filter(status='active', expires_at__lte=now).order_by('id')
    if dry_run:
        return stale.count()

    expired = 0
    for listing in list(stale):
        try:
            with transaction.atomic():
                _apply(listing, {'status': 'expired'})
                notify(
                    listing.owner_id,
                    'listing_expired',
                    'Listing Expired',
                    f"Your {_listing_label(listing)} for {listing.company_name} has expired. "
                    f"Renew it to keep it on the marketplace.",
                    listing_id=listing.id,
                    company_name=listing.company_name,
                )
        except ConcurrentModification:
            continue
        expired += 1

    logger.info(f"Expired {expired} stale listings.")
    return expired
