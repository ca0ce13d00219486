"""
Bid/offer negotiation on a listing.

A sell post collects bids and a buy request collects offers; both are the same
embedded structure and go through the same state machine:

    pending   -> accepted | rejected | countered
    countered -> accepted | rejected | countered
    accepted, rejected, expired: terminal

Only the listing owner accepts, rejects or counters. Accepting a bid does not
close its siblings or the listing itself; closing is a lifecycle action.
Every change is written with Listing.save_guarded() and notifies the other
party once the change has committed.
"""

import copy
import logging
import uuid
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from .exceptions import ConcurrentModification, InvalidOperation, NotFound, Unauthorized
from .models import Listing
from .notifications import format_amount, notify

logger = logging.getLogger(__name__)


def clean_price(price):
    """
    Coerce a price to a positive Decimal with two decimal places.

    Raises:
        InvalidOperation: If the price is malformed, not positive or finer than a paisa
    """
    try:
        value = Decimal(str(price))
    except (ArithmeticError, TypeError, ValueError):
        raise InvalidOperation('Price must be a number.')

    if not value.is_finite() or value <= 0:
        raise InvalidOperation('Price must be greater than 0.')

    if value != value.quantize(Decimal('0.01')):
        raise InvalidOperation('Price cannot have more than 2 decimal places.')

    return value.quantize(Decimal('0.01'))


def clean_quantity(quantity):
    """
    Coerce a share quantity to a positive integer.

    Raises:
        InvalidOperation: If the quantity is missing, fractional or not positive
    """
    if isinstance(quantity, bool):
        raise InvalidOperation('Quantity must be a whole number.')

    try:
        value = Decimal(str(quantity))
    except (ArithmeticError, TypeError, ValueError):
        raise InvalidOperation('Quantity must be a whole number.')

    if not value.is_finite() or value != value.to_integral_value():
        raise InvalidOperation('Quantity must be a whole number.')

    if value <= 0:
        raise InvalidOperation('Quantity must be greater than 0.')

    return int(value)


def _locate_bid(listing, bid_id, actor, action):
    """
    Check ownership and find a bid in a private copy of the listing's collection.

    Returns:
        tuple: (copied collection, bid dict inside that copy)
    """
    if listing.owner_id != actor.id:
        raise Unauthorized(f'Not authorized to {action} this {listing.bid_noun}.')

    collection = copy.deepcopy(listing.bid_collection)
    for bid in collection:
        if bid.get('id') == str(bid_id):
            return collection, bid

    raise NotFound(f'{listing.bid_noun.capitalize()} not found.')


def _ensure_open(listing, bid):
    if bid.get('status') in Listing.TERMINAL_BID_STATUSES:
        raise InvalidOperation(
            f"This {listing.bid_noun} has already been {bid['status']} and cannot be changed."
        )


def _commit(listing, collection):
    """Swap in the new collection and persist it, restoring the old one on failure."""
    field = listing.bid_field
    previous = getattr(listing, field)
    setattr(listing, field, collection)
    try:
        listing.save_guarded([field])
    except ConcurrentModification:
        setattr(listing, field, previous)
        logger.warning(
            f"Concurrent modification rejected. Listing ID: {listing.id}, Version: {listing.version}"
        )
        raise


def place_bid(listing, bidder, price, quantity, message=''):
    """
    Place a bid on a sell post, or make an offer on a buy request.

    Args:
        listing: Listing being bid on
        bidder: User placing the bid (must not own the listing)
        price: Proposed price per share
        quantity: Proposed number of shares
        message: Optional note to the owner

    Returns:
        dict: The new embedded bid

    Raises:
        InvalidOperation: Self-bid, listing not live, or invalid terms
        ConcurrentModification: The listing changed since it was read
    """
    if listing.owner_id == bidder.id:
        raise InvalidOperation(f'Cannot {"bid on" if listing.listing_type == "sell" else "make an offer on"} your own listing.')

    if not listing.is_live():
        raise InvalidOperation('Listing is not active.')

    price = clean_price(price)
    quantity = clean_quantity(quantity)

    bid = {
        'id': uuid.uuid4().hex,
        'bidder_id': bidder.id,
        'bidder_username': bidder.username,
        'price': str(price),
        'quantity': quantity,
        'message': message or '',
        'status': 'pending',
        'counter_history': [],
        'created_at': timezone.now().isoformat(),
    }

    is_sell = listing.listing_type == 'sell'

    with transaction.atomic():
        collection = copy.deepcopy(listing.bid_collection)
        collection.append(bid)
        _commit(listing, collection)

        notify(
            listing.owner_id,
            'new_bid' if is_sell else 'new_offer',
            'New Bid Received' if is_sell else 'New Offer Received',
            f"@{bidder.username} {'placed a bid' if is_sell else 'made an offer'} of "
            f"{format_amount(price)} for {quantity} shares",
            listing_id=listing.id,
            bid_id=bid['id'],
            from_user=bidder.username,
            amount=bid['price'],
            quantity=quantity,
            company_name=listing.company_name,
        )

    logger.info(
        f"{listing.bid_noun.capitalize()} placed. "
        f"Listing ID: {listing.id}, Bid ID: {bid['id']}, "
        f"Bidder: {bidder.username} (ID: {bidder.id}), "
        f"Price: {price}, Quantity: {quantity}"
    )
    return bid


def accept_bid(listing, bid_id, actor):
    """
    Accept a bid or offer. Sibling bids and the listing status are untouched.

    Returns:
        dict: The updated bid

    Raises:
        Unauthorized: Actor is not the listing owner
        NotFound: No such bid in the listing's collection
        InvalidOperation: The bid is already in a terminal state
    """
    return _settle(listing, bid_id, actor, 'accepted')


def reject_bid(listing, bid_id, actor):
    """
    Reject a bid or offer.

    Same preconditions and failures as accept_bid().
    """
    return _settle(listing, bid_id, actor, 'rejected')


def _settle(listing, bid_id, actor, new_status):
    action = 'accept' if new_status == 'accepted' else 'reject'
    noun = listing.bid_noun

    with transaction.atomic():
        collection, bid = _locate_bid(listing, bid_id, actor, action)
        _ensure_open(listing, bid)

        old_status = bid['status']
        bid['status'] = new_status
        _commit(listing, collection)

        if new_status == 'accepted':
            title = f'{noun.capitalize()} Accepted!'
            message = (
                f"Your {noun} of {format_amount(bid['price'])} for {bid['quantity']} shares "
                f"of {listing.company_name} has been accepted!"
            )
        else:
            title = f'{noun.capitalize()} Rejected'
            message = (
                f"Your {noun} of {format_amount(bid['price'])} for {bid['quantity']} shares "
                f"of {listing.company_name} has been rejected."
            )

        notify(
            bid['bidder_id'],
            f'{noun}_{new_status}',
            title,
            message,
            listing_id=listing.id,
            bid_id=bid['id'],
            amount=bid['price'],
            quantity=bid['quantity'],
            company_name=listing.company_name,
        )

    logger.info(
        f"{noun.capitalize()} {new_status}. "
        f"Listing ID: {listing.id}, Bid ID: {bid['id']}, "
        f"Old Status: {old_status}, Owner ID: {actor.id}"
    )
    return bid


def counter_bid(listing, bid_id, actor, price, quantity=None, message=''):
    """
    Counter a bid or offer with new terms.

    Appends a counter round (numbered from 1 without gaps), moves the bid's
    current terms to the countered ones and marks it 'countered'. The listing
    owner is always the countering side.

    Args:
        listing: Listing holding the bid
        bid_id: Id of the embedded bid
        actor: User countering (must own the listing)
        price: Counter price per share
        quantity: Counter quantity; the bid's current quantity when omitted
        message: Optional note to the bidder

    Returns:
        int: The new round number

    Raises:
        Unauthorized: Actor is not the listing owner
        NotFound: No such bid in the listing's collection
        InvalidOperation: Terminal bid or invalid terms
    """
    with transaction.atomic():
        collection, bid = _locate_bid(listing, bid_id, actor, 'counter')
        _ensure_open(listing, bid)

        price = clean_price(price)
        if quantity is not None:
            quantity = clean_quantity(quantity)
        countered_quantity = quantity if quantity is not None else bid['quantity']

        history = bid.setdefault('counter_history', [])
        round_number = len(history) + 1
        history.append({
            'round': round_number,
            'by': 'seller',
            'price': str(price),
            'quantity': countered_quantity,
            'message': message or '',
            'timestamp': timezone.now().isoformat(),
        })

        bid['status'] = 'countered'
        bid['price'] = str(price)
        bid['quantity'] = countered_quantity
        _commit(listing, collection)

        notify(
            bid['bidder_id'],
            'counter_offer',
            'Counter Offer Received',
            f"Counter offer on {listing.company_name}: {format_amount(price)} "
            f"for {countered_quantity} shares",
            listing_id=listing.id,
            bid_id=bid['id'],
            amount=bid['price'],
            quantity=countered_quantity,
            company_name=listing.company_name,
            round=round_number,
        )

    logger.info(
        f"{listing.bid_noun.capitalize()} countered. "
        f"Listing ID: {listing.id}, Bid ID: {bid['id']}, Round: {round_number}, "
        f"Price: {price}, Quantity: {countered_quantity}"
    )
    return round_number
