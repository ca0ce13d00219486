"""
Best-effort notification dispatch.

Notifications are scheduled with transaction.on_commit so that one is only
written once the state transition that produced it has committed. Delivery
happens at most once and its failure is logged, never raised: a lost
notification must not undo a bid or listing change.
"""

import logging
from functools import partial

from django.db import DatabaseError, transaction

from .models import Notification

logger = logging.getLogger(__name__)


def notify(recipient_id, notification_type, title, message, action_url='', **data):
    """
    Schedule a notification for delivery after the current transaction commits.

    Outside of a transaction the notification is delivered immediately.

    Args:
        recipient_id: Primary key of the user to notify
        notification_type: One of Notification.TYPE_CHOICES
        title: Short title
        message: Human readable message
        action_url: Optional link for the client
        **data: Structured payload (listing_id, bid_id, amount, ...)
    """
    transaction.on_commit(
        partial(deliver, recipient_id, notification_type, title, message, action_url, data)
    )


def deliver(recipient_id, notification_type, title, message, action_url, data):
    """
    Create the Notification row, swallowing database failures.

    Runs inside its own savepoint so that a failed insert cannot break an
    enclosing transaction.

    Returns:
        Notification or None: The created notification, None if delivery failed
    """
    try:
        with transaction.atomic():
            notification = Notification.objects.create(
                recipient_id=recipient_id,
                notification_type=notification_type,
                title=title,
                message=message,
                action_url=action_url,
                data=data,
            )
    except DatabaseError as e:
        logger.error(
            f"Notification delivery failed. "
            f"Recipient ID: {recipient_id}, Type: {notification_type}, Error: {e}",
            exc_info=True
        )
        return None

    logger.debug(
        f"Notification delivered. "
        f"ID: {notification.id}, Recipient ID: {recipient_id}, Type: {notification_type}"
    )
    return notification


def format_amount(amount):
    """Render a share price for notification text."""
    return f"₹{amount}"
