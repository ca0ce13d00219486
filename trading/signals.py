"""
Django signals for model side effects.

- New users have their username reserved in UsernameHistory.
- New listings bump their company's aggregate listing counter.
"""

import logging

from django.db.models import F
from django.db.models.signals import post_save, pre_save
from django.dispatch import receiver

from .identity import ensure_not_retired, reserve_initial_username
from .models import Company, Listing, User

logger = logging.getLogger(__name__)


@receiver(pre_save, sender=User)
def reject_retired_username_on_registration(sender, instance, **kwargs):
    """
    Refuse to create a user whose username has ever been used before.

    Runs before the INSERT so that no account is written for a retired name.

    Raises:
        Conflict: If the username appears in UsernameHistory
    """
    if instance._state.adding and instance.username:
        ensure_not_retired(instance.username)


@receiver(post_save, sender=User)
def reserve_username_on_registration(sender, instance, created, **kwargs):
    """
    Write the initial username of a new user to UsernameHistory.

    Fixture loading (raw saves) is skipped.
    """
    if created and not kwargs.get('raw', False):
        reserve_initial_username(instance)


@receiver(post_save, sender=Listing)
def increment_company_listing_count(sender, instance, created, **kwargs):
    """
    Increment Company.total_listings when a listing is created.

    Uses update() with an F() expression so concurrent creations do not lose
    increments.
    """
    if not created or kwargs.get('raw', False):
        return

    Company.objects.filter(pk=instance.company_id).update(
        total_listings=F('total_listings') + 1
    )
    logger.debug(f"Company listing count incremented. Company ID: {instance.company_id}")
