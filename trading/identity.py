"""
Username retirement.

Every username a user registers with is written to UsernameHistory, and so is
every username a user changes away from. A name present in UsernameHistory can
never become anyone's active username again, including the user who retired
it.

The name a user changes *to* is only protected by the unique constraint on
User.username until it is itself retired by a later change.
"""

import logging
import random

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone

from .exceptions import Conflict, InvalidOperation
from .models import UsernameHistory
from .validators import USERNAME_MAX_LENGTH, validate_username_format

logger = logging.getLogger(__name__)

INITIAL_REGISTRATION = 'Initial registration'
USER_CHANGED_USERNAME = 'User changed username'

ADJECTIVES = [
    'happy', 'silly', 'brave', 'clever', 'swift', 'mighty', 'jolly', 'lucky',
    'sneaky', 'fuzzy', 'cosmic', 'turbo', 'zesty', 'witty', 'bouncy', 'cool',
]

NOUNS = [
    'panda', 'tiger', 'falcon', 'otter', 'koala', 'shark', 'eagle', 'llama',
    'penguin', 'dragon', 'badger', 'fox', 'yak', 'lion', 'whale', 'hawk',
]


def normalize_username(value):
    """Lowercase and trim a username candidate."""
    return (value or '').strip().lower()


def check_username_availability(candidate):
    """
    Tell whether a username could be assigned right now.

    A name is unavailable when it is malformed, when a live user holds
    it or when it appears anywhere in UsernameHistory. Read-only.

    Returns:
        bool: True if the username is free
    """
    username = normalize_username(candidate)
    if not username:
        return False

    try:
        validate_username_format(username)
    except ValidationError:
        return False

    User = get_user_model()
    if User.objects.filter(username__iexact=username).exists():
        return False

    return not UsernameHistory.objects.filter(username=username).exists()


def ensure_not_retired(username):
    """
    Raises:
        Conflict: If the username appears in UsernameHistory
    """
    if UsernameHistory.objects.filter(username=normalize_username(username)).exists():
        raise Conflict('This username was previously used and cannot be reassigned.')


def reserve_initial_username(user, username=None):
    """
    Record the username a user registered with.

    Called once when the account is created (see signals). Re-verifies that
    the name has never been used even though registration already checked.

    Returns:
        UsernameHistory: The history record

    Raises:
        Conflict: If the username is already in history
    """
    username = normalize_username(username or user.username)
    ensure_not_retired(username)

    try:
        with transaction.atomic():
            entry = UsernameHistory.objects.create(
                username=username,
                user=user,
                reason=INITIAL_REGISTRATION,
            )
    except IntegrityError:
        raise Conflict('This username was previously used and cannot be reassigned.')

    logger.info(f"Username reserved at registration. Username: {username}, User ID: {user.id}")
    return entry


def change_username(user, new_username):
    """
    Give a user a new username and retire the old one.

    Args:
        user: User changing their username
        new_username: Requested username (normalized to lowercase)

    Returns:
        User: The updated user

    Raises:
        InvalidOperation: The new username is malformed
        Conflict: The new username is retired or held by another user
    """
    username = normalize_username(new_username)

    try:
        validate_username_format(username)
    except ValidationError as e:
        raise InvalidOperation(' '.join(e.messages))

    old_username = user.username
    if username == old_username:
        return user

    ensure_not_retired(username)

    User = get_user_model()
    if User.objects.filter(username=username).exclude(pk=user.pk).exists():
        raise Conflict('Username already taken.')

    now = timezone.now()
    previous_log = list(user.previous_usernames or [])

    try:
        with transaction.atomic():
            # History is unique per name: the registration record, if any, is re-stamped
            UsernameHistory.objects.update_or_create(
                username=old_username,
                defaults={
                    'user': user,
                    'reason': USER_CHANGED_USERNAME,
                    'changed_at': now,
                },
            )

            user.previous_usernames = previous_log + [
                {'username': old_username, 'changed_at': now.isoformat()}
            ]
            user.username = username
            user.save(update_fields=['username', 'previous_usernames', 'updated_at'])
    except (IntegrityError, ValidationError) as e:
        user.username = old_username
        user.previous_usernames = previous_log
        logger.warning(
            f"Username change failed. User ID: {user.id}, Requested: {username}, Error: {e}"
        )
        raise Conflict('Username already taken.')

    logger.info(
        f"Username changed. User ID: {user.id}, Old Username: {old_username}, "
        f"New Username: {username}"
    )
    return user


def generate_username(max_attempts=50):
    """
    Build a random, available username such as 'jolly_otter427'.

    Raises:
        Conflict: If no free name was found within max_attempts
    """
    for _attempt in range(max_attempts):
        candidate = f"{random.choice(ADJECTIVES)}_{random.choice(NOUNS)}{random.randint(100, 999)}"
        candidate = candidate[:USERNAME_MAX_LENGTH]
        if check_username_availability(candidate):
            return candidate

    raise Conflict('Could not generate a unique username. Please choose one.')
