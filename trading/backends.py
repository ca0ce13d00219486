"""
Custom authentication backend accepting a username or an email address.
"""

from django.contrib.auth.backends import ModelBackend
from django.contrib.auth import get_user_model
from django.db.models import Q

User = get_user_model()


class UsernameOrEmailBackend(ModelBackend):
    """
    Authentication backend that allows users to log in with either their
    username or their email address. Banned users cannot authenticate.
    """

    def authenticate(self, request, username=None, password=None, **kwargs):
        """
        Authenticate user by username or email (case-insensitive).

        Args:
            request: HTTP request object
            username: Username or email address
            password: User password
            **kwargs: Additional keyword arguments

        Returns:
            User object if authentication successful, None otherwise
        """
        identifier = kwargs.get('email', username)

        if identifier is None or password is None:
            return None

        identifier = identifier.strip().lower()

        try:
            user = User.objects.get(Q(username=identifier) | Q(email=identifier))
        except User.DoesNotExist:
            # Run the default password hasher once to reduce the timing
            # difference between an existing and a nonexistent user
            User().set_password(password)
            return None
        except User.MultipleObjectsReturned:
            # A username that equals someone else's email; prefer the username match
            user = User.objects.get(username=identifier)

        if user.is_banned:
            return None

        if user.check_password(password) and self.user_can_authenticate(user):
            return user

        return None

    def get_user(self, user_id):
        try:
            return User.objects.get(pk=user_id)
        except User.DoesNotExist:
            return None
