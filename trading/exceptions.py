"""
Typed business-rule errors raised by the marketplace services.

Views translate these into HTTP responses using ``status_code``; none of them
are retried, they describe rejected requests rather than transient faults.
"""

from rest_framework import status


class MarketplaceError(Exception):
    """Base class for marketplace business-rule violations."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'The request could not be completed.'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(MarketplaceError):
    """A referenced listing, bid, company or user does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    default_message = 'Not found.'


class Unauthorized(MarketplaceError):
    """The actor is not allowed to perform the operation (not the owner)."""

    status_code = status.HTTP_403_FORBIDDEN
    default_message = 'Not authorized.'


class InvalidOperation(MarketplaceError):
    """A state precondition does not hold."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'Invalid operation.'


class Conflict(MarketplaceError):
    """A uniqueness or blocking-relationship rule would be violated."""

    status_code = status.HTTP_409_CONFLICT
    default_message = 'Conflict.'


class ConcurrentModification(Conflict):
    """The listing changed since it was read; the write was not applied."""

    default_message = 'This listing was modified by another request. Please reload and try again.'
