"""
REST API views for the pre-IPO share marketplace.

Views authenticate, validate request shape with serializers and hand the
request to the negotiation, lifecycle and identity services. Business-rule
failures surface as MarketplaceError and are answered with
{'detail': message} at the error's status code.
"""

import logging

from django.db import IntegrityError, transaction
from rest_framework import generics, status
from rest_framework.generics import ListAPIView
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from . import identity, lifecycle, negotiation
from .exceptions import MarketplaceError, NotFound
from .models import Company, Listing, Notification
from .serializers import (
    BidCreateSerializer,
    CompanySerializer,
    CounterSerializer,
    ListingCreateSerializer,
    ListingSerializer,
    ListingStatusSerializer,
    ListingUpdateSerializer,
    NotificationSerializer,
    UserProfileSerializer,
    UserProfileUpdateSerializer,
    UserRegistrationSerializer,
    UsernameAvailabilitySerializer,
)

logger = logging.getLogger(__name__)


def get_client_ip(request):
    """
    Get client IP address from request.
    Handles proxy headers for accurate IP detection.
    """
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        return x_forwarded_for.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR')


def error_response(request, error, action):
    """Log a rejected request and answer with the error's status code."""
    user = request.user
    logger.warning(
        f"{action} rejected. "
        f"Reason: {error.message}, "
        f"User: {getattr(user, 'username', None)} (ID: {getattr(user, 'id', None)}), "
        f"IP: {get_client_ip(request)}"
    )
    return Response({'detail': error.message}, status=error.status_code)


def get_listing(pk):
    """
    Raises:
        NotFound: If no listing has this primary key
    """
    try:
        return Listing.objects.select_related('company').get(pk=pk)
    except Listing.DoesNotExist:
        raise NotFound(f'Listing with ID {pk} does not exist.')


class MarketplacePagination(PageNumberPagination):
    page_size = 20
    page_size_query_param = 'page_size'
    max_page_size = 100


# ============================================================================
# Accounts
# ============================================================================

class UserRegistrationView(generics.CreateAPIView):
    """
    API endpoint for user registration.

    POST /api/auth/register/
    Request body: {
        "username": "jolly_otter",   # Optional, generated when omitted
        "email": "user@example.com",
        "password": "...",
        "confirm_password": "...",
        "full_name": "Jane Doe",     # Optional
        "referred_by": "someone"     # Optional
    }

    Error responses:
    - 400: Invalid data (validation errors)
    - 409: Username was retired between validation and creation
    """
    serializer_class = UserRegistrationSerializer
    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = 'register'

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            self.perform_create(serializer)
        except MarketplaceError as e:
            return error_response(request, e, 'Registration')
        except IntegrityError as e:
            # Concurrent registration with the same email or username
            logger.warning(f"Registration failed on uniqueness. Error: {e}, IP: {get_client_ip(request)}")
            return Response(
                {'detail': 'A user with that email or username already exists.'},
                status=status.HTTP_400_BAD_REQUEST
            )

        user = serializer.instance
        logger.info(
            f"User registered. Username: {user.username}, ID: {user.id}, IP: {get_client_ip(request)}"
        )
        headers = self.get_success_headers(serializer.data)
        return Response(serializer.data, status=status.HTTP_201_CREATED, headers=headers)


class UserProfileView(APIView):
    """
    API endpoint for retrieving and updating the authenticated user's profile.

    GET /api/auth/profile/
    PATCH /api/auth/profile/
    Body: {"username": "new_name", "full_name": "...", "phone_number": "..."}

    A username change retires the old username permanently.

    Error responses:
    - 401: Missing, invalid, or expired JWT token
    - 400: Invalid data
    - 409: Username retired or taken
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, *args, **kwargs):
        serializer = UserProfileSerializer(request.user, context={'request': request})
        return Response(serializer.data, status=status.HTTP_200_OK)

    def patch(self, request, *args, **kwargs):
        user = request.user
        serializer = UserProfileUpdateSerializer(
            user,
            data=request.data,
            partial=True,
            context={'request': request}
        )

        if not serializer.is_valid():
            logger.warning(
                f"Profile update validation failed. "
                f"User ID: {user.id}, Errors: {serializer.errors}"
            )
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        new_username = serializer.validated_data.get('username')

        try:
            with transaction.atomic():
                if new_username is not None:
                    identity.change_username(user, new_username)
                serializer.save()
        except MarketplaceError as e:
            return error_response(request, e, 'Profile update')

        logger.info(
            f"Profile updated successfully. "
            f"User ID: {user.id}, Fields: {', '.join(serializer.validated_data)}"
        )
        return Response(
            UserProfileSerializer(user, context={'request': request}).data,
            status=status.HTTP_200_OK
        )


class UsernameAvailabilityView(APIView):
    """
    GET /api/auth/username-available/?username=<candidate>

    Response: {"username": "<normalized>", "available": true|false}
    """
    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):
        serializer = UsernameAvailabilitySerializer(data=request.query_params)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        candidate = identity.normalize_username(serializer.validated_data['username'])
        return Response({
            'username': candidate,
            'available': identity.check_username_availability(candidate),
        }, status=status.HTTP_200_OK)


# ============================================================================
# Companies and listings
# ============================================================================

class CompanyListView(ListAPIView):
    """GET /api/companies/ : active companies, alphabetical."""

    permission_classes = [AllowAny]
    serializer_class = CompanySerializer
    pagination_class = MarketplacePagination

    def get_queryset(self):
        queryset = Company.objects.filter(is_active=True)
        search = self.request.query_params.get('search')
        if search:
            queryset = queryset.filter(name__icontains=search)
        sector = self.request.query_params.get('sector')
        if sector:
            queryset = queryset.filter(sector__iexact=sector)
        return queryset.order_by('name')


class ListingListCreateView(APIView):
    """
    Marketplace listing and listing creation.

    GET /api/listings/
    Query Parameters:
    - type: sell or buy
    - company: Company ID
    - search: Case-insensitive company name match
    - sort: -created_at (default), created_at, price, -price
    - page / page_size

    Boosted listings come first; the viewer's own listings are hidden.

    POST /api/listings/
    Request body: {
        "listing_type": "sell",
        "company_id": 1,
        "price": "250.00",
        "quantity": 100,
        "min_lot": 10,
        "description": "..."
    }
    """

    def get_permissions(self):
        if self.request.method == 'GET':
            return [AllowAny()]
        return [IsAuthenticated()]

    def get(self, request, *args, **kwargs):
        company_id = request.query_params.get('company')
        if company_id and not company_id.isdigit():
            return Response(
                {'company': ['Company must be an integer ID.']},
                status=status.HTTP_400_BAD_REQUEST
            )

        queryset = lifecycle.marketplace_listings(
            viewer=request.user,
            listing_type=request.query_params.get('type'),
            company_id=company_id,
            search=request.query_params.get('search'),
            sort=request.query_params.get('sort', '-created_at'),
        )

        paginator = MarketplacePagination()
        page = paginator.paginate_queryset(queryset, request, view=self)
        serializer = ListingSerializer(page, many=True, context={'request': request})
        return paginator.get_paginated_response(serializer.data)

    def post(self, request, *args, **kwargs):
        serializer = ListingCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        try:
            listing = lifecycle.create_listing(
                owner=request.user,
                listing_type=data['listing_type'],
                company=data['company_id'],
                price=data['price'],
                quantity=data['quantity'],
                min_lot=data['min_lot'],
                description=data['description'],
                company_segmentation=data['company_segmentation'],
            )
        except MarketplaceError as e:
            return error_response(request, e, 'Listing creation')

        return Response(
            ListingSerializer(listing, context={'request': request}).data,
            status=status.HTTP_201_CREATED
        )


class MyListingsView(ListAPIView):
    """
    GET /api/listings/my/

    Query Parameters:
    - type: sell or buy
    - status: active (default), expired, sold, cancelled, or all
    """

    permission_classes = [IsAuthenticated]
    serializer_class = ListingSerializer
    pagination_class = MarketplacePagination

    def get_queryset(self):
        status_filter = self.request.query_params.get('status', 'active')
        if status_filter == 'all':
            status_filter = None
        return lifecycle.owner_listings(
            self.request.user,
            listing_type=self.request.query_params.get('type'),
            status=status_filter,
        )


class ListingDetailView(APIView):
    """
    GET /api/listings/<id>/     : listing detail (counts a view for non-owners)
    PATCH /api/listings/<id>/   : edit price, quantity, min_lot or description
    DELETE /api/listings/<id>/  : delete; blocked by an accepted bid (409)
    """

    def get_permissions(self):
        if self.request.method == 'GET':
            return [AllowAny()]
        return [IsAuthenticated()]

    def get(self, request, pk, *args, **kwargs):
        try:
            listing = get_listing(pk)
        except MarketplaceError as e:
            return Response({'detail': e.message}, status=e.status_code)

        if not request.user.is_authenticated or request.user.id != listing.owner_id:
            lifecycle.register_view(listing)
            listing.views += 1

        return Response(
            ListingSerializer(listing, context={'request': request}).data,
            status=status.HTTP_200_OK
        )

    def patch(self, request, pk, *args, **kwargs):
        serializer = ListingUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            listing = get_listing(pk)
            lifecycle.update_listing(listing, request.user, **serializer.validated_data)
        except MarketplaceError as e:
            return error_response(request, e, 'Listing update')

        return Response(
            ListingSerializer(listing, context={'request': request}).data,
            status=status.HTTP_200_OK
        )

    def delete(self, request, pk, *args, **kwargs):
        try:
            listing = get_listing(pk)
            lifecycle.delete_listing(listing, request.user)
        except MarketplaceError as e:
            return error_response(request, e, 'Listing deletion')

        return Response(
            {'detail': 'Listing deleted successfully.'},
            status=status.HTTP_200_OK
        )


class ListingBoostView(APIView):
    """PUT /api/listings/<id>/boost/"""

    permission_classes = [IsAuthenticated]

    def put(self, request, pk, *args, **kwargs):
        try:
            listing = get_listing(pk)
            boost_expires_at = lifecycle.boost_listing(listing, request.user)
        except MarketplaceError as e:
            return error_response(request, e, 'Listing boost')

        return Response({
            'detail': 'Listing boosted successfully.',
            'boost_expires_at': boost_expires_at,
        }, status=status.HTTP_200_OK)


class ListingStatusView(APIView):
    """
    PUT /api/listings/<id>/status/
    Request body: {"status": "sold" | "cancelled"}
    """

    permission_classes = [IsAuthenticated]

    def put(self, request, pk, *args, **kwargs):
        serializer = ListingStatusSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            listing = get_listing(pk)
            lifecycle.close_listing(listing, request.user, serializer.validated_data['status'])
        except MarketplaceError as e:
            return error_response(request, e, 'Listing status update')

        return Response(
            ListingSerializer(listing, context={'request': request}).data,
            status=status.HTTP_200_OK
        )


class ListingRenewView(APIView):
    """PUT /api/listings/<id>/renew/"""

    permission_classes = [IsAuthenticated]

    def put(self, request, pk, *args, **kwargs):
        try:
            listing = get_listing(pk)
            expires_at = lifecycle.renew_listing(listing, request.user)
        except MarketplaceError as e:
            return error_response(request, e, 'Listing renewal')

        return Response({
            'detail': 'Listing renewed successfully.',
            'expires_at': expires_at,
        }, status=status.HTTP_200_OK)


# ============================================================================
# Negotiation
# ============================================================================

class PlaceBidView(APIView):
    """
    POST /api/listings/<id>/bid/
    Request body: {"price": "240.00", "quantity": 50, "message": "..."}

    Success response (201): {"detail": "...", "bid_id": "<id>", "bid": {...}}
    """

    permission_classes = [IsAuthenticated]

    def post(self, request, pk, *args, **kwargs):
        serializer = BidCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        try:
            listing = get_listing(pk)
            bid = negotiation.place_bid(
                listing,
                request.user,
                data['price'],
                data['quantity'],
                data['message'],
            )
        except MarketplaceError as e:
            return error_response(request, e, 'Bid placement')

        noun = listing.bid_noun
        return Response({
            'detail': f'{noun.capitalize()} placed successfully.',
            'bid_id': bid['id'],
            'bid': bid,
        }, status=status.HTTP_201_CREATED)


class BidActionView(APIView):
    """
    PUT /api/listings/<id>/bids/<bid_id>/accept/
    PUT /api/listings/<id>/bids/<bid_id>/reject/
    PUT /api/listings/<id>/bids/<bid_id>/counter/
        Request body: {"price": "245.00", "quantity": 40, "message": "..."}

    Only the listing owner may act on its bids or offers.
    """

    permission_classes = [IsAuthenticated]
    action = None

    def put(self, request, pk, bid_id, *args, **kwargs):
        if self.action == 'counter':
            serializer = CounterSerializer(data=request.data)
            if not serializer.is_valid():
                return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            listing = get_listing(pk)
            if self.action == 'accept':
                bid = negotiation.accept_bid(listing, bid_id, request.user)
                payload = {'detail': f'{listing.bid_noun.capitalize()} accepted.', 'bid': bid}
            elif self.action == 'reject':
                bid = negotiation.reject_bid(listing, bid_id, request.user)
                payload = {'detail': f'{listing.bid_noun.capitalize()} rejected.', 'bid': bid}
            else:
                data = serializer.validated_data
                round_number = negotiation.counter_bid(
                    listing,
                    bid_id,
                    request.user,
                    data['price'],
                    data['quantity'],
                    data['message'],
                )
                payload = {
                    'detail': 'Counter offer sent.',
                    'round': round_number,
                    'bid': listing.find_bid(bid_id),
                }
        except MarketplaceError as e:
            return error_response(request, e, f'Bid {self.action}')

        return Response(payload, status=status.HTTP_200_OK)


# ============================================================================
# Notifications
# ============================================================================

class NotificationListView(ListAPIView):
    """
    GET /api/notifications/

    Query Parameters:
    - unread: true to list only unread notifications
    """

    permission_classes = [IsAuthenticated]
    serializer_class = NotificationSerializer
    pagination_class = MarketplacePagination

    def get_queryset(self):
        queryset = Notification.objects.filter(recipient=self.request.user)
        unread = self.request.query_params.get('unread')
        if unread and unread.lower() == 'true':
            queryset = queryset.filter(is_read=False)
        return queryset

    def list(self, request, *args, **kwargs):
        response = super().list(request, *args, **kwargs)
        response.data['unread_count'] = Notification.objects.filter(
            recipient=request.user, is_read=False
        ).count()
        return response


class NotificationReadView(APIView):
    """PUT /api/notifications/<id>/read/"""

    permission_classes = [IsAuthenticated]

    def put(self, request, pk, *args, **kwargs):
        updated = Notification.objects.filter(pk=pk, recipient=request.user).update(is_read=True)
        if not updated:
            return Response(
                {'detail': 'Notification not found.'},
                status=status.HTTP_404_NOT_FOUND
            )
        return Response({'detail': 'Notification marked as read.'}, status=status.HTTP_200_OK)


class NotificationReadAllView(APIView):
    """PUT /api/notifications/read-all/"""

    permission_classes = [IsAuthenticated]

    def put(self, request, *args, **kwargs):
        updated = Notification.objects.filter(
            recipient=request.user, is_read=False
        ).update(is_read=True)
        logger.info(f"Notifications marked read. User ID: {request.user.id}, Count: {updated}")
        return Response({'detail': 'All notifications marked as read.', 'updated': updated},
                        status=status.HTTP_200_OK)
