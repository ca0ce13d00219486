"""
URL configuration for preipo_marketplace project.
"""
from django.conf import settings
from django.conf.urls.static import static
from django.contrib import admin
from django.urls import path
from rest_framework_simplejwt.views import (
    TokenObtainPairView,
    TokenRefreshView,
)
from trading.views import (
    BidActionView,
    CompanyListView,
    ListingBoostView,
    ListingDetailView,
    ListingListCreateView,
    ListingRenewView,
    ListingStatusView,
    MyListingsView,
    NotificationListView,
    NotificationReadAllView,
    NotificationReadView,
    PlaceBidView,
    UserProfileView,
    UserRegistrationView,
    UsernameAvailabilityView,
)


urlpatterns = [
    path('admin/', admin.site.urls),

    # Authentication endpoints
    path('api/auth/register/', UserRegistrationView.as_view(), name='user_register'),
    path('api/auth/profile/', UserProfileView.as_view(), name='user_profile'),
    path('api/auth/username-available/', UsernameAvailabilityView.as_view(), name='username_available'),

    # JWT Authentication endpoints
    path('api/token/', TokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('api/token/refresh/', TokenRefreshView.as_view(), name='token_refresh'),

    # Company endpoints
    path('api/companies/', CompanyListView.as_view(), name='company_list'),

    # Listing endpoints
    path('api/listings/', ListingListCreateView.as_view(), name='listing_list'),
    path('api/listings/my/', MyListingsView.as_view(), name='my_listings'),
    path('api/listings/<int:pk>/', ListingDetailView.as_view(), name='listing_detail'),
    path('api/listings/<int:pk>/boost/', ListingBoostView.as_view(), name='listing_boost'),
    path('api/listings/<int:pk>/status/', ListingStatusView.as_view(), name='listing_status'),
    path('api/listings/<int:pk>/renew/', ListingRenewView.as_view(), name='listing_renew'),

    # Negotiation endpoints
    path('api/listings/<int:pk>/bid/', PlaceBidView.as_view(), name='place_bid'),
    path('api/listings/<int:pk>/bids/<str:bid_id>/accept/',
         BidActionView.as_view(action='accept'), name='accept_bid'),
    path('api/listings/<int:pk>/bids/<str:bid_id>/reject/',
         BidActionView.as_view(action='reject'), name='reject_bid'),
    path('api/listings/<int:pk>/bids/<str:bid_id>/counter/',
         BidActionView.as_view(action='counter'), name='counter_bid'),

    # Notification endpoints
    path('api/notifications/', NotificationListView.as_view(), name='notification_list'),
    path('api/notifications/read-all/', NotificationReadAllView.as_view(), name='notification_read_all'),
    path('api/notifications/<int:pk>/read/', NotificationReadView.as_view(), name='notification_read'),
]

if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
