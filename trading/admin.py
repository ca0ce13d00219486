"""
Django admin configuration for marketplace models.
"""

import logging

from django import forms
from django.contrib import admin, messages
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.contrib.auth.forms import UserCreationForm
from django.utils.translation import gettext_lazy as _

from .exceptions import ConcurrentModification, Conflict
from .identity import ensure_not_retired, normalize_username
from .models import Company, FeeTransaction, Listing, Notification, User, UsernameHistory

logger = logging.getLogger(__name__)


class UserAdminCreationForm(UserCreationForm):
    """Admin add form that refuses usernames already in the history."""

    class Meta(UserCreationForm.Meta):
        model = User
        fields = ('username', 'email', 'full_name')

    def clean_username(self):
        username = normalize_username(super().clean_username())
        try:
            ensure_not_retired(username)
        except Conflict as e:
            raise forms.ValidationError(e.message, code='retired')
        return username


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """
    Custom admin interface for User model.

    Extends Django's UserAdmin to include custom fields. Usernames are
    read-only once the account exists so that every change goes through the
    username history.
    """

    add_form = UserAdminCreationForm

    list_display = [
        'username',
        'email',
        'full_name',
        'is_verified',
        'is_banned',
        'is_staff',
        'is_active',
        'created_at',
    ]

    list_filter = [
        'is_verified',
        'is_banned',
        'is_staff',
        'is_superuser',
        'is_active',
        'created_at',
    ]

    search_fields = [
        'email',
        'username',
        'full_name',
    ]

    ordering = ['-created_at']

    fieldsets = (
        (None, {
            'fields': ('username', 'password')
        }),
        (_('Personal Info'), {
            'fields': (
                'full_name',
                'email',
                'phone_number',
                'avatar',
                'referred_by',
            )
        }),
        (_('Account Status'), {
            'fields': ('is_verified', 'is_banned', 'previous_usernames')
        }),
        (_('Permissions'), {
            'fields': (
                'is_active',
                'is_staff',
                'is_superuser',
                'groups',
                'user_permissions',
            ),
            'classes': ('collapse',),
        }),
        (_('Important Dates'), {
            'fields': ('last_login', 'date_joined', 'created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )

    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': (
                'username',
                'email',
                'password1',
                'password2',
                'full_name',
            ),
        }),
    )

    readonly_fields = [
        'username',
        'previous_usernames',
        'created_at',
        'updated_at',
        'last_login',
        'date_joined',
    ]

    date_hierarchy = 'created_at'

    list_per_page = 25

    def get_readonly_fields(self, request, obj=None):
        if obj:  # Editing an existing object
            return self.readonly_fields
        return []


@admin.register(Company)
class CompanyAdmin(admin.ModelAdmin):
    """Admin interface for Company model."""

    list_display = ['name', 'script_name', 'sector', 'isin', 'total_listings', 'is_active']
    list_filter = ['sector', 'is_active']
    search_fields = ['name', 'script_name', 'isin']
    readonly_fields = ['total_listings', 'created_at', 'updated_at']
    ordering = ['name']
    list_per_page = 50


@admin.register(Listing)
class ListingAdmin(admin.ModelAdmin):
    """
    Admin interface for Listing model.

    Embedded bids/offers and the version counter are shown read-only; the
    negotiation services are the only writers.
    """

    list_display = [
        'id',
        'listing_type',
        'company_name',
        'owner',
        'price',
        'quantity',
        'status',
        'is_boosted',
        'expires_at',
        'created_at',
    ]

    list_filter = [
        'listing_type',
        'status',
        'is_boosted',
        'created_at',
    ]

    search_fields = [
        'company_name',
        'owner__email',
        'owner__username',
    ]

    readonly_fields = ['bids', 'offers', 'version', 'views', 'created_at', 'updated_at']

    ordering = ['-created_at']

    date_hierarchy = 'created_at'

    list_per_page = 25

    fieldsets = (
        (None, {
            'fields': ('owner', 'owner_username', 'listing_type', 'company', 'company_name',
                       'company_segmentation')
        }),
        (_('Terms'), {
            'fields': ('price', 'quantity', 'min_lot', 'description')
        }),
        (_('Status & Visibility'), {
            'fields': ('status', 'expires_at', 'is_boosted', 'boost_expires_at', 'views')
        }),
        (_('Negotiation'), {
            'fields': ('bids', 'offers', 'version'),
            'classes': ('collapse',),
        }),
        (_('Timestamps'), {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )

    def save_model(self, request, obj, form, change):
        """Route admin edits through the listing version check."""
        if not change:
            super().save_model(request, obj, form, change)
            return

        try:
            obj.save_guarded(form.changed_data)
        except ConcurrentModification as e:
            logger.warning(f"Admin edit of listing {obj.pk} lost a version race: {e.message}")
            self.message_user(request, e.message, level=messages.ERROR)


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    """Admin interface for Notification model."""

    list_display = ['id', 'recipient', 'notification_type', 'title', 'is_read', 'created_at']
    list_filter = ['notification_type', 'is_read', 'created_at']
    search_fields = ['recipient__username', 'recipient__email', 'title']
    readonly_fields = ['created_at', 'updated_at']
    ordering = ['-created_at']
    list_per_page = 50


@admin.register(UsernameHistory)
class UsernameHistoryAdmin(admin.ModelAdmin):
    """
    Read-only admin for the username history.

    Rows are never edited or deleted: removing one would make a retired
    username assignable again.
    """

    list_display = ['username', 'user', 'reason', 'changed_at']
    search_fields = ['username', 'user__email']
    ordering = ['-changed_at']
    list_per_page = 50

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(FeeTransaction)
class FeeTransactionAdmin(admin.ModelAdmin):
    """Admin interface for FeeTransaction model."""

    list_display = ['id', 'transaction_type', 'amount', 'seller', 'company_name', 'status', 'created_at']
    list_filter = ['transaction_type', 'status', 'created_at']
    search_fields = ['company_name', 'seller__username', 'seller__email']
    readonly_fields = ['created_at']
    ordering = ['-created_at']
    date_hierarchy = 'created_at'
    list_per_page = 25
