"""
Models for the pre-IPO share marketplace.

Listings embed their bids (sell posts) or offers (buy requests) as ordered
JSON collections so that a listing and its negotiation state are always read
and written as a single row.
"""

from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.contrib.auth.models import AbstractUser
from django.core.exceptions import ValidationError
from django.core.serializers.json import DjangoJSONEncoder
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import Case, F, IntegerField, Value, When
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from .exceptions import ConcurrentModification
from .validators import (
    validate_avatar_image,
    validate_isin,
    validate_phone_number,
    validate_username_format,
)


def user_avatar_upload_path(instance, filename):
    """
    Generate upload path for user avatars.

    Path format: avatars/{user_id}/{filename}
    If user_id is not yet available (user not saved), uses 'temp' as placeholder.
    """
    user_id = instance.id if instance.id else 'temp'
    return f'avatars/{user_id}/{filename}'


def default_listing_expiry():
    """Expiry timestamp for a freshly created or renewed listing."""
    return timezone.now() + timedelta(days=settings.LISTING_LIFETIME_DAYS)


class User(AbstractUser):
    """
    Custom User model extending Django's AbstractUser.

    Additional fields:
    - username: Lowercase handle, 3-20 characters, unique among live users
    - email: Required, unique email address
    - full_name: Display name
    - phone_number: Optional 10-digit phone number
    - avatar: Optional profile picture
    - is_verified / is_banned: Account flags managed by staff
    - referred_by: Username of the referring user at registration time
    - previous_usernames: The user's own log of retired usernames
    - created_at / updated_at: Timestamps

    Retired usernames are tracked globally in UsernameHistory; the
    previous_usernames log is only the per-user view of the same events.
    """

    username = models.CharField(
        _('username'),
        max_length=20,
        unique=True,
        validators=[validate_username_format],
        error_messages={
            'unique': _('Username already taken.'),
        },
        help_text=_('Required. 3-20 characters: lowercase letters, digits and underscores.')
    )

    email = models.EmailField(
        _('email address'),
        unique=True,
        blank=False,
        null=False,
        error_messages={
            'unique': _('Email already registered.'),
        },
        help_text=_('Required. Enter a valid email address.')
    )

    full_name = models.CharField(
        _('full name'),
        max_length=150,
        blank=True,
        default='',
        help_text=_('Name shown on listings and profile.')
    )

    phone_number = models.CharField(
        _('phone number'),
        max_length=20,
        blank=True,
        default='',
        validators=[validate_phone_number],
        help_text=_('Optional. 10-digit phone number.')
    )

    avatar = models.ImageField(
        _('avatar'),
        upload_to=user_avatar_upload_path,
        blank=True,
        null=True,
        validators=[validate_avatar_image],
        help_text=_('Optional. Upload a profile picture (max 5MB, formats: jpg, png, webp).')
    )

    is_verified = models.BooleanField(
        _('verified status'),
        default=False,
        help_text=_('Indicates whether the account has been verified by staff.')
    )

    is_banned = models.BooleanField(
        _('banned status'),
        default=False,
        help_text=_('Banned users cannot sign in.')
    )

    referred_by = models.CharField(
        _('referred by'),
        max_length=150,
        blank=True,
        default='',
        help_text=_('Username of the referring user at registration time.')
    )

    previous_usernames = models.JSONField(
        _('previous usernames'),
        default=list,
        blank=True,
        encoder=DjangoJSONEncoder,
        help_text=_('Ordered log of usernames this user has retired.')
    )

    created_at = models.DateTimeField(
        _('created at'),
        auto_now_add=True,
        help_text=_('Timestamp when the account was created.')
    )

    updated_at = models.DateTimeField(
        _('updated at'),
        auto_now=True,
        help_text=_('Timestamp when the account was last updated.')
    )

    class Meta:
        verbose_name = _('user')
        verbose_name_plural = _('users')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['email'], name='user_email_idx'),
            models.Index(fields=['is_verified'], name='user_verified_idx'),
        ]

    def __str__(self):
        """Return username as string representation."""
        return self.username or self.email

    def clean(self):
        """
        Validate model fields.

        Ensures:
        - Username and email are lowercase for case-insensitive uniqueness
        - Email is provided

        Raises:
            ValidationError: If validation fails
        """
        super().clean()

        if self.username:
            self.username = self.username.lower()

        if self.email:
            self.email = self.email.lower()

        if not self.email:
            raise ValidationError({
                'email': _('Email address is required.')
            })

    def save(self, *args, **kwargs):
        """
        Override save to ensure validation and username/email normalization.

        Creation skips full_clean so that duplicate usernames or emails
        surface as database IntegrityErrors.
        """
        if self.username:
            self.username = self.username.lower()

        if self.email:
            self.email = self.email.lower()

        if self.pk is not None:
            self.full_clean()

        super().save(*args, **kwargs)


class Company(models.Model):
    """
    Company whose unlisted shares are traded on the marketplace.

    total_listings is an aggregate counter maintained by the listing
    post_save signal.
    """

    name = models.CharField(
        _('name'),
        max_length=200,
        unique=True,
        help_text=_('Registered company name')
    )

    script_name = models.CharField(
        _('script name'),
        max_length=100,
        blank=True,
        default='',
        help_text=_('Short trading symbol, if any')
    )

    sector = models.CharField(
        _('sector'),
        max_length=100,
        help_text=_('Industry sector')
    )

    description = models.TextField(
        _('description'),
        max_length=1000,
        blank=True,
        default=''
    )

    isin = models.CharField(
        _('ISIN'),
        max_length=12,
        unique=True,
        blank=True,
        null=True,
        validators=[validate_isin],
        help_text=_('International Securities Identification Number')
    )

    logo = models.URLField(
        _('logo'),
        blank=True,
        default=''
    )

    website = models.URLField(
        _('website'),
        blank=True,
        default=''
    )

    total_listings = models.PositiveIntegerField(
        _('total listings'),
        default=0,
        help_text=_('Number of listings ever created for this company')
    )

    is_active = models.BooleanField(
        _('is active'),
        default=True,
        help_text=_('Inactive companies cannot receive new listings')
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('company')
        verbose_name_plural = _('companies')
        ordering = ['name']
        indexes = [
            models.Index(fields=['sector', 'is_active'], name='company_sector_active_idx'),
        ]

    def __str__(self):
        return self.name

    def clean(self):
        super().clean()

        if not self.name or not self.name.strip():
            raise ValidationError({
                'name': _('Company name cannot be empty.')
            })

        if not self.sector or not self.sector.strip():
            raise ValidationError({
                'sector': _('Sector cannot be empty.')
            })

        # Unique constraint must not treat '' as a value
        if not self.isin:
            self.isin = None

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)


class ListingQuerySet(models.QuerySet):
    """Read-side filters for listings."""

    MARKETPLACE_SORTS = ('-created_at', 'created_at', 'price', '-price')

    def live(self, now=None):
        """
        Listings that are visible to the marketplace.

        A listing past its expires_at is inactive whatever its stored status.
        """
        if now is None:
            now = timezone.now()
        return self.filter(status='active', expires_at__gt=now)

    def with_boost_rank(self, now=None):
        """Annotate boost_rank = 1 while a listing's boost window is open."""
        if now is None:
            now = timezone.now()
        return self.annotate(
            boost_rank=Case(
                When(is_boosted=True, boost_expires_at__gt=now, then=Value(1)),
                default=Value(0),
                output_field=IntegerField(),
            )
        )

    def marketplace(self, sort='-created_at', now=None):
        """
        Live listings with boosted ones first.

        Ties are broken by the caller's sort, falling back to newest first.
        """
        if sort not in self.MARKETPLACE_SORTS:
            sort = '-created_at'
        return self.live(now).with_boost_rank(now).order_by('-boost_rank', sort, '-id')


class Listing(models.Model):
    """
    A sell post or buy request for shares of a company.

    Fields:
    - owner: User who created the listing (never transferred)
    - owner_username: Username snapshot at creation time
    - listing_type: 'sell' or 'buy'
    - company / company_name: Company reference and denormalized name snapshot
    - price, quantity, min_lot: Terms of the listing
    - status: active, sold, expired or cancelled
    - is_boosted / boost_expires_at: Paid visibility window
    - expires_at: End of visibility (30 days after creation by default)
    - bids: Embedded bids, used when listing_type is 'sell'
    - offers: Embedded offers, used when listing_type is 'buy'
    - version: Incremented on every guarded write

    Each embedded bid is a dict with a stable 'id', the bidder's id and
    username, price, quantity, message, status, counter_history and
    created_at. Prices are stored as decimal strings.
    """

    TYPE_CHOICES = [
        ('sell', 'Sell'),
        ('buy', 'Buy'),
    ]

    STATUS_CHOICES = [
        ('active', 'Active'),
        ('sold', 'Sold'),
        ('expired', 'Expired'),
        ('cancelled', 'Cancelled'),
    ]

    SEGMENTATION_CHOICES = [
        ('SME', 'SME'),
        ('Mainboard', 'Mainboard'),
        ('Unlisted', 'Unlisted'),
        ('Pre-IPO', 'Pre-IPO'),
        ('Startup', 'Startup'),
    ]

    BID_STATUSES = ('pending', 'accepted', 'rejected', 'countered', 'expired')
    TERMINAL_BID_STATUSES = ('accepted', 'rejected', 'expired')

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='listings',
        help_text=_('User who created the listing')
    )

    owner_username = models.CharField(
        _('owner username'),
        max_length=150,
        blank=True,
        default=''
    )

    listing_type = models.CharField(
        _('listing type'),
        max_length=4,
        choices=TYPE_CHOICES,
        help_text=_('Sell post or buy request')
    )

    company = models.ForeignKey(
        Company,
        on_delete=models.PROTECT,
        related_name='listings',
        help_text=_('Company whose shares are listed')
    )

    company_name = models.CharField(
        _('company name'),
        max_length=200,
        blank=True,
        default='',
        help_text=_('Company name snapshot at creation time')
    )

    company_segmentation = models.CharField(
        _('company segmentation'),
        max_length=20,
        choices=SEGMENTATION_CHOICES,
        blank=True,
        null=True,
        default=None
    )

    price = models.DecimalField(
        _('price'),
        max_digits=12,
        decimal_places=2,
        help_text=_('Price per share')
    )

    quantity = models.PositiveIntegerField(
        _('quantity'),
        help_text=_('Number of shares')
    )

    min_lot = models.PositiveIntegerField(
        _('minimum lot'),
        default=1,
        validators=[MinValueValidator(1)],
        help_text=_('Smallest number of shares per trade')
    )

    description = models.TextField(
        _('description'),
        max_length=500,
        blank=True,
        default=''
    )

    status = models.CharField(
        _('status'),
        max_length=10,
        choices=STATUS_CHOICES,
        default='active'
    )

    is_boosted = models.BooleanField(_('is boosted'), default=False)

    boost_expires_at = models.DateTimeField(
        _('boost expires at'),
        blank=True,
        null=True,
        default=None
    )

    views = models.PositiveIntegerField(_('views'), default=0)

    expires_at = models.DateTimeField(
        _('expires at'),
        default=default_listing_expiry,
        help_text=_('Listing is inactive once this time has passed')
    )

    bids = models.JSONField(
        _('bids'),
        default=list,
        blank=True,
        encoder=DjangoJSONEncoder,
        help_text=_('Bids received on a sell post')
    )

    offers = models.JSONField(
        _('offers'),
        default=list,
        blank=True,
        encoder=DjangoJSONEncoder,
        help_text=_('Offers received on a buy request')
    )

    version = models.PositiveIntegerField(
        _('version'),
        default=0,
        help_text=_('Optimistic concurrency counter')
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    objects = ListingQuerySet.as_manager()

    class Meta:
        verbose_name = _('listing')
        verbose_name_plural = _('listings')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['listing_type', 'status', '-created_at'], name='listing_type_status_idx'),
            models.Index(fields=['owner', 'status'], name='listing_owner_status_idx'),
            models.Index(fields=['company', 'listing_type', 'status'], name='listing_company_type_idx'),
            models.Index(fields=['is_boosted', 'boost_expires_at'], name='listing_boost_idx'),
        ]

    def __str__(self):
        return f"{self.get_listing_type_display()} {self.quantity} x {self.company_name} @ {self.price}"

    @property
    def bid_field(self):
        """Name of the embedded collection used by this listing's type."""
        return 'bids' if self.listing_type == 'sell' else 'offers'

    @property
    def bid_collection(self):
        return getattr(self, self.bid_field)

    @property
    def bid_noun(self):
        return 'bid' if self.listing_type == 'sell' else 'offer'

    def is_expired(self, now=None):
        if now is None:
            now = timezone.now()
        return self.expires_at is not None and self.expires_at <= now

    def is_live(self, now=None):
        """True while the listing is active and not past its expiry."""
        return self.status == 'active' and not self.is_expired(now)

    def is_boost_active(self, now=None):
        if now is None:
            now = timezone.now()
        return bool(self.is_boosted and self.boost_expires_at and self.boost_expires_at > now)

    def find_bid(self, bid_id):
        """Return the embedded bid with this id from the type-appropriate collection."""
        bid_id = str(bid_id)
        for bid in self.bid_collection:
            if bid.get('id') == bid_id:
                return bid
        return None

    def all_bids(self):
        return list(self.bids or []) + list(self.offers or [])

    def has_accepted_bid(self):
        return any(bid.get('status') == 'accepted' for bid in self.all_bids())

    def bidder_ids(self):
        """Distinct bidder ids across bids and offers, in first-bid order."""
        seen = []
        for bid in self.all_bids():
            if bid.get('bidder_id') not in seen:
                seen.append(bid.get('bidder_id'))
        return seen

    def clean(self):
        """
        Validate model fields.

        Ensures:
        - Price, quantity and minimum lot are positive
        - Minimum lot does not exceed quantity
        - Only the collection matching listing_type holds entries

        Raises:
            ValidationError: If validation fails
        """
        super().clean()

        if self.price is not None and self.price <= Decimal('0'):
            raise ValidationError({
                'price': _('Price must be greater than 0.')
            })

        if self.quantity is not None and self.quantity <= 0:
            raise ValidationError({
                'quantity': _('Quantity must be greater than 0.')
            })

        if self.min_lot is not None and self.quantity is not None and self.min_lot > self.quantity:
            raise ValidationError({
                'min_lot': _('Minimum lot cannot exceed quantity.')
            })

        if self.bids and self.offers:
            raise ValidationError(
                _('A listing cannot hold both bids and offers.')
            )

        if self.listing_type == 'sell' and self.offers:
            raise ValidationError({
                'offers': _('Sell posts receive bids, not offers.')
            })

        if self.listing_type == 'buy' and self.bids:
            raise ValidationError({
                'bids': _('Buy requests receive offers, not bids.')
            })

    def save(self, *args, **kwargs):
        """
        Override save to ensure validation.

        Mutations of an existing listing made by the services go through
        save_guarded() so that concurrent writers cannot overwrite each other.
        """
        self.full_clean()
        super().save(*args, **kwargs)

    def save_guarded(self, update_fields):
        """
        Persist update_fields only if nobody else wrote the row since it was read.

        Issues UPDATE ... WHERE pk = ? AND version = ? and increments version.

        Raises:
            ConcurrentModification: If the stored version no longer matches
        """
        expected_version = self.version
        now = timezone.now()
        values = {name: getattr(self, name) for name in update_fields}
        values['updated_at'] = now

        updated = Listing.objects.filter(pk=self.pk, version=expected_version).update(
            version=F('version') + 1,
            **values
        )
        if not updated:
            raise ConcurrentModification()

        self.version = expected_version + 1
        self.updated_at = now

    def delete_guarded(self):
        """
        Delete the row only if its version is unchanged.

        Raises:
            ConcurrentModification: If the stored version no longer matches
        """
        deleted, _per_model = Listing.objects.filter(pk=self.pk, version=self.version).delete()
        if not deleted:
            raise ConcurrentModification()


class Notification(models.Model):
    """
    User-facing notification produced as a side effect of negotiation and
    listing lifecycle actions. Never mutates listings or bids.
    """

    TYPE_CHOICES = [
        ('new_bid', 'New bid'),
        ('new_offer', 'New offer'),
        ('bid_accepted', 'Bid accepted'),
        ('offer_accepted', 'Offer accepted'),
        ('bid_rejected', 'Bid rejected'),
        ('offer_rejected', 'Offer rejected'),
        ('counter_offer', 'Counter offer'),
        ('listing_expired', 'Listing expired'),
        ('boost_activated', 'Boost activated'),
        ('referral_earning', 'Referral earning'),
        ('listing_cancelled', 'Listing cancelled'),
    ]

    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='notifications'
    )

    notification_type = models.CharField(
        _('type'),
        max_length=20,
        choices=TYPE_CHOICES
    )

    title = models.CharField(_('title'), max_length=200)

    message = models.TextField(_('message'))

    data = models.JSONField(
        _('data'),
        default=dict,
        blank=True,
        encoder=DjangoJSONEncoder,
        help_text=_('Listing/bid ids, amount, quantity, company name')
    )

    action_url = models.CharField(
        _('action url'),
        max_length=200,
        blank=True,
        default=''
    )

    is_read = models.BooleanField(_('is read'), default=False)

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('notification')
        verbose_name_plural = _('notifications')
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['recipient', 'is_read', '-created_at'], name='notification_recipient_idx'),
        ]

    def __str__(self):
        return f"{self.notification_type} for {self.recipient_id}: {self.title}"


class UsernameHistory(models.Model):
    """
    Global log of usernames that have ever been assigned.

    A username present here can never again become any user's active
    username. Rows survive deletion of the user that held the name.
    """

    username = models.CharField(
        _('username'),
        max_length=150,
        unique=True,
        error_messages={
            'unique': _('This username has already been used.'),
        }
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='username_history'
    )

    changed_at = models.DateTimeField(_('changed at'), default=timezone.now)

    reason = models.CharField(
        _('reason'),
        max_length=200,
        default='User changed username'
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('username history')
        verbose_name_plural = _('username history')
        ordering = ['changed_at']
        indexes = [
            models.Index(fields=['username', 'user'], name='username_history_user_idx'),
        ]

    def __str__(self):
        return f"{self.username} ({self.reason})"

    def save(self, *args, **kwargs):
        if self.username:
            self.username = self.username.strip().lower()
        super().save(*args, **kwargs)


class FeeTransaction(models.Model):
    """Platform fee ledger entry (boost fees are the only ones written here)."""

    TYPE_CHOICES = [
        ('platform_fee', 'Platform fee'),
        ('boost_fee', 'Boost fee'),
        ('affiliate_commission', 'Affiliate commission'),
    ]

    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('completed', 'Completed'),
        ('failed', 'Failed'),
    ]

    transaction_type = models.CharField(
        _('type'),
        max_length=30,
        choices=TYPE_CHOICES
    )

    listing = models.ForeignKey(
        Listing,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='fee_transactions'
    )

    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='fee_transactions'
    )

    amount = models.DecimalField(
        _('amount'),
        max_digits=12,
        decimal_places=2
    )

    company_name = models.CharField(
        _('company name'),
        max_length=200,
        blank=True,
        default=''
    )

    description = models.CharField(
        _('description'),
        max_length=255,
        blank=True,
        default=''
    )

    status = models.CharField(
        _('status'),
        max_length=10,
        choices=STATUS_CHOICES,
        default='completed'
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    class Meta:
        verbose_name = _('fee transaction')
        verbose_name_plural = _('fee transactions')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['transaction_type', '-created_at'], name='fee_txn_type_created_idx'),
        ]

    def __str__(self):
        return f"{self.transaction_type} {self.amount}"
