"""
Serializers for authentication, profiles, listings, bids and notifications.

Request serializers only validate input shape; business rules live in the
negotiation, lifecycle and identity services.
"""

from rest_framework import serializers
from django.contrib.auth import get_user_model
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction

from .identity import generate_username, normalize_username
from .models import Company, Listing, Notification
from .validators import validate_phone_number, validate_username_format

User = get_user_model()


class UserRegistrationSerializer(serializers.ModelSerializer):
    """
    Serializer for user registration with comprehensive validation.

    Fields:
    - username: Optional; a random available name is generated when omitted
    - email: Required, unique, valid email format
    - password: Required, must meet strength requirements
    - confirm_password: Required, must match password
    - full_name, phone_number: Optional
    - referred_by: Optional username of an existing user
    """

    username = serializers.CharField(required=False, allow_blank=True, max_length=20)
    password = serializers.CharField(
        write_only=True,
        required=True,
        style={'input_type': 'password'}
    )
    confirm_password = serializers.CharField(
        write_only=True,
        required=True,
        style={'input_type': 'password'}
    )
    referred_by = serializers.CharField(required=False, allow_blank=True, max_length=150)

    class Meta:
        model = User
        fields = ['id', 'username', 'email', 'password', 'confirm_password', 'full_name',
                  'phone_number', 'referred_by', 'is_verified', 'created_at']
        read_only_fields = ['id', 'is_verified', 'created_at']
        extra_kwargs = {
            'email': {'required': True},
        }

    def validate_username(self, value):
        """
        Validate username format and that no live user holds it.

        Retired usernames are refused by the registration signal, which
        answers with a conflict rather than a field error.
        """
        value = normalize_username(value)
        if not value:
            return value

        try:
            validate_username_format(value)
        except DjangoValidationError as e:
            raise serializers.ValidationError(list(e.messages))

        if User.objects.filter(username=value).exists():
            raise serializers.ValidationError(
                "Username already taken."
            )

        return value

    def validate_email(self, value):
        """
        Validate email format and uniqueness.
        """
        value = value.strip().lower()

        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError(
                "A user with that email already exists."
            )

        return value

    def validate_password(self, value):
        """
        Validate password strength using Django's password validators.
        """
        try:
            validate_password(value)
        except DjangoValidationError as e:
            raise serializers.ValidationError(list(e.messages))

        return value

    def validate_phone_number(self, value):
        if not value:
            return value

        try:
            validate_phone_number(value)
        except DjangoValidationError as e:
            raise serializers.ValidationError(list(e.messages))

        return value

    def validate_referred_by(self, value):
        """
        A referral must name an existing user.
        """
        value = normalize_username(value)
        if value and not User.objects.filter(username=value).exists():
            raise serializers.ValidationError(
                "Referring user does not exist."
            )
        return value

    def validate(self, attrs):
        """
        Object-level validation for password confirmation matching.
        """
        if attrs.get('password') != attrs.get('confirm_password'):
            raise serializers.ValidationError({
                'confirm_password': 'Password confirmation does not match.'
            })

        return attrs

    def create(self, validated_data):
        """
        Create user with hashed password and default settings.

        The initial username is reserved in UsernameHistory by the post_save
        signal inside the same transaction.
        """
        validated_data.pop('confirm_password', None)
        password = validated_data.pop('password')

        if not validated_data.get('username'):
            validated_data['username'] = generate_username()

        # Prevent privilege escalation through extra payload fields
        for field in ('is_superuser', 'is_staff', 'is_active', 'is_verified', 'is_banned',
                      'groups', 'user_permissions'):
            validated_data.pop(field, None)

        with transaction.atomic():
            user = User.objects.create_user(password=password, **validated_data)

        return user


class UserProfileSerializer(serializers.ModelSerializer):
    """
    Serializer for user profile retrieval.

    Excludes sensitive fields (password, is_staff, is_superuser, etc.).
    """

    avatar_url = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = [
            'id',
            'username',
            'email',
            'full_name',
            'phone_number',
            'avatar_url',
            'is_verified',
            'referred_by',
            'previous_usernames',
            'created_at',
        ]
        read_only_fields = fields

    def get_avatar_url(self, obj):
        """
        Returns:
            str: Full URL to the avatar, or None if no image uploaded
        """
        if obj.avatar:
            request = self.context.get('request')
            if request is not None:
                return request.build_absolute_uri(obj.avatar.url)
            return obj.avatar.url
        return None


class UserProfileUpdateSerializer(serializers.ModelSerializer):
    """
    Serializer for user profile updates (PATCH).

    Updatable fields: username, full_name, phone_number, avatar. A username
    change is not applied here: the view hands it to identity.change_username
    so that the old name is retired.
    """

    username = serializers.CharField(required=False, max_length=20)

    class Meta:
        model = User
        fields = ['username', 'full_name', 'phone_number', 'avatar']
        extra_kwargs = {
            'full_name': {'required': False},
            'phone_number': {'required': False},
            'avatar': {'required': False},
        }

    def validate_username(self, value):
        # Format only; availability is decided by the identity service
        value = normalize_username(value)
        try:
            validate_username_format(value)
        except DjangoValidationError as e:
            raise serializers.ValidationError(list(e.messages))
        return value

    def validate_phone_number(self, value):
        if not value:
            return value

        try:
            validate_phone_number(value)
        except DjangoValidationError as e:
            raise serializers.ValidationError(list(e.messages))

        return value

    def update(self, instance, validated_data):
        """
        Apply the non-username fields.

        Saves with update_fields so that only the changed columns are written.
        """
        validated_data.pop('username', None)

        fields_to_update = []
        for attr, value in validated_data.items():
            setattr(instance, attr, value)
            fields_to_update.append(attr)

        if fields_to_update:
            instance.save(update_fields=fields_to_update + ['updated_at'])

        return instance


class UsernameAvailabilitySerializer(serializers.Serializer):
    username = serializers.CharField(required=True, max_length=150)


class CompanySerializer(serializers.ModelSerializer):
    """Read serializer for companies."""

    class Meta:
        model = Company
        fields = ['id', 'name', 'script_name', 'sector', 'description', 'isin',
                  'logo', 'website', 'total_listings']
        read_only_fields = fields


class CounterEntrySerializer(serializers.Serializer):
    round = serializers.IntegerField()
    by = serializers.CharField()
    price = serializers.DecimalField(max_digits=12, decimal_places=2)
    quantity = serializers.IntegerField()
    message = serializers.CharField(allow_blank=True)
    timestamp = serializers.CharField()


class BidSerializer(serializers.Serializer):
    """Representation of an embedded bid or offer."""

    id = serializers.CharField()
    bidder_id = serializers.IntegerField()
    bidder_username = serializers.CharField()
    price = serializers.DecimalField(max_digits=12, decimal_places=2)
    quantity = serializers.IntegerField()
    message = serializers.CharField(allow_blank=True)
    status = serializers.CharField()
    counter_history = CounterEntrySerializer(many=True)
    created_at = serializers.CharField()


class ListingSerializer(serializers.ModelSerializer):
    """
    Read serializer for listings.

    Bids and offers are only shown to the listing owner; everyone else sees
    their own bids (if authenticated) and a bid count.
    """

    company = CompanySerializer(read_only=True)
    bids = serializers.SerializerMethodField()
    offers = serializers.SerializerMethodField()
    bid_count = serializers.SerializerMethodField()
    is_boost_active = serializers.SerializerMethodField()
    is_live = serializers.SerializerMethodField()

    class Meta:
        model = Listing
        fields = [
            'id',
            'owner',
            'owner_username',
            'listing_type',
            'company',
            'company_name',
            'company_segmentation',
            'price',
            'quantity',
            'min_lot',
            'description',
            'status',
            'is_live',
            'is_boosted',
            'is_boost_active',
            'boost_expires_at',
            'views',
            'expires_at',
            'bids',
            'offers',
            'bid_count',
            'version',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields

    def _visible_bids(self, obj, collection):
        request = self.context.get('request')
        user = getattr(request, 'user', None)
        if user is None or not user.is_authenticated:
            return []
        if obj.owner_id == user.id:
            return BidSerializer(collection, many=True).data
        return BidSerializer(
            [bid for bid in collection if bid.get('bidder_id') == user.id],
            many=True
        ).data

    def get_bids(self, obj):
        return self._visible_bids(obj, obj.bids or [])

    def get_offers(self, obj):
        return self._visible_bids(obj, obj.offers or [])

    def get_bid_count(self, obj):
        return len(obj.bid_collection or [])

    def get_is_boost_active(self, obj):
        return obj.is_boost_active()

    def get_is_live(self, obj):
        return obj.is_live()


class ListingCreateSerializer(serializers.Serializer):
    """Input for creating a listing."""

    listing_type = serializers.ChoiceField(choices=Listing.TYPE_CHOICES)
    company_id = serializers.IntegerField()
    price = serializers.DecimalField(max_digits=12, decimal_places=2)
    quantity = serializers.IntegerField()
    min_lot = serializers.IntegerField(required=False, default=1)
    description = serializers.CharField(required=False, allow_blank=True, max_length=500, default='')
    company_segmentation = serializers.ChoiceField(
        choices=Listing.SEGMENTATION_CHOICES,
        required=False,
        allow_null=True,
        default=None
    )


class ListingUpdateSerializer(serializers.Serializer):
    """Input for editing a listing; every field optional."""

    price = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)
    quantity = serializers.IntegerField(required=False)
    min_lot = serializers.IntegerField(required=False)
    description = serializers.CharField(required=False, allow_blank=True, max_length=500)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError('No updatable fields provided.')
        return attrs


class ListingStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[('sold', 'Sold'), ('cancelled', 'Cancelled')])


class BidCreateSerializer(serializers.Serializer):
    """Input for placing a bid or making an offer."""

    price = serializers.DecimalField(max_digits=12, decimal_places=2)
    quantity = serializers.IntegerField()
    message = serializers.CharField(required=False, allow_blank=True, max_length=500, default='')


class CounterSerializer(serializers.Serializer):
    """Input for countering a bid or offer."""

    price = serializers.DecimalField(max_digits=12, decimal_places=2)
    quantity = serializers.IntegerField(required=False, allow_null=True, default=None)
    message = serializers.CharField(required=False, allow_blank=True, max_length=500, default='')


class NotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Notification
        fields = ['id', 'notification_type', 'title', 'message', 'data', 'action_url',
                  'is_read', 'created_at']
        read_only_fields = fields
