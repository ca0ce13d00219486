"""
Custom validators for marketplace models.
"""

import re
from django.core.exceptions import ValidationError


USERNAME_PATTERN = re.compile(r'^[a-z0-9_]+$')
USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 20

ISIN_PATTERN = re.compile(r'^[A-Z]{2}[A-Z0-9]{9}[0-9]$')


def validate_username_format(value):
    """
    Validate a (normalized) username.

    Usernames are 3-20 characters of lowercase letters, digits and underscores.
    Callers are expected to lowercase the value before validating it.

    Args:
        value: Username string to validate

    Raises:
        ValidationError: If the username format is invalid
    """
    if not value:
        raise ValidationError(
            'Username is required.',
            code='username_required'
        )

    if len(value) < USERNAME_MIN_LENGTH:
        raise ValidationError(
            f'Username must be at least {USERNAME_MIN_LENGTH} characters.',
            code='username_too_short'
        )

    if len(value) > USERNAME_MAX_LENGTH:
        raise ValidationError(
            f'Username cannot exceed {USERNAME_MAX_LENGTH} characters.',
            code='username_too_long'
        )

    if not USERNAME_PATTERN.match(value):
        raise ValidationError(
            'Username can only contain lowercase letters, numbers, and underscores.',
            code='invalid_username_chars'
        )


def validate_phone_number(value):
    """
    Validate phone number format.

    Accepts exactly 10 digits; spaces and dashes are tolerated as separators.

    Args:
        value: Phone number string to validate

    Raises:
        ValidationError: If phone number format is invalid
    """
    if not value:  # Empty string is allowed (optional field)
        return

    if not re.match(r'^[\d\s\-]+$', value):
        raise ValidationError(
            'Phone number can only contain digits, spaces and dashes.',
            code='invalid_phone_chars'
        )

    digits = re.sub(r'\D', '', value)

    if len(digits) != 10:
        raise ValidationError(
            'Please provide a valid 10-digit phone number.',
            code='invalid_phone_length'
        )

    # Must not be all the same digit (like 0000000000)
    if len(set(digits)) == 1:
        raise ValidationError(
            'Phone number cannot be all the same digit.',
            code='invalid_phone_pattern'
        )


def validate_isin(value):
    """Validate an ISIN code (two letters, nine alphanumerics, check digit)."""
    if not value:
        return

    if not ISIN_PATTERN.match(value):
        raise ValidationError(
            'Invalid ISIN format.',
            code='invalid_isin'
        )


def validate_avatar_image(image):
    """
    Validate avatar image file.

    Checks:
    - File size (max 5MB)
    - File format (jpg, jpeg, png, webp)

    Args:
        image: UploadedFile object

    Raises:
        ValidationError: If image is invalid
    """
    if not image:
        return

    # Check file size (5MB = 5 * 1024 * 1024 bytes)
    max_size = 5 * 1024 * 1024
    if image.size > max_size:
        raise ValidationError(
            f'Image file size cannot exceed 5MB. Current size: {image.size / (1024 * 1024):.2f}MB',
            code='image_too_large'
        )

    # Check file extension
    valid_extensions = ['jpg', 'jpeg', 'png', 'webp']
    file_name = image.name.lower()

    if not any(file_name.endswith(f'.{ext}') for ext in valid_extensions):
        raise ValidationError(
            f'Invalid image format. Allowed formats: {", ".join(valid_extensions)}',
            code='invalid_image_format'
        )

    # Check MIME type
    valid_content_types = [
        'image/jpeg',
        'image/png',
        'image/webp'
    ]

    if hasattr(image, 'content_type') and image.content_type:
        if image.content_type not in valid_content_types:
            raise ValidationError(
                f'Invalid image content type: {image.content_type}',
                code='invalid_content_type'
            )
