import django.contrib.auth.models
import django.core.serializers.json
import django.core.validators
import django.db.models.deletion
import django.utils.timezone
import trading.models
import trading.validators
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('auth', '0012_alter_user_first_name_max_length'),
    ]

    operations = [
        migrations.CreateModel(
            name='User',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('password', models.CharField(max_length=128, verbose_name='password')),
                ('last_login', models.DateTimeField(blank=True, null=True, verbose_name='last login')),
                ('is_superuser', models.BooleanField(default=False, help_text='Designates that this user has all permissions without explicitly assigning them.', verbose_name='superuser status')),
                ('first_name', models.CharField(blank=True, max_length=150, verbose_name='first name')),
                ('last_name', models.CharField(blank=True, max_length=150, verbose_name='last name')),
                ('is_staff', models.BooleanField(default=False, help_text='Designates whether the user can log into this admin site.', verbose_name='staff status')),
                ('is_active', models.BooleanField(default=True, help_text='Designates whether this user should be treated as active. Unselect this instead of deleting accounts.', verbose_name='active')),
                ('date_joined', models.DateTimeField(default=django.utils.timezone.now, verbose_name='date joined')),
                ('username', models.CharField(error_messages={'unique': 'Username already taken.'}, help_text='Required. 3-20 characters: lowercase letters, digits and underscores.', max_length=20, unique=True, validators=[trading.validators.validate_username_format], verbose_name='username')),
                ('email', models.EmailField(error_messages={'unique': 'Email already registered.'}, help_text='Required. Enter a valid email address.', max_length=254, unique=True, verbose_name='email address')),
                ('full_name', models.CharField(blank=True, default='', help_text='Name shown on listings and profile.', max_length=150, verbose_name='full name')),
                ('phone_number', models.CharField(blank=True, default='', help_text='Optional. 10-digit phone number.', max_length=20, validators=[trading.validators.validate_phone_number], verbose_name='phone number')),
                ('avatar', models.ImageField(blank=True, help_text='Optional. Upload a profile picture (max 5MB, formats: jpg, png, webp).', null=True, upload_to=trading.models.user_avatar_upload_path, validators=[trading.validators.validate_avatar_image], verbose_name='avatar')),
                ('is_verified', models.BooleanField(default=False, help_text='Indicates whether the account has been verified by staff.', verbose_name='verified status')),
                ('is_banned', models.BooleanField(default=False, help_text='Banned users cannot sign in.', verbose_name='banned status')),
                ('referred_by', models.CharField(blank=True, default='', help_text='Username of the referring user at registration time.', max_length=150, verbose_name='referred by')),
                ('previous_usernames', models.JSONField(blank=True, default=list, encoder=django.core.serializers.json.DjangoJSONEncoder, help_text='Ordered log of usernames this user has retired.', verbose_name='previous usernames')),
                ('created_at', models.DateTimeField(auto_now_add=True, help_text='Timestamp when the account was created.', verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, help_text='Timestamp when the account was last updated.', verbose_name='updated at')),
                ('groups', models.ManyToManyField(blank=True, help_text='The groups this user belongs to. A user will get all permissions granted to each of their groups.', related_name='user_set', related_query_name='user', to='auth.group', verbose_name='groups')),
                ('user_permissions', models.ManyToManyField(blank=True, help_text='Specific permissions for this user.', related_name='user_set', related_query_name='user', to='auth.permission', verbose_name='user permissions')),
            ],
            options={
                'verbose_name': 'user',
                'verbose_name_plural': 'users',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['email'], name='user_email_idx'),
                    models.Index(fields=['is_verified'], name='user_verified_idx'),
                ],
            },
            managers=[
                ('objects', django.contrib.auth.models.UserManager()),
            ],
        ),
        migrations.CreateModel(
            name='Company',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(help_text='Registered company name', max_length=200, unique=True, verbose_name='name')),
                ('script_name', models.CharField(blank=True, default='', help_text='Short trading symbol, if any', max_length=100, verbose_name='script name')),
                ('sector', models.CharField(help_text='Industry sector', max_length=100, verbose_name='sector')),
                ('description', models.TextField(blank=True, default='', max_length=1000, verbose_name='description')),
                ('isin', models.CharField(blank=True, help_text='International Securities Identification Number', max_length=12, null=True, unique=True, validators=[trading.validators.validate_isin], verbose_name='ISIN')),
                ('logo', models.URLField(blank=True, default='', verbose_name='logo')),
                ('website', models.URLField(blank=True, default='', verbose_name='website')),
                ('total_listings', models.PositiveIntegerField(default=0, help_text='Number of listings ever created for this company', verbose_name='total listings')),
                ('is_active', models.BooleanField(default=True, help_text='Inactive companies cannot receive new listings', verbose_name='is active')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
            ],
            options={
                'verbose_name': 'company',
                'verbose_name_plural': 'companies',
                'ordering': ['name'],
                'indexes': [
                    models.Index(fields=['sector', 'is_active'], name='company_sector_active_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Listing',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('owner_username', models.CharField(blank=True, default='', max_length=150, verbose_name='owner username')),
                ('listing_type', models.CharField(choices=[('sell', 'Sell'), ('buy', 'Buy')], help_text='Sell post or buy request', max_length=4, verbose_name='listing type')),
                ('company_name', models.CharField(blank=True, default='', help_text='Company name snapshot at creation time', max_length=200, verbose_name='company name')),
                ('company_segmentation', models.CharField(blank=True, choices=[('SME', 'SME'), ('Mainboard', 'Mainboard'), ('Unlisted', 'Unlisted'), ('Pre-IPO', 'Pre-IPO'), ('Startup', 'Startup')], default=None, max_length=20, null=True, verbose_name='company segmentation')),
                ('price', models.DecimalField(decimal_places=2, help_text='Price per share', max_digits=12, verbose_name='price')),
                ('quantity', models.PositiveIntegerField(help_text='Number of shares', verbose_name='quantity')),
                ('min_lot', models.PositiveIntegerField(default=1, help_text='Smallest number of shares per trade', validators=[django.core.validators.MinValueValidator(1)], verbose_name='minimum lot')),
                ('description', models.TextField(blank=True, default='', max_length=500, verbose_name='description')),
                ('status', models.CharField(choices=[('active', 'Active'), ('sold', 'Sold'), ('expired', 'Expired'), ('cancelled', 'Cancelled')], default='active', max_length=10, verbose_name='status')),
                ('is_boosted', models.BooleanField(default=False, verbose_name='is boosted')),
                ('boost_expires_at', models.DateTimeField(blank=True, default=None, null=True, verbose_name='boost expires at')),
                ('views', models.PositiveIntegerField(default=0, verbose_name='views')),
                ('expires_at', models.DateTimeField(default=trading.models.default_listing_expiry, help_text='Listing is inactive once this time has passed', verbose_name='expires at')),
                ('bids', models.JSONField(blank=True, default=list, encoder=django.core.serializers.json.DjangoJSONEncoder, help_text='Bids received on a sell post', verbose_name='bids')),
                ('offers', models.JSONField(blank=True, default=list, encoder=django.core.serializers.json.DjangoJSONEncoder, help_text='Offers received on a buy request', verbose_name='offers')),
                ('version', models.PositiveIntegerField(default=0, help_text='Optimistic concurrency counter', verbose_name='version')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('company', models.ForeignKey(help_text='Company whose shares are listed', on_delete=django.db.models.deletion.PROTECT, related_name='listings', to='trading.company')),
                ('owner', models.ForeignKey(help_text='User who created the listing', on_delete=django.db.models.deletion.CASCADE, related_name='listings', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'listing',
                'verbose_name_plural': 'listings',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['listing_type', 'status', '-created_at'], name='listing_type_status_idx'),
                    models.Index(fields=['owner', 'status'], name='listing_owner_status_idx'),
                    models.Index(fields=['company', 'listing_type', 'status'], name='listing_company_type_idx'),
                    models.Index(fields=['is_boosted', 'boost_expires_at'], name='listing_boost_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Notification',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('notification_type', models.CharField(choices=[('new_bid', 'New bid'), ('new_offer', 'New offer'), ('bid_accepted', 'Bid accepted'), ('offer_accepted', 'Offer accepted'), ('bid_rejected', 'Bid rejected'), ('offer_rejected', 'Offer rejected'), ('counter_offer', 'Counter offer'), ('listing_expired', 'Listing expired'), ('boost_activated', 'Boost activated'), ('referral_earning', 'Referral earning'), ('listing_cancelled', 'Listing cancelled')], max_length=20, verbose_name='type')),
                ('title', models.CharField(max_length=200, verbose_name='title')),
                ('message', models.TextField(verbose_name='message')),
                ('data', models.JSONField(blank=True, default=dict, encoder=django.core.serializers.json.DjangoJSONEncoder, help_text='Listing/bid ids, amount, quantity, company name', verbose_name='data')),
                ('action_url', models.CharField(blank=True, default='', max_length=200, verbose_name='action url')),
                ('is_read', models.BooleanField(default=False, verbose_name='is read')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('recipient', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='notifications', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'notification',
                'verbose_name_plural': 'notifications',
                'ordering': ['-created_at', '-id'],
                'indexes': [
                    models.Index(fields=['recipient', 'is_read', '-created_at'], name='notification_recipient_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='UsernameHistory',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('username', models.CharField(error_messages={'unique': 'This username has already been used.'}, max_length=150, unique=True, verbose_name='username')),
                ('changed_at', models.DateTimeField(default=django.utils.timezone.now, verbose_name='changed at')),
                ('reason', models.CharField(default='User changed username', max_length=200, verbose_name='reason')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('user', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='username_history', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'username history',
                'verbose_name_plural': 'username history',
                'ordering': ['changed_at'],
                'indexes': [
                    models.Index(fields=['username', 'user'], name='username_history_user_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='FeeTransaction',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('transaction_type', models.CharField(choices=[('platform_fee', 'Platform fee'), ('boost_fee', 'Boost fee'), ('affiliate_commission', 'Affiliate commission')], max_length=30, verbose_name='type')),
                ('amount', models.DecimalField(decimal_places=2, max_digits=12, verbose_name='amount')),
                ('company_name', models.CharField(blank=True, default='', max_length=200, verbose_name='company name')),
                ('description', models.CharField(blank=True, default='', max_length=255, verbose_name='description')),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('completed', 'Completed'), ('failed', 'Failed')], default='completed', max_length=10, verbose_name='status')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('listing', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='fee_transactions', to='trading.listing')),
                ('seller', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='fee_transactions', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'fee transaction',
                'verbose_name_plural': 'fee transactions',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['transaction_type', '-created_at'], name='fee_txn_type_created_idx'),
                ],
            },
        ),
    ]
