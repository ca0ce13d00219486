"""
API tests for registration, tokens, profile updates and username availability.
"""

import jwt
import pytest
from django.conf import settings
from django.contrib.auth import get_user_model
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from trading.identity import INITIAL_REGISTRATION, change_username
from trading.models import UsernameHistory

User = get_user_model()


@pytest.fixture
def api_client():
    """Provide API client for testing."""
    return APIClient()


@pytest.fixture
def member(db):
    return User.objects.create_user(
        username='alice',
        email='alice@test.com',
        password='TestPass123!',
        full_name='Alice Member'
    )


@pytest.fixture
def member_client(member):
    client = APIClient()
    token = RefreshToken.for_user(member)
    client.credentials(HTTP_AUTHORIZATION=f'Bearer {token.access_token}')
    return client


def registration_payload(**overrides):
    payload = {
        'username': 'new_member',
        'email': 'new@test.com',
        'password': 'SecurePass123!',
        'confirm_password': 'SecurePass123!',
        'full_name': 'New Member',
    }
    payload.update(overrides)
    return payload


@pytest.mark.django_db
class TestRegistration:

    def test_register_with_username(self, api_client):
        response = api_client.post(reverse('user_register'), registration_payload(), format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['username'] == 'new_member'
        assert 'password' not in response.data
        assert response.data['is_verified'] is False

        user = User.objects.get(username='new_member')
        assert user.check_password('SecurePass123!')
        assert UsernameHistory.objects.get(username='new_member').reason == INITIAL_REGISTRATION

    def test_username_is_lowercased(self, api_client):
        response = api_client.post(
            reverse('user_register'),
            registration_payload(username='New_Member', email='NEW@Test.com'),
            format='json'
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['username'] == 'new_member'
        assert response.data['email'] == 'new@test.com'

    def test_username_generated_when_omitted(self, api_client):
        payload = registration_payload()
        del payload['username']

        response = api_client.post(reverse('user_register'), payload, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        username = response.data['username']
        assert 3 <= len(username) <= 20
        assert UsernameHistory.objects.filter(username=username).exists()

    def test_retired_username_conflicts(self, api_client, member):
        change_username(member, 'alice_two')

        response = api_client.post(
            reverse('user_register'),
            registration_payload(username='alice'),
            format='json'
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert not User.objects.filter(email='new@test.com').exists()

    def test_live_username_taken(self, api_client, member):
        response = api_client.post(
            reverse('user_register'),
            registration_payload(username='alice'),
            format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'username' in response.data

    def test_duplicate_email(self, api_client, member):
        response = api_client.post(
            reverse('user_register'),
            registration_payload(email='ALICE@test.com'),
            format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'email' in response.data

    def test_password_mismatch(self, api_client):
        response = api_client.post(
            reverse('user_register'),
            registration_payload(confirm_password='Different123!'),
            format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'confirm_password' in response.data

    @pytest.mark.parametrize('username', ['ab', 'has space', 'dash-name', 'x' * 21])
    def test_invalid_username(self, api_client, username):
        response = api_client.post(
            reverse('user_register'),
            registration_payload(username=username),
            format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_invalid_phone(self, api_client):
        response = api_client.post(
            reverse('user_register'),
            registration_payload(phone_number='12345'),
            format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'phone_number' in response.data

    def test_referral_must_exist(self, api_client, member):
        missing = api_client.post(
            reverse('user_register'),
            registration_payload(referred_by='nobody_here'),
            format='json'
        )
        assert missing.status_code == status.HTTP_400_BAD_REQUEST

        response = api_client.post(
            reverse('user_register'),
            registration_payload(referred_by='Alice'),
            format='json'
        )
        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['referred_by'] == 'alice'

    def test_privilege_fields_ignored(self, api_client):
        response = api_client.post(
            reverse('user_register'),
            registration_payload(is_staff=True, is_superuser=True, is_verified=True),
            format='json'
        )

        assert response.status_code == status.HTTP_201_CREATED
        user = User.objects.get(username='new_member')
        assert not user.is_staff
        assert not user.is_superuser
        assert not user.is_verified


@pytest.mark.django_db
class TestTokens:

    def test_obtain_with_username(self, api_client, member):
        response = api_client.post(
            reverse('token_obtain_pair'),
            {'username': 'alice', 'password': 'TestPass123!'},
            format='json'
        )

        assert response.status_code == status.HTTP_200_OK
        assert 'access' in response.data
        assert 'refresh' in response.data

        claims = jwt.decode(response.data['access'], settings.SECRET_KEY, algorithms=['HS256'])
        assert str(claims['user_id']) == str(member.id)
        assert claims['token_type'] == 'access'

    def test_obtain_with_email(self, api_client, member):
        response = api_client.post(
            reverse('token_obtain_pair'),
            {'username': 'Alice@Test.com', 'password': 'TestPass123!'},
            format='json'
        )

        assert response.status_code == status.HTTP_200_OK

    def test_wrong_password(self, api_client, member):
        response = api_client.post(
            reverse('token_obtain_pair'),
            {'username': 'alice', 'password': 'WrongPass123!'},
            format='json'
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_banned_user_cannot_sign_in(self, api_client, member):
        member.is_banned = True
        member.save()

        response = api_client.post(
            reverse('token_obtain_pair'),
            {'username': 'alice', 'password': 'TestPass123!'},
            format='json'
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_refresh(self, api_client, member):
        refresh = RefreshToken.for_user(member)

        response = api_client.post(reverse('token_refresh'), {'refresh': str(refresh)}, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert 'access' in response.data


@pytest.mark.django_db
class TestProfile:

    def test_requires_authentication(self, api_client):
        response = api_client.get(reverse('user_profile'))

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_get_profile(self, member_client):
        response = member_client.get(reverse('user_profile'))

        assert response.status_code == status.HTTP_200_OK
        assert response.data['username'] == 'alice'
        assert response.data['email'] == 'alice@test.com'
        assert response.data['previous_usernames'] == []
        assert response.data['avatar_url'] is None
        assert 'password' not in response.data

    def test_update_details(self, member_client, member):
        response = member_client.patch(
            reverse('user_profile'),
            {'full_name': 'Alice Renamed', 'phone_number': '9876543210'},
            format='json'
        )

        assert response.status_code == status.HTTP_200_OK
        member.refresh_from_db()
        assert member.full_name == 'Alice Renamed'
        assert member.phone_number == '9876543210'

    def test_change_username(self, member_client, member):
        response = member_client.patch(reverse('user_profile'), {'username': 'alice_new'}, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['username'] == 'alice_new'
        assert [entry['username'] for entry in response.data['previous_usernames']] == ['alice']
        assert UsernameHistory.objects.filter(username='alice', user=member).exists()

    def test_cannot_change_back(self, member_client):
        member_client.patch(reverse('user_profile'), {'username': 'alice_new'}, format='json')

        response = member_client.patch(reverse('user_profile'), {'username': 'alice'}, format='json')

        assert response.status_code == status.HTTP_409_CONFLICT

    def test_cannot_take_live_username(self, member_client, db):
        User.objects.create_user(username='bob', email='bob@test.com', password='TestPass123!')

        response = member_client.patch(reverse('user_profile'), {'username': 'bob'}, format='json')

        assert response.status_code == status.HTTP_409_CONFLICT

    def test_failed_username_change_keeps_other_fields(self, member_client, member):
        User.objects.create_user(username='bob', email='bob@test.com', password='TestPass123!')

        member_client.patch(
            reverse('user_profile'),
            {'username': 'bob', 'full_name': 'Should Not Stick'},
            format='json'
        )

        member.refresh_from_db()
        assert member.username == 'alice'
        assert member.full_name == 'Alice Member'

    def test_invalid_username_format(self, member_client):
        response = member_client.patch(reverse('user_profile'), {'username': 'No Spaces'}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST


@pytest.mark.django_db
class TestUsernameAvailability:

    def test_available(self, api_client):
        response = api_client.get(reverse('username_available'), {'username': 'Fresh_Name'})

        assert response.status_code == status.HTTP_200_OK
        assert response.data == {'username': 'fresh_name', 'available': True}

    def test_taken_and_retired(self, api_client, member):
        taken = api_client.get(reverse('username_available'), {'username': 'alice'})
        assert taken.data['available'] is False

        change_username(member, 'alice_two')
        retired = api_client.get(reverse('username_available'), {'username': 'alice'})
        assert retired.data['available'] is False

    def test_missing_parameter(self, api_client):
        response = api_client.get(reverse('username_available'))

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_malformed_username_unavailable(self, api_client):
        response = api_client.get(reverse('username_available'), {'username': 'a!'})

        assert response.status_code == status.HTTP_200_OK
        assert response.data['available'] is False
