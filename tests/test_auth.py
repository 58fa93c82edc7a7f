"""
Tests for authentication, email verification and password reset
"""
from datetime import timedelta
from urllib.parse import urlparse, parse_qs

import pytest
from models import db, User, VerificationToken, utcnow
from services.token_service import token_service
from conftest import login, TEST_PASSWORD

RESET_MESSAGE = 'If an account with this email exists, a password reset link has been sent.'


def link_params(message):
    """email/token query parameters of the link in an email"""
    for word in message.body.split():
        if word.startswith('http'):
            return {k: v[0] for k, v in parse_qs(urlparse(word).query).items()}
    raise AssertionError('No link in email')


@pytest.mark.auth
@pytest.mark.api
class TestSignup:

    def test_signup_success(self, client, db_session, outbox):
        response = client.post('/api/auth/signup', json={
            'name': 'New Tutor',
            'email': 'New.Tutor@Example.com',
            'password': 'ValidPass123'
        })

        assert response.status_code == 201
        data = response.get_json()
        assert data['message'] == 'User created successfully'
        assert data['user']['email'] == 'new.tutor@example.com'
        assert data['user']['email_verified'] is False
        assert 'password_hash' not in data['user']

        user = User.query.filter_by(email='new.tutor@example.com').first()
        assert user is not None
        assert user.check_password('ValidPass123')

        assert len(outbox) == 1
        assert outbox[0].subject == 'Verify your email - Avidato'

    def test_signup_duplicate_email(self, client, db_session, test_user):
        response = client.post('/api/auth/signup', json={
            'name': 'Someone',
            'email': 'test@example.com',
            'password': 'ValidPass123'
        })

        assert response.status_code == 400
        assert response.get_json()['error'] == 'User with this email already exists'

    def test_signup_weak_password(self, client, db_session):
        response = client.post('/api/auth/signup', json={
            'name': 'New Tutor',
            'email': 'new@example.com',
            'password': 'alllowercase1'
        })

        assert response.status_code == 400
        data = response.get_json()
        assert data['error'] == 'Invalid input data'
        assert data['errors']['password'] == ['Password must contain uppercase, lowercase, and numbers']

    def test_signup_strips_html_from_name(self, client, db_session):
        response = client.post('/api/auth/signup', json={
            'name': '<b>Anna</b>',
            'email': 'anna@example.com',
            'password': 'ValidPass123'
        })

        assert response.status_code == 201
        assert response.get_json()['user']['name'] == 'Anna'

    def test_signup_reports_each_invalid_field(self, client, db_session):
        response = client.post('/api/auth/signup', json={
            'name': 'A',
            'email': 'not-an-email',
            'password': 'short'
        })

        assert response.status_code == 400
        errors = response.get_json()['errors']
        assert set(errors) == {'name', 'email', 'password'}


@pytest.mark.auth
@pytest.mark.api
class TestLogin:

    def test_login_success(self, client, test_user):
        response = login(client)

        assert response.status_code == 200
        assert response.get_json()['user']['email'] == 'test@example.com'

        me = client.get('/api/auth/me')
        assert me.status_code == 200
        assert me.get_json()['user']['id'] == test_user.id

    def test_login_wrong_password(self, client, test_user):
        response = login(client, password='WrongPass999')

        assert response.status_code == 401
        assert response.get_json()['error'] == 'Invalid email or password'

    def test_login_unknown_email(self, client, db_session):
        response = login(client, email='ghost@example.com')
        assert response.status_code == 401

    def test_login_rate_limited_after_five_attempts(self, client, test_user):
        for _ in range(5):
            assert login(client, password='WrongPass999').status_code == 401

        response = login(client)

        assert response.status_code == 429
        assert 'Retry-After' in response.headers

    def test_logout(self, authenticated_client):
        response = authenticated_client.post('/api/auth/logout')
        assert response.status_code == 200

        assert authenticated_client.get('/api/auth/me').status_code == 401

    def test_me_requires_login(self, client, db_session):
        response = client.get('/api/auth/me')
        assert response.status_code == 401
        assert response.get_json()['error'] == 'Unauthorized'


@pytest.mark.auth
@pytest.mark.security
class TestEmailVerification:

    def test_full_verification_flow(self, client, db_session, second_user, outbox):
        response = client.post('/api/auth/verify-email/request', json={'email': second_user.email})
        assert response.status_code == 200
        assert len(outbox) == 1

        params = link_params(outbox[0])
        assert params['email'] == second_user.email

        response = client.post('/api/auth/verify-email', json=params)

        assert response.status_code == 200
        assert db.session.get(User, second_user.id).email_verified is True

        # The link works once
        response = client.post('/api/auth/verify-email', json=params)
        assert response.status_code == 400
        assert response.get_json()['error'] == 'Invalid verification link.'

    def test_request_for_unknown_email_is_generic(self, client, db_session, outbox):
        response = client.post('/api/auth/verify-email/request', json={'email': 'ghost@example.com'})

        assert response.status_code == 200
        assert len(outbox) == 0

    def test_request_when_already_verified(self, client, test_user, outbox):
        response = client.post('/api/auth/verify-email/request', json={'email': test_user.email})

        assert response.get_json()['message'] == 'Email is already verified.'
        assert len(outbox) == 0

    def test_expired_verification_link(self, client, db_session, second_user):
        issued = token_service.issue(second_user.email, VerificationToken.PURPOSE_EMAIL_VERIFICATION)
        record = VerificationToken.query.filter_by(token=issued.token).first()
        record.expires_at = utcnow() - timedelta(hours=1)
        db.session.commit()

        response = client.post('/api/auth/verify-email', json={
            'email': second_user.email,
            'token': issued.token
        })

        assert response.status_code == 400
        assert response.get_json()['error'] == 'Verification link has expired. Please request a new one.'

    def test_reset_token_cannot_verify_email(self, client, db_session, second_user):
        issued = token_service.issue(second_user.email, VerificationToken.PURPOSE_PASSWORD_RESET)

        response = client.post('/api/auth/verify-email', json={
            'email': second_user.email,
            'token': issued.token
        })

        assert response.status_code == 400
        assert response.get_json()['error'] == 'Invalid verification link.'


@pytest.mark.auth
@pytest.mark.security
class TestPasswordReset:

    def test_same_response_for_known_and_unknown_email(self, client, test_user, outbox):
        known = client.post('/api/auth/forgot-password', json={'email': test_user.email})
        unknown = client.post('/api/auth/forgot-password', json={'email': 'ghost@example.com'})

        assert known.status_code == unknown.status_code == 200
        assert known.get_json() == unknown.get_json() == {'message': RESET_MESSAGE}
        assert len(outbox) == 1

    def test_full_reset_flow(self, client, test_user, outbox):
        client.post('/api/auth/forgot-password', json={'email': test_user.email})
        params = link_params(outbox[0])

        response = client.post('/api/auth/reset-password', json={
            **params,
            'password': 'BrandNew456',
            'confirm_password': 'BrandNew456'
        })

        assert response.status_code == 200
        assert login(client, password='BrandNew456').status_code == 200
        assert VerificationToken.query.filter_by(
            email=test_user.email,
            purpose=VerificationToken.PURPOSE_PASSWORD_RESET
        ).count() == 0

    def test_reset_link_is_single_use(self, client, test_user, outbox):
        client.post('/api/auth/forgot-password', json={'email': test_user.email})
        params = link_params(outbox[0])

        client.post('/api/auth/reset-password', json={**params, 'password': 'BrandNew456'})
        response = client.post('/api/auth/reset-password', json={**params, 'password': 'Another789X'})

        assert response.status_code == 400
        assert response.get_json()['error'] == 'Invalid reset link.'

    def test_expired_reset_link(self, client, test_user):
        issued = token_service.issue(test_user.email, VerificationToken.PURPOSE_PASSWORD_RESET)
        record = VerificationToken.query.filter_by(token=issued.token).first()
        record.expires_at = utcnow() - timedelta(minutes=5)
        db.session.commit()

        response = client.post('/api/auth/reset-password', json={
            'email': test_user.email,
            'token': issued.token,
            'password': 'BrandNew456'
        })

        assert response.status_code == 400
        assert response.get_json()['error'] == 'Reset link has expired. Please request a new one.'
        assert test_user.check_password(TEST_PASSWORD)

    def test_reset_with_mismatched_confirmation(self, client, test_user):
        issued = token_service.issue(test_user.email, VerificationToken.PURPOSE_PASSWORD_RESET)

        response = client.post('/api/auth/reset-password', json={
            'email': test_user.email,
            'token': issued.token,
            'password': 'BrandNew456',
            'confirm_password': 'Different456'
        })

        assert response.status_code == 400
        assert response.get_json()['errors']['confirm_password'] == ["Passwords don't match"]
