"""
Tests for the named fixed-window rate limiter
"""
import time

import pytest

from app import create_app
from config import config, TestingConfig
from limiter import RateLimiter, RateLimitConfig, RateLimitResult, limiter, rate_limiter


@pytest.fixture
def limiter_instance():
    return RateLimiter('memory://', limits={
        'TEST_LIMIT': {'interval': 60, 'max_requests': 3},
        'SHORT_LIMIT': {'interval': 1, 'max_requests': 2},
    })


@pytest.mark.unit
class TestRateLimiter:
    """Test the counter semantics"""

    def test_allows_up_to_max_requests(self, limiter_instance):
        config = limiter_instance.get_config('TEST_LIMIT')

        results = [limiter_instance.check('10.0.0.1', config) for _ in range(3)]

        assert all(result.allowed for result in results)
        assert [result.remaining for result in results] == [2, 1, 0]

    def test_rejects_after_max_requests(self, limiter_instance):
        config = limiter_instance.get_config('TEST_LIMIT')
        for _ in range(3):
            limiter_instance.check('10.0.0.1', config)

        result = limiter_instance.check('10.0.0.1', config)

        assert result.allowed is False
        assert result.remaining == 0
        assert result.reset_at > time.time()

    def test_keys_are_independent(self, limiter_instance):
        config = limiter_instance.get_config('TEST_LIMIT')
        for _ in range(3):
            limiter_instance.check('10.0.0.1', config)

        assert limiter_instance.check('10.0.0.2', config).allowed is True

    def test_named_limits_do_not_share_counters(self, limiter_instance):
        for _ in range(3):
            limiter_instance.check('10.0.0.1', limiter_instance.get_config('TEST_LIMIT'))

        result = limiter_instance.check('10.0.0.1', limiter_instance.get_config('SHORT_LIMIT'))
        assert result.allowed is True

    def test_window_resets_after_interval(self, limiter_instance):
        config = limiter_instance.get_config('SHORT_LIMIT')
        limiter_instance.check('10.0.0.1', config)
        limiter_instance.check('10.0.0.1', config)
        assert limiter_instance.check('10.0.0.1', config).allowed is False

        time.sleep(1.1)

        result = limiter_instance.check('10.0.0.1', config)
        assert result.allowed is True
        assert result.remaining == 1

    def test_reset_clears_counters(self, limiter_instance):
        config = limiter_instance.get_config('TEST_LIMIT')
        for _ in range(4):
            limiter_instance.check('10.0.0.1', config)

        limiter_instance.reset()

        assert limiter_instance.check('10.0.0.1', config).allowed is True

    def test_unknown_limit_name(self, limiter_instance):
        with pytest.raises(KeyError):
            limiter_instance.get_config('NOT_A_LIMIT')

    def test_app_limits_registered(self, app):
        config = rate_limiter.get_config('AUTH_SIGNUP')
        assert config == RateLimitConfig(interval=3600, max_requests=3, name='AUTH_SIGNUP')
        assert rate_limiter.get_config('AUTH_LOGIN').max_requests == 5
        assert rate_limiter.get_config('API_VOCABULARY_AUDIO').interval == 60


@pytest.mark.unit
class TestRateLimitResult:

    def test_headers_for_rejected_result(self):
        result = RateLimitResult(allowed=False, limit=3, remaining=0, reset_at=time.time() + 30)

        headers = result.headers()

        assert headers['X-RateLimit-Limit'] == '3'
        assert headers['X-RateLimit-Remaining'] == '0'
        assert 29 <= int(headers['Retry-After']) <= 31

    def test_no_retry_after_when_allowed(self):
        result = RateLimitResult(allowed=True, limit=3, remaining=2, reset_at=time.time() + 30)
        assert 'Retry-After' not in result.headers()

    def test_retry_after_is_at_least_one_second(self):
        result = RateLimitResult(allowed=False, limit=3, remaining=0, reset_at=time.time() - 5)
        assert result.retry_after == 1


@pytest.mark.api
@pytest.mark.security
class TestEndpointRateLimiting:
    """Named limits applied to endpoints"""

    def test_signup_fourth_attempt_is_rejected(self, client, db_session):
        statuses = []
        for i in range(3):
            response = client.post('/api/auth/signup', json={
                'name': 'New Tutor',
                'email': f'tutor{i}@example.com',
                'password': 'ValidPass123'
            })
            statuses.append(response.status_code)

        assert statuses == [201, 201, 201]

        response = client.post('/api/auth/signup', json={
            'name': 'New Tutor',
            'email': 'tutor4@example.com',
            'password': 'ValidPass123'
        })

        assert response.status_code == 429
        assert 'Retry-After' in response.headers
        data = response.get_json()
        assert data['error'] == 'Too many signup attempts'
        assert data['retryAfter'] >= 1

    def test_validation_errors_count_towards_limit(self, client, db_session):
        for _ in range(3):
            response = client.post('/api/auth/signup', json={'email': 'bad'})
            assert response.status_code == 400

        response = client.post('/api/auth/signup', json={'email': 'bad'})
        assert response.status_code == 429

    def test_allowed_responses_carry_limit_headers(self, client, db_session):
        response = client.post('/api/auth/forgot-password', json={'email': 'nobody@example.com'})

        assert response.status_code == 200
        assert response.headers['X-RateLimit-Limit'] == '3'
        assert response.headers['X-RateLimit-Remaining'] == '2'

    def test_forwarded_for_identifies_client(self, client, db_session):
        for _ in range(3):
            client.post('/api/auth/forgot-password', json={'email': 'a@example.com'},
                        headers={'X-Forwarded-For': '203.0.113.5, 10.0.0.1'})

        blocked = client.post('/api/auth/forgot-password', json={'email': 'a@example.com'},
                              headers={'X-Forwarded-For': '203.0.113.5'})
        other = client.post('/api/auth/forgot-password', json={'email': 'a@example.com'},
                            headers={'X-Forwarded-For': '203.0.113.6'})

        assert blocked.status_code == 429
        assert other.status_code == 200

    def test_real_ip_header_used_without_forwarded_for(self, client, db_session):
        for _ in range(3):
            client.post('/api/auth/forgot-password', json={'email': 'a@example.com'},
                        headers={'X-Real-IP': '198.51.100.7'})

        response = client.post('/api/auth/forgot-password', json={'email': 'a@example.com'},
                               headers={'X-Real-IP': '198.51.100.7'})
        assert response.status_code == 429

    def test_proxy_headers_ignored_unless_trusted(self, app, client, db_session, monkeypatch):
        monkeypatch.setitem(app.config, 'TRUST_PROXY_HEADERS', False)
        for i in range(3):
            client.post('/api/auth/forgot-password', json={'email': 'a@example.com'},
                        headers={'X-Forwarded-For': f'203.0.113.{i}'})

        response = client.post('/api/auth/forgot-password', json={'email': 'a@example.com'},
                               headers={'X-Forwarded-For': '203.0.113.99', 'X-Real-IP': '198.51.100.7'})

        assert response.status_code == 429


class BlanketLimitConfig(TestingConfig):
    RATELIMIT_ENABLED = True
    RATELIMIT_DEFAULT = '1 per minute'


@pytest.fixture
def blanket_limited_client(app, monkeypatch):
    """Client for an app with the blanket Flask-Limiter limit on at one request per minute"""
    monkeypatch.setitem(config, 'blanket_limit', BlanketLimitConfig)
    enabled = limiter.enabled

    limited_app = create_app('blanket_limit')
    yield limited_app.test_client()

    limiter.enabled = enabled


@pytest.mark.api
@pytest.mark.security
class TestBlanketRateLimit:
    """App-wide default limit from Flask-Limiter"""

    def test_default_derived_from_api_default(self, app):
        api_default = app.config['RATE_LIMITS']['API_DEFAULT']

        assert app.config['RATELIMIT_DEFAULT'] == f"{api_default['max_requests']} per {api_default['interval']} seconds"

    def test_rejection_carries_limit_headers(self, blanket_limited_client):
        first = blanket_limited_client.get('/')
        second = blanket_limited_client.get('/')

        assert first.status_code == 200
        assert second.status_code == 429
        assert second.headers['X-RateLimit-Limit'] == '1'
        assert second.headers['X-RateLimit-Remaining'] == '0'
        assert int(second.headers['X-RateLimit-Reset']) > time.time()
        assert 1 <= int(second.headers['Retry-After']) <= 60

        data = second.get_json()
        assert data['error'] == 'Too many requests'
        assert 1 <= data['retryAfter'] <= 60
