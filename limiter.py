"""
Rate limiting for the application.

Two layers share the same storage backend (the `limits` library that
Flask-Limiter is built on):

* `limiter` - Flask-Limiter instance applying the blanket RATELIMIT_DEFAULT
  limit to every route.
* `rate_limiter` - named fixed-window limits (AUTH_SIGNUP, AUTH_LOGIN, ...)
  checked explicitly by views through `rate_limiter.limit(name)`.

NOTE: the default memory:// storage keeps counters per process and loses them
on restart. Set RATELIMIT_STORAGE_URI to a Redis URL (redis://host:port) to
share counters between workers and instances.
"""
import math
import time
from dataclasses import dataclass
from functools import wraps

from flask import current_app, jsonify, make_response, request
from flask_limiter import Limiter
from limits import RateLimitItemPerSecond
from limits.storage import storage_from_string
from limits.strategies import FixedWindowRateLimiter

from logging_config import log_security_event


def get_client_identifier():
    """Identify the client by peer address.

    With TRUST_PROXY_HEADERS set, the first X-Forwarded-For hop and then
    X-Real-IP take precedence over the peer address.
    """
    if current_app.config.get('TRUST_PROXY_HEADERS'):
        forwarded = request.headers.get('X-Forwarded-For')
        if forwarded:
            first_hop = forwarded.split(',')[0].strip()
            if first_hop:
                return first_hop

        real_ip = request.headers.get('X-Real-IP')
        if real_ip:
            return real_ip.strip()

    return request.remote_addr or 'unknown'


# Blanket limit, configured from RATELIMIT_* settings in init_app
limiter = Limiter(
    key_func=get_client_identifier,
    strategy="fixed-window"
)


@dataclass(frozen=True)
class RateLimitConfig:
    """A fixed window of `interval` seconds allowing `max_requests` calls"""
    interval: int
    max_requests: int
    name: str = 'LIMITER'

    def as_item(self):
        return RateLimitItemPerSecond(self.max_requests, self.interval, namespace=self.name)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float

    @property
    def retry_after(self):
        """Whole seconds until the window resets (at least 1)"""
        return max(1, math.ceil(self.reset_at - time.time()))

    def headers(self):
        headers = {
            'X-RateLimit-Limit': str(self.limit),
            'X-RateLimit-Remaining': str(self.remaining),
            'X-RateLimit-Reset': str(int(math.ceil(self.reset_at))),
        }
        if not self.allowed:
            headers['Retry-After'] = str(self.retry_after)
        return headers


def blanket_limit_result(error):
    """RateLimitResult for a request rejected by the blanket Flask-Limiter limit

    None when the 429 did not come from Flask-Limiter.
    """
    current = limiter.current_limit
    if current is not None:
        return RateLimitResult(
            allowed=False,
            limit=current.limit.amount,
            remaining=max(0, int(current.remaining)),
            reset_at=float(current.reset_at)
        )

    if getattr(error, 'limit', None) is None:
        return None

    item = error.limit.limit
    return RateLimitResult(
        allowed=False,
        limit=item.amount,
        remaining=0,
        reset_at=time.time() + item.get_expiry()
    )


class RateLimiter:
    """Fixed-window request counter keyed by client identifier.

    The first call for a key opens a window; each allowed call increments its
    counter. Once the counter reaches ``max_requests`` further calls are
    rejected until the window's reset time passes, after which the count
    starts again from zero. Expired windows are swept by the storage.
    """

    def __init__(self, storage_uri='memory://', limits=None):
        self.configs = {}
        self.init_storage(storage_uri)
        if limits:
            self.register_limits(limits)

    def init_app(self, app):
        self.init_storage(app.config.get('RATELIMIT_STORAGE_URI', 'memory://'))
        self.register_limits(app.config.get('RATE_LIMITS', {}))
        app.extensions['rate_limiter'] = self

    def init_storage(self, storage_uri):
        self.storage = storage_from_string(storage_uri)
        self.strategy = FixedWindowRateLimiter(self.storage)

    def register_limits(self, limits):
        for name, settings in limits.items():
            self.configs[name] = RateLimitConfig(
                interval=int(settings['interval']),
                max_requests=int(settings['max_requests']),
                name=name
            )

    def get_config(self, name):
        try:
            return self.configs[name]
        except KeyError:
            raise KeyError(f'Unknown rate limit: {name}') from None

    def check(self, identifier, config):
        """Count one request for `identifier` against `config`

        Returns:
            RateLimitResult with allowed flag, remaining calls and reset time
        """
        item = config.as_item()
        allowed = self.strategy.hit(item, identifier)
        reset_at, remaining = self.strategy.get_window_stats(item, identifier)

        return RateLimitResult(
            allowed=allowed,
            limit=config.max_requests,
            remaining=max(0, int(remaining)),
            reset_at=float(reset_at)
        )

    def reset(self):
        """Drop all counters"""
        self.storage.reset()

    def limit(self, name, error='Too many requests', message='Please wait before trying again'):
        """Decorator applying the named limit to a view, keyed by client identifier"""
        def decorator(f):
            @wraps(f)
            def decorated_function(*args, **kwargs):
                config = self.get_config(name)
                identifier = get_client_identifier()
                result = self.check(identifier, config)

                if not result.allowed:
                    log_security_event(
                        'rate_limit_exceeded',
                        ip_address=identifier,
                        details=f'Limit: {name} ({config.max_requests} per {config.interval}s) on {request.path}'
                    )
                    current_app.logger.warning(f'Rate limit {name} exceeded: {request.path} from IP {identifier}')

                    response = jsonify({
                        'error': error,
                        'message': message,
                        'retryAfter': result.retry_after
                    })
                    response.status_code = 429
                    response.headers.update(result.headers())
                    return response

                response = make_response(f(*args, **kwargs))
                response.headers.update(result.headers())
                return response
            return decorated_function
        return decorator


rate_limiter = RateLimiter()
