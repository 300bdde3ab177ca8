"""Request rate limiting."""
from flask import current_app, g
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address


def rate_limit_key():
    """Authenticated callers are limited per user, anonymous ones per address."""
    user = getattr(g, 'user', None)
    if user is not None:
        return f"user:{user.id}"
    return get_remote_address()


def login_rate_limit():
    return current_app.config.get('LOGIN_RATE_LIMIT', '10 per minute')


# Limits and storage come from the RATELIMIT_* keys in app.config.
limiter = Limiter(key_func=rate_limit_key)
