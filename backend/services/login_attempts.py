"""Failed-login tracking for brute force protection."""
import logging
import math
from threading import Lock
from datetime import timedelta
from shared.models import now

logger = logging.getLogger(__name__)


class LoginAttemptTracker:
    """In-memory record of failed logins keyed by (email, ip) and by ip alone.

    A key is locked once it reaches its failure limit inside the lockout
    window. Locks expire on their own; a successful login clears the
    (email, ip) key.
    """

    def __init__(self, max_per_account=5, max_per_ip=15, lockout_minutes=15):
        self.max_per_account = max_per_account
        self.max_per_ip = max_per_ip
        self.window = timedelta(minutes=lockout_minutes)
        self._failures = {}
        self._lock = Lock()

    @staticmethod
    def _account_key(email, ip):
        return f"account:{(email or '').lower()}:{ip}"

    @staticmethod
    def _ip_key(ip):
        return f"ip:{ip}"

    def _recent(self, key, current):
        """Return failures for key inside the window, pruning old ones."""
        attempts = [t for t in self._failures.get(key, []) if current - t < self.window]
        if attempts:
            self._failures[key] = attempts
        else:
            self._failures.pop(key, None)
        return attempts

    def _prune_expired(self, current):
        """Drop every key whose newest failure has left the window."""
        expired = [key for key, attempts in self._failures.items() if current - attempts[-1] >= self.window]
        for key in expired:
            del self._failures[key]

    def check(self, email, ip):
        """Return minutes remaining on the active lock, or 0 if not locked."""
        current = now()
        with self._lock:
            for key, limit in ((self._ip_key(ip), self.max_per_ip),
                               (self._account_key(email, ip), self.max_per_account)):
                attempts = self._recent(key, current)
                if len(attempts) >= limit:
                    remaining = self.window - (current - attempts[-1])
                    return max(1, math.ceil(remaining.total_seconds() / 60))
        return 0

    def record_failure(self, email, ip):
        current = now()
        with self._lock:
            self._prune_expired(current)
            for key in (self._account_key(email, ip), self._ip_key(ip)):
                self._recent(key, current)
                self._failures.setdefault(key, []).append(current)
            count = len(self._failures[self._account_key(email, ip)])
        logger.warning(f"Failed login attempt {count} for {email} from {ip}")
        return count

    def record_success(self, email, ip):
        with self._lock:
            self._failures.pop(self._account_key(email, ip), None)

    def reset(self):
        with self._lock:
            self._failures.clear()


def init_login_tracker(app):
    tracker = LoginAttemptTracker(
        max_per_account=app.config.get('MAX_FAILED_LOGINS_PER_ACCOUNT', 5),
        max_per_ip=app.config.get('MAX_FAILED_LOGINS_PER_IP', 15),
        lockout_minutes=app.config.get('FAILED_LOGIN_LOCKOUT_MINUTES', 15),
    )
    app.extensions['login_attempts'] = tracker
    return tracker
