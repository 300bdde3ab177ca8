"""Application settings for the Shogunito backend."""
import os
from typing import List
from appdirs import user_data_dir
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Backend configuration loaded from SHOGUNITO_* environment variables and .env."""

    # Database
    database_url: str = 'sqlite:///shogunito.db'

    # Authentication
    access_token_ttl: int = 15 * 60  # seconds
    refresh_token_ttl: int = 7 * 24 * 60 * 60  # seconds
    password_reset_token_ttl: int = 60 * 60  # seconds
    # Comma separated emails, '*' for open registration, empty to disable
    allowed_registration_emails: str = ''

    # Rate limiting
    rate_limit_enabled: bool = True
    rate_limit_default: str = '300 per minute'
    login_rate_limit: str = '10 per minute'
    rate_limit_storage_uri: str = 'memory://'
    max_failed_logins_per_account: int = 5
    max_failed_logins_per_ip: int = 15
    failed_login_lockout_minutes: int = 15

    # Uploads
    storage_path: str = os.path.join(user_data_dir('shogunito', 'shogunito'), 'media')
    storage_container: str = 'media'
    max_upload_size_mb: int = 200
    thumbnail_size: tuple = (320, 180)
    upload_retry_attempts: int = 3

    # Pagination
    default_page_size: int = 50
    max_page_size: int = 100

    # Logging
    log_level: str = 'INFO'
    log_dir: str = os.path.join(os.path.dirname(__file__), '..', 'logs')

    model_config = SettingsConfigDict(env_prefix='SHOGUNITO_', env_file='.env', case_sensitive=False, extra='ignore')

    def registration_allowlist(self) -> List[str]:
        return [e.strip().lower() for e in self.allowed_registration_emails.split(',') if e.strip()]

    def to_flask_config(self):
        """Translate settings into the upper-case keys Flask and its extensions read."""
        return {
            'SQLALCHEMY_DATABASE_URI': self.database_url,
            'SQLALCHEMY_TRACK_MODIFICATIONS': False,
            'MAX_CONTENT_LENGTH': self.max_upload_size_mb * 1024 * 1024,
            'ACCESS_TOKEN_TTL': self.access_token_ttl,
            'REFRESH_TOKEN_TTL': self.refresh_token_ttl,
            'PASSWORD_RESET_TOKEN_TTL': self.password_reset_token_ttl,
            'ALLOWED_REGISTRATION_EMAILS': self.registration_allowlist(),
            'RATELIMIT_ENABLED': self.rate_limit_enabled,
            'RATELIMIT_DEFAULT': self.rate_limit_default,
            'RATELIMIT_STORAGE_URI': self.rate_limit_storage_uri,
            'RATELIMIT_HEADERS_ENABLED': True,
            'LOGIN_RATE_LIMIT': self.login_rate_limit,
            'MAX_FAILED_LOGINS_PER_ACCOUNT': self.max_failed_logins_per_account,
            'MAX_FAILED_LOGINS_PER_IP': self.max_failed_logins_per_ip,
            'FAILED_LOGIN_LOCKOUT_MINUTES': self.failed_login_lockout_minutes,
            'STORAGE_PATH': self.storage_path,
            'STORAGE_CONTAINER': self.storage_container,
            'THUMBNAIL_SIZE': tuple(self.thumbnail_size),
            'UPLOAD_RETRY_ATTEMPTS': self.upload_retry_attempts,
            'DEFAULT_PAGE_SIZE': self.default_page_size,
            'MAX_PAGE_SIZE': self.max_page_size,
            'LOG_LEVEL': self.log_level,
            'LOG_DIR': self.log_dir,
        }
