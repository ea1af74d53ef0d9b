import os
import uuid
from datetime import timedelta

from dotenv import load_dotenv
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError


def _env_bool(name, default=False):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _database_url():
    """DATABASE_URL wins; otherwise assemble a PostgreSQL URL from PG_* parts."""
    url = os.getenv('DATABASE_URL')
    if url:
        return url
    if os.getenv('PG_HOST'):
        return URL.create(
            'postgresql+psycopg2',
            username=os.getenv('PG_USER'),
            password=os.getenv('PG_PASSWORD'),
            host=os.getenv('PG_HOST'),
            port=int(os.getenv('PG_PORT') or 5432),
            database=os.getenv('PG_DATABASE'),
        ).render_as_string(hide_password=False)
    return 'sqlite:///authdesk.db'


class Config:
    """Settings read once at startup and handed to create_app()."""

    def __init__(self, secret_key, database_url='sqlite:///authdesk.db',
                 session_cookie_name='authdesk_sid', session_lifetime=timedelta(hours=24),
                 session_cookie_secure=False, pool_size=10, max_overflow=5, pool_timeout=30.0,
                 admin_username=None, admin_password=None, log_level='INFO', port=3334,
                 secret_generated=False):
        self.secret_key = secret_key
        self.database_url = database_url
        self.session_cookie_name = session_cookie_name
        self.session_lifetime = session_lifetime
        self.session_cookie_secure = session_cookie_secure
        self.pool_size = pool_size
        self.max_overflow = max_overflow
        self.pool_timeout = pool_timeout
        self.admin_username = admin_username
        self.admin_password = admin_password
        self.log_level = log_level
        self.port = port
        self.secret_generated = secret_generated

    @classmethod
    def from_env(cls):
        load_dotenv()

        secret = os.getenv('SESSION_SECRET')
        return cls(
            secret_key=secret or uuid.uuid4().hex,
            database_url=_database_url(),
            session_cookie_name=os.getenv('SESSION_COOKIE_NAME') or 'authdesk_sid',
            session_lifetime=timedelta(hours=float(os.getenv('SESSION_LIFETIME_HOURS') or 24)),
            session_cookie_secure=_env_bool('SESSION_COOKIE_SECURE'),
            pool_size=int(os.getenv('DATABASE_POOL_SIZE') or 10),
            max_overflow=int(os.getenv('DATABASE_MAX_OVERFLOW') or 5),
            pool_timeout=float(os.getenv('DATABASE_POOL_TIMEOUT') or 30),
            admin_username=os.getenv('ADMIN_USERNAME'),
            admin_password=os.getenv('ADMIN_PASSWORD'),
            log_level=(os.getenv('LOG_LEVEL') or 'INFO').upper(),
            port=int(os.getenv('PORT') or 3334),
            secret_generated=not secret,
        )

    def __repr__(self):
        return f"<Config database_url={mask_url(self.database_url)!r} cookie={self.session_cookie_name!r}>"


def mask_url(url):
    """Render a database URL with the password hidden, for logs and diagnostics."""
    try:
        return make_url(url).render_as_string(hide_password=True)
    except ArgumentError:
        return '<unparseable database url>'
