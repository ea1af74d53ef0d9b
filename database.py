"""Engine, tables and the StoreError family shared by the user and session stores."""

from sqlalchemy import Column, DateTime, Integer, MetaData, String, Table, Text, create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError

from config import mask_url

metadata = MetaData()

users_table = Table(
    'appusers',
    metadata,
    Column('id', Integer, primary_key=True),
    Column('username', String(255), unique=True, nullable=False),
    Column('password', String(255), nullable=False),
    Column('role', String(64), nullable=False),
)

sessions_table = Table(
    'sessions',
    metadata,
    Column('sid', String(128), primary_key=True),
    Column('user_id', Integer, nullable=True, index=True),
    Column('data', Text, nullable=False),
    Column('expires_at', DateTime, nullable=False, index=True),
)


class StoreError(Exception):
    """Base class for failures raised by the user and session stores."""


class StoreUnavailable(StoreError):
    """The database could not be reached or the query failed."""


class ConstraintViolation(StoreError):
    """The database rejected a row, e.g. a duplicate username or a missing column."""


def _is_memory_sqlite(url):
    return url.get_backend_name() == 'sqlite' and url.database in (None, '', ':memory:')


def create_db_engine(config):
    """Build the pooled engine shared by every request."""
    url = make_url(config.database_url)
    options = {'pool_pre_ping': True}
    # In-memory SQLite uses a per-thread pool that takes no size limits.
    if not _is_memory_sqlite(url):
        options.update(
            pool_size=config.pool_size,
            max_overflow=config.max_overflow,
            pool_timeout=config.pool_timeout,
        )
    return create_engine(url, **options)


def init_database(engine):
    """Create the tables if missing. Raises StoreUnavailable when the database is unreachable."""
    try:
        metadata.create_all(engine)
    except SQLAlchemyError as e:
        raise StoreUnavailable(
            f"Cannot initialize database at {mask_url(engine.url)}: {e.__class__.__name__}"
        ) from e
