from flask_login import UserMixin
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from database import ConstraintViolation, StoreUnavailable, users_table

ADMIN_ROLE = 'admin'


class User(UserMixin):
    """Account record loaded for flask-login.

    ``password_hash`` holds the stored one-way hash, never the plaintext.
    """
    def __init__(self, id, username, password_hash, role):
        self.id = id
        self.username = username
        self.password_hash = password_hash
        self.role = role

    @classmethod
    def from_row(cls, row):
        return cls(row['id'], row['username'], row['password'], row['role'])

    @property
    def is_admin(self):
        return self.role == ADMIN_ROLE

    def __repr__(self):
        return f"<User id={self.id} username={self.username!r} role={self.role!r}>"


class UserStore:
    """Read and insert rows of the appusers table."""

    def __init__(self, engine):
        self.engine = engine

    def _fetch_one(self, query):
        try:
            with self.engine.connect() as conn:
                row = conn.execute(query).mappings().first()
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"User lookup failed: {e.__class__.__name__}") from e
        return User.from_row(row) if row else None

    def get(self, user_id):
        return self._fetch_one(select(users_table).where(users_table.c.id == user_id))

    def find_by_username(self, username):
        return self._fetch_one(select(users_table).where(users_table.c.username == username))

    def create(self, username, password_hash, role):
        """Insert a user whose password is already hashed and return it."""
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    users_table.insert().values(username=username, password=password_hash, role=role)
                )
                user_id = result.inserted_primary_key[0]
        except IntegrityError as e:
            raise ConstraintViolation(f"Could not insert user {username!r}: {e.__class__.__name__}") from e
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"User insert failed: {e.__class__.__name__}") from e
        return User(user_id, username, password_hash, role)

    def count(self):
        try:
            with self.engine.connect() as conn:
                return conn.execute(select(func.count()).select_from(users_table)).scalar_one()
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"User count failed: {e.__class__.__name__}") from e
