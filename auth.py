from werkzeug.exceptions import Forbidden
from werkzeug.security import check_password_hash, generate_password_hash

from database import StoreError, StoreUnavailable


class InvalidCredentials(Exception):
    """Unknown username or wrong password."""


class AuthBackendError(StoreUnavailable):
    """The credential store failed while authenticating."""


class ForbiddenRole(Forbidden):
    description = 'Only administrators can create users.'


def hash_password(password):
    return generate_password_hash(password)


def verify_password(password_hash, password):
    return check_password_hash(password_hash, password)


class Authenticator:
    """Check a username/password pair against the credential store."""

    def __init__(self, users):
        self.users = users

    def authenticate(self, username, password):
        """Return the matching User or raise InvalidCredentials.

        Store failures surface as AuthBackendError so callers can tell a
        wrong password apart from an unreachable database.
        """
        if not username or not password:
            raise InvalidCredentials('Missing credentials')

        try:
            user = self.users.find_by_username(username)
        except StoreError as e:
            raise AuthBackendError(f"Could not look up user {username!r}") from e

        if user is None:
            raise InvalidCredentials('Incorrect username')
        if not verify_password(user.password_hash, password):
            raise InvalidCredentials('Incorrect password')
        return user
