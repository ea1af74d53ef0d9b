"""Server-side sessions: the cookie holds a signed id, the payload lives in the sessions table."""

import secrets
from datetime import datetime, timezone

from flask.json.tag import TaggedJSONSerializer
from flask.sessions import SessionInterface, SessionMixin
from itsdangerous import BadSignature, Signer
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.datastructures import CallbackDict

from database import StoreError, StoreUnavailable, sessions_table


def utcnow():
    # Stored as naive UTC so SQLite and PostgreSQL compare the same way.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_sid():
    return secrets.token_urlsafe(32)


class SessionStore:
    """CRUD over the sessions table. Every method raises StoreUnavailable on database errors."""

    def __init__(self, engine):
        self.engine = engine

    def load(self, sid):
        """Return the serialized payload for a live session, or None if missing or expired."""
        query = select(sessions_table.c.data).where(
            sessions_table.c.sid == sid,
            sessions_table.c.expires_at > utcnow(),
        )
        try:
            with self.engine.connect() as conn:
                return conn.execute(query).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Session load failed: {e.__class__.__name__}") from e

    def save(self, sid, data, user_id, expires_at):
        values = {'data': data, 'user_id': user_id, 'expires_at': expires_at}
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    update(sessions_table).where(sessions_table.c.sid == sid).values(**values)
                )
                if result.rowcount == 0:
                    conn.execute(sessions_table.insert().values(sid=sid, **values))
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Session save failed: {e.__class__.__name__}") from e

    def destroy(self, sid):
        try:
            with self.engine.begin() as conn:
                conn.execute(delete(sessions_table).where(sessions_table.c.sid == sid))
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Session destroy failed: {e.__class__.__name__}") from e

    def prune(self):
        """Delete expired sessions and return how many were removed."""
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    delete(sessions_table).where(sessions_table.c.expires_at <= utcnow())
                )
                return result.rowcount
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Session prune failed: {e.__class__.__name__}") from e

    def count(self):
        try:
            with self.engine.connect() as conn:
                return conn.execute(select(func.count()).select_from(sessions_table)).scalar_one()
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Session count failed: {e.__class__.__name__}") from e


class ServerSideSession(CallbackDict, SessionMixin):

    def __init__(self, initial=None, sid=None, new=False, stale=False):
        def on_update(self):
            self.modified = True

        CallbackDict.__init__(self, initial, on_update)
        self.sid = sid or new_sid()
        self.new = new
        self.modified = False
        self.previous_sid = None
        # Request carried a cookie that resolved to nothing.
        self.stale = stale

    def regenerate(self):
        """Move the payload to a fresh id; the old record is dropped on save."""
        if not self.new:
            self.previous_sid = self.sid
        self.sid = new_sid()
        self.new = True
        self.modified = True


class DatabaseSessionInterface(SessionInterface):
    """Flask session interface backed by a SessionStore."""

    session_class = ServerSideSession
    serializer = TaggedJSONSerializer()
    salt = 'authdesk-session'

    def __init__(self, store):
        self.store = store

    def _signer(self, app):
        return Signer(app.secret_key, salt=self.salt, key_derivation='hmac')

    def open_session(self, app, request):
        cookie = request.cookies.get(self.get_cookie_name(app))
        if not cookie:
            return self.session_class(new=True)

        try:
            sid = self._signer(app).unsign(cookie).decode()
        except BadSignature:
            app.logger.info("Rejected session cookie with a bad signature")
            return self.session_class(new=True, stale=True)

        try:
            data = self.store.load(sid)
        except StoreError as e:
            app.logger.error(f"Could not load session {sid[:8]}..., treating request as anonymous: {e}")
            return self.session_class(new=True)

        if data is None:
            return self.session_class(new=True, stale=True)
        return self.session_class(self.serializer.loads(data), sid=sid)

    def _discard(self, app, sid):
        try:
            self.store.destroy(sid)
        except StoreError as e:
            app.logger.warning(f"Could not destroy session {sid[:8]}...: {e}")

    def save_session(self, app, session, response):
        name = self.get_cookie_name(app)
        domain = self.get_cookie_domain(app)
        path = self.get_cookie_path(app)
        secure = self.get_cookie_secure(app)
        samesite = self.get_cookie_samesite(app)
        httponly = self.get_cookie_httponly(app)

        if session.accessed:
            response.vary.add('Cookie')

        if session.previous_sid:
            self._discard(app, session.previous_sid)
            session.previous_sid = None

        if not session:
            if not session.new:
                self._discard(app, session.sid)
            if not session.new or session.stale:
                response.delete_cookie(
                    name, domain=domain, path=path, secure=secure, samesite=samesite, httponly=httponly
                )
            return

        if not session.modified:
            return

        lifetime = app.permanent_session_lifetime
        user_id = session.get('_user_id')
        self.store.save(
            session.sid,
            self.serializer.dumps(dict(session)),
            int(user_id) if user_id is not None else None,
            utcnow() + lifetime,
        )
        response.set_cookie(
            name,
            self._signer(app).sign(session.sid).decode(),
            max_age=int(lifetime.total_seconds()),
            httponly=httponly,
            domain=domain,
            path=path,
            secure=secure,
            samesite=samesite,
        )
