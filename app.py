import sys

import click
from flask import Flask, redirect, render_template, request, url_for
from flask_login import LoginManager

from auth import Authenticator, hash_password
from config import Config, mask_url
from database import StoreError, StoreUnavailable, create_db_engine, init_database
from sessions import DatabaseSessionInterface, SessionStore
from user import ADMIN_ROLE, UserStore
from views import bp


def ensure_admin(app, users, username, password):
    """Create the configured admin account if it does not exist yet."""
    if users.find_by_username(username):
        app.logger.info(f"Admin user {username!r} already exists")
        return
    users.create(username, hash_password(password), ADMIN_ROLE)
    app.logger.info(f"Default admin user created: username={username!r}")


def configure_login(app, users):
    login_manager = LoginManager()
    login_manager.init_app(app)
    login_manager.login_view = 'main.login'
    login_manager.login_message = None

    @login_manager.user_loader
    def load_user(user_id):
        # Always re-read the row so role changes and deletions apply on the next request.
        try:
            return users.get(int(user_id))
        except ValueError:
            return None

    @login_manager.unauthorized_handler
    def unauthorized():
        app.logger.debug(f"Unauthenticated {request.method} {request.path}, redirecting to login")
        return redirect(url_for('main.login'))

    return login_manager


def configure_error_handling(app):
    @app.errorhandler(StoreError)
    def handle_store_error(error):
        app.logger.error(f"Store failure on {request.method} {request.path}: {error}", exc_info=error)
        return render_template('error.html', message='Something went wrong. Please try again later.'), 500

    @app.errorhandler(500)
    def handle_server_error(error):
        return render_template('error.html', message='Something went wrong. Please try again later.'), 500

    @app.errorhandler(403)
    def handle_forbidden(error):
        return render_template('error.html', message=error.description), 403


def register_commands(app):
    users = app.extensions['user_store']
    sessions = app.extensions['session_store']

    @app.cli.command('create-user')
    @click.argument('username')
    @click.option('--role', default=ADMIN_ROLE, show_default=True)
    @click.password_option()
    def create_user_command(username, role, password):
        """Create a user account, e.g. the first admin."""
        try:
            users.create(username, hash_password(password), role)
        except StoreError as e:
            raise click.ClickException(f"Could not create user {username!r}: {e}")
        click.echo(f"Created user {username!r} with role {role!r}")

    @app.cli.command('prune-sessions')
    def prune_sessions_command():
        """Delete expired sessions."""
        removed = sessions.prune()
        click.echo(f"Removed {removed} expired session(s)")


def create_app(config=None):
    """Build the application. Raises StoreUnavailable if the database cannot be reached."""
    config = config or Config.from_env()

    app = Flask(__name__)
    app.secret_key = config.secret_key
    app.config.update(
        SESSION_COOKIE_NAME=config.session_cookie_name,
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SAMESITE='Lax',
        SESSION_COOKIE_SECURE=config.session_cookie_secure,
        PERMANENT_SESSION_LIFETIME=config.session_lifetime,
    )
    app.logger.setLevel(config.log_level)

    if config.secret_generated:
        app.logger.warning("SESSION_SECRET is not set; using a random secret, sessions will not survive a restart")

    engine = create_db_engine(config)
    init_database(engine)
    app.logger.info(f"Database initialized at {mask_url(config.database_url)}")

    users = UserStore(engine)
    sessions = SessionStore(engine)
    app.extensions['db_engine'] = engine
    app.extensions['user_store'] = users
    app.extensions['session_store'] = sessions
    app.extensions['authenticator'] = Authenticator(users)

    app.session_interface = DatabaseSessionInterface(sessions)
    configure_login(app, users)
    configure_error_handling(app)
    register_commands(app)
    app.register_blueprint(bp)

    if config.admin_username and config.admin_password:
        ensure_admin(app, users, config.admin_username, config.admin_password)

    return app


if __name__ == '__main__':
    config = Config.from_env()
    try:
        app = create_app(config)
    except StoreUnavailable as e:
        sys.exit(f"Startup aborted: {e}")
    app.run(port=config.port, threaded=True)
