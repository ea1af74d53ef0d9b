from flask import Blueprint, current_app, redirect, render_template, request, session, url_for
from flask_login import current_user, login_required, login_user, logout_user

from auth import ForbiddenRole, InvalidCredentials, hash_password
from database import StoreError

bp = Blueprint('main', __name__)


def _users():
    return current_app.extensions['user_store']


def _authenticator():
    return current_app.extensions['authenticator']


@bp.route('/')
def index():
    return redirect(url_for('main.login'))


@bp.route('/login', methods=['GET'])
def login():
    if current_user.is_authenticated:
        return redirect(url_for('main.dashboard'))
    return render_template('login.html')


@bp.route('/login', methods=['POST'])
def login_submit():
    username = request.form.get('username', '')
    password = request.form.get('password', '')

    try:
        user = _authenticator().authenticate(username, password)
    except InvalidCredentials as e:
        current_app.logger.info(f"Login failed for {username!r}: {e}")
        return redirect(url_for('main.login'))

    # New id on every login so a pre-login cookie can never be promoted.
    session.regenerate()
    login_user(user)
    current_app.logger.info(f"User {user.username!r} logged in (role={user.role})")
    return redirect(url_for('main.dashboard'))


@bp.route('/dashboard')
@login_required
def dashboard():
    return render_template('dashboard.html', user=current_user, role=current_user.role)


@bp.route('/createuser', methods=['GET'])
@login_required
def create_user_form():
    return render_template('createuser.html', role=current_user.role,
                           success_message=None, error_message=None)


@bp.route('/createuser', methods=['POST'])
@login_required
def create_user():
    if not current_user.is_admin:
        current_app.logger.warning(
            f"User {current_user.username!r} (role={current_user.role}) attempted to create a user"
        )
        raise ForbiddenRole()

    username = request.form.get('username')
    password = request.form.get('password')
    role = request.form.get('role')

    try:
        # A missing password is left to the NOT NULL constraint like the other fields.
        _users().create(username, hash_password(password) if password else None, role)
    except StoreError as e:
        current_app.logger.error(f"Error creating user {username!r}: {e}", exc_info=e)
        return render_template('createuser.html', role=current_user.role,
                               success_message=None, error_message='Error Creating User'), 500

    current_app.logger.info(f"User {username!r} created with role {role!r} by {current_user.username!r}")
    return render_template('createuser.html', role=current_user.role,
                           success_message=f"User Created Successfully! User: {username}",
                           error_message=None)


@bp.route('/logout')
def logout():
    try:
        logout_user()
    except StoreError as e:
        current_app.logger.warning(f"Could not reload user during logout, clearing session anyway: {e}")
    session.clear()
    return redirect(url_for('main.login'))
