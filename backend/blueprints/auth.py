"""Authentication blueprint: registration, bearer tokens and password resets."""
from flask import Blueprint, request, jsonify, g, current_app
import secrets
import logging
from datetime import timedelta
from sqlalchemy.exc import IntegrityError
from werkzeug.security import generate_password_hash, check_password_hash
from ..errors import AuthenticationError, ForbiddenError, ConflictError, TooManyRequestsError, ApiError
from ..logging_config import log_event
from ..models import db, User, AuthToken
from ..rate_limit import limiter, login_rate_limit
from ..utils import is_unique_violation
from shared.enums import UserRole, TokenType
from shared.models import now, ensure_aware
from shared.schemas import (
    parse_payload, serialize, RegisterRequest, LoginRequest, RefreshRequest,
    ForgotPasswordRequest, ResetPasswordRequest, UserResponse
)
from shared.validation import ValidationError

bp = Blueprint('auth', __name__, url_prefix='/api')
logger = logging.getLogger(__name__)

# Routes reachable without a bearer token
PUBLIC_PATHS = (
    '/api/health',
    '/api/auth/login',
    '/api/auth/register',
    '/api/auth/refresh',
    '/api/auth/forgot-password',
    '/api/auth/reset-password',
)

FORGOT_PASSWORD_MESSAGE = 'If the email is registered, a password reset link has been sent'
INVALID_RESET_TOKEN_MESSAGE = 'Invalid or expired reset token'


def get_json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def client_ip():
    return request.remote_addr or 'unknown'


def issue_tokens(user):
    """Create a fresh access/refresh token pair for user and drop expired ones."""
    current = now()
    AuthToken.query.filter(AuthToken.user_id == user.id, AuthToken.expires_at < current).delete(
        synchronize_session=False
    )

    access_ttl = current_app.config['ACCESS_TOKEN_TTL']
    access = AuthToken(
        token=secrets.token_urlsafe(32),
        user_id=user.id,
        token_type=TokenType.ACCESS,
        expires_at=current + timedelta(seconds=access_ttl),
    )
    refresh = AuthToken(
        token=secrets.token_urlsafe(32),
        user_id=user.id,
        token_type=TokenType.REFRESH,
        expires_at=current + timedelta(seconds=current_app.config['REFRESH_TOKEN_TTL']),
    )
    db.session.add_all([access, refresh])
    return {
        'access_token': access.token,
        'refresh_token': refresh.token,
        'token_type': 'Bearer',
        'expires_in': access_ttl,
        'user': serialize(UserResponse, user),
    }


def find_valid_token(token, token_type):
    """Return the stored token row if it exists, has the right type and has not expired."""
    if not token:
        return None
    row = AuthToken.query.filter_by(token=token, token_type=token_type).first()
    if row is None:
        return None
    if ensure_aware(row.expires_at) <= now():
        return None
    return row


def registration_allowed(email):
    allowlist = current_app.config.get('ALLOWED_REGISTRATION_EMAILS') or []
    if not allowlist:
        raise ForbiddenError('Registration is disabled')
    if '*' in allowlist:
        return True
    if email.lower() not in allowlist:
        raise ForbiddenError('This email is not allowed to register')
    return True


@bp.route('/auth/register', methods=['POST'])
@limiter.limit(login_rate_limit)
def register():
    """Register a new user. The very first account becomes an admin."""
    data = parse_payload(RegisterRequest, get_json_body())
    registration_allowed(data['email'])

    if User.query.filter_by(email=data['email']).first():
        raise ConflictError('A user with this email already exists')

    role = UserRole.ADMIN if User.query.count() == 0 else UserRole.MEMBER
    user = User(
        email=data['email'],
        name=data['name'],
        password_hash=generate_password_hash(data['password']),
        role=role,
    )
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        if is_unique_violation(e, 'email'):
            raise ConflictError('A user with this email already exists')
        raise

    log_event(logger, f"User registered: {user.email}", action='register', user_id=user.id, role=role.value)
    return jsonify({
        'message': 'User registered successfully',
        'user': serialize(UserResponse, user)
    }), 201


@bp.route('/auth/login', methods=['POST'])
@limiter.limit(login_rate_limit)
def login():
    """Exchange email and password for an access/refresh token pair."""
    data = parse_payload(LoginRequest, get_json_body())
    email, ip = data['email'], client_ip()
    tracker = current_app.extensions['login_attempts']

    locked_minutes = tracker.check(email, ip)
    if locked_minutes:
        log_event(logger, f"Login blocked for {email} from {ip}", logging.WARNING,
                  action='login_locked', email=email, ip=ip)
        raise TooManyRequestsError(
            f'Too many failed login attempts. Try again in {locked_minutes} minutes',
            details={'retry_after_minutes': locked_minutes}
        )

    user = User.query.filter_by(email=email).first()
    if not user or not check_password_hash(user.password_hash, data['password']):
        tracker.record_failure(email, ip)
        log_event(logger, f"Login failed for {email}", logging.WARNING, action='login_failed', email=email, ip=ip)
        raise AuthenticationError('Invalid email or password')

    if not user.is_active:
        raise ForbiddenError('Account is disabled')

    tracker.record_success(email, ip)
    user.last_login_at = now()
    tokens = issue_tokens(user)
    db.session.commit()

    log_event(logger, f"Login succeeded for {email}", action='login', user_id=user.id, ip=ip)
    return jsonify(tokens)


@bp.route('/auth/refresh', methods=['POST'])
def refresh():
    """Rotate a refresh token into a new token pair."""
    data = parse_payload(RefreshRequest, get_json_body())
    row = find_valid_token(data['refresh_token'], TokenType.REFRESH)
    if row is None:
        raise AuthenticationError('Invalid or expired refresh token')

    user = db.session.get(User, row.user_id)
    if user is None or not user.is_active:
        raise AuthenticationError('Invalid or expired refresh token')

    db.session.delete(row)
    tokens = issue_tokens(user)
    db.session.commit()
    logger.info(f"Tokens refreshed for user {user.id}")
    return jsonify(tokens)


@bp.route('/auth/logout', methods=['POST'])
def logout():
    """Logout user by revoking every token they hold."""
    revoked = AuthToken.query.filter_by(user_id=g.user.id).delete(synchronize_session=False)
    db.session.commit()
    log_event(logger, f"User {g.user.id} logged out", action='logout', user_id=g.user.id, revoked=revoked)
    return jsonify({'message': 'Logged out successfully'})


@bp.route('/auth/me', methods=['GET'])
def me():
    """Get current user info."""
    return jsonify(serialize(UserResponse, g.user))


@bp.route('/auth/forgot-password', methods=['POST'])
@limiter.limit(login_rate_limit)
def forgot_password():
    """Start a password reset. The response never reveals whether the email exists."""
    data = parse_payload(ForgotPasswordRequest, get_json_body())
    user = User.query.filter_by(email=data['email']).first()
    if user and user.is_active:
        user.password_reset_token = secrets.token_urlsafe(32)
        user.password_reset_expires_at = now() + timedelta(
            seconds=current_app.config['PASSWORD_RESET_TOKEN_TTL']
        )
        db.session.commit()
        # Delivery is out of band; operators pick the token up from the log.
        logger.info(f"Password reset token for {user.email}: {user.password_reset_token}")
    else:
        logger.info(f"Password reset requested for unknown or inactive email {data['email']}")
    return jsonify({'message': FORGOT_PASSWORD_MESSAGE})


def user_for_reset_token(token):
    if not token:
        return None
    user = User.query.filter_by(password_reset_token=token).first()
    if user is None or user.password_reset_expires_at is None:
        return None
    if ensure_aware(user.password_reset_expires_at) <= now():
        return None
    return user


@bp.route('/auth/reset-password/<token>', methods=['GET'])
def validate_reset_token(token):
    """Check a reset token before showing the reset form."""
    user = user_for_reset_token(token)
    if user is None:
        raise ApiError(INVALID_RESET_TOKEN_MESSAGE, 400)
    return jsonify({'valid': True, 'email': user.email})


@bp.route('/auth/reset-password', methods=['POST'])
def reset_password():
    """Set a new password with a reset token. Existing sessions are revoked."""
    data = parse_payload(ResetPasswordRequest, get_json_body())
    user = user_for_reset_token(data['token'])
    if user is None:
        raise ApiError(INVALID_RESET_TOKEN_MESSAGE, 400)

    user.password_hash = generate_password_hash(data['new_password'])
    user.password_reset_token = None
    user.password_reset_expires_at = None
    AuthToken.query.filter_by(user_id=user.id).delete(synchronize_session=False)
    db.session.commit()

    log_event(logger, f"Password reset for user {user.id}", action='password_reset', user_id=user.id)
    return jsonify({'message': 'Password has been reset'})


def init_auth(app):
    """Initialize authentication for the Flask app."""
    @app.before_request
    def check_auth():
        g.user = None
        if not request.path.startswith('/api') or request.method == 'OPTIONS':
            return
        if request.path.startswith(PUBLIC_PATHS):
            return

        auth_header = request.headers.get('Authorization', '')
        if auth_header.startswith('Bearer '):
            row = find_valid_token(auth_header[len('Bearer '):].strip(), TokenType.ACCESS)
            if row is not None:
                user = db.session.get(User, row.user_id)
                if user is not None and user.is_active:
                    g.user = user
                    return

        return jsonify({'error': 'Authentication required'}), 401
