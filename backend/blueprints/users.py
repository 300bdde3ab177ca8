"""Users blueprint: admin user management and self-service profile edits."""
from flask import Blueprint, request, jsonify, g, current_app
import logging
from werkzeug.security import generate_password_hash, check_password_hash
from ..base.crud_base import pagination_dict
from ..errors import ApiError, ConflictError, AuthenticationError
from ..logging_config import log_event
from ..models import db, User, AuthToken
from ..services.project_access import require_admin
from ..utils import get_or_404
from shared.schemas import parse_payload, serialize, UserAdminUpdate, UserSelfUpdate, UserResponse
from shared.validation import ValidationError

bp = Blueprint('users', __name__, url_prefix='/api')
logger = logging.getLogger(__name__)


def get_json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


@bp.route('/users', methods=['GET'])
def get_users():
    """Paginated user list (admin only)."""
    require_admin()
    page = max(request.args.get('page', 1, type=int), 1)
    per_page = min(max(request.args.get('per_page', 50, type=int), 1), current_app.config.get('MAX_PAGE_SIZE', 100))
    pagination = User.query.order_by(User.id.asc()).paginate(page=page, per_page=per_page, error_out=False)
    return jsonify({
        'users': [serialize(UserResponse, u) for u in pagination.items],
        'pagination': pagination_dict(pagination)
    })


@bp.route('/users/me', methods=['GET'])
def get_me():
    return jsonify(serialize(UserResponse, g.user))


@bp.route('/users/me', methods=['PUT'])
def update_me():
    """Update your own name and/or password. A password change requires the current one."""
    data = parse_payload(UserSelfUpdate, get_json_body(), partial=True)
    if not data:
        raise ValidationError('No valid fields provided for update')
    user = g.user

    if 'name' in data:
        user.name = data['name']
    if 'new_password' in data:
        if not check_password_hash(user.password_hash, data['current_password']):
            raise AuthenticationError('Current password is incorrect')
        user.password_hash = generate_password_hash(data['new_password'])
        # Other sessions are signed out; the current token stays valid.
        current_token = request.headers.get('Authorization', '')[len('Bearer '):].strip()
        AuthToken.query.filter(AuthToken.user_id == user.id, AuthToken.token != current_token).delete(
            synchronize_session=False
        )

    db.session.commit()
    log_event(logger, f"User {user.id} updated own profile", action='update', resource='user',
              resource_id=user.id, password_changed='new_password' in data)
    return jsonify(serialize(UserResponse, user))


@bp.route('/users/<int:user_id>', methods=['GET'])
def get_user(user_id):
    require_admin()
    return jsonify(serialize(UserResponse, get_or_404(User, user_id, 'User')))


@bp.route('/users/<int:user_id>', methods=['PUT'])
def update_user(user_id):
    """Update name, email, role or active flag of any user (admin only)."""
    admin = require_admin()
    user = get_or_404(User, user_id, 'User')
    data = parse_payload(UserAdminUpdate, get_json_body(), partial=True)
    if not data:
        raise ValidationError('No valid fields provided for update')

    if 'email' in data and data['email'] != user.email:
        if User.query.filter(User.email == data['email'], User.id != user.id).first():
            raise ConflictError('A user with this email already exists')
    if user.id == admin.id and (data.get('is_active') is False or data.get('role', 'admin') != 'admin'):
        raise ApiError('You cannot demote or deactivate your own account', 400)

    for key, value in data.items():
        setattr(user, key, value)
    if data.get('is_active') is False:
        AuthToken.query.filter_by(user_id=user.id).delete(synchronize_session=False)

    db.session.commit()
    log_event(logger, f"User {user.id} updated by admin {admin.id}", action='update', resource='user',
              resource_id=user.id, fields=sorted(data.keys()))
    return jsonify(serialize(UserResponse, user))


@bp.route('/users/<int:user_id>', methods=['DELETE'])
def delete_user(user_id):
    admin = require_admin()
    user = get_or_404(User, user_id, 'User')
    if user.id == admin.id:
        raise ApiError('You cannot delete your own account', 400)

    db.session.delete(user)
    db.session.commit()
    log_event(logger, f"User {user_id} deleted by admin {admin.id}", action='delete', resource='user',
              resource_id=user_id)
    return jsonify({'message': 'User deleted successfully'})
