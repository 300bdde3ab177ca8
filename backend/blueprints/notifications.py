"""Notifications blueprint: each user's in-app inbox."""
from flask import Blueprint, request, jsonify, g, current_app
import logging
from ..base.crud_base import pagination_dict, bool_arg, choice_arg
from ..errors import NotFoundError
from ..logging_config import log_event
from ..models import db, Notification, User
from ..services.notifications import notify
from ..services.project_access import require_admin
from ..utils import get_or_404
from shared.enums import NotificationType
from shared.schemas import parse_payload, serialize, NotificationCreate, NotificationResponse
from shared.validation import ValidationError

bp = Blueprint('notifications', __name__, url_prefix='/api')
logger = logging.getLogger(__name__)


def get_json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def own_notifications():
    return Notification.query.filter(Notification.user_id == g.user.id)


def get_own_notification(notification_id):
    """Another user's notification is reported as missing, not forbidden."""
    notification = own_notifications().filter(Notification.id == notification_id).first()
    if notification is None:
        raise NotFoundError(f"Notification with ID {notification_id} not found")
    return notification


@bp.route('/notifications', methods=['POST'])
def create_notification():
    """Send a notification to any user (admin only)."""
    admin = require_admin()
    data = parse_payload(NotificationCreate, get_json_body())
    get_or_404(User, data['user_id'], 'User')
    notification = notify(data['user_id'], data['type'], data['title'], data['message'],
                          data.get('entity_type'), data.get('entity_id'), triggered_by=admin.id,
                          details=data.get('details'))
    db.session.commit()
    return jsonify(serialize(NotificationResponse, notification)), 201


@bp.route('/notifications', methods=['GET'])
def get_notifications():
    """The caller's notifications, newest first.

    Filters: type, is_read. Paginated with page/per_page.
    """
    query = own_notifications()
    notification_type = request.args.get('type')
    if notification_type:
        query = query.filter(Notification.type == choice_arg(NotificationType)(notification_type, 'type'))
    is_read = request.args.get('is_read')
    if is_read:
        query = query.filter(Notification.is_read == bool_arg(is_read, 'is_read'))

    page = max(request.args.get('page', 1, type=int) or 1, 1)
    per_page = request.args.get('per_page', 20, type=int) or 1
    per_page = min(max(per_page, 1), current_app.config.get('MAX_PAGE_SIZE', 100))
    pagination = (query.order_by(Notification.created_at.desc(), Notification.id.asc())
                  .paginate(page=page, per_page=per_page, error_out=False))
    return jsonify({
        'notifications': [serialize(NotificationResponse, n) for n in pagination.items],
        'pagination': pagination_dict(pagination)
    })


@bp.route('/notifications/unread-count', methods=['GET'])
def get_unread_count():
    return jsonify({'count': own_notifications().filter(Notification.is_read.is_(False)).count()})


@bp.route('/notifications/<notification_id>', methods=['GET'])
def get_notification(notification_id):
    return jsonify(serialize(NotificationResponse, get_own_notification(notification_id)))


@bp.route('/notifications/<notification_id>/read', methods=['PATCH'])
def mark_notification_read(notification_id):
    notification = get_own_notification(notification_id)
    if not notification.is_read:
        notification.is_read = True
        db.session.commit()
    return jsonify(serialize(NotificationResponse, notification))


@bp.route('/notifications/read-all', methods=['PATCH'])
def mark_all_notifications_read():
    affected = own_notifications().filter(Notification.is_read.is_(False)).update(
        {Notification.is_read: True}, synchronize_session=False
    )
    db.session.commit()
    log_event(logger, f"Marked {affected} notifications read", action='update', resource='notification',
              affected=affected, user_id=g.user.id)
    return jsonify({'affected': affected, 'message': f'{affected} notifications marked as read'})


@bp.route('/notifications/<notification_id>', methods=['DELETE'])
def delete_notification(notification_id):
    db.session.delete(get_own_notification(notification_id))
    db.session.commit()
    return jsonify({'message': 'Notification deleted successfully'})


@bp.route('/notifications/clear/read', methods=['DELETE'])
def clear_read_notifications():
    """Delete every notification the caller has already read."""
    affected = own_notifications().filter(Notification.is_read.is_(True)).delete(synchronize_session=False)
    db.session.commit()
    log_event(logger, f"Cleared {affected} read notifications", action='delete', resource='notification',
              affected=affected, user_id=g.user.id)
    return jsonify({'affected': affected, 'message': f'{affected} read notifications deleted'})
