"""In-app notifications raised by review and note events.

The helpers add rows to the current session and never commit, so a
notification is stored only if the change that caused it is.
"""
import logging
from shared.enums import NotificationType
from ..logging_config import log_event
from ..models import db, Notification, Status

logger = logging.getLogger(__name__)

REVIEW_OUTCOMES = {
    'approved': NotificationType.VERSION_APPROVED,
    'rejected': NotificationType.VERSION_REJECTED,
}


def notify(user_id, notification_type, title, message, entity_type=None, entity_id=None,
           triggered_by=None, details=None):
    """Queue a notification for user_id in the current transaction."""
    notification = Notification(
        user_id=user_id,
        type=NotificationType(notification_type),
        title=title,
        message=message,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        triggered_by=triggered_by,
        details=details,
    )
    db.session.add(notification)
    log_event(logger, f"Notification {notification.type.value} queued for user {user_id}",
              action='notify', notification_type=notification.type.value, user_id=user_id,
              entity_type=entity_type, entity_id=notification.entity_id, triggered_by=triggered_by)
    return notification


def notify_version_review(version, changed_by):
    """Tell a version's creator that it was approved or rejected.

    Other status changes, and reviews of your own version, stay silent.
    """
    if version.created_by is None or version.created_by == changed_by:
        return None
    status = db.session.get(Status, version.status_id) if version.status_id else None
    notification_type = REVIEW_OUTCOMES.get(status.code) if status else None
    if notification_type is None:
        return None

    if notification_type == NotificationType.VERSION_APPROVED:
        title, message = 'Version Approved', f'Your version "{version.code}" has been approved'
        details = {'version_code': version.code}
    else:
        reason = version.description or 'No reason provided'
        title, message = 'Version Rejected', f'Your version "{version.code}" has been rejected: {reason}'
        details = {'version_code': version.code, 'reason': reason}
    return notify(version.created_by, notification_type, title, message, 'Version', version.id,
                  triggered_by=changed_by, details=details)


def notify_note_assignee(note, assignee_id, actor_id, notification_type=NotificationType.NOTE_ASSIGNED,
                         subject=None):
    """Tell assignee_id about a note that was created for or handed to them."""
    if assignee_id is None or assignee_id == actor_id:
        return None
    subject = subject or note.subject
    link_type = getattr(note.link_type, 'value', note.link_type)
    if notification_type == NotificationType.NOTE_CREATED:
        title, message = 'New Note', f'New note created: "{subject}"'
    else:
        title, message = 'Note Assigned', f'You have been assigned the note "{subject}"'
    return notify(assignee_id, notification_type, title, message, 'Note', note.id, triggered_by=actor_id,
                  details={'note_subject': subject, 'link_type': link_type, 'link_id': note.link_id})
