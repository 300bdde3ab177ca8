"""Notes blueprint: feedback attached to any entity through (link_type, link_id)."""
from flask import Blueprint, request, jsonify, current_app, g
import logging
from ..models import db, Note
from ..base.crud_base import CRUDBase, list_args, int_arg, bool_arg, choice_arg, remove_stored_files
from ..errors import NotFoundError
from ..logging_config import log_event
from ..services.media_storage import ATTACHMENT_EXTENSIONS
from ..services.notifications import notify_note_assignee
from ..services.project_access import get_note_target, require_access_to
from ..utils import read_uploaded_file, stored_file_response
from shared.enums import NoteLinkType, NotificationType, ProjectRole
from shared.schemas import NoteCreate, NoteUpdate, NoteResponse
from shared.validation import ValidationError

bp = Blueprint('notes', __name__, url_prefix='/api')
logger = logging.getLogger(__name__)


def link_id_arg(value, name):
    value = str(value).strip()
    if not value.isdigit() or int(value) < 1:
        raise ValidationError(f"{name} must be a positive integer id")
    return str(int(value))


def load_note_target(link_type, link_id):
    target = get_note_target(link_type, link_id)
    if target is None:
        raise NotFoundError(f"{NoteLinkType(link_type).value} with ID {link_id} not found")
    return target


class NoteCRUD(CRUDBase):
    """CRUD operations for Note model."""

    filters = {
        'link_type': ('link_type', choice_arg(NoteLinkType)),
        'link_id': ('link_id', link_id_arg),
        'is_read': ('is_read', bool_arg),
        'assigned_to': ('assigned_to', int_arg),
        'created_by': ('created_by', int_arg),
    }
    sortable_fields = ('id', 'subject', 'created_at', 'updated_at')

    def __init__(self):
        super().__init__(Note, NoteCreate, NoteUpdate, NoteResponse, logger_name='notes')

    def before_create(self, data):
        target = load_note_target(data['link_type'], data['link_id'])
        require_access_to(target, ProjectRole.CONTRIBUTOR)
        data['attachments'] = []
        return data

    def after_create(self, resource, data):
        notify_note_assignee(resource, resource.assigned_to, g.user.id, NotificationType.NOTE_CREATED)

    def before_update(self, data, resource):
        assignee = data.get('assigned_to')
        if assignee is not None and assignee != resource.assigned_to:
            notify_note_assignee(resource, assignee, g.user.id, subject=data.get('subject'))
        return data


note_crud = NoteCRUD()


@bp.route('/notes', methods=['GET'])
def get_notes():
    """Get paginated list of notes, newest first by default."""
    return note_crud.get_list(args=request.args, **list_args(default_sort='created_at', default_order='desc'))


@bp.route('/notes/entity/<link_type>/<link_id>', methods=['GET'])
def get_notes_for_entity(link_type, link_id):
    """All notes attached to one entity."""
    try:
        link_type = NoteLinkType(link_type)
    except ValueError:
        raise ValidationError(f"link_type must be one of: {', '.join(t.value for t in NoteLinkType)}")
    link_id = link_id_arg(link_id, 'link_id')
    require_access_to(load_note_target(link_type, link_id), ProjectRole.VIEWER)

    notes = (Note.query.filter(Note.link_type == link_type, Note.link_id == link_id)
             .order_by(Note.created_at.desc(), Note.id.asc()).all())
    return jsonify({
        'notes': [note_crud.serialize(n) for n in notes],
        'count': len(notes),
    })


@bp.route('/notes/<note_id>', methods=['GET'])
def get_note(note_id):
    return note_crud.get_detail(note_id)


@bp.route('/notes', methods=['POST'])
def create_note():
    return note_crud.create()


@bp.route('/notes/<note_id>', methods=['PUT'])
def update_note(note_id):
    return note_crud.update(note_id)


@bp.route('/notes/<note_id>', methods=['DELETE'])
def delete_note(note_id):
    """Delete a note and its stored attachments."""
    def delete_with_attachments(resource_id):
        note = db.session.get(Note, resource_id)
        files = list(note.attachments or [])
        db.session.delete(note)
        return {'notes': 1, 'files': files}

    return note_crud.delete(note_id, cascade_func=delete_with_attachments)


@bp.route('/notes/<note_id>/read', methods=['PATCH'])
def mark_note_read(note_id):
    """Mark a note read. Readers of the project may do this; it does not change the content."""
    note = note_crud.get_resource(note_id, ProjectRole.VIEWER)
    if not note.is_read:
        note.is_read = True
        db.session.commit()
        logger.info(f"Note {note.id} marked read by user {g.user.id}")
    return jsonify(note_crud.serialize(note))


@bp.route('/notes/<note_id>/attachments', methods=['POST'])
def upload_note_attachment(note_id):
    note = note_crud.get_resource(note_id, ProjectRole.CONTRIBUTOR)
    filename, data = read_uploaded_file(ATTACHMENT_EXTENSIONS)
    object_name = current_app.extensions['media_storage'].save(data, f"notes/{note.id}", filename)

    # JSON column: assign a new list so the change is detected
    note.attachments = list(note.attachments or []) + [object_name]
    db.session.commit()

    log_event(logger, f"Attached {filename} to note {note.id}", action='upload', resource='note',
              resource_id=note.id, object_name=object_name, size=len(data), user_id=g.user.id)
    return jsonify(note_crud.serialize(note)), 201


def attachment_at(note, index):
    attachments = list(note.attachments or [])
    if index < 0 or index >= len(attachments):
        raise NotFoundError(f"Attachment {index} not found on note {note.id}")
    return attachments


@bp.route('/notes/<note_id>/attachments/<int:index>', methods=['GET'])
def download_note_attachment(note_id, index):
    note = note_crud.get_resource(note_id)
    return stored_file_response(attachment_at(note, index)[index])


@bp.route('/notes/<note_id>/attachments/<int:index>', methods=['DELETE'])
def delete_note_attachment(note_id, index):
    note = note_crud.get_resource(note_id, ProjectRole.CONTRIBUTOR)
    attachments = attachment_at(note, index)
    removed = attachments.pop(index)
    note.attachments = attachments
    db.session.commit()
    remove_stored_files([removed])

    log_event(logger, f"Removed attachment {index} from note {note.id}", action='delete', resource='note',
              resource_id=note.id, object_name=removed, user_id=g.user.id)
    return jsonify(note_crud.serialize(note))
