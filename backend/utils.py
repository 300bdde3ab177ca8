"""Backend utility functions for the Shogunito API."""
from flask import request, current_app, Response, stream_with_context
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from shared.enums import VersionEntityType, NoteLinkType, StatusApplicability
from shared.validation import ValidationError
from .errors import NotFoundError
from .services.media_storage import MediaStorageService
from .models import (
    db, Project, Episode, Sequence, Shot, Asset, Playlist, PlaylistVersion, Version, Note, Status,
    VERSION_ENTITY_MODELS, NOTE_LINK_MODELS
)
import logging
import mimetypes


logger = logging.getLogger(__name__)


def get_or_404(model, resource_id, label=None):
    """Fetch a row by primary key or raise NotFoundError."""
    resource = db.session.get(model, resource_id)
    if resource is None:
        label = label or model.__name__
        raise NotFoundError(f"{label} with ID {resource_id} not found")
    return resource


def validate_foreign_key(model, value, label=None):
    """
    Ensure a referenced parent row exists.

    Args:
        model: SQLAlchemy model of the referenced table
        value: Primary key value; None passes (optional FK)
        label (str, optional): Name used in the error message

    Raises:
        NotFoundError: If the referenced row does not exist
    """
    if value is None:
        return None
    return get_or_404(model, value, label)


def is_unique_violation(error, column=None):
    """True if an IntegrityError came from a UNIQUE constraint (optionally on `column`)."""
    if not isinstance(error, IntegrityError):
        return False
    message = str(getattr(error, 'orig', error)).lower()
    if 'unique' not in message and 'duplicate' not in message:
        return False
    return column is None or column.lower() in message


def code_exists(model, code, exclude_id=None):
    query = db.session.query(model.id).filter(model.code == code)
    if exclude_id is not None:
        query = query.filter(model.id != exclude_id)
    return db.session.query(query.exists()).scalar()


def generate_code(model, prefix, width=3):
    """Next free code of the form <prefix><NNN> for model."""
    existing = db.session.execute(
        select(func.count()).select_from(model).where(model.code.like(f"{prefix}%"))
    ).scalar()
    number = existing + 1
    while True:
        candidate = f"{prefix}{number:0{width}d}"
        if not code_exists(model, candidate):
            return candidate
        number += 1


def resolve_status_reference(data, applies_to, current_status_id=None):
    """Replace a 'status' code in data with a validated 'status_id'.

    Args:
        data (dict): Validated payload; modified in place
        applies_to (str): Entity name the status must be applicable to
        current_status_id: Existing status id, used to detect changes

    Returns:
        bool: True if the status changed
    """
    code = data.pop('status', None)
    status_id = data.get('status_id')
    if code is None and status_id is None:
        return False

    if code is not None:
        status = Status.query.filter_by(code=code).first()
        if status is None:
            raise ValidationError(f"Unknown status '{code}'")
    else:
        status = db.session.get(Status, status_id)
        if status is None:
            raise ValidationError(f"Unknown status_id '{status_id}'")

    applicable = status.applicable_entities or [StatusApplicability.ALL.value]
    if StatusApplicability.ALL.value not in applicable and applies_to not in applicable:
        raise ValidationError(f"Status '{status.code}' does not apply to {applies_to}")
    if not status.is_active:
        raise ValidationError(f"Status '{status.code}' is not active")

    data['status_id'] = status.id
    return status.id != current_status_id


def delete_notes_for(link_type, link_ids):
    """Delete notes attached to any of link_ids; returns (count, attachment object names)."""
    link_ids = [str(i) for i in link_ids]
    if not link_ids:
        return 0, []
    notes = Note.query.filter(Note.link_type == NoteLinkType(link_type), Note.link_id.in_(link_ids)).all()
    files = []
    for note in notes:
        files.extend(note.attachments or [])
        db.session.delete(note)
    return len(notes), files


def delete_versions_for(entity_type, entity_ids):
    """Delete every version of the given entities plus their notes and playlist entries.

    Returns:
        dict: counts plus 'files', the stored object names to remove after commit
    """
    summary = {'versions': 0, 'notes': 0, 'playlist_entries': 0, 'files': []}
    entity_ids = list(entity_ids)
    if not entity_ids:
        return summary
    versions = Version.query.filter(
        Version.entity_type == VersionEntityType(entity_type), Version.entity_id.in_(entity_ids)
    ).all()
    if not versions:
        return summary

    version_ids = [v.id for v in versions]
    note_count, note_files = delete_notes_for(NoteLinkType.VERSION, version_ids)
    summary['notes'] += note_count
    summary['files'].extend(note_files)
    summary['playlist_entries'] = PlaylistVersion.query.filter(PlaylistVersion.version_id.in_(version_ids)).count()
    for version in versions:
        summary['files'].extend(p for p in (version.file_path, version.thumbnail_path) if p)
        db.session.delete(version)
    summary['versions'] = len(versions)
    return summary


def _merge(summary, other):
    for key, value in other.items():
        if key == 'files':
            summary.setdefault('files', []).extend(value)
        else:
            summary[key] = summary.get(key, 0) + value
    return summary


def _cleanup_entities(entity_type, link_type, ids):
    """Versions and notes hanging off a set of entities of one type."""
    summary = delete_versions_for(entity_type, ids)
    note_count, note_files = delete_notes_for(link_type, ids)
    summary['notes'] += note_count
    summary['files'].extend(note_files)
    return summary


def cascade_delete_shot(shot_id):
    """
    Delete a shot with its versions and notes.

    Args:
        shot_id (int): ID of the shot to delete

    Returns:
        dict: Summary of deleted records
    """
    shot = get_or_404(Shot, shot_id, 'Shot')
    summary = _cleanup_entities(VersionEntityType.SHOT, NoteLinkType.SHOT, [shot_id])
    db.session.delete(shot)
    summary['shots'] = 1
    logger.info(f"Cascading delete completed for shot {shot_id}: {public_summary(summary)}")
    return summary


def cascade_delete_sequence(sequence_id):
    """Delete a sequence, its shots and everything attached to them."""
    sequence = get_or_404(Sequence, sequence_id, 'Sequence')
    shot_ids = [s.id for s in sequence.shots]
    summary = _cleanup_entities(VersionEntityType.SHOT, NoteLinkType.SHOT, shot_ids)
    _merge(summary, _cleanup_entities(VersionEntityType.SEQUENCE, NoteLinkType.SEQUENCE, [sequence_id]))
    summary['shots'] = len(shot_ids)
    db.session.delete(sequence)
    summary['sequences'] = 1
    logger.info(f"Cascading delete completed for sequence {sequence_id}: {public_summary(summary)}")
    return summary


def cascade_delete_episode(episode_id):
    """Delete an episode, its sequences, their shots and everything attached."""
    episode = get_or_404(Episode, episode_id, 'Episode')
    sequence_ids = [s.id for s in episode.sequences]
    shot_ids = [shot.id for s in episode.sequences for shot in s.shots]
    summary = _cleanup_entities(VersionEntityType.SHOT, NoteLinkType.SHOT, shot_ids)
    _merge(summary, _cleanup_entities(VersionEntityType.SEQUENCE, NoteLinkType.SEQUENCE, sequence_ids))
    _merge(summary, _cleanup_entities(VersionEntityType.EPISODE, NoteLinkType.EPISODE, [episode_id]))
    summary['shots'] = len(shot_ids)
    summary['sequences'] = len(sequence_ids)
    db.session.delete(episode)
    summary['episodes'] = 1
    logger.info(f"Cascading delete completed for episode {episode_id}: {public_summary(summary)}")
    return summary


def cascade_delete_asset(asset_id):
    asset = get_or_404(Asset, asset_id, 'Asset')
    summary = _cleanup_entities(VersionEntityType.ASSET, NoteLinkType.ASSET, [asset_id])
    if asset.thumbnail_path:
        summary['files'].append(asset.thumbnail_path)
    db.session.delete(asset)
    summary['assets'] = 1
    logger.info(f"Cascading delete completed for asset {asset_id}: {public_summary(summary)}")
    return summary


def cascade_delete_playlist(playlist_id):
    """Delete a playlist with its own versions and notes.

    Versions merely listed in the playlist belong to other entities and are
    kept; only the playlist entries go.
    """
    playlist = get_or_404(Playlist, playlist_id, 'Playlist')
    summary = _cleanup_entities(VersionEntityType.PLAYLIST, NoteLinkType.PLAYLIST, [playlist_id])
    summary['playlist_entries'] += len(playlist.items)
    db.session.delete(playlist)
    summary['playlists'] = 1
    logger.info(f"Cascading delete completed for playlist {playlist_id}: {public_summary(summary)}")
    return summary


def cascade_delete_project(project_id):
    """
    Delete a project and every record beneath it.

    Args:
        project_id (int): ID of the project to delete

    Returns:
        dict: Summary of deleted records, including 'files' to remove after commit
    """
    summary = {
        'projects': 0, 'episodes': 0, 'sequences': 0, 'shots': 0, 'assets': 0,
        'playlists': 0, 'versions': 0, 'notes': 0, 'playlist_entries': 0, 'files': []
    }

    try:
        project = get_or_404(Project, project_id, 'Project')

        for episode_id in [e.id for e in project.episodes]:
            _merge(summary, cascade_delete_episode(episode_id))
        for asset_id in [a.id for a in project.assets]:
            _merge(summary, cascade_delete_asset(asset_id))
        for playlist_id in [p.id for p in project.playlists]:
            _merge(summary, cascade_delete_playlist(playlist_id))
        _merge(summary, _cleanup_entities(VersionEntityType.PROJECT, NoteLinkType.PROJECT, [project_id]))

        # Children are already deleted; leave the stale collections to the FK cascade
        db.session.expire(project, ['episodes', 'assets', 'playlists'])
        db.session.delete(project)
        summary['projects'] = 1

        logger.info(f"Cascading delete completed for project {project_id}: {public_summary(summary)}")

    except Exception as e:
        logger.error(f"Error in cascade delete of project {project_id}: {e}")
        raise

    return summary


def public_summary(summary):
    """Deletion summary without internal bookkeeping."""
    return {k: v for k, v in summary.items() if k != 'files'}


def get_orphaned_records(relationship_type=None):
    """
    Find rows whose polymorphic parent no longer exists.

    FK-linked tables are protected by ON DELETE CASCADE; versions and notes
    are linked by (type, id) pairs and need checking by hand.

    Args:
        relationship_type (str, optional): 'versions' or 'notes'; None checks both

    Returns:
        dict: relationship type -> list of orphaned ids
    """
    orphaned = {}

    if relationship_type in (None, 'versions'):
        orphaned_versions = []
        for entity_type, model in VERSION_ENTITY_MODELS.items():
            existing = select(model.id)
            rows = db.session.execute(
                select(Version.id).where(
                    Version.entity_type == entity_type, Version.entity_id.not_in(existing)
                )
            ).scalars().all()
            orphaned_versions.extend(rows)
        if orphaned_versions:
            orphaned['versions'] = sorted(orphaned_versions)

    if relationship_type in (None, 'notes'):
        orphaned_notes = []
        for link_type, model in NOTE_LINK_MODELS.items():
            existing_ids = {str(i) for i in db.session.execute(select(model.id)).scalars()}
            for note in Note.query.filter(Note.link_type == link_type):
                if note.link_id not in existing_ids:
                    orphaned_notes.append(note.id)
        if orphaned_notes:
            orphaned['notes'] = sorted(orphaned_notes)

    return orphaned


def find_latest_flag_violations():
    """(entity_type, entity_id, latest count) for entities with more than one latest version."""
    rows = db.session.execute(
        select(Version.entity_type, Version.entity_id, func.count(Version.id))
        .where(Version.latest.is_(True))
        .group_by(Version.entity_type, Version.entity_id)
        .having(func.count(Version.id) > 1)
    ).all()
    return [(VersionEntityType(r[0]).value, r[1], r[2]) for r in rows]


def read_uploaded_file(allowed_extensions, field='file'):
    """Return (safe filename, bytes) of the multipart upload in `field`."""
    upload = request.files.get(field)
    if upload is None:
        raise ValidationError(f"No '{field}' part in the request")
    filename = MediaStorageService.check_upload(upload.filename, allowed_extensions)
    data = upload.read()
    if not data:
        raise ValidationError('Uploaded file is empty')
    return filename, data


def stored_file_response(object_name, download_name=None):
    """Stream a stored object back to the client."""
    storage = current_app.extensions['media_storage']
    obj, chunks = storage.open_stream(object_name) if object_name else (None, None)
    if obj is None:
        raise NotFoundError('File not found')
    download_name = download_name or object_name.rsplit('/', 1)[-1]
    mimetype = mimetypes.guess_type(download_name)[0] or 'application/octet-stream'
    response = Response(stream_with_context(chunks), mimetype=mimetype)
    response.headers['Content-Length'] = str(obj.size)
    response.headers['Content-Disposition'] = f'inline; filename="{download_name}"'
    return response
