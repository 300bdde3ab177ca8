"""Playlists blueprint: review playlists and their ordered version entries."""
from flask import Blueprint, request, jsonify, g
import logging
from sqlalchemy.exc import IntegrityError
from ..models import db, Playlist, PlaylistVersion, Project, Version
from ..base.crud_base import CRUDBase, list_args, int_arg
from ..errors import ApiError, NotFoundError
from ..logging_config import log_event
from ..services.project_access import require_project_role, require_access_to
from ..utils import validate_foreign_key, cascade_delete_playlist
from shared.enums import ProjectRole, StatusApplicability
from shared.schemas import (
    parse_payload, PlaylistCreate, PlaylistUpdate, PlaylistResponse, PlaylistAddVersion,
    PlaylistReorder, PlaylistFromVersions
)
from shared.validation import ValidationError

bp = Blueprint('playlists', __name__, url_prefix='/api')
logger = logging.getLogger(__name__)


def resolve_version_codes(codes):
    """Load versions for codes, preserving order. Unknown codes are a 400."""
    if not codes:
        return []
    found = {v.code: v for v in Version.query.filter(Version.code.in_(codes)).all()}
    missing = [code for code in codes if code not in found]
    if missing:
        raise ValidationError(f"Versions not found: {', '.join(missing)}")
    versions = [found[code] for code in codes]
    for version in versions:
        require_access_to(version, ProjectRole.VIEWER)
    return versions


def set_entries(playlist, versions):
    """Make playlist.items list exactly `versions`, positions 0..n-1.

    Existing entries are reused so the (playlist, version) unique constraint
    never sees a delete and re-insert of the same pair.
    """
    existing = {item.version_id: item for item in playlist.items}
    items = []
    for position, version in enumerate(versions):
        item = existing.pop(version.id, None) or PlaylistVersion(version=version)
        item.position = position
        items.append(item)
    playlist.items = items


class PlaylistCRUD(CRUDBase):
    """CRUD operations for Playlist model."""

    filters = {'project_id': ('project_id', int_arg)}
    sortable_fields = ('id', 'code', 'name', 'status_updated_at', 'created_at', 'updated_at')
    status_applies_to = StatusApplicability.PLAYLIST.value

    def __init__(self):
        super().__init__(Playlist, PlaylistCreate, PlaylistUpdate, PlaylistResponse, logger_name='playlists')

    def before_create(self, data):
        validate_foreign_key(Project, data['project_id'], 'Project')
        require_project_role(data['project_id'], ProjectRole.CONTRIBUTOR)
        return data

    def build(self, data):
        data = dict(data)
        codes = data.pop('version_codes', None)
        playlist = super().build(data)
        if codes:
            set_entries(playlist, resolve_version_codes(codes))
            db.session.flush()
        return playlist


playlist_crud = PlaylistCRUD()


@bp.route('/playlists', methods=['GET'])
def get_playlists():
    """Get paginated list of playlists with their ordered version codes."""
    return playlist_crud.get_list(args=request.args, **list_args())


@bp.route('/playlists/<int:playlist_id>', methods=['GET'])
def get_playlist(playlist_id):
    return playlist_crud.get_detail(playlist_id)


@bp.route('/playlists', methods=['POST'])
def create_playlist():
    """Create a playlist, optionally seeded with version_codes."""
    return playlist_crud.create()


@bp.route('/playlists/from-versions', methods=['POST'])
def create_playlist_from_versions():
    """Create a playlist from a non-empty list of existing version codes."""
    data = parse_payload(PlaylistFromVersions, playlist_crud.get_json_data())
    return playlist_crud.create(data)


@bp.route('/playlists/<int:playlist_id>', methods=['PUT'])
def update_playlist(playlist_id):
    return playlist_crud.update(playlist_id)


@bp.route('/playlists/<int:playlist_id>', methods=['DELETE'])
def delete_playlist(playlist_id):
    """Delete a playlist. Listed versions survive; the playlist's own versions do not."""
    return playlist_crud.delete(playlist_id, cascade_func=cascade_delete_playlist)


def commit_entries(playlist, action, **fields):
    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        logger.warning(f"Concurrent change to playlist {playlist.id} entries: {e.orig}")
        raise ApiError('Playlist was modified concurrently, please retry', 409)
    log_event(logger, f"Playlist {playlist.id} {action}", action=action, resource='playlist',
              resource_id=playlist.id, user_id=g.user.id, **fields)
    return jsonify(playlist_crud.serialize(playlist))


@bp.route('/playlists/<int:playlist_id>/versions', methods=['POST'])
def add_version_to_playlist(playlist_id):
    """Insert a version at `position`, or append it when position is absent or past the end."""
    playlist = playlist_crud.get_resource(playlist_id, ProjectRole.CONTRIBUTOR)
    data = parse_payload(PlaylistAddVersion, playlist_crud.get_json_data())

    version = Version.query.filter_by(code=data['version_code']).first()
    if version is None:
        raise NotFoundError(f"Version with code '{data['version_code']}' not found")
    require_access_to(version, ProjectRole.VIEWER)

    versions = [item.version for item in playlist.items]
    if any(v.id == version.id for v in versions):
        raise ValidationError(f"Version '{version.code}' is already in this playlist")

    position = data.get('position')
    if position is None or position > len(versions):
        position = len(versions)
    versions.insert(position, version)
    set_entries(playlist, versions)
    return commit_entries(playlist, 'version_added', version_code=version.code, position=position)


@bp.route('/playlists/<int:playlist_id>/versions/<version_code>', methods=['DELETE'])
def remove_version_from_playlist(playlist_id, version_code):
    playlist = playlist_crud.get_resource(playlist_id, ProjectRole.CONTRIBUTOR)
    versions = [item.version for item in playlist.items]
    remaining = [v for v in versions if v.code != version_code]
    if len(remaining) == len(versions):
        raise NotFoundError(f"Version '{version_code}' is not in this playlist")
    set_entries(playlist, remaining)
    return commit_entries(playlist, 'version_removed', version_code=version_code)


@bp.route('/playlists/<int:playlist_id>/versions/reorder', methods=['PUT'])
def reorder_playlist(playlist_id):
    """Replace the playlist ordering with the given list of version codes."""
    playlist = playlist_crud.get_resource(playlist_id, ProjectRole.CONTRIBUTOR)
    data = parse_payload(PlaylistReorder, playlist_crud.get_json_data())
    set_entries(playlist, resolve_version_codes(data['version_codes']))
    return commit_entries(playlist, 'reordered', count=len(data['version_codes']))
