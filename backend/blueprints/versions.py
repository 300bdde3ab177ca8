"""Versions blueprint: version CRUD, media uploads and entity+version creation."""
from flask import Blueprint, request, jsonify, current_app, g
import logging
from sqlalchemy.exc import IntegrityError
from ..models import db, Version, Project, Episode, Asset, Playlist, Sequence
from ..base.crud_base import CRUDBase, list_args, int_arg, bool_arg, choice_arg, remove_stored_files
from ..errors import ApiError, ConflictError, NotFoundError
from ..logging_config import log_event
from ..services.media_storage import MEDIA_EXTENSIONS, IMAGE_ONLY_EXTENSIONS
from ..services.project_access import require_access_to
from ..services.versioning import resolve_entity, create_version, create_initial_version, update_version, delete_version
from ..utils import get_or_404, generate_code, is_unique_violation, read_uploaded_file, stored_file_response
from .assets import asset_crud
from .playlists import playlist_crud
from .sequences import sequence_crud
from .shots import shot_crud
from shared.enums import ProjectRole, VersionEntityType
from shared.schemas import (
    parse_payload, VersionCreate, VersionUpdate, VersionResponse, ShotWithVersionCreate,
    AssetWithVersionCreate, SequenceWithVersionCreate, PlaylistWithVersionCreate
)
from shared.utils import CorruptedImageError
from shared.validation import ValidationError

bp = Blueprint('versions', __name__, url_prefix='/api')
logger = logging.getLogger(__name__)

VERSION_SEED_FIELDS = ('version_code', 'version_name', 'version_description', 'version_status')


class VersionCRUD(CRUDBase):
    """Listing, lookup and serialization of versions.

    Writes go through services.versioning, which owns the latest-flag rules.
    """

    filters = {
        'entity_type': ('entity_type', choice_arg(VersionEntityType)),
        'entity_id': ('entity_id', int_arg),
        'latest': ('latest', bool_arg),
        'assigned_to': ('assigned_to', int_arg),
    }
    sortable_fields = ('id', 'code', 'name', 'version_number', 'created_at', 'updated_at', 'status_updated_at')

    def __init__(self):
        super().__init__(Version, VersionCreate, VersionUpdate, VersionResponse, logger_name='versions')


version_crud = VersionCRUD()


def version_conflict(error):
    """409 for the unique constraints a concurrent writer can trip over."""
    if is_unique_violation(error, 'code'):
        return ConflictError('Version code already exists')
    if is_unique_violation(error):
        return ConflictError('Version was modified concurrently, please retry')
    return ApiError('Version data violates a database constraint', 400)


@bp.route('/versions', methods=['GET'])
def get_versions():
    """Get paginated list of versions, newest first by default."""
    return version_crud.get_list(args=request.args, **list_args(default_sort='created_at', default_order='desc'))


@bp.route('/versions/<int:version_id>', methods=['GET'])
def get_version(version_id):
    return version_crud.get_detail(version_id)


@bp.route('/versions/code/<code>', methods=['GET'])
def get_version_by_code(code):
    version = Version.query.filter_by(code=code).first()
    if version is None:
        raise NotFoundError(f"Version with code '{code}' not found")
    version_crud.check_access(version)
    return jsonify(version_crud.serialize(version))


@bp.route('/versions', methods=['POST'])
def create_version_route():
    """Create a version for an existing entity; latest defaults to true."""
    data = version_crud.validate_create_data(version_crud.get_json_data())
    try:
        entity = resolve_entity(data['entity_type'], data.get('entity_id'), data.get('entity_code'))
        require_access_to(entity, ProjectRole.CONTRIBUTOR)
        version = create_version(data, g.user.id)
        db.session.commit()
    except (ValidationError, ApiError):
        db.session.rollback()
        raise
    except IntegrityError as e:
        db.session.rollback()
        logger.warning(f"Version insert rejected by constraint: {e.orig}")
        raise version_conflict(e)

    log_event(logger, f"Created version: {version.id} - {version.code}", action='create', resource='version',
              resource_id=version.id, user_id=g.user.id)
    return jsonify(version_crud.serialize(version)), 201


@bp.route('/versions/<int:version_id>', methods=['PUT'])
def update_version_route(version_id):
    """Update a version. latest=true takes the flag away from its siblings."""
    version = version_crud.get_resource(version_id, ProjectRole.CONTRIBUTOR)
    data = version_crud.validate_update_data(version_crud.get_json_data())
    try:
        update_version(version, data, g.user.id)
        db.session.commit()
    except (ValidationError, ApiError):
        db.session.rollback()
        raise
    except IntegrityError as e:
        db.session.rollback()
        logger.warning(f"Version update rejected by constraint: {e.orig}")
        raise version_conflict(e)

    log_event(logger, f"Updated version: {version_id}", action='update', resource='version',
              resource_id=version_id, fields=sorted(data.keys()), user_id=g.user.id)
    return jsonify(version_crud.serialize(version))


@bp.route('/versions/<int:version_id>', methods=['DELETE'])
def delete_version_route(version_id):
    """Delete a version, its notes and files; promote a sibling if it was latest."""
    version = version_crud.get_resource(version_id, ProjectRole.CONTRIBUTOR)
    try:
        summary = delete_version(version)
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        raise version_conflict(e)
    remove_stored_files(summary.pop('files'))

    log_event(logger, f"Deleted version: {version_id}", action='delete', resource='version',
              resource_id=version_id, summary=summary, user_id=g.user.id)
    return jsonify({'message': 'Version deleted successfully', 'summary': summary})


# Files

@bp.route('/versions/<int:version_id>/file', methods=['POST'])
def upload_version_file(version_id):
    """Attach a media file. Images also get an automatic thumbnail."""
    version = version_crud.get_resource(version_id, ProjectRole.CONTRIBUTOR)
    filename, data = read_uploaded_file(MEDIA_EXTENSIONS)
    storage = current_app.extensions['media_storage']

    try:
        file_path, thumbnail_path = storage.save_with_thumbnail(data, f"versions/{version.id}", filename)
    except CorruptedImageError as e:
        raise ValidationError(str(e))

    replaced = [version.file_path]
    version.file_path = file_path
    if thumbnail_path:
        replaced.append(version.thumbnail_path)
        version.thumbnail_path = thumbnail_path
    version.format = version.format or filename.rsplit('.', 1)[-1].lower()
    db.session.commit()
    remove_stored_files([name for name in replaced if name])

    log_event(logger, f"Uploaded file for version {version.id}", action='upload', resource='version',
              resource_id=version.id, object_name=file_path, size=len(data), user_id=g.user.id)
    return jsonify(version_crud.serialize(version)), 201


@bp.route('/versions/<int:version_id>/file', methods=['GET'])
def download_version_file(version_id):
    version = version_crud.get_resource(version_id)
    return stored_file_response(version.file_path)


@bp.route('/versions/<int:version_id>/thumbnail', methods=['POST'])
def upload_version_thumbnail(version_id):
    version = version_crud.get_resource(version_id, ProjectRole.CONTRIBUTOR)
    filename, data = read_uploaded_file(IMAGE_ONLY_EXTENSIONS)
    storage = current_app.extensions['media_storage']
    try:
        thumbnail_path = storage.save_thumbnail(data, f"versions/{version.id}", filename)
    except CorruptedImageError as e:
        raise ValidationError(str(e))

    previous = version.thumbnail_path
    version.thumbnail_path = thumbnail_path
    db.session.commit()
    remove_stored_files([previous] if previous else [])
    return jsonify(version_crud.serialize(version)), 201


@bp.route('/versions/<int:version_id>/thumbnail', methods=['GET'])
def get_version_thumbnail(version_id):
    version = version_crud.get_resource(version_id)
    return stored_file_response(version.thumbnail_path)


# Entity + first version in one transaction

def parent_code(model, parent_id, label):
    return get_or_404(model, parent_id, label).code


HYBRID_ENTITIES = {
    'shot': (ShotWithVersionCreate, shot_crud, VersionEntityType.SHOT, None),
    'asset': (AssetWithVersionCreate, asset_crud, VersionEntityType.ASSET,
              lambda d: generate_code(Asset, f"{parent_code(Project, d['project_id'], 'Project')}_AST")),
    'sequence': (SequenceWithVersionCreate, sequence_crud, VersionEntityType.SEQUENCE,
                 lambda d: generate_code(Sequence, f"{parent_code(Episode, d['episode_id'], 'Episode')}_SQ")),
    'playlist': (PlaylistWithVersionCreate, playlist_crud, VersionEntityType.PLAYLIST,
                 lambda d: generate_code(Playlist, f"{parent_code(Project, d['project_id'], 'Project')}_PL")),
}


def create_entity_with_version(kind):
    """Create an entity and its first version; both are rolled back on any failure."""
    schema, crud, entity_type, default_code = HYBRID_ENTITIES[kind]
    data = parse_payload(schema, crud.get_json_data())
    seed = {field: data.pop(field) for field in VERSION_SEED_FIELDS if field in data}

    try:
        if not data.get('code') and default_code is not None:
            data['code'] = default_code(data)
        entity = crud.build(data)
        version = create_initial_version(entity_type, entity, seed, g.user.id)
        db.session.commit()
    except (ValidationError, ApiError) as e:
        logger.warning(f"Rejected {kind} with initial version: {e}")
        db.session.rollback()
        raise
    except IntegrityError as e:
        db.session.rollback()
        logger.warning(f"{kind.title()} with initial version rejected by constraint: {e.orig}")
        if is_unique_violation(e):
            raise ConflictError(f"{kind.title()} or version code already exists")
        raise ApiError(f"{kind.title()} data violates a database constraint", 400)

    log_event(logger, f"Created {kind} {entity.code} with version {version.code}", action='create',
              resource=kind, resource_id=entity.id, version_id=version.id, user_id=g.user.id)
    return jsonify({
        kind: crud.serialize(entity),
        'version': version_crud.serialize(version),
    }), 201


@bp.route('/versions/shot', methods=['POST'])
def create_shot_with_version():
    return create_entity_with_version('shot')


@bp.route('/versions/asset', methods=['POST'])
def create_asset_with_version():
    return create_entity_with_version('asset')


@bp.route('/versions/sequence', methods=['POST'])
def create_sequence_with_version():
    return create_entity_with_version('sequence')


@bp.route('/versions/playlist', methods=['POST'])
def create_playlist_with_version():
    return create_entity_with_version('playlist')
