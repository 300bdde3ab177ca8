"""Assets blueprint for Flask API."""
from flask import Blueprint, request, jsonify, current_app, g
import logging
from ..models import db, Asset, Project
from ..base.crud_base import CRUDBase, list_args, int_arg, choice_arg, remove_stored_files
from ..logging_config import log_event
from ..services.media_storage import IMAGE_ONLY_EXTENSIONS
from ..services.project_access import require_project_role
from ..utils import validate_foreign_key, cascade_delete_asset, read_uploaded_file, stored_file_response
from shared.enums import ProjectRole, AssetType, StatusApplicability
from shared.schemas import AssetCreate, AssetUpdate, AssetResponse
from shared.utils import CorruptedImageError
from shared.validation import ValidationError

bp = Blueprint('assets', __name__, url_prefix='/api')
logger = logging.getLogger(__name__)


class AssetCRUD(CRUDBase):
    """CRUD operations for Asset model."""

    filters = {
        'project_id': ('project_id', int_arg),
        'asset_type': ('asset_type', choice_arg(AssetType)),
    }
    sortable_fields = ('id', 'code', 'name', 'asset_type', 'created_at', 'updated_at')
    status_applies_to = StatusApplicability.ASSET.value

    def __init__(self):
        super().__init__(Asset, AssetCreate, AssetUpdate, AssetResponse, logger_name='assets')

    def before_create(self, data):
        validate_foreign_key(Project, data['project_id'], 'Project')
        require_project_role(data['project_id'], ProjectRole.CONTRIBUTOR)
        return data

    def before_update(self, data, asset):
        if 'project_id' in data and data['project_id'] != asset.project_id:
            validate_foreign_key(Project, data['project_id'], 'Project')
            require_project_role(data['project_id'], ProjectRole.CONTRIBUTOR)
        return data


asset_crud = AssetCRUD()


@bp.route('/assets', methods=['GET'])
def get_assets():
    """Get paginated list of assets."""
    return asset_crud.get_list(args=request.args, **list_args())


@bp.route('/assets/<int:asset_id>', methods=['GET'])
def get_asset(asset_id):
    return asset_crud.get_detail(asset_id)


@bp.route('/assets', methods=['POST'])
def create_asset():
    return asset_crud.create()


@bp.route('/assets/<int:asset_id>', methods=['PUT'])
def update_asset(asset_id):
    return asset_crud.update(asset_id)


@bp.route('/assets/<int:asset_id>', methods=['DELETE'])
def delete_asset(asset_id):
    return asset_crud.delete(asset_id, cascade_func=cascade_delete_asset)


@bp.route('/assets/<int:asset_id>/thumbnail', methods=['POST'])
def upload_asset_thumbnail(asset_id):
    """Upload an image; a scaled-down copy becomes the asset thumbnail."""
    asset = asset_crud.get_resource(asset_id, ProjectRole.CONTRIBUTOR)
    filename, data = read_uploaded_file(IMAGE_ONLY_EXTENSIONS)
    storage = current_app.extensions['media_storage']

    try:
        thumbnail_path = storage.save_thumbnail(data, f"assets/{asset.id}", filename)
    except CorruptedImageError as e:
        raise ValidationError(str(e))

    previous = asset.thumbnail_path
    asset.thumbnail_path = thumbnail_path
    db.session.commit()
    remove_stored_files([previous] if previous else [])

    log_event(logger, f"Uploaded thumbnail for asset {asset.id}", action='upload', resource='asset',
              resource_id=asset.id, object_name=thumbnail_path, user_id=g.user.id)
    return jsonify(asset_crud.serialize(asset)), 201


@bp.route('/assets/<int:asset_id>/thumbnail', methods=['GET'])
def get_asset_thumbnail(asset_id):
    asset = asset_crud.get_resource(asset_id)
    return stored_file_response(asset.thumbnail_path)
