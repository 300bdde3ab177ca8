"""Statuses blueprint. Anyone signed in can read; only admins can write."""
from flask import Blueprint, request
from sqlalchemy import String, cast, or_
from ..models import Status
from ..base.crud_base import CRUDBase, list_args, bool_arg, choice_arg
from ..services.project_access import current_user, require_admin
from shared.enums import StatusApplicability
from shared.schemas import StatusCreate, StatusUpdate, StatusResponse

bp = Blueprint('statuses', __name__, url_prefix='/api')


class StatusCRUD(CRUDBase):
    """CRUD operations for Status model."""

    filters = {'is_active': ('is_active', bool_arg)}
    sortable_fields = ('id', 'code', 'name', 'sort_order', 'created_at', 'updated_at')

    def __init__(self):
        super().__init__(Status, StatusCreate, StatusUpdate, StatusResponse, logger_name='statuses')

    def get_singular_name(self):
        return 'status'

    def base_query(self):
        current_user()
        return Status.query

    def apply_filters(self, query, args):
        query = super().apply_filters(query, args)
        entity = args.get('entity')
        if entity:
            entity = choice_arg(StatusApplicability)(entity, 'entity')
            stored = cast(Status.applicable_entities, String)
            query = query.filter(or_(stored.like(f'%"{entity}"%'), stored.like('%"all"%')))
        return query

    def check_access(self, resource, minimum=None):
        # Statuses are global; writes go through require_admin in the hooks below
        return current_user()

    def before_create(self, data):
        require_admin()
        return data

    def before_update(self, data, resource):
        require_admin()
        return data


status_crud = StatusCRUD()


@bp.route('/statuses', methods=['GET'])
def get_statuses():
    """Get paginated list of statuses, optionally only those applicable to an entity."""
    return status_crud.get_list(args=request.args, **list_args(default_sort='sort_order'))


@bp.route('/statuses/<status_id>', methods=['GET'])
def get_status(status_id):
    return status_crud.get_detail(status_id)


@bp.route('/statuses', methods=['POST'])
def create_status():
    require_admin()
    return status_crud.create()


@bp.route('/statuses/<status_id>', methods=['PUT'])
def update_status(status_id):
    require_admin()
    return status_crud.update(status_id)


@bp.route('/statuses/<status_id>', methods=['DELETE'])
def delete_status(status_id):
    """Delete a status. Entities using it fall back to no status (ON DELETE SET NULL)."""
    require_admin()
    return status_crud.delete(status_id)
