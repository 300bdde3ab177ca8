"""Projects blueprint for Flask API."""
from flask import Blueprint, request, jsonify, g
import logging
from ..models import db, Project, ProjectPermission, User
from ..base.crud_base import CRUDBase, list_args, int_arg, str_arg
from ..errors import ApiError, NotFoundError
from ..logging_config import log_event
from ..services.project_access import require_project_role
from ..utils import get_or_404, cascade_delete_project
from shared.enums import ProjectRole, StatusApplicability
from shared.schemas import parse_payload, serialize, ProjectCreate, ProjectUpdate, ProjectResponse, PermissionGrant
from shared.validation import ValidationError

bp = Blueprint('projects', __name__, url_prefix='/api')
logger = logging.getLogger(__name__)


class ProjectCRUD(CRUDBase):
    """CRUD operations for Project model."""

    filters = {
        'client_name': ('client_name', str_arg),
        'created_by': ('created_by', int_arg),
    }
    sortable_fields = ('id', 'code', 'name', 'client_name', 'start_date', 'end_date', 'created_at', 'updated_at')
    status_applies_to = StatusApplicability.PROJECT.value

    def __init__(self):
        super().__init__(Project, ProjectCreate, ProjectUpdate, ProjectResponse, logger_name='projects')

    def after_create(self, project, data):
        """The creator owns the new project."""
        db.session.add(ProjectPermission(user_id=g.user.id, project_id=project.id, role=ProjectRole.OWNER))

    def before_update(self, data, project):
        start = data.get('start_date', project.start_date)
        end = data.get('end_date', project.end_date)
        if start and end and end < start:
            raise ValidationError('end_date must not be before start_date')
        return data


project_crud = ProjectCRUD()


@bp.route('/projects', methods=['GET'])
def get_projects():
    """Get paginated list of projects the caller can see."""
    return project_crud.get_list(args=request.args, **list_args())


@bp.route('/projects/<int:project_id>', methods=['GET'])
def get_project(project_id):
    """Get single project by ID."""
    return project_crud.get_detail(project_id)


@bp.route('/projects/code/<code>', methods=['GET'])
def get_project_by_code(code):
    project = Project.query.filter_by(code=code).first()
    if project is None:
        raise NotFoundError(f"Project with code '{code}' not found")
    project_crud.check_access(project)
    return jsonify(project_crud.serialize(project))


@bp.route('/projects', methods=['POST'])
def create_project():
    """Create a new project."""
    return project_crud.create()


@bp.route('/projects/<int:project_id>', methods=['PUT'])
def update_project(project_id):
    """Update an existing project."""
    return project_crud.update(project_id)


@bp.route('/projects/<int:project_id>', methods=['DELETE'])
def delete_project(project_id):
    """Delete a project and everything beneath it. Owners only."""
    return project_crud.delete(project_id, cascade_func=cascade_delete_project, minimum=ProjectRole.OWNER)


# Permissions

def serialize_permission(permission):
    return {
        'user_id': permission.user_id,
        'project_id': permission.project_id,
        'role': ProjectRole(permission.role).value,
        'email': permission.user.email,
        'name': permission.user.name,
    }


def owner_count(project_id):
    return ProjectPermission.query.filter_by(project_id=project_id, role=ProjectRole.OWNER).count()


@bp.route('/projects/<int:project_id>/permissions', methods=['GET'])
def get_permissions(project_id):
    get_or_404(Project, project_id, 'Project')
    require_project_role(project_id, ProjectRole.VIEWER)
    permissions = (ProjectPermission.query.filter_by(project_id=project_id)
                   .order_by(ProjectPermission.user_id.asc()).all())
    return jsonify({'permissions': [serialize_permission(p) for p in permissions]})


@bp.route('/projects/<int:project_id>/permissions', methods=['POST'])
def grant_permission(project_id):
    """Grant or change a user's role on the project (owners and admins)."""
    get_or_404(Project, project_id, 'Project')
    require_project_role(project_id, ProjectRole.OWNER)
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    data = parse_payload(PermissionGrant, data)
    get_or_404(User, data['user_id'], 'User')
    role = ProjectRole(data['role'])

    permission = ProjectPermission.query.filter_by(project_id=project_id, user_id=data['user_id']).first()
    created = permission is None
    if created:
        permission = ProjectPermission(project_id=project_id, user_id=data['user_id'], role=role)
        db.session.add(permission)
    else:
        if permission.role == ProjectRole.OWNER and role != ProjectRole.OWNER and owner_count(project_id) <= 1:
            raise ApiError('A project must keep at least one owner', 400)
        permission.role = role
    db.session.commit()

    log_event(logger, f"Granted {role.value} on project {project_id} to user {data['user_id']}",
              action='grant', project_id=project_id, target_user_id=data['user_id'], role=role.value,
              user_id=g.user.id)
    return jsonify(serialize_permission(permission)), 201 if created else 200


@bp.route('/projects/<int:project_id>/permissions/<int:user_id>', methods=['DELETE'])
def revoke_permission(project_id, user_id):
    get_or_404(Project, project_id, 'Project')
    require_project_role(project_id, ProjectRole.OWNER)
    permission = ProjectPermission.query.filter_by(project_id=project_id, user_id=user_id).first()
    if permission is None:
        raise NotFoundError(f"User {user_id} has no permission on project {project_id}")
    if permission.role == ProjectRole.OWNER and owner_count(project_id) <= 1:
        raise ApiError('Cannot remove the last owner of a project', 400)

    db.session.delete(permission)
    db.session.commit()
    log_event(logger, f"Revoked access to project {project_id} for user {user_id}",
              action='revoke', project_id=project_id, target_user_id=user_id, user_id=g.user.id)
    return jsonify({'message': 'Permission removed successfully'})
