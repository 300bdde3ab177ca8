"""Project-level access control.

Every production entity belongs to exactly one project, either directly
(episodes, assets, playlists) or through its parent chain (sequences, shots)
or a polymorphic link (versions, notes). Access is granted per project with
roles ranked viewer < contributor < owner; admins bypass all checks.
"""
import logging
from flask import g
from sqlalchemy import select, or_, and_, cast, String
from shared.enums import UserRole, ProjectRole, PROJECT_ROLE_RANK, VersionEntityType, NoteLinkType
from ..errors import ForbiddenError, NotFoundError, AuthenticationError
from ..models import (
    db, Project, ProjectPermission, Episode, Sequence, Shot, Asset, Playlist, Version, Note,
    VERSION_ENTITY_MODELS, NOTE_LINK_MODELS
)

logger = logging.getLogger(__name__)

ACCESS_DENIED_MESSAGE = 'You do not have access to this project'


def current_user():
    user = getattr(g, 'user', None)
    if user is None:
        raise AuthenticationError('Authentication required')
    return user


def is_admin(user):
    return user is not None and user.role == UserRole.ADMIN


def require_admin():
    user = current_user()
    if not is_admin(user):
        raise ForbiddenError('Admin privileges required')
    return user


def get_project_role(user, project_id):
    permission = ProjectPermission.query.filter_by(user_id=user.id, project_id=project_id).first()
    return ProjectRole(permission.role) if permission else None


def has_project_role(user, project_id, minimum=ProjectRole.VIEWER):
    if is_admin(user):
        return True
    role = get_project_role(user, project_id)
    return role is not None and PROJECT_ROLE_RANK[role] >= PROJECT_ROLE_RANK[ProjectRole(minimum)]


def require_project_role(project_id, minimum=ProjectRole.VIEWER):
    """Raise ForbiddenError unless the current user holds at least `minimum` on the project."""
    user = current_user()
    if not has_project_role(user, project_id, minimum):
        logger.warning(f"User {user.id} denied {ProjectRole(minimum).value} access to project {project_id}")
        raise ForbiddenError(ACCESS_DENIED_MESSAGE)
    return user


def accessible_project_ids(user):
    """Project ids the user may read, or None meaning every project (admins)."""
    if is_admin(user):
        return None
    rows = db.session.execute(
        select(ProjectPermission.project_id).where(ProjectPermission.user_id == user.id)
    ).scalars().all()
    return list(rows)


def project_id_for(resource):
    """Resolve the owning project id of any tracked entity."""
    if resource is None:
        return None
    if isinstance(resource, Project):
        return resource.id
    if isinstance(resource, (Episode, Asset, Playlist)):
        return resource.project_id
    if isinstance(resource, Sequence):
        return resource.episode.project_id
    if isinstance(resource, Shot):
        return resource.sequence.episode.project_id
    if isinstance(resource, Version):
        return project_id_for(get_version_target(resource.entity_type, resource.entity_id))
    if isinstance(resource, Note):
        return project_id_for(get_note_target(resource.link_type, resource.link_id))
    raise TypeError(f"Unsupported resource type: {type(resource).__name__}")


def get_version_target(entity_type, entity_id):
    model = VERSION_ENTITY_MODELS[VersionEntityType(entity_type)]
    return db.session.get(model, entity_id)


def get_note_target(link_type, link_id):
    model = NOTE_LINK_MODELS[NoteLinkType(link_type)]
    try:
        return db.session.get(model, int(link_id))
    except (TypeError, ValueError):
        return None


def require_access_to(resource, minimum=ProjectRole.VIEWER):
    """Check access to the project owning resource."""
    project_id = project_id_for(resource)
    if project_id is None:
        # Dangling polymorphic link; only admins can see or clean these up
        if not is_admin(current_user()):
            raise NotFoundError('Parent entity not found')
        return current_user()
    return require_project_role(project_id, minimum)


def entity_ids_in_projects(model, project_ids):
    """SELECT of model ids that belong to any of project_ids."""
    return _entity_ids_select(model, project_ids).correlate(None)


def _entity_ids_select(model, project_ids):
    if model is Project:
        return select(Project.id).where(Project.id.in_(project_ids))
    if model in (Episode, Asset, Playlist):
        return select(model.id).where(model.project_id.in_(project_ids))
    if model is Sequence:
        return (select(Sequence.id)
                .join(Episode, Sequence.episode_id == Episode.id)
                .where(Episode.project_id.in_(project_ids)))
    if model is Shot:
        return (select(Shot.id)
                .join(Sequence, Shot.sequence_id == Sequence.id)
                .join(Episode, Sequence.episode_id == Episode.id)
                .where(Episode.project_id.in_(project_ids)))
    if model is Version:
        return select(Version.id).where(version_scope_clause(project_ids))
    raise TypeError(f"Unsupported model: {model.__name__}")


def version_scope_clause(project_ids):
    return or_(*[
        and_(Version.entity_type == entity_type, Version.entity_id.in_(entity_ids_in_projects(model, project_ids)))
        for entity_type, model in VERSION_ENTITY_MODELS.items()
    ])


def note_scope_clause(project_ids):
    clauses = []
    for link_type, model in NOTE_LINK_MODELS.items():
        ids = entity_ids_in_projects(model, project_ids).subquery()
        clauses.append(and_(Note.link_type == link_type, Note.link_id.in_(select(cast(ids.c.id, String)))))
    return or_(*clauses)


def scope_query(query, model, user):
    """Restrict a list query to the projects the user can read."""
    project_ids = accessible_project_ids(user)
    if project_ids is None:
        return query
    if model is Version:
        return query.filter(version_scope_clause(project_ids))
    if model is Note:
        return query.filter(note_scope_clause(project_ids))
    if model is Project:
        return query.filter(Project.id.in_(project_ids))
    if model in (Episode, Asset, Playlist):
        return query.filter(model.project_id.in_(project_ids))
    if model is Sequence:
        return query.filter(Sequence.episode_id.in_(entity_ids_in_projects(Episode, project_ids)))
    if model is Shot:
        return query.filter(Shot.sequence_id.in_(entity_ids_in_projects(Sequence, project_ids)))
    raise TypeError(f"Unsupported model: {model.__name__}")
