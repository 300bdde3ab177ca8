"""Episodes blueprint for Flask API."""
from flask import Blueprint, request, jsonify
from ..models import Episode, Project
from ..base.crud_base import CRUDBase, list_args, int_arg
from ..services.project_access import require_project_role
from ..utils import validate_foreign_key, cascade_delete_episode
from shared.enums import ProjectRole, StatusApplicability
from shared.schemas import EpisodeCreate, EpisodeUpdate, EpisodeResponse

bp = Blueprint('episodes', __name__, url_prefix='/api')


class EpisodeCRUD(CRUDBase):
    """CRUD operations for Episode model."""

    filters = {'project_id': ('project_id', int_arg)}
    sortable_fields = ('id', 'code', 'name', 'ep_number', 'cut_order', 'created_at', 'updated_at')
    status_applies_to = StatusApplicability.EPISODE.value

    def __init__(self):
        super().__init__(Episode, EpisodeCreate, EpisodeUpdate, EpisodeResponse, logger_name='episodes')

    def before_create(self, data):
        validate_foreign_key(Project, data['project_id'], 'Project')
        require_project_role(data['project_id'], ProjectRole.CONTRIBUTOR)
        return data

    def before_update(self, data, episode):
        if 'project_id' in data and data['project_id'] != episode.project_id:
            validate_foreign_key(Project, data['project_id'], 'Project')
            require_project_role(data['project_id'], ProjectRole.CONTRIBUTOR)
        return data


episode_crud = EpisodeCRUD()


@bp.route('/episodes', methods=['GET'])
def get_episodes():
    """Get paginated list of episodes."""
    return episode_crud.get_list(args=request.args, **list_args())


@bp.route('/episodes/<int:episode_id>', methods=['GET'])
def get_episode(episode_id):
    """Episode detail, with the summed duration of its sequences."""
    episode = episode_crud.get_resource(episode_id)
    result = episode_crud.serialize(episode)
    result['duration_calculated'] = sum(s.duration or 0 for s in episode.sequences)
    result['sequence_count'] = len(episode.sequences)
    return jsonify(result)


@bp.route('/episodes', methods=['POST'])
def create_episode():
    return episode_crud.create()


@bp.route('/episodes/<int:episode_id>', methods=['PUT'])
def update_episode(episode_id):
    return episode_crud.update(episode_id)


@bp.route('/episodes/<int:episode_id>', methods=['DELETE'])
def delete_episode(episode_id):
    """Delete an episode with its sequences, shots, versions and notes."""
    return episode_crud.delete(episode_id, cascade_func=cascade_delete_episode)
