"""Sequences blueprint for Flask API."""
from flask import Blueprint, request
from ..models import Sequence, Episode
from ..base.crud_base import CRUDBase, list_args, int_arg
from ..services.project_access import require_access_to
from ..utils import validate_foreign_key, cascade_delete_sequence
from shared.enums import ProjectRole, StatusApplicability
from shared.schemas import SequenceCreate, SequenceUpdate, SequenceResponse

bp = Blueprint('sequences', __name__, url_prefix='/api')


class SequenceCRUD(CRUDBase):
    """CRUD operations for Sequence model."""

    filters = {'episode_id': ('episode_id', int_arg)}
    sortable_fields = ('id', 'code', 'name', 'cut_order', 'created_at', 'updated_at')
    status_applies_to = StatusApplicability.SEQUENCE.value

    def __init__(self):
        super().__init__(Sequence, SequenceCreate, SequenceUpdate, SequenceResponse, logger_name='sequences')

    def before_create(self, data):
        episode = validate_foreign_key(Episode, data['episode_id'], 'Episode')
        require_access_to(episode, ProjectRole.CONTRIBUTOR)
        return data

    def before_update(self, data, sequence):
        if 'episode_id' in data and data['episode_id'] != sequence.episode_id:
            episode = validate_foreign_key(Episode, data['episode_id'], 'Episode')
            require_access_to(episode, ProjectRole.CONTRIBUTOR)
        return data


sequence_crud = SequenceCRUD()


@bp.route('/sequences', methods=['GET'])
def get_sequences():
    """Get paginated list of sequences."""
    return sequence_crud.get_list(args=request.args, **list_args())


@bp.route('/sequences/<int:sequence_id>', methods=['GET'])
def get_sequence(sequence_id):
    return sequence_crud.get_detail(sequence_id)


@bp.route('/sequences', methods=['POST'])
def create_sequence():
    return sequence_crud.create()


@bp.route('/sequences/<int:sequence_id>', methods=['PUT'])
def update_sequence(sequence_id):
    return sequence_crud.update(sequence_id)


@bp.route('/sequences/<int:sequence_id>', methods=['DELETE'])
def delete_sequence(sequence_id):
    return sequence_crud.delete(sequence_id, cascade_func=cascade_delete_sequence)
