"""Shots blueprint for Flask API."""
from flask import Blueprint, request
from ..models import Shot, Sequence
from ..base.crud_base import CRUDBase, list_args, int_arg, choice_arg
from ..services.project_access import require_access_to
from ..utils import validate_foreign_key, generate_code, cascade_delete_shot
from shared.enums import ProjectRole, ShotType, StatusApplicability
from shared.schemas import ShotCreate, ShotUpdate, ShotResponse

bp = Blueprint('shots', __name__, url_prefix='/api')


class ShotCRUD(CRUDBase):
    """CRUD operations for Shot model."""

    filters = {
        'sequence_id': ('sequence_id', int_arg),
        'shot_type': ('shot_type', choice_arg(ShotType)),
        'assigned_to': ('assigned_to', int_arg),
    }
    sortable_fields = ('id', 'code', 'name', 'sequence_number', 'cut_order', 'created_at', 'updated_at')
    status_applies_to = StatusApplicability.SHOT.value

    def __init__(self):
        super().__init__(Shot, ShotCreate, ShotUpdate, ShotResponse, logger_name='shots')

    def before_create(self, data):
        sequence = validate_foreign_key(Sequence, data['sequence_id'], 'Sequence')
        require_access_to(sequence, ProjectRole.CONTRIBUTOR)
        if not data.get('code'):
            # <sequence code>_SH001, _SH002, ...
            data['code'] = generate_code(Shot, f"{sequence.code}_SH")
        return data

    def before_update(self, data, shot):
        if 'sequence_id' in data and data['sequence_id'] != shot.sequence_id:
            sequence = validate_foreign_key(Sequence, data['sequence_id'], 'Sequence')
            require_access_to(sequence, ProjectRole.CONTRIBUTOR)
        return data


shot_crud = ShotCRUD()


@bp.route('/shots', methods=['GET'])
def get_shots():
    """Get paginated list of shots."""
    return shot_crud.get_list(args=request.args, **list_args())


@bp.route('/shots/<int:shot_id>', methods=['GET'])
def get_shot(shot_id):
    return shot_crud.get_detail(shot_id)


@bp.route('/shots', methods=['POST'])
def create_shot():
    """Create a shot; the code is generated from the sequence when omitted."""
    return shot_crud.create()


@bp.route('/shots/<int:shot_id>', methods=['PUT'])
def update_shot(shot_id):
    return shot_crud.update(shot_id)


@bp.route('/shots/<int:shot_id>', methods=['DELETE'])
def delete_shot(shot_id):
    return shot_crud.delete(shot_id, cascade_func=cascade_delete_shot)
