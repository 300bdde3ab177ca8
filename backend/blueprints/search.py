"""Search blueprint: substring search across the production hierarchy."""
from flask import Blueprint, request, jsonify, current_app
import math
import logging
from sqlalchemy import or_
from ..models import Project, Episode, Sequence, Shot, Asset, Version, Note
from ..services.project_access import current_user, scope_query
from shared.validation import Validator

bp = Blueprint('search', __name__, url_prefix='/api')
logger = logging.getLogger(__name__)

SEARCHABLE = {
    'project': (Project, ('code', 'name', 'description')),
    'episode': (Episode, ('code', 'name', 'description')),
    'sequence': (Sequence, ('code', 'name', 'description')),
    'shot': (Shot, ('code', 'name', 'description')),
    'asset': (Asset, ('code', 'name', 'description')),
    'version': (Version, ('code', 'name', 'description')),
    'note': (Note, ('subject', 'content')),
}
# Rows fetched per entity type before ranking
MAX_MATCHES_PER_TYPE = 500


def escape_like(term):
    return term.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')


def rank(code, term):
    """3 for an exact code match, 2 for a code prefix, 1 for any other match."""
    if code:
        code, term = code.lower(), term.lower()
        if code == term:
            return 3
        if code.startswith(term):
            return 2
    return 1


def to_result(entity_type, row, term):
    code = getattr(row, 'code', None)
    result = {
        'type': entity_type,
        'id': row.id,
        'code': code,
        'name': getattr(row, 'name', None) or getattr(row, 'subject', None),
        'rank': rank(code, term),
    }
    if entity_type == 'version':
        result.update({'entity_type': row.entity_type.value if hasattr(row.entity_type, 'value') else row.entity_type,
                       'entity_id': row.entity_id, 'latest': row.latest})
    elif entity_type == 'note':
        result.update({'link_type': row.link_type.value if hasattr(row.link_type, 'value') else row.link_type,
                       'link_id': row.link_id})
    return result


@bp.route('/search', methods=['GET'])
def search():
    """Search codes, names and descriptions (subject and content for notes)."""
    user = current_user()
    term = Validator.validate_safe_identifier(request.args.get('q', ''), 'q', 2, 100)
    entity = request.args.get('entity', 'all').lower()
    Validator.validate_choice(entity, 'entity', ['all'] + list(SEARCHABLE))
    page = max(request.args.get('page', 1, type=int), 1)
    per_page = min(max(request.args.get('per_page', 20, type=int), 1), current_app.config.get('MAX_PAGE_SIZE', 100))

    pattern = f"%{escape_like(term)}%"
    results = []
    for entity_type, (model, columns) in SEARCHABLE.items():
        if entity != 'all' and entity != entity_type:
            continue
        query = scope_query(model.query, model, user).filter(
            or_(*[getattr(model, column).ilike(pattern, escape='\\') for column in columns])
        )
        rows = query.order_by(model.created_at.desc()).limit(MAX_MATCHES_PER_TYPE).all()
        results.extend(to_result(entity_type, row, term) for row in rows)

    results.sort(key=lambda r: (-r['rank'], r['type'], str(r['code'] or r['name'] or '')))
    total = len(results)
    start = (page - 1) * per_page
    logger.debug(f"Search '{term}' in {entity}: {total} results")

    return jsonify({
        'query': term,
        'entity': entity,
        'results': results[start:start + per_page],
        'pagination': {
            'page': page,
            'per_page': per_page,
            'total': total,
            'pages': math.ceil(total / per_page) if total else 0,
            'has_next': start + per_page < total,
            'has_prev': page > 1,
        }
    })
