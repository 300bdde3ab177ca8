"""Health check endpoint."""
from flask import Blueprint, jsonify
import logging
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from ..models import db

bp = Blueprint('health', __name__, url_prefix='/api')
logger = logging.getLogger(__name__)


@bp.route('/health', methods=['GET'])
def health():
    """Report API and database status. 503 when the database does not answer."""
    try:
        db.session.execute(text('SELECT 1'))
    except SQLAlchemyError as e:
        logger.error(f"Health check failed: {e}")
        db.session.rollback()
        return jsonify({'status': 'error', 'database': 'unavailable'}), 503
    return jsonify({'status': 'ok', 'database': 'ok'})
