from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event
from sqlalchemy.engine import Engine
import logging
from shared.models import (
    Base, User, AuthToken, Status, Project, ProjectPermission, Episode, Sequence, Shot,
    Asset, Playlist, PlaylistVersion, Version, Note, Notification, VERSION_ENTITY_MODELS, NOTE_LINK_MODELS
)

logger = logging.getLogger(__name__)
db = SQLAlchemy(model_class=Base)


@event.listens_for(Engine, "connect")
def enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    """Turn on FK enforcement so ON DELETE CASCADE / SET NULL fire under SQLite."""
    module = type(dbapi_connection).__module__
    if not module.startswith(('sqlite3', 'pysqlite')):
        return
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys = ON")
    finally:
        cursor.close()
