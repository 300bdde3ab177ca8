"""Version numbering and latest-flag management.

Each parent entity (shot, asset, sequence, playlist, episode, project) owns an
ordered series of versions. Exactly one of them may carry latest=True. The
rule is enforced twice: here, by clearing sibling flags in the same
transaction before a new latest row is flushed, and in the database by a
partial unique index, which turns any concurrent race into an IntegrityError
that the API reports as 409.

None of these functions commit; the caller owns the transaction.
"""
import logging
from sqlalchemy import func, select, update
from shared.enums import VersionEntityType, NoteLinkType, StatusApplicability
from shared.models import now
from ..errors import NotFoundError, ConflictError
from ..logging_config import log_event
from ..models import db, Version, Status, VERSION_ENTITY_MODELS
from ..utils import code_exists, delete_notes_for, resolve_status_reference, find_latest_flag_violations
from .notifications import notify_version_review

logger = logging.getLogger(__name__)

DEFAULT_VERSION_STATUS = 'wip'


def resolve_entity(entity_type, entity_id=None, entity_code=None, lock=False):
    """Load the parent entity of a version by id or by code.

    Args:
        lock: Take a row lock on the parent (SELECT ... FOR UPDATE where the
              database supports it) so concurrent version creation for the
              same entity is serialized.

    Raises:
        NotFoundError: If no matching entity exists
    """
    entity_type = VersionEntityType(entity_type)
    model = VERSION_ENTITY_MODELS[entity_type]
    query = db.session.query(model)
    if entity_id is not None:
        query = query.filter(model.id == entity_id)
        reference = f"ID {entity_id}"
    else:
        query = query.filter(model.code == entity_code)
        reference = f"code '{entity_code}'"
    if lock:
        query = query.with_for_update()
    entity = query.first()
    if entity is None:
        raise NotFoundError(f"{entity_type.value.title()} with {reference} not found")
    return entity


def next_version_number(entity_type, entity_id):
    current = db.session.execute(
        select(func.max(Version.version_number)).where(
            Version.entity_type == VersionEntityType(entity_type),
            Version.entity_id == entity_id,
        )
    ).scalar()
    return (current or 0) + 1


def clear_latest_flags(entity_type, entity_id, exclude_id=None):
    """Set latest=False on every version of the entity except exclude_id.

    Runs as a single UPDATE so it lands before the new latest row is flushed.
    """
    stmt = (
        update(Version)
        .where(
            Version.entity_type == VersionEntityType(entity_type),
            Version.entity_id == entity_id,
            Version.latest.is_(True),
        )
        .values(latest=False, updated_at=now())
        .execution_options(synchronize_session='fetch')
    )
    if exclude_id is not None:
        stmt = stmt.where(Version.id != exclude_id)
    result = db.session.execute(stmt)
    if result.rowcount:
        logger.debug(f"Cleared latest flag on {result.rowcount} {VersionEntityType(entity_type).value} "
                     f"{entity_id} version(s)")
    return result.rowcount


def default_status_id():
    status = Status.query.filter_by(code=DEFAULT_VERSION_STATUS, is_active=True).first()
    if status is None:
        return None
    applicable = status.applicable_entities or [StatusApplicability.ALL.value]
    if StatusApplicability.ALL.value in applicable or StatusApplicability.VERSION.value in applicable:
        return status.id
    return None


def create_version(data, user_id=None):
    """Create a version for an existing entity.

    Args:
        data (dict): Validated VersionCreate payload
        user_id: Creator's user id

    Returns:
        Version: The new, flushed version

    Raises:
        ConflictError: If the code is already taken
        NotFoundError: If the parent entity does not exist
    """
    data = dict(data)
    entity_type = VersionEntityType(data.pop('entity_type'))
    entity = resolve_entity(entity_type, data.pop('entity_id', None), data.pop('entity_code', None), lock=True)
    latest = data.pop('latest', True)

    if code_exists(Version, data['code']):
        raise ConflictError(f"Version with code '{data['code']}' already exists")

    if resolve_status_reference(data, StatusApplicability.VERSION.value):
        data['status_updated_at'] = now()
    elif 'status_id' not in data:
        data['status_id'] = default_status_id()

    if latest:
        clear_latest_flags(entity_type, entity.id)

    version = Version(
        entity_type=entity_type,
        entity_id=entity.id,
        version_number=next_version_number(entity_type, entity.id),
        latest=latest,
        created_by=user_id,
        **data,
    )
    db.session.add(version)
    db.session.flush()

    log_event(logger, f"Created version {version.code} v{version.version_number} for "
                      f"{entity_type.value} {entity.id}",
              version_id=version.id, entity_type=entity_type.value, entity_id=entity.id, latest=latest)
    return version


def create_initial_version(entity_type, entity, seed, user_id=None):
    """First version for a freshly created entity (hybrid endpoints)."""
    data = {
        'code': seed.get('version_code') or f"{entity.code}_001",
        'name': seed.get('version_name') or f"Initial version of {entity.name}",
        'entity_type': entity_type,
        'entity_id': entity.id,
        'latest': True,
    }
    if seed.get('version_description'):
        data['description'] = seed['version_description']
    if seed.get('version_status'):
        data['status'] = seed['version_status']
    return create_version(data, user_id)


def update_version(version, data, changed_by=None):
    """Apply a validated VersionUpdate payload to version.

    Moving the version to approved or rejected notifies its creator on
    behalf of changed_by.

    latest=True clears the flag on every sibling first; the order matters, as
    setting the attribute before the UPDATE would let autoflush write two
    latest rows.
    """
    data = dict(data)
    if 'code' in data and data['code'] != version.code and code_exists(Version, data['code'], version.id):
        raise ConflictError(f"Version with code '{data['code']}' already exists")

    status_changed = resolve_status_reference(data, StatusApplicability.VERSION.value, version.status_id)
    if status_changed:
        data['status_updated_at'] = now()

    latest = data.pop('latest', None)
    if latest is True and not version.latest:
        clear_latest_flags(version.entity_type, version.entity_id, exclude_id=version.id)
        log_event(logger, f"Version {version.code} marked latest",
                  version_id=version.id, entity_type=VersionEntityType(version.entity_type).value,
                  entity_id=version.entity_id)
    if latest is not None:
        version.latest = latest

    for key, value in data.items():
        setattr(version, key, value)
    db.session.flush()
    if status_changed:
        notify_version_review(version, changed_by)
    return version


def promote_latest(entity_type, entity_id):
    """Mark the most recently created remaining version as latest."""
    candidate = (
        Version.query
        .filter(Version.entity_type == VersionEntityType(entity_type), Version.entity_id == entity_id)
        .order_by(Version.created_at.desc(), Version.id.desc())
        .first()
    )
    if candidate is None:
        return None
    candidate.latest = True
    db.session.flush()
    log_event(logger, f"Promoted version {candidate.code} to latest",
              version_id=candidate.id, entity_type=VersionEntityType(entity_type).value, entity_id=entity_id)
    return candidate


def delete_version(version):
    """Delete a version with its notes and playlist entries.

    If it was the latest one, the newest remaining sibling takes over.

    Returns:
        dict: summary with 'promoted' (code or None) and 'files' to remove after commit
    """
    entity_type, entity_id, was_latest = version.entity_type, version.entity_id, version.latest
    files = [p for p in (version.file_path, version.thumbnail_path) if p]
    note_count, note_files = delete_notes_for(NoteLinkType.VERSION, [version.id])
    files.extend(note_files)
    playlist_entries = len(version.playlist_entries)

    db.session.delete(version)
    db.session.flush()

    promoted = promote_latest(entity_type, entity_id) if was_latest else None
    return {
        'versions': 1,
        'notes': note_count,
        'playlist_entries': playlist_entries,
        'promoted': promoted.code if promoted else None,
        'files': files,
    }


def repair_latest_flags():
    """Fix entities that ended up with several latest versions, keeping the newest.

    Returns:
        int: Number of entities repaired
    """
    repaired = 0
    for entity_type, entity_id, _count in find_latest_flag_violations():
        keep = (
            Version.query
            .filter(Version.entity_type == VersionEntityType(entity_type), Version.entity_id == entity_id,
                    Version.latest.is_(True))
            .order_by(Version.created_at.desc(), Version.id.desc())
            .first()
        )
        clear_latest_flags(entity_type, entity_id, exclude_id=keep.id)
        repaired += 1
        logger.warning(f"Repaired latest flags for {entity_type} {entity_id}, kept {keep.code}")
    return repaired
