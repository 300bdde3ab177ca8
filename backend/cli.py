import click
import logging
from flask.cli import with_appcontext
from werkzeug.security import generate_password_hash
from .models import db, Status, User
from .services.versioning import repair_latest_flags
from .utils import get_orphaned_records, find_latest_flag_violations
from shared.enums import UserRole
from shared.validation import Validator, ValidationError

logger = logging.getLogger(__name__)

# code, name, color, applicable entities
DEFAULT_STATUSES = [
    ('waiting', 'Waiting', '#9E9E9E', ['project', 'episode', 'sequence', 'shot', 'asset', 'playlist']),
    ('in_progress', 'In Progress', '#2196F3', ['project', 'episode', 'sequence', 'shot', 'asset', 'playlist']),
    ('wip', 'Work in Progress', '#FFC107', ['version']),
    ('review', 'Review', '#FF9800', ['all']),
    ('approved', 'Approved', '#4CAF50', ['all']),
    ('rejected', 'Rejected', '#F44336', ['version']),
    ('final', 'Final', '#673AB7', ['project', 'episode', 'sequence', 'shot', 'asset', 'playlist']),
]


def seed_default_statuses():
    """Add any missing default status. Returns the number added; does not commit."""
    added = 0
    for sort_order, (code, name, color, applicable) in enumerate(DEFAULT_STATUSES):
        if Status.query.filter_by(code=code).first():
            logger.debug(f"Status {code} already exists")
            continue
        db.session.add(Status(code=code, name=name, color=color, sort_order=sort_order,
                              applicable_entities=applicable, is_active=True))
        added += 1
    return added


@click.command('init-db')
@with_appcontext
def init_db_command():
    """Create missing tables and seed the default statuses."""
    logger.info("Starting database initialization")
    db.create_all()
    logger.info("Database tables created successfully")

    added = seed_default_statuses()
    db.session.commit()
    logger.info(f"Database initialization completed, {added} statuses seeded")
    click.echo(f'Initialized the database ({added} default statuses added).')


@click.command('create-admin')
@click.option('--email', prompt=True, help='Email address of the admin account')
@click.option('--name', prompt=True, help='Display name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@with_appcontext
def create_admin_command(email, name, password):
    """Create an admin account, or promote an existing user to admin."""
    try:
        email = Validator.validate_email(email)
        name = Validator.validate_safe_identifier(name, 'name', 2, 100)
        Validator.validate_password_strength(password)
    except ValidationError as e:
        raise click.BadParameter(str(e))

    user = User.query.filter_by(email=email).first()
    if user is None:
        user = User(email=email, name=name, password_hash=generate_password_hash(password), role=UserRole.ADMIN)
        db.session.add(user)
        message = f'Created admin {email}.'
    else:
        user.role = UserRole.ADMIN
        user.is_active = True
        message = f'Promoted existing user {email} to admin.'
    db.session.commit()
    logger.info(message)
    click.echo(message)


@click.command('check-integrity')
@click.option('--repair', is_flag=True, help='Fix entities with several latest versions, keeping the newest')
@with_appcontext
def check_integrity_command(repair):
    """Report orphaned versions/notes and latest-flag violations."""
    logger.info(f"Starting integrity check (repair={repair})")
    issues = 0

    orphaned = get_orphaned_records()
    for relationship_type, ids in orphaned.items():
        issues += len(ids)
        click.echo(f'Orphaned {relationship_type}: {", ".join(str(i) for i in ids)}')

    violations = find_latest_flag_violations()
    for entity_type, entity_id, count in violations:
        issues += 1
        click.echo(f'{entity_type} {entity_id} has {count} latest versions')

    if repair and violations:
        repaired = repair_latest_flags()
        db.session.commit()
        click.echo(f'Repaired latest flags on {repaired} entities.')

    if issues == 0:
        click.echo('No integrity issues found.')
    else:
        logger.warning(f"Integrity check found {issues} issues")
        click.echo(f'Found {issues} integrity issues.')
