"""Flask application factory for the Shogunito backend."""
from flask import Flask, request, g
import logging
from pathlib import Path
from .models import db
from .blueprints import (
    auth, users, statuses, projects, episodes, sequences, shots, assets, versions, playlists, notes,
    notifications, search, health
)
from .cli import init_db_command, create_admin_command, check_integrity_command
from .errors import register_error_handlers
from .logging_config import setup_logging, log_event
from .rate_limit import limiter
from .services.login_attempts import init_login_tracker
from .services.media_storage import init_media_storage
from .settings import Settings

logger = logging.getLogger(__name__)
request_logger = logging.getLogger('shogunito.requests')

BLUEPRINTS = (auth, users, statuses, projects, episodes, sequences, shots, assets, versions, playlists, notes,
              notifications, search, health)


def create_app(test_config=None):
    """Flask application factory for the Shogunito backend.

    Creates and configures a Flask application instance with:
    - Settings from SHOGUNITO_* environment variables and .env
    - SQLAlchemy database integration
    - Blueprint registration for API endpoints
    - Bearer token authentication and rate limiting
    - Media storage for uploads
    - CLI command registration
    - Logging configuration

    Configuration is layered: Settings defaults, then instance/config.py,
    then test_config.

    Args:
        test_config (dict, optional): Configuration overrides for testing

    Returns:
        Flask: Configured Flask application instance
    """
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_mapping(Settings().to_flask_config())

    config_loaded = app.config.from_pyfile('config.py', silent=True)
    if test_config is not None:
        app.config.from_mapping(test_config)

    # Setup logging once the log level and directory are known
    setup_logging(app.config['LOG_LEVEL'], app.config['LOG_DIR'])
    logger.info("Starting Flask application initialization")
    if config_loaded:
        logger.info("Loaded configuration from instance/config.py")
    if test_config is not None:
        logger.info("Loaded test configuration")

    # Ensure the instance folder exists
    try:
        Path(app.instance_path).mkdir(parents=True, exist_ok=True)
        logger.debug(f"Created instance directory: {app.instance_path}")
    except OSError:
        logger.debug(f"Instance directory already exists: {app.instance_path}")

    db.init_app(app)
    logger.info(f"SQLAlchemy database initialized: {app.config['SQLALCHEMY_DATABASE_URI']}")

    register_error_handlers(app)

    # Register blueprints
    logger.info("Registering API blueprints")
    for module in BLUEPRINTS:
        app.register_blueprint(module.bp)
        logger.debug(f"Registered {module.bp.name} blueprint")
    logger.info("All API blueprints registered successfully")

    # Authentication runs first so the rate limiter can key on the user
    auth.init_auth(app)
    logger.info("Authentication system initialized")

    limiter.init_app(app)
    logger.info(f"Rate limiting {'enabled' if app.config['RATELIMIT_ENABLED'] else 'disabled'}")

    init_login_tracker(app)
    init_media_storage(app)

    @app.after_request
    def log_request(response):
        user = getattr(g, 'user', None)
        log_event(request_logger, f"{request.method} {request.path} {response.status_code}",
                  method=request.method, path=request.path, status=response.status_code,
                  user_id=user.id if user is not None else None)
        return response

    # Register CLI commands
    app.cli.add_command(init_db_command)
    app.cli.add_command(create_admin_command)
    app.cli.add_command(check_integrity_command)
    logger.info("CLI commands registered: init-db, create-admin, check-integrity")

    logger.info("Flask application initialization completed successfully")
    return app


if __name__ == '__main__':
    app = create_app()
    app.run(debug=True)
