"""
Flask Application Factory
=========================

Factory pattern for creating Flask application instances with
proper initialization.
"""

from pathlib import Path
from typing import Any, Mapping, Optional

from dotenv import load_dotenv
from flask import Flask

from sitegen.config.settings import config
from sitegen.errors import register_error_handlers
from sitegen.extensions import init_extensions
from sitegen.routes import register_blueprints
from sitegen.utils.logging_config import get_logger, setup_application_logging

logger = get_logger('factory')


def create_app(config_name: str = 'default', overrides: Optional[Mapping[str, Any]] = None) -> Flask:
    """
    Create and configure Flask application.

    Args:
        config_name: Configuration environment name
        overrides: Extra config values applied after the environment class

    Returns:
        Configured Flask application
    """
    # Load .env before the config classes are read
    env_path = Path(__file__).resolve().parent.parent.parent / '.env'
    if env_path.exists():
        load_dotenv(env_path, override=False)
        logger.info(f"Loaded .env from {env_path}")

    app = Flask(__name__)
    app.config.from_object(config[config_name]())
    if overrides:
        app.config.update(overrides)

    setup_application_logging(
        log_dir=app.config.get('LOG_DIR'),
        log_to_file=bool(app.config.get('LOG_TO_FILE')),
        level=app.config.get('LOG_LEVEL'),
    )

    register_error_handlers(app)
    init_extensions(app)
    register_blueprints(app)

    logger.info(f"Application created (config={config_name})")
    return app
