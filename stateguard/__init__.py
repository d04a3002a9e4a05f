import os
import logging
from logging.handlers import RotatingFileHandler
from flask import Flask


def configure_logging(app):
    """Configure application logging"""

    # Set log level based on environment
    log_level = logging.DEBUG if app.config.get('DEBUG', False) else logging.INFO

    handlers = []
    log_dir_error = None

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s in %(module)s: %(message)s'
    )
    console_handler.setFormatter(console_formatter)
    handlers.append(console_handler)

    # File handler (skipped when LOG_DIR is unset or not writable)
    log_dir = app.config.get('LOG_DIR')
    if log_dir:
        try:
            os.makedirs(log_dir, exist_ok=True)
            file_handler = RotatingFileHandler(
                os.path.join(log_dir, 'stateguard.log'),
                maxBytes=10485760,  # 10MB
                backupCount=10
            )
            file_handler.setLevel(log_level)
            file_formatter = logging.Formatter(
                '[%(asctime)s] %(levelname)s [%(name)s.%(funcName)s:%(lineno)d] %(message)s'
            )
            file_handler.setFormatter(file_formatter)
            handlers.append(file_handler)
        except OSError as e:
            log_dir_error = f"File logging disabled, cannot write to {log_dir}: {e}"

    # Configure package logger
    package_logger = logging.getLogger(__name__)
    package_logger.setLevel(log_level)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()
    for handler in handlers:
        package_logger.addHandler(handler)

    # Configure Flask app logger
    app.logger.setLevel(log_level)

    if log_dir_error:
        package_logger.warning(log_dir_error)

    app.logger.debug(f"Logging configured (level: {logging.getLevelName(log_level)})")


def create_app(config_name=None, config_overrides=None):
    """Flask application factory"""

    app = Flask(__name__)

    # Load configuration
    if config_name is None:
        config_name = os.environ.get('STATEGUARD_ENV', 'production')

    from stateguard.config import config
    app.config.from_object(config[config_name])

    if config_overrides:
        app.config.update(config_overrides)

    # Configure logging
    configure_logging(app)

    # Register blueprints
    from stateguard.routes import backup_routes
    app.register_blueprint(backup_routes.bp)

    # Register CLI commands
    from stateguard.cli import backup_cli
    app.cli.add_command(backup_cli)

    # Health check endpoint
    @app.route('/health')
    def health():
        return {'status': 'healthy'}, 200

    return app
