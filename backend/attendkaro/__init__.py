"""Attend Karo - attendance session integrity service."""
import logging
import os
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_jwt_extended import JWTManager
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# Initialize extensions
db = SQLAlchemy()
migrate = Migrate()
jwt = JWTManager()
limiter = Limiter(key_func=get_remote_address)

from attendkaro.services.lockout_service import LockoutTracker  # noqa: E402

lockout = LockoutTracker()


def create_app(config_name: str = None, clock=None) -> Flask:
    """Application factory pattern."""
    app = Flask(__name__)

    # Load configuration
    from config import get_config
    config_class = get_config(config_name)
    app.config.from_object(config_class)
    check_required_settings(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    limiter.init_app(app)
    lockout.init_app(app)

    # Trust X-Forwarded-For only from the configured number of proxies
    if app.config.get('PROXY_FIX_X_FOR'):
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=app.config['PROXY_FIX_X_FOR'])

    # Configure CORS
    CORS(app, origins=app.config.get('CORS_ORIGINS', ["*"]))

    # Setup logging
    setup_logging(app)

    # Wire the attendance services
    setup_engine(app, clock)

    # Register blueprints
    register_blueprints(app)

    # Register error handlers
    register_error_handlers(app)

    # Add CLI commands
    register_commands(app)

    # Add health check
    @app.route('/health')
    def health_check():
        return jsonify({
            'status': 'healthy',
            'service': 'Attend Karo',
            'version': '1.0.0'
        })

    return app


def check_required_settings(app: Flask) -> None:
    """Refuse to start when a required secret is missing."""
    missing = [key for key in app.config.get('REQUIRED_SETTINGS', ()) if not app.config.get(key)]
    if missing:
        raise RuntimeError(f"Missing required settings: {', '.join(missing)}")


def setup_engine(app: Flask, clock=None) -> None:
    """Build the services and register them on the app."""
    # Import all models so metadata is complete
    from attendkaro import models  # noqa: F401
    from attendkaro.services.engine import AttendanceEngine
    from attendkaro.utils.clock import utcnow

    engine = AttendanceEngine.from_config(app.config, lockout, clock=clock or utcnow)
    engine.init_app(app)


def register_blueprints(app: Flask) -> None:
    """Register all application blueprints."""
    from attendkaro.api.auth import auth_bp
    from attendkaro.api.faculty import faculty_bp
    from attendkaro.api.student import student_bp
    from attendkaro.api.display import display_bp
    from attendkaro.api.admin import admin_bp

    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(admin_bp, url_prefix='/api/admin')
    app.register_blueprint(faculty_bp, url_prefix='/api/faculty')
    app.register_blueprint(student_bp, url_prefix='/api/student')
    app.register_blueprint(display_bp, url_prefix='/api/display')


def register_error_handlers(app: Flask) -> None:
    """Register error handlers."""
    from sqlalchemy.exc import OperationalError
    from werkzeug.exceptions import HTTPException
    from attendkaro.utils.exceptions import AttendanceError, InvariantViolation, LockedOut
    from attendkaro.utils.helpers import handle_error, error_response

    @app.errorhandler(AttendanceError)
    def handle_attendance_error(error):
        if isinstance(error, InvariantViolation):
            db.session.rollback()
            app.logger.error('Invariant violation: %s', error.detail)
        response = jsonify(error.to_dict())
        response.status_code = error.status_code
        if isinstance(error, LockedOut):
            response.headers['Retry-After'] = str(error.retry_after)
        return response

    @app.errorhandler(OperationalError)
    def handle_store_unavailable(error):
        db.session.rollback()
        app.logger.warning('Store unavailable: %s', error)
        return error_response('Service temporarily unavailable. Please retry.', 503)

    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        return handle_error(e, e.code)

    @app.errorhandler(Exception)
    def handle_unexpected(error):
        db.session.rollback()
        app.logger.exception('Unhandled error')
        return error_response('Internal server error', 500)

    # JWT error handlers
    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return error_response('Token has expired', 401)

    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        return error_response('Token is not valid', 401)

    @jwt.unauthorized_loader
    def missing_token_callback(error):
        return error_response('No token, authorization denied', 401)


def setup_logging(app: Flask) -> None:
    """Setup application logging."""
    level = getattr(logging, app.config.get('LOG_LEVEL', 'INFO'), logging.INFO)
    logging.getLogger('attendkaro').setLevel(level)

    if not app.debug and not app.testing:
        log_file = app.config.get('LOG_FILE', 'logs/app.log')
        log_dir = os.path.dirname(log_file)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
        ))
        file_handler.setLevel(logging.INFO)
        app.logger.addHandler(file_handler)
        logging.getLogger('attendkaro').addHandler(file_handler)

        app.logger.setLevel(logging.INFO)
        app.logger.info('Attend Karo startup')


def register_commands(app: Flask) -> None:
    """Register CLI commands."""
    import click

    @app.cli.command('sweep-lockouts')
    def sweep_lockouts():
        """Evict stale session-code lockout entries."""
        evicted = lockout.sweep()
        click.echo(f'Evicted {evicted} lockout entries.')

    @app.cli.command('expire-sessions')
    def expire_sessions():
        """End every session past its maximum duration."""
        from attendkaro.services.engine import get_engine

        expired = get_engine().sessions.expire_overdue_sessions()
        click.echo(f'Expired {expired} sessions.')
