"""Production configuration."""
import os
from datetime import timedelta

from .base import BaseConfig


def store_engine_options(database_url, pool_timeout=10, statement_timeout_ms=5000):
    """Engine options that keep every store call bounded in time."""
    options = {
        'pool_pre_ping': True,
        'pool_timeout': pool_timeout,
        'pool_recycle': 1800,
    }
    if database_url and database_url.startswith(('postgres:', 'postgresql')):
        options['connect_args'] = {
            'connect_timeout': pool_timeout,
            'options': f'-c statement_timeout={statement_timeout_ms}',
        }
    return options


class ProductionConfig(BaseConfig):
    """Production configuration class."""

    DEBUG = False
    TESTING = False
    SECRET_KEY = os.getenv('SECRET_KEY')  # Must be set in production

    # Database
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL')
    SQLALCHEMY_ENGINE_OPTIONS = store_engine_options(
        SQLALCHEMY_DATABASE_URI,
        pool_timeout=int(os.getenv('DB_POOL_TIMEOUT_SECONDS', 10)),
        statement_timeout_ms=int(os.getenv('DB_STATEMENT_TIMEOUT_MS', 5000))
    )

    # Secrets have no fallback here
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY')
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=1)
    QR_SIGNATURE_SECRET = os.getenv('QR_SIGNATURE_SECRET')

    # Enhanced security
    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'

    # Classrooms often share one public address
    RATELIMIT_DEFAULT = "2000 per day, 300 per hour"

    # Deployed behind one reverse proxy by default
    PROXY_FIX_X_FOR = int(os.getenv('PROXY_FIX_X_FOR', 1))

    # Horizontally scaled deployments share lockouts through redis
    LOCKOUT_BACKEND = os.getenv('LOCKOUT_BACKEND', 'redis' if os.getenv('REDIS_URL') else 'memory')

    LOG_LEVEL = 'INFO'
    LOG_FILE = os.getenv('LOG_FILE', '/app/logs/app.log')

    REQUIRED_SETTINGS = ('SECRET_KEY', 'JWT_SECRET_KEY', 'QR_SIGNATURE_SECRET', 'SQLALCHEMY_DATABASE_URI')
