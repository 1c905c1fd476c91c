"""Base configuration shared by every environment."""
import os
from datetime import timedelta


class BaseConfig:
    """Base configuration."""
    SECRET_KEY = os.getenv('SECRET_KEY') or 'dev-secret-key-change-in-production'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = False

    # Replace dead pooled connections before use; production also bounds
    # pool waits and statement time (see production.store_engine_options)
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
    }

    # JWT Configuration
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY') or 'jwt-secret-key-change-in-production'
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=2)
    JWT_ALGORITHM = 'HS256'

    # CORS
    CORS_ORIGINS = os.getenv('ALLOWED_ORIGINS', 'http://localhost:3000,http://localhost:5000').split(',')

    # Rate Limiting
    RATELIMIT_STORAGE_URI = os.getenv('REDIS_URL') or 'memory://'
    RATELIMIT_DEFAULT = "200 per day, 50 per hour"
    RATELIMIT_HEADERS_ENABLED = True

    # Number of reverse proxies in front of the app (0 = none)
    PROXY_FIX_X_FOR = int(os.getenv('PROXY_FIX_X_FOR', 0))

    # Redis (optional; enables the shared lockout store)
    REDIS_URL = os.getenv('REDIS_URL') or None
    REDIS_SOCKET_TIMEOUT_SECONDS = float(os.getenv('REDIS_SOCKET_TIMEOUT_SECONDS', 2))

    # Signed QR tokens
    QR_SIGNATURE_SECRET = os.getenv('QR_SIGNATURE_SECRET') or 'qr-signature-secret-change-in-production'
    QR_VALIDITY_SECONDS = int(os.getenv('QR_VALIDITY_SECONDS', 10))
    QR_REFRESH_SECONDS = int(os.getenv('QR_REFRESH_SECONDS', 5))

    # Geofence
    GEO_FENCE_RADIUS = float(os.getenv('GEO_FENCE_RADIUS', 30))  # meters

    # Session lifecycle
    SESSION_MAX_DURATION_HOURS = float(os.getenv('SESSION_MAX_DURATION_HOURS', 3))
    SESSION_CODE_LENGTH = 6
    SESSION_CODE_MAX_ATTEMPTS = 5

    # Session-code lookup lockout
    LOCKOUT_BACKEND = os.getenv('LOCKOUT_BACKEND', 'memory')  # memory | redis
    LOCKOUT_THRESHOLD = int(os.getenv('LOCKOUT_THRESHOLD', 5))
    LOCKOUT_DURATION_SECONDS = int(os.getenv('LOCKOUT_DURATION_SECONDS', 300))
    LOCKOUT_SWEEP_INTERVAL_SECONDS = int(os.getenv('LOCKOUT_SWEEP_INTERVAL_SECONDS', 600))
    LOCKOUT_SWEEPER_ENABLED = True

    # Store retries (idempotent reads only)
    TRANSIENT_RETRY_ATTEMPTS = 3

    # Device change requests
    DEVICE_CHANGE_REASON_MIN_LENGTH = 5

    # Display feeds
    RECENT_SCANS_LIMIT = 10
    ANALYTICS_PROXY_ATTEMPTS_LIMIT = 20

    # Logging
    LOG_LEVEL = 'INFO'
    LOG_FILE = 'logs/app.log'
