"""Custom decorators for authorization and store retries."""
import logging
import time
from functools import wraps

from flask import current_app, g
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request
from sqlalchemy.exc import OperationalError, TimeoutError as PoolTimeoutError

from attendkaro import db
from attendkaro.models.user import User, UserRole
from attendkaro.utils.exceptions import TransientError
from attendkaro.utils.helpers import error_response

logger = logging.getLogger(__name__)


def _load_current_user():
    identity = get_jwt_identity()
    try:
        user_id = int(identity)
    except (TypeError, ValueError):
        return None
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        return None
    g.current_user = user
    return user


def role_required(*roles: UserRole):
    """Require a valid JWT whose user holds one of ``roles``."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            verify_jwt_in_request()
            user = _load_current_user()

            if not user:
                return error_response("User not found", 404)

            if user.role not in roles:
                names = ' or '.join(role.value.lower() for role in roles)
                return error_response(f"Access denied. {names.capitalize()} only.", 403)

            return f(*args, **kwargs)
        return decorated_function
    return decorator


student_required = role_required(UserRole.STUDENT)
faculty_required = role_required(UserRole.FACULTY)
admin_required = role_required(UserRole.ADMIN)


def retry_transient(f):
    """Retry an idempotent read when the store times out.

    Never wrap a commit with this; the final write of a scan must not be
    replayed.
    """
    @wraps(f)
    def wrapper(*args, **kwargs):
        attempts = current_app.config.get('TRANSIENT_RETRY_ATTEMPTS', 3)
        for attempt in range(1, attempts + 1):
            try:
                return f(*args, **kwargs)
            except (OperationalError, PoolTimeoutError) as exc:
                db.session.rollback()
                if attempt == attempts:
                    logger.warning("store read %s failed after %d attempts", f.__name__, attempts)
                    raise TransientError() from exc
                time.sleep(0.05 * attempt)
    return wrapper
