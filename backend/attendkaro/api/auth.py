"""Authentication API endpoints."""
from flask import Blueprint, g

from attendkaro import limiter
from attendkaro.models.user import UserRole
from attendkaro.services.auth_service import AuthService
from attendkaro.utils.decorators import role_required
from attendkaro.utils.helpers import success_response, error_response, get_json_body

auth_bp = Blueprint("auth", __name__)


@auth_bp.route("/health", methods=["GET"])
def health_check():
    """Health check endpoint."""
    return success_response(message="Auth service is running")


@auth_bp.route("/login", methods=["POST"])
@limiter.limit("5 per minute")
def login():
    """Login for students, faculty and admins."""
    data = get_json_body()

    if not data:
        return error_response("Request body must be JSON", 400)

    result, error = AuthService.login(data.get("username", ""), data.get("password", ""))

    if error:
        return error_response(error, 401)

    return success_response(data=result, message="Login successful")


@auth_bp.route("/me", methods=["GET"])
@role_required(UserRole.STUDENT, UserRole.FACULTY, UserRole.ADMIN)
def me():
    """Current user profile."""
    return success_response(data=g.current_user.to_dict())
