"""Authentication service issuing JWT access tokens."""
from flask_jwt_extended import create_access_token

from attendkaro.models.user import User


class AuthService:
    @staticmethod
    def login(username: str, password: str) -> tuple[dict, str]:
        """Authenticate user and return an access token."""
        if not username or not password:
            return None, "Username and password are required"

        user = User.query.filter_by(username=username.lower().strip()).first()

        if not user or not user.check_password(password):
            return None, "Invalid username or password"

        if not user.is_active:
            return None, "Account is deactivated"

        access_token = create_access_token(
            identity=str(user.id),
            additional_claims={'role': user.role.value}
        )

        return {
            "access_token": access_token,
            "user": user.to_dict()
        }, None
