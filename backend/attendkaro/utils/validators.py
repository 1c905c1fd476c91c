"""Validation utilities for request payloads."""
import math
from typing import Any, Dict, List

from attendkaro.utils.exceptions import ValidationError


class Validator:
    """Validation helper class."""

    @staticmethod
    def require_fields(data: Dict, required_fields: List[str]) -> None:
        """Raise ValidationError naming the first missing field."""
        for field in required_fields:
            value = data.get(field)
            if value is None or (isinstance(value, str) and not value.strip()):
                raise ValidationError(f"Missing required field: {field}")

    @staticmethod
    def coordinate(value: Any, name: str, limit: float) -> float:
        """Coerce a latitude/longitude value and check its range."""
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise ValidationError(f"{name} must be a number")
        if math.isnan(number) or math.isinf(number) or abs(number) > limit:
            raise ValidationError(f"{name} is out of range")
        return number

    @staticmethod
    def latitude(value: Any) -> float:
        return Validator.coordinate(value, 'latitude', 90.0)

    @staticmethod
    def longitude(value: Any) -> float:
        return Validator.coordinate(value, 'longitude', 180.0)

    @staticmethod
    def radius(value: Any, default: float) -> float:
        """Geofence radius in meters; falls back to the default when absent."""
        if value is None or value == '':
            return float(default)
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise ValidationError("radius must be a number")
        if math.isnan(number) or number <= 0 or number > 10000:
            raise ValidationError("radius must be between 0 and 10000 meters")
        return number

    @staticmethod
    def session_id(value: Any, max_length: int = 64) -> str:
        """Session id as sent by a scanner; bounded by the proxy attempt column."""
        if isinstance(value, bool) or not isinstance(value, (str, int)) or not str(value).strip():
            raise ValidationError("Missing required field: session_id")
        session_id = str(value).strip()
        if len(session_id) > max_length:
            raise ValidationError("session_id is too long")
        return session_id

    @staticmethod
    def device_id(value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValidationError("Missing required field: device_id")
        device_id = value.strip()
        if len(device_id) > 255:
            raise ValidationError("device_id is too long")
        return device_id

    @staticmethod
    def session_code(value: Any) -> str:
        """Normalise a session code as typed by a person."""
        if not isinstance(value, str) or not value.strip():
            raise ValidationError("Session code is required")
        return value.strip().upper()

    @staticmethod
    def reason(value: Any, min_length: int) -> str:
        if not isinstance(value, str) or len(value.strip()) < min_length:
            raise ValidationError(
                f"Please provide a valid reason (min {min_length} characters)"
            )
        return value.strip()
