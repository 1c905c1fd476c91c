"""Wiring of the attendance services for one application."""
from datetime import datetime, timedelta
from typing import Callable, Mapping

from flask import current_app

from attendkaro.services.device_binding_service import DeviceBindingLedger
from attendkaro.services.lockout_service import LockoutTracker
from attendkaro.services.presence_service import PresenceVerificationPipeline
from attendkaro.services.roster_service import RosterService
from attendkaro.services.session_service import SessionLifecycleManager
from attendkaro.services.token_service import TokenCodec
from attendkaro.utils.clock import utcnow


class AttendanceEngine:
    """Services sharing one clock, one roster and one signing key."""

    def __init__(self, codec: TokenCodec, roster: RosterService, ledger: DeviceBindingLedger,
                 sessions: SessionLifecycleManager, pipeline: PresenceVerificationPipeline,
                 lockout: LockoutTracker, refresh_seconds: int = 5):
        self.codec = codec
        self.roster = roster
        self.ledger = ledger
        self.sessions = sessions
        self.pipeline = pipeline
        self.lockout = lockout
        self.refresh_seconds = refresh_seconds

    @classmethod
    def from_config(cls, config: Mapping, lockout: LockoutTracker,
                    clock: Callable[[], datetime] = utcnow) -> 'AttendanceEngine':
        default_radius = float(config.get('GEO_FENCE_RADIUS', 30))

        codec = TokenCodec(
            config['QR_SIGNATURE_SECRET'],
            validity_seconds=config.get('QR_VALIDITY_SECONDS', 10),
            clock=clock
        )
        roster = RosterService()
        ledger = DeviceBindingLedger(
            clock=clock,
            reason_min_length=config.get('DEVICE_CHANGE_REASON_MIN_LENGTH', 5)
        )
        sessions = SessionLifecycleManager(
            roster,
            clock=clock,
            max_duration=timedelta(hours=config.get('SESSION_MAX_DURATION_HOURS', 3)),
            code_length=config.get('SESSION_CODE_LENGTH', 6),
            max_code_attempts=config.get('SESSION_CODE_MAX_ATTEMPTS', 5),
            default_radius=default_radius,
            lockout=lockout
        )
        pipeline = PresenceVerificationPipeline(
            codec, sessions, ledger, roster,
            default_radius=default_radius,
            clock=clock
        )
        return cls(codec, roster, ledger, sessions, pipeline, lockout,
                   refresh_seconds=config.get('QR_REFRESH_SECONDS', 5))

    def init_app(self, app) -> None:
        app.extensions['attendance_engine'] = self


def get_engine() -> AttendanceEngine:
    return current_app.extensions['attendance_engine']
