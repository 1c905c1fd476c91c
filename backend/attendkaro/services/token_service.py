"""Signed, short-lived QR tokens bound to an attendance session."""
import base64
import hashlib
import hmac
import io
import json
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

import qrcode

from attendkaro.utils.clock import isoformat_z, parse_iso, utcnow


class TokenFormatError(ValueError):
    """Token payload could not be parsed."""


@dataclass(frozen=True)
class QRToken:
    session_id: str
    timestamp: str
    nonce: str
    signature: str

    def to_json(self) -> str:
        return json.dumps({
            'session_id': self.session_id,
            'timestamp': self.timestamp,
            'nonce': self.nonce,
            'signature': self.signature
        }, separators=(',', ':'))


@dataclass(frozen=True)
class TokenVerdict:
    valid: bool
    reason: Optional[str] = None  # 'signature_mismatch' | 'expired'

    def __bool__(self) -> bool:
        return self.valid


class TokenCodec:
    """Issue and verify HMAC-SHA256 signed QR tokens.

    The signature covers ``session_id + timestamp``; the nonce only makes
    tokens issued within the same millisecond distinct. The codec keeps no
    record of issued tokens, so a token can be replayed by anyone holding it
    until its freshness window closes.
    """

    NONCE_BYTES = 16

    def __init__(self, secret_key: str, validity_seconds: int = 10,
                 clock: Callable[[], datetime] = utcnow):
        if not secret_key:
            raise ValueError('QR signature secret is required')
        self._key = secret_key.encode('utf-8')
        self.validity_seconds = int(validity_seconds)
        self._clock = clock

    def sign(self, session_id: str, timestamp: str) -> str:
        data = f"{session_id}{timestamp}".encode('utf-8')
        return hmac.new(self._key, data, hashlib.sha256).hexdigest()

    def issue(self, session_id: str) -> QRToken:
        """Create a fresh token for ``session_id`` stamped with now."""
        session_id = str(session_id)
        timestamp = isoformat_z(self._clock())
        return QRToken(
            session_id=session_id,
            timestamp=timestamp,
            nonce=secrets.token_hex(self.NONCE_BYTES),
            signature=self.sign(session_id, timestamp)
        )

    @staticmethod
    def parse(raw) -> QRToken:
        """Parse the scanned QR payload.

        Accepts the JSON string shown by the display or an already decoded
        dict. Raises TokenFormatError when required fields are missing.
        """
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except (json.JSONDecodeError, TypeError):
                raise TokenFormatError('Invalid QR data format')
        if not isinstance(raw, dict):
            raise TokenFormatError('Invalid QR data format')

        fields = {}
        for name in ('session_id', 'timestamp', 'nonce', 'signature'):
            value = raw.get(name)
            if isinstance(value, int) and not isinstance(value, bool) and name == 'session_id':
                value = str(value)
            if not isinstance(value, str) or not value:
                raise TokenFormatError(f'Invalid QR data format: missing {name}')
            fields[name] = value
        return QRToken(**fields)

    def verify_signature(self, token: QRToken, session_id: Optional[str] = None) -> bool:
        """Constant-time signature check.

        When ``session_id`` is given the signature is recomputed for that
        session, so a token minted for another session never verifies.
        """
        expected_session = token.session_id if session_id is None else str(session_id)
        expected = self.sign(expected_session, token.timestamp)
        try:
            return hmac.compare_digest(expected.encode('ascii'), token.signature.encode('ascii'))
        except UnicodeEncodeError:
            return False

    def is_fresh(self, token: QRToken) -> bool:
        """``|now - timestamp| <= validity``; unparseable timestamps are stale."""
        try:
            issued_at = parse_iso(token.timestamp)
        except (ValueError, OverflowError):
            return False
        age = abs((self._clock() - issued_at).total_seconds())
        return age <= self.validity_seconds

    def verify(self, token, session_id: Optional[str] = None) -> TokenVerdict:
        """Full verification: signature first, then freshness."""
        if not isinstance(token, QRToken):
            try:
                token = self.parse(token)
            except TokenFormatError:
                return TokenVerdict(False, 'signature_mismatch')
        if not self.verify_signature(token, session_id):
            return TokenVerdict(False, 'signature_mismatch')
        if not self.is_fresh(token):
            return TokenVerdict(False, 'expired')
        return TokenVerdict(True)


def render_qr_image(payload: str) -> str:
    """Render ``payload`` as a base64 PNG data URI for the display."""
    qr = qrcode.QRCode(
        version=None,  # Auto-determine size
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=4,
    )
    qr.add_data(payload)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")

    buffered = io.BytesIO()
    img.save(buffered, format="PNG")
    img_str = base64.b64encode(buffered.getvalue()).decode()

    return f"data:image/png;base64,{img_str}"

