"""Tests for the signed QR token codec."""
import hashlib
import hmac
import json
from datetime import datetime

import pytest

from attendkaro.services.token_service import QRToken, TokenCodec, TokenFormatError, render_qr_image

SECRET = 'unit-test-secret'


class Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return Clock(datetime(2024, 1, 15, 9, 0, 0))


@pytest.fixture
def codec(clock):
    return TokenCodec(SECRET, validity_seconds=10, clock=clock)


def test_issue_signs_session_and_timestamp(codec):
    """Signature is the hex HMAC-SHA256 of session_id + timestamp."""
    token = codec.issue('session-1')
    assert token.session_id == 'session-1'
    assert token.timestamp == '2024-01-15T09:00:00.000Z'
    expected = hmac.new(SECRET.encode(), b'session-12024-01-15T09:00:00.000Z', hashlib.sha256).hexdigest()
    assert token.signature == expected
    assert len(token.nonce) == 32


def test_nonces_differ_within_same_instant(codec):
    first = codec.issue('session-1')
    second = codec.issue('session-1')
    assert first.timestamp == second.timestamp
    assert first.nonce != second.nonce


def test_token_valid_until_window_closes(codec, clock):
    """Issued at T0: valid at T0+10s, expired at T0+20s."""
    token = codec.issue('session-1')

    clock.now = datetime(2024, 1, 15, 9, 0, 10)
    assert codec.verify(token, 'session-1').valid

    clock.now = datetime(2024, 1, 15, 9, 0, 20)
    verdict = codec.verify(token, 'session-1')
    assert not verdict.valid
    assert verdict.reason == 'expired'


def test_future_timestamp_beyond_window_is_stale(codec, clock):
    token = codec.issue('session-1')
    clock.now = datetime(2024, 1, 15, 8, 59, 30)
    assert not codec.is_fresh(token)


def test_tampered_signature_rejected(codec):
    token = codec.issue('session-1')
    forged = QRToken(token.session_id, token.timestamp, token.nonce, 'a' * 64)
    verdict = codec.verify(forged)
    assert not verdict.valid
    assert verdict.reason == 'signature_mismatch'


def test_tampered_timestamp_rejected(codec):
    token = codec.issue('session-1')
    forged = QRToken(token.session_id, '2024-01-15T09:00:05.000Z', token.nonce, token.signature)
    assert not codec.verify_signature(forged)


def test_token_for_other_session_rejected(codec):
    """A token is only good for the session it was issued for."""
    token = codec.issue('session-1')
    assert codec.verify_signature(token, 'session-1')
    assert not codec.verify_signature(token, 'session-2')
    assert codec.verify(token, 'session-2').reason == 'signature_mismatch'


def test_other_secret_rejected(codec, clock):
    token = codec.issue('session-1')
    other = TokenCodec('another-secret', clock=clock)
    assert not other.verify_signature(token)


def test_signature_checked_before_freshness(codec, clock):
    token = codec.issue('session-1')
    clock.now = datetime(2024, 1, 15, 10, 0, 0)
    forged = QRToken(token.session_id, token.timestamp, token.nonce, '0' * 64)
    assert codec.verify(forged).reason == 'signature_mismatch'


def test_parse_round_trips_display_payload(codec):
    token = codec.issue('session-1')
    assert TokenCodec.parse(token.to_json()) == token
    assert TokenCodec.parse(json.loads(token.to_json())) == token


def test_parse_accepts_numeric_session_id():
    token = TokenCodec.parse({'session_id': 42, 'timestamp': 't', 'nonce': 'n', 'signature': 's'})
    assert token.session_id == '42'


@pytest.mark.parametrize('raw', [
    'not json',
    '[]',
    None,
    {'session_id': 's', 'timestamp': 't', 'nonce': 'n'},
    {'session_id': '', 'timestamp': 't', 'nonce': 'n', 'signature': 's'},
    {'session_id': 's', 'timestamp': 5, 'nonce': 'n', 'signature': 's'},
])
def test_parse_rejects_malformed(raw):
    with pytest.raises(TokenFormatError):
        TokenCodec.parse(raw)


def test_unparseable_timestamp_is_stale(codec):
    token = QRToken('session-1', 'yesterday', 'n', codec.sign('session-1', 'yesterday'))
    assert codec.verify_signature(token)
    assert not codec.is_fresh(token)


@pytest.mark.parametrize('timestamp', ['0001-01-01T00:00:00+01:00', '9999-12-31T23:59:59-01:00'])
def test_out_of_range_timestamp_is_stale(codec, timestamp):
    """Offsets pushing the instant past datetime's range read as stale."""
    token = QRToken('session-1', timestamp, 'n', codec.sign('session-1', timestamp))
    assert codec.verify_signature(token)
    assert not codec.is_fresh(token)
    assert codec.verify(token, 'session-1').reason == 'expired'


def test_codec_requires_secret():
    with pytest.raises(ValueError):
        TokenCodec('')


def test_render_qr_image_returns_png_data_uri(codec):
    image = render_qr_image(codec.issue('session-1').to_json())
    assert image.startswith('data:image/png;base64,')
