import hashlib
import hmac

from src.shared.utils.crypto import (
    constant_time_equals,
    signature_header,
    verify_signature_header,
)


def test_valid_signature():
    secret = "s3cr3t"
    body = b'{"hello":"world"}'
    sig = "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    assert verify_signature_header(secret, body, sig) is True


def test_invalid_signature():
    secret = "s3cr3t"
    body = b'{"hello":"world"}'
    assert verify_signature_header(secret, body, "sha256=deadbeef") is False


def test_signature_covers_exact_bytes():
    secret = "s3cr3t"
    sig = signature_header(secret, b'{"hello":"world"}')
    assert verify_signature_header(secret, b'{"hello": "world"}', sig) is False


def test_uppercase_hex_is_accepted():
    secret = "s3cr3t"
    body = b"payload"
    sig = signature_header(secret, body)
    assert verify_signature_header(secret, body, "sha256=" + sig[len("sha256="):].upper()) is True


def test_missing_prefix_secret_or_header():
    body = b"payload"
    digest = signature_header("s3cr3t", body)[len("sha256="):]
    assert verify_signature_header("s3cr3t", body, digest) is False
    assert verify_signature_header("s3cr3t", body, None) is False
    assert verify_signature_header("", body, signature_header("", body)) is False


def test_constant_time_equals():
    assert constant_time_equals("token", "token")
    assert not constant_time_equals("token", "other")
    assert not constant_time_equals(None, "token")
    assert not constant_time_equals("token", None)
