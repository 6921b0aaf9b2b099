"""Unit tests for webhook HMAC signatures"""

from webhooks.signing import compute_signature, sign_delivery, verify_signature


BODY = b'{"eventType":"order.shipped"}'


class TestVerifySignature:

    def test_plain_hex_signature(self):
        assert verify_signature("secret", BODY, compute_signature("secret", BODY)) is True

    def test_prefixed_signature(self):
        assert verify_signature("secret", BODY, "sha256=" + compute_signature("secret", BODY)) is True

    def test_uppercase_hex_accepted(self):
        assert verify_signature("secret", BODY, compute_signature("secret", BODY).upper()) is True

    def test_wrong_secret(self):
        assert verify_signature("other", BODY, compute_signature("secret", BODY)) is False

    def test_tampered_body(self):
        assert verify_signature("secret", BODY + b" ", compute_signature("secret", BODY)) is False

    def test_missing_secret_or_signature(self):
        assert verify_signature(None, BODY, compute_signature("secret", BODY)) is False
        assert verify_signature("secret", BODY, None) is False


class TestSignDelivery:

    def test_timestamp_is_covered(self):
        first = sign_delivery("secret", "1700000000", BODY)
        second = sign_delivery("secret", "1700000001", BODY)
        assert first.startswith("sha256=")
        assert first != second
        assert first == "sha256=" + compute_signature("secret", b"1700000000." + BODY)
