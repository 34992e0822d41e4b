"""Tests for webhook HMAC-SHA256 signature verification."""

from __future__ import annotations

import hashlib
import hmac

from hypothesis import given, settings as hyp_settings
from hypothesis import strategies as st

from bizdash.tenants import TenantWebhookConfig, generate_webhook_secret, secret_preview
from bizdash.webhooks.verification import (
    compute_signature,
    signature_required,
    verify_signature,
    verify_tenant_webhook,
)

SECRET = "a" * 64


class TestComputeSignature:
    def test_matches_hmac_sha256_hex(self):
        body = b'{"tenantId": "t1"}'
        expected = hmac.new(SECRET.encode(), body, hashlib.sha256).hexdigest()
        assert compute_signature(SECRET, body) == expected

    def test_is_lowercase_hex_of_sha256_length(self):
        sig = compute_signature(SECRET, b"x")
        assert len(sig) == 64
        assert sig == sig.lower()


class TestVerifySignature:
    def test_valid_signature(self):
        body = b'{"id": 1}'
        assert verify_signature(body, compute_signature(SECRET, body), SECRET) is True

    def test_uppercase_hex_accepted(self):
        body = b'{"id": 1}'
        assert verify_signature(body, compute_signature(SECRET, body).upper(), SECRET) is True

    def test_tampered_body(self):
        sig = compute_signature(SECRET, b'{"amount": 10}')
        assert verify_signature(b'{"amount": 1000}', sig, SECRET) is False

    def test_wrong_secret(self):
        body = b"payload"
        assert verify_signature(body, compute_signature("b" * 64, body), SECRET) is False

    def test_missing_header(self):
        assert verify_signature(b"payload", None, SECRET) is False
        assert verify_signature(b"payload", "", SECRET) is False

    def test_non_hex_garbage(self):
        assert verify_signature(b"payload", "deadbeef", SECRET) is False
        assert verify_signature(b"payload", "ü" * 64, SECRET) is False

    @hyp_settings(max_examples=50)
    @given(body=st.binary(max_size=512), secret=st.text(min_size=1, max_size=64))
    def test_roundtrip_property(self, body, secret):
        assert verify_signature(body, compute_signature(secret, body), secret) is True

    @hyp_settings(max_examples=50)
    @given(body=st.binary(min_size=1, max_size=256), flip=st.integers(min_value=0, max_value=63))
    def test_any_altered_digit_rejected(self, body, flip):
        sig = compute_signature(SECRET, body)
        replacement = "0" if sig[flip] != "0" else "1"
        altered = sig[:flip] + replacement + sig[flip + 1 :]
        assert verify_signature(body, altered, SECRET) is False


class TestTenantVerification:
    def test_no_secret_accepts_unsigned(self):
        tenant = TenantWebhookConfig(tenant_id="t1")
        assert signature_required(tenant) is False
        assert verify_tenant_webhook(tenant, b"{}", {}) is True

    def test_secret_requires_signature(self):
        tenant = TenantWebhookConfig(tenant_id="t1", webhook_secret=SECRET)
        assert signature_required(tenant) is True
        assert verify_tenant_webhook(tenant, b"{}", {}) is False

    def test_secret_with_valid_signature(self):
        tenant = TenantWebhookConfig(tenant_id="t1", webhook_secret=SECRET)
        body = b'{"tenantId": "t1"}'
        headers = {"x-webhook-signature": compute_signature(SECRET, body)}
        assert verify_tenant_webhook(tenant, body, headers) is True


class TestSecrets:
    def test_generated_secret_is_32_bytes_hex(self):
        secret = generate_webhook_secret()
        assert len(secret) == 64
        int(secret, 16)

    def test_generated_secrets_differ(self):
        assert generate_webhook_secret() != generate_webhook_secret()

    def test_preview_masks_middle(self):
        secret = "0123456789abcdef" * 4
        assert secret_preview(secret) == "01234567...cdef"

    def test_preview_of_missing_secret(self):
        assert secret_preview(None) is None
        assert secret_preview("") is None
