"""
Tests for gateway signature verification.

Verifies:
- Webhook HMAC is checked over the exact raw bytes
- Missing secret or header is never valid
- Checkout signatures cover 'order_id|payment_id'
"""

import json

from payments.signatures import compute_signature, verify_checkout_signature, verify_webhook_signature

SECRET = 'whsec_unit'
BODY = b'{"event":"payment.captured","payload":{"payment":{"entity":{"id":"pay_xyz"}}}}'


class TestWebhookSignature:
    """Tests for verify_webhook_signature."""

    def test_valid_signature_accepted(self):
        """Signature computed over the raw body verifies."""
        signature = compute_signature(SECRET, BODY)
        assert verify_webhook_signature(BODY, signature, SECRET)

    def test_single_altered_byte_rejected(self):
        """Changing one byte of the body invalidates the signature."""
        signature = compute_signature(SECRET, BODY)
        tampered = BODY.replace(b'pay_xyz', b'pay_xyy')
        assert not verify_webhook_signature(tampered, signature, SECRET)

    def test_reserialized_body_rejected(self):
        """Semantically equal JSON with different whitespace does not verify."""
        signature = compute_signature(SECRET, BODY)
        reserialized = json.dumps(json.loads(BODY)).encode('utf-8')
        assert reserialized != BODY
        assert not verify_webhook_signature(reserialized, signature, SECRET)

    def test_missing_header_rejected(self):
        """No signature header means invalid."""
        assert not verify_webhook_signature(BODY, None, SECRET)
        assert not verify_webhook_signature(BODY, '', SECRET)

    def test_missing_secret_rejected(self):
        """No configured secret means invalid, even for a matching empty-key HMAC."""
        signature = compute_signature('', BODY)
        assert not verify_webhook_signature(BODY, signature, '')
        assert not verify_webhook_signature(BODY, signature, None)

    def test_wrong_secret_rejected(self):
        """Signature made with another secret does not verify."""
        signature = compute_signature('another_secret', BODY)
        assert not verify_webhook_signature(BODY, signature, SECRET)


class TestCheckoutSignature:
    """Tests for verify_checkout_signature."""

    def test_valid_checkout_signature(self):
        """HMAC of 'order|payment' with the key secret verifies."""
        signature = compute_signature('key_secret', b'order_abc|pay_xyz')
        assert verify_checkout_signature('order_abc', 'pay_xyz', signature, 'key_secret')

    def test_swapped_ids_rejected(self):
        """The signature binds the order id to the payment id."""
        signature = compute_signature('key_secret', b'order_abc|pay_xyz')
        assert not verify_checkout_signature('order_abc', 'pay_other', signature, 'key_secret')

    def test_unconfigured_key_secret_rejected(self):
        """Without a key secret nothing verifies."""
        signature = compute_signature('', b'order_abc|pay_xyz')
        assert not verify_checkout_signature('order_abc', 'pay_xyz', signature, '')
