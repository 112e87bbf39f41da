"""
Unit tests for Stripe signature verification
"""

import time
import unittest

from app.shared.errors import InvalidSignatureError
from app.webhook_security import (
    compute_hmac_sha256,
    create_webhook_signature,
    parse_stripe_signature_header,
    verify_stripe_signature,
)

SECRET = "whsec_unit"
PAYLOAD = b'{"id": "evt_1", "type": "invoice.payment_succeeded"}'


class TestStripeSignature(unittest.TestCase):
    def test_valid_signature(self):
        header = create_webhook_signature(SECRET, PAYLOAD)
        verify_stripe_signature(PAYLOAD, header, SECRET)

    def test_parse_header_with_rolled_secrets(self):
        timestamp, signatures = parse_stripe_signature_header("t=123,v1=aaa,v1=bbb,v0=ccc")
        self.assertEqual(timestamp, "123")
        self.assertEqual(signatures, ["aaa", "bbb"])

    def test_any_v1_signature_may_match(self):
        timestamp = int(time.time())
        good = compute_hmac_sha256(SECRET, f"{timestamp}.".encode("utf-8") + PAYLOAD)
        verify_stripe_signature(PAYLOAD, f"t={timestamp},v1=stale,v1={good}", SECRET)

    def test_wrong_secret(self):
        header = create_webhook_signature("whsec_other", PAYLOAD)
        with self.assertRaises(InvalidSignatureError):
            verify_stripe_signature(PAYLOAD, header, SECRET)

    def test_tampered_payload(self):
        header = create_webhook_signature(SECRET, PAYLOAD)
        with self.assertRaises(InvalidSignatureError):
            verify_stripe_signature(PAYLOAD + b" ", header, SECRET)

    def test_malformed_header(self):
        for header in ("garbage", "t=123", "v1=abc"):
            with self.assertRaises(InvalidSignatureError):
                verify_stripe_signature(PAYLOAD, header, SECRET)

    def test_timestamp_outside_tolerance(self):
        header = create_webhook_signature(SECRET, PAYLOAD, timestamp=int(time.time()) - 600)
        with self.assertRaises(InvalidSignatureError):
            verify_stripe_signature(PAYLOAD, header, SECRET, tolerance=300)

    def test_missing_secret(self):
        header = create_webhook_signature(SECRET, PAYLOAD)
        with self.assertRaises(InvalidSignatureError) as ctx:
            verify_stripe_signature(PAYLOAD, header, "")
        self.assertEqual(ctx.exception.status_code, 400)
