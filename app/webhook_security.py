"""
Webhook Security Module

Signature verification for Stripe webhook deliveries:
- HMAC-SHA256 over the raw request bytes, never a re-serialized body
- Constant-time signature comparison
- Timestamp tolerance check against replayed deliveries
"""

import hashlib
import hmac
import logging
import time
from typing import Optional

from .config import STRIPE_WEBHOOK_TOLERANCE_SECONDS
from .shared.errors import InvalidSignatureError

logger = logging.getLogger(__name__)


def constant_time_compare(a: str, b: str) -> bool:
    """
    Compare two strings in constant time to prevent timing attacks.
    Uses hmac.compare_digest which is designed for this purpose.
    """
    if not a or not b:
        return False
    return hmac.compare_digest(a, b)


def compute_hmac_sha256(secret: str, payload: bytes) -> str:
    """Compute HMAC-SHA256 signature of payload"""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_timestamp(timestamp: Optional[str], max_age: int = STRIPE_WEBHOOK_TOLERANCE_SECONDS) -> bool:
    """
    Verify webhook timestamp is within acceptable range.

    Args:
        timestamp: Unix timestamp as string
        max_age: Maximum age in seconds

    Returns:
        True if timestamp is valid, False otherwise
    """
    try:
        webhook_time = int(timestamp)
    except (ValueError, TypeError):
        logger.warning(f"🚫 Invalid webhook timestamp format: {timestamp}")
        return False

    age = abs(int(time.time()) - webhook_time)
    if age > max_age:
        logger.warning(f"🚫 Webhook timestamp too old: {age}s (max: {max_age}s)")
        return False
    return True


def parse_stripe_signature_header(signature_header: str) -> tuple[Optional[str], list[str]]:
    """
    Split a Stripe-Signature header into its timestamp and v1 signatures.

    Format: "t=<timestamp>,v1=<signature>[,v1=<signature>...][,v0=...]"
    Several v1 entries are present while the endpoint secret is being rolled.
    """
    timestamp = None
    signatures = []
    for item in signature_header.split(","):
        key, sep, value = item.strip().partition("=")
        if not sep:
            continue
        if key == "t":
            timestamp = value
        elif key == "v1":
            signatures.append(value)
    return timestamp, signatures


def verify_stripe_signature(
    raw_body: bytes,
    signature_header: str,
    secret: str,
    tolerance: int = STRIPE_WEBHOOK_TOLERANCE_SECONDS,
) -> None:
    """
    Verify a Stripe webhook signature against the raw payload bytes.

    Raises:
        InvalidSignatureError: header malformed, timestamp outside tolerance,
            or no v1 signature matches
    """
    if not secret:
        logger.error("❌ STRIPE_WEBHOOK_SECRET not configured - rejecting webhook")
        raise InvalidSignatureError("Webhook signing secret not configured")

    timestamp, signatures = parse_stripe_signature_header(signature_header)
    if not timestamp or not signatures:
        logger.warning("🚫 Stripe webhook invalid signature format")
        raise InvalidSignatureError("Invalid signature format")

    if not verify_timestamp(timestamp, tolerance):
        raise InvalidSignatureError("Webhook timestamp outside tolerance")

    # Stripe signs "<timestamp>.<raw payload>"
    signed_payload = timestamp.encode("utf-8") + b"." + raw_body
    expected_signature = compute_hmac_sha256(secret, signed_payload)

    if not any(constant_time_compare(expected_signature, sig) for sig in signatures):
        logger.warning(f"🚫 Stripe webhook signature mismatch (body length {len(raw_body)} bytes)")
        raise InvalidSignatureError()

    logger.debug("✅ Stripe webhook signature verified")


def create_webhook_signature(secret: str, payload: bytes, timestamp: Optional[int] = None) -> str:
    """
    Create a Stripe-Signature header value for a payload.

    Used for replaying captured events against a local endpoint and in tests.
    """
    timestamp = timestamp if timestamp is not None else int(time.time())
    signed_payload = str(timestamp).encode("utf-8") + b"." + payload
    sig = compute_hmac_sha256(secret, signed_payload)
    return f"t={timestamp},v1={sig}"
