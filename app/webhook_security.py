"""
Webhook Security Module

Signature verification for inbound QuickBooks (Intuit) change notifications.
- Constant-time signature comparison
- Request body read once, before any parsing
"""

import base64
import hashlib
import hmac
import logging

from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)

INTUIT_SIGNATURE_HEADER = "intuit-signature"


def constant_time_compare(a: str, b: str) -> bool:
    """
    Compare two strings in constant time to prevent timing attacks.
    Uses hmac.compare_digest which is designed for this purpose.
    """
    if not a or not b:
        return False
    return hmac.compare_digest(a, b)


def compute_hmac_sha256_base64(secret: str, payload: bytes) -> str:
    """Compute HMAC-SHA256 signature of payload and return base64 encoded"""
    signature = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).digest()
    return base64.b64encode(signature).decode("utf-8")


def is_valid_intuit_signature(payload: bytes, signature: str | None, verifier_token: str | None) -> bool:
    """
    Intuit signs the raw body with HMAC-SHA256 keyed by the webhook verifier token
    and sends the base64 digest in the 'intuit-signature' header.
    """
    if not verifier_token:
        logger.error("❌ QUICKBOOKS_WEBHOOK_VERIFIER_TOKEN not configured, rejecting webhook")
        return False
    if not signature:
        return False

    expected_signature = compute_hmac_sha256_base64(verifier_token, payload)
    return constant_time_compare(expected_signature, signature.strip())


async def verify_intuit_webhook(request: Request, verifier_token: str | None) -> bytes:
    """
    Verify a QuickBooks webhook request and return its raw body.

    Args:
        request: FastAPI request object
        verifier_token: Verifier token from the Intuit developer dashboard

    Raises:
        HTTPException(401) when the signature header is missing or wrong
    """
    # Get raw body BEFORE any parsing - the signature covers the exact bytes
    raw_body = await request.body()
    signature = request.headers.get(INTUIT_SIGNATURE_HEADER)

    logger.info(f"📥 QuickBooks webhook received, signature present: {bool(signature)}")

    if not signature:
        logger.warning("🚫 QuickBooks webhook missing signature header")
        raise HTTPException(status_code=401, detail="Missing webhook signature")

    if not is_valid_intuit_signature(raw_body, signature, verifier_token):
        logger.warning("🚫 QuickBooks webhook signature mismatch")
        raise HTTPException(status_code=401, detail="Invalid signature")

    logger.debug("✅ QuickBooks webhook signature verified")
    return raw_body


def create_webhook_signature(secret: str, payload: bytes) -> str:
    """Create an Intuit-style signature for testing or replaying notifications"""
    return compute_hmac_sha256_base64(secret, payload)
