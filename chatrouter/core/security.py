import hashlib
import hmac
import logging
from typing import Optional

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="


def verify_signature(body: bytes, signature: Optional[str], secret: str) -> bool:
    """Check an ``X-Hub-Signature-256`` header against the HMAC of the raw body."""
    if not signature:
        logger.warning("webhook signature missing")
        return False
    if not signature.startswith(SIGNATURE_PREFIX):
        logger.warning("webhook signature has unexpected format")
        return False

    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    received = signature[len(SIGNATURE_PREFIX):].strip().lower()
    if not hmac.compare_digest(expected, received):
        logger.warning(
            "webhook signature mismatch",
            extra={"signature_prefix": received[:10]},
        )
        return False
    return True


def verify_subscription(
    mode: Optional[str],
    token: Optional[str],
    challenge: Optional[str],
    expected_token: Optional[str],
) -> Optional[str]:
    """Return the challenge to echo back when a subscription request is genuine."""
    if mode != "subscribe" or not expected_token or not token:
        return None
    if not hmac.compare_digest(token, expected_token):
        return None
    return challenge
