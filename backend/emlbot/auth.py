"""
Slack request signature verification.

Slack signs every request with HMAC-SHA256 over "v0:{timestamp}:{body}"
using the app's signing secret and sends the result as
``X-Slack-Signature: v0=<hex>`` alongside ``X-Slack-Request-Timestamp``.

verify_slack_signature is a pure predicate; verify_request_or_401 wraps it
for route handlers.
"""

import hashlib
import hmac
import logging
import time
from typing import Optional

from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)

# Requests older (or newer) than this are treated as replays.
MAX_CLOCK_SKEW_SECONDS = 300

TIMESTAMP_HEADER = "X-Slack-Request-Timestamp"
SIGNATURE_HEADER = "X-Slack-Signature"


def compute_signature(secret: str, timestamp: str, body: bytes) -> str:
    """Return the ``v0=<hex>`` signature Slack would send for this body."""
    basestring = b"v0:" + timestamp.encode("utf-8") + b":" + body
    digest = hmac.new(secret.encode("utf-8"), basestring, hashlib.sha256).hexdigest()
    return f"v0={digest}"


def verify_slack_signature(
    secret: Optional[str],
    timestamp: Optional[str],
    body: bytes,
    signature: Optional[str],
    now: Optional[float] = None,
) -> bool:
    """
    Check that a request was signed by Slack and is fresh.

    Args:
        secret: Configured signing secret.
        timestamp: Value of X-Slack-Request-Timestamp (unix seconds).
        body: Raw request body, exactly as received.
        signature: Value of X-Slack-Signature.
        now: Current unix time; defaults to time.time().

    Returns:
        True only when every input is present, the timestamp is within
        MAX_CLOCK_SKEW_SECONDS of now, and the signature matches.
    """
    if not secret or not timestamp or not signature:
        return False

    # Slack sends an ASCII digit timestamp and an ASCII hex signature.
    if not timestamp.isascii() or not timestamp.isdigit() or not signature.isascii():
        return False

    current = time.time() if now is None else now
    try:
        if abs(current - int(timestamp)) > MAX_CLOCK_SKEW_SECONDS:
            return False
    except (ValueError, OverflowError):
        return False

    expected = compute_signature(secret, timestamp, body)
    return hmac.compare_digest(expected.encode("ascii"), signature.encode("ascii"))


def verify_request_or_401(request: Request, body: bytes, secret: str) -> None:
    """
    Verify the signature headers of an inbound request.

    Raises:
        HTTPException: 401 if the signature is missing, stale, or wrong.
    """
    timestamp = request.headers.get(TIMESTAMP_HEADER)
    signature = request.headers.get(SIGNATURE_HEADER)

    if not secret:
        logger.warning("SLACK_SIGNING_SECRET is not configured; rejecting request")

    if not verify_slack_signature(secret, timestamp, body, signature):
        raise HTTPException(status_code=401, detail="Invalid Slack signature")
