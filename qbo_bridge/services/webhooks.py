"""
QuickBooks webhook verification

Intuit signs every webhook delivery with HMAC-SHA256 over the raw request
body, keyed by the app's verifier token, and sends the base64 digest in the
intuit-signature header.
"""

import base64
import hashlib
import hmac
import json
import logging
from typing import Any, Awaitable, Callable

from pydantic import SecretStr

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "intuit-signature"

WebhookCallback = Callable[[dict[str, Any]], Awaitable[None]]


class WebhookVerificationError(Exception):
    """Raised when a webhook delivery fails signature verification."""
    pass


class WebhookPayloadError(Exception):
    """Raised when a verified webhook body is not a JSON object."""
    pass


def compute_signature(raw_body: bytes, verifier_token: SecretStr) -> str:
    digest = hmac.new(
        verifier_token.get_secret_value().encode(),
        raw_body,
        hashlib.sha256,
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_signature(raw_body: bytes, signature: str | None, verifier_token: SecretStr) -> bool:
    """Constant-time check of the intuit-signature header."""
    if not signature:
        return False
    expected = compute_signature(raw_body, verifier_token)
    return hmac.compare_digest(expected, signature.strip())


def verify_and_parse_webhook(
    raw_body: bytes,
    signature: str | None,
    verifier_token: SecretStr,
) -> dict[str, Any]:
    """
    Verify a webhook delivery and parse its JSON payload.

    Raises:
        WebhookVerificationError: Missing or wrong signature
        WebhookPayloadError: Body is not a JSON object
    """
    if not verify_signature(raw_body, signature, verifier_token):
        raise WebhookVerificationError("Invalid webhook signature")

    try:
        payload = json.loads(raw_body)
    except ValueError as e:
        raise WebhookPayloadError("Webhook body is not valid JSON") from e

    if not isinstance(payload, dict):
        raise WebhookPayloadError("Webhook body is not a JSON object")
    return payload


async def log_webhook_payload(payload: dict[str, Any]) -> None:
    """Default application callback: log which realms and entities changed."""
    notifications = payload.get("eventNotifications") or []
    if not notifications:
        logger.info("QBO webhook received with no event notifications")
        return

    for notification in notifications:
        realm_id = notification.get("realmId")
        entities = (notification.get("dataChangeEvent") or {}).get("entities") or []
        changes = ", ".join(
            f"{entity.get('name')}:{entity.get('id')}:{entity.get('operation')}"
            for entity in entities
        )
        logger.info(f"QBO webhook realm_id={realm_id} changes=[{changes}]")
