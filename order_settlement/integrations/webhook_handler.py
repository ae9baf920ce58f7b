"""
Comgate webhook parsing and signature verification.

Implements:
- Notification parsing from form or JSON fields
- HMAC-SHA256 signature over the pipe-joined notification fields
- Constant-time signature comparison
"""
import hashlib
import hmac
from typing import Any, List, Mapping, Optional

import structlog
from pydantic import BaseModel

from order_settlement.domain.exceptions import MalformedWebhook

logger = structlog.get_logger(__name__)

REQUIRED_FIELDS = ("transId", "refId", "status")

SIGNATURE_FIELDS = (
    "transId",
    "refId",
    "status",
    "price",
    "curr",
    "label",
    "method",
    "email",
    "test",
)


class WebhookNotification(BaseModel):
    """Payment status notification pushed by Comgate."""

    trans_id: str
    ref_id: str
    status: str
    price: Optional[str] = None
    curr: Optional[str] = None
    label: Optional[str] = None
    method: Optional[str] = None
    email: Optional[str] = None
    test: Optional[str] = None

    model_config = {"frozen": True}

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "WebhookNotification":
        """
        Build a notification from raw webhook fields.

        Raises:
            MalformedWebhook: If transId, refId or status is missing or blank
        """
        missing = [name for name in REQUIRED_FIELDS if _is_blank(_field(payload, name))]
        if missing:
            raise MalformedWebhook(missing)

        return cls(
            trans_id=_field(payload, "transId"),
            ref_id=_field(payload, "refId"),
            status=_field(payload, "status"),
            price=_field(payload, "price"),
            curr=_field(payload, "curr"),
            label=_field(payload, "label"),
            method=_field(payload, "method"),
            email=_field(payload, "email"),
            test=_field(payload, "test"),
        )

    def signature_values(self) -> List[str]:
        return [
            self.trans_id,
            self.ref_id,
            self.status,
            self.price or "",
            self.curr or "",
            self.label or "",
            self.method or "",
            self.email or "",
            self.test or "",
        ]


def _field(payload: Mapping[str, Any], name: str) -> Optional[str]:
    """Raw field text; the signature covers values exactly as sent."""
    value = payload.get(name)
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def compute_signature(notification: WebhookNotification, secret: str) -> str:
    """
    Compute the expected signature of a notification.

    Args:
        notification: Parsed notification
        secret: Shared Comgate secret

    Returns:
        str: Lowercase hex HMAC-SHA256 digest
    """
    message = "|".join(notification.signature_values())
    return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_signature(
    notification: WebhookNotification, signature: Optional[str], secret: Optional[str]
) -> bool:
    """
    Check a received signature in constant time.

    Returns False when either the signature or the secret is missing.
    """
    if not signature or not secret:
        logger.warning(
            "webhook_signature_missing",
            trans_id=notification.trans_id,
            has_signature=bool(signature),
            has_secret=bool(secret),
        )
        return False

    expected = compute_signature(notification, secret)
    # compare_digest rejects non-ASCII str operands; compare bytes
    received = signature.strip().lower().encode("utf-8")
    valid = hmac.compare_digest(expected.encode("ascii"), received)
    if not valid:
        logger.warning("webhook_signature_invalid", trans_id=notification.trans_id)
    return valid
