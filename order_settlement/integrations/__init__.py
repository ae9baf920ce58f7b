"""External integrations for payment processing."""
from .comgate_client import ComgateClient, PayerContact, PaymentCreated, PaymentSnapshot
from .webhook_handler import WebhookNotification, compute_signature, verify_signature

__all__ = [
    "ComgateClient",
    "PayerContact",
    "PaymentCreated",
    "PaymentSnapshot",
    "WebhookNotification",
    "compute_signature",
    "verify_signature",
]
