"""Verify and parse webhook deliveries from GoCardless."""

import hashlib
import hmac
import logging
from typing import List, Union

from pydantic import BaseModel, Field, ValidationError

from .errors import InvalidSignatureError, ProtocolError
from .models import Event

logger = logging.getLogger(__name__)

__all__ = ["compute_signature", "verify_signature", "parse"]

SIGNATURE_HEADER = "Webhook-Signature"


class _WebhookBody(BaseModel):
    events: List[Event] = Field(default_factory=list)


def _to_bytes(value: Union[str, bytes]) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def compute_signature(body: Union[str, bytes], secret: str) -> str:
    """Return the hex HMAC-SHA256 of ``body`` keyed with ``secret``."""
    return hmac.new(_to_bytes(secret), _to_bytes(body), hashlib.sha256).hexdigest()


def verify_signature(body: Union[str, bytes], secret: str, signature: str) -> None:
    """Raise :class:`InvalidSignatureError` unless ``signature`` matches ``body``."""
    expected = compute_signature(body, secret)
    if not hmac.compare_digest(expected, (signature or "").strip().lower()):
        raise InvalidSignatureError("Webhook signature does not match the body")


def parse(body: Union[str, bytes], secret: str, signature: str) -> List[Event]:
    """Verify a webhook body against its ``Webhook-Signature`` header and
    return the events it carries.

    Args:
        body: The raw request body, exactly as received.
        secret: The endpoint's webhook secret.
        signature: Value of the ``Webhook-Signature`` header.
    """
    verify_signature(body, secret, signature)
    try:
        events = _WebhookBody.model_validate_json(_to_bytes(body)).events
    except ValidationError as e:
        raise ProtocolError(f"Webhook body is not a valid events envelope: {e}") from e
    logger.debug("Parsed webhook with %d events", len(events))
    return events
