"""HTTP message signatures for outgoing API requests.

When request signing is configured, every request carries ``Gc-Signature``
and ``Gc-Signature-Input`` headers, plus ``Content-Digest`` when it has a
body. The signature is ECDSA with SHA-512 over a signature base built from
the method, host, path and (for bodies) digest, type and length.
"""

import base64
import hashlib
import logging
import time
import uuid
from typing import Optional, Union
from urllib.parse import urlsplit

import requests
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec

from .config import RequestSigningSettings
from .errors import InvalidArgument, InvalidSignatureError

logger = logging.getLogger(__name__)

__all__ = [
    "content_digest",
    "signature_params",
    "signature_base",
    "sign_message",
    "verify_message",
    "sign_request",
]

SIGNATURE_LABEL = "sig-1"
DEFAULT_CONTENT_TYPE = "application/json; charset=utf-8"


def _to_bytes(value: Union[str, bytes]) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def content_digest(body: Union[str, bytes]) -> str:
    """Base64 SHA-256 digest of a request body."""
    return base64.b64encode(hashlib.sha256(_to_bytes(body)).digest()).decode("ascii")


def signature_params(
    key_id: str, created: str, nonce: str, include_content: bool = False
) -> str:
    components = '"@method" "@authority" "@request-target"'
    if include_content:
        components += ' "content-digest" "content-type" "content-length"'
    return f'({components});keyid="{key_id}";created={created};nonce="{nonce}"'


def signature_base(
    method: str,
    authority: str,
    target: str,
    key_id: str,
    created: str,
    nonce: str,
    digest: Optional[str] = None,
    content_type: Optional[str] = None,
    content_length: Optional[int] = None,
) -> str:
    """The exact text that gets signed."""
    lines = [
        f'"@method": {method}',
        f'"@authority": {authority}',
        f'"@request-target": {target}',
    ]
    if digest:
        lines += [
            f'"content-digest": sha256=:{digest}:',
            f'"content-type": {content_type}',
            f'"content-length": {content_length}',
        ]
    params = signature_params(key_id, created, nonce, include_content=bool(digest))
    lines.append(f'"@signature-params": {params}')
    return "\n".join(lines)


def _load_private_key(private_key_pem: str) -> ec.EllipticCurvePrivateKey:
    try:
        key = serialization.load_pem_private_key(_to_bytes(private_key_pem), password=None)
    except (ValueError, TypeError) as e:
        raise InvalidArgument(f"Could not load request signing key: {e}") from e
    if not isinstance(key, ec.EllipticCurvePrivateKey):
        raise InvalidArgument("Request signing key must be an EC private key")
    return key


def sign_message(private_key_pem: str, message: str) -> str:
    """Return the base64 DER-encoded ECDSA/SHA-512 signature of ``message``."""
    key = _load_private_key(private_key_pem)
    signature = key.sign(_to_bytes(message), ec.ECDSA(hashes.SHA512()))
    return base64.b64encode(signature).decode("ascii")


def verify_message(public_key_pem: str, signature: str, message: str) -> None:
    """Raise :class:`InvalidSignatureError` unless ``signature`` signs ``message``."""
    public_key = serialization.load_pem_public_key(_to_bytes(public_key_pem))
    try:
        public_key.verify(
            base64.b64decode(signature), _to_bytes(message), ec.ECDSA(hashes.SHA512())
        )
    except InvalidSignature as e:
        raise InvalidSignatureError("Request signature verification failed") from e


def sign_request(
    prepared: requests.PreparedRequest,
    signing: RequestSigningSettings,
    created: Optional[str] = None,
    nonce: Optional[str] = None,
) -> None:
    """Add signature headers to a prepared request, in place.

    ``created`` (seconds since the epoch) and ``nonce`` are generated when
    not given.
    """
    created = created or str(int(time.time()))
    nonce = nonce or str(uuid.uuid4())
    url = urlsplit(prepared.url)
    target = url.path + (f"?{url.query}" if url.query else "")

    digest = None
    content_type = None
    content_length = None
    if prepared.body is not None:
        body = _to_bytes(prepared.body)
        digest = content_digest(body)
        content_type = prepared.headers.get("Content-Type") or DEFAULT_CONTENT_TYPE
        content_length = len(body)

    base = signature_base(
        prepared.method,
        url.hostname or "",
        target,
        signing.public_key_id,
        created,
        nonce,
        digest=digest,
        content_type=content_type,
        content_length=content_length,
    )
    signature = sign_message(signing.private_key_pem, base)

    prepared.headers["Gc-Signature"] = f"{SIGNATURE_LABEL}=:{signature}:"
    prepared.headers["Gc-Signature-Input"] = (
        f"{SIGNATURE_LABEL}="
        f"{signature_params(signing.public_key_id, created, nonce, digest is not None)}"
    )
    if digest is not None:
        prepared.headers["Content-Digest"] = f"sha256=:{digest}:"
    logger.debug("Signed %s %s with key %s", prepared.method, target, signing.public_key_id)
