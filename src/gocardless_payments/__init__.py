"""
GoCardless payments API client.
Typed resource services over a retrying, idempotent request executor.
"""

from .client import CLIENT_VERSION, GoCardlessClient
from .config import ClientConfig, Environment, RequestSettings, RequestSigningSettings
from .errors import *
from .models import *
from .pagination import Paginator
from . import signing, webhooks

__version__ = CLIENT_VERSION

__all__ = [
    "GoCardlessClient",
    "ClientConfig",
    "Environment",
    "RequestSettings",
    "RequestSigningSettings",
    "Paginator",
    "signing",
    "webhooks",
    "__version__",
]
