"""Client configuration and per-call request settings."""

import logging
import os
import threading
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Optional, Tuple

import requests
import yaml
from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

__all__ = [
    "Environment",
    "ClientConfig",
    "RequestSettings",
    "RequestSigningSettings",
    "load_dotenv",
]

DEFAULT_TIMEOUT = 30.0
DEFAULT_NETWORK_RETRIES = 2
DEFAULT_RETRY_WAIT = 0.5  # seconds
DEFAULT_RATE_LIMIT_RETRIES = 3
API_VERSION = "2015-07-06"


def _dotenv_candidates(dotenv_path: Optional[str]) -> Iterator[Path]:
    if dotenv_path:
        yield Path(dotenv_path)
        return
    cwd = Path.cwd().resolve()
    for directory in (cwd, *cwd.parents):
        yield directory / ".env"


def _parse_dotenv_line(line: str) -> Optional[Tuple[str, str]]:
    line = line.strip()
    if not line or line.startswith("#") or "=" not in line:
        return None
    key, value = line.split("=", 1)
    key = key.strip()
    if key.startswith("export "):
        key = key[len("export ") :].strip()
    if not key:
        return None
    return key, value.strip().strip("'\"")


def load_dotenv(dotenv_path: Optional[str] = None) -> Optional[Path]:
    """Load ``KEY=VALUE`` lines from a ``.env`` file into ``os.environ``.

    Without an explicit path, the nearest ``.env`` in the current directory
    or one of its parents is used. Variables that are already set win over
    the file.

    Returns:
        The file that was loaded, or ``None`` if none was found.
    """
    for path in _dotenv_candidates(dotenv_path):
        if not path.is_file():
            continue
        try:
            lines = path.read_text().splitlines()
        except OSError as e:
            logger.debug("Could not read %s: %s", path, e)
            continue
        for parsed in filter(None, map(_parse_dotenv_line, lines)):
            os.environ.setdefault(*parsed)
        logger.debug("Loaded environment from %s", path)
        return path
    return None


class RequestSigningSettings(BaseModel):
    """Key material for signing requests.

    Args:
        public_key_id: ID of the public key registered with GoCardless.
        private_key_pem: PEM-encoded EC (P-256) private key.
    """

    model_config = ConfigDict(frozen=True)

    public_key_id: str
    private_key_pem: str = Field(repr=False)


class Environment(str, Enum):
    LIVE = "live"
    SANDBOX = "sandbox"

    @property
    def base_url(self) -> str:
        if self is Environment.SANDBOX:
            return "https://api-sandbox.gocardless.com"
        return "https://api.gocardless.com"


class ClientConfig(BaseModel):
    """Immutable configuration shared by every call made through a client.

    Args:
        access_token: GoCardless API access token.
        environment: ``live`` or ``sandbox``; ignored when ``base_url`` is set.
        base_url: Custom API base URL.
        timeout: Default per-request timeout in seconds.
        max_network_retries: Retries after a connection failure or timeout,
            for retry-safe requests only.
        retry_wait: Base delay in seconds, doubled on each retry.
        max_rate_limit_retries: Retries after an HTTP 429 response.
        error_on_idempotency_conflict: Raise instead of fetching the existing
            resource when a create request hits an idempotency conflict.
        request_signing: Sign every request with this key.
        cache_options: Keyword arguments for ``requests_cache.CachedSession``.
            ``None`` disables response caching.
    """

    model_config = ConfigDict(frozen=True)

    access_token: str = Field(repr=False)
    environment: Environment = Environment.LIVE
    base_url: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT
    max_network_retries: int = Field(default=DEFAULT_NETWORK_RETRIES, ge=0)
    retry_wait: float = Field(default=DEFAULT_RETRY_WAIT, ge=0)
    max_rate_limit_retries: int = Field(default=DEFAULT_RATE_LIMIT_RETRIES, ge=0)
    error_on_idempotency_conflict: bool = False
    api_version: str = API_VERSION
    request_signing: Optional[RequestSigningSettings] = None
    cache_options: Optional[Dict[str, Any]] = None

    @property
    def resolved_base_url(self) -> str:
        return (self.base_url or self.environment.base_url).rstrip("/")

    @classmethod
    def from_env(cls, env_file: Optional[str] = None, **overrides: Any) -> "ClientConfig":
        """Build a config from ``GOCARDLESS_*`` environment variables.

        A ``.env`` file is loaded first (without overriding variables that
        are already set). Keyword arguments take precedence over the
        environment.
        """
        load_dotenv(env_file)
        values: Dict[str, Any] = {}
        env_map = {
            "access_token": "GOCARDLESS_ACCESS_TOKEN",
            "environment": "GOCARDLESS_ENVIRONMENT",
            "base_url": "GOCARDLESS_BASE_URL",
            "timeout": "GOCARDLESS_TIMEOUT",
        }
        for field_name, var in env_map.items():
            value = os.getenv(var)
            if value:
                values[field_name] = value.lower() if field_name == "environment" else value
        values.update({k: v for k, v in overrides.items() if v is not None})
        logger.debug("Config loaded from environment: %s", sorted(values))
        return cls(**values)

    @classmethod
    def from_yaml(cls, filepath: str) -> "ClientConfig":
        """Load a config from a YAML file, expanding ``$VAR`` references."""
        logger.debug("Loading config from %s", filepath)
        with open(filepath, "r") as f:
            raw_config = os.path.expandvars(f.read())
        return cls(**(yaml.safe_load(raw_config) or {}))


class RequestSettings(BaseModel):
    """Per-call overrides for a single API request.

    Attributes:
        headers: Extra headers; these replace the client's defaults.
        timeout: Request timeout in seconds.
        max_network_retries: Overrides :attr:`ClientConfig.max_network_retries`.
        retry_wait: Overrides :attr:`ClientConfig.retry_wait`.
        cancel_event: Setting this event aborts the call with ``Cancelled``.
        request_signing: Overrides :attr:`ClientConfig.request_signing`.
        customise_request: Called with the prepared request just before it is
            sent, on every attempt.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    headers: Dict[str, str] = Field(default_factory=dict)
    timeout: Optional[float] = None
    max_network_retries: Optional[int] = Field(default=None, ge=0)
    retry_wait: Optional[float] = Field(default=None, ge=0)
    cancel_event: Optional[threading.Event] = None
    request_signing: Optional[RequestSigningSettings] = None
    customise_request: Optional[Callable[[requests.PreparedRequest], None]] = None

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()
