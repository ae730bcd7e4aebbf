"""GoCardless payments API client.

Wraps the GoCardless REST API with typed return values (Pydantic models),
automatic idempotency keys, bounded retries and optional GET-response caching
(via requests-cache).
"""

import logging
import platform
import threading
import time
import uuid
from concurrent.futures import Future
from concurrent.futures import wait as wait_for
from typing import Any, Dict, Mapping, Optional, TypedDict, Union

import requests
import requests_cache
from pydantic import BaseModel, ValidationError

from .config import ClientConfig, Environment, RequestSettings
from .endpoints import RESOURCES, SAFE_METHODS, Endpoint, ResourceDefinition
from .errors import (
    Cancelled,
    InvalidArgument,
    InvalidStateError,
    NetworkError,
    ProtocolError,
    error_from_response,
)
from .models import ApiModel, IdempotentRequest, Meta, Page
from .services import ResourceService
from .signing import sign_request
from .utils import expand_path, flatten_params, to_payload

logger = logging.getLogger(__name__)

CLIENT_VERSION = "1.0.0"
CLIENT_LIBRARY = "gocardless-payments"

#: Transport failures worth another attempt on a retry-safe request.
RETRYABLE_ERRORS = (
    requests.ConnectionError,
    requests.Timeout,
    requests.exceptions.ChunkedEncodingError,
    requests.exceptions.ContentDecodingError,
)
#: Malformed request URLs, reported as caller errors.
INVALID_URL_ERRORS = (
    requests.exceptions.MissingSchema,
    requests.exceptions.InvalidSchema,
    requests.exceptions.InvalidURL,
)
#: How often a cancellable in-flight request checks its cancel event.
CANCEL_POLL_INTERVAL = 0.05  # seconds

__all__ = [
    "GoCardlessClient",
    "CacheOptions",
    "CLIENT_VERSION",
]


class CacheOptions(TypedDict, total=False):
    cache_name: str
    backend: str
    expire_after: int
    allowable_methods: tuple
    old_data_on_error: bool


def _close_abandoned(future: "Future[requests.Response]") -> None:
    if future.exception() is None:
        future.result().close()


def _user_agent() -> str:
    return (
        f"{CLIENT_LIBRARY}/{CLIENT_VERSION} "
        f"python/{platform.python_version()} "
        f"requests/{requests.__version__} "
        f"{platform.system()}"
    )


class GoCardlessClient:
    """GoCardless payments API client.

    Resource services are exposed as attributes named after the API resource,
    e.g. ``client.payments.create(...)`` or ``client.events.all()``.

    Args:
        access_token: API access token. Ignored when ``config`` is given.
        config: Full client configuration.
        session: Pre-built ``requests.Session`` to send requests with.
        **options: Extra :class:`ClientConfig` fields (``environment``,
            ``base_url``, ``timeout``, ...), used when ``config`` is omitted.
    """

    def __init__(
        self,
        access_token: Optional[str] = None,
        config: Optional[ClientConfig] = None,
        session: Optional[requests.Session] = None,
        **options: Any,
    ):
        if config is None:
            if not access_token:
                raise InvalidArgument("An access token is required")
            config = ClientConfig(access_token=access_token, **options)
        self.config = config
        logger.info(
            "Initializing GoCardlessClient for %s", self.config.resolved_base_url
        )

        self.session = session if session is not None else self._make_session()
        self._services: Dict[str, ResourceService] = {
            name: ResourceService(self, definition)
            for name, definition in RESOURCES.items()
        }

    @classmethod
    def sandbox(cls, access_token: str, **options: Any) -> "GoCardlessClient":
        """Create a client for the sandbox environment."""
        return cls(access_token, environment=Environment.SANDBOX, **options)

    def _make_session(self) -> requests.Session:
        if self.config.cache_options is None:
            return requests.Session()

        default_cache_options: CacheOptions = {
            "cache_name": "gocardless_payments",
            "backend": "sqlite",
            "expire_after": 300,
            "old_data_on_error": False,
        }
        cache_config: Dict[str, Any] = {
            **default_cache_options,
            **self.config.cache_options,
        }
        # Only read-only requests are ever served from cache
        cache_config["allowable_methods"] = ("GET",)
        logger.debug("Cache config: %s", cache_config)
        return requests_cache.CachedSession(**cache_config)

    def __getattr__(self, name: str) -> ResourceService:
        services = self.__dict__.get("_services", {})
        if name in services:
            return services[name]
        raise AttributeError(f"{type(self).__name__!s} has no attribute {name!r}")

    def service(self, name: str) -> ResourceService:
        """Return the service for a resource name such as ``"refunds"``."""
        try:
            return self._services[name]
        except KeyError:
            raise InvalidArgument(f"Unknown resource '{name}'") from None

    @property
    def resources(self) -> Dict[str, ResourceService]:
        return dict(self._services)

    # ------------------------------------------------------------------
    # Request executor
    # ------------------------------------------------------------------

    def execute(
        self,
        resource: ResourceDefinition,
        endpoint: Endpoint,
        path_params: Optional[Mapping[str, Any]] = None,
        params: Union[BaseModel, Mapping[str, Any], None] = None,
        idempotency_key: Optional[str] = None,
        settings: Optional[RequestSettings] = None,
    ) -> Union[ApiModel, Page, None]:
        """Perform one logical API call.

        Path placeholders are checked before anything is sent. Create
        endpoints get an idempotency key that stays the same across retries;
        a generated key is written back to an :class:`IdempotentRequest`
        payload so callers can reuse it.

        Returns:
            The resource model, a :class:`Page` for list endpoints, or
            ``None`` when the API answers with an empty body.

        Raises:
            InvalidArgument: Missing path parameter.
            NetworkError: Transport failure after retries.
            Cancelled: ``settings.cancel_event`` was set.
            ApiError: Structured error response (see :mod:`.errors`).
            ProtocolError: Unparseable response body.
        """
        settings = settings or RequestSettings()
        path = expand_path(endpoint.path, path_params)

        payload = to_payload(params)
        supplied_key = payload.pop("idempotency_key", None)
        idempotency_key = idempotency_key or supplied_key
        if endpoint.idempotent:
            idempotency_key = self._resolve_idempotency_key(params, idempotency_key)

        response = self._request(endpoint, path, payload, idempotency_key, settings)

        try:
            return self._parse_response(response, resource, endpoint)
        except InvalidStateError as e:
            conflicting_id = e.conflicting_resource_id
            get_endpoint = resource.endpoint("get")
            if (
                self.config.error_on_idempotency_conflict
                or not endpoint.idempotent
                or conflicting_id is None
                or get_endpoint is None
            ):
                raise
            logger.info(
                "Idempotent creation conflict on %s, fetching existing %s",
                path,
                conflicting_id,
            )
            return self.execute(
                resource,
                get_endpoint,
                path_params={"identity": conflicting_id},
                settings=settings,
            )

    @staticmethod
    def _resolve_idempotency_key(
        params: Union[BaseModel, Mapping[str, Any], None], key: Optional[str]
    ) -> str:
        if isinstance(params, IdempotentRequest):
            key = key or params.idempotency_key
        key = key or str(uuid.uuid4())
        if isinstance(params, IdempotentRequest) and params.idempotency_key is None:
            params.idempotency_key = key
        return key

    def _headers(
        self, idempotency_key: Optional[str], settings: RequestSettings
    ) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.config.access_token}",
            "GoCardless-Version": self.config.api_version,
            "GoCardless-Client-Library": CLIENT_LIBRARY,
            "GoCardless-Client-Version": CLIENT_VERSION,
            "User-Agent": _user_agent(),
            "Accept": "application/json",
        }
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        # Caller headers replace defaults, matching case-insensitively
        for name, value in settings.headers.items():
            for existing in [h for h in headers if h.lower() == name.lower()]:
                del headers[existing]
            headers[name] = value
        return headers

    def _prepare(
        self,
        endpoint: Endpoint,
        path: str,
        payload: Dict[str, Any],
        idempotency_key: Optional[str],
        settings: RequestSettings,
    ) -> requests.PreparedRequest:
        url = f"{self.config.resolved_base_url}{path}"
        headers = self._headers(idempotency_key, settings)
        query = None
        body = None
        if endpoint.method == "GET":
            query = flatten_params(payload) or None
        elif endpoint.payload_key:
            body = {endpoint.payload_key: payload}

        request = requests.Request(
            endpoint.method, url, headers=headers, params=query, json=body
        )
        try:
            prepared = self.session.prepare_request(request)
        except INVALID_URL_ERRORS as e:
            raise InvalidArgument(f"Invalid request URL {url!r}: {e}") from e
        if settings.customise_request is not None:
            settings.customise_request(prepared)

        signing = settings.request_signing or self.config.request_signing
        if signing is not None:
            sign_request(prepared, signing)
        return prepared

    def _request(
        self,
        endpoint: Endpoint,
        path: str,
        payload: Dict[str, Any],
        idempotency_key: Optional[str],
        settings: RequestSettings,
    ) -> requests.Response:
        """Send a request with bounded retries on transport failure and 429.

        Transport failures are only retried for retry-safe requests (GET,
        PUT, or anything carrying an idempotency key). Rate-limited responses
        are retried for every request, since the API did not process them.
        """
        max_retries = (
            settings.max_network_retries
            if settings.max_network_retries is not None
            else self.config.max_network_retries
        )
        retry_wait = (
            settings.retry_wait
            if settings.retry_wait is not None
            else self.config.retry_wait
        )
        timeout = settings.timeout if settings.timeout is not None else self.config.timeout
        retry_safe = endpoint.method in SAFE_METHODS or idempotency_key is not None

        network_attempt = 0
        rate_limit_attempt = 0
        while True:
            self._check_cancelled(settings)
            prepared = self._prepare(endpoint, path, payload, idempotency_key, settings)
            logger.debug("%s %s", endpoint.method, path)
            try:
                response = self._send(prepared, timeout, settings)
            except INVALID_URL_ERRORS as e:
                raise InvalidArgument(f"Invalid request URL for {path}: {e}") from e
            except RETRYABLE_ERRORS as e:
                if settings.cancelled:
                    raise Cancelled(f"{endpoint.method} {path} was cancelled") from e
                if not retry_safe or network_attempt >= max_retries:
                    raise NetworkError(
                        f"{endpoint.method} {path} failed: {e}",
                        attempts=network_attempt + 1,
                    ) from e
                wait = retry_wait * (2**network_attempt)
                logger.warning(
                    "Network error on %s %s (%s). Retrying in %.1f seconds (attempt %d/%d)",
                    endpoint.method,
                    path,
                    type(e).__name__,
                    wait,
                    network_attempt + 1,
                    max_retries,
                )
                self._wait(wait, settings)
                network_attempt += 1
                continue
            except requests.RequestException as e:
                if settings.cancelled:
                    raise Cancelled(f"{endpoint.method} {path} was cancelled") from e
                raise NetworkError(
                    f"{endpoint.method} {path} failed: {e}",
                    attempts=network_attempt + 1,
                ) from e

            if settings.cancelled:
                response.close()
                raise Cancelled(f"{endpoint.method} {path} was cancelled")
            if (
                response.status_code != 429
                or rate_limit_attempt >= self.config.max_rate_limit_retries
            ):
                logger.debug("%s %s -> %d", endpoint.method, path, response.status_code)
                return response

            wait = self._rate_limit_wait(response, retry_wait, rate_limit_attempt)
            logger.warning(
                "Rate limited (429). Retrying in %.1f seconds (attempt %d/%d)",
                wait,
                rate_limit_attempt + 1,
                self.config.max_rate_limit_retries,
            )
            self._wait(wait, settings)
            rate_limit_attempt += 1

    @staticmethod
    def _rate_limit_wait(
        response: requests.Response, retry_wait: float, attempt: int
    ) -> float:
        retry_after = response.headers.get("Retry-After")
        if retry_after is not None:
            try:
                return float(retry_after)
            except (ValueError, TypeError):
                pass
        return retry_wait * (2**attempt)

    def _send(
        self,
        prepared: requests.PreparedRequest,
        timeout: float,
        settings: RequestSettings,
    ) -> requests.Response:
        """Send one attempt.

        With a cancel event, the send runs on a worker thread so that setting
        the event returns control straight away. The abandoned response is
        closed whenever it finally arrives.
        """
        if settings.cancel_event is None:
            return self.session.send(prepared, timeout=timeout)

        future: "Future[requests.Response]" = Future()

        def run() -> None:
            try:
                future.set_result(self.session.send(prepared, timeout=timeout))
            except BaseException as e:
                future.set_exception(e)

        threading.Thread(target=run, name="gocardless-send", daemon=True).start()
        while not future.done():
            wait_for([future], timeout=CANCEL_POLL_INTERVAL)
            if not future.done() and settings.cancelled:
                future.add_done_callback(_close_abandoned)
                raise Cancelled(f"{prepared.method} {prepared.path_url} was cancelled")
        return future.result()

    @staticmethod
    def _check_cancelled(settings: RequestSettings) -> None:
        if settings.cancelled:
            raise Cancelled("Request was cancelled")

    @staticmethod
    def _wait(seconds: float, settings: RequestSettings) -> None:
        """Sleep between attempts, waking early if the call is cancelled."""
        if settings.cancel_event is None:
            time.sleep(seconds)
            return
        if settings.cancel_event.wait(seconds):
            raise Cancelled("Request was cancelled while waiting to retry")

    def _parse_response(
        self,
        response: requests.Response,
        resource: ResourceDefinition,
        endpoint: Endpoint,
    ) -> Union[ApiModel, Page, None]:
        if not 200 <= response.status_code < 300:
            raise error_from_response(response)

        if not response.content:
            return None

        try:
            body = response.json()
        except ValueError as e:
            raise ProtocolError(
                f"Response from {endpoint.path} is not valid JSON", response
            ) from e
        if not isinstance(body, dict) or resource.name not in body:
            raise ProtocolError(
                f"Response from {endpoint.path} has no '{resource.name}' envelope",
                response,
            )

        data = body[resource.name]
        try:
            if endpoint.many:
                page: Page = Page[resource.model](  # type: ignore[name-defined]
                    items=[resource.model.model_validate(item) for item in data],
                    meta=Meta.model_validate(body.get("meta") or {}),
                )
                page._api_response = response
                return page
            result = resource.model.model_validate(data)
        except (ValidationError, TypeError) as e:
            raise ProtocolError(
                f"Unexpected '{resource.name}' payload from {endpoint.path}: {e}",
                response,
            ) from e
        result._api_response = response
        return result
