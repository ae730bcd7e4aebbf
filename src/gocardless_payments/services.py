"""Generic resource service bound to one entry of the endpoint table."""

import functools
import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel

from .config import RequestSettings
from .endpoints import Endpoint, ResourceDefinition
from .errors import InvalidArgument
from .models import ApiModel, Page
from .pagination import Paginator
from .utils import to_payload

if TYPE_CHECKING:
    from .client import GoCardlessClient

logger = logging.getLogger(__name__)

__all__ = ["ResourceService"]

Params = Union[BaseModel, Mapping[str, Any], None]

STANDARD_ENDPOINTS = ("list", "get", "create", "update", "remove")


class ResourceService:
    """Operations on one API resource, e.g. ``client.refunds``.

    Standard operations are ``create``, ``list``, ``all``, ``get``,
    ``update`` and ``remove``. Resource-specific actions from the endpoint
    table are available as methods too (``client.payments.cancel("PM123")``)
    or through :meth:`action`.
    """

    def __init__(self, client: "GoCardlessClient", definition: ResourceDefinition):
        self._client = client
        self.definition = definition

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def actions(self) -> List[str]:
        """Names of the non-standard endpoints this resource supports."""
        return [n for n in self.definition.endpoints if n not in STANDARD_ENDPOINTS]

    def __repr__(self) -> str:
        return f"<ResourceService {self.name}>"

    def _endpoint(self, name: str) -> Endpoint:
        endpoint = self.definition.endpoint(name)
        if endpoint is None:
            raise InvalidArgument(f"'{self.name}' does not support '{name}'")
        return endpoint

    def _call(
        self,
        endpoint_name: str,
        identity: Optional[str] = None,
        params: Params = None,
        idempotency_key: Optional[str] = None,
        settings: Optional[RequestSettings] = None,
    ) -> Any:
        endpoint = self._endpoint(endpoint_name)
        path_params: Dict[str, Any] = {}
        if ":identity" in endpoint.path:
            path_params["identity"] = identity
        return self._client.execute(
            self.definition,
            endpoint,
            path_params=path_params,
            params=params,
            idempotency_key=idempotency_key,
            settings=settings,
        )

    def create(
        self,
        params: Params = None,
        idempotency_key: Optional[str] = None,
        settings: Optional[RequestSettings] = None,
    ) -> ApiModel:
        """Create a resource. An idempotency key is generated if none is given."""
        return self._call(
            "create", params=params, idempotency_key=idempotency_key, settings=settings
        )

    def list(
        self, params: Params = None, settings: Optional[RequestSettings] = None
    ) -> Page:
        """Fetch a single page of resources."""
        return self._call("list", params=params, settings=settings)

    def all(
        self,
        params: Params = None,
        settings: Optional[RequestSettings] = None,
        max_pages: Optional[int] = None,
    ) -> Paginator:
        """Lazily iterate over every resource, following ``after`` cursors."""
        self._endpoint("list")
        base_params = to_payload(params)

        def fetch_page(after: Optional[str]) -> Page:
            page_params = dict(base_params)
            if after is not None:
                page_params["after"] = after
            return self._call("list", params=page_params, settings=settings)

        return Paginator(fetch_page, max_pages=max_pages)

    def get(
        self,
        identity: str,
        params: Params = None,
        settings: Optional[RequestSettings] = None,
    ) -> ApiModel:
        return self._call("get", identity, params=params, settings=settings)

    def update(
        self,
        identity: str,
        params: Params = None,
        settings: Optional[RequestSettings] = None,
    ) -> ApiModel:
        return self._call("update", identity, params=params, settings=settings)

    def remove(
        self, identity: str, settings: Optional[RequestSettings] = None
    ) -> Optional[ApiModel]:
        return self._call("remove", identity, settings=settings)

    def action(
        self,
        name: str,
        identity: Optional[str] = None,
        params: Params = None,
        idempotency_key: Optional[str] = None,
        settings: Optional[RequestSettings] = None,
    ) -> Any:
        """Run a resource-specific endpoint such as ``cancel`` or ``retry``."""
        logger.debug("Running %s.%s on %s", self.name, name, identity)
        return self._call(
            name,
            identity,
            params=params,
            idempotency_key=idempotency_key,
            settings=settings,
        )

    def __getattr__(self, name: str) -> Callable[..., Any]:
        definition = self.__dict__.get("definition")
        if definition is not None and name in definition.endpoints:
            endpoint = definition.endpoints[name]
            if ":identity" in endpoint.path:
                return functools.partial(self.action, name)
            return functools.partial(self.action, name, None)
        raise AttributeError(f"'{type(self).__name__}' has no attribute {name!r}")
