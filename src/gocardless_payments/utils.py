import logging
import re
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union
from urllib.parse import quote

from pydantic import BaseModel

from .errors import InvalidArgument

logger = logging.getLogger(__name__)

__all__ = ["expand_path", "flatten_params", "stringify", "to_payload"]

PLACEHOLDER_RE = re.compile(r":([a-z_]+)")


def to_payload(params: Union[BaseModel, Mapping[str, Any], None]) -> Dict[str, Any]:
    """Turn a request model or mapping into a JSON-ready dict without nulls."""
    if params is None:
        return {}
    if isinstance(params, BaseModel):
        return params.model_dump(mode="json", by_alias=True, exclude_none=True)
    return _drop_none(dict(params))


def _drop_none(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(value, Mapping):
        return {k: _drop_none(v) for k, v in value.items() if v is not None}
    if isinstance(value, (list, tuple)):
        return [_drop_none(v) for v in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


def stringify(value: Any) -> str:
    """Render a scalar the way the API expects it in URLs."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (list, tuple)):
        return ",".join(stringify(v) for v in value)
    return str(value)


def flatten_params(params: Mapping[str, Any], prefix: str = "") -> List[Tuple[str, str]]:
    """Flatten nested query parameters into ``key[sub]=value`` pairs.

    ``None`` values are dropped. Order follows the input mapping.

    >>> flatten_params({"created_at": {"gt": "2024-01-01"}, "enabled": True})
    [('created_at[gt]', '2024-01-01'), ('enabled', 'true')]
    """
    pairs: List[Tuple[str, str]] = []
    for key, value in params.items():
        if value is None:
            continue
        name = f"{prefix}[{key}]" if prefix else str(key)
        if isinstance(value, Mapping):
            pairs.extend(flatten_params(value, name))
        else:
            pairs.append((name, stringify(value)))
    return pairs


def expand_path(template: str, path_params: Optional[Mapping[str, Any]] = None) -> str:
    """Substitute ``:placeholder`` tokens in a path template.

    Raises:
        InvalidArgument: If a placeholder has no value, or its value is ``None``
            or empty.
    """
    path_params = path_params or {}

    def _replace(match: "re.Match[str]") -> str:
        name = match.group(1)
        value = path_params.get(name)
        if value is None or stringify(value) == "":
            raise InvalidArgument(f"Missing value for path parameter '{name}'")
        return quote(stringify(value), safe="")

    return PLACEHOLDER_RE.sub(_replace, template)
