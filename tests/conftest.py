import json
from unittest.mock import MagicMock, patch

import pytest
import requests

from gocardless_payments.client import GoCardlessClient


def build_response(status_code=200, json_data=None, headers=None, text=None):
    """Build a fake requests.Response.

    ``text`` sets a raw, non-JSON body; ``json()`` then raises ValueError.
    """
    resp = MagicMock(spec=requests.Response)
    resp.status_code = status_code
    resp.headers = headers or {}
    if text is not None:
        resp.content = text.encode("utf-8")
        resp.text = text
        resp.json.side_effect = ValueError("Expecting value")
    elif json_data is None:
        resp.content = b""
        resp.text = ""
        resp.json.side_effect = ValueError("Expecting value")
    else:
        resp.content = json.dumps(json_data).encode("utf-8")
        resp.text = resp.content.decode("utf-8")
        resp.json.return_value = json_data
    return resp


def api_error(status_code, error_type, message="Something failed", errors=None):
    """Build an error response in the API's ``{"error": {...}}`` envelope."""
    return build_response(
        status_code,
        {
            "error": {
                "type": error_type,
                "code": status_code,
                "message": message,
                "documentation_url": "https://developer.gocardless.com/api-reference",
                "request_id": "REQ123",
                "errors": errors or [],
            }
        },
    )


@pytest.fixture
def make_response():
    return build_response


@pytest.fixture
def make_error():
    return api_error


@pytest.fixture
def session():
    """A requests.Session stand-in that prepares requests for real but never sends."""
    mock_session = MagicMock(spec=requests.Session)
    mock_session.prepare_request.side_effect = lambda request: request.prepare()
    return mock_session


@pytest.fixture
def sleep():
    with patch("gocardless_payments.client.time.sleep") as mock_sleep:
        yield mock_sleep


@pytest.fixture
def client(session, sleep):
    """Return a GoCardlessClient with a mocked session (no real HTTP)."""
    return GoCardlessClient("test-token", session=session)


def sent_requests(session):
    """The prepared requests passed to ``session.send``, in order."""
    return [c.args[0] for c in session.send.call_args_list]


@pytest.fixture
def sent():
    return sent_requests
