"""Mock GoCardless client for CLI testing.

Serves synthetic demo data without making real API calls. Responses go
through the same parsing, pagination and error mapping as the real client.
"""

import json
import logging
from copy import deepcopy
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import requests

from .client import GoCardlessClient
from .config import ClientConfig, RequestSettings
from .endpoints import Endpoint

logger = logging.getLogger(__name__)

__all__ = ["MockGoCardlessClient"]

DEFAULT_PAGE_SIZE = 50

ACTION_STATUSES = {
    "cancel": "cancelled",
    "retry": "pending_submission",
    "reinstate": "pending_submission",
    "disable": "disabled",
}


def _timestamp(days_ago: int) -> str:
    moment = datetime(2026, 1, 15, 9, 30, tzinfo=timezone.utc) - timedelta(days=days_ago)
    return moment.isoformat().replace("+00:00", "Z")


def _demo_data() -> Dict[str, List[Dict[str, Any]]]:
    customers = [
        {
            "id": "CU0001",
            "created_at": _timestamp(40),
            "email": "alice@example.com",
            "given_name": "Alice",
            "family_name": "Martin",
            "country_code": "GB",
            "language": "en",
            "metadata": {},
        },
        {
            "id": "CU0002",
            "created_at": _timestamp(32),
            "email": "accounts@acme.example",
            "company_name": "Acme Ltd",
            "country_code": "FR",
            "language": "fr",
            "metadata": {"crm_id": "A-42"},
        },
        {
            "id": "CU0003",
            "created_at": _timestamp(12),
            "email": "bob@example.com",
            "given_name": "Bob",
            "family_name": "Keller",
            "country_code": "DE",
            "language": "de",
            "metadata": {},
        },
    ]
    mandates = [
        {
            "id": "MD0001",
            "created_at": _timestamp(39),
            "reference": "ALICE-01",
            "scheme": "bacs",
            "status": "active",
            "links": {"customer": "CU0001", "customer_bank_account": "BA0001"},
        },
        {
            "id": "MD0002",
            "created_at": _timestamp(30),
            "reference": "ACME-01",
            "scheme": "sepa_core",
            "status": "active",
            "links": {"customer": "CU0002", "customer_bank_account": "BA0002"},
        },
        {
            "id": "MD0003",
            "created_at": _timestamp(11),
            "reference": "BOB-01",
            "scheme": "sepa_core",
            "status": "pending_submission",
            "links": {"customer": "CU0003", "customer_bank_account": "BA0003"},
        },
    ]
    payments = [
        {
            "id": "PM0001",
            "created_at": _timestamp(35),
            "amount": 2500,
            "amount_refunded": 0,
            "currency": "GBP",
            "charge_date": "2025-12-15",
            "description": "Monthly plan",
            "status": "paid_out",
            "links": {"mandate": "MD0001"},
        },
        {
            "id": "PM0002",
            "created_at": _timestamp(20),
            "amount": 12000,
            "amount_refunded": 2000,
            "currency": "EUR",
            "charge_date": "2025-12-30",
            "description": "Annual licence",
            "status": "confirmed",
            "links": {"mandate": "MD0002"},
        },
        {
            "id": "PM0003",
            "created_at": _timestamp(5),
            "amount": 2500,
            "amount_refunded": 0,
            "currency": "GBP",
            "charge_date": "2026-01-15",
            "description": "Monthly plan",
            "status": "pending_submission",
            "links": {"mandate": "MD0001"},
        },
        {
            "id": "PM0004",
            "created_at": _timestamp(2),
            "amount": 4900,
            "amount_refunded": 0,
            "currency": "EUR",
            "charge_date": "2026-01-20",
            "description": "Setup fee",
            "status": "failed",
            "links": {"mandate": "MD0003"},
        },
    ]
    refunds = [
        {
            "id": "RF0001",
            "created_at": _timestamp(10),
            "amount": 2000,
            "currency": "EUR",
            "reference": "Partial refund",
            "status": "paid",
            "links": {"payment": "PM0002", "mandate": "MD0002"},
        }
    ]
    events = [
        {
            "id": "EV0001",
            "created_at": _timestamp(35),
            "action": "created",
            "resource_type": "payments",
            "details": {
                "origin": "api",
                "cause": "payment_created",
                "description": "Payment created via the API.",
            },
            "links": {"payment": "PM0001"},
        },
        {
            "id": "EV0002",
            "created_at": _timestamp(20),
            "action": "confirmed",
            "resource_type": "payments",
            "details": {
                "origin": "gocardless",
                "cause": "payment_confirmed",
                "description": "Payment was confirmed as collected.",
            },
            "links": {"payment": "PM0002"},
        },
        {
            "id": "EV0003",
            "created_at": _timestamp(2),
            "action": "failed",
            "resource_type": "payments",
            "details": {
                "origin": "bank",
                "cause": "insufficient_funds",
                "description": "The customer's account had insufficient funds.",
            },
            "links": {"payment": "PM0004"},
        },
    ]
    return {
        "customers": customers,
        "mandates": mandates,
        "payments": payments,
        "refunds": refunds,
        "events": events,
    }


def _json_response(
    status_code: int, body: Dict[str, Any], url: str = ""
) -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    response._content = json.dumps(body).encode("utf-8")
    response.headers["Content-Type"] = "application/json"
    response.url = url
    return response


def _not_found(path: str) -> requests.Response:
    return _json_response(
        404,
        {
            "error": {
                "type": "invalid_api_usage",
                "code": 404,
                "message": "Resource not found",
                "documentation_url": "https://developer.gocardless.com/api-reference#resource_not_found",
                "request_id": "mock-request",
                "errors": [
                    {"reason": "resource_not_found", "message": "Resource not found"}
                ],
            }
        },
        path,
    )


class MockGoCardlessClient(GoCardlessClient):
    """Mock client that answers from in-memory demo data instead of the API."""

    def __init__(self, access_token: str = "mock-token", **options: Any):
        """Initialize mock client."""
        logger.info("Initializing MockGoCardlessClient")
        config = ClientConfig(access_token=access_token, environment="sandbox", **options)
        super().__init__(config=config)
        self._store = _demo_data()
        self._counter = 100

    def _request(
        self,
        endpoint: Endpoint,
        path: str,
        payload: Dict[str, Any],
        idempotency_key: Optional[str],
        settings: RequestSettings,
    ) -> requests.Response:
        self._check_cancelled(settings)
        logger.debug("MockClient: %s %s", endpoint.method, path)
        parts = [p for p in path.split("/") if p]
        resource = parts[0]
        records = self._store.get(resource)
        if records is None:
            return _json_response(200, {resource: [], "meta": {"cursors": {}}}, path)

        if endpoint.method == "GET" and len(parts) == 1:
            return self._list(resource, records, payload)

        if endpoint.method == "POST" and len(parts) == 1:
            return self._create(resource, records, payload.copy())

        record = next((r for r in records if r.get("id") == parts[1]), None)
        if record is None:
            return _not_found(path)

        if endpoint.method == "PUT":
            record.update(deepcopy(payload))
        elif endpoint.method == "POST" and len(parts) == 4:
            record["status"] = ACTION_STATUSES.get(parts[3], record.get("status"))
        elif endpoint.method == "DELETE":
            records.remove(record)
        return _json_response(200, {resource: record}, path)

    def _list(
        self, resource: str, records: List[Dict[str, Any]], params: Dict[str, Any]
    ) -> requests.Response:
        matching = [
            r
            for r in records
            if all(
                r.get(key) == value or r.get("links", {}).get(key) == value
                for key, value in params.items()
                if key not in ("after", "before", "limit")
            )
        ]
        start = 0
        if params.get("after"):
            ids = [r["id"] for r in matching]
            start = ids.index(params["after"]) + 1 if params["after"] in ids else len(ids)
        limit = int(params.get("limit") or DEFAULT_PAGE_SIZE)
        page = matching[start : start + limit]
        has_more = start + limit < len(matching)
        after = page[-1]["id"] if page and has_more else None
        return _json_response(
            200,
            {
                resource: page,
                "meta": {"cursors": {"before": None, "after": after}, "limit": limit},
            },
            f"/{resource}",
        )

    def _create(
        self, resource: str, records: List[Dict[str, Any]], payload: Dict[str, Any]
    ) -> requests.Response:
        self._counter += 1
        prefix = resource[:2].upper()
        record = {
            "id": f"{prefix}{self._counter:04d}",
            "created_at": _timestamp(0),
            **payload,
        }
        records.append(record)
        return _json_response(201, {resource: record}, f"/{resource}")
