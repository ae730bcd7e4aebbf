"""Tests for the request executor.

Covers headers, idempotency keys, retries on transport failure and 429,
error mapping, idempotent-creation conflicts and cancellation.
"""

import json
import threading
import time
from unittest.mock import MagicMock, patch
from urllib.parse import parse_qs, urlparse

import pytest
import requests

from gocardless_payments import (
    ApiInternalError,
    ApiUsageError,
    ApiValidationError,
    AuthenticationFailedError,
    Cancelled,
    ClientConfig,
    Customer,
    GoCardlessClient,
    GoCardlessError,
    InsufficientPermissionsError,
    InvalidArgument,
    InvalidStateError,
    NetworkError,
    Page,
    Payment,
    PaymentCreateRequest,
    PaymentLinks,
    ProtocolError,
    RateLimitReachedError,
    RequestSettings,
)
from gocardless_payments.config import API_VERSION

PAYMENT = {
    "id": "PM123",
    "amount": 1000,
    "currency": "GBP",
    "status": "pending_submission",
    "links": {"mandate": "MD123"},
}


def _payment_request(**kwargs):
    return PaymentCreateRequest(
        amount=1000, currency="GBP", links=PaymentLinks(mandate="MD123"), **kwargs
    )


class TestClientInit:
    def test_requires_access_token(self):
        with pytest.raises(InvalidArgument):
            GoCardlessClient()

    def test_defaults_to_live_environment(self, session):
        c = GoCardlessClient("token", session=session)
        assert c.config.resolved_base_url == "https://api.gocardless.com"

    def test_sandbox_constructor(self, session):
        c = GoCardlessClient.sandbox("token", session=session)
        assert c.config.resolved_base_url == "https://api-sandbox.gocardless.com"

    def test_custom_base_url_wins(self, session):
        c = GoCardlessClient(
            "token", base_url="http://localhost:8000/", session=session
        )
        assert c.config.resolved_base_url == "http://localhost:8000"

    def test_plain_session_without_cache_options(self):
        with patch("gocardless_payments.client.requests_cache.CachedSession") as mock_cs:
            c = GoCardlessClient("token")
        mock_cs.assert_not_called()
        assert isinstance(c.session, requests.Session)

    def test_cached_session_only_caches_get(self):
        with patch("gocardless_payments.client.requests_cache.CachedSession") as mock_cs:
            GoCardlessClient(
                "token",
                cache_options={"backend": "memory", "allowable_methods": ("GET", "POST")},
            )
        kwargs = mock_cs.call_args.kwargs
        assert kwargs["backend"] == "memory"
        assert kwargs["allowable_methods"] == ("GET",)
        assert kwargs["cache_name"] == "gocardless_payments"

    def test_services_exposed_as_attributes(self, client):
        assert client.payments.name == "payments"
        assert client.service("refunds") is client.refunds
        assert "billing_requests" in client.resources

    def test_unknown_service(self, client):
        with pytest.raises(AttributeError):
            client.not_a_resource
        with pytest.raises(InvalidArgument):
            client.service("not_a_resource")


class TestRequestBuilding:
    """Tests for URLs, headers and bodies of outgoing requests."""

    def test_default_headers(self, client, session, make_response, sent):
        session.send.return_value = make_response(json_data={"payments": PAYMENT})
        client.payments.get("PM123")

        request = sent(session)[0]
        assert request.method == "GET"
        assert request.url == "https://api.gocardless.com/payments/PM123"
        assert request.headers["Authorization"] == "Bearer test-token"
        assert request.headers["GoCardless-Version"] == API_VERSION
        assert request.headers["GoCardless-Client-Library"] == "gocardless-payments"
        assert "GoCardless-Client-Version" in request.headers
        assert request.headers["User-Agent"].startswith("gocardless-payments/")
        assert "Idempotency-Key" not in request.headers

    def test_custom_headers_replace_defaults(self, client, session, make_response, sent):
        session.send.return_value = make_response(json_data={"payments": PAYMENT})
        settings = RequestSettings(
            headers={"gocardless-version": "2099-01-01", "X-Trace": "abc"}
        )
        client.payments.get("PM123", settings=settings)

        headers = sent(session)[0].headers
        assert headers["GoCardless-Version"] == "2099-01-01"
        assert headers["X-Trace"] == "abc"

    def test_customise_request_hook(self, client, session, make_response, sent):
        session.send.return_value = make_response(json_data={"payments": PAYMENT})

        def customise(prepared):
            prepared.headers["X-Custom"] = "yes"

        client.payments.get("PM123", settings=RequestSettings(customise_request=customise))
        assert sent(session)[0].headers["X-Custom"] == "yes"

    def test_create_body_wrapped_in_envelope(self, client, session, make_response, sent):
        session.send.return_value = make_response(201, {"payments": PAYMENT})
        client.payments.create(_payment_request(description="Invoice 1"))

        body = json.loads(sent(session)[0].body)
        assert body == {
            "payments": {
                "amount": 1000,
                "currency": "GBP",
                "links": {"mandate": "MD123"},
                "description": "Invoice 1",
            }
        }

    def test_action_body_uses_data_key(self, client, session, make_response, sent):
        session.send.return_value = make_response(json_data={"payments": PAYMENT})
        client.payments.cancel("PM123", {"metadata": {"reason": "duplicate"}})

        request = sent(session)[0]
        assert request.url.endswith("/payments/PM123/actions/cancel")
        assert json.loads(request.body) == {"data": {"metadata": {"reason": "duplicate"}}}

    def test_list_query_is_flattened(self, client, session, make_response, sent):
        session.send.return_value = make_response(
            json_data={"payments": [], "meta": {"cursors": {}}}
        )
        client.payments.list(
            {"created_at": {"gt": "2024-01-01T00:00:00Z"}, "limit": 10, "status": None}
        )

        query = parse_qs(urlparse(sent(session)[0].url).query)
        assert query == {"created_at[gt]": ["2024-01-01T00:00:00Z"], "limit": ["10"]}

    def test_booleans_lowercased_in_query(self, client, session, make_response, sent):
        session.send.return_value = make_response(
            json_data={"creditor_bank_accounts": [], "meta": {"cursors": {}}}
        )
        client.creditor_bank_accounts.list({"enabled": True})

        query = parse_qs(urlparse(sent(session)[0].url).query)
        assert query == {"enabled": ["true"]}

    def test_identity_is_url_encoded(self, client, session, make_response, sent):
        session.send.return_value = make_response(json_data={"payments": PAYMENT})
        client.payments.get("PM/1 2")
        assert sent(session)[0].url.endswith("/payments/PM%2F1%202")

    @pytest.mark.parametrize("identity", [None, ""])
    def test_missing_path_param_sends_nothing(self, client, session, identity):
        with pytest.raises(InvalidArgument):
            client.payments.get(identity)
        session.send.assert_not_called()


class TestIdempotency:
    """Tests for Idempotency-Key handling on create endpoints."""

    def test_key_generated_and_written_back(self, client, session, make_response, sent):
        session.send.return_value = make_response(201, {"payments": PAYMENT})
        request = _payment_request()
        client.payments.create(request)

        key = sent(session)[0].headers["Idempotency-Key"]
        assert key
        assert request.idempotency_key == key

    def test_explicit_key_used(self, client, session, make_response, sent):
        session.send.return_value = make_response(201, {"payments": PAYMENT})
        client.payments.create(_payment_request(), idempotency_key="my-key")
        assert sent(session)[0].headers["Idempotency-Key"] == "my-key"

    def test_key_on_model_used_and_not_sent_in_body(
        self, client, session, make_response, sent
    ):
        session.send.return_value = make_response(201, {"payments": PAYMENT})
        client.payments.create(_payment_request(idempotency_key="model-key"))

        request = sent(session)[0]
        assert request.headers["Idempotency-Key"] == "model-key"
        assert "idempotency_key" not in json.loads(request.body)["payments"]

    def test_key_in_mapping_moved_to_header(self, client, session, make_response, sent):
        session.send.return_value = make_response(201, {"customers": {"id": "CU1"}})
        client.customers.create({"email": "a@example.com", "idempotency_key": "dict-key"})

        request = sent(session)[0]
        assert request.headers["Idempotency-Key"] == "dict-key"
        assert json.loads(request.body) == {"customers": {"email": "a@example.com"}}

    def test_distinct_calls_get_distinct_keys(self, client, session, make_response, sent):
        session.send.return_value = make_response(201, {"customers": {"id": "CU1"}})
        client.customers.create({"email": "a@example.com"})
        client.customers.create({"email": "a@example.com"})

        first, second = sent(session)
        assert first.headers["Idempotency-Key"] != second.headers["Idempotency-Key"]

    def test_non_idempotent_create_has_no_key(self, client, session, make_response, sent):
        session.send.return_value = make_response(
            201, {"mandate_pdfs": {"url": "https://example.com/m.pdf"}}
        )
        client.mandate_pdfs.create({"links": {"mandate": "MD1"}})
        assert "Idempotency-Key" not in sent(session)[0].headers


class TestNetworkRetries:
    """Tests for bounded retries after connection failures and timeouts."""

    def test_key_reused_across_retries(self, client, session, make_response, sleep, sent):
        session.send.side_effect = [
            requests.ConnectionError("reset"),
            make_response(201, {"payments": PAYMENT}),
        ]
        payment = client.payments.create(_payment_request())

        first, second = sent(session)
        assert first.headers["Idempotency-Key"] == second.headers["Idempotency-Key"]
        assert payment.id == "PM123"
        sleep.assert_called_once_with(0.5)

    def test_get_retries_with_backoff_then_fails(self, client, session, sleep):
        session.send.side_effect = requests.Timeout("slow")

        with pytest.raises(NetworkError) as exc:
            client.payments.get("PM123")

        assert exc.value.attempts == 3
        assert session.send.call_count == 3
        assert [c.args[0] for c in sleep.call_args_list] == [0.5, 1.0]
        assert isinstance(exc.value.__cause__, requests.Timeout)

    def test_action_without_key_not_retried(self, client, session, sleep):
        session.send.side_effect = requests.ConnectionError("reset")

        with pytest.raises(NetworkError) as exc:
            client.payments.cancel("PM123")

        assert exc.value.attempts == 1
        session.send.assert_called_once()
        sleep.assert_not_called()

    def test_retry_bound_per_call(self, client, session, sleep):
        session.send.side_effect = requests.ConnectionError("reset")

        with pytest.raises(NetworkError):
            client.payments.get(
                "PM123", settings=RequestSettings(max_network_retries=0)
            )
        session.send.assert_called_once()

    def test_timeout_passed_to_send(self, client, session, make_response):
        session.send.return_value = make_response(json_data={"payments": PAYMENT})
        client.payments.get("PM123", settings=RequestSettings(timeout=5))
        assert session.send.call_args.kwargs["timeout"] == 5

    def test_zero_timeout_is_not_replaced_by_default(self, client, session, make_response):
        session.send.return_value = make_response(json_data={"payments": PAYMENT})
        client.payments.get("PM123", settings=RequestSettings(timeout=0))
        assert session.send.call_args.kwargs["timeout"] == 0

    @pytest.mark.parametrize(
        "error",
        [
            requests.exceptions.ChunkedEncodingError(
                "Connection broken: ConnectionResetError(104, 'Connection reset by peer')"
            ),
            requests.exceptions.ContentDecodingError("Received response with content-encoding: gzip"),
        ],
    )
    def test_broken_response_body_is_retried(self, client, session, sleep, error):
        session.send.side_effect = error

        with pytest.raises(NetworkError) as exc:
            client.payments.get("PM123")

        assert isinstance(exc.value, GoCardlessError)
        assert exc.value.attempts == 3
        assert session.send.call_count == 3
        assert exc.value.__cause__ is error

    def test_other_transport_error_wrapped_without_retry(self, client, session, sleep):
        session.send.side_effect = requests.exceptions.TooManyRedirects("Exceeded 30 redirects")

        with pytest.raises(NetworkError) as exc:
            client.payments.get("PM123")

        assert exc.value.attempts == 1
        session.send.assert_called_once()
        sleep.assert_not_called()

    def test_malformed_base_url_is_invalid_argument(self, session):
        client = GoCardlessClient("test-token", session=session, base_url="not a url")

        with pytest.raises(InvalidArgument):
            client.payments.get("PM123")
        session.send.assert_not_called()

    def test_unsupported_scheme_is_invalid_argument(self, client, session, sleep):
        session.send.side_effect = requests.exceptions.InvalidSchema(
            "No connection adapters were found"
        )

        with pytest.raises(InvalidArgument):
            client.payments.get("PM123")
        session.send.assert_called_once()


class TestRateLimiting:
    """Tests for 429 back-off."""

    def test_retry_after_header_honoured(self, client, session, make_response, sleep):
        session.send.side_effect = [
            make_response(429, {"error": {}}, headers={"Retry-After": "2"}),
            make_response(json_data={"payments": PAYMENT}),
        ]
        payment = client.payments.get("PM123")

        assert payment.id == "PM123"
        sleep.assert_called_once_with(2.0)

    def test_exponential_backoff_without_header(self, client, session, make_response, sleep):
        session.send.side_effect = [
            make_response(429, {"error": {}}),
            make_response(429, {"error": {}}),
            make_response(json_data={"payments": PAYMENT}),
        ]
        client.payments.get("PM123")
        assert [c.args[0] for c in sleep.call_args_list] == [0.5, 1.0]

    def test_gives_up_after_max_retries(self, client, session, make_error, sleep):
        session.send.return_value = make_error(429, "invalid_api_usage", "Slow down")

        with pytest.raises(RateLimitReachedError) as exc:
            client.payments.get("PM123")

        assert exc.value.type == "rate_limit_reached"
        assert session.send.call_count == client.config.max_rate_limit_retries + 1


class TestErrorMapping:
    """Tests for typed errors built from non-2xx responses."""

    def test_validation_error(self, client, session, make_error):
        session.send.return_value = make_error(
            422,
            "validation_failed",
            "Validation failed",
            errors=[
                {
                    "field": "amount",
                    "message": "must be positive",
                    "request_pointer": "/payments/amount",
                }
            ],
        )
        with pytest.raises(ApiValidationError) as exc:
            client.payments.create(_payment_request())

        err = exc.value
        assert err.code == 422
        assert err.request_id == "REQ123"
        assert err.errors[0].field == "amount"
        assert err.field_errors == {"amount": ["must be positive"]}
        assert str(err) == "Validation failed"

    @pytest.mark.parametrize(
        "status, error_class, error_type",
        [
            (401, AuthenticationFailedError, "authentication_failed"),
            (403, InsufficientPermissionsError, "insufficient_permissions"),
        ],
    )
    def test_status_overrides_type(self, client, session, make_error, status, error_class, error_type):
        session.send.return_value = make_error(status, "invalid_api_usage")

        with pytest.raises(error_class) as exc:
            client.payments.get("PM123")
        assert exc.value.type == error_type
        assert isinstance(exc.value, ApiUsageError)

    def test_invalid_api_usage(self, client, session, make_error):
        session.send.return_value = make_error(404, "invalid_api_usage", "Not found")
        with pytest.raises(ApiUsageError) as exc:
            client.payments.get("PM404")
        assert exc.value.code == 404

    def test_invalid_state(self, client, session, make_error):
        session.send.return_value = make_error(
            422,
            "invalid_state",
            "Cannot cancel",
            errors=[{"reason": "cancellation_failed", "message": "Cannot cancel"}],
        )
        with pytest.raises(InvalidStateError) as exc:
            client.payments.cancel("PM123")
        assert exc.value.conflicting_resource_id is None

    def test_internal_error(self, client, session, make_error):
        session.send.return_value = make_error(500, "gocardless", "Internal error")
        with pytest.raises(ApiInternalError):
            client.payments.get("PM123")

    def test_html_gateway_error_is_internal(self, client, session, make_response):
        session.send.return_value = make_response(502, text="<html>Bad Gateway</html>")
        with pytest.raises(ApiInternalError) as exc:
            client.payments.get("PM123")
        assert exc.value.type == "gocardless"
        assert exc.value.code == 502

    def test_unparseable_client_error_is_protocol_error(self, client, session, make_response):
        session.send.return_value = make_response(400, text="nope")
        with pytest.raises(ProtocolError) as exc:
            client.payments.get("PM123")
        assert exc.value.status_code == 400

    def test_unknown_type_falls_back_to_status(self, client, session, make_error):
        session.send.return_value = make_error(422, "something_new")
        with pytest.raises(ApiValidationError):
            client.payments.get("PM123")

    def test_invalid_json_success_body(self, client, session, make_response):
        session.send.return_value = make_response(200, text="{not json")
        with pytest.raises(ProtocolError):
            client.payments.get("PM123")

    def test_missing_envelope(self, client, session, make_response):
        session.send.return_value = make_response(json_data={"refunds": {"id": "RF1"}})
        with pytest.raises(ProtocolError):
            client.payments.get("PM123")


class TestIdempotencyConflict:
    """Tests for idempotent-creation conflict handling."""

    def _conflict(self, make_error):
        return make_error(
            409,
            "invalid_state",
            "A resource has already been created with this idempotency key",
            errors=[
                {
                    "reason": "idempotent_creation_conflict",
                    "message": "A resource has already been created with this idempotency key",
                    "links": {"conflicting_resource_id": "PM999"},
                }
            ],
        )

    def test_fetches_existing_resource(self, client, session, make_response, make_error, sent):
        existing = dict(PAYMENT, id="PM999")
        session.send.side_effect = [
            self._conflict(make_error),
            make_response(json_data={"payments": existing}),
        ]
        payment = client.payments.create(_payment_request(), idempotency_key="dup")

        assert payment.id == "PM999"
        create, fetch = sent(session)
        assert create.method == "POST"
        assert fetch.method == "GET"
        assert fetch.url.endswith("/payments/PM999")
        assert "Idempotency-Key" not in fetch.headers

    def test_raises_when_configured(self, session, sleep, make_error):
        config = ClientConfig(access_token="t", error_on_idempotency_conflict=True)
        c = GoCardlessClient(config=config, session=session)
        session.send.return_value = self._conflict(make_error)

        with pytest.raises(InvalidStateError) as exc:
            c.payments.create(_payment_request())

        assert exc.value.conflicting_resource_id == "PM999"
        session.send.assert_called_once()


class TestCancellation:
    """Tests for cancelling a call through RequestSettings.cancel_event."""

    def test_cancelled_before_send(self, client, session):
        event = threading.Event()
        event.set()
        with pytest.raises(Cancelled):
            client.payments.get("PM123", settings=RequestSettings(cancel_event=event))
        session.send.assert_not_called()

    def test_cancelled_during_transport_failure(self, client, session):
        event = threading.Event()

        def fail(*args, **kwargs):
            event.set()
            raise requests.ConnectionError("reset")

        session.send.side_effect = fail
        with pytest.raises(Cancelled):
            client.payments.get("PM123", settings=RequestSettings(cancel_event=event))
        session.send.assert_called_once()

    def test_cancelled_while_waiting_to_retry(self, client, session):
        event = MagicMock(spec=threading.Event)
        event.is_set.return_value = False
        event.wait.return_value = True
        session.send.side_effect = requests.ConnectionError("reset")

        with pytest.raises(Cancelled):
            client.payments.get("PM123", settings=RequestSettings(cancel_event=event))
        session.send.assert_called_once()
        event.wait.assert_called_once_with(0.5)

    def test_cancel_aborts_in_flight_send(self, client, session, make_response):
        event = threading.Event()
        release = threading.Event()
        closed = threading.Event()
        resp = make_response(json_data={"payments": PAYMENT})
        resp.close.side_effect = lambda: closed.set()

        def slow_send(*args, **kwargs):
            release.wait(2)
            return resp

        session.send.side_effect = slow_send
        timer = threading.Timer(0.1, event.set)
        timer.start()
        started = time.monotonic()
        try:
            with pytest.raises(Cancelled):
                client.payments.get("PM123", settings=RequestSettings(cancel_event=event))
            assert time.monotonic() - started < 1.0
        finally:
            timer.cancel()
            release.set()

        assert closed.wait(1)

    def test_response_after_cancel_is_discarded(self, client, session, make_response):
        event = threading.Event()
        resp = make_response(json_data={"payments": PAYMENT})
        closed = threading.Event()
        resp.close.side_effect = lambda: closed.set()

        def send_then_cancel(*args, **kwargs):
            event.set()
            return resp

        session.send.side_effect = send_then_cancel
        with pytest.raises(Cancelled):
            client.payments.get("PM123", settings=RequestSettings(cancel_event=event))
        assert closed.wait(1)

    def test_send_error_propagates_with_cancel_event(self, client, session, sleep):
        event = threading.Event()
        session.send.side_effect = requests.ConnectionError("reset")

        with pytest.raises(NetworkError) as exc:
            client.payments.cancel("PM123", settings=RequestSettings(cancel_event=event))
        assert exc.value.attempts == 1


class TestResponseParsing:
    def test_returns_typed_model_with_raw_response(self, client, session, make_response):
        resp = make_response(json_data={"payments": dict(PAYMENT, new_field="x")})
        session.send.return_value = resp

        payment = client.payments.get("PM123")

        assert isinstance(payment, Payment)
        assert payment.amount == 1000
        assert payment.links["mandate"] == "MD123"
        assert payment.new_field == "x"
        assert payment.api_response is resp

    def test_list_returns_page(self, client, session, make_response):
        session.send.return_value = make_response(
            json_data={
                "customers": [{"id": "CU1"}, {"id": "CU2"}],
                "meta": {"cursors": {"before": None, "after": "CU2"}, "limit": 2},
            }
        )
        page = client.customers.list({"limit": 2})

        assert isinstance(page, Page)
        assert [c.id for c in page.items] == ["CU1", "CU2"]
        assert all(isinstance(c, Customer) for c in page.items)
        assert page.after == "CU2"
        assert page.meta.limit == 2

    def test_empty_body_returns_none(self, client, session, make_response, sent):
        session.send.return_value = make_response(204)
        assert client.customers.remove("CU1") is None
        assert sent(session)[0].method == "DELETE"
