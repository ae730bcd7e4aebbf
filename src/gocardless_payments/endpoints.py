"""Endpoint table for the GoCardless API.

Each resource is described once by a :class:`ResourceDefinition`: the
envelope key its responses are wrapped in, the model its objects are parsed
into, and the named endpoints it supports. Services are generated from this
table rather than written by hand per resource.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Type

from .models import (
    ApiModel,
    BillingRequest,
    BillingRequestFlow,
    BillingRequestTemplate,
    Block,
    Creditor,
    CreditorBankAccount,
    CurrencyExchangeRate,
    Customer,
    CustomerBankAccount,
    Event,
    Export,
    InstalmentSchedule,
    Institution,
    Mandate,
    MandatePdf,
    OutboundPayment,
    Payment,
    Payout,
    PayoutItem,
    RedirectFlow,
    Refund,
    SchemeIdentifier,
    Subscription,
    TaxRate,
    Webhook,
)

__all__ = ["Endpoint", "ResourceDefinition", "RESOURCES", "SAFE_METHODS"]

#: Methods that may be retried after a transport failure without an
#: idempotency key.
SAFE_METHODS = frozenset({"GET", "PUT"})

ACTION_PAYLOAD_KEY = "data"


@dataclass(frozen=True)
class Endpoint:
    """One API operation.

    Attributes:
        method: HTTP verb.
        path: Path template with ``:placeholder`` tokens.
        payload_key: Key the request body is wrapped in; ``None`` sends no body.
        idempotent: Send an ``Idempotency-Key`` header (create endpoints).
        many: The response is a paginated list.
    """

    method: str
    path: str
    payload_key: Optional[str] = None
    idempotent: bool = False
    many: bool = False


@dataclass(frozen=True)
class ResourceDefinition:
    name: str
    model: Type[ApiModel]
    endpoints: Dict[str, Endpoint] = field(default_factory=dict)

    def endpoint(self, name: str) -> Optional[Endpoint]:
        return self.endpoints.get(name)


def _list(resource: str) -> Endpoint:
    return Endpoint("GET", f"/{resource}", many=True)


def _get(resource: str) -> Endpoint:
    return Endpoint("GET", f"/{resource}/:identity")


def _create(resource: str, path: Optional[str] = None, idempotent: bool = True) -> Endpoint:
    return Endpoint(
        "POST", path or f"/{resource}", payload_key=resource, idempotent=idempotent
    )


def _update(resource: str) -> Endpoint:
    return Endpoint("PUT", f"/{resource}/:identity", payload_key=resource)


def _action(resource: str, action: str) -> Endpoint:
    return Endpoint(
        "POST",
        f"/{resource}/:identity/actions/{action}",
        payload_key=ACTION_PAYLOAD_KEY,
    )


def _crud(resource: str, *actions: str, update: bool = True) -> Dict[str, Endpoint]:
    endpoints = {
        "list": _list(resource),
        "get": _get(resource),
        "create": _create(resource),
    }
    if update:
        endpoints["update"] = _update(resource)
    for action in actions:
        endpoints[action] = _action(resource, action)
    return endpoints


def _define(name: str, model: Type[ApiModel], endpoints: Dict[str, Endpoint]) -> ResourceDefinition:
    return ResourceDefinition(name=name, model=model, endpoints=endpoints)


RESOURCES: Dict[str, ResourceDefinition] = {
    definition.name: definition
    for definition in [
        _define("creditors", Creditor, _crud("creditors")),
        _define(
            "creditor_bank_accounts",
            CreditorBankAccount,
            _crud("creditor_bank_accounts", "disable", update=False),
        ),
        _define(
            "customers",
            Customer,
            {
                **_crud("customers"),
                "remove": Endpoint("DELETE", "/customers/:identity"),
            },
        ),
        _define(
            "customer_bank_accounts",
            CustomerBankAccount,
            _crud("customer_bank_accounts", "disable"),
        ),
        _define("mandates", Mandate, _crud("mandates", "cancel", "reinstate")),
        _define(
            "mandate_pdfs",
            MandatePdf,
            {"create": _create("mandate_pdfs", idempotent=False)},
        ),
        _define("payments", Payment, _crud("payments", "cancel", "retry")),
        _define("refunds", Refund, _crud("refunds")),
        _define(
            "subscriptions",
            Subscription,
            _crud("subscriptions", "cancel"),
        ),
        _define(
            "instalment_schedules",
            InstalmentSchedule,
            {
                "list": _list("instalment_schedules"),
                "get": _get("instalment_schedules"),
                "update": _update("instalment_schedules"),
                "create_with_dates": _create("instalment_schedules"),
                "create_with_schedule": _create("instalment_schedules"),
                "cancel": _action("instalment_schedules", "cancel"),
            },
        ),
        _define(
            "payouts",
            Payout,
            {
                "list": _list("payouts"),
                "get": _get("payouts"),
                "update": _update("payouts"),
            },
        ),
        _define("payout_items", PayoutItem, {"list": _list("payout_items")}),
        _define("events", Event, {"list": _list("events"), "get": _get("events")}),
        _define("exports", Export, {"list": _list("exports"), "get": _get("exports")}),
        _define(
            "blocks",
            Block,
            {
                **_crud("blocks", "disable", "enable", update=False),
                "block_by_ref": Endpoint(
                    "POST",
                    "/blocks/block_by_ref",
                    payload_key=ACTION_PAYLOAD_KEY,
                    many=True,
                ),
            },
        ),
        _define(
            "billing_requests",
            BillingRequest,
            _crud(
                "billing_requests",
                "collect_customer_details",
                "collect_bank_account",
                "confirm_payer_details",
                "fulfil",
                "cancel",
                "notify",
                "fallback",
                "choose_currency",
                "select_institution",
                update=False,
            ),
        ),
        _define(
            "billing_request_flows",
            BillingRequestFlow,
            {
                "create": _create("billing_request_flows", idempotent=False),
                "initialise": _action("billing_request_flows", "initialise"),
            },
        ),
        _define(
            "billing_request_templates",
            BillingRequestTemplate,
            _crud("billing_request_templates"),
        ),
        _define(
            "redirect_flows",
            RedirectFlow,
            {
                "create": _create("redirect_flows"),
                "get": _get("redirect_flows"),
                "complete": _action("redirect_flows", "complete"),
            },
        ),
        _define(
            "outbound_payments",
            OutboundPayment,
            {
                **_crud("outbound_payments", "approve", "cancel"),
                "withdraw": Endpoint(
                    "POST",
                    "/outbound_payments/withdrawal",
                    payload_key=ACTION_PAYLOAD_KEY,
                ),
            },
        ),
        _define("institutions", Institution, {"list": _list("institutions")}),
        _define(
            "currency_exchange_rates",
            CurrencyExchangeRate,
            {"list": _list("currency_exchange_rates")},
        ),
        _define(
            "tax_rates", TaxRate, {"list": _list("tax_rates"), "get": _get("tax_rates")}
        ),
        _define(
            "scheme_identifiers",
            SchemeIdentifier,
            _crud("scheme_identifiers", update=False),
        ),
        _define(
            "webhooks",
            Webhook,
            {
                "list": _list("webhooks"),
                "get": _get("webhooks"),
                "retry": _action("webhooks", "retry"),
            },
        ),
    ]
}
