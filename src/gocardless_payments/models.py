"""Pydantic models for GoCardless API resources, request payloads and envelopes.

Resource models declare the commonly used fields and keep any additional
fields returned by the API (``extra="allow"``), so new API fields never break
deserialization.
"""

from datetime import date, datetime
from typing import Any, Dict, Generic, List, Optional, TypeVar

import requests
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator

__all__ = [
    "ApiModel",
    "RequestModel",
    "IdempotentRequest",
    "Cursors",
    "Meta",
    "Page",
    "ErrorDetail",
    "ApiErrorBody",
    "Creditor",
    "CreditorBankAccount",
    "Customer",
    "CustomerBankAccount",
    "Mandate",
    "MandatePdf",
    "Payment",
    "Refund",
    "Subscription",
    "InstalmentSchedule",
    "Payout",
    "PayoutItem",
    "Event",
    "Export",
    "Block",
    "BillingRequest",
    "BillingRequestFlow",
    "BillingRequestTemplate",
    "RedirectFlow",
    "OutboundPayment",
    "Institution",
    "CurrencyExchangeRate",
    "TaxRate",
    "SchemeIdentifier",
    "Webhook",
    "CreatedAtFilter",
    "ListRequest",
    "CustomerCreateRequest",
    "MandateLinks",
    "MandateCreateRequest",
    "PaymentLinks",
    "PaymentCreateRequest",
    "PaymentListRequest",
    "RefundLinks",
    "RefundCreateRequest",
    "RefundListRequest",
    "SubscriptionLinks",
    "SubscriptionCreateRequest",
    "EventListRequest",
]

class ApiModel(BaseModel):
    """Base for every model deserialized from an API response."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    _api_response: Optional[requests.Response] = PrivateAttr(default=None)

    @property
    def api_response(self) -> Optional[requests.Response]:
        """The raw HTTP response this object was read from, if any."""
        return self._api_response


class RequestModel(BaseModel):
    """Base for request payloads. Unset optional fields are never sent."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class IdempotentRequest(RequestModel):
    """A create payload carrying an ``Idempotency-Key``.

    When ``idempotency_key`` is left unset, the client generates one per
    logical call and reuses it across retries.
    """

    idempotency_key: Optional[str] = Field(default=None, exclude=True)


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------


class Cursors(BaseModel):
    before: Optional[str] = None
    after: Optional[str] = None


class Meta(BaseModel):
    model_config = ConfigDict(extra="allow")

    cursors: Cursors = Field(default_factory=Cursors)
    limit: Optional[int] = None


T = TypeVar("T", bound=ApiModel)


class Page(BaseModel, Generic[T]):
    """One page of a cursor-paginated list response."""

    items: List[T] = Field(default_factory=list)
    meta: Meta = Field(default_factory=Meta)

    _api_response: Optional[requests.Response] = PrivateAttr(default=None)

    @property
    def api_response(self) -> Optional[requests.Response]:
        return self._api_response

    @property
    def after(self) -> Optional[str]:
        """Cursor for the next page, ``None`` on the last page."""
        return self.meta.cursors.after


class ErrorDetail(BaseModel):
    """A single entry of an error response's ``errors`` list."""

    model_config = ConfigDict(extra="allow")

    field: Optional[str] = None
    message: Optional[str] = None
    reason: Optional[str] = None
    request_pointer: Optional[str] = None
    links: Optional[Dict[str, str]] = None


class ApiErrorBody(BaseModel):
    """The ``error`` object of a non-2xx response."""

    model_config = ConfigDict(extra="allow")

    type: Optional[str] = None
    code: Optional[int] = None
    message: Optional[str] = None
    documentation_url: Optional[str] = None
    request_id: Optional[str] = None
    errors: List[ErrorDetail] = Field(default_factory=list)

    @field_validator("errors", mode="before")
    @classmethod
    def _none_to_empty(cls, v):
        return v or []


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------


class Creditor(ApiModel):
    id: str
    created_at: Optional[datetime] = None
    name: Optional[str] = None
    country_code: Optional[str] = None
    verification_status: Optional[str] = None
    can_create_refunds: Optional[bool] = None
    links: Dict[str, Any] = Field(default_factory=dict)


class CreditorBankAccount(ApiModel):
    id: str
    created_at: Optional[datetime] = None
    account_holder_name: Optional[str] = None
    account_number_ending: Optional[str] = None
    bank_name: Optional[str] = None
    country_code: Optional[str] = None
    currency: Optional[str] = None
    enabled: Optional[bool] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    links: Dict[str, Any] = Field(default_factory=dict)


class Customer(ApiModel):
    id: str
    created_at: Optional[datetime] = None
    email: Optional[str] = None
    given_name: Optional[str] = None
    family_name: Optional[str] = None
    company_name: Optional[str] = None
    country_code: Optional[str] = None
    language: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)

    @property
    def display_name(self) -> str:
        if self.company_name:
            return self.company_name
        names = [n for n in (self.given_name, self.family_name) if n]
        return " ".join(names) or self.email or self.id


class CustomerBankAccount(ApiModel):
    id: str
    created_at: Optional[datetime] = None
    account_holder_name: Optional[str] = None
    account_number_ending: Optional[str] = None
    bank_name: Optional[str] = None
    country_code: Optional[str] = None
    currency: Optional[str] = None
    enabled: Optional[bool] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    links: Dict[str, Any] = Field(default_factory=dict)


class Mandate(ApiModel):
    id: str
    created_at: Optional[datetime] = None
    reference: Optional[str] = None
    scheme: Optional[str] = None
    status: Optional[str] = None
    next_possible_charge_date: Optional[date] = None
    payments_require_approval: Optional[bool] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    links: Dict[str, Any] = Field(default_factory=dict)


class MandatePdf(ApiModel):
    url: str
    expires_at: Optional[datetime] = None


class Payment(ApiModel):
    id: str
    created_at: Optional[datetime] = None
    amount: Optional[int] = None
    amount_refunded: Optional[int] = None
    currency: Optional[str] = None
    charge_date: Optional[date] = None
    description: Optional[str] = None
    reference: Optional[str] = None
    status: Optional[str] = None
    retry_if_possible: Optional[bool] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    links: Dict[str, Any] = Field(default_factory=dict)


class Refund(ApiModel):
    id: str
    created_at: Optional[datetime] = None
    amount: Optional[int] = None
    currency: Optional[str] = None
    reference: Optional[str] = None
    status: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    links: Dict[str, Any] = Field(default_factory=dict)


class Subscription(ApiModel):
    id: str
    created_at: Optional[datetime] = None
    amount: Optional[int] = None
    currency: Optional[str] = None
    name: Optional[str] = None
    interval: Optional[int] = None
    interval_unit: Optional[str] = None
    day_of_month: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: Optional[str] = None
    upcoming_payments: List[Dict[str, Any]] = Field(default_factory=list)
    metadata: Dict[str, str] = Field(default_factory=dict)
    links: Dict[str, Any] = Field(default_factory=dict)


class InstalmentSchedule(ApiModel):
    id: str
    created_at: Optional[datetime] = None
    name: Optional[str] = None
    currency: Optional[str] = None
    total_amount: Optional[int] = None
    status: Optional[str] = None
    payment_errors: Dict[str, Any] = Field(default_factory=dict)
    metadata: Dict[str, str] = Field(default_factory=dict)
    links: Dict[str, Any] = Field(default_factory=dict)


class Payout(ApiModel):
    id: str
    created_at: Optional[datetime] = None
    amount: Optional[int] = None
    currency: Optional[str] = None
    arrival_date: Optional[date] = None
    deducted_fees: Optional[int] = None
    payout_type: Optional[str] = None
    reference: Optional[str] = None
    status: Optional[str] = None
    links: Dict[str, Any] = Field(default_factory=dict)


class PayoutItem(ApiModel):
    amount: Optional[str] = None
    type: Optional[str] = None
    taxes: List[Dict[str, Any]] = Field(default_factory=list)
    links: Dict[str, Any] = Field(default_factory=dict)


class Event(ApiModel):
    id: str
    created_at: Optional[datetime] = None
    action: Optional[str] = None
    resource_type: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    resource_metadata: Dict[str, Any] = Field(default_factory=dict)
    links: Dict[str, Any] = Field(default_factory=dict)


class Export(ApiModel):
    id: str
    created_at: Optional[datetime] = None
    currency: Optional[str] = None
    export_type: Optional[str] = None
    download_url: Optional[str] = None


class Block(ApiModel):
    id: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    active: Optional[bool] = None
    block_type: Optional[str] = None
    reason_type: Optional[str] = None
    reason_description: Optional[str] = None
    resource_reference: Optional[str] = None


class BillingRequest(ApiModel):
    id: str
    created_at: Optional[datetime] = None
    status: Optional[str] = None
    actions: List[Dict[str, Any]] = Field(default_factory=list)
    mandate_request: Optional[Dict[str, Any]] = None
    payment_request: Optional[Dict[str, Any]] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    links: Dict[str, Any] = Field(default_factory=dict)


class BillingRequestFlow(ApiModel):
    id: str
    created_at: Optional[datetime] = None
    authorisation_url: Optional[str] = None
    expires_at: Optional[datetime] = None
    redirect_uri: Optional[str] = None
    exit_uri: Optional[str] = None
    links: Dict[str, Any] = Field(default_factory=dict)


class BillingRequestTemplate(ApiModel):
    id: str
    created_at: Optional[datetime] = None
    name: Optional[str] = None
    authorisation_url: Optional[str] = None
    payment_request_amount: Optional[str] = None
    payment_request_currency: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)


class RedirectFlow(ApiModel):
    id: str
    created_at: Optional[datetime] = None
    description: Optional[str] = None
    redirect_url: Optional[str] = None
    session_token: Optional[str] = None
    success_redirect_url: Optional[str] = None
    confirmation_url: Optional[str] = None
    scheme: Optional[str] = None
    links: Dict[str, Any] = Field(default_factory=dict)


class OutboundPayment(ApiModel):
    id: str
    created_at: Optional[datetime] = None
    amount: Optional[int] = None
    currency: Optional[str] = None
    description: Optional[str] = None
    execution_date: Optional[date] = None
    reference: Optional[str] = None
    scheme: Optional[str] = None
    status: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    links: Dict[str, Any] = Field(default_factory=dict)


class Institution(ApiModel):
    id: str
    name: Optional[str] = None
    country_code: Optional[str] = None
    logo_url: Optional[str] = None
    icon_url: Optional[str] = None


class CurrencyExchangeRate(ApiModel):
    source: str
    target: str
    rate: Optional[str] = None
    time: Optional[datetime] = None


class TaxRate(ApiModel):
    id: str
    jurisdiction: Optional[str] = None
    percentage: Optional[str] = None
    type: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class SchemeIdentifier(ApiModel):
    id: str
    created_at: Optional[datetime] = None
    name: Optional[str] = None
    reference: Optional[str] = None
    scheme: Optional[str] = None
    status: Optional[str] = None
    currency: Optional[str] = None


class Webhook(ApiModel):
    id: str
    created_at: Optional[datetime] = None
    url: Optional[str] = None
    is_test: Optional[bool] = None
    successful: Optional[bool] = None
    response_code: Optional[int] = None
    request_body: Optional[str] = None
    response_body: Optional[str] = None


# ---------------------------------------------------------------------------
# Request payloads
# ---------------------------------------------------------------------------


class CreatedAtFilter(RequestModel):
    """Range filter serialized as ``created_at[gt]=...`` and friends."""

    gt: Optional[datetime] = None
    gte: Optional[datetime] = None
    lt: Optional[datetime] = None
    lte: Optional[datetime] = None


class ListRequest(RequestModel):
    """Common cursor-pagination and filter parameters for list endpoints."""

    after: Optional[str] = None
    before: Optional[str] = None
    limit: Optional[int] = None
    created_at: Optional[CreatedAtFilter] = None


class CustomerCreateRequest(IdempotentRequest):
    email: Optional[str] = None
    given_name: Optional[str] = None
    family_name: Optional[str] = None
    company_name: Optional[str] = None
    address_line1: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    country_code: Optional[str] = None
    language: Optional[str] = None
    phone_number: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None


class MandateLinks(RequestModel):
    customer_bank_account: str
    creditor: Optional[str] = None


class MandateCreateRequest(IdempotentRequest):
    links: MandateLinks
    reference: Optional[str] = None
    scheme: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None


class PaymentLinks(RequestModel):
    mandate: str


class PaymentCreateRequest(IdempotentRequest):
    amount: int
    currency: str
    links: PaymentLinks
    charge_date: Optional[date] = None
    description: Optional[str] = None
    reference: Optional[str] = None
    retry_if_possible: Optional[bool] = None
    app_fee: Optional[int] = None
    metadata: Optional[Dict[str, str]] = None


class PaymentListRequest(ListRequest):
    customer: Optional[str] = None
    mandate: Optional[str] = None
    subscription: Optional[str] = None
    status: Optional[str] = None
    currency: Optional[str] = None


class RefundLinks(RequestModel):
    payment: str


class RefundCreateRequest(IdempotentRequest):
    amount: int
    links: RefundLinks
    total_amount_confirmation: Optional[int] = None
    reference: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None


class RefundListRequest(ListRequest):
    payment: Optional[str] = None
    mandate: Optional[str] = None
    refund_type: Optional[str] = None


class SubscriptionLinks(RequestModel):
    mandate: str


class SubscriptionCreateRequest(IdempotentRequest):
    amount: int
    currency: str
    interval_unit: str
    links: SubscriptionLinks
    name: Optional[str] = None
    interval: Optional[int] = None
    day_of_month: Optional[int] = None
    month: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    count: Optional[int] = None
    payment_reference: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None


class EventListRequest(ListRequest):
    action: Optional[str] = None
    resource_type: Optional[str] = None
    include: Optional[str] = None
    mandate: Optional[str] = None
    payment: Optional[str] = None
    subscription: Optional[str] = None
