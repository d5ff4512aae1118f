"""Stripe access for the SuperAI billing flows.

GA v1 resources go through the ``stripe`` SDK. Preview resources (billing v2
cadences, pricing plans, intents and meter events, custom pricing unit credit
grants) are not modelled by the SDK, so they are called over HTTPS with
``requests`` and an explicit ``Stripe-Version`` header. Every failure surfaces
as :class:`~billing.errors.StripeAPIError`.
"""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from functools import lru_cache
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

import requests
import stripe

from .errors import StripeAPIError

logger = logging.getLogger(__name__)

APP_NAME = "SuperAI Billing"
STRIPE_API_BASE = "https://api.stripe.com"

API_VERSION = "2025-08-27.basil"
CADENCE_API_VERSION = "2025-08-27.preview"
PREVIEW_API_VERSION = "unsafe-development"
CREDIT_GRANT_API_VERSION = "2025-05-28.basil;checkout_product_catalog_preview=v1"
TOP_UP_CREDIT_GRANT_API_VERSION = "2025-07-03.private"

FormParams = Union[Mapping[str, Any], Sequence[Tuple[str, Any]]]


def _get_required_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise RuntimeError(f"Environment variable {name} is required for billing.")
    return value


def _http_timeout() -> float:
    return float(os.getenv("STRIPE_HTTP_TIMEOUT_SECONDS", "30"))


@lru_cache(maxsize=1)
def _configure_stripe() -> str:
    api_key = _get_required_env("STRIPE_SECRET_KEY")
    stripe.api_key = api_key
    stripe.api_version = API_VERSION
    stripe.app_info = {
        "name": APP_NAME,
        "version": "1.0.0",
    }
    return api_key


def _to_plain(value: Any) -> Any:
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return value


@contextmanager
def _sdk_call(operation: str) -> Iterator[None]:
    try:
        yield
    except stripe.StripeError as exc:
        body = exc.http_body or exc.user_message or str(exc)
        logger.error("%s failed: %s", operation, body)
        raise StripeAPIError(operation, exc.http_status, body) from exc


class StripeGateway:
    """Thin, stateless wrapper around every Stripe call the flows make."""

    def __init__(self, api_key: Optional[str] = None, *, api_base: str = STRIPE_API_BASE) -> None:
        self._api_key = api_key
        self._api_base = api_base.rstrip("/")

    @property
    def api_key(self) -> str:
        if self._api_key:
            return self._api_key
        return _configure_stripe()

    # ------------------------------------------------------------------
    # Raw HTTP transport
    # ------------------------------------------------------------------

    def _request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        form: Optional[FormParams] = None,
        json_body: Optional[Mapping[str, Any]] = None,
        params: Optional[FormParams] = None,
        stripe_version: Optional[str] = None,
    ) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        if stripe_version:
            headers["Stripe-Version"] = stripe_version

        kwargs: Dict[str, Any] = {"headers": headers, "timeout": _http_timeout()}
        if params is not None:
            kwargs["params"] = params
        if json_body is not None:
            headers["Content-Type"] = "application/json"
            kwargs["json"] = dict(json_body)
        elif form is not None:
            headers["Content-Type"] = "application/x-www-form-urlencoded"
            kwargs["data"] = form

        url = f"{self._api_base}{path}"
        try:
            response = requests.request(method, url, **kwargs)
        except requests.RequestException as exc:
            logger.error("%s failed before a response arrived: %s", operation, exc)
            raise StripeAPIError(operation, None, str(exc)) from exc

        text = response.text or ""
        if not response.ok:
            logger.error("%s failed: %s %s", operation, response.status_code, text)
            raise StripeAPIError(operation, response.status_code, text)

        if not text.strip():
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise StripeAPIError(operation, response.status_code, text) from exc

    # ------------------------------------------------------------------
    # Customers, test clocks, checkout
    # ------------------------------------------------------------------

    def create_test_clock(self, *, frozen_time: int) -> Dict[str, Any]:
        with _sdk_call("Test clock creation"):
            clock = stripe.test_helpers.TestClock.create(frozen_time=frozen_time, api_key=self.api_key)
        return _to_plain(clock)

    def create_customer(self, **params: Any) -> Dict[str, Any]:
        with _sdk_call("Customer creation"):
            customer = stripe.Customer.create(**params, api_key=self.api_key)
        return _to_plain(customer)

    def update_customer(self, customer_id: str, **params: Any) -> Dict[str, Any]:
        with _sdk_call("Customer update"):
            customer = stripe.Customer.modify(customer_id, **params, api_key=self.api_key)
        return _to_plain(customer)

    def retrieve_customer(self, customer_id: str) -> Dict[str, Any]:
        with _sdk_call("Customer retrieval"):
            customer = stripe.Customer.retrieve(customer_id, api_key=self.api_key)
        return _to_plain(customer)

    def create_checkout_session(self, **params: Any) -> Dict[str, Any]:
        with _sdk_call("Checkout session creation"):
            session = stripe.checkout.Session.create(**params, api_key=self.api_key)
        return _to_plain(session)

    def retrieve_checkout_session(self, session_id: str, *, expand: Sequence[str] = ()) -> Dict[str, Any]:
        with _sdk_call("Checkout session retrieval"):
            session = stripe.checkout.Session.retrieve(session_id, expand=list(expand), api_key=self.api_key)
        return _to_plain(session)

    def retrieve_account(self) -> Dict[str, Any]:
        with _sdk_call("Account retrieval"):
            account = stripe.Account.retrieve(api_key=self.api_key)
        return _to_plain(account)

    # ------------------------------------------------------------------
    # Invoices, subscriptions, payment intents
    # ------------------------------------------------------------------

    def create_invoice(self, **params: Any) -> Dict[str, Any]:
        with _sdk_call("Invoice creation"):
            invoice = stripe.Invoice.create(**params, api_key=self.api_key)
        return _to_plain(invoice)

    def create_invoice_item(self, form: FormParams) -> Dict[str, Any]:
        return self._request("Invoice item creation", "POST", "/v1/invoiceitems", form=form)

    def finalize_invoice(self, invoice_id: str) -> Dict[str, Any]:
        with _sdk_call("Invoice finalization"):
            invoice = stripe.Invoice.finalize_invoice(invoice_id, api_key=self.api_key)
        return _to_plain(invoice)

    def pay_invoice(self, invoice_id: str) -> Dict[str, Any]:
        with _sdk_call("Invoice payment"):
            invoice = stripe.Invoice.pay(invoice_id, api_key=self.api_key)
        return _to_plain(invoice)

    def create_subscription(self, **params: Any) -> Dict[str, Any]:
        with _sdk_call("Subscription creation"):
            subscription = stripe.Subscription.create(**params, api_key=self.api_key)
        return _to_plain(subscription)

    def create_payment_intent(self, **params: Any) -> Dict[str, Any]:
        with _sdk_call("PaymentIntent creation"):
            intent = stripe.PaymentIntent.create(**params, api_key=self.api_key)
        return _to_plain(intent)

    # ------------------------------------------------------------------
    # Credit grants
    # ------------------------------------------------------------------

    def create_credit_grant(self, form: FormParams, *, stripe_version: str = CREDIT_GRANT_API_VERSION) -> Dict[str, Any]:
        return self._request(
            "Credit grant creation",
            "POST",
            "/v1/billing/credit_grants",
            form=form,
            stripe_version=stripe_version,
        )

    def list_credit_grants(self, customer_id: str) -> List[Dict[str, Any]]:
        payload = self._request(
            "Credit grant listing",
            "GET",
            "/v1/billing/credit_grants",
            params={"customer": customer_id},
            stripe_version=CREDIT_GRANT_API_VERSION,
        )
        return list(payload.get("data") or [])

    def get_credit_balance_summary(self, customer_id: str, credit_grant_id: str) -> Dict[str, Any]:
        return self._request(
            "Credit balance summary",
            "GET",
            "/v1/billing/credit_balance_summary",
            params=[
                ("customer", customer_id),
                ("filter[type]", "credit_grant"),
                ("filter[credit_grant]", credit_grant_id),
            ],
            stripe_version=CREDIT_GRANT_API_VERSION,
        )

    # ------------------------------------------------------------------
    # Billing v2 preview
    # ------------------------------------------------------------------

    def create_cadence(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        return self._request(
            "Cadence creation",
            "POST",
            "/v2/billing/cadences",
            json_body=payload,
            stripe_version=CADENCE_API_VERSION,
        )

    def retrieve_pricing_plan(self, pricing_plan_id: str) -> Dict[str, Any]:
        return self._request(
            "Pricing plan fetch",
            "GET",
            f"/v2/billing/pricing_plans/{pricing_plan_id}",
            stripe_version=PREVIEW_API_VERSION,
        )

    def create_billing_intent(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        return self._request(
            "Billing intent creation",
            "POST",
            "/v2/billing/intents",
            json_body=payload,
            stripe_version=PREVIEW_API_VERSION,
        )

    def reserve_billing_intent(self, intent_id: str) -> Dict[str, Any]:
        return self._request(
            "Billing intent reserve",
            "POST",
            f"/v2/billing/intents/{intent_id}/reserve",
            json_body={},
            stripe_version=PREVIEW_API_VERSION,
        )

    def commit_billing_intent(self, intent_id: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        return self._request(
            "Billing intent commit",
            "POST",
            f"/v2/billing/intents/{intent_id}/commit",
            json_body=payload,
            stripe_version=PREVIEW_API_VERSION,
        )

    def create_meter_event(self, event_name: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        return self._request(
            "Meter event post",
            "POST",
            "/v2/billing/meter_events",
            json_body={"event_name": event_name, "payload": dict(payload)},
            stripe_version=PREVIEW_API_VERSION,
        )


@lru_cache(maxsize=1)
def get_stripe_gateway() -> StripeGateway:
    """Return the process-wide gateway; routes resolve it through ``Depends``."""

    return StripeGateway()
