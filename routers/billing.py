"""JSON endpoints backing the SuperAI billing pages."""

from __future__ import annotations

import logging
import os
from typing import Any, Callable, Dict, Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from billing import (
    AI1_EVENT_NAME,
    SUPERAI_EVENT_NAME,
    BillingError,
    CustomerDeleted,
    ProvisioningError,
    StripeGateway,
    create_checkout_flow,
    create_invoice_and_credit,
    get_customer_details,
    get_stripe_gateway,
    process_checkout_success,
    read_credit_balance,
    record_fixed_meter_event,
    record_meter_event,
)

router = APIRouter(prefix="/api", tags=["billing"])
logger = logging.getLogger(__name__)


def build_base_url(request: Request) -> str:
    """Public base URL for Stripe redirects: ``APP_BASE_URL`` or the request's own host."""

    configured = os.getenv("APP_BASE_URL")
    if configured:
        return configured.rstrip("/")

    forwarded_host = request.headers.get("x-forwarded-host")
    forwarded_proto = request.headers.get("x-forwarded-proto")
    if forwarded_host:
        scheme = forwarded_proto or request.url.scheme
        return f"{scheme}://{forwarded_host}"

    host = request.headers.get("host") or request.url.netloc
    scheme = forwarded_proto or request.url.scheme
    return f"{scheme}://{host}"


def _failure(status_code: int, error: str, details: Optional[str] = None, **extra: Any) -> JSONResponse:
    content: Dict[str, Any] = {"success": False, "error": error}
    if details is not None:
        content["details"] = details
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content)


async def _read_body(request: Request) -> Dict[str, Any]:
    try:
        payload = await request.json()
    except ValueError as exc:
        raise ValueError("Request body must be valid JSON") from exc
    if not isinstance(payload, dict):
        raise ValueError("Request body must be a JSON object")
    return payload


async def _respond(
    request: Request,
    operation: str,
    call: Callable[[Dict[str, Any]], Dict[str, Any]],
    *,
    error: Optional[str] = None,
) -> JSONResponse:
    """Run ``call`` off the event loop and translate its outcome to the response envelope.

    ``error`` is the fixed message for provider failures, with the provider
    detail in ``details``; without it the detail itself becomes ``error``.
    """

    try:
        payload = await _read_body(request)
        result = await run_in_threadpool(call, payload)
    except ValueError as exc:
        return _failure(status.HTTP_400_BAD_REQUEST, str(exc))
    except CustomerDeleted as exc:
        return _failure(status.HTTP_404_NOT_FOUND, str(exc))
    except ProvisioningError as exc:
        logger.error("%s failed at step '%s' after %s", operation, exc.step, list(exc.completed_steps))
        return _failure(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            error or str(exc.cause),
            details=str(exc.cause),
            failedStep=exc.step,
            completedSteps=list(exc.completed_steps),
        )
    except (BillingError, RuntimeError) as exc:
        logger.exception("%s failed", operation)
        if error:
            return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, error, details=str(exc))
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))

    return JSONResponse(content={"success": True, **result})


@router.post("/create-checkout-flow")
async def create_checkout_flow_endpoint(request: Request, gateway: StripeGateway = Depends(get_stripe_gateway)):
    base_url = build_base_url(request)
    return await _respond(
        request,
        "Checkout flow",
        lambda body: create_checkout_flow(
            gateway,
            name=body.get("name"),
            email=body.get("email"),
            plan_slug=body.get("plan") or "core",
            base_url=base_url,
        ),
        error="Failed to create SuperAI checkout flow",
    )


@router.post("/process-checkout-success")
async def process_checkout_success_endpoint(request: Request, gateway: StripeGateway = Depends(get_stripe_gateway)):
    return await _respond(
        request,
        "Checkout success",
        lambda body: process_checkout_success(gateway, body.get("sessionId")),
        error="Failed to process checkout completion",
    )


@router.post("/credit-balance")
async def credit_balance_endpoint(request: Request, gateway: StripeGateway = Depends(get_stripe_gateway)):
    return await _respond(
        request,
        "Credit balance",
        lambda body: read_credit_balance(gateway, body.get("customerId")),
    )


@router.post("/customer-details")
async def customer_details_endpoint(request: Request, gateway: StripeGateway = Depends(get_stripe_gateway)):
    return await _respond(
        request,
        "Customer details",
        lambda body: {"customer": get_customer_details(gateway, body.get("customerId"))},
    )


@router.post("/meter-events")
async def meter_events_endpoint(request: Request, gateway: StripeGateway = Depends(get_stripe_gateway)):
    return await _respond(
        request,
        "Meter event",
        lambda body: record_meter_event(
            gateway,
            customer_id=body.get("customerId"),
            value=body.get("value"),
            system=body.get("system"),
            date=body.get("date"),
        ),
    )


@router.post("/meter-superai")
async def meter_superai_endpoint(request: Request, gateway: StripeGateway = Depends(get_stripe_gateway)):
    return await _respond(
        request,
        "SuperAI meter event",
        lambda body: record_fixed_meter_event(
            gateway,
            event_name=SUPERAI_EVENT_NAME,
            customer_id=body.get("customerId"),
            value=body.get("value"),
        ),
    )


@router.post("/meter-ai1")
async def meter_ai1_endpoint(request: Request, gateway: StripeGateway = Depends(get_stripe_gateway)):
    return await _respond(
        request,
        "AI-1 meter event",
        lambda body: record_fixed_meter_event(
            gateway,
            event_name=AI1_EVENT_NAME,
            customer_id=body.get("customerId"),
            value=body.get("value"),
        ),
    )


@router.post("/create-invoice-and-credit")
async def create_invoice_and_credit_endpoint(request: Request, gateway: StripeGateway = Depends(get_stripe_gateway)):
    return await _respond(
        request,
        "Invoice and credit top-up",
        lambda body: create_invoice_and_credit(
            gateway,
            customer_id=body.get("customerId"),
            invoice_amount=body.get("invoiceAmount"),
            credit_amount=body.get("creditAmount"),
        ),
        error="Failed to create invoice and credit grant",
    )
