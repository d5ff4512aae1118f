"""Server-rendered SuperAI pages: plan cards and the post-checkout status page."""

from __future__ import annotations

import logging
import os
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from billing import get_plan_definitions

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
TEMPLATES_DIR = os.path.join(BASE_DIR, "templates")

templates = Jinja2Templates(directory=TEMPLATES_DIR)

router = APIRouter()
logger = logging.getLogger(__name__)

TOP_UP_DEFAULT_INVOICE_DOLLARS = 500
TOP_UP_DEFAULT_CREDIT_UNITS = 5000
METERED_SYSTEMS = ("Open AI", "Claude", "Grok")


@router.get("/", response_class=HTMLResponse)
async def index(request: Request):
    return RedirectResponse(url="/superai")


@router.get("/superai", response_class=HTMLResponse)
async def plans_page(request: Request, checkout: Optional[str] = None):
    cancelled = checkout == "cancelled"
    if cancelled:
        logger.info("Checkout cancelled; showing plans again")

    context = {
        "request": request,
        "plans": get_plan_definitions(),
        "checkout_cancelled": cancelled,
        "metered_systems": METERED_SYSTEMS,
    }
    return templates.TemplateResponse(request, "plans.html", context)


@router.get("/superai/success", response_class=HTMLResponse)
async def success_page(
    request: Request,
    session_id: Optional[str] = None,
    customerid: Optional[str] = None,
):
    logger.info("Status page opened session=%s customer=%s", session_id, customerid)
    context = {
        "request": request,
        "session_id": session_id or "",
        "customer_id": customerid or "",
        "metered_systems": METERED_SYSTEMS,
        "top_up_invoice_dollars": TOP_UP_DEFAULT_INVOICE_DOLLARS,
        "top_up_credit_units": TOP_UP_DEFAULT_CREDIT_UNITS,
    }
    return templates.TemplateResponse(request, "success.html", context)
