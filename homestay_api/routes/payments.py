"""
HimKosh payment endpoints.

``/payment/callback`` is called by the gateway, not by a portal user: it
carries no identity headers and answers with HTML.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Form, Query, Request
from fastapi.responses import HTMLResponse

from homestay_api.dependencies import drain_outbox, get_actor, get_settlement
from homestay_api.schemas import PaymentInitiateBody, TransactionOut
from homestay_kernel.domain.dtos import Actor
from homestay_kernel.domain.workflow import OFFICER_ROLES
from homestay_kernel.exceptions import GuardRejection
from homestay_services.payment_settlement import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    PaymentSettlement,
)
from homestay_services.status_page import render_processing_page

router = APIRouter(prefix="/payment", tags=["payment"])


def _require_staff(actor: Actor, operation: str) -> None:
    if actor.role not in OFFICER_ROLES:
        raise GuardRejection(operation, "role", "Only department staff can perform this action")


@router.post("/initiate")
def initiate_payment(
    body: PaymentInitiateBody,
    request: Request,
    background: BackgroundTasks,
    actor: Actor = Depends(get_actor),
    settlement: PaymentSettlement = Depends(get_settlement),
):
    portal = (
        body.portal_base_url
        or request.headers.get("origin")
        or request.headers.get("referer")
    )
    initiation = settlement.initiate(body.application_id, actor, portal_base_url=portal)
    background.add_task(drain_outbox, request.app)
    return initiation.as_response()


@router.get("/callback", response_class=HTMLResponse)
def callback_holding_page():
    return HTMLResponse(render_processing_page())


@router.post("/callback", response_class=HTMLResponse)
def payment_callback(
    request: Request,
    background: BackgroundTasks,
    encdata: str | None = Form(None),
    settlement: PaymentSettlement = Depends(get_settlement),
):
    outcome = settlement.handle_callback(encdata)
    background.add_task(drain_outbox, request.app)
    return HTMLResponse(outcome.html)


@router.post("/verify/{app_ref_no}")
def verify_payment(
    app_ref_no: str,
    actor: Actor = Depends(get_actor),
    settlement: PaymentSettlement = Depends(get_settlement),
):
    _require_staff(actor, "verify_payment")
    result = settlement.verify(app_ref_no)
    return {"appRefNo": result.app_ref_no, "verified": result.verified, "raw": result.data}


@router.post("/applications/{application_id}/reset", response_model=TransactionOut)
def reset_payment(
    application_id: UUID,
    actor: Actor = Depends(get_actor),
    settlement: PaymentSettlement = Depends(get_settlement),
):
    return settlement.reset_latest(application_id, actor)


@router.get("/applications/{application_id}/transactions", response_model=list[TransactionOut])
def application_transactions(
    application_id: UUID,
    actor: Actor = Depends(get_actor),
    settlement: PaymentSettlement = Depends(get_settlement),
):
    _require_staff(actor, "list_transactions")
    return settlement.transactions_for(application_id)


@router.get("/transactions", response_model=list[TransactionOut])
def list_transactions(
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_actor),
    settlement: PaymentSettlement = Depends(get_settlement),
):
    _require_staff(actor, "list_transactions")
    return settlement.list_transactions(limit=limit, offset=offset)


@router.get("/transactions/{app_ref_no}", response_model=TransactionOut)
def get_transaction(
    app_ref_no: str,
    actor: Actor = Depends(get_actor),
    settlement: PaymentSettlement = Depends(get_settlement),
):
    _require_staff(actor, "get_transaction")
    return settlement.get_transaction(app_ref_no)


@router.get("/config/status")
def gateway_config_status(
    actor: Actor = Depends(get_actor),
    settlement: PaymentSettlement = Depends(get_settlement),
):
    _require_staff(actor, "gateway_status")
    return settlement.gateway_status()
