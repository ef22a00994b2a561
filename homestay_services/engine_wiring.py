"""
homestay_services.engine_wiring -- Pure engines plugged into the kernel.

Responsibility:
    The kernel's WorkflowEngine never imports homestay_engines.  This
    module supplies the fee assessor it calls on submission and builds a
    WorkflowEngine configured from ``WorkflowConfig``.

Architecture position:
    Services -- composes homestay_engines with homestay_kernel.

Failure modes:
    - An application without category or location type gets no fee; the
      payment step later rejects it with FeeNotCalculatedError.
    - An invalid category / location / validity combination is logged as
      ``fee_not_assessed`` and likewise leaves the fee unset.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy.orm import Session

from homestay_config import WorkflowConfig
from homestay_engines.fees import calculate_fee
from homestay_kernel.domain.clock import Clock
from homestay_kernel.domain.district import is_pangi
from homestay_kernel.domain.transitions import WorkflowRules
from homestay_kernel.domain.workflow import requires_payment
from homestay_kernel.logging_config import get_logger
from homestay_kernel.models.application import Application
from homestay_kernel.services.workflow_engine import WorkflowEngine

logger = get_logger("services.engine_wiring")


def assess_application_fee(application: Application) -> Decimal | None:
    """Registration fee for ``application`` or None when none applies."""
    if not requires_payment(application.kind):
        return None
    if not application.category or not application.location_type:
        logger.info(
            "fee_not_assessed",
            extra={"application_id": str(application.id), "reason": "category or location missing"},
        )
        return None
    try:
        breakdown = calculate_fee(
            category=application.category,
            location_type=application.location_type,
            validity_years=application.validity_years or 1,
            owner_gender=application.owner_gender,
            is_pangi=is_pangi(application.district, application.tehsil),
        )
    except ValueError as exc:
        logger.warning(
            "fee_not_assessed",
            extra={"application_id": str(application.id), "reason": str(exc)},
        )
        return None

    logger.info(
        "fee_assessed",
        extra={
            "application_id": str(application.id),
            "base_fee": breakdown.base_fee,
            "total_discount": breakdown.total_discount,
            "final_fee": breakdown.final_fee,
        },
    )
    return breakdown.final_fee


def rules_from_config(config: WorkflowConfig) -> WorkflowRules:
    return WorkflowRules(
        min_feedback_length=config.min_feedback_length,
        max_rooms=config.max_rooms,
    )


def build_workflow_engine(
    session: Session,
    config: WorkflowConfig | None = None,
    clock: Clock | None = None,
) -> WorkflowEngine:
    config = config or WorkflowConfig()
    return WorkflowEngine(
        session,
        clock=clock,
        rules=rules_from_config(config),
        fee_assessor=assess_application_fee,
        certificate_validity_years=config.certificate_validity_years,
    )
