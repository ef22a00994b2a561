"""
FastAPI dependencies: unit of work, caller identity and service wiring.

Every request gets one SQLAlchemy session; it commits when the route
returns and rolls back when the route raises, mirroring
``homestay_kernel.db.engine.session_scope``.

The identity resolver in front of this API forwards the caller as
``X-Actor-Id`` / ``X-Actor-Role`` / ``X-Actor-District`` headers; the claim
is trusted as-is.
"""

from __future__ import annotations

from typing import Generator
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from homestay_config import HomestayConfig
from homestay_kernel.domain.dtos import Actor
from homestay_kernel.domain.workflow import ActorRole
from homestay_kernel.logging_config import LogContext, get_logger
from homestay_kernel.services.application_service import ApplicationService
from homestay_kernel.services.audit_log import AuditLog
from homestay_kernel.services.workflow_engine import WorkflowEngine
from homestay_services.engine_wiring import build_workflow_engine
from homestay_services.notification_dispatcher import NotificationDispatcher
from homestay_services.payment_settlement import PaymentSettlement
from homestay_services.service_requests import ServiceRequestService

logger = get_logger("api.dependencies")


def get_config(request: Request) -> HomestayConfig:
    return request.app.state.config


def get_session(request: Request) -> Generator[Session, None, None]:
    session: Session = request.app.state.session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.debug("request_rolled_back")
        raise
    finally:
        session.close()


def get_actor(
    x_actor_id: str | None = Header(None),
    x_actor_role: str | None = Header(None),
    x_actor_district: str | None = Header(None),
) -> Actor:
    if not x_actor_role:
        raise HTTPException(status_code=401, detail="Authentication required")
    try:
        role = ActorRole(x_actor_role)
        actor_id = UUID(x_actor_id) if x_actor_id else None
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid identity claim")
    if role == ActorRole.SYSTEM or actor_id is None:
        raise HTTPException(status_code=401, detail="Invalid identity claim")

    LogContext.set(actor_id=str(actor_id))
    return Actor(actor_id=actor_id, role=role, district=x_actor_district or None)


def get_workflow_engine(
    request: Request,
    session: Session = Depends(get_session),
) -> WorkflowEngine:
    config: HomestayConfig = request.app.state.config
    return build_workflow_engine(session, config.workflow, request.app.state.clock)


def get_application_service(
    request: Request,
    session: Session = Depends(get_session),
) -> ApplicationService:
    return ApplicationService(session, request.app.state.clock)


def get_audit_log(
    request: Request,
    session: Session = Depends(get_session),
) -> AuditLog:
    return AuditLog(session, request.app.state.clock)


def get_service_requests(
    request: Request,
    session: Session = Depends(get_session),
) -> ServiceRequestService:
    config: HomestayConfig = request.app.state.config
    return ServiceRequestService(session, request.app.state.clock, config.workflow)


def get_settlement(
    request: Request,
    session: Session = Depends(get_session),
) -> PaymentSettlement:
    state = request.app.state
    return PaymentSettlement(
        session,
        state.config,
        settings=state.settings_store,
        cipher=state.cipher,
        gateway_client=state.gateway_client,
        clock=state.clock,
    )


def drain_outbox(app) -> None:
    """Deliver pending notifications in a unit of work of their own."""
    session: Session = app.state.session_factory()
    try:
        NotificationDispatcher(session, app.state.notifier, app.state.clock).dispatch_pending()
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("outbox_drain_failed", exc_info=True)
    finally:
        session.close()
