"""
Service Center: renewal, room changes and certificate cancellation for
approved applications.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from homestay_api.dependencies import get_actor, get_service_requests
from homestay_api.schemas import ApplicationOut, ServiceRequestBody
from homestay_kernel.domain.dtos import Actor
from homestay_services.service_requests import ServiceRequestService, ServiceSummary

router = APIRouter(prefix="/service-center", tags=["service-center"])


def _summary_payload(summary: ServiceSummary) -> dict:
    active = summary.active_request
    window = summary.window
    return {
        "id": str(summary.application_id),
        "applicationNumber": summary.application_number,
        "propertyName": summary.property_name,
        "totalRooms": summary.rooms.total,
        "maxRoomsAllowed": summary.max_rooms_allowed,
        "rooms": summary.rooms.as_dict(),
        "certificateExpiryDate": (
            summary.certificate_expiry_date.isoformat() if summary.certificate_expiry_date else None
        ),
        "renewalWindowStart": window.window_start.isoformat() if window else None,
        "renewalWindowEnd": window.window_end.isoformat() if window else None,
        "canRenew": summary.can_renew,
        "canAddRooms": summary.can_add_rooms,
        "canDeleteRooms": summary.can_delete_rooms,
        "activeServiceRequest": (
            {
                "id": str(active.id),
                "applicationNumber": active.application_number,
                "applicationKind": active.application_kind,
                "status": active.status,
            }
            if active is not None
            else None
        ),
    }


@router.get("")
def eligible_applications(
    actor: Actor = Depends(get_actor),
    services: ServiceRequestService = Depends(get_service_requests),
):
    return {"applications": [_summary_payload(s) for s in services.eligible_applications(actor)]}


@router.post("", response_model=ApplicationOut, status_code=201)
def create_service_request(
    body: ServiceRequestBody,
    actor: Actor = Depends(get_actor),
    services: ServiceRequestService = Depends(get_service_requests),
):
    return services.create(
        actor,
        body.base_application_id,
        body.service_type,
        note=body.note,
        room_delta=body.room_delta.to_breakdown() if body.room_delta else None,
    )
