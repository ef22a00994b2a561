"""
Request and response bodies for the HTTP API.

Field names follow the portal's camelCase wire format; the Python side
uses snake_case through pydantic aliases.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from homestay_engines.room_adjustment import RoomBreakdown
from homestay_kernel.domain.inspection import InspectionFindings
from homestay_kernel.domain.workflow import ApplicationStatus, DocumentStatus


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


# =============================================================================
# Applications
# =============================================================================


class DraftFields(_CamelModel):
    owner_name: str | None = Field(None, alias="ownerName")
    owner_gender: str | None = Field(None, alias="ownerGender")
    owner_mobile: str | None = Field(None, alias="ownerMobile")
    owner_email: str | None = Field(None, alias="ownerEmail")
    property_name: str | None = Field(None, alias="propertyName")
    address: str | None = None
    district: str | None = None
    tehsil: str | None = None
    pincode: str | None = None
    category: str | None = None
    location_type: str | None = Field(None, alias="locationType")
    validity_years: int | None = Field(None, alias="validityYears")
    single_bed_rooms: int | None = Field(None, alias="singleBedRooms")
    double_bed_rooms: int | None = Field(None, alias="doubleBedRooms")
    family_suites: int | None = Field(None, alias="familySuites")
    attached_washrooms: int | None = Field(None, alias="attachedWashrooms")

    def changes(self) -> dict[str, Any]:
        """Only the descriptive fields the caller actually sent."""
        return self.model_dump(
            include=set(DraftFields.model_fields),
            exclude_unset=True,
            exclude_none=True,
        )


class LegacyOnboardingBody(DraftFields):
    legacy_certificate_number: str = Field(..., alias="legacyCertificateNumber", min_length=1)
    legacy_certificate_issued_date: date | None = Field(None, alias="legacyCertificateIssuedDate")


class DocumentBody(_CamelModel):
    document_type: str = Field(..., alias="documentType", min_length=1)
    file_name: str = Field(..., alias="fileName", min_length=1)


class DocumentDecisionBody(_CamelModel):
    status: DocumentStatus
    notes: str | None = None


class DocumentOut(_CamelModel):
    id: UUID
    document_type: str = Field(..., serialization_alias="documentType")
    file_name: str = Field(..., serialization_alias="fileName")
    verification_status: str = Field(..., serialization_alias="verificationStatus")
    verification_notes: str | None = Field(None, serialization_alias="verificationNotes")


class ApplicationOut(_CamelModel):
    id: UUID
    application_number: str | None = Field(None, serialization_alias="applicationNumber")
    status: str
    application_kind: str = Field(..., serialization_alias="applicationKind")
    owner_id: UUID = Field(..., serialization_alias="ownerId")
    owner_name: str | None = Field(None, serialization_alias="ownerName")
    property_name: str | None = Field(None, serialization_alias="propertyName")
    district: str | None = None
    tehsil: str | None = None
    category: str | None = None
    location_type: str | None = Field(None, serialization_alias="locationType")
    validity_years: int = Field(1, serialization_alias="validityYears")
    single_bed_rooms: int = Field(0, serialization_alias="singleBedRooms")
    double_bed_rooms: int = Field(0, serialization_alias="doubleBedRooms")
    family_suites: int = Field(0, serialization_alias="familySuites")
    total_rooms: int = Field(0, serialization_alias="totalRooms")
    total_fee: Decimal | None = Field(None, serialization_alias="totalFee")
    parent_application_id: UUID | None = Field(None, serialization_alias="parentApplicationId")
    service_context: dict[str, Any] | None = Field(None, serialization_alias="serviceContext")
    clarification_requested: str | None = Field(None, serialization_alias="clarificationRequested")
    rejection_reason: str | None = Field(None, serialization_alias="rejectionReason")
    certificate_number: str | None = Field(None, serialization_alias="certificateNumber")
    certificate_issued_date: datetime | None = Field(None, serialization_alias="certificateIssuedDate")
    certificate_expiry_date: datetime | None = Field(None, serialization_alias="certificateExpiryDate")
    certificate_revoked_at: datetime | None = Field(None, serialization_alias="certificateRevokedAt")


# =============================================================================
# Transitions and audit
# =============================================================================


class FindingsBody(_CamelModel):
    actual_inspection_date: date = Field(..., alias="actualInspectionDate")
    room_count_verified: bool = Field(..., alias="roomCountVerified")
    category_meets_standards: bool = Field(..., alias="categoryMeetsStandards")
    overall_satisfactory: bool = Field(..., alias="overallSatisfactory")
    mandatory_checklist: dict[str, bool] = Field(default_factory=dict, alias="mandatoryChecklist")
    desirable_checklist: dict[str, bool] = Field(default_factory=dict, alias="desirableChecklist")
    actual_room_count: int | None = Field(None, alias="actualRoomCount")
    recommended_category: str | None = Field(None, alias="recommendedCategory")
    fire_safety_compliant: bool = Field(False, alias="fireSafetyCompliant")
    fire_safety_issues: str | None = Field(None, alias="fireSafetyIssues")
    structural_safety: bool = Field(False, alias="structuralSafety")
    structural_issues: str | None = Field(None, alias="structuralIssues")
    recommendation: str = "approve"
    detailed_findings: str = Field("", alias="detailedFindings")
    mandatory_remarks: str | None = Field(None, alias="mandatoryRemarks")
    desirable_remarks: str | None = Field(None, alias="desirableRemarks")
    early_inspection_override: bool = Field(False, alias="earlyInspectionOverride")
    early_inspection_reason: str | None = Field(None, alias="earlyInspectionReason")

    def to_findings(self) -> InspectionFindings:
        return InspectionFindings(**self.model_dump(by_alias=False))


class TransitionBody(_CamelModel):
    remarks: str | None = None
    expected_status: ApplicationStatus | None = Field(None, alias="expectedStatus")
    inspection_date: date | None = Field(None, alias="inspectionDate")
    assigned_da_id: UUID | None = Field(None, alias="assignedDaId")
    assigned_da_district: str | None = Field(None, alias="assignedDaDistrict")
    inspection_address: str | None = Field(None, alias="inspectionAddress")
    special_instructions: str | None = Field(None, alias="specialInstructions")
    findings: FindingsBody | None = None


class AuditEntryOut(_CamelModel):
    seq: int
    action: str
    actor_id: UUID | None = Field(None, serialization_alias="actorId")
    previous_status: str | None = Field(None, serialization_alias="previousStatus")
    new_status: str | None = Field(None, serialization_alias="newStatus")
    feedback: str | None = None
    created_at: datetime = Field(..., serialization_alias="createdAt")
    hash: str


class TransitionResult(_CamelModel):
    application: ApplicationOut
    actions: list[AuditEntryOut]
    event_id: str = Field(..., serialization_alias="eventId")


# =============================================================================
# Service center
# =============================================================================


class RoomCounts(_CamelModel):
    single: int = 0
    double: int = 0
    family: int = 0

    def to_breakdown(self) -> RoomBreakdown:
        return RoomBreakdown(single=self.single, double=self.double, family=self.family)


class ServiceRequestBody(_CamelModel):
    base_application_id: UUID = Field(..., alias="baseApplicationId")
    service_type: str = Field(..., alias="serviceType")
    note: str | None = None
    room_delta: RoomCounts | None = Field(None, alias="roomDelta")


# =============================================================================
# Payments
# =============================================================================


class PaymentInitiateBody(_CamelModel):
    application_id: UUID = Field(..., alias="applicationId")
    portal_base_url: str | None = Field(None, alias="portalBaseUrl")


class TransactionOut(_CamelModel):
    id: UUID
    application_id: UUID = Field(..., serialization_alias="applicationId")
    attempt_no: int = Field(..., serialization_alias="attemptNo")
    app_ref_no: str = Field(..., serialization_alias="appRefNo")
    dept_ref_no: str = Field(..., serialization_alias="deptRefNo")
    ddo: str
    total_amount: int = Field(..., serialization_alias="totalAmount")
    actual_amount: int = Field(..., serialization_alias="actualAmount")
    is_test_mode: bool = Field(..., serialization_alias="isTestMode")
    transaction_status: str = Field(..., serialization_alias="transactionStatus")
    status: str | None = None
    status_cd: str | None = Field(None, serialization_alias="statusCd")
    ech_txn_id: str | None = Field(None, serialization_alias="echTxnId")
    bank_cin: str | None = Field(None, serialization_alias="bankCIN")
    challan_print_url: str | None = Field(None, serialization_alias="challanPrintUrl")
    is_double_verified: bool = Field(False, serialization_alias="isDoubleVerified")
    responded_at: datetime | None = Field(None, serialization_alias="respondedAt")
