"""
Module: homestay_engines
Responsibility:
    Re-exports the pure calculation engines: the treasury gateway payload
    codec, the registration fee calculator and the room-adjustment /
    renewal-window calculator.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import homestay_kernel domain types, exceptions and logging.
    MUST NOT import homestay_services or homestay_api.

Invariants enforced:
    - Purity: engines never read the clock.  "Now" is passed in.
    - Determinism: identical inputs always produce identical outputs.
"""

from homestay_engines.fees import FEE_MATRIX, FeeBreakdown, calculate_fee
from homestay_engines.gateway_codec import (
    EncodedRequest,
    GatewayCipher,
    GatewayRequest,
    GatewayResponse,
    build_core_string,
    build_verification_string,
    checksum,
    decode_callback,
    encode_request,
    parse_fields,
    parse_response,
    split_signed_payload,
    to_whole_rupees,
    verify_checksum,
)
from homestay_engines.room_adjustment import (
    MAX_ROOMS_ALLOWED,
    RenewalWindow,
    RoomAdjustment,
    RoomBreakdown,
    compute_room_adjustment,
    renewal_window,
)

__all__ = [
    "FEE_MATRIX",
    "FeeBreakdown",
    "calculate_fee",
    "EncodedRequest",
    "GatewayCipher",
    "GatewayRequest",
    "GatewayResponse",
    "build_core_string",
    "build_verification_string",
    "checksum",
    "decode_callback",
    "encode_request",
    "parse_fields",
    "parse_response",
    "split_signed_payload",
    "to_whole_rupees",
    "verify_checksum",
    "MAX_ROOMS_ALLOWED",
    "RenewalWindow",
    "RoomAdjustment",
    "RoomBreakdown",
    "compute_room_adjustment",
    "renewal_window",
]
