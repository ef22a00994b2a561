"""
Deterministic hashing utilities.

The audit trail links every row of an application's history to the row
before it.  These functions produce the canonical hashes for that chain.
"""

import hashlib
import json
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID


def _json_serializer(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        return str(obj.normalize())
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: Any) -> str:
    """Sorted keys, no whitespace, stable rendering of Decimal/datetime/UUID."""
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
    )


def hash_payload(payload: dict) -> str:
    """Hex-encoded SHA-256 of the canonical JSON form of ``payload``."""
    return hashlib.sha256(canonicalize_json(payload).encode("utf-8")).hexdigest()


def hash_application_action(
    application_id: str,
    action: str,
    previous_status: str | None,
    new_status: str | None,
    actor_id: str | None,
    feedback: str | None,
    created_at: datetime,
    prev_hash: str | None,
) -> str:
    """
    Hash of one audit row, chained to the previous row of the same application.

    The first row of an application chains to ``GENESIS``.
    """
    payload_hash = hash_payload({
        "action": action,
        "actor_id": actor_id,
        "created_at": created_at.astimezone(timezone.utc),
        "feedback": feedback,
        "new_status": new_status,
        "previous_status": previous_status,
    })
    data = "|".join([str(application_id), action, payload_hash, prev_hash or "GENESIS"])
    return hashlib.sha256(data.encode("utf-8")).hexdigest()
