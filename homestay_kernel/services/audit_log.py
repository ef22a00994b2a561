"""
AuditLog -- append-only, hash-chained history of every application.

Responsibility:
    Writes one ApplicationAction row per successful transition or payment
    event, and answers timeline and chain-validation queries.

Architecture position:
    Kernel > Services -- called by WorkflowEngine and PaymentSettlement
    inside the same transaction as the state change it records.

Invariants enforced:
    - Append-only (ORM listeners in db/immutability.py).
    - Per-application chain: each row's prev_hash is the hash of the
      previous row of the same application; the first row chains to
      GENESIS.  Appends are serialized by the application row lock held
      by the caller.
    - created_at comes from the injected clock, never the database.

Failure modes:
    - AuditChainBrokenError from verify_chain() on any mismatch.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from homestay_kernel.domain.clock import Clock, SystemClock
from homestay_kernel.exceptions import AuditChainBrokenError
from homestay_kernel.logging_config import get_logger
from homestay_kernel.models.application_action import ApplicationAction
from homestay_kernel.utils.hashing import hash_application_action

logger = get_logger("services.audit_log")


def _actor_key(actor_id: UUID | None) -> str | None:
    return str(actor_id) if actor_id is not None else None


class AuditLog:
    """Append and read the per-application action history."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def _last_action(self, application_id: UUID) -> ApplicationAction | None:
        return self._session.execute(
            select(ApplicationAction)
            .where(ApplicationAction.application_id == application_id)
            .order_by(ApplicationAction.seq.desc())
            .limit(1)
        ).scalar_one_or_none()

    def append(
        self,
        application_id: UUID,
        actor_id: UUID | None,
        action: str,
        previous_status: str | None,
        new_status: str | None,
        feedback: str | None = None,
    ) -> ApplicationAction:
        """Record one action. Flushes; never commits."""
        last = self._last_action(application_id)
        prev_hash = last.hash if last is not None else None
        seq = (last.seq + 1) if last is not None else 1
        created_at = self._clock.now()

        row = ApplicationAction(
            application_id=application_id,
            seq=seq,
            actor_id=actor_id,
            action=action,
            previous_status=previous_status,
            new_status=new_status,
            feedback=feedback,
            created_at=created_at,
            prev_hash=prev_hash,
            hash=hash_application_action(
                application_id=str(application_id),
                action=action,
                previous_status=previous_status,
                new_status=new_status,
                actor_id=_actor_key(actor_id),
                feedback=feedback,
                created_at=created_at,
                prev_hash=prev_hash,
            ),
        )
        self._session.add(row)
        self._session.flush()

        logger.info(
            "audit_action_recorded",
            extra={
                "application_id": str(application_id),
                "action": action,
                "seq": seq,
                "previous_status": previous_status,
                "new_status": new_status,
            },
        )
        return row

    def timeline(self, application_id: UUID) -> list[ApplicationAction]:
        """All actions of one application, oldest first."""
        return list(
            self._session.execute(
                select(ApplicationAction)
                .where(ApplicationAction.application_id == application_id)
                .order_by(ApplicationAction.seq)
            ).scalars().all()
        )

    def verify_chain(self, application_id: UUID) -> bool:
        """
        Recompute every hash of one application's history.

        Raises:
            AuditChainBrokenError: on the first row whose hash or prev_hash
                does not match.
        """
        actions = self.timeline(application_id)
        expected_prev: str | None = None

        for action in actions:
            expected_hash = hash_application_action(
                application_id=str(action.application_id),
                action=action.action,
                previous_status=action.previous_status,
                new_status=action.new_status,
                actor_id=_actor_key(action.actor_id),
                feedback=action.feedback,
                created_at=action.created_at,
                prev_hash=action.prev_hash,
            )
            if action.prev_hash != expected_prev or action.hash != expected_hash:
                logger.critical(
                    "audit_chain_broken",
                    extra={
                        "application_id": str(application_id),
                        "action_id": str(action.id),
                        "seq": action.seq,
                    },
                )
                raise AuditChainBrokenError(str(application_id), str(action.id))
            expected_prev = action.hash

        logger.info(
            "audit_chain_valid",
            extra={"application_id": str(application_id), "action_count": len(actions)},
        )
        return True
