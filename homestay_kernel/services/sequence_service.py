"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Supplies the serial numbers behind application numbers and certificate
    numbers.  Each named sequence (``application:2025``,
    ``certificate:2025``) is one row in ``sequence_counters`` locked with
    ``SELECT ... FOR UPDATE`` while it is incremented.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.  Called by
    ApplicationService (application numbers) and WorkflowEngine
    (certificate numbers).

Invariants enforced:
    - Strictly monotonic per sequence name.  The aggregate-max-plus-one
      query is never used; the locked counter row is the sole source of
      the next value.
    - Transactional: an increment is visible only after the caller commits.

Failure modes:
    - IntegrityError on a concurrent first use of a sequence, handled by a
      savepoint rollback and a re-read.
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from homestay_kernel.db.base import Base
from homestay_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """One named counter. Row-level locking keeps it monotonic."""

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class SequenceService:
    """
    Transactional sequence numbers.

    Does NOT call ``session.commit()``; the caller owns the transaction.

    Usage:
        seq = SequenceService(session).next_value(SequenceService.application(2025))
    """

    @staticmethod
    def application(year: int) -> str:
        return f"application:{year}"

    @staticmethod
    def certificate(year: int) -> str:
        return f"certificate:{year}"

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """
        Lock the counter row (creating it on first use), increment, return.

        Returns:
            An integer > 0, strictly greater than any value previously
            returned for ``sequence_name``.
        """
        counter = self._locked_counter(sequence_name)

        if counter is None:
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._locked_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        counter = self._session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None
