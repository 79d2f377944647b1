"""
SequenceService -- monotonic sequence and folio allocation via locked counter rows.

Responsibility:
    Provides strictly monotonically increasing sequence numbers and the
    human-readable folios built from them (``VTA-20240115-0001``).  Uses a
    dedicated counter table with row-level locking (``SELECT ... FOR
    UPDATE``) to guarantee uniqueness under concurrent access.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by the sale, ledger entry and payment services when a new
    aggregate is created.

Invariants enforced:
    - The locked counter row is the sole source of truth for the next
      value; the SQL max-plus-one pattern is never used.
    - The increment is only visible after the caller's transaction commits.
    - Folio counters restart per prefix and calendar day.

Failure modes:
    - IntegrityError: concurrent counter creation race (handled via
      savepoint rollback and retry).
"""

from datetime import date

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from sales_kernel.db.base import Base
from sales_kernel.logging_config import get_logger

logger = get_logger("services.sequence")

DEFAULT_FOLIO_WIDTH = 4


def format_folio(prefix: str, on: date, value: int, width: int = DEFAULT_FOLIO_WIDTH) -> str:
    """Render ``PREFIX-yyyymmdd-NNNN``."""
    return f"{prefix}-{on:%Y%m%d}-{value:0{width}d}"


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row represents a named sequence with its current value.
    Row-level locking ensures monotonicity under concurrency.
    """

    __tablename__ = "sequence_counters"

    # Sequence name (e.g. "VTA-20240115")
    name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Contract:
        Accepts a sequence name and returns the next strictly-monotonic
        integer value.  The increment is committed only when the caller's
        transaction commits.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

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
        Get the next value for a named sequence.

        Locks the sequence row (creating it on first use), increments the
        counter and returns the new value, which is always > 0.
        """
        counter = self._locked_counter(sequence_name)

        if counter is None:
            # First use of this sequence; another session may race us to it.
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
        """Current value of a sequence without incrementing (None if unused)."""
        counter = self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()

        return counter.current_value if counter else None

    def next_folio(
        self,
        prefix: str,
        on: date,
        width: int = DEFAULT_FOLIO_WIDTH,
    ) -> str:
        """Allocate the next folio for ``prefix`` on the given day."""
        value = self.next_value(f"{prefix}-{on:%Y%m%d}")
        folio = format_folio(prefix, on, value, width)
        logger.debug("folio_allocated", extra={"folio": folio})
        return folio
