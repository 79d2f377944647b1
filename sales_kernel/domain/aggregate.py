"""
Aggregate -- shared mutation discipline for Sale, LedgerEntry and Payment.

Responsibility:
    Every aggregate is the sole authority for its own fields.  Mutations
    run under a per-aggregate re-entrant lock and bump a monotonically
    increasing ``version``.  Callers that read an aggregate and later
    mutate it may pass ``expected_version`` to get compare-and-swap
    semantics: a stale version raises ``ConcurrencyConflictError``.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Mixed into the module dataclasses;
    the persistence layer mirrors ``version`` into an optimistic lock column.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sales_kernel.exceptions import ConcurrencyConflictError, InvalidStateError


class VersionedAggregate:
    """
    Mixin for mutable aggregate roots.

    Subclasses are dataclasses declaring ``id``, ``version``,
    ``updated_at``, ``updated_by_id``, ``deleted_at`` and a ``_lock``
    (``threading.RLock``) field.
    """

    entity_type: str = "Aggregate"

    id: UUID
    version: int
    updated_at: datetime | None
    updated_by_id: UUID | None
    deleted_at: datetime | None

    def check_version(self, expected_version: int | None) -> None:
        if expected_version is not None and expected_version != self.version:
            raise ConcurrencyConflictError(
                entity_type=self.entity_type,
                entity_id=self.id,
                expected_version=expected_version,
                actual_version=self.version,
            )

    def _bump(self) -> None:
        self.version += 1

    @property
    def mutation_lock(self):
        """The aggregate's re-entrant lock, for callers coordinating several aggregates."""
        return self._lock

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def touch(self, at: datetime, actor_id: UUID | None) -> None:
        """Stamp audit metadata; does not count as a domain mutation."""
        self.updated_at = at
        self.updated_by_id = actor_id

    def _mark_deleted(
        self,
        current_state: str,
        deletable_states: tuple[str, ...],
        at: datetime,
        actor_id: Any,
    ) -> None:
        with self._lock:
            if self.deleted_at is not None:
                raise InvalidStateError(
                    entity_type=self.entity_type,
                    entity_id=self.id,
                    current_state=current_state,
                    attempted="delete",
                    message=f"{self.entity_type} {self.id} is already deleted",
                )
            if current_state not in deletable_states:
                raise InvalidStateError(
                    entity_type=self.entity_type,
                    entity_id=self.id,
                    current_state=current_state,
                    attempted="delete",
                    message=(
                        f"{self.entity_type} {self.id}: cannot delete from "
                        f"{current_state}; only {', '.join(deletable_states)} "
                        f"can be deleted"
                    ),
                )
            self.deleted_at = at
            self.touch(at, actor_id)
            self._bump()
