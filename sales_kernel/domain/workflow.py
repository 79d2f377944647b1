"""
Canonical workflow types (``sales_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for the aggregate state machines.  Sale, LedgerEntry
and Payment each declare their lifecycle as a ``Workflow`` table so that
the full transition lattice is inspectable and testable as data.  The
aggregates never branch on state themselves: they ask the table.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/`` or outer layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
* Any (from, to) pair absent from the table is rejected with
  ``InvalidStateError`` by ``Workflow.require``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sales_kernel.exceptions import InvalidStateError


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- the owning aggregate does.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow."""
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for an aggregate lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    Guarantees: ``initial_state`` is a member of ``states``; states listed
    in ``terminal_states`` have no outgoing transitions.
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"{self.name}: initial state {self.initial_state!r} not in states"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"{self.name}: transition {t.from_state}->{t.to_state} "
                    f"references unknown state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"{self.name}: terminal state {t.from_state!r} has an "
                    f"outgoing transition"
                )

    def allowed_targets(self, from_state: str) -> tuple[str, ...]:
        """States reachable in one step from ``from_state``, in table order."""
        return tuple(
            t.to_state for t in self.transitions if t.from_state == from_state
        )

    def find(self, from_state: str, to_state: str) -> Transition | None:
        for t in self.transitions:
            if t.from_state == from_state and t.to_state == to_state:
                return t
        return None

    def is_terminal(self, state: str) -> bool:
        return not self.allowed_targets(state)

    def require(
        self,
        from_state: str,
        to_state: str,
        *,
        entity_type: str,
        entity_id: Any,
    ) -> Transition:
        """
        Look up the (from, to) transition or raise.

        Raises:
            InvalidStateError: naming both states and the allowed targets.
        """
        transition = self.find(from_state, to_state)
        if transition is not None:
            return transition

        targets = self.allowed_targets(from_state)
        if targets:
            rule = f"{from_state} can only transition to {', '.join(targets)}"
        else:
            rule = f"{from_state} is terminal"
        raise InvalidStateError(
            entity_type=entity_type,
            entity_id=entity_id,
            current_state=from_state,
            attempted=to_state,
            message=(
                f"{entity_type} {entity_id}: cannot transition "
                f"{from_state} -> {to_state}; {rule}"
            ),
        )
