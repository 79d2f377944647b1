"""Pure domain primitives shared by every sales module."""

from sales_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from sales_kernel.domain.values import Money
from sales_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "Money",
    "Guard",
    "Transition",
    "Workflow",
]
