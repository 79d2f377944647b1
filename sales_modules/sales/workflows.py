"""
Sale Workflows.

State machine for the sale header lifecycle.
"""

from sales_kernel.domain.workflow import Guard, Transition, Workflow
from sales_kernel.logging_config import get_logger

logger = get_logger("modules.sales.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

HAS_LINE_ITEMS = Guard(
    name="has_line_items",
    description="Sale carries at least one line item",
)


# -----------------------------------------------------------------------------
# Sale Workflow
# -----------------------------------------------------------------------------

# Completed is terminal: a delivered and paid-for sale is not cancelled.
# Money already received is returned through payment refunds, which
# restore the ledger balance, rather than by reopening the sale.

SALE_WORKFLOW = Workflow(
    name="sale",
    description="Sale header lifecycle",
    initial_state="draft",
    states=(
        "draft",
        "confirmed",
        "shipped",
        "completed",
        "cancelled",
    ),
    transitions=(
        Transition("draft", "confirmed", action="confirm", guard=HAS_LINE_ITEMS),
        Transition("confirmed", "shipped", action="mark_shipped"),
        Transition("shipped", "completed", action="mark_completed"),
        Transition("draft", "cancelled", action="cancel"),
        Transition("confirmed", "cancelled", action="cancel"),
        Transition("shipped", "cancelled", action="cancel"),
    ),
    terminal_states=("completed", "cancelled"),
)

logger.debug(
    "sale_workflow_defined",
    extra={
        "workflow": SALE_WORKFLOW.name,
        "states": len(SALE_WORKFLOW.states),
        "transitions": len(SALE_WORKFLOW.transitions),
    },
)
