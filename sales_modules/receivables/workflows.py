"""
Ledger Entry Workflows.

State machine for receivable/payable balance tracking.
"""

from sales_kernel.domain.workflow import Guard, Transition, Workflow
from sales_kernel.logging_config import get_logger

logger = get_logger("modules.receivables.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

BALANCE_ZERO = Guard(
    name="balance_zero",
    description="Remaining balance is zero",
)

PAST_DUE = Guard(
    name="past_due",
    description="Due date is before today and a balance remains",
)

BALANCE_RESTORED = Guard(
    name="balance_restored",
    description="A refund restored part of the balance",
)

BALANCE_RESTORED_PAST_DUE = Guard(
    name="balance_restored_past_due",
    description="A refund restored part of the balance after the due date",
)


# -----------------------------------------------------------------------------
# Ledger Entry Workflow
# -----------------------------------------------------------------------------

LEDGER_ENTRY_WORKFLOW = Workflow(
    name="ledger_entry",
    description="Receivable / payable balance lifecycle",
    initial_state="pending",
    states=(
        "pending",
        "paid",
        "overdue",
        "cancelled",
    ),
    transitions=(
        Transition("pending", "paid", action="reduce_balance", guard=BALANCE_ZERO),
        Transition("overdue", "paid", action="reduce_balance", guard=BALANCE_ZERO),
        Transition("pending", "overdue", action="refresh_overdue_status", guard=PAST_DUE),
        Transition("pending", "cancelled", action="cancel"),
        Transition("overdue", "cancelled", action="cancel"),
        Transition("paid", "pending", action="increase_balance", guard=BALANCE_RESTORED),
        Transition(
            "paid", "overdue", action="increase_balance", guard=BALANCE_RESTORED_PAST_DUE
        ),
    ),
    terminal_states=("cancelled",),
)

logger.debug(
    "ledger_entry_workflow_defined",
    extra={
        "workflow": LEDGER_ENTRY_WORKFLOW.name,
        "states": len(LEDGER_ENTRY_WORKFLOW.states),
        "transitions": len(LEDGER_ENTRY_WORKFLOW.transitions),
    },
)
