"""
Payment Workflows.

State machine for payments received against a sale.
"""

from sales_kernel.domain.workflow import Guard, Transition, Workflow
from sales_kernel.logging_config import get_logger

logger = get_logger("modules.payments.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

LEDGER_BALANCE_AVAILABLE = Guard(
    name="ledger_balance_available",
    description="Matching ledger entry is open and its balance covers the amount",
)

LEDGER_AMOUNT_NOT_EXCEEDED = Guard(
    name="ledger_amount_not_exceeded",
    description="Restoring the amount keeps the ledger balance within the original amount",
)


# -----------------------------------------------------------------------------
# Payment Workflow
# -----------------------------------------------------------------------------

PAYMENT_WORKFLOW = Workflow(
    name="payment",
    description="Payment lifecycle",
    initial_state="pending",
    states=(
        "pending",
        "completed",
        "failed",
        "refunded",
    ),
    transitions=(
        Transition("pending", "completed", action="complete", guard=LEDGER_BALANCE_AVAILABLE),
        Transition("pending", "failed", action="fail"),
        Transition("completed", "refunded", action="refund", guard=LEDGER_AMOUNT_NOT_EXCEEDED),
    ),
    terminal_states=("failed", "refunded"),
)

logger.debug(
    "payment_workflow_defined",
    extra={
        "workflow": PAYMENT_WORKFLOW.name,
        "states": len(PAYMENT_WORKFLOW.states),
        "transitions": len(PAYMENT_WORKFLOW.transitions),
    },
)
