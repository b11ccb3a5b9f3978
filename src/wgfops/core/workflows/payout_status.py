"""Move a payout request to another status."""

from __future__ import annotations

from dataclasses import dataclass

from wgfops.core.store import PayoutRequest
from wgfops.core.workflows.base import (
    OutcomeStatus,
    PreconditionFailed,
    WorkflowContext,
    WorkflowOutcome,
    format_amount,
)

ACTION = "PAYOUT_STATUS_CHANGE"

PAYOUT_STATUSES: tuple[tuple[str, str], ...] = (
    ("approved", "Approve"),
    ("rejected", "Reject"),
    ("paid", "Mark as paid"),
)


@dataclass(frozen=True)
class PayoutStatusPlan:
    payout: PayoutRequest
    new_status: str

    @property
    def description(self) -> str:
        payout = self.payout
        return (
            f"Change payout {payout.payout_request_uuid[:8]}... from "
            f'"{payout.status}" to "{self.new_status}" '
            f"({payout.email}, {format_amount(payout.payout_amount)})"
        )

    def preview(self) -> dict[str, str]:
        payout = self.payout
        return {
            "UUID": payout.payout_request_uuid,
            "Email": payout.email,
            "cTrader": str(payout.ctrader_trading_account or "N/A"),
            "Method": payout.payout_method,
            "IBAN": payout.iban or "N/A",
            "Wallet": payout.wallet_address or "N/A",
            "Balance before": format_amount(payout.balance_before_request),
            "Total profit": format_amount(payout.total_profit),
            "Payout amount": format_amount(payout.payout_amount),
            "Profit split": payout.profit_split,
            "Current status": payout.status,
            "New status": self.new_status,
            "Date": payout.created_at.strftime("%Y-%m-%d %H:%M") if payout.created_at else "-",
        }


def plan_payout_status(payout: PayoutRequest, new_status: str) -> PayoutStatusPlan:
    """
    Raises:
        PreconditionFailed: Unknown status, or the payout already has it.
    """
    if new_status not in dict(PAYOUT_STATUSES):
        raise PreconditionFailed(f"Unknown payout status: {new_status}")
    if new_status == payout.status:
        raise PreconditionFailed(f'The payout is already "{new_status}".', level="warn")
    return PayoutStatusPlan(payout=payout, new_status=new_status)


def execute_payout_status(ctx: WorkflowContext, plan: PayoutStatusPlan) -> WorkflowOutcome:
    payout = plan.payout
    with ctx.session.transaction():
        ctx.store.update_payout_status(payout.payout_request_uuid, plan.new_status)
        ctx.audit(
            ACTION,
            "payout_request",
            payout.payout_request_uuid,
            {
                "email": payout.email,
                "amount": payout.payout_amount,
                "old_status": payout.status,
                "new_status": plan.new_status,
            },
        )
    return WorkflowOutcome(
        action=ACTION,
        status=OutcomeStatus.SUCCEEDED,
        message=f"Payout updated: {plan.new_status}.",
        recap={
            "Payout UUID": payout.payout_request_uuid,
            "Email": payout.email,
            "Amount": format_amount(payout.payout_amount),
            "Status": plan.new_status,
        },
    )
