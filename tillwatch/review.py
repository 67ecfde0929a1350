"""
Review State Machine - manager triage of ingested transactions.

    pending ──► approved | investigate | escalate
    approved / investigate / escalate ──► any of the three

Nothing moves back to pending. Every transition writes exactly one audit
entry carrying both the previous and the new status.
"""
import logging
from enum import Enum
from typing import Any, Dict

from .errors import NotFoundError, ValidationError


class ReviewStatus(str, Enum):
    """Transaction review status"""
    PENDING = "pending"
    APPROVED = "approved"
    INVESTIGATE = "investigate"
    ESCALATE = "escalate"


REVIEW_TARGETS = (ReviewStatus.APPROVED, ReviewStatus.INVESTIGATE, ReviewStatus.ESCALATE)


def initial_status(is_flagged: bool) -> ReviewStatus:
    return ReviewStatus.PENDING if is_flagged else ReviewStatus.APPROVED


def parse_status(value: Any) -> ReviewStatus:
    try:
        return ReviewStatus(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(s.value for s in ReviewStatus)
        raise ValidationError(f"Invalid status {value!r}; expected one of: {allowed}")


class ReviewStateMachine:

    def __init__(self, store):
        self.store = store

    def transition(self, transaction_row_id: int, status: Any,
                   actor_id: str, actor_name: str) -> Dict[str, Any]:
        """
        Move a transaction to `status` and append its audit entry.

        The previous status is read first and the write is a compare-and-swap
        against it, so a concurrent change raises ConflictError instead of
        producing an audit entry with the wrong previous status.
        """
        target = parse_status(status)
        if target not in REVIEW_TARGETS:
            raise ValidationError("Transactions cannot be moved back to pending")

        transaction = self.store.get_transaction(transaction_row_id)
        if not transaction:
            raise NotFoundError(f"Transaction {transaction_row_id} not found")

        previous = transaction["status"]
        audit_entry: Dict[str, Any] = {
            "transaction_id": transaction_row_id,
            "action": target.value,
            "previous_status": previous,
            "new_status": target.value,
            "performed_by": actor_id,
            "performed_by_name": actor_name or "Manager",
            "details": f"Transaction status changed from {previous} to {target.value}",
        }
        updated = self.store.transition_status(transaction_row_id, previous, target.value, audit_entry)
        logging.info(
            f"Transaction {transaction['transaction_id']} moved {previous} -> {target.value} by {audit_entry['performed_by_name']}"
        )
        return updated
