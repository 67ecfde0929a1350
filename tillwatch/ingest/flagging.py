"""
FlaggingEngine - Rule-Based Suspicious Transaction Detection.

Decides at ingestion time whether a POS transaction needs manager review.
Pure and deterministic: no I/O, same input gives the same decision.

Reason strings are shown to managers on the dashboard and kept verbatim.
"""
from decimal import Decimal
from typing import Any, Mapping, Optional

from .normalize import clean_currency
from .schema import FlagDecision


# ─────────────────────────────────────────────────────────────
# Flagging Rules Configuration
# ─────────────────────────────────────────────────────────────

SUSPICIOUS_TYPES = ["refund", "void", "no sale", "cancellation", "manual discount"]

DEFAULT_THRESHOLDS = {
    "refund": Decimal("50"),
    "void": Decimal("100"),
    "transaction": Decimal("200"),
}

REASON_HIGH_VALUE_REFUND = "High value refund"
REASON_HIGH_VALUE_VOID = "High value void"
REASON_NO_SALE = "No sale transaction"
REASON_SUSPICIOUS_TYPE = "Suspicious transaction type"
REASON_HIGH_VALUE_TRANSACTION = "High value transaction"


class FlaggingEngine:
    """
    Deterministic flagger using transaction-type keywords and amount thresholds.

    Usage:
        engine = FlaggingEngine()
        engine.flag({"transaction_type": "Refund", "amount": "$75.00"})
        # Returns: {"is_flagged": True, "reason": "High value refund"}
    """

    def __init__(self, thresholds: Optional[Mapping[str, Any]] = None):
        self.thresholds = dict(DEFAULT_THRESHOLDS)
        if thresholds:
            self.thresholds.update({k: Decimal(str(v)) for k, v in thresholds.items()})
        self.suspicious_types = set(SUSPICIOUS_TYPES)

    def flag(self, transaction: Mapping[str, Any]) -> FlagDecision:
        tx_type = str(transaction.get("transaction_type") or "").strip().lower()
        amount = self.to_amount(transaction.get("amount"))

        if tx_type in self.suspicious_types:
            if tx_type == "refund" and amount > self.thresholds["refund"]:
                return {"is_flagged": True, "reason": REASON_HIGH_VALUE_REFUND}
            if tx_type == "void" and amount > self.thresholds["void"]:
                return {"is_flagged": True, "reason": REASON_HIGH_VALUE_VOID}
            if tx_type == "no sale":
                return {"is_flagged": True, "reason": REASON_NO_SALE}
            return {"is_flagged": True, "reason": REASON_SUSPICIOUS_TYPE}

        if amount > self.thresholds["transaction"]:
            return {"is_flagged": True, "reason": REASON_HIGH_VALUE_TRANSACTION}

        return {"is_flagged": False, "reason": None}

    def is_suspicious_type(self, transaction_type: str) -> bool:
        return str(transaction_type or "").strip().lower() in self.suspicious_types

    def get_rules(self) -> dict:
        """Return current rules for transparency/audit."""
        return {
            "suspicious_types": sorted(self.suspicious_types),
            "thresholds": {k: str(v) for k, v in self.thresholds.items()},
        }

    @staticmethod
    def to_amount(value: Any) -> Decimal:
        if isinstance(value, Decimal) and value.is_finite():
            return value
        return clean_currency(value)


_default_engine = FlaggingEngine()


def flag_transaction(transaction: Mapping[str, Any]) -> FlagDecision:
    return _default_engine.flag(transaction)
