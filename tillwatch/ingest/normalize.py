"""
Normalize Layer - Maps raw POS rows from either export dialect onto the
canonical transaction draft.

Field resolution walks an ordered list of source column names per target
field; the first non-empty value wins. Values that fail to parse are reported
as issues on the row instead of raising, so one bad row never aborts a batch.
"""
import uuid
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

import pandas as pd

from .schema import NormalizedRow, RawRow, TransactionDraft


DELIMITED_ALIASES = {
    "transaction_id": ["transaction_id", "TransactionID", "id"],
    "date": ["date", "Date", "timestamp"],
    "register_id": ["register_id", "RegisterID", "register"],
    "employee_name": ["employee_name", "Employee", "cashier"],
    "transaction_type": ["transaction_type", "Type", "type"],
    "amount": ["amount", "Amount", "total"],
    "store_id": ["store_id", "StoreID"],
}

SPREADSHEET_ALIASES = {
    "transaction_id": ["Transaction #"],
    "date": ["Date"],
    "register_id": [],
    "employee_name": ["Cashier"],
    "transaction_type": ["Transaction Type"],
    "amount": ["Net Sales", "Gross Sales"],
    "store_id": [],
}

# Keys only the spreadsheet export produces
SPREADSHEET_MARKER_KEYS = {"Tender", "Net Sales"}

DEFAULT_REGISTER = "Unknown"
DEFAULT_EMPLOYEE = "Unknown"
DEFAULT_STORE = "001"

CENTS = Decimal("0.01")


@dataclass
class FieldResult:
    value: Any
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def parse_currency(value: Any) -> FieldResult:
    """Strip `$` and `,` and parse as a two-place decimal."""
    if value is None or str(value).strip() == "":
        return FieldResult(Decimal("0.00"), "missing")
    cleaned = str(value).replace("$", "").replace(",", "").strip()
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        return FieldResult(Decimal("0.00"), f"unparsable amount {value!r}")
    if not amount.is_finite():
        return FieldResult(Decimal("0.00"), f"unparsable amount {value!r}")
    return FieldResult(amount.quantize(CENTS, rounding=ROUND_HALF_UP))


def clean_currency(value: Any) -> Decimal:
    """Lenient currency parse: anything unparsable becomes 0."""
    return parse_currency(value).value


def parse_date(value: Any):
    """General date parse; returns pd.NaT when the value is not a date."""
    if value is None or str(value).strip() == "":
        return pd.NaT
    return pd.to_datetime(str(value).strip(), errors="coerce")


def detect_dialect(row: RawRow) -> str:
    if SPREADSHEET_MARKER_KEYS.issubset(row.keys()):
        return "spreadsheet"
    return "delimited"


class FieldNormalizer:
    """
    Resolves heterogeneous POS column names onto TransactionDraft.

    Usage:
        normalizer = FieldNormalizer()
        result = normalizer.normalize({"TransactionID": "T1", "Type": "refund", "Amount": "$75.00"})
        # result["draft"]["amount"] == Decimal("75.00")
    """

    def __init__(self, default_store_id: str = DEFAULT_STORE):
        self.default_store_id = default_store_id

    def normalize(self, row: RawRow) -> NormalizedRow:
        dialect = detect_dialect(row)
        aliases = SPREADSHEET_ALIASES if dialect == "spreadsheet" else DELIMITED_ALIASES
        issues: List[str] = []

        transaction_id = self._resolve(row, aliases["transaction_id"])
        if not transaction_id:
            transaction_id = uuid.uuid4().hex
            issues.append("transaction_id_synthesized")

        amount = parse_currency(self._resolve(row, aliases["amount"]))
        if not amount.ok:
            issues.append("amount_missing" if amount.error == "missing" else "amount_unparsed")

        date_raw = self._resolve(row, aliases["date"])
        date = parse_date(date_raw)
        if pd.isna(date):
            issues.append("date_invalid")

        draft: TransactionDraft = {
            "transaction_id": transaction_id,
            "date": date,
            "register_id": self._resolve(row, aliases["register_id"]) or DEFAULT_REGISTER,
            "employee_name": self._resolve(row, aliases["employee_name"]) or DEFAULT_EMPLOYEE,
            "transaction_type": self._resolve(row, aliases["transaction_type"]) or "",
            "amount": amount.value,
            "store_id": self._resolve(row, aliases["store_id"]) or self.default_store_id,
        }
        return {"draft": draft, "dialect": dialect, "issues": issues}

    @staticmethod
    def _resolve(row: Dict[str, str], candidates: List[str]) -> str:
        for key in candidates:
            value = row.get(key)
            if value is not None and str(value).strip() != "":
                return str(value).strip()
        return ""
