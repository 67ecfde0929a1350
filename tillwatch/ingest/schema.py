"""
Record Schema - TypedDict shapes shared by the ingestion pipeline, the review
state machine and the datastore.

Records cross layer boundaries as plain dicts; these definitions pin down the
keys each layer may rely on.
"""
from datetime import datetime
from decimal import Decimal
from typing import TypedDict, Dict, Any, Optional, List

# Raw row as emitted by a parser: column name -> trimmed string value
RawRow = Dict[str, str]


class TransactionDraft(TypedDict):
    """Canonical transaction produced by the normalizer, before flagging"""
    transaction_id: str
    date: Any                     # pd.Timestamp, or pd.NaT when unparsable
    register_id: str
    employee_name: str
    transaction_type: str
    amount: Decimal
    store_id: str


class NormalizedRow(TypedDict):
    """Normalizer output: the draft plus per-field issues"""
    draft: TransactionDraft
    dialect: str                  # 'delimited' | 'spreadsheet'
    issues: List[str]             # e.g. 'amount_unparsed', 'transaction_id_synthesized'


class FlagDecision(TypedDict):
    is_flagged: bool
    reason: Optional[str]


class Transaction(TypedDict, total=False):
    """Persisted transaction record"""
    id: int
    transaction_id: str
    date: datetime
    register_id: str
    employee_name: str
    transaction_type: str
    amount: Decimal
    status: str                   # ReviewStatus value
    is_flagged: bool
    flagged_reason: Optional[str]
    store_id: str
    upload_batch_id: Optional[int]
    created_at: datetime
    updated_at: datetime


class Note(TypedDict, total=False):
    id: int
    transaction_id: int
    content: str
    author_id: str
    author_name: str
    created_at: datetime


class AuditLogEntry(TypedDict, total=False):
    """Immutable record written on every status transition"""
    id: int
    transaction_id: int
    action: str
    previous_status: Optional[str]
    new_status: str
    performed_by: str
    performed_by_name: str
    details: str
    created_at: datetime


class VideoClip(TypedDict, total=False):
    id: int
    transaction_id: Optional[int]
    filename: str
    original_name: str
    file_path: str
    file_size: int
    duration: Optional[int]       # seconds
    uploaded_by: str
    created_at: datetime


class UploadBatch(TypedDict, total=False):
    """One ingested POS file; its hash backs the duplicate-upload guard"""
    id: int
    file_hash: str                # SHA256 of the uploaded bytes
    original_name: str
    uploaded_by: str
    processed: int
    flagged: int
    failed: int
    created_at: datetime


class RowOutcome(TypedDict, total=False):
    row_number: int               # 1-based position in the parser output
    status: str                   # 'created' | 'failed'
    id: Optional[int]
    transaction_id: Optional[str]
    is_flagged: bool
    flagged_reason: Optional[str]
    issues: List[str]
    error: Optional[str]
    row: Optional[RawRow]         # offending payload for failed rows


class IngestResult(TypedDict):
    """Final output from the ingestion pipeline"""
    batch_id: int
    file_hash: str
    source_file: str
    processed: int
    flagged: int
    failed: int
    outcomes: List[RowOutcome]
    warnings: List[str]
    processing_time_ms: float
