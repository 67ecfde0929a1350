"""
Supabase Datastore - Postgres-backed implementation of BaseStore.

Tables and the status-transition function are defined in schemas.py.
Requires the service role key; row-level security is not used.
"""
import logging
from datetime import datetime, date, time, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd
from postgrest.exceptions import APIError
from supabase import create_client, Client

from .errors import ConfigurationError, ConflictError, DuplicateRecordError, NotFoundError, StoreError
from .ingest.schema import AuditLogEntry, Note, Transaction, UploadBatch, VideoClip
from .store import BaseStore

UNIQUE_VIOLATION = "23505"

DATETIME_FIELDS = ("date", "created_at", "updated_at")


def escape_like(value: str) -> str:
    """Make LIKE wildcards in user input match literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def quote_filter_value(value: str) -> str:
    # or=() filters split on commas and parentheses unless the value is quoted
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def today_start_utc() -> datetime:
    """Local midnight as a naive UTC timestamp, comparable with CURRENT_TIMESTAMP columns."""
    midnight = datetime.combine(date.today(), time.min)
    return midnight.astimezone(timezone.utc).replace(tzinfo=None)


def _to_payload(record: Dict[str, Any]) -> Dict[str, Any]:
    payload = {}
    for key, value in record.items():
        if isinstance(value, (datetime, date)):
            value = value.isoformat()
        elif isinstance(value, Decimal):
            value = str(value)
        payload[key] = value
    return payload


def _from_row(row: Dict[str, Any]) -> Dict[str, Any]:
    record = dict(row)
    for key in DATETIME_FIELDS:
        if record.get(key):
            record[key] = pd.Timestamp(record[key]).to_pydatetime()
    if record.get("amount") is not None:
        record["amount"] = Decimal(str(record["amount"]))
    return record


class SupabaseStore(BaseStore):
    """
    Datastore backed by Supabase tables.
    """

    def __init__(self, url: str, service_key: str, client: Client = None):
        if client is None and not (url and service_key):
            raise ConfigurationError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required")
        self.url = url
        self.client = client or create_client(url, service_key)
        logging.info("Supabase client initialized.")

    def _execute(self, query, action: str):
        try:
            return query.execute()
        except APIError as e:
            if getattr(e, "code", None) == UNIQUE_VIOLATION:
                raise DuplicateRecordError(f"{action}: {e.message}") from e
            logging.error(f"Supabase {action} failed: {e}")
            raise StoreError(f"{action} failed: {e}") from e

    def _count(self, query, action: str) -> int:
        res = self._execute(query, action)
        return res.count if res.count is not None else len(res.data)

    # ─── Upload batches ───

    def create_upload_batch(self, batch: Dict[str, Any]) -> UploadBatch:
        res = self._execute(self.client.table("upload_batches").insert(_to_payload(batch)), "create upload batch")
        return _from_row(res.data[0])

    def find_upload_batch(self, file_hash: str, since: Optional[datetime] = None) -> Optional[UploadBatch]:
        query = self.client.table("upload_batches").select("*").eq("file_hash", file_hash)
        if since:
            query = query.gte("created_at", since.isoformat())
        res = self._execute(query.order("created_at", desc=True).limit(1), "find upload batch")
        return _from_row(res.data[0]) if res.data else None

    def update_upload_batch(self, batch_id: int, fields: Dict[str, Any]) -> None:
        self._execute(
            self.client.table("upload_batches").update(_to_payload(fields)).eq("id", batch_id),
            "update upload batch",
        )

    def delete_upload_batch(self, batch_id: int) -> None:
        self._execute(self.client.table("upload_batches").delete().eq("id", batch_id), "delete upload batch")

    # ─── Transactions ───

    def create_transaction(self, transaction: Dict[str, Any]) -> Transaction:
        res = self._execute(
            self.client.table("transactions").insert(_to_payload(transaction)),
            f"create transaction {transaction.get('transaction_id')}",
        )
        return _from_row(res.data[0])

    def get_transaction(self, row_id: int) -> Optional[Transaction]:
        res = self._execute(self.client.table("transactions").select("*").eq("id", row_id), "get transaction")
        return _from_row(res.data[0]) if res.data else None

    def list_transactions(self, search: str = None, transaction_type: str = None, status: str = None,
                          limit: int = None, offset: int = 0) -> Tuple[List[Transaction], int]:
        query = self.client.table("transactions").select("*", count="exact")
        if search:
            pattern = quote_filter_value(f"%{escape_like(search)}%")
            query = query.or_(
                f"employee_name.ilike.{pattern},transaction_id.ilike.{pattern},register_id.ilike.{pattern}"
            )
        if transaction_type:
            query = query.ilike("transaction_type", escape_like(transaction_type))
        if status:
            query = query.eq("status", status)
        query = query.order("date", desc=True).order("id", desc=True)
        if limit is not None:
            query = query.range(offset, offset + limit - 1)

        res = self._execute(query, "list transactions")
        rows = [_from_row(r) for r in res.data]
        total = res.count if res.count is not None else len(rows)
        return rows, total

    def transition_status(self, row_id: int, expected_status: str, new_status: str,
                          audit_entry: Dict[str, Any]) -> Transaction:
        res = self._execute(self.client.rpc("transition_transaction_status", {
            "p_id": row_id,
            "p_expected": expected_status,
            "p_new": new_status,
            "p_performed_by": audit_entry.get("performed_by"),
            "p_performed_by_name": audit_entry.get("performed_by_name"),
            "p_details": audit_entry.get("details"),
        }), "transition status")
        if res.data:
            return _from_row(res.data[0])

        # Nothing updated: either the row is gone or its status moved on
        current = self.get_transaction(row_id)
        if not current:
            raise NotFoundError(f"Transaction {row_id} not found")
        raise ConflictError(f"Transaction {row_id} status changed to {current['status']} while updating")

    def delete_transaction(self, row_id: int) -> None:
        res = self._execute(self.client.table("transactions").delete().eq("id", row_id), "delete transaction")
        if not res.data:
            raise NotFoundError(f"Transaction {row_id} not found")

    # ─── Audit log, notes, video ───

    def get_audit_log(self, transaction_row_id: int) -> List[AuditLogEntry]:
        res = self._execute(
            self.client.table("audit_logs").select("*").eq("transaction_id", transaction_row_id)
            .order("created_at", desc=True),
            "get audit log",
        )
        return [_from_row(r) for r in res.data]

    def create_note(self, note: Dict[str, Any]) -> Note:
        res = self._execute(self.client.table("notes").insert(_to_payload(note)), "create note")
        return _from_row(res.data[0])

    def get_notes(self, transaction_row_id: int) -> List[Note]:
        res = self._execute(
            self.client.table("notes").select("*").eq("transaction_id", transaction_row_id)
            .order("created_at", desc=True),
            "get notes",
        )
        return [_from_row(r) for r in res.data]

    def create_video_clip(self, clip: Dict[str, Any]) -> VideoClip:
        res = self._execute(self.client.table("video_clips").insert(_to_payload(clip)), "create video clip")
        return _from_row(res.data[0])

    def get_video_clip(self, transaction_row_id: int) -> Optional[VideoClip]:
        res = self._execute(
            self.client.table("video_clips").select("*").eq("transaction_id", transaction_row_id)
            .order("created_at", desc=True).limit(1),
            "get video clip",
        )
        return _from_row(res.data[0]) if res.data else None

    def get_stats(self) -> Dict[str, int]:
        """Dashboard counters; flagged_today counts flags ingested since local midnight."""
        today = today_start_utc().isoformat()
        def table():
            return self.client.table("transactions").select("id", count="exact")

        return {
            "pending_review": self._count(table().eq("status", "pending"), "count pending"),
            "flagged_today": self._count(table().eq("is_flagged", True).gte("created_at", today), "count flagged"),
            "approved": self._count(table().eq("status", "approved"), "count approved"),
            "video_clips": self._count(
                self.client.table("video_clips").select("id", count="exact"), "count video clips"
            ),
        }
