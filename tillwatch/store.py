"""
Datastore interface and the in-process store.

The service talks to persistence only through BaseStore. SupabaseStore
(supabase_client.py) is used when credentials are configured; MemoryStore
backs development runs and the test-suite.
"""
import itertools
import threading
from abc import ABC, abstractmethod
from datetime import datetime, date
from typing import Any, Dict, List, Optional, Tuple

from .errors import ConflictError, DuplicateRecordError, NotFoundError
from .ingest.schema import AuditLogEntry, Note, Transaction, UploadBatch, VideoClip


class BaseStore(ABC):

    # Upload batches
    @abstractmethod
    def create_upload_batch(self, batch: Dict[str, Any]) -> UploadBatch: ...

    @abstractmethod
    def find_upload_batch(self, file_hash: str, since: Optional[datetime] = None) -> Optional[UploadBatch]: ...

    @abstractmethod
    def update_upload_batch(self, batch_id: int, fields: Dict[str, Any]) -> None: ...

    @abstractmethod
    def delete_upload_batch(self, batch_id: int) -> None: ...

    # Transactions
    @abstractmethod
    def create_transaction(self, transaction: Dict[str, Any]) -> Transaction: ...

    @abstractmethod
    def get_transaction(self, row_id: int) -> Optional[Transaction]: ...

    @abstractmethod
    def list_transactions(self, search: str = None, transaction_type: str = None, status: str = None,
                          limit: int = None, offset: int = 0) -> Tuple[List[Transaction], int]: ...

    @abstractmethod
    def transition_status(self, row_id: int, expected_status: str, new_status: str,
                          audit_entry: Dict[str, Any]) -> Transaction: ...

    @abstractmethod
    def delete_transaction(self, row_id: int) -> None: ...

    # Audit log, notes, video
    @abstractmethod
    def get_audit_log(self, transaction_row_id: int) -> List[AuditLogEntry]: ...

    @abstractmethod
    def create_note(self, note: Dict[str, Any]) -> Note: ...

    @abstractmethod
    def get_notes(self, transaction_row_id: int) -> List[Note]: ...

    @abstractmethod
    def create_video_clip(self, clip: Dict[str, Any]) -> VideoClip: ...

    @abstractmethod
    def get_video_clip(self, transaction_row_id: int) -> Optional[VideoClip]: ...

    @abstractmethod
    def get_stats(self) -> Dict[str, int]: ...


def matches_filters(tx: Transaction, search: str = None, transaction_type: str = None, status: str = None) -> bool:
    if search:
        needle = search.lower()
        haystack = (tx.get("employee_name"), tx.get("transaction_id"), tx.get("register_id"))
        if not any(needle in str(v or "").lower() for v in haystack):
            return False
    if transaction_type and str(tx.get("transaction_type", "")).lower() != transaction_type.lower():
        return False
    if status and tx.get("status") != status:
        return False
    return True


class MemoryStore(BaseStore):
    """Thread-safe dict-backed store; forgets everything on restart."""

    def __init__(self):
        self._lock = threading.RLock()
        self._ids = {name: itertools.count(1) for name in ("batch", "transaction", "audit", "note", "clip")}
        self._batches: Dict[int, UploadBatch] = {}
        self._transactions: Dict[int, Transaction] = {}
        self._by_transaction_id: Dict[str, int] = {}
        self._audit: List[AuditLogEntry] = []
        self._notes: List[Note] = []
        self._clips: List[VideoClip] = []

    # ─── Upload batches ───

    def create_upload_batch(self, batch: Dict[str, Any]) -> UploadBatch:
        with self._lock:
            record = dict(batch, id=next(self._ids["batch"]), created_at=datetime.now())
            self._batches[record["id"]] = record
            return dict(record)

    def find_upload_batch(self, file_hash: str, since: Optional[datetime] = None) -> Optional[UploadBatch]:
        with self._lock:
            for batch in self._batches.values():
                if batch["file_hash"] != file_hash:
                    continue
                if since and batch["created_at"] < since:
                    continue
                return dict(batch)
        return None

    def update_upload_batch(self, batch_id: int, fields: Dict[str, Any]) -> None:
        with self._lock:
            if batch_id in self._batches:
                self._batches[batch_id].update(fields)

    def delete_upload_batch(self, batch_id: int) -> None:
        with self._lock:
            self._batches.pop(batch_id, None)

    # ─── Transactions ───

    def create_transaction(self, transaction: Dict[str, Any]) -> Transaction:
        with self._lock:
            if transaction["transaction_id"] in self._by_transaction_id:
                raise DuplicateRecordError(f"Transaction {transaction['transaction_id']} already exists")
            now = datetime.now()
            record = dict(transaction, id=next(self._ids["transaction"]), created_at=now, updated_at=now)
            self._transactions[record["id"]] = record
            self._by_transaction_id[record["transaction_id"]] = record["id"]
            return dict(record)

    def get_transaction(self, row_id: int) -> Optional[Transaction]:
        with self._lock:
            record = self._transactions.get(row_id)
            return dict(record) if record else None

    def list_transactions(self, search: str = None, transaction_type: str = None, status: str = None,
                          limit: int = None, offset: int = 0) -> Tuple[List[Transaction], int]:
        with self._lock:
            rows = [dict(tx) for tx in self._transactions.values()
                    if matches_filters(tx, search, transaction_type, status)]
        rows.sort(key=lambda tx: (tx["date"], tx["id"]), reverse=True)
        total = len(rows)
        if limit is not None:
            rows = rows[offset:offset + limit]
        return rows, total

    def transition_status(self, row_id: int, expected_status: str, new_status: str,
                          audit_entry: Dict[str, Any]) -> Transaction:
        with self._lock:
            record = self._transactions.get(row_id)
            if not record:
                raise NotFoundError(f"Transaction {row_id} not found")
            if record["status"] != expected_status:
                raise ConflictError(
                    f"Transaction {row_id} status changed to {record['status']} while updating"
                )
            now = datetime.now()
            record["status"] = new_status
            record["updated_at"] = now
            self._audit.append(dict(audit_entry, id=next(self._ids["audit"]), created_at=now))
            return dict(record)

    def delete_transaction(self, row_id: int) -> None:
        """Delete a transaction together with its notes, audit entries and clips."""
        with self._lock:
            record = self._transactions.pop(row_id, None)
            if not record:
                raise NotFoundError(f"Transaction {row_id} not found")
            self._by_transaction_id.pop(record["transaction_id"], None)
            self._audit = [a for a in self._audit if a["transaction_id"] != row_id]
            self._notes = [n for n in self._notes if n["transaction_id"] != row_id]
            self._clips = [c for c in self._clips if c.get("transaction_id") != row_id]

    # ─── Audit log, notes, video ───

    def get_audit_log(self, transaction_row_id: int) -> List[AuditLogEntry]:
        with self._lock:
            entries = [dict(a) for a in self._audit if a["transaction_id"] == transaction_row_id]
        return sorted(entries, key=lambda a: a["id"], reverse=True)

    def create_note(self, note: Dict[str, Any]) -> Note:
        with self._lock:
            record = dict(note, id=next(self._ids["note"]), created_at=datetime.now())
            self._notes.append(record)
            return dict(record)

    def get_notes(self, transaction_row_id: int) -> List[Note]:
        with self._lock:
            notes = [dict(n) for n in self._notes if n["transaction_id"] == transaction_row_id]
        return sorted(notes, key=lambda n: n["id"], reverse=True)

    def create_video_clip(self, clip: Dict[str, Any]) -> VideoClip:
        with self._lock:
            record = dict(clip, id=next(self._ids["clip"]), created_at=datetime.now())
            self._clips.append(record)
            return dict(record)

    def get_video_clip(self, transaction_row_id: int) -> Optional[VideoClip]:
        with self._lock:
            for clip in reversed(self._clips):
                if clip.get("transaction_id") == transaction_row_id:
                    return dict(clip)
        return None

    def get_stats(self) -> Dict[str, int]:
        today = date.today()
        with self._lock:
            transactions = list(self._transactions.values())
            clip_count = len(self._clips)
        return {
            "pending_review": sum(1 for tx in transactions if tx["status"] == "pending"),
            "flagged_today": sum(1 for tx in transactions
                                 if tx.get("is_flagged") and tx["created_at"].date() == today),
            "approved": sum(1 for tx in transactions if tx["status"] == "approved"),
            "video_clips": clip_count,
        }
