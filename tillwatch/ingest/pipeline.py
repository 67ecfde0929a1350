"""
Ingestion Pipeline Orchestrator - Coordinates Guard, Extract, Normalize, Flag, and Store.

Flow: Guard → Extract → Normalize → Flag → Store

Rows are handled one at a time; a row that fails is recorded as a failed
outcome with its payload and the batch carries on.
"""
import logging
import time
from typing import List

import pandas as pd

from ..errors import ParseError, StoreError
from ..review import initial_status
from .extract import ParserFactory
from .flagging import FlaggingEngine
from .guard import DuplicateUploadGuard
from .normalize import FieldNormalizer
from .schema import IngestResult, RowOutcome, TransactionDraft


class IngestPipeline:
    """
    POS file ingestion with per-row outcomes.
    """

    def __init__(self, store, flagging_engine: FlaggingEngine = None, normalizer: FieldNormalizer = None,
                 retention_days: int = None):
        self.store = store
        self.guard = DuplicateUploadGuard(store, retention_days=retention_days)
        self.normalizer = normalizer or FieldNormalizer()
        self.flagging_engine = flagging_engine or FlaggingEngine()

    def process(self, data: bytes, filename: str, uploaded_by: str = None) -> IngestResult:
        """
        Ingest one uploaded POS file.

        Raises DuplicateFileError before touching any row when the same bytes
        were ingested before, and ParseError when the file cannot be decoded.
        """
        start_time = time.time()

        # ─── 1. Duplicate guard ───
        batch = self.guard.claim(data, filename, uploaded_by)

        # ─── 2. Extract ───
        try:
            parser = ParserFactory.get_parser(filename)
            rows = parser.parse(data)
        except ParseError:
            self.guard.release(batch)
            raise

        # ─── 3-5. Normalize, flag, store (per row) ───
        outcomes: List[RowOutcome] = []
        for row_number, row in enumerate(rows, 1):
            outcomes.append(self._process_row(row_number, row, batch["id"]))

        created = [o for o in outcomes if o["status"] == "created"]
        flagged = sum(1 for o in created if o["is_flagged"])
        failed = len(outcomes) - len(created)

        warnings = []
        if not outcomes:
            warnings.append("No transaction rows found in file")
        if failed:
            warnings.append(f"{failed} row(s) could not be ingested")

        self.store.update_upload_batch(batch["id"], {
            "processed": len(created),
            "flagged": flagged,
            "failed": failed,
        })

        processing_time = (time.time() - start_time) * 1000
        logging.info(
            f"Ingested {filename}: {len(created)} created, {flagged} flagged, {failed} failed "
            f"in {processing_time:.0f}ms"
        )

        return {
            "batch_id": batch["id"],
            "file_hash": batch["file_hash"],
            "source_file": filename,
            "processed": len(created),
            "flagged": flagged,
            "failed": failed,
            "outcomes": outcomes,
            "warnings": warnings,
            "processing_time_ms": processing_time,
        }

    def _process_row(self, row_number: int, row: dict, batch_id: int) -> RowOutcome:
        try:
            normalized = self.normalizer.normalize(row)
            draft = normalized["draft"]
            issues = normalized["issues"]

            if pd.isna(draft["date"]):
                return self._failed(row_number, row, "Invalid or missing date", draft.get("transaction_id"))

            decision = self.flagging_engine.flag(draft)
            transaction = self.store.create_transaction({
                **self._record(draft),
                "status": initial_status(decision["is_flagged"]).value,
                "is_flagged": decision["is_flagged"],
                "flagged_reason": decision["reason"],
                "upload_batch_id": batch_id,
            })
        except StoreError as e:
            logging.warning(f"Row {row_number} rejected by store: {e}")
            return self._failed(row_number, row, str(e))
        except Exception as e:
            logging.exception(f"Row {row_number} failed during ingestion")
            return self._failed(row_number, row, f"Unexpected error: {e}")

        return {
            "row_number": row_number,
            "status": "created",
            "id": transaction["id"],
            "transaction_id": transaction["transaction_id"],
            "is_flagged": transaction["is_flagged"],
            "flagged_reason": transaction["flagged_reason"],
            "issues": issues,
            "error": None,
        }

    @staticmethod
    def _record(draft: TransactionDraft) -> dict:
        ts = pd.Timestamp(draft["date"])
        if ts.tzinfo is not None:
            ts = ts.tz_convert("UTC").tz_localize(None)
        return {**draft, "date": ts.to_pydatetime()}

    @staticmethod
    def _failed(row_number: int, row: dict, error: str, transaction_id: str = None) -> RowOutcome:
        return {
            "row_number": row_number,
            "status": "failed",
            "id": None,
            "transaction_id": transaction_id,
            "is_flagged": False,
            "flagged_reason": None,
            "issues": [],
            "error": error,
            "row": dict(row),
        }
