"""
Duplicate-Upload Guard - refuses to ingest the same POS file twice.

Each upload is content-hashed (SHA256 over the whole file) before parsing.
The hash is persisted as an upload batch in the datastore, so the guard
survives process restarts. Hashes older than the retention window no longer
block a re-upload.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from ..errors import DuplicateFileError
from .extract import get_content_hash
from .schema import UploadBatch


class DuplicateUploadGuard:

    def __init__(self, store, retention_days: Optional[int] = None):
        self.store = store
        self.retention_days = retention_days or None

    def claim(self, data: bytes, filename: str, uploaded_by: str = None) -> UploadBatch:
        """
        Record the upload or raise DuplicateFileError if it was seen before.

        Two simultaneous uploads of the same bytes can both pass the check;
        for a human-driven upload workflow that race is accepted.
        """
        file_hash = get_content_hash(data)
        existing = self.store.find_upload_batch(file_hash, since=self._cutoff())
        if existing:
            logging.warning(f"Duplicate upload rejected: {filename} matches batch {existing['id']} ({file_hash[:12]})")
            raise DuplicateFileError(
                f"File already processed (batch {existing['id']}, uploaded {existing.get('created_at')})",
                file_hash=file_hash,
                batch_id=existing["id"],
            )

        batch = self.store.create_upload_batch({
            "file_hash": file_hash,
            "original_name": filename,
            "uploaded_by": uploaded_by,
            "processed": 0,
            "flagged": 0,
            "failed": 0,
        })
        logging.info(f"Upload batch {batch['id']} claimed for {filename} ({file_hash[:12]})")
        return batch

    def release(self, batch: UploadBatch) -> None:
        """Forget a claim whose file turned out to be unreadable."""
        self.store.delete_upload_batch(batch["id"])
        logging.info(f"Upload batch {batch['id']} released")

    def _cutoff(self) -> Optional[datetime]:
        if not self.retention_days:
            return None
        return datetime.now() - timedelta(days=self.retention_days)
