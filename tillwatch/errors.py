"""Exception taxonomy for the TillWatch service"""


class TillWatchError(Exception):
    """Base exception for TillWatch errors"""
    status_code = 500


class ParseError(TillWatchError):
    """Uploaded file could not be decoded in its expected format"""
    status_code = 400


class DuplicateFileError(TillWatchError):
    """Uploaded file content has already been ingested"""
    status_code = 409

    def __init__(self, message: str, file_hash: str = None, batch_id=None):
        super().__init__(message)
        self.file_hash = file_hash
        self.batch_id = batch_id


class NotFoundError(TillWatchError):
    """Unknown transaction, video clip or camera id"""
    status_code = 404


class ValidationError(TillWatchError):
    """Missing or invalid request fields"""
    status_code = 400


class ConflictError(TillWatchError):
    """Record changed underneath a read-then-write operation"""
    status_code = 409


class ExternalServiceError(TillWatchError):
    """Risk-scoring call failed or was rate-limited"""
    status_code = 502


class StoreError(TillWatchError):
    """Datastore operation errors"""
    status_code = 500


class DuplicateRecordError(StoreError):
    """Unique constraint violated in the datastore"""
    status_code = 409


class ConfigurationError(TillWatchError):
    """Configuration loading errors"""
    pass
