"""
Ingest Package - POS export ingestion and rule-based flagging

Modules:
- extract: CSV and spreadsheet-export parsing, content hashing
- normalize: Column-name normalization across POS export dialects
- flagging: Suspicious transaction rules
- guard: Duplicate-upload detection
- pipeline: Main orchestrator
- schema: TypedDict definitions
"""
from .flagging import FlaggingEngine, flag_transaction
from .pipeline import IngestPipeline
from .schema import Transaction, IngestResult, FlagDecision

__all__ = ['FlaggingEngine', 'flag_transaction', 'IngestPipeline', 'Transaction', 'IngestResult', 'FlagDecision']
