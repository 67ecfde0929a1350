"""
TillWatch - loss-prevention backend for retail and gas-station POS data.

Modules:
- app: Flask application factory and HTTP routes
- ingest: POS export parsing, normalization, flagging and duplicate guard
- review: Manager review state machine
- store / supabase_client: Datastores
- risk: Advisory LLM risk scoring
- cameras: DVR camera registry
- export: CSV / Excel export
"""
__version__ = "1.0.0"
