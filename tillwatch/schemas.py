"""SQL schemas for the Postgres (Supabase) datastore."""

UPLOAD_BATCHES_TABLE_SCHEMA = """
CREATE TABLE IF NOT EXISTS upload_batches (
    id SERIAL PRIMARY KEY,
    file_hash VARCHAR(64) NOT NULL,
    original_name VARCHAR(255),
    uploaded_by VARCHAR(255),
    processed INTEGER DEFAULT 0,
    flagged INTEGER DEFAULT 0,
    failed INTEGER DEFAULT 0,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_upload_batches_hash ON upload_batches(file_hash, created_at DESC);
"""

TRANSACTIONS_TABLE_SCHEMA = """
CREATE TABLE IF NOT EXISTS transactions (
    id SERIAL PRIMARY KEY,
    transaction_id VARCHAR(255) NOT NULL UNIQUE,
    date TIMESTAMP NOT NULL,
    register_id VARCHAR(100) NOT NULL,
    employee_name VARCHAR(255) NOT NULL,
    transaction_type VARCHAR(100) NOT NULL,
    amount DECIMAL(10, 2) NOT NULL,
    status VARCHAR(20) NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending', 'approved', 'investigate', 'escalate')),
    is_flagged BOOLEAN DEFAULT FALSE,
    flagged_reason TEXT,
    store_id VARCHAR(50) DEFAULT '001',
    upload_batch_id INTEGER REFERENCES upload_batches(id) ON DELETE SET NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_transactions_status ON transactions(status, date DESC);
CREATE INDEX IF NOT EXISTS idx_transactions_flagged ON transactions(is_flagged, created_at DESC);
"""

VIDEO_CLIPS_TABLE_SCHEMA = """
CREATE TABLE IF NOT EXISTS video_clips (
    id SERIAL PRIMARY KEY,
    transaction_id INTEGER REFERENCES transactions(id) ON DELETE CASCADE,
    filename VARCHAR(255) NOT NULL,
    original_name VARCHAR(255) NOT NULL,
    file_path VARCHAR(1024) NOT NULL,
    file_size BIGINT NOT NULL,
    duration INTEGER,  -- seconds
    uploaded_by VARCHAR(255),
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""

NOTES_TABLE_SCHEMA = """
CREATE TABLE IF NOT EXISTS notes (
    id SERIAL PRIMARY KEY,
    transaction_id INTEGER NOT NULL REFERENCES transactions(id) ON DELETE CASCADE,
    content TEXT NOT NULL,
    author_id VARCHAR(255),
    author_name VARCHAR(255) NOT NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""

# Audit log - append-only, written by transition_transaction_status only
AUDIT_LOGS_TABLE_SCHEMA = """
CREATE TABLE IF NOT EXISTS audit_logs (
    id SERIAL PRIMARY KEY,
    transaction_id INTEGER NOT NULL REFERENCES transactions(id) ON DELETE CASCADE,
    action VARCHAR(20) NOT NULL,
    previous_status VARCHAR(20),
    new_status VARCHAR(20) NOT NULL,
    performed_by VARCHAR(255),
    performed_by_name VARCHAR(255) NOT NULL,
    details TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_audit_logs_txn ON audit_logs(transaction_id, created_at DESC);
"""

# Status compare-and-swap plus audit insert in one database transaction
TRANSITION_FUNCTION_SCHEMA = """
CREATE OR REPLACE FUNCTION transition_transaction_status(
    p_id INTEGER,
    p_expected VARCHAR,
    p_new VARCHAR,
    p_performed_by VARCHAR,
    p_performed_by_name VARCHAR,
    p_details TEXT
) RETURNS SETOF transactions AS $$
DECLARE
    updated transactions%ROWTYPE;
BEGIN
    UPDATE transactions
       SET status = p_new, updated_at = CURRENT_TIMESTAMP
     WHERE id = p_id AND status = p_expected
    RETURNING * INTO updated;

    IF NOT FOUND THEN
        RETURN;
    END IF;

    INSERT INTO audit_logs (transaction_id, action, previous_status, new_status,
                            performed_by, performed_by_name, details)
    VALUES (p_id, p_new, p_expected, p_new, p_performed_by, p_performed_by_name, p_details);

    RETURN NEXT updated;
END;
$$ LANGUAGE plpgsql;
"""

ALL_SCHEMAS = [
    UPLOAD_BATCHES_TABLE_SCHEMA,
    TRANSACTIONS_TABLE_SCHEMA,
    VIDEO_CLIPS_TABLE_SCHEMA,
    NOTES_TABLE_SCHEMA,
    AUDIT_LOGS_TABLE_SCHEMA,
    TRANSITION_FUNCTION_SCHEMA,
]


def schema_script() -> str:
    """Full DDL script, in dependency order, for the Supabase SQL editor."""
    return "\n".join(s.strip() + "\n" for s in ALL_SCHEMAS)
