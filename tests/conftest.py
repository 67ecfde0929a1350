import io

import pandas as pd
import pytest

from tillwatch.app import create_app
from tillwatch.ingest.extract import SPREADSHEET_COLUMNS
from tillwatch.store import MemoryStore

MANAGER_PASSWORD = "test-password"

TWO_ROW_CSV = (
    b"transaction_id,date,register_id,employee_name,transaction_type,amount\n"
    b"T1,2024-01-15 10:00:00,R1,Alice,refund,$75.00\n"
    b"T2,2024-01-15 11:00:00,R2,Bob,sale,20.00\n"
)


def spreadsheet_bytes(data_rows, preamble=True, marker=True) -> bytes:
    """Build an in-memory .xlsx laid out like the back-office export."""
    width = len(SPREADSHEET_COLUMNS)
    rows = []
    if preamble:
        rows.append(["Store 001 Sales Report"] + [None] * (width - 1))
        rows.append(["Printed by: admin", "01/15/2024"] + [None] * (width - 2))
    if marker:
        rows.append(list(SPREADSHEET_COLUMNS))
    rows.extend(data_rows)

    buffer = io.BytesIO()
    pd.DataFrame(rows).to_excel(buffer, header=False, index=False, engine="openpyxl")
    return buffer.getvalue()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def app(store, tmp_path):
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test-secret",
        "MANAGER_PASSWORD": MANAGER_PASSWORD,
        "TRUST_PROXY_AUTH": False,
        "LOG_FILE": "",
        "UPLOAD_FOLDER": str(tmp_path / "uploads"),
        "SUPABASE_URL": None,
        "SUPABASE_SERVICE_ROLE_KEY": None,
        "OPENAI_API_KEY": None,
        "DUPLICATE_RETENTION_DAYS": 0,
    }, store=store)
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def manager(client):
    """Test client with a logged-in manager session."""
    res = client.post("/api/login", json={"password": MANAGER_PASSWORD})
    assert res.status_code == 200
    return client


def upload_pos(client, data: bytes, filename: str = "pos.csv"):
    return client.post(
        "/api/upload/pos",
        data={"posFile": (io.BytesIO(data), filename)},
        content_type="multipart/form-data",
    )
