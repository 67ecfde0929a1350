"""End-to-end tests through the Flask test client."""
import io

from openpyxl import load_workbook

from conftest import TWO_ROW_CSV, upload_pos


def ids_by_transaction_id(client):
    res = client.get("/api/transactions")
    return {tx["transaction_id"]: tx["id"] for tx in res.get_json()["transactions"]}


# ─── Auth ───

def test_routes_require_session(client):
    assert client.get("/api/stats").status_code == 401
    assert client.get("/api/transactions").status_code == 401
    assert upload_pos(client, TWO_ROW_CSV).status_code == 401
    assert client.get("/api/cameras").get_json() == {"error": "Unauthorized"}


def test_wrong_password(client):
    res = client.post("/api/login", json={"password": "nope"})
    assert res.status_code == 401
    assert client.get("/api/stats").status_code == 401


def test_login_and_logout(manager):
    assert manager.get("/api/auth/user").get_json() == {"id": "manager", "name": "Manager"}
    assert manager.post("/api/logout").status_code == 200
    assert manager.get("/api/auth/user").status_code == 401


def test_proxy_identity(app, client):
    app.config["TRUST_PROXY_AUTH"] = True
    res = client.get("/api/auth/user", headers={"X-Forwarded-User": "u-17"})
    assert res.status_code == 200
    assert res.get_json()["id"] == "u-17"


# ─── Ingestion ───

def test_upload_two_row_csv(manager):
    res = upload_pos(manager, TWO_ROW_CSV)
    assert res.status_code == 200
    body = res.get_json()
    assert body["processed"] == 2
    assert body["flagged"] == 1
    assert body["message"] == "Successfully processed 2 transactions"

    listing = manager.get("/api/transactions").get_json()
    assert listing["total"] == 2
    refund = next(tx for tx in listing["transactions"] if tx["transaction_id"] == "T1")
    assert refund["status"] == "pending"
    assert refund["flagged_reason"] == "High value refund"
    assert refund["amount"] == 75.0
    assert isinstance(refund["amount"], float)
    assert refund["date"] == "2024-01-15T10:00:00"

    stats = manager.get("/api/stats").get_json()
    assert stats == {"pending_review": 1, "flagged_today": 1, "approved": 1, "video_clips": 0}


def test_duplicate_upload_conflict(manager):
    assert upload_pos(manager, TWO_ROW_CSV).status_code == 200
    res = upload_pos(manager, TWO_ROW_CSV, filename="again.csv")
    assert res.status_code == 409
    assert "already processed" in res.get_json()["error"]
    assert manager.get("/api/transactions").get_json()["total"] == 2


def test_upload_validation(manager):
    assert manager.post("/api/upload/pos", data={}, content_type="multipart/form-data").status_code == 400
    res = upload_pos(manager, b"%PDF-1.4", filename="report.pdf")
    assert res.status_code == 400
    assert "Unsupported" in res.get_json()["error"]
    assert upload_pos(manager, b"junk", filename="export.xlsx").status_code == 400


# ─── Listing, detail, export ───

def test_filters_and_pagination(manager):
    upload_pos(manager, TWO_ROW_CSV)

    body = manager.get("/api/transactions?status=pending").get_json()
    assert [tx["transaction_id"] for tx in body["transactions"]] == ["T1"]

    body = manager.get("/api/transactions?search=bob").get_json()
    assert [tx["transaction_id"] for tx in body["transactions"]] == ["T2"]

    body = manager.get("/api/transactions?transactionType=REFUND").get_json()
    assert body["total"] == 1

    body = manager.get("/api/transactions?page=2&limit=1").get_json()
    assert body["total"] == 2
    assert [tx["transaction_id"] for tx in body["transactions"]] == ["T1"]

    assert manager.get("/api/transactions?status=closed").status_code == 400
    assert manager.get("/api/transactions?limit=0").status_code == 400


def test_transaction_detail(manager):
    upload_pos(manager, TWO_ROW_CSV)
    row_id = ids_by_transaction_id(manager)["T1"]

    body = manager.get(f"/api/transactions/{row_id}").get_json()
    assert body["transaction"]["transaction_id"] == "T1"
    assert body["video_clip"] is None
    assert body["notes"] == []
    assert body["audit_log"] == []

    assert manager.get("/api/transactions/999").status_code == 404


def test_export_csv_and_xlsx(manager):
    upload_pos(manager, TWO_ROW_CSV)

    res = manager.get("/api/transactions/export?status=pending")
    assert res.status_code == 200
    assert res.mimetype == "text/csv"
    lines = res.data.decode().strip().splitlines()
    assert lines[0].startswith("Transaction ID,Date,Register ID")
    assert len(lines) == 2

    res = manager.get("/api/transactions/export?format=xlsx")
    assert res.status_code == 200
    ws = load_workbook(io.BytesIO(res.data)).active
    assert ws.max_row == 3

    assert manager.get("/api/transactions/export?format=pdf").status_code == 400


# ─── Review ───

def test_status_update_and_audit(manager):
    upload_pos(manager, TWO_ROW_CSV)
    row_id = ids_by_transaction_id(manager)["T1"]

    res = manager.patch(f"/api/transactions/{row_id}/status", json={"status": "escalate"})
    assert res.status_code == 200
    assert res.get_json()["status"] == "escalate"

    audit = manager.get(f"/api/transactions/{row_id}").get_json()["audit_log"]
    assert len(audit) == 1
    assert audit[0]["previous_status"] == "pending"
    assert audit[0]["new_status"] == "escalate"
    assert audit[0]["performed_by"] == "manager"
    assert audit[0]["performed_by_name"] == "Manager"

    stats = manager.get("/api/stats").get_json()
    assert stats["pending_review"] == 0


def test_status_update_errors(manager):
    upload_pos(manager, TWO_ROW_CSV)
    row_id = ids_by_transaction_id(manager)["T2"]

    assert manager.patch(f"/api/transactions/{row_id}/status", json={"status": "pending"}).status_code == 400
    assert manager.patch(f"/api/transactions/{row_id}/status", json={}).status_code == 400
    assert manager.patch("/api/transactions/999/status", json={"status": "approved"}).status_code == 404


def test_notes(manager):
    upload_pos(manager, TWO_ROW_CSV)
    row_id = ids_by_transaction_id(manager)["T1"]

    res = manager.post(f"/api/transactions/{row_id}/notes", json={"content": "Receipt missing"})
    assert res.status_code == 201
    assert res.get_json()["author_name"] == "Manager"

    notes = manager.get(f"/api/transactions/{row_id}").get_json()["notes"]
    assert [n["content"] for n in notes] == ["Receipt missing"]

    assert manager.post(f"/api/transactions/{row_id}/notes", json={"content": "  "}).status_code == 400
    assert manager.post("/api/transactions/999/notes", json={"content": "x"}).status_code == 404


# ─── Video ───

def upload_video(client, data, transaction_id=None, filename="clip.mp4"):
    form = {"videoFile": (io.BytesIO(data), filename), "duration": "30"}
    if transaction_id is not None:
        form["transactionId"] = str(transaction_id)
    return client.post("/api/upload/video", data=form, content_type="multipart/form-data")


def test_video_upload_and_range_streaming(manager, app):
    upload_pos(manager, TWO_ROW_CSV)
    row_id = ids_by_transaction_id(manager)["T1"]
    payload = bytes(range(256)) * 8

    res = upload_video(manager, payload, transaction_id=row_id)
    assert res.status_code == 201
    clip = res.get_json()
    assert clip["filename"].startswith("videoFile-")
    assert clip["filename"].endswith(".mp4")
    assert clip["file_size"] == len(payload)
    assert clip["duration"] == 30

    full = manager.get(f"/api/video/{row_id}")
    assert full.status_code == 200
    assert full.mimetype == "video/mp4"
    assert full.data == payload

    partial = manager.get(f"/api/video/{row_id}", headers={"Range": "bytes=100-199"})
    assert partial.status_code == 206
    assert partial.data == payload[100:200]
    assert partial.headers["Content-Range"] == f"bytes 100-199/{len(payload)}"

    detail = manager.get(f"/api/transactions/{row_id}").get_json()
    assert detail["video_clip"]["id"] == clip["id"]
    assert manager.get("/api/stats").get_json()["video_clips"] == 1


def test_video_for_unknown_transaction(manager):
    assert upload_video(manager, b"data", transaction_id=999).status_code == 404
    assert manager.get("/api/video/999").status_code == 404


def test_unlinked_video_upload(manager):
    res = upload_video(manager, b"data")
    assert res.status_code == 201
    assert res.get_json()["transaction_id"] is None


# ─── Risk scoring ───

def test_analyze_transaction_falls_back_without_key(manager):
    upload_pos(manager, TWO_ROW_CSV)
    row_id = ids_by_transaction_id(manager)["T1"]

    res = manager.post("/api/ai/analyze-transaction", json={"transactionId": row_id})
    assert res.status_code == 200
    body = res.get_json()
    assert body["source"] == "rules"
    assert "High value refund" in body["flags"]

    assert manager.post("/api/ai/analyze-transaction", json={}).status_code == 400
    assert manager.post("/api/ai/analyze-transaction", json={"transactionId": 999}).status_code == 404


def test_bulk_analyze_defaults_to_pending(manager):
    upload_pos(manager, TWO_ROW_CSV)
    body = manager.post("/api/ai/bulk-analyze", json={}).get_json()
    assert [r["transactionId"] for r in body["results"]] == ["T1"]
    assert "summary" in body


# ─── Cameras ───

def test_camera_crud(manager):
    res = manager.post("/api/cameras", json={"name": "Till 1", "ip": "192.168.0.5", "password": "x"})
    assert res.status_code == 201
    camera_id = res.get_json()["id"]

    assert manager.post("/api/cameras", json={"name": "No IP"}).status_code == 400

    res = manager.patch(f"/api/cameras/{camera_id}", json={"channel": 4})
    assert res.get_json()["channel"] == 4

    res = manager.post(f"/api/cameras/{camera_id}/test")
    assert res.get_json()["connected"] is True

    res = manager.post("/api/cameras/test-feed", json={"ip": "192.168.0.5"})
    assert res.get_json()["success"] is True

    assert manager.delete(f"/api/cameras/{camera_id}").status_code == 200
    assert manager.get("/api/cameras").get_json() == []
    assert manager.delete(f"/api/cameras/{camera_id}").status_code == 404


def test_unknown_route_is_json(manager):
    res = manager.get("/api/does-not-exist")
    assert res.status_code == 404
    assert "error" in res.get_json()
