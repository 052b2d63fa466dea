"""
Upload API over HTTP: multipart batches, metadata records, client record listing.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from conftest import CLIENT_TOKEN, FakeStorage, auth_headers, cursor, make_db
from server import app
from services.storage_adapter import get_storage_adapter

PDF = b"%PDF-1.7\n"
PROFILE = {"supabase_user_id": "user-1", "username": "ada_l", "email": "client@example.com"}


@pytest.fixture
def db():
    db = make_db()
    db.client_profiles.find_one = AsyncMock(return_value=PROFILE)
    with patch("services.upload_recorder.database.get_db", return_value=db), \
         patch("services.upload_recorder.record_audit_event"), \
         patch("services.document_intake.record_audit_event"):
        yield db


def pdf_part(name, body=PDF):
    return ("files", (name, body, "application/pdf"))


class TestBatchUpload:
    def test_batch_stored_and_recorded(self, client, db, fake_storage):
        response = client.post(
            "/api/uploads",
            files=[pdf_part("W2_2025.pdf"), pdf_part("1099_INT.pdf", PDF + b"SSN 123-45-6789")],
            data={"category": "documents"},
            headers=auth_headers(CLIENT_TOKEN),
        )
        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["uploaded"] == 2
        assert body["dlp_hits"] == 1
        assert [f["name"] for f in body["files"]] == ["W2_2025.pdf", "1099_INT.pdf"]
        assert len(fake_storage.objects) == 2
        assert db.upload_records.insert_one.call_count == 2

    def test_rejected_file_named_and_nothing_stored(self, client, db, fake_storage):
        response = client.post(
            "/api/uploads",
            files=[
                pdf_part("W2_2025.pdf"),
                pdf_part("1099_INT.pdf", b"X5O!P%@AP EICAR-STANDARD-ANTIVIRUS-TEST-FILE"),
                pdf_part("1098_Mortgage.pdf"),
            ],
            headers=auth_headers(CLIENT_TOKEN),
        )
        assert response.status_code == 422
        body = response.json()
        assert body["error_code"] == "SCREENING_REJECTED"
        assert body["filename"] == "1099_INT.pdf"
        assert "1099_INT.pdf" in body["detail"]
        assert body["uploaded"] == 0
        assert fake_storage.calls == []
        db.upload_records.insert_one.assert_not_called()

    def test_partial_failure_reports_count(self, client, db):
        storage = FakeStorage(fail_on=2)
        app.dependency_overrides[get_storage_adapter] = lambda: storage
        response = client.post(
            "/api/uploads",
            files=[pdf_part("W2_2025.pdf"), pdf_part("1099_INT.pdf"), pdf_part("1098_Mortgage.pdf")],
            headers=auth_headers(CLIENT_TOKEN),
        )
        assert response.status_code == 503
        assert response.json()["uploaded"] == 1
        assert len(storage.objects) == 1

    def test_too_many_files_rejected_before_reading(self, client, db, fake_storage):
        response = client.post(
            "/api/uploads",
            files=[pdf_part(f"W2_{i}.pdf") for i in range(21)],
            headers=auth_headers(CLIENT_TOKEN),
        )
        assert response.status_code == 400
        assert "Too many files" in response.json()["detail"]
        assert fake_storage.calls == []

    def test_oversized_part_rejected(self, client, db, fake_storage):
        with patch("services.document_intake.MAX_UPLOAD_SIZE_BYTES", 16):
            response = client.post(
                "/api/uploads",
                files=[pdf_part("W2_2025.pdf", PDF + b"x" * 64)],
                headers=auth_headers(CLIENT_TOKEN),
            )
        assert response.status_code == 400
        assert response.json()["filename"] == "W2_2025.pdf"
        assert fake_storage.calls == []

    def test_storage_not_configured(self, client, db):
        app.dependency_overrides[get_storage_adapter] = lambda: FakeStorage(configured=False)
        response = client.post(
            "/api/uploads",
            files=[pdf_part("W2_2025.pdf")],
            headers=auth_headers(CLIENT_TOKEN),
        )
        assert response.status_code == 503
        assert response.json()["error_code"] == "NOT_CONFIGURED"

    def test_requires_session(self, client, db, fake_storage):
        response = client.post("/api/uploads", files=[pdf_part("W2_2025.pdf")])
        assert response.status_code == 401
        assert fake_storage.calls == []


class TestRecords:
    def test_client_record_forced_to_own_id(self, client, db):
        response = client.post(
            "/api/uploads/record",
            json={
                "client_user_id": "user-2",
                "file_name": "W2_2025.pdf",
                "storage_path": "uploads/ada_l/20250301120000000-W2_2025.pdf",
                "dlp_hits": "1",
            },
            headers=auth_headers(CLIENT_TOKEN),
        )
        assert response.status_code == 200
        assert response.json()["record_id"]
        stored = db.upload_records.insert_one.call_args[0][0]
        assert stored["client_user_id"] == "user-1"
        assert stored["scan_status"] == "flagged"
        assert stored["document_type"] == "W-2"

    def test_record_outside_namespace_rejected(self, client, db):
        response = client.post(
            "/api/uploads/record",
            json={"file_name": "W2.pdf", "storage_path": "elsewhere/W2.pdf"},
            headers=auth_headers(CLIENT_TOKEN),
        )
        assert response.status_code == 400

    def test_missing_metadata(self, client, db):
        response = client.post("/api/uploads/record", json={}, headers=auth_headers(CLIENT_TOKEN))
        assert response.status_code == 400
        assert response.json()["detail"] == "Missing upload metadata."

    def test_hidden_records_excluded(self, client, db):
        db.upload_records.find = MagicMock(return_value=cursor([
            {"storage_path": "uploads/ada_l/1-W2.pdf", "file_name": "W2.pdf"},
            {"storage_path": "uploads/ada_l/2-1099.pdf", "file_name": "1099.pdf"},
        ]))
        db.upload_visibility.find = MagicMock(return_value=cursor([{"path": "uploads/ada_l/2-1099.pdf"}]))

        response = client.get("/api/uploads/records", headers=auth_headers(CLIENT_TOKEN))
        assert response.status_code == 200
        assert [r["file_name"] for r in response.json()["records"]] == ["W2.pdf"]
        assert db.upload_records.find.call_args[0][0] == {"client_user_id": "user-1"}
