"""
Tests for the import HTTP routes: auth, request shapes, status codes and
owner-scoped batch lookup and deletes.
"""

import os
import sqlite3
from unittest.mock import MagicMock

import pytest

from flask_app import NO_FILES_ERROR, create_app


BOUNDARY = "kpTestBoundary"


def multipart(fields=None, files=None):
    chunks = []
    for name, value in (fields or {}).items():
        chunks.append(
            f'--{BOUNDARY}\r\nContent-Disposition: form-data; name="{name}"\r\n\r\n'.encode("utf-8")
            + value.encode("utf-8") + b"\r\n"
        )
    for filename, data in files or []:
        chunks.append(
            f'--{BOUNDARY}\r\nContent-Disposition: form-data; name="files"; filename="{filename}"\r\n'
            f"Content-Type: application/pdf\r\n\r\n".encode("utf-8")
            + data + b"\r\n"
        )
    chunks.append(f"--{BOUNDARY}--\r\n".encode())
    return b"".join(chunks)


@pytest.fixture
def scratch_root(tmp_path):
    path = tmp_path / "scratch"
    path.mkdir()
    return path


@pytest.fixture
def app(store, fake_extractor_factory, tmp_path, scratch_root, tool_failure):
    extractor = fake_extractor_factory({"/reports/broken.pdf": tool_failure})
    app = create_app(
        store=store,
        extractor=extractor,
        storage_root=str(tmp_path / "durable"),
        temp_root=str(scratch_root),
    )
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


def login(client, user_id="u1"):
    with client.session_transaction() as sess:
        sess["user_id"] = user_id


class TestAuth:

    @pytest.mark.parametrize("method,url", [
        ("post", "/api/import-reports"),
        ("get", "/api/import-batches/abc"),
        ("post", "/api/import-batches/abc/reconcile"),
        ("delete", "/api/report-records/1"),
        ("delete", "/api/report-records"),
    ])
    def test_requires_session(self, client, method, url):
        response = getattr(client, method)(url)

        assert response.status_code == 401
        assert response.get_json() == {"error": "Not authenticated"}


class TestImportReports:

    def test_no_files(self, client):
        login(client)

        response = client.post("/api/import-reports", json={})

        assert response.status_code == 400
        assert response.get_json()["error"] == NO_FILES_ERROR

    def test_missing_folder(self, client, tmp_path):
        login(client)

        response = client.post("/api/import-reports", json={"folderPath": str(tmp_path / "gone")})

        assert response.status_code == 400
        assert response.get_json()["error"].startswith("Folder not found")

    def test_malformed_json(self, client):
        login(client)

        response = client.post("/api/import-reports", data=b"{not json", content_type="application/json")

        assert response.status_code == 400
        assert "Malformed" in response.get_json()["error"]

    def test_multipart_without_boundary(self, client):
        login(client)

        response = client.post("/api/import-reports", data=b"", content_type="multipart/form-data")

        assert response.status_code == 400

    def test_json_paths_with_one_failure(self, client, store):
        login(client)

        response = client.post("/api/import-reports", json={
            "pdfPaths": ["/reports/a.pdf", "/reports/broken.pdf", "/reports/c.pdf"],
            "studentFolder": "Class 5A",
        })

        assert response.status_code == 200
        body = response.get_json()
        assert (body["file_count"], body["success_count"], body["failed_count"]) == (3, 2, 1)
        assert body["failures"][0]["source_file"] == "/reports/broken.pdf"
        assert body["failures"][0]["reason"].startswith("pdftotext failed:")
        records = store.get_records("u1", batch_id=body["batch_id"])
        assert {r["student_folder"] for r in records} == {"Class 5A"}

    def test_json_folder_scan(self, client, store, tmp_path):
        folder = tmp_path / "reports"
        (folder / "week1").mkdir(parents=True)
        (folder / "a.pdf").write_bytes(b"%PDF")
        (folder / "week1" / "b.PDF").write_bytes(b"%PDF")
        (folder / "notes.txt").write_text("skip")
        login(client)

        response = client.post("/api/import-reports", json={"folderPath": str(folder)})

        body = response.get_json()
        assert response.status_code == 200
        assert body["file_count"] == 2
        assert store.get_batch(body["batch_id"], "u1").folder_path == str(folder)

    def test_multipart_upload_is_stored_and_scratch_removed(self, client, store, tmp_path, scratch_root):
        login(client)
        body = multipart(fields={"studentFolder": "李雷"}, files=[("one.pdf", b"%PDF-1"), ("two.pdf", b"%PDF-2")])

        response = client.post(
            "/api/import-reports",
            data=body,
            content_type=f"multipart/form-data; boundary={BOUNDARY}",
        )

        assert response.status_code == 200
        summary = response.get_json()
        assert summary["success_count"] == 2
        durable = (tmp_path / "durable").resolve() / "user_u1" / summary["batch_id"]
        assert sorted(os.listdir(durable)) == ["one.pdf", "two.pdf"]
        sources = {r["source_file"] for r in store.get_records("u1", batch_id=summary["batch_id"])}
        assert sources == {str(durable / "one.pdf"), str(durable / "two.pdf")}
        assert os.listdir(scratch_root) == []

    def test_store_error_returns_500_and_cleans_scratch(self, fake_extractor_factory, tmp_path, scratch_root):
        store = MagicMock()
        store.create_batch.side_effect = sqlite3.OperationalError("unable to open database file")
        app = create_app(store=store, extractor=fake_extractor_factory({}), temp_root=str(scratch_root))
        client = app.test_client()
        login(client)

        response = client.post(
            "/api/import-reports",
            data=multipart(files=[("one.pdf", b"%PDF-1")]),
            content_type=f"multipart/form-data; boundary={BOUNDARY}",
        )

        assert response.status_code == 500
        assert response.get_json()["error"] == "unable to open database file"
        assert os.listdir(scratch_root) == []


class TestBatchRoutes:

    def _import(self, client):
        response = client.post("/api/import-reports", json={"pdfPaths": ["/reports/a.pdf", "/reports/broken.pdf"]})
        return response.get_json()["batch_id"]

    def test_get_batch_with_failures(self, client):
        login(client)
        batch_id = self._import(client)

        response = client.get(f"/api/import-batches/{batch_id}")

        assert response.status_code == 200
        body = response.get_json()
        assert body["batch"]["id"] == batch_id
        assert (body["batch"]["success_count"], body["batch"]["failed_count"]) == (1, 1)
        assert body["batch"]["finalized_at"] is not None
        assert [f["source_file"] for f in body["failures"]] == ["/reports/broken.pdf"]

    def test_other_user_cannot_see_batch(self, client):
        login(client, "u1")
        batch_id = self._import(client)
        login(client, "u2")

        assert client.get(f"/api/import-batches/{batch_id}").status_code == 404
        assert client.post(f"/api/import-batches/{batch_id}/reconcile").status_code == 404

    def test_reconcile_recent_batch_conflicts(self, client, store, monkeypatch):
        monkeypatch.setattr("pipeline.config.RECONCILE_AFTER_SECONDS", 3600)
        store.create_batch("open-batch", "u1", None, None, 2)
        login(client)

        response = client.post("/api/import-batches/open-batch/reconcile")

        assert response.status_code == 409
        assert "may still be importing" in response.get_json()["error"]
        assert store.get_batch("open-batch", "u1").finalized_at is None

    def test_reconcile_open_batch(self, client, store, monkeypatch):
        monkeypatch.setattr("pipeline.config.RECONCILE_AFTER_SECONDS", 0)
        store.create_batch("open-batch", "u1", None, None, 2)
        login(client)

        response = client.post("/api/import-batches/open-batch/reconcile")

        assert response.status_code == 200
        assert response.get_json()["failed_count"] == 2
        assert store.get_batch("open-batch", "u1").finalized_at is not None


class TestDeleteRoutes:

    def test_delete_one_record(self, client, store):
        login(client)
        client.post("/api/import-reports", json={"pdfPaths": ["/reports/a.pdf"]})
        [record] = store.get_records("u1")

        response = client.delete(f"/api/report-records/{record['id']}")

        assert response.status_code == 200
        assert response.get_json() == {"success": True, "deleted": 1}
        assert client.delete(f"/api/report-records/{record['id']}").status_code == 404

    def test_delete_all_only_touches_caller(self, client, store):
        login(client, "u1")
        client.post("/api/import-reports", json={"pdfPaths": ["/reports/a.pdf"]})
        login(client, "u2")
        client.post("/api/import-reports", json={"pdfPaths": ["/reports/b.pdf"]})

        response = client.delete("/api/report-records")

        assert response.status_code == 200
        assert store.get_records("u2") == []
        assert len(store.get_records("u1")) == 1
