"""
Flask request mapping for report imports.

Maps an import request (multipart upload or JSON folder/path list) onto the
payload resolver and the batch coordinator, and exposes the owner's batch
lookup and delete operations. The signed-in principal is read from the session.
"""

import json
import logging
import os
import shutil
from typing import Optional

from dotenv import load_dotenv
from flask import Flask, jsonify, request, session

load_dotenv()

from pipeline import config
from pipeline.database import ReportDatabase
from pipeline.ingest import resolve_import_payload
from pipeline.pdf_text import TextExtractor, get_text_extractor
from jobs.import_batch import BatchCoordinator, BatchStateError, reconcile_batch

logger = logging.getLogger(__name__)

NO_FILES_ERROR = "No PDF files found. Provide folderPath or upload pdf files."


def require_auth() -> Optional[str]:
    """Return the signed-in user id, or None."""
    user_id = session.get("user_id")
    return str(user_id) if user_id else None


def create_app(
    store: Optional[ReportDatabase] = None,
    extractor: Optional[TextExtractor] = None,
    storage_root: Optional[str] = None,
    temp_root: Optional[str] = None,
) -> Flask:
    """
    Build the Flask app around an explicitly constructed store and extractor.

    Args:
        store: Report database (default: REPORTS_DB_PATH)
        extractor: Text extractor (default: PDF_TEXT_PROVIDER)
        storage_root: Durable upload storage (default: UPLOADED_PDF_DIR)
        temp_root: Parent of upload scratch dirs (default: system temp)
    """
    app = Flask(__name__)
    app.secret_key = os.environ.get("FLASK_SECRET_KEY", os.urandom(32))
    app.config["MAX_CONTENT_LENGTH"] = config.MAX_IMPORT_BYTES

    store = store or ReportDatabase(config.REPORTS_DB_PATH)
    coordinator = BatchCoordinator(
        store,
        extractor=extractor or get_text_extractor(),
        storage_root=storage_root,
    )

    @app.route("/api/import-reports", methods=["POST"])
    def import_reports():
        user_id = require_auth()
        if not user_id:
            return jsonify({"error": "Not authenticated"}), 401

        content_type = request.headers.get("Content-Type", "")
        raw_body = request.get_data(cache=False)

        try:
            json_body = None
            if "application/json" in content_type:
                json_body = json.loads(raw_body.decode("utf-8") or "{}")
                if not isinstance(json_body, dict):
                    raise ValueError("JSON body must be an object")
            payload = resolve_import_payload(content_type, raw_body, json_body, temp_root=temp_root)
        except (ValueError, UnicodeDecodeError) as e:
            return jsonify({"error": f"Malformed import request: {e}"}), 400
        except (FileNotFoundError, NotADirectoryError) as e:
            return jsonify({"error": f"Folder not found: {e.filename}"}), 400

        try:
            if not payload.pdf_paths:
                return jsonify({"error": NO_FILES_ERROR}), 400

            summary = coordinator.run(
                user_id,
                payload.pdf_paths,
                student_folder=payload.student_folder or None,
                folder_path=payload.folder_path or None,
                upload_dir=payload.upload_dir,
            )
            return jsonify(summary.model_dump())
        except BatchStateError as e:
            return jsonify({"error": str(e)}), 409
        except Exception as e:
            logger.exception("Import failed")
            return jsonify({"error": str(e) or "Import failed"}), 500
        finally:
            if payload.upload_dir:
                shutil.rmtree(payload.upload_dir, ignore_errors=True)

    @app.route("/api/import-batches/<batch_id>", methods=["GET"])
    def get_import_batch(batch_id):
        user_id = require_auth()
        if not user_id:
            return jsonify({"error": "Not authenticated"}), 401

        batch = store.get_batch(batch_id, user_id)
        if batch is None:
            return jsonify({"error": "Batch not found"}), 404
        failures = store.get_failures(batch_id, user_id)
        return jsonify({
            "batch": batch.model_dump(mode="json"),
            "failures": [f.model_dump(mode="json") for f in failures],
        })

    @app.route("/api/import-batches/<batch_id>/reconcile", methods=["POST"])
    def reconcile_import_batch(batch_id):
        user_id = require_auth()
        if not user_id:
            return jsonify({"error": "Not authenticated"}), 401

        try:
            summary = reconcile_batch(store, batch_id, user_id)
        except BatchStateError as e:
            return jsonify({"error": str(e)}), 409
        if summary is None:
            return jsonify({"error": "Batch not found"}), 404
        return jsonify(summary.model_dump())

    @app.route("/api/report-records/<int:record_id>", methods=["DELETE"])
    def delete_report_record(record_id):
        user_id = require_auth()
        if not user_id:
            return jsonify({"error": "Not authenticated"}), 401

        if not store.delete_record(record_id, user_id):
            return jsonify({"error": "Record not found"}), 404
        return jsonify({"success": True, "deleted": 1})

    @app.route("/api/report-records", methods=["DELETE"])
    def delete_all_report_records():
        user_id = require_auth()
        if not user_id:
            return jsonify({"error": "Not authenticated"}), 401

        store.delete_all_user_data(user_id)
        return jsonify({"success": True})

    return app


if __name__ == "__main__":
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL, logging.INFO),
        format='%(asctime)s [%(levelname)s] %(message)s'
    )
    port = int(os.environ.get("PORT", os.environ.get("FLASK_PORT", 5000)))
    create_app().run(host="0.0.0.0", port=port, debug=False)
