"""
Flask route handlers for the REST API.
"""

import sys
import traceback

from flask import g, jsonify, request
from sqlalchemy import text as sa_text

from emr.api.auth import (
    api_guard,
    clear_session_cookie,
    current_session,
    log_sink,
    set_session_cookie,
)
from emr.access_policy import UNAUTHENTICATED_MESSAGE
from emr.extractor import extract_fields
from emr.models import Role, Session
from emr.store import DuplicateUserError, UserInUseError

PATIENT_FIELDS = ("firstName", "lastName", "roomNumber", "diagnosis")

# Entry payload keys -> store column names.
ENTRY_FIELDS = {
    "vitalSigns": "vital_signs",
    "subjective": "subjective",
    "objective": "objective",
    "assessment": "assessment",
    "plan": "plan",
    "transcript": "transcript",
    "reviewed": "reviewed",
}
ENTRY_SECTIONS = ("vitalSigns", "subjective", "objective")
ENTRY_TEXT_FIELDS = ("assessment", "plan", "transcript")


def _json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _server_error(context: str, error: Exception, message: str):
    log_sink().log(f"{context}: {error}", "error")
    traceback.print_exc(file=sys.stderr)
    return jsonify({"message": message}), 500


def _entry_changes(data):
    """Pick entry fields out of a payload; raises ValueError on a field of the wrong type."""
    for key in ENTRY_SECTIONS:
        if data.get(key) is not None and not isinstance(data[key], dict):
            raise ValueError(f"{key} must be an object")
    for key in ENTRY_TEXT_FIELDS:
        if data.get(key) is not None and not isinstance(data[key], str):
            raise ValueError(f"{key} must be a string")
    if data.get("reviewed") is not None and not isinstance(data["reviewed"], bool):
        raise ValueError("reviewed must be true or false")
    return {
        column: data[key]
        for key, column in ENTRY_FIELDS.items()
        if data.get(key) is not None
    }


def register_routes(app, store, llm):
    """Register all API routes on the Flask *app*."""

    def current_user():
        return store.get_user_by_username(g.session.username)

    def owned_patient(patient_id, user):
        return store.get_patient(patient_id, nurse_id=user["id"])

    # ── Health ───────────────────────────────────────────────────────

    @app.route("/health", methods=["GET"])
    def health():
        checks = {"database": False, "llm": llm is not None}
        try:
            with store.engine.connect() as conn:
                conn.execute(sa_text("SELECT 1"))
            checks["database"] = True
        except Exception as e:
            print(f"[WARN] Health check database error: {e}", file=sys.stderr)

        healthy = checks["database"]
        return jsonify({
            "status": "healthy" if healthy else "unhealthy",
            "checks": checks,
        }), 200 if healthy else 503

    # ── Auth ─────────────────────────────────────────────────────────

    @app.route("/api/auth/login", methods=["POST"])
    def login():
        if not request.is_json:
            return jsonify({"message": "Content-Type must be application/json"}), 400

        data = _json_body()
        username = str(data.get("username") or "").strip()
        password = str(data.get("password") or "")
        if not username or not password:
            return jsonify({"message": "Username and password are required"}), 400

        try:
            user = store.verify_credentials(username, password)
        except Exception as e:
            return _server_error("Login error", e, "Internal server error")

        if not user:
            return jsonify({"message": "Invalid username or password"}), 401

        log_sink().log(f"User role: {user['role']}", "debug")
        session = Session(username=user["username"], role=Role(user["role"]))

        response = jsonify({
            "message": "Login successful",
            "user": session.to_dict(),
        })
        set_session_cookie(response, session)
        return response, 200

    @app.route("/api/auth/logout", methods=["POST"])
    def logout():
        response = jsonify({"message": "Logged out successfully"})
        clear_session_cookie(response)
        return response, 200

    @app.route("/api/auth/session", methods=["GET"])
    def whoami():
        # Both roles may ask who they are, so this bypasses the role table.
        session = current_session()
        if session is None:
            return jsonify({"message": UNAUTHENTICATED_MESSAGE}), 401
        return jsonify({"user": session.to_dict()}), 200

    # ── Patients ─────────────────────────────────────────────────────

    @app.route("/api/patients", methods=["GET"])
    @api_guard
    def get_patients():
        try:
            user = current_user()
            if not user:
                return jsonify({"message": "User not found"}), 404

            patient_id = request.args.get("id")
            if patient_id:
                patient = owned_patient(patient_id, user)
                if not patient:
                    return jsonify({
                        "message": "Patient not found or not associated with this user",
                    }), 404
                return jsonify({"patient": patient}), 200

            return jsonify({"patients": store.list_patients(user["id"])}), 200
        except Exception as e:
            return _server_error("Error fetching patients", e, "Failed to fetch patients")

    @app.route("/api/patients", methods=["POST"])
    @api_guard
    def add_patient():
        data = _json_body()
        missing = [f for f in PATIENT_FIELDS if not str(data.get(f) or "").strip()]
        if missing:
            return jsonify({"message": "All fields are required", "missing": missing}), 400

        try:
            user = current_user()
            if not user:
                return jsonify({"message": "User not found"}), 404

            patient = store.create_patient(
                nurse_id=user["id"],
                first_name=str(data["firstName"]).strip(),
                last_name=str(data["lastName"]).strip(),
                room_number=str(data["roomNumber"]).strip(),
                diagnosis=str(data["diagnosis"]).strip(),
            )
            return jsonify({"message": "Patient added successfully", "patient": patient}), 201
        except Exception as e:
            return _server_error("Error adding patient", e, "Failed to add patient")

    @app.route("/api/patients", methods=["DELETE"])
    @api_guard
    def delete_patient():
        patient_id = request.args.get("id")
        if not patient_id:
            return jsonify({"message": "Patient ID is required"}), 400

        try:
            user = current_user()
            if not user:
                return jsonify({"message": "User not found"}), 404

            if not owned_patient(patient_id, user):
                return jsonify({
                    "message": "Patient not found or not associated with this user",
                }), 404

            store.delete_patient(patient_id)
            return jsonify({"message": "Patient deleted successfully"}), 200
        except Exception as e:
            return _server_error("Error deleting patient", e, "Failed to delete patient")

    # ── Entries ──────────────────────────────────────────────────────

    @app.route("/api/entries", methods=["GET"])
    @api_guard
    def get_entries():
        entry_id = request.args.get("id")
        patient_id = request.args.get("patientId")
        if not entry_id and not patient_id:
            return jsonify({"message": "Patient ID or Entry ID is required"}), 400

        try:
            user = current_user()
            if not user:
                return jsonify({"message": "User not found"}), 404

            if entry_id:
                entry = store.get_entry(entry_id)
                if not entry or not owned_patient(entry["patientId"], user):
                    return jsonify({"message": "Entry not found"}), 404
                return jsonify({"entry": entry}), 200

            if not owned_patient(patient_id, user):
                return jsonify({"message": "Patient not found"}), 404
            return jsonify({"entries": store.list_entries(patient_id)}), 200
        except Exception as e:
            return _server_error("Error fetching entries", e, "Failed to fetch entries")

    @app.route("/api/entries", methods=["POST"])
    @api_guard
    def add_entry():
        data = _json_body()
        patient_id = data.get("patientId")
        if not patient_id:
            return jsonify({"message": "Patient ID is required"}), 400

        try:
            changes = _entry_changes(data)
        except ValueError as e:
            return jsonify({"message": f"Validation Error: {e}"}), 400
        changes.pop("reviewed", None)

        try:
            user = current_user()
            if not user:
                return jsonify({"message": "User not found"}), 404
            if not owned_patient(patient_id, user):
                return jsonify({"message": "Patient not found"}), 404

            entry = store.create_entry(patient_id, **changes)
            return jsonify({"message": "Entry added successfully", "entry": entry}), 201
        except Exception as e:
            return _server_error("Error adding entry", e, "Failed to add entry")

    @app.route("/api/entries", methods=["PUT"])
    @api_guard
    def update_entry():
        data = _json_body()
        entry_id = data.get("id")
        if not entry_id:
            return jsonify({"message": "Entry ID is required"}), 400

        try:
            changes = _entry_changes(data)
        except ValueError as e:
            return jsonify({"message": f"Validation Error: {e}"}), 400

        try:
            user = current_user()
            if not user:
                return jsonify({"message": "User not found"}), 404

            entry = store.get_entry(entry_id)
            if not entry or not owned_patient(entry["patientId"], user):
                return jsonify({"message": "Entry not found"}), 404

            entry = store.update_entry(entry_id, changes)
            return jsonify({"message": "Entry updated successfully", "entry": entry}), 200
        except Exception as e:
            return _server_error("Error updating entry", e, "Failed to update entry")

    # ── Admin: user accounts ─────────────────────────────────────────

    @app.route("/api/admin/users", methods=["GET"])
    @api_guard
    def list_users():
        return jsonify({"users": store.list_users()}), 200

    @app.route("/api/admin/users", methods=["POST"])
    @api_guard
    def create_user():
        data = _json_body()
        username = str(data.get("username") or "").strip()
        password = str(data.get("password") or "")
        role = str(data.get("role") or "").strip()
        if not username or not password or not role:
            return jsonify({"message": "Missing required fields"}), 400

        try:
            user = store.create_user(username, password, role)
        except DuplicateUserError:
            return jsonify({"message": "User already exists"}), 409
        except ValueError as e:
            return jsonify({"message": str(e)}), 400
        except Exception as e:
            return _server_error("Error in POST /api/admin/users", e, "Internal server error")

        return jsonify({"message": "User created successfully", "user": user}), 201

    @app.route("/api/admin/users/<user_id>", methods=["PUT"])
    @api_guard
    def update_user(user_id):
        data = _json_body()
        try:
            user = store.update_user(
                user_id,
                username=str(data.get("username") or "").strip() or None,
                password=data.get("password") or None,
                role=data.get("role") or None,
            )
        except DuplicateUserError:
            return jsonify({"message": "User already exists"}), 409
        except ValueError as e:
            return jsonify({"message": str(e)}), 400
        except Exception as e:
            return _server_error("Error in PUT /api/admin/users/[id]", e, "Internal server error")

        if not user:
            return jsonify({"message": "User not found"}), 404
        return jsonify({"message": "User updated successfully", "user": user}), 200

    @app.route("/api/admin/users/<user_id>", methods=["DELETE"])
    @api_guard
    def delete_user(user_id):
        try:
            deleted = store.delete_user(user_id)
        except UserInUseError as e:
            return jsonify({"message": str(e)}), 409
        except Exception as e:
            return _server_error("Error in DELETE /api/admin/users/[id]", e, "Internal server error")

        if not deleted:
            return jsonify({"message": "User not found"}), 404
        return jsonify({"message": "User deleted successfully"}), 200

    # ── Logging, transcription and field extraction ──────────────────

    @app.route("/api/logtail", methods=["POST"])
    @api_guard
    def logtail():
        data = _json_body()
        message = data.get("message")
        if not message:
            return jsonify({"message": "message is required"}), 400

        ok = log_sink().log(str(message), str(data.get("level") or "info"))
        return jsonify({
            "message": "Log sent successfully" if ok else "Failed to send log",
            "data": data,
        }), 201 if ok else 500

    @app.route("/api/transcription", methods=["POST"])
    @api_guard
    def transcription():
        transcript = str(_json_body().get("transcript") or "").strip()
        if not transcript:
            return jsonify({"message": "Transcript is required."}), 400

        log_sink().log(
            f"Received transcript from {g.session.username} ({len(transcript)} chars)", "info"
        )
        return jsonify({"message": "Transcript received"}), 200

    @app.route("/api/extract", methods=["POST"])
    @api_guard
    def extract():
        transcript = str(_json_body().get("transcript") or "").strip()
        if not transcript:
            return jsonify({"message": "Transcript is required."}), 400
        if llm is None:
            return jsonify({"message": "Field extraction is not configured"}), 503

        try:
            fields = extract_fields(llm, transcript)
        except ValueError as e:
            log_sink().log(f"Field extraction rejected: {e}", "warn")
            return jsonify({"message": str(e)}), 422
        except Exception as e:
            return _server_error("Field extraction error", e, "Field extraction failed")

        return jsonify({"fields": fields}), 200

    # ── Error handlers ───────────────────────────────────────────────

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"message": "Endpoint not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"message": "Method not allowed"}), 405

    @app.errorhandler(500)
    def internal_error(e):
        return jsonify({"message": "Internal server error"}), 500
