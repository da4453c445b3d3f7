"""
Server-rendered pages. Access is enforced by the page middleware.
"""

import io
import sys
import traceback

from flask import (
    abort,
    current_app,
    g,
    jsonify,
    redirect,
    render_template,
    send_file,
    send_from_directory,
)

from emr.api.auth import clear_session_cookie, log_sink
from emr.config import LOGIN_PATH
from emr.extractor import empty_fields
from emr.pdf_export import export_filename, render_entry_pdf


def register_pages(app, store):
    """Register page routes on the Flask *app*."""

    def nurse_or_logout():
        # A cookie for an account that has since been deleted.
        user = store.get_user_by_username(g.session.username)
        if user is None:
            abort(clear_session_cookie(redirect(LOGIN_PATH)))
        return user

    def patient_or_404(patient_id, user):
        patient = store.get_patient(patient_id, nurse_id=user["id"])
        if patient is None:
            abort(404)
        return patient

    @app.route("/logo.png", methods=["GET"])
    def logo():
        return send_from_directory(current_app.static_folder, "logo.png")

    @app.route("/login", methods=["GET"])
    def login_page():
        return render_template("login.html")

    @app.route("/", methods=["GET"])
    def home_page():
        user = nurse_or_logout()
        return render_template(
            "home.html",
            user=user,
            patients=store.list_patients(user["id"]),
        )

    @app.route("/patients/<patient_id>", methods=["GET"])
    def patient_page(patient_id):
        user = nurse_or_logout()
        patient = patient_or_404(patient_id, user)
        return render_template(
            "patient.html",
            user=user,
            patient=patient,
            entries=store.list_entries(patient["_id"]),
        )

    @app.route("/patients/<patient_id>/new-entry", methods=["GET"])
    def new_entry_page(patient_id):
        user = nurse_or_logout()
        patient = patient_or_404(patient_id, user)
        return render_template(
            "entry_form.html",
            user=user,
            patient=patient,
            entry=None,
            fields=empty_fields(),
        )

    def entry_or_404(entry_id, patient):
        entry = store.get_entry(entry_id)
        if entry is None or entry["patientId"] != patient["_id"]:
            abort(404)
        return entry

    @app.route("/patients/<patient_id>/entries/<entry_id>", methods=["GET"])
    def entry_page(patient_id, entry_id):
        user = nurse_or_logout()
        patient = patient_or_404(patient_id, user)
        entry = entry_or_404(entry_id, patient)

        fields = empty_fields()
        for section in ("vitalSigns", "subjective", "objective"):
            fields[section].update(entry[section])
        fields["assessment"] = entry["assessment"]
        fields["plan"] = entry["plan"]
        return render_template(
            "entry_form.html",
            user=user,
            patient=patient,
            entry=entry,
            fields=fields,
        )

    @app.route("/patients/<patient_id>/entries/<entry_id>/export.pdf", methods=["GET"])
    def export_entry_pdf(patient_id, entry_id):
        user = nurse_or_logout()
        patient = patient_or_404(patient_id, user)
        entry = entry_or_404(entry_id, patient)
        if not entry["reviewed"]:
            return jsonify({"message": "Only reviewed entries can be exported"}), 409

        try:
            pdf_bytes = render_entry_pdf(patient, entry)
        except Exception as e:
            log_sink().log(f"Error generating PDF: {e}", "error")
            traceback.print_exc(file=sys.stderr)
            return jsonify({"message": "Failed to generate PDF"}), 500

        log_sink().log("PDF export completed successfully", "info")
        return send_file(
            io.BytesIO(pdf_bytes),
            mimetype="application/pdf",
            as_attachment=True,
            download_name=export_filename(patient),
        )

    @app.route("/admin/users", methods=["GET"])
    def admin_users_page():
        return render_template(
            "admin_users.html",
            current=g.session,
            users=store.list_users(),
        )
