"""
API guard and handler behaviour through the Flask test client.
"""

import json

import pytest

from conftest import FakeLLM, login, set_session


# ── Tests: guard ─────────────────────────────────────────────────────

@pytest.mark.parametrize("method,path", [
    ("get", "/api/patients"),
    ("post", "/api/patients"),
    ("delete", "/api/patients?id=1"),
    ("get", "/api/entries?patientId=1"),
    ("put", "/api/entries"),
    ("get", "/api/admin/users"),
    ("delete", "/api/admin/users/1"),
    ("post", "/api/logtail"),
    ("post", "/api/extract"),
])
def test_no_session_is_401(client, method, path):
    resp = getattr(client, method)(path, json={})
    assert resp.status_code == 401
    assert resp.get_json() == {"message": "Authentication required"}


def test_garbage_cookie_is_401(client, sink):
    client.set_cookie("auth-session", "not-json")
    assert client.get("/api/patients").status_code == 401
    assert "error" in sink.levels()


def test_deeply_nested_cookie_is_401(client):
    client.set_cookie("auth-session", "[" * 4000)
    assert client.get("/api/patients").status_code == 401
    assert client.get("/api/auth/session").status_code == 401


def test_nurse_cannot_reach_admin_api(client):
    set_session(client, "nurse", "nurse")
    resp = client.get("/api/admin/users")
    assert resp.status_code == 403
    assert resp.get_json() == {"message": "Forbidden"}


def test_admin_cannot_reach_patient_api(admin_client):
    resp = admin_client.get("/api/patients")
    assert resp.status_code == 403


def test_admin_may_log(admin_client, sink):
    resp = admin_client.post("/api/logtail", json={"message": "hello", "level": "warn"})
    assert resp.status_code == 201
    assert resp.get_json()["message"] == "Log sent successfully"
    assert ("hello", "warn") in sink.records


# ── Tests: auth ──────────────────────────────────────────────────────

def test_login_sets_session_cookie(client):
    resp = login(client, "nurse", "nurse-pw")
    assert resp.status_code == 200
    assert resp.get_json()["user"] == {"username": "nurse", "role": "nurse"}

    cookie = resp.headers["Set-Cookie"]
    assert cookie.startswith("auth-session=")
    assert "HttpOnly" in cookie
    assert "SameSite=Strict" in cookie
    assert "Max-Age=604800" in cookie
    assert "Path=/" in cookie


def test_login_rejects_bad_credentials(client):
    assert login(client, "nurse", "wrong").status_code == 401
    assert login(client, "nobody", "x").status_code == 401


def test_login_requires_fields(client):
    resp = client.post("/api/auth/login", json={"username": "nurse"})
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Username and password are required"


def test_login_requires_json(client):
    resp = client.post("/api/auth/login", data="username=nurse")
    assert resp.status_code == 400


def test_logout_clears_cookie(nurse_client):
    resp = nurse_client.post("/api/auth/logout")
    assert resp.status_code == 200
    assert "Max-Age=0" in resp.headers["Set-Cookie"]
    assert nurse_client.get("/api/patients").status_code == 401


def test_session_endpoint(client):
    assert client.get("/api/auth/session").status_code == 401
    login(client, "admin", "admin-pw")
    resp = client.get("/api/auth/session")
    assert resp.get_json() == {"user": {"username": "admin", "role": "admin"}}


def test_signed_cookies(make_app, users):
    client = make_app(SESSION_SECRET="s3cret").test_client()
    set_session(client, "nurse", "nurse")
    assert client.get("/api/patients").status_code == 401

    login(client, "nurse", "nurse-pw")
    assert client.get("/api/patients").status_code == 200


# ── Tests: patients ──────────────────────────────────────────────────

PATIENT = {"firstName": "Ada", "lastName": "Lovelace", "roomNumber": "12", "diagnosis": "Pneumonia"}


def add_patient(client, **overrides):
    return client.post("/api/patients", json={**PATIENT, **overrides})


def test_add_patient_requires_all_fields(nurse_client):
    resp = nurse_client.post("/api/patients", json={"firstName": "Ada", "lastName": " "})
    assert resp.status_code == 400
    body = resp.get_json()
    assert body["message"] == "All fields are required"
    assert body["missing"] == ["lastName", "roomNumber", "diagnosis"]


def test_patient_lifecycle(nurse_client):
    resp = add_patient(nurse_client)
    assert resp.status_code == 201
    patient = resp.get_json()["patient"]
    assert patient["firstName"] == "Ada"

    listed = nurse_client.get("/api/patients").get_json()["patients"]
    assert [p["_id"] for p in listed] == [patient["_id"]]

    one = nurse_client.get(f"/api/patients?id={patient['_id']}").get_json()["patient"]
    assert one["diagnosis"] == "Pneumonia"

    assert nurse_client.delete("/api/patients").status_code == 400
    assert nurse_client.delete(f"/api/patients?id={patient['_id']}").status_code == 200
    assert nurse_client.get(f"/api/patients?id={patient['_id']}").status_code == 404


def test_patients_are_scoped_to_their_nurse(client, store, users):
    theirs = store.create_patient(users["other"]["_id"], "Alan", "Turing", "14", "Sepsis")
    login(client, "nurse", "nurse-pw")
    assert client.get("/api/patients").get_json()["patients"] == []
    assert client.get(f"/api/patients?id={theirs['_id']}").status_code == 404
    assert client.delete(f"/api/patients?id={theirs['_id']}").status_code == 404


def test_unknown_user_is_404(client):
    set_session(client, "ghost", "nurse")
    assert client.get("/api/patients").status_code == 404


# ── Tests: entries ───────────────────────────────────────────────────

@pytest.fixture
def patient_id(nurse_client):
    return add_patient(nurse_client).get_json()["patient"]["_id"]


def test_add_entry_requires_patient_id(nurse_client):
    resp = nurse_client.post("/api/entries", json={"plan": "rest"})
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Patient ID is required"


def test_add_entry_rejects_non_object_sections(nurse_client, patient_id):
    resp = nurse_client.post("/api/entries", json={"patientId": patient_id, "vitalSigns": "36.6"})
    assert resp.status_code == 400


@pytest.mark.parametrize("field,value", [
    ("assessment", {"x": 1}),
    ("plan", ["rest"]),
    ("transcript", 42),
])
def test_add_entry_rejects_non_string_text(nurse_client, patient_id, field, value):
    resp = nurse_client.post("/api/entries", json={"patientId": patient_id, field: value})
    assert resp.status_code == 400
    assert resp.get_json()["message"] == f"Validation Error: {field} must be a string"


@pytest.mark.parametrize("value", ["false", "true", 1, 0])
def test_update_entry_rejects_non_bool_reviewed(nurse_client, patient_id, value):
    entry = nurse_client.post("/api/entries", json={"patientId": patient_id}).get_json()["entry"]
    resp = nurse_client.put("/api/entries", json={"id": entry["_id"], "reviewed": value})
    assert resp.status_code == 400
    assert "reviewed" in resp.get_json()["message"]

    stored = nurse_client.get(f"/api/entries?id={entry['_id']}").get_json()["entry"]
    assert stored["reviewed"] is False


def test_update_entry_rejects_non_string_text(nurse_client, patient_id):
    entry = nurse_client.post("/api/entries", json={"patientId": patient_id}).get_json()["entry"]
    resp = nurse_client.put("/api/entries", json={"id": entry["_id"], "plan": {"a": 1}})
    assert resp.status_code == 400


def test_add_entry_unknown_patient(nurse_client):
    resp = nurse_client.post("/api/entries", json={"patientId": "999"})
    assert resp.status_code == 404


def test_entry_lifecycle(nurse_client, patient_id):
    resp = nurse_client.post("/api/entries", json={
        "patientId": patient_id,
        "vitalSigns": {"heartRate": "72", "respiratoryRate": "16"},
        "subjective": {"painLevel": "3"},
        "transcript": "pain three out of ten",
    })
    assert resp.status_code == 201
    entry = resp.get_json()["entry"]
    assert entry["reviewed"] is False
    assert entry["transcript"] == "pain three out of ten"

    resp = nurse_client.put("/api/entries", json={
        "id": entry["_id"],
        "vitalSigns": {"heartRate": "90"},
        "reviewed": True,
        "plan": "recheck in 4h",
    })
    assert resp.status_code == 200
    updated = resp.get_json()["entry"]
    assert updated["vitalSigns"] == {"heartRate": "90", "respiratoryRate": "16"}
    assert updated["subjective"] == {"painLevel": "3"}
    assert updated["reviewed"] is True
    assert updated["plan"] == "recheck in 4h"

    one = nurse_client.get(f"/api/entries?id={entry['_id']}").get_json()["entry"]
    assert one["plan"] == "recheck in 4h"

    listed = nurse_client.get(f"/api/entries?patientId={patient_id}").get_json()["entries"]
    assert [e["_id"] for e in listed] == [entry["_id"]]


def test_entries_need_a_selector(nurse_client):
    assert nurse_client.get("/api/entries").status_code == 400


def test_update_entry_requires_id(nurse_client):
    resp = nurse_client.put("/api/entries", json={"plan": "x"})
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Entry ID is required"


def test_update_missing_entry(nurse_client):
    assert nurse_client.put("/api/entries", json={"id": "999", "plan": "x"}).status_code == 404


def test_entries_of_other_nurse_hidden(client, store, users):
    theirs = store.create_patient(users["other"]["_id"], "Alan", "Turing", "14", "Sepsis")
    entry = store.create_entry(theirs["_id"], plan="theirs")
    login(client, "nurse", "nurse-pw")
    assert client.get(f"/api/entries?id={entry['_id']}").status_code == 404
    assert client.get(f"/api/entries?patientId={theirs['_id']}").status_code == 404
    assert client.put("/api/entries", json={"id": entry["_id"], "plan": "mine"}).status_code == 404


# ── Tests: admin users ───────────────────────────────────────────────

def test_admin_lists_users_without_passwords(admin_client):
    users = admin_client.get("/api/admin/users").get_json()["users"]
    assert {u["username"] for u in users} == {"admin", "nurse", "other"}
    assert all("password" not in json.dumps(u) for u in users)


def test_admin_creates_user(admin_client):
    resp = admin_client.post("/api/admin/users",
                             json={"username": "new", "password": "pw", "role": "nurse"})
    assert resp.status_code == 201
    assert login(admin_client, "new", "pw").status_code == 200


def test_admin_create_user_validation(admin_client):
    assert admin_client.post("/api/admin/users", json={"username": "x"}).status_code == 400
    resp = admin_client.post("/api/admin/users",
                             json={"username": "x", "password": "pw", "role": "doctor"})
    assert resp.status_code == 400
    resp = admin_client.post("/api/admin/users",
                             json={"username": "nurse", "password": "pw", "role": "nurse"})
    assert resp.status_code == 409
    assert resp.get_json()["message"] == "User already exists"


def test_admin_updates_and_deletes_user(admin_client, users):
    uid = users["other"]["_id"]
    resp = admin_client.put(f"/api/admin/users/{uid}", json={"role": "admin"})
    assert resp.status_code == 200
    assert resp.get_json()["user"]["role"] == "admin"

    assert admin_client.put(f"/api/admin/users/{uid}", json={"username": "nurse"}).status_code == 409
    assert admin_client.put("/api/admin/users/999", json={"role": "nurse"}).status_code == 404

    assert admin_client.delete(f"/api/admin/users/{uid}").status_code == 200
    assert admin_client.delete(f"/api/admin/users/{uid}").status_code == 404


def test_admin_cannot_delete_nurse_with_patients(admin_client, store, users):
    uid = users["nurse"]["_id"]
    store.create_patient(uid, "Ada", "Lovelace", "12", "Pneumonia")
    resp = admin_client.delete(f"/api/admin/users/{uid}")
    assert resp.status_code == 409
    assert resp.get_json()["message"] == "User still owns patients"
    assert store.get_user_by_username("nurse") is not None


# ── Tests: logging, transcription, extraction ────────────────────────

def test_logtail_requires_message(nurse_client):
    assert nurse_client.post("/api/logtail", json={}).status_code == 400


def test_logtail_reports_sink_failure(nurse_client, sink):
    sink.ok = False
    resp = nurse_client.post("/api/logtail", json={"message": "boom"})
    assert resp.status_code == 500
    assert resp.get_json()["message"] == "Failed to send log"


def test_transcription(nurse_client, sink):
    assert nurse_client.post("/api/transcription", json={}).status_code == 400
    resp = nurse_client.post("/api/transcription", json={"transcript": "BP one twenty over eighty"})
    assert resp.status_code == 200
    assert sink.records[-1][1] == "info"


def test_extract_without_llm(nurse_client):
    resp = nurse_client.post("/api/extract", json={"transcript": "temp 37"})
    assert resp.status_code == 503


def test_extract_with_llm(make_app, users):
    llm = FakeLLM('```json\n{"vitalSigns": {"heartRate": "80"}, "plan": "fluids"}\n```')
    client = make_app(llm=llm).test_client()
    login(client, "nurse", "nurse-pw")

    assert client.post("/api/extract", json={"transcript": ""}).status_code == 400

    resp = client.post("/api/extract", json={"transcript": "heart rate eighty, give fluids"})
    assert resp.status_code == 200
    fields = resp.get_json()["fields"]
    assert fields["vitalSigns"]["heartRate"] == "80"
    assert fields["vitalSigns"]["bloodPressure"]["unit"] == "mmHg"
    assert fields["plan"] == "fluids"
    assert fields["assessment"] == ""


def test_extract_bad_llm_output(make_app, users):
    client = make_app(llm=FakeLLM("sorry, I cannot help")).test_client()
    login(client, "nurse", "nurse-pw")
    resp = client.post("/api/extract", json={"transcript": "temp 37"})
    assert resp.status_code == 422
