"""
Persistence for users, patients and entries on top of SQLAlchemy Core.

The store wraps one engine created at start-up (see ``init_engine``) and is
handed to the route layer; nothing here keeps module-level connections.
"""

from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import IntegrityError
from werkzeug.security import check_password_hash, generate_password_hash

from emr.database import entries, patients, users, utcnow
from emr.models import Role

ENTRY_SECTIONS = ("vital_signs", "subjective", "objective")
ENTRY_TEXT_FIELDS = ("assessment", "plan", "transcript")


class DuplicateUserError(ValueError):
    """A user with that username already exists."""


class UserInUseError(ValueError):
    """The user still owns patient records."""


def _as_id(value) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _ts(value):
    return value.isoformat() if value is not None else None


def _normalize_role(role) -> str:
    try:
        return Role(str(role).strip().lower()).value
    except ValueError:
        raise ValueError(f"Unsupported role '{role}'.")


def _user_out(row) -> Dict[str, Any]:
    return {
        "_id": str(row["id"]),
        "username": row["username"],
        "role": row["role"],
        "createdAt": _ts(row["created_at"]),
        "updatedAt": _ts(row["updated_at"]),
    }


def _patient_out(row, entry_ids: Iterable[int] = ()) -> Dict[str, Any]:
    return {
        "_id": str(row["id"]),
        "firstName": row["first_name"],
        "lastName": row["last_name"],
        "roomNumber": row["room_number"],
        "diagnosis": row["diagnosis"],
        "nurseId": str(row["nurse_id"]),
        "entries": [str(i) for i in entry_ids],
        "createdAt": _ts(row["created_at"]),
        "updatedAt": _ts(row["updated_at"]),
    }


def _entry_out(row) -> Dict[str, Any]:
    return {
        "_id": str(row["id"]),
        "patientId": str(row["patient_id"]),
        "vitalSigns": row["vital_signs"] or {},
        "subjective": row["subjective"] or {},
        "objective": row["objective"] or {},
        "assessment": row["assessment"],
        "plan": row["plan"],
        "transcript": row["transcript"],
        "reviewed": bool(row["reviewed"]),
        "createdAt": _ts(row["created_at"]),
        "updatedAt": _ts(row["updated_at"]),
    }


class EmrStore:
    def __init__(self, engine):
        self.engine = engine

    # ── Users ────────────────────────────────────────────────────────

    def get_user_by_username(self, username: str) -> Optional[Dict[str, Any]]:
        """Raw user row (including the password hash) or None."""
        sql = select(users).where(users.c.username == username)
        with self.engine.connect() as conn:
            row = conn.execute(sql).mappings().first()
        return dict(row) if row else None

    def verify_credentials(self, username: str, password: str) -> Optional[Dict[str, Any]]:
        """Return the public user record when the password matches, else None."""
        row = self.get_user_by_username(username)
        if not row or not check_password_hash(row["password_hash"], password):
            return None
        return _user_out(row)

    def list_users(self) -> List[Dict[str, Any]]:
        sql = select(users).order_by(users.c.created_at.desc(), users.c.id.desc())
        with self.engine.connect() as conn:
            rows = conn.execute(sql).mappings().all()
        return [_user_out(r) for r in rows]

    def create_user(self, username: str, password: str, role: str = "nurse") -> Dict[str, Any]:
        role = _normalize_role(role)
        if self.get_user_by_username(username):
            raise DuplicateUserError("User already exists")
        try:
            with self.engine.begin() as conn:
                result = conn.execute(insert(users).values(
                    username=username,
                    password_hash=generate_password_hash(password),
                    role=role,
                ))
                row = conn.execute(
                    select(users).where(users.c.id == result.inserted_primary_key[0])
                ).mappings().first()
        except IntegrityError:
            raise DuplicateUserError("User already exists")
        return _user_out(row)

    def update_user(self, user_id, username: str = None, password: str = None,
                    role: str = None) -> Optional[Dict[str, Any]]:
        """Partial update; returns the updated user or None if it does not exist."""
        uid = _as_id(user_id)
        if uid is None:
            return None

        values: Dict[str, Any] = {}
        if username:
            values["username"] = username
        if role:
            values["role"] = _normalize_role(role)
        if password:
            values["password_hash"] = generate_password_hash(password)

        try:
            with self.engine.begin() as conn:
                if values:
                    values["updated_at"] = utcnow()
                    conn.execute(update(users).where(users.c.id == uid).values(**values))
                row = conn.execute(select(users).where(users.c.id == uid)).mappings().first()
        except IntegrityError:
            raise DuplicateUserError("User already exists")
        return _user_out(row) if row else None

    def delete_user(self, user_id) -> bool:
        """Delete an account; raises UserInUseError while it still owns patients."""
        uid = _as_id(user_id)
        if uid is None:
            return False
        with self.engine.begin() as conn:
            owned = conn.execute(
                select(patients.c.id).where(patients.c.nurse_id == uid).limit(1)
            ).first()
            if owned is not None:
                raise UserInUseError("User still owns patients")
            result = conn.execute(delete(users).where(users.c.id == uid))
        return result.rowcount > 0

    # ── Patients ─────────────────────────────────────────────────────

    def _entry_ids_by_patient(self, conn, patient_ids: List[int]) -> Dict[int, List[int]]:
        out: Dict[int, List[int]] = {pid: [] for pid in patient_ids}
        if not patient_ids:
            return out
        sql = (
            select(entries.c.id, entries.c.patient_id)
            .where(entries.c.patient_id.in_(patient_ids))
            .order_by(entries.c.created_at, entries.c.id)
        )
        for entry_id, patient_id in conn.execute(sql):
            out[patient_id].append(entry_id)
        return out

    def list_patients(self, nurse_id) -> List[Dict[str, Any]]:
        """Patients owned by a nurse, newest first."""
        sql = (
            select(patients)
            .where(patients.c.nurse_id == _as_id(nurse_id))
            .order_by(patients.c.created_at.desc(), patients.c.id.desc())
        )
        with self.engine.connect() as conn:
            rows = conn.execute(sql).mappings().all()
            entry_ids = self._entry_ids_by_patient(conn, [r["id"] for r in rows])
        return [_patient_out(r, entry_ids[r["id"]]) for r in rows]

    def get_patient(self, patient_id, nurse_id=None) -> Optional[Dict[str, Any]]:
        """A single patient; when nurse_id is given it must own the patient."""
        pid = _as_id(patient_id)
        if pid is None:
            return None
        sql = select(patients).where(patients.c.id == pid)
        if nurse_id is not None:
            sql = sql.where(patients.c.nurse_id == _as_id(nurse_id))
        with self.engine.connect() as conn:
            row = conn.execute(sql).mappings().first()
            if not row:
                return None
            entry_ids = self._entry_ids_by_patient(conn, [pid])
        return _patient_out(row, entry_ids[pid])

    def create_patient(self, nurse_id, first_name: str, last_name: str,
                       room_number: str, diagnosis: str) -> Dict[str, Any]:
        with self.engine.begin() as conn:
            result = conn.execute(insert(patients).values(
                first_name=first_name,
                last_name=last_name,
                room_number=room_number,
                diagnosis=diagnosis,
                nurse_id=_as_id(nurse_id),
            ))
            row = conn.execute(
                select(patients).where(patients.c.id == result.inserted_primary_key[0])
            ).mappings().first()
        return _patient_out(row)

    def delete_patient(self, patient_id) -> bool:
        """Delete a patient together with its entries."""
        pid = _as_id(patient_id)
        if pid is None:
            return False
        with self.engine.begin() as conn:
            conn.execute(delete(entries).where(entries.c.patient_id == pid))
            result = conn.execute(delete(patients).where(patients.c.id == pid))
        return result.rowcount > 0

    # ── Entries ──────────────────────────────────────────────────────

    def list_entries(self, patient_id) -> List[Dict[str, Any]]:
        sql = (
            select(entries)
            .where(entries.c.patient_id == _as_id(patient_id))
            .order_by(entries.c.created_at.desc(), entries.c.id.desc())
        )
        with self.engine.connect() as conn:
            rows = conn.execute(sql).mappings().all()
        return [_entry_out(r) for r in rows]

    def get_entry(self, entry_id) -> Optional[Dict[str, Any]]:
        eid = _as_id(entry_id)
        if eid is None:
            return None
        with self.engine.connect() as conn:
            row = conn.execute(select(entries).where(entries.c.id == eid)).mappings().first()
        return _entry_out(row) if row else None

    def create_entry(self, patient_id, vital_signs: dict = None, subjective: dict = None,
                     objective: dict = None, assessment: str = None, plan: str = None,
                     transcript: str = None) -> Dict[str, Any]:
        with self.engine.begin() as conn:
            result = conn.execute(insert(entries).values(
                patient_id=_as_id(patient_id),
                vital_signs=vital_signs or {},
                subjective=subjective or {},
                objective=objective or {},
                assessment=assessment or "",
                plan=plan or "",
                transcript=transcript or "",
                reviewed=False,
            ))
            row = conn.execute(
                select(entries).where(entries.c.id == result.inserted_primary_key[0])
            ).mappings().first()
        return _entry_out(row)

    def update_entry(self, entry_id, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Apply only the fields present in *changes*.

        Nested sections (vital signs, subjective, objective) are merged key by
        key into what is stored; text fields and ``reviewed`` are replaced.
        """
        eid = _as_id(entry_id)
        if eid is None:
            return None

        with self.engine.begin() as conn:
            row = conn.execute(select(entries).where(entries.c.id == eid)).mappings().first()
            if not row:
                return None

            values: Dict[str, Any] = {}
            for section in ENTRY_SECTIONS:
                if changes.get(section) is not None:
                    merged = dict(row[section] or {})
                    merged.update(changes[section])
                    values[section] = merged
            for field in ENTRY_TEXT_FIELDS:
                if changes.get(field) is not None:
                    values[field] = changes[field]
            if changes.get("reviewed") is not None:
                values["reviewed"] = changes["reviewed"]

            if values:
                values["updated_at"] = utcnow()
                conn.execute(update(entries).where(entries.c.id == eid).values(**values))
                row = conn.execute(select(entries).where(entries.c.id == eid)).mappings().first()
        return _entry_out(row)
