"""
Database engine initialisation and table definitions.
"""

import os
import sys
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    text,
)

from emr.config import APP_ENV, DEFAULT_DB_URI, get_env


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


metadata = MetaData()

users = Table(
    "users", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(120), nullable=False, unique=True),
    Column("password_hash", String(255), nullable=False),
    Column("role", String(16), nullable=False, default="nurse"),
    Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
    Column("updated_at", DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow),
)

patients = Table(
    "patients", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("first_name", String(120), nullable=False),
    Column("last_name", String(120), nullable=False),
    Column("room_number", String(32), nullable=False),
    Column("diagnosis", Text, nullable=False),
    Column("nurse_id", Integer, ForeignKey("users.id"), nullable=False, index=True),
    Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
    Column("updated_at", DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow),
)

entries = Table(
    "entries", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("patient_id", Integer, ForeignKey("patients.id"), nullable=False, index=True),
    Column("vital_signs", JSON, nullable=False, default=dict),
    Column("subjective", JSON, nullable=False, default=dict),
    Column("objective", JSON, nullable=False, default=dict),
    Column("assessment", Text, nullable=False, default=""),
    Column("plan", Text, nullable=False, default=""),
    Column("transcript", Text, nullable=False, default=""),
    Column("reviewed", Boolean, nullable=False, default=False),
    Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
    Column("updated_at", DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow),
)


def resolve_db_uri() -> str:
    """DB_URI is mandatory in production; elsewhere fall back to a local SQLite file."""
    if APP_ENV == "production":
        return get_env("DB_URI")
    return os.getenv("DB_URI", DEFAULT_DB_URI)


def init_engine(db_uri: str = None):
    """Create a SQLAlchemy engine, verify the connection and create missing tables."""
    db_uri = db_uri or resolve_db_uri()
    engine = create_engine(db_uri, echo=False, future=True)
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as e:
        print("ERROR: could not connect to DB:", e, file=sys.stderr)
        sys.exit(1)
    metadata.create_all(engine)
    print("[init] Connected to DB.")
    return engine
