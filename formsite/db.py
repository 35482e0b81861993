"""
Database abstraction for SQLite, Postgres and a flat JSON file store.

All three clients expose the same operations and return the same record
types, so routes never need to know which one is active.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
import threading
from collections.abc import Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Optional, Protocol

from sqlalchemy import Column, Integer, Text, create_engine, select
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from formsite.errors import StorageError, ValidationError

logger = logging.getLogger(__name__)


class DbClient(Protocol):
    """Interface for record storage."""

    backend_name: str

    def insert_contact(
        self, name: str, email: str, phone: str, message: str
    ) -> "ContactMessage":
        ...

    def list_contacts(self) -> list["ContactMessage"]:
        ...

    def insert_training_submission(
        self, values: Mapping[str, Any]
    ) -> "TrainingSubmission":
        ...

    def list_training_submissions(self) -> list["TrainingSubmission"]:
        ...

    def get_content(self, key: str) -> Optional["ContentEntry"]:
        ...

    def put_content(self, key: str, value: Any) -> None:
        ...


@dataclass
class ContactMessage:
    id: int
    name: str
    email: str
    phone: str
    message: str
    created_at: str

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "message": self.message,
            "created_at": self.created_at,
        }


@dataclass
class TrainingSubmission:
    id: int
    created_at: str
    values: dict

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "createdAt": self.created_at,
            "values": self.values,
        }


@dataclass
class ContentEntry:
    key: str
    value: Any


def utc_timestamp() -> str:
    """Return the current UTC time as e.g. ``2024-05-01T10:00:00.000Z``."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _dump_values(values: Any) -> str:
    if not isinstance(values, Mapping):
        raise ValidationError("Invalid payload")
    return _dump_value(dict(values))


def _load_values(payload: Optional[str]) -> dict:
    # Unreadable payloads are served as an empty mapping.
    try:
        values = json.loads(payload or "{}")
    except (TypeError, ValueError):
        return {}
    return values if isinstance(values, dict) else {}


def _dump_value(value: Any) -> str:
    # Strict JSON only: no NaN/Infinity, and every string must encode as UTF-8.
    try:
        text = json.dumps(value, allow_nan=False, ensure_ascii=False)
        text.encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise ValidationError("Invalid payload") from exc
    return text


def _require_text(*fields: Optional[str]) -> None:
    for field in fields:
        if field is None:
            continue
        try:
            field.encode("utf-8")
        except UnicodeEncodeError as exc:
            raise ValidationError("Invalid payload") from exc


def _load_value(text: Optional[str]) -> Any:
    if text is None:
        return None
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return None


class SqlAlchemyDbClient:
    """
    SQLAlchemy-backed implementation shared by the relational backends.
    """

    backend_name = "sql"

    def __init__(self, database_url: str, connect_args: Optional[dict] = None):
        try:
            self.engine = create_engine(
                database_url,
                future=True,
                pool_pre_ping=True,
                pool_recycle=1800,
                connect_args=connect_args or {},
            )
            self.Session = sessionmaker(
                bind=self.engine, class_=Session, expire_on_commit=False, future=True
            )
            Base.metadata.create_all(self.engine)
        except (SQLAlchemyError, ImportError) as exc:
            raise StorageError(f"Schema initialization failed: {exc}") from exc

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with self.Session() as session:
                yield session
        except SQLAlchemyError as exc:
            raise StorageError(str(exc)) from exc
        except UnicodeError as exc:
            # Drivers reject text they cannot encode before it reaches the medium.
            raise ValidationError("Invalid payload") from exc

    def insert_contact(
        self, name: str, email: str, phone: str, message: str
    ) -> ContactMessage:
        _require_text(name, email, phone, message)
        with self._session() as session:
            row = ContactRow(
                name=name,
                email=email,
                phone=phone or "",
                message=message,
                created_at=utc_timestamp(),
            )
            session.add(row)
            session.commit()
            return _contact_from_row(row)

    def list_contacts(self) -> list[ContactMessage]:
        with self._session() as session:
            stmt = select(ContactRow).order_by(ContactRow.id.desc())
            return [_contact_from_row(row) for row in session.execute(stmt).scalars()]

    def insert_training_submission(
        self, values: Mapping[str, Any]
    ) -> TrainingSubmission:
        payload = _dump_values(values)
        with self._session() as session:
            row = TrainingSubmitRow(created_at=utc_timestamp(), payload=payload)
            session.add(row)
            session.commit()
            return TrainingSubmission(
                id=row.id, created_at=row.created_at, values=_load_values(row.payload)
            )

    def list_training_submissions(self) -> list[TrainingSubmission]:
        with self._session() as session:
            stmt = select(TrainingSubmitRow).order_by(TrainingSubmitRow.id.desc())
            return [
                TrainingSubmission(
                    id=row.id,
                    created_at=row.created_at,
                    values=_load_values(row.payload),
                )
                for row in session.execute(stmt).scalars()
            ]

    def get_content(self, key: str) -> Optional[ContentEntry]:
        with self._session() as session:
            row = session.get(ContentRow, key)
            if not row:
                return None
            return ContentEntry(key=row.key, value=_load_value(row.value))

    def put_content(self, key: str, value: Any) -> None:
        text = _dump_value(value)
        with self._session() as session:
            existing = session.get(ContentRow, key)
            if existing:
                existing.value = text
            else:
                session.add(ContentRow(key=key, value=text))
            session.commit()


class SqliteDbClient(SqlAlchemyDbClient):
    """Embedded backend storing everything in a single SQLite file."""

    backend_name = "sqlite"

    def __init__(self, path: str | os.PathLike):
        db_path = Path(path)
        try:
            db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Cannot create {db_path.parent}: {exc}") from exc
        super().__init__(
            f"sqlite+pysqlite:///{db_path}",
            connect_args={"check_same_thread": False},
        )
        self.path = db_path


class PostgresDbClient(SqlAlchemyDbClient):
    """
    Networked backend. Accepts any SQLAlchemy URL (e.g., Postgres, or SQLite for tests).

    TLS is required for Postgres URLs unless ``ssl_disabled`` is set, which is
    meant for databases on localhost.
    """

    backend_name = "postgres"

    def __init__(self, database_url: str, ssl_disabled: bool = False):
        if not database_url:
            raise ValueError("DATABASE_URL is required for PostgresDbClient")
        database_url = _normalize_database_url(database_url)
        try:
            backend = make_url(database_url).get_backend_name()
        except SQLAlchemyError as exc:
            raise StorageError(f"Invalid database URL: {exc}") from exc
        connect_args = {}
        if backend == "postgresql":
            connect_args["sslmode"] = "disable" if ssl_disabled else "require"
        elif backend == "sqlite":
            connect_args["check_same_thread"] = False
        super().__init__(database_url, connect_args=connect_args)


def _normalize_database_url(database_url: str) -> str:
    # Hosted providers still hand out postgres:// URLs, which SQLAlchemy rejects.
    if database_url.startswith("postgres://"):
        return "postgresql://" + database_url[len("postgres://"):]
    return database_url


def _contact_from_row(row: Any) -> ContactMessage:
    return ContactMessage(
        id=row.id,
        name=row.name,
        email=row.email,
        phone=row.phone or "",
        message=row.message,
        created_at=row.created_at,
    )


def _contact_from_mapping(row: Mapping[str, Any]) -> ContactMessage:
    return ContactMessage(
        id=row["id"],
        name=row.get("name"),
        email=row.get("email"),
        phone=row.get("phone") or "",
        message=row.get("message"),
        created_at=row.get("created_at"),
    )


_COLLECTIONS = ("contact_messages", "training_submits")


def _empty_store() -> dict:
    return {
        "contact_messages": [],
        "training_submits": [],
        "site_content": {},
        "last_ids": {name: 0 for name in _COLLECTIONS},
    }


class JsonFileDbClient:
    """
    Flat-file backend holding the whole store in memory.

    The file is read once on construction and rewritten in full after every
    mutation. The lock serializes writers inside this process only; separate
    processes sharing the file are last-writer-wins.
    """

    backend_name = "json"

    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._data = self._load()

    def _load(self) -> dict:
        data = _empty_store()
        if not self.path.exists():
            return data
        try:
            loaded = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Could not read JSON store %s (%s); starting empty", self.path, exc)
            return data
        if not isinstance(loaded, dict):
            logger.warning("JSON store %s is not an object; starting empty", self.path)
            return data

        for name in _COLLECTIONS:
            rows = loaded.get(name)
            if isinstance(rows, list):
                data[name] = [
                    row
                    for row in rows
                    if isinstance(row, dict) and isinstance(row.get("id"), int)
                ]
        content = loaded.get("site_content")
        if isinstance(content, dict):
            data["site_content"] = content

        last_ids = loaded.get("last_ids")
        if not isinstance(last_ids, dict):
            last_ids = {}
        for name in _COLLECTIONS:
            highest = max((row["id"] for row in data[name]), default=0)
            stored = last_ids.get(name)
            data["last_ids"][name] = max(highest, stored if isinstance(stored, int) else 0)
        logger.info(
            "Loaded JSON store %s (%d contacts, %d training submits, %d content keys)",
            self.path,
            len(data["contact_messages"]),
            len(data["training_submits"]),
            len(data["site_content"]),
        )
        return data

    def _commit(self, data: dict) -> None:
        """Write ``data`` to disk, then make it the live state."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
        except OSError as exc:
            raise StorageError(f"Cannot write JSON store {self.path}: {exc}") from exc
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, indent=2)
            os.replace(tmp_name, self.path)
        except OSError as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise StorageError(f"Cannot write JSON store {self.path}: {exc}") from exc
        self._data = data

    def _append(self, collection: str, fields: dict) -> dict:
        """Store ``fields`` under the next id; ``created_at`` follows id order."""
        with self._lock:
            data = copy.deepcopy(self._data)
            record_id = data["last_ids"][collection] + 1
            row = {"id": record_id, **fields, "created_at": utc_timestamp()}
            data[collection].append(row)
            data["last_ids"][collection] = record_id
            self._commit(data)
        return row

    def insert_contact(
        self, name: str, email: str, phone: str, message: str
    ) -> ContactMessage:
        _require_text(name, email, phone, message)
        row = self._append(
            "contact_messages",
            {
                "name": name,
                "email": email,
                "phone": phone or "",
                "message": message,
            },
        )
        return _contact_from_mapping(row)

    def list_contacts(self) -> list[ContactMessage]:
        rows = self._data["contact_messages"]
        return [
            _contact_from_mapping(row)
            for row in sorted(rows, key=lambda row: row["id"], reverse=True)
        ]

    def insert_training_submission(
        self, values: Mapping[str, Any]
    ) -> TrainingSubmission:
        payload = _dump_values(values)
        row = self._append("training_submits", {"payload": payload})
        return TrainingSubmission(
            id=row["id"], created_at=row["created_at"], values=_load_values(payload)
        )

    def list_training_submissions(self) -> list[TrainingSubmission]:
        rows = self._data["training_submits"]
        return [
            TrainingSubmission(
                id=row["id"],
                created_at=row.get("created_at"),
                values=_load_values(row.get("payload")),
            )
            for row in sorted(rows, key=lambda row: row["id"], reverse=True)
        ]

    def get_content(self, key: str) -> Optional[ContentEntry]:
        content = self._data["site_content"]
        if key not in content:
            return None
        return ContentEntry(key=key, value=_load_value(content[key]))

    def put_content(self, key: str, value: Any) -> None:
        text = _dump_value(value)
        with self._lock:
            data = copy.deepcopy(self._data)
            data["site_content"][key] = text
            self._commit(data)


Base = declarative_base()


class ContactRow(Base):
    __tablename__ = "contact_messages"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text)
    email = Column(Text)
    phone = Column(Text)
    message = Column(Text)
    created_at = Column(Text)


class TrainingSubmitRow(Base):
    __tablename__ = "training_submits"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    created_at = Column(Text)
    payload = Column(Text)


class ContentRow(Base):
    __tablename__ = "site_content"

    key = Column(Text, primary_key=True)
    value = Column(Text)
