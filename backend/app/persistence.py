from __future__ import annotations

from pathlib import Path
from threading import Lock

from sqlalchemy import Column, Float, MetaData, String, Table, Text, create_engine, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from backend.app.models import TEXT_FIELDS, CandidateRecord, normalize_number


class StorageError(Exception):
    pass


def _normalize_database_url(database_url: str) -> str:
    value = database_url.strip()
    if value.startswith("sqlite:///"):
        sqlite_path = value[len("sqlite:///") :].split("?", 1)[0]
        if sqlite_path and sqlite_path != ":memory:":
            path = Path(sqlite_path)
            if path.parent:
                path.parent.mkdir(parents=True, exist_ok=True)
        return value
    if "://" in value:
        return value
    path = Path(value)
    if path.parent:
        path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{str(path).replace(chr(92), '/')}"


class CandidatePersistence:
    """
    Durable candidate table. Works with SQLite by default and any SQLAlchemy URL.
    """

    def __init__(self, database_url: str) -> None:
        self.database_url = _normalize_database_url(database_url)
        self._lock = Lock()
        self.engine: Engine = create_engine(
            self.database_url,
            future=True,
            pool_pre_ping=True,
        )
        self.metadata = MetaData()
        self.candidates = Table(
            "candidates",
            self.metadata,
            Column("candidate_id", String(255), primary_key=True),
            Column("full_name", String(255), nullable=True),
            Column("email", String(255), nullable=True),
            Column("source", String(255), nullable=True),
            Column("event_name", String(255), nullable=True),
            Column("role", String(255), nullable=True),
            Column("outreach_date", String(64), nullable=True),
            Column("interview_stage", String(64), nullable=True),
            Column("touchpoints", Float, nullable=True),
            Column("hire_date", String(64), nullable=True),
            Column("notes", Text, nullable=True),
        )
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        try:
            self.metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            raise StorageError(f"could not create candidates table: {exc}") from exc

    def ping(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(select(1))
            return True
        except SQLAlchemyError:
            return False

    def upsert_candidate(self, record: CandidateRecord) -> None:
        # Full replace: every column is written, absent fields become NULL.
        values = {name: getattr(record, name) for name in TEXT_FIELDS}
        values["touchpoints"] = record.touchpoints
        with self._lock:
            try:
                with self.engine.begin() as conn:
                    existing = conn.execute(
                        select(self.candidates.c.candidate_id).where(
                            self.candidates.c.candidate_id == record.candidate_id
                        )
                    ).first()
                    if existing:
                        conn.execute(
                            self.candidates.update()
                            .where(self.candidates.c.candidate_id == record.candidate_id)
                            .values(**values)
                        )
                    else:
                        conn.execute(
                            self.candidates.insert().values(
                                candidate_id=record.candidate_id, **values
                            )
                        )
            except SQLAlchemyError as exc:
                raise StorageError(f"candidate upsert failed: {record.candidate_id}") from exc

    def list_candidates(self) -> list[CandidateRecord]:
        with self._lock:
            try:
                with self.engine.connect() as conn:
                    rows = conn.execute(select(self.candidates)).all()
            except SQLAlchemyError as exc:
                raise StorageError("candidate listing failed") from exc

        output: list[CandidateRecord] = []
        for row in rows:
            data = dict(row._mapping)
            if data["touchpoints"] is not None:
                data["touchpoints"] = normalize_number(float(data["touchpoints"]))
            output.append(CandidateRecord.model_validate(data))
        return output
