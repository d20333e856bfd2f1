import uuid
from contextlib import AbstractContextManager
from datetime import datetime

from sqlalchemy import create_engine, event
from sqlalchemy.pool import StaticPool
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    sessionmaker,
)
from sqlalchemy.orm.session import Session as SessionType
from sqlalchemy.sql import exists, func, select

from . import exceptions
from .config import settings


def build_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url.rstrip("/").endswith("sqlite:"):
            # One shared connection, otherwise every checkout sees a fresh empty database
            options["poolclass"] = StaticPool
        engine = create_engine(url, **options)

        @event.listens_for(engine, "connect")
        def enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    return create_engine(
        url,
        pool_pre_ping=True,
        isolation_level=settings.DB_ISOLATION_LEVEL,
        # Bounded storage round-trips; a stuck statement is cancelled by the server
        connect_args={"options": f"-c statement_timeout={settings.DB_STATEMENT_TIMEOUT_MS}"},
    )


engine = build_engine(settings.db_conn_url)
Session = sessionmaker(engine, expire_on_commit=False)


class Base(DeclarativeBase):
    ...


class CommonFieldsMixin:
    created_at: Mapped[datetime] = mapped_column(server_default=func.current_timestamp())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.current_timestamp(),
        onupdate=func.current_timestamp(),
    )


class BaseRepository:
    model = None
    # constraint name -> (column, exception class, message); translates IntegrityErrors
    integrity_errors: dict[str, tuple[str, type[exceptions.AppException], str | None]] = {}

    def __init__(self, sessionmaker: sessionmaker = Session):
        if not self.model:
            raise NotImplementedError(
                "Repositories are model specific and should have model as a class variable."
            )
        self.sessionmaker = sessionmaker

    def transaction(self) -> AbstractContextManager[SessionType]:
        """A session whose transaction commits on exit and rolls back on any exception."""
        return self.sessionmaker.begin()

    def create(self, model_instance: Base) -> Base:
        with self.transaction() as session:
            return self.session_add(session, model_instance)

    def session_add(self, session: SessionType, model_instance: Base) -> Base:
        session.add(model_instance)
        try:
            session.flush()
        except IntegrityError as e:
            raise self.translate_integrity_error(e) from e
        session.refresh(model_instance)
        return model_instance

    def session_flush(self, session: SessionType, model_instance: Base) -> Base:
        try:
            session.flush()
        except IntegrityError as e:
            raise self.translate_integrity_error(e) from e
        session.refresh(model_instance)
        return model_instance

    def session_exists_with_id(self, session: SessionType, id: uuid.UUID) -> bool:
        return bool(session.scalar(exists().where(self.model.id == id).select()))

    def get_count(self) -> int:
        with self.sessionmaker() as session:
            return session.scalar(select(func.count()).select_from(self.model))

    def get_by_id(self, id: uuid.UUID) -> Base | None:
        with self.sessionmaker() as session:
            return session.get(self.model, id)

    def session_get_by_id(self, session: SessionType, id: uuid.UUID) -> Base | None:
        return session.get(self.model, id)

    def translate_integrity_error(self, error: IntegrityError) -> exceptions.AppException:
        # psycopg exposes the violated constraint; SQLite only has the message text,
        # e.g. "UNIQUE constraint failed: users.username"
        diag = getattr(error.orig, "diag", None)
        constraint = getattr(diag, "constraint_name", None) or ""
        detail = str(error.orig)
        table = self.model.__tablename__

        for name, (column, exception_class, message) in self.integrity_errors.items():
            if constraint == name or f"{table}.{column}" in detail:
                if issubclass(exception_class, exceptions.ConflictError):
                    return exception_class([column], message)
                return exception_class(column, message)

        if "FOREIGN KEY" in detail.upper():
            return exceptions.InvalidReferenceError("reference")
        return exceptions.ConflictError([constraint or table])
