"""Record repository: the narrow contract the core needs from the database."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Protocol

from sqlalchemy import Engine, create_engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..errors import RepositoryError
from ..sync.models import ExtensionRecord
from .models import Base, ExtensionRow

logger = logging.getLogger(__name__)


class RecordRepository(Protocol):
    """Read/write access to intended extension records."""

    def list_records(self) -> list[ExtensionRecord]: ...

    def get(self, identifier: str) -> ExtensionRecord | None: ...

    def save(self, record: ExtensionRecord) -> ExtensionRecord: ...


def _row_to_record(row: ExtensionRow) -> ExtensionRecord:
    return ExtensionRecord(
        identifier=row.extension_number,
        name=row.name or "",
        secret=row.secret or "",
        codecs=tuple(row.codecs or ()),
        context=row.context or "",
        transport=row.transport or "",
        enabled=bool(row.enabled),
        caller_id=row.caller_id or None,
        email=row.email,
        max_contacts=row.max_contacts,
        direct_media=bool(row.direct_media),
        qualify_frequency=row.qualify_frequency,
        voicemail_enabled=bool(row.voicemail_enabled),
    )


def _copy_to_row(record: ExtensionRecord, row: ExtensionRow) -> None:
    row.extension_number = record.identifier
    row.name = record.name
    row.secret = record.secret
    row.codecs = list(record.codecs)
    row.context = record.context
    row.transport = record.transport
    row.enabled = record.enabled
    row.caller_id = record.caller_id
    row.email = record.email
    row.max_contacts = record.max_contacts
    row.direct_media = record.direct_media
    row.qualify_frequency = record.qualify_frequency
    row.voicemail_enabled = record.voicemail_enabled


class SqlExtensionRepository:
    """``RecordRepository`` over the ``extensions`` table via SQLAlchemy.

    Every SQLAlchemy failure surfaces as ``RepositoryError``. Each call
    runs in its own short transaction; the database provides concurrency
    control between writers.

    Args:
        engine: SQLAlchemy engine bound to the record database.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._sessions = sessionmaker(bind=engine, expire_on_commit=False)

    @classmethod
    def from_url(cls, url: str, create_schema: bool = False) -> SqlExtensionRepository:
        """Build a repository from a database URL."""
        try:
            engine = create_engine(url)
        except (SQLAlchemyError, ImportError) as e:
            raise RepositoryError(f"Cannot open database {url}: {e}") from e
        repo = cls(engine)
        if create_schema:
            repo.create_schema()
        return repo

    def create_schema(self) -> None:
        """Create the ``extensions`` table if missing."""
        try:
            Base.metadata.create_all(self._engine)
        except SQLAlchemyError as e:
            raise RepositoryError(f"Cannot create schema: {e}") from e

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with self._sessions.begin() as session:
                yield session
        except SQLAlchemyError as e:
            logger.error("Database error: %s", e)
            raise RepositoryError(f"Database error: {e}") from e

    def list_records(self) -> list[ExtensionRecord]:
        with self._session() as session:
            rows = session.execute(
                select(ExtensionRow).order_by(ExtensionRow.extension_number)
            ).scalars()
            return [_row_to_record(row) for row in rows]

    def get(self, identifier: str) -> ExtensionRecord | None:
        with self._session() as session:
            row = session.execute(
                select(ExtensionRow).where(
                    ExtensionRow.extension_number == identifier
                )
            ).scalar_one_or_none()
            return _row_to_record(row) if row is not None else None

    def save(self, record: ExtensionRecord) -> ExtensionRecord:
        """Insert or update the row for ``record.identifier``."""
        with self._session() as session:
            row = session.execute(
                select(ExtensionRow).where(
                    ExtensionRow.extension_number == record.identifier
                )
            ).scalar_one_or_none()
            if row is None:
                row = ExtensionRow()
                session.add(row)
                logger.info("Creating record for extension %s", record.identifier)
            _copy_to_row(record, row)
            session.flush()
            return _row_to_record(row)

    def delete(self, identifier: str) -> bool:
        """Delete the row for *identifier*. Returns False if absent."""
        with self._session() as session:
            row = session.execute(
                select(ExtensionRow).where(
                    ExtensionRow.extension_number == identifier
                )
            ).scalar_one_or_none()
            if row is None:
                return False
            session.delete(row)
            return True
