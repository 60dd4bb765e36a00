"""Data access layer.

One repository per collection, each opening a short-lived session per call.
Reads never raise: a failed query is logged and returned as an empty
`FetchResult` whose `error` attribute is set, so callers can still tell
"nothing there" from "could not look". Writes raise `WriteError` (or a more
specific subclass) and publish a change on the feed once committed.
"""

import logging
import re
import uuid
from typing import Any, Callable, Dict, Generic, Iterable, Optional, Type, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError, SQLAlchemyError
from sqlmodel import Session, SQLModel, select

from stagingpro.db.session import MIGRATIONS, get_session
from stagingpro.models.message import Message, ReadReceipt
from stagingpro.models.plan import Plan
from stagingpro.models.staff import ArchiveProject, Editor
from stagingpro.models.submission import Submission, submission_to_public
from stagingpro.services.realtime import MESSAGES, SUBMISSIONS, Change, ChangeFeed, ChangeType, change_feed

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=SQLModel)

# Postgres / SQLite phrasing for a table or column that was never provisioned
SCHEMA_MISSING_RE = re.compile(
    r"no such (table|column)|does not exist|has no column named|UndefinedTable|UndefinedColumn",
    re.I,
)


class WriteError(Exception):
    """A write to the store failed."""


class RecordNotFound(WriteError):
    pass


class SchemaMissingError(WriteError):
    """The table or column a write needs is not provisioned.

    `migration` holds the statement an operator should run.
    """

    def __init__(self, table: str, migration: str, detail: str = ""):
        self.table = table
        self.migration = migration
        super().__init__(f"Database schema for '{table}' is out of date. Run: {migration}" + (f" ({detail})" if detail else ""))


class ReferentialIntegrityError(WriteError):
    """The record is still referenced by other rows."""


class FetchResult(list):
    """A list of rows plus the error that emptied it, if any."""

    def __init__(self, rows: Iterable[Any] = (), error: Optional[BaseException] = None):
        super().__init__(rows)
        self.error = error

    @property
    def failed(self) -> bool:
        return self.error is not None


def _migration_for(table: str, message: str) -> str:
    for key, statement in MIGRATIONS.items():
        tbl, column = key.split(".")
        if tbl == table and column in message:
            return statement
    return f"-- create the '{table}' table (run init_db / SQLModel.metadata.create_all)"


def _translate_write_error(table: str, exc: SQLAlchemyError) -> WriteError:
    message = str(getattr(exc, "orig", None) or exc)
    if isinstance(exc, (OperationalError, ProgrammingError)) and SCHEMA_MISSING_RE.search(message):
        return SchemaMissingError(table, _migration_for(table, message), message)
    if isinstance(exc, IntegrityError) and "foreign key" in message.lower():
        return ReferentialIntegrityError(message)
    return WriteError(message)


class Repository(Generic[T]):
    model: Type[T]
    table: str
    # column -> ascending?
    order_by: Optional[tuple] = None
    publish_changes = False

    def __init__(self, session_factory: Callable[[], Session] = get_session, feed: Optional[ChangeFeed] = None):
        self.session_factory = session_factory
        self.feed = feed or change_feed

    # -- reads ---------------------------------------------------------------

    def _select(self, *where, order=None):
        stmt = select(self.model)
        for clause in where:
            stmt = stmt.where(clause)
        order = order or self.order_by
        if order:
            column, ascending = order
            col = getattr(self.model, column)
            stmt = stmt.order_by(col.asc() if ascending else col.desc())
        return stmt

    def _fetch(self, stmt) -> FetchResult:
        session = None
        try:
            session = self.session_factory()
            rows = session.exec(stmt).all()
            return FetchResult(rows)
        except Exception as e:
            logger.exception("Read from %s failed: %s", self.table, e)
            return FetchResult(error=e)
        finally:
            if session:
                session.close()

    def fetch_all(self) -> FetchResult:
        return self._fetch(self._select())

    def get(self, record_id: Any) -> Optional[T]:
        session = None
        try:
            session = self.session_factory()
            return session.get(self.model, record_id)
        except Exception as e:
            logger.exception("Read %s id=%s failed: %s", self.table, record_id, e)
            return None
        finally:
            if session:
                session.close()

    # -- writes --------------------------------------------------------------

    def _to_public(self, row: T) -> Dict[str, Any]:
        return row.model_dump()

    def _publish(self, change_type: ChangeType, row: T) -> None:
        if self.publish_changes:
            self.feed.publish(Change(self.table, change_type, self._to_public(row)))

    def insert(self, row: T) -> T:
        session = self.session_factory()
        try:
            session.add(row)
            session.commit()
            session.refresh(row)
            logger.info("Inserted %s id=%s", self.table, getattr(row, "id", None))
        except SQLAlchemyError as e:
            session.rollback()
            logger.exception("Insert into %s failed: %s", self.table, e)
            raise _translate_write_error(self.table, e)
        finally:
            session.close()
        self._publish(ChangeType.INSERT, row)
        return row

    def update(self, record_id: Any, updates: Dict[str, Any]) -> T:
        session = self.session_factory()
        try:
            row = session.get(self.model, record_id)
            if row is None:
                raise RecordNotFound(f"{self.table} id={record_id} not found")
            for key, value in updates.items():
                if not hasattr(row, key):
                    raise SchemaMissingError(self.table, _migration_for(self.table, key), f"unknown column {key}")
                setattr(row, key, value)
            session.add(row)
            session.commit()
            session.refresh(row)
            logger.info("Updated %s id=%s fields=%s", self.table, record_id, sorted(updates))
        except SQLAlchemyError as e:
            session.rollback()
            logger.exception("Update of %s id=%s failed: %s", self.table, record_id, e)
            raise _translate_write_error(self.table, e)
        finally:
            session.close()
        self._publish(ChangeType.UPDATE, row)
        return row

    def delete(self, record_id: Any) -> None:
        session = self.session_factory()
        try:
            row = session.get(self.model, record_id)
            if row is None:
                raise RecordNotFound(f"{self.table} id={record_id} not found")
            public = self._to_public(row)
            session.delete(row)
            session.commit()
            logger.info("Deleted %s id=%s", self.table, record_id)
        except SQLAlchemyError as e:
            session.rollback()
            logger.exception("Delete of %s id=%s failed: %s", self.table, record_id, e)
            raise _translate_write_error(self.table, e)
        finally:
            session.close()
        if self.publish_changes:
            self.feed.publish(Change(self.table, ChangeType.DELETE, public))


class SubmissionRepository(Repository[Submission]):
    model = Submission
    table = SUBMISSIONS
    order_by = ("timestamp", False)
    publish_changes = True

    def _to_public(self, row: Submission) -> Dict[str, Any]:
        return submission_to_public(row)

    def fetch_by_user(self, user_id: str) -> FetchResult:
        return self._fetch(self._select(Submission.owner_id == user_id))

    def fetch_by_editor(self, editor_id: str) -> FetchResult:
        return self._fetch(self._select(Submission.assigned_editor_id == editor_id))


class PlanRepository(Repository[Plan]):
    model = Plan
    table = "plans"
    order_by = ("number", True)


class ArchiveRepository(Repository[ArchiveProject]):
    model = ArchiveProject
    table = "archive_projects"
    order_by = ("timestamp", False)


class EditorRepository(Repository[Editor]):
    model = Editor
    table = "editors"
    order_by = ("name", True)


class MessageRepository(Repository[Message]):
    model = Message
    table = MESSAGES
    order_by = ("timestamp", False)
    publish_changes = True

    def fetch_by_submission(self, submission_id: str) -> FetchResult:
        return self._fetch(self._select(Message.submission_id == submission_id, order=("timestamp", True)))

    def fetch_for_submissions(self, submission_ids: Iterable[str]) -> FetchResult:
        ids = list(submission_ids)
        if not ids:
            return FetchResult()
        return self._fetch(self._select(Message.submission_id.in_(ids)))


class ReadReceiptRepository(Repository[ReadReceipt]):
    model = ReadReceipt
    table = "read_receipts"

    def watermarks(self, user_id: str) -> Dict[str, int]:
        rows = self._fetch(self._select(ReadReceipt.user_id == user_id))
        return {r.submission_id: r.last_read for r in rows}

    def mark_read(self, user_id: str, submission_id: str, last_read: int) -> int:
        """Advance the watermark; it never moves backwards."""
        session = self.session_factory()
        try:
            stmt = select(ReadReceipt).where(ReadReceipt.user_id == user_id, ReadReceipt.submission_id == submission_id)
            receipt = session.exec(stmt).first()
            if receipt is None:
                receipt = ReadReceipt(user_id=user_id, submission_id=submission_id, last_read=last_read)
            elif last_read > receipt.last_read:
                receipt.last_read = last_read
            session.add(receipt)
            session.commit()
            return receipt.last_read
        except SQLAlchemyError as e:
            session.rollback()
            logger.exception("Saving read receipt failed: %s", e)
            raise _translate_write_error(self.table, e)
        finally:
            session.close()


def new_order_id() -> str:
    return uuid.uuid4().hex[:12].upper()


def new_editor_id() -> str:
    return f"ed_{uuid.uuid4().hex[:5]}"


class StudioData:
    """All collections behind one handle, plus the blob store."""

    def __init__(self, session_factory: Callable[[], Session] = get_session, feed: Optional[ChangeFeed] = None, storage=None):
        feed = feed or change_feed
        self.submissions = SubmissionRepository(session_factory, feed)
        self.plans = PlanRepository(session_factory, feed)
        self.archive = ArchiveRepository(session_factory, feed)
        self.editors = EditorRepository(session_factory, feed)
        self.messages = MessageRepository(session_factory, feed)
        self.receipts = ReadReceiptRepository(session_factory, feed)
        self.storage = storage
