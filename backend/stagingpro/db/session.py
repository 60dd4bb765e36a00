import logging
from typing import Optional

from sqlalchemy import event, text
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from stagingpro.config import get_settings

logger = logging.getLogger(__name__)

# Columns added after the first release. Each statement is non-destructive so it
# can run on every startup; the same text is surfaced to operators when a write
# hits a database that was never migrated.
MIGRATIONS = {
    "plans.is_visible": 'ALTER TABLE plans ADD COLUMN IF NOT EXISTS is_visible BOOLEAN DEFAULT TRUE;',
    "submissions.quoted_amount": 'ALTER TABLE submissions ADD COLUMN IF NOT EXISTS quoted_amount BIGINT;',
    "submissions.revision_notes": 'ALTER TABLE submissions ADD COLUMN IF NOT EXISTS revision_notes TEXT;',
    "submissions.stripe_session_id": 'ALTER TABLE submissions ADD COLUMN IF NOT EXISTS stripe_session_id VARCHAR(255);',
}

_engine: Optional[Engine] = None


@event.listens_for(Engine, "connect")
def _sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores FOREIGN KEY clauses unless asked per connection
    if dbapi_connection.__class__.__module__.startswith("sqlite3"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_engine(settings.database_url, echo=settings.database_echo)
    return _engine


def set_engine(engine: Engine) -> None:
    """Swap the process-wide engine (used by tests and scripts)."""
    global _engine
    _engine = engine


def get_session() -> Session:
    return Session(get_engine())


def init_db() -> None:
    # table classes register on SQLModel.metadata at import
    from stagingpro.models import message, plan, staff, submission  # noqa: F401

    engine = get_engine()
    SQLModel.metadata.create_all(engine)
    if engine.dialect.name != "postgresql":
        return
    for key, statement in MIGRATIONS.items():
        try:
            with engine.begin() as conn:
                conn.execute(text(statement))
        except Exception as e:
            logger.warning("Failed to run migration %s: %s", key, e)
