from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from app.portal.db import make_engine, make_sessionmaker


def create_script_engine(db_url: str) -> Engine:
    engine = make_engine(db_url)
    if db_url.startswith("sqlite"):
        return engine

    @event.listens_for(engine, "connect")
    def _statement_timeout(dbapi_connection, connection_record):  # type: ignore[no-redef]
        # Seed/maintenance scripts should never hang a release on a lock.
        cur = dbapi_connection.cursor()
        cur.execute("SET statement_timeout = 60000")
        cur.close()

    return engine


@contextmanager
def script_session(db_url: str) -> Generator[Session, None, None]:
    engine = create_script_engine(db_url)
    s: Session = make_sessionmaker(engine)()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()
