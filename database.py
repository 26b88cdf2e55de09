import logging
import sqlite3
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from config import settings

logger = logging.getLogger(__name__)


engine = create_engine(settings.sqlalchemy_database_url, echo=settings.sql_echo)
SessionLocal = sessionmaker(bind = engine)

Base = declarative_base()

# Five fixed roles that must exist after initialization.
ROLE_SEED = (
    ("Admin", "System administrator"),
    ("Doctor", "Medical doctor"),
    ("Patient", "Patient / client"),
    ("Receptionist", "Front desk staff"),
    ("Nurse", "Nursing staff"),
)

# Execution option read by the SQLite "begin" hook, e.g. {"sqlite_begin": "IMMEDIATE"}.
SQLITE_BEGIN_OPTION = "sqlite_begin"


@event.listens_for(Engine, "connect")
def _configure_sqlite(dbapi_connection, connection_record):
    if isinstance(dbapi_connection, sqlite3.Connection):
        # SQLite ignores REFERENCES clauses unless asked per connection.
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
        # pysqlite stops emitting its own BEGIN; _begin_sqlite does it instead.
        dbapi_connection.isolation_level = None


@event.listens_for(Engine, "begin")
def _begin_sqlite(conn):
    if conn.dialect.name == "sqlite" and conn.dialect.driver == "pysqlite":
        mode = conn.get_execution_options().get(SQLITE_BEGIN_OPTION)
        conn.exec_driver_sql(f"BEGIN {mode}" if mode else "BEGIN")


@contextmanager
def get_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def seed_roles(db: Session):
    import models

    existing = {name for (name,) in db.query(models.Role.name).all()}
    added = []
    for name, description in ROLE_SEED:
        if name not in existing:
            db.add(models.Role(name=name, description=description))
            added.append(name)
    db.commit()
    if added:
        logger.info("Seeded roles: %s", ", ".join(added))
    return added


def init_db(bind: Engine = engine):
    """Create every table and seed the role rows."""
    import models  # registers the mappers on Base.metadata

    Base.metadata.create_all(bind=bind)
    logger.info("Created %d tables on %s", len(Base.metadata.tables), bind.url.render_as_string(hide_password=True))
    db = Session(bind=bind)
    try:
        seed_roles(db)
    finally:
        db.close()
