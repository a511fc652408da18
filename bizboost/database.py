from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker
from bizboost.config import get_settings


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys = ON")
    cursor.close()


def build_engine(url: str, echo: bool = False):
    """
    Engine for url. SQLite connections are shared across the request
    threadpool and enforce ON DELETE CASCADE.
    """
    if not url.startswith("sqlite"):
        return create_engine(url, echo=echo)

    engine = create_engine(url, connect_args={"check_same_thread": False}, echo=echo)
    event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def build_session_factory(bind):
    return sessionmaker(autocommit=False, autoflush=False, bind=bind)


settings = get_settings()
engine = build_engine(settings.database_url, echo=settings.debug)
SessionLocal = build_session_factory(engine)

Base = declarative_base()


def get_db():
    """Request-scoped session, closed when the response is done."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None):
    """Create any missing tables."""
    # Models must be imported so their tables are registered on Base
    import bizboost.models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
