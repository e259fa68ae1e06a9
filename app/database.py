from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from app.config import settings
from app.errors import PersistenceError

engine = create_engine(settings.database_url, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create missing tables for all registered models."""
    import app.models  # noqa: F401

    Base.metadata.create_all(bind=engine)


def insert_or_get(db, record, lookup):
    """Insert ``record`` or return the row that won a concurrent insert.

    ``lookup`` re-reads the row by its unique key. Returns ``(row, created)``.
    """
    db.add(record)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = lookup()
        if existing is None:
            raise
        return existing, False
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"Failed to persist {type(record).__name__}: {e}") from e
    return record, True
