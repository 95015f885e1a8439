from __future__ import annotations

from typing import Callable, Generator

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from substitution_server.config import get_settings
from substitution_server.db.models import Base, SubstitutionJson
from substitution_server.dto.models import AuditRecord
from substitution_server.errors import PersistenceError

settings = get_settings()

engine = create_engine(settings.DATABASE_URL, echo=False, future=True)
SessionLocal = sessionmaker(bind=engine, autoflush=False)


def init_db():
    Base.metadata.create_all(bind=engine)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def save_substitution_json(record: AuditRecord, session_factory: Callable[[], Session] = SessionLocal) -> None:
    """Inserts one accepted schedule. Timestamps are stored as naive UTC."""
    session = session_factory()
    try:
        session.add(
            SubstitutionJson(
                hash=record.hash,
                pdf_date=record.pdf_date.replace(tzinfo=None),
                insertion_time=record.insertion_time.replace(tzinfo=None),
                json=record.json,
            )
        )
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        raise PersistenceError(f"could not save schedule {record.hash[:16]}: {exc}") from exc
    finally:
        session.close()
