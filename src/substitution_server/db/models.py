from datetime import datetime as dt_datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, DateTime, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    pass


class LogEntry(Base):
    __tablename__ = "logs"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    timestamp: Mapped[dt_datetime] = mapped_column(DateTime, server_default=func.now())
    level: Mapped[str] = mapped_column(String)
    message: Mapped[str] = mapped_column(String)


class SubstitutionJson(Base):
    """Every schedule that was accepted into the store, keyed by the PDF hash."""

    __tablename__ = "substitution_json"

    id: Mapped[int] = mapped_column(primary_key=True)
    hash: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    pdf_date: Mapped[dt_datetime] = mapped_column(DateTime, nullable=False)
    insertion_time: Mapped[Optional[dt_datetime]] = mapped_column(DateTime, nullable=True)
    json: Mapped[Dict[str, Any]] = mapped_column(JSON().with_variant(JSONB(), "postgresql"))
