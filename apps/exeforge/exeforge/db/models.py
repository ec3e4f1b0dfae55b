"""SQLAlchemy 2.0 declarative models for the executable cache.

Uses dialect-agnostic types (Uuid, JSON) so models work with both
PostgreSQL (production) and SQLite (local runs and tests).
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Float,
    Index,
    Integer,
    JSON,
    Text,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from exeforge.resolver.types import DEFAULT_DESCRIPTION


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


class Executable(Base):
    """A cached, built executable for one package version.

    file_name is globally unique and names exactly one file in the
    artifacts directory. At most one row exists per (lower(name),
    ecosystem, version). Rows are never deleted by the build pipeline;
    a stale row (file missing on disk) is updated in place on rebuild.
    """

    __tablename__ = "executables"
    __table_args__ = (
        CheckConstraint("downloads >= 0", name="ck_executables_downloads_non_negative"),
        CheckConstraint("file_size >= 0", name="ck_executables_file_size_non_negative"),
        CheckConstraint(
            "score IS NULL OR (score >= 0 AND score <= 5)",
            name="ck_executables_score_range",
        ),
        CheckConstraint(
            "security_rating IS NULL OR (security_rating >= 0 AND security_rating <= 10)",
            name="ck_executables_security_rating_range",
        ),
        Index("ix_executables_popularity", "downloads", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(
        Text, nullable=False, default=DEFAULT_DESCRIPTION
    )
    # Package keywords, stored as an ordered JSON array of strings.
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    downloads: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    version: Mapped[str] = mapped_column(Text, nullable=False)
    ecosystem: Mapped[str] = mapped_column(Text, nullable=False)
    file_name: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    file_size: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0, server_default=text("0")
    )
    score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    security_rating: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )


# Serves lookups and rejects a second row for the same package version.
Index(
    "uq_executables_identity",
    func.lower(Executable.name),
    Executable.ecosystem,
    Executable.version,
    unique=True,
)
