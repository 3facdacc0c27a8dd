"""SQLAlchemy ORM models for all project entities."""

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""


# ──────────────────────────────────────────────
# Namespaces
# ──────────────────────────────────────────────


class Namespace(Base):
    __tablename__ = "namespaces"
    __table_args__ = (
        CheckConstraint(
            "rotation_state IN ('1', '2')",
            name="chk_namespaces_rotation_state",
        ),
    )

    namespace: Mapped[str] = mapped_column(String(64), primary_key=True)
    created: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    expires: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    contact: Mapped[str] = mapped_column(Text, default="")
    rotation_state: Mapped[str] = mapped_column(String(1), default="1")
    next_rotation: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), index=True
    )
    password: Mapped[str] = mapped_column(String(255))
    version: Mapped[int] = mapped_column(Integer, default=1)
