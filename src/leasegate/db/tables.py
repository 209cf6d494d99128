"""SQLAlchemy table definitions."""

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from leasegate.db.base import Base


class IdentifierTable(Base):
    """Identifiers table - the seeded pool and current holders."""

    __tablename__ = "identifiers"

    # Autoincrement key doubles as the allocation order
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    value: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)

    holder: Mapped[str | None] = mapped_column(String(255), nullable=True)
    last_renewed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        # One identifier per client; NULL holders do not collide
        Index("uq_identifiers_holder", "holder", unique=True),
        # Index for reclamation sweeps
        Index("idx_identifiers_last_renewed", "last_renewed_at"),
    )
