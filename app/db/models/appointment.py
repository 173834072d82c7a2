# app/db/models/appointment.py

from __future__ import annotations

import uuid
from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from app.db.session import Base


class Appointment(Base):
    __tablename__ = "atendimentos"
    __table_args__ = (
        sa.Index("idx_atendimentos_start", "start"),
        sa.Index("idx_atendimentos_recurrence_id", "recurrence_id"),
        sa.Index("idx_atendimentos_paid", "paid"),
        sa.Index("idx_atendimentos_start_paid", "start", "paid"),
    )

    id: Mapped[int] = mapped_column(sa.BigInteger().with_variant(sa.Integer, "sqlite"),
                                    primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(sa.Text, nullable=False)

    # Stored as timezone-aware UTC
    start: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), nullable=False)
    end: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True))

    # Shared by every occurrence of one recurring series
    recurrence_id: Mapped[uuid.UUID | None] = mapped_column(sa.Uuid)
    paid: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False,
                                       server_default=sa.false())

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
    )

    def __repr__(self) -> str:
        return f"<Appointment id={self.id} start={self.start} title={self.title!r}>"
