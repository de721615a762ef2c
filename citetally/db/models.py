from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text, func, text
from sqlalchemy.orm import Mapped, mapped_column

from citetally.db.base import Base


class Record(Base):
    __tablename__ = "records"
    __table_args__ = (
        Index("ix_records_library_deleted", "library_id", "deleted"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    library_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default=text("1"))
    item_type: Mapped[str] = mapped_column(String(64), nullable=False, default="journalArticle")
    title: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default=text("''"))
    doi: Mapped[str] = mapped_column(String(255), nullable=False, default="", server_default=text("''"))
    extra: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default=text("''"))
    deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("0"))
    date_added: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    date_modified: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )


class Preference(Base):
    __tablename__ = "preferences"

    key: Mapped[str] = mapped_column(String(128), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False, default="")
