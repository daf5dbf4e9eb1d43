from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, JSON, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from clubsite.extensions import db

JSONType = JSON().with_variant(JSONB, 'postgresql')


class Document(db.Model):
    """One document of the hierarchical club store.

    ``path`` is the full slash separated location, e.g.
    ``clubs/{ownerUid}/seasons/2024-25/roster/{playerId}``. ``collection_path``
    is everything but the last segment and drives collection scans.
    """

    __tablename__ = "document"

    path: Mapped[str] = mapped_column(String(1024), primary_key=True)
    collection_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    doc_id: Mapped[str] = mapped_column(String(255), nullable=False)
    data: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index('ix_document_collection_path', 'collection_path'),
    )

    def __repr__(self) -> str:
        return f"<Document {self.path}>"
