"""
StoredDocument — one JSON document inside a logical container.

The table stands in for a partitioned document database: each row is
addressed by (container, partition_key, doc_id) and carries the whole
document body as JSON text plus an etag that changes on every write.
Conditional writes compare the etag, which is how read-modify-write
cycles detect that someone else wrote first.
"""
from datetime import datetime
from sqlalchemy import String, Text, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column

from dreamtrack.db.base import Base


class StoredDocument(Base):
    __tablename__ = "documents"

    container: Mapped[str] = mapped_column(String(64), primary_key=True)
    partition_key: Mapped[str] = mapped_column(String(256), primary_key=True)
    doc_id: Mapped[str] = mapped_column(String(256), primary_key=True)
    body: Mapped[str] = mapped_column(
        Text, nullable=False,
        comment="JSON-encoded document, without the _etag field",
    )
    etag: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
