import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    LargeBinary,
    String,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from plm.images.helpers import get_utc_now


class Base(DeclarativeBase):
    pass


class Document(Base):
    """A schemaless document body addressed by id and revision."""

    __tablename__ = "documents"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    rev: Mapped[str] = mapped_column(String(64), nullable=False)
    class_name: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    body: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=get_utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=get_utc_now)

    attachments: Mapped[list["Attachment"]] = relationship(
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="Attachment.name",
    )
    tags: Mapped[list["DocumentTag"]] = relationship(
        back_populates="document",
        cascade="all, delete-orphan",
    )

    __table_args__ = (Index("ix_documents_class_name", "class_name"),)

    def __repr__(self) -> str:
        return f"<Document id={self.id} rev={self.rev} class_name={self.class_name!r}>"


class Attachment(Base):
    """Binary payload stored beside a document; metadata reads see a stub."""

    __tablename__ = "attachments"

    document_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("documents.id", ondelete="CASCADE"), primary_key=True
    )
    name: Mapped[str] = mapped_column(String(512), primary_key=True)
    content_type: Mapped[str] = mapped_column(String(255), nullable=False)
    length: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    data: Mapped[bytes] = mapped_column(LargeBinary, nullable=False, deferred=True)

    document: Mapped[Document] = relationship(back_populates="attachments")


class DocumentTag(Base):
    """Index row: one per (document, tag). Backs the by_tag lookups."""

    __tablename__ = "document_tags"

    document_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("documents.id", ondelete="CASCADE"), primary_key=True
    )
    tag_name: Mapped[str] = mapped_column(String(512), primary_key=True)

    document: Mapped[Document] = relationship(back_populates="tags")

    __table_args__ = (Index("ix_document_tags_tag_name", "tag_name"),)
