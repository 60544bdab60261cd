# database/models.py
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- SQLAlchemy Models ---

class DocumentEntity(Base):
    __tablename__ = "documents"
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(String, nullable=False)
    course_id = Column(String, nullable=True, index=True)
    source = Column(String, nullable=True)  # Storage location / file URL
    processed = Column(Boolean, nullable=False, default=False)
    processing_status = Column(String, nullable=False, default="pending")
    timestamp = Column(DateTime(timezone=True), default=_utcnow)

    chunks = relationship(
        "ChunkEntity",
        back_populates="document",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class ChunkEntity(Base):
    __tablename__ = "document_chunks"
    id = Column(String, primary_key=True)  # "<document_id>_chunk_<ordinal>"
    document_id = Column(
        String, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    content = Column(Text, nullable=False)
    embedding = Column(JSON, nullable=False)  # List[float]
    chunk_index = Column(Integer, nullable=False, index=True)
    page_number = Column(Integer, nullable=True)
    meta = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    document = relationship("DocumentEntity", back_populates="chunks")
