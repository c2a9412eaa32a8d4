# knowledge_chunk.py
from sqlalchemy import Column, DateTime, Float, Integer, JSON, String, Text
from sqlalchemy.sql import func
from jobcrm.database import Base


class KnowledgeChunk(Base):
    __tablename__ = "kb_embeddings"

    id = Column(Integer, primary_key=True, index=True)
    entity_type = Column(String(20), nullable=False, default="job")
    entity_id = Column(Integer, nullable=False, index=True)
    source_type = Column(String(20), nullable=False)
    source_id = Column(Integer, nullable=True)
    chunk_idx = Column(Integer, nullable=False, default=0)
    content = Column(Text, nullable=False)
    embedding = Column(JSON, nullable=False)
    chunk_metadata = Column("metadata", JSON, nullable=True)
    document_type = Column(String(64), nullable=True)
    classification_confidence = Column(Float, nullable=True)
    classification_model = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
