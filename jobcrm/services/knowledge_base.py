# knowledge_base.py
from __future__ import annotations

import logging
from typing import Any, Sequence

import numpy as np
from sklearn.metrics.pairwise import cosine_similarity
from sqlalchemy.orm import Session

from jobcrm.models.knowledge_chunk import KnowledgeChunk
from jobcrm.services.llm_client import LLMClient


logger = logging.getLogger(__name__)

DEFAULT_MATCH_THRESHOLD = 0.3
DEFAULT_MATCH_COUNT = 5


def store_chunks(
    db: Session,
    llm: LLMClient,
    *,
    entity_id: int,
    contents: Sequence[str],
    source_type: str,
    entity_type: str = "job",
    source_id: int | None = None,
    metadatas: Sequence[dict[str, Any] | None] | None = None,
    document_type: str | None = None,
    commit: bool = True,
) -> list[KnowledgeChunk]:
    """Embed ``contents`` in one call and store them as consecutive chunks."""
    contents = [c for c in contents if c and c.strip()]
    if not contents:
        return []
    vectors = llm.embed(contents)
    if len(vectors) != len(contents):
        raise ValueError(f"Expected {len(contents)} embeddings, got {len(vectors)}")

    rows: list[KnowledgeChunk] = []
    for idx, (content, vector) in enumerate(zip(contents, vectors)):
        metadata = metadatas[idx] if metadatas and idx < len(metadatas) else None
        row = KnowledgeChunk(
            entity_type=entity_type,
            entity_id=entity_id,
            source_type=source_type,
            source_id=source_id,
            chunk_idx=idx,
            content=content,
            embedding=[float(x) for x in vector],
            chunk_metadata=metadata,
            document_type=document_type,
        )
        db.add(row)
        rows.append(row)
    if commit:
        db.commit()
    else:
        db.flush()
    logger.debug("stored %s chunks entity=%s:%s source=%s", len(rows), entity_type, entity_id, source_type)
    return rows


def rank_by_similarity(
    query_vector: Sequence[float],
    candidates: Sequence[Sequence[float]],
) -> np.ndarray:
    """Cosine similarity of ``query_vector`` against every candidate row."""
    if not candidates:
        return np.zeros(0)
    query = np.asarray(query_vector, dtype=float).reshape(1, -1)
    matrix = np.asarray(candidates, dtype=float)
    if matrix.ndim != 2 or matrix.shape[1] != query.shape[1]:
        raise ValueError("Embedding dimensions do not match")
    return cosine_similarity(query, matrix)[0]


def search_knowledge(
    db: Session,
    llm: LLMClient,
    query: str,
    *,
    k: int = DEFAULT_MATCH_COUNT,
    threshold: float = DEFAULT_MATCH_THRESHOLD,
    entity_type: str | None = None,
    entity_id: int | None = None,
) -> list[dict[str, Any]]:
    q = db.query(KnowledgeChunk)
    if entity_type:
        q = q.filter(KnowledgeChunk.entity_type == entity_type)
    if entity_id is not None:
        q = q.filter(KnowledgeChunk.entity_id == entity_id)
    rows = q.all()
    if not rows or not query.strip():
        return []

    query_vector = llm.embed([query])[0]
    expected = len(query_vector)
    # Chunks embedded with another model have a different width.
    rows = [r for r in rows if r.embedding and len(r.embedding) == expected]
    if not rows:
        return []

    scores = rank_by_similarity(query_vector, [r.embedding for r in rows])
    order = np.argsort(-scores)
    matches: list[dict[str, Any]] = []
    for idx in order:
        score = float(scores[idx])
        if score < threshold:
            break
        row = rows[int(idx)]
        matches.append(
            {
                "id": row.id,
                "entity_type": row.entity_type,
                "entity_id": row.entity_id,
                "source_type": row.source_type,
                "chunk_idx": row.chunk_idx,
                "content": row.content,
                "metadata": row.chunk_metadata or {},
                "document_type": row.document_type,
                "similarity": score,
            }
        )
        if len(matches) >= k:
            break
    return matches


def delete_chunks(db: Session, *, entity_id: int, source_type: str | None = None, source_id: int | None = None) -> int:
    q = db.query(KnowledgeChunk).filter(KnowledgeChunk.entity_id == entity_id)
    if source_type:
        q = q.filter(KnowledgeChunk.source_type == source_type)
    if source_id is not None:
        q = q.filter(KnowledgeChunk.source_id == source_id)
    removed = q.delete(synchronize_session=False)
    db.commit()
    return removed
