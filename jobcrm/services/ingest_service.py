# ingest_service.py
"""Document ingestion: read uploaded files, tag them, store and embed them."""
from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from io import BytesIO
from pathlib import Path
from typing import Any

import docx
from pypdf import PdfReader
from sqlalchemy.orm import Session

from jobcrm.config import settings
from jobcrm.models.job import Job
from jobcrm.models.job_document import JobDocument
from jobcrm.schemas.document import IngestFile, IngestMetadata
from jobcrm.services.chunking import chunk_text, clean_text
from jobcrm.services.knowledge_base import store_chunks
from jobcrm.services.llm_client import LLMClient


logger = logging.getLogger(__name__)

TEXT_EXTENSIONS = ("md", "txt", "markdown", "vtt")
BINARY_EXTENSIONS = ("pdf", "docx")
INGEST_CONCURRENCY = 2
SNIPPET_LENGTH = 500
MIN_TEXT_LENGTH = 5
MIN_DOCX_TEXT_LENGTH = 10
MAX_AUTO_TAGS = 3
ALLOWED_TAGS = (
    "urgent",
    "transcript",
    "documentation",
    "training",
    "meeting-notes",
    "reference",
    "blocker",
    "to-do",
    "PoC",
    "demo-prep",
    "marketing",
)


class IngestValidationError(ValueError):
    pass


@dataclass
class PreparedDocument:
    file: IngestFile
    ext: str
    text: str
    size: int
    tags: list[str] = field(default_factory=list)
    tag_error: str | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_files(files: list[IngestFile]) -> None:
    if not files:
        raise IngestValidationError("No files provided")
    for f in files:
        if not f.path or not f.name:
            raise IngestValidationError("Invalid file format. Each file must have path and name.")


def file_extension(name: str) -> str:
    return name.rsplit(".", 1)[-1].lower() if "." in name else ""


def resolve_storage_path(path: str, storage_dir: str | None = None) -> Path:
    """Resolve ``path`` inside the document store; anything escaping it is rejected."""
    root = Path(storage_dir or settings.docs_storage_dir).resolve()
    target = (root / path.lstrip("/\\")).resolve()
    if target != root and root not in target.parents:
        raise ValueError(f"Download failed: path outside document storage: {path}")
    return target


def parse_tag_response(text: str) -> list[str]:
    canonical = {t.lower(): t for t in ALLOWED_TAGS}
    tags: list[str] = []
    for part in (text or "").split(","):
        tag = canonical.get(part.strip().strip("\"'").lower())
        if tag and tag not in tags:
            tags.append(tag)
    return tags[:MAX_AUTO_TAGS]


def generate_auto_tags(llm: LLMClient, text: str, filename: str) -> list[str]:
    if not llm.configured:
        return []
    snippet = text[:SNIPPET_LENGTH]
    prompt = (
        "You are an AI assistant. Given the following text snippet, suggest up to three tags "
        f"from this allowed list (choose none if no tag applies): {', '.join(ALLOWED_TAGS)}.\n\n"
        f'Text snippet:\n"""\n{snippet}\n"""\n'
        'Only respond with a comma-separated list of valid tags (e.g. "meeting-notes, reference"). '
        "If none apply, respond with an empty string."
    )
    result = llm.chat(
        [{"role": "user", "content": prompt}],
        model=settings.jd_analysis_model,
        temperature=0.3,
        max_tokens=50,
    )
    tags = parse_tag_response(result.content)
    logger.info("auto-tags for %s: %s", filename, ", ".join(tags) or "-")
    return tags


_PDF_STRING = re.compile(rb"\(([^)]{4,})\)")
_WORD = re.compile(r"\b[a-zA-Z]{2,}\b")


def is_text_readable(text: str) -> bool:
    """Rough check that extracted text is prose rather than PDF operators or glyph noise."""
    if not text or len(text) < 20:
        return False
    letters = sum(ch.isascii() and ch.isalpha() for ch in text)
    words = _WORD.findall(text)
    if not words:
        return False
    avg_len = sum(len(w) for w in words) / len(words)
    return letters / len(text) > 0.5 and len(words) > 5 and 2 < avg_len < 15


def _pdf_strings(raw: bytes) -> str:
    parts = []
    for match in _PDF_STRING.finditer(raw):
        part = match.group(1).decode("latin-1").replace("\\n", " ").replace("\\r", " ").replace("\\", "").strip()
        if len(part) > 3 and any(ch.isalpha() for ch in part):
            parts.append(part)
    return clean_text(" ".join(parts))


def extract_pdf_text(raw: bytes, filename: str) -> str:
    try:
        reader = PdfReader(BytesIO(raw))
        pages = [page.extract_text() or "" for page in reader.pages]
    except Exception as exc:
        logger.warning("pdf parsing failed for %s: %s", filename, exc)
    else:
        text = clean_text("\n".join(pages))
        if is_text_readable(text):
            return f"PDF Document: {filename} ({len(pages)} pages)\n\n{text}"

    # Uncompressed content streams still carry their strings in the clear.
    text = _pdf_strings(raw)
    if is_text_readable(text):
        return f"PDF Document: {filename}\n\nExtracted Content:\n{text}"
    return f"PDF Document: {filename}\n\nThis document contains non-textual or scanned content that requires manual review."


def extract_docx_text(raw: bytes, filename: str) -> str:
    try:
        document = docx.Document(BytesIO(raw))
    except Exception as exc:
        logger.warning("docx parsing failed for %s: %s", filename, exc)
        return f"Word Document: {filename}"
    text = "\n".join(p.text for p in document.paragraphs).strip()
    if len(text) < MIN_DOCX_TEXT_LENGTH:
        return f"Word Document: {filename}"
    return text


def extract_text(raw: bytes, ext: str, filename: str) -> str:
    if ext == "pdf":
        return extract_pdf_text(raw, filename)
    if ext == "docx":
        return extract_docx_text(raw, filename)
    return raw.decode("utf-8", errors="replace")


def prepare_document(llm: LLMClient, file: IngestFile, storage_dir: str | None = None) -> PreparedDocument | dict[str, str]:
    name = file.name or ""
    ext = file_extension(name)
    if ext not in TEXT_EXTENSIONS and ext not in BINARY_EXTENSIONS:
        return {"file": name, "error": f"Unsupported file type: {ext}"}

    try:
        target = resolve_storage_path(file.path or "", storage_dir)
        raw = target.read_bytes()
    except (OSError, ValueError) as exc:
        msg = str(exc) if str(exc).startswith("Download failed") else f"Download failed: {exc}"
        return {"file": name, "error": msg}

    text = clean_text(extract_text(raw, ext, name))
    if len(text) < MIN_TEXT_LENGTH:
        text = f"Document: {name}\nContent extracted but minimal readable text found."

    doc = PreparedDocument(file=file, ext=ext, text=text, size=len(raw))
    try:
        doc.tags = generate_auto_tags(llm, text, name)
    except Exception as exc:
        logger.warning("auto-tagging failed for %s: %s", name, exc)
        doc.tag_error = str(exc) or "Auto-tagging failed"
    return doc


def _document_metadata(doc: PreparedDocument, metadata: IngestMetadata | None) -> dict[str, Any]:
    data: dict[str, Any] = {
        "original_filename": doc.file.name,
        "processing_started": _utcnow().isoformat(),
        "tags": doc.tags,
    }
    if doc.tag_error:
        data["ai_tag_error"] = doc.tag_error
    if metadata is not None:
        data = {"type": metadata.type or "document", **data, **metadata.model_dump(exclude_none=True)}
    return data


def store_document(
    db: Session,
    llm: LLMClient,
    doc: PreparedDocument,
    job_id: int,
    metadata: IngestMetadata | None,
    user_id: int | None,
) -> dict[str, Any]:
    row = JobDocument(
        job_id=job_id,
        user_id=user_id,
        title=doc.file.name,
        doc_type=doc.ext,
        content=doc.text,
        doc_status="processing",
        file_size=doc.size,
        mime_type=doc.ext,
        tags=doc.tags,
        memo=metadata.memo if metadata else None,
        doc_metadata=_document_metadata(doc, metadata),
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    snippet = doc.text[:SNIPPET_LENGTH]

    chunk_metadata = {
        **(metadata.model_dump(exclude_none=True) if metadata else {}),
        "source_type": "document",
        "document_type": doc.ext,
        "original_filename": doc.file.name,
        "title": row.title,
        "tags": doc.tags,
    }
    try:
        chunks = chunk_text(doc.text)
        store_chunks(
            db,
            llm,
            entity_id=job_id,
            contents=chunks,
            source_type="doc",
            source_id=row.id,
            metadatas=[chunk_metadata] * len(chunks),
        )
    except Exception as exc:
        db.rollback()
        message = str(exc) or "Embedding failed"
        logger.warning("embedding failed for document %s: %s", row.id, message)
        row.doc_status = "failed"
        row.processed_at = _utcnow()
        row.doc_metadata = {**(row.doc_metadata or {}), "error_message": message, "failed_at": _utcnow().isoformat()}
        db.commit()
        return {"id": row.id, "title": row.title, "file": doc.file.name, "warning": message, "snippet": snippet}

    row.doc_status = "active"
    row.processed_at = _utcnow()
    db.commit()
    return {"id": row.id, "title": row.title, "file": doc.file.name, "success": True, "snippet": snippet}


def ensure_job(db: Session, job_id: int | None) -> Job:
    if job_id is not None:
        job = db.query(Job).filter(Job.id == job_id).first()
        if job is None:
            raise LookupError("Job not found")
        return job
    job = Job(status="new")
    db.add(job)
    db.commit()
    db.refresh(job)
    logger.info("created placeholder job %s for document ingest", job.id)
    return job


def ingest_documents(
    db: Session,
    llm: LLMClient,
    files: list[IngestFile],
    *,
    job_id: int | None = None,
    metadata: IngestMetadata | None = None,
    user_id: int | None = None,
    storage_dir: str | None = None,
) -> dict[str, Any]:
    """Ingest ``files`` for a job, creating a placeholder job when none is given.

    Reading and tagging run ``INGEST_CONCURRENCY`` files at a time; database
    writes and embeddings happen on the caller's session, in request order.
    """
    validate_files(files)
    job = ensure_job(db, job_id)

    with ThreadPoolExecutor(max_workers=INGEST_CONCURRENCY) as pool:
        prepared = list(pool.map(lambda f: prepare_document(llm, f, storage_dir), files))

    results: list[dict[str, Any]] = []
    for item in prepared:
        if isinstance(item, dict):
            results.append(item)
            continue
        try:
            results.append(store_document(db, llm, item, job.id, metadata, user_id))
        except Exception as exc:
            db.rollback()
            logger.exception("failed to store document %s", item.file.name)
            results.append({"file": item.file.name or "unknown", "error": str(exc) or "Unknown error"})

    inserted = [r for r in results if "id" in r]
    errors = [r for r in results if "error" in r]
    return {
        "jobId": job.id,
        "inserted": inserted,
        "errors": errors,
        "summary": {
            "total": len(files),
            "successful": sum(1 for r in results if r.get("success")),
            "warnings": sum(1 for r in results if "warning" in r),
            "failed": len(errors),
        },
    }
