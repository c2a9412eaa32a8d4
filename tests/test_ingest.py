from __future__ import annotations

import docx
import pytest

from jobcrm.config import settings
from jobcrm.services.ingest_service import (
    extract_docx_text,
    extract_pdf_text,
    file_extension,
    is_text_readable,
    parse_tag_response,
    resolve_storage_path,
)


OFFER_TEXT = "Offer letter for Jordan Lee with a base salary of 180k."


@pytest.fixture()
def docs_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "docs_storage_dir", str(tmp_path))
    (tmp_path / "notes.md").write_text("Meeting notes from the discovery call with Acme.\n\nThey need SSO.")
    return tmp_path


def _documents(job_id: int):
    from jobcrm.database import SessionLocal
    from jobcrm.models.job_document import JobDocument

    with SessionLocal() as db:
        return [
            (d.title, d.doc_status, d.tags, d.memo)
            for d in db.query(JobDocument).filter(JobDocument.job_id == job_id).order_by(JobDocument.id).all()
        ]


def _single_page_pdf(text: str) -> bytes:
    """One page of Helvetica text with a correct xref table."""
    stream = f"BT /F1 12 Tf 72 720 Td ({text}) Tj ET".encode("latin-1")
    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] /Contents 4 0 R /Resources << /Font << /F1 5 0 R >> >> >>",
        b"<< /Length %d >>\nstream\n" % len(stream) + stream + b"\nendstream",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]
    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += b"%d 0 obj\n" % number + body + b"\nendobj\n"
    xref_at = len(out)
    out += b"xref\n0 %d\n0000000000 65535 f \n" % (len(objects) + 1)
    for offset in offsets:
        out += b"%010d 00000 n \n" % offset
    out += b"trailer\n<< /Size %d /Root 1 0 R >>\nstartxref\n%d\n%%%%EOF\n" % (len(objects) + 1, xref_at)
    return bytes(out)


def _contents(job_id: int) -> dict[str, str]:
    from jobcrm.database import SessionLocal
    from jobcrm.models.job_document import JobDocument

    with SessionLocal() as db:
        return {d.title: d.content for d in db.query(JobDocument).filter(JobDocument.job_id == job_id).all()}


def test_parse_tag_response() -> None:
    assert parse_tag_response('"Meeting-Notes", reference, poc, bogus, urgent') == ["meeting-notes", "reference", "PoC"]
    assert parse_tag_response("") == []


def test_file_extension() -> None:
    assert file_extension("Notes.MD") == "md"
    assert file_extension("README") == ""


def test_storage_path_must_stay_inside_root(tmp_path) -> None:
    assert resolve_storage_path("/a/b.md", str(tmp_path)) == tmp_path.resolve() / "a" / "b.md"
    with pytest.raises(ValueError, match="outside document storage"):
        resolve_storage_path("../../etc/passwd", str(tmp_path))


def test_readability_heuristic() -> None:
    assert is_text_readable(OFFER_TEXT)
    assert not is_text_readable("too short")
    assert not is_text_readable("0 0 612 792 /F1 12 Tf 72 720 Td ET BT 1 0 0 1")


def test_unreadable_binaries_fall_back_to_placeholders() -> None:
    assert extract_pdf_text(b"not a pdf at all", "scan.pdf").endswith("requires manual review.")
    assert extract_docx_text(b"not a zip archive", "letter.docx") == "Word Document: letter.docx"


def test_ingest_extracts_pdf_and_docx_text(client, auth_headers, make_job, docs_dir) -> None:
    (docs_dir / "offer.pdf").write_bytes(_single_page_pdf(OFFER_TEXT))
    document = docx.Document()
    document.add_paragraph("Recruiter notes")
    document.add_paragraph(OFFER_TEXT)
    document.save(str(docs_dir / "offer.docx"))

    job_id = make_job()
    r = client.post(
        "/api/ingest-docs",
        json={
            "jobId": job_id,
            "files": [{"path": "offer.pdf", "name": "offer.pdf"}, {"path": "offer.docx", "name": "offer.docx"}],
        },
        headers=auth_headers,
    )
    assert r.status_code == 200
    assert r.json()["summary"] == {"total": 2, "successful": 2, "warnings": 0, "failed": 0}

    contents = _contents(job_id)
    assert contents["offer.pdf"].startswith("PDF Document: offer.pdf (1 pages)")
    assert OFFER_TEXT in contents["offer.pdf"]
    assert contents["offer.docx"] == f"Recruiter notes\n{OFFER_TEXT}"


def test_ingest_reports_each_file(client, auth_headers, fake_llm, make_job, docs_dir) -> None:
    job_id = make_job()
    fake_llm.replies.append("meeting-notes, reference")

    r = client.post(
        "/api/ingest-docs",
        json={
            "jobId": job_id,
            "metadata": {"memo": "from discovery", "type": "call-notes"},
            "files": [
                {"path": "notes.md", "name": "notes.md"},
                {"path": "deck.pdf", "name": "deck.pdf"},
                {"path": "data.csv", "name": "data.csv"},
                {"path": "../secret.md", "name": "secret.md"},
                {"path": "missing.md", "name": "missing.md"},
            ],
        },
        headers=auth_headers,
    )
    assert r.status_code == 200
    body = r.json()
    assert body["jobId"] == job_id
    assert body["summary"] == {"total": 5, "successful": 1, "warnings": 0, "failed": 4}
    [inserted] = body["inserted"]
    assert inserted["success"] is True
    assert inserted["snippet"].startswith("Meeting notes from the discovery call")

    errors = {e["file"]: e["error"] for e in body["errors"]}
    assert errors["deck.pdf"].startswith("Download failed")
    assert errors["data.csv"] == "Unsupported file type: csv"
    assert errors["secret.md"].startswith("Download failed: path outside document storage")
    assert errors["missing.md"].startswith("Download failed")

    assert _documents(job_id) == [("notes.md", "active", ["meeting-notes", "reference"], "from discovery")]

    r = client.post(
        "/api/knowledge/search",
        json={"query": "Meeting notes from the discovery call with Acme. They need SSO.", "entity_id": job_id, "k": 1},
        headers=auth_headers,
    )
    [match] = r.json()
    assert match["source_type"] == "doc"
    assert match["metadata"]["original_filename"] == "notes.md"
    assert match["metadata"]["memo"] == "from discovery"
    assert match["similarity"] > 0.9


def test_ingest_without_job_creates_a_placeholder(client, auth_headers, docs_dir) -> None:
    r = client.post("/api/ingest-docs", json={"files": [{"path": "notes.md", "name": "notes.md"}]}, headers=auth_headers)
    assert r.status_code == 200
    job_id = r.json()["jobId"]
    r = client.get(f"/api/jobs/{job_id}", headers=auth_headers)
    assert r.status_code == 200
    assert r.json()["job"]["status"] == "new"


def test_embedding_failure_is_a_warning(client, auth_headers, fake_llm, make_job, docs_dir) -> None:
    def broken_embed(texts):
        raise RuntimeError("embedding service down")

    fake_llm.embed = broken_embed
    job_id = make_job()
    r = client.post(
        "/api/ingest-docs",
        json={"jobId": job_id, "files": [{"path": "notes.md", "name": "notes.md"}]},
        headers=auth_headers,
    )
    body = r.json()
    assert body["summary"]["warnings"] == 1
    assert body["inserted"][0]["warning"] == "embedding service down"
    assert _documents(job_id)[0][1] == "failed"


def test_ingest_request_errors(client, auth_headers, docs_dir) -> None:
    r = client.post("/api/ingest-docs", json={"files": []}, headers=auth_headers)
    assert r.status_code == 400
    assert r.json() == {"error": "No files provided"}

    r = client.post("/api/ingest-docs", json={"files": [{"name": "notes.md"}]}, headers=auth_headers)
    assert r.status_code == 400
    assert r.json()["error"].startswith("Invalid file format")

    r = client.post(
        "/api/ingest-docs",
        json={"jobId": 999, "files": [{"path": "notes.md", "name": "notes.md"}]},
        headers=auth_headers,
    )
    assert r.status_code == 404
    assert r.json() == {"error": "Job not found"}

    r = client.get("/api/ingest-docs")
    assert r.status_code == 405
    assert r.json() == {"error": "Method not allowed. Use POST to ingest documents."}
