# chunking.py
"""Split free text into chunks small enough to embed.

Blocks separated by blank lines are packed together until ``max_chunk_size``
characters; a block that is too large on its own is split into sentences, and a
sentence that is still too large is split on words.
"""
from __future__ import annotations

import re
from dataclasses import dataclass


DEFAULT_MAX_CHUNK_SIZE = 800

_BLOCK_SPLIT = re.compile(r"\n\s*\n")
_SENTENCE_SPLIT = re.compile(r"[.!?]+")
_SECTION_PATTERNS = (
    re.compile(r"^\s*\w+:\s*$", re.M),
    re.compile(r"^\s*\d+\.\s+", re.M),
    re.compile(r"^\s*[A-Z][A-Z\s]{2,}:\s*$", re.M),
    re.compile(r"^\s*#{1,6}\s+", re.M),
)
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f\ufffd]")
_NON_ASCII = re.compile(r"[^\x20-\x7e\n]")
_LONG_TOKEN = re.compile(r"\b\w{100,}\b")


@dataclass
class ChunkResult:
    chunks: list[str]
    original_length: int
    cleaned_length: int
    strategy: str

    @property
    def total_chunks(self) -> int:
        return len(self.chunks)


def clean_text(text: str, *, ascii_only: bool = False) -> str:
    """Strip control characters and squeeze whitespace, keeping paragraph breaks."""
    text = (text or "").replace("\r\n", "\n").replace("\r", "\n")
    if ascii_only:
        text = _NON_ASCII.sub(" ", text)
    else:
        text = _CONTROL_CHARS.sub(" ", text)
        text = _LONG_TOKEN.sub(" ", text)
    text = re.sub(r"[ \t\f\v]+", " ", text)
    text = re.sub(r" *\n *", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def has_sections(text: str) -> bool:
    return any(p.search(text) for p in _SECTION_PATTERNS)


def split_sentences(text: str) -> list[str]:
    return [s.strip() + "." for s in _SENTENCE_SPLIT.split(text) if s.strip()]


def split_words(text: str, max_size: int) -> list[str]:
    chunks: list[str] = []
    current = ""
    for word in text.split(" "):
        if len(current + word) > max_size:
            if current.strip():
                chunks.append(current.strip())
                current = word + " "
            else:
                # a single word longer than the limit is truncated
                chunks.append(word[:max_size])
        else:
            current += word + " "
    if current.strip():
        chunks.append(current.strip())
    return chunks or [text[:max_size]]


def _pack(text: str, max_size: int, prefix: str) -> list[str]:
    chunks: list[str] = []
    current = prefix

    def flush() -> None:
        nonlocal current
        if len(current) > len(prefix) and current.strip():
            chunks.append(current.strip())
        current = prefix

    for block in (b.strip() for b in _BLOCK_SPLIT.split(text)):
        if not block:
            continue
        if len(block) <= max_size:
            if len(current + block) > max_size:
                flush()
            current += block + "\n\n"
            continue

        flush()
        for sentence in split_sentences(block):
            if len(current + sentence) <= max_size:
                current += sentence + " "
                continue
            flush()
            if len(prefix + sentence) <= max_size:
                current += sentence + " "
            else:
                room = max(1, max_size - len(prefix))
                chunks.extend((prefix + piece).strip() for piece in split_words(sentence, room))
    flush()
    return chunks


def chunk_text_detailed(
    text: str,
    max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE,
    *,
    context_prefix: str = "",
    ascii_only: bool = False,
    preserve_sections: bool = True,
) -> ChunkResult:
    if max_chunk_size <= 0:
        raise ValueError("max_chunk_size must be positive")
    cleaned = clean_text(text, ascii_only=ascii_only)
    strategy = "section-aware" if preserve_sections and has_sections(cleaned) else "paragraph-aware"

    chunks = _pack(cleaned, max_chunk_size, context_prefix) if cleaned else []
    if not chunks and cleaned:
        chunks = [(context_prefix + cleaned[:max_chunk_size]).strip()]
    return ChunkResult(
        chunks=chunks,
        original_length=len(text or ""),
        cleaned_length=len(cleaned),
        strategy=strategy,
    )


def chunk_text(text: str, max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE) -> list[str]:
    return chunk_text_detailed(text, max_chunk_size).chunks
