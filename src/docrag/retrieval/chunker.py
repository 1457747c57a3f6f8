"""
Fixed-window text chunking with overlap and page attribution.

Splits the extracted text of a document into overlapping character windows:
    - Windows start at 0 and advance by ``chunk_size - overlap``
    - The final window may be shorter than ``chunk_size``
    - Each window keeps its ``[start, end)`` offsets into the source text
"""

import bisect
import math
import re
from dataclasses import dataclass, field
from typing import Any

from docrag.exceptions import ConfigurationError

PAGE_BREAK = "\f"
"""Page delimiter embedded by the document parser between pages."""

CHUNK_METADATA_SCHEMA_VERSION = 1


@dataclass
class TextChunk:
    """A contiguous window of a document's text."""

    text: str
    """The text content of the chunk."""

    start: int
    """Offset of the first character in the source text."""

    end: int
    """Offset one past the last character in the source text."""


@dataclass
class ChunkMetadata:
    """Metadata stored alongside every persisted chunk."""

    start: int
    end: int
    chunk_size: int
    overlap: int
    extra: dict[str, Any] = field(default_factory=dict)
    """Parser-provided metadata (e.g. file type, section)."""

    schema_version: int = CHUNK_METADATA_SCHEMA_VERSION

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": self.schema_version,
            "start": self.start,
            "end": self.end,
            "chunk_size": self.chunk_size,
            "overlap": self.overlap,
            "extra": dict(self.extra),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ChunkMetadata":
        data = data or {}
        return cls(
            start=int(data.get("start", 0)),
            end=int(data.get("end", 0)),
            chunk_size=int(data.get("chunk_size", 0)),
            overlap=int(data.get("overlap", 0)),
            extra=dict(data.get("extra") or {}),
            schema_version=int(data.get("schema_version", CHUNK_METADATA_SCHEMA_VERSION)),
        )


def validate_chunk_config(chunk_size: int, overlap: int) -> None:
    """
    Check a chunk size / overlap pair.

    Raises:
        ConfigurationError: If chunk_size <= 0, overlap < 0 or overlap >= chunk_size
    """
    if chunk_size <= 0:
        raise ConfigurationError(f"chunk_size must be positive, got {chunk_size}")
    if overlap < 0:
        raise ConfigurationError(f"overlap must be non-negative, got {overlap}")
    if overlap >= chunk_size:
        raise ConfigurationError(
            f"overlap ({overlap}) must be less than chunk_size ({chunk_size})"
        )


def chunk_text(text: str, chunk_size: int, overlap: int) -> list[TextChunk]:
    """
    Split text into overlapping fixed-size windows.

    Args:
        text: Full extracted document text
        chunk_size: Window length in characters
        overlap: Characters shared by consecutive windows

    Returns:
        Chunks in left-to-right document order

    Raises:
        ConfigurationError: If the chunk configuration is invalid
    """
    validate_chunk_config(chunk_size, overlap)

    if not text:
        return []

    length = len(text)
    stride = chunk_size - overlap
    chunks: list[TextChunk] = []

    start = 0
    while True:
        end = min(start + chunk_size, length)
        chunks.append(TextChunk(text=text[start:end], start=start, end=end))
        if end >= length:
            break
        start += stride

    return chunks


def expected_chunk_count(length: int, chunk_size: int, overlap: int) -> int:
    """Number of chunks ``chunk_text`` produces for a text of ``length`` characters."""
    validate_chunk_config(chunk_size, overlap)
    if length == 0:
        return 0
    return max(1, math.ceil(max(length - overlap, 0) / (chunk_size - overlap)))


def extract_page_from_chunk(chunk_text: str, start_offset: int, full_text: str) -> int:
    """
    Estimate the 1-based page a chunk starts on.

    Counts page delimiters in ``full_text`` before ``start_offset``. Text
    without delimiters, or offsets that cannot be placed, map to page 1.

    Args:
        chunk_text: The chunk's text (used to locate it when the offset is unusable)
        start_offset: Offset of the chunk in ``full_text``
        full_text: The complete document text as produced by the parser

    Returns:
        Page number, at least 1
    """
    if not full_text or PAGE_BREAK not in full_text:
        return 1

    offset = start_offset
    if offset is None or offset < 0 or offset > len(full_text):
        offset = full_text.find(chunk_text) if chunk_text else -1
        if offset < 0:
            return 1

    page = full_text.count(PAGE_BREAK, 0, offset) + 1
    # A chunk starting on a delimiter belongs to the following page
    if full_text.startswith(PAGE_BREAK, offset):
        page += 1
    return page


_HEADER_PATTERN = re.compile(r"^(#{1,6})\s+(.+)$", re.MULTILINE)


def extract_section_headers(text: str) -> dict[int, str]:
    """
    Extract markdown section headers from text.

    Args:
        text: Document text to scan

    Returns:
        Dictionary mapping character position to header text
    """
    return {match.start(): match.group(2).strip() for match in _HEADER_PATTERN.finditer(text)}


def find_section(section_headers: dict[int, str], start: int, end: int) -> str:
    """
    Section label for the window ``[start, end)``.

    The first header inside the window wins; otherwise the nearest header
    before it. Returns an empty string when there is none.
    """
    if not section_headers:
        return ""

    positions = sorted(section_headers)
    index = bisect.bisect_left(positions, start)
    if index < len(positions) and positions[index] < end:
        return section_headers[positions[index]]
    if index > 0:
        return section_headers[positions[index - 1]]
    return ""
