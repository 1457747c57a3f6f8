"""
Document text extraction.

A DocumentParser turns a stored file into ``ParsedDocument(text, pages)``.
Pages are separated by form-feed characters in the extracted text so the
chunker can attribute chunks to pages.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from docrag.exceptions import DocumentParseError
from docrag.retrieval.chunker import PAGE_BREAK

logger = logging.getLogger(__name__)

EXTENSION_MIME_TYPES = {
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".markdown": "text/markdown",
    ".csv": "text/csv",
    ".json": "application/json",
}


@dataclass
class ParsedDocument:
    """Text extracted from one document."""

    text: str
    pages: int
    metadata: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class DocumentParser(Protocol):
    """Contract for document text extraction."""

    def parse(self, path: str | Path, mime_type: str) -> ParsedDocument:
        ...


def guess_mime_type(path: str | Path) -> str:
    """MIME type for a filename, defaulting to text/plain."""
    return EXTENSION_MIME_TYPES.get(Path(path).suffix.lower(), "text/plain")


class TextDocumentParser:
    """
    Parser for text-based formats.

    Supported MIME types:
        - text/plain, text/markdown: read as UTF-8
        - text/csv: commas replaced by spaces
        - application/json: re-serialized with indentation
    """

    supported_mime_types = frozenset(EXTENSION_MIME_TYPES.values())

    def parse(self, path: str | Path, mime_type: str) -> ParsedDocument:
        """
        Extract text from a file.

        Raises:
            DocumentParseError: If the type is unsupported or the file is unreadable
        """
        path = Path(path)
        mime_type = mime_type.lower()

        if mime_type not in self.supported_mime_types:
            raise DocumentParseError(f"Unsupported file type: {mime_type}")

        try:
            raw = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise DocumentParseError(f"Cannot read {path.name}: {e}") from e

        if mime_type == "text/csv":
            text = raw.replace(",", " ")
            metadata: dict[str, Any] = {"type": "csv", "rows": len(raw.splitlines())}
        elif mime_type == "application/json":
            try:
                data = json.loads(raw)
            except json.JSONDecodeError as e:
                raise DocumentParseError(f"Invalid JSON in {path.name}: {e}") from e
            text = json.dumps(data, indent=2, ensure_ascii=False)
            metadata = {"type": "json", "keys": len(data) if isinstance(data, dict) else 0}
        else:
            text = raw
            metadata = {"type": mime_type.split("/")[-1], "lines": len(raw.splitlines())}

        # Form feeds are page delimiters; only trim ordinary whitespace
        text = text.strip(" \t\r\n")
        if not text.strip():
            logger.warning(f"No text extracted from {path.name}")
            text = f"[No text content found in {path.name}]"

        pages = text.count(PAGE_BREAK) + 1
        logger.debug(f"Extracted {len(text)} characters, {pages} pages from {path.name}")
        return ParsedDocument(text=text, pages=pages, metadata=metadata)
