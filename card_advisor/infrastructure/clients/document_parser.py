"""Statement document reader built on pdfplumber"""

import logging
from pathlib import Path
from typing import List

import pdfplumber

from card_advisor.domain.document_analysis import analyze_text
from card_advisor.domain.exceptions import UnreadableDocumentError
from card_advisor.domain.models import ParsedDocument

logger = logging.getLogger(__name__)

TEXT_SUFFIXES = {".txt", ".csv"}


def render_table(table: List[List[str | None]]) -> str:
    """Flatten an extracted table into pipe-separated rows"""
    return "\n".join(" | ".join(cell.strip() if cell else "" for cell in row) for row in table if row)


class PdfDocumentParser:
    """Reads PDF statements page by page, plus plain-text exports"""

    def parse(self, document_ref: str) -> ParsedDocument:
        """
        Extract text and structural statistics from a stored document.

        Raises:
            UnreadableDocumentError: File is missing, not a PDF, encrypted or has no text layer
        """
        path = Path(document_ref)
        if not path.is_file():
            raise UnreadableDocumentError(f"Document not found: {path.name}")

        if path.suffix.lower() in TEXT_SUFFIXES:
            try:
                text = path.read_text(encoding="utf-8", errors="replace")
            except OSError as e:
                raise UnreadableDocumentError(f"Could not read {path.name}: {e}") from e
            return ParsedDocument(text=text, page_count=1, stats=analyze_text(text))

        parts: List[str] = []
        table_count = 0
        try:
            with pdfplumber.open(path) as pdf:
                page_count = len(pdf.pages)
                for page in pdf.pages:
                    text = page.extract_text()
                    if text:
                        parts.append(text)
                    for table in page.extract_tables():
                        if table:
                            table_count += 1
                            parts.append(render_table(table))
        except Exception as e:
            # pdfplumber surfaces encryption and corruption problems as assorted exception types
            raise UnreadableDocumentError(f"Could not read {path.name}: {e.__class__.__name__}") from e

        text = "\n\n".join(parts)
        if not text.strip():
            logger.warning("No text layer found in PDF", extra={"document": path.name, "pages": page_count})
            raise UnreadableDocumentError(f"{path.name} has no extractable text; scanned statements are not supported")

        return ParsedDocument(text=text, page_count=page_count, stats=analyze_text(text, table_count=table_count))
