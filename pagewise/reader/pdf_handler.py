import hashlib
import logging
from dataclasses import dataclass, field
from pathlib import Path

import fitz  # PyMuPDF

from ..core.outline import OutlineNode, outline_from_toc
from .text_structurer import TextToken

logger = logging.getLogger(__name__)

BOLD_FLAG = 2 ** 4


@dataclass
class PageContent:
    page_num: int
    tokens: list[TextToken] = field(default_factory=list)


@dataclass
class PDFDocument:
    filename: str
    fingerprint: str
    total_pages: int
    pages: list[PageContent]
    outline: list[OutlineNode] = field(default_factory=list)

    def get_page_tokens(self, page_num: int) -> list[TextToken]:
        idx = page_num - 1
        if not 0 <= idx < len(self.pages):
            raise IndexError(f"page {page_num} out of range")
        return self.pages[idx].tokens

    def resolve_destination(self, destination) -> int | None:
        """Outline destinations from ``get_toc`` are already 1-based page numbers (-1 if unresolved)."""
        if isinstance(destination, int) and destination > 0:
            return destination
        return None


def page_tokens(page: fitz.Page) -> list[TextToken]:
    tokens = []
    for block in page.get_text("dict")["blocks"]:
        if block.get("type", 0) != 0:
            continue
        for line in block.get("lines", []):
            for span in line.get("spans", []):
                x0, _, _, y1 = span["bbox"]
                x, y = span.get("origin", (x0, y1))
                tokens.append(TextToken(
                    text=span["text"],
                    x=x,
                    y=y,
                    height=span["size"],
                    bold=bool(span["flags"] & BOLD_FLAG),
                ))
    return tokens


class PDFHandler:
    """Extracts the outline and positioned text tokens from PDF files using PyMuPDF."""

    def extract(self, pdf_path: str | Path) -> PDFDocument:
        pdf_path = Path(pdf_path)
        return self.extract_from_bytes(pdf_path.read_bytes(), filename=pdf_path.name)

    def extract_from_bytes(self, data: bytes, filename: str = "upload.pdf") -> PDFDocument:
        fingerprint = hashlib.sha256(data).hexdigest()
        doc = fitz.open(stream=data, filetype="pdf")
        try:
            pages = []
            for i, page in enumerate(doc):
                try:
                    tokens = page_tokens(page)
                except (KeyError, ValueError, RuntimeError) as e:
                    logger.warning("Could not read text layout of page %d: %s", i + 1, e)
                    tokens = []
                pages.append(PageContent(page_num=i + 1, tokens=tokens))
            outline = outline_from_toc(doc.get_toc())
        finally:
            doc.close()

        result = PDFDocument(
            filename=filename,
            fingerprint=fingerprint,
            total_pages=len(pages),
            pages=pages,
            outline=outline,
        )
        logger.info(
            "Extracted %d pages and %d outline entries from %s",
            result.total_pages, len(outline), filename,
        )
        return result
