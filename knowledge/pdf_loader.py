"""
PDF knowledge loader.

Reads a PDF with PyMuPDF and turns every page that has text into one
document. Text blocks are read top to bottom, left to right and cleaned:
hyphenated line breaks are joined and runs of blank lines collapse.

With ``include_page_images`` each document carries the rendered page as a
JPEG; the page text is then only used for embedding and reranking.
"""

from __future__ import annotations

import base64
import re
from pathlib import Path
from typing import Optional, Union

import fitz  # PyMuPDF

from common.exceptions import DocumentLoadError

from .models import Document, ImageContent, KnowledgeCollection, SourceDescriptor, TextContent

SOURCE_TYPE_PDF = "pdf"
EXTRACTION_METHOD = "library"

PAGE_IMAGE_DPI = 120
PAGE_IMAGE_MAX_SIDE = 1280
PAGE_IMAGE_JPEG_QUALITY = 85

# Document info fields copied into the collection metadata
METADATA_FIELDS = ("author", "subject", "keywords", "creator", "producer")

PdfSource = Union[str, Path, bytes]


def clean_page_text(text: str) -> str:
    if not text:
        return ""
    cleaned = text.replace("\r\n", "\n").replace("\r", "\n")
    # "Stu-\ndium" -> "Studium"
    cleaned = re.sub(r"(?<=\w)-\n(?=\w)", "", cleaned)
    cleaned = re.sub(r"[ \t]+", " ", cleaned)
    cleaned = re.sub(r" *\n *", "\n", cleaned)
    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned)
    return cleaned.strip()


def extract_page_text(page: fitz.Page) -> str:
    """Cleaned text of one page, text blocks only, in reading order."""
    blocks = page.get_text("blocks", sort=False)
    texts: list[str] = []
    for block in sorted(blocks, key=lambda b: (b[1], b[0])):
        if len(block) < 5:
            continue
        block_type = block[-1] if isinstance(block[-1], int) else 0
        if block_type != 0:
            continue  # skip image blocks
        if block[4] and block[4].strip():
            texts.append(block[4])
    return clean_page_text("\n\n".join(texts))


def render_page_image(page: fitz.Page) -> str:
    """Base64 JPEG of the page at PAGE_IMAGE_DPI, longest side capped."""
    zoom = PAGE_IMAGE_DPI / 72
    longest = max(page.rect.width, page.rect.height) * zoom
    if longest > PAGE_IMAGE_MAX_SIDE:
        zoom *= PAGE_IMAGE_MAX_SIDE / longest
    pixmap = page.get_pixmap(matrix=fitz.Matrix(zoom, zoom))
    data = pixmap.tobytes("jpeg", jpg_quality=PAGE_IMAGE_JPEG_QUALITY)
    return base64.b64encode(data).decode("ascii")


def _open_pdf(source: PdfSource, name: str) -> fitz.Document:
    try:
        if isinstance(source, (bytes, bytearray)):
            doc = fitz.open(stream=bytes(source), filetype="pdf")
        else:
            doc = fitz.open(str(source))
    except (RuntimeError, OSError, ValueError) as exc:
        raise DocumentLoadError(name, original_error=exc) from exc

    if not doc.is_pdf:
        doc.close()
        raise DocumentLoadError(name, "not a PDF document")
    return doc


def collection_from_pdf(
    collection_id: str,
    source: PdfSource,
    include_page_images: bool = False,
    filename: Optional[str] = None,
) -> KnowledgeCollection:
    """
    Build a collection with one document per non-empty page.

    Args:
        collection_id: Id of the collection; document ids are
            ``<collection_id>_page_<n>``
        source: Path to the PDF or its raw bytes
        include_page_images: Store each page as a rendered JPEG
        filename: Name recorded in the source descriptor (defaults to the
            path's file name)

    Raises:
        DocumentLoadError: The file is missing or not a readable PDF
    """
    if filename is None and not isinstance(source, (bytes, bytearray)):
        filename = Path(source).name
    filename = filename or ""
    name = filename or "PDF stream"

    documents: list[Document] = []
    with _open_pdf(source, name) as doc:
        info = doc.metadata or {}
        total_pages = doc.page_count
        for page_number, page in enumerate(doc, start=1):
            text = extract_page_text(page)
            if not text:
                continue
            if include_page_images:
                content = ImageContent(data=render_page_image(page), mime_type="image/jpeg")
            else:
                content = TextContent(text=text)
            documents.append(
                Document(
                    id=f"{collection_id}_page_{page_number}" if collection_id else "",
                    content=content,
                    embedding_text=text,
                    metadata={
                        "page_number": page_number,
                        "total_pages": total_pages,
                        "extraction_method": EXTRACTION_METHOD,
                    },
                )
            )

    metadata = {field: info[field] for field in METADATA_FIELDS if info.get(field)}
    metadata["total_pages"] = total_pages
    title = (info.get("title") or "").strip() or Path(filename).stem or collection_id

    return KnowledgeCollection(
        id=collection_id,
        source=SourceDescriptor(title=title, type=SOURCE_TYPE_PDF, filename=filename),
        metadata=metadata,
        documents=documents,
    )
