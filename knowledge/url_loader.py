"""
Web page knowledge loader.

Fetches pages, converts their HTML to light markdown (headings, list
items, paragraphs) and splits the text into chunks of at most
``max_chunk_size`` characters: first at markdown headers, then at
paragraphs, and finally inside over-long paragraphs at sentence or word
boundaries. Every chunk becomes one document whose embedding text is
prefixed with the page title and URL.

Only the given URLs are fetched; links are not followed.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from html.parser import HTMLParser
from typing import Sequence, Union
from urllib import request
from urllib.error import HTTPError, URLError

from common.exceptions import DocumentLoadError

from .models import Document, KnowledgeCollection, SourceDescriptor

SOURCE_TYPE_URL = "url"

DEFAULT_MAX_CHUNK_SIZE = 2000
DEFAULT_TIMEOUT = 30
USER_AGENT = "context-core/1.0 (+knowledge loader)"

HEADER_PREFIXES = ("# ", "## ", "### ", "#### ")

TEXT_CONTENT_TYPES = ("text/plain", "text/markdown")


# =============================================================================
# FETCHING
# =============================================================================


def fetch_page(url: str, timeout: int = DEFAULT_TIMEOUT) -> tuple[str, str]:
    """
    Download one page.

    Returns:
        (content type, decoded body)

    Raises:
        DocumentLoadError: HTTP error status or unreachable host
    """
    req = request.Request(url, headers={"User-Agent": USER_AGENT}, method="GET")
    try:
        with request.urlopen(req, timeout=timeout) as resp:
            content_type = resp.headers.get_content_type()
            charset = resp.headers.get_content_charset() or "utf-8"
            body = resp.read().decode(charset, errors="replace")
    except HTTPError as exc:
        raise DocumentLoadError(url, f"HTTP {exc.code}", original_error=exc) from exc
    except (URLError, TimeoutError) as exc:
        reason = getattr(exc, "reason", exc)
        raise DocumentLoadError(url, str(reason), original_error=exc) from exc
    return content_type, body


# =============================================================================
# HTML TO MARKDOWN
# =============================================================================


class _MarkdownExtractor(HTMLParser):
    SKIP_TAGS = {"script", "style", "noscript", "nav", "footer", "svg", "form", "template"}
    BLOCK_TAGS = {
        "p", "div", "section", "article", "main", "header", "ul", "ol",
        "table", "tr", "blockquote", "pre", "br", "hr",
    }
    HEADINGS = {"h1": 1, "h2": 2, "h3": 3, "h4": 4, "h5": 5, "h6": 6}

    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.title = ""
        self.blocks: list[str] = []
        self._current: list[str] = []
        self._prefix = ""
        self._skip_depth = 0
        self._in_title = False

    def handle_starttag(self, tag, attrs):
        if tag == "title":
            self._in_title = True
        elif tag in self.SKIP_TAGS:
            self._skip_depth += 1
        elif tag in self.HEADINGS:
            self._flush()
            self._prefix = "#" * self.HEADINGS[tag] + " "
        elif tag == "li":
            self._flush()
            self._prefix = "- "
        elif tag in self.BLOCK_TAGS:
            self._flush()

    def handle_endtag(self, tag):
        if tag == "title":
            self._in_title = False
        elif tag in self.SKIP_TAGS:
            self._skip_depth = max(0, self._skip_depth - 1)
        elif tag in self.HEADINGS or tag == "li" or tag in self.BLOCK_TAGS:
            self._flush()

    def handle_data(self, data):
        if self._in_title:
            self.title += data
        elif not self._skip_depth:
            self._current.append(data)

    def close(self):
        super().close()
        self._flush()

    def _flush(self):
        text = re.sub(r"\s+", " ", "".join(self._current)).strip()
        if text:
            self.blocks.append(self._prefix + text)
        self._current = []
        self._prefix = ""


def html_to_markdown(html: str) -> tuple[str, str]:
    """Return (page title, markdown body) for an HTML document."""
    parser = _MarkdownExtractor()
    parser.feed(html)
    parser.close()
    return re.sub(r"\s+", " ", parser.title).strip(), "\n\n".join(parser.blocks)


# =============================================================================
# CHUNKING
# =============================================================================


def split_by_headers(content: str) -> list[str]:
    """Split before every level 1-4 markdown header."""
    sections: list[str] = []
    current: list[str] = []
    for line in content.split("\n"):
        if line.startswith(HEADER_PREFIXES) and current:
            sections.append("\n".join(current))
            current = []
        current.append(line)
    if current:
        sections.append("\n".join(current))
    return sections


def split_large_paragraph(paragraph: str, max_chunk_size: int) -> list[str]:
    """Cut a paragraph at sentence ends, else at spaces, else hard."""
    chunks: list[str] = []
    start = 0
    length = len(paragraph)
    while start < length:
        end = min(start + max_chunk_size, length)
        if end < length:
            for j in range(end, start + max_chunk_size // 2, -1):
                if paragraph[j - 1] in ".!?" and paragraph[j] in " \n":
                    end = j
                    break
            else:
                for j in range(end, start + max_chunk_size * 3 // 4, -1):
                    if paragraph[j - 1] != " " and paragraph[j] == " ":
                        end = j
                        break
        chunk = paragraph[start:end].strip()
        if chunk:
            chunks.append(chunk)
        start = end
    return chunks


def chunk_by_paragraphs(content: str, max_chunk_size: int) -> list[str]:
    """Pack blank-line separated paragraphs into chunks."""
    chunks: list[str] = []
    current: list[str] = []
    size = 0
    for paragraph in content.split("\n\n"):
        if not paragraph.strip():
            continue
        if current and size + len(paragraph) + 2 > max_chunk_size:
            chunks.append("\n\n".join(current))
            current = []
            size = 0
        if len(paragraph) > max_chunk_size:
            chunks.extend(split_large_paragraph(paragraph, max_chunk_size))
        else:
            current.append(paragraph)
            size += len(paragraph) + 2
    if current:
        chunks.append("\n\n".join(current))
    return chunks


def chunk_markdown(content: str, max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE) -> list[str]:
    if max_chunk_size <= 0:
        raise ValueError("max_chunk_size must be positive")
    content = content.strip()
    if not content:
        return []
    if len(content) <= max_chunk_size:
        return [content]

    chunks: list[str] = []
    for section in split_by_headers(content):
        section = section.strip()
        if not section:
            continue
        if len(section) <= max_chunk_size:
            chunks.append(section)
        else:
            chunks.extend(chunk_by_paragraphs(section, max_chunk_size))
    return chunks


# =============================================================================
# COLLECTIONS
# =============================================================================


def documents_from_page(
    collection_id: str,
    page_index: int,
    url: str,
    title: str,
    markdown: str,
    max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE,
) -> list[Document]:
    prefix = ""
    if title:
        prefix = f"[Page: {title}]\n"
    prefix += f"[URL: {url}]\n\n"

    chunks = chunk_markdown(markdown, max_chunk_size)
    return [
        Document.from_text(
            chunk,
            id=f"{collection_id}_page_{page_index}_chunk_{chunk_index}" if collection_id else "",
            embedding_text=prefix + chunk,
            metadata={
                "page_index": page_index,
                "chunk_index": chunk_index,
                "total_chunks": len(chunks),
                "source_url": url,
                "page_title": title,
            },
        )
        for chunk_index, chunk in enumerate(chunks)
    ]


def collection_from_urls(
    collection_id: str,
    urls: Union[str, Sequence[str]],
    max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE,
    timeout: int = DEFAULT_TIMEOUT,
) -> KnowledgeCollection:
    """
    Fetch every URL and chunk its text into one collection.

    Raises:
        DocumentLoadError: A page could not be fetched
        ValueError: No URL was given
    """
    if isinstance(urls, str):
        urls = [urls]
    urls = [u for u in urls if u.strip()]
    if not urls:
        raise ValueError("at least one URL is required")

    documents: list[Document] = []
    for page_index, url in enumerate(urls):
        content_type, body = fetch_page(url, timeout=timeout)
        if content_type in TEXT_CONTENT_TYPES:
            title, markdown = "", body
        else:
            title, markdown = html_to_markdown(body)
        documents.extend(
            documents_from_page(collection_id, page_index, url, title, markdown, max_chunk_size)
        )

    return KnowledgeCollection(
        id=collection_id,
        source=SourceDescriptor(title=f"Website: {urls[0]}", type=SOURCE_TYPE_URL, url=urls[0]),
        metadata={
            "url": urls[0],
            "fetched_at": datetime.now(timezone.utc).isoformat(),
            "pages_count": len(urls),
        },
        documents=documents,
    )
