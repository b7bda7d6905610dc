"""Turn loosely structured records (dicts) into indexable documents."""

from typing import Any, Iterable

from .models import Document, KnowledgeCollection, SourceDescriptor

SOURCE_TYPE_MAP = "map"

# Checked in this order; all that are present are joined.
TEXT_FIELDS = ("content", "description", "title", "summary", "text", "name")


def extract_text_from_map(item: dict[str, Any]) -> str:
    """
    Searchable text for one record.

    Uses the well-known text fields when any is present, otherwise every
    non-empty string value as ``key: value`` in key order.
    """
    standard = [
        item[field]
        for field in TEXT_FIELDS
        if isinstance(item.get(field), str) and item[field]
    ]
    if standard:
        return " ".join(standard)

    parts = [
        f"{key}: {item[key]}"
        for key in sorted(item)
        if isinstance(item[key], str) and item[key]
    ]
    return " ".join(parts)


def documents_from_maps(items: Iterable[dict[str, Any]]) -> list[Document]:
    documents = []
    for item in items:
        text = extract_text_from_map(item)
        if not text:
            continue
        documents.append(Document.from_text(text, metadata=dict(item)))
    return documents


def collection_from_maps(collection_id: str, items: Iterable[dict[str, Any]]) -> KnowledgeCollection:
    return KnowledgeCollection(
        id=collection_id,
        source=SourceDescriptor(title="Map", type=SOURCE_TYPE_MAP),
        documents=documents_from_maps(items),
    )
