"""
Durable vector index on SQLite with the sqlite-vec extension.

Collections and documents live in ordinary tables; vectors live in a
``vec0`` virtual table using cosine distance. One connection is shared and
guarded by a lock; each write runs in a single transaction.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Optional, Sequence

import sqlite_vec

from common.exceptions import ConfigurationError, StoreError

from .models import Document, KnowledgeCollection, SearchResult, SourceDescriptor
from .vector_index import (
    VectorIndex,
    distance_to_score,
    has_dimension,
    prepare_collection,
    rank_results,
)

# sqlite-vec refuses KNN queries with k above this
MAX_KNN = 4096


class SqliteVectorIndex(VectorIndex):
    backend_name = "sqlite"

    def __init__(
        self,
        path: str = ":memory:",
        dimension: Optional[int] = None,
        logger: Optional[logging.Logger] = None,
    ):
        if not dimension or dimension <= 0:
            raise ConfigurationError("SqliteVectorIndex requires a positive vector dimension")
        super().__init__(dimension=dimension, logger=logger)
        self.path = path
        self._lock = threading.Lock()
        if path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(path, check_same_thread=False)
        try:
            self._load_extension()
            self._init_schema()
        except Exception:
            self._conn.close()
            raise
        self.logger.info("Opened sqlite vector index at %s (dimension %d)", path, dimension)

    def _load_extension(self) -> None:
        try:
            self._conn.enable_load_extension(True)
            sqlite_vec.load(self._conn)
            self._conn.enable_load_extension(False)
        except (AttributeError, sqlite3.Error) as exc:
            raise ConfigurationError("sqlite-vec extension could not be loaded", str(exc)) from exc

    def _init_schema(self) -> None:
        self._conn.execute("PRAGMA foreign_keys = ON")
        with self._conn:
            self._conn.execute('''
                CREATE TABLE IF NOT EXISTS knowledges (
                    id TEXT PRIMARY KEY,
                    source TEXT NOT NULL,
                    metadata TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')
            self._conn.execute('''
                CREATE TABLE IF NOT EXISTS documents (
                    id TEXT PRIMARY KEY,
                    knowledge_id TEXT NOT NULL REFERENCES knowledges(id) ON DELETE CASCADE,
                    position INTEGER NOT NULL,
                    payload TEXT NOT NULL
                )
            ''')
            self._conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_documents_knowledge_id ON documents(knowledge_id)"
            )
            self._conn.execute(
                "CREATE VIRTUAL TABLE IF NOT EXISTS document_vectors USING vec0("
                "document_id TEXT PRIMARY KEY, "
                f"embedding float[{int(self.dimension)}] distance_metric=cosine)"
            )

    def store(self, collection: KnowledgeCollection) -> str:
        prepared = prepare_collection(collection)
        with self._lock:
            self._check_open()
            try:
                with self._conn:
                    self._delete_rows(prepared.id)
                    self._conn.execute(
                        "INSERT INTO knowledges (id, source, metadata) VALUES (?, ?, ?)",
                        (
                            prepared.id,
                            prepared.source.model_dump_json(),
                            json.dumps(prepared.metadata, ensure_ascii=False),
                        ),
                    )
                    for position, document in enumerate(prepared.documents):
                        self._insert_document(prepared.id, position, document)
            except sqlite3.Error as exc:
                raise StoreError(
                    f"Failed to store collection {prepared.id}", original_error=exc
                ) from exc
        self.logger.debug("Stored collection %s (%d documents)", prepared.id, len(prepared.documents))
        return prepared.id

    def _insert_document(self, knowledge_id: str, position: int, document: Document) -> None:
        self._conn.execute(
            "INSERT INTO documents (id, knowledge_id, position, payload) VALUES (?, ?, ?, ?)",
            (
                document.id,
                knowledge_id,
                position,
                document.model_dump_json(exclude={"embedding"}),
            ),
        )
        if has_dimension(document, self.dimension):
            self._conn.execute(
                "INSERT INTO document_vectors (document_id, embedding) VALUES (?, ?)",
                (document.id, sqlite_vec.serialize_float32(document.embedding)),
            )
        elif document.embedding:
            self.logger.warning(
                "Document %s has dimension %d, index expects %d; stored without a vector",
                document.id,
                len(document.embedding),
                self.dimension,
            )

    def _delete_rows(self, knowledge_id: str) -> None:
        document_ids = [
            row[0]
            for row in self._conn.execute(
                "SELECT id FROM documents WHERE knowledge_id = ?", (knowledge_id,)
            )
        ]
        self._conn.executemany(
            "DELETE FROM document_vectors WHERE document_id = ?",
            [(doc_id,) for doc_id in document_ids],
        )
        self._conn.execute("DELETE FROM documents WHERE knowledge_id = ?", (knowledge_id,))
        self._conn.execute("DELETE FROM knowledges WHERE id = ?", (knowledge_id,))

    def search(
        self,
        query_vector: Sequence[float],
        limit: int,
        allowed_collection_ids: Optional[Sequence[str]] = None,
    ) -> list[SearchResult]:
        with self._lock:
            self._check_open()
            if not self._query_is_searchable(query_vector, limit):
                return []
            query_blob = sqlite_vec.serialize_float32(list(query_vector))
            try:
                if allowed_collection_ids is None:
                    rows = self._conn.execute(
                        "SELECT document_id, distance FROM document_vectors "
                        "WHERE embedding MATCH ? AND k = ? ORDER BY distance",
                        (query_blob, min(limit, MAX_KNN)),
                    ).fetchall()
                else:
                    allowed = list(dict.fromkeys(allowed_collection_ids))
                    if not allowed:
                        return []
                    placeholders = ",".join("?" for _ in allowed)
                    rows = self._conn.execute(
                        "SELECT v.document_id, vec_distance_cosine(v.embedding, ?) AS distance "
                        "FROM document_vectors AS v JOIN documents AS d ON d.id = v.document_id "
                        f"WHERE d.knowledge_id IN ({placeholders}) "
                        "ORDER BY distance LIMIT ?",
                        (query_blob, *allowed, limit),
                    ).fetchall()
                documents = self._load_documents([row[0] for row in rows])
            except sqlite3.Error as exc:
                raise StoreError("Vector search failed", original_error=exc) from exc

        results = [
            SearchResult(document=documents[doc_id], score=distance_to_score(distance))
            for doc_id, distance in rows
            if doc_id in documents
        ]
        return rank_results(results, limit)

    def _load_documents(self, document_ids: list[str]) -> dict[str, Document]:
        if not document_ids:
            return {}
        placeholders = ",".join("?" for _ in document_ids)
        rows = self._conn.execute(
            f"SELECT id, payload FROM documents WHERE id IN ({placeholders})",
            document_ids,
        )
        return {row[0]: Document.model_validate_json(row[1]) for row in rows}

    def get_by_id(self, collection_id: str) -> Optional[KnowledgeCollection]:
        with self._lock:
            self._check_open()
            row = self._conn.execute(
                "SELECT id, source, metadata FROM knowledges WHERE id = ?", (collection_id,)
            ).fetchone()
            if row is None:
                return None
            document_rows = self._conn.execute(
                "SELECT payload FROM documents WHERE knowledge_id = ? ORDER BY position",
                (collection_id,),
            ).fetchall()
        return KnowledgeCollection(
            id=row[0],
            source=SourceDescriptor.model_validate_json(row[1]),
            metadata=json.loads(row[2]),
            documents=[Document.model_validate_json(r[0]) for r in document_rows],
        )

    def delete_by_id(self, collection_id: str) -> None:
        with self._lock:
            self._check_open()
            try:
                with self._conn:
                    self._delete_rows(collection_id)
            except sqlite3.Error as exc:
                raise StoreError(
                    f"Failed to delete collection {collection_id}", original_error=exc
                ) from exc

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._conn.close()
            self._closed = True
