"""SQLite document table used alongside the ChromaDB chunk collection.

Each call opens its own connection, so the store is safe to use from the
worker threads the vector store client dispatches to.
"""
import json
import os
import sqlite3
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Optional

from chatrag import config
from chatrag.models.knowledge import Document, utc_now_iso


class DocumentStore:
    def __init__(self, db_path: str = config.DOCUMENT_DB_PATH):
        self.db_path = db_path

    @contextmanager
    def get_conn(self):
        conn = sqlite3.connect(self.db_path)
        try:
            yield conn
        finally:
            conn.close()

    def init_db(self):
        """Creates the documents table if it does not exist."""
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with self.get_conn() as conn:
            conn.execute("""
            CREATE TABLE IF NOT EXISTS documents (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                content TEXT NOT NULL,
                metadata TEXT NOT NULL DEFAULT '{}',
                created_at TIMESTAMP,
                updated_at TIMESTAMP
            )
            """)
            conn.commit()

    def insert_document(self, title: str, content: str, metadata: Optional[Dict[str, Any]] = None) -> str:
        """Inserts a document and returns its generated id."""
        document_id = str(uuid.uuid4())
        now = utc_now_iso()
        with self.get_conn() as conn:
            conn.execute(
                "INSERT INTO documents (id, title, content, metadata, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (document_id, title, content, json.dumps(metadata or {}, ensure_ascii=False), now, now),
            )
            conn.commit()
        return document_id

    def get_document(self, document_id: str) -> Optional[Document]:
        with self.get_conn() as conn:
            conn.row_factory = sqlite3.Row
            cur = conn.execute("SELECT * FROM documents WHERE id = ?", (document_id,))
            row = cur.fetchone()
        if not row:
            return None
        return Document(
            id=row["id"],
            title=row["title"],
            content=row["content"],
            metadata=json.loads(row["metadata"] or "{}"),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def delete_document(self, document_id: str) -> bool:
        """Deletes a document. Returns False if it did not exist."""
        with self.get_conn() as conn:
            cur = conn.execute("DELETE FROM documents WHERE id = ?", (document_id,))
            conn.commit()
            return cur.rowcount > 0

    def ping(self):
        with self.get_conn() as conn:
            conn.execute("SELECT id FROM documents LIMIT 1").fetchall()
