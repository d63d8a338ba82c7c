"""Vector store implementation using Supabase."""
import json
import logging
from typing import Any, Callable, Dict, List, Optional, Set, Tuple
from supabase import create_client, Client
from models.chunk import Chunk
from config import SUPABASE_URL, SUPABASE_KEY, EMBEDDINGS_TABLE

logger = logging.getLogger(__name__)

# Unique key of a stored chunk within the table
CONFLICT_COLUMNS = "file,page_number,page_index"
PAGE_SIZE = 1000  # PostgREST default max rows per request


class TransactionError(RuntimeError):
    """Raised when a batch could not be written; nothing from it is persisted."""


class Transaction:
    """Collects record writes; they reach the database only on commit."""

    def __init__(self):
        self.records: List[Dict[str, Any]] = []
        self._keys: Set[Tuple[str, int, int]] = set()

    def save_record(self, chunk: Chunk) -> None:
        """
        Stage one chunk for writing.

        Raises:
            TransactionError: If the chunk has no embedding or its key is already staged
        """
        if chunk.embedding is None:
            raise TransactionError(f"Chunk {chunk.chunk_id} has no embedding")

        # One upsert cannot touch the same conflict key twice
        key = (chunk.document_id, chunk.page_number, chunk.page_index)
        if key in self._keys:
            raise TransactionError(f"Chunk {chunk.chunk_id} is staged twice in one batch")
        self._keys.add(key)

        self.records.append({
            "token_count": chunk.token_count,
            "file": chunk.document_id,
            "page_number": chunk.page_number,
            "page_index": chunk.page_index,
            "similarity_score": chunk.coherence_score,
            "text": chunk.text,
            "embedding": list(chunk.embedding),
        })


class VectorStore:
    """Store chunk embeddings in a Supabase table, one atomic batch at a time."""

    def __init__(
        self,
        supabase_url: str = SUPABASE_URL,
        supabase_key: str = SUPABASE_KEY,
        table_name: str = EMBEDDINGS_TABLE
    ):
        """
        Initialize the vector store with Supabase client.

        Args:
            supabase_url: Supabase project URL
            supabase_key: Supabase API key
            table_name: Name of the table to store chunks

        Raises:
            ValueError: If Supabase credentials are missing
        """
        if not supabase_url or not supabase_key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY environment variables are required")

        self.table_name = table_name

        # Initialize Supabase client
        self.client: Client = create_client(supabase_url, supabase_key)

        logger.info(f"Initialized VectorStore with table: {table_name}")

    def run_in_transaction(self, writes: Callable[[Transaction], None]) -> int:
        """
        Run `writes` against a transaction and commit everything it staged.

        The staged records are sent as a single bulk upsert, which PostgREST
        executes in one database transaction. If `writes` raises, nothing is
        sent at all.

        Args:
            writes: Callback that stages records with `Transaction.save_record`

        Returns:
            Number of records written

        Raises:
            TransactionError: If staging or the commit fails
        """
        transaction = Transaction()
        try:
            writes(transaction)
        except Exception as e:
            error_msg = f"Transaction aborted before commit: {str(e)}"
            logger.error(error_msg)
            raise TransactionError(error_msg) from e

        if not transaction.records:
            return 0

        try:
            self.client.table(self.table_name).upsert(
                transaction.records,
                on_conflict=CONFLICT_COLUMNS
            ).execute()
        except Exception as e:
            error_msg = f"Failed to commit {len(transaction.records)} records: {str(e)}"
            logger.error(error_msg)
            raise TransactionError(error_msg) from e

        logger.info(f"Committed {len(transaction.records)} records to {self.table_name}")
        return len(transaction.records)

    def list_records(self, document_id: Optional[str] = None) -> List[Chunk]:
        """
        Load stored chunks, optionally only those of one document.

        Returns:
            Chunks ordered by page number and page index

        Raises:
            RuntimeError: If database operation fails
        """
        chunks: List[Chunk] = []
        start = 0
        try:
            while True:
                query = self.client.table(self.table_name).select("*")
                if document_id is not None:
                    query = query.eq("file", document_id)
                response = (
                    query.order("page_number")
                    .order("page_index")
                    .range(start, start + PAGE_SIZE - 1)
                    .execute()
                )
                rows = response.data or []
                chunks.extend(self._row_to_chunk(row) for row in rows)
                if len(rows) < PAGE_SIZE:
                    break
                start += PAGE_SIZE
        except Exception as e:
            error_msg = f"Failed to list records: {str(e)}"
            logger.error(error_msg)
            raise RuntimeError(error_msg) from e

        logger.debug(f"Loaded {len(chunks)} records from {self.table_name}")
        return chunks

    def delete_document(self, document_id: str) -> None:
        """
        Remove every chunk of a document.

        Raises:
            RuntimeError: If database operation fails
        """
        try:
            self.client.table(self.table_name).delete().eq("file", document_id).execute()
            logger.info(f"Deleted records of document {document_id}")
        except Exception as e:
            error_msg = f"Failed to delete document {document_id}: {str(e)}"
            logger.error(error_msg)
            raise RuntimeError(error_msg) from e

    def count(self, document_id: Optional[str] = None) -> int:
        """
        Get the number of chunks in the vector store.

        Raises:
            RuntimeError: If database operation fails
        """
        try:
            query = self.client.table(self.table_name).select("file", count="exact")
            if document_id is not None:
                query = query.eq("file", document_id)
            response = query.execute()
            return response.count if response.count is not None else 0
        except Exception as e:
            error_msg = f"Failed to count chunks in vector store: {str(e)}"
            logger.error(error_msg)
            raise RuntimeError(error_msg) from e

    @staticmethod
    def _row_to_chunk(row: Dict[str, Any]) -> Chunk:
        embedding = row.get("embedding")
        # pgvector columns come back from PostgREST as "[0.1,0.2,...]"
        if isinstance(embedding, str):
            embedding = json.loads(embedding)

        return Chunk(
            document_id=row["file"],
            page_number=row["page_number"],
            text=row["text"],
            page_index=row.get("page_index", 0),
            token_count=row.get("token_count", 0),
            embedding=embedding,
            coherence_score=row.get("similarity_score") or 0.0
        )
