"""
elasticsearch_output.py
-----------------------

Document output layer for accesslog2es.

Features:
- Send access log documents to an ES index (bulk API via the official client helper)
- Batching with flush on size or manual flush()
- Any rejected document or transport failure is raised as IndexingError
- NDJSON to stdout for dry runs (StdoutOutput)

Usage:
    from output.elasticsearch_output import ElasticsearchOutput

    es = ElasticsearchOutput(
        nodes=["localhost:9200"],
        index="logs",
        doc_type="access_log_entry",
        bulk_size=500,
    )

    es.send_log(document)

    # After the last line
    es.flush()
    es.close()
"""

import json
import logging
import sys
from typing import Any, Dict, Iterable, List, Optional

from elasticsearch import Elasticsearch, RequestsHttpConnection, TransportError, helpers
from elasticsearch.helpers import BulkIndexError

logger = logging.getLogger("accesslog2es.output")


class IndexingError(Exception):
    pass


def bulk_action(doc: Dict[str, Any], index: str, doc_type: Optional[str]) -> Dict[str, Any]:
    action = {"_index": index, "_source": doc}
    if doc_type:
        action["_type"] = doc_type
    return action


class ElasticsearchOutput:
    def __init__(
        self,
        nodes: Iterable[str] = ("localhost:9200",),
        index: str = "logs",
        doc_type: Optional[str] = "access_log_entry",
        username: Optional[str] = None,
        password: Optional[str] = None,
        bulk_size: int = 500,
        max_retries: int = 3,
        verify_ssl: bool = True,
        timeout: int = 30,
        client: Optional[Elasticsearch] = None,
    ):
        """
        Args:
            nodes: addresses like "localhost:9200" or "https://es1:9200".
            index: index name the documents go to.
            doc_type: mapping type sent with each action; empty/None omits it.
            username/password: optional basic auth for ES.
            bulk_size: flush batch size for bulk indexing.
            max_retries: retries the bulk helper makes on HTTP 429.
            verify_ssl: whether to verify TLS certs when using HTTPS.
            timeout: request timeout in seconds.
            client: pre-built Elasticsearch client (nodes/auth are then ignored).
        """
        self.nodes = list(nodes)
        self.index = index
        self.doc_type = doc_type or None
        self.bulk_size = max(1, bulk_size)
        self.max_retries = max_retries
        self.indexed = 0

        self._buffer: List[Dict[str, Any]] = []

        if client is None:
            auth = (username, password) if username and password else None
            client = Elasticsearch(
                hosts=self.nodes,
                connection_class=RequestsHttpConnection,
                http_auth=auth,
                verify_certs=verify_ssl,
                timeout=timeout,
            )
        self._es_client = client

    # ----------------------
    # Public API
    # ----------------------
    def send_log(self, doc: Dict[str, Any]):
        """Add a document to the buffer and flush if needed."""
        self._buffer.append(doc)
        if len(self._buffer) >= self.bulk_size:
            self.flush()

    def flush(self):
        """Submit everything in the buffer. Returns once ES accepted all of it, raises otherwise."""
        if not self._buffer:
            return
        docs = self._buffer
        self._buffer = []
        self._bulk_index(docs)

    def close(self):
        """Release the client. Buffered documents are dropped, call flush() first."""
        if self._buffer:
            logger.warning("Closing with %d unsent document(s)", len(self._buffer))
            self._buffer = []
        self._es_client.transport.close()

    # ----------------------
    # Bulk indexing
    # ----------------------
    def _bulk_index(self, docs: List[Dict[str, Any]]):
        logger.info("Indexing %d documents into index '%s' (bulk_size=%d)", len(docs), self.index, self.bulk_size)
        actions = [bulk_action(doc, self.index, self.doc_type) for doc in docs]
        try:
            success, _ = helpers.bulk(
                self._es_client,
                actions,
                chunk_size=self.bulk_size,
                max_retries=self.max_retries,
            )
        except BulkIndexError as exc:
            first = exc.errors[0] if exc.errors else None
            raise IndexingError(f"{len(exc.errors)} document(s) rejected by Elasticsearch, first: {first}") from exc
        except TransportError as exc:
            raise IndexingError(f"bulk request to {self.nodes} failed: {exc}") from exc
        self.indexed += success
        logger.info("Bulk API success: %s documents", success)


class StdoutOutput:
    """Writes the bulk NDJSON body (action line + document line) to a stream instead of ES."""

    def __init__(self, index: str = "logs", doc_type: Optional[str] = "access_log_entry", stream=None):
        self.index = index
        self.doc_type = doc_type or None
        self.stream = stream if stream is not None else sys.stdout
        self.indexed = 0

    def send_log(self, doc: Dict[str, Any]):
        meta = {"_index": self.index}
        if self.doc_type:
            meta["_type"] = self.doc_type
        self.stream.write(json.dumps({"index": meta}) + "\n")
        self.stream.write(json.dumps(doc) + "\n")
        self.indexed += 1

    def flush(self):
        self.stream.flush()

    def close(self):
        pass
