"""
Elasticsearch service for the Device Events backend.

Owns the Elasticsearch client, creates the event and location indices, and
exposes the document operations the ingestion and query services need.
Every client failure is converted into a STORE_UNAVAILABLE AppException.
"""

import logging
from typing import Any, Dict, Optional

from elasticsearch import Elasticsearch, NotFoundError

from config.settings import get_settings
from errors.exceptions import AppException, store_unavailable

logger = logging.getLogger(__name__)

# Longer descriptions stay in _source unindexed, below the 32766 byte term limit
DESCRIPTION_IGNORE_ABOVE = 1024


class ElasticsearchService:
    """
    Thin async facade over the synchronous Elasticsearch client.

    Args:
        settings: Application settings (defaults to get_settings())
        client: Pre-built client, mainly for tests; skips connect()
    """

    def __init__(self, settings: Optional[Any] = None, client: Optional[Elasticsearch] = None):
        self.settings = settings or get_settings()
        self.events_index = self.settings.events_index
        self.locations_index = self.settings.locations_index
        self.client = client

        if self.client is None:
            self.connect()

    def connect(self) -> None:
        """Create the client, verify connectivity and make sure indices exist."""
        try:
            self.client = Elasticsearch(
                self.settings.elastic_endpoint.strip('"'),
                api_key=self.settings.elastic_api_key.strip('"'),
                verify_certs=True,
                request_timeout=30
            )

            if not self.client.ping():
                raise ConnectionError("Failed to ping Elasticsearch")

            logger.info("Connected to Elasticsearch successfully")
            self.setup_indices()
        except Exception as e:
            logger.error(f"Failed to connect to Elasticsearch: {e}")
            raise

    def ping(self) -> bool:
        if self.client is None:
            return False
        return bool(self.client.ping())

    def _handle_elasticsearch_error(self, operation: str, error: Exception) -> None:
        """
        Log a failed operation and raise it as STORE_UNAVAILABLE.

        The message stays generic; the failing operation goes into details.
        """
        logger.error(
            f"Elasticsearch {operation} failed: {error}",
            extra={"extra_data": {"operation": operation, "error": str(error)}}
        )
        raise store_unavailable(details={"operation": operation})

    # Index management

    def setup_indices(self) -> None:
        """Create indices with their mappings if they don't exist yet."""
        indices = {
            self.events_index: self._get_events_mapping(),
            self.locations_index: self._get_locations_mapping(),
        }

        for index_name, mapping in indices.items():
            try:
                if not self.client.indices.exists(index=index_name):
                    self.client.indices.create(index=index_name, mappings=mapping)
                    logger.info(f"Created index: {index_name}")
                else:
                    logger.info(f"Index already exists: {index_name}")
            except Exception as e:
                logger.error(f"Failed to create index {index_name}: {e}")

    def _get_events_mapping(self) -> Dict[str, Any]:
        """
        Mapping for event records.

        Details varies by type code, so only description is indexed; the rest
        is kept in _source without being mapped.
        """
        return {
            "properties": {
                "ID": {"type": "keyword"},
                "DEVICE_ID": {"type": "keyword"},
                "DEVICE_NUMBER": {"type": "long"},
                "TS": {"type": "long"},
                "Type": {"type": "long"},
                "Event_Name": {"type": "keyword"},
                "AlertType": {"type": "keyword"},
                "Details": {
                    "type": "object",
                    "dynamic": False,
                    "properties": {
                        "description": {"type": "keyword", "ignore_above": DESCRIPTION_IGNORE_ABOVE}
                    }
                }
            }
        }

    def _get_locations_mapping(self) -> Dict[str, Any]:
        """Mapping for the last known location per device."""
        return {
            "properties": {
                "DEVICE_ID": {"type": "keyword"},
                "latitude": {"type": "double"},
                "longitude": {"type": "double"},
                "accuracy": {"type": "double"},
                "address": {"type": "text"},
                "lastUpdated": {"type": "date"}
            }
        }

    # Document operations

    async def index_document(
        self,
        index: str,
        document: Dict[str, Any],
        doc_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Index a document. With a doc_id, an existing document is overwritten,
        which is how per-device records are upserted.
        """
        try:
            response = self.client.index(
                index=index,
                id=doc_id,
                document=document,
                refresh=True
            )
            return response
        except Exception as e:
            self._handle_elasticsearch_error(f"index_document({index})", e)

    async def get_document(self, index: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Return a document's source, or None when it does not exist."""
        try:
            response = self.client.get(index=index, id=doc_id)
            return response["_source"]
        except NotFoundError:
            return None
        except Exception as e:
            self._handle_elasticsearch_error(f"get_document({index}, {doc_id})", e)

    async def search_documents(self, index: str, body: Dict[str, Any], size: int = 100):
        """
        Run a search request.

        Args:
            index: Index to search
            body: Request body (query, sort, from, size, aggs, ...)
            size: Default number of hits when the body doesn't set one
        """
        try:
            params = dict(body)
            params.setdefault("size", size)
            if "from" in params:
                params["from_"] = params.pop("from")

            return self.client.search(index=index, **params)
        except Exception as e:
            self._handle_elasticsearch_error(f"search_documents({index})", e)

    async def count_documents(self, index: str, query: Dict[str, Any]) -> int:
        """Number of documents matching a query clause."""
        try:
            response = self.client.count(index=index, query=query)
            return int(response["count"])
        except Exception as e:
            self._handle_elasticsearch_error(f"count_documents({index})", e)


_elasticsearch_service: Optional[ElasticsearchService] = None


def get_elasticsearch_service() -> ElasticsearchService:
    """
    Return the shared ElasticsearchService, connecting on first use.

    Raises:
        AppException: STORE_UNAVAILABLE when the cluster can't be reached.
    """
    global _elasticsearch_service

    if _elasticsearch_service is None:
        try:
            _elasticsearch_service = ElasticsearchService()
        except AppException:
            raise
        except Exception as e:
            raise store_unavailable(details={"operation": "connect"}) from e

    return _elasticsearch_service


def reset_elasticsearch_service() -> None:
    global _elasticsearch_service
    _elasticsearch_service = None
