import copy
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from src.domain.exceptions import DatabaseException
from src.domain.identifiers import new_storage_key
from src.domain.models import Document
from src.infrastructure.pipeline import matches, parse_pipeline

logger = logging.getLogger(__name__)


def sort_key(body: Dict[str, Any], field: str) -> Tuple[int, Any]:
    """
    Orders values the way PostgreSQL orders jsonb: null < string < number <
    boolean < array < object, with a missing field last (NULLS LAST).
    """
    if field not in body:
        return (6, 0)

    value = body[field]
    if value is None:
        return (0, 0)
    elif isinstance(value, str):
        return (1, value)
    elif isinstance(value, bool):
        return (3, value)
    elif isinstance(value, (int, float)):
        return (2, value)
    elif isinstance(value, list):
        return (4, json.dumps(value, sort_keys=True))
    return (5, json.dumps(value, sort_keys=True))


class InMemoryDocumentStore:
    """
    Document store client keeping JSON bodies in process memory.
    Used for development and tests; data is lost when the process exits.
    """

    def __init__(self) -> None:
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def _collection(self, document_type) -> Dict[str, Dict[str, Any]]:
        return self._collections.setdefault(document_type.collection_name(), {})

    async def find_one(self, document_type, filter: Dict[str, Any]) -> Optional[Document]:
        for body in self._collection(document_type).values():
            if matches(body, filter):
                return document_type.from_store(copy.deepcopy(body))
        return None

    async def find_by_id(self, document_type, key: str) -> Optional[Document]:
        body = self._collection(document_type).get(key)
        return document_type.from_store(copy.deepcopy(body)) if body is not None else None

    async def save(self, document: Document) -> Document:
        """Persists the document as-is, assigning an internal key on first save."""
        collection = self._collection(type(document))
        api_id = getattr(document, "api_id", None)
        if api_id is not None:
            for key, body in collection.items():
                if body.get("api_id") == api_id and key != document.id:
                    raise DatabaseException(f"Duplicate api_id {api_id} in {type(document).collection_name()}")

        if document.id is None:
            document.id = new_storage_key()

        collection[document.id] = document.model_dump(mode="json")
        document.mark_persisted()
        logger.debug(f"Stored {type(document).__name__} {document.id} in memory.")
        return document

    async def aggregate(self, document_type, pipeline: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        results = [copy.deepcopy(body) for body in self._collection(document_type).values()]

        for operator, argument in parse_pipeline(pipeline):
            if operator == "$match":
                results = [body for body in results if matches(body, argument)]
            elif operator == "$sort":
                # Stable sorts applied from the least significant key
                for field, direction in reversed(list(argument.items())):
                    results.sort(key=lambda body: sort_key(body, field), reverse=direction == -1)
            elif operator == "$skip":
                results = results[argument:]
            elif operator == "$limit":
                results = results[:argument]

        return results
