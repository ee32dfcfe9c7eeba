from typing import Any, Dict, List, Optional

from src.domain.models import Document
from src.domain.urls import api_id_from_href


async def aggregate_to_documents(document_type, store, pipeline: List[Dict[str, Any]]) -> List[Document]:
    """Runs an aggregation pipeline and wraps every raw result in a document_type instance."""
    results = await store.aggregate(document_type, pipeline)
    return [document_type.from_store(data) for data in results]


async def find_by_href(document_type, store, href: str) -> Optional[Document]:
    """Looks a document up by its href or bare API ID."""
    api_id = api_id_from_href(document_type, href)
    if not api_id:
        return None
    return await store.find_one(document_type, {"api_id": api_id})
