import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import Column, DateTime, MetaData, String, Table, UniqueConstraint, select, text
from sqlalchemy.dialects.postgresql import JSONB, insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import create_async_engine

from src.domain.exceptions import DatabaseException
from src.domain.identifiers import new_storage_key
from src.domain.models import Document
from src.infrastructure.pipeline import parse_pipeline

logger = logging.getLogger(__name__)

# Every document type shares one JSONB table, partitioned by collection name
metadata = MetaData()
documents_table = Table(
    'documents', metadata,
    Column('collection', String, primary_key=True),
    Column('id', String, primary_key=True),
    Column('api_id', String, nullable=True),
    Column('body', JSONB, nullable=False, server_default=text("'{}'::jsonb")),
    Column('stored_at', DateTime(timezone=True), server_default=text('NOW()')),
    UniqueConstraint('collection', 'api_id', name='uq_documents_collection_api_id'),
)

class PostgresDocumentStore:
    """
    Document store client backed by a PostgreSQL JSONB table.
    Filters are equality matches evaluated with JSONB containment (@>).
    """

    def __init__(self, db_url: str, echo: bool = False):
        self.engine = create_async_engine(db_url, echo=echo)

    async def create_schema(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.create_all)

    def _select(self, document_type):
        return select(documents_table.c.body).where(
            documents_table.c.collection == document_type.collection_name()
        )

    async def find_one(self, document_type, filter: Dict[str, Any]) -> Optional[Document]:
        stmt = self._select(document_type).where(documents_table.c.body.contains(filter)).limit(1)

        async with self.engine.begin() as conn:
            result = await conn.execute(stmt)
            row = result.first()

        return document_type.from_store(row[0]) if row is not None else None

    async def find_by_id(self, document_type, key: str) -> Optional[Document]:
        stmt = self._select(document_type).where(documents_table.c.id == key)

        async with self.engine.begin() as conn:
            result = await conn.execute(stmt)
            row = result.first()

        return document_type.from_store(row[0]) if row is not None else None

    async def save(self, document: Document) -> Document:
        """
        Inserts or replaces the document body in a single statement.

        Raises:
            DatabaseException: If another document of the type already uses the API ID.
        """
        if document.id is None:
            document.id = new_storage_key()

        values = {
            'collection': type(document).collection_name(),
            'id': document.id,
            'api_id': getattr(document, 'api_id', None),
            'body': document.model_dump(mode="json"),
        }

        stmt = insert(documents_table).values(values)
        upsert_stmt = stmt.on_conflict_do_update(
            index_elements=['collection', 'id'],
            set_={
                'api_id': stmt.excluded.api_id,
                'body': stmt.excluded.body,
                'stored_at': text('NOW()'),
            },
        )

        try:
            async with self.engine.begin() as conn:
                await conn.execute(upsert_stmt)
        except IntegrityError as e:
            raise DatabaseException(f"Could not save {type(document).__name__} {document.id}: {e.orig}") from e

        document.mark_persisted()
        logger.debug(f"Stored {type(document).__name__} {document.id} in PostgreSQL.")
        return document

    async def aggregate(self, document_type, pipeline: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        stmt = self._select(document_type)
        for operator, argument in parse_pipeline(pipeline):
            if operator == "$match":
                stmt = stmt.where(documents_table.c.body.contains(argument))
            elif operator == "$sort":
                for field, direction in argument.items():
                    element = documents_table.c.body[field]
                    stmt = stmt.order_by(element.asc() if direction == 1 else element.desc())
            elif operator == "$skip":
                stmt = stmt.offset(argument)
            elif operator == "$limit":
                stmt = stmt.limit(argument)

        async with self.engine.begin() as conn:
            result = await conn.execute(stmt)
            rows = result.all()

        return [row[0] for row in rows]
