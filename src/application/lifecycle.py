import logging
from typing import Dict

from src.domain.exceptions import ConfigurationError, DocumentValidationError, FieldFailure
from src.domain.models import Document, Stage, ValidationContext
from src.domain.relations import populate_related

logger = logging.getLogger(__name__)


async def run_stage(stage: Stage, document: Document, store) -> None:
    for hook in document.descriptor().hooks_for(stage):
        await hook(document, store)


async def assign_api_id(document: Document, store) -> None:
    await run_stage(Stage.ASSIGN_API_ID, document, store)


async def load_relations(document: Document, store) -> None:
    await run_stage(Stage.LOAD_RELATIONS, document, store)


async def validate_document(document: Document, store) -> Dict[str, FieldFailure]:
    """Runs every validator of the document type and returns the failures by path."""
    context = ValidationContext()
    for validator in document.descriptor().validators:
        await validator(document, store, context)
    return context.failures


async def stamp_timestamps(document: Document, store) -> None:
    await run_stage(Stage.PRE_SAVE, document, store)


async def save_document(document: Document, store) -> Document:
    """
    Saves a document through the full lifecycle: API ID assignment, relation
    loading, validation, timestamping and finally persistence.

    Args:
        document: The document to save.
        store: Document store client.

    Returns:
        Document: The saved document, now carrying its internal key.

    Raises:
        DocumentValidationError: If any validator recorded a failure. Nothing is persisted.
    """
    type_name = type(document).__name__

    await assign_api_id(document, store)
    await load_relations(document, store)

    failures = await validate_document(document, store)
    if failures:
        logger.info(f"Rejected {type_name} {getattr(document, 'api_id', None) or '[new]'}: {sorted(failures)} invalid.")
        raise DocumentValidationError(type_name, failures)

    await stamp_timestamps(document, store)
    saved = await store.save(document)
    logger.debug(f"Saved {type_name} {saved.id}.")
    return saved


async def populate(document: Document, store, *relations: str) -> Document:
    """
    Loads related documents for relations whose stored key came from the store.
    With no relation names given, every relation of the type is populated.
    """
    specs = document.descriptor().relations
    for name in relations or tuple(specs):
        if name not in specs:
            raise ConfigurationError(f'{type(document).__name__} has no relation "{name}"')
        await populate_related(document, store, specs[name])
    return document
