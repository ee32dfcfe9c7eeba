import logging
import re
import secrets
import uuid

from src.domain.exceptions import ApiIdExhaustedError

logger = logging.getLogger(__name__)

API_ID_PATTERN = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$")
API_ID_LENGTH = 36
# A collision rate this high means a broken random source or an exhausted namespace
MAX_API_ID_ATTEMPTS = 10


def is_valid_api_id(value) -> bool:
    return isinstance(value, str) and len(value) == API_ID_LENGTH and API_ID_PATTERN.match(value) is not None


def new_storage_key() -> str:
    """Opaque internal key for a document that has never been persisted (24 hex chars)."""
    return secrets.token_hex(12)


async def generate_unique_api_id(document_type, store) -> str:
    """
    Generates a random UUID v4 that no existing document of the given type uses.

    Args:
        document_type: The document class whose namespace must not contain the ID.
        store: Document store client used for the uniqueness check.

    Returns:
        str: A lowercase hex UUID v4.

    Raises:
        ApiIdExhaustedError: If every candidate collided within MAX_API_ID_ATTEMPTS.
    """
    attempts = 0
    while attempts < MAX_API_ID_ATTEMPTS:
        api_id = str(uuid.uuid4())
        existing = await store.find_one(document_type, {"api_id": api_id})
        if existing is None:
            return api_id

        attempts += 1
        logger.warning(
            f"API ID collision for {document_type.__name__} "
            f"(attempt {attempts}/{MAX_API_ID_ATTEMPTS})."
        )

    logger.error(f"Could not generate a unique API ID for {document_type.__name__}.")
    raise ApiIdExhaustedError(attempts=attempts)
