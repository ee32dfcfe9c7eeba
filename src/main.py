import asyncio
import logging
import sys

from src.domain.exceptions import ConfigurationError
from src.infrastructure.config import load_settings
from src.infrastructure.database import PostgresDocumentStore

logger = logging.getLogger(__name__)

async def main():
    try:
        settings = load_settings()
    except ConfigurationError as e:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
        logger.error(str(e))
        sys.exit(1)

    # Configure logging
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )

    # Create the documents table if it does not exist yet
    store = PostgresDocumentStore(db_url=settings.database_url, echo=settings.sql_echo)

    try:
        await store.create_schema()
        logger.info("Document store schema is ready.")
    except Exception as e:
        logger.exception(f"An unexpected error occurred: {e}")
        sys.exit(1)
    finally:
        await store.engine.dispose()

if __name__ == "__main__":
    asyncio.run(main())
