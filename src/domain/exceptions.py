from typing import Dict

from pydantic import BaseModel, ConfigDict


class DocumentLayerException(Exception):
    """Base exception for all document-layer errors."""
    pass

class ConfigurationError(DocumentLayerException):
    """Raised when a document type is not set up correctly."""
    pass

class DocumentStateError(DocumentLayerException):
    """Raised when a computed property is read before its backing data exists."""
    pass

class ApiIdExhaustedError(DocumentLayerException):
    """Raised when no unique API ID could be generated within the retry bound."""
    def __init__(self, attempts: int, message: str = "Could not find a unique API ID"):
        self.attempts = attempts
        super().__init__(f"{message} after {attempts} attempts")

class FieldFailure(BaseModel):
    """A single validation failure recorded against a document path."""
    model_config = ConfigDict(frozen=True)

    path: str
    reason: str
    message: str

class DocumentValidationError(DocumentLayerException):
    """Raised by save when one or more validators recorded a failure."""
    def __init__(self, document_type: str, failures: Dict[str, FieldFailure]):
        self.document_type = document_type
        self.failures = failures
        details = "; ".join(f"{path}: {failure.message}" for path, failure in failures.items())
        super().__init__(f"{document_type} validation failed: {details}")

class DatabaseException(DocumentLayerException):
    """Raised when a database operation fails."""
    pass
