from src.domain.exceptions import ConfigurationError, DocumentStateError


def join_url(*parts: str) -> str:
    """Joins URL segments with exactly one slash between them, keeping a leading slash."""
    segments = [str(part).strip("/") for part in parts]
    joined = "/".join(segment for segment in segments if segment)
    if parts and str(parts[0]).startswith("/"):
        return f"/{joined}"
    return joined


def api_resource_of(document_type) -> str:
    api_resource = getattr(document_type, "api_resource", None)
    if not api_resource:
        raise ConfigurationError(
            f'Document type {document_type.__name__} must have an "api_resource" property to use hrefs'
        )
    elif not isinstance(api_resource, str):
        raise ConfigurationError(
            f'Document type property "api_resource" must be a string, '
            f"but its type is {type(api_resource).__name__}"
        )
    return api_resource


def api_id_from_href(document_type, href):
    """Strips the type's resource path from an href; anything else is taken as a bare API ID."""
    prefix = f"{api_resource_of(document_type).rstrip('/')}/"
    if isinstance(href, str) and href.startswith(prefix):
        return href[len(prefix):]
    return href


def resolve_href(document) -> str:
    """
    Computes the canonical resource URL of a document.

    Raises:
        DocumentStateError: If the document has no API ID yet.
        ConfigurationError: If the document type has no usable "api_resource".
    """
    if not getattr(document, "api_id", None):
        raise DocumentStateError('Document must have an "api_id" property to have an href')

    return join_url(api_resource_of(type(document)), document.api_id)
