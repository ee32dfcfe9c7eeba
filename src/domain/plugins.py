from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from src.domain.exceptions import ConfigurationError
from src.domain.identifiers import generate_unique_api_id, is_valid_api_id
from src.domain.models import DocumentDescriptor, Stage, ValidationContext
from src.domain.urls import resolve_href


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def api_id_plugin(descriptor: DocumentDescriptor) -> None:
    """Adds a unique, immutable UUID v4 "api_id" assigned on first save."""
    descriptor.add_field("api_id", Optional[str], None)

    async def assign_api_id(document, store) -> None:
        if not document.api_id:
            document.api_id = await generate_unique_api_id(type(document), store)

    async def validate_api_id(document, store, context: ValidationContext) -> None:
        api_id = document.api_id
        if not api_id:
            context.invalidate("api_id", "Path `api_id` is required", "required")
        elif not is_valid_api_id(api_id):
            context.invalidate("api_id", f"Path `api_id` is not a valid UUID v4 ({api_id})", "pattern")
        elif document.persisted_api_id and api_id != document.persisted_api_id:
            context.invalidate("api_id", "Path `api_id` cannot be changed once assigned", "immutable")

    descriptor.add_hook(Stage.ASSIGN_API_ID, assign_api_id)
    descriptor.add_validator(validate_api_id)


def href_plugin(descriptor: DocumentDescriptor) -> None:
    descriptor.add_property("href", resolve_href)


def parse_plugin(descriptor: DocumentDescriptor) -> None:
    """
    Adds the "parse" classmethod, which projects an untrusted payload onto the
    type's editable_properties, and the "parse_from" method that applies it.
    """

    def parse(cls, body: Mapping[str, Any]) -> Dict[str, Any]:
        editable_properties = cls.editable_properties or []
        if not isinstance(editable_properties, (list, tuple)):
            raise ConfigurationError(
                f'Document type property "editable_properties" must be a list, '
                f"but its type is {type(editable_properties).__name__}"
            )
        elif any(not isinstance(name, str) for name in editable_properties):
            raise ConfigurationError(
                'Document type property "editable_properties" must be a list of strings, '
                "but some of its elements are not strings"
            )

        return {name: body[name] for name in editable_properties if name in body}

    def parse_from(self, body: Mapping[str, Any]):
        for name, value in type(self).parse(body).items():
            setattr(self, name, value)
        return self

    descriptor.add_method("parse", classmethod(parse))
    descriptor.add_method("parse_from", parse_from)


def timestamps_plugin(descriptor: DocumentDescriptor) -> None:
    descriptor.add_field("created_at", Optional[datetime], None)
    descriptor.add_field("updated_at", Optional[datetime], None)

    async def stamp(document, store) -> None:
        if not document.created_at:
            document.created_at = utcnow()

        if not document.updated_at:
            document.updated_at = document.created_at
        elif not document.is_new:
            document.updated_at = utcnow()

    descriptor.add_hook(Stage.PRE_SAVE, stamp)


def transient_property_plugin(name: str, hidden_property: Optional[str] = None):
    """Returns a plugin adding a request-scoped property that is never persisted."""
    hidden_property = hidden_property or f"_{name}"

    def get_transient_property(self):
        return self.get_hidden(hidden_property)

    def set_transient_property(self, value) -> None:
        self.set_hidden(hidden_property, value)

    def plugin(descriptor: DocumentDescriptor) -> None:
        descriptor.add_property(name, get_transient_property, set_transient_property)

    return plugin
