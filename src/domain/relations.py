import logging
from typing import Any, Callable, Optional

import inflection
from pydantic import BaseModel, ConfigDict, ValidationError, model_validator

from src.domain.exceptions import ConfigurationError, DocumentStateError
from src.domain.models import DocumentDescriptor, Stage, ValidationContext
from src.domain.urls import api_id_from_href, resolve_href

logger = logging.getLogger(__name__)


def human_type_name(name: str) -> str:
    """TripLeg -> trip leg"""
    return inflection.humanize(inflection.underscore(name)).lower()


def trace_sink(collaborator: Any = None) -> Callable[[str], None]:
    """Returns the trace-level sink of a logging collaborator, or this module's debug log."""
    if collaborator is None:
        return logger.debug
    return getattr(collaborator, "trace", None) or collaborator.debug


class RelationSpec(BaseModel):
    """
    Configuration of one relation from an owning document type to a target type.

    Only "ref" is mandatory; every property name derives from it unless
    overridden.
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True, protected_namespaces=())

    ref: str
    required: bool = False
    model_name: str
    human_model_name: Optional[str] = None
    property_name: str
    hidden_api_id_property: str
    hidden_document_property: str
    load_related_method: str
    virtual_href_property: str
    virtual_id_property: str
    logger: Any = None

    @model_validator(mode="before")
    @classmethod
    def _derive_names(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data

        data = {key: value for key, value in data.items() if value is not None}
        ref = data.get("ref")
        if not isinstance(ref, str) or not ref:
            raise ValueError("ref must be the name of a document type")

        property_name = data.setdefault("property_name", inflection.underscore(ref))
        data.setdefault("model_name", ref)
        data.setdefault("hidden_api_id_property", f"_{property_name}_id")
        data.setdefault("hidden_document_property", f"_{property_name}")
        data.setdefault("load_related_method", f"load_related_{property_name}")
        data.setdefault("virtual_href_property", f"{property_name}_href")
        data.setdefault("virtual_id_property", f"{property_name}_id")
        return data


def related_href_plugin(ref: str, **options):
    """
    Returns a plugin linking the document type to the "ref" document type.

    The relation is stored as the target's internal key, written through the
    "<name>_id" / "<name>_href" properties, resolved by a lazy load before
    validation and checked for existence during validation.
    """
    try:
        spec = RelationSpec(ref=ref, **options)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid relation to {ref!r}: {e}") from e

    trace = trace_sink(spec.logger)

    def plugin(descriptor: DocumentDescriptor) -> None:
        registry = descriptor.registry

        def human_model_name() -> str:
            return spec.human_model_name or human_type_name(registry.get(spec.ref).__name__)

        def get_related_document(document):
            related = document.get_hidden(spec.hidden_document_property)
            if related is None or not getattr(related, "api_id", None):
                raise DocumentStateError(
                    f'{type(document).__name__} {human_model_name()} must have an "api_id" property; '
                    f"perhaps you forgot to populate"
                )
            return related

        def get_related_id(self) -> str:
            return get_related_document(self).api_id

        def get_related_href(self) -> str:
            return resolve_href(get_related_document(self))

        def set_related_id(self, api_id) -> None:
            trace(
                f"Setting {type(self).__name__}.{spec.hidden_api_id_property} to {api_id} "
                f"through {spec.virtual_id_property} property"
            )
            self.set_hidden(spec.hidden_api_id_property, api_id)

        def set_related_href(self, href) -> None:
            value = api_id_from_href(registry.get(spec.ref), href)
            trace(
                f"Setting {type(self).__name__}.{spec.hidden_api_id_property} to {value} "
                f"through {spec.virtual_href_property} property"
            )
            self.set_hidden(spec.hidden_api_id_property, value)

        async def load_related(self, store) -> None:
            pending = self.get_hidden(spec.hidden_api_id_property)
            if self.get_hidden(spec.hidden_document_property) is not None or not pending:
                return

            trace(
                f"Loading related {spec.ref} {pending} for "
                f"{type(self).__name__} {getattr(self, 'api_id', None) or '[new]'}"
            )
            related = await store.find_one(registry.get(spec.ref), {"api_id": pending})
            self.set_hidden(spec.hidden_document_property, related)
            setattr(self, spec.property_name, related.id if related is not None else None)

        async def validate_related(document, store, context: ValidationContext) -> None:
            key = getattr(document, spec.property_name)
            pending = document.get_hidden(spec.hidden_api_id_property)
            if not key and not pending:
                if spec.required:
                    context.invalidate(
                        spec.virtual_href_property,
                        f"Path `{spec.virtual_href_property}` or `{spec.virtual_id_property}` is required",
                        "required",
                    )
                return

            related = document.get_hidden(spec.hidden_document_property)
            if key and (related is None or related.id != key):
                related = await store.find_by_id(registry.get(spec.model_name), key)

            if not key or related is None:
                context.invalidate(
                    spec.virtual_href_property,
                    f"Path `{spec.virtual_href_property}` or `{spec.virtual_id_property}` "
                    f"does not correspond to a known {human_model_name()}",
                    "invalid reference",
                )

        descriptor.add_field(spec.property_name, Optional[str], None)
        descriptor.add_property(spec.virtual_id_property, get_related_id, set_related_id)
        descriptor.add_property(spec.virtual_href_property, get_related_href, set_related_href)
        descriptor.add_method(spec.load_related_method, load_related)
        descriptor.add_hook(Stage.LOAD_RELATIONS, load_related)
        descriptor.add_validator(validate_related)
        descriptor.add_relation(spec)

    return plugin


async def populate_related(document, store, spec: RelationSpec) -> None:
    """Loads the cached target of a relation whose stored key came back from the store."""
    key = getattr(document, spec.property_name)
    if not key or document.get_hidden(spec.hidden_document_property) is not None:
        return

    target_type = document.descriptor().registry.get(spec.ref)
    related = await store.find_by_id(target_type, key)
    document.set_hidden(spec.hidden_document_property, related)
