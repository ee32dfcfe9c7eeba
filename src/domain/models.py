import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, ClassVar, Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, PrivateAttr, create_model

from src.domain.exceptions import ConfigurationError, FieldFailure

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    """Ordered lifecycle stages a save runs through before persisting."""
    ASSIGN_API_ID = "assign_api_id"
    LOAD_RELATIONS = "load_relations"
    PRE_SAVE = "pre_save"


class ValidationContext:
    """Collects per-path failures while a document's validators run."""

    def __init__(self) -> None:
        self.failures: Dict[str, FieldFailure] = {}

    def invalidate(self, path: str, message: str, reason: str) -> None:
        self.failures[path] = FieldFailure(path=path, reason=reason, message=message)


@dataclass
class DocumentDescriptor:
    """
    Everything the plugins of a document type contribute: stored fields,
    computed properties, methods, lifecycle hooks and validators.
    """
    name: str
    registry: "DocumentRegistry"
    collection: str
    fields: Dict[str, Tuple[Any, Any]] = field(default_factory=dict)
    properties: Dict[str, property] = field(default_factory=dict)
    methods: Dict[str, Any] = field(default_factory=dict)
    hooks: Dict[Stage, List[Callable]] = field(default_factory=dict)
    validators: List[Callable] = field(default_factory=list)
    relations: Dict[str, Any] = field(default_factory=dict)

    def add_field(self, name: str, annotation: Any, default: Any = None) -> None:
        self._check_free(name)
        self.fields[name] = (annotation, default)

    def add_property(self, name: str, fget: Callable, fset: Optional[Callable] = None) -> None:
        self._check_free(name)
        self.properties[name] = property(fget, fset)

    def add_method(self, name: str, method: Any) -> None:
        self._check_free(name)
        self.methods[name] = method

    def add_hook(self, stage: Stage, hook: Callable) -> None:
        self.hooks.setdefault(stage, []).append(hook)

    def add_validator(self, validator: Callable) -> None:
        self.validators.append(validator)

    def add_relation(self, spec) -> None:
        self.relations[spec.property_name] = spec

    def hooks_for(self, stage: Stage) -> List[Callable]:
        return list(self.hooks.get(stage, []))

    def _check_free(self, name: str) -> None:
        if name in self.fields or name in self.properties or name in self.methods:
            raise ConfigurationError(f'Document type {self.name} already defines "{name}"')


class Document(BaseModel):
    """
    Base class of every persisted document type.

    Concrete types are built with define_document(); plugin state that must
    never reach the store lives in the private _hidden mapping.
    """
    api_resource: ClassVar[Optional[str]] = None
    editable_properties: ClassVar[Sequence[str]] = ()
    document_descriptor: ClassVar[Optional[DocumentDescriptor]] = None

    id: Optional[str] = None

    _hidden: Dict[str, Any] = PrivateAttr(default_factory=dict)
    _is_new: bool = PrivateAttr(default=True)
    _persisted_api_id: Optional[str] = PrivateAttr(default=None)

    @property
    def is_new(self) -> bool:
        return self._is_new

    @property
    def persisted_api_id(self) -> Optional[str]:
        return self._persisted_api_id

    def get_hidden(self, key: str, default: Any = None) -> Any:
        return self._hidden.get(key, default)

    def set_hidden(self, key: str, value: Any) -> None:
        self._hidden[key] = value

    def mark_persisted(self) -> None:
        """Called by store clients once the document matches what is stored."""
        self._is_new = False
        self._persisted_api_id = getattr(self, "api_id", None)

    @classmethod
    def descriptor(cls) -> DocumentDescriptor:
        if cls.document_descriptor is None:
            raise ConfigurationError(f"{cls.__name__} was not built with define_document()")
        return cls.document_descriptor

    @classmethod
    def collection_name(cls) -> str:
        return cls.descriptor().collection

    @classmethod
    def from_store(cls, body: Dict[str, Any]) -> "Document":
        document = cls.model_validate(body)
        document.mark_persisted()
        return document


class DocumentRegistry:
    """Maps document type names to classes so relations can refer to targets by name."""

    def __init__(self) -> None:
        self._types: Dict[str, type] = {}

    def register(self, document_type: type) -> None:
        name = document_type.__name__
        if name in self._types:
            raise ConfigurationError(f'Document type "{name}" is already defined')
        self._types[name] = document_type

    def get(self, name: str) -> type:
        try:
            return self._types[name]
        except KeyError:
            raise ConfigurationError(f'Document type "{name}" has not been defined') from None

    def __contains__(self, name: str) -> bool:
        return name in self._types


default_registry = DocumentRegistry()


def define_document(
    name: str,
    *plugins: Callable[[DocumentDescriptor], None],
    api_resource: Optional[str] = None,
    editable_properties: Sequence[str] = (),
    fields: Optional[Dict[str, Tuple[Any, Any]]] = None,
    collection: Optional[str] = None,
    registry: Optional[DocumentRegistry] = None,
    base: type = Document,
) -> type:
    """
    Builds a document type by applying plugins, in order, to a fresh descriptor.

    Args:
        name: Class name, also the name relations use to refer to this type.
        plugins: Callables that add fields, properties, methods and hooks.
        api_resource: Base resource path used to build hrefs.
        editable_properties: Names that may be assigned from untrusted payloads.
        fields: Plain stored fields, as (annotation, default) pairs.
        collection: Storage collection name; defaults to the type name.
        registry: Registry to register the type in; defaults to default_registry.
        base: Document base class to extend.

    Returns:
        type: The new pydantic model class.
    """
    registry = registry if registry is not None else default_registry
    descriptor = DocumentDescriptor(name=name, registry=registry, collection=collection or name)

    for field_name, definition in (fields or {}).items():
        descriptor.add_field(field_name, *definition)
    for plugin in plugins:
        plugin(descriptor)

    document_type = create_model(name, __base__=base, **descriptor.fields)
    for attribute, value in {**descriptor.properties, **descriptor.methods}.items():
        setattr(document_type, attribute, value)

    document_type.api_resource = api_resource
    document_type.editable_properties = editable_properties
    document_type.document_descriptor = descriptor

    registry.register(document_type)
    logger.debug(f"Defined document type {name} with {len(plugins)} plugins.")
    return document_type
