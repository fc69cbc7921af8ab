"""
Scope resolution for the custom fields app.

A schema may describe one fragment or many for the same storage scope (one
per record type, one per category type). The resolver picks the single
fragment that applies to the current request context.
"""

import logging
from enum import Enum
from typing import Any, List, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict

from .exceptions import SchemaError, ScopeError
from .schema_loader import NodeKind, SchemaNode, as_sequence, build_scoped_fragments

logger = logging.getLogger(__name__)

# Field types that carry no stored value and need no name
NAMELESS_FIELD_TYPES = {'plain_text'}


class ScopeKind(str, Enum):
    """Storage scope discriminant."""
    GLOBAL = "global"
    RECORD = "record"
    CATEGORY = "category"


class ScopeContext(BaseModel):
    """
    Runtime identity a schema fragment is matched against.

    Attributes:
        kind: Storage scope
        type_name: Record type or category type name (None for global)
        object_id: Record id or category id (None for global)
    """
    model_config = ConfigDict(frozen=True)

    kind: ScopeKind = ScopeKind.GLOBAL
    type_name: Optional[str] = None
    object_id: Optional[Union[int, str]] = None

    @classmethod
    def global_(cls) -> 'ScopeContext':
        return cls(kind=ScopeKind.GLOBAL)

    @classmethod
    def record(cls, type_name: str, record_id: Union[int, str, None] = None) -> 'ScopeContext':
        return cls(kind=ScopeKind.RECORD, type_name=type_name, object_id=record_id)

    @classmethod
    def category(cls, type_name: str, category_id: Union[int, str, None] = None) -> 'ScopeContext':
        return cls(kind=ScopeKind.CATEGORY, type_name=type_name, object_id=category_id)

    @property
    def discriminant(self) -> Optional[str]:
        """The value compared against fragment scope selectors."""
        if self.kind == ScopeKind.GLOBAL:
            return None
        return self.type_name

    def __str__(self) -> str:
        if self.kind == ScopeKind.GLOBAL:
            return "global"
        return f"{self.kind.value}:{self.type_name}#{self.object_id}"


FragmentInput = Union[SchemaNode, Sequence[Any], dict, None]


def normalize_candidates(fragment: FragmentInput) -> List[SchemaNode]:
    """
    Normalize a fragment argument into an ordered list of candidate nodes.

    Raw mappings (one entry or many) are accepted as well and built into
    fragment nodes on the way.
    """
    candidates: List[SchemaNode] = []
    for item in as_sequence(fragment):
        if isinstance(item, SchemaNode):
            candidates.append(item)
        elif isinstance(item, dict):
            candidates.extend(build_scoped_fragments([item], 'fragment'))
        else:
            raise SchemaError(None, f"unexpected fragment entry of type {type(item).__name__}")
    return candidates


def validate_fragment(fragment: SchemaNode) -> SchemaNode:
    """
    Check that every field of the fragment can be rendered and stored.

    Raises:
        SchemaError: If a field is missing its name or its type
    """
    for field in fragment.iter_fields():
        field_type = field.attributes.get('type')
        if not field_type:
            raise SchemaError(fragment.name or fragment.scope, f"field '{field.name}' has no type")
        if field.name is None and field_type not in NAMELESS_FIELD_TYPES:
            raise SchemaError(fragment.name or fragment.scope, f"{field_type} field without a name")
    return fragment


def resolve(fragment: FragmentInput, context: ScopeContext) -> Optional[SchemaNode]:
    """
    Return the single fragment that applies to the given context.

    An exact selector match wins; a fragment without a selector is the
    fallback used only when nothing matches exactly. None means "render
    nothing for this context" and is not an error.

    Args:
        fragment: One fragment, a sequence of fragments, or raw mappings
        context: Current scope context

    Returns:
        The applicable fragment or None

    Raises:
        ScopeError: If two candidates match the same selector
        SchemaError: If the selected fragment is malformed
    """
    candidates = normalize_candidates(fragment)
    discriminant = context.discriminant

    exact = [c for c in candidates if c.scope is not None and c.scope == discriminant]
    fallbacks = [c for c in candidates if c.scope is None]

    if len(exact) > 1:
        raise ScopeError(discriminant, len(exact))

    if exact:
        selected = exact[0]
    elif len(fallbacks) > 1:
        raise ScopeError(None, len(fallbacks))
    elif fallbacks:
        selected = fallbacks[0]
    else:
        logger.debug(f"No fragment applies to {context}")
        return None

    if selected.kind != NodeKind.FRAGMENT:
        raise SchemaError(selected.name, f"expected a fragment node, got '{selected.kind.value}'")

    logger.debug(f"Resolved fragment '{selected.name}' for {context}")
    return validate_fragment(selected)
