"""
Schema loader for the custom fields app.
Loads the module schema and the field schema from YAML, JSON or XML documents
and turns them into immutable SchemaNode trees.

Markup documents do not distinguish "one child" from "a list of one child":
a single <page> becomes a mapping while two of them become a list. That
ambiguity is settled here, once, so everything downstream iterates plain
ordered tuples.
"""

import json
import logging
import xml.etree.ElementTree as ET
from enum import Enum
from pathlib import Path
from typing import Dict, Any, Optional, List, Tuple, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

SchemaSource = Union[str, Path, Dict[str, Any]]

SUPPORTED_SUFFIXES = {'.yaml', '.yml', '.json', '.xml'}


class NodeKind(str, Enum):
    """Node type tags of the schema tree."""
    FRAGMENT = "fragment"
    PAGE = "page"
    SECTION = "section"
    WIDGET = "widget"
    FIELD = "field"


class SchemaNode(BaseModel):
    """
    One node of the schema tree.

    Attributes:
        kind: Node type tag
        name: Node name (field name, page name, section title, widget tag)
        scope: Scope selector (record or category type name); None applies to all
        attributes: Remaining schema-authored attributes
        children: Ordered child nodes
    """
    model_config = ConfigDict(frozen=True)

    kind: NodeKind
    name: Optional[str] = None
    scope: Optional[str] = None
    attributes: Dict[str, Any] = Field(default_factory=dict)
    children: Tuple['SchemaNode', ...] = ()

    def attr(self, key: str, default: Any = None) -> Any:
        """Get a schema attribute, treating empty values as absent."""
        value = self.attributes.get(key)
        if value is None or value == '' or value == {}:
            return default
        return value

    def children_of(self, kind: NodeKind) -> Tuple['SchemaNode', ...]:
        return tuple(child for child in self.children if child.kind == kind)

    def iter_fields(self) -> List['SchemaNode']:
        """Return all field nodes below this node in document order."""
        if self.kind == NodeKind.FIELD:
            return [self]
        fields: List[SchemaNode] = []
        for child in self.children:
            fields.extend(child.iter_fields())
        return fields


class ModuleSchema(BaseModel):
    """Module identity and storage settings from the module schema."""
    model_config = ConfigDict(frozen=True)

    name: str
    menu_name: str
    dir: str
    mode: str = "development"
    option_group: str
    option_name: str
    page_param: str = "page_index"
    update_param: str = "update"


class FieldSchema(BaseModel):
    """The field schema split by storage scope."""
    model_config = ConfigDict(frozen=True)

    options: Optional[SchemaNode] = None
    record_fragments: Tuple[SchemaNode, ...] = ()
    category_fragments: Tuple[SchemaNode, ...] = ()
    settings_name: str = "Options"
    menu_icon: Optional[str] = None
    google_maps_api_key: Optional[str] = None


class SchemaBundle(BaseModel):
    """Module schema plus field schema, built once at startup."""
    model_config = ConfigDict(frozen=True)

    module: ModuleSchema
    fields: FieldSchema


def as_sequence(value: Any) -> List[Any]:
    """
    Normalize a "single node or list of nodes" value into a list.

    Args:
        value: None, a single node (mapping or scalar) or a list of nodes

    Returns:
        Ordered list of nodes (empty for None)
    """
    if value is None or value == '' or value == {}:
        return []
    if isinstance(value, (list, tuple)):
        return [item for item in value if item is not None]
    return [value]


def children(container: Any, tag: str) -> List[Any]:
    """
    Get the children with the given tag from a container node.

    Accepts both the markup shape ({'page': [...]}) and a bare list, which
    is the natural way to write the same thing in YAML.
    """
    if isinstance(container, dict):
        if tag in container:
            return as_sequence(container[tag])
        return []
    return as_sequence(container)


def xml_to_dict(element: ET.Element) -> Any:
    """
    Convert an XML element into nested dictionaries.

    Repeated child tags become lists, single child tags become mappings,
    attributes are merged in as keys and text-only elements become strings.

    Args:
        element: Parsed XML element

    Returns:
        String, None (for empty elements) or a dictionary
    """
    result: Dict[str, Any] = dict(element.attrib)

    for child in element:
        value = xml_to_dict(child)
        if child.tag in result:
            existing = result[child.tag]
            if isinstance(existing, list):
                existing.append(value)
            else:
                result[child.tag] = [existing, value]
        else:
            result[child.tag] = value

    text = (element.text or '').strip()
    if not result:
        return text or None
    if text:
        result.setdefault('text', text)
    return result


def parse_document(source: SchemaSource) -> Dict[str, Any]:
    """
    Parse a schema document into a nested dictionary.

    Args:
        source: Path to a .yaml/.yml/.json/.xml file, or an already parsed mapping

    Returns:
        Parsed document

    Raises:
        ConfigError: If the document is absent, unreadable or not a mapping
    """
    if isinstance(source, dict):
        return source

    if source is None:
        raise ConfigError(source, "no schema document provided")

    path = Path(source)
    if not path.exists():
        raise ConfigError(path, "file not found")

    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise ConfigError(path, f"unsupported schema file format '{suffix}'")

    try:
        if suffix == '.xml':
            root = ET.parse(path).getroot()
            document = xml_to_dict(root)
        else:
            with open(path, 'r', encoding='utf-8') as f:
                if suffix == '.json':
                    document = json.load(f)
                else:
                    document = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(path, f"YAML parsing error: {e}")
    except json.JSONDecodeError as e:
        raise ConfigError(path, f"JSON parsing error: {e}")
    except ET.ParseError as e:
        raise ConfigError(path, f"XML parsing error: {e}")
    except (IOError, OSError) as e:
        raise ConfigError(path, f"could not read file: {e}")

    if not isinstance(document, dict):
        raise ConfigError(path, "document root must be a mapping")

    logger.info(f"Successfully parsed schema document: {path}")
    return document


def build_field_node(raw: Any) -> SchemaNode:
    """Build a field node from a raw metafield mapping."""
    if not isinstance(raw, dict):
        raise ConfigError(raw, "metafield entries must be mappings")
    attributes = {k: v for k, v in raw.items() if k != 'name'}
    name = raw.get('name')
    return SchemaNode(
        kind=NodeKind.FIELD,
        name=str(name) if name not in (None, '', {}) else None,
        attributes=attributes
    )


def build_field_nodes(metafields: Any) -> Tuple[SchemaNode, ...]:
    """
    Build field nodes from a metafields container.

    The container may be {'metafield': one-or-many}, a bare list, or a
    single field mapping.
    """
    if isinstance(metafields, dict) and 'metafield' not in metafields and 'type' in metafields:
        entries = [metafields]
    else:
        entries = children(metafields, 'metafield')

    nodes: List[SchemaNode] = []
    for entry in entries:
        # nested groups of fields are flattened in document order
        if isinstance(entry, list):
            nodes.extend(build_field_node(item) for item in entry)
        else:
            nodes.append(build_field_node(entry))
    return tuple(nodes)


def build_widget_nodes(widgets: Any) -> Tuple[SchemaNode, ...]:
    nodes: List[SchemaNode] = []
    for entry in children(widgets, 'widget'):
        if isinstance(entry, dict):
            name = entry.get('name')
            attributes = {k: v for k, v in entry.items() if k != 'name'}
        else:
            name = entry
            attributes = {}
        if name in (None, ''):
            continue
        nodes.append(SchemaNode(kind=NodeKind.WIDGET, name=str(name), attributes=attributes))
    return tuple(nodes)


def build_section_node(raw: Dict[str, Any]) -> SchemaNode:
    attributes = {k: v for k, v in raw.items() if k not in ('widgets', 'metafields')}
    kids = build_widget_nodes(raw.get('widgets')) + build_field_nodes(raw.get('metafields'))
    title = raw.get('title')
    return SchemaNode(
        kind=NodeKind.SECTION,
        name=str(title) if title not in (None, '', {}) else None,
        attributes=attributes,
        children=kids
    )


def build_page_node(raw: Dict[str, Any]) -> SchemaNode:
    if not isinstance(raw, dict):
        raise ConfigError(raw, "page entries must be mappings")
    attributes = {k: v for k, v in raw.items() if k not in ('name', 'sections')}
    sections = tuple(
        build_section_node(section)
        for section in children(raw.get('sections'), 'section')
        if isinstance(section, dict)
    )
    name = raw.get('name')
    return SchemaNode(
        kind=NodeKind.PAGE,
        name=str(name) if name not in (None, '', {}) else None,
        attributes=attributes,
        children=sections
    )


def build_scoped_fragments(container: Any, tag: str) -> Tuple[SchemaNode, ...]:
    """
    Build one fragment per record type or category type entry.

    Args:
        container: The postTypes / taxonomies container
        tag: Child tag ('postType' or 'taxonomy')

    Returns:
        Fragments in document order; a missing type name gives a fragment
        that applies to every type
    """
    fragments: List[SchemaNode] = []
    for entry in children(container, tag):
        if not isinstance(entry, dict):
            raise ConfigError(entry, f"{tag} entries must be mappings")
        selector = entry.get('name')
        group = entry.get('groupName')
        attributes = {k: v for k, v in entry.items() if k not in ('name', 'metafields')}
        fragments.append(SchemaNode(
            kind=NodeKind.FRAGMENT,
            name=str(group) if group not in (None, '', {}) else None,
            scope=str(selector) if selector not in (None, '', {}) else None,
            attributes=attributes,
            children=build_field_nodes(entry.get('metafields'))
        ))
    return tuple(fragments)


def load_module_schema(source: SchemaSource) -> ModuleSchema:
    """
    Load the module schema.

    Args:
        source: Path or parsed mapping; a top-level 'module' key is unwrapped

    Returns:
        ModuleSchema

    Raises:
        ConfigError: If the document is missing or lacks required settings
    """
    document = parse_document(source)
    module = document.get('module', document)
    if not isinstance(module, dict):
        raise ConfigError(source, "'module' must be a mapping")

    collection = module.get('collection') or {}
    params = module.get('params') or {}
    if not isinstance(collection, dict) or not isinstance(params, dict):
        raise ConfigError(source, "'collection' and 'params' must be mappings")

    missing = [
        key for key, value in (
            ('dir', module.get('dir')),
            ('collection.optionName', collection.get('optionName')),
            ('params.update', params.get('update'))
        ) if not value
    ]
    if missing:
        raise ConfigError(source, f"missing required module settings: {', '.join(missing)}")

    name = str(module.get('name') or module['dir'])
    return ModuleSchema(
        name=name,
        menu_name=str(module.get('menuName') or name),
        dir=str(module['dir']),
        mode=str(module.get('mode') or 'development'),
        option_group=str(collection.get('optionGroup') or collection['optionName']),
        option_name=str(collection['optionName']),
        page_param=str(params.get('page') or 'page_index'),
        update_param=str(params['update'])
    )


def load_field_schema(source: SchemaSource) -> FieldSchema:
    """
    Load the field schema.

    Args:
        source: Path or parsed mapping; a top-level 'fieldSchema' key is unwrapped

    Returns:
        FieldSchema with the global fragment and the scoped fragments

    Raises:
        ConfigError: If the document is missing or malformed
    """
    document = parse_document(source)
    schema = document.get('fieldSchema', document)
    if not isinstance(schema, dict):
        raise ConfigError(source, "'fieldSchema' must be a mapping")

    theme_options = schema.get('themeOptions') or {}
    if not isinstance(theme_options, dict):
        raise ConfigError(source, "'themeOptions' must be a mapping")
    settings = theme_options.get('settings') or {}
    settings_name = str(settings.get('name') or 'Options') if isinstance(settings, dict) else 'Options'

    options = None
    pages = children(theme_options.get('pages'), 'page')
    if pages:
        options = SchemaNode(
            kind=NodeKind.FRAGMENT,
            name=settings_name,
            scope=None,
            children=tuple(build_page_node(page) for page in pages)
        )

    # 'taxonomy' directly under the field schema is accepted as well
    taxonomies = schema.get('taxonomies', schema.get('taxonomy'))
    if isinstance(taxonomies, (dict, list)) and not (isinstance(taxonomies, dict) and 'taxonomy' in taxonomies):
        taxonomies = {'taxonomy': taxonomies}

    api_key = schema.get('googleMapsApiKey')
    field_schema = FieldSchema(
        options=options,
        record_fragments=build_scoped_fragments(schema.get('postTypes'), 'postType'),
        category_fragments=build_scoped_fragments(taxonomies, 'taxonomy'),
        settings_name=settings_name,
        menu_icon=settings.get('menuIcon') if isinstance(settings, dict) else None,
        google_maps_api_key=api_key if isinstance(api_key, str) and api_key else None
    )

    logger.info(
        f"Loaded field schema: {len(pages)} pages, "
        f"{len(field_schema.record_fragments)} record fragments, "
        f"{len(field_schema.category_fragments)} category fragments"
    )
    return field_schema


def load_schema_bundle(module_source: SchemaSource, fields_source: SchemaSource) -> SchemaBundle:
    """
    Load both schema documents.

    Raises:
        ConfigError: If either document is missing or malformed
    """
    return SchemaBundle(
        module=load_module_schema(module_source),
        fields=load_field_schema(fields_source)
    )
