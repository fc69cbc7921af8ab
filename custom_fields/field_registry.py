"""
Field type registry for the custom fields app.

Every field type tag maps to one FieldType bundle that knows how to encode a
submitted value for storage, decode a stored value for display, which
attribute defaults apply and how to turn a FieldDescriptor into a rendered
control. New types are added with FieldRegistry.register(); nothing else
needs to change.
"""

import html
import json
import logging
import re
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from .catalog import Catalog, CatalogItem
from .exceptions import DecodeError, FieldTypeError
from .render_tree import Option, RenderedField
from .schema_loader import SchemaNode, as_sequence

logger = logging.getLogger(__name__)

DEFAULT_LAT = 44
DEFAULT_LNG = 23
DEFAULT_ZOOM = 4

# Placeholder option value of single-select controls
NO_SELECTION = "-1"

EMAIL_PATTERN = r"[a-z0-9!#$%&'*+/=?^_`{|}~.-]+@[a-z0-9-]+(\.[a-z0-9-]+)*"

_JQUERY_DATE_TOKENS = {
    'yy': '%Y', 'y': '%y',
    'dd': '%d', 'd': '%d',
    'mm': '%m', 'm': '%m',
    'DD': '%A', 'D': '%a',
    'MM': '%B', 'M': '%b',
}


def add_slashes(value: str) -> str:
    """Quote backslashes, quotes and NUL with a backslash."""
    out = []
    for char in value:
        if char in ('\\', "'", '"'):
            out.append('\\' + char)
        elif char == '\0':
            out.append('\\0')
        else:
            out.append(char)
    return ''.join(out)


def strip_slashes(value: str) -> str:
    """Inverse of add_slashes; a trailing lone backslash is dropped."""
    out = []
    chars = iter(value)
    for char in chars:
        if char != '\\':
            out.append(char)
            continue
        following = next(chars, None)
        if following is None:
            break
        out.append('\0' if following == '0' else following)
    return ''.join(out)


def jquery_to_strftime(fmt: str) -> str:
    """Translate a jQuery UI datepicker format into a strftime format."""
    return re.sub(r'yy|y|dd|d|mm|m|DD|D|MM|M', lambda m: _JQUERY_DATE_TOKENS[m.group(0)], fmt)


def is_blank(value: Any) -> bool:
    """True for values that count as 'nothing stored'."""
    return value is None or value == '' or value == [] or value == {}


class Attachment(BaseModel):
    """A media library attachment stored as {id, url}."""
    model_config = ConfigDict(frozen=True)

    id: Optional[Union[int, str]] = None
    url: Optional[str] = None


class GeoPoint(BaseModel):
    """Map position; missing components fall back to the defaults."""
    model_config = ConfigDict(frozen=True)

    lat: float = DEFAULT_LAT
    lng: float = DEFAULT_LNG
    zoom: int = DEFAULT_ZOOM


class RenderSpec(BaseModel):
    """Type level rendering information returned by describe()."""
    model_config = ConfigDict(frozen=True)

    tag: str
    control: str
    defaults: Dict[str, Any] = Field(default_factory=dict)
    stores_value: bool = True
    multiple: bool = False


class FieldDescriptor(BaseModel):
    """
    Fully resolved, render-ready description of one input control.

    current_value is decoded from storage right before rendering and is
    never cached across requests.
    """
    model_config = ConfigDict(frozen=True)

    name: Optional[str]
    type: str
    label: Optional[str] = None
    description: Optional[str] = None
    size: str = "auto"
    required: bool = False
    selector: str = ""
    min: Optional[float] = None
    max: Optional[float] = None
    step: Optional[float] = None
    rows: Optional[int] = None
    cols: Optional[int] = None
    format: Optional[str] = None
    height: Optional[str] = None
    data_type: Optional[str] = None
    data: Any = None
    block: Any = None
    options: Tuple[CatalogItem, ...] = ()
    current_value: Any = None
    input_name: Optional[str] = None
    storage_key: Optional[str] = None


def _number(value: Any) -> Optional[Union[int, float]]:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        if re.fullmatch(r'[-+]?\d+', text):
            return int(text)
        return float(text)
    except ValueError:
        return None


def _flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('1', 'true', 'on', 'yes')


def _text(value: Any) -> Optional[str]:
    if is_blank(value):
        return None
    return str(value)


class FieldType:
    """
    Behavior bundle for one field type tag.

    Subclasses override encode/decode for their storage shape and
    type_attributes for the control specific attributes.
    """

    tag = ""
    control = "text"
    defaults: Dict[str, Any] = {}
    stores_value = True
    multiple = False

    def encode(self, raw: Any) -> Any:
        """Convert a submitted value into its stored form."""
        return raw

    def decode(self, stored: Any) -> Any:
        """Convert a stored value into its display form."""
        return stored

    def describe(self) -> RenderSpec:
        base = {'size': 'auto', 'required': False, 'selector': ''}
        base.update(self.defaults)
        return RenderSpec(
            tag=self.tag,
            control=self.control,
            defaults=base,
            stores_value=self.stores_value,
            multiple=self.multiple
        )

    def resolve_options(self, node: SchemaNode, catalog: Optional[Catalog]) -> List[CatalogItem]:
        return []

    def type_attributes(self, descriptor: FieldDescriptor) -> Dict[str, Any]:
        return {}

    def render_options(self, descriptor: FieldDescriptor) -> Tuple[Option, ...]:
        return ()

    def render(self, descriptor: FieldDescriptor) -> RenderedField:
        """Turn a descriptor into a rendered control."""
        return RenderedField(
            name=descriptor.name,
            type=self.tag,
            control=self.control,
            input_name=descriptor.input_name,
            label=descriptor.label,
            description=descriptor.description,
            size=descriptor.size,
            required=descriptor.required,
            selector=descriptor.selector,
            value=descriptor.current_value,
            options=self.render_options(descriptor),
            attributes=self.type_attributes(descriptor),
            hidden=self.control in ('hidden', 'textarea_hidden')
        )


class TextField(FieldType):
    """Free text. Stored HTML-escaped and slash-quoted, displayed plain."""

    tag = "text"
    control = "text"

    def encode(self, raw: Any) -> Any:
        if raw is None:
            return ""
        return add_slashes(html.escape(str(raw), quote=True))

    def decode(self, stored: Any) -> Any:
        if stored is None:
            return ""
        if isinstance(stored, (list, tuple)):
            return [self.decode(item) for item in stored]
        return html.unescape(strip_slashes(str(stored)))


class EmailField(TextField):
    tag = "email"
    control = "email"
    defaults = {'pattern': EMAIL_PATTERN}

    def type_attributes(self, descriptor: FieldDescriptor) -> Dict[str, Any]:
        return {'pattern': EMAIL_PATTERN}


class HiddenField(TextField):
    tag = "hidden"
    control = "hidden"


class DateField(TextField):
    tag = "date"
    control = "date"
    defaults = {'format': 'dd/mm/yy'}

    def encode(self, raw: Any) -> Any:
        if isinstance(raw, (date, datetime)):
            raw = raw.strftime(jquery_to_strftime(self.defaults['format']))
        return super().encode(raw)

    def encode_with_format(self, raw: Any, fmt: Optional[str]) -> Any:
        if isinstance(raw, (date, datetime)):
            raw = raw.strftime(jquery_to_strftime(fmt or self.defaults['format']))
        return super().encode(raw)

    def type_attributes(self, descriptor: FieldDescriptor) -> Dict[str, Any]:
        return {'format': descriptor.format or self.defaults['format']}


class TextareaField(TextField):
    tag = "textarea"
    control = "textarea"
    defaults = {'rows': 4, 'cols': 6}

    def type_attributes(self, descriptor: FieldDescriptor) -> Dict[str, Any]:
        return {
            'rows': descriptor.rows or self.defaults['rows'],
            'cols': descriptor.cols or self.defaults['cols']
        }


class HiddenTextareaField(TextField):
    tag = "textarea_hidden"
    control = "textarea_hidden"


class EditorField(TextField):
    tag = "editor"
    control = "editor"

    def type_attributes(self, descriptor: FieldDescriptor) -> Dict[str, Any]:
        return {'height': descriptor.height} if descriptor.height else {}


class NumberField(FieldType):
    tag = "number"
    control = "number"
    defaults = {'min': 0, 'max': 1000000, 'step': 1}

    def encode(self, raw: Any) -> Any:
        value = _number(raw)
        if value is None and not is_blank(raw):
            logger.warning(f"Discarding non-numeric value for number field: {raw!r}")
        return value

    def decode(self, stored: Any) -> Any:
        return _number(strip_slashes(stored) if isinstance(stored, str) else stored)

    def type_attributes(self, descriptor: FieldDescriptor) -> Dict[str, Any]:
        return {
            'min': descriptor.min if descriptor.min is not None else self.defaults['min'],
            'max': descriptor.max if descriptor.max is not None else self.defaults['max'],
            'step': descriptor.step if descriptor.step is not None else self.defaults['step']
        }


class CheckboxField(FieldType):
    """Boolean stored as the integer 1 or 0."""

    tag = "checkbox"
    control = "checkbox"

    def encode(self, raw: Any) -> Any:
        return 1 if raw is not None and _flag(raw) else 0

    def decode(self, stored: Any) -> Any:
        return _number(stored) == 1


class AttachmentField(FieldType):
    """Single attachment stored as a JSON object {id, url}."""

    tag = "file"
    control = "file"

    def encode(self, raw: Any) -> Any:
        if is_blank(raw):
            return ""
        if isinstance(raw, Attachment):
            payload = raw.model_dump()
        elif isinstance(raw, dict):
            payload = {'id': raw.get('id'), 'url': raw.get('url')}
        else:
            text = strip_slashes(str(raw)).strip()
            if not text:
                return ""
            try:
                parsed = json.loads(text)
            except json.JSONDecodeError:
                logger.warning(f"Storing unparsable {self.tag} value as-is")
                return text
            if not isinstance(parsed, dict):
                return text
            payload = {'id': parsed.get('id'), 'url': parsed.get('url')}
        return json.dumps(payload)

    def decode(self, stored: Any) -> Any:
        try:
            return self._decode(stored)
        except DecodeError as e:
            logger.warning(f"{e.message}; treating as no attachment")
            return None

    def _decode(self, stored: Any) -> Optional[Attachment]:
        if is_blank(stored):
            return None
        data = stored
        if isinstance(stored, str):
            try:
                data = json.loads(strip_slashes(stored))
            except json.JSONDecodeError as e:
                raise DecodeError(self.tag, stored, str(e))
        if not isinstance(data, dict) or not data.get('url'):
            raise DecodeError(self.tag, stored, "expected an object with a url")
        return Attachment(id=data.get('id'), url=str(data['url']))


class ImageField(AttachmentField):
    tag = "image"
    control = "image"


class GalleryField(FieldType):
    """List of attachments stored as a JSON array."""

    tag = "gallery"
    control = "gallery"
    multiple = True

    def encode(self, raw: Any) -> Any:
        if is_blank(raw):
            return ""
        items = raw
        if isinstance(raw, str):
            text = strip_slashes(raw).strip()
            if not text:
                return ""
            try:
                items = json.loads(text)
            except json.JSONDecodeError:
                logger.warning("Storing unparsable gallery value as-is")
                return text
        payload = []
        for item in as_sequence(items):
            if isinstance(item, Attachment):
                payload.append(item.model_dump())
            elif isinstance(item, dict):
                payload.append({'id': item.get('id'), 'url': item.get('url')})
        return json.dumps(payload) if payload else ""

    def decode(self, stored: Any) -> Any:
        if is_blank(stored):
            return []
        data = stored
        if isinstance(stored, str):
            try:
                data = json.loads(strip_slashes(stored))
            except json.JSONDecodeError as e:
                logger.warning(f"{DecodeError(self.tag, stored, str(e)).message}; treating as empty gallery")
                return []
        if not isinstance(data, list):
            logger.warning("Stored gallery value is not a list; treating as empty gallery")
            return []
        return [
            Attachment(id=item.get('id'), url=str(item['url']))
            for item in data
            if isinstance(item, dict) and item.get('url')
        ]


class MapField(FieldType):
    """Map position stored as JSON {lat, lng, zoom}."""

    tag = "map"
    control = "map"
    defaults = {'height': '400px'}

    def encode(self, raw: Any) -> Any:
        if is_blank(raw):
            return ""
        if isinstance(raw, GeoPoint):
            return json.dumps(raw.model_dump())
        data = raw
        if isinstance(raw, str):
            try:
                data = json.loads(strip_slashes(raw))
            except json.JSONDecodeError:
                logger.warning("Storing unparsable map value as-is")
                return raw
        if not isinstance(data, dict):
            return ""
        payload = {key: data[key] for key in ('lat', 'lng', 'zoom') if not is_blank(data.get(key))}
        return json.dumps(payload) if payload else ""

    def decode(self, stored: Any) -> Any:
        data: Any = {}
        if isinstance(stored, dict):
            data = stored
        elif isinstance(stored, str) and stored.strip():
            try:
                data = json.loads(strip_slashes(stored))
            except json.JSONDecodeError as e:
                logger.warning(f"{DecodeError(self.tag, stored, str(e)).message}; using map defaults")
                data = {}
        if not isinstance(data, dict):
            data = {}

        lat = _number(data.get('lat'))
        lng = _number(data.get('lng'))
        zoom = _number(data.get('zoom'))
        return GeoPoint(
            lat=lat if lat is not None else DEFAULT_LAT,
            lng=lng if lng is not None else DEFAULT_LNG,
            zoom=int(zoom) if zoom is not None else DEFAULT_ZOOM
        )

    def type_attributes(self, descriptor: FieldDescriptor) -> Dict[str, Any]:
        return {'height': descriptor.height or self.defaults['height']}


class ChoiceField(FieldType):
    """
    Base for select controls. Options come from an inline list, a record
    type's catalog or a category type's catalog, chosen by dataType.
    """

    control = "select"

    def resolve_options(self, node: SchemaNode, catalog: Optional[Catalog]) -> List[CatalogItem]:
        data_type = node.attr('dataType')
        data_type = data_type if isinstance(data_type, str) else 'custom'
        data = node.attr('data')

        if data_type == 'post':
            record_type = str(data) if data else 'post'
            if catalog is not None and catalog.record_type_exists(record_type):
                return catalog.records(record_type)
            logger.debug(f"Record type '{record_type}' not available for field '{node.name}'")
            return []

        if data_type == 'taxonomy':
            category_type = str(data) if data else ''
            if catalog is not None and category_type and catalog.category_type_exists(category_type):
                return catalog.categories(category_type)
            logger.debug(f"Category type '{category_type}' not available for field '{node.name}'")
            return []

        if data_type == 'custom':
            if data is None:
                return []
            if isinstance(data, (list, tuple)):
                values = [str(item) for item in data]
            else:
                # always split on comma, a single value simply yields one entry
                values = str(data).split(',')
            return [CatalogItem(id=value, title=value) for value in values]

        logger.warning(f"Unknown dataType '{data_type}' for field '{node.name}'")
        return []

    def selected_ids(self, descriptor: FieldDescriptor) -> List[str]:
        return []

    def render_options(self, descriptor: FieldDescriptor) -> Tuple[Option, ...]:
        selected = set(self.selected_ids(descriptor))
        return tuple(
            Option(id=str(item.id), label=item.title, selected=str(item.id) in selected)
            for item in descriptor.options
        )


class DropdownSingleField(ChoiceField):
    tag = "dropdown_single"
    control = "select"

    def encode(self, raw: Any) -> Any:
        if is_blank(raw) or str(raw) == NO_SELECTION:
            return ""
        return str(raw)

    def decode(self, stored: Any) -> Any:
        if is_blank(stored) or str(stored) == NO_SELECTION:
            return None
        return strip_slashes(str(stored))

    def selected_ids(self, descriptor: FieldDescriptor) -> List[str]:
        value = descriptor.current_value
        return [str(value)] if value is not None else []

    def type_attributes(self, descriptor: FieldDescriptor) -> Dict[str, Any]:
        return {'placeholder': NO_SELECTION}


class DropdownMultipleField(ChoiceField):
    tag = "dropdown_multiple"
    control = "multiselect"
    multiple = True

    def encode(self, raw: Any) -> Any:
        if is_blank(raw):
            return []
        if isinstance(raw, str):
            return [raw]
        return [str(item) for item in as_sequence(raw) if not is_blank(item)]

    def decode(self, stored: Any) -> Any:
        if is_blank(stored):
            return []
        if isinstance(stored, str):
            try:
                parsed = json.loads(stored)
            except json.JSONDecodeError:
                return [stored]
            stored = parsed
        return [str(item) for item in as_sequence(stored) if not is_blank(item)]

    def selected_ids(self, descriptor: FieldDescriptor) -> List[str]:
        available = {str(item.id) for item in descriptor.options}
        value = descriptor.current_value or []
        dropped = [item for item in value if item not in available]
        if dropped:
            logger.debug(f"Dropping unknown selections {dropped} for field '{descriptor.name}'")
        return [item for item in value if item in available]

    def type_attributes(self, descriptor: FieldDescriptor) -> Dict[str, Any]:
        return {'height': descriptor.height} if descriptor.height else {}


class PlainTextField(FieldType):
    """Display-only block of headings, paragraphs, ribbons and links."""

    tag = "plain_text"
    control = "plain_text"
    stores_value = False

    def encode(self, raw: Any) -> Any:
        return None

    def decode(self, stored: Any) -> Any:
        return None

    @staticmethod
    def normalize_block(block: Any) -> List[Dict[str, Any]]:
        entries: List[Any] = []
        for item in as_sequence(block):
            if isinstance(item, dict) and 'text' in item:
                entries.extend(as_sequence(item['text']))
            else:
                entries.append(item)

        normalized = []
        for entry in entries:
            if isinstance(entry, str):
                entry = {'p': entry}
            if not isinstance(entry, dict):
                continue
            normalized.append({
                'heading': entry.get('h'),
                'paragraphs': [str(p) for p in as_sequence(entry.get('p'))],
                'ribbons': [str(r) for r in as_sequence(entry.get('ribbon'))],
                'link': entry.get('link') if entry.get('linkText') else None,
                'link_text': entry.get('linkText') if entry.get('link') else None
            })
        return normalized

    def type_attributes(self, descriptor: FieldDescriptor) -> Dict[str, Any]:
        return {'blocks': self.normalize_block(descriptor.block)}


BUILTIN_FIELD_TYPES = (
    TextField, EmailField, HiddenField, NumberField, CheckboxField, DateField,
    AttachmentField, ImageField, TextareaField, HiddenTextareaField,
    DropdownSingleField, DropdownMultipleField, EditorField, MapField,
    GalleryField, PlainTextField,
)


class FieldRegistry:
    """Maps field type tags to their behavior bundles."""

    def __init__(self, field_types: Optional[List[FieldType]] = None):
        self._types: Dict[str, FieldType] = {}
        for field_type in field_types or []:
            self.register(field_type)

    @classmethod
    def default(cls) -> 'FieldRegistry':
        """Registry with all built-in field types."""
        return cls([field_type() for field_type in BUILTIN_FIELD_TYPES])

    def register(self, field_type: FieldType, replace: bool = False) -> FieldType:
        if not field_type.tag:
            raise ValueError("Field type must define a tag")
        if field_type.tag in self._types and not replace:
            raise ValueError(f"Field type '{field_type.tag}' is already registered")
        self._types[field_type.tag] = field_type
        logger.debug(f"Registered field type '{field_type.tag}'")
        return field_type

    def has(self, tag: Any) -> bool:
        return tag in self._types

    def tags(self) -> List[str]:
        return list(self._types)

    def get(self, tag: Any, field_name: Optional[str] = None) -> FieldType:
        """
        Get the bundle for a tag.

        Raises:
            FieldTypeError: If the tag is not registered
        """
        try:
            return self._types[tag]
        except (KeyError, TypeError):
            raise FieldTypeError(tag, field_name)

    def encode(self, tag: str, raw: Any) -> Any:
        return self.get(tag).encode(raw)

    def decode(self, tag: str, stored: Any) -> Any:
        return self.get(tag).decode(stored)

    def describe(self, tag: str) -> RenderSpec:
        return self.get(tag).describe()

    def encode_field(self, node: SchemaNode, raw: Any) -> Any:
        """Encode a submitted value using the field's own attributes (e.g. date format)."""
        field_type = self.get(node.attr('type'), node.name)
        if isinstance(field_type, DateField):
            return field_type.encode_with_format(raw, node.attr('format'))
        return field_type.encode(raw)

    def describe_field(
        self,
        node: SchemaNode,
        stored_value: Any = None,
        input_name: Optional[str] = None,
        storage_key: Optional[str] = None,
        catalog: Optional[Catalog] = None
    ) -> FieldDescriptor:
        """
        Build the render-ready descriptor for a field node.

        Raises:
            FieldTypeError: If the node's type is not registered
        """
        field_type = self.get(node.attr('type'), node.name)
        defaults = field_type.describe().defaults

        def numeric(key: str) -> Optional[float]:
            value = _number(node.attr(key))
            return value if value is not None else defaults.get(key)

        def positive_int(key: str) -> Optional[int]:
            value = _number(node.attr(key))
            return int(value) if value is not None and value > 0 else defaults.get(key)

        options = tuple(field_type.resolve_options(node, catalog))

        return FieldDescriptor(
            name=node.name,
            type=field_type.tag,
            label=_text(node.attr('label')),
            description=_text(node.attr('description')),
            size=str(node.attr('size', defaults['size'])),
            required=node.attr('required') is True or str(node.attr('required', '')).strip().lower() == 'true',
            selector=str(node.attr('selector', defaults['selector'])),
            min=numeric('min'),
            max=numeric('max'),
            step=numeric('step'),
            rows=positive_int('rows'),
            cols=positive_int('cols'),
            format=_text(node.attr('format')) or defaults.get('format'),
            height=_text(node.attr('height')) or defaults.get('height'),
            data_type=_text(node.attr('dataType')),
            data=node.attr('data'),
            block=node.attr('block'),
            options=options,
            current_value=field_type.decode(stored_value),
            input_name=input_name,
            storage_key=storage_key
        )

    def render(self, descriptor: FieldDescriptor) -> RenderedField:
        return self.get(descriptor.type, descriptor.name).render(descriptor)
