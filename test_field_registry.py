"""
Unit tests for the field type registry.
"""

import json
from datetime import date

import pytest

from custom_fields.catalog import CatalogItem, InMemoryCatalog
from custom_fields.exceptions import FieldTypeError
from custom_fields.field_registry import (
    Attachment, FieldRegistry, FieldType, GeoPoint, add_slashes, jquery_to_strftime, strip_slashes
)
from custom_fields.schema_loader import NodeKind, SchemaNode


def field(name='f', **attributes):
    return SchemaNode(kind=NodeKind.FIELD, name=name, attributes=attributes)


class TestSlashes:

    @pytest.mark.parametrize("value", ["plain", "it's", 'say "hi"', "back\\slash", "nul\0byte", ""])
    def test_strip_reverses_add(self, value):
        assert strip_slashes(add_slashes(value)) == value

    def test_add_slashes_quotes(self):
        assert add_slashes("it's") == "it\\'s"

    def test_trailing_backslash_is_dropped(self):
        assert strip_slashes("abc\\") == "abc"


class TestScalarRoundTrips:

    def setup_method(self):
        self.registry = FieldRegistry.default()

    @pytest.mark.parametrize("tag", ["text", "email", "hidden", "date", "textarea", "textarea_hidden", "editor"])
    @pytest.mark.parametrize("value", ["hello", "<b>bold</b> & 'quoted' \"text\"", "a\\b", "", "ünïcode ✓"])
    def test_free_text_round_trip(self, tag, value):
        assert self.registry.decode(tag, self.registry.encode(tag, value)) == value

    def test_text_is_escaped_for_storage(self):
        stored = self.registry.encode('text', "<script>'x'</script>")
        assert '<' not in stored
        assert "\\'" in stored or '&#x27;' in stored

    @pytest.mark.parametrize("value", [0, 5, 1000000, 2.5, -3])
    def test_number_round_trip(self, value):
        assert self.registry.decode('number', self.registry.encode('number', value)) == value

    def test_number_coerces_strings(self):
        assert self.registry.encode('number', "42") == 42
        assert self.registry.encode('number', "4.5") == 4.5
        assert self.registry.encode('number', "") is None
        assert self.registry.encode('number', "abc") is None

    @pytest.mark.parametrize("value", [True, False])
    def test_checkbox_round_trip(self, value):
        assert self.registry.decode('checkbox', self.registry.encode('checkbox', value)) is value

    def test_checkbox_stored_as_integer(self):
        assert self.registry.encode('checkbox', True) == 1
        assert self.registry.encode('checkbox', "on") == 1
        assert self.registry.encode('checkbox', None) == 0
        assert self.registry.decode('checkbox', "1") is True
        assert self.registry.decode('checkbox', None) is False

    def test_date_object_is_formatted(self):
        node = field('d', type='date', format='dd/mm/yy')
        assert self.registry.encode_field(node, date(2024, 3, 9)) == "09/03/2024"

    def test_jquery_date_format_translation(self):
        assert jquery_to_strftime('dd/mm/yy') == '%d/%m/%Y'
        assert jquery_to_strftime('yy-mm-dd') == '%Y-%m-%d'


class TestStructuredRoundTrips:

    def setup_method(self):
        self.registry = FieldRegistry.default()

    @pytest.mark.parametrize("tag", ["file", "image"])
    def test_attachment_round_trip(self, tag):
        value = Attachment(id=12, url="https://example.com/a.png")
        decoded = self.registry.decode(tag, self.registry.encode(tag, value))
        assert decoded.id == 12
        assert decoded.url == "https://example.com/a.png"

    def test_attachment_from_dict(self):
        stored = self.registry.encode('image', {'id': '3', 'url': 'u.jpg'})
        assert json.loads(stored) == {'id': '3', 'url': 'u.jpg'}

    @pytest.mark.parametrize("stored", [None, "", "not json", "[]", '{"id": 1}'])
    def test_bad_attachment_decodes_to_none(self, stored):
        assert self.registry.decode('file', stored) is None

    def test_gallery_round_trip(self):
        value = [Attachment(id=1, url="a.png"), Attachment(id=2, url="b.png")]
        decoded = self.registry.decode('gallery', self.registry.encode('gallery', value))
        assert [(a.id, a.url) for a in decoded] == [(1, "a.png"), (2, "b.png")]

    @pytest.mark.parametrize("stored", [None, "", "{broken", '{"id": 1}'])
    def test_bad_gallery_decodes_to_empty_list(self, stored):
        assert self.registry.decode('gallery', stored) == []

    def test_map_round_trip(self):
        value = GeoPoint(lat=51.5, lng=-0.12, zoom=11)
        decoded = self.registry.decode('map', self.registry.encode('map', value))
        assert (decoded.lat, decoded.lng, decoded.zoom) == (51.5, -0.12, 11)

    @pytest.mark.parametrize("stored", ["{}", {}, None, "", "garbage"])
    def test_map_defaults(self, stored):
        decoded = self.registry.decode('map', stored)
        assert (decoded.lat, decoded.lng, decoded.zoom) == (44, 23, 4)

    def test_map_partial_components_use_defaults(self):
        decoded = self.registry.decode('map', '{"lat": 10}')
        assert (decoded.lat, decoded.lng, decoded.zoom) == (10, 23, 4)

    def test_map_zero_is_a_real_value(self):
        decoded = self.registry.decode('map', '{"lat": 0, "lng": 0, "zoom": 0}')
        assert (decoded.lat, decoded.lng, decoded.zoom) == (0, 0, 0)

    def test_single_select_placeholder_clears(self):
        assert self.registry.encode('dropdown_single', "-1") == ""
        assert self.registry.decode('dropdown_single', "-1") is None
        assert self.registry.decode('dropdown_single', self.registry.encode('dropdown_single', "7")) == "7"

    def test_multi_select_round_trip(self):
        encoded = self.registry.encode('dropdown_multiple', [3, 9])
        assert encoded == ["3", "9"]
        assert self.registry.decode('dropdown_multiple', encoded) == ["3", "9"]

    def test_plain_text_is_never_stored(self):
        assert self.registry.encode('plain_text', "anything") is None
        assert self.registry.describe('plain_text').stores_value is False


class TestDescribe:

    def setup_method(self):
        self.registry = FieldRegistry.default()

    def test_number_defaults(self):
        descriptor = self.registry.describe_field(field('n', type='number'))
        assert (descriptor.min, descriptor.max, descriptor.step) == (0, 1000000, 1)

    def test_number_attributes_override_defaults(self):
        descriptor = self.registry.describe_field(field('n', type='number', min='5', max=10, step='0.5'))
        assert (descriptor.min, descriptor.max, descriptor.step) == (5, 10, 0.5)

    def test_textarea_defaults(self):
        descriptor = self.registry.describe_field(field('t', type='textarea'))
        assert (descriptor.rows, descriptor.cols) == (4, 6)

    def test_common_defaults(self):
        descriptor = self.registry.describe_field(field('t', type='text'))
        assert descriptor.size == 'auto'
        assert descriptor.required is False
        assert descriptor.selector == ''

    def test_required_only_when_true(self):
        assert self.registry.describe_field(field('t', type='text', required='true')).required is True
        assert self.registry.describe_field(field('t', type='text', required='no')).required is False

    def test_date_and_map_defaults(self):
        assert self.registry.describe_field(field('d', type='date')).format == 'dd/mm/yy'
        assert self.registry.describe_field(field('m', type='map')).height == '400px'

    def test_current_value_is_decoded(self):
        descriptor = self.registry.describe_field(
            field('t', type='text'), stored_value="it\\'s", input_name='opts[t]', storage_key='opts[t]'
        )
        assert descriptor.current_value == "it's"
        assert descriptor.input_name == 'opts[t]'

    def test_describe_type_spec(self):
        spec = self.registry.describe('number')
        assert spec.tag == 'number'
        assert spec.defaults['min'] == 0
        assert spec.defaults['size'] == 'auto'


class TestOptions:

    def setup_method(self):
        self.registry = FieldRegistry.default()
        self.catalog = InMemoryCatalog(
            records={'post': [{'id': 3, 'title': 'Three'}, {'id': 5, 'title': 'Five'}]},
            categories={'category': [{'id': 8, 'title': 'News'}]}
        )

    def test_custom_options_split_on_comma(self):
        descriptor = self.registry.describe_field(field('s', type='dropdown_single', data='a,b,c'))
        assert [o.id for o in descriptor.options] == ['a', 'b', 'c']

    def test_custom_single_value_yields_one_option(self):
        descriptor = self.registry.describe_field(field('s', type='dropdown_single', data='only'))
        assert [o.id for o in descriptor.options] == ['only']

    def test_custom_is_default_data_type(self):
        descriptor = self.registry.describe_field(
            field('s', type='dropdown_single', data='x,y'), catalog=self.catalog
        )
        assert len(descriptor.options) == 2

    def test_post_options_from_catalog(self):
        descriptor = self.registry.describe_field(
            field('p', type='dropdown_multiple', dataType='post', data='post'), catalog=self.catalog
        )
        assert {str(o.id) for o in descriptor.options} == {'3', '5'}

    def test_post_type_defaults_to_post(self):
        descriptor = self.registry.describe_field(
            field('p', type='dropdown_single', dataType='post'), catalog=self.catalog
        )
        assert len(descriptor.options) == 2

    def test_unknown_record_type_gives_no_options(self):
        descriptor = self.registry.describe_field(
            field('p', type='dropdown_single', dataType='post', data='product'), catalog=self.catalog
        )
        assert descriptor.options == ()

    def test_taxonomy_options(self):
        descriptor = self.registry.describe_field(
            field('c', type='dropdown_single', dataType='taxonomy', data='category'), catalog=self.catalog
        )
        assert descriptor.options == (CatalogItem(id=8, title='News'),)

    def test_multi_select_drops_missing_ids(self):
        catalog = InMemoryCatalog(records={'post': [{'id': 3, 'title': 'Three'}, {'id': 5, 'title': 'Five'}]})
        descriptor = self.registry.describe_field(
            field('p', type='dropdown_multiple', dataType='post'), stored_value=[3, 9], catalog=catalog
        )

        rendered = self.registry.render(descriptor)

        assert rendered.selected_ids == ['3']
        assert len(rendered.options) == 2

    def test_single_select_marks_selection(self):
        descriptor = self.registry.describe_field(
            field('s', type='dropdown_single', data='a,b'), stored_value='b'
        )
        rendered = self.registry.render(descriptor)
        assert rendered.selected_ids == ['b']
        assert rendered.control == 'select'


class TestRegistry:

    def test_unknown_type_raises_field_type_error(self):
        registry = FieldRegistry.default()
        with pytest.raises(FieldTypeError):
            registry.get('colorpicker')
        with pytest.raises(FieldTypeError):
            registry.describe_field(field('c', type='colorpicker'))

    def test_all_builtin_types_registered(self):
        assert set(FieldRegistry.default().tags()) == {
            'text', 'email', 'hidden', 'number', 'checkbox', 'date', 'file', 'image',
            'textarea', 'textarea_hidden', 'dropdown_single', 'dropdown_multiple',
            'editor', 'map', 'gallery', 'plain_text'
        }

    def test_register_custom_type(self):
        class UpperField(FieldType):
            tag = "upper"
            control = "text"

            def encode(self, raw):
                return str(raw).upper()

        registry = FieldRegistry.default()
        registry.register(UpperField())

        assert registry.encode('upper', 'abc') == 'ABC'
        assert registry.render(registry.describe_field(field('u', type='upper'), 'X')).value == 'X'

    def test_duplicate_registration_requires_replace(self):
        registry = FieldRegistry.default()
        with pytest.raises(ValueError):
            registry.register(registry.get('text'))
        registry.register(registry.get('text'), replace=True)

    def test_plain_text_render_blocks(self):
        registry = FieldRegistry.default()
        node = SchemaNode(kind=NodeKind.FIELD, attributes={
            'type': 'plain_text',
            'block': {'text': [{'h': 'Tip', 'p': ['one', 'two'], 'link': '/x', 'linkText': 'more'}]}
        })

        rendered = registry.render(registry.describe_field(node))

        blocks = rendered.attributes['blocks']
        assert blocks[0]['heading'] == 'Tip'
        assert blocks[0]['paragraphs'] == ['one', 'two']
        assert blocks[0]['link_text'] == 'more'
