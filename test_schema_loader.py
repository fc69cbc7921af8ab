"""
Unit tests for the schema loader.
"""

import json
import shutil
import tempfile
from pathlib import Path

import pytest
import yaml

from custom_fields.exceptions import ConfigError
from custom_fields.schema_loader import (
    NodeKind, SchemaNode, as_sequence, build_field_nodes, build_scoped_fragments,
    load_field_schema, load_module_schema, load_schema_bundle, parse_document
)


MODULE_DOC = {
    'module': {
        'name': 'Custom Fields',
        'menuName': 'Site Options',
        'dir': 'custom-fields',
        'collection': {'optionGroup': 'cf_group', 'optionName': 'cf_options'},
        'params': {'page': 'page_index', 'update': 'update'}
    }
}

FIELDS_XML = """<?xml version="1.0"?>
<fieldSchema>
  <themeOptions>
    <settings><name>Theme Options</name></settings>
    <pages>
      <page>
        <name>General</name>
        <sections>
          <section>
            <title>Header</title>
            <width>3/6</width>
            <metafields>
              <metafield><name>tagline</name><type>text</type></metafield>
            </metafields>
          </section>
        </sections>
      </page>
    </pages>
  </themeOptions>
  <postTypes>
    <postType>
      <name>post</name>
      <groupName>post details</groupName>
      <metafields>
        <metafield><name>subtitle</name><type>text</type></metafield>
        <metafield><name>rating</name><type>number</type></metafield>
      </metafields>
    </postType>
  </postTypes>
</fieldSchema>
"""


class TestAsSequence:
    """Single-node vs list-of-nodes normalization."""

    def test_none_and_empty(self):
        assert as_sequence(None) == []
        assert as_sequence('') == []
        assert as_sequence({}) == []

    def test_single_mapping_becomes_list(self):
        assert as_sequence({'name': 'a'}) == [{'name': 'a'}]

    def test_list_preserves_order(self):
        assert as_sequence([{'name': 'a'}, None, {'name': 'b'}]) == [{'name': 'a'}, {'name': 'b'}]


class TestBuildNodes:
    """Building schema nodes from raw mappings."""

    def test_single_metafield_mapping(self):
        nodes = build_field_nodes({'metafield': {'name': 'title', 'type': 'text'}})

        assert len(nodes) == 1
        assert nodes[0].kind == NodeKind.FIELD
        assert nodes[0].name == 'title'
        assert nodes[0].attr('type') == 'text'

    def test_metafield_list_and_bare_list_are_equivalent(self):
        raw = [{'name': 'a', 'type': 'text'}, {'name': 'b', 'type': 'email'}]

        wrapped = build_field_nodes({'metafield': raw})
        bare = build_field_nodes(raw)

        assert [n.name for n in wrapped] == ['a', 'b']
        assert wrapped == bare

    def test_field_without_name_keeps_none(self):
        nodes = build_field_nodes([{'type': 'plain_text', 'block': {'p': 'hi'}}])
        assert nodes[0].name is None

    def test_scoped_fragments_take_selector_and_group(self):
        fragments = build_scoped_fragments(
            {'postType': [{'name': 'post', 'groupName': 'details', 'metafields': []},
                          {'groupName': 'shared', 'metafields': []}]},
            'postType'
        )

        assert fragments[0].scope == 'post'
        assert fragments[0].name == 'details'
        assert fragments[1].scope is None

    def test_nodes_are_immutable(self):
        node = SchemaNode(kind=NodeKind.FIELD, name='a')
        with pytest.raises(Exception):
            node.name = 'b'

    def test_attr_treats_empty_as_absent(self):
        node = SchemaNode(kind=NodeKind.FIELD, name='a', attributes={'label': '', 'size': {}})
        assert node.attr('label', 'fallback') == 'fallback'
        assert node.attr('size', 'auto') == 'auto'


class TestDocumentLoading:
    """Loading documents from disk."""

    def setup_method(self):
        self.test_dir = Path(tempfile.mkdtemp())

    def teardown_method(self):
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def test_missing_file_raises_config_error(self):
        with pytest.raises(ConfigError):
            parse_document(self.test_dir / "missing.yaml")

    def test_unsupported_suffix_raises_config_error(self):
        path = self.test_dir / "schema.txt"
        path.write_text("x")
        with pytest.raises(ConfigError):
            parse_document(path)

    def test_invalid_yaml_raises_config_error(self):
        path = self.test_dir / "bad.yaml"
        path.write_text("module: [unclosed")
        with pytest.raises(ConfigError):
            parse_document(path)

    def test_non_mapping_root_raises_config_error(self):
        path = self.test_dir / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError):
            parse_document(path)

    def test_load_module_schema_from_yaml(self):
        path = self.test_dir / "module.yaml"
        path.write_text(yaml.safe_dump(MODULE_DOC))

        module = load_module_schema(path)

        assert module.dir == 'custom-fields'
        assert module.option_name == 'cf_options'
        assert module.update_param == 'update'
        assert module.menu_name == 'Site Options'

    def test_load_module_schema_from_json(self):
        path = self.test_dir / "module.json"
        path.write_text(json.dumps(MODULE_DOC))

        assert load_module_schema(path).option_group == 'cf_group'

    def test_module_schema_missing_required_settings(self):
        with pytest.raises(ConfigError) as exc_info:
            load_module_schema({'module': {'name': 'x'}})
        assert 'dir' in exc_info.value.message

    def test_load_field_schema_from_xml(self):
        path = self.test_dir / "fields.xml"
        path.write_text(FIELDS_XML)

        schema = load_field_schema(path)

        assert schema.settings_name == 'Theme Options'
        pages = schema.options.children_of(NodeKind.PAGE)
        assert len(pages) == 1
        section = pages[0].children_of(NodeKind.SECTION)[0]
        assert section.name == 'Header'
        assert section.attr('width') == '3/6'
        assert [f.name for f in section.iter_fields()] == ['tagline']

        fragment = schema.record_fragments[0]
        assert fragment.scope == 'post'
        assert [f.name for f in fragment.iter_fields()] == ['subtitle', 'rating']

    def test_field_schema_without_pages_has_no_options(self):
        schema = load_field_schema({'fieldSchema': {'postTypes': {'postType': []}}})
        assert schema.options is None
        assert schema.record_fragments == ()

    def test_taxonomy_shorthand_is_accepted(self):
        schema = load_field_schema({'fieldSchema': {
            'taxonomy': {'name': 'category', 'metafields': {'metafield': {'name': 'color', 'type': 'text'}}}
        }})
        assert schema.category_fragments[0].scope == 'category'

    def test_bundle_requires_both_documents(self):
        with pytest.raises(ConfigError):
            load_schema_bundle(MODULE_DOC, self.test_dir / "missing.yaml")

    def test_bundled_sample_schemas_load(self):
        root = Path(__file__).parent / "schemas"
        bundle = load_schema_bundle(root / "module.yaml", root / "fields.yaml")

        assert bundle.module.option_name == 'cf_options'
        assert len(bundle.fields.options.children_of(NodeKind.PAGE)) == 3
        assert {f.scope for f in bundle.fields.record_fragments} == {'post', 'page'}
