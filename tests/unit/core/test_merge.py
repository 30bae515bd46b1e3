"""Test merging defaults with override layers."""

import copy

from hypothesis import given, settings, strategies as st

from remoteconfig.contracts.template import TemplateSchema
from remoteconfig.core.merge import merge
from tests._fixtures.factories import SchemaFactory

keys = st.sampled_from(["a", "b", "c", "d", "e"])
layer = st.dictionaries(keys, st.one_of(st.integers(), st.booleans(), st.text(max_size=5)), max_size=5)
defaults = st.dictionaries(keys, st.text(max_size=5), max_size=5)


class TestMerge:
    """Test merge semantics."""

    def test_no_layers_returns_defaults(self):
        schema = SchemaFactory.feature_flags()
        assert merge(schema) == schema.default_values()
        assert merge(schema, []) == schema.default_values()

    def test_layers_applied_in_order(self):
        schema = SchemaFactory.from_defaults({"a": "1", "b": "1", "c": "1"})
        merged = merge(schema, [{"a": "2", "b": "2"}, {"b": "3"}])
        assert merged == {"a": "2", "b": "3", "c": "1"}

    def test_none_and_empty_layers_skipped(self):
        schema = SchemaFactory.from_defaults({"a": "1"})
        assert merge(schema, [None, {}, {"a": "2"}, None]) == {"a": "2"}

    def test_unknown_keys_are_carried(self):
        schema = SchemaFactory.from_defaults({"a": "1"})
        assert merge(schema, [{"legacy": 5}]) == {"a": "1", "legacy": 5}

    def test_empty_schema(self):
        assert merge(TemplateSchema(), [{"x": 1}]) == {"x": 1}

    @given(defaults, st.lists(layer, max_size=4))
    @settings(max_examples=100)
    def test_last_layer_wins_and_inputs_untouched(self, default_map, layers):
        schema = SchemaFactory.from_defaults(default_map)
        snapshot = copy.deepcopy(layers)

        merged = merge(schema, layers)

        assert layers == snapshot
        for key in set(default_map).union(*[set(l) for l in layers]):
            writers = [l for l in layers if key in l]
            expected = writers[-1][key] if writers else default_map[key]
            assert merged[key] == expected

    @given(defaults)
    def test_identity_without_layers(self, default_map):
        schema = SchemaFactory.from_defaults(default_map)
        assert merge(schema) == default_map
