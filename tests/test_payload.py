"""Tests for termqtt.payload module."""

import json

import pytest
from termqtt.errors import ParsePayloadError
from termqtt.payload import (
    FlattenedEntry, TableRow, STRING, NUMBER, BOOLEAN, NULL, ARRAY, OBJECT,
    decode_payload, parse_json, json_type, flatten, format_value, pretty_json,
    rows_from_value, normalize_path, parse_path, parse_value, set_by_path,
    build_value, rebuild_from_rows, preview_from_rows,
)


class TestParseJson:
    """Test inbound payload decoding."""

    def test_valid_object(self):
        assert parse_json('{"a": 1}') == ({'a': 1}, None)

    def test_invalid_returns_error(self):
        value, error = parse_json('not json')
        assert value is None
        assert error

    def test_blank_is_error(self):
        value, error = parse_json('   ')
        assert value is None
        assert error == 'Empty payload'

    def test_nul_padding_stripped(self):
        assert parse_json('{"a": 1}\0\0') == ({'a': 1}, None)

    def test_nan_rejected(self):
        value, error = parse_json('NaN')
        assert error is not None

    def test_scalar_payload(self):
        assert parse_json('42') == (42, None)

    def test_decode_payload_raises(self):
        with pytest.raises(ParsePayloadError) as exc_info:
            decode_payload('{broken')
        assert exc_info.value.payload == '{broken'


class TestJsonType:
    """Test type tags."""

    def test_tags(self):
        assert json_type(None) == NULL
        assert json_type(True) == BOOLEAN
        assert json_type(1) == NUMBER
        assert json_type(1.5) == NUMBER
        assert json_type('x') == STRING
        assert json_type([]) == ARRAY
        assert json_type({}) == OBJECT

    def test_unknown_type_raises(self):
        with pytest.raises(TypeError):
            json_type(object())


class TestFlatten:
    """Test flattening JSON values into entries."""

    def test_nested_paths(self):
        entries = flatten({'a': {'b': 1, 'c': [True, None]}, 'd': 'x'})
        assert entries == [
            FlattenedEntry('a.b', 1, NUMBER),
            FlattenedEntry('a.c[0]', True, BOOLEAN),
            FlattenedEntry('a.c[1]', None, NULL),
            FlattenedEntry('d', 'x', STRING),
        ]

    def test_empty_object_root(self):
        assert flatten({}) == [FlattenedEntry('{}', {}, OBJECT)]

    def test_empty_array_root(self):
        assert flatten([]) == [FlattenedEntry('[]', [], ARRAY)]

    def test_nested_empty_container_keeps_path(self):
        assert flatten({'a': {}, 'b': []}) == [
            FlattenedEntry('a', {}, OBJECT),
            FlattenedEntry('b', [], ARRAY),
        ]

    def test_array_root(self):
        assert [e.path for e in flatten([{'x': 1}, 2])] == ['[0].x', '[1]']

    def test_scalar_root(self):
        assert flatten(5) == [FlattenedEntry('value', 5, NUMBER)]

    def test_prefix(self):
        assert flatten({'b': 1}, 'a')[0].path == 'a.b'


class TestFormatting:
    """Test value display helpers."""

    def test_format_value(self):
        assert format_value(None) == 'null'
        assert format_value('abc') == 'abc'
        assert format_value(1) == '1'
        assert format_value(True) == 'true'
        assert format_value([1, 2]) == '[1,2]'

    def test_pretty_json(self):
        assert pretty_json({'a': 1}) == '{\n  "a": 1\n}'

    def test_pretty_json_keeps_unicode(self):
        assert 'żółw' in pretty_json({'name': 'żółw'})

    def test_rows_from_value(self):
        rows = rows_from_value({'a': 'x', 'b': [1]})
        assert rows == [TableRow('a', '"x"'), TableRow('b[0]', '1')]


class TestPaths:
    """Test row key parsing."""

    def test_parse_path(self):
        assert parse_path('a.b[2].c') == ['a', 'b', 2, 'c']

    def test_parse_path_leading_index(self):
        assert parse_path('[0].x') == [0, 'x']

    def test_normalize_whitespace(self):
        assert normalize_path(' a . b [ 0 ] ') == 'a.b[0]'
        assert parse_path(' a . b [ 0 ] ') == ['a', 'b', 0]

    def test_sentinels_have_no_tokens(self):
        assert parse_path('{}') == []
        assert parse_path('[]') == []

    def test_parse_value(self):
        assert parse_value('5') == 5
        assert parse_value('"5"') == '5'
        assert parse_value('true') is True
        assert parse_value('null') is None
        assert parse_value('hello') == 'hello'
        assert parse_value('   ') == ''

    def test_parse_value_nan_stays_text(self):
        assert parse_value('NaN') == 'NaN'


class TestSetByPath:
    """Test typed path assignment."""

    def test_creates_objects(self):
        assert set_by_path(None, ['a', 'b'], 1) == {'a': {'b': 1}}

    def test_numeric_first_token_makes_array_root(self):
        assert set_by_path(None, [2], 'x') == [None, None, 'x']

    def test_mixed_containers(self):
        assert set_by_path(None, ['a', 0, 'b'], 1) == {'a': [{'b': 1}]}

    def test_index_promotes_scalar_to_array(self):
        assert set_by_path({'a': 5}, ['a', 0], 1) == {'a': [1]}

    def test_key_promotes_array_to_object(self):
        assert set_by_path({'a': [1]}, ['a', 'k'], 2) == {'a': {'k': 2}}

    def test_reuses_existing_container(self):
        root = {'a': {'x': 1}}
        assert set_by_path(root, ['a', 'y'], 2) == {'a': {'x': 1, 'y': 2}}


class TestRebuild:
    """Test rebuilding payloads from rows."""

    def test_round_trip(self):
        value = {'a': {'b': 1}, 'c': [True]}
        rebuilt = rebuild_from_rows(rows_from_value(value))
        assert json.loads(rebuilt) == value
        assert flatten(json.loads(rebuilt)) == flatten(value)

    def test_round_trip_empty_containers(self):
        for value in ({}, [], {'a': [], 'b': {}}):
            assert json.loads(rebuild_from_rows(rows_from_value(value))) == value

    def test_quoted_value_forces_string(self):
        rows = [TableRow('n', '"12"')]
        assert json.loads(rebuild_from_rows(rows)) == {'n': '12'}

    def test_invalid_literal_kept_as_string(self):
        rows = [TableRow('name', 'pump 1')]
        assert json.loads(rebuild_from_rows(rows)) == {'name': 'pump 1'}

    def test_blank_keys_skipped(self):
        rows = [TableRow('  ', '1'), TableRow('a', '2')]
        assert json.loads(rebuild_from_rows(rows)) == {'a': 2}

    def test_tokenless_key_replaces_root(self):
        rows = [TableRow('a', '1'), TableRow('{}', '{"x": 2}')]
        assert json.loads(rebuild_from_rows(rows)) == {'x': 2}

    def test_no_rows_gives_empty_object(self):
        assert rebuild_from_rows([]) == '{}'

    def test_tuple_rows(self):
        assert json.loads(rebuild_from_rows([('a', '1')])) == {'a': 1}

    def test_raw_mode_passthrough(self):
        rows = [TableRow('payload', 'not json at all')]
        assert rebuild_from_rows(rows, raw_mode=True) == 'not json at all'

    def test_raw_mode_needs_single_payload_row(self):
        rows = [TableRow('payload', '1'), TableRow('b', '2')]
        assert json.loads(rebuild_from_rows(rows, raw_mode=True)) == {'payload': 1, 'b': 2}

    def test_payload_key_without_raw_mode_is_json(self):
        rows = [TableRow('payload', '1')]
        assert json.loads(rebuild_from_rows(rows)) == {'payload': 1}

    def test_blank_value_kept_outside_preview(self):
        assert build_value([TableRow('foo', '')]) == {'foo': ''}


class TestPreview:
    """Test preview rules."""

    def test_child_wins_over_parent(self):
        rows = [TableRow('foo.bar', 'test'), TableRow('foo.bar.buzz', '2')]
        preview = preview_from_rows(rows)
        assert 'buzz' in preview
        assert 'test' not in preview

    def test_child_index_wins_over_parent(self):
        rows = [TableRow('list', '"x"'), TableRow('list[0]', '1')]
        assert json.loads(preview_from_rows(rows)) == {'list': [1]}

    def test_blank_value_dropped(self):
        assert preview_from_rows([TableRow('foo', '')]) == ''

    def test_blank_child_does_not_shadow_parent(self):
        rows = [TableRow('foo', '1'), TableRow('foo.bar', '')]
        assert json.loads(preview_from_rows(rows)) == {'foo': 1}

    def test_prefix_sibling_is_not_descendant(self):
        rows = [TableRow('foo', '1'), TableRow('foobar', '2')]
        assert json.loads(preview_from_rows(rows)) == {'foo': 1, 'foobar': 2}

    def test_raw_mode(self):
        rows = [TableRow('payload', 'abc')]
        assert preview_from_rows(rows, raw_mode=True) == 'abc'


class TestNonFiniteNumbers:
    """Test numbers that overflow a float never reach published text."""

    def test_overflowing_payload_is_parse_error(self):
        value, error = parse_json('{"a": 1e400}')
        assert value is None
        assert 'out of range' in error

    def test_ordinary_floats_still_parse(self):
        assert parse_json('{"a": 1.5e3}') == ({'a': 1500.0}, None)

    def test_overflowing_row_value_kept_as_text(self):
        assert parse_value('1e400') == '1e400'
        assert parse_value('-1e400') == '-1e400'

    def test_rebuilt_payload_is_valid_json(self):
        rebuilt = rebuild_from_rows([TableRow('a', '1e400')])
        assert json.loads(rebuilt) == {'a': '1e400'}
        assert parse_json(rebuilt) == ({'a': '1e400'}, None)

    def test_preview_is_valid_json(self):
        preview = preview_from_rows([TableRow('a', '1e400'), TableRow('b', '2')])
        assert parse_json(preview) == ({'a': '1e400', 'b': 2}, None)

    def test_serializers_refuse_infinity(self):
        with pytest.raises(ValueError):
            pretty_json({'a': float('inf')})
        with pytest.raises(ValueError):
            format_value(float('nan'))
