"""
test_hypothesis.py - Property-based testing with Hypothesis

Covers the properties every definition/payload pair must satisfy:
- Decoder never raises, whatever the bytes
- Positional round-trip: encoded data decodes to one entry per terminal field
- Array fan-out, including empty arrays
- Parsing is idempotent and deduplicates field names
- Renaming rewrites indices only where a label is found

Run with:
    pytest tests/test_hypothesis.py -v
    pytest tests/test_hypothesis.py -v --hypothesis-show-statistics
"""

from hypothesis import given, settings, HealthCheck
from hypothesis import strategies as st
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / 'tools'))
from flat_decoder import FlatDecoder, FlatTable
from flat_encoder import encode_message
from msg_parser import build_type_map, parse_msg_definition
from substitution import SubstitutionRule, apply_name_transform
from type_map import TypeMap


SEPARATOR = '=' * 80

SAMPLE_DEFINITION = '\n'.join([
    '# Every builtin kind the decoder knows',
    'Header header',
    'float64 x',
    'uint32 count',
    'int16 delta',
    'float32 ratio',
    'bool flag',
    'string label',
    'Item[] items',
    'uint8[4] code',
    'duration elapsed',
    SEPARATOR,
    'MSG: std_msgs/Header',
    'uint32 seq',
    'time stamp',
    'string frame_id',
    SEPARATOR,
    'MSG: sample_msgs/Item',
    'string name',
    'float64 value',
    'int64 big',
])

SAMPLE_TYPE_MAP = build_type_map('sample_msgs/Sample', SAMPLE_DEFINITION)


# =============================================================================
# Strategies for generating test data
# =============================================================================

bytes_strategy = st.binary(min_size=0, max_size=256)

u8_values = st.integers(min_value=0, max_value=255)
s16_values = st.integers(min_value=-32768, max_value=32767)
u32_values = st.integers(min_value=0, max_value=2**32 - 1)
s32_values = st.integers(min_value=-2**31, max_value=2**31 - 1)
s64_values = st.integers(min_value=-2**53, max_value=2**53)

float64_values = st.floats(allow_nan=False, allow_infinity=False)
float32_values = st.floats(width=32, allow_nan=False, allow_infinity=False)
nsec_values = st.integers(min_value=0, max_value=999999999)

text_values = st.text(max_size=20)

item_data = st.fixed_dictionaries({
    'name': text_values,
    'value': float64_values,
    'big': s64_values,
})

sample_data = st.fixed_dictionaries({
    'header': st.fixed_dictionaries({
        'seq': u32_values,
        'stamp': st.tuples(u32_values, nsec_values),
        'frame_id': text_values,
    }),
    'x': float64_values,
    'count': u32_values,
    'delta': s16_values,
    'ratio': float32_values,
    'flag': st.booleans(),
    'label': text_values,
    'items': st.lists(item_data, max_size=5),
    'code': st.lists(u8_values, min_size=4, max_size=4),
    'elapsed': st.tuples(s32_values, st.integers(min_value=-999999999, max_value=999999999)),
})

field_names = st.from_regex(r'[a-z][a-z0-9_]{0,8}', fullmatch=True)


def expected_flat(data) -> FlatTable:
    """Flat table the decoder must produce for sample_data."""
    header = data['header']
    secs, nsecs = header['stamp']
    el_secs, el_nsecs = data['elapsed']
    table = FlatTable()
    table.values.update({
        'header.seq': float(header['seq']),
        'header.stamp': float(secs) + 1e-9 * float(nsecs),
        'x': data['x'],
        'count': float(data['count']),
        'delta': float(data['delta']),
        'ratio': data['ratio'],
        'flag': 1.0 if data['flag'] else 0.0,
        'elapsed': float(el_secs) + 1e-9 * float(el_nsecs),
    })
    table.identifiers.update({
        'header.frame_id': header['frame_id'],
        'label': data['label'],
    })
    for i, item in enumerate(data['items']):
        table.identifiers[f'items[{i}].name'] = item['name']
        table.values[f'items[{i}].value'] = item['value']
        table.values[f'items[{i}].big'] = float(item['big'])
    for i, code in enumerate(data['code']):
        table.values[f'code[{i}]'] = float(code)
    return table


# =============================================================================
# Property Tests: Decoder Safety
# =============================================================================

class TestDecoderSafety:
    """Decoder handles all inputs without raising."""

    @given(bytes_strategy)
    @settings(max_examples=500, suppress_health_check=[HealthCheck.too_slow])
    def test_never_crashes_on_random_bytes(self, data):
        result = FlatDecoder(SAMPLE_TYPE_MAP).decode('Sample', data)
        assert isinstance(result.success, bool)
        assert result.bytes_consumed <= len(data)

    @given(sample_data, st.data())
    @settings(max_examples=200)
    def test_every_truncation_fails(self, data, draw):
        payload = encode_message(SAMPLE_TYPE_MAP, 'Sample', data)
        cut = draw.draw(st.integers(min_value=0, max_value=len(payload) - 1))

        result = FlatDecoder(SAMPLE_TYPE_MAP).decode('Sample', payload[:cut])

        assert not result.success
        assert result.bytes_consumed <= cut


# =============================================================================
# Property Tests: Roundtrip Encoding
# =============================================================================

class TestRoundtrip:
    """Encode/decode consistency."""

    @given(sample_data)
    @settings(max_examples=300)
    def test_positional_roundtrip(self, data):
        payload = encode_message(SAMPLE_TYPE_MAP, 'Sample', data)

        result = FlatDecoder(SAMPLE_TYPE_MAP).decode('sample_msgs/Sample', payload)

        assert result.success, result.errors
        assert result.bytes_consumed == len(payload)
        assert not result.warnings
        expected = expected_flat(data)
        assert result.table.identifiers == expected.identifiers
        assert result.table.values == expected.values

    @given(st.lists(st.tuples(text_values, float64_values), max_size=30))
    def test_array_fan_out(self, joints):
        type_map = build_type_map('Robot', '\n'.join([
            'JointState[] joint', SEPARATOR, 'MSG: pkg/JointState',
            'string name', 'float64 position',
        ]))
        data = {'joint': [{'name': n, 'position': p} for n, p in joints]}

        table = FlatDecoder(type_map).decode('Robot', encode_message(type_map, 'Robot', data)).table

        assert sorted(table.values) == sorted(f'joint[{i}].position' for i in range(len(joints)))
        assert sorted(table.identifiers) == sorted(f'joint[{i}].name' for i in range(len(joints)))


# =============================================================================
# Property Tests: Parser
# =============================================================================

class TestParser:
    """Parsing properties."""

    @given(st.lists(field_names, min_size=1, max_size=15))
    def test_dedup_keeps_distinct_names(self, names):
        definition = '\n'.join(f'float64 {name}' for name in names)
        fields = build_type_map('P', definition).find('P').fields

        distinct = list(dict.fromkeys(names))
        assert [f.field_name for f in fields] == distinct

    @given(st.lists(field_names, min_size=1, max_size=10))
    def test_idempotent_registration(self, names):
        definition = '\n'.join([f'uint32 {name}' for name in names] + [
            SEPARATOR, 'MSG: pkg/Sub', 'float64 value'])
        once = build_type_map('P', definition)
        twice = TypeMap()
        parse_msg_definition('P', definition, twice)
        parse_msg_definition('P', definition, twice)
        assert twice == once

    @given(st.text(max_size=300))
    def test_parser_never_raises(self, text):
        type_map = build_type_map('P', text)
        assert 'P' in type_map


# =============================================================================
# Property Tests: Renaming
# =============================================================================

class TestRenaming:
    """Substitution properties."""

    @given(st.dictionaries(st.text(max_size=15), float64_values, max_size=20))
    def test_without_identifiers_nothing_is_renamed(self, values):
        table = FlatTable(values=dict(values))
        apply_name_transform([SubstitutionRule('[#].', '[#].name', '.#.')], table)
        assert table.renamed == values

    @given(st.lists(st.tuples(st.from_regex(r'[a-z]{1,6}', fullmatch=True), float64_values),
                    min_size=1, max_size=10, unique_by=lambda j: j[0]))
    def test_unique_names_rename_every_joint(self, joints):
        table = FlatTable()
        for i, (name, position) in enumerate(joints):
            table.identifiers[f'joint[{i}].name'] = name
            table.values[f'joint[{i}].position'] = position

        apply_name_transform([SubstitutionRule('[#].', '[#].name', '.#.')], table)

        assert table.renamed == {f'joint.{name}.position': p for name, p in joints}
