#!/usr/bin/env python3
"""
flat_encoder.py - Serialize nested data in TypeMap field order

The inverse of flat_decoder: writes a nested dict/list structure into
the positional wire format, field by field in declaration order. Used
to build test vectors and payloads for round-trip checks.

    data = {'joint': [{'name': 'hip', 'position': 1.5}]}
    payload = FlatEncoder(type_map).encode('Robot', data).payload

'time' and 'duration' accept a (secs, nsecs) pair or a float in seconds.
"""

import math
import struct
from dataclasses import dataclass, field
from typing import Any, Dict, List

from flat_decoder import (
    Endian, PRIMITIVE_TYPES, STRING_TYPE, UnknownTypeError, byte_order_prefix,
)
from type_map import TypeMap, split_array_type, strip_type_name


_TIME_TYPES = ('time', 'duration')
NSECS_PER_SEC = 1_000_000_000


@dataclass
class EncodeResult:
    """Result of encoding data to payload."""
    payload: bytes
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return len(self.errors) == 0


def _split_seconds(value: Any):
    if isinstance(value, (tuple, list)):
        secs, nsecs = value
        return int(secs), int(nsecs)
    frac, whole = math.modf(float(value))
    # rounding can land on a full second; nsecs ends up in [0, 1e9)
    carry, nsecs = divmod(int(round(frac * 1e9)), NSECS_PER_SEC)
    return int(whole) + carry, nsecs


class FlatEncoder:
    """Encodes nested data for the types in one TypeMap."""

    def __init__(self, type_map: TypeMap, endian: Endian = Endian.LITTLE):
        self.type_map = type_map
        self.endian = endian
        self._prefix = byte_order_prefix(endian)

    def encode(self, type_name: str, data: Dict[str, Any]) -> EncodeResult:
        result = EncodeResult(payload=b'')
        output = bytearray()
        try:
            self._encode_value(strip_type_name(type_name), data, '', output, result)
        except (ValueError, TypeError, struct.error) as e:
            result.errors.append(f"Error encoding {type_name}: {e}")
        result.payload = bytes(output)
        return result

    def _pack(self, fmt: str, *values) -> bytes:
        return struct.pack(self._prefix + fmt, *values)

    def _encode_value(self, type_name: str, value: Any, path: str,
                      output: bytearray, result: EncodeResult) -> None:
        base_type, fixed_length, is_array = split_array_type(type_name)

        if is_array:
            items = list(value or [])
            if fixed_length is None:
                output.extend(self._pack('i', len(items)))
            elif len(items) != fixed_length:
                raise ValueError(
                    f"'{path}' needs exactly {fixed_length} elements, got {len(items)}")
            for v, item in enumerate(items):
                self._encode_scalar(base_type, item, f"{path}[{v}]", output, result)
        else:
            self._encode_scalar(base_type, value, path, output, result)

    def _encode_scalar(self, type_name: str, value: Any, path: str,
                       output: bytearray, result: EncodeResult) -> None:
        if type_name in PRIMITIVE_TYPES:
            fmt = PRIMITIVE_TYPES[type_name][0]
            if type_name in _TIME_TYPES:
                output.extend(self._pack(fmt, *_split_seconds(value or 0)))
            elif fmt in ('f', 'd'):
                output.extend(self._pack(fmt, float(value or 0.0)))
            else:
                output.extend(self._pack(fmt, int(value or 0)))
            return

        if type_name == STRING_TYPE:
            if isinstance(value, bytes):
                raw = value
            else:
                raw = str(value if value is not None else '').encode('utf-8', errors='surrogateescape')
            output.extend(self._pack('i', len(raw)))
            output.extend(raw)
            return

        msg_type = self.type_map.find(type_name)
        if msg_type is None:
            raise UnknownTypeError(type_name, path)

        data = {} if value is None else value
        if not isinstance(data, dict):
            raise ValueError(f"'{path or type_name}' must be a mapping, got {type(data).__name__}")
        for f in msg_type.fields:
            sub_path = f"{path}.{f.field_name}" if path else f.field_name
            if f.field_name not in data:
                result.warnings.append(f"Missing field: {sub_path}")
            self._encode_value(f.type_name, data.get(f.field_name), sub_path, output, result)


def encode_message(type_map: TypeMap, type_name: str, data: Dict[str, Any],
                   endian: Endian = Endian.LITTLE) -> bytes:
    """Convenience function to encode data."""
    result = FlatEncoder(type_map, endian).encode(type_name, data)
    if not result.success:
        raise ValueError(f"Encode errors: {result.errors}")
    return result.payload
