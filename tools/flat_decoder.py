#!/usr/bin/env python3
"""
flat_decoder.py - Flatten serialized messages against a parsed TypeMap

Walks a raw payload field by field, in exactly the order the fields were
declared, and flattens every terminal field into a dotted path:

    joint[0].name      -> identifiers (string fields)
    joint[0].position  -> values (numeric fields, as float)

The wire format carries no offsets or tags: primitives are fixed width,
'T[]' arrays are prefixed by an int32 element count, 'T[N]' arrays have
no prefix, and strings are an int32 byte length followed by the bytes.
One unknown type or short buffer therefore makes every later read
meaningless, so both fail the whole decode.

Usage:
    from msg_parser import build_type_map
    from flat_decoder import FlatDecoder

    type_map = build_type_map('robot_msgs/Robot', definition)
    result = FlatDecoder(type_map).decode('Robot', payload)
    if result.success:
        print(result.table.values)
"""

import struct
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Tuple, Union

from type_map import TypeMap, split_array_type, strip_type_name


PATH_SEPARATOR = '.'
STRING_TYPE = 'string'
DEFAULT_MAX_DEPTH = 64

BufferLike = Union[bytes, bytearray, memoryview]


class Endian(Enum):
    BIG = 'big'
    LITTLE = 'little'


def _to_sec(values: Tuple[int, int]) -> float:
    secs, nsecs = values
    return float(secs) + 1e-9 * float(nsecs)


# type -> (struct format without byte order, converter to float)
PRIMITIVE_TYPES: Dict[str, Tuple[str, Callable[[tuple], float]]] = {
    'bool': ('B', lambda v: float(v[0] != 0)),
    'int8': ('b', lambda v: float(v[0])),
    'byte': ('b', lambda v: float(v[0])),
    'uint8': ('B', lambda v: float(v[0])),
    'char': ('B', lambda v: float(v[0])),
    'int16': ('h', lambda v: float(v[0])),
    'uint16': ('H', lambda v: float(v[0])),
    'int32': ('i', lambda v: float(v[0])),
    'uint32': ('I', lambda v: float(v[0])),
    'int64': ('q', lambda v: float(v[0])),
    'uint64': ('Q', lambda v: float(v[0])),
    'float32': ('f', lambda v: float(v[0])),
    'float64': ('d', lambda v: float(v[0])),
    'time': ('II', _to_sec),
    'duration': ('ii', _to_sec),
}


def byte_order_prefix(endian: Endian) -> str:
    return '<' if endian == Endian.LITTLE else '>'


def is_builtin_type(type_name: str) -> bool:
    return type_name == STRING_TYPE or type_name in PRIMITIVE_TYPES


class DecodeError(ValueError):
    """Payload does not match the schema it is decoded with."""


class TruncatedBufferError(DecodeError):
    """A read would run past the end of the payload."""

    def __init__(self, needed: int, position: int, available: int):
        self.needed = needed
        self.position = position
        self.available = available
        super().__init__(
            f"Buffer too short: need {needed} bytes at pos {position}, "
            f"{available} available")


class UnknownTypeError(DecodeError):
    """A field type is neither a builtin nor registered in the TypeMap."""

    def __init__(self, type_name: str, path: str):
        self.type_name = type_name
        self.path = path
        super().__init__(f"type not recognized: {type_name} (at '{path}')")


class NestingDepthError(DecodeError):
    pass


class ByteCursor:
    """
    Forward-only, bounds-checked read position over a payload.

    One cursor is shared by every recursive call of a single decode.
    The underlying buffer is only ever read.
    """

    def __init__(self, buf: BufferLike, endian: Endian = Endian.LITTLE):
        self._buf = memoryview(buf).cast('B')
        self._prefix = byte_order_prefix(endian)
        self._structs: Dict[str, struct.Struct] = {}
        self.pos = 0

    @property
    def remaining(self) -> int:
        return len(self._buf) - self.pos

    def _require(self, size: int) -> None:
        if size > self.remaining:
            raise TruncatedBufferError(size, self.pos, self.remaining)

    def read_bytes(self, size: int) -> bytes:
        if size < 0:
            raise DecodeError(f"Negative read size {size} at pos {self.pos}")
        self._require(size)
        data = self._buf[self.pos:self.pos + size].tobytes()
        self.pos += size
        return data

    def unpack(self, fmt: str) -> tuple:
        """Read one struct-formatted record (byte order applied here)."""
        packer = self._structs.get(fmt)
        if packer is None:
            packer = self._structs[fmt] = struct.Struct(self._prefix + fmt)
        self._require(packer.size)
        values = packer.unpack_from(self._buf, self.pos)
        self.pos += packer.size
        return values

    def read_int32(self) -> int:
        return self.unpack('i')[0]

    def read_string(self) -> str:
        length = self.read_int32()
        if length < 0:
            raise DecodeError(f"Negative string length {length} at pos {self.pos - 4}")
        return self.read_bytes(length).decode('utf-8', errors='surrogateescape')


@dataclass
class FlatTable:
    """Flattened view of one decoded message, keyed by dotted path."""
    values: Dict[str, float] = field(default_factory=dict)
    identifiers: Dict[str, str] = field(default_factory=dict)
    renamed: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Dict]:
        return {
            'identifiers': dict(self.identifiers),
            'values': dict(self.values),
            'renamed': dict(self.renamed),
        }


@dataclass
class DecodeResult:
    """Result of flattening a payload."""
    table: FlatTable
    bytes_consumed: int
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return len(self.errors) == 0


def join_path(prefix: str, name: str) -> str:
    if not prefix:
        return name
    return prefix + PATH_SEPARATOR + name


class FlatDecoder:
    """
    Decodes payloads of the types in one TypeMap.

    The TypeMap is only read, so one decoder (or one TypeMap shared by
    several decoders) can serve any number of messages.
    """

    def __init__(self, type_map: TypeMap, endian: Endian = Endian.LITTLE,
                 max_depth: int = DEFAULT_MAX_DEPTH):
        self.type_map = type_map
        self.endian = endian
        self.max_depth = max_depth

    def decode(self, type_name: str, payload: BufferLike, prefix: str = '') -> DecodeResult:
        """
        Flatten payload as an instance of type_name.

        Args:
            type_name: Root type, with or without namespace
            payload: Complete serialized message
            prefix: Path prefix for every key (empty for bare field paths)

        Returns:
            DecodeResult; on failure errors is non-empty and the table
            holds whatever was decoded before the failure.
        """
        cursor = ByteCursor(payload, self.endian)
        result = DecodeResult(table=FlatTable(), bytes_consumed=0)

        try:
            self.decode_into(strip_type_name(type_name), prefix, cursor, result.table)
        except DecodeError as e:
            result.errors.append(str(e))

        result.bytes_consumed = cursor.pos
        if result.success and cursor.remaining:
            result.warnings.append(
                f"{cursor.remaining} trailing bytes not consumed by {type_name}")
        return result

    def decode_into(self, type_name: str, path_prefix: str, cursor: ByteCursor,
                    table: FlatTable, depth: int = 0) -> None:
        """Recursively decode one (possibly array) field at cursor into table."""
        if depth > self.max_depth:
            raise NestingDepthError(
                f"Maximum nesting depth {self.max_depth} exceeded at '{path_prefix}'")

        base_type, fixed_length, is_array = split_array_type(type_name)
        if not is_array:
            count = 1
        elif fixed_length is not None:
            count = fixed_length
        else:
            count = cursor.read_int32()
            if count < 0:
                raise DecodeError(
                    f"Negative array length {count} for '{path_prefix}' at pos {cursor.pos - 4}")

        primitive = PRIMITIVE_TYPES.get(base_type)
        msg_type = None
        if primitive is None and base_type != STRING_TYPE and count:
            msg_type = self.type_map.find(base_type)
            if msg_type is None:
                raise UnknownTypeError(base_type, path_prefix)

        for v in range(count):
            path = f"{path_prefix}[{v}]" if is_array else path_prefix

            if primitive is not None:
                fmt, convert = primitive
                table.values[path] = convert(cursor.unpack(fmt))
            elif msg_type is None:
                table.identifiers[path] = cursor.read_string()
            else:
                start = cursor.pos
                for f in msg_type.fields:
                    self.decode_into(f.type_name, join_path(path, f.field_name),
                                     cursor, table, depth + 1)
                # A type that reads no bytes adds no entries; the remaining
                # elements would be identical.
                if cursor.pos == start:
                    break


def decode_flat(type_map: TypeMap, type_name: str, payload: BufferLike,
                endian: Endian = Endian.LITTLE, prefix: str = '') -> FlatTable:
    """Convenience function to flatten a payload; raises ValueError on failure."""
    result = FlatDecoder(type_map, endian).decode(type_name, payload, prefix)
    if not result.success:
        raise ValueError(f"Decode errors: {result.errors}")
    return result.table
