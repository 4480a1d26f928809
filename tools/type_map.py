#!/usr/bin/env python3
"""
type_map.py - In-memory schema for message definitions

A TypeMap holds one MsgType per distinct (namespace-stripped) type name
discovered while parsing a message definition. Once a name is registered
it is never overwritten; the map is read-only after parsing and can be
shared by every decode of that message type.

Usage:
    from type_map import TypeMap, MsgType, Field

    type_map = TypeMap()
    joint = type_map.insert_if_absent('JointState', MsgType('sensor_msgs/JointState'))
    joint.add_field(Field('string', 'name'))
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple


NAMESPACE_SEPARATOR = '/'
VECTOR_SYMBOL = '[]'

# float64[9] - fixed length array, no count on the wire
_FIXED_ARRAY_RE = re.compile(r'^(.*)\[(\d+)\]$')


def strip_type_name(name: str) -> str:
    """Remove the namespace prefix (everything up to the last '/')."""
    return name.rsplit(NAMESPACE_SEPARATOR, 1)[-1]


def split_array_type(type_name: str) -> Tuple[str, Optional[int], bool]:
    """
    Split an array suffix off a field type.

    Returns:
        (base_type, fixed_length, is_array)

        'float64'     -> ('float64', None, False)
        'Point[]'     -> ('Point', None, True)
        'float64[9]'  -> ('float64', 9, True)
    """
    if type_name.endswith(VECTOR_SYMBOL):
        return type_name[:-len(VECTOR_SYMBOL)], None, True

    match = _FIXED_ARRAY_RE.match(type_name)
    if match:
        return match.group(1), int(match.group(2)), True

    return type_name, None, False


@dataclass(frozen=True)
class Field:
    """A single field of a message type, in wire order."""
    type_name: str
    field_name: str


@dataclass(frozen=True)
class Constant:
    """A constant declaration (TYPE NAME=VALUE). Occupies no wire bytes."""
    type_name: str
    name: str
    value: str


@dataclass
class MsgType:
    """
    A message type: its full name as authored plus its ordered fields.

    Field names are unique within a type; the first declaration under a
    name wins and later duplicates are dropped.
    """
    full_name: str
    fields: List[Field] = field(default_factory=list)
    constants: List[Constant] = field(default_factory=list)

    @property
    def name(self) -> str:
        return strip_type_name(self.full_name)

    def has_field(self, field_name: str) -> bool:
        return any(f.field_name == field_name for f in self.fields)

    def add_field(self, new_field: Field) -> bool:
        """Append a field unless one with the same name exists. Returns True if added."""
        if self.has_field(new_field.field_name):
            return False
        self.fields.append(new_field)
        return True

    def add_constant(self, constant: Constant) -> bool:
        if any(c.name == constant.name for c in self.constants):
            return False
        self.constants.append(constant)
        return True


class TypeMap:
    """Stripped type name -> MsgType. First registration wins."""

    def __init__(self):
        self._types: Dict[str, MsgType] = {}

    def insert_if_absent(self, name: str, msg_type: MsgType) -> MsgType:
        """Register msg_type under name unless taken; return the registered entry."""
        return self._types.setdefault(name, msg_type)

    def find(self, name: str) -> Optional[MsgType]:
        return self._types.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._types

    def __len__(self) -> int:
        return len(self._types)

    def __iter__(self) -> Iterator[str]:
        return iter(self._types)

    def items(self):
        return self._types.items()

    def __eq__(self, other) -> bool:
        if not isinstance(other, TypeMap):
            return NotImplemented
        return self._types == other._types

    def __repr__(self) -> str:
        return f"TypeMap({sorted(self._types)})"
