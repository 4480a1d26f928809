#!/usr/bin/env python3
"""
msg_parser.py - Parse textual message definitions into a TypeMap

A message definition is the human-readable description of a type and
every type it depends on, concatenated into one text:

    Header header
    JointState[] joint
    ================================================================================
    MSG: std_msgs/Header
    uint32 seq
    time stamp
    string frame_id
    ================================================================================
    MSG: robot_msgs/JointState
    string name
    float64 position

Lines before the first separator belong to the root type. A separator
(exactly 80 '=') starts a new section whose header names the type
("MSG: " prefix optional). Every other non-comment line declares a field
as '<type> <name>'.

The parser is tolerant: malformed lines are skipped, never raised.

Usage:
    from msg_parser import parse_msg_definition, build_type_map

    type_map = build_type_map('robot_msgs/Robot', definition_text)
"""

from pathlib import Path
from typing import Iterator, Optional, Union

from type_map import Constant, Field, MsgType, TypeMap, strip_type_name


SEPARATOR_LENGTH = 80
HEADER_PREFIX = 'MSG: '
COMMENT_CHAR = '#'
CONSTANT_CHAR = '='


def is_comment_or_empty(line: str) -> bool:
    stripped = line.lstrip(' ')
    return not stripped or stripped.startswith(COMMENT_CHAR)


def is_separator(line: str) -> bool:
    return len(line) == SEPARATOR_LENGTH and line == '=' * SEPARATOR_LENGTH


def _parse_declaration(line: str, msg_type: MsgType) -> None:
    """Add a field or constant declared on line to msg_type."""
    tokens = line.split()
    if len(tokens) < 2:
        return

    field_type = strip_type_name(tokens[0])

    # uint8 MODE_AUTO=1, string GREETING = hello
    if CONSTANT_CHAR in tokens[1] or (len(tokens) > 2 and tokens[2].startswith(CONSTANT_CHAR)):
        name, _, value = line.split(None, 1)[1].partition(CONSTANT_CHAR)
        if name.strip():
            msg_type.add_constant(Constant(field_type, name.strip(), value.strip()))
        return

    msg_type.add_field(Field(field_type, tokens[1]))


def parse_msg_definition(root_type_name: str, definition: str,
                         type_map: TypeMap) -> MsgType:
    """
    Parse definition into type_map (mutated in place).

    Existing entries are never replaced, so parsing the same definition
    twice leaves the map unchanged.

    Returns:
        The MsgType registered for the root type.
    """
    current = type_map.insert_if_absent(
        strip_type_name(root_type_name), MsgType(root_type_name))
    root = current

    lines: Iterator[str] = iter(definition.splitlines())
    for line in lines:
        if is_comment_or_empty(line):
            continue

        if is_separator(line):
            header: Optional[str] = next(lines, None)
            if header is None:
                break
            if header.startswith(HEADER_PREFIX):
                header = header[len(HEADER_PREFIX):]
            header = header.strip()
            current = type_map.insert_if_absent(
                strip_type_name(header), MsgType(header))
            continue

        _parse_declaration(line, current)

    return root


def build_type_map(root_type_name: str, definition: str) -> TypeMap:
    """Parse a single definition into a fresh TypeMap."""
    type_map = TypeMap()
    parse_msg_definition(root_type_name, definition, type_map)
    return type_map


def load_msg_definition(path: Union[str, Path]) -> str:
    """Read a message definition file."""
    with open(path, 'r') as f:
        return f.read()
