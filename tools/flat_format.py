#!/usr/bin/env python3
"""
flat_format.py - Text dumps of flat tables and type maps

    format_flat_table(table)     'key = value' lines, identifiers first
    format_type_map(type_map)    every type with its fields
    format_type(type_map, name)  indented tree of one type
"""

from typing import List

from flat_decoder import FlatTable
from type_map import TypeMap, split_array_type, strip_type_name


def format_flat_table(table: FlatTable, renamed: bool = False) -> str:
    """
    One '<key> = <value>' line per entry: identifiers, then values.

    With renamed=True the renamed values are listed instead of the raw ones.
    """
    lines = [f"{key} = {value}" for key, value in table.identifiers.items()]
    values = table.renamed if renamed else table.values
    lines.extend(f"{key} = {value}" for key, value in values.items())
    return '\n'.join(lines)


def format_type_map(type_map: TypeMap) -> str:
    lines = []
    for name, msg_type in type_map.items():
        lines.append(f"{name} : ")
        for f in msg_type.fields:
            lines.append(f"\t{f.field_name} : {f.type_name}")
        lines.append('')
    return '\n'.join(lines).rstrip('\n')


def _format_type(type_map: TypeMap, label: str, type_name: str, indent: int,
                 lines: List[str], parents: List[str]) -> None:
    lines.append(f"{'  ' * indent}{label} : {type_name}")

    base_type = split_array_type(type_name)[0]
    msg_type = type_map.find(base_type)
    if msg_type is None:
        lines.append(f"{'  ' * (indent + 1)}{base_type} not found")
        return

    parents = parents + [base_type]
    for f in msg_type.fields:
        field_base = split_array_type(f.type_name)[0]
        # self-referencing types are listed, not expanded
        if field_base in type_map and field_base not in parents:
            _format_type(type_map, f.field_name, f.type_name, indent + 1, lines, parents)
        else:
            lines.append(f"{'  ' * (indent + 1)}{f.field_name} : {f.type_name}")


def format_type(type_map: TypeMap, type_name: str) -> str:
    """Indented tree of type_name, expanding every nested registered type."""
    lines: List[str] = []
    type_name = strip_type_name(type_name)
    _format_type(type_map, split_array_type(type_name)[0], type_name, 0, lines, [])
    return '\n'.join(lines)
