#!/usr/bin/env python3
"""
flatten_message.py - Decode one serialized message into a flat table

Usage:
    python tools/flatten_message.py Robot.msg --type robot_msgs/Robot --payload "02 00 00 00 ..."
    python tools/flatten_message.py Robot.msg --type robot_msgs/Robot --payload-file msg.bin --rules rules.yaml
    python tools/flatten_message.py Robot.msg --type robot_msgs/Robot --payload-file msg.bin --json
    python tools/flatten_message.py Robot.msg --type robot_msgs/Robot --tree

Output is one 'key = value' line per entry, identifiers first. With
--rules the values are listed under their renamed keys.
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Any, List, Optional

sys.path.insert(0, str(Path(__file__).parent))
from flat_decoder import BufferLike, Endian, FlatDecoder, FlatTable
from flat_format import format_flat_table, format_type, format_type_map
from msg_parser import build_type_map, load_msg_definition
from substitution import SubstitutionRule, apply_name_transform, load_rules


def parse_payload(payload: Any) -> bytes:
    """Parse payload from various formats to bytes."""
    if isinstance(payload, (bytes, bytearray)):
        return bytes(payload)

    if isinstance(payload, list):
        return bytes(payload)

    if isinstance(payload, str):
        # Remove spaces, 0x prefixes
        clean = payload.replace(' ', '').replace('0x', '').replace(',', '').replace('\n', '')
        return bytes.fromhex(clean)

    raise ValueError(f"Cannot parse payload: {payload}")


def flatten_message(type_name: str, definition: str, payload: BufferLike,
                    rules: Optional[List[SubstitutionRule]] = None,
                    endian: Endian = Endian.LITTLE) -> FlatTable:
    """
    Parse definition, decode payload and apply rules in one call.

    Raises:
        ValueError: if the payload cannot be decoded
    """
    type_map = build_type_map(type_name, definition)
    result = FlatDecoder(type_map, endian).decode(type_name, payload)
    if not result.success:
        raise ValueError(f"Decode errors: {result.errors}")
    apply_name_transform(rules or [], result.table)
    return result.table


def main():
    parser = argparse.ArgumentParser(
        description='Flatten a serialized message using its text definition'
    )
    parser.add_argument('definition', help='Path to message definition file')
    parser.add_argument('-t', '--type', required=True, dest='type_name',
                        help='Root type name, e.g. sensor_msgs/JointState')
    source = parser.add_mutually_exclusive_group()
    source.add_argument('-p', '--payload', help='Payload as hex string')
    source.add_argument('-f', '--payload-file', help='Path to binary payload file')
    parser.add_argument('-r', '--rules', help='Path to substitution rules YAML file')
    parser.add_argument('--endian', choices=[e.value for e in Endian],
                        default=Endian.LITTLE.value,
                        help='Byte order of the payload (default: little)')
    parser.add_argument('--prefix', default='', help='Prefix for every flat key')
    parser.add_argument('--json', action='store_true', help='Output results as JSON')
    parser.add_argument('--tree', action='store_true',
                        help='Print the parsed type map and type tree')
    args = parser.parse_args()

    try:
        definition = load_msg_definition(args.definition)
        rules = load_rules(args.rules) if args.rules else []
    except (OSError, ValueError) as e:
        print(f"Error loading input: {e}", file=sys.stderr)
        sys.exit(1)

    type_map = build_type_map(args.type_name, definition)

    if args.tree:
        print(format_type_map(type_map))
        print()
        print(format_type(type_map, args.type_name))
        if args.payload is None and args.payload_file is None:
            sys.exit(0)

    try:
        if args.payload_file:
            payload = Path(args.payload_file).read_bytes()
        elif args.payload is not None:
            payload = parse_payload(args.payload)
        else:
            print("Error: --payload or --payload-file is required", file=sys.stderr)
            sys.exit(1)
    except (OSError, ValueError) as e:
        print(f"Error loading payload: {e}", file=sys.stderr)
        sys.exit(1)

    decoder = FlatDecoder(type_map, Endian(args.endian))
    result = decoder.decode(args.type_name, payload, args.prefix)
    apply_name_transform(rules, result.table)

    if args.json:
        output = result.table.to_dict()
        output.update({
            'success': result.success,
            'bytes_consumed': result.bytes_consumed,
            'warnings': result.warnings,
            'errors': result.errors,
        })
        print(json.dumps(output, indent=2))
    else:
        print(format_flat_table(result.table, renamed=bool(rules)))
        for warning in result.warnings:
            print(f"Warning: {warning}", file=sys.stderr)
        for error in result.errors:
            print(f"Error: {error}", file=sys.stderr)

    sys.exit(0 if result.success else 1)


if __name__ == '__main__':
    main()
