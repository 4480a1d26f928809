#!/usr/bin/env python3
"""
validate_message.py - Validate a message definition and run test vectors

Usage:
    python tools/validate_message.py robot.yaml
    python tools/validate_message.py robot.yaml --verbose
    python tools/validate_message.py robot.yaml --json

Document format (YAML):

    type: robot_msgs/Robot
    endian: little                 # optional
    definition: |
      JointState[] joint
      ================================================================================
      MSG: robot_msgs/JointState
      string name
      float64 position
    rules:                         # optional
      - pattern: "[#]."
        location: "[#].name"
        substitution: ".#."
    test_vectors:
      - name: two_joints
        payload: "02000000 03000000 686970 ..."   # or data: {joint: [...]}
        expected:
          identifiers: {'joint[0].name': hip}
          values: {'joint[0].position': 1.5}
          renamed: {'joint.hip.position': 1.5}
      - name: truncated
        payload: "02000000"
        expect_error: true
"""

import argparse
import json
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Tuple

import yaml

sys.path.insert(0, str(Path(__file__).parent))
from flat_decoder import Endian, FlatDecoder, is_builtin_type
from flat_encoder import FlatEncoder
from flatten_message import parse_payload
from msg_parser import build_type_map
from substitution import SubstitutionRule, apply_name_transform, rules_from_config
from type_map import TypeMap, split_array_type


TABLE_NAMES = ('identifiers', 'values', 'renamed')


@dataclass
class TableCheck:
    """Expected entries of one flat table compared with the decoded table."""
    table: str
    expected: int = 0
    missing: List[str] = field(default_factory=list)
    differing: Dict[str, str] = field(default_factory=dict)
    unexpected: List[str] = field(default_factory=list)

    @property
    def matched(self) -> int:
        return self.expected - len(self.missing) - len(self.differing)

    @property
    def ok(self) -> bool:
        return not (self.missing or self.differing or self.unexpected)

    def problems(self) -> List[str]:
        return ([f"Missing key in {self.table}: '{key}'" for key in self.missing]
                + [f"{self.table}[{key}]: {msg}" for key, msg in self.differing.items()]
                + [f"Unexpected key in {self.table}: '{key}'" for key in self.unexpected])

    def to_dict(self) -> Dict[str, Any]:
        return {
            'expected': self.expected,
            'matched': self.matched,
            'missing': self.missing,
            'differing': self.differing,
            'unexpected': self.unexpected,
        }


@dataclass
class TestResult:
    """
    Outcome of one test vector.

    errors holds failures to produce a table at all (bad payload, encode
    or decode errors); checks holds the per-table comparison otherwise.
    """
    name: str
    passed: bool
    description: str = ""
    payload_hex: str = ""
    actual: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    checks: List[TableCheck] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def problems(self) -> List[str]:
        return self.errors + [p for check in self.checks for p in check.problems()]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'passed': self.passed,
            'payload': self.payload_hex,
            'tables': {check.table: check.to_dict() for check in self.checks},
            'errors': self.problems,
        }


@dataclass
class ValidationResult:
    """Result of definition validation."""
    definition_valid: bool
    definition_errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    test_results: List[TestResult] = field(default_factory=list)

    @property
    def tests_passed(self) -> int:
        return sum(1 for t in self.test_results if t.passed)

    @property
    def tests_failed(self) -> int:
        return sum(1 for t in self.test_results if not t.passed)

    @property
    def total_tests(self) -> int:
        return len(self.test_results)

    @property
    def all_passed(self) -> bool:
        return self.definition_valid and self.tests_failed == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'definition_valid': self.definition_valid,
            'definition_errors': self.definition_errors,
            'warnings': self.warnings,
            'tests_passed': self.tests_passed,
            'tests_failed': self.tests_failed,
            'total_tests': self.total_tests,
            'all_passed': self.all_passed,
            'test_results': [t.to_dict() for t in self.test_results],
        }


def values_match(expected: Any, actual: Any, tolerance: float = 1e-9) -> Tuple[bool, str]:
    """Compare expected and actual values with tolerance for floats."""
    if isinstance(expected, bool) or isinstance(actual, bool):
        if expected != actual:
            return False, f"expected {expected}, got {actual}"
        return True, ""

    if isinstance(expected, (int, float)) and isinstance(actual, (int, float)):
        if abs(expected - actual) > tolerance * max(1.0, abs(expected)):
            return False, f"expected {expected}, got {actual} (diff: {abs(expected - actual)})"
        return True, ""

    if isinstance(expected, str) and isinstance(actual, str):
        if expected != actual:
            return False, f"expected '{expected}', got '{actual}'"
        return True, ""

    if type(expected) != type(actual):
        return False, f"type mismatch: expected {type(expected).__name__}, got {type(actual).__name__}"

    if expected != actual:
        return False, f"expected {expected}, got {actual}"

    return True, ""


def find_unresolved_types(type_map: TypeMap) -> List[str]:
    """Field types that are neither builtin nor defined in the definition."""
    missing = []
    for name, msg_type in type_map.items():
        for f in msg_type.fields:
            base_type = split_array_type(f.type_name)[0]
            if not is_builtin_type(base_type) and base_type not in type_map:
                missing.append(f"{name}.{f.field_name}: type '{base_type}' is not defined")
    return missing


def validate_document_structure(document: Any) -> List[str]:
    """Check required keys and their types."""
    if not isinstance(document, dict):
        return ["Document must be a mapping"]

    errors = []
    for key in ('type', 'definition'):
        if key not in document:
            errors.append(f"Missing required key '{key}'")
        elif not isinstance(document[key], str):
            errors.append(f"'{key}' must be a string")

    endian = document.get('endian', Endian.LITTLE.value)
    if endian not in [e.value for e in Endian]:
        errors.append(f"'endian' must be 'little' or 'big', got '{endian}'")

    vectors = document.get('test_vectors', [])
    if not isinstance(vectors, list):
        errors.append("'test_vectors' must be a list")
    else:
        for i, tv in enumerate(vectors):
            if not isinstance(tv, dict):
                errors.append(f"test_vectors[{i}]: must be a mapping")
            elif 'payload' not in tv and 'data' not in tv:
                errors.append(f"test_vectors[{i}]: needs 'payload' or 'data'")
            else:
                expected = tv.get('expected') or {}
                if not isinstance(expected, dict) or not all(
                        isinstance(table, dict) for table in expected.values() if table is not None):
                    errors.append(f"test_vectors[{i}]: 'expected' must map table names to mappings")
    return errors


def compare_table(table_name: str, expected: Dict[str, Any], actual: Dict[str, Any],
                  exact: bool = True) -> TableCheck:
    """Compare the expected entries of one table; exact also flags extra keys."""
    check = TableCheck(table=table_name, expected=len(expected))
    for key, expected_value in expected.items():
        if key not in actual:
            check.missing.append(key)
            continue
        match, msg = values_match(expected_value, actual[key])
        if not match:
            check.differing[key] = msg
    if exact:
        check.unexpected = [key for key in actual if key not in expected]
    return check


def run_test_vector(decoder: FlatDecoder, encoder: FlatEncoder, type_name: str,
                    rules: List[SubstitutionRule], tv: Dict[str, Any]) -> TestResult:
    """Run a single test vector and return result."""
    result = TestResult(
        name=tv.get('name', 'unnamed'),
        passed=False,
        description=tv.get('description', ''),
    )

    try:
        if 'payload' in tv:
            payload = parse_payload(tv['payload'])
        else:
            encoded = encoder.encode(type_name, tv['data'])
            if not encoded.success:
                result.errors.extend(encoded.errors)
                return result
            payload = encoded.payload
        result.payload_hex = payload.hex().upper()
    except ValueError as e:
        result.errors.append(f"Failed to parse payload: {e}")
        return result

    decode_result = decoder.decode(type_name, payload)
    apply_name_transform(rules, decode_result.table)
    result.actual = decode_result.table.to_dict()

    if tv.get('expect_error'):
        if decode_result.success:
            result.errors.append("Expected decode error, but decode succeeded")
        result.passed = len(result.errors) == 0
        return result

    if not decode_result.success:
        result.errors.extend(decode_result.errors)
        return result

    expected = tv.get('expected') or {}
    for table_name in TABLE_NAMES:
        if expected.get(table_name) is not None:
            result.checks.append(compare_table(
                table_name, expected[table_name], result.actual[table_name],
                tv.get('exact', True)))

    result.passed = all(check.ok for check in result.checks)
    return result


def validate_message(document: Dict[str, Any]) -> ValidationResult:
    """Validate a definition document and run all test vectors."""
    result = ValidationResult(definition_valid=True)

    structure_errors = validate_document_structure(document)
    if structure_errors:
        result.definition_valid = False
        result.definition_errors = structure_errors
        return result

    try:
        rules = rules_from_config(document.get('rules'))
    except ValueError as e:
        result.definition_valid = False
        result.definition_errors.append(f"Invalid rules: {e}")
        return result

    type_name = document['type']
    type_map = build_type_map(type_name, document['definition'])
    result.warnings.extend(find_unresolved_types(type_map))

    endian = Endian(document.get('endian', Endian.LITTLE.value))
    decoder = FlatDecoder(type_map, endian)
    encoder = FlatEncoder(type_map, endian)

    for tv in document.get('test_vectors', []):
        result.test_results.append(run_test_vector(decoder, encoder, type_name, rules, tv))

    return result


def format_table_check(check: TableCheck, actual: Dict[str, Any]) -> List[str]:
    """One summary line for a table, then one line per offending key."""
    counts = [f"{len(keys)} {label}" for label, keys in (
        ('missing', check.missing),
        ('differing', check.differing),
        ('unexpected', check.unexpected),
    ) if keys]
    summary = f"{check.table:<12} {check.matched}/{check.expected} matched"
    if counts:
        summary += f" ({', '.join(counts)})"

    lines = [summary]
    lines.extend(f"  - {key}" for key in check.missing)
    lines.extend(f"  ~ {key}: {msg}" for key, msg in check.differing.items())
    lines.extend(f"  + {key} = {actual[key]!r}" for key in check.unexpected)
    return lines


def print_results(result: ValidationResult, verbose: bool = False):
    """Print the per-vector, per-table comparison to console."""
    if not result.definition_valid:
        print("Definition: INVALID")
        for error in result.definition_errors:
            print(f"  - {error}")
        return

    print("Definition: VALID")
    for warning in result.warnings:
        print(f"  Warning: {warning}")

    if result.total_tests == 0:
        print("\nNo test vectors found in document.")
        return

    print(f"\nTest Vectors: {result.tests_passed}/{result.total_tests} passed")
    print("-" * 50)

    totals = {name: [0, 0] for name in TABLE_NAMES}
    for tr in result.test_results:
        symbol = "✓" if tr.passed else "✗"
        print(f"{symbol} {tr.name}: {'PASS' if tr.passed else 'FAIL'}")
        for check in tr.checks:
            totals[check.table][0] += check.matched
            totals[check.table][1] += check.expected

        if tr.passed and not verbose:
            continue
        if tr.description:
            print(f"    {tr.description}")
        if verbose and tr.payload_hex:
            print(f"    payload {tr.payload_hex}")
        for error in tr.errors:
            print(f"    ERROR: {error}")
        for check in tr.checks:
            for line in format_table_check(check, tr.actual.get(check.table, {})):
                print(f"    {line}")

    print("-" * 50)
    for name, (matched, expected) in totals.items():
        if expected:
            print(f"{name:<12} {matched}/{expected} expected entries matched")
    if result.all_passed:
        print(f"PASSED: All {result.total_tests} tests passed")
    else:
        print(f"FAILED: {result.tests_failed} of {result.total_tests} tests failed")


def main():
    parser = argparse.ArgumentParser(
        description='Validate a message definition and run its test vectors'
    )
    parser.add_argument('document', help='Path to definition YAML file')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Show detailed output for all tests')
    parser.add_argument('--json', action='store_true',
                        help='Output results as JSON')
    args = parser.parse_args()

    try:
        with open(args.document) as f:
            document = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        print(f"Error loading document: {e}", file=sys.stderr)
        sys.exit(1)

    result = validate_message(document)

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print(f"Validating: {args.document}")
        print("=" * 50)
        print_results(result, args.verbose)

    sys.exit(0 if result.all_passed else 1)


if __name__ == '__main__':
    main()
