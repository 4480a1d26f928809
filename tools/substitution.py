#!/usr/bin/env python3
"""
substitution.py - Rename flattened keys using sibling identifier fields

Array indices in flat keys are rarely meaningful on their own:

    joint[0].position = 1.5
    joint[0].name     = "hip"

A SubstitutionRule finds the index, looks up a label stored next to it
and rewrites the key with that label:

    rule = SubstitutionRule('[#].', '[#].name', '.#.')
    joint[0].position  ->  joint.hip.position

Each template holds one '#' marking where the index (pattern, location)
or the label (substitution) goes. Rules are tried in order and at most
one applies per key; keys no rule rewrites are copied unchanged.

Rules file (YAML):

    rules:
      - pattern: "[#]."
        location: "[#].name"
        substitution: ".#."
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

import yaml

from flat_decoder import FlatTable


MARKER = '#'


def split_template(template: str, marker: str = MARKER) -> Tuple[str, str]:
    """Split a template on its first marker into (prefix, suffix)."""
    prefix, found, suffix = template.partition(marker)
    if not found:
        raise ValueError(f"Template '{template}' has no '{marker}' marker")
    return prefix, suffix


@dataclass(frozen=True)
class SubstitutionRule:
    """A (pattern, location, substitution) template triple."""
    pattern: str
    location: str
    substitution: str
    pattern_pre: str = field(init=False, repr=False)
    pattern_suf: str = field(init=False, repr=False)
    location_pre: str = field(init=False, repr=False)
    location_suf: str = field(init=False, repr=False)
    substitution_pre: str = field(init=False, repr=False)
    substitution_suf: str = field(init=False, repr=False)

    def __post_init__(self):
        for attr in ('pattern', 'location', 'substitution'):
            pre, suf = split_template(getattr(self, attr))
            object.__setattr__(self, f'{attr}_pre', pre)
            object.__setattr__(self, f'{attr}_suf', suf)

    def apply(self, key: str, identifiers: Dict[str, str]) -> Optional[str]:
        """Return the renamed key, or None when this rule does not apply."""
        pos_a = key.find(self.pattern_pre)
        if pos_a < 0:
            return None

        pos_b = pos_a + len(self.pattern_pre)
        pos_c = pos_b
        while pos_c < len(key) and key[pos_c] in '0123456789':
            pos_c += 1

        # An index needs at least one digit and something after it
        if pos_c == pos_b or pos_c == len(key):
            return None

        if not key.startswith(self.pattern_suf, pos_c):
            return None

        name_prefix = key[:pos_a]
        index = key[pos_b:pos_c]

        replacement = identifiers.get(
            name_prefix + self.location_pre + index + self.location_suf)
        if replacement is None:
            return None

        return (name_prefix + self.substitution_pre + replacement +
                self.substitution_suf + key[pos_c + len(self.pattern_suf):])


def rename_key(rules: Iterable[SubstitutionRule], key: str,
               identifiers: Dict[str, str]) -> str:
    """Apply the first matching rule to key; return key unchanged if none match."""
    for rule in rules:
        new_key = rule.apply(key, identifiers)
        if new_key is not None:
            return new_key
    return key


def apply_name_transform(rules: List[SubstitutionRule], table: FlatTable) -> Dict[str, float]:
    """
    Fill table.renamed from table.values.

    Every value appears exactly once in renamed, under its rewritten key
    if a rule matched or its original key otherwise.

    Returns:
        table.renamed
    """
    for key, value in table.values.items():
        table.renamed[rename_key(rules, key, table.identifiers)] = value
    return table.renamed


def rules_from_config(config: Any) -> List[SubstitutionRule]:
    """
    Build rules from parsed YAML.

    Accepts {'rules': [...]} or a bare list; each entry is either a
    mapping with pattern/location/substitution keys or a 3-item list.
    """
    if config is None:
        return []
    if isinstance(config, dict):
        config = config.get('rules', [])
    if not isinstance(config, list):
        raise ValueError(f"Rules must be a list, got {type(config).__name__}")

    rules = []
    for i, entry in enumerate(config):
        if isinstance(entry, dict):
            try:
                rules.append(SubstitutionRule(
                    str(entry['pattern']), str(entry['location']),
                    str(entry['substitution'])))
            except KeyError as e:
                raise ValueError(f"Rule {i}: missing key {e}")
        elif isinstance(entry, (list, tuple)) and len(entry) == 3:
            rules.append(SubstitutionRule(*(str(t) for t in entry)))
        else:
            raise ValueError(f"Rule {i}: expected mapping or 3-item list, got {entry!r}")
    return rules


def load_rules(path: Union[str, Path]) -> List[SubstitutionRule]:
    """Load substitution rules from a YAML file."""
    with open(path) as f:
        return rules_from_config(yaml.safe_load(f))
