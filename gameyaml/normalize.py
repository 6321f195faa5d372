"""
normalize.py - Canonical key view of a schema entry.

Older schemas spell keys in lowercase or use legacy names. Rather than
rewriting the YAML node in place, normalize_keys() returns an ordered
key -> node view with every deprecated key renamed to its canonical form,
plus one "renamed" issue per rewritten key. The source node is untouched,
so normalizing an already-canonical entry yields no issues.
"""

from collections import OrderedDict
from typing import Dict, List, Tuple

from yaml.nodes import MappingNode, Node

from . import nodes
from .model import GameStructIssue, incomplete

CANONICAL_KEYS = (
    'Type', 'Name', 'Pretty Name', 'Description', 'Notes', 'Offset', 'Size',
    'Signed', 'Base', 'Endianness', 'Values', 'Bit Values', 'Charset',
    'Format', 'Terminator', 'References', 'Labels', 'Locals', 'Entries',
    'Item Type', 'Arguments', 'Initial State', 'Final State',
    'Return Values', 'Label States',
)

# Legacy key names that are not merely a different capitalization
LEGACY_ALIASES = {
    'Address': 'Offset',
    'Character Set': 'Charset',
    'Local Variables': 'Locals',
    'Endian': 'Endianness',
}


def _build_renames() -> Dict[str, str]:
    renames = {}
    for key in CANONICAL_KEYS:
        renames[key.lower()] = key
    for alias, key in LEGACY_ALIASES.items():
        renames[alias.lower()] = key
    return renames


_RENAMES = _build_renames()


def canonical_key(key: str) -> str:
    """Canonical spelling of ``key``; unknown keys are returned unchanged."""
    return _RENAMES.get(key.lower(), key)


def normalize_keys(mapping: MappingNode) -> Tuple['OrderedDict[str, Node]', List[GameStructIssue]]:
    """
    Return (canonical key -> value node, rename issues) for a mapping node.

    When both a deprecated and a canonical spelling are present, the
    canonical one wins and the deprecated one is reported and ignored.
    """
    view: 'OrderedDict[str, Node]' = OrderedDict()
    issues: List[GameStructIssue] = []
    renamed_from: Dict[str, str] = {}

    for key_node, value in nodes.items(mapping):
        key = nodes.key_text(key_node)
        canonical = canonical_key(key)
        if canonical == key:
            if key in view and key in renamed_from:
                issues.append(incomplete(
                    f"Deprecated key '{renamed_from.pop(key)}' ignored in favour of '{key}'",
                    "Remove the deprecated key"))
            elif key in view:
                issues.append(incomplete(
                    f"Duplicate key '{key}'", "Remove one of the duplicate keys"))
                continue
            view[key] = value
            continue
        if canonical in view:
            issues.append(incomplete(
                f"Deprecated key '{key}' ignored in favour of '{canonical}'",
                "Remove the deprecated key"))
            continue
        issues.append(incomplete(
            f"Deprecated key '{key}' renamed to '{canonical}'",
            f"Rename '{key}' to '{canonical}'"))
        renamed_from[canonical] = key
        view[canonical] = value
    return view, issues
