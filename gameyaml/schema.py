"""
schema.py - Build and validate game schemas from YAML.

A schema file holds two YAML documents: metadata (title, country, script
tables, ...) and a mapping of entry names to tagged field definitions:

    Title: Example
    Country: USA
    ---
    PLAYER_STATS: !struct
      Offset: 0x100
      Entries:
        HP: !int
          Size: 2
        NAME: !script
          Size: 8

Construction is diagnostic-first: rule violations inside entries become
GameStructIssue records on the offending Field. Only problems that make the
whole document unusable raise (see errors.SchemaStructuralError).

Usage:
    from gameyaml.schema import load_game_file

    game = load_game_file("game.yml")
    for issue in game.problems():
        print(issue.level.value, issue)
"""

import functools
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union

import yaml
from yaml.nodes import Node

from . import nodes
from .errors import MalformedDocument, MissingMetadata, SizeError
from .model import (
    Endian, Field, FieldKind, GameData, GameStructIssue, Processor,
    incomplete, severe,
)
from .normalize import normalize_keys
from .script_table import build_script_table
from .size_expr import resolved_size, static_size

logger = logging.getLogger(__name__)

# Explicit tags (!int, !struct, ...) and legacy "Type:" values
TAG_KINDS: Dict[str, FieldKind] = {
    'int': FieldKind.INTEGER,
    'integer': FieldKind.INTEGER,
    'pointer': FieldKind.POINTER,
    'struct': FieldKind.STRUCT,
    'array': FieldKind.ARRAY,
    'bitfield': FieldKind.BITFIELD,
    'tile': FieldKind.TILE,
    'color': FieldKind.COLOR,
    'assembly': FieldKind.ASSEMBLY,
    'script': FieldKind.SCRIPT,
    'null': FieldKind.NULL,
    'undefined': FieldKind.UNDEFINED,
    'unknown': FieldKind.UNDEFINED,
    'empty': FieldKind.UNDEFINED,
}

# Canonical tag written back for each kind
KIND_TAGS: Dict[FieldKind, str] = {
    FieldKind.INTEGER: 'int',
    FieldKind.POINTER: 'pointer',
    FieldKind.STRUCT: 'struct',
    FieldKind.ARRAY: 'array',
    FieldKind.BITFIELD: 'bitfield',
    FieldKind.TILE: 'tile',
    FieldKind.COLOR: 'color',
    FieldKind.ASSEMBLY: 'assembly',
    FieldKind.SCRIPT: 'script',
    FieldKind.NULL: 'null',
    FieldKind.UNDEFINED: 'undefined',
}

COMMON_KEYS = (
    'Name', 'Pretty Name', 'Description', 'Notes', 'Offset', 'Size',
    'Terminator', 'References', 'Labels',
)

KIND_KEYS: Dict[FieldKind, Tuple[str, ...]] = {
    FieldKind.INTEGER: ('Signed', 'Base', 'Endianness', 'Values', 'Bit Values'),
    FieldKind.POINTER: ('Signed', 'Base', 'Endianness'),
    FieldKind.BITFIELD: ('Endianness', 'Bit Values'),
    FieldKind.STRUCT: ('Entries',),
    FieldKind.ARRAY: ('Item Type',),
    FieldKind.TILE: ('Format',),
    FieldKind.COLOR: ('Format',),
    FieldKind.ASSEMBLY: ('Locals', 'Arguments', 'Initial State', 'Final State',
                         'Return Values', 'Label States'),
    FieldKind.SCRIPT: ('Charset',),
    FieldKind.NULL: (),
    FieldKind.UNDEFINED: (),
}

# Misplacing these discards a whole sub-tree
STRUCTURAL_KEYS = ('Entries', 'Item Type')

NUMBER_BASES = (2, 8, 10, 16)

MAX_POINTER_SIZE = 8

CANONICAL_NAME = re.compile(r'^[A-Z0-9_]+$')

HASH_PATTERN = re.compile(r'^[0-9a-fA-F]{40}$')


# =============================================================================
# Key handlers (shared by every kind)
# =============================================================================

def _text_map(node: Node) -> Dict[str, str]:
    if not nodes.is_mapping(node):
        raise ValueError("must be a mapping")
    return {nodes.key_text(k): str(nodes.to_python(v)) for k, v in nodes.items(node)}


def _offset_names(node: Node) -> Dict[int, str]:
    """Parse a sequence of {Offset, Name} mappings."""
    if not nodes.is_sequence(node):
        raise ValueError("must be a sequence of Offset/Name mappings")
    found = {}
    for item in node.value:
        offset = nodes.get(item, 'Offset') if nodes.is_mapping(item) else None
        name = nodes.get(item, 'Name') if nodes.is_mapping(item) else None
        if offset is None or name is None:
            raise ValueError("every item needs Offset and Name")
        found[nodes.scalar_int(offset)] = nodes.scalar_text(name)
    return found


def _byte_values(node: Node) -> bytes:
    items = node.value if nodes.is_sequence(node) else [node]
    values = [nodes.scalar_int(item) for item in items]
    if any(not 0 <= v <= 0xFF for v in values):
        raise ValueError(f"byte values must be 0-255: {values}")
    return bytes(values)


def _set_text(attr: str, fld: Field, node: Node) -> None:
    setattr(fld, attr, nodes.scalar_text(node))


def _set_offset(fld: Field, node: Node) -> None:
    offset = nodes.scalar_int(node)
    if offset < 0:
        raise ValueError(f"negative offset {offset}")
    fld.address = offset


def _set_size(fld: Field, node: Node) -> None:
    if not nodes.is_scalar(node):
        raise ValueError("must be a number or a size expression")
    value = nodes.to_python(node)
    if value is None or str(value).strip() == "":
        raise ValueError("size is empty")
    fld.size = str(value)


def _set_signed(fld: Field, node: Node) -> None:
    fld.is_signed = nodes.scalar_bool(node)


def _set_base(fld: Field, node: Node) -> None:
    base = nodes.scalar_int(node)
    if fld.kind == FieldKind.POINTER:
        fld.pointer_base = base
    elif base not in NUMBER_BASES:
        raise ValueError(f"number base must be one of {NUMBER_BASES}")
    else:
        fld.number_base = base


def _set_endianness(fld: Field, node: Node) -> None:
    text = nodes.scalar_text(node).strip().lower()
    if text not in ('little', 'big'):
        raise ValueError("must be Little or Big")
    fld.endianness = Endian(text)


def _set_values(fld: Field, node: Node) -> None:
    if nodes.is_mapping(node):
        fld.values = {nodes.scalar_int(k): nodes.scalar_text(v) for k, v in nodes.items(node)}
    elif nodes.is_sequence(node):
        fld.values = {i: nodes.scalar_text(v) for i, v in enumerate(node.value)}
    else:
        raise ValueError("must be a mapping or a sequence")


def _set_bit_values(fld: Field, node: Node) -> None:
    if not nodes.is_sequence(node):
        raise ValueError("must be a sequence")
    fld.bit_values = [nodes.scalar_text(v) for v in node.value]


def _set_terminator(fld: Field, node: Node) -> None:
    fld.terminator = _byte_values(node)


def _set_labels(fld: Field, node: Node) -> None:
    fld.labels = _offset_names(node)


def _set_locals(fld: Field, node: Node) -> None:
    fld.local_variables = _offset_names(node)


def _set_mapping(attr: str, fld: Field, node: Node) -> None:
    setattr(fld, attr, _text_map(node))


def _set_label_states(fld: Field, node: Node) -> None:
    if not nodes.is_sequence(node):
        raise ValueError("must be a sequence")
    for item in node.value:
        states = _text_map(item)
        offset = states.pop('Offset', None)
        if offset is None:
            raise ValueError("every label state needs an Offset")
        fld.label_states[offset] = states


def _set_entries(fld: Field, node: Node) -> None:
    members = []
    if nodes.is_mapping(node):
        for key, value in nodes.items(node):
            member = construct_field(value)
            member.name = nodes.key_text(key)
            members.append(member)
    elif nodes.is_sequence(node):
        for value in node.value:
            members.append(construct_field(value))
    else:
        raise ValueError("must be a mapping or a sequence")
    fld.members = members


def _set_item_type(fld: Field, node: Node) -> None:
    item = construct_field(node)
    if item.address is not None:
        item.add_issue(severe(
            "Array item type has an offset",
            "Remove Offset; elements are positioned by the array"))
    fld.item_type = item


KEY_HANDLERS: Dict[str, Callable[[Field, Node], None]] = {
    'Name': functools.partial(_set_text, 'name'),
    'Pretty Name': functools.partial(_set_text, 'pretty_name'),
    'Description': functools.partial(_set_text, 'description'),
    'Notes': functools.partial(_set_text, 'notes'),
    'Offset': _set_offset,
    'Size': _set_size,
    'Signed': _set_signed,
    'Base': _set_base,
    'Endianness': _set_endianness,
    'Values': _set_values,
    'Bit Values': _set_bit_values,
    'Charset': functools.partial(_set_text, 'char_set'),
    'Format': functools.partial(_set_text, 'format'),
    'Terminator': _set_terminator,
    'References': functools.partial(_set_text, 'references'),
    'Labels': _set_labels,
    'Locals': _set_locals,
    'Entries': _set_entries,
    'Item Type': _set_item_type,
    'Arguments': functools.partial(_set_mapping, 'arguments'),
    'Initial State': functools.partial(_set_mapping, 'initial_state'),
    'Final State': functools.partial(_set_mapping, 'final_state'),
    'Return Values': functools.partial(_set_mapping, 'return_values'),
    'Label States': _set_label_states,
}


# =============================================================================
# Per-kind checks run after all keys are applied
# =============================================================================

def _check_struct(fld: Field) -> None:
    seen = set()
    for member in fld.members:
        if member.address is not None:
            member.add_issue(severe(
                f"Nested entry '{member.name}' has an offset",
                "Remove Offset; members are positioned by the struct"))
        if not member.name:
            member.add_issue(incomplete("Struct member has no name", "Add a Name"))
        elif member.name in seen:
            member.add_issue(severe(
                f"Duplicate entry name '{member.name}'", "Rename one of the entries"))
        seen.add(member.name)
        if member.name and not CANONICAL_NAME.match(member.name):
            member.add_issue(incomplete(
                f"Entry name '{member.name}' is not uppercase",
                "Use an uppercase name and move the display name to Pretty Name"))


def _check_array(fld: Field) -> None:
    if fld.item_type is None:
        fld.item_type = Field(kind=FieldKind.UNDEFINED, size='1')
        fld.add_issue(incomplete(
            "Array has no item type", "Add an Item Type; one-byte elements assumed"))


def _check_pointer(fld: Field) -> None:
    if fld.size is None:
        return
    try:
        size = resolved_size(fld)
    except SizeError as e:
        fld.add_issue(severe(f"Unable to resolve pointer size: {e}", "Fix the Size"))
        return
    if size > MAX_POINTER_SIZE:
        fld.add_issue(severe(
            f"Pointer size {size} exceeds {MAX_POINTER_SIZE} bytes",
            "Use an integer or array for larger data"))


KIND_CHECKS: Dict[FieldKind, Callable[[Field], None]] = {
    FieldKind.STRUCT: _check_struct,
    FieldKind.ARRAY: _check_array,
    FieldKind.POINTER: _check_pointer,
}


# =============================================================================
# Construction
# =============================================================================

def _construct(kind: FieldKind, view: Dict[str, Node],
               issues: List[GameStructIssue]) -> Field:
    """Build a Field of ``kind`` from a normalized key view."""
    fld = Field(kind=kind)
    fld.entry_problems.extend(issues)
    allowed = COMMON_KEYS + KIND_KEYS[kind]
    for key, node in view.items():
        if key == 'Type':
            fld.add_issue(incomplete(
                "Type key is redundant on a tagged entry", "Remove the Type key"))
            continue
        handler = KEY_HANDLERS.get(key)
        if handler is None:
            fld.add_issue(incomplete(f"Unknown key '{key}'", "Remove or correct the key"))
            continue
        if key not in allowed:
            level = severe if key in STRUCTURAL_KEYS else incomplete
            fld.add_issue(level(
                f"'{key}' is meaningless in this context ({kind.value})",
                f"Remove '{key}'"))
            continue
        try:
            handler(fld, node)
        except ValueError as e:
            fld.add_issue(severe(f"Invalid {key}: {e}", f"Fix the {key} value"))
    check = KIND_CHECKS.get(kind)
    if check is not None:
        check(fld)
    return fld


# One constructor per kind, built once
KIND_CONSTRUCTORS: Dict[FieldKind, Callable[[Dict[str, Node], List[GameStructIssue]], Field]] = {
    kind: functools.partial(_construct, kind) for kind in FieldKind
}


@dataclass
class Construction:
    """Outcome of canonical construction: a field, or a request for legacy."""
    field: Optional[Field] = None
    legacy: bool = False


def _undefined(issue: GameStructIssue) -> Field:
    fld = Field(kind=FieldKind.UNDEFINED)
    fld.add_issue(issue)
    return fld


def _view(node: Node) -> Tuple[Dict[str, Node], List[GameStructIssue]]:
    if nodes.is_mapping(node):
        return normalize_keys(node)
    # "FOO: !struct" with no body
    return {}, []


def construct_canonical(node: Node) -> Construction:
    tag = nodes.local_tag(node)
    if tag is None:
        return Construction(legacy=True)
    kind = TAG_KINDS.get(tag)
    if kind is None:
        return Construction(field=_undefined(severe(
            f"Unknown tag '!{tag}'", f"Use one of: {', '.join('!' + t for t in TAG_KINDS)}")))
    if not nodes.is_mapping(node) and not (nodes.is_scalar(node) and node.value == ''):
        return Construction(field=_undefined(severe(
            f"Entry tagged '!{tag}' must be a mapping", "Describe the entry as a mapping")))
    view, issues = _view(node)
    return Construction(field=KIND_CONSTRUCTORS[kind](view, issues))


def construct_legacy(node: Node) -> Field:
    """Build a Field from the untagged format that names its kind in 'Type'."""
    if not nodes.is_mapping(node):
        return _undefined(severe("Entry must be a mapping", "Describe the entry as a mapping"))
    view, issues = normalize_keys(node)
    type_node = view.pop('Type', None)
    if type_node is None:
        return _undefined(severe("Missing Type", "Tag the entry with its kind, e.g. !int"))
    type_name = nodes.scalar_text(type_node) if nodes.is_scalar(type_node) else ''
    kind = TAG_KINDS.get(type_name)
    if kind is None:
        return _undefined(severe(f"Invalid type: {type_name}", "Use a known type"))
    issues.append(incomplete(
        "Untagged legacy entry", f"Replace 'Type: {type_name}' with a !{KIND_TAGS[kind]} tag"))
    return KIND_CONSTRUCTORS[kind](view, issues)


def construct_field(node: Node) -> Field:
    """Build a Field from any entry node, tagged or legacy."""
    result = construct_canonical(node)
    if result.legacy:
        return construct_legacy(node)
    return result.field


def construct_root(name: str, node: Node) -> Field:
    """Build a top-level entry; roots need an offset and a size."""
    fld = construct_field(node)
    fld.name = name
    if fld.address is None:
        fld.add_issue(severe("Required offset key missing", "Add an Offset"))
    if fld.size is None and fld.kind != FieldKind.STRUCT:
        fld.add_issue(incomplete("Missing size", "Add a Size"))
    return fld


# =============================================================================
# Documents
# =============================================================================

def _load_metadata(document: Optional[Node]) -> GameData:
    if document is None:
        raise MissingMetadata("Missing metadata document")
    if not nodes.is_mapping(document):
        raise MalformedDocument("Invalid format for game metadata")
    meta = {nodes.key_text(k): v for k, v in nodes.items(document)}
    if 'Title' not in meta:
        raise MissingMetadata("Missing title!")
    if 'Country' not in meta:
        raise MissingMetadata("Missing country!")

    def text(key: str) -> str:
        node = meta.get(key)
        if node is None:
            return ''
        if not nodes.is_scalar(node):
            raise MalformedDocument(f"Metadata key {key} must be a scalar")
        return str(nodes.to_python(node))

    game = GameData(title=text('Title'), country=text('Country'))
    game.platform = text('Platform')
    game.version = text('Version')
    game.default_script = text('Default Script')
    game.clean_hash = text('Clean Hash')
    if game.clean_hash and not HASH_PATTERN.match(game.clean_hash):
        raise MalformedDocument(f"Clean Hash must be 40 hex characters: {game.clean_hash}")

    processor = meta.get('Processor')
    if processor is not None:
        if not nodes.is_mapping(processor):
            raise MalformedDocument("Processor must be a mapping")
        settings = _text_map(processor)
        game.processor = Processor(architecture=settings.pop('Architecture', ''),
                                   settings=settings)

    tables = meta.get('Script Tables')
    if tables is not None:
        if not nodes.is_mapping(tables):
            raise MalformedDocument("Script Tables must be a mapping")
        for key, value in nodes.items(tables):
            name = nodes.key_text(key)
            game.script_tables[name] = build_script_table(name, value)
    return game


def _check_placement(entry: Field, size: Optional[int],
                     previous: Optional[Tuple[str, int, Optional[int]]]) -> None:
    """Compare an entry's range with the previous entry in the document."""
    if previous is None or entry.address is None:
        return
    prev_name, prev_start, prev_end = previous
    start = entry.address
    end = start + size if size is not None else None
    if prev_end is not None and start < prev_end:
        intersects = end > prev_start if end is not None else start >= prev_start
        if intersects:
            entry.add_issue(severe(
                f"Overlaps with previous entry {prev_name} "
                f"({prev_start:X}-{prev_end:X})",
                "Correct the Offset or Size of one of the entries"))
    if start < prev_start:
        entry.add_issue(incomplete(
            f"Out of order: {start:X} comes before previous entry {prev_name} ({prev_start:X})",
            "Sort entries by offset"))


def _entry_size(entry: Field) -> Optional[int]:
    if entry.size is not None:
        try:
            return resolved_size(entry)
        except SizeError as e:
            entry.add_issue(severe(f"Unable to resolve size: {e}", "Fix the Size"))
            return None
    try:
        return static_size(entry)
    except SizeError:
        return None


def build_game_data(metadata: Optional[Node], definitions: Optional[Node]) -> GameData:
    """Build GameData from the metadata and entry documents."""
    game = _load_metadata(metadata)
    if definitions is None:
        raise MalformedDocument("Missing entry document")
    if nodes.is_scalar(definitions) and definitions.tag.endswith(':null'):
        logger.info("Loaded %s with no entries", game.title)
        return game
    if not nodes.is_mapping(definitions):
        raise MalformedDocument("Entry document must be a mapping of names to entries")

    seen = set()
    previous = None
    for key, node in nodes.items(definitions):
        name = nodes.key_text(key)
        logger.debug("Constructing %s", name)
        entry = construct_root(name, node)
        if name in seen:
            entry.add_issue(severe(f"Duplicate entry name '{name}'", "Rename one of the entries"))
        seen.add(name)
        size = _entry_size(entry)
        _check_placement(entry, size, previous)
        if entry.address is not None:
            previous = (name, entry.address,
                        entry.address + size if size is not None else None)
        game.entries.append(entry)

    logger.info("Loaded %s (%s): %d entries, %d script tables",
                game.title, game.country, len(game.entries), len(game.script_tables))
    return game


def _compose(stream, label: str) -> List[Node]:
    try:
        return nodes.compose_documents(stream)
    except yaml.YAMLError as e:
        raise MalformedDocument(f"Invalid YAML in {label}: {e}") from e


def load_game(stream) -> GameData:
    """Load a schema from one YAML stream holding metadata and entries."""
    documents = _compose(stream, 'schema')
    if len(documents) < 2:
        raise MalformedDocument(
            f"Expected a metadata document and an entry document, found {len(documents)}")
    if len(documents) > 2:
        raise MalformedDocument(
            f"Expected exactly two documents, found {len(documents)}")
    return build_game_data(documents[0], documents[1])


def load_game_from_strings(metadata: str, definitions: str) -> GameData:
    """Load a schema from separate metadata and entry YAML texts."""
    meta_docs = _compose(metadata, 'metadata')
    entry_docs = _compose(definitions, 'definitions')
    if not meta_docs:
        raise MissingMetadata("Missing metadata document")
    if len(meta_docs) != 1 or len(entry_docs) != 1:
        raise MalformedDocument("Metadata and definitions must be one document each")
    return build_game_data(meta_docs[0], entry_docs[0])


def load_game_file(path: Union[str, Path]) -> GameData:
    """Load a single multi-document schema file."""
    with open(path, 'r', encoding='utf-8') as f:
        return load_game(f)


def load_game_dir(path: Union[str, Path]) -> GameData:
    """Load a schema directory: metadata.yml plus one entry file."""
    path = Path(path)
    definitions = sorted(p for p in path.glob('*.yml') if p.name != 'metadata.yml')
    if len(definitions) != 1:
        raise MalformedDocument(
            f"{path}: expected one entry file besides metadata.yml, found {len(definitions)}")
    with open(path / 'metadata.yml', 'r', encoding='utf-8') as meta, \
            open(definitions[0], 'r', encoding='utf-8') as defs:
        meta_docs = _compose(meta, 'metadata.yml')
        entry_docs = _compose(defs, definitions[0].name)
    if not meta_docs:
        raise MissingMetadata("metadata.yml is empty")
    if len(meta_docs) != 1 or len(entry_docs) != 1:
        raise MalformedDocument("metadata.yml and the entry file must be one document each")
    return build_game_data(meta_docs[0], entry_docs[0])
