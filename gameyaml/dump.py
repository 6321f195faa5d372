"""
dump.py - Write a loaded schema back out as canonical YAML.

Entries are written with explicit kind tags and canonical key names, so
loading the output again reports no renamed or legacy keys.

Usage:
    from gameyaml.dump import game_to_yaml

    print(game_to_yaml(load_game_file("old-format.yml")))
"""

import re
from typing import List, Tuple

import yaml
from yaml.nodes import MappingNode, Node, ScalarNode, SequenceNode

from .model import Endian, Field, FieldKind, GameData
from .schema import KIND_TAGS
from .script_table import WILDCARD, ScriptNode, ScriptTable

STR_TAG = 'tag:yaml.org,2002:str'
INT_TAG = 'tag:yaml.org,2002:int'
BOOL_TAG = 'tag:yaml.org,2002:bool'
MAP_TAG = 'tag:yaml.org,2002:map'
SEQ_TAG = 'tag:yaml.org,2002:seq'

_LITERAL_SIZE = re.compile(r'^\d+$')


def _str(text: str) -> ScalarNode:
    return ScalarNode(STR_TAG, str(text))


def _int(number: int, hexadecimal: bool = False) -> ScalarNode:
    if hexadecimal:
        return ScalarNode(INT_TAG, f"0x{number:X}")
    return ScalarNode(INT_TAG, str(number))


def _mapping(pairs: List[Tuple[Node, Node]], tag: str = MAP_TAG) -> MappingNode:
    return MappingNode(tag, pairs)


def _sequence(items: List[Node]) -> SequenceNode:
    return SequenceNode(SEQ_TAG, items)


def _text_mapping(values: dict) -> MappingNode:
    return _mapping([(_str(k), _str(v)) for k, v in values.items()])


def _offset_names(values: dict) -> SequenceNode:
    return _sequence([
        _mapping([(_str('Offset'), _int(offset, True)), (_str('Name'), _str(name))])
        for offset, name in values.items()
    ])


def field_to_node(fld: Field, with_name: bool = False) -> MappingNode:
    """Tagged YAML node describing ``fld``."""
    pairs: List[Tuple[Node, Node]] = []

    def add(key: str, value: Node) -> None:
        pairs.append((_str(key), value))

    if with_name and fld.name:
        add('Name', _str(fld.name))
    if fld.pretty_name:
        add('Pretty Name', _str(fld.pretty_name))
    if fld.description:
        add('Description', _str(fld.description))
    if fld.notes:
        add('Notes', _str(fld.notes))
    if fld.address is not None:
        add('Offset', _int(fld.address, True))
    if fld.size is not None:
        size = str(fld.size)
        add('Size', _int(int(size)) if _LITERAL_SIZE.match(size) else _str(size))
    if fld.kind in (FieldKind.INTEGER, FieldKind.POINTER):
        if fld.is_signed:
            add('Signed', ScalarNode(BOOL_TAG, 'true'))
        if fld.kind == FieldKind.INTEGER and fld.number_base != 10:
            add('Base', _int(fld.number_base))
        if fld.kind == FieldKind.POINTER and fld.pointer_base:
            add('Base', _int(fld.pointer_base, True))
    if fld.endianness == Endian.BIG:
        add('Endianness', _str('Big'))
    if fld.values:
        add('Values', _mapping([(_int(k), _str(v)) for k, v in fld.values.items()]))
    if fld.bit_values:
        add('Bit Values', _sequence([_str(v) for v in fld.bit_values]))
    if fld.char_set:
        add('Charset', _str(fld.char_set))
    if fld.format:
        add('Format', _str(fld.format))
    if fld.terminator:
        add('Terminator', _sequence([_int(b, True) for b in fld.terminator]))
    if fld.references:
        add('References', _str(fld.references))
    if fld.labels:
        add('Labels', _offset_names(fld.labels))
    if fld.local_variables:
        add('Locals', _offset_names(fld.local_variables))
    for key, values in (('Arguments', fld.arguments), ('Initial State', fld.initial_state),
                        ('Final State', fld.final_state), ('Return Values', fld.return_values)):
        if values:
            add(key, _text_mapping(values))
    if fld.label_states:
        add('Label States', _sequence([
            _mapping([(_str('Offset'), _str(offset))] +
                     [(_str(k), _str(v)) for k, v in states.items()])
            for offset, states in fld.label_states.items()
        ]))
    if fld.kind == FieldKind.STRUCT and fld.members:
        if all(member.name for member in fld.members):
            add('Entries', _mapping([(_str(member.name), field_to_node(member))
                                     for member in fld.members]))
        else:
            add('Entries', _sequence([field_to_node(member, with_name=True)
                                      for member in fld.members]))
    if fld.kind == FieldKind.ARRAY and fld.item_type is not None:
        add('Item Type', field_to_node(fld.item_type, with_name=True))
    return _mapping(pairs, tag='!' + KIND_TAGS[fld.kind])


def _lengths_node(node: ScriptNode) -> MappingNode:
    pairs = []
    for value, child in node.children.items():
        if child.children:
            sub = _lengths_node(child)
            sub.value.insert(0, (_str('='), _str(child.size)))
            pairs.append((_int(value, True), sub))
        else:
            pairs.append((_int(value, True), _str(child.size)))
    return _mapping(pairs)


def _replacements_node(node: ScriptNode) -> MappingNode:
    pairs = []
    for value, child in node.children.items():
        if child.children:
            sub = _replacements_node(child)
            if child.replacement is not None:
                sub.value.insert(0, (_str('='), _str(child.replacement)))
            pairs.append((_int(value, True), sub))
        elif child.replacement is not None:
            pairs.append((_int(value, True), _str(child.replacement)))
    return _mapping(pairs)


def _sequence_entries_node(table: ScriptTable) -> SequenceNode:
    entries = []
    for entry in table.sequences:
        pairs = [(_str('Sequence'), _sequence([
            _str(WILDCARD) if value is None else _int(value, True)
            for value in entry.pattern
        ]))]
        if entry.replacement is not None:
            pairs.append((_str('Replacement'), _str(entry.replacement)))
        entries.append(_mapping(pairs))
    return _sequence(entries)


def script_table_to_node(table: ScriptTable) -> Node:
    if table.sequences:
        return _sequence_entries_node(table)
    lengths = _lengths_node(table.root)
    lengths.value.insert(0, (_str('='), _str(table.root.size)))
    return _mapping([(_str('Lengths'), lengths),
                     (_str('Replacements'), _replacements_node(table.root))])


def metadata_to_node(game: GameData) -> MappingNode:
    pairs: List[Tuple[Node, Node]] = [
        (_str('Title'), _str(game.title)),
        (_str('Country'), _str(game.country)),
    ]
    for key, value in (('Platform', game.platform), ('Version', game.version),
                       ('Clean Hash', game.clean_hash),
                       ('Default Script', game.default_script)):
        if value:
            pairs.append((_str(key), _str(value)))
    if game.processor.architecture or game.processor.settings:
        settings = dict(game.processor.settings)
        if game.processor.architecture:
            settings = {'Architecture': game.processor.architecture, **settings}
        pairs.append((_str('Processor'), _text_mapping(settings)))
    if game.script_tables:
        pairs.append((_str('Script Tables'), _mapping([
            (_str(name), script_table_to_node(table))
            for name, table in game.script_tables.items()
        ])))
    return _mapping(pairs)


def entries_to_node(game: GameData) -> MappingNode:
    return _mapping([(_str(entry.name), field_to_node(entry)) for entry in game.entries])


def game_to_yaml(game: GameData) -> str:
    """Both schema documents as one YAML stream."""
    return yaml.serialize_all([metadata_to_node(game), entries_to_node(game)],
                              Dumper=yaml.SafeDumper, explicit_start=True,
                              allow_unicode=True)


def field_to_yaml(fld: Field) -> str:
    return yaml.serialize(field_to_node(fld), Dumper=yaml.SafeDumper, allow_unicode=True)

