"""
script_table.py - Variable-length byte sequence to text decoding.

A script table is a trie keyed by byte values. Each node may carry a
replacement string and a size expression giving the length of the run that
starts at the match position. Bytes with no entry are rendered as [XX] hex
escapes, so every input decodes to some text.

Schema format (inside the metadata document):

    Script Tables:
      Main:
        Lengths:
          0x80: 2              # 0x80 takes one parameter byte
          0xF0:
            default: ARG_01 + 2  # length-prefixed run
          0xE0:
            "=": 2
            0x01: 3
        Replacements:
          0x00: "A"
          0xE0:
            0x01: "<two>"

The original list format is also accepted. XX matches any byte, which is
written as an escape after the replacement; the longest matching entry wins:

      Old:
        - Sequence: [0x80, XX]
          Replacement: "<wait>"
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from yaml.nodes import Node

from . import nodes
from .errors import MalformedDocument, SizeError, SizeVariableUnbound
from .size_expr import MAX_ARGS, bind_bytes, evaluate_size

logger = logging.getLogger(__name__)

DEFAULT_SIZE = "1"

# Keys that set the size (Lengths) or replacement (Replacements) of a level
LEVEL_KEYS = ('=', 'default')

WILDCARD = 'XX'


def hex_escape(data: bytes) -> str:
    return ''.join(f"[{b:02X}]" for b in data)


@dataclass
class ScriptNode:
    """One trie level: replacement, run size and children by next byte."""
    replacement: Optional[str] = None
    size: str = DEFAULT_SIZE
    children: Dict[int, 'ScriptNode'] = field(default_factory=dict)

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def child(self, value: int, create: bool = False) -> Optional['ScriptNode']:
        node = self.children.get(value)
        if node is None and create:
            node = ScriptNode(size=self.size)
            self.children[value] = node
        return node


@dataclass
class SequenceEntry:
    """One entry of a list-format table: fixed bytes and XX wildcards (None)."""
    pattern: Tuple[Optional[int], ...]
    replacement: Optional[str] = None

    def matches(self, data: bytes, start: int) -> bool:
        if start + len(self.pattern) > len(data):
            return False
        return all(ref is None or ref == data[start + i]
                   for i, ref in enumerate(self.pattern))

    def render(self, run: bytes) -> str:
        if self.replacement is None:
            return hex_escape(run)
        params = bytes(b for b, ref in zip(run, self.pattern) if ref is None)
        return self.replacement + hex_escape(params)


@dataclass
class ScriptTable:
    """Byte sequence <-> string mapping."""
    name: str = ''
    root: ScriptNode = field(default_factory=ScriptNode)
    sequences: List[SequenceEntry] = field(default_factory=list)

    def _run_size(self, node: ScriptNode, data: bytes, start: int) -> int:
        window = data[start:start + MAX_ARGS]
        try:
            return evaluate_size(node.size, bind_bytes(window))
        except SizeVariableUnbound as e:
            if len(window) < MAX_ARGS:
                # input ends inside the length prefix; the run takes the rest
                return len(window)
            raise e.with_context(f"{self.name}[{start}]")
        except SizeError as e:
            raise e.with_context(f"{self.name}[{start}]")

    def _match(self, data: bytes, start: int) -> Tuple[ScriptNode, int, int]:
        """
        Find the run starting at ``start``.

        Returns (terminal node, bytes matched through the trie, run length).
        """
        node = self.root.children[data[start]]
        depth = 1
        size = self._run_size(node, data, start)
        while not node.is_leaf and depth < size and start + depth < len(data):
            nxt = node.children.get(data[start + depth])
            if nxt is None:
                break
            node = nxt
            depth += 1
            size = self._run_size(node, data, start)
        run = min(max(depth, size), len(data) - start)
        return node, depth, run

    def decode(self, data: bytes) -> str:
        """Convert a byte string to text according to the loaded rules."""
        data = bytes(data)
        if self.sequences:
            return self._decode_sequences(data)
        output: List[str] = []
        i = 0
        while i < len(data):
            if data[i] not in self.root.children:
                output.append(hex_escape(data[i:i + 1]))
                i += 1
                continue
            node, depth, run = self._match(data, i)
            if node.replacement is None:
                output.append(hex_escape(data[i:i + run]))
            else:
                output.append(node.replacement)
                output.append(hex_escape(data[i + depth:i + run]))
            i += run
        return ''.join(output)

    def _longest_sequence(self, data: bytes, start: int) -> Optional[SequenceEntry]:
        # ties go to the entry listed first
        candidates = [entry for entry in self.sequences if entry.matches(data, start)]
        return max(candidates, key=lambda entry: len(entry.pattern), default=None)

    def _decode_sequences(self, data: bytes) -> str:
        output: List[str] = []
        i = 0
        while i < len(data):
            entry = self._longest_sequence(data, i)
            if entry is None:
                output.append(hex_escape(data[i:i + 1]))
                i += 1
                continue
            run = len(entry.pattern)
            output.append(entry.render(data[i:i + run]))
            i += run
        return ''.join(output)

    def encode(self, text: str) -> bytes:
        """Convert text back to bytes. Not supported."""
        raise NotImplementedError("Script table text encoding is not supported")

    def add_sequence(self, sequence: List[Optional[int]], replacement: Optional[str]) -> None:
        """Add a byte sequence; None entries are wildcard parameter bytes."""
        if not sequence or sequence[0] is None:
            raise MalformedDocument(f"Script table {self.name}: sequence must start with a byte")
        self.sequences.append(SequenceEntry(tuple(sequence), replacement))


def _byte_key(key: Node, table: str) -> int:
    try:
        value = nodes.scalar_int(key)
    except ValueError as e:
        raise MalformedDocument(f"Script table {table}: invalid byte {e}")
    if not 0 <= value <= 0xFF:
        raise MalformedDocument(f"Script table {table}: byte out of range: {value}")
    return value


def _size_text(node: Node, table: str) -> str:
    if not nodes.is_scalar(node):
        raise MalformedDocument(f"Script table {table}: lengths must be sizes")
    return str(nodes.to_python(node))


def _load_lengths(table: ScriptTable, parent: ScriptNode, mapping: Node) -> None:
    if not nodes.is_mapping(mapping):
        raise MalformedDocument(f"Script table {table.name}: Lengths must be a mapping")
    for level_key in LEVEL_KEYS:
        level = nodes.get(mapping, level_key)
        if level is not None:
            parent.size = _size_text(level, table.name)
    for key, value in nodes.items(mapping):
        if nodes.key_text(key) in LEVEL_KEYS:
            continue
        node = parent.child(_byte_key(key, table.name), create=True)
        if nodes.is_mapping(value):
            _load_lengths(table, node, value)
        elif nodes.is_scalar(value):
            node.size = _size_text(value, table.name)
        else:
            raise MalformedDocument(
                f"Script table {table.name}: length of {nodes.key_text(key)} must be a size")


def _load_replacements(table: ScriptTable, parent: ScriptNode, mapping: Node) -> None:
    if not nodes.is_mapping(mapping):
        raise MalformedDocument(f"Script table {table.name}: Replacements must be a mapping")
    for key, value in nodes.items(mapping):
        if nodes.key_text(key) in LEVEL_KEYS:
            parent.replacement = nodes.scalar_text(value)
            continue
        node = parent.child(_byte_key(key, table.name), create=True)
        if nodes.is_mapping(value):
            _load_replacements(table, node, value)
        elif nodes.is_scalar(value):
            node.replacement = nodes.scalar_text(value)
        else:
            raise MalformedDocument(
                f"Script table {table.name}: replacement of {nodes.key_text(key)} must be text")


def _load_sequences(table: ScriptTable, sequence: Node) -> None:
    for entry in sequence.value:
        if not nodes.is_mapping(entry) or nodes.get(entry, 'Sequence') is None:
            raise MalformedDocument(f"Script table {table.name}: entries need a Sequence")
        seq_node = nodes.get(entry, 'Sequence')
        items = seq_node.value if nodes.is_sequence(seq_node) else [seq_node]
        seq: List[Optional[int]] = []
        for item in items:
            if nodes.is_scalar(item) and str(item.value).upper() == WILDCARD:
                seq.append(None)
            else:
                seq.append(_byte_key(item, table.name))
        replacement = nodes.get(entry, 'Replacement')
        table.add_sequence(seq, nodes.scalar_text(replacement) if replacement is not None else None)


def build_script_table(name: str, node: Node) -> ScriptTable:
    """
    Build a ScriptTable from its schema node.

    Sizes are loaded before replacements: a byte's sub-table has to exist
    before a replacement can be attached below it.
    """
    table = ScriptTable(name=name)
    if nodes.is_sequence(node):
        _load_sequences(table, node)
    elif nodes.is_mapping(node):
        for key, _ in nodes.items(node):
            if nodes.key_text(key) not in ('Lengths', 'Replacements'):
                raise MalformedDocument(
                    f"Script table {name}: unknown key {nodes.key_text(key)}")
        lengths = nodes.get(node, 'Lengths')
        if lengths is not None:
            _load_lengths(table, table.root, lengths)
        replacements = nodes.get(node, 'Replacements')
        if replacements is not None:
            _load_replacements(table, table.root, replacements)
    else:
        raise MalformedDocument(f"Script table {name} must be a mapping or a sequence")
    logger.debug("Loaded script table %s with %d first bytes", name, len(table.root.children))
    return table
