"""
model.py - Schema data model for game data definitions.

A game schema is a GameData aggregate holding script tables and an ordered
list of root Field trees. Fields carry their own diagnostics
(GameStructIssue) collected while the schema was constructed.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Dict, Iterator, List, Optional

if TYPE_CHECKING:
    from .script_table import ScriptTable


class FieldKind(Enum):
    """Types of data a schema entry can describe."""
    INTEGER = 'integer'
    POINTER = 'pointer'
    STRUCT = 'struct'
    ARRAY = 'array'
    BITFIELD = 'bitfield'
    TILE = 'tile'
    COLOR = 'color'
    ASSEMBLY = 'assembly'
    SCRIPT = 'script'
    NULL = 'null'
    UNDEFINED = 'undefined'


# Kinds whose decoded payload is an integer
INTEGER_KINDS = (FieldKind.INTEGER, FieldKind.POINTER, FieldKind.BITFIELD)

# Kinds whose decoded payload is the raw byte run
RAW_KINDS = (FieldKind.SCRIPT, FieldKind.UNDEFINED, FieldKind.NULL,
             FieldKind.ASSEMBLY, FieldKind.TILE, FieldKind.COLOR)


class Endian(Enum):
    LITTLE = 'little'
    BIG = 'big'


class IssueLevel(Enum):
    SEVERE = 'severe'          # breaks parsing of the entry
    INCOMPLETE = 'incomplete'  # stylistic or missing information


@dataclass
class GameStructIssue:
    """A non-fatal problem found while constructing a Field."""
    reason: str
    fix: str = ''
    level: IssueLevel = IssueLevel.INCOMPLETE

    @property
    def severe(self) -> bool:
        return self.level == IssueLevel.SEVERE

    def __str__(self) -> str:
        if self.fix:
            return f"{self.reason} ({self.fix})"
        return self.reason


def severe(reason: str, fix: str = '') -> GameStructIssue:
    return GameStructIssue(reason, fix, IssueLevel.SEVERE)


def incomplete(reason: str, fix: str = '') -> GameStructIssue:
    return GameStructIssue(reason, fix, IssueLevel.INCOMPLETE)


@dataclass
class Field:
    """
    Definition of a contiguous chunk of game data.

    ``address`` is only set on root entries; nested fields are positioned by
    the bytes their preceding siblings consumed. ``size`` is kept as text so
    it can hold either a literal or a size expression.
    """
    kind: FieldKind
    name: str = ''
    pretty_name: str = ''
    description: str = ''
    notes: str = ''
    address: Optional[int] = None
    size: Optional[str] = None
    # Scripts
    char_set: str = ''
    # Integers
    number_base: int = 10
    is_signed: bool = False
    endianness: Endian = Endian.LITTLE
    values: Dict[int, str] = field(default_factory=dict)
    bit_values: List[str] = field(default_factory=list)
    # Pointers
    pointer_base: int = 0
    # Tiles, colors
    format: str = ''
    terminator: bytes = b''
    references: str = ''
    # Offset (relative to the field start) -> label
    labels: Dict[int, str] = field(default_factory=dict)
    # Assembly
    local_variables: Dict[int, str] = field(default_factory=dict)
    arguments: Dict[str, str] = field(default_factory=dict)
    initial_state: Dict[str, str] = field(default_factory=dict)
    final_state: Dict[str, str] = field(default_factory=dict)
    return_values: Dict[str, str] = field(default_factory=dict)
    label_states: Dict[str, Dict[str, str]] = field(default_factory=dict)
    # Struct members
    members: List['Field'] = field(default_factory=list)
    # Array element schema
    item_type: Optional['Field'] = None
    entry_problems: List[GameStructIssue] = field(default_factory=list)

    def __setattr__(self, name, value):
        if name == 'kind' and 'kind' in self.__dict__:
            raise AttributeError("Field kind cannot be changed after construction")
        super().__setattr__(name, value)

    @property
    def sub_entries(self) -> List['Field']:
        """Struct members, or the one-element prototype list of an array."""
        if self.kind == FieldKind.ARRAY:
            return [self.item_type] if self.item_type is not None else []
        return self.members

    @property
    def is_root(self) -> bool:
        return self.address is not None

    @property
    def display_name(self) -> str:
        return self.pretty_name or self.name

    def add_issue(self, issue: GameStructIssue) -> None:
        self.entry_problems.append(issue)

    def problems(self) -> List[GameStructIssue]:
        """All issues of this field and its descendants, depth first."""
        found = list(self.entry_problems)
        for sub in self.sub_entries:
            found.extend(sub.problems())
        return found

    def walk(self) -> Iterator['Field']:
        yield self
        for sub in self.sub_entries:
            yield from sub.walk()

    def __str__(self) -> str:
        return f"{self.name}: {self.address},{self.size}"


@dataclass
class Processor:
    """CPU the game runs on."""
    architecture: str = ''
    settings: Dict[str, str] = field(default_factory=dict)


@dataclass
class GameData:
    """All information loaded from a game schema."""
    title: str
    country: str
    platform: str = ''
    version: str = ''
    clean_hash: str = ''
    default_script: str = ''
    processor: Processor = field(default_factory=Processor)
    script_tables: Dict[str, 'ScriptTable'] = field(default_factory=dict)
    entries: List[Field] = field(default_factory=list)

    def __getitem__(self, name: str) -> Field:
        for entry in self.entries:
            if entry.name == name:
                return entry
        raise KeyError(name)

    def __contains__(self, name: str) -> bool:
        return any(entry.name == name for entry in self.entries)

    def names(self) -> List[str]:
        return [entry.name for entry in self.entries]

    def problems(self) -> List[GameStructIssue]:
        found = []
        for entry in self.entries:
            found.extend(entry.problems())
        return found

    def __str__(self) -> str:
        lines = [f"Game: {self.title} ({self.country})"]
        if self.processor.architecture:
            lines.append(f"CPU: {self.processor.architecture}")
        if self.default_script:
            lines.append(f"Default Script Format: {self.default_script}")
        lines.append(f"Entries: {', '.join(self.names())}")
        return "\n\t".join(lines)
