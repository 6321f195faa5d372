"""
Tests for schema construction and validation.

Covers:
- Document loading (metadata, entry map, files, directories)
- Tagged and legacy entry construction
- Deprecated key migration and its idempotence
- Diagnostics: placement, names, misplaced keys, pointer sizes
"""

import pytest

from gameyaml.dump import game_to_yaml
from gameyaml.errors import MalformedDocument, MissingMetadata
from gameyaml.model import Endian, FieldKind, IssueLevel
from gameyaml.schema import (
    load_game, load_game_dir, load_game_file, load_game_from_strings,
)

META = "Title: Test\nCountry: USA\n"


def load(definitions, metadata=META):
    return load_game_from_strings(metadata, definitions)


def reasons(fld):
    return [issue.reason for issue in fld.problems()]


def severe_reasons(fld):
    return [issue.reason for issue in fld.problems() if issue.severe]


class TestMetadata:
    """Metadata document requirements."""

    def test_loads_fixture(self, game):
        assert game.title == "Example Quest"
        assert game.country == "USA"
        assert game.platform == "SNES"
        assert game.default_script == "Main"
        assert game.processor.architecture == "65816"
        assert game.processor.settings == {"Accumulator": "16"}
        assert "Main" in game.script_tables
        assert game.names() == ["HEADER", "LEVEL", "NAME", "PALETTE"]
        assert game.problems() == []

    def test_missing_title(self):
        with pytest.raises(MissingMetadata, match="Missing title"):
            load("A: !int {Offset: 0, Size: 1}", metadata="Country: USA\n")

    def test_missing_country(self):
        with pytest.raises(MissingMetadata, match="Missing country"):
            load("A: !int {Offset: 0, Size: 1}", metadata="Title: Test\n")

    def test_empty_metadata(self):
        with pytest.raises(MissingMetadata):
            load("A: !int {Offset: 0, Size: 1}", metadata="")

    def test_metadata_not_mapping(self):
        with pytest.raises(MalformedDocument, match="Invalid format"):
            load("A: !int {Offset: 0, Size: 1}", metadata="- Title\n")

    def test_valid_clean_hash(self):
        game = load("{}", metadata=META + "Clean Hash: " + "ab" * 20 + "\n")
        assert game.clean_hash == "ab" * 20

    def test_bad_clean_hash(self):
        with pytest.raises(MalformedDocument, match="40 hex"):
            load("{}", metadata=META + "Clean Hash: 1234\n")

    def test_entries_not_mapping(self):
        with pytest.raises(MalformedDocument, match="mapping of names"):
            load("- A\n- B\n")

    def test_null_entry_document(self):
        game = load("~\n")
        assert game.entries == []


class TestDocuments:
    """Single stream, file and directory loading."""

    def test_two_document_stream(self):
        game = load_game(META + "---\nA: !int {Offset: 0, Size: 1}\n")
        assert game.names() == ["A"]

    def test_single_document_rejected(self):
        with pytest.raises(MalformedDocument, match="found 1"):
            load_game(META)

    def test_three_documents_rejected(self):
        with pytest.raises(MalformedDocument, match="exactly two"):
            load_game(META + "---\n{}\n---\n{}\n")

    def test_invalid_yaml(self):
        with pytest.raises(MalformedDocument, match="Invalid YAML"):
            load_game(META + "---\nA: [unclosed\n")

    def test_load_file(self, schema_file):
        game = load_game_file(schema_file)
        assert game.title == "Example Quest"
        assert len(game.entries) == 4

    def test_load_dir(self, tmp_path, metadata, definitions):
        (tmp_path / "metadata.yml").write_text(metadata, encoding="utf-8")
        (tmp_path / "example.yml").write_text(definitions, encoding="utf-8")
        game = load_game_dir(tmp_path)
        assert game.names() == ["HEADER", "LEVEL", "NAME", "PALETTE"]

    def test_load_dir_needs_one_entry_file(self, tmp_path, metadata):
        (tmp_path / "metadata.yml").write_text(metadata, encoding="utf-8")
        with pytest.raises(MalformedDocument, match="found 0"):
            load_game_dir(tmp_path)


class TestConstruction:
    """Tagged entries become Fields of the right kind."""

    def test_integer_keys(self):
        game = load("""
HP: !int
  Offset: 0x10
  Size: 2
  Signed: true
  Base: 16
  Endianness: Big
  Pretty Name: Hit points
  Description: Current HP
""")
        hp = game["HP"]
        assert hp.kind == FieldKind.INTEGER
        assert hp.address == 0x10
        assert hp.size == "2"
        assert hp.is_signed
        assert hp.number_base == 16
        assert hp.endianness == Endian.BIG
        assert hp.display_name == "Hit points"
        assert hp.problems() == []

    def test_struct_members_in_order(self):
        game = load("""
STATS: !struct
  Offset: 0
  Entries:
    STR: !int {Size: 1}
    DEX: !int {Size: 1}
    LUK: !int {Size: 1}
""")
        stats = game["STATS"]
        assert [m.name for m in stats.members] == ["STR", "DEX", "LUK"]
        assert stats.problems() == []

    def test_struct_entries_as_sequence(self):
        game = load("""
STATS: !struct
  Offset: 0
  Entries:
    - !int {Name: STR, Size: 1}
    - !int {Name: DEX, Size: 1}
""")
        assert [m.name for m in game["STATS"].members] == ["STR", "DEX"]

    def test_array_item_type(self):
        game = load("""
ITEMS: !array
  Offset: 0
  Size: 8
  Item Type: !int {Size: 2}
""")
        items = game["ITEMS"]
        assert items.item_type.kind == FieldKind.INTEGER
        assert items.sub_entries == [items.item_type]

    def test_array_without_item_type_gets_default(self):
        game = load("ITEMS: !array {Offset: 0, Size: 4}")
        items = game["ITEMS"]
        assert items.item_type.kind == FieldKind.UNDEFINED
        assert items.item_type.size == "1"
        assert "Array has no item type" in reasons(items)
        assert severe_reasons(items) == []

    def test_values_as_mapping_and_sequence(self):
        game = load("""
A: !int
  Offset: 0
  Size: 1
  Values: {0: Off, 1: On}
B: !int
  Offset: 1
  Size: 1
  Values: [Zero, One, Two]
""")
        assert game["A"].values == {0: "Off", 1: "On"}
        assert game["B"].values == {0: "Zero", 1: "One", 2: "Two"}

    def test_terminator_and_labels(self):
        game = load("""
TEXT: !script
  Offset: 0
  Terminator: [0xFF]
  Labels:
    - {Offset: 2, Name: middle}
""")
        text = game["TEXT"]
        assert text.terminator == b"\xff"
        assert text.labels == {2: "middle"}

    def test_assembly_keys(self):
        game = load("""
ROUTINE: !assembly
  Offset: 0x8000
  Size: 16
  Locals:
    - {Offset: 0, Name: counter}
  Arguments: {A: item id}
  Return Values: {A: result}
  Label States:
    - {Offset: loop, M: "8"}
""")
        routine = game["ROUTINE"]
        assert routine.local_variables == {0: "counter"}
        assert routine.arguments == {"A": "item id"}
        assert routine.return_values == {"A": "result"}
        assert routine.label_states == {"loop": {"M": "8"}}

    def test_empty_tagged_entry(self):
        game = load("BLOB: !undefined\n")
        blob = game["BLOB"]
        assert blob.kind == FieldKind.UNDEFINED
        assert "Required offset key missing" in severe_reasons(blob)

    def test_unknown_tag(self):
        game = load("A: !widget {Offset: 0, Size: 1}")
        assert game["A"].kind == FieldKind.UNDEFINED
        assert any("Unknown tag" in r for r in severe_reasons(game["A"]))

    def test_kind_is_immutable(self):
        game = load("A: !int {Offset: 0, Size: 1}")
        with pytest.raises(AttributeError):
            game["A"].kind = FieldKind.SCRIPT


class TestLegacyFormat:
    """Untagged entries naming their kind with Type."""

    def test_type_key(self):
        game = load("""
HP:
  Type: int
  Offset: 0
  Size: 2
""")
        hp = game["HP"]
        assert hp.kind == FieldKind.INTEGER
        assert "Untagged legacy entry" in reasons(hp)
        assert severe_reasons(hp) == []

    def test_missing_type(self):
        game = load("HP: {Offset: 0, Size: 2}")
        assert game["HP"].kind == FieldKind.UNDEFINED
        assert "Missing Type" in severe_reasons(game["HP"])

    def test_invalid_type(self):
        game = load("HP: {Type: widget, Offset: 0, Size: 2}")
        assert "Invalid type: widget" in severe_reasons(game["HP"])

    def test_redundant_type_on_tagged_entry(self):
        game = load("HP: !int {Type: int, Offset: 0, Size: 2}")
        assert any("redundant" in r for r in reasons(game["HP"]))


class TestKeyMigration:
    """Deprecated key spellings."""

    LEGACY = """
STATS:
  type: struct
  address: 0x20
  entries:
    HP: !int
      size: 2
      endian: big
"""

    def test_deprecated_keys_renamed(self):
        game = load(self.LEGACY)
        stats = game["STATS"]
        assert stats.address == 0x20
        assert stats.members[0].endianness == Endian.BIG
        renamed = [r for r in reasons(stats) if "renamed" in r]
        assert "Deprecated key 'address' renamed to 'Offset'" in renamed
        assert "Deprecated key 'endian' renamed to 'Endianness'" in renamed

    def test_canonical_key_wins(self):
        game = load("A: !int {Offset: 1, address: 5, Size: 1}")
        assert game["A"].address == 1
        assert any("ignored in favour of 'Offset'" in r for r in reasons(game["A"]))

    def test_migration_is_idempotent(self):
        migrated = load_game(game_to_yaml(load(self.LEGACY)))
        assert not any("renamed" in r or "legacy" in r for r in reasons(migrated["STATS"]))
        assert migrated["STATS"].members[0].endianness == Endian.BIG
        assert migrated["STATS"].address == 0x20

    def test_canonical_document_has_no_rename_issues(self, game):
        assert not any("renamed" in issue.reason for issue in game.problems())


class TestKeyDiagnostics:
    """Keys that do not belong on an entry."""

    def test_unknown_key(self):
        game = load("A: !int {Offset: 0, Size: 1, Colour: red}")
        issues = game["A"].problems()
        assert any("Unknown key 'Colour'" in i.reason and not i.severe for i in issues)

    def test_meaningless_key_is_incomplete(self):
        game = load("A: !script {Offset: 0, Size: 1, Signed: true}")
        issue = next(i for i in game["A"].problems() if "meaningless" in i.reason)
        assert issue.level == IssueLevel.INCOMPLETE
        assert not game["A"].is_signed

    def test_misplaced_structural_key_is_severe(self):
        game = load("A: !int {Offset: 0, Size: 1, Entries: {B: !int {Size: 1}}}")
        assert any("'Entries' is meaningless" in r for r in severe_reasons(game["A"]))
        assert game["A"].members == []

    def test_invalid_value(self):
        game = load("A: !int {Offset: 0, Size: 1, Base: 7}")
        assert any(r.startswith("Invalid Base") for r in severe_reasons(game["A"]))

    def test_empty_size(self):
        game = load("A: !int {Offset: 0, Size: ''}")
        assert any(r.startswith("Invalid Size") for r in severe_reasons(game["A"]))

    def test_missing_size(self):
        game = load("A: !int {Offset: 0}")
        assert "Missing size" in reasons(game["A"])


class TestStructure:
    """Names and nesting."""

    def test_nested_offset_is_severe(self):
        game = load("""
S: !struct
  Offset: 0
  Entries:
    A: !int {Offset: 4, Size: 1}
""")
        assert any("has an offset" in r for r in severe_reasons(game["S"]))

    def test_duplicate_member_name(self):
        game = load("""
S: !struct
  Offset: 0
  Entries:
    - !int {Name: A, Size: 1}
    - !int {Name: A, Size: 1}
""")
        assert "Duplicate entry name 'A'" in severe_reasons(game["S"])

    def test_duplicate_top_level_name(self):
        game = load("""
A: !int {Offset: 0, Size: 1}
A: !int {Offset: 1, Size: 1}
""")
        assert len(game.entries) == 2
        assert "Duplicate entry name 'A'" in severe_reasons(game.entries[1])

    def test_lowercase_member_name(self):
        game = load("""
S: !struct
  Offset: 0
  Entries:
    hp: !int {Size: 1}
""")
        issues = [i for i in game["S"].problems() if "not uppercase" in i.reason]
        assert issues and not issues[0].severe

    def test_unnamed_member(self):
        game = load("""
S: !struct
  Offset: 0
  Entries:
    - !int {Size: 1}
""")
        assert "Struct member has no name" in reasons(game["S"])

    def test_problems_aggregate_depth_first(self):
        game = load("""
S: !struct
  Offset: 0
  Bogus: 1
  Entries:
    A: !int {Size: 1, Extra: 2}
""")
        found = reasons(game["S"])
        assert found.index("Unknown key 'Bogus'") < found.index("Unknown key 'Extra'")
        assert len(game.problems()) == len(found)


class TestPlacement:
    """Top-level range checks."""

    def test_overlap_is_severe_on_second_entry(self):
        game = load("""
FIRST: !int {Offset: 0, Size: 4}
SECOND: !int {Offset: 2, Size: 4}
""")
        assert severe_reasons(game["FIRST"]) == []
        assert any("Overlaps with previous entry FIRST" in r
                   for r in severe_reasons(game["SECOND"]))

    def test_adjacent_entries_do_not_overlap(self):
        game = load("""
FIRST: !int {Offset: 0, Size: 4}
SECOND: !int {Offset: 4, Size: 4}
""")
        assert game.problems() == []

    def test_out_of_order(self):
        game = load("""
LATE: !int {Offset: 0x10, Size: 1}
EARLY: !int {Offset: 0x0, Size: 1}
""")
        issues = game["EARLY"].problems()
        assert any("Out of order" in i.reason and not i.severe for i in issues)

    def test_struct_size_from_members(self):
        game = load("""
S: !struct
  Offset: 0
  Entries:
    A: !int {Size: 2}
    B: !int {Size: 2}
NEXT: !int {Offset: 3, Size: 1}
""")
        assert any("Overlaps" in r for r in severe_reasons(game["NEXT"]))

    def test_unresolvable_size(self):
        game = load("A: !script {Offset: 0, Size: ARG_00 + 1}")
        assert any("Unable to resolve size" in r for r in severe_reasons(game["A"]))

    def test_zero_padded_size(self):
        game = load("A: !int\n  Offset: 0\n  Size: 09\nB: !int {Offset: 8, Size: 1}\n")
        assert severe_reasons(game["A"]) == []
        assert any("Overlaps with previous entry A" in r for r in severe_reasons(game["B"]))

    def test_oversized_size_expression(self):
        game = load("A: !script {Offset: 0, Size: 9^9^9}")
        assert any("Unable to resolve size" in r for r in severe_reasons(game["A"]))

    def test_missing_offset(self):
        game = load("A: !int {Size: 1}")
        assert "Required offset key missing" in severe_reasons(game["A"])


class TestPointers:

    def test_pointer_base(self):
        game = load("P: !pointer {Offset: 0, Size: 3, Base: 0xC00000}")
        assert game["P"].pointer_base == 0xC00000
        assert game["P"].problems() == []

    def test_pointer_too_large(self):
        game = load("P: !pointer {Offset: 0, Size: 9}")
        assert any("exceeds 8 bytes" in r for r in severe_reasons(game["P"]))
