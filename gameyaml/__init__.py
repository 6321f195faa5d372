"""
gameyaml - Schema-driven decoding of binary game data.

    from gameyaml import load_game_file, decode_entry, to_document

    game = load_game_file("game.yml")
    with open("game.sfc", "rb") as rom:
        print(to_document(decode_entry(rom, game, "PLAYER_STATS")))
"""

from .decoder import ByteSource, DecodedValue, decode, decode_entry, encode, patch
from .dump import field_to_yaml, game_to_yaml
from .errors import (
    ArrayLengthMismatch, DecodeError, GameDataError, MalformedDocument,
    MissingMetadata, ReadPastEnd, SchemaStructuralError, SizeError,
    SizeExpressionInvalid, SizeUnresolved, SizeVariableUnbound, UnsupportedEncoding,
)
from .lookup import entry_containing, label_for_address, name_for_address
from .model import (
    Endian, Field, FieldKind, GameData, GameStructIssue, IssueLevel, Processor,
)
from .projection import dump_json, dump_yaml, integer_value, to_document, to_json, to_text
from .schema import (
    build_game_data, construct_field, load_game, load_game_dir, load_game_file,
    load_game_from_strings,
)
from .script_table import ScriptTable, build_script_table
from .size_expr import evaluate, evaluate_size, resolved_size, static_size

__version__ = '0.1.0'
