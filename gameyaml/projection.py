"""
projection.py - Render decoded values as text, YAML documents or JSON.

Every FieldKind has a document and a JSON projection. Text projection is
defined for scripts (through script tables or a built-in codec) and
integers; other kinds raise TypeError.
"""

import json
from typing import Any, Callable, Dict, List

import yaml

from .decoder import DecodedValue
from .errors import UnsupportedEncoding
from .model import Endian, FieldKind

# Character sets usable without a script table
BUILTIN_ENCODINGS = {
    'ASCII': 'ascii',
    'UTF-8': 'utf-8',
}

DEFAULT_TILE_FORMAT = '2bpp'
DEFAULT_COLOR_FORMAT = 'BGR555'

TILE_WIDTH = 8
TILE_HEIGHT = 8


# =============================================================================
# Integers
# =============================================================================

def integer_value(value: DecodedValue) -> int:
    """Apply the field's endianness and signedness to an accumulated integer."""
    fld = value.field
    number = value.payload
    size = value.bytes_consumed
    if fld.endianness == Endian.BIG and size > 1:
        number = int.from_bytes(number.to_bytes(size, 'little'), 'big')
    if fld.is_signed and size and number >= 1 << (8 * size - 1):
        number -= 1 << (8 * size)
    return number


def format_number(number: int, base: int = 10) -> str:
    sign = '-' if number < 0 else ''
    magnitude = abs(number)
    if base == 16:
        return f"{sign}0x{magnitude:X}"
    if base == 8:
        return f"{sign}0o{magnitude:o}"
    if base == 2:
        return f"{sign}0b{magnitude:b}"
    return str(number)


def bit_names(number: int, names: List[str]) -> List[str]:
    return [name for i, name in enumerate(names) if number & (1 << i)]


# =============================================================================
# Text
# =============================================================================

def script_text(value: DecodedValue) -> str:
    """
    Decode a script value using the field's character set.

    Falls back to the game's default script, then to the built-in codecs.
    """
    game = value.game
    charset = value.field.char_set or (game.default_script if game else '')
    if game is not None and charset in game.script_tables:
        return game.script_tables[charset].decode(value.payload)
    codec = BUILTIN_ENCODINGS.get(charset.upper())
    if codec is None:
        raise UnsupportedEncoding(charset)
    return bytes(value.payload).decode(codec, errors='replace')


def to_text(value: DecodedValue) -> str:
    if value.kind == FieldKind.SCRIPT:
        return script_text(value)
    if value.kind == FieldKind.INTEGER:
        return format_number(integer_value(value), value.field.number_base)
    raise TypeError(f"{value.kind.value} values have no text form")


# =============================================================================
# Graphics
# =============================================================================

def _planar_row(planes: List[int]) -> List[int]:
    row = []
    for x in range(TILE_WIDTH):
        shift = 7 - x
        pixel = 0
        for bit, plane in enumerate(planes):
            pixel |= ((plane >> shift) & 1) << bit
        row.append(pixel)
    return row


def _tile_1bpp(tile: bytes) -> List[List[int]]:
    return [_planar_row([tile[y]]) for y in range(TILE_HEIGHT)]


def _tile_2bpp(tile: bytes) -> List[List[int]]:
    return [_planar_row([tile[2 * y], tile[2 * y + 1]]) for y in range(TILE_HEIGHT)]


def _tile_4bpp(tile: bytes) -> List[List[int]]:
    # Planes 0/1 interleaved in the first 16 bytes, planes 2/3 in the next 16
    return [_planar_row([tile[2 * y], tile[2 * y + 1], tile[16 + 2 * y], tile[17 + 2 * y]])
            for y in range(TILE_HEIGHT)]


def _tile_8bpp(tile: bytes) -> List[List[int]]:
    return [list(tile[y * TILE_WIDTH:(y + 1) * TILE_WIDTH]) for y in range(TILE_HEIGHT)]


# format -> (bytes per 8x8 tile, decoder)
TILE_FORMATS: Dict[str, tuple] = {
    '1bpp': (8, _tile_1bpp),
    '2bpp': (16, _tile_2bpp),
    '4bpp': (32, _tile_4bpp),
    '8bpp': (64, _tile_8bpp),
}


def tile_pixels(data: bytes, fmt: str = '') -> List[List[int]]:
    """
    Convert tile bytes to rows of palette indexes.

    Consecutive 8x8 tiles are stacked vertically.
    """
    fmt = (fmt or DEFAULT_TILE_FORMAT).lower()
    if fmt not in TILE_FORMATS:
        raise ValueError(f"Unsupported tile format: {fmt}")
    tile_size, convert = TILE_FORMATS[fmt]
    if len(data) % tile_size:
        raise ValueError(f"{len(data)} bytes is not a whole number of {fmt} tiles")
    rows = []
    for start in range(0, len(data), tile_size):
        rows.extend(convert(data[start:start + tile_size]))
    return rows


def _expand5(channel: int) -> int:
    return (channel << 3) | (channel >> 2)


def color_values(data: bytes, fmt: str = '') -> List[List[int]]:
    """Convert color bytes to [r, g, b] triples (0-255)."""
    fmt = (fmt or DEFAULT_COLOR_FORMAT).upper()
    colors = []
    if fmt == 'BGR555':
        if len(data) % 2:
            raise ValueError("BGR555 colors need an even number of bytes")
        for i in range(0, len(data), 2):
            word = data[i] | (data[i + 1] << 8)
            colors.append([_expand5(word & 0x1F), _expand5((word >> 5) & 0x1F),
                           _expand5((word >> 10) & 0x1F)])
    elif fmt == 'RGB888':
        if len(data) % 3:
            raise ValueError("RGB888 colors need a multiple of 3 bytes")
        colors = [list(data[i:i + 3]) for i in range(0, len(data), 3)]
    else:
        raise ValueError(f"Unsupported color format: {fmt}")
    return colors


# =============================================================================
# Documents
# =============================================================================

def _integer_doc(value: DecodedValue, convert: Callable) -> Any:
    fld = value.field
    number = integer_value(value)
    if number in fld.values:
        return fld.values[number]
    if fld.bit_values:
        return bit_names(number, fld.bit_values)
    return number


def _bitfield_doc(value: DecodedValue, convert: Callable) -> Any:
    number = integer_value(value)
    if value.field.bit_values:
        return bit_names(number, value.field.bit_values)
    return number


def _pointer_doc(value: DecodedValue, convert: Callable) -> Any:
    return value.field.pointer_base + integer_value(value)


def _struct_doc(value: DecodedValue, convert: Callable) -> Any:
    return {name: convert(member) for name, member in value.payload.items()}


def _array_doc(value: DecodedValue, convert: Callable) -> Any:
    return [convert(element) for element in value.payload]


def _script_doc(value: DecodedValue, convert: Callable) -> Any:
    return script_text(value)


def _tile_doc(value: DecodedValue, convert: Callable) -> Any:
    return tile_pixels(value.payload, value.field.format)


def _color_doc(value: DecodedValue, convert: Callable) -> Any:
    return color_values(value.payload, value.field.format)


def _color_json(value: DecodedValue, convert: Callable) -> Any:
    return ['#{:02X}{:02X}{:02X}'.format(*rgb)
            for rgb in color_values(value.payload, value.field.format)]


def _raw_doc(value: DecodedValue, convert: Callable) -> Any:
    return list(value.payload)


DOCUMENT_PROJECTIONS: Dict[FieldKind, Callable] = {
    FieldKind.STRUCT: _struct_doc,
    FieldKind.INTEGER: _integer_doc,
    FieldKind.POINTER: _pointer_doc,
    FieldKind.BITFIELD: _bitfield_doc,
    FieldKind.SCRIPT: _script_doc,
    FieldKind.ARRAY: _array_doc,
    FieldKind.TILE: _tile_doc,
    FieldKind.COLOR: _color_doc,
    FieldKind.UNDEFINED: _raw_doc,
    FieldKind.NULL: _raw_doc,
    FieldKind.ASSEMBLY: _raw_doc,
}

JSON_PROJECTIONS: Dict[FieldKind, Callable] = dict(DOCUMENT_PROJECTIONS)
JSON_PROJECTIONS[FieldKind.COLOR] = _color_json

for _table in (DOCUMENT_PROJECTIONS, JSON_PROJECTIONS):
    if set(_table) != set(FieldKind):
        raise ImportError(f"No projection for {set(FieldKind) - set(_table)}")


def to_document(value: DecodedValue) -> Any:
    """Plain Python tree suitable for a YAML document."""
    return DOCUMENT_PROJECTIONS[value.kind](value, to_document)


def to_json(value: DecodedValue) -> Any:
    """JSON-compatible Python tree."""
    return JSON_PROJECTIONS[value.kind](value, to_json)


def dump_yaml(value: DecodedValue) -> str:
    return yaml.safe_dump(to_document(value), sort_keys=False, allow_unicode=True)


def dump_json(value: DecodedValue, indent: int = 2) -> str:
    return json.dumps(to_json(value), indent=indent, ensure_ascii=False)
