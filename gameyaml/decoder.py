"""
decoder.py - Decode game data bytes against a schema, and encode them back.

Usage:
    from gameyaml.decoder import decode, decode_entry, encode

    with open("game.sfc", "rb") as rom:
        value = decode(rom, game["PLAYER_STATS"], game)
    value["HP"].payload          # raw accumulated integer
    encode(value)                # bytes as they were read

Integers are accumulated least significant byte first whatever the declared
endianness; endianness and signedness are applied by the projections.
"""

import io
import logging
from dataclasses import dataclass, field as dc_field
from typing import BinaryIO, Callable, Dict, List, Mapping, Optional, Tuple, Union

from .errors import ArrayLengthMismatch, GameDataError, ReadPastEnd
from .model import Field, FieldKind, GameData, INTEGER_KINDS, RAW_KINDS
from .size_expr import bind_bytes, resolved_size

logger = logging.getLogger(__name__)

Payload = Union[int, bytes, List['DecodedValue'], Dict[str, 'DecodedValue']]


class ByteSource:
    """
    Forward-only reader over bytes or a binary stream.

    Positions only ever advance; one source must not be shared by two
    decodes running at the same time.
    """

    def __init__(self, data: Union[bytes, bytearray, memoryview, BinaryIO]):
        if isinstance(data, (bytes, bytearray, memoryview)):
            self._stream = io.BytesIO(bytes(data))
        elif hasattr(data, 'read'):
            self._stream = data
        else:
            raise TypeError(f"Cannot read bytes from {type(data).__name__}")
        self.position = 0

    def read(self, size: int) -> bytes:
        chunk = self._stream.read(size) if size else b''
        if len(chunk) < size:
            position = self.position
            self.position += len(chunk)
            raise ReadPastEnd(size, len(chunk), position)
        self.position += size
        return chunk

    def read_byte(self) -> int:
        return self.read(1)[0]

    def skip(self, size: int) -> None:
        self.read(size)

    def read_until(self, terminator: bytes) -> bytes:
        """Read up to and including ``terminator``."""
        data = bytearray()
        while not data.endswith(terminator):
            chunk = self._stream.read(1)
            if not chunk:
                raise ReadPastEnd(len(data) + len(terminator), len(data), self.position)
            data += chunk
            self.position += 1
        return bytes(data)

    @property
    def exhausted(self) -> bool:
        if hasattr(self._stream, 'peek'):
            return not self._stream.peek(1)
        here = self._stream.tell()
        more = self._stream.read(1)
        self._stream.seek(here)
        return not more


def as_source(data: Union[ByteSource, bytes, bytearray, memoryview, BinaryIO]) -> ByteSource:
    return data if isinstance(data, ByteSource) else ByteSource(data)


@dataclass(frozen=True)
class DecodedValue:
    """
    Typed value read for one Field.

    A struct's payload maps member names to values; ``parts`` keeps every
    member in read order, including any whose name repeats an earlier one.
    """
    kind: FieldKind
    bytes_consumed: int
    payload: Payload
    field: Field = dc_field(repr=False, compare=False)
    game: Optional[GameData] = dc_field(default=None, repr=False, compare=False)
    parts: Tuple['DecodedValue', ...] = dc_field(default=(), repr=False, compare=False)

    def __getitem__(self, key):
        if self.kind == FieldKind.STRUCT and isinstance(key, str):
            return self.payload[key]
        if self.kind == FieldKind.ARRAY and isinstance(key, int):
            return self.payload[key]
        raise TypeError(f"{self.kind.value} value cannot be indexed by {key!r}")

    def __len__(self) -> int:
        if self.kind in (FieldKind.STRUCT, FieldKind.ARRAY):
            return len(self.payload)
        raise TypeError(f"{self.kind.value} value has no length")


Variables = Mapping[str, int]


def _decode_struct(source: ByteSource, fld: Field, game: Optional[GameData],
                   variables: Variables) -> DecodedValue:
    members: Dict[str, DecodedValue] = {}
    parts: List[DecodedValue] = []
    run = bytearray()
    for member in fld.members:
        value = _decode(source, member, game, bind_bytes(run))
        members.setdefault(member.name, value)
        parts.append(value)
        run += encode(value)
    return DecodedValue(fld.kind, len(run), members, fld, game, tuple(parts))


def _decode_integer(source: ByteSource, fld: Field, game: Optional[GameData],
                    variables: Variables) -> DecodedValue:
    size = resolved_size(fld, variables)
    value = int.from_bytes(source.read(size), 'little')
    return DecodedValue(fld.kind, size, value, fld, game)


def _decode_raw(source: ByteSource, fld: Field, game: Optional[GameData],
                variables: Variables) -> DecodedValue:
    if fld.size is None and fld.terminator:
        data = source.read_until(fld.terminator)
    else:
        data = source.read(resolved_size(fld, variables))
    return DecodedValue(fld.kind, len(data), data, fld, game)


def _decode_array(source: ByteSource, fld: Field, game: Optional[GameData],
                  variables: Variables) -> DecodedValue:
    total = resolved_size(fld, variables)
    elements: List[DecodedValue] = []
    run = bytearray()
    while len(run) < total:
        try:
            element = _decode(source, fld.item_type, game, bind_bytes(run))
        except GameDataError as e:
            raise e.with_context(f"[{len(elements)}]")
        if element.bytes_consumed == 0 or len(run) + element.bytes_consumed > total:
            raise ArrayLengthMismatch(total, len(run), element.bytes_consumed)
        elements.append(element)
        run += encode(element)
    return DecodedValue(fld.kind, len(run), elements, fld, game)


_DECODERS: Dict[FieldKind, Callable[..., DecodedValue]] = {
    FieldKind.STRUCT: _decode_struct,
    FieldKind.ARRAY: _decode_array,
}
_DECODERS.update({kind: _decode_integer for kind in INTEGER_KINDS})
_DECODERS.update({kind: _decode_raw for kind in RAW_KINDS})

if set(_DECODERS) != set(FieldKind):
    raise ImportError(f"No decoder for {set(FieldKind) - set(_DECODERS)}")


def _decode(source: ByteSource, fld: Field, game: Optional[GameData],
            variables: Variables) -> DecodedValue:
    try:
        return _DECODERS[fld.kind](source, fld, game, variables)
    except GameDataError as e:
        raise e.with_context(fld.name)


def decode(data: Union[ByteSource, bytes, bytearray, memoryview, BinaryIO], fld: Field,
           game: Optional[GameData] = None,
           variables: Optional[Variables] = None) -> DecodedValue:
    """
    Decode ``fld`` from a byte source.

    A root field's address is skipped from the source's current position
    before reading; nested fields follow their preceding siblings.
    """
    source = as_source(data)
    if fld.address is not None:
        try:
            source.skip(fld.address)
        except GameDataError as e:
            raise e.with_context(fld.name)
    logger.debug("Decoding %s (%s) at %d", fld.name, fld.kind.value, source.position)
    return _decode(source, fld, game, variables or {})


def decode_entry(data: Union[bytes, bytearray, memoryview, BinaryIO], game: GameData,
                 name: str) -> DecodedValue:
    """Decode the top-level entry ``name`` from the start of a game image."""
    return decode(data, game[name], game)


def _encode_struct(value: DecodedValue) -> bytes:
    return b''.join(encode(member) for member in value.parts)


def _encode_integer(value: DecodedValue) -> bytes:
    return value.payload.to_bytes(value.bytes_consumed, 'little')


def _encode_array(value: DecodedValue) -> bytes:
    return b''.join(encode(element) for element in value.payload)


def _encode_raw(value: DecodedValue) -> bytes:
    return bytes(value.payload)


_ENCODERS: Dict[FieldKind, Callable[[DecodedValue], bytes]] = {
    FieldKind.STRUCT: _encode_struct,
    FieldKind.ARRAY: _encode_array,
}
_ENCODERS.update({kind: _encode_integer for kind in INTEGER_KINDS})
_ENCODERS.update({kind: _encode_raw for kind in RAW_KINDS})

if set(_ENCODERS) != set(FieldKind):
    raise ImportError(f"No encoder for {set(FieldKind) - set(_ENCODERS)}")


def encode(value: DecodedValue) -> bytes:
    """Serialize a decoded value back to bytes."""
    return _ENCODERS[value.kind](value)


def patch(image: bytearray, value: DecodedValue, offset: Optional[int] = None) -> None:
    """Write ``value`` into a game image at its root address (or ``offset``)."""
    if offset is None:
        offset = value.field.address
    if offset is None:
        raise ValueError(f"{value.field.name} has no address; pass an offset")
    data = encode(value)
    if offset + len(data) > len(image):
        raise ValueError(
            f"{value.field.name}: {len(data)} bytes at {offset:X} exceed image size {len(image):X}")
    image[offset:offset + len(data)] = data
