"""
lookup.py - Map addresses to entry names and labels.
"""

from typing import Optional

from .errors import SizeError
from .model import Field, FieldKind, GameData
from .size_expr import static_size


def name_for_address(game: GameData, address: int) -> Optional[str]:
    """Name of the top-level entry starting exactly at ``address``."""
    for entry in game.entries:
        if entry.address == address:
            return entry.name
    return None


def entry_containing(game: GameData, address: int) -> Optional[Field]:
    """First top-level entry whose [address, address + size) holds ``address``."""
    for entry in game.entries:
        if entry.address is None or entry.address > address:
            continue
        try:
            size = static_size(entry)
        except SizeError:
            continue
        if address < entry.address + size:
            return entry
    return None


def label_for_address(game: GameData, address: int) -> str:
    """
    Human-readable label for an address.

    Examples: ``1F00`` (no entry), ``ITEMS[3]`` / ``ITEMS[Potion]`` (arrays),
    ``HP`` (entry start), ``CODE#loop`` (labelled offset), ``NAME+2``.
    """
    entry = entry_containing(game, address)
    if entry is None:
        return f"{address:X}"
    offset = address - entry.address
    if entry.kind == FieldKind.ARRAY:
        if offset in entry.labels:
            return f"{entry.name}[{entry.labels[offset]}]"
        try:
            element = static_size(entry.item_type)
        except SizeError:
            element = 0
        index = offset // element if element else offset
        return f"{entry.name}[{index}]"
    if offset == 0:
        return entry.name
    if offset in entry.labels:
        return f"{entry.name}#{entry.labels[offset]}"
    return f"{entry.name}+{offset}"
