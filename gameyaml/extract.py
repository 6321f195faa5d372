#!/usr/bin/env python3
"""
extract.py - Decode one schema entry from a game image

Usage:
    gameyaml-extract game.yml game.sfc PLAYER_STATS
    gameyaml-extract game.yml game.sfc INTRO_TEXT --format text
    gameyaml-extract game.yml game.sfc PALETTE --format json
"""

import argparse
import logging
import sys
from typing import List, Optional

import yaml

from .decoder import DecodedValue, decode_entry, encode
from .errors import GameDataError
from .projection import dump_json, dump_yaml, to_text
from .schema import load_game_file

logger = logging.getLogger(__name__)

FORMATS = ('yaml', 'json', 'text', 'hex')


def render(value: DecodedValue, fmt: str) -> str:
    """Render a decoded value in one of FORMATS."""
    if fmt == 'yaml':
        return dump_yaml(value).rstrip('\n')
    if fmt == 'json':
        return dump_json(value)
    if fmt == 'text':
        return to_text(value)
    if fmt == 'hex':
        return encode(value).hex(' ').upper()
    raise ValueError(f"Unknown output format: {fmt}")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description='Decode one schema entry from a game image'
    )
    parser.add_argument('schema', help='Schema file (metadata and entries)')
    parser.add_argument('image', help='Game image file')
    parser.add_argument('entry', help='Top-level entry name')
    parser.add_argument('-f', '--format', choices=FORMATS, default='yaml',
                        help='Output format (default: yaml)')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Enable debug logging')
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format='%(levelname)s %(name)s: %(message)s')

    try:
        game = load_game_file(args.schema)
        if args.entry not in game:
            print(f"Error: no entry named {args.entry} in {args.schema}", file=sys.stderr)
            return 1
        with open(args.image, 'rb') as image:
            value = decode_entry(image, game, args.entry)
        print(render(value, args.format))
    except (GameDataError, yaml.YAMLError, OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except TypeError as e:
        # text output of a kind with no text form
        print(f"Error: {e}", file=sys.stderr)
        return 2
    return 0


if __name__ == '__main__':
    sys.exit(main())
