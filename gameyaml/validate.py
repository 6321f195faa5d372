#!/usr/bin/env python3
"""
validate.py - Report problems in game schema files

Usage:
    gameyaml-validate game.yml
    gameyaml-validate game.yml --all
    gameyaml-validate --reverse        # scan ./<dir>/<dir>.yml
    gameyaml-validate game.yml --json

Features:
    - Loads a schema and collects every entry's diagnostics
    - Shows severe problems only unless --all is given
    - Collapses repeated messages into "message (count)"
    - Optionally outputs JSON results
"""

import argparse
import json
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import yaml

from .errors import GameDataError
from .model import IssueLevel
from .schema import load_game_file

logger = logging.getLogger(__name__)


@dataclass
class EntryProblems:
    """Problems found in one top-level entry."""
    name: str
    address: Optional[int]
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'address': self.address,
            'errors': self.errors,
        }


@dataclass
class ValidationResult:
    """Result of validating one schema file."""
    path: str
    load_error: str = ''
    entries: List[EntryProblems] = field(default_factory=list)

    @property
    def loaded(self) -> bool:
        return not self.load_error

    @property
    def total_problems(self) -> int:
        return sum(len(e.errors) for e in self.entries)

    @property
    def clean(self) -> bool:
        return self.loaded and self.total_problems == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'path': self.path,
            'loaded': self.loaded,
            'load_error': self.load_error,
            'total_problems': self.total_problems,
            'entries': [e.to_dict() for e in self.entries],
        }


def count_unique(messages: Iterable[str]) -> List[str]:
    """Sorted unique messages, repeated ones suffixed with their count."""
    counts: Dict[str, int] = {}
    for message in sorted(messages):
        counts[message] = counts.get(message, 0) + 1
    return [f"{m} ({n})" if n > 1 else m for m, n in counts.items()]


def validate_file(path: str, show_all: bool = False) -> ValidationResult:
    """Load a schema file and gather problems per top-level entry."""
    result = ValidationResult(path=path)
    try:
        game = load_game_file(path)
    except (GameDataError, yaml.YAMLError, OSError) as e:
        result.load_error = str(e)
        return result

    for entry in game.entries:
        problems = [p for p in entry.problems()
                    if show_all or p.level == IssueLevel.SEVERE]
        if problems:
            result.entries.append(EntryProblems(
                name=entry.name,
                address=entry.address,
                errors=[str(p) for p in problems],
            ))
    logger.debug("%s: %d entries with problems", path, len(result.entries))
    return result


def find_schemas(root: Path) -> List[Path]:
    """Schema files laid out as <root>/<game>/<game>.yml."""
    found = []
    for directory in sorted(p for p in root.iterdir() if p.is_dir()):
        candidate = directory / f"{directory.name}.yml"
        if candidate.exists():
            found.append(candidate)
    return found


def print_results(results: List[ValidationResult], reverse: bool = False) -> None:
    """Print validation results to console."""
    bad_entries = 0
    total = 0
    for result in results:
        if result.clean:
            continue
        print(f"{Path(result.path).stem}:\n")
        if not result.loaded:
            print(f"\tFailure loading {result.path}: {result.load_error}")
            continue
        entries = sorted(result.entries,
                         key=lambda e: -1 if e.address is None else e.address,
                         reverse=reverse)
        for entry in entries:
            print(f"\t{entry.name}:\n\t\t" + "\n\t\t".join(count_unique(entry.errors)))
        bad_entries += len(result.entries)
        total += result.total_problems
    if bad_entries > 0:
        print(f"Erroneous entries found: {bad_entries}")
        print(f"Total errors found: {total}")
    elif all(r.loaded for r in results):
        print("No problems found!")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description='Report problems in game schema files'
    )
    parser.add_argument('schema', nargs='?',
                        help='Schema file (default: scan ./<game>/<game>.yml)')
    parser.add_argument('-a', '--all', action='store_true',
                        help='Show incomplete (non-severe) problems too')
    parser.add_argument('-r', '--reverse', action='store_true',
                        help='List entries by descending address')
    parser.add_argument('--json', action='store_true',
                        help='Output results as JSON')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Enable debug logging')
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format='%(levelname)s %(name)s: %(message)s')

    if args.schema:
        paths = [Path(args.schema)]
    else:
        paths = find_schemas(Path('.'))
    results = [validate_file(str(p), args.all) for p in paths]

    if args.json:
        print(json.dumps([r.to_dict() for r in results], indent=2))
    else:
        print_results(results, args.reverse)

    return 0 if all(r.clean for r in results) else 1


if __name__ == '__main__':
    sys.exit(main())
