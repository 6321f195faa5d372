"""
pytest configuration and fixtures for gameyaml tests.

Provides reusable fixtures for:
- Metadata and entry documents
- A loaded example game
- Hypothesis property-based testing configuration
"""

import os
import sys
from pathlib import Path

import pytest

# Add project root so tests run without installing the package
sys.path.insert(0, str(Path(__file__).parent.parent))

from gameyaml.schema import load_game_from_strings

# Configure Hypothesis profiles
try:
    from hypothesis import settings, Verbosity, Phase

    # Default profile: balanced speed and coverage
    settings.register_profile(
        "default",
        max_examples=100,
        deadline=None,
    )

    # CI profile: more thorough testing
    settings.register_profile(
        "ci",
        max_examples=500,
        deadline=None,
        suppress_health_check=[],
        phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    )

    # Dev profile: fast iteration
    settings.register_profile(
        "dev",
        max_examples=10,
        deadline=None,
    )

    # Debug profile: verbose output
    settings.register_profile(
        "debug",
        max_examples=10,
        verbosity=Verbosity.verbose,
        deadline=None,
    )

    settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE", "default"))

except ImportError:
    pass  # Hypothesis not installed


METADATA = """\
Title: Example Quest
Country: USA
Platform: SNES
Default Script: Main
Processor:
  Architecture: 65816
  Accumulator: 16
Script Tables:
  Main:
    Lengths:
      0x80: 2
      0xF0:
        "=": ARG_01 + 2
    Replacements:
      0x41: "A"
      0x42: "B"
      0x80: "<wait>"
      0xF0: "<raw>"
"""

DEFINITIONS = """\
HEADER: !struct
  Offset: 0x0
  Entries:
    MAGIC: !int
      Size: 2
      Base: 16
    COUNT: !int
      Size: 1
LEVEL: !int
  Offset: 0x3
  Size: 1
  Values:
    0: Easy
    1: Hard
NAME: !script
  Offset: 0x4
  Size: 4
PALETTE: !color
  Offset: 0x8
  Size: 2
"""

IMAGE = bytes([0x34, 0x12, 0x02, 0x01, 0x41, 0x80, 0x07, 0x42, 0xFF, 0x7F])


@pytest.fixture
def metadata():
    return METADATA


@pytest.fixture
def definitions():
    return DEFINITIONS


@pytest.fixture
def game():
    """Loaded example game."""
    return load_game_from_strings(METADATA, DEFINITIONS)


@pytest.fixture
def image():
    """Game image matching the example definitions."""
    return IMAGE


@pytest.fixture
def schema_file(tmp_path):
    """Example game written as one two-document schema file."""
    path = tmp_path / "example.yml"
    path.write_text(METADATA + "---\n" + DEFINITIONS, encoding="utf-8")
    return path


# Markers for test categorization
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "cli: marks tests that run a command line entry point"
    )
