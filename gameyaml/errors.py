"""
errors.py - Exception hierarchy for game data loading and decoding.

Schema diagnostics are never raised; they are collected as GameStructIssue
records on the owning Field. Everything in this module is a real failure of
the operation that raised it.
"""

from typing import List


class GameDataError(Exception):
    """Base class for all game data failures.

    Carries the path of field names the error travelled through so a failure
    deep inside a nested struct reads as ``Error in A.B.C: <message>``.
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
        self.path: List[str] = []

    def with_context(self, name: str) -> 'GameDataError':
        """Prepend an enclosing field name to the error path."""
        if name:
            self.path.insert(0, name)
        return self

    @property
    def location(self) -> str:
        """Dotted field path, with array indexes attached as name[N]."""
        location = ''
        for part in self.path:
            if part.startswith('[') or not location:
                location += part
            else:
                location += '.' + part
        return location

    def __str__(self) -> str:
        if self.path:
            return f"Error in {self.location}: {self.message}"
        return self.message


class SchemaStructuralError(GameDataError):
    """The schema document is unusable as a whole."""


class MissingMetadata(SchemaStructuralError):
    """Metadata document is absent or lacks a required key."""


class MalformedDocument(SchemaStructuralError):
    """Document shape does not match what a game schema requires."""


class SizeError(GameDataError):
    """A field size could not be computed."""


class SizeUnresolved(SizeError):
    def __init__(self, name: str = ''):
        super().__init__("Unable to parse undefined size")
        self.field_name = name


class SizeExpressionInvalid(SizeError):
    def __init__(self, expression: str, reason: str = ''):
        message = f"Unable to parse size: {expression}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.expression = expression


class SizeVariableUnbound(SizeExpressionInvalid):
    """The expression names an ARG_NN past the bytes available."""


class DecodeError(GameDataError):
    """The byte source did not satisfy the schema."""


class ReadPastEnd(DecodeError):
    def __init__(self, needed: int, available: int, position: int):
        super().__init__(
            f"Source too short: need {needed} bytes at position {position}, "
            f"{available} available")
        self.needed = needed
        self.available = available
        self.position = position


class ArrayLengthMismatch(DecodeError):
    def __init__(self, expected: int, consumed: int, element_size: int):
        super().__init__(
            f"Array element of {element_size} bytes does not fit: "
            f"{consumed} of {expected} bytes consumed")
        self.expected = expected
        self.consumed = consumed
        self.element_size = element_size


class UnsupportedEncoding(GameDataError):
    def __init__(self, charset: str):
        super().__init__(f"Unsupported character encoding: {charset or '(none)'}")
        self.charset = charset
