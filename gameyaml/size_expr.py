"""
size_expr.py - Size expressions for schema fields.

A field size is either a literal integer or an arithmetic expression over
ARG_00, ARG_01, ... where ARG_NN is the value of the NN-th byte of the run
currently being measured (the bytes already consumed by the enclosing
struct/array, or the bytes of a script table match).

Usage:
    from gameyaml.size_expr import evaluate, resolved_size, bind_bytes

    evaluate("ARG_00 * 2 + 1", {"ARG_00": 3})   # 7
    resolved_size(field, bind_bytes(b"\\x04"))
"""

import ast
import re
from typing import Dict, Mapping, Optional, Union

from .errors import SizeExpressionInvalid, SizeUnresolved, SizeVariableUnbound
from .model import Field, FieldKind

Number = Union[int, float]

# Maximum number of bytes bound as ARG_NN variables
MAX_ARGS = 100

# Largest power or left shift result, in bits
MAX_RESULT_BITS = 256

_LITERAL = re.compile(r'^\s*(?:0[xX]([0-9a-fA-F]+)|(\d+))\s*$')

_ALLOWED_NODES = (
    ast.Expression, ast.BinOp, ast.UnaryOp, ast.Constant, ast.Name, ast.Load,
    ast.Add, ast.Sub, ast.Mult, ast.Div, ast.FloorDiv, ast.Mod, ast.Pow,
    ast.BitAnd, ast.BitOr, ast.LShift, ast.RShift, ast.USub, ast.UAdd,
    ast.Invert,
)


def arg_name(index: int) -> str:
    """Variable name bound to the byte at ``index`` of a run."""
    return f"ARG_{index:02d}"


def bind_bytes(data: bytes) -> Dict[str, int]:
    """Bind the first bytes of ``data`` as ARG_00, ARG_01, ..."""
    return {arg_name(i): b for i, b in enumerate(data[:MAX_ARGS])}


def _pow(base: Number, exponent: Number) -> Number:
    if (isinstance(base, int) and isinstance(exponent, int) and abs(base) > 1
            and (abs(base).bit_length() - 1) * exponent > MAX_RESULT_BITS):
        raise OverflowError(f"{base} ^ {exponent} is too large")
    return base ** exponent


def _lshift(value: int, count: int) -> int:
    if value and count > MAX_RESULT_BITS:
        raise OverflowError(f"{value} << {count} is too large")
    return value << count


_BOUNDED_OPS = {ast.Pow: '_pow', ast.LShift: '_lshift'}


class _BoundOperators(ast.NodeTransformer):
    """Route ``**`` and ``<<`` through the size-checked helpers."""

    def visit_BinOp(self, node):
        self.generic_visit(node)
        helper = _BOUNDED_OPS.get(type(node.op))
        if helper is None:
            return node
        return ast.copy_location(ast.Call(
            func=ast.Name(id=helper, ctx=ast.Load()),
            args=[node.left, node.right], keywords=[]), node)


def _compile(expression: str):
    # '^' is exponentiation in schema expressions
    source = expression.replace('^', '**')
    try:
        tree = ast.parse(source.strip(), mode='eval')
    except (SyntaxError, ValueError) as e:
        raise SizeExpressionInvalid(expression, f"syntax error: {getattr(e, 'msg', e)}")
    for node in ast.walk(tree):
        if not isinstance(node, _ALLOWED_NODES):
            raise SizeExpressionInvalid(
                expression, f"unsupported construct {type(node).__name__}")
        if isinstance(node, ast.Constant) and (
                isinstance(node.value, bool) or not isinstance(node.value, (int, float))):
            raise SizeExpressionInvalid(expression, "only numeric literals allowed")
    tree = ast.fix_missing_locations(_BoundOperators().visit(tree))
    return compile(tree, '<size>', 'eval')


def evaluate(expression: str, variables: Optional[Mapping[str, Number]] = None) -> Number:
    """
    Evaluate an arithmetic expression.

    Raises SizeExpressionInvalid on malformed input or an unbound variable.
    """
    code = _compile(expression)
    try:
        result = eval(code, {"__builtins__": {}, "_pow": _pow, "_lshift": _lshift},
                      dict(variables or {}))
    except NameError as e:
        raise SizeVariableUnbound(expression, f"unbound variable: {e}")
    except (ArithmeticError, ValueError, TypeError) as e:
        raise SizeExpressionInvalid(expression, str(e))
    if not isinstance(result, (int, float)):
        raise SizeExpressionInvalid(expression, "result is not a number")
    return result


def evaluate_size(expression: str, variables: Optional[Mapping[str, Number]] = None) -> int:
    """Evaluate an expression that must produce a non-negative byte count."""
    literal = _LITERAL.match(expression)
    if literal:
        hex_digits, decimal = literal.groups()
        # leading zeros are decimal, not octal
        return int(hex_digits, 16) if hex_digits is not None else int(decimal, 10)
    result = evaluate(expression, variables)
    if result != result or result in (float('inf'), float('-inf')):
        raise SizeExpressionInvalid(expression, "result is not finite")
    size = int(result)
    if size < 0:
        raise SizeExpressionInvalid(expression, f"negative size {size}")
    return size


def resolved_size(field: Field, variables: Optional[Mapping[str, Number]] = None) -> int:
    """
    Byte length of a field.

    Raises SizeUnresolved when the field has no size and SizeExpressionInvalid
    when its size expression cannot be evaluated against ``variables``.
    """
    if field.size is None or str(field.size).strip() == '':
        raise SizeUnresolved(field.name)
    return evaluate_size(str(field.size), variables)


def static_size(field: Field) -> int:
    """
    Size of a field without any bound bytes.

    Structs without an explicit size are measured by their members.
    """
    if field.size is None and field.kind == FieldKind.STRUCT and field.sub_entries:
        return sum(static_size(sub) for sub in field.sub_entries)
    return resolved_size(field)
