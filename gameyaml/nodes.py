"""
nodes.py - Helpers over composed PyYAML nodes.

Schemas are composed rather than loaded so that tags (!int, !struct, ...)
and key order survive until construction. These helpers convert scalar
nodes the way yaml.safe_load would.
"""

from typing import Any, Iterator, List, Optional, Tuple

import yaml
from yaml.constructor import ConstructorError, SafeConstructor
from yaml.nodes import MappingNode, Node, ScalarNode, SequenceNode

# Tag prefix of tags resolved implicitly by the YAML core schema
CORE_TAG_PREFIX = 'tag:yaml.org,2002:'


def is_mapping(node: Optional[Node]) -> bool:
    return isinstance(node, MappingNode)


def is_sequence(node: Optional[Node]) -> bool:
    return isinstance(node, SequenceNode)


def is_scalar(node: Optional[Node]) -> bool:
    return isinstance(node, ScalarNode)


def local_tag(node: Node) -> Optional[str]:
    """Explicit application tag ('!struct' -> 'struct'), or None."""
    if node.tag and node.tag.startswith('!'):
        return node.tag[1:]
    return None


def to_python(node: Node) -> Any:
    """Construct a plain Python value from a node, ignoring local tags."""
    if isinstance(node, ScalarNode):
        if local_tag(node) is not None:
            return node.value
        try:
            return SafeConstructor().construct_object(node, deep=True)
        except ConstructorError:
            return node.value
    if isinstance(node, SequenceNode):
        return [to_python(item) for item in node.value]
    if isinstance(node, MappingNode):
        return {to_python(k): to_python(v) for k, v in node.value}
    raise TypeError(f"Not a YAML node: {node!r}")


def scalar_text(node: Node) -> str:
    if not isinstance(node, ScalarNode):
        raise ValueError(f"expected a scalar, got a {node.id}")
    return str(node.value)


def scalar_int(node: Node) -> int:
    """Integer value of a scalar, accepting YAML and Python int syntaxes."""
    value = to_python(node) if isinstance(node, ScalarNode) else None
    if isinstance(value, bool) or value is None:
        raise ValueError(f"expected an integer, got {getattr(node, 'value', node)!r}")
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip(), 0)
    except ValueError:
        raise ValueError(f"expected an integer, got {value!r}")


def scalar_bool(node: Node) -> bool:
    value = to_python(node) if isinstance(node, ScalarNode) else None
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ('y', 'n'):
        return value.lower() == 'y'
    raise ValueError(f"expected a boolean, got {getattr(node, 'value', node)!r}")


def items(node: MappingNode) -> Iterator[Tuple[Node, Node]]:
    """Key/value node pairs in document order, duplicates included."""
    return iter(node.value)


def key_text(node: Node) -> str:
    if isinstance(node, ScalarNode):
        return str(node.value)
    return yaml.serialize(node).strip()


def get(node: MappingNode, key: str) -> Optional[Node]:
    for k, v in node.value:
        if isinstance(k, ScalarNode) and k.value == key:
            return v
    return None


def compose_documents(stream) -> List[Node]:
    """Compose every document of a YAML stream into nodes."""
    return [doc for doc in yaml.compose_all(stream, Loader=yaml.SafeLoader)]
