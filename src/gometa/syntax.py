"""Helpers for working with tree-sitter Go syntax trees."""

from dataclasses import dataclass
from typing import Any

# Node kinds that denote a type expression in the tree-sitter Go grammar.
TYPE_NODE_KINDS = frozenset({
    "type_identifier",
    "qualified_type",
    "pointer_type",
    "array_type",
    "implicit_length_array_type",
    "slice_type",
    "map_type",
    "channel_type",
    "function_type",
    "struct_type",
    "interface_type",
    "parenthesized_type",
    "generic_type",
    "negated_type",
})


@dataclass
class ParsedFile:
    """A Go source file parsed by tree-sitter."""
    path: str
    source: bytes
    tree: Any
    package: str

    @property
    def root(self):
        return self.tree.root_node

    def text(self, node) -> str:
        return node_text(node, self.source)


def node_text(node, source: bytes) -> str:
    """Verbatim source text spanned by a node."""
    return source[node.start_byte:node.end_byte].decode("utf8")


def named_children(node) -> list:
    """Named children of a node, comments excluded."""
    return [child for child in node.named_children if child.type != "comment"]


def child_of_type(node, *kinds: str):
    """First direct child whose kind is one of ``kinds``."""
    for child in node.children:
        if child.type in kinds:
            return child
    return None


def iter_specs(declaration, spec_kind: str, list_kind: str | None = None):
    """Yield the spec nodes of a possibly parenthesised declaration.

    Grammar versions differ on whether grouped specs are direct children or
    wrapped in a ``*_spec_list`` node, so both shapes are handled.
    """
    for child in declaration.named_children:
        if child.type == spec_kind:
            yield child
        elif list_kind is not None and child.type == list_kind:
            for spec in child.named_children:
                if spec.type == spec_kind:
                    yield spec


def is_grouped(spec) -> bool:
    """True when a spec sits inside a parenthesised declaration group."""
    parent = spec.parent
    if parent is None:
        return False
    if parent.type.endswith("_spec_list"):
        return True
    return any(child.type == "(" for child in parent.children)


def position(node) -> tuple[int, int]:
    """1-based (line, column) of a node's start."""
    row, column = node.start_point
    return row + 1, column + 1
