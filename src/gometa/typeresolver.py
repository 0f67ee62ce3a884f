import logging

from gometa.checker import TypeInfo
from gometa.gotypes import Basic, BasicKind, Interface, Slice, Type
from gometa.models import TypeNode
from gometa.syntax import named_children, node_text

logger = logging.getLogger(__name__)

# Canonical names for basic kinds. Pointer-sized kinds collapse to uint64 and
# untyped constants map to their default types; untyped nil has no entry.
_BASIC_STRINGS = {
    BasicKind.BOOL: "bool",
    BasicKind.INT: "int",
    BasicKind.INT8: "int8",
    BasicKind.INT16: "int16",
    BasicKind.INT32: "int32",
    BasicKind.INT64: "int64",
    BasicKind.UINT: "uint",
    BasicKind.UINT8: "uint8",
    BasicKind.UINT16: "uint16",
    BasicKind.UINT32: "uint32",
    BasicKind.UINT64: "uint64",
    BasicKind.UINTPTR: "uint64",
    BasicKind.FLOAT32: "float32",
    BasicKind.FLOAT64: "float64",
    BasicKind.COMPLEX64: "complex64",
    BasicKind.COMPLEX128: "complex128",
    BasicKind.STRING: "string",
    BasicKind.UNSAFE_POINTER: "uint64",
    BasicKind.UNTYPED_BOOL: "bool",
    BasicKind.UNTYPED_INT: "int",
    BasicKind.UNTYPED_RUNE: "int32",
    BasicKind.UNTYPED_FLOAT: "float64",
    BasicKind.UNTYPED_COMPLEX: "complex128",
    BasicKind.UNTYPED_STRING: "string",
    BasicKind.UNTYPED_NIL: "",
}


def basic_to_string(kind) -> str:
    """Canonical primitive name for a basic kind, or "" for anything unknown."""
    return _BASIC_STRINGS.get(kind, "")


def underlying_type_string(t: Type | None) -> str:
    """Normalized underlying type of a resolved type."""
    if t is None:
        return ""

    underlying = t.underlying
    if isinstance(underlying, Interface):
        return str(t)

    if isinstance(underlying, Slice) and isinstance(underlying.elem, Basic):
        elem = basic_to_string(underlying.elem.kind)
        if elem:
            return "[]" + elem

    if isinstance(underlying, Basic):
        name = basic_to_string(underlying.kind)
        if name:
            return name

    return str(underlying)


class TypeResolver:
    """Turns type expression nodes into TypeNode trees.

    Without type info the resolver works purely on syntax: signatures are the
    verbatim source text and ``underlying`` stays empty. With type info the
    signatures are the checker's canonical strings and ``underlying`` is
    normalized.
    """

    def __init__(self, source: bytes, info: TypeInfo | None = None):
        self.source = source
        self.info = info

    @property
    def resolved(self) -> bool:
        return self.info is not None

    def resolve(self, node, name: str = "") -> TypeNode:
        """Build the TypeNode for a type (or value) expression."""
        if node is None:
            return TypeNode(name=name)

        result = TypeNode(name=name)
        if self.info is not None:
            t = self.info.type_of(node)
            result.type = str(t) if t is not None else node_text(node, self.source)
            result.underlying = underlying_type_string(t)
        else:
            result.type = node_text(node, self.source)

        result.inner = self._children(node)
        return result

    def resolve_variadic(self, param, name: str = "") -> TypeNode:
        """Build the TypeNode for a variadic parameter declaration."""
        elem = param.child_by_field_name("type")
        result = TypeNode(name=name)
        if self.info is not None:
            t = self.info.variadic_type_of(elem)
            result.type = str(t) if t is not None else node_text(param, self.source)
            result.underlying = underlying_type_string(t)
        else:
            # From the ellipsis through the end of the element type.
            ellipsis = next(c for c in param.children if c.type == "...")
            result.type = self.source[ellipsis.start_byte:elem.end_byte].decode("utf8")
        result.inner = [self.resolve(elem)]
        return result

    def resolve_list(self, node) -> list[TypeNode]:
        """Resolve a parameter list, or a single unnamed result type."""
        if node is None:
            return []
        if node.type != "parameter_list":
            return [self.resolve(node)]

        nodes = []
        for param in named_children(node):
            names = [node_text(n, self.source) for n in param.children_by_field_name("name")] or [""]
            for name in names:
                if param.type == "variadic_parameter_declaration":
                    nodes.append(self.resolve_variadic(param, name))
                else:
                    nodes.append(self.resolve(param.child_by_field_name("type"), name))
        return nodes

    def _children(self, node) -> list[TypeNode]:
        kind = node.type

        if kind in ("array_type", "implicit_length_array_type", "slice_type"):
            return [self.resolve(node.child_by_field_name("element"))]
        if kind == "map_type":
            return [self.resolve(node.child_by_field_name("key")), self.resolve(node.child_by_field_name("value"))]
        if kind == "channel_type":
            return [self.resolve(node.child_by_field_name("value"))]
        if kind == "pointer_type":
            return [self.resolve(named_children(node)[0])]
        if kind == "function_type":
            return self.resolve_list(node.child_by_field_name("parameters")) + \
                self.resolve_list(node.child_by_field_name("result"))
        if kind == "struct_type":
            return self._struct_fields(node)
        if kind == "interface_type":
            inner = []
            for elem in named_children(node):
                if elem.type in ("method_elem", "method_spec"):
                    inner.extend(self.resolve_list(elem.child_by_field_name("parameters")))
                    inner.extend(self.resolve_list(elem.child_by_field_name("result")))
            return inner
        if kind not in _LEAF_KINDS:
            logger.debug(f"Treating {kind} as a leaf type expression")
        return []

    def _struct_fields(self, node) -> list[TypeNode]:
        fields = []
        body = next((c for c in node.named_children if c.type == "field_declaration_list"), None)
        if body is None:
            return fields
        for decl in named_children(body):
            if decl.type != "field_declaration":
                continue
            type_node = decl.child_by_field_name("type")
            names = decl.children_by_field_name("name")
            if not names:
                fields.append(self.resolve(type_node))
                continue
            for name_node in names:
                fields.append(self.resolve(type_node, node_text(name_node, self.source)))
        return fields


_LEAF_KINDS = frozenset({
    "type_identifier",
    "qualified_type",
    "generic_type",
    "parenthesized_type",
    "negated_type",
    "identifier",
    "selector_expression",
    "int_literal",
    "float_literal",
    "imaginary_literal",
    "rune_literal",
    "interpreted_string_literal",
    "raw_string_literal",
    "true",
    "false",
    "nil",
    "iota",
    "call_expression",
    "composite_literal",
    "unary_expression",
    "binary_expression",
    "parenthesized_expression",
    "func_literal",
})
