import os
import weakref
from dataclasses import dataclass, field

from gometa.errors import ImportPathNotFoundError
from gometa.modpath import unescape_module_path
from gometa.structtag import lookup_tag


class _Owned:
    """Non-owning back-reference to the entity that owns this one.

    The reference is a plain attribute rather than a dataclass field, so it is
    left out of repr, equality and ``asdict``.
    """

    _owner_ref = None

    def _bind(self, owner) -> None:
        self._owner_ref = weakref.ref(owner)

    def _owner(self):
        return self._owner_ref() if self._owner_ref is not None else None


@dataclass
class TypeNode:
    """A resolved or literal type, with child types for composites.

    Children by shape: element type for array/slice/chan/pointer/variadic,
    key then value for maps, params then results for functions, one named
    entry per field for inline structs, and the flattened params and results
    of each method for interfaces.
    """
    name: str = ""  # Binding name; empty for anonymous and result types
    type: str = ""
    underlying: str = ""  # Empty when not applicable or unresolvable
    inner: list["TypeNode"] = field(default_factory=list)


GlobalConstant = TypeNode
GlobalVariable = TypeNode


@dataclass
class TagLiteral(_Owned):
    """Raw struct tag literal, backticks included."""
    value: str

    @property
    def field(self) -> "FieldDefinition | None":
        return self._owner()

    def lookup(self, key: str) -> tuple[str, bool]:
        """Look up a tag key, reporting whether it was present."""
        return lookup_tag(self.value.replace("`", ""), key)

    def get(self, key: str) -> str:
        """Return the value for ``key``, or "" when the key is absent."""
        return self.lookup(key)[0]


@dataclass
class FieldDefinition(_Owned):
    name: str
    type: str
    tag: TagLiteral | None = None

    @property
    def struct(self) -> "StructDefinition | None":
        return self._owner()


@dataclass
class StructDefinition(_Owned):
    name: str
    comments: str = ""
    fields: list[FieldDefinition] = field(default_factory=list)

    @property
    def file(self) -> "SourceFile | None":
        return self._owner()


@dataclass
class MethodSignature:
    name: str
    params: list[TypeNode] = field(default_factory=list)
    results: list[TypeNode] = field(default_factory=list)
    comments: str = ""


@dataclass
class BoundMethod(MethodSignature):
    """A top-level function or method.

    An empty receiver list means a plain function.
    """
    receivers: list[str] = field(default_factory=list)

    @property
    def is_method(self) -> bool:
        return bool(self.receivers)


@dataclass
class InterfaceDefinition(_Owned):
    name: str
    comments: str = ""
    methods: list[MethodSignature] = field(default_factory=list)

    @property
    def file(self) -> "SourceFile | None":
        return self._owner()


@dataclass
class ImportDeclaration(_Owned):
    name: str  # Alias, empty when the import has none
    path: str  # Exactly as written, quotes included

    @property
    def file(self) -> "SourceFile | None":
        return self._owner()

    @property
    def prefix(self) -> str:
        """Guess the qualifier used for this import in type expressions.

        "strings" -> "strings", "net/http/httptest" -> "httptest". Packages
        whose name differs from their last path segment are mis-identified.
        """
        if self.name:
            return self.name

        path = self.path.strip('"')
        last_slash = path.rfind("/")
        if last_slash == -1:
            return path
        return path[last_slash + 1:]


@dataclass
class SourceFile:
    """Everything extracted from one Go source file."""
    path: str
    package: str
    imports: list[ImportDeclaration] = field(default_factory=list)
    global_constants: list[GlobalConstant] = field(default_factory=list)
    global_variables: list[GlobalVariable] = field(default_factory=list)
    structs: list[StructDefinition] = field(default_factory=list)
    interfaces: list[InterfaceDefinition] = field(default_factory=list)
    methods: list[BoundMethod] = field(default_factory=list)

    def adopt(self, entity: _Owned) -> None:
        """Record this file as the owner of an import, struct or interface."""
        entity._bind(self)

    def import_path(self, dependency_root: str | None) -> tuple[str, bool]:
        """Infer the import path of the package this file belongs to.

        Args:
            dependency_root: Root of the external dependency tree (GOPATH).
                None or empty disables external package detection.

        Returns:
            Tuple of (import_path, is_external_package). Files outside the
            dependency root yield their containing directory.

        Raises:
            ImportPathNotFoundError: If the file does not exist; its ``path``
                attribute is the original path unchanged.
        """
        abs_path = os.path.abspath(self.path)
        if not os.path.exists(abs_path):
            raise ImportPathNotFoundError(self.path)

        normalized = abs_path.replace("\\", "/")
        root = (dependency_root or "").replace("\\", "/").rstrip("/")

        if not root or not (normalized == root or normalized.startswith(root + "/")):
            return os.path.dirname(abs_path), False

        import_path = normalized[len(root):]
        import_path = import_path.removeprefix("/src/")
        import_path = import_path.removeprefix("/pkg/mod/")

        at = import_path.find("@")
        if at > 0:
            import_path = import_path[:at]

        if import_path.lower().endswith(".go"):
            last_slash = import_path.rfind("/")
            if last_slash > 0:
                import_path = import_path[:last_slash]

        import_path = unescape_module_path(import_path)
        import_path = import_path.removesuffix("/")

        return import_path, True
