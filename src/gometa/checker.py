"""Declaration-level semantic checking of Go packages.

The checker resolves every top-level declaration of a package (types,
constants, variables, function and method signatures) against the universe,
the package scope and imported packages. Function bodies are never looked
at. Imported packages are obtained from an injected import resolver.

Two modes share one implementation:

* strict (``GoChecker.check``): all imports are resolved eagerly, every
  declaration is forced, and any diagnostic fails the check. An import that
  cannot be resolved is reported as a structured ``UnresolvedImportError``.
* lazy (``build_package``): used for dependencies. Objects are resolved on
  first use and diagnostics are only logged.
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, Protocol

from gometa.errors import CheckError, ImportResolutionError, UnresolvedImportError
from gometa.gotypes import (
    BYTE,
    EMPTY_INTERFACE,
    INVALID,
    TYP,
    UNIVERSE,
    UNSAFE,
    UNTYPED_RANK,
    Array,
    Basic,
    BasicKind,
    Builtin,
    Chan,
    ChanDir,
    Const,
    Func,
    Instance,
    Interface,
    Map,
    Named,
    Nil,
    Object,
    Package,
    PkgName,
    Pointer,
    Signature,
    Slice,
    Struct,
    Tuple,
    Type,
    TypeName,
    TypeParam,
    Var,
    Variable,
    default_type,
    is_exported,
)
from gometa.structtag import unquote
from gometa.syntax import (
    TYPE_NODE_KINDS,
    ParsedFile,
    iter_specs,
    named_children,
    position,
)

logger = logging.getLogger(__name__)

_COMPARISON_OPERATORS = {"==", "!=", "<", "<=", ">", ">="}
_SHIFT_OPERATORS = {"<<", ">>"}
_NO_VALUE_BUILTINS = {"panic", "print", "println", "delete", "clear", "close"}


class PackageImporter(Protocol):
    """What the checker needs from an import resolver."""

    def import_package(self, path: str) -> Package | None:
        ...


class TypeInfo(ABC):
    """Resolved type information for the nodes of one file."""

    @abstractmethod
    def type_of(self, node) -> Type | None:
        """Type of a type expression or value expression node."""

    def variadic_type_of(self, node) -> Type | None:
        """Type of a variadic parameter whose element type is ``node``."""
        elem = self.type_of(node)
        return Slice(elem) if elem is not None else None


class CheckedPackage:
    """Result of a successful check: the package and per-file type info."""

    def __init__(self, package: Package, infos: dict[str, TypeInfo]):
        self.package = package
        self._infos = infos

    def info_for(self, path: str) -> TypeInfo:
        return self._infos[path]


class SemanticChecker(ABC):
    """Checks a package made of parsed files."""

    @abstractmethod
    def check(self, package_name: str, files: list[ParsedFile]) -> CheckedPackage:
        """Type-check the declarations of ``files``.

        Raises:
            UnresolvedImportError: If an imported package could not be found
            CheckError: For any other diagnostic
        """


class GoChecker(SemanticChecker):
    """Checker for Go declarations backed by an import resolver."""

    def __init__(self, importer: PackageImporter):
        self.importer = importer

    def check(self, package_name: str, files: list[ParsedFile]) -> CheckedPackage:
        # Local types are qualified by the package name, as when checking a
        # file set outside of any module.
        builder = PackageBuilder(package_name, package_name, files, self.importer.import_package, strict=True)
        builder.collect()
        builder.resolve_imports()
        builder.force()
        if builder.diagnostics:
            raise CheckError(builder.diagnostics)
        return CheckedPackage(builder.package, builder.infos())


def build_package(path: str, name: str, files: list[ParsedFile], import_package: Callable[[str], Package | None]) -> Package:
    """Build a lazily resolved package for a dependency."""
    builder = PackageBuilder(path, name, files, import_package, strict=False)
    builder.collect()
    return builder.package


def guess_package_name(import_path: str) -> str:
    """Guess the package name an import path declares.

    "gopkg.in/yaml.v3" -> "yaml", "github.com/x/go-redis/v9" -> "redis".
    """
    segments = [s for s in import_path.split("/") if s]
    if not segments:
        return import_path
    last = segments[-1]
    if len(segments) > 1 and last.startswith("v") and last[1:].isdigit():
        last = segments[-2]
    last = last.split(".")[0]
    last = last.removeprefix("go-").removesuffix("-go")
    return last.replace("-", "_")


class _FileScope:
    def __init__(self, parsed: ParsedFile):
        self.parsed = parsed
        self.packages: dict[str, PkgName] = {}
        self.dot_packages: list[Package] = []
        self.pending: list[tuple[str, str, object]] = []  # (alias, path, node)
        self.memo: dict[tuple[int, int, str], Type] = {}


class _FileTypeInfo(TypeInfo):
    def __init__(self, builder: "PackageBuilder", scope: _FileScope):
        self._builder = builder
        self._scope = scope

    def type_of(self, node) -> Type | None:
        if node is None:
            return None
        key = (node.start_byte, node.end_byte, node.type)
        if key in self._scope.memo:
            return self._scope.memo[key]
        if node.type in TYPE_NODE_KINDS:
            return self._builder.type_expr(node, self._scope, {})
        return self._builder.expr_type(node, self._scope, {})


class PackageBuilder:
    """Collects a package's declarations and resolves them on demand."""

    def __init__(
        self,
        path: str,
        name: str,
        files: list[ParsedFile],
        import_package: Callable[[str], Package | None],
        strict: bool,
    ):
        self.package = Package(path, name)
        self.files = files
        self.import_package = import_package
        self.strict = strict
        self.diagnostics: list[str] = []
        self.scopes = {f.path: _FileScope(f) for f in files}
        self._objects: list[Object] = []
        self._method_decls: dict[str, list[tuple[object, _FileScope]]] = {}

    # ------------------------------------------------------------------
    # Collection

    def collect(self) -> None:
        for parsed in self.files:
            scope = self.scopes[parsed.path]
            for decl in parsed.root.named_children:
                kind = decl.type
                if kind == "import_declaration":
                    self._collect_imports(decl, scope)
                elif kind == "type_declaration":
                    self._collect_types(decl, scope)
                elif kind == "const_declaration":
                    self._collect_consts(decl, scope)
                elif kind == "var_declaration":
                    self._collect_vars(decl, scope)
                elif kind == "function_declaration":
                    self._collect_function(decl, scope)
                elif kind == "method_declaration":
                    self._collect_method(decl, scope)

    def _declare(self, obj: Object, node, scope: _FileScope) -> None:
        self._objects.append(obj)
        if obj.name in ("_", "init"):
            return
        if obj.name in self.package.scope:
            self._error(node, scope, f"{obj.name} redeclared in this block")
            return
        self.package.scope[obj.name] = obj

    def _collect_imports(self, decl, scope: _FileScope) -> None:
        for spec in iter_specs(decl, "import_spec", "import_spec_list"):
            path_node = spec.child_by_field_name("path")
            name_node = spec.child_by_field_name("name")
            try:
                path = unquote(scope.parsed.text(path_node))
            except ValueError:
                self._error(spec, scope, f"invalid import path: {scope.parsed.text(path_node)}")
                continue
            alias = scope.parsed.text(name_node) if name_node is not None else ""
            scope.pending.append((alias, path, spec))

    def _collect_types(self, decl, scope: _FileScope) -> None:
        for spec in decl.named_children:
            if spec.type not in ("type_spec", "type_alias"):
                continue
            name = scope.parsed.text(spec.child_by_field_name("name"))
            type_node = spec.child_by_field_name("type")
            if spec.type == "type_alias":
                obj = TypeName(name, self.package.path, alias=True,
                               loader=lambda n=type_node, s=scope: self.type_expr(n, s, {}))
            else:
                named = Named(self.package.path, name)
                named._loader = lambda t=named, sp=spec, s=scope: self._load_named(t, sp, s)
                obj = TypeName(name, self.package.path, type=named)
            self._declare(obj, spec, scope)

    def _collect_consts(self, decl, scope: _FileScope) -> None:
        last_type = None
        last_values: list = []
        for iota, spec in enumerate(iter_specs(decl, "const_spec")):
            value_list = spec.child_by_field_name("value")
            if value_list is not None:
                last_type = spec.child_by_field_name("type")
                last_values = named_children(value_list)
            for i, name_node in enumerate(spec.children_by_field_name("name")):
                value = last_values[i] if i < len(last_values) else None
                obj = Const(
                    scope.parsed.text(name_node),
                    self.package.path,
                    loader=lambda t=last_type, v=value, s=scope, n=name_node: self._const_type(t, v, s, n),
                    value_loader=lambda v=value, s=scope, k=iota: self.const_value(v, s, k),
                )
                self._declare(obj, name_node, scope)

    def _collect_vars(self, decl, scope: _FileScope) -> None:
        for spec in iter_specs(decl, "var_spec", "var_spec_list"):
            for i, name_node in enumerate(spec.children_by_field_name("name")):
                obj = Variable(
                    scope.parsed.text(name_node),
                    self.package.path,
                    loader=lambda sp=spec, k=i, s=scope: self._var_type(sp, k, s),
                )
                self._declare(obj, name_node, scope)

    def _collect_function(self, decl, scope: _FileScope) -> None:
        name_node = decl.child_by_field_name("name")
        obj = Func(
            scope.parsed.text(name_node),
            self.package.path,
            loader=lambda d=decl, s=scope: self._function_signature(d, s),
        )
        self._declare(obj, name_node, scope)

    def _collect_method(self, decl, scope: _FileScope) -> None:
        base = self._receiver_base(decl, scope)
        if base is None:
            self._error(decl, scope, "invalid receiver")
            return
        self._method_decls.setdefault(base, []).append((decl, scope))

    def _receiver_base(self, decl, scope: _FileScope) -> str | None:
        receiver = decl.child_by_field_name("receiver")
        params = named_children(receiver) if receiver is not None else []
        if not params:
            return None
        node = params[0].child_by_field_name("type")
        while node is not None and node.type in ("pointer_type", "parenthesized_type"):
            children = named_children(node)
            node = children[0] if children else None
        if node is not None and node.type == "generic_type":
            node = node.child_by_field_name("type")
        if node is None or node.type != "type_identifier":
            return None
        return scope.parsed.text(node)

    # ------------------------------------------------------------------
    # Imports

    def resolve_imports(self) -> None:
        """Import every package the files reference (strict mode)."""
        for scope in self.scopes.values():
            while scope.pending:
                self._import_spec(scope, scope.pending.pop(0))

    def _import_spec(self, scope: _FileScope, spec: tuple[str, str, object]) -> None:
        alias, path, node = spec
        if path == "unsafe":
            package = UNSAFE
        else:
            try:
                package = self.import_package(path)
            except ImportResolutionError as e:
                if self.strict:
                    raise
                self._error(node, scope, f"could not import {path} ({e})")
                return
            if package is None:
                if self.strict:
                    raise UnresolvedImportError(path, "package not found")
                self._error(node, scope, f"could not import {path}")
                return

        if alias == "_":
            return
        if alias == ".":
            scope.dot_packages.append(package)
            return
        local = alias or package.name
        scope.packages[local] = PkgName(local, package)

    def _lookup_package(self, name: str, scope: _FileScope) -> PkgName | None:
        if name in scope.packages:
            return scope.packages[name]
        if not scope.pending:
            return None
        # Import the likeliest candidates first, then everything else.
        likely = [s for s in scope.pending if s[0] == name or (not s[0] and guess_package_name(s[1]) == name)]
        for spec in likely + [s for s in scope.pending if s not in likely]:
            scope.pending.remove(spec)
            self._import_spec(scope, spec)
            if name in scope.packages:
                return scope.packages[name]
        return None

    def lookup(self, name: str, scope: _FileScope, env: dict[str, TypeParam]) -> Object | None:
        if name in env:
            return TypeName(name, type=env[name])
        if name in scope.packages:
            return scope.packages[name]
        if name in self.package.scope:
            return self.package.scope[name]
        if any(s[0] == "." for s in scope.pending):
            for spec in [s for s in scope.pending if s[0] == "."]:
                scope.pending.remove(spec)
                self._import_spec(scope, spec)
        for package in scope.dot_packages:
            obj = package.lookup(name)
            if obj is not None and obj.exported:
                return obj
        if name in UNIVERSE:
            return UNIVERSE[name]
        return self._lookup_package(name, scope)

    def _qualified(self, pkg_name: str, name: str, node, scope: _FileScope) -> Object | None:
        pkg = self._lookup_package(pkg_name, scope)
        if pkg is None:
            self._error(node, scope, f"undefined: {pkg_name}")
            return None
        obj = pkg.package.lookup(name)
        if obj is None:
            self._error(node, scope, f"undefined: {pkg_name}.{name}")
            return None
        if not obj.exported:
            self._error(node, scope, f"name {name} not exported by package {pkg.package.name}")
            return None
        return obj

    # ------------------------------------------------------------------
    # Declarations

    def _load_named(self, named: Named, spec, scope: _FileScope) -> tuple[Type, dict[str, Func]]:
        env = self._type_params(spec.child_by_field_name("type_parameters"), scope)
        named.set_type_params(list(env.values()))
        declared = self.type_expr(spec.child_by_field_name("type"), scope, env)
        underlying = declared.underlying
        if isinstance(declared, (Named, Instance)) and underlying is INVALID:
            self._error(spec, scope, f"invalid recursive type {named.name}")
        methods = {}
        for decl, decl_scope in self._method_decls.get(named.name, []):
            name = decl_scope.parsed.text(decl.child_by_field_name("name"))
            method = Func(name, self.package.path,
                          loader=lambda d=decl, s=decl_scope: self._method_signature(d, s))
            methods[name] = method
            self._objects.append(method)
        return underlying, methods

    def _const_type(self, type_node, value_node, scope: _FileScope, name_node) -> Type:
        if type_node is not None:
            return self.type_expr(type_node, scope, {})
        if value_node is None:
            self._error(name_node, scope, "missing init expr for const declaration")
            return INVALID
        return self.expr_type(value_node, scope, {})

    def _var_type(self, spec, index: int, scope: _FileScope) -> Type:
        type_node = spec.child_by_field_name("type")
        if type_node is not None:
            return self.type_expr(type_node, scope, {})

        value_list = spec.child_by_field_name("value")
        values = named_children(value_list) if value_list is not None else []
        if not values:
            self._error(spec, scope, "missing type or init expr")
            return INVALID

        if len(values) == 1 and len(spec.children_by_field_name("name")) > 1:
            result = self.expr_type(values[0], scope, {})
            if isinstance(result, Tuple) and index < len(result.variables):
                return result.variables[index].type
            if index == 0:
                return default_type(result)
            self._error(spec, scope, "assignment mismatch")
            return INVALID

        if index >= len(values):
            self._error(spec, scope, "assignment mismatch")
            return INVALID

        value = values[index]
        value_type = self.expr_type(value, scope, {})
        if isinstance(value_type, Basic) and value_type.kind is BasicKind.UNTYPED_NIL:
            self._error(value, scope, "use of untyped nil in variable declaration")
            return INVALID
        typed = default_type(value_type)
        # Untyped initializers take their default type once assigned.
        scope.memo[(value.start_byte, value.end_byte, value.type)] = typed
        return typed

    def _function_signature(self, decl, scope: _FileScope) -> Signature:
        env = self._type_params(decl.child_by_field_name("type_parameters"), scope)
        return self.signature(
            decl.child_by_field_name("parameters"),
            decl.child_by_field_name("result"),
            scope,
            env,
            type_params=list(env.values()),
        )

    def _method_signature(self, decl, scope: _FileScope) -> Signature:
        receiver = named_children(decl.child_by_field_name("receiver"))[0]
        type_node = receiver.child_by_field_name("type")
        env = self._receiver_type_params(type_node, scope)
        recv_type = self.type_expr(type_node, scope, env)
        name_node = receiver.child_by_field_name("name")
        recv = Var(scope.parsed.text(name_node) if name_node is not None else "", recv_type)
        sig = self.signature(decl.child_by_field_name("parameters"), decl.child_by_field_name("result"), scope, env)
        sig.recv = recv
        return sig

    def _receiver_type_params(self, type_node, scope: _FileScope) -> dict[str, TypeParam]:
        node = type_node
        while node is not None and node.type in ("pointer_type", "parenthesized_type"):
            children = named_children(node)
            node = children[0] if children else None
        env = {}
        if node is not None and node.type == "generic_type":
            for arg in named_children(node.child_by_field_name("type_arguments")):
                name = scope.parsed.text(arg).strip()
                if name.isidentifier():
                    env[name] = TypeParam(name)
        return env

    def _type_params(self, node, scope: _FileScope) -> dict[str, TypeParam]:
        env: dict[str, TypeParam] = {}
        if node is None:
            return env
        for decl in named_children(node):
            constraint_node = decl.child_by_field_name("type")
            params = [TypeParam(scope.parsed.text(n)) for n in decl.children_by_field_name("name")]
            for param in params:
                env[param.name] = param
            constraint = self.type_expr(constraint_node, scope, env) if constraint_node is not None else None
            for param in params:
                param.constraint = constraint
        return env

    def force(self) -> None:
        """Resolve every declaration so all diagnostics surface."""
        for obj in list(self._objects):
            t = obj.type
            if isinstance(t, Named):
                t.underlying
        # Methods are attached while forcing their receiver types.
        for obj in list(self._objects):
            obj.type
        for base, decls in self._method_decls.items():
            obj = self.package.scope.get(base)
            if not isinstance(obj, TypeName) or obj.alias:
                for decl, scope in decls:
                    self._error(decl, scope, f"undefined: {base}")

    def infos(self) -> dict[str, TypeInfo]:
        return {path: _FileTypeInfo(self, scope) for path, scope in self.scopes.items()}

    # ------------------------------------------------------------------
    # Type expressions

    def type_expr(self, node, scope: _FileScope, env: dict[str, TypeParam]) -> Type:
        key = (node.start_byte, node.end_byte, node.type)
        if key in scope.memo:
            return scope.memo[key]
        t = self._type_expr(node, scope, env)
        scope.memo[key] = t
        return t

    def _type_expr(self, node, scope: _FileScope, env: dict[str, TypeParam]) -> Type:
        kind = node.type
        text = scope.parsed.text

        if kind in ("type_identifier", "identifier"):
            name = text(node)
            obj = self.lookup(name, scope, env)
            if obj is None:
                self._error(node, scope, f"undefined: {name}")
                return INVALID
            if not isinstance(obj, TypeName):
                self._error(node, scope, f"{name} is not a type")
                return INVALID
            return obj.type

        if kind in ("qualified_type", "selector_expression"):
            if kind == "qualified_type":
                pkg_node, name_node = node.child_by_field_name("package"), node.child_by_field_name("name")
            else:
                pkg_node, name_node = node.child_by_field_name("operand"), node.child_by_field_name("field")
            obj = self._qualified(text(pkg_node), text(name_node), node, scope)
            if obj is None:
                return INVALID
            if not isinstance(obj, TypeName):
                self._error(node, scope, f"{text(node)} is not a type")
                return INVALID
            return obj.type

        if kind == "pointer_type":
            return Pointer(self.type_expr(named_children(node)[0], scope, env))

        if kind == "slice_type":
            return Slice(self.type_expr(node.child_by_field_name("element"), scope, env))

        if kind == "array_type":
            length_node = node.child_by_field_name("length")
            length = self.const_value(length_node, scope)
            if length is None:
                self._error(length_node, scope, f"array length {text(length_node)} must be constant")
            return Array(length, self.type_expr(node.child_by_field_name("element"), scope, env))

        if kind == "implicit_length_array_type":
            return Array(None, self.type_expr(node.child_by_field_name("element"), scope, env))

        if kind == "map_type":
            return Map(
                self.type_expr(node.child_by_field_name("key"), scope, env),
                self.type_expr(node.child_by_field_name("value"), scope, env),
            )

        if kind == "channel_type":
            tokens = [child.type for child in node.children if not child.is_named]
            if tokens and tokens[0] == "<-":
                direction = ChanDir.RECV_ONLY
            elif "<-" in tokens:
                direction = ChanDir.SEND_ONLY
            else:
                direction = ChanDir.SEND_RECV
            return Chan(direction, self.type_expr(node.child_by_field_name("value"), scope, env))

        if kind == "function_type":
            return self.signature(node.child_by_field_name("parameters"), node.child_by_field_name("result"), scope, env)

        if kind == "struct_type":
            return self._struct(node, scope, env)

        if kind == "interface_type":
            return self._interface(node, scope, env)

        if kind in ("parenthesized_type", "negated_type", "type_elem", "type_constraint"):
            children = named_children(node)
            if not children:
                return INVALID
            return self.type_expr(children[0], scope, env)

        if kind == "generic_type":
            origin = self.type_expr(node.child_by_field_name("type"), scope, env)
            args = [self.type_expr(arg, scope, env) for arg in named_children(node.child_by_field_name("type_arguments"))]
            return Instance(origin, args)

        self._error(node, scope, f"{text(node)} is not a type")
        return INVALID

    def signature(
        self,
        params_node,
        result_node,
        scope: _FileScope,
        env: dict[str, TypeParam],
        type_params: list[TypeParam] | None = None,
    ) -> Signature:
        params, variadic = self._params(params_node, scope, env)
        if result_node is None:
            results = []
        elif result_node.type == "parameter_list":
            results, _ = self._params(result_node, scope, env)
        else:
            results = [Var("", self.type_expr(result_node, scope, env))]
        return Signature(params, results, variadic, type_params=type_params)

    def _params(self, node, scope: _FileScope, env: dict[str, TypeParam]) -> tuple[list[Var], bool]:
        variables: list[Var] = []
        variadic = False
        if node is None:
            return variables, variadic
        for decl in named_children(node):
            type_node = decl.child_by_field_name("type")
            if type_node is None:
                continue
            t = self.type_expr(type_node, scope, env)
            if decl.type == "variadic_parameter_declaration":
                t = Slice(t)
                variadic = True
            names = [scope.parsed.text(n) for n in decl.children_by_field_name("name")] or [""]
            variables.extend(Var(name, t) for name in names)
        return variables, variadic

    def _struct(self, node, scope: _FileScope, env: dict[str, TypeParam]) -> Struct:
        fields: list[Var] = []
        body = next((c for c in node.named_children if c.type == "field_declaration_list"), None)
        for decl in named_children(body) if body is not None else []:
            if decl.type != "field_declaration":
                continue
            type_node = decl.child_by_field_name("type")
            t = self.type_expr(type_node, scope, env)
            tag_node = decl.child_by_field_name("tag")
            tag = ""
            if tag_node is not None:
                try:
                    tag = unquote(scope.parsed.text(tag_node))
                except ValueError:
                    self._error(tag_node, scope, "invalid struct tag")
            names = decl.children_by_field_name("name")
            if names:
                fields.extend(Var(scope.parsed.text(n), t, tag=tag) for n in names)
                continue
            if any(child.type == "*" for child in decl.children):
                t = Pointer(t)
            fields.append(Var(_embedded_name(t), t, embedded=True, tag=tag))
        return Struct(fields)

    def _interface(self, node, scope: _FileScope, env: dict[str, TypeParam]) -> Interface:
        methods: list[Func] = []
        embeddeds: list[Type] = []
        for elem in named_children(node):
            if elem.type in ("method_elem", "method_spec"):
                name = scope.parsed.text(elem.child_by_field_name("name"))
                sig = self.signature(elem.child_by_field_name("parameters"), elem.child_by_field_name("result"), scope, env)
                methods.append(Func(name, self.package.path, type=sig))
            else:
                embeddeds.append(self.type_expr(elem, scope, env))
        if not methods and not embeddeds:
            return EMPTY_INTERFACE
        return Interface(methods, embeddeds)

    # ------------------------------------------------------------------
    # Value expressions

    def expr_type(self, node, scope: _FileScope, env: dict[str, TypeParam]) -> Type:
        key = (node.start_byte, node.end_byte, node.type)
        if key in scope.memo:
            return scope.memo[key]
        t = self._expr_type(node, scope, env)
        scope.memo[key] = t
        return t

    def _expr_type(self, node, scope: _FileScope, env: dict[str, TypeParam]) -> Type:
        kind = node.type
        text = scope.parsed.text

        if kind in TYPE_NODE_KINDS:
            return self.type_expr(node, scope, env)
        if kind == "int_literal" or kind == "iota":
            return TYP[BasicKind.UNTYPED_INT]
        if kind == "float_literal":
            return TYP[BasicKind.UNTYPED_FLOAT]
        if kind == "imaginary_literal":
            return TYP[BasicKind.UNTYPED_COMPLEX]
        if kind == "rune_literal":
            return TYP[BasicKind.UNTYPED_RUNE]
        if kind in ("interpreted_string_literal", "raw_string_literal"):
            return TYP[BasicKind.UNTYPED_STRING]
        if kind in ("true", "false"):
            return TYP[BasicKind.UNTYPED_BOOL]
        if kind == "nil":
            return TYP[BasicKind.UNTYPED_NIL]

        if kind == "identifier":
            name = text(node)
            obj = self.lookup(name, scope, env)
            if obj is None:
                self._error(node, scope, f"undefined: {name}")
                return INVALID
            if isinstance(obj, PkgName):
                self._error(node, scope, f"use of package {name} without selector")
                return INVALID
            if isinstance(obj, Builtin):
                self._error(node, scope, f"{name} (built-in function) must be called")
                return INVALID
            return obj.type

        if kind in ("parenthesized_expression", "expression_list"):
            children = named_children(node)
            return self.expr_type(children[0], scope, env) if children else INVALID

        if kind == "selector_expression":
            return self._selector_type(node, scope, env)

        if kind == "composite_literal":
            type_node = node.child_by_field_name("type")
            t = self.type_expr(type_node, scope, env)
            if type_node.type == "implicit_length_array_type" and isinstance(t, Array):
                body = node.child_by_field_name("body")
                t = Array(self._literal_length(body, scope), t.elem)
                scope.memo[(type_node.start_byte, type_node.end_byte, type_node.type)] = t
            return t

        if kind == "func_literal":
            return self.signature(node.child_by_field_name("parameters"), node.child_by_field_name("result"), scope, env)

        if kind == "unary_expression":
            operator = node.child_by_field_name("operator").type
            operand = self.expr_type(node.child_by_field_name("operand"), scope, env)
            if operator == "&":
                return Pointer(operand)
            if operator == "*":
                if isinstance(operand.underlying, Pointer):
                    return operand.underlying.elem
                self._error(node, scope, f"invalid operation: cannot indirect {text(node)}")
                return INVALID
            if operator == "<-":
                under = operand.underlying
                return under.elem if isinstance(under, Chan) else INVALID
            return operand

        if kind == "binary_expression":
            return self._binary_type(node, scope, env)

        if kind == "call_expression":
            return self._call_type(node, scope, env)

        if kind in ("type_conversion_expression", "type_assertion_expression"):
            return self.type_expr(node.child_by_field_name("type"), scope, env)

        if kind == "index_expression":
            operand = self.expr_type(node.child_by_field_name("operand"), scope, env)
            under = operand.underlying
            if isinstance(under, Pointer) and isinstance(under.elem.underlying, Array):
                under = under.elem.underlying
            if isinstance(under, (Slice, Array)):
                return under.elem
            if isinstance(under, Map):
                return under.value
            if isinstance(under, Basic) and under.kind in (BasicKind.STRING, BasicKind.UNTYPED_STRING):
                return BYTE
            self._error(node, scope, f"invalid operation: cannot index {text(node)}")
            return INVALID

        if kind == "slice_expression":
            operand = self.expr_type(node.child_by_field_name("operand"), scope, env)
            under = operand.underlying
            if isinstance(under, Pointer) and isinstance(under.elem.underlying, Array):
                return Slice(under.elem.underlying.elem)
            if isinstance(under, Array):
                return Slice(under.elem)
            return default_type(operand)

        logger.debug(f"Unexpected expression kind {kind}: {text(node)}")
        return INVALID

    def _selector_type(self, node, scope: _FileScope, env: dict[str, TypeParam]) -> Type:
        text = scope.parsed.text
        operand = node.child_by_field_name("operand")
        field = text(node.child_by_field_name("field"))

        if operand.type == "identifier":
            name = text(operand)
            obj = self.lookup(name, scope, env)
            if isinstance(obj, PkgName):
                target = self._qualified(name, field, node, scope)
                if target is None:
                    return INVALID
                if isinstance(target, Builtin):
                    self._error(node, scope, f"{text(node)} (built-in function) must be called")
                    return INVALID
                return target.type

        base = self.expr_type(operand, scope, env)
        selected = select_member(base, field)
        if selected is None:
            self._error(node, scope, f"{text(node)} undefined (type {base} has no field or method {field})")
            return INVALID
        return selected

    def _binary_type(self, node, scope: _FileScope, env: dict[str, TypeParam]) -> Type:
        operator = node.child_by_field_name("operator").type
        left = self.expr_type(node.child_by_field_name("left"), scope, env)
        right = self.expr_type(node.child_by_field_name("right"), scope, env)

        if operator in _COMPARISON_OPERATORS:
            return TYP[BasicKind.UNTYPED_BOOL]
        if operator in _SHIFT_OPERATORS:
            return left

        left_untyped = isinstance(left, Basic) and left.is_untyped
        right_untyped = isinstance(right, Basic) and right.is_untyped
        if not left_untyped:
            return left
        if not right_untyped:
            return right
        if left.kind in UNTYPED_RANK and right.kind in UNTYPED_RANK:
            return left if UNTYPED_RANK[left.kind] >= UNTYPED_RANK[right.kind] else right
        return left

    def _call_type(self, node, scope: _FileScope, env: dict[str, TypeParam]) -> Type:
        text = scope.parsed.text
        function = node.child_by_field_name("function")
        arguments = node.child_by_field_name("arguments")
        args = named_children(arguments) if arguments is not None else []

        target = self._callee_object(function, scope, env)
        if isinstance(target, TypeName):
            return target.type
        if isinstance(target, Builtin):
            return self._builtin_type(target, args, node, scope, env)
        if function.type in TYPE_NODE_KINDS:
            return self.type_expr(function, scope, env)

        callee = self.expr_type(function, scope, env)
        sig = callee.underlying
        if not isinstance(sig, Signature):
            if callee is not INVALID:
                self._error(node, scope, f"invalid operation: cannot call non-function {text(function)}")
            return INVALID
        if not sig.results:
            self._error(node, scope, f"{text(node)} (no value) used as value")
            return INVALID
        if len(sig.results) == 1:
            return sig.results[0].type
        return Tuple(sig.results)

    def _callee_object(self, function, scope: _FileScope, env: dict[str, TypeParam]) -> Object | None:
        text = scope.parsed.text
        while function.type == "parenthesized_expression":
            children = named_children(function)
            if not children:
                return None
            function = children[0]
        if function.type == "identifier":
            obj = self.lookup(text(function), scope, env)
            return obj if isinstance(obj, (TypeName, Builtin)) else None
        if function.type == "selector_expression":
            operand = function.child_by_field_name("operand")
            if operand.type == "identifier" and isinstance(self.lookup(text(operand), scope, env), PkgName):
                obj = self._qualified(text(operand), text(function.child_by_field_name("field")), function, scope)
                return obj if isinstance(obj, (TypeName, Builtin)) else None
        return None

    def _builtin_type(self, builtin: Builtin, args: list, node, scope: _FileScope, env: dict[str, TypeParam]) -> Type:
        name = builtin.name

        def arg_type(i: int) -> Type:
            if i >= len(args):
                self._error(node, scope, f"not enough arguments for {name}")
                return INVALID
            return self.expr_type(args[i], scope, env)

        if builtin.pkg == "unsafe":
            if name in ("Sizeof", "Alignof", "Offsetof"):
                return TYP[BasicKind.UINTPTR]
            if name == "Add":
                return TYP[BasicKind.UNSAFE_POINTER]
            if name == "String":
                return TYP[BasicKind.STRING]
            if name == "StringData":
                return Pointer(BYTE)
            if name == "Slice":
                ptr = arg_type(0).underlying
                return Slice(ptr.elem) if isinstance(ptr, Pointer) else INVALID
            if name == "SliceData":
                s = arg_type(0).underlying
                return Pointer(s.elem) if isinstance(s, Slice) else INVALID

        if name in ("len", "cap"):
            return TYP[BasicKind.INT]
        if name == "new":
            return Pointer(arg_type(0))
        if name in ("make", "append"):
            return arg_type(0)
        if name == "recover":
            return Interface(alias="any")
        if name in ("real", "imag"):
            t = arg_type(0)
            if isinstance(t, Basic) and t.is_untyped:
                return TYP[BasicKind.UNTYPED_FLOAT]
            if isinstance(t.underlying, Basic) and t.underlying.kind is BasicKind.COMPLEX64:
                return TYP[BasicKind.FLOAT32]
            return TYP[BasicKind.FLOAT64]
        if name == "complex":
            t = arg_type(0)
            if isinstance(t, Basic) and t.is_untyped:
                other = arg_type(1)
                if isinstance(other, Basic) and other.is_untyped:
                    return TYP[BasicKind.UNTYPED_COMPLEX]
                t = other
            if isinstance(t.underlying, Basic) and t.underlying.kind is BasicKind.FLOAT32:
                return TYP[BasicKind.COMPLEX64]
            return TYP[BasicKind.COMPLEX128]
        if name in ("min", "max"):
            types = [arg_type(i) for i in range(len(args))] or [INVALID]
            typed = [t for t in types if not (isinstance(t, Basic) and t.is_untyped)]
            if typed:
                return typed[0]
            return max(types, key=lambda t: UNTYPED_RANK.get(getattr(t, "kind", None), 0))
        if name in _NO_VALUE_BUILTINS:
            self._error(node, scope, f"{scope.parsed.text(node)} (no value) used as value")
            return INVALID
        if name == "copy":
            return TYP[BasicKind.INT]
        return INVALID

    # ------------------------------------------------------------------
    # Constant evaluation

    def _literal_length(self, body, scope: _FileScope) -> int:
        """Length of a [...]T literal: one past the largest element index."""
        index = length = 0
        for element in named_children(body) if body is not None else []:
            if element.type == "keyed_element":
                key = named_children(element)[0]
                if key.type == "literal_element":
                    key = named_children(key)[0]
                value = self.const_value(key, scope)
                if value is None or value < 0:
                    self._error(key, scope, f"index {scope.parsed.text(key)} must be non-negative integer constant")
                else:
                    index = value
            index += 1
            length = max(length, index)
        return length

    def const_value(self, node, scope: _FileScope, iota: int | None = None) -> int | None:
        """Evaluate an integer constant expression, or return None."""
        if node is None:
            return None
        kind = node.type
        text = scope.parsed.text

        if kind == "int_literal":
            return parse_int_literal(text(node))
        if kind == "iota":
            return iota
        if kind == "rune_literal":
            return _rune_value(text(node))
        if kind == "identifier":
            obj = self.lookup(text(node), scope, {})
            return obj.value if isinstance(obj, Const) else None
        if kind == "selector_expression":
            operand = node.child_by_field_name("operand")
            if operand.type != "identifier" or not isinstance(self.lookup(text(operand), scope, {}), PkgName):
                return None
            obj = self._qualified(text(operand), text(node.child_by_field_name("field")), node, scope)
            return obj.value if isinstance(obj, Const) else None
        if kind == "parenthesized_expression":
            children = named_children(node)
            return self.const_value(children[0], scope, iota) if children else None
        if kind == "unary_expression":
            value = self.const_value(node.child_by_field_name("operand"), scope, iota)
            if value is None:
                return None
            operator = node.child_by_field_name("operator").type
            return {"-": -value, "+": value, "^": ~value}.get(operator)
        if kind == "binary_expression":
            left = self.const_value(node.child_by_field_name("left"), scope, iota)
            right = self.const_value(node.child_by_field_name("right"), scope, iota)
            if left is None or right is None:
                return None
            return _fold(node.child_by_field_name("operator").type, left, right)
        if kind == "call_expression":
            function = node.child_by_field_name("function")
            args = named_children(node.child_by_field_name("arguments"))
            if function.type == "identifier" and text(function) == "len" and args:
                arg = args[0]
                if arg.type in ("interpreted_string_literal", "raw_string_literal"):
                    try:
                        return len(unquote(text(arg)).encode("utf8"))
                    except ValueError:
                        return None
                return None
            if len(args) == 1 and isinstance(self._callee_object(function, scope, {}), TypeName):
                return self.const_value(args[0], scope, iota)
        return None

    # ------------------------------------------------------------------

    def _error(self, node, scope: _FileScope, message: str) -> None:
        line, column = position(node)
        diagnostic = f"{scope.parsed.path}:{line}:{column}: {message}"
        if self.strict:
            self.diagnostics.append(diagnostic)
        else:
            logger.debug(f"{self.package.path}: {diagnostic}")


def select_member(t: Type, name: str, depth: int = 0) -> Type | None:
    """Type of field or method ``name`` selected from a value of type ``t``."""
    if depth > 8:
        return None
    base = t
    if isinstance(base, Pointer):
        base = base.elem
    if isinstance(base, (Named, Instance)):
        method = base.methods.get(name)
        if method is not None:
            return method.signature

    under = base.underlying
    if isinstance(under, Pointer) and base is not t:
        return None
    if isinstance(under, Interface):
        method = under.method_set().get(name)
        return method.signature if method is not None else None
    if isinstance(under, TypeParam):
        return None
    if isinstance(under, Struct):
        for f in under.fields:
            if f.name == name:
                return f.type
        for f in under.fields:
            if f.embedded:
                found = select_member(f.type, name, depth + 1)
                if found is not None:
                    return found
    return None


def _embedded_name(t: Type) -> str:
    if isinstance(t, Pointer):
        t = t.elem
    if isinstance(t, Instance):
        t = t.origin
    if isinstance(t, Named):
        return t.name
    return str(t).rsplit(".", 1)[-1]


def parse_int_literal(text: str) -> int | None:
    digits = text.replace("_", "")
    try:
        if len(digits) > 1 and digits[0] == "0" and digits[1].isdigit():
            return int(digits, 8)
        return int(digits, 0)
    except ValueError:
        return None


def _rune_value(text: str) -> int | None:
    body = text[1:-1]
    if body in ("\\'", '"'):
        return ord(body[-1])
    try:
        value = unquote('"' + body + '"')
    except ValueError:
        return None
    return ord(value) if len(value) == 1 else None


def _fold(operator: str, left: int, right: int) -> int | None:
    if operator == "+":
        return left + right
    if operator == "-":
        return left - right
    if operator == "*":
        return left * right
    if operator in ("/", "%"):
        if right == 0:
            return None
        quotient = abs(left) // abs(right)
        if (left < 0) != (right < 0):
            quotient = -quotient
        return quotient if operator == "/" else left - quotient * right
    if operator == "<<":
        return left << right if right >= 0 else None
    if operator == ">>":
        return left >> right if right >= 0 else None
    if operator == "&":
        return left & right
    if operator == "|":
        return left | right
    if operator == "^":
        return left ^ right
    if operator == "&^":
        return left & ~right
    return None
