"""Python model of resolved Go types.

String rendering follows the go/types conventions so resolved signatures
read like the Go toolchain prints them: named types are qualified with their
package path (``net/http.Header``), basic types use their Go names, and
untyped constants render as ``untyped int`` and friends.

Named types and objects are resolved lazily through loader callables, which
keeps loading a dependency package cheap until one of its declarations is
actually used.
"""

import json
from enum import Enum, auto
from typing import Callable


class BasicKind(Enum):
    INVALID = auto()
    BOOL = auto()
    INT = auto()
    INT8 = auto()
    INT16 = auto()
    INT32 = auto()
    INT64 = auto()
    UINT = auto()
    UINT8 = auto()
    UINT16 = auto()
    UINT32 = auto()
    UINT64 = auto()
    UINTPTR = auto()
    FLOAT32 = auto()
    FLOAT64 = auto()
    COMPLEX64 = auto()
    COMPLEX128 = auto()
    STRING = auto()
    UNSAFE_POINTER = auto()
    UNTYPED_BOOL = auto()
    UNTYPED_INT = auto()
    UNTYPED_RUNE = auto()
    UNTYPED_FLOAT = auto()
    UNTYPED_COMPLEX = auto()
    UNTYPED_STRING = auto()
    UNTYPED_NIL = auto()


class ChanDir(Enum):
    SEND_RECV = auto()
    SEND_ONLY = auto()
    RECV_ONLY = auto()


class Type:
    """Base class of every resolved type."""

    @property
    def underlying(self) -> "Type":
        return self

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self}>"


class Basic(Type):
    def __init__(self, kind: BasicKind, name: str):
        self.kind = kind
        self.name = name

    def __str__(self) -> str:
        return self.name

    @property
    def is_untyped(self) -> bool:
        return self.kind in _UNTYPED_DEFAULTS or self.kind is BasicKind.UNTYPED_NIL

    @property
    def is_numeric(self) -> bool:
        return self.kind in _NUMERIC_KINDS


class Pointer(Type):
    def __init__(self, elem: Type):
        self.elem = elem

    def __str__(self) -> str:
        return f"*{self.elem}"


class Slice(Type):
    def __init__(self, elem: Type):
        self.elem = elem

    def __str__(self) -> str:
        return f"[]{self.elem}"


class Array(Type):
    def __init__(self, length: int | None, elem: Type):
        self.length = length
        self.elem = elem

    def __str__(self) -> str:
        length = "?" if self.length is None else self.length
        return f"[{length}]{self.elem}"


class Map(Type):
    def __init__(self, key: Type, value: Type):
        self.key = key
        self.value = value

    def __str__(self) -> str:
        return f"map[{self.key}]{self.value}"


class Chan(Type):
    def __init__(self, direction: ChanDir, elem: Type):
        self.direction = direction
        self.elem = elem

    def __str__(self) -> str:
        if self.direction is ChanDir.SEND_ONLY:
            return f"chan<- {self.elem}"
        if self.direction is ChanDir.RECV_ONLY:
            return f"<-chan {self.elem}"
        if isinstance(self.elem, Chan) and self.elem.direction is ChanDir.RECV_ONLY:
            return f"chan ({self.elem})"
        return f"chan {self.elem}"


class Var:
    """A parameter, result or struct field."""

    def __init__(self, name: str, type: Type, embedded: bool = False, tag: str = ""):
        self.name = name
        self.type = type
        self.embedded = embedded
        self.tag = tag


def _tuple_string(variables: list[Var], variadic: bool = False) -> str:
    parts = []
    for i, var in enumerate(variables):
        prefix = f"{var.name} " if var.name else ""
        if variadic and i == len(variables) - 1 and isinstance(var.type, Slice):
            parts.append(f"{prefix}...{var.type.elem}")
        else:
            parts.append(f"{prefix}{var.type}")
    return "(" + ", ".join(parts) + ")"


class TypeParam(Type):
    def __init__(self, name: str, constraint: Type | None = None):
        self.name = name
        self.constraint = constraint

    def __str__(self) -> str:
        return self.name

    @property
    def underlying(self) -> Type:
        return self.constraint.underlying if self.constraint is not None else EMPTY_INTERFACE


def _type_param_list(type_params: list[TypeParam]) -> str:
    # Consecutive parameters sharing one constraint print as a group: [K, V any].
    text = "["
    for i, tp in enumerate(type_params):
        if i > 0:
            previous = type_params[i - 1].constraint
            if tp.constraint is not previous:
                text += f" {previous or EMPTY_INTERFACE}"
            text += ", "
        text += tp.name
    return text + f" {type_params[-1].constraint or EMPTY_INTERFACE}]"


class Signature(Type):
    def __init__(
        self,
        params: list[Var],
        results: list[Var],
        variadic: bool = False,
        recv: Var | None = None,
        type_params: list[TypeParam] | None = None,
    ):
        self.params = params
        self.results = results
        self.variadic = variadic
        self.recv = recv
        self.type_params = type_params or []

    def signature_string(self) -> str:
        """Render without the leading ``func`` keyword."""
        text = ""
        if self.type_params:
            text += _type_param_list(self.type_params)
        text += _tuple_string(self.params, self.variadic)
        if not self.results:
            return text
        if len(self.results) == 1 and not self.results[0].name:
            return f"{text} {self.results[0].type}"
        return f"{text} {_tuple_string(self.results)}"

    def __str__(self) -> str:
        return "func" + self.signature_string()


class Tuple(Type):
    """Result list of a multi-valued call."""

    def __init__(self, variables: list[Var]):
        self.variables = variables

    def __str__(self) -> str:
        return _tuple_string(self.variables)


class Struct(Type):
    def __init__(self, fields: list[Var]):
        self.fields = fields

    def __str__(self) -> str:
        parts = []
        for f in self.fields:
            text = str(f.type) if f.embedded else f"{f.name} {f.type}"
            if f.tag:
                text += " " + json.dumps(f.tag, ensure_ascii=False)
            parts.append(text)
        return "struct{" + "; ".join(parts) + "}"


class Interface(Type):
    def __init__(self, methods: list["Func"] | None = None, embeddeds: list[Type] | None = None, alias: str = ""):
        self.methods = sorted(methods or [], key=lambda m: m.name)
        self.embeddeds = embeddeds or []
        self.alias = alias

    def __str__(self) -> str:
        if self.alias:
            return self.alias
        parts = [m.name + m.signature.signature_string() for m in self.methods]
        parts.extend(str(e) for e in self.embeddeds)
        return "interface{" + "; ".join(parts) + "}"

    def method_set(self) -> dict[str, "Func"]:
        methods = {}
        for embedded in self.embeddeds:
            under = embedded.underlying
            if isinstance(under, Interface):
                methods.update(under.method_set())
        methods.update({m.name: m for m in self.methods})
        return methods


class Named(Type):
    """A defined type. ``pkg`` is the package path, empty for universe types."""

    def __init__(
        self,
        pkg: str,
        name: str,
        underlying: Type | None = None,
        loader: Callable[[], tuple[Type, dict[str, "Func"]]] | None = None,
    ):
        self.pkg = pkg
        self.name = name
        self._underlying = underlying
        self._methods: dict[str, Func] = {}
        self._type_params: list[TypeParam] = []
        self._loader = loader

    def _load(self) -> None:
        if self._loader is None:
            return
        loader, self._loader = self._loader, None
        underlying, methods = loader()
        self._underlying = underlying
        self._methods.update(methods)

    @property
    def underlying(self) -> Type:
        self._load()
        return self._underlying if self._underlying is not None else INVALID

    def set_underlying(self, underlying: Type) -> None:
        self._underlying = underlying

    @property
    def type_params(self) -> list[TypeParam]:
        self._load()
        return self._type_params

    def set_type_params(self, type_params: list[TypeParam]) -> None:
        self._type_params = type_params

    @property
    def methods(self) -> dict[str, "Func"]:
        self._load()
        return self._methods

    def add_method(self, method: "Func") -> None:
        self._methods[method.name] = method

    def __str__(self) -> str:
        return f"{self.pkg}.{self.name}" if self.pkg else self.name


class Instance(Type):
    """A generic type instantiated with type arguments."""

    def __init__(self, origin: Type, args: list[Type]):
        self.origin = origin
        self.args = args
        self._underlying: Type | None = None

    def _mapping(self) -> dict[str, Type]:
        params = self.origin.type_params if isinstance(self.origin, Named) else []
        return {param.name: arg for param, arg in zip(params, self.args)}

    @property
    def underlying(self) -> Type:
        if self._underlying is not None:
            return self._underlying
        under = self.origin.underlying
        if under is INVALID:
            # The origin may still be loading; do not memoize.
            return under
        self._underlying = substitute(under, self._mapping())
        return self._underlying

    @property
    def methods(self) -> dict[str, "Func"]:
        if not isinstance(self.origin, Named):
            return {}
        methods = {}
        for name, method in self.origin.methods.items():
            sig = method.signature
            # Receivers may rename the type parameters: func (b Box[E]) Get() E.
            mapping = _receiver_mapping(sig.recv, self.args) or self._mapping()
            methods[name] = Func(name, method.pkg, type=substitute(sig, mapping))
        return methods

    def __str__(self) -> str:
        return f"{self.origin}[" + ", ".join(str(a) for a in self.args) + "]"


def _receiver_mapping(recv: Var | None, args: list[Type]) -> dict[str, Type]:
    if recv is None:
        return {}
    t = recv.type.elem if isinstance(recv.type, Pointer) else recv.type
    if not isinstance(t, Instance) or not all(isinstance(a, TypeParam) for a in t.args):
        return {}
    return {param.name: arg for param, arg in zip(t.args, args)}


def _substitute_vars(variables: list[Var], mapping: dict[str, Type]) -> list[Var]:
    return [Var(v.name, substitute(v.type, mapping), v.embedded, v.tag) for v in variables]


def substitute(t: Type, mapping: dict[str, Type]) -> Type:
    """Replace type parameters, matched by name, throughout ``t``.

    Named types are left alone; their own declarations are never rewritten.
    """
    if not mapping:
        return t
    if isinstance(t, TypeParam):
        return mapping.get(t.name, t)
    if isinstance(t, Pointer):
        return Pointer(substitute(t.elem, mapping))
    if isinstance(t, Slice):
        return Slice(substitute(t.elem, mapping))
    if isinstance(t, Array):
        return Array(t.length, substitute(t.elem, mapping))
    if isinstance(t, Map):
        return Map(substitute(t.key, mapping), substitute(t.value, mapping))
    if isinstance(t, Chan):
        return Chan(t.direction, substitute(t.elem, mapping))
    if isinstance(t, Signature):
        return Signature(
            _substitute_vars(t.params, mapping),
            _substitute_vars(t.results, mapping),
            t.variadic,
            t.recv,
            t.type_params,
        )
    if isinstance(t, Tuple):
        return Tuple(_substitute_vars(t.variables, mapping))
    if isinstance(t, Struct):
        return Struct(_substitute_vars(t.fields, mapping))
    if isinstance(t, Interface) and not t.alias:
        methods = [Func(m.name, m.pkg, type=substitute(m.signature, mapping)) for m in t.methods]
        return Interface(methods, [substitute(e, mapping) for e in t.embeddeds])
    if isinstance(t, Instance):
        return Instance(t.origin, [substitute(a, mapping) for a in t.args])
    return t


class Object:
    """A named language entity: type name, constant, variable or function."""

    def __init__(self, name: str, pkg: str = "", type: Type | None = None, loader: Callable[[], Type] | None = None):
        self.name = name
        self.pkg = pkg
        self._type = type
        self._loader = loader

    @property
    def type(self) -> Type:
        if self._loader is not None:
            loader, self._loader = self._loader, None
            self._type = loader()
        return self._type if self._type is not None else INVALID

    @property
    def exported(self) -> bool:
        return is_exported(self.name)


class TypeName(Object):
    def __init__(self, name: str, pkg: str = "", type: Type | None = None, loader=None, alias: bool = False):
        super().__init__(name, pkg, type, loader)
        self.alias = alias


class Const(Object):
    def __init__(self, name: str, pkg: str = "", type: Type | None = None, loader=None, value=None, value_loader=None):
        super().__init__(name, pkg, type, loader)
        self._value = value
        self._value_loader = value_loader

    @property
    def value(self):
        """Constant integer value when known, else None."""
        if self._value_loader is not None:
            loader, self._value_loader = self._value_loader, None
            self._value = loader()
        return self._value


class Variable(Object):
    pass


class Func(Object):
    @property
    def signature(self) -> Signature:
        sig = self.type
        return sig if isinstance(sig, Signature) else Signature([], [])


class Builtin(Object):
    """A predeclared function such as ``len`` or ``unsafe.Sizeof``."""


class Nil(Object):
    pass


class PkgName(Object):
    """An import binding inside a file scope."""

    def __init__(self, name: str, package: "Package"):
        super().__init__(name, package.path)
        self.package = package


class Package:
    """A type-checked package: its path, declared name and top-level scope."""

    def __init__(self, path: str, name: str, scope: dict[str, Object] | None = None):
        self.path = path
        self.name = name
        self.scope: dict[str, Object] = scope if scope is not None else {}

    def lookup(self, name: str) -> Object | None:
        return self.scope.get(name)

    def exported_objects(self) -> list[Object]:
        return [obj for name, obj in self.scope.items() if is_exported(name)]

    def __repr__(self) -> str:
        return f"<Package {self.path}>"


def is_exported(name: str) -> bool:
    """An identifier is exported when its first character is an upper-case letter."""
    if not name:
        return False
    first = name[0]
    return first.isalpha() and first.isupper()


_BASIC_NAMES = {
    BasicKind.INVALID: "invalid type",
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
    BasicKind.UINTPTR: "uintptr",
    BasicKind.FLOAT32: "float32",
    BasicKind.FLOAT64: "float64",
    BasicKind.COMPLEX64: "complex64",
    BasicKind.COMPLEX128: "complex128",
    BasicKind.STRING: "string",
    BasicKind.UNSAFE_POINTER: "unsafe.Pointer",
    BasicKind.UNTYPED_BOOL: "untyped bool",
    BasicKind.UNTYPED_INT: "untyped int",
    BasicKind.UNTYPED_RUNE: "untyped rune",
    BasicKind.UNTYPED_FLOAT: "untyped float",
    BasicKind.UNTYPED_COMPLEX: "untyped complex",
    BasicKind.UNTYPED_STRING: "untyped string",
    BasicKind.UNTYPED_NIL: "untyped nil",
}

TYP = {kind: Basic(kind, name) for kind, name in _BASIC_NAMES.items()}
BYTE = Basic(BasicKind.UINT8, "byte")
RUNE = Basic(BasicKind.INT32, "rune")
INVALID = TYP[BasicKind.INVALID]
EMPTY_INTERFACE = Interface()

_UNTYPED_DEFAULTS = {
    BasicKind.UNTYPED_BOOL: TYP[BasicKind.BOOL],
    BasicKind.UNTYPED_INT: TYP[BasicKind.INT],
    BasicKind.UNTYPED_RUNE: RUNE,
    BasicKind.UNTYPED_FLOAT: TYP[BasicKind.FLOAT64],
    BasicKind.UNTYPED_COMPLEX: TYP[BasicKind.COMPLEX128],
    BasicKind.UNTYPED_STRING: TYP[BasicKind.STRING],
}

_NUMERIC_KINDS = {
    BasicKind.INT, BasicKind.INT8, BasicKind.INT16, BasicKind.INT32, BasicKind.INT64,
    BasicKind.UINT, BasicKind.UINT8, BasicKind.UINT16, BasicKind.UINT32, BasicKind.UINT64,
    BasicKind.UINTPTR, BasicKind.FLOAT32, BasicKind.FLOAT64, BasicKind.COMPLEX64,
    BasicKind.COMPLEX128, BasicKind.UNTYPED_INT, BasicKind.UNTYPED_RUNE,
    BasicKind.UNTYPED_FLOAT, BasicKind.UNTYPED_COMPLEX,
}

# Ordering used when two untyped numeric constants meet in an expression.
UNTYPED_RANK = {
    BasicKind.UNTYPED_INT: 1,
    BasicKind.UNTYPED_RUNE: 2,
    BasicKind.UNTYPED_FLOAT: 3,
    BasicKind.UNTYPED_COMPLEX: 4,
}


def default_type(t: Type) -> Type:
    """Type an untyped constant takes when assigned without a declared type."""
    if isinstance(t, Basic):
        return _UNTYPED_DEFAULTS.get(t.kind, t)
    return t


def _error_type() -> Named:
    error = Named("", "error")
    error_method = Func("Error", type=Signature([], [Var("", TYP[BasicKind.STRING])]))
    error.set_underlying(Interface([error_method]))
    error.add_method(error_method)
    return error


ERROR = _error_type()

BUILTIN_FUNCS = (
    "append", "cap", "clear", "close", "complex", "copy", "delete", "imag", "len",
    "make", "max", "min", "new", "panic", "print", "println", "real", "recover",
)


def _universe() -> dict[str, Object]:
    scope: dict[str, Object] = {}
    for kind in BasicKind:
        if kind in (BasicKind.INVALID, BasicKind.UNSAFE_POINTER) or kind.name.startswith("UNTYPED"):
            continue
        basic = TYP[kind]
        scope[basic.name] = TypeName(basic.name, type=basic)
    scope["byte"] = TypeName("byte", type=BYTE, alias=True)
    scope["rune"] = TypeName("rune", type=RUNE, alias=True)
    scope["error"] = TypeName("error", type=ERROR)
    scope["any"] = TypeName("any", type=Interface(alias="any"), alias=True)
    scope["comparable"] = TypeName("comparable", type=Named("", "comparable", underlying=Interface()))
    scope["true"] = Const("true", type=TYP[BasicKind.UNTYPED_BOOL])
    scope["false"] = Const("false", type=TYP[BasicKind.UNTYPED_BOOL])
    scope["iota"] = Const("iota", type=TYP[BasicKind.UNTYPED_INT])
    scope["nil"] = Nil("nil", type=TYP[BasicKind.UNTYPED_NIL])
    for name in BUILTIN_FUNCS:
        scope[name] = Builtin(name)
    return scope


UNIVERSE = _universe()


def _unsafe_package() -> Package:
    package = Package("unsafe", "unsafe")
    package.scope["Pointer"] = TypeName("Pointer", "unsafe", type=TYP[BasicKind.UNSAFE_POINTER])
    for name in ("Sizeof", "Alignof", "Offsetof", "Add", "Slice", "SliceData", "String", "StringData"):
        package.scope[name] = Builtin(name, "unsafe")
    return package


UNSAFE = _unsafe_package()
