"""JSON export data for type-checked packages.

A package is encoded as a table of its objects. Named types are written by
reference (package path plus name) so recursive and cross-package types stay
finite; references are resolved lazily when a decoded package is used.
"""

import json
import logging
from typing import Callable

from gometa.errors import ImportResolutionError
from gometa.gotypes import (
    BYTE,
    INVALID,
    RUNE,
    TYP,
    UNIVERSE,
    Array,
    Basic,
    Chan,
    ChanDir,
    Const,
    Func,
    Instance,
    Interface,
    Map,
    Named,
    Package,
    Pointer,
    Signature,
    Slice,
    Struct,
    Type,
    TypeName,
    TypeParam,
    Var,
    Variable,
    is_exported,
)

logger = logging.getLogger(__name__)

FORMAT_VERSION = 2

_BASICS_BY_NAME = {basic.name: basic for basic in TYP.values()}
_BASICS_BY_NAME["byte"] = BYTE
_BASICS_BY_NAME["rune"] = RUNE


def encode_type(t: Type) -> dict:
    if isinstance(t, Basic):
        return {"k": "basic", "name": t.name}
    if isinstance(t, Named):
        return {"k": "named", "pkg": t.pkg, "name": t.name}
    if isinstance(t, Pointer):
        return {"k": "ptr", "elem": encode_type(t.elem)}
    if isinstance(t, Slice):
        return {"k": "slice", "elem": encode_type(t.elem)}
    if isinstance(t, Array):
        return {"k": "array", "len": t.length, "elem": encode_type(t.elem)}
    if isinstance(t, Map):
        return {"k": "map", "key": encode_type(t.key), "value": encode_type(t.value)}
    if isinstance(t, Chan):
        return {"k": "chan", "dir": t.direction.name, "elem": encode_type(t.elem)}
    if isinstance(t, Signature):
        data = {
            "k": "func",
            "params": [_encode_var(v) for v in t.params],
            "results": [_encode_var(v) for v in t.results],
            "variadic": t.variadic,
        }
        if t.type_params:
            data["tparams"] = _encode_type_params(t.type_params)
        if t.recv is not None:
            data["recv"] = _encode_var(t.recv)
        return data
    if isinstance(t, Struct):
        return {"k": "struct", "fields": [_encode_var(v) for v in t.fields]}
    if isinstance(t, Interface):
        return {
            "k": "iface",
            "alias": t.alias,
            "methods": [{"name": m.name, "sig": encode_type(m.signature)} for m in t.methods],
            "embeddeds": [encode_type(e) for e in t.embeddeds],
        }
    if isinstance(t, TypeParam):
        return {"k": "tparam", "name": t.name}
    if isinstance(t, Instance):
        return {"k": "inst", "origin": encode_type(t.origin), "args": [encode_type(a) for a in t.args]}
    return {"k": "basic", "name": INVALID.name}


def _encode_type_params(type_params: list[TypeParam]) -> list[dict]:
    return [
        {"name": tp.name, "constraint": encode_type(tp.constraint) if tp.constraint is not None else None}
        for tp in type_params
    ]


def _encode_var(v: Var) -> dict:
    data = {"name": v.name, "type": encode_type(v.type)}
    if v.embedded:
        data["embedded"] = True
    if v.tag:
        data["tag"] = v.tag
    return data


def encode_package(package: Package) -> str:
    """Encode a package's type names and exported objects.

    Unexported type names are kept because exported declarations may refer
    to them. Encoding forces every lazily resolved object of the package.
    """
    objects = {}
    for name, obj in package.scope.items():
        if isinstance(obj, TypeName):
            t = obj.type
            if obj.alias or not isinstance(t, Named):
                objects[name] = {"kind": "alias", "type": encode_type(t)}
                continue
            objects[name] = {
                "kind": "type",
                "tparams": _encode_type_params(t.type_params),
                "underlying": encode_type(t.underlying),
                "methods": {m: encode_type(f.signature) for m, f in t.methods.items()},
            }
        elif not is_exported(name):
            continue
        elif isinstance(obj, Const):
            objects[name] = {"kind": "const", "type": encode_type(obj.type), "value": obj.value}
        elif isinstance(obj, Func):
            objects[name] = {"kind": "func", "type": encode_type(obj.type)}
        else:
            objects[name] = {"kind": "var", "type": encode_type(obj.type)}

    return json.dumps({"version": FORMAT_VERSION, "path": package.path, "name": package.name, "objects": objects})


class _Decoder:
    def __init__(self, package: Package, import_package: Callable[[str], Package | None]):
        self.package = package
        self.import_package = import_package

    def named(self, pkg: str, name: str) -> Type:
        if pkg == self.package.path:
            scope = self.package.scope
        elif not pkg:
            scope = UNIVERSE
        else:
            try:
                imported = self.import_package(pkg)
            except ImportResolutionError as e:
                logger.debug(f"Could not import {pkg} while decoding {self.package.path}: {e}")
                imported = None
            scope = imported.scope if imported is not None else {}

        obj = scope.get(name)
        if isinstance(obj, TypeName):
            return obj.type
        # Keep the name printable even when the declaring package is gone.
        return Named(pkg, name)

    def type(self, data: dict) -> Type:
        kind = data["k"]
        if kind == "basic":
            return _BASICS_BY_NAME.get(data["name"], INVALID)
        if kind == "named":
            return self.named(data["pkg"], data["name"])
        if kind == "ptr":
            return Pointer(self.type(data["elem"]))
        if kind == "slice":
            return Slice(self.type(data["elem"]))
        if kind == "array":
            return Array(data["len"], self.type(data["elem"]))
        if kind == "map":
            return Map(self.type(data["key"]), self.type(data["value"]))
        if kind == "chan":
            return Chan(ChanDir[data["dir"]], self.type(data["elem"]))
        if kind == "func":
            recv = data.get("recv")
            return Signature(
                [self.var(v) for v in data["params"]],
                [self.var(v) for v in data["results"]],
                data["variadic"],
                recv=self.var(recv) if recv is not None else None,
                type_params=self.type_params(data.get("tparams", [])),
            )
        if kind == "struct":
            return Struct([self.var(v) for v in data["fields"]])
        if kind == "iface":
            methods = [Func(m["name"], self.package.path, type=self.type(m["sig"])) for m in data["methods"]]
            return Interface(methods, [self.type(e) for e in data["embeddeds"]], data.get("alias", ""))
        if kind == "tparam":
            return TypeParam(data["name"])
        if kind == "inst":
            return Instance(self.type(data["origin"]), [self.type(a) for a in data["args"]])
        raise ValueError(f"unknown type kind {kind!r}")

    def var(self, data: dict) -> Var:
        return Var(data["name"], self.type(data["type"]), data.get("embedded", False), data.get("tag", ""))

    def type_params(self, data: list[dict]) -> list[TypeParam]:
        params = [TypeParam(tp["name"]) for tp in data]
        previous = None
        for i, (param, tp) in enumerate(zip(params, data)):
            encoded = tp.get("constraint")
            if encoded is None:
                continue
            # Grouped parameters share one constraint object.
            if i > 0 and encoded == data[i - 1].get("constraint"):
                param.constraint = previous
            else:
                param.constraint = self.type(encoded)
            previous = param.constraint
        return params

    def named_loader(self, named: Named, data: dict):
        def load():
            named.set_type_params(self.type_params(data.get("tparams", [])))
            methods = {
                name: Func(name, self.package.path, type=self.type(sig))
                for name, sig in data["methods"].items()
            }
            return self.type(data["underlying"]), methods
        return load

    def object(self, name: str, data: dict):
        kind = data["kind"]
        path = self.package.path
        if kind == "type":
            named = Named(path, name)
            named._loader = self.named_loader(named, data)
            return TypeName(name, path, type=named)
        loader = lambda d=data["type"]: self.type(d)
        if kind == "alias":
            return TypeName(name, path, loader=loader, alias=True)
        if kind == "const":
            return Const(name, path, loader=loader, value=data.get("value"))
        if kind == "func":
            return Func(name, path, loader=loader)
        return Variable(name, path, loader=loader)


def decode_package(payload: str, import_package: Callable[[str], Package | None]) -> Package:
    """Decode export data into a lazily resolved package.

    Raises:
        ValueError: If the payload is not export data of a supported version
    """
    data = json.loads(payload)
    if not isinstance(data, dict) or data.get("version") != FORMAT_VERSION:
        raise ValueError("unsupported export data version")

    package = Package(data["path"], data["name"])
    decoder = _Decoder(package, import_package)
    for name, obj in data["objects"].items():
        package.scope[name] = decoder.object(name, obj)
    return package
