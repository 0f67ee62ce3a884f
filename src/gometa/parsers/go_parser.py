import logging
from enum import Enum

import tree_sitter_go
from tree_sitter import Language, Parser

from gometa.checker import TypeInfo
from gometa.comments import extract_comment, leading_comments
from gometa.errors import ParseError
from gometa.gotypes import is_exported
from gometa.models import (
    BoundMethod,
    FieldDefinition,
    GlobalConstant,
    ImportDeclaration,
    InterfaceDefinition,
    MethodSignature,
    SourceFile,
    StructDefinition,
    TagLiteral,
)
from gometa.parsers.base import BaseParser
from gometa.syntax import ParsedFile, child_of_type, is_grouped, iter_specs, named_children, position
from gometa.typeresolver import TypeResolver

logger = logging.getLogger(__name__)


class DeclarationShape(Enum):
    """What a type declaration contributes to the model."""
    STRUCT = "struct"
    INTERFACE = "interface"
    IGNORED = "ignored"


def classify_type_spec(spec) -> DeclarationShape:
    """Classify a type declaration by the shape of its declared type."""
    if spec.type != "type_spec":
        return DeclarationShape.IGNORED

    type_node = spec.child_by_field_name("type")
    if type_node is None:
        return DeclarationShape.IGNORED
    if type_node.type == "struct_type":
        return DeclarationShape.STRUCT
    if type_node.type == "interface_type":
        return DeclarationShape.INTERFACE
    return DeclarationShape.IGNORED


def _first_error(node):
    if node.type == "ERROR" or node.is_missing:
        return node
    if not node.has_error:
        return None
    for child in node.children:
        found = _first_error(child)
        if found is not None:
            return found
    return node


class GoParser(BaseParser):
    """Parser for extracting declarations from Go source code using tree-sitter."""

    def __init__(self):
        self.language = Language(tree_sitter_go.language())
        self.parser = Parser(self.language)

    def parse(self, source_code: str | bytes, file_path: str) -> ParsedFile:
        """Parse Go source code.

        Args:
            source_code: Go source code to parse
            file_path: Path reported in the model and in parse errors

        Returns:
            ParsedFile with the tree and declared package name

        Raises:
            ParseError: At the first syntax error, or when the package clause is missing
        """
        source = source_code if isinstance(source_code, bytes) else bytes(source_code, "utf8")
        tree = self.parser.parse(source)

        error = _first_error(tree.root_node)
        if error is not None:
            line, column = position(error)
            message = f"missing {error.type}" if error.is_missing else "syntax error"
            raise ParseError(file_path, line, column, message)

        clause = child_of_type(tree.root_node, "package_clause")
        name_node = child_of_type(clause, "package_identifier") if clause is not None else None
        if name_node is None:
            raise ParseError(file_path, 1, 1, "expected 'package'")

        package = source[name_node.start_byte:name_node.end_byte].decode("utf8")
        return ParsedFile(path=file_path, source=source, tree=tree, package=package)

    def extract_source(self, parsed: ParsedFile, info: TypeInfo | None = None, with_comments: bool = True) -> SourceFile:
        """Build the SourceFile for a parsed Go file.

        Only exported constants, variables, types and functions are kept.
        Struct and interface types enter the model; other type declarations
        are skipped.

        Args:
            parsed: File returned by ``parse``
            info: Resolved type information, or None for syntax-only extraction
            with_comments: Whether doc comments are collected

        Returns:
            SourceFile for the parsed file
        """
        source_file = SourceFile(path=parsed.path, package=parsed.package)
        extraction = _Extraction(parsed, source_file, TypeResolver(parsed.source, info), with_comments)

        for decl in named_children(parsed.root):
            if decl.type == "import_declaration":
                extraction.imports(decl)
            elif decl.type == "const_declaration":
                extraction.constants(decl)
            elif decl.type == "var_declaration":
                extraction.variables(decl)
            elif decl.type == "type_declaration":
                extraction.types(decl)
            elif decl.type in ("function_declaration", "method_declaration"):
                extraction.function(decl)

        return source_file


class _Extraction:
    """State for extracting a single file."""

    def __init__(self, parsed: ParsedFile, source_file: SourceFile, resolver: TypeResolver, with_comments: bool):
        self.parsed = parsed
        self.file = source_file
        self.resolver = resolver
        self.with_comments = with_comments

    def comments_for(self, node, decl=None) -> str:
        if not self.with_comments:
            return ""
        group = leading_comments(node)
        if not group and decl is not None and decl is not node:
            group = leading_comments(decl)
        return extract_comment([self.parsed.text(c) for c in group])

    def imports(self, decl) -> None:
        for spec in iter_specs(decl, "import_spec", "import_spec_list"):
            name_node = spec.child_by_field_name("name")
            import_decl = ImportDeclaration(
                name=self.parsed.text(name_node) if name_node is not None else "",
                path=self.parsed.text(spec.child_by_field_name("path")),
            )
            self.file.adopt(import_decl)
            self.file.imports.append(import_decl)

    def constants(self, decl) -> None:
        for iota, spec in enumerate(iter_specs(decl, "const_spec")):
            names = spec.children_by_field_name("name")
            name = self.parsed.text(names[0])
            if not is_exported(name):
                continue

            type_node = spec.child_by_field_name("type")
            values = spec.child_by_field_name("value")
            if type_node is not None:
                constant = self.resolver.resolve(type_node, name)
            elif values is not None and named_children(values):
                constant = self.resolver.resolve(named_children(values)[0], name)
            else:
                # Implicitly repeated specs carry neither type nor value; the
                # only local data left is the spec's iota index.
                constant = GlobalConstant(name=name, type=type(iota).__name__)
                logger.debug(f"{self.parsed.path}: constant {name} typed from its iota index")
            self.file.global_constants.append(constant)

    def variables(self, decl) -> None:
        for spec in iter_specs(decl, "var_spec", "var_spec_list"):
            name = self.parsed.text(spec.children_by_field_name("name")[0])
            if not is_exported(name):
                continue

            type_node = spec.child_by_field_name("type")
            if type_node is None:
                type_node = named_children(spec.child_by_field_name("value"))[0]
            self.file.global_variables.append(self.resolver.resolve(type_node, name))

    def types(self, decl) -> None:
        for spec in decl.named_children:
            if spec.type not in ("type_spec", "type_alias"):
                continue
            name = self.parsed.text(spec.child_by_field_name("name"))
            if not is_exported(name):
                continue

            shape = classify_type_spec(spec)
            if shape is DeclarationShape.STRUCT:
                self.struct(spec, decl, name)
            elif shape is DeclarationShape.INTERFACE:
                self.interface(spec, decl, name)

    def struct(self, spec, decl, name: str) -> None:
        struct = StructDefinition(name=name, comments=self._spec_comments(spec, decl))
        self.file.adopt(struct)

        body = child_of_type(spec.child_by_field_name("type"), "field_declaration_list")
        for field_decl in named_children(body) if body is not None else []:
            if field_decl.type != "field_declaration":
                continue
            type_node = field_decl.child_by_field_name("type")
            field_type = self.resolver.resolve(type_node).type
            tag_node = field_decl.child_by_field_name("tag")
            for name_node in field_decl.children_by_field_name("name"):
                field = FieldDefinition(name=self.parsed.text(name_node), type=field_type)
                field._bind(struct)
                if tag_node is not None:
                    field.tag = TagLiteral(self.parsed.text(tag_node))
                    field.tag._bind(field)
                struct.fields.append(field)

        self.file.structs.append(struct)

    def interface(self, spec, decl, name: str) -> None:
        interface = InterfaceDefinition(name=name, comments=self._spec_comments(spec, decl))
        self.file.adopt(interface)

        for elem in named_children(spec.child_by_field_name("type")):
            if elem.type not in ("method_elem", "method_spec"):
                continue
            interface.methods.append(MethodSignature(
                name=self.parsed.text(elem.child_by_field_name("name")),
                params=self.resolver.resolve_list(elem.child_by_field_name("parameters")),
                results=self.resolver.resolve_list(elem.child_by_field_name("result")),
                comments=self.comments_for(elem),
            ))

        self.file.interfaces.append(interface)

    def function(self, decl) -> None:
        name = self.parsed.text(decl.child_by_field_name("name"))
        if not is_exported(name):
            return

        receivers = []
        receiver = decl.child_by_field_name("receiver")
        if receiver is not None:
            for param in named_children(receiver):
                receivers.append(self.resolver.resolve(param.child_by_field_name("type")).type)

        self.file.methods.append(BoundMethod(
            name=name,
            params=self.resolver.resolve_list(decl.child_by_field_name("parameters")),
            results=self.resolver.resolve_list(decl.child_by_field_name("result")),
            comments=self.comments_for(decl),
            receivers=receivers,
        ))

    def _spec_comments(self, spec, decl) -> str:
        if is_grouped(spec):
            return self.comments_for(spec, decl)
        return self.comments_for(decl)
