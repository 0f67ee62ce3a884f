import pytest

from gometa.checker import GoChecker, build_package, guess_package_name
from gometa.errors import CheckError, PackageNotFoundError, UnresolvedImportError
from gometa.gotypes import BasicKind, Named, Struct
from gometa.parsers.go_parser import GoParser


class FakeImporter:
    def __init__(self, packages=None):
        self.packages = packages or {}
        self.requested = []

    def import_package(self, path):
        self.requested.append(path)
        return self.packages.get(path)


def _parse(source, path="a.go"):
    return GoParser().parse(source, path)


def _check(source, importer=None, path="a.go"):
    parser = GoParser()
    parsed = parser.parse(source, path)
    checked = GoChecker(importer or FakeImporter()).check(parsed.package, [parsed])
    return parser.extract_source(parsed, checked.info_for(path))


SHAPES = """package shapes

// Point is a location.
type Point struct {
	X, Y float64
}

type Shape interface {
	Area() float64
}

const Pi = 3.14

var Origin = Point{}

var Count = 10

var Data []byte

func Dist(a, b Point) float64 { return 0 }

func (p *Point) Scale(f float64) *Point { return p }

func Sum(xs ...int) (total int, err error) { return 0, nil }
"""


class TestResolvedExtraction:
    def test_struct_fields_use_canonical_types(self):
        result = _check(SHAPES)

        assert [(f.name, f.type) for f in result.structs[0].fields] == [("X", "float64"), ("Y", "float64")]

    def test_constants_stay_untyped(self):
        result = _check(SHAPES)

        pi = result.global_constants[0]
        assert pi.name == "Pi"
        assert pi.type == "untyped float"
        assert pi.underlying == "float64"

    def test_variables_take_default_types(self):
        result = _check(SHAPES)

        origin, count, data = result.global_variables
        assert (origin.type, origin.underlying) == ("shapes.Point", "struct{X float64; Y float64}")
        assert (count.type, count.underlying) == ("int", "int")
        assert (data.type, data.underlying) == ("[]byte", "[]uint8")

    def test_function_params_are_package_qualified(self):
        result = _check(SHAPES)

        dist = result.methods[0]
        assert [(p.name, p.type) for p in dist.params] == [("a", "shapes.Point"), ("b", "shapes.Point")]
        assert dist.params[0].underlying == "struct{X float64; Y float64}"
        assert [r.type for r in dist.results] == ["float64"]

    def test_method_receivers_are_resolved(self):
        result = _check(SHAPES)

        scale = result.methods[1]
        assert scale.receivers == ["*shapes.Point"]
        assert scale.results[0].type == "*shapes.Point"
        assert scale.results[0].inner[0].type == "shapes.Point"

    def test_variadic_param_is_a_slice(self):
        result = _check(SHAPES)

        total = result.methods[2]
        assert [(p.name, p.type) for p in total.params] == [("xs", "[]int")]
        assert [(r.name, r.type, r.underlying) for r in total.results] == [
            ("total", "int", "int"),
            ("err", "error", "error"),
        ]

    def test_interface_underlying_is_the_named_type(self):
        result = _check(SHAPES + "\nvar Default Shape\n")

        default = result.global_variables[-1]
        assert default.type == "shapes.Shape"
        assert default.underlying == "shapes.Shape"

    def test_named_basic_type_and_iota(self):
        source = """package colors

type Color int

const (
	Red Color = iota
	Green
)
"""
        result = _check(source)

        red, green = result.global_constants
        assert (red.type, red.underlying) == ("colors.Color", "int")
        assert (green.name, green.type) == ("Green", "int")


GENERICS = """package generics

func Map[T, U any](xs []T, f func(T) U) []U { return nil }

type Box[T any] struct {
	Value T
	Apply func(T) T
}

type Nums[T any] []T

type Pair[K comparable, V any] struct {
	Key   K
	Value V
}

func (p Pair[A, B]) Swap() Pair[B, A] { return Pair[B, A]{p.Value, p.Key} }

var X Nums[int]

var P Pair[string, float64]

var S = P.Swap()

var B Box[bool]
"""


class TestGenerics:
    def test_nested_function_types_have_no_type_parameters(self):
        result = _check(GENERICS)

        mapper = result.methods[0]
        assert [(p.name, p.type) for p in mapper.params] == [("xs", "[]T"), ("f", "func(T) U")]
        assert [r.type for r in mapper.results] == ["[]U"]

        box = result.structs[0]
        assert [(f.name, f.type) for f in box.fields] == [("Value", "T"), ("Apply", "func(T) T")]

    def test_declared_function_keeps_its_type_parameters(self):
        parsed = _parse(GENERICS)
        package = build_package("generics", "generics", [parsed], FakeImporter().import_package)

        assert str(package.lookup("Map").type) == "func[T, U any](xs []T, f func(T) U) []U"

    def test_generic_methods_print_without_type_parameters(self):
        parsed = _parse(GENERICS)
        package = build_package("generics", "generics", [parsed], FakeImporter().import_package)

        swap = package.lookup("Pair").type.methods["Swap"]
        assert str(swap.signature) == "func() generics.Pair[B, A]"

    def test_instantiated_underlying_substitutes_arguments(self):
        result = _check(GENERICS)

        x, p, s, b = result.global_variables
        assert (x.type, x.underlying) == ("generics.Nums[int]", "[]int")
        assert (p.type, p.underlying) == ("generics.Pair[string, float64]", "struct{Key string; Value float64}")
        assert b.underlying == "struct{Value bool; Apply func(bool) bool}"

    def test_methods_of_instances_substitute_receiver_parameters(self):
        result = _check(GENERICS)

        swapped = result.global_variables[2]
        assert swapped.name == "S"
        assert swapped.type == "generics.Pair[float64, string]"
        assert swapped.underlying == "struct{Key float64; Value string}"


class TestArrayLiterals:
    @pytest.mark.parametrize("literal,expected", [
        ('[...]string{"a", "b"}', "[2]string"),
        ('[...]string{3: "x"}', "[4]string"),
        ('[...]int{5: 1, 2, 1: 3}', "[7]int"),
        ("[...]int{}", "[0]int"),
    ])
    def test_implicit_length_counts_keyed_indices(self, literal, expected):
        result = _check(f"package a\n\nvar A = {literal}\n")

        assert result.global_variables[0].type == expected


class TestImports:
    def _units(self):
        dependency = _parse("package units\n\ntype Meters float64\n\ntype hidden int\n", "units.go")
        return build_package("example.com/units", "units", [dependency], FakeImporter().import_package)

    def test_imported_types_are_qualified_by_path(self):
        importer = FakeImporter({"example.com/units": self._units()})
        source = """package roads

import "example.com/units"

type Road struct {
	Length units.Meters
}
"""
        result = _check(source, importer)

        field = result.structs[0].fields[0]
        assert field.type == "example.com/units.Meters"
        assert importer.requested == ["example.com/units"]

    def test_aliased_import(self):
        importer = FakeImporter({"example.com/units": self._units()})
        source = """package roads

import u "example.com/units"

var Length u.Meters
"""
        result = _check(source, importer)

        assert result.global_variables[0].type == "example.com/units.Meters"
        assert result.global_variables[0].underlying == "float64"

    def test_missing_import_is_structured(self):
        source = """package roads

import "example.com/missing"

var X int
"""
        with pytest.raises(UnresolvedImportError) as exc_info:
            _check(source)

        assert exc_info.value.import_path == "example.com/missing"
        assert str(exc_info.value).startswith("could not import example.com/missing")

    def test_resolver_errors_propagate(self):
        class FailingImporter:
            def import_package(self, path):
                raise PackageNotFoundError(path, "no go.mod")

        with pytest.raises(PackageNotFoundError):
            _check('package roads\n\nimport "example.com/x"\n', FailingImporter())

    def test_unexported_name_is_an_error(self):
        importer = FakeImporter({"example.com/units": self._units()})
        source = """package roads

import "example.com/units"

var X units.hidden
"""
        with pytest.raises(CheckError) as exc_info:
            _check(source, importer)

        assert "not exported" in str(exc_info.value)


class TestDiagnostics:
    def test_undefined_type(self):
        with pytest.raises(CheckError) as exc_info:
            _check("package a\n\nvar X Missing\n")

        assert any("undefined: Missing" in d for d in exc_info.value.diagnostics)
        assert exc_info.value.diagnostics[0].startswith("a.go:3:")

    def test_redeclaration(self):
        with pytest.raises(CheckError) as exc_info:
            _check("package a\n\nvar X int\nvar X string\n")

        assert "X redeclared in this block" in str(exc_info.value)

    def test_untyped_nil_variable(self):
        with pytest.raises(CheckError) as exc_info:
            _check("package a\n\nvar X = nil\n")

        assert "untyped nil" in str(exc_info.value)

    def test_method_on_undefined_type(self):
        with pytest.raises(CheckError) as exc_info:
            _check("package a\n\nfunc (g *Ghost) Boo() {}\n")

        assert "undefined: Ghost" in str(exc_info.value)

    def test_function_bodies_are_not_checked(self):
        result = _check("package a\n\nfunc Run() { undefinedCall(missing) }\n")

        assert [m.name for m in result.methods] == ["Run"]


def test_lazy_package_tolerates_errors():
    parsed = _parse("package dep\n\ntype Good struct{ A int }\n\ntype Bad Missing\n", "dep.go")

    package = build_package("example.com/dep", "dep", [parsed], FakeImporter().import_package)

    good = package.lookup("Good").type
    assert isinstance(good, Named)
    assert isinstance(good.underlying, Struct)
    assert package.lookup("Bad") is not None


def test_lazy_package_resolves_on_first_use():
    importer = FakeImporter()
    parsed = _parse('package dep\n\nimport "example.com/other"\n\nvar N int\n', "dep.go")

    package = build_package("example.com/dep", "dep", [parsed], importer.import_package)

    assert importer.requested == []
    assert package.lookup("N").type.kind is BasicKind.INT


@pytest.mark.parametrize("import_path,expected", [
    ("fmt", "fmt"),
    ("net/http", "http"),
    ("gopkg.in/yaml.v3", "yaml"),
    ("github.com/redis/go-redis/v9", "redis"),
    ("github.com/mattn/go-sqlite3", "sqlite3"),
    ("github.com/acme/thing-go", "thing"),
])
def test_guess_package_name(import_path, expected):
    assert guess_package_name(import_path) == expected
