import pytest
from pysmt.environment import Environment

from smt_session.errors import UnsupportedFeature, UnsupportedSortSyntax
from smt_session.sexpr import read_sexpr
from smt_session.sorts import SortParser


@pytest.fixture
def env():
    return Environment()


@pytest.fixture
def sorts(env):
    return SortParser(env.type_manager)


class TestSortParser:
    def test_builtin_sorts(self, env, sorts):
        types = env.type_manager
        assert sorts.parse("Bool") == types.BOOL()
        assert sorts.parse("Int") == types.INT()
        assert sorts.parse("Real") == types.REAL()

    def test_bitvector(self, env, sorts):
        sort = sorts.parse(read_sexpr("(_ BitVec 8)"))
        assert sort.is_bv_type()
        assert sort.width == 8

    @pytest.mark.parametrize("width", ["0", "-1", "w", "1.5"])
    def test_bitvector_invalid_width(self, sorts, width):
        with pytest.raises(UnsupportedSortSyntax):
            sorts.parse(read_sexpr(f"(_ BitVec {width})"))

    def test_nested_array(self, env, sorts):
        sort = sorts.parse(read_sexpr("(Array Int (Array Int (_ BitVec 4)))"))
        assert sort.is_array_type()
        assert sort.index_type == env.type_manager.INT()
        assert sort.elem_type.is_array_type()
        assert sort.elem_type.elem_type.width == 4

    def test_declared_sort(self, env, sorts):
        declared = sorts.declare("U")
        assert "U" in sorts
        assert sorts.parse("U") == declared
        assert sorts.parse(read_sexpr("(Array U Bool)")).index_type == declared

    def test_declared_sort_with_arity(self, sorts):
        with pytest.raises(UnsupportedFeature):
            sorts.declare("List", 1)

    @pytest.mark.parametrize("text", ["Unknown", "(List Int)", "(Array Int)", "(_ FloatingPoint 8 24)"])
    def test_unsupported(self, sorts, text):
        with pytest.raises(UnsupportedSortSyntax) as e:
            sorts.parse(read_sexpr(text))
        assert e.value.sexpr == read_sexpr(text)
