import pytest
from pysmt.environment import Environment

from smt_session.environment import FunctionDefinition, ScopedBindings, VariableEnvironment
from smt_session.errors import UnboundName


@pytest.fixture
def mgr():
    return Environment().formula_manager


class TestScopedBindings:
    def test_update_returns_new_mapping(self):
        outer = ScopedBindings([("x", 1)])
        inner = outer.update([("x", 2), ("y", 3)])
        assert inner["x"] == 2
        assert "y" in inner
        assert outer["x"] == 1
        assert "y" not in outer


class TestVariableEnvironment:
    def test_resolve_permanent(self, mgr):
        env = VariableEnvironment()
        x = mgr.Symbol("x", mgr.env.type_manager.INT())
        env.bind("x", x)
        assert env.resolve("x") == x
        assert "x" in env

    def test_unbound(self):
        with pytest.raises(UnboundName) as e:
            VariableEnvironment().resolve("nope")
        assert e.value.name == "nope"

    def test_extend_does_not_mutate(self, mgr):
        env = VariableEnvironment()
        inner = env.extend([("y", mgr.Int(1))])
        assert "y" in inner
        assert "y" not in env

    def test_scoped_shadows_permanent(self, mgr):
        env = VariableEnvironment()
        env.bind("x", mgr.Int(1))
        inner = env.extend([("x", mgr.Int(2))])
        assert inner.resolve("x") == mgr.Int(2)
        assert env.resolve("x") == mgr.Int(1)

    def test_permanent_tier_is_shared(self, mgr):
        env = VariableEnvironment()
        inner = env.extend([("y", mgr.Int(1))])
        env.bind("z", mgr.Int(3))
        assert inner.resolve("z") == mgr.Int(3)

    def test_duplicate_binding_shadows(self, mgr):
        env = VariableEnvironment()
        env.bind("x", mgr.Int(1))
        env.bind("x", mgr.Int(2))
        assert env.resolve("x") == mgr.Int(2)

    def test_function_definition(self, mgr):
        p = mgr.FreshSymbol(mgr.env.type_manager.INT())
        definition = FunctionDefinition("inc", (p,), mgr.Plus(p, mgr.Int(1)))
        env = VariableEnvironment()
        env.bind("inc", definition)
        assert env.resolve("inc").arity == 1
