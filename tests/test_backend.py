import pytest
from pysmt.environment import Environment
from pysmt.exceptions import PysmtTypeError, SolverReturnedUnknownResultError

from smt_session.backend import CheckStatus, SolverConfiguration, translate_errors
from smt_session.errors import BackendError


@pytest.fixture
def env():
    return Environment()


@pytest.fixture
def backend(env):
    res = SolverConfiguration().create_backend(env, "QF_LIA")
    yield res
    res.close()


class TestTranslateErrors:
    def test_type_error(self):
        with pytest.raises(BackendError) as e:
            with translate_errors(sexpr=("+", "x", "a"), terms=["x", "a"]):
                raise PysmtTypeError("not well formed")
        assert e.value.code == "type-error"
        assert e.value.terms == ("x", "a")
        assert isinstance(e.value.__cause__, PysmtTypeError)
        assert "(+ x a)" in str(e.value)

    def test_most_specific_code(self):
        with pytest.raises(BackendError) as e:
            with translate_errors():
                raise SolverReturnedUnknownResultError()
        assert e.value.code == "solver-error"

    def test_untranslatable_term(self):
        with pytest.raises(BackendError) as e:
            with translate_errors():
                raise NotImplementedError("no conversion")
        assert e.value.code == "unsupported-operator"

    def test_other_exceptions_propagate(self):
        with pytest.raises(KeyError):
            with translate_errors():
                raise KeyError("x")


class TestSolverConfiguration:
    def test_options(self):
        configuration = SolverConfiguration()
        configuration.set_option(":produce-unsat-cores", "true")
        configuration.set_option(":produce-models", "false")
        configuration.set_option(":random-seed", "3")
        configuration.set_option(":verbosity", "2")
        assert configuration.options == {
            "unsat_cores_mode": "all",
            "generate_models": False,
            "random_seed": 3,
        }
        assert configuration.smtlib_options[":verbosity"] == "2"

    @pytest.mark.parametrize(
        "keyword,value",
        [(":produce-unsat-cores", "yes"), (":produce-models", "1"), (":random-seed", "-4")],
    )
    def test_invalid_values(self, keyword, value):
        with pytest.raises(BackendError) as e:
            SolverConfiguration().set_option(keyword, value)
        assert e.value.code == "invalid-value"

    def test_unknown_logic_uses_solver_default(self, env):
        backend = SolverConfiguration().create_backend(env, "ALL")
        assert backend.check() is CheckStatus.SAT
        backend.close()

    def test_unknown_solver(self, env):
        with pytest.raises(BackendError) as e:
            SolverConfiguration("no-such-solver").create_backend(env, "QF_LIA")
        assert e.value.code == "no-solver"


class TestSolverBackend:
    def test_check(self, env, backend):
        mgr = env.formula_manager
        x = mgr.Symbol("x", env.type_manager.INT())
        backend.add_assertion(mgr.GT(x, mgr.Int(0)))
        assert backend.check() is CheckStatus.SAT
        assert backend.check([mgr.LT(x, mgr.Int(0))]) is CheckStatus.UNSAT
        assert backend.last_status is CheckStatus.UNSAT

    def test_model(self, env, backend):
        mgr = env.formula_manager
        x = mgr.Symbol("x", env.type_manager.INT())
        backend.add_assertion(mgr.Equals(x, mgr.Int(7)))
        backend.check()
        model = backend.get_model()
        assert model.evaluate(x) == mgr.Int(7)
        model.release()
        with pytest.raises(BackendError) as e:
            model.evaluate(x)
        assert e.value.code == "released"

    def test_model_of_uninterpreted_sort(self, env):
        mgr, types = env.formula_manager, env.type_manager
        backend = SolverConfiguration().create_backend(env, "QF_UF")
        sort = types.Type("U", 0)
        u, v = mgr.Symbol("u", sort), mgr.Symbol("v", sort)
        backend.add_assertion(mgr.Not(mgr.Equals(u, v)))
        assert backend.check() is CheckStatus.SAT
        model = backend.get_model()
        u_value, v_value = model.evaluate(u), model.evaluate(v)
        assert u_value.is_symbol() and u_value.symbol_name().startswith("U!val!")
        assert env.stc.get_type(u_value) == sort
        assert u_value != v_value
        backend.close()

    def test_function_interpretation(self, env, backend):
        mgr, types = env.formula_manager, env.type_manager
        f = mgr.Symbol("f", types.FunctionType(types.INT(), [types.INT()]))
        backend.add_assertion(mgr.Equals(mgr.Function(f, [mgr.Int(1)]), mgr.Int(3)))
        backend.add_assertion(mgr.Equals(mgr.Function(f, [mgr.Int(2)]), mgr.Int(4)))
        backend.check()
        params, body = backend.get_model().interpretation(f)
        assert len(params) == 1 and params[0].symbol_name().startswith("x!")
        for argument, value in [(1, 3), (2, 4)]:
            instance = env.substituter.substitute(body, {params[0]: mgr.Int(argument)})
            assert env.simplifier.simplify(instance) == mgr.Int(value)

    def test_model_requires_check(self, backend):
        with pytest.raises(BackendError) as e:
            backend.get_model()
        assert e.value.code == "invalid-status"

    def test_assertion_clears_status(self, env, backend):
        backend.check()
        backend.add_assertion(env.formula_manager.TRUE())
        assert backend.last_status is None

    def test_depth(self, backend):
        backend.push(3)
        assert backend.depth == 4
        backend.pop(2)
        assert backend.depth == 2
        with pytest.raises(BackendError):
            backend.pop(2)
        backend.reset_assertions()
        assert backend.depth == 1

    def test_closed(self):
        backend = SolverConfiguration().create_backend(Environment(), "QF_LIA")
        backend.close()
        assert backend.closed
        backend.close()
        with pytest.raises(BackendError) as e:
            backend.check()
        assert e.value.code == "released"

    def test_status_strings(self):
        assert [str(s) for s in CheckStatus] == ["sat", "unsat", "unknown"]
