# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import logging
from contextlib import contextmanager
from enum import Enum
from time import perf_counter
from typing import Any, Dict, Iterable, List, Optional, Tuple

import z3

from pysmt.environment import Environment
from pysmt.exceptions import (
    ConvertExpressionError,
    InternalSolverError,
    NoSolverAvailableError,
    PysmtException,
    PysmtTypeError,
    PysmtValueError,
    SolverAPINotFound,
    SolverNotConfiguredForUnsatCoresError,
    SolverReturnedUnknownResultError,
    SolverStatusError,
    UndefinedLogicError,
    UnsupportedOperatorError,
)
from pysmt.fnode import FNode
from pysmt.logics import convert_logic_from_string
from pysmt.solvers.solver import Model, Solver
from pysmt.solvers.z3 import Z3Model
from pysmt.typing import PySMTType

from smt_session.errors import BackendError

logger = logging.getLogger(__name__)

_ERROR_CODES = (
    (PysmtTypeError, "type-error"),
    (PysmtValueError, "invalid-value"),
    (UnsupportedOperatorError, "unsupported-operator"),
    (ConvertExpressionError, "unsupported-operator"),
    (NoSolverAvailableError, "no-solver"),
    (SolverAPINotFound, "no-solver"),
    (SolverNotConfiguredForUnsatCoresError, "unsat-cores-disabled"),
    (SolverStatusError, "invalid-status"),
    (InternalSolverError, "internal"),
    (PysmtException, "solver-error"),
    (z3.Z3Exception, "solver-error"),
    # raised by the pySMT converters on terms they cannot translate
    (NotImplementedError, "unsupported-operator"),
)


@contextmanager
def translate_errors(sexpr: Any = None, terms: Iterable[Any] = (), types: Iterable[Any] = ()):
    """Converts the exceptions raised by pySMT and by the solver into ``BackendError``"""
    try:
        yield
    except (PysmtException, z3.Z3Exception, NotImplementedError) as e:
        code = next(c for cls, c in _ERROR_CODES if isinstance(e, cls))
        message = str(e) or e.__class__.__name__
        raise BackendError(
            message,
            code=code,
            bad_value=getattr(e, "expression", None),
            terms=terms,
            types=types,
            sexpr=sexpr,
        ) from e


class CheckStatus(Enum):
    SAT = "sat"
    UNSAT = "unsat"
    UNKNOWN = "unknown"

    def __str__(self) -> str:
        return self.value


def _parse_bool(value: str) -> bool:
    if value == "true":
        return True
    if value == "false":
        return False
    raise BackendError(f"Expected true or false, got '{value}'", code="invalid-value", bad_value=value)


class SolverConfiguration:
    """Solver name and pySMT solver options used to create contexts.

    SMT-LIB options are recorded in ``smtlib_options``; the ones pySMT
    understands are also translated into solver options.
    """

    def __init__(self, solver_name: str = "z3", **options) -> None:
        self.solver_name: str = solver_name
        self.options: Dict[str, Any] = dict(options)
        self.smtlib_options: Dict[str, str] = {}

    def set_option(self, keyword: str, value: str) -> None:
        self.smtlib_options[keyword] = value
        if keyword == ":produce-unsat-cores":
            self.options["unsat_cores_mode"] = "all" if _parse_bool(value) else None
        elif keyword == ":produce-models":
            self.options["generate_models"] = _parse_bool(value)
        elif keyword == ":random-seed":
            if not value.isdigit():
                raise BackendError(
                    f"Random seed must be a numeral, got '{value}'",
                    code="invalid-value",
                    bad_value=value,
                )
            self.options["random_seed"] = int(value)
        else:
            logger.debug("Option %s recorded but not forwarded to the solver", keyword)

    def create_backend(self, environment: Environment, logic_name: Optional[str]) -> SolverBackend:
        logic = None
        if logic_name is not None:
            try:
                logic = convert_logic_from_string(logic_name)
            except UndefinedLogicError:
                logger.info("Logic %s unknown to pySMT, using the solver default", logic_name)

        options = {k: v for k, v in self.options.items() if v is not None}
        with translate_errors():
            solver = environment.factory.Solver(name=self.solver_name, logic=logic, **options)
        logger.info("Created %s solver context for logic %s", self.solver_name, logic)
        return SolverBackend(solver)

    def __repr__(self) -> str:
        return f"SolverConfiguration[{self.solver_name}, {self.options}]"


class ModelHandle:
    """A model extracted from a solver context.

    Values of uninterpreted sorts and interpretations of declared functions
    are read from the z3 model directly, since pySMT cannot convert them
    back. Uninterpreted values are rendered as the symbols z3 names them
    with (``U!val!0``). After ``release`` the handle cannot be used anymore.
    """

    def __init__(self, model: Model) -> None:
        self._model: Optional[Model] = model
        self._env: Environment = model.environment

    @property
    def released(self) -> bool:
        return self._model is None

    def _check_model(self) -> Model:
        if self._model is None:
            raise BackendError("Model has been released", code="released")
        return self._model

    def _z3_model(self) -> Z3Model:
        model = self._check_model()
        if not isinstance(model, Z3Model):
            raise BackendError(
                "Uninterpreted sorts and functions are only supported in z3 models",
                code="unsupported-operator",
            )
        return model

    def _to_z3(self, model: Z3Model, term: FNode) -> z3.ExprRef:
        # convert() refuses terms of uninterpreted sorts, the walker does not
        return z3.ExprRef(model.converter.walk(term), model.z3_model.ctx)

    def _back(self, model: Z3Model, value: z3.ExprRef, sort: PySMTType) -> FNode:
        if sort.is_custom_type():
            if not z3.is_const(value):
                raise BackendError(
                    f"Cannot represent value {value} of sort {sort}",
                    code="unsupported-operator",
                    bad_value=str(value),
                )
            return self._env.formula_manager.Symbol(str(value), sort)
        return model.converter.back(value, model=model.z3_model)

    def evaluate(self, term: FNode) -> FNode:
        model = self._check_model()
        sort = self._env.stc.get_type(term)
        with translate_errors(terms=[term], types=[sort]):
            if not sort.is_custom_type():
                return model.get_value(term, model_completion=True)
            model = self._z3_model()
            value = model.z3_model.eval(self._to_z3(model, term), model_completion=True)
            return self._back(model, value, sort)

    def interpretation(self, function: FNode) -> Tuple[List[FNode], FNode]:
        """Returns parameters and body defining a declared function in the model"""
        model = self._z3_model()
        mgr = self._env.formula_manager
        function_type = function.symbol_type()
        return_type = function_type.return_type

        with translate_errors(terms=[function], types=[function_type]):
            params = [mgr.FreshSymbol(t, template="x!%d") for t in function_type.param_types]
            application = self._to_z3(model, mgr.Function(function, params))
            decl = application.decl()
            interp = model.z3_model[decl] if decl in model.z3_model.decls() else None
            if interp is None or interp.else_value() is None:
                # unconstrained, any value is a valid interpretation
                value = model.z3_model.eval(application, model_completion=True)
                return params, self._back(model, value, return_type)

            z3_params = [self._to_z3(model, p) for p in params]
            body = self._back(model, z3.substitute_vars(interp.else_value(), *z3_params), return_type)
            for i in reversed(range(interp.num_entries())):
                entry = interp.entry(i)
                condition = mgr.And(
                    [
                        mgr.EqualsOrIff(p, self._back(model, entry.arg_value(j), p.symbol_type()))
                        for j, p in enumerate(params)
                    ]
                )
                body = mgr.Ite(condition, self._back(model, entry.value(), return_type), body)
        return params, body

    def release(self) -> None:
        self._model = None


class SolverBackend:
    """Incremental solver context.

    The context starts at scope depth 1 and tracks the outcome of the last
    check, so models and unsat cores are only requested when the solver can
    produce them.
    """

    def __init__(self, solver: Solver) -> None:
        self._solver: Optional[Solver] = solver
        self._depth: int = 1
        self.last_status: Optional[CheckStatus] = None

    @property
    def depth(self) -> int:
        return self._depth

    @property
    def closed(self) -> bool:
        return self._solver is None

    def _context(self) -> Solver:
        if self._solver is None:
            raise BackendError("Solver context has been released", code="released")
        return self._solver

    def add_assertion(self, term: FNode) -> None:
        solver = self._context()
        with translate_errors(terms=[term]):
            solver.add_assertion(term)
        self.last_status = None

    def push(self, levels: int = 1) -> None:
        solver = self._context()
        with translate_errors():
            solver.push(levels)
        self._depth += levels
        self.last_status = None

    def pop(self, levels: int = 1) -> None:
        solver = self._context()
        if levels >= self._depth:
            raise BackendError(
                f"Cannot pop {levels} levels from a context of depth {self._depth}",
                code="invalid-status",
                bad_value=levels,
            )
        with translate_errors():
            solver.pop(levels)
        self._depth -= levels
        self.last_status = None

    def reset_assertions(self) -> None:
        solver = self._context()
        with translate_errors():
            solver.reset_assertions()
        self._depth = 1
        self.last_status = None

    def check(self, assumptions: Optional[List[FNode]] = None) -> CheckStatus:
        solver = self._context()
        start_time = perf_counter()
        try:
            with translate_errors(terms=assumptions or ()):
                status = CheckStatus.SAT if solver.solve(assumptions) else CheckStatus.UNSAT
        except BackendError as e:
            if not isinstance(e.__cause__, SolverReturnedUnknownResultError):
                raise
            status = CheckStatus.UNKNOWN
        logger.info("Check returned %s in %.3f seconds", status, perf_counter() - start_time)
        self.last_status = status
        return status

    def get_model(self) -> ModelHandle:
        solver = self._context()
        if self.last_status not in (CheckStatus.SAT, CheckStatus.UNKNOWN):
            raise BackendError(
                "Model not available, the last check was not satisfiable or the assertions changed since",
                code="invalid-status",
            )
        with translate_errors():
            return ModelHandle(solver.get_model())

    def get_unsat_core(self) -> List[FNode]:
        solver = self._context()
        if self.last_status is not CheckStatus.UNSAT:
            raise BackendError(
                "Unsat core not available, the last check was not unsatisfiable",
                code="invalid-status",
            )
        with translate_errors():
            return list(solver.get_unsat_core())

    def close(self) -> None:
        if self._solver is not None:
            self._solver.exit()
            self._solver = None
            logger.debug("Solver context released")
