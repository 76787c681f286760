# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import copy
import logging
import math
from enum import Enum
from typing import Dict, Iterator, List, Optional, Sequence, Set, Tuple

from pysmt.environment import Environment
from pysmt.fnode import FNode
from pysmt.typing import PySMTType

from smt_session.backend import CheckStatus, ModelHandle, SolverBackend, SolverConfiguration, translate_errors
from smt_session.environment import FunctionDefinition, VariableEnvironment
from smt_session.errors import (
    CannotPopBaseLevel,
    LogicAlreadySet,
    ProtocolError,
    SmtSyntaxError,
    SmtTypeError,
    UnknownAttribute,
)
from smt_session.sexpr import SExpr, is_atom, is_list
from smt_session.sorts import SortParser
from smt_session.terms import TermParser

logger = logging.getLogger(__name__)


class SessionStatus(Enum):
    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    CLOSED = "closed"


class AssertionStack:
    """Asserted terms grouped by scope level, base level first"""

    def __init__(self) -> None:
        self._levels: List[List[FNode]] = [[]]

    @property
    def depth(self) -> int:
        return len(self._levels)

    def push(self) -> None:
        self._levels.append([])

    def pop(self) -> List[FNode]:
        if len(self._levels) == 1:
            raise CannotPopBaseLevel("Cannot pop the base assertion level")
        return self._levels.pop()

    def add(self, term: FNode) -> None:
        self._levels[-1].append(term)

    def reset(self) -> None:
        self._levels = [[]]

    def __iter__(self) -> Iterator[FNode]:
        for level in self._levels:
            yield from level

    def __len__(self) -> int:
        return sum(len(level) for level in self._levels)


class SessionState:
    """State of an SMT-LIB session.

    Owns the pySMT environment, the sort and name tables, the solver context
    and the cached model. The context and the model are released here and
    nowhere else.
    """

    def __init__(self, configuration: Optional[SolverConfiguration] = None) -> None:
        self._initial_configuration: SolverConfiguration = (
            SolverConfiguration() if configuration is None else configuration
        )
        self.status: SessionStatus = SessionStatus.UNINITIALIZED
        self.backend: Optional[SolverBackend] = None
        self._model: Optional[ModelHandle] = None
        self._init_tables()

    def _init_tables(self) -> None:
        self.configuration: SolverConfiguration = copy.deepcopy(self._initial_configuration)
        self.env: Environment = Environment()
        self.sorts: SortParser = SortParser(self.env.type_manager)
        self.terms: TermParser = TermParser(self.env, self.sorts)
        self.variables: VariableEnvironment = VariableEnvironment()
        self.assertions: AssertionStack = AssertionStack()
        # to_int symbols whose defining constraint is asserted, per scope level
        self._defined_integer_parts: List[Set[FNode]] = [set()]
        self.logic: Optional[str] = None
        self.info: Dict[str, str] = {}

    # Guards

    def require_open(self) -> None:
        if self.status is SessionStatus.CLOSED:
            raise ProtocolError("The session has been closed by exit")

    def require_active(self) -> SolverBackend:
        self.require_open()
        if self.status is not SessionStatus.ACTIVE:
            raise ProtocolError("No logic has been set, use set-logic first")
        return self.backend

    def invalidate_model(self) -> None:
        if self._model is not None:
            self._model.release()
            self._model = None
            logger.debug("Cached model invalidated")

    # Logic, options, info

    def set_logic(self, logic: str) -> None:
        self.require_open()
        if self.status is SessionStatus.ACTIVE:
            raise LogicAlreadySet(f"Logic already set to {self.logic}")
        self.backend = self.configuration.create_backend(self.env, logic)
        self.logic = logic
        self.status = SessionStatus.ACTIVE
        logger.info("Session initialised with logic %s", logic)

    def set_option(self, keyword: str, value: str) -> None:
        self.require_open()
        if self.status is SessionStatus.ACTIVE:
            logger.debug("Option %s set after set-logic, the current context is not affected", keyword)
        self.configuration.set_option(keyword, value)

    def get_option(self, keyword: str) -> str:
        self.require_open()
        try:
            return self.configuration.smtlib_options[keyword]
        except KeyError:
            raise UnknownAttribute(f"Option {keyword} has not been set") from None

    def set_info(self, keyword: str, value: str) -> None:
        self.require_open()
        self.info[keyword] = value

    def get_info(self, keyword: str) -> str:
        self.require_open()
        try:
            return self.info[keyword]
        except KeyError:
            raise UnknownAttribute(f"Info {keyword} has not been set") from None

    # Declarations

    def _new_symbol(self, name: str, sort: PySMTType) -> FNode:
        mgr = self.env.formula_manager
        with translate_errors():
            if name in mgr.symbols:
                # a re-declared name gets a fresh symbol, the previous one is shadowed
                return mgr.FreshSymbol(sort, template=name.replace("%", "%%") + "_%d")
            return mgr.Symbol(name, sort)

    def declare_sort(self, name: str, arity: int) -> None:
        self.require_open()
        self.sorts.declare(name, arity)

    def declare_fun(self, name: str, domain: Sequence[SExpr], codomain: SExpr) -> FNode:
        self.require_open()
        param_sorts = [self.sorts.parse(s) for s in domain]
        return_sort = self.sorts.parse(codomain)
        if param_sorts:
            with translate_errors():
                sort = self.env.type_manager.FunctionType(return_sort, param_sorts)
        else:
            sort = return_sort
        symbol = self._new_symbol(name, sort)
        self.variables.bind(name, symbol)
        logger.debug("Declared %s of sort %s", name, sort)
        return symbol

    def define_fun(self, name: str, parameters: Sequence[SExpr], codomain: SExpr, body: SExpr) -> None:
        self.require_open()
        return_sort = self.sorts.parse(codomain)

        bindings: List[Tuple[str, FNode]] = []
        for parameter in parameters:
            if not is_list(parameter) or len(parameter) != 2 or not is_atom(parameter[0]):
                raise SmtSyntaxError("Parameters of define-fun must be (name sort) pairs", parameter)
            sort = self.sorts.parse(parameter[1])
            symbol = self.terms.fresh_local(sort, name.replace("%", "%%") + "_arg%d")
            bindings.append((parameter[0], symbol))

        term = self.terms.parse(body, self.variables.extend(bindings))
        term_sort = self.env.stc.get_type(term)
        if return_sort.is_real_type() and term_sort.is_int_type():
            term = self.env.formula_manager.ToReal(term)
        elif term_sort != return_sort:
            raise SmtTypeError(f"Body of {name} has sort {term_sort}, expected {return_sort}", body)

        if bindings:
            self.variables.bind(name, FunctionDefinition(name, tuple(s for _, s in bindings), term))
        else:
            self.variables.bind(name, term)
        logger.debug("Defined %s", name)

    def parse_term(self, sexpr: SExpr) -> FNode:
        return self.terms.parse(sexpr, self.variables)

    # Integer parts introduced by to_int

    def _integer_parts(self, terms: Sequence[FNode]) -> List[FNode]:
        """to_int symbols occurring in terms, including the nested ones"""
        found: List[FNode] = []
        pending = list(terms)
        while pending:
            term = pending.pop()
            for symbol in self.env.fvo.get_free_variables(term):
                if symbol in self.terms.integer_parts and symbol not in found:
                    found.append(symbol)
                    pending.append(self.terms.integer_parts[symbol])
        return found

    def _undefined_integer_parts(self, terms: Sequence[FNode]) -> List[FNode]:
        return [
            k
            for k in self._integer_parts(terms)
            if not any(k in level for level in self._defined_integer_parts)
        ]

    def _resolve_integer_parts(self, term: FNode, model: ModelHandle) -> FNode:
        """Replaces to_int symbols with the floor of their operand in the model"""
        mgr = self.env.formula_manager
        values: Dict[FNode, FNode] = {}

        def integer_parts_in(term):
            return {
                k: value_of(k)
                for k in self.env.fvo.get_free_variables(term)
                if k in self.terms.integer_parts
            }

        def value_of(k):
            if k not in values:
                x = self.terms.integer_parts[k]
                value = model.evaluate(self.env.substituter.substitute(x, integer_parts_in(x)))
                values[k] = mgr.Int(math.floor(value.constant_value()))
            return values[k]

        substitution = integer_parts_in(term)
        if not substitution:
            return term
        return self.env.substituter.substitute(term, substitution)

    # Assertion stack

    def assert_term(self, sexpr: SExpr) -> FNode:
        backend = self.require_active()
        term = self.parse_term(sexpr)
        for k in self._undefined_integer_parts([term]):
            backend.add_assertion(self.terms.integer_part_axiom(k))
            self._defined_integer_parts[-1].add(k)
        backend.add_assertion(term)
        self.assertions.add(term)
        self.invalidate_model()
        return term

    def push(self, levels: int = 1) -> None:
        backend = self.require_active()
        self.invalidate_model()
        backend.push(levels)
        for _ in range(levels):
            self.assertions.push()
            self._defined_integer_parts.append(set())

    def pop(self, levels: int = 1) -> None:
        backend = self.require_active()
        if levels >= self.assertions.depth:
            raise CannotPopBaseLevel(
                f"Cannot pop {levels} levels, only {self.assertions.depth - 1} pushed"
            )
        self.invalidate_model()
        backend.pop(levels)
        for _ in range(levels):
            self.assertions.pop()
            self._defined_integer_parts.pop()

    def reset_assertions(self) -> None:
        backend = self.require_active()
        self.invalidate_model()
        backend.reset_assertions()
        self.assertions.reset()
        self._defined_integer_parts = [set()]

    # Queries

    def check_sat(self, assumptions: Optional[Sequence[SExpr]] = None) -> CheckStatus:
        backend = self.require_active()
        self.invalidate_model()
        if assumptions is None:
            return backend.check()
        terms = [self.parse_term(a) for a in assumptions]
        axioms = [self.terms.integer_part_axiom(k) for k in self._undefined_integer_parts(terms)]
        return backend.check(terms + axioms)

    def model(self) -> ModelHandle:
        backend = self.require_active()
        if self._model is None:
            self._model = backend.get_model()
            logger.debug("Model created")
        return self._model

    def get_value(self, sexprs: Sequence[SExpr]) -> List[Tuple[SExpr, FNode]]:
        self.require_active()
        terms = [self.parse_term(s) for s in sexprs]
        model = self.model()
        return [(s, model.evaluate(self._resolve_integer_parts(t, model))) for s, t in zip(sexprs, terms)]

    def model_assignments(self) -> List[Tuple[str, List[FNode], PySMTType, FNode]]:
        """Definitions of the declared constants and functions in the current model.

        Constants come with an empty parameter list. The sort of a function
        entry is its return sort.
        """
        model = self.model()
        assignments = []
        for name, binding in self.variables.permanent.items():
            if not isinstance(binding, FNode) or not binding.is_symbol():
                continue
            sort = self.env.stc.get_type(binding)
            if sort.is_function_type():
                params, body = model.interpretation(binding)
                assignments.append((name, params, sort.return_type, body))
            else:
                assignments.append((name, [], sort, model.evaluate(binding)))
        return assignments

    def unsat_core(self) -> List[FNode]:
        return self.require_active().get_unsat_core()

    # Lifecycle

    def _release(self) -> None:
        self.invalidate_model()
        if self.backend is not None:
            self.backend.close()
            self.backend = None

    def reset(self) -> None:
        self.require_open()
        self._release()
        self._init_tables()
        self.status = SessionStatus.UNINITIALIZED
        logger.info("Session reset")

    def exit(self) -> None:
        self.require_open()
        self._release()
        self.configuration = None
        self.status = SessionStatus.CLOSED
        logger.info("Session closed")
