# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import functools
import logging
import math
import re
from fractions import Fraction
from typing import Callable, Dict, List, Set, Tuple

from pysmt.environment import Environment
from pysmt.fnode import FNode
from pysmt.typing import PySMTType

from smt_session.backend import translate_errors
from smt_session.environment import FunctionDefinition, VariableEnvironment
from smt_session.errors import (
    BackendError,
    SmtSyntaxError,
    SmtTypeError,
    UnrecognizedAtom,
    UnsupportedFeature,
    UnsupportedTermSyntax,
)
from smt_session.sexpr import SExpr, is_atom, is_list
from smt_session.sorts import SortParser

logger = logging.getLogger(__name__)

_INT_RE = re.compile(r"[+-]?[0-9]+")
_RATIONAL_RE = re.compile(r"[+-]?[0-9]+/[0-9]+")
_DECIMAL_RE = re.compile(r"[+-]?([0-9]+\.?[0-9]*|\.[0-9]+)([eE][+-]?[0-9]+)?")
_BV_CONSTANT_RE = re.compile(r"bv[0-9]+")

# handlers receive the whole S-expression (for diagnostics) and the parsed arguments
OperatorHandler = Callable[[SExpr, List[FNode]], FNode]


def _symbol_template(name: str) -> str:
    return name.replace("%", "%%") + "_%d"


def _parse_index(sexpr: SExpr, index: SExpr) -> int:
    if not is_atom(index) or not index.isdigit():
        raise SmtSyntaxError("Index must be a numeral", sexpr)
    return int(index)


class TermParser:
    """Translates S-expressions into pySMT terms.

    The variable environment is threaded explicitly through the recursion:
    ``let`` and quantifiers parse their body in an extended copy of it and
    never modify the environment they receive.
    """

    def __init__(self, environment: Environment, sort_parser: SortParser) -> None:
        self.env: Environment = environment
        self.mgr = mgr = environment.formula_manager
        self.sorts: SortParser = sort_parser
        self.get_type: Callable[[FNode], PySMTType] = environment.stc.get_type
        # symbols bound by quantifiers and define-fun parameters
        self.local_symbols: Set[FNode] = set()
        # fresh Int symbol -> Real term it is the integer part of
        self.integer_parts: Dict[FNode, FNode] = {}

        # Int and Real operands cannot be mixed in pySMT: when both appear,
        # the Int operands are lifted with to_real before building the node
        def fix_real(op, *args):
            arg_types = [self.get_type(x) for x in args]
            if any(t.is_real_type() for t in arg_types) and any(t.is_int_type() for t in arg_types):
                logger.debug("Lifting Int operands of %s to Real", op.__name__)
                args = [mgr.ToReal(x) if t.is_int_type() else x for x, t in zip(args, arg_types)]
            return op(*args)

        self.LT = functools.partial(fix_real, mgr.LT)
        self.GT = functools.partial(fix_real, mgr.GT)
        self.LE = functools.partial(fix_real, mgr.LE)
        self.GE = functools.partial(fix_real, mgr.GE)
        self.EqualsOrIff = functools.partial(fix_real, mgr.EqualsOrIff)
        self.Plus = functools.partial(fix_real, mgr.Plus)
        self.Minus = functools.partial(fix_real, mgr.Minus)
        self.Times = functools.partial(fix_real, mgr.Times)
        self.Div = functools.partial(fix_real, mgr.Div)
        self.Ite = functools.partial(fix_real, mgr.Ite)
        self.AllDifferent = functools.partial(fix_real, mgr.AllDifferent)

        self.operators: Dict[str, OperatorHandler] = {
            # core
            "not": self._fixed(mgr.Not, 1),
            "=>": self._right_assoc(mgr.Implies),
            "and": self._nary(mgr.And),
            "or": self._nary(mgr.Or),
            "xor": self._flat(mgr.Xor),
            "=": self._chainable(self.EqualsOrIff),
            "distinct": self._nary(self.AllDifferent, min_args=2),
            "ite": self._fixed(self.Ite, 3),
            # arithmetic
            "+": self._left_assoc(self.Plus, min_args=1),
            "-": self._minus,
            "*": self._left_assoc(self.Times, min_args=1),
            "/": self._left_assoc(self._real_division),
            "div": self._div,
            "mod": self._fixed(self._mod, 2),
            "abs": self._fixed(self._abs, 1),
            "<=": self._chainable(self.LE),
            "<": self._chainable(self.LT),
            ">=": self._chainable(self.GE),
            ">": self._chainable(self.GT),
            "to_real": self._fixed(mgr.ToReal, 1),
            "to_int": self._fixed(self._to_int, 1),
            "is_int": self._fixed(self._is_int, 1),
            # arrays
            "select": self._fixed(mgr.Select, 2),
            "store": self._fixed(mgr.Store, 3),
            # bit-vectors
            "concat": self._flat(mgr.BVConcat),
            "bvand": self._flat(mgr.BVAnd),
            "bvor": self._flat(mgr.BVOr),
            "bvxor": self._flat(mgr.BVXor),
            "bvadd": self._flat(mgr.BVAdd),
            "bvmul": self._flat(mgr.BVMul),
            "bvnot": self._fixed(mgr.BVNot, 1),
            "bvneg": self._fixed(mgr.BVNeg, 1),
            "bvudiv": self._fixed(mgr.BVUDiv, 2),
            "bvurem": self._fixed(mgr.BVURem, 2),
            "bvshl": self._fixed(mgr.BVLShl, 2),
            "bvlshr": self._fixed(mgr.BVLShr, 2),
            "bvult": self._fixed(mgr.BVULT, 2),
            "bvnand": self._fixed(mgr.BVNand, 2),
            "bvnor": self._fixed(mgr.BVNor, 2),
            "bvxnor": self._fixed(mgr.BVXnor, 2),
            "bvcomp": self._fixed(mgr.BVComp, 2),
            "bvsub": self._fixed(mgr.BVSub, 2),
            "bvsdiv": self._fixed(mgr.BVSDiv, 2),
            "bvsrem": self._fixed(mgr.BVSRem, 2),
            "bvsmod": self._fixed(mgr.BVSMod, 2),
            "bvashr": self._fixed(mgr.BVAShr, 2),
            "bvule": self._fixed(mgr.BVULE, 2),
            "bvugt": self._fixed(mgr.BVUGT, 2),
            "bvuge": self._fixed(mgr.BVUGE, 2),
            "bvslt": self._fixed(mgr.BVSLT, 2),
            "bvsle": self._fixed(mgr.BVSLE, 2),
            "bvsgt": self._fixed(mgr.BVSGT, 2),
            "bvsge": self._fixed(mgr.BVSGE, 2),
        }

        # name -> (number of indices, constructor(term, *indices))
        self.indexed_operators: Dict[str, Tuple[int, Callable[..., FNode]]] = {
            "extract": (2, self._extract),
            "repeat": (1, lambda x, i: mgr.BVRepeat(x, count=i)),
            "zero_extend": (1, mgr.BVZExt),
            "sign_extend": (1, mgr.BVSExt),
            "rotate_left": (1, mgr.BVRol),
            "rotate_right": (1, mgr.BVRor),
        }

    # Operator shapes

    def _check_arity(self, sexpr: SExpr, args: List[FNode], min_args: int, max_args: int = None) -> None:
        if len(args) < min_args or (max_args is not None and len(args) > max_args):
            raise UnsupportedTermSyntax(f"Wrong number of arguments for '{sexpr[0]}'", sexpr)

    def _fixed(self, op: Callable[..., FNode], arity: int) -> OperatorHandler:
        def handler(sexpr, args):
            self._check_arity(sexpr, args, arity, arity)
            return op(*args)

        return handler

    def _nary(self, op: Callable[..., FNode], min_args: int = 1) -> OperatorHandler:
        def handler(sexpr, args):
            self._check_arity(sexpr, args, min_args)
            return op(*args)

        return handler

    def _left_assoc(self, op: Callable[[FNode, FNode], FNode], min_args: int = 2) -> OperatorHandler:
        def handler(sexpr, args):
            self._check_arity(sexpr, args, min_args)
            return functools.reduce(op, args)

        return handler

    def _flat(self, op: Callable[[FNode, FNode], FNode]) -> OperatorHandler:
        # associative n-ary operators, built as a chain of binary nodes
        return self._left_assoc(op)

    def _right_assoc(self, op: Callable[[FNode, FNode], FNode]) -> OperatorHandler:
        def handler(sexpr, args):
            self._check_arity(sexpr, args, 2)
            return functools.reduce(lambda acc, x: op(x, acc), reversed(args[:-1]), args[-1])

        return handler

    def _chainable(self, op: Callable[[FNode, FNode], FNode]) -> OperatorHandler:
        def handler(sexpr, args):
            self._check_arity(sexpr, args, 2)
            return self.mgr.And([op(a, b) for a, b in zip(args, args[1:])])

        return handler

    # Arithmetic

    def _negate(self, x: FNode) -> FNode:
        if x.is_int_constant():
            return self.mgr.Int(-x.constant_value())
        if x.is_real_constant():
            return self.mgr.Real(-x.constant_value())
        x_type = self.get_type(x)
        if x_type.is_int_type():
            return self.mgr.Times(self.mgr.Int(-1), x)
        if x_type.is_real_type():
            return self.mgr.Times(self.mgr.Real(-1), x)
        raise SmtTypeError(f"Cannot negate a term of sort {x_type}")

    def _minus(self, sexpr: SExpr, args: List[FNode]) -> FNode:
        self._check_arity(sexpr, args, 1)
        if len(args) == 1:
            return self._negate(args[0])
        return functools.reduce(self.Minus, args)

    def _real_division(self, left: FNode, right: FNode) -> FNode:
        mgr = self.mgr
        left, right = (mgr.ToReal(x) if self.get_type(x).is_int_type() else x for x in (left, right))
        return mgr.Div(left, right)

    def _div(self, sexpr: SExpr, args: List[FNode]) -> FNode:
        self._check_arity(sexpr, args, 2)
        first_type = self.get_type(args[0])
        if first_type.is_int_type():
            return functools.reduce(self.mgr.Div, args)
        if first_type.is_real_type():
            return functools.reduce(self.Div, args)
        raise SmtTypeError(f"'div' expects Int or Real operands, got {first_type}", sexpr)

    def _mod(self, a: FNode, b: FNode) -> FNode:
        if not (self.get_type(a).is_int_type() and self.get_type(b).is_int_type()):
            raise SmtTypeError("'mod' expects Int operands")
        mgr = self.mgr
        return mgr.Minus(a, mgr.Times(b, mgr.Div(a, b)))

    def _abs(self, x: FNode) -> FNode:
        x_type = self.get_type(x)
        if x_type.is_int_type():
            zero = self.mgr.Int(0)
        elif x_type.is_real_type():
            zero = self.mgr.Real(0)
        else:
            raise SmtTypeError(f"'abs' expects an Int or Real operand, got {x_type}")
        return self.mgr.Ite(self.mgr.GE(x, zero), x, self._negate(x))

    def _to_int(self, x: FNode) -> FNode:
        x_type = self.get_type(x)
        if x_type.is_int_type():
            return x
        if not x_type.is_real_type():
            raise SmtTypeError(f"'to_int' expects an Int or Real operand, got {x_type}")
        if x.is_real_constant():
            return self.mgr.Int(math.floor(x.constant_value()))
        if self.env.fvo.get_free_variables(x) & self.local_symbols:
            raise BackendError(
                "to_int is not supported on terms over bound variables",
                code="unsupported-operator",
                terms=[x],
                types=[x_type],
            )
        k = self.mgr.FreshSymbol(self.env.type_manager.INT(), template="to_int_%d")
        self.integer_parts[k] = x
        logger.debug("Introduced %s for the integer part of %s", k, x)
        return k

    def integer_part_axiom(self, k: FNode) -> FNode:
        """to_real(k) <= x < to_real(k) + 1, where k stands for (to_int x)"""
        mgr = self.mgr
        x = self.integer_parts[k]
        lower = mgr.ToReal(k)
        return mgr.And(mgr.LE(lower, x), mgr.LT(x, mgr.Plus(lower, mgr.Real(1))))

    def _is_int(self, x: FNode) -> FNode:
        mgr = self.mgr
        if self.get_type(x).is_int_type():
            x = mgr.ToReal(x)
        k = mgr.FreshSymbol(self.env.type_manager.INT(), template="is_int_%d")
        return mgr.Exists([k], mgr.Equals(mgr.ToReal(k), x))

    # Bit-vectors

    def _extract(self, x: FNode, high: int, low: int) -> FNode:
        x_type = self.get_type(x)
        if not x_type.is_bv_type():
            raise SmtTypeError(f"'extract' expects a bit-vector operand, got {x_type}")
        if not low <= high < x_type.width:
            raise SmtTypeError(f"Invalid extract indices {high} {low} for a bit-vector of width {x_type.width}")
        return self.mgr.BVExtract(x, start=low, end=high)

    def fresh_local(self, sort: PySMTType, template: str) -> FNode:
        """Creates a symbol bound inside a term, for quantifiers and define-fun parameters"""
        symbol = self.mgr.FreshSymbol(sort, template=template)
        self.local_symbols.add(symbol)
        return symbol

    # Entry point

    def parse(self, sexpr: SExpr, variables: VariableEnvironment) -> FNode:
        if is_atom(sexpr):
            return self._parse_atom(sexpr, variables)

        if len(sexpr) == 0:
            raise UnsupportedTermSyntax("Empty application", sexpr)

        head = sexpr[0]
        if is_list(head):
            return self._parse_indexed_application(sexpr, variables)

        if head == "let":
            return self._parse_let(sexpr, variables)
        if head in ("forall", "exists"):
            return self._parse_quantifier(sexpr, variables)
        if head in ("match", "!"):
            raise UnsupportedFeature(f"'{head}' terms are not supported", sexpr)
        if head == "_":
            return self._parse_indexed_constant(sexpr)

        if head in variables:
            args = [self.parse(s, variables) for s in sexpr[1:]]
            return self._apply_binding(head, args, sexpr, variables)

        handler = self.operators.get(head)
        if handler is None:
            raise UnsupportedTermSyntax("Unsupported term", sexpr)
        args = [self.parse(s, variables) for s in sexpr[1:]]
        with translate_errors(sexpr, terms=args, types=[self.get_type(a) for a in args]):
            return handler(sexpr, args)

    def _parse_atom(self, atom: str, variables: VariableEnvironment) -> FNode:
        if atom in variables:
            binding = variables.resolve(atom)
            if isinstance(binding, FunctionDefinition):
                raise UnsupportedTermSyntax(f"Function '{atom}' used without arguments", atom)
            return binding

        mgr = self.mgr
        if atom == "true":
            return mgr.TRUE()
        if atom == "false":
            return mgr.FALSE()

        if atom.startswith("#b"):
            bits = atom[2:]
            if not bits or any(c not in "01" for c in bits):
                raise UnrecognizedAtom("Malformed binary literal", atom)
            return mgr.BV(int(bits, 2), len(bits))

        if atom.startswith("#x"):
            digits = atom[2:]
            try:
                value = int(digits, 16)
            except ValueError:
                raise UnrecognizedAtom("Malformed hexadecimal literal", atom) from None
            # int() also accepts underscores and a 0x prefix
            if not all(c in "0123456789abcdefABCDEF" for c in digits):
                raise UnrecognizedAtom("Malformed hexadecimal literal", atom)
            return mgr.BV(value, 4 * len(digits))

        if _INT_RE.fullmatch(atom):
            return mgr.Int(int(atom))

        if _RATIONAL_RE.fullmatch(atom):
            numerator, denominator = atom.split("/")
            if int(denominator) == 0:
                raise UnrecognizedAtom("Zero denominator in rational literal", atom)
            return mgr.Real(Fraction(int(numerator), int(denominator)))

        if _DECIMAL_RE.fullmatch(atom):
            return mgr.Real(Fraction(atom))

        raise UnrecognizedAtom("Unrecognized atom", atom)

    def _lift(self, term: FNode, expected: PySMTType) -> FNode:
        if expected.is_real_type() and self.get_type(term).is_int_type():
            return self.mgr.ToReal(term)
        return term

    def _apply_binding(
        self, name: str, args: List[FNode], sexpr: SExpr, variables: VariableEnvironment
    ) -> FNode:
        binding = variables.resolve(name)

        if isinstance(binding, FunctionDefinition):
            if len(args) != binding.arity:
                raise UnsupportedTermSyntax(
                    f"'{name}' expects {binding.arity} arguments, got {len(args)}", sexpr
                )
            substitution = {
                p: self._lift(a, self.get_type(p)) for p, a in zip(binding.parameters, args)
            }
            with translate_errors(sexpr, terms=args, types=[self.get_type(a) for a in args]):
                return self.env.substituter.substitute(binding.body, substitution)

        binding_type = self.get_type(binding)
        if binding_type.is_function_type():
            param_types = binding_type.param_types
            if len(args) != len(param_types):
                raise UnsupportedTermSyntax(
                    f"'{name}' expects {len(param_types)} arguments, got {len(args)}", sexpr
                )
            args = [self._lift(a, t) for a, t in zip(args, param_types)]
            with translate_errors(sexpr, terms=args, types=[self.get_type(a) for a in args]):
                return self.mgr.Function(binding, args)

        if args:
            raise UnsupportedTermSyntax(f"'{name}' is not a function", sexpr)
        return binding

    def _parse_let(self, sexpr: SExpr, variables: VariableEnvironment) -> FNode:
        if len(sexpr) != 3 or not is_list(sexpr[1]) or len(sexpr[1]) == 0:
            raise SmtSyntaxError("Malformed let", sexpr)

        bindings = []
        for binding in sexpr[1]:
            if not is_list(binding) or len(binding) != 2 or not is_atom(binding[0]):
                raise SmtSyntaxError("Malformed let binding", binding)
            # every right-hand side sees the environment preceding the let
            bindings.append((binding[0], self.parse(binding[1], variables)))

        return self.parse(sexpr[2], variables.extend(bindings))

    def _parse_quantifier(self, sexpr: SExpr, variables: VariableEnvironment) -> FNode:
        if len(sexpr) != 3 or not is_list(sexpr[1]) or len(sexpr[1]) == 0:
            raise SmtSyntaxError(f"Malformed {sexpr[0]}", sexpr)

        bindings = []
        for declaration in sexpr[1]:
            if not is_list(declaration) or len(declaration) != 2 or not is_atom(declaration[0]):
                raise SmtSyntaxError("Malformed sorted variable", declaration)
            name = declaration[0]
            sort = self.sorts.parse(declaration[1])
            bindings.append((name, self.fresh_local(sort, _symbol_template(name))))

        body = self.parse(sexpr[2], variables.extend(bindings))
        bound_variables = [v for _, v in bindings]
        with translate_errors(sexpr, terms=[body]):
            if sexpr[0] == "forall":
                return self.mgr.ForAll(bound_variables, body)
            return self.mgr.Exists(bound_variables, body)

    def _parse_indexed_constant(self, sexpr: SExpr) -> FNode:
        # (_ bvNNN w)
        if len(sexpr) == 3 and is_atom(sexpr[1]) and _BV_CONSTANT_RE.fullmatch(sexpr[1]):
            width = _parse_index(sexpr, sexpr[2])
            if width == 0:
                raise SmtSyntaxError("Bit-vector width must be positive", sexpr)
            with translate_errors(sexpr):
                return self.mgr.BV(int(sexpr[1][2:]), width)
        raise UnsupportedTermSyntax("Unsupported indexed term", sexpr)

    def _parse_indexed_application(self, sexpr: SExpr, variables: VariableEnvironment) -> FNode:
        head = sexpr[0]

        # ((as const (Array I E)) v)
        if len(head) == 3 and head[0] == "as" and head[1] == "const":
            array_sort = self.sorts.parse(head[2])
            if not array_sort.is_array_type() or len(sexpr) != 2:
                raise UnsupportedTermSyntax("Unsupported constant array", sexpr)
            value = self._lift(self.parse(sexpr[1], variables), array_sort.elem_type)
            with translate_errors(sexpr, terms=[value], types=[self.get_type(value)]):
                return self.mgr.Array(array_sort.index_type, value)

        if len(head) >= 2 and head[0] == "_" and head[1] in self.indexed_operators:
            n_indices, constructor = self.indexed_operators[head[1]]
            if len(head) != 2 + n_indices or len(sexpr) != 2:
                raise UnsupportedTermSyntax(f"Wrong number of indices or arguments for '{head[1]}'", sexpr)
            indices = [_parse_index(sexpr, i) for i in head[2:]]
            arg = self.parse(sexpr[1], variables)
            if not self.get_type(arg).is_bv_type():
                raise SmtTypeError(f"'{head[1]}' expects a bit-vector operand", sexpr)
            with translate_errors(sexpr, terms=[arg], types=[self.get_type(arg)]):
                return constructor(arg, *indices)

        raise UnsupportedTermSyntax("Unsupported indexed operator", sexpr)
