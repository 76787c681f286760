# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import logging
import sys
from enum import Enum
from typing import Callable, Dict, Iterable, Optional, TextIO, Tuple

import pysmt.smtlib.commands as smtcmd

from smt_session import printer
from smt_session.errors import SmtSyntaxError, UnsupportedFeature
from smt_session.session import SessionState, SessionStatus
from smt_session.sexpr import SExpr, is_atom, is_list, to_string

logger = logging.getLogger(__name__)


class Command(Enum):
    SET_LOGIC = smtcmd.SET_LOGIC
    SET_OPTION = smtcmd.SET_OPTION
    SET_INFO = smtcmd.SET_INFO
    GET_INFO = smtcmd.GET_INFO
    GET_OPTION = smtcmd.GET_OPTION
    ECHO = smtcmd.ECHO
    PUSH = smtcmd.PUSH
    POP = smtcmd.POP
    RESET_ASSERTIONS = smtcmd.RESET_ASSERTIONS
    RESET = smtcmd.RESET
    EXIT = smtcmd.EXIT
    DECLARE_SORT = smtcmd.DECLARE_SORT
    DECLARE_FUN = smtcmd.DECLARE_FUN
    DECLARE_CONST = smtcmd.DECLARE_CONST
    DEFINE_FUN = smtcmd.DEFINE_FUN
    ASSERT = smtcmd.ASSERT
    CHECK_SAT = smtcmd.CHECK_SAT
    CHECK_SAT_ASSUMING = smtcmd.CHECK_SAT_ASSUMING
    GET_ASSERTIONS = smtcmd.GET_ASSERTIONS
    GET_VALUE = smtcmd.GET_VALUE
    GET_MODEL = smtcmd.GET_MODEL
    GET_UNSAT_CORE = smtcmd.GET_UNSAT_CORE
    # recognized and rejected
    GET_ASSIGNMENT = smtcmd.GET_ASSIGNMENT
    GET_UNSAT_ASSUMPTIONS = smtcmd.GET_UNSAT_ASSUMPTIONS
    GET_PROOF = smtcmd.GET_PROOF
    DEFINE_SORT = smtcmd.DEFINE_SORT
    DEFINE_FUN_REC = smtcmd.DEFINE_FUN_REC
    DEFINE_FUNS_REC = smtcmd.DEFINE_FUNS_REC
    DECLARE_DATATYPE = "declare-datatype"
    DECLARE_DATATYPES = "declare-datatypes"


# handlers receive the whole command and its arguments, and return the text to print
CommandHandler = Callable[[SExpr, Tuple[SExpr, ...]], Optional[str]]


def _expect_arguments(sexpr: SExpr, args: Tuple[SExpr, ...], *counts: int) -> None:
    if len(args) not in counts:
        raise SmtSyntaxError(f"Wrong number of arguments for '{sexpr[0]}'", sexpr)


def _expect_atom(sexpr: SExpr, arg: SExpr) -> str:
    if not is_atom(arg):
        raise SmtSyntaxError(f"Expected a symbol in '{sexpr[0]}'", sexpr)
    return arg


def _expect_list(sexpr: SExpr, arg: SExpr) -> Tuple[SExpr, ...]:
    if not is_list(arg):
        raise SmtSyntaxError(f"Expected a list in '{sexpr[0]}'", sexpr)
    return arg


def _expect_keyword(sexpr: SExpr, arg: SExpr) -> str:
    if not is_atom(arg) or not arg.startswith(":"):
        raise SmtSyntaxError(f"Expected a keyword in '{sexpr[0]}'", sexpr)
    return arg


def _numeral(sexpr: SExpr, args: Tuple[SExpr, ...], default: int) -> int:
    _expect_arguments(sexpr, args, 0, 1)
    if not args:
        return default
    if not is_atom(args[0]) or not args[0].isdigit():
        raise SmtSyntaxError(f"Expected a numeral in '{sexpr[0]}'", sexpr)
    return int(args[0])


class CommandDispatcher:
    """Executes SMT-LIB commands against a session, writing results to ``out``"""

    def __init__(self, session: SessionState, out: TextIO = sys.stdout) -> None:
        self.session: SessionState = session
        self.out: TextIO = out
        self._handlers: Dict[Command, CommandHandler] = {
            Command.SET_LOGIC: self._set_logic,
            Command.SET_OPTION: self._set_option,
            Command.SET_INFO: self._set_info,
            Command.GET_INFO: self._get_info,
            Command.GET_OPTION: self._get_option,
            Command.ECHO: self._echo,
            Command.PUSH: self._push,
            Command.POP: self._pop,
            Command.RESET_ASSERTIONS: self._reset_assertions,
            Command.RESET: self._reset,
            Command.EXIT: self._exit,
            Command.DECLARE_SORT: self._declare_sort,
            Command.DECLARE_FUN: self._declare_fun,
            Command.DECLARE_CONST: self._declare_const,
            Command.DEFINE_FUN: self._define_fun,
            Command.ASSERT: self._assert,
            Command.CHECK_SAT: self._check_sat,
            Command.CHECK_SAT_ASSUMING: self._check_sat_assuming,
            Command.GET_ASSERTIONS: self._get_assertions,
            Command.GET_VALUE: self._get_value,
            Command.GET_MODEL: self._get_model,
            Command.GET_UNSAT_CORE: self._get_unsat_core,
            Command.GET_ASSIGNMENT: self._unsupported_query,
            Command.GET_UNSAT_ASSUMPTIONS: self._unsupported_query,
            Command.GET_PROOF: self._unsupported_query,
            Command.DEFINE_SORT: self._unsupported,
            Command.DEFINE_FUN_REC: self._unsupported,
            Command.DEFINE_FUNS_REC: self._unsupported,
            Command.DECLARE_DATATYPE: self._unsupported,
            Command.DECLARE_DATATYPES: self._unsupported,
        }
        missing = set(Command) - self._handlers.keys()
        assert not missing, f"Commands without handler: {missing}"

    def execute(self, sexpr: SExpr) -> Optional[str]:
        """Executes a single command and returns the printed output, if any"""
        if not is_list(sexpr) or len(sexpr) == 0 or not is_atom(sexpr[0]):
            raise SmtSyntaxError("Expected a command", sexpr)
        try:
            command = Command(sexpr[0])
        except ValueError:
            raise SmtSyntaxError("Unknown command", sexpr) from None

        self.session.require_open()
        logger.debug("Executing %s", to_string(sexpr))
        result = self._handlers[command](sexpr, sexpr[1:])
        if result is not None:
            print(result, file=self.out)
        return result

    def run(self, sexprs: Iterable[SExpr]) -> None:
        """Executes commands in order, stopping at the first error or at exit"""
        for sexpr in sexprs:
            self.execute(sexpr)
            if self.session.status is SessionStatus.CLOSED:
                break

    # Logic, options, info

    def _set_logic(self, sexpr, args):
        _expect_arguments(sexpr, args, 1)
        self.session.set_logic(_expect_atom(sexpr, args[0]))

    def _set_option(self, sexpr, args):
        _expect_arguments(sexpr, args, 2)
        self.session.set_option(_expect_keyword(sexpr, args[0]), to_string(args[1]))

    def _set_info(self, sexpr, args):
        if len(args) != 2 or not is_atom(args[0]) or not is_atom(args[1]):
            logger.debug("Ignoring set-info %s", to_string(sexpr))
            return
        self.session.set_info(args[0], args[1])

    def _get_info(self, sexpr, args):
        _expect_arguments(sexpr, args, 1)
        keyword = _expect_keyword(sexpr, args[0])
        return printer.format_attribute(keyword, self.session.get_info(keyword))

    def _get_option(self, sexpr, args):
        _expect_arguments(sexpr, args, 1)
        return self.session.get_option(_expect_keyword(sexpr, args[0]))

    def _echo(self, sexpr, args):
        _expect_arguments(sexpr, args, 1)
        return printer.format_echo(_expect_atom(sexpr, args[0]))

    # Scopes and lifecycle

    def _push(self, sexpr, args):
        self.session.push(_numeral(sexpr, args, 1))

    def _pop(self, sexpr, args):
        self.session.pop(_numeral(sexpr, args, 1))

    def _reset_assertions(self, sexpr, args):
        _expect_arguments(sexpr, args, 0)
        self.session.reset_assertions()

    def _reset(self, sexpr, args):
        _expect_arguments(sexpr, args, 0)
        self.session.reset()

    def _exit(self, sexpr, args):
        _expect_arguments(sexpr, args, 0)
        self.session.exit()

    # Declarations

    def _declare_sort(self, sexpr, args):
        name = _expect_atom(sexpr, args[0]) if args else None
        if name is None:
            raise SmtSyntaxError("Missing sort name", sexpr)
        self.session.declare_sort(name, _numeral(sexpr, args[1:], 0))

    def _declare_fun(self, sexpr, args):
        _expect_arguments(sexpr, args, 3)
        name = _expect_atom(sexpr, args[0])
        self.session.declare_fun(name, _expect_list(sexpr, args[1]), args[2])

    def _declare_const(self, sexpr, args):
        _expect_arguments(sexpr, args, 2)
        self.session.declare_fun(_expect_atom(sexpr, args[0]), (), args[1])

    def _define_fun(self, sexpr, args):
        _expect_arguments(sexpr, args, 4)
        name = _expect_atom(sexpr, args[0])
        self.session.define_fun(name, _expect_list(sexpr, args[1]), args[2], args[3])

    # Assertions and queries

    def _assert(self, sexpr, args):
        _expect_arguments(sexpr, args, 1)
        self.session.assert_term(args[0])

    def _check_sat(self, sexpr, args):
        _expect_arguments(sexpr, args, 0)
        return printer.format_status(self.session.check_sat())

    def _check_sat_assuming(self, sexpr, args):
        _expect_arguments(sexpr, args, 1)
        assumptions = _expect_list(sexpr, args[0])
        return printer.format_status(self.session.check_sat(assumptions))

    def _get_assertions(self, sexpr, args):
        _expect_arguments(sexpr, args, 0)
        self.session.require_active()
        terms = [printer.format_term(t) for t in self.session.assertions]
        return "\n".join(terms) if terms else None

    def _get_value(self, sexpr, args):
        _expect_arguments(sexpr, args, 1)
        terms = _expect_list(sexpr, args[0])
        if not terms:
            raise SmtSyntaxError("get-value expects at least one term", sexpr)
        return printer.format_values(self.session.get_value(terms))

    def _get_model(self, sexpr, args):
        _expect_arguments(sexpr, args, 0)
        self.session.require_active()
        return printer.format_model(self.session.model_assignments())

    def _get_unsat_core(self, sexpr, args):
        _expect_arguments(sexpr, args, 0)
        terms = [printer.format_term(t) for t in self.session.unsat_core()]
        return "\n".join(terms) if terms else None

    def _unsupported_query(self, sexpr, args):
        self.session.require_active()
        raise UnsupportedFeature(f"'{sexpr[0]}' is not supported", sexpr)

    def _unsupported(self, sexpr, args):
        raise UnsupportedFeature(f"'{sexpr[0]}' is not supported", sexpr)
