# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

"""Exceptions raised while processing an SMT-LIB2 script.

Every error aborts the command being processed. The script runner does not
recover from any of them.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional


class SmtSessionError(Exception):
    """Base class of all the errors raised by a session.

    ``sexpr`` is the S-expression that triggered the error, if known.
    """

    def __init__(self, message: str, sexpr: Any = None) -> None:
        super().__init__(message)
        self.message: str = message
        self.sexpr: Any = sexpr

    def __str__(self) -> str:
        if self.sexpr is None:
            return self.message
        # local import, sexpr imports this module
        from smt_session.sexpr import to_string

        return f"{self.message}: {to_string(self.sexpr)}"


class SmtSyntaxError(SmtSessionError):
    def __init__(
        self,
        message: str,
        sexpr: Any = None,
        line: Optional[int] = None,
        column: Optional[int] = None,
    ) -> None:
        super().__init__(message, sexpr)
        self.line: Optional[int] = line
        self.column: Optional[int] = column

    def __str__(self) -> str:
        res = super().__str__()
        if self.line is not None:
            res += f" (line {self.line}, column {self.column})"
        return res


class UnsupportedSortSyntax(SmtSyntaxError):
    pass


class UnsupportedTermSyntax(SmtSyntaxError):
    pass


class UnrecognizedAtom(SmtSyntaxError):
    pass


class UnboundName(SmtSessionError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Unbound name '{name}'")
        self.name: str = name


class LogicAlreadySet(SmtSessionError):
    pass


class CannotPopBaseLevel(SmtSessionError):
    pass


class UnsupportedFeature(SmtSessionError):
    pass


class SmtTypeError(SmtSessionError):
    pass


class ProtocolError(SmtSessionError):
    """A command was issued in a session state that does not allow it."""


class UnknownAttribute(SmtSessionError):
    pass


class BackendError(SmtSessionError):
    """Structured error reported by the solver backend.

    Backends populate only some of the fields, all of them are optional.
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        bad_value: Any = None,
        line: Optional[int] = None,
        column: Optional[int] = None,
        terms: Iterable[Any] = (),
        types: Iterable[Any] = (),
        sexpr: Any = None,
    ) -> None:
        super().__init__(message, sexpr)
        self.code: Optional[str] = code
        self.bad_value: Any = bad_value
        self.line: Optional[int] = line
        self.column: Optional[int] = column
        self.terms: tuple = tuple(terms)
        self.types: tuple = tuple(types)

    def __str__(self) -> str:
        fields = [super().__str__()]
        if self.code is not None:
            fields.append(f"code: {self.code}")
        if self.bad_value is not None:
            fields.append(f"bad value: {self.bad_value}")
        if self.line is not None:
            fields.append(f"line {self.line} column {self.column}")
        for i, term in enumerate(self.terms, start=1):
            fields.append(f"term{i}: {term}")
        for i, type_ in enumerate(self.types, start=1):
            fields.append(f"type{i}: {type_}")
        return "\n".join(fields)
