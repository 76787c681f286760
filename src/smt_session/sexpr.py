# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

"""S-expression reader.

Atoms are represented as ``str`` and lists as ``tuple``. Tokenization is
delegated to pySMT's SMT-LIB tokenizer, so comments, quoted symbols and
string literals follow the same rules as the pySMT parser.
"""

from __future__ import annotations

from io import StringIO
from typing import Iterator, List, TextIO, Tuple, Union

from pysmt.exceptions import PysmtSyntaxError
from pysmt.smtlib.parser import Tokenizer

from smt_session.errors import SmtSyntaxError

SExpr = Union[str, Tuple["SExpr", ...]]

_NEEDS_QUOTING = set(" \t\n()|;")


def is_atom(sexpr: SExpr) -> bool:
    return isinstance(sexpr, str)


def is_list(sexpr: SExpr) -> bool:
    return isinstance(sexpr, tuple)


def is_string_literal(sexpr: SExpr) -> bool:
    return is_atom(sexpr) and len(sexpr) >= 2 and sexpr[0] == '"' and sexpr[-1] == '"'


def string_literal_value(sexpr: str) -> str:
    """Returns the content of a string literal, undoing the "" escaping"""
    if is_string_literal(sexpr):
        return sexpr[1:-1].replace('""', '"')
    return sexpr


def to_string(sexpr: SExpr) -> str:
    if is_atom(sexpr):
        if not is_string_literal(sexpr) and (
            len(sexpr) == 0 or any(c in _NEEDS_QUOTING for c in sexpr)
        ):
            return "|" + sexpr + "|"
        return sexpr
    return "(" + " ".join(to_string(s) for s in sexpr) + ")"


def _position(tokens: Tokenizer):
    pos = tokens.pos_info
    if pos is None:
        return None, None
    row, column = pos
    # rows are counted from 0
    return row + 1, column


def read_sexprs(stream: TextIO) -> Iterator[SExpr]:
    """Reads all the top-level S-expressions of a stream"""
    # the tokenizer drops a token ending exactly at the end of the input
    text = stream.read().replace("\r\n", "\n").replace("\r", "\n") + "\n"
    tokens = Tokenizer(StringIO(text))
    stack: List[list] = []

    while True:
        try:
            token = tokens.consume_maybe()
        except StopIteration:
            break
        except PysmtSyntaxError as e:
            line, column = _position(tokens)
            raise SmtSyntaxError(str(e), line=line, column=column) from e

        if token == "(":
            stack.append([])
            continue

        if token == ")":
            if not stack:
                line, column = _position(tokens)
                raise SmtSyntaxError("Unexpected ')'", line=line, column=column)
            expr = tuple(stack.pop())
        else:
            expr = token

        if stack:
            stack[-1].append(expr)
        else:
            yield expr

    if stack:
        line, column = _position(tokens)
        raise SmtSyntaxError(
            "Unexpected end of stream, missing ')'", line=line, column=column
        )


def read_sexpr(text: str) -> SExpr:
    """Reads exactly one S-expression from a string"""
    exprs = list(read_sexprs(StringIO(text)))
    if len(exprs) != 1:
        raise SmtSyntaxError(f"Expected one S-expression, found {len(exprs)}")
    return exprs[0]
