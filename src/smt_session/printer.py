"""SMT-LIB rendering of command results"""

from typing import Iterable, Sequence, Tuple

from pysmt.fnode import FNode
from pysmt.typing import PySMTType

from smt_session.backend import CheckStatus
from smt_session.sexpr import SExpr, string_literal_value, to_string


def format_status(status: CheckStatus) -> str:
    return str(status)


def format_term(term: FNode) -> str:
    return term.to_smtlib(daggify=False)


def format_sort(sort: PySMTType) -> str:
    return sort.as_smtlib(funstyle=False)


def format_model(assignments: Iterable[Tuple[str, Sequence[FNode], PySMTType, FNode]]) -> str:
    lines = ["("]
    for name, params, sort, value in assignments:
        declared = " ".join(f"({format_term(p)} {format_sort(p.symbol_type())})" for p in params)
        lines.append(
            f"  (define-fun {to_string(name)} ({declared}) {format_sort(sort)} {format_term(value)})"
        )
    lines.append(")")
    return "\n".join(lines)


def format_values(values: Iterable[Tuple[SExpr, FNode]]) -> str:
    return "(" + " ".join(f"({to_string(s)} {format_term(v)})" for s, v in values) + ")"


def format_attribute(keyword: str, value: str) -> str:
    return f"({keyword} {value})"


def format_echo(text: str) -> str:
    return string_literal_value(text)
