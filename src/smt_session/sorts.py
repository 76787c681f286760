# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import logging
from typing import Dict

from pysmt.typing import PySMTType, TypeManager

from smt_session.backend import translate_errors
from smt_session.errors import UnsupportedFeature, UnsupportedSortSyntax
from smt_session.sexpr import SExpr, is_atom

logger = logging.getLogger(__name__)


class SortParser:
    """Translates S-expressions into pySMT types.

    User sorts introduced by ``declare-sort`` are kept in ``declared`` and
    take priority over the built-in sort names.
    """

    def __init__(self, type_manager: TypeManager) -> None:
        self._types: TypeManager = type_manager
        self.declared: Dict[str, PySMTType] = {}

    def declare(self, name: str, arity: int = 0) -> PySMTType:
        if arity != 0:
            raise UnsupportedFeature(
                f"Only uninterpreted sorts of arity 0 are supported, '{name}' has arity {arity}"
            )
        # re-declaration silently replaces the previous entry
        with translate_errors():
            sort = self._types.Type(name, 0)
        self.declared[name] = sort
        logger.debug("Declared sort %s", name)
        return sort

    def __contains__(self, name: str) -> bool:
        return name in self.declared

    def parse(self, sexpr: SExpr) -> PySMTType:
        if is_atom(sexpr):
            return self._atom(sexpr)

        if len(sexpr) == 3 and sexpr[0] == "Array":
            index_sort = self.parse(sexpr[1])
            elem_sort = self.parse(sexpr[2])
            return self._types.ArrayType(index_sort, elem_sort)

        if len(sexpr) == 3 and sexpr[0] == "_" and sexpr[1] == "BitVec" and is_atom(sexpr[2]):
            width = sexpr[2]
            if not width.isdigit() or int(width) == 0:
                raise UnsupportedSortSyntax("Bit-vector width must be a positive numeral", sexpr)
            return self._types.BVType(int(width))

        raise UnsupportedSortSyntax("Unsupported sort", sexpr)

    def _atom(self, name: str) -> PySMTType:
        if name in self.declared:
            return self.declared[name]
        if name == "Bool":
            return self._types.BOOL()
        if name == "Int":
            return self._types.INT()
        if name == "Real":
            return self._types.REAL()
        raise UnsupportedSortSyntax("Unknown sort", name)
