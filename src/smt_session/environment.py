from __future__ import annotations

from typing import Dict, Iterable, Optional, Tuple, Union

from pysmt.fnode import FNode

from smt_session.errors import UnboundName


class FunctionDefinition:
    """Macro introduced by a define-fun with parameters"""

    def __init__(self, name: str, parameters: Tuple[FNode, ...], body: FNode) -> None:
        self.name: str = name
        self.parameters: Tuple[FNode, ...] = tuple(parameters)
        self.body: FNode = body

    @property
    def arity(self) -> int:
        return len(self.parameters)

    def __repr__(self) -> str:
        return f"FunctionDefinition({self.name}/{self.arity})"


Binding = Union[FNode, FunctionDefinition]


class ScopedBindings:
    """Immutable mapping of lexically bound names.

    Updates return a new mapping, the receiver is left untouched, so an
    enclosing scope is reachable again as soon as the inner one is dropped.
    """

    def __init__(self, bindings: Iterable[Tuple[str, Binding]] = ()) -> None:
        self._dict: Dict[str, Binding] = dict(bindings)

    def __getitem__(self, key: str) -> Binding:
        return self._dict[key]

    def __contains__(self, key: str) -> bool:
        return key in self._dict

    def update(self, bindings: Iterable[Tuple[str, Binding]]) -> ScopedBindings:
        new_dict = dict(self._dict)
        for key, value in bindings:
            new_dict[key] = value
        return ScopedBindings(new_dict.items())


class VariableEnvironment:
    """Two-tier name table.

    ``permanent`` holds declared constants and functions for the lifetime of
    the session and is shared by every environment derived with ``extend``.
    ``scoped`` holds let/quantifier bindings and shadows ``permanent``.
    """

    def __init__(
        self,
        permanent: Optional[Dict[str, Binding]] = None,
        scoped: Optional[ScopedBindings] = None,
    ) -> None:
        self.permanent: Dict[str, Binding] = {} if permanent is None else permanent
        self.scoped: ScopedBindings = ScopedBindings() if scoped is None else scoped

    def bind(self, name: str, value: Binding) -> None:
        # a duplicate silently shadows the previous declaration
        self.permanent[name] = value

    def extend(self, bindings: Iterable[Tuple[str, Binding]]) -> VariableEnvironment:
        return VariableEnvironment(self.permanent, self.scoped.update(bindings))

    def resolve(self, name: str) -> Binding:
        if name in self.scoped:
            return self.scoped[name]
        try:
            return self.permanent[name]
        except KeyError:
            raise UnboundName(name) from None

    def __contains__(self, name: str) -> bool:
        return name in self.scoped or name in self.permanent
