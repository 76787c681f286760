from smt_session.backend import CheckStatus, ModelHandle, SolverBackend, SolverConfiguration
from smt_session.commands import Command, CommandDispatcher
from smt_session.errors import (
    BackendError,
    CannotPopBaseLevel,
    LogicAlreadySet,
    ProtocolError,
    SmtSessionError,
    SmtSyntaxError,
    SmtTypeError,
    UnboundName,
    UnknownAttribute,
    UnrecognizedAtom,
    UnsupportedFeature,
    UnsupportedSortSyntax,
    UnsupportedTermSyntax,
)
from smt_session.session import AssertionStack, SessionState, SessionStatus
from smt_session.sexpr import read_sexpr, read_sexprs
