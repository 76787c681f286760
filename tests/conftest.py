from io import StringIO

import pytest

from smt_session import CommandDispatcher, SessionState, SessionStatus, read_sexpr, read_sexprs


@pytest.fixture
def session():
    s = SessionState()
    yield s
    if s.status is not SessionStatus.CLOSED:
        s.exit()


@pytest.fixture
def out():
    return StringIO()


@pytest.fixture
def dispatcher(session, out):
    return CommandDispatcher(session, out)


@pytest.fixture
def execute(dispatcher):
    """Executes a single command given as text and returns its output"""

    def _execute(text):
        return dispatcher.execute(read_sexpr(text))

    return _execute


@pytest.fixture
def run(dispatcher, out):
    """Runs a script and returns everything printed so far, one entry per line"""

    def _run(script):
        dispatcher.run(read_sexprs(StringIO(script)))
        return out.getvalue().splitlines()

    return _run
