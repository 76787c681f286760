from io import StringIO

import pytest

from smt_session.errors import SmtSyntaxError
from smt_session.sexpr import (
    is_string_literal,
    read_sexpr,
    read_sexprs,
    string_literal_value,
    to_string,
)


class TestReader:
    def test_nested_lists(self):
        assert read_sexpr("(assert (> x 1))") == ("assert", (">", "x", "1"))

    def test_empty_list(self):
        assert read_sexpr("()") == ()

    def test_multiple_expressions_and_comments(self):
        script = "; a comment\n(set-logic QF_LIA) ; trailing\n(check-sat)\nfoo"
        assert list(read_sexprs(StringIO(script))) == [
            ("set-logic", "QF_LIA"),
            ("check-sat",),
            "foo",
        ]

    def test_carriage_returns_are_whitespace(self):
        assert list(read_sexprs(StringIO("(a\r\nb)\r\n(c)"))) == [("a", "b"), ("c",)]

    def test_string_literal_keeps_quotes(self):
        assert read_sexpr('(echo "hello world")') == ("echo", '"hello world"')

    def test_quoted_symbol(self):
        assert read_sexpr("(declare-const |a b| Int)") == ("declare-const", "a b", "Int")

    def test_unbalanced_close(self):
        with pytest.raises(SmtSyntaxError) as e:
            list(read_sexprs(StringIO("(a)\n)")))
        assert e.value.line == 2

    def test_missing_close(self):
        with pytest.raises(SmtSyntaxError):
            list(read_sexprs(StringIO("(a (b)")))

    def test_read_sexpr_requires_exactly_one(self):
        with pytest.raises(SmtSyntaxError):
            read_sexpr("(a) (b)")
        with pytest.raises(SmtSyntaxError):
            read_sexpr("")


class TestPrinting:
    def test_to_string(self):
        assert to_string(("assert", (">", "x", "1"))) == "(assert (> x 1))"

    def test_to_string_quotes_symbols(self):
        assert to_string(("a b", "c")) == "(|a b| c)"

    def test_string_literals(self):
        assert is_string_literal('"abc"')
        assert not is_string_literal("abc")
        assert string_literal_value('"say ""hi"""') == 'say "hi"'
        assert string_literal_value("plain") == "plain"
