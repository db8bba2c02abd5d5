"""Tests for constant value evaluation."""

from types import SimpleNamespace

import pytest
from clang.cindex import TokenKind

from ffigen.evaluate import (
    evaluate_tokens,
    parse_numeric_literal,
)


def lit(spelling):
    return SimpleNamespace(kind=TokenKind.LITERAL, spelling=spelling)


def punct(spelling):
    return SimpleNamespace(kind=TokenKind.PUNCTUATION, spelling=spelling)


def ident(spelling):
    return SimpleNamespace(kind=TokenKind.IDENTIFIER, spelling=spelling)


class TestParseNumericLiteral:
    @pytest.mark.parametrize(
        "spelling,expected",
        [
            ("42", 42),
            ("0", 0),
            ("0x10", 16),
            ("0X1f", 31),
            ("0x10UL", 16),
            ("10u", 10),
            ("10LL", 10),
            ("010", 8),
            ("0b101", 5),
            ("1.5", 1.5),
            ("1.5f", 1.5),
            ("1e3", 1000.0),
        ],
    )
    def test_numeric(self, spelling, expected):
        assert parse_numeric_literal(spelling) == expected

    def test_string_literal(self):
        assert parse_numeric_literal('"abc"') is None

    def test_char_literal(self):
        assert parse_numeric_literal("'a'") is None


class TestEvaluateTokens:
    def test_single_literal(self):
        result = evaluate_tokens([lit("1")])
        assert result.ok
        assert result.value == 1

    def test_shift(self):
        assert evaluate_tokens([lit("1"), punct("<<"), lit("3")]).value == 8

    def test_negative(self):
        assert evaluate_tokens([punct("-"), lit("1")]).value == -1

    def test_parenthesized(self):
        tokens = [punct("("), lit("1"), punct("<<"), lit("4"), punct(")"), punct("-"), lit("1")]
        result = evaluate_tokens(tokens)
        assert result.value == 15
        assert result.expression == "( 1 << 4 ) - 1"

    def test_suffixed_literal(self):
        assert evaluate_tokens([lit("0x10u"), punct("+"), lit("1")]).value == 17

    def test_comments_ignored(self):
        tokens = [lit("2"), SimpleNamespace(kind=TokenKind.COMMENT, spelling="/* two */")]
        assert evaluate_tokens(tokens).value == 2

    def test_identifier_rejected(self):
        result = evaluate_tokens([punct("("), ident("some_identifier"), punct(")")])
        assert not result.ok
        assert "some_identifier" in result.error

    def test_operator_rejected(self):
        result = evaluate_tokens([lit("2"), punct("*"), lit("3")])
        assert not result.ok
        assert "'*'" in result.error

    def test_keyword_rejected(self):
        tokens = [SimpleNamespace(kind=TokenKind.KEYWORD, spelling="sizeof"), punct("("), lit("1"), punct(")")]
        assert not evaluate_tokens(tokens).ok

    def test_string_literal_rejected(self):
        assert not evaluate_tokens([lit('"text"')]).ok

    def test_empty(self):
        result = evaluate_tokens([])
        assert not result.ok
        assert result.error == "empty expression"

    def test_dangling_operator(self):
        result = evaluate_tokens([lit("1"), punct("+")])
        assert not result.ok
        assert result.expression == "1 +"

    def test_float_shift(self):
        assert not evaluate_tokens([lit("1.5"), punct("<<"), lit("1")]).ok

    def test_oversized_shift_rejected(self):
        result = evaluate_tokens([lit("1"), punct("<<"), lit("99999999999999999")])
        assert not result.ok
        assert "shift count" in result.error

    def test_widest_shift_accepted(self):
        assert evaluate_tokens([lit("1"), punct("<<"), lit("64")]).value == 1 << 64
