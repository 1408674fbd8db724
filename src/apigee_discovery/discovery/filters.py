"""
Inclusion filter expressions.

Grammar::

    expr       := and_expr ("||" and_expr)*
    and_expr   := unary ("&&" unary)*
    unary      := "!" unary | "(" expr ")" | comparison
    comparison := path [op value]
    op         := "==" | "!=" | "=~" | "!~"
    path       := name ("." name)*
    value      := "quoted string" | 'quoted string' | bare-word

``==``/``!=`` compare as strings, ``=~``/``!~`` use ``re.search``. A path
resolving to a list matches if any element matches. A bare path tests that
the attribute is present and truthy. An empty expression accepts everything.

Examples::

    name == "payments"
    attributes.access == public && name =~ "^pay"
    !(environments == test) || name == "sandbox"
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from apigee_discovery.exceptions import ConfigurationError

_TOKEN = re.compile(
    r"""
    \s*(?:
        (?P<op>==|!=|=~|!~|&&|\|\||!|\(|\))
      | "(?P<dq>(?:[^"\\]|\\.)*)"
      | '(?P<sq>(?:[^'\\]|\\.)*)'
      | (?P<word>[A-Za-z0-9_\-./:*^$?\[\]{}+@]+)
    )
    """,
    re.VERBOSE,
)

_MISSING = object()

Predicate = Callable[[dict[str, Any]], bool]


@dataclass(frozen=True)
class _Token:
    kind: str  # "op", "str" or "word"
    text: str


def _tokenize(expression: str) -> list[_Token]:
    tokens: list[_Token] = []
    pos = 0
    text = expression.rstrip()
    while pos < len(text):
        match = _TOKEN.match(text, pos)
        if match is None or match.end() == pos:
            raise ConfigurationError(f"invalid filter expression {expression!r}: unexpected input at {pos}")
        if match.group("op") is not None:
            tokens.append(_Token("op", match.group("op")))
        elif match.group("dq") is not None:
            tokens.append(_Token("str", re.sub(r"\\(.)", r"\1", match.group("dq"))))
        elif match.group("sq") is not None:
            tokens.append(_Token("str", re.sub(r"\\(.)", r"\1", match.group("sq"))))
        else:
            tokens.append(_Token("word", match.group("word")))
        pos = match.end()
    return tokens


def _lookup(fields: dict[str, Any], path: str) -> Any:
    value: Any = fields
    for part in path.split("."):
        if isinstance(value, dict) and part in value:
            value = value[part]
        else:
            return _MISSING
    return value


def _values(value: Any) -> list[Any]:
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return [value]


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return str(value).lower()
    return str(value)


class _Parser:
    def __init__(self, expression: str):
        self.expression = expression
        self.tokens = _tokenize(expression)
        self.pos = 0

    def _peek(self) -> _Token | None:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _take(self) -> _Token:
        token = self._peek()
        if token is None:
            raise self._error("unexpected end of expression")
        self.pos += 1
        return token

    def _error(self, message: str) -> ConfigurationError:
        return ConfigurationError(f"invalid filter expression {self.expression!r}: {message}")

    def parse(self) -> Predicate:
        predicate = self._or()
        if self._peek() is not None:
            raise self._error(f"unexpected token {self._peek().text!r}")  # type: ignore[union-attr]
        return predicate

    def _or(self) -> Predicate:
        terms = [self._and()]
        while (tok := self._peek()) is not None and tok.kind == "op" and tok.text == "||":
            self._take()
            terms.append(self._and())
        if len(terms) == 1:
            return terms[0]
        return lambda fields: any(t(fields) for t in terms)

    def _and(self) -> Predicate:
        terms = [self._unary()]
        while (tok := self._peek()) is not None and tok.kind == "op" and tok.text == "&&":
            self._take()
            terms.append(self._unary())
        if len(terms) == 1:
            return terms[0]
        return lambda fields: all(t(fields) for t in terms)

    def _unary(self) -> Predicate:
        token = self._take()
        if token.kind == "op" and token.text == "!":
            inner = self._unary()
            return lambda fields: not inner(fields)
        if token.kind == "op" and token.text == "(":
            inner = self._or()
            closing = self._take()
            if closing.kind != "op" or closing.text != ")":
                raise self._error("missing ')'")
            return inner
        if token.kind != "word":
            raise self._error(f"expected an attribute name, got {token.text!r}")
        return self._comparison(token.text)

    def _comparison(self, path: str) -> Predicate:
        op = self._peek()
        if op is None or op.kind != "op" or op.text not in ("==", "!=", "=~", "!~"):

            def present(fields: dict[str, Any]) -> bool:
                value = _lookup(fields, path)
                return value is not _MISSING and any(bool(v) for v in _values(value))

            return present

        self._take()
        operand = self._take()
        if operand.kind == "op":
            raise self._error(f"expected a value after {op.text!r}, got {operand.text!r}")
        expected = operand.text

        if op.text in ("=~", "!~"):
            try:
                pattern = re.compile(expected)
            except re.error as e:
                raise self._error(f"bad regular expression {expected!r}: {e}") from None

            def matches(fields: dict[str, Any]) -> bool:
                value = _lookup(fields, path)
                return value is not _MISSING and any(pattern.search(_as_text(v)) for v in _values(value))

            return matches if op.text == "=~" else (lambda fields: not matches(fields))

        def equals(fields: dict[str, Any]) -> bool:
            value = _lookup(fields, path)
            return value is not _MISSING and any(_as_text(v) == expected for v in _values(value))

        return equals if op.text == "==" else (lambda fields: not equals(fields))


class FilterExpression:
    """
    Compiled inclusion filter.

    Raises ConfigurationError on construction if the expression is invalid,
    so a bad filter is caught at startup.
    """

    def __init__(self, expression: str = ""):
        self.expression = expression.strip()
        self._predicate: Predicate | None = _Parser(self.expression).parse() if self.expression else None

    def matches(self, fields: dict[str, Any]) -> bool:
        if self._predicate is None:
            return True
        return self._predicate(fields)

    def __bool__(self) -> bool:
        return self._predicate is not None

    def __repr__(self) -> str:
        return f"FilterExpression({self.expression!r})"
