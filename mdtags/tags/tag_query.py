"""
A small boolean query language over tags.

Queries are whitespace-separated tokens: tag names (optionally `#`-prefixed) and the
operators `AND`, `OR`, `NOT` (case-insensitive). Precedence, highest first, is
NOT, AND, OR. There are no parentheses.

    or  := and (OR and)*
    and := not (AND not)*
    not := NOT not | TAG
"""

from dataclasses import dataclass
from enum import Enum
from typing import AbstractSet, Iterable, List, Union

from mdtags.errors import EmptyQueryError, InvalidTagError, QuerySyntaxError
from mdtags.tags.tag_matching import normalize_tag


@dataclass(frozen=True)
class Single:
    tag: str

    def matches(self, tags: AbstractSet[str]) -> bool:
        return self.tag in tags

    def __str__(self):
        return f"#{self.tag}"


@dataclass(frozen=True)
class And:
    left: "TagQuery"
    right: "TagQuery"

    def matches(self, tags: AbstractSet[str]) -> bool:
        return self.left.matches(tags) and self.right.matches(tags)

    def __str__(self):
        return f"{self.left} AND {self.right}"


@dataclass(frozen=True)
class Or:
    left: "TagQuery"
    right: "TagQuery"

    def matches(self, tags: AbstractSet[str]) -> bool:
        return self.left.matches(tags) or self.right.matches(tags)

    def __str__(self):
        return f"({self.left} OR {self.right})"


@dataclass(frozen=True)
class Not:
    inner: "TagQuery"

    def matches(self, tags: AbstractSet[str]) -> bool:
        return not self.inner.matches(tags)

    def __str__(self):
        return f"NOT {self.inner}"


TagQuery = Union[Single, And, Or, Not]


class Op(Enum):
    AND = "AND"
    OR = "OR"
    NOT = "NOT"


Token = Union[Op, str]
"""An operator, or a normalized tag name."""


def tokenize(query: str) -> List[Token]:
    tokens: List[Token] = []
    for word in query.split():
        upper = word.upper()
        if upper in Op.__members__:
            tokens.append(Op[upper])
        else:
            try:
                tokens.append(normalize_tag(word))
            except InvalidTagError as e:
                raise InvalidTagError(
                    f"Invalid tag in query: {word!r}", token=word, position=len(tokens)
                ) from e

    if not tokens:
        raise EmptyQueryError("Empty query")

    return tokens


class _Parser:
    def __init__(self, tokens: List[Token]):
        self.tokens = tokens
        self.pos = 0

    def peek(self) -> Union[Token, None]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def parse_or(self) -> TagQuery:
        left = self.parse_and()
        while self.peek() is Op.OR:
            self.pos += 1
            left = Or(left, self.parse_and())
        return left

    def parse_and(self) -> TagQuery:
        left = self.parse_not()
        while self.peek() is Op.AND:
            self.pos += 1
            left = And(left, self.parse_not())
        return left

    def parse_not(self) -> TagQuery:
        if self.peek() is Op.NOT:
            self.pos += 1
            return Not(self.parse_not())
        return self.parse_primary()

    def parse_primary(self) -> TagQuery:
        token = self.peek()
        if token is None:
            raise QuerySyntaxError("Unexpected end of query", position=self.pos)
        if isinstance(token, Op):
            raise QuerySyntaxError(
                f"Expected tag, found {token.value}", token=token.value, position=self.pos
            )
        self.pos += 1
        return Single(token)


def parse_query(query: str) -> TagQuery:
    """
    Parse a query string into a query tree. Raises `EmptyQueryError`,
    `InvalidTagError`, or `QuerySyntaxError`.
    """
    tokens = tokenize(query)
    parser = _Parser(tokens)
    result = parser.parse_or()

    if parser.pos != len(tokens):
        token = tokens[parser.pos]
        token_str = token.value if isinstance(token, Op) else token
        raise QuerySyntaxError(
            f"Unexpected token after position {parser.pos}: {token_str}",
            token=token_str,
            position=parser.pos,
        )

    return result


def query_matches(query: TagQuery, tags: Iterable[str]) -> bool:
    return query.matches(frozenset(tags))


## Tests


def test_parse_single_tag():
    assert parse_query("work") == Single("work")
    assert parse_query("#work") == Single("work")
    assert parse_query("WORK") == Single("work")


def test_parse_operators():
    assert parse_query("work AND urgent") == And(Single("work"), Single("urgent"))
    assert parse_query("work OR personal") == Or(Single("work"), Single("personal"))
    assert parse_query("NOT meeting") == Not(Single("meeting"))
    assert parse_query("work AND NOT meeting") == And(Single("work"), Not(Single("meeting")))
    assert parse_query("work and urgent") == parse_query("work AND urgent")


def test_parse_precedence():
    query = parse_query("work AND urgent OR personal")
    assert query == Or(And(Single("work"), Single("urgent")), Single("personal"))
    assert query_matches(query, {"personal"})
    assert query_matches(query, {"work", "urgent"})
    assert not query_matches(query, {"work"})


def test_parse_errors():
    import pytest

    from mdtags.errors import InvalidQuery

    with pytest.raises(EmptyQueryError):
        parse_query("")
    with pytest.raises(EmptyQueryError):
        parse_query("   ")
    with pytest.raises(InvalidTagError) as excinfo:
        parse_query("work AND work@email")
    assert excinfo.value.token == "work@email"
    assert excinfo.value.position == 2
    with pytest.raises(QuerySyntaxError):
        parse_query("work AND")
    with pytest.raises(QuerySyntaxError) as excinfo:
        parse_query("work urgent")
    assert excinfo.value.token == "urgent"
    with pytest.raises(QuerySyntaxError):
        parse_query("AND work")
    with pytest.raises(InvalidQuery):
        parse_query("#")


def test_matches():
    query = parse_query("work AND NOT meeting")
    assert query_matches(query, ["work", "urgent"])
    assert not query_matches(query, ["work", "meeting"])
    assert not query_matches(query, ["personal"])

    query = parse_query("NOT NOT work")
    assert query_matches(query, ["work"])
    assert not query_matches(query, ["other"])

    query = parse_query("project-alpha AND task_123")
    assert query_matches(query, ["project-alpha", "task_123"])

    query = parse_query("work OR personal OR hobby")
    assert all(query_matches(query, [t]) for t in ["work", "personal", "hobby"])
    assert not query_matches(query, ["other"])


def test_query_str():
    assert str(parse_query("work")) == "#work"
    assert str(parse_query("work AND urgent")) == "#work AND #urgent"
    assert str(parse_query("work OR personal")) == "(#work OR #personal)"
    assert str(parse_query("work AND NOT meeting")) == "#work AND NOT #meeting"


def test_printed_query_reparses_equivalently():
    from itertools import combinations

    queries = [
        "work",
        "NOT NOT work",
        "work AND urgent OR personal",
        "work OR personal AND NOT urgent",
        "NOT work OR urgent AND personal OR NOT personal",
    ]
    universe = ["work", "urgent", "personal"]
    tag_sets = [set(c) for n in range(len(universe) + 1) for c in combinations(universe, n)]
    for text in queries:
        query = parse_query(text)
        # Printed form has parentheses only around OR, so strip them to re-parse.
        printed = str(query).replace("(", "").replace(")", "")
        reparsed = parse_query(printed)
        for tags in tag_sets:
            assert query_matches(reparsed, tags) == query_matches(query, tags), (text, tags)
