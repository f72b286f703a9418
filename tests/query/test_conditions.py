# tests/query/test_conditions.py
import pytest

from dbaas.api.query.conditions import (
    And,
    Leaf,
    Or,
    Raw,
    clause_to_json,
    merge_conditions,
    parse_clause,
    parse_conditions,
)
from dbaas.core.errors import InvalidCondition


def test_parse_none_is_empty():
    assert parse_conditions(None) == []


def test_parse_dict_leaf():
    [clause] = parse_conditions([{"column": "age", "operator": ">", "value": 25}])
    assert clause == Leaf("age", ">", 25)


def test_parse_list_leaf():
    assert parse_conditions([["city", "=", "Rome"]]) == [Leaf("city", "=", "Rome")]


def test_bare_triple_is_single_leaf():
    assert parse_conditions(["city", "=", "Rome"]) == [Leaf("city", "=", "Rome")]


def test_single_dict_wrapped():
    assert parse_conditions({"raw": "age > 3"}) == [Raw("age > 3")]


def test_operator_aliases_and_case():
    assert parse_clause(["a", "<>", 1]).operator == "!="
    assert parse_clause(["a", "==", 1]).operator == "="
    assert parse_clause(["a", "NOT   LIKE", "x%"]).operator == "not like"


def test_in_requires_list():
    assert parse_clause(["id", "in", [1, 2]]) == Leaf("id", "in", (1, 2))
    with pytest.raises(InvalidCondition):
        parse_clause(["id", "in", 1])
    with pytest.raises(InvalidCondition):
        parse_clause(["id", "in", [[1], 2]])


def test_comparison_rejects_list_and_null():
    with pytest.raises(InvalidCondition):
        parse_clause(["age", ">", [1, 2]])
    with pytest.raises(InvalidCondition):
        parse_clause(["age", ">", None])
    assert parse_clause(["age", "=", None]) == Leaf("age", "=", None)


def test_like_requires_string():
    with pytest.raises(InvalidCondition):
        parse_clause(["name", "like", 3])


def test_unknown_operator():
    with pytest.raises(InvalidCondition):
        parse_clause(["age", "between", 3])


def test_composites():
    clause = parse_clause(
        {"or": [["city", "=", "Rome"], {"and": [["age", ">", 1], ["age", "<", 9]]}]}
    )
    assert isinstance(clause, Or)
    assert clause.clauses[0] == Leaf("city", "=", "Rome")
    assert isinstance(clause.clauses[1], And)


@pytest.mark.parametrize(
    "raw",
    [
        {"or": []},
        {"and": "x"},
        {"raw": "  "},
        {"column": "a", "operator": "="},
        {"bogus": []},
        {"and": [], "or": []},
        ["a", "="],
        42,
    ],
)
def test_malformed_clauses(raw):
    with pytest.raises(InvalidCondition):
        parse_clause(raw)


def test_merge_grant_first():
    grant = [Leaf("owner_id", "=", 2)]
    request = [Or((Leaf("city", "=", "Rome"), Leaf("city", "=", "Milan")))]
    merged = merge_conditions(request, grant)
    assert merged == [grant[0], request[0]]


def test_merge_keeps_grant_verbatim():
    grant = [Raw("age >= 18")]
    assert merge_conditions([], grant) == grant
    assert merge_conditions([], []) == []


def test_clause_json_shape():
    clause = parse_clause({"and": [["id", "in", [1, 2]], {"raw": "age > 1"}]})
    assert clause_to_json(clause) == {
        "and": [
            {"column": "id", "operator": "in", "value": [1, 2]},
            {"raw": "age > 1"},
        ]
    }
