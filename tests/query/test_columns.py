# tests/query/test_columns.py
import pytest
from hypothesis import given, strategies as st

from dbaas.api.query.columns import filter_columns, filter_fields
from dbaas.api.query.models import ColumnRestrictions, Grant
from dbaas.core.errors import NoColumnsAllowed

TABLE_COLUMNS = ["id", "name", "email", "age", "city", "secret"]

column_names = st.sampled_from(TABLE_COLUMNS)
column_lists = st.lists(column_names, min_size=1, max_size=6, unique=True)


def grant_with(allowed=(), denied=()):
    return Grant(
        user_id=2,
        table_name="customers",
        can_select=True,
        column_restrictions=ColumnRestrictions(
            allowed=tuple(allowed), denied=tuple(denied)
        ),
    )


def test_no_grant_passes_request_through():
    assert filter_columns(["*"], None, TABLE_COLUMNS) == ["*"]
    assert filter_columns(["name", "bogus"], None, TABLE_COLUMNS) == ["name", "bogus"]


def test_unrestricted_grant_keeps_request():
    assert filter_columns(["*"], grant_with(), TABLE_COLUMNS) == TABLE_COLUMNS
    assert filter_columns(["age"], grant_with(), TABLE_COLUMNS) == ["age"]


def test_wildcard_with_allowed_list():
    grant = grant_with(allowed=["id", "name"])
    assert filter_columns(["*"], grant, TABLE_COLUMNS) == ["id", "name"]


def test_denied_removed_from_wildcard():
    grant = grant_with(denied=["secret"])
    assert "secret" not in filter_columns(["*"], grant, TABLE_COLUMNS)


def test_allowed_takes_precedence_over_denied():
    grant = grant_with(allowed=["name", "secret"], denied=["secret"])
    assert filter_columns(["*"], grant, TABLE_COLUMNS) == ["name", "secret"]


def test_total_denial_raises():
    grant = grant_with(allowed=["id"])
    with pytest.raises(NoColumnsAllowed) as exc:
        filter_columns(["secret"], grant, TABLE_COLUMNS, table="customers")
    assert exc.value.status_code == 400
    assert "customers" in exc.value.message


def test_filter_fields():
    grant = grant_with(denied=["secret"])
    data = {"name": "x", "secret": "s"}
    assert filter_fields(data, grant) == {"name": "x"}
    with pytest.raises(NoColumnsAllowed):
        filter_fields({"secret": "s"}, grant)


@given(requested=column_lists, allowed=column_lists)
def test_allowed_projection_is_subset(requested, allowed):
    grant = grant_with(allowed=allowed)
    try:
        out = filter_columns(requested, grant, TABLE_COLUMNS)
    except NoColumnsAllowed:
        assert not set(requested) & set(allowed)
        return
    assert set(out) <= set(allowed)
    assert set(out) <= set(requested)
    assert set(out) == set(requested) & set(allowed)


@given(requested=column_lists, denied=column_lists)
def test_denied_never_projected(requested, denied):
    grant = grant_with(denied=denied)
    try:
        out = filter_columns(requested, grant, TABLE_COLUMNS)
    except NoColumnsAllowed:
        assert set(requested) <= set(denied)
        return
    assert not set(out) & set(denied)
    assert set(out) == set(requested) - set(denied)


@given(allowed=column_lists)
def test_wildcard_expands_to_allowed(allowed):
    out = filter_columns(["*"], grant_with(allowed=allowed), TABLE_COLUMNS)
    assert set(out) == set(allowed)
