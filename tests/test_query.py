"""Tests for search predicates built from a request."""

from datetime import date, timedelta

import pytest
from pydantic import ValidationError

from mail_forwarder.domain.models import SearchRequest
from mail_forwarder.domain.query import SearchQuery


def test_from_request():
    request = SearchRequest(
        source_scope="a@x.com",
        date_range_start=date(2024, 6, 1),
        date_range_end=date(2024, 6, 30),
    )

    query = SearchQuery.from_request(request)

    assert query.start == date(2024, 6, 1)
    assert query.end == date(2024, 6, 30)


@pytest.mark.parametrize(
    "start,end,expected",
    [
        (date(2024, 6, 1), date(2024, 6, 30), "received>=2024-06-01 AND received<=2024-06-30"),
        # Single day
        (date(2024, 6, 15), date(2024, 6, 15), "received>=2024-06-15 AND received<=2024-06-15"),
        # Month end
        (date(2024, 4, 30), date(2024, 5, 31), "received>=2024-04-30 AND received<=2024-05-31"),
        # Leap day
        (date(2024, 2, 29), date(2024, 2, 29), "received>=2024-02-29 AND received<=2024-02-29"),
        (date(2024, 2, 28), date(2024, 3, 1), "received>=2024-02-28 AND received<=2024-03-01"),
        # Year boundary
        (date(2023, 12, 31), date(2024, 1, 1), "received>=2023-12-31 AND received<=2024-01-01"),
        (date(2024, 1, 1), date(2024, 12, 31), "received>=2024-01-01 AND received<=2024-12-31"),
    ],
)
def test_kql_includes_both_days(start, end, expected):
    assert SearchQuery(start=start, end=end).to_kql() == expected


EDGE_DAYS = [
    date(2023, 12, 31),
    date(2024, 1, 1),
    date(2024, 1, 31),
    date(2024, 2, 28),
    date(2024, 2, 29),
    date(2024, 3, 1),
    date(2024, 6, 30),
    date(2024, 12, 31),
    date(2025, 1, 1),
]


@pytest.mark.parametrize(
    "start,end",
    [(start, end) for start in EDGE_DAYS for end in EDGE_DAYS if start <= end],
)
def test_every_window_keeps_both_bounds(start, end):
    query = SearchQuery(start=start, end=end)

    assert f"received>={start.isoformat()}" in query.to_kql()
    assert f"received<={end.isoformat()}" in query.to_kql()
    assert f"ge {start.isoformat()}T00:00:00Z" in query.to_odata_filter()
    assert f"lt {(end + timedelta(days=1)).isoformat()}T00:00:00Z" in query.to_odata_filter()


@pytest.mark.parametrize(
    "start,end,expected",
    [
        (
            date(2024, 6, 1),
            date(2024, 6, 30),
            "receivedDateTime ge 2024-06-01T00:00:00Z and receivedDateTime lt 2024-07-01T00:00:00Z",
        ),
        (
            date(2024, 6, 1),
            date(2024, 6, 1),
            "receivedDateTime ge 2024-06-01T00:00:00Z and receivedDateTime lt 2024-06-02T00:00:00Z",
        ),
        (
            date(2023, 12, 31),
            date(2024, 2, 29),
            "receivedDateTime ge 2023-12-31T00:00:00Z and receivedDateTime lt 2024-03-01T00:00:00Z",
        ),
    ],
)
def test_odata_filter_covers_end_day(start, end, expected):
    assert SearchQuery(start=start, end=end).to_odata_filter() == expected


def test_describe():
    query = SearchQuery(start=date(2024, 6, 1), end=date(2024, 6, 30))
    assert query.describe() == "2024-06-01..2024-06-30 (inclusive)"


def test_reversed_window_rejected():
    with pytest.raises(ValidationError):
        SearchQuery(start=date(2024, 6, 30), end=date(2024, 6, 1))
