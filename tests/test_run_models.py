"""Tests for run states and summaries."""

from datetime import date, datetime, timezone

import pytest

from mail_forwarder.domain.models import ForwardOutcome, ForwardStrategy, RunMode
from mail_forwarder.forwarding.models import RunResult, RunState, RunSummary


@pytest.mark.parametrize(
    "state,exit_code",
    [
        (RunState.DONE, 0),
        (RunState.CANCELLED, 0),
        (RunState.FAILED, 1),
        (RunState.TIMED_OUT, 2),
    ],
)
def test_exit_codes(state, exit_code):
    assert state.is_terminal
    assert state.exit_code == exit_code
    assert RunResult(run_id="run-1", state=state).exit_code == exit_code


@pytest.mark.parametrize(
    "state", [RunState.IDLE, RunState.SUBMITTED, RunState.POLLING, RunState.FORWARDING]
)
def test_non_terminal_states(state):
    assert not state.is_terminal


def make_summary(**kwargs):
    return RunSummary(
        mode=RunMode.LIVE,
        strategy=ForwardStrategy.PER_ITEM,
        source_scope="a@x.com",
        target_scope="b@y.com",
        target_folder="ForwardedEmails",
        date_range_start=date(2024, 6, 1),
        date_range_end=date(2024, 6, 30),
        **kwargs,
    )


class TestRunSummary:
    def test_counts_derive_from_outcomes(self):
        summary = make_summary(
            outcomes=[
                ForwardOutcome(item_id="i1", delivered=True, attempts=1),
                ForwardOutcome(item_id="i2", delivered=True, attempts=2),
                ForwardOutcome(item_id="i3", delivered=True, already_forwarded=True),
                ForwardOutcome(item_id="i4", delivered=False, error_detail="Forbidden", attempts=1),
            ]
        )

        assert summary.matched_count == 4
        assert summary.delivered_count == 2
        assert summary.duplicate_count == 1
        assert summary.failed_count == 1
        # Every matched item is accounted for exactly once
        assert (
            summary.delivered_count + summary.duplicate_count + summary.failed_count
            == summary.matched_count
        )
        assert [o.item_id for o in summary.failed_outcomes] == ["i4"]

    def test_explicit_counts_without_outcomes(self):
        summary = make_summary(matched_count=7, delivered_count=7)

        assert summary.matched_count == 7
        assert summary.failed_outcomes == []

    def test_elapsed_seconds(self):
        summary = make_summary(
            started_at=datetime(2024, 7, 2, 9, 0, tzinfo=timezone.utc),
            finished_at=datetime(2024, 7, 2, 9, 1, 30, tzinfo=timezone.utc),
        )
        assert summary.elapsed_seconds == 90.0
        assert make_summary().elapsed_seconds == 0.0
