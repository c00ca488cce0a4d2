"""Unit tests for predicate to IMAP criteria translation."""

from datetime import date, datetime, timedelta, timezone

import pytest

from mail_query_agent.query.criteria import (
    AnyOf,
    DateAxis,
    DateOp,
    DateTerm,
    FlagTerm,
    HeaderTerm,
    Predicate,
    TextTerm,
    UidRangeTerm,
)
from mail_query_agent.imap.search import criteria_charset, predicate_to_criteria
from mail_query_agent.query.thread import thread_predicate


def test_empty_predicate_matches_all() -> None:
    assert predicate_to_criteria(Predicate()) == ["ALL"]


def test_terms_are_flattened_in_order() -> None:
    predicate = Predicate(
        (
            TextTerm("from", "alice"),
            TextTerm("text", "report"),
            FlagTerm(seen=False),
            HeaderTerm("Message-ID", "<m@x>"),
        )
    )

    assert predicate_to_criteria(predicate) == [
        "FROM",
        "alice",
        "TEXT",
        "report",
        "UNSEEN",
        "HEADER",
        "Message-ID",
        "<m@x>",
    ]


@pytest.mark.parametrize(
    ("axis", "op", "key"),
    [
        (DateAxis.RECEIVED, DateOp.SINCE, "SINCE"),
        (DateAxis.RECEIVED, DateOp.BEFORE, "BEFORE"),
        (DateAxis.SENT, DateOp.SINCE, "SENTSINCE"),
        (DateAxis.SENT, DateOp.BEFORE, "SENTBEFORE"),
    ],
)
def test_date_keys(axis, op, key) -> None:
    term = DateTerm(axis, op, datetime(2026, 2, 22, tzinfo=timezone.utc))

    assert predicate_to_criteria(Predicate((term,))) == [key, date(2026, 2, 22)]


def test_offset_dates_are_converted_to_utc_day() -> None:
    late_evening = datetime(2026, 2, 21, 23, 30, tzinfo=timezone(timedelta(hours=-5)))
    term = DateTerm(DateAxis.RECEIVED, DateOp.SINCE, late_evening)

    assert predicate_to_criteria(Predicate((term,))) == ["SINCE", date(2026, 2, 22)]


def test_uid_ranges() -> None:
    assert predicate_to_criteria(Predicate((UidRangeTerm(11),))) == ["UID", "11:*"]
    assert predicate_to_criteria(Predicate((UidRangeTerm(1, 9),))) == ["UID", "1:9"]


def test_any_of_becomes_nested_binary_or() -> None:
    criteria = predicate_to_criteria(thread_predicate("a@x"))

    assert criteria == [
        "OR",
        ["HEADER", "Message-ID", "<a@x>"],
        ["OR", ["HEADER", "References", "<a@x>"], ["HEADER", "In-Reply-To", "<a@x>"]],
    ]


def test_single_term_any_of_is_unwrapped() -> None:
    predicate = Predicate((AnyOf((FlagTerm(seen=True),)),))

    assert predicate_to_criteria(predicate) == ["SEEN"]


def test_charset_only_for_non_ascii() -> None:
    assert criteria_charset(["SUBJECT", "hello"]) is None
    assert criteria_charset(["SUBJECT", "Grüße"]) == "UTF-8"
    assert criteria_charset(["OR", ["FROM", "a"], ["FROM", "José"]]) == "UTF-8"
    assert criteria_charset(["SINCE", date(2026, 1, 1)]) is None
