"""Translate query predicates into IMAPClient search criteria."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any

from mail_query_agent.query.criteria import (
    AnyOf,
    DateAxis,
    DateOp,
    DateTerm,
    FlagTerm,
    HeaderTerm,
    Predicate,
    Term,
    TextTerm,
    UidRangeTerm,
)

_TEXT_KEYS = {
    "text": "TEXT",
    "from": "FROM",
    "to": "TO",
    "cc": "CC",
    "bcc": "BCC",
    "subject": "SUBJECT",
    "body": "BODY",
}

_DATE_KEYS = {
    (DateAxis.RECEIVED, DateOp.SINCE): "SINCE",
    (DateAxis.RECEIVED, DateOp.BEFORE): "BEFORE",
    (DateAxis.SENT, DateOp.SINCE): "SENTSINCE",
    (DateAxis.SENT, DateOp.BEFORE): "SENTBEFORE",
}


def _criteria_date(value: datetime) -> date:
    # IMAP date search keys have day granularity.
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.date()


def _term_to_criteria(term: Term) -> list[Any]:
    if isinstance(term, TextTerm):
        return [_TEXT_KEYS[term.field], term.value]
    if isinstance(term, FlagTerm):
        return ["SEEN" if term.seen else "UNSEEN"]
    if isinstance(term, DateTerm):
        return [_DATE_KEYS[(term.axis, term.op)], _criteria_date(term.value)]
    if isinstance(term, HeaderTerm):
        return ["HEADER", term.name, term.value]
    if isinstance(term, UidRangeTerm):
        high = "*" if term.high is None else str(term.high)
        return ["UID", f"{term.low}:{high}"]
    if isinstance(term, AnyOf):
        return _any_of_to_criteria(list(term.terms))
    raise TypeError(f"Unsupported search term: {term!r}")


def _any_of_to_criteria(terms: list[Term]) -> list[Any]:
    # IMAP OR is binary: OR a (OR b c). Nested lists are sent parenthesized.
    if not terms:
        return ["ALL"]
    if len(terms) == 1:
        return _term_to_criteria(terms[0])
    return ["OR", _term_to_criteria(terms[0]), _any_of_to_criteria(terms[1:])]


def predicate_to_criteria(predicate: Predicate) -> list[Any]:
    """Build the criteria list passed to ``IMAPClient.search``."""
    if not predicate.terms:
        return ["ALL"]
    criteria: list[Any] = []
    for term in predicate.terms:
        criteria.extend(_term_to_criteria(term))
    return criteria


def criteria_charset(criteria: list[Any]) -> str | None:
    """Return "UTF-8" when any criteria string is non-ASCII."""
    for item in criteria:
        if isinstance(item, list):
            if criteria_charset(item):
                return "UTF-8"
        elif isinstance(item, str) and not item.isascii():
            return "UTF-8"
    return None
