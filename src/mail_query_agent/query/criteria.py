"""Compile structured search filters into a conjunctive predicate.

All validation happens here, before the store is contacted:

- ``seen`` and ``unseen`` are mutually exclusive.
- Every date field is parsed on its own; a bad value is reported with the
  field name and the value the caller sent.
- A bare ``YYYY-MM-DD`` upper bound is inclusive, so it becomes the next
  midnight (the store's "before" is exclusive). Date-time upper bounds and
  all lower bounds are used as given.
- On each date axis, a lower bound at or after the upper bound is an error.

The predicate is a flat tuple of terms combined with AND. ``AnyOf`` is
only built by the thread resolver.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from enum import Enum

from mail_query_agent.exceptions import ValidationError
from mail_query_agent.models.criteria import (
    AdvancedSearchCriteria,
    BasicSearchCriteria,
    FolderQueryField,
)
from mail_query_agent.query.ordering import SortDirection

_BARE_DAY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_ONE_DAY = timedelta(days=1)


class DateAxis(str, Enum):
    RECEIVED = "received"
    SENT = "sent"


class DateOp(str, Enum):
    SINCE = "since"
    BEFORE = "before"


@dataclass(frozen=True)
class TextTerm:
    """Substring match on one field (text, from, to, cc, bcc, subject, body)."""

    field: str
    value: str


@dataclass(frozen=True)
class FlagTerm:
    seen: bool


@dataclass(frozen=True)
class DateTerm:
    axis: DateAxis
    op: DateOp
    value: datetime


@dataclass(frozen=True)
class HeaderTerm:
    name: str
    value: str


@dataclass(frozen=True)
class UidRangeTerm:
    """Inclusive UID range; ``high`` of None means open-ended."""

    low: int
    high: int | None = None


@dataclass(frozen=True)
class AnyOf:
    terms: tuple["Term", ...]


Term = TextTerm | FlagTerm | DateTerm | HeaderTerm | UidRangeTerm | AnyOf


@dataclass(frozen=True)
class Predicate:
    """AND of terms. An empty predicate matches every message."""

    terms: tuple[Term, ...] = ()

    def with_term(self, term: Term) -> Predicate:
        return Predicate(self.terms + (term,))


@dataclass(frozen=True)
class DateBound:
    value: datetime
    bare_day: bool


def parse_date_bound(field: str, value: str | None) -> DateBound | None:
    """Parse an ISO day or date-time.

    Bare days are midnight UTC and naive date-times are taken as UTC.

    Raises:
        ValidationError: If the value is not an ISO date or date-time.
    """
    if value is None or not value.strip():
        return None
    text = value.strip()
    try:
        if _BARE_DAY_RE.match(text):
            day = date.fromisoformat(text)
            return DateBound(datetime(day.year, day.month, day.day, tzinfo=timezone.utc), True)
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValidationError(
            f"Invalid {field}: {value}. Use ISO date format like YYYY-MM-DD.",
            field=field,
        ) from exc

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return DateBound(parsed, False)


def parse_lower_bound(field: str, value: str | None) -> datetime | None:
    bound = parse_date_bound(field, value)
    return bound.value if bound else None


def parse_upper_bound(field: str, value: str | None) -> datetime | None:
    """Parse an upper bound, making a bare day inclusive."""
    bound = parse_date_bound(field, value)
    if bound is None:
        return None
    if bound.bare_day:
        return bound.value + _ONE_DAY
    return bound.value


def _check_range(
    lower_field: str,
    upper_field: str,
    lower: datetime | None,
    upper: datetime | None,
) -> None:
    if lower is not None and upper is not None and lower >= upper:
        raise ValidationError(
            f"{lower_field} must be earlier than or equal to {upper_field}",
            field=lower_field,
        )


def _axis_terms(
    axis: DateAxis,
    on: datetime | None,
    since: datetime | None,
    before: datetime | None,
) -> list[Term]:
    terms: list[Term] = []
    if on is not None:
        terms.append(DateTerm(axis, DateOp.SINCE, on))
        terms.append(DateTerm(axis, DateOp.BEFORE, on + _ONE_DAY))
    if since is not None:
        terms.append(DateTerm(axis, DateOp.SINCE, since))
    if before is not None:
        terms.append(DateTerm(axis, DateOp.BEFORE, before))
    return terms


def compile_criteria(criteria: AdvancedSearchCriteria) -> Predicate:
    """Compile advanced search criteria.

    Args:
        criteria: Filter record. Unset fields contribute no term.

    Returns:
        Predicate with one term per set dimension, in a fixed order.

    Raises:
        ValidationError: For contradictory read state, unparsable dates or
            inverted date ranges.
    """
    if criteria.seen is True and criteria.unseen is True:
        raise ValidationError("seen and unseen cannot both be true", field="seen")

    received_on = parse_lower_bound("date", criteria.date)
    received_since = parse_lower_bound("dateFrom", criteria.date_from)
    received_before = parse_upper_bound("dateTo", criteria.date_to)
    sent_on = parse_lower_bound("sentDate", criteria.sent_date)
    sent_since = parse_lower_bound("sentDateFrom", criteria.sent_date_from)
    sent_before = parse_upper_bound("sentDateTo", criteria.sent_date_to)

    _check_range("dateFrom", "dateTo", received_since, received_before)
    _check_range("sentDateFrom", "sentDateTo", sent_since, sent_before)

    terms: list[Term] = []
    for field, value in (
        ("text", criteria.keyword),
        ("from", criteria.sender),
        ("to", criteria.receiver),
        ("cc", criteria.cc),
        ("bcc", criteria.bcc),
        ("subject", criteria.subject),
        ("body", criteria.body),
    ):
        if value:
            terms.append(TextTerm(field, value))

    if criteria.seen is True:
        terms.append(FlagTerm(seen=True))
    if criteria.unseen is True:
        terms.append(FlagTerm(seen=False))
    if criteria.message_id:
        terms.append(HeaderTerm("Message-ID", criteria.message_id))

    terms.extend(_axis_terms(DateAxis.RECEIVED, received_on, received_since, received_before))
    terms.extend(_axis_terms(DateAxis.SENT, sent_on, sent_since, sent_before))
    return Predicate(tuple(terms))


def compile_basic_criteria(criteria: BasicSearchCriteria) -> Predicate:
    """Compile the simple search filter.

    ``before`` is passed through as given (no inclusive-day adjustment) and
    no range check is made.
    """
    terms: list[Term] = []
    for field, value in (
        ("from", criteria.from_),
        ("to", criteria.to),
        ("subject", criteria.subject),
        ("body", criteria.body),
    ):
        if value:
            terms.append(TextTerm(field, value))

    since = parse_lower_bound("since", criteria.since)
    before = parse_lower_bound("before", criteria.before)
    if since is not None:
        terms.append(DateTerm(DateAxis.RECEIVED, DateOp.SINCE, since))
    if before is not None:
        terms.append(DateTerm(DateAxis.RECEIVED, DateOp.BEFORE, before))
    if criteria.unseen:
        terms.append(FlagTerm(seen=False))
    return Predicate(tuple(terms))


DEFAULT_FOLDER_QUERY_FIELDS: tuple[FolderQueryField, ...] = (
    FolderQueryField.SUBJECT,
    FolderQueryField.BODY,
    FolderQueryField.FROM,
    FolderQueryField.TO,
)


def normalize_folder_query_fields(
    fields: Iterable[FolderQueryField | str] | None,
) -> list[FolderQueryField]:
    """Keep known fields, drop duplicates and unknown names, keep order."""
    if fields is None:
        return list(DEFAULT_FOLDER_QUERY_FIELDS)
    result: list[FolderQueryField] = []
    for raw in fields:
        try:
            field = FolderQueryField(raw)
        except ValueError:
            continue
        if field not in result:
            result.append(field)
    return result


def compile_folder_query(
    query: str,
    fields: Iterable[FolderQueryField | str] | None = None,
) -> list[Predicate]:
    """Build one single-term predicate per field for a free-text query.

    The results of these predicates are unioned by the caller (OR across
    fields). An empty query or field list yields no predicates.
    """
    text = query.strip()
    if not text:
        return []
    return [Predicate((TextTerm(field.value, text),)) for field in normalize_folder_query_fields(fields)]


def uid_range_after(boundary: int, sort: SortDirection) -> UidRangeTerm:
    """UID range strictly past a cursor boundary, used to narrow list searches."""
    if sort is SortDirection.ASCENDING:
        return UidRangeTerm(boundary + 1, None)
    return UidRangeTerm(1, max(1, boundary - 1))
