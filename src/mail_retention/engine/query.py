"""Translation of retention policies into provider search predicates."""

from __future__ import annotations

import re
from collections.abc import Iterable

from mail_retention.exceptions import ValidationError
from mail_retention.models import DAYS_PER_MONTH, DAYS_PER_YEAR, RetentionPolicy

_BARE_LABEL = re.compile(r"^[A-Za-z0-9_./-]+$")


def label_term(label: str) -> str:
    """Quote a label for use in a ``label:`` clause when needed."""
    if _BARE_LABEL.match(label):
        return label
    escaped = label.replace('"', '\\"')
    return f'"{escaped}"'


def build_query(
    label: str,
    policy: RetentionPolicy,
    exclusion_label: str | None = None,
    *,
    days_per_month: int = DAYS_PER_MONTH,
    days_per_year: int = DAYS_PER_YEAR,
) -> str:
    """Build the search predicate for one rule label.

    Args:
        label: Label the messages must carry.
        policy: Retention policy providing the age threshold.
        exclusion_label: Marker label of messages already processed; such
            messages are excluded.
        days_per_month: Days counted per month of retention age.
        days_per_year: Days counted per year of retention age.

    Returns:
        str: Provider search predicate, e.g.
        ``label:news older_than:365d -label:mail-retention/rule-1``.

    Raises:
        ValidationError: If ``label`` or ``exclusion_label`` is blank.
    """

    if not isinstance(label, str) or not label.strip():
        raise ValidationError("Cannot build a query for an empty label")

    clauses = [
        f"label:{label_term(label.strip())}",
        policy.age.render(days_per_month, days_per_year),
    ]

    if exclusion_label is not None:
        if not exclusion_label.strip():
            raise ValidationError("Exclusion label must not be empty")
        clauses.append(f"-label:{label_term(exclusion_label.strip())}")

    return " ".join(clauses)


def build_search(labels: Iterable[str] = (), query: str | None = None) -> str:
    """Build an ad-hoc search from label filters and a raw provider query.

    Every label becomes a ``label:`` clause; ``query`` is appended verbatim.
    Returns an empty string when there is nothing to filter on.

    Raises:
        ValidationError: If a label filter is blank.
    """

    clauses = []
    for label in labels:
        if not isinstance(label, str) or not label.strip():
            raise ValidationError("Label filters must not be empty")
        clauses.append(f"label:{label_term(label.strip())}")
    if query is not None and query.strip():
        clauses.append(query.strip())
    return " ".join(clauses)
