"""Retention age thresholds.

A ``MessageAge`` is written in configuration as a compact token such as
``"y:1"``, ``"m:6"`` or ``"d:30"`` and rendered into a provider search fragment
with day granularity.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from functools import total_ordering

from mail_retention.exceptions import InvalidMessageAge

DAYS_PER_MONTH = 30
DAYS_PER_YEAR = 365

# ASCII digits, optionally negative; negatives fail the positive count check.
_COUNT = re.compile(r"-?[0-9]+")


class AgeUnit(str, Enum):
    """Unit of a retention age."""

    DAYS = "d"
    MONTHS = "m"
    YEARS = "y"

    @property
    def noun(self) -> str:
        return {"d": "day", "m": "month", "y": "year"}[self.value]


@total_ordering
@dataclass(frozen=True)
class MessageAge:
    """Minimum age a message must reach before a rule disposes of it.

    Ages compare only within the same unit; ``MessageAge.days(30)`` and
    ``MessageAge.months(1)`` are neither equal nor ordered.
    """

    unit: AgeUnit
    count: int

    def __post_init__(self) -> None:
        if not isinstance(self.unit, AgeUnit):
            try:
                object.__setattr__(self, "unit", AgeUnit(self.unit))
            except ValueError as exc:
                raise InvalidMessageAge(
                    f"Unrecognised age unit `{self.unit}`; expected d, m or y",
                    reason="unit",
                    unit=str(self.unit),
                ) from exc
        if isinstance(self.count, bool) or not isinstance(self.count, int) or self.count <= 0:
            raise InvalidMessageAge(
                f"Age count must be a positive integer, got {self.count!r}",
                reason="count",
                count=self.count if isinstance(self.count, int) else None,
            )

    @classmethod
    def days(cls, count: int) -> MessageAge:
        return cls(AgeUnit.DAYS, count)

    @classmethod
    def months(cls, count: int) -> MessageAge:
        return cls(AgeUnit.MONTHS, count)

    @classmethod
    def years(cls, count: int) -> MessageAge:
        return cls(AgeUnit.YEARS, count)

    @classmethod
    def parse(cls, token: str) -> MessageAge:
        """Parse a ``{d|m|y}:{count}`` token.

        Args:
            token: Compact age token, e.g. ``"y:1"``.

        Returns:
            MessageAge: The parsed age.

        Raises:
            InvalidMessageAge: If the token is malformed, names an unknown unit
                or carries a count that is not a positive integer. The
                ``reason`` attribute tells which.
        """

        if not isinstance(token, str):
            raise InvalidMessageAge(
                f"Age token must be a string, got {type(token).__name__}",
                reason="malformed",
            )

        raw = token.strip()
        unit_part, sep, count_part = raw.partition(":")
        if not sep or not unit_part or not count_part or ":" in count_part:
            raise InvalidMessageAge(
                f"Malformed age token `{token}`; expected <d|m|y>:<count>",
                token=token,
                reason="malformed",
            )

        unit_part = unit_part.strip().lower()
        try:
            unit = AgeUnit(unit_part)
        except ValueError as exc:
            raise InvalidMessageAge(
                f"Unrecognised age unit `{unit_part}` in `{token}`; expected d, m or y",
                token=token,
                reason="unit",
                unit=unit_part,
            ) from exc

        count_part = count_part.strip()
        if not _COUNT.fullmatch(count_part):
            raise InvalidMessageAge(
                f"Age count `{count_part}` in `{token}` is not a whole number",
                token=token,
                reason="count",
            )
        count = int(count_part)

        if count <= 0:
            raise InvalidMessageAge(
                f"Age count must be positive, got {count} in `{token}`",
                token=token,
                reason="count",
                count=count,
            )

        return cls(unit, count)

    def to_token(self) -> str:
        return f"{self.unit.value}:{self.count}"

    def __str__(self) -> str:
        return self.to_token()

    def to_days(
        self,
        days_per_month: int = DAYS_PER_MONTH,
        days_per_year: int = DAYS_PER_YEAR,
    ) -> int:
        if self.unit is AgeUnit.DAYS:
            return self.count
        if self.unit is AgeUnit.MONTHS:
            return self.count * days_per_month
        return self.count * days_per_year

    def render(
        self,
        days_per_month: int = DAYS_PER_MONTH,
        days_per_year: int = DAYS_PER_YEAR,
    ) -> str:
        """Render the provider "older than" search fragment."""
        return f"older_than:{self.to_days(days_per_month, days_per_year)}d"

    def describe(self) -> str:
        noun = self.unit.noun
        if self.count > 1:
            noun += "s"
        return f"{self.count} {noun}"

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, MessageAge):
            return NotImplemented
        if other.unit is not self.unit:
            raise TypeError(
                f"Cannot order ages with different units ({self.unit.value} vs {other.unit.value})"
            )
        return self.count < other.count
