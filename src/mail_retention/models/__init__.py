"""Data models for mail-retention.

Retention rules are frozen dataclasses; run results are Pydantic models so
they can be dumped to JSON for reporting.
"""

from mail_retention.models.message_age import DAYS_PER_MONTH, DAYS_PER_YEAR, AgeUnit, MessageAge
from mail_retention.models.outcome import BatchOutcome, ExecutionMode, PairReport, RunReport
from mail_retention.models.rule import Action, RetentionPolicy, Rule

__all__ = [
    "DAYS_PER_MONTH",
    "DAYS_PER_YEAR",
    "Action",
    "AgeUnit",
    "BatchOutcome",
    "ExecutionMode",
    "MessageAge",
    "PairReport",
    "RetentionPolicy",
    "Rule",
    "RunReport",
]
