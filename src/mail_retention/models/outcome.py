"""Result models produced by a retention run."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from mail_retention.models.rule import Action


class ExecutionMode(str, Enum):
    """Whether a run previews or performs disposal."""

    DRY_RUN = "dry_run"
    EXECUTE = "execute"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BatchOutcome(BaseModel):
    """Result of disposing (or previewing) one chunk of message ids."""

    rule_id: Optional[int] = Field(description="Rule that selected the messages, if any")
    label: Optional[str] = Field(description="Label the messages were found under, if any")
    action: Action = Field(description="Disposal action of the rule")
    chunk_index: int = Field(ge=0, description="Zero-based chunk position within the label")
    dry_run: bool = Field(description="Whether the chunk was only previewed")
    attempted: list[str] = Field(default_factory=list, description="Ids in the chunk")
    succeeded: list[str] = Field(default_factory=list, description="Ids disposed successfully")
    failed: dict[str, str] = Field(
        default_factory=dict,
        description="Ids that failed, mapped to the error detail",
    )
    marker_label: Optional[str] = Field(
        default=None,
        description="Marker label applied to the succeeded ids",
    )
    marker_error: Optional[str] = Field(
        default=None,
        description="Error raised while applying the marker label, if any",
    )

    @property
    def count(self) -> int:
        return len(self.attempted)

    @property
    def ok(self) -> bool:
        return not self.failed


class PairReport(BaseModel):
    """Everything that happened for one rule and one of its labels."""

    rule_id: int
    label: str
    action: Action
    predicate: Optional[str] = Field(default=None, description="Search predicate used")
    message_ids: list[str] = Field(
        default_factory=list,
        description="Ids enumerated for the predicate (partial when enumeration failed)",
    )
    enumeration_complete: bool = Field(default=True)
    chunks: list[BatchOutcome] = Field(default_factory=list)
    error: Optional[str] = Field(default=None, description="Error that stopped this pair")
    error_kind: Optional[str] = Field(default=None, description="Exception class of the error")
    cancelled: bool = Field(default=False)

    @property
    def attempted_count(self) -> int:
        return sum(c.count for c in self.chunks)

    @property
    def succeeded_count(self) -> int:
        return sum(len(c.succeeded) for c in self.chunks)

    @property
    def failed_count(self) -> int:
        return sum(len(c.failed) for c in self.chunks)

    @property
    def ok(self) -> bool:
        return self.error is None and all(c.ok for c in self.chunks)


class RunReport(BaseModel):
    """Ordered record of a whole retention run."""

    mode: ExecutionMode
    started_at: datetime = Field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None
    pairs: list[PairReport] = Field(default_factory=list)
    cancelled: bool = Field(default=False)

    @property
    def outcomes(self) -> list[BatchOutcome]:
        return [chunk for pair in self.pairs for chunk in pair.chunks]

    @property
    def ok(self) -> bool:
        return not self.cancelled and all(p.ok for p in self.pairs)

    @property
    def succeeded_count(self) -> int:
        return sum(p.succeeded_count for p in self.pairs)

    @property
    def failed_count(self) -> int:
        return sum(p.failed_count for p in self.pairs)
