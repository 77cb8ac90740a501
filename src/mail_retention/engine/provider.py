"""Capability interface the engine needs from a mail provider."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from mail_retention.models import Action


@dataclass(frozen=True)
class LabelInfo:
    """A mailbox label."""

    name: str
    id: str


@dataclass(frozen=True)
class SearchPage:
    """One page of message search results."""

    ids: list[str]
    next_page_token: str | None = None


@dataclass
class DisposalResult:
    """Per-id result of a batch disposal call."""

    succeeded: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @classmethod
    def all_succeeded(cls, ids: Sequence[str]) -> DisposalResult:
        return cls(succeeded=list(ids))


@runtime_checkable
class MailProvider(Protocol):
    """Mail provider operations used by the retention engine.

    Implementations own authentication, transport and retry policy. Every
    method may raise ``ProviderError`` once retries are exhausted.
    """

    async def list_labels(self) -> list[LabelInfo]:
        """Return every label in the mailbox; raise ``NoLabelsFound`` if none."""
        ...

    async def search_messages(
        self,
        predicate: str,
        page_token: str | None,
        page_size: int,
    ) -> SearchPage:
        ...

    async def batch_dispose(self, action: Action, ids: Sequence[str]) -> DisposalResult:
        ...

    async def ensure_label(self, name: str) -> str:
        """Return the id of label ``name``, creating it when missing."""
        ...

    async def apply_label(self, label_id: str, ids: Sequence[str]) -> None:
        ...
