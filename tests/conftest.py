"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import re
from collections.abc import Sequence

import pytest

from mail_retention.engine.provider import DisposalResult, LabelInfo, SearchPage
from mail_retention.exceptions import NoLabelsFound
from mail_retention.models import Action

_LABEL_CLAUSE = re.compile(r'(-?)label:(?:"((?:[^"\\]|\\.)*)"|(\S+))')


class FakeProvider:
    """In-memory mailbox implementing the provider capability.

    Messages are ids mapped to label names. Search understands the
    ``label:`` / ``-label:`` clauses produced by ``build_query``; every message
    is treated as old enough.
    """

    def __init__(
        self,
        messages: dict[str, set[str]] | None = None,
        labels: Sequence[str] = (),
        hide_disposed: bool = True,
    ) -> None:
        self.messages: dict[str, set[str]] = {k: set(v) for k, v in (messages or {}).items()}
        self.labels: dict[str, str] = {}
        for name in labels:
            self._add_label(name)
        self.search_calls: list[tuple[str, str | None, int]] = []
        self.dispose_calls: list[tuple[Action, list[str]]] = []
        self.ensure_calls: list[str] = []
        self.apply_calls: list[tuple[str, list[str]]] = []
        self.fail_dispose_calls: set[int] = set()
        self.fail_search_pages: set[int] = set()
        self.fail_apply = False
        self.reject_ids: dict[str, str] = {}
        self.omit_ids: set[str] = set()
        self.disposed: dict[str, Action] = {}
        self.page_overrides: list[SearchPage] | None = None
        self.hide_disposed = hide_disposed

    def _add_label(self, name: str) -> str:
        label_id = f"Label_{len(self.labels) + 1}"
        self.labels[name] = label_id
        return label_id

    async def list_labels(self) -> list[LabelInfo]:
        if not self.labels:
            raise NoLabelsFound()
        return [LabelInfo(name=name, id=label_id) for name, label_id in self.labels.items()]

    def _matching(self, predicate: str) -> list[str]:
        required: list[str] = []
        excluded: list[str] = []
        for negated, quoted, bare in _LABEL_CLAUSE.findall(predicate):
            name = quoted.replace('\\"', '"') if quoted else bare
            (excluded if negated else required).append(name)
        return [
            message_id
            for message_id, names in self.messages.items()
            if not (self.hide_disposed and message_id in self.disposed)
            and all(name in names for name in required)
            and not any(name in names for name in excluded)
        ]

    async def search_messages(
        self,
        predicate: str,
        page_token: str | None,
        page_size: int,
    ) -> SearchPage:
        self.search_calls.append((predicate, page_token, page_size))
        page_index = int(page_token) if page_token else 0
        if page_index in self.fail_search_pages:
            raise RuntimeError(f"search page {page_index} unavailable")

        if self.page_overrides is not None:
            return self.page_overrides[page_index]

        ids = self._matching(predicate)
        start = page_index * page_size
        page = ids[start : start + page_size]
        next_token = str(page_index + 1) if start + page_size < len(ids) else None
        return SearchPage(ids=page, next_page_token=next_token)

    async def batch_dispose(self, action: Action, ids: Sequence[str]) -> DisposalResult:
        call_index = len(self.dispose_calls)
        self.dispose_calls.append((action, list(ids)))
        if call_index in self.fail_dispose_calls:
            raise RuntimeError("backend unavailable")
        result = DisposalResult()
        for message_id in ids:
            if message_id in self.reject_ids:
                result.failed[message_id] = self.reject_ids[message_id]
            elif message_id not in self.omit_ids:
                self.disposed[message_id] = action
                result.succeeded.append(message_id)
        return result

    async def ensure_label(self, name: str) -> str:
        self.ensure_calls.append(name)
        if name in self.labels:
            return self.labels[name]
        return self._add_label(name)

    async def apply_label(self, label_id: str, ids: Sequence[str]) -> None:
        self.apply_calls.append((label_id, list(ids)))
        if self.fail_apply:
            raise RuntimeError("label service unavailable")
        name = next(n for n, i in self.labels.items() if i == label_id)
        for message_id in ids:
            self.messages[message_id].add(name)

    @property
    def mutation_calls(self) -> int:
        return len(self.dispose_calls) + len(self.ensure_calls) + len(self.apply_calls)


@pytest.fixture
def mock_settings():
    """Provide mock settings for testing."""
    from mail_retention.config import Settings

    return Settings(
        log_level="DEBUG",
        debug=True,
        batch_size=1000,
        max_concurrency=2,
    )


@pytest.fixture
def fake_provider() -> FakeProvider:
    """Provide a small mailbox with two user labels."""
    return FakeProvider(
        messages={
            "n1": {"newsletters"},
            "n2": {"newsletters"},
            "n3": {"newsletters"},
            "p1": {"promotions"},
            "p2": {"promotions"},
        },
        labels=["INBOX", "newsletters", "promotions"],
    )


@pytest.fixture
def provider_factory() -> type[FakeProvider]:
    """Provide the fake provider class for tests that build their own mailbox."""
    return FakeProvider
