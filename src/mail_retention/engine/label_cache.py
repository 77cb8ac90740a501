"""Label name to id cache shared by a run."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable

import structlog

from mail_retention.engine.provider import LabelInfo, MailProvider

logger = structlog.get_logger()


class LabelCache:
    """Case-insensitive map of label names to provider label ids.

    Lookups are plain dict reads. Creation goes through ``ensure``, which holds
    a lock so concurrent chunk tasks create a marker label at most once.
    """

    def __init__(self, labels: Iterable[LabelInfo] = ()) -> None:
        self._ids: dict[str, str] = {}
        self._lock = asyncio.Lock()
        self.update(labels)

    @staticmethod
    def _key(name: str) -> str:
        return name.strip().casefold()

    def update(self, labels: Iterable[LabelInfo]) -> None:
        for label in labels:
            self._ids[self._key(label.name)] = label.id

    def get(self, name: str) -> str | None:
        return self._ids.get(self._key(name))

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self._key(name) in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def clear(self) -> None:
        self._ids.clear()

    async def ensure(self, name: str, provider: MailProvider) -> str:
        """Return the id for ``name``, asking the provider to create it if unknown."""

        label_id = self.get(name)
        if label_id is not None:
            return label_id

        async with self._lock:
            label_id = self.get(name)
            if label_id is None:
                label_id = await provider.ensure_label(name)
                self._ids[self._key(name)] = label_id
                logger.info("label_cache_label_ensured", label=name, label_id=label_id)
        return label_id
