"""Paginated enumeration of messages matching a search predicate."""

from __future__ import annotations

from collections.abc import AsyncIterator

import structlog

from mail_retention.engine.provider import MailProvider
from mail_retention.exceptions import EnumerationError

logger = structlog.get_logger()


class MessageEnumerator:
    """Walk the provider's search pages and collect unique message ids."""

    def __init__(self, provider: MailProvider, page_size: int = 500, max_pages: int = 0) -> None:
        """Create an enumerator.

        Args:
            provider: Mail provider exposing ``search_messages``.
            page_size: Ids requested per page; must be positive.
            max_pages: Stop after this many pages; 0 walks until the provider
                reports no further pages.
        """

        if page_size <= 0:
            raise ValueError(f"page_size must be positive, got {page_size}")
        if max_pages < 0:
            raise ValueError(f"max_pages must not be negative, got {max_pages}")

        self._provider = provider
        self.page_size = page_size
        self.max_pages = max_pages

    async def iter_ids(self, predicate: str) -> AsyncIterator[str]:
        """Yield matching ids in provider order, skipping repeats.

        Each call starts a fresh traversal from the first page.

        Raises:
            EnumerationError: If a page cannot be fetched, or the provider hands
                back a page token it already returned. ``partial_ids`` holds
                every id yielded before the failure.
        """

        seen: set[str] = set()
        seen_tokens: set[str] = set()
        gathered: list[str] = []
        page_token: str | None = None
        page_index = 0

        while True:
            if self.max_pages and page_index >= self.max_pages:
                logger.info("enumeration_page_limit_reached", predicate=predicate, pages=page_index)
                return

            try:
                page = await self._provider.search_messages(predicate, page_token, self.page_size)
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "enumeration_page_failed",
                    predicate=predicate,
                    page_index=page_index,
                    partial_count=len(gathered),
                    error=str(exc),
                )
                raise EnumerationError(predicate, page_index, list(gathered)) from exc

            new_on_page = 0
            for message_id in page.ids:
                if message_id in seen:
                    continue
                seen.add(message_id)
                gathered.append(message_id)
                new_on_page += 1
                yield message_id

            logger.debug(
                "enumeration_page_fetched",
                page_index=page_index,
                page_count=len(page.ids),
                new_count=new_on_page,
            )

            page_index += 1
            page_token = page.next_page_token
            if not page_token:
                return
            if page_token in seen_tokens:
                logger.warning(
                    "enumeration_page_token_repeated",
                    predicate=predicate,
                    page_index=page_index,
                    page_token=page_token,
                )
                raise EnumerationError(predicate, page_index, list(gathered))
            seen_tokens.add(page_token)

    async def collect(self, predicate: str) -> list[str]:
        """Return every matching id, deduplicated, in provider order."""

        ids = [message_id async for message_id in self.iter_ids(predicate)]
        logger.info("enumeration_completed", predicate=predicate, message_count=len(ids))
        return ids
