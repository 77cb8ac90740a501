"""Gmail API client implementation.

This module provides the Gmail implementation of the engine's mail provider
capability: label listing and creation, paginated message search, and batch
trash/delete/label mutations.

Notes:
    The Google API client is synchronous. This project wraps those calls using
    `asyncio.to_thread` so the rest of the codebase can remain async-friendly.
    Transient HTTP failures are retried inside the worker thread before an
    error is surfaced as `GmailAPIError`.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import structlog

from mail_retention.config import Settings
from mail_retention.engine.provider import DisposalResult, LabelInfo, SearchPage
from mail_retention.exceptions import (
    AuthenticationError,
    ConfigurationError,
    GmailAPIError,
    NoLabelsFound,
)
from mail_retention.models import Action
from mail_retention.utils import retry_on_failure

logger = structlog.get_logger()

GMAIL_MAX_BATCH_SIZE = 1000
GMAIL_MAX_PAGE_SIZE = 500
TRASH_LABEL_ID = "TRASH"


class GmailClient:
    """Gmail API client for retention operations.

    This client handles authentication and every mailbox call the retention
    engine makes.
    """

    def __init__(self, settings: Settings | None = None, service: Any | None = None) -> None:
        """Initialize Gmail client.

        Args:
            settings: Application settings. If None, uses default settings.
            service: Pre-built Gmail API service resource. Skips OAuth when given.
        """
        from mail_retention.config import get_settings

        self.settings = settings or get_settings()
        self._service: Any | None = service
        logger.info("gmail_client_initialized")

    @property
    def user_id(self) -> str:
        return self.settings.gmail_user_id

    async def authenticate(self) -> None:
        """Authenticate with Gmail API using OAuth2.

        Raises:
            ConfigurationError: If the credentials file is missing.
            AuthenticationError: If authentication fails.
        """

        if self._service is not None:
            return

        credentials_path = Path(self.settings.gmail_credentials_path)
        token_path = Path(self.settings.gmail_token_path)
        scope = self.settings.gmail_scope

        if not credentials_path.exists():
            raise ConfigurationError(
                f"Gmail credentials file not found: {credentials_path}. "
                "Download an OAuth client secret for a desktop app from the Google Cloud console."
            )

        logger.info(
            "gmail_authentication_started",
            credentials_path=str(credentials_path),
            token_path=str(token_path),
            scope=scope,
        )

        try:
            self._service = await asyncio.to_thread(
                self._build_service,
                credentials_path,
                token_path,
                scope,
            )
        except Exception as exc:  # noqa: BLE001
            logger.exception("gmail_authentication_failed", error=str(exc))
            raise AuthenticationError(str(exc)) from exc

        logger.info("gmail_authentication_completed")

    async def list_labels(self) -> list[LabelInfo]:
        """List every label in the mailbox.

        Raises:
            NoLabelsFound: If the mailbox has no labels.
            GmailAPIError: If the API request fails.
        """

        labels = await self._call("list_labels", self._list_labels_sync)
        if not labels:
            raise NoLabelsFound()
        logger.info("gmail_labels_listed", label_count=len(labels))
        return labels

    async def search_messages(
        self,
        predicate: str,
        page_token: str | None,
        page_size: int,
    ) -> SearchPage:
        """Fetch one page of message ids matching a Gmail search query.

        Raises:
            GmailAPIError: If the API request fails.
        """

        per_page = max(1, min(page_size, GMAIL_MAX_PAGE_SIZE))
        logger.debug("gmail_searching_messages", query=predicate, page_size=per_page)
        return await self._call(
            "search_messages",
            self._search_messages_sync,
            predicate,
            page_token,
            per_page,
        )

    async def batch_dispose(self, action: Action, ids: Sequence[str]) -> DisposalResult:
        """Trash or permanently delete up to 1000 messages in one call.

        Gmail batch calls are all-or-nothing: on success every id succeeded, on
        failure `GmailAPIError` is raised for the whole batch.
        """

        message_ids = list(ids)
        if len(message_ids) > GMAIL_MAX_BATCH_SIZE:
            raise ValueError(
                f"Gmail accepts at most {GMAIL_MAX_BATCH_SIZE} ids per batch, got {len(message_ids)}"
            )
        if not message_ids:
            return DisposalResult()

        logger.info("gmail_batch_dispose", action=action.value, count=len(message_ids))
        if action is Action.TRASH:
            await self._call("batch_trash", self._batch_modify_sync, message_ids, [TRASH_LABEL_ID])
        else:
            await self._call("batch_delete", self._batch_delete_sync, message_ids)
        return DisposalResult.all_succeeded(message_ids)

    async def ensure_label(self, name: str) -> str:
        """Return the id of label `name`, creating the label when missing."""

        return await self._call("ensure_label", self._ensure_label_sync, name)

    async def apply_label(self, label_id: str, ids: Sequence[str]) -> None:
        """Add `label_id` to every message in `ids`."""

        message_ids = list(ids)
        for start in range(0, len(message_ids), GMAIL_MAX_BATCH_SIZE):
            chunk = message_ids[start : start + GMAIL_MAX_BATCH_SIZE]
            await self._call("apply_label", self._batch_modify_sync, chunk, [label_id])
        logger.info("gmail_label_applied", label_id=label_id, count=len(message_ids))

    async def _call(self, operation: str, func: Any, *args: Any) -> Any:
        await self._ensure_authenticated()
        try:
            return await asyncio.to_thread(func, *args)
        except Exception as exc:  # noqa: BLE001
            logger.exception(f"gmail_{operation}_failed", error=str(exc))
            raise GmailAPIError(str(exc)) from exc

    async def _ensure_authenticated(self) -> None:
        if self._service is None:
            raise AuthenticationError(
                "Gmail client is not authenticated. Call await GmailClient.authenticate() first."
            )

    def _execute(self, request: Any) -> Any:
        run = retry_on_failure(
            max_retries=self.settings.max_retries,
            delay=self.settings.retry_delay,
        )(request.execute)
        return run()

    def _build_service(self, credentials_path: Path, token_path: Path, scope: str) -> Any:
        # Imported lazily to keep import-time cost low and tests fast.
        from google.auth.transport.requests import Request
        from google.oauth2.credentials import Credentials
        from google_auth_oauthlib.flow import InstalledAppFlow
        from googleapiclient.discovery import build

        creds: Credentials | None = None
        if token_path.exists():
            creds = Credentials.from_authorized_user_file(str(token_path), scopes=[scope])

        if creds is not None and creds.expired and creds.refresh_token:
            creds.refresh(Request())

        if creds is None or not creds.valid:
            flow = InstalledAppFlow.from_client_secrets_file(str(credentials_path), scopes=[scope])
            creds = flow.run_local_server(port=0)
            token_path.parent.mkdir(parents=True, exist_ok=True)
            token_path.write_text(creds.to_json(), encoding="utf-8")

        # cache_discovery=False prevents writing discovery docs to disk.
        return build("gmail", "v1", credentials=creds, cache_discovery=False)

    def _list_labels_sync(self) -> list[LabelInfo]:
        assert self._service is not None
        request = self._service.users().labels().list(userId=self.user_id)
        response = self._execute(request)
        labels: list[LabelInfo] = []
        for item in response.get("labels", []) or []:
            label_id = item.get("id")
            name = item.get("name")
            if label_id and name:
                labels.append(LabelInfo(name=str(name), id=str(label_id)))
        return labels

    def _search_messages_sync(
        self,
        predicate: str,
        page_token: str | None,
        page_size: int,
    ) -> SearchPage:
        assert self._service is not None
        request = (
            self._service.users()
            .messages()
            .list(userId=self.user_id, q=predicate, maxResults=page_size, pageToken=page_token)
        )
        response = self._execute(request)
        ids = [m["id"] for m in response.get("messages", []) or [] if m.get("id")]
        return SearchPage(ids=ids, next_page_token=response.get("nextPageToken") or None)

    def _batch_modify_sync(self, ids: list[str], add_label_ids: list[str]) -> None:
        assert self._service is not None
        body = {"ids": ids, "addLabelIds": add_label_ids}
        request = self._service.users().messages().batchModify(userId=self.user_id, body=body)
        self._execute(request)

    def _batch_delete_sync(self, ids: list[str]) -> None:
        assert self._service is not None
        request = self._service.users().messages().batchDelete(
            userId=self.user_id, body={"ids": ids}
        )
        self._execute(request)

    def _ensure_label_sync(self, name: str) -> str:
        wanted = name.casefold()
        for label in self._list_labels_sync():
            if label.name.casefold() == wanted:
                return label.id

        body = {
            "name": name,
            "labelListVisibility": "labelHide",
            "messageListVisibility": "hide",
        }
        request = self._service.users().labels().create(userId=self.user_id, body=body)
        try:
            created = self._execute(request)
        except Exception as exc:
            # 409: created concurrently by someone else; look it up again.
            if getattr(getattr(exc, "resp", None), "status", None) != 409:
                raise
            for label in self._list_labels_sync():
                if label.name.casefold() == wanted:
                    return label.id
            raise
        logger.info("gmail_label_created", label=name, label_id=created.get("id"))
        return str(created["id"])
