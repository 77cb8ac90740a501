"""Unit tests for Gmail client."""

from unittest.mock import MagicMock

import pytest

from mail_retention.exceptions import (
    AuthenticationError,
    ConfigurationError,
    GmailAPIError,
    NoLabelsFound,
)
from mail_retention.gmail.client import GmailClient
from mail_retention.models import Action


class _HttpError(Exception):
    """Stand-in for googleapiclient.errors.HttpError carrying a status."""

    def __init__(self, status: int) -> None:
        super().__init__(f"HTTP {status}")
        self.resp = MagicMock(status=status)


@pytest.fixture
def service() -> MagicMock:
    return MagicMock()


@pytest.fixture
def client(mock_settings, service) -> GmailClient:
    mock_settings.retry_delay = 0.0
    return GmailClient(settings=mock_settings, service=service)


class TestGmailClientAuthentication:
    """Test suite for GmailClient authentication."""

    def test_gmail_client_initialization(self) -> None:
        """Test that Gmail client is properly initialized."""
        client = GmailClient()

        assert client.settings is not None
        assert client._service is None

    @pytest.mark.asyncio
    async def test_authenticate_missing_credentials_raises(self, tmp_path, mock_settings) -> None:
        """Test that authenticate fails fast when credentials.json is missing."""
        mock_settings.gmail_credentials_path = tmp_path / "missing.json"
        client = GmailClient(settings=mock_settings)

        with pytest.raises(ConfigurationError):
            await client.authenticate()

    @pytest.mark.asyncio
    async def test_list_labels_requires_authentication(self, mock_settings) -> None:
        """Test that list_labels requires authenticate() first."""
        client = GmailClient(settings=mock_settings)

        with pytest.raises(AuthenticationError):
            await client.list_labels()

    @pytest.mark.asyncio
    async def test_batch_dispose_requires_authentication(self, mock_settings) -> None:
        """Test that batch_dispose requires authenticate() first."""
        client = GmailClient(settings=mock_settings)

        with pytest.raises(AuthenticationError):
            await client.batch_dispose(Action.TRASH, ["msg123"])

    @pytest.mark.asyncio
    async def test_prebuilt_service_skips_oauth(self, client: GmailClient) -> None:
        """Test that an injected service counts as authenticated."""
        await client.authenticate()

        assert client._service is not None


class TestGmailClientCalls:
    """Test suite for Gmail API request shaping."""

    @pytest.mark.asyncio
    async def test_list_labels(self, client: GmailClient, service: MagicMock) -> None:
        """Test mapping of the labels.list response."""
        service.users().labels().list().execute.return_value = {
            "labels": [{"id": "INBOX", "name": "INBOX"}, {"id": "Label_1", "name": "news"}]
        }

        labels = await client.list_labels()

        assert [(label.name, label.id) for label in labels] == [
            ("INBOX", "INBOX"),
            ("news", "Label_1"),
        ]

    @pytest.mark.asyncio
    async def test_list_labels_empty_mailbox(self, client: GmailClient, service: MagicMock) -> None:
        """Test that an empty label list raises NoLabelsFound."""
        service.users().labels().list().execute.return_value = {}

        with pytest.raises(NoLabelsFound):
            await client.list_labels()

    @pytest.mark.asyncio
    async def test_search_messages_page(self, client: GmailClient, service: MagicMock) -> None:
        """Test that one page of ids and the next token are returned."""
        messages = service.users().messages()
        messages.list().execute.return_value = {
            "messages": [{"id": "a"}, {"id": "b"}],
            "nextPageToken": "tok",
        }

        page = await client.search_messages("label:news older_than:30d", None, 900)

        assert page.ids == ["a", "b"]
        assert page.next_page_token == "tok"
        messages.list.assert_called_with(
            userId="me", q="label:news older_than:30d", maxResults=500, pageToken=None
        )

    @pytest.mark.asyncio
    async def test_batch_trash_uses_batch_modify(
        self, client: GmailClient, service: MagicMock
    ) -> None:
        """Test that trash adds the TRASH system label."""
        messages = service.users().messages()

        result = await client.batch_dispose(Action.TRASH, ["a", "b"])

        messages.batchModify.assert_called_with(
            userId="me", body={"ids": ["a", "b"], "addLabelIds": ["TRASH"]}
        )
        messages.batchDelete.assert_not_called()
        assert result.succeeded == ["a", "b"]
        assert result.failed == {}

    @pytest.mark.asyncio
    async def test_batch_delete_uses_batch_delete(
        self, client: GmailClient, service: MagicMock
    ) -> None:
        """Test that delete removes messages permanently."""
        messages = service.users().messages()

        await client.batch_dispose(Action.DELETE, ["a"])

        messages.batchDelete.assert_called_with(userId="me", body={"ids": ["a"]})
        messages.batchModify.assert_not_called()

    @pytest.mark.asyncio
    async def test_batch_over_limit_rejected(self, client: GmailClient) -> None:
        """Test that more than 1000 ids never reach the API."""
        with pytest.raises(ValueError):
            await client.batch_dispose(Action.TRASH, [str(i) for i in range(1001)])

    @pytest.mark.asyncio
    async def test_api_errors_are_wrapped(self, client: GmailClient, service: MagicMock) -> None:
        """Test that permanent API failures surface as GmailAPIError."""
        service.users().messages().batchDelete().execute.side_effect = _HttpError(403)

        with pytest.raises(GmailAPIError):
            await client.batch_dispose(Action.DELETE, ["a"])

    @pytest.mark.asyncio
    async def test_transient_errors_are_retried(
        self, client: GmailClient, service: MagicMock
    ) -> None:
        """Test that a rate-limited call succeeds on retry."""
        execute = service.users().messages().batchModify().execute
        execute.side_effect = [_HttpError(429), {}]

        await client.batch_dispose(Action.TRASH, ["a"])

        assert execute.call_count == 2

    @pytest.mark.asyncio
    async def test_ensure_label_reuses_existing(
        self, client: GmailClient, service: MagicMock
    ) -> None:
        """Test that an existing label is matched case-insensitively."""
        labels = service.users().labels()
        labels.list().execute.return_value = {
            "labels": [{"id": "Label_7", "name": "Mail-Retention/Rule-1"}]
        }

        label_id = await client.ensure_label("mail-retention/rule-1")

        assert label_id == "Label_7"
        labels.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_ensure_label_creates_hidden_label(
        self, client: GmailClient, service: MagicMock
    ) -> None:
        """Test creation of a missing marker label."""
        labels = service.users().labels()
        labels.list().execute.return_value = {"labels": [{"id": "INBOX", "name": "INBOX"}]}
        labels.create().execute.return_value = {"id": "Label_9"}

        label_id = await client.ensure_label("mail-retention/rule-1")

        assert label_id == "Label_9"
        labels.create.assert_called_with(
            userId="me",
            body={
                "name": "mail-retention/rule-1",
                "labelListVisibility": "labelHide",
                "messageListVisibility": "hide",
            },
        )

    @pytest.mark.asyncio
    async def test_apply_label(self, client: GmailClient, service: MagicMock) -> None:
        """Test that apply_label adds the label id through batchModify."""
        messages = service.users().messages()

        await client.apply_label("Label_9", ["a", "b"])

        messages.batchModify.assert_called_with(
            userId="me", body={"ids": ["a", "b"], "addLabelIds": ["Label_9"]}
        )
