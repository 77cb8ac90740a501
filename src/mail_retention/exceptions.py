"""Custom exceptions for mail-retention."""

from __future__ import annotations


class MailRetentionError(Exception):
    """Base exception for all mail-retention errors."""


class ConfigurationError(MailRetentionError):
    """Exception raised for configuration related errors.

    Configuration errors are fatal to the operation that raised them and are
    surfaced before any provider call is made.
    """


class ValidationError(MailRetentionError):
    """Exception raised for data validation errors."""


class AuthenticationError(MailRetentionError):
    """Exception raised for authentication failures."""


class InvalidMessageAge(ConfigurationError):
    """A retention age token or value could not be accepted.

    Attributes:
        token: The rejected input, when parsing from text.
        reason: One of ``"malformed"``, ``"unit"`` or ``"count"``.
        unit: The unrecognised unit, when ``reason == "unit"``.
        count: The rejected count, when it was numeric.
    """

    def __init__(
        self,
        message: str,
        *,
        token: str | None = None,
        reason: str = "malformed",
        unit: str | None = None,
        count: int | None = None,
    ) -> None:
        super().__init__(message)
        self.token = token
        self.reason = reason
        self.unit = unit
        self.count = count


class RuleNotFound(ConfigurationError):
    """No rule with the requested id exists in the rule set."""

    def __init__(self, rule_id: int) -> None:
        super().__init__(f"Rule #{rule_id} not found")
        self.rule_id = rule_id


class DuplicateRule(ConfigurationError):
    """A rule with the same id is already present in the rule set."""

    def __init__(self, rule_id: int) -> None:
        super().__init__(f"Rule #{rule_id} already exists")
        self.rule_id = rule_id


class LabelNotInRule(ConfigurationError):
    """The label is not attached to the rule (or to any rule)."""

    def __init__(self, label: str, rule_id: int | None = None) -> None:
        if rule_id is None:
            message = f"No rule applies to label `{label}`"
        else:
            message = f"Label `{label}` is not attached to rule #{rule_id}"
        super().__init__(message)
        self.label = label
        self.rule_id = rule_id


class ProviderError(MailRetentionError):
    """Exception raised for mail provider (transport or API) errors."""


class GmailAPIError(ProviderError):
    """Exception raised for Gmail API related errors."""


class NoLabelsFound(ProviderError):
    """The mailbox reported no labels at all."""

    def __init__(self) -> None:
        super().__init__("No labels found in mailbox")


class LabelNotFoundInMailbox(ProviderError):
    """A rule targets a label the mailbox does not have."""

    def __init__(self, label: str) -> None:
        super().__init__(f"Label `{label}` not found in mailbox")
        self.label = label


class EnumerationError(ProviderError):
    """Paginated search aborted part-way through.

    Attributes:
        predicate: The search predicate being enumerated.
        page_index: Zero-based index of the page that failed.
        partial_ids: Identifiers gathered before the failure.
    """

    def __init__(self, predicate: str, page_index: int, partial_ids: list[str]) -> None:
        super().__init__(
            f"Enumeration of `{predicate}` failed on page {page_index} "
            f"after {len(partial_ids)} messages"
        )
        self.predicate = predicate
        self.page_index = page_index
        self.partial_ids = partial_ids


class ChunkDisposalError(ProviderError):
    """A batch disposal call failed for a whole chunk."""

    def __init__(
        self,
        *,
        rule_id: int | None,
        label: str | None,
        chunk_index: int,
        count: int,
        cause: BaseException,
    ) -> None:
        scope = "Ad-hoc disposal" if rule_id is None else f"Rule #{rule_id} label `{label}`"
        super().__init__(f"{scope} chunk {chunk_index} ({count} messages) failed: {cause}")
        self.rule_id = rule_id
        self.label = label
        self.chunk_index = chunk_index
        self.count = count
        self.cause = cause
