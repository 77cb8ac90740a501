"""Retention rules: what to dispose of, when, and how."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from enum import Enum

from mail_retention.exceptions import ValidationError
from mail_retention.models.message_age import MessageAge


class Action(str, Enum):
    """Disposal action applied to matching messages."""

    TRASH = "trash"
    DELETE = "delete"

    @classmethod
    def parse(cls, value: str) -> Action:
        """Parse an action name, ignoring case and surrounding whitespace.

        Raises:
            ValidationError: If the value is neither ``trash`` nor ``delete``.
        """
        normalized = value.strip().lower() if isinstance(value, str) else ""
        for action in cls:
            if action.value == normalized:
                return action
        raise ValidationError(f"Invalid action `{value}`; expected trash or delete")

    @property
    def is_reversible(self) -> bool:
        # Trashed messages stay recoverable until the provider purges them.
        return self is Action.TRASH

    @property
    def verb_phrase(self) -> str:
        if self is Action.TRASH:
            return "move the message to trash"
        return "delete the message"


@dataclass(frozen=True)
class RetentionPolicy:
    """Retention age plus whether processed messages get a marker label."""

    age: MessageAge
    generate_label: bool = True

    @classmethod
    def parse(cls, token: str, generate_label: bool = True) -> RetentionPolicy:
        return cls(MessageAge.parse(token), generate_label)


def _normalize_labels(labels: Iterable[str]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for label in labels:
        if not isinstance(label, str) or not label.strip():
            raise ValidationError(f"Label names must be non-empty strings, got {label!r}")
        seen.setdefault(label.strip(), None)
    return tuple(seen)


@dataclass(frozen=True)
class Rule:
    """A retention policy bound to labels and a disposal action.

    Rules are immutable; ``RuleSet`` swaps in modified copies when a rule is
    reconfigured.
    """

    id: int
    retention: RetentionPolicy
    labels: tuple[str, ...] = field(default_factory=tuple)
    action: Action = Action.TRASH

    def __post_init__(self) -> None:
        if isinstance(self.id, bool) or not isinstance(self.id, int) or self.id <= 0:
            raise ValidationError(f"Rule id must be a positive integer, got {self.id!r}")
        if not isinstance(self.action, Action):
            object.__setattr__(self, "action", Action.parse(self.action))
        object.__setattr__(self, "labels", _normalize_labels(self.labels))

    def with_labels(self, labels: Iterable[str]) -> Rule:
        return replace(self, labels=tuple(labels))

    def with_action(self, action: Action) -> Rule:
        return replace(self, action=action)

    def describe(self) -> str:
        """Describe the rule in a single sentence."""
        age = self.retention.age.describe()
        if not self.labels:
            return f"Rule #{self.id} has no labels and matches nothing ({age}, {self.action.value})."
        return (
            f"Rule #{self.id} is active on `{', '.join(self.labels)}` to "
            f"{self.action.verb_phrase} if it is more than {age} old."
        )

    def __str__(self) -> str:
        return self.describe()
