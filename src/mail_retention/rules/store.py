"""JSON persistence for rule sets.

The file format stores each rule's age as its compact token (``"y:1"``) so the
file stays easy to edit by hand.
"""

from __future__ import annotations

import json
from pathlib import Path

import structlog
from pydantic import BaseModel, Field, PositiveInt
from pydantic import ValidationError as PydanticValidationError

from mail_retention.exceptions import ConfigurationError
from mail_retention.models import Action, RetentionPolicy, Rule
from mail_retention.rules.rule_set import RuleSet

logger = structlog.get_logger()


_FILE_VERSION = 1


class RuleRecord(BaseModel):
    """Serialized form of a single rule."""

    id: PositiveInt = Field(description="Rule id")
    retention: str = Field(description="Age token, e.g. y:1")
    generate_label: bool = Field(default=True, description="Mark processed messages")
    labels: list[str] = Field(default_factory=list, description="Target labels")
    action: Action = Field(default=Action.TRASH, description="Disposal action")

    @classmethod
    def from_rule(cls, rule: Rule) -> RuleRecord:
        return cls(
            id=rule.id,
            retention=rule.retention.age.to_token(),
            generate_label=rule.retention.generate_label,
            labels=list(rule.labels),
            action=rule.action,
        )

    def to_rule(self) -> Rule:
        return Rule(
            id=self.id,
            retention=RetentionPolicy.parse(self.retention, self.generate_label),
            labels=tuple(self.labels),
            action=self.action,
        )


class RuleFile(BaseModel):
    """Top-level document of the rules file."""

    version: int = Field(default=_FILE_VERSION)
    rules: list[RuleRecord] = Field(default_factory=list)


def load_rule_set(path: Path) -> RuleSet:
    """Load a rule set from ``path``.

    A missing file yields an empty rule set.

    Raises:
        ConfigurationError: If the file cannot be parsed or has an unsupported
            version.
        InvalidMessageAge: If a rule carries an invalid age token.
    """

    if not path.exists():
        logger.info("rules_file_missing", path=str(path))
        return RuleSet()

    try:
        document = RuleFile.model_validate_json(path.read_text(encoding="utf-8"))
    except PydanticValidationError as exc:
        raise ConfigurationError(f"Invalid rules file {path}: {exc}") from exc

    if document.version != _FILE_VERSION:
        raise ConfigurationError(
            f"Unsupported rules file version {document.version}; expected {_FILE_VERSION}"
        )

    rule_set = RuleSet(record.to_rule() for record in document.rules)
    logger.info("rules_loaded", path=str(path), rule_count=len(rule_set))
    return rule_set


def save_rule_set(rule_set: RuleSet, path: Path) -> None:
    """Write ``rule_set`` to ``path`` in ascending id order."""

    document = RuleFile(rules=[RuleRecord.from_rule(rule) for rule in rule_set])
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(document.model_dump(mode="json"), indent=2) + "\n",
        encoding="utf-8",
    )
    logger.info("rules_saved", path=str(path), rule_count=len(rule_set))
