"""Keyed collection of retention rules."""

from __future__ import annotations

from collections.abc import Iterable, Iterator

import structlog

from mail_retention.exceptions import DuplicateRule, LabelNotInRule, RuleNotFound
from mail_retention.models import Action, RetentionPolicy, Rule

logger = structlog.get_logger()


class RuleSet:
    """Rules keyed by id.

    Iteration is always by ascending id, independent of insertion order. Every
    mutator either succeeds completely or raises and leaves the set untouched.
    """

    def __init__(self, rules: Iterable[Rule] | None = None) -> None:
        self._rules: dict[int, Rule] = {}
        for rule in rules or ():
            self.insert(rule)

    def __iter__(self) -> Iterator[Rule]:
        return iter(self.rules())

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._rules

    def __repr__(self) -> str:
        return f"RuleSet(ids={self.ids()})"

    def ids(self) -> list[int]:
        return sorted(self._rules)

    def rules(self) -> list[Rule]:
        return [self._rules[rule_id] for rule_id in self.ids()]

    def get(self, rule_id: int) -> Rule:
        try:
            return self._rules[rule_id]
        except KeyError:
            raise RuleNotFound(rule_id) from None

    def next_id(self) -> int:
        return max(self._rules, default=0) + 1

    def insert(self, rule: Rule) -> Rule:
        if rule.id in self._rules:
            raise DuplicateRule(rule.id)
        self._rules[rule.id] = rule
        return rule

    def add_rule(
        self,
        retention: RetentionPolicy,
        labels: Iterable[str] = (),
        action: Action = Action.TRASH,
        rule_id: int | None = None,
    ) -> Rule:
        """Create and insert a rule.

        Args:
            retention: Age threshold and marker behaviour for the rule.
            labels: Labels the rule applies to.
            action: Disposal action.
            rule_id: Explicit id; the next free id is used when omitted.

        Returns:
            Rule: The inserted rule.
        """

        rule = Rule(
            id=self.next_id() if rule_id is None else rule_id,
            retention=retention,
            labels=tuple(labels),
            action=action,
        )
        for label in rule.labels:
            owner = self.rule_for_label(label)
            if owner is not None:
                logger.warning("label_already_has_rule", label=label, rule_id=owner.id)

        self.insert(rule)
        logger.info("rule_added", rule_id=rule.id, description=rule.describe())
        return rule

    def remove(self, rule_id: int) -> Rule:
        rule = self.get(rule_id)
        del self._rules[rule_id]
        logger.info("rule_removed", rule_id=rule_id)
        return rule

    def add_label(self, rule_id: int, label: str) -> Rule:
        rule = self.get(rule_id)
        updated = rule.with_labels((*rule.labels, label))
        self._rules[rule_id] = updated
        logger.info("rule_label_added", rule_id=rule_id, label=label)
        return updated

    def remove_label(self, rule_id: int, label: str) -> Rule:
        rule = self.get(rule_id)
        if label not in rule.labels:
            raise LabelNotInRule(label, rule_id)
        updated = rule.with_labels(existing for existing in rule.labels if existing != label)
        self._rules[rule_id] = updated
        logger.info("rule_label_removed", rule_id=rule_id, label=label)
        return updated

    def set_action(self, rule_id: int, action: Action) -> Rule:
        rule = self.get(rule_id)
        updated = rule.with_action(action)
        self._rules[rule_id] = updated
        logger.info("rule_action_set", rule_id=rule_id, action=action.value)
        return updated

    def labels(self) -> list[str]:
        """All labels targeted by any rule, in rule id order."""
        return [label for rule in self.rules() for label in rule.labels]

    def rule_for_label(self, label: str) -> Rule | None:
        for rule in self.rules():
            if label in rule.labels:
                return rule
        return None

    def remove_rule_by_label(self, label: str) -> Rule:
        rule = self.rule_for_label(label)
        if rule is None:
            raise LabelNotInRule(label)
        return self.remove(rule.id)
