"""Retention rule collections and their persistence."""

from .rule_set import RuleSet
from .store import load_rule_set, save_rule_set

__all__ = ["RuleSet", "load_rule_set", "save_rule_set"]
