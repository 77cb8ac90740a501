"""mail-retention - rule-driven cleanup of old mail.

This package evaluates declarative retention rules (label + age + action)
against a mailbox and trashes or deletes the matching messages in provider
sized batches, defaulting to a dry run.
"""

__version__ = "0.1.0"

from mail_retention.config import Settings, get_settings

__all__ = ["Settings", "get_settings", "__version__"]
