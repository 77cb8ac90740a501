"""Gmail implementation of the mail provider capability."""

from .client import GMAIL_MAX_BATCH_SIZE, GmailClient

__all__ = ["GMAIL_MAX_BATCH_SIZE", "GmailClient"]
