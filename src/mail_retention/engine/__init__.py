"""Retention engine: query building, enumeration and batched disposal."""

from .enumerator import MessageEnumerator
from .label_cache import LabelCache
from .processor import RetentionProcessor, chunked
from .provider import DisposalResult, LabelInfo, MailProvider, SearchPage
from .query import build_query, build_search

__all__ = [
    "DisposalResult",
    "LabelCache",
    "LabelInfo",
    "MailProvider",
    "MessageEnumerator",
    "RetentionProcessor",
    "SearchPage",
    "build_query",
    "build_search",
    "chunked",
]
