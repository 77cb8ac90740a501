"""Batched disposal of messages selected by retention rules.

A run walks the selected rules (all trash rules, then all delete rules, each
class by ascending id) and for every rule label:

1. builds the search predicate, excluding messages carrying the rule's marker
   label when the rule generates one;
2. enumerates every matching message id;
3. splits the ids into provider-sized chunks and previews or disposes of each
   chunk independently;
4. applies the marker label to the ids that were disposed successfully.

Failures are scoped as narrowly as possible: a missing label or a broken
enumeration fails only that rule label, a failed chunk fails only its ids, and
marker errors are recorded without failing anything.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterable, Sequence
from datetime import datetime, timezone

import structlog

from mail_retention.config import Settings
from mail_retention.engine.enumerator import MessageEnumerator
from mail_retention.engine.label_cache import LabelCache
from mail_retention.engine.provider import MailProvider
from mail_retention.engine.query import build_query
from mail_retention.exceptions import (
    ChunkDisposalError,
    EnumerationError,
    LabelNotFoundInMailbox,
    NoLabelsFound,
    ValidationError,
)
from mail_retention.models import (
    DAYS_PER_MONTH,
    DAYS_PER_YEAR,
    Action,
    BatchOutcome,
    ExecutionMode,
    PairReport,
    Rule,
    RunReport,
)
from mail_retention.rules import RuleSet

logger = structlog.get_logger()

DEFAULT_CHUNK_SIZE = 1000
DEFAULT_MARKER_PREFIX = "mail-retention"


def chunked(ids: Sequence[str], size: int) -> list[list[str]]:
    """Split ``ids`` into consecutive lists of at most ``size`` items."""
    return [list(ids[start : start + size]) for start in range(0, len(ids), size)]


class RetentionProcessor:
    """Runs retention rules against a mail provider."""

    def __init__(
        self,
        provider: MailProvider,
        *,
        label_cache: LabelCache | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        page_size: int = 500,
        max_pages: int = 0,
        max_concurrency: int = 4,
        marker_prefix: str = DEFAULT_MARKER_PREFIX,
        days_per_month: int = DAYS_PER_MONTH,
        days_per_year: int = DAYS_PER_YEAR,
    ) -> None:
        """Create a processor.

        Args:
            provider: Mail provider capability.
            label_cache: Label cache to use; a private one is created if None.
            chunk_size: Provider batch mutation limit.
            page_size: Ids requested per search page.
            max_pages: Search page limit per label (0 means unbounded).
            max_concurrency: Chunks of one rule label disposed concurrently.
            marker_prefix: Reserved label namespace for marker labels.
            days_per_month: Days per month when rendering ages.
            days_per_year: Days per year when rendering ages.
        """

        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        if max_concurrency <= 0:
            raise ValueError(f"max_concurrency must be positive, got {max_concurrency}")
        if not marker_prefix or not marker_prefix.strip("/ "):
            raise ValidationError("Marker label prefix must not be empty")

        self._provider = provider
        self._labels = label_cache if label_cache is not None else LabelCache()
        self.enumerator = MessageEnumerator(provider, page_size=page_size, max_pages=max_pages)
        self.chunk_size = chunk_size
        self.max_concurrency = max_concurrency
        self.marker_prefix = marker_prefix.strip("/ ")
        self.days_per_month = days_per_month
        self.days_per_year = days_per_year

    @classmethod
    def from_settings(
        cls,
        provider: MailProvider,
        settings: Settings,
        label_cache: LabelCache | None = None,
    ) -> RetentionProcessor:
        return cls(
            provider,
            label_cache=label_cache,
            chunk_size=settings.batch_size,
            page_size=settings.page_size,
            max_pages=settings.max_pages,
            max_concurrency=settings.max_concurrency,
            marker_prefix=settings.marker_prefix,
            days_per_month=settings.days_per_month,
            days_per_year=settings.days_per_year,
        )

    @property
    def label_cache(self) -> LabelCache:
        return self._labels

    @staticmethod
    def select_rules(
        rule_set: RuleSet,
        *,
        skip_trash: bool = False,
        skip_delete: bool = False,
        rule_ids: Iterable[int] | None = None,
    ) -> list[Rule]:
        """Pick the rules to run, in execution order.

        Trash rules run before delete rules; within each action, rules run by
        ascending id.

        Raises:
            RuleNotFound: If ``rule_ids`` names a rule that does not exist.
        """

        if rule_ids is None:
            candidates = rule_set.rules()
        else:
            candidates = [rule_set.get(rule_id) for rule_id in sorted(set(rule_ids))]

        if skip_trash:
            candidates = [rule for rule in candidates if rule.action is not Action.TRASH]
        if skip_delete:
            candidates = [rule for rule in candidates if rule.action is not Action.DELETE]

        trash = [rule for rule in candidates if rule.action is Action.TRASH]
        delete = [rule for rule in candidates if rule.action is Action.DELETE]
        return trash + delete

    def marker_label(self, rule: Rule) -> str:
        return f"{self.marker_prefix}/rule-{rule.id}"

    def is_reserved_label(self, label: str) -> bool:
        folded = label.strip().casefold()
        prefix = self.marker_prefix.casefold()
        return folded == prefix or folded.startswith(prefix + "/")

    @staticmethod
    def uses_marker(rule: Rule) -> bool:
        """Whether disposed messages of ``rule`` are tagged with its marker label.

        Permanently deleted messages cannot carry a label, so only reversible
        actions are marked.
        """
        return rule.retention.generate_label and rule.action.is_reversible

    def exclusion_label(self, rule: Rule) -> str | None:
        """Marker label to exclude, if the rule uses one and it already exists."""
        if not self.uses_marker(rule):
            return None
        marker = self.marker_label(rule)
        return marker if marker in self._labels else None

    def query_for(self, rule: Rule, label: str) -> str:
        return build_query(
            label,
            rule.retention,
            self.exclusion_label(rule),
            days_per_month=self.days_per_month,
            days_per_year=self.days_per_year,
        )

    async def dispose_messages(
        self,
        action: Action,
        ids: Sequence[str],
        mode: ExecutionMode = ExecutionMode.DRY_RUN,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> list[BatchOutcome]:
        """Dispose of an explicit list of ids outside any rule.

        Chunking, concurrency, dry-run and failure handling are the same as for
        a rule run; no marker label is applied. Outcomes carry no rule id or
        label. Chunks skipped because of cancellation are left out.
        """

        chunks = chunked(list(dict.fromkeys(ids)), self.chunk_size)
        logger.info(
            "ad_hoc_disposal_started",
            mode=mode.value,
            action=action.value,
            message_count=sum(len(c) for c in chunks),
            chunk_count=len(chunks),
        )
        outcomes = await self._dispose_chunks(None, None, action, chunks, mode, cancel_event)
        return [outcome for outcome in outcomes if outcome is not None]

    async def run(
        self,
        rule_set: RuleSet,
        mode: ExecutionMode = ExecutionMode.DRY_RUN,
        *,
        skip_trash: bool = False,
        skip_delete: bool = False,
        rule_ids: Iterable[int] | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> RunReport:
        """Run the rules and collect every outcome.

        Args:
            rule_set: Rules to evaluate; not modified.
            mode: Dry run (default) or execute.
            skip_trash: Leave out every trash rule.
            skip_delete: Leave out every delete rule.
            rule_ids: Only run these rules.
            cancel_event: Set to stop the run at the next chunk boundary.

        Returns:
            RunReport: Per rule label reports in execution order.

        Raises:
            RuleNotFound: If ``rule_ids`` names an unknown rule.
        """

        report = RunReport(mode=mode)
        async for pair in self.iter_run(
            rule_set,
            mode,
            skip_trash=skip_trash,
            skip_delete=skip_delete,
            rule_ids=rule_ids,
            cancel_event=cancel_event,
        ):
            report.pairs.append(pair)

        selected = self.select_rules(
            rule_set,
            skip_trash=skip_trash,
            skip_delete=skip_delete,
            rule_ids=rule_ids,
        )
        planned = sum(len(rule.labels) for rule in selected)
        # A cancel arriving after the last chunk does not cut anything short.
        report.cancelled = len(report.pairs) < planned or any(p.cancelled for p in report.pairs)
        report.finished_at = datetime.now(timezone.utc)
        logger.info(
            "run_completed" if not report.cancelled else "run_aborted",
            mode=mode.value,
            pair_count=len(report.pairs),
            chunk_count=len(report.outcomes),
            succeeded=report.succeeded_count,
            failed=report.failed_count,
            cancelled=report.cancelled,
        )
        return report

    async def iter_run(
        self,
        rule_set: RuleSet,
        mode: ExecutionMode = ExecutionMode.DRY_RUN,
        *,
        skip_trash: bool = False,
        skip_delete: bool = False,
        rule_ids: Iterable[int] | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[PairReport]:
        """Yield one ``PairReport`` per rule label as soon as it completes."""

        selected = self.select_rules(
            rule_set,
            skip_trash=skip_trash,
            skip_delete=skip_delete,
            rule_ids=rule_ids,
        )
        logger.info(
            "run_started",
            mode=mode.value,
            rule_ids=[rule.id for rule in selected],
            skip_trash=skip_trash,
            skip_delete=skip_delete,
        )

        active = [rule for rule in selected if rule.labels]
        for rule in selected:
            if not rule.labels:
                logger.info("rule_skipped_no_labels", rule_id=rule.id)
        if not active:
            return

        labels_error = await self._refresh_labels()

        for rule in active:
            logger.info("rule_selected", rule_id=rule.id, action=rule.action.value)
            for label in rule.labels:
                if cancel_event is not None and cancel_event.is_set():
                    logger.warning("run_cancelled", rule_id=rule.id, label=label)
                    return
                pair = await self._process_pair(rule, label, mode, cancel_event, labels_error)
                yield pair
                if pair.cancelled:
                    return

    async def _refresh_labels(self) -> NoLabelsFound | None:
        try:
            labels = await self._provider.list_labels()
        except NoLabelsFound as exc:
            logger.warning("no_labels_found")
            return exc
        self._labels.update(labels)
        logger.debug("label_cache_refreshed", label_count=len(self._labels))
        return None

    async def _process_pair(
        self,
        rule: Rule,
        label: str,
        mode: ExecutionMode,
        cancel_event: asyncio.Event | None,
        labels_error: NoLabelsFound | None,
    ) -> PairReport:
        pair = PairReport(rule_id=rule.id, label=label, action=rule.action)
        log = logger.bind(rule_id=rule.id, label=label, action=rule.action.value)

        if labels_error is not None:
            return self._fail(pair, labels_error, log)
        if self.is_reserved_label(label):
            error = ValidationError(f"Label `{label}` is inside the reserved marker namespace")
            return self._fail(pair, error, log, kind="ReservedLabel")
        if label not in self._labels:
            return self._fail(pair, LabelNotFoundInMailbox(label), log)

        pair.predicate = self.query_for(rule, label)
        log.info("pair_enumerating", predicate=pair.predicate)
        try:
            pair.message_ids = await self.enumerator.collect(pair.predicate)
        except EnumerationError as exc:
            pair.message_ids = exc.partial_ids
            pair.enumeration_complete = False
            return self._fail(pair, exc, log)

        if not pair.message_ids:
            log.info("pair_no_matches")
            return pair

        chunks = chunked(pair.message_ids, self.chunk_size)
        log.info("pair_chunking", message_count=len(pair.message_ids), chunk_count=len(chunks))

        outcomes = await self._dispose_chunks(
            rule.id, label, rule.action, chunks, mode, cancel_event
        )
        pair.chunks = [outcome for outcome in outcomes if outcome is not None]
        pair.cancelled = len(pair.chunks) < len(chunks)

        if mode is ExecutionMode.EXECUTE and self.uses_marker(rule):
            await self._apply_marker(rule, pair.chunks, log)

        log.info(
            "pair_reported",
            attempted=pair.attempted_count,
            succeeded=pair.succeeded_count,
            failed=pair.failed_count,
            cancelled=pair.cancelled,
        )
        return pair

    @staticmethod
    def _fail(pair: PairReport, error: Exception, log, kind: str | None = None) -> PairReport:
        pair.error = str(error)
        pair.error_kind = kind or type(error).__name__
        log.warning("pair_failed", error_kind=pair.error_kind, error=pair.error)
        return pair

    async def _dispose_chunks(
        self,
        rule_id: int | None,
        label: str | None,
        action: Action,
        chunks: list[list[str]],
        mode: ExecutionMode,
        cancel_event: asyncio.Event | None,
    ) -> list[BatchOutcome | None]:
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def dispatch(index: int, chunk: list[str]) -> BatchOutcome | None:
            async with semaphore:
                if cancel_event is not None and cancel_event.is_set():
                    return None
                return await self._dispose_chunk(rule_id, label, action, index, chunk, mode)

        return list(await asyncio.gather(*(dispatch(i, c) for i, c in enumerate(chunks))))

    async def _dispose_chunk(
        self,
        rule_id: int | None,
        label: str | None,
        action: Action,
        index: int,
        chunk: list[str],
        mode: ExecutionMode,
    ) -> BatchOutcome:
        outcome = BatchOutcome(
            rule_id=rule_id,
            label=label,
            action=action,
            chunk_index=index,
            dry_run=mode is ExecutionMode.DRY_RUN,
            attempted=list(chunk),
        )

        if outcome.dry_run:
            logger.info(
                "chunk_would_dispose",
                rule_id=rule_id,
                label=label,
                chunk_index=index,
                action=action.value,
                count=len(chunk),
            )
            return outcome

        logger.info(
            "chunk_disposing",
            rule_id=rule_id,
            label=label,
            chunk_index=index,
            action=action.value,
            count=len(chunk),
        )
        try:
            result = await self._provider.batch_dispose(action, chunk)
        except Exception as exc:  # noqa: BLE001
            error = ChunkDisposalError(
                rule_id=rule_id,
                label=label,
                chunk_index=index,
                count=len(chunk),
                cause=exc,
            )
            logger.error("chunk_disposal_failed", error=str(error))
            outcome.failed = {message_id: str(error) for message_id in chunk}
            return outcome

        outcome.succeeded = list(result.succeeded)
        outcome.failed = dict(result.failed)
        reported = set(outcome.succeeded) | set(outcome.failed)
        for message_id in chunk:
            if message_id not in reported:
                outcome.failed[message_id] = "No result reported by provider"

        logger.info(
            "chunk_disposed",
            rule_id=rule_id,
            label=label,
            chunk_index=index,
            succeeded=len(outcome.succeeded),
            failed=len(outcome.failed),
        )
        return outcome

    async def _apply_marker(self, rule: Rule, outcomes: list[BatchOutcome], log) -> None:
        targets = [outcome for outcome in outcomes if outcome.succeeded]
        if not targets:
            return

        marker = self.marker_label(rule)
        try:
            label_id = await self._labels.ensure(marker, self._provider)
        except Exception as exc:  # noqa: BLE001
            log.warning("marker_label_unavailable", marker=marker, error=str(exc))
            for outcome in targets:
                outcome.marker_error = str(exc)
            return

        for outcome in targets:
            try:
                await self._provider.apply_label(label_id, outcome.succeeded)
            except Exception as exc:  # noqa: BLE001
                log.warning(
                    "marker_apply_failed",
                    marker=marker,
                    chunk_index=outcome.chunk_index,
                    error=str(exc),
                )
                outcome.marker_error = str(exc)
            else:
                outcome.marker_label = marker
