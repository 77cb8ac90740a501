"""Command-line interface for mail-retention.

This module provides the main entry point for the CLI application.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from collections.abc import Callable

import structlog

from mail_retention import __version__
from mail_retention.config import Settings, get_settings
from mail_retention.engine import LabelCache, MessageEnumerator, RetentionProcessor, build_search
from mail_retention.exceptions import (
    ConfigurationError,
    LabelNotFoundInMailbox,
    MailRetentionError,
    ValidationError,
)
from mail_retention.gmail.client import GmailClient
from mail_retention.models import Action, BatchOutcome, ExecutionMode, RetentionPolicy, RunReport
from mail_retention.rules import RuleSet, load_rule_set, save_rule_set

logger = structlog.get_logger()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mail-retention",
        description="Dispose of old mail according to retention rules",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("labels", help="List the labels in the mailbox")

    # Rule commands
    rules_parser = subparsers.add_parser("rules", help="Configure retention rules")
    rules_sub = rules_parser.add_subparsers(dest="rules_command", required=True)

    rules_sub.add_parser("list", help="List the configured rules")

    add_parser = rules_sub.add_parser("add", help="Add a rule")
    add_parser.add_argument(
        "--retention",
        required=True,
        help="Minimum message age as <d|m|y>:<count>, e.g. y:1",
    )
    add_parser.add_argument(
        "--label",
        action="append",
        default=[],
        help="Label the rule applies to (repeatable)",
    )
    add_parser.add_argument(
        "--delete",
        action="store_true",
        help="Permanently delete matching messages instead of trashing them",
    )
    add_parser.add_argument(
        "--no-marker",
        action="store_true",
        help="Do not tag processed messages with the rule's marker label",
    )

    rm_parser = rules_sub.add_parser("rm", help="Remove a rule")
    rm_parser.add_argument("id", type=int, help="Rule id")

    label_parser = rules_sub.add_parser("label", help="Add or remove a label on a rule")
    label_sub = label_parser.add_subparsers(dest="label_command", required=True)
    for name, help_text in (("add", "Add a label to a rule"), ("rm", "Remove a label from a rule")):
        sub = label_sub.add_parser(name, help=help_text)
        sub.add_argument("id", type=int, help="Rule id")
        sub.add_argument("label", help="Label name")

    action_parser = rules_sub.add_parser("action", help="Set the disposal action of a rule")
    action_parser.add_argument("id", type=int, help="Rule id")
    action_parser.add_argument("action", choices=[a.value for a in Action], help="Disposal action")

    # Run command
    run_parser = subparsers.add_parser("run", help="Run the retention rules")
    run_parser.add_argument(
        "--execute",
        action="store_true",
        help="Dispose of messages (default is a dry run that changes nothing)",
    )
    run_parser.add_argument("--skip-trash", action="store_true", help="Skip rules that trash")
    run_parser.add_argument("--skip-delete", action="store_true", help="Skip rules that delete")
    run_parser.add_argument(
        "--rule",
        dest="rule_ids",
        type=int,
        action="append",
        default=None,
        help="Only run this rule id (repeatable)",
    )
    run_parser.add_argument("--json", action="store_true", help="Print the run report as JSON")

    # Ad-hoc message commands
    messages_parser = subparsers.add_parser(
        "messages",
        help="List, trash or delete messages matching a search, without rules",
    )
    messages_parser.add_argument(
        "-l",
        "--label",
        dest="labels",
        action="append",
        default=[],
        help="Only messages with this label (repeatable)",
    )
    messages_parser.add_argument("-Q", "--query", help="Gmail search query, e.g. older_than:1y")
    messages_parser.add_argument(
        "-m",
        "--max-results",
        type=_positive_int,
        default=200,
        help="Message ids requested per search page (default: 200)",
    )
    messages_parser.add_argument(
        "-p",
        "--pages",
        type=_non_negative_int,
        default=1,
        help="Search pages to walk, 0 for all (default: 1)",
    )
    messages_sub = messages_parser.add_subparsers(dest="messages_command", required=True)
    messages_sub.add_parser("list", help="Print the matching message ids")
    for name, help_text in (
        ("trash", "Move the matching messages to trash"),
        ("delete", "Permanently delete the matching messages"),
    ):
        sub = messages_sub.add_parser(name, help=help_text)
        sub.add_argument(
            "--execute",
            action="store_true",
            help="Dispose of messages (default is a dry run that changes nothing)",
        )
        sub.add_argument("--json", action="store_true", help="Print the chunk outcomes as JSON")

    return parser


def _positive_int(value: str) -> int:
    number = int(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {value}")
    return number


def _non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"must not be negative, got {value}")
    return number


def _install_interrupt_handler(cancel_event: asyncio.Event) -> Callable[[], None]:
    """Turn Ctrl-C into a cooperative cancel of the running disposal.

    Chunks already in flight finish and are reported. Returns a callable that
    restores the default SIGINT behaviour.
    """

    loop = asyncio.get_running_loop()

    def on_interrupt() -> None:
        logger.warning("interrupt_received")
        print("Interrupted; finishing chunks in flight...", file=sys.stderr)
        cancel_event.set()

    try:
        loop.add_signal_handler(signal.SIGINT, on_interrupt)
    except (NotImplementedError, RuntimeError):
        # No loop signal handlers on Windows or outside the main thread.
        logger.debug("interrupt_handler_unavailable")
        return lambda: None
    return lambda: loop.remove_signal_handler(signal.SIGINT)


def _cmd_rules(args: argparse.Namespace, settings: Settings) -> int:
    rule_set = load_rule_set(settings.rules_path)

    if args.rules_command == "list":
        if not len(rule_set):
            print("No rules configured.")
        for rule in rule_set:
            print(rule.describe())
        return 0

    if args.rules_command == "add":
        retention = RetentionPolicy.parse(args.retention, generate_label=not args.no_marker)
        action = Action.DELETE if args.delete else Action.TRASH
        rule = rule_set.add_rule(retention, labels=args.label, action=action)
        print(f"Added: {rule.describe()}")
    elif args.rules_command == "rm":
        rule_set.remove(args.id)
        print(f"Rule #{args.id} has been removed.")
    elif args.rules_command == "label":
        if args.label_command == "add":
            rule_set.add_label(args.id, args.label)
            print(f"Label `{args.label}` added to rule #{args.id}")
        else:
            rule_set.remove_label(args.id, args.label)
            print(f"Label `{args.label}` removed from rule #{args.id}")
    elif args.rules_command == "action":
        action = Action.parse(args.action)
        rule_set.set_action(args.id, action)
        print(f"Action set to `{action.value}` on rule #{args.id}")

    save_rule_set(rule_set, settings.rules_path)
    return 0


async def _cmd_labels(settings: Settings) -> int:
    gmail = GmailClient(settings)
    await gmail.authenticate()
    for label in await gmail.list_labels():
        print(f"{label.name}\t{label.id}")
    return 0


def _print_report(report: RunReport) -> None:
    heading = "DRY RUN" if report.mode is ExecutionMode.DRY_RUN else "EXECUTE"
    print(f"[{heading}]")
    for pair in report.pairs:
        prefix = f"Rule #{pair.rule_id} `{pair.label}` ({pair.action.value})"
        if pair.error:
            print(f"{prefix}: {pair.error_kind}: {pair.error}")
            continue
        if report.mode is ExecutionMode.DRY_RUN:
            print(f"{prefix}: would {pair.action.value} {pair.attempted_count} messages")
        else:
            print(
                f"{prefix}: {pair.succeeded_count} succeeded, {pair.failed_count} failed "
                f"in {len(pair.chunks)} chunks"
            )
        for chunk in pair.chunks:
            if chunk.failed:
                print(f"  chunk {chunk.chunk_index}: {len(chunk.failed)} failed")
            if chunk.marker_error:
                print(f"  chunk {chunk.chunk_index}: marker not applied: {chunk.marker_error}")
    if report.cancelled:
        print("Run cancelled before completion.")


async def _cmd_run(args: argparse.Namespace, settings: Settings, rule_set: RuleSet) -> int:
    gmail = GmailClient(settings)
    await gmail.authenticate()

    processor = RetentionProcessor.from_settings(gmail, settings)
    mode = ExecutionMode.EXECUTE if args.execute else ExecutionMode.DRY_RUN
    cancel_event = asyncio.Event()
    restore_interrupt = _install_interrupt_handler(cancel_event)
    try:
        report = await processor.run(
            rule_set,
            mode,
            skip_trash=args.skip_trash,
            skip_delete=args.skip_delete,
            rule_ids=args.rule_ids,
            cancel_event=cancel_event,
        )
    finally:
        restore_interrupt()

    if args.json:
        print(report.model_dump_json(indent=2))
    else:
        _print_report(report)
    return 0 if report.ok else 1


def _print_outcomes(action: Action, mode: ExecutionMode, outcomes: list[BatchOutcome]) -> None:
    attempted = sum(outcome.count for outcome in outcomes)
    if mode is ExecutionMode.DRY_RUN:
        print(f"[DRY RUN] would {action.value} {attempted} messages in {len(outcomes)} chunks")
        return
    succeeded = sum(len(outcome.succeeded) for outcome in outcomes)
    failed = sum(len(outcome.failed) for outcome in outcomes)
    print(f"[EXECUTE] {action.value}: {succeeded} succeeded, {failed} failed")
    for outcome in outcomes:
        if outcome.failed:
            print(f"  chunk {outcome.chunk_index}: {len(outcome.failed)} failed")


async def _cmd_messages(args: argparse.Namespace, settings: Settings, predicate: str) -> int:
    gmail = GmailClient(settings)
    await gmail.authenticate()

    if args.labels:
        labels = LabelCache(await gmail.list_labels())
        for label in args.labels:
            if label.strip() not in labels:
                raise LabelNotFoundInMailbox(label)

    enumerator = MessageEnumerator(gmail, page_size=args.max_results, max_pages=args.pages)
    ids = await enumerator.collect(predicate)

    if args.messages_command == "list":
        for message_id in ids:
            print(message_id)
        print(f"{len(ids)} messages match `{predicate}`")
        return 0

    action = Action.parse(args.messages_command)
    mode = ExecutionMode.EXECUTE if args.execute else ExecutionMode.DRY_RUN
    processor = RetentionProcessor.from_settings(gmail, settings)
    cancel_event = asyncio.Event()
    restore_interrupt = _install_interrupt_handler(cancel_event)
    try:
        outcomes = await processor.dispose_messages(action, ids, mode, cancel_event=cancel_event)
    finally:
        restore_interrupt()

    if args.json:
        print(json.dumps([outcome.model_dump(mode="json") for outcome in outcomes], indent=2))
    else:
        _print_outcomes(action, mode, outcomes)

    cancelled = sum(outcome.count for outcome in outcomes) < len(ids)
    if cancelled:
        print("Disposal cancelled before completion.")
    return 0 if not cancelled and all(outcome.ok for outcome in outcomes) else 1


def main(args: list[str] | None = None) -> int:
    """Main entry point for the mail-retention CLI.

    Args:
        args: Command-line arguments. If None, uses sys.argv.

    Returns:
        Exit code (0 for success, 1 when anything failed, 2 for configuration errors).
    """
    if args is None:
        args = sys.argv[1:]

    settings = get_settings()

    # Configure logging
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level.upper(), logging.INFO)
        ),
    )

    logger.info("mail_retention_started", version=__version__, debug=settings.debug)

    parser = _build_parser()
    parsed = parser.parse_args(args)

    try:
        if parsed.command == "rules":
            return _cmd_rules(parsed, settings)
        if parsed.command == "labels":
            return asyncio.run(_cmd_labels(settings))
        if parsed.command == "run":
            rule_set = load_rule_set(settings.rules_path)
            # Reject unknown rule ids before authenticating.
            RetentionProcessor.select_rules(rule_set, rule_ids=parsed.rule_ids)
            return asyncio.run(_cmd_run(parsed, settings, rule_set))
        if parsed.command == "messages":
            predicate = build_search(parsed.labels, parsed.query)
            if parsed.messages_command != "list" and not predicate:
                raise ValidationError("Refusing to trash or delete without --label or --query")
            return asyncio.run(_cmd_messages(parsed, settings, predicate))
    except (ConfigurationError, ValidationError) as exc:
        logger.error("configuration_error", error=str(exc))
        print(f"Error: {exc}", file=sys.stderr)
        return 2
    except MailRetentionError as exc:
        logger.error("command_failed", command=parsed.command, error=str(exc))
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    logger.error("unknown_command", command=parsed.command)
    return 2


if __name__ == "__main__":
    sys.exit(main())
