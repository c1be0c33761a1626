#!/usr/bin/env python3
"""Bulk-create records from a CSV file with live progress.

Validates every row against a YAML schema, then submits the valid rows
one at a time to a remote endpoint through retry and a circuit breaker.
Ctrl-C stops after the record in flight; the rest are reported cancelled.

Run with: python3 -m scripts.bulk_create --schema SCHEMA --input CSV [--url URL]
"""
import argparse
import asyncio
import csv
import json
import signal
import sys
import time
from datetime import timedelta
from pathlib import Path

from core.config import settings
from core.errors import AppErrorException
from core.logging import configure_logging
from core.resilience import CircuitBreaker, CircuitBreakerConfig, RetryConfig, RetryPolicy
from core.validation import load_schema_file, validate_batch
from engines import BatchDispatcher, DispatchOptions, HttpSubmitter
from models import BatchRun, OutcomeStatus, ProgressEvent, Record


# ANSI color codes
C_RESET = "\033[0m"
C_BOLD = "\033[1m"
C_DIM = "\033[2m"
C_GREEN = "\033[32m"
C_YELLOW = "\033[33m"
C_CYAN = "\033[36m"
C_RED = "\033[31m"
C_MAGENTA = "\033[35m"

STATUS_MARKS = {
    OutcomeStatus.SUCCEEDED: f"{C_GREEN}✓{C_RESET}",
    OutcomeStatus.FAILED: f"{C_RED}✗{C_RESET}",
    OutcomeStatus.SKIPPED: f"{C_DIM}○{C_RESET}",
    OutcomeStatus.CANCELLED: f"{C_YELLOW}–{C_RESET}",
}


def fmt_num(n: int) -> str:
    """Format number with thousands separator."""
    return f"{n:,}"


def fmt_duration(seconds: float) -> str:
    """Format duration nicely."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        return f"{int(seconds // 60)}m {int(seconds % 60)}s"
    else:
        return str(timedelta(seconds=int(seconds)))


def fmt_rate(count: int, seconds: float) -> str:
    """Format processing rate."""
    if seconds <= 0:
        return "∞"
    return f"{count / seconds:.1f}/s"


def progress_bar(current: int, total: int, width: int = 30) -> str:
    """Create a progress bar string."""
    if total <= 0:
        return f"[{'█' * width}] 100.0%"
    pct = min(1.0, current / total)
    filled = int(width * pct)
    bar = "█" * filled + "░" * (width - filled)
    return f"[{bar}] {pct*100:5.1f}%"


def clear_line() -> None:
    sys.stdout.write("\r" + " " * 80 + "\r")


def read_records(path: Path) -> list[Record]:
    """One Record per CSV row; empty cells become None.

    A column named `client_id` is used as the record identity when present.
    """
    records = []
    with open(path, newline="", encoding="utf-8") as fh:
        for row in csv.DictReader(fh):
            values = {k.strip(): (v if v != "" else None) for k, v in row.items() if k}
            client_id = values.pop("client_id", None)
            records.append(Record(values, client_id=client_id))
    return records


def print_validation_errors(records: list[Record], errors: dict[str, dict[str, str]]) -> None:
    for row, record in enumerate(records, 1):
        if record.client_id not in errors:
            continue
        print(f"    {C_RED}✗ Row {row}{C_RESET} {C_DIM}({record.client_id}){C_RESET}")
        for key, message in errors[record.client_id].items():
            print(f"        {C_DIM}{key}:{C_RESET} {message}")


def print_summary(run: BatchRun) -> None:
    """Print final statistics for a dispatch run."""
    duration = run.duration_seconds or 0.0
    print(f"\n{C_BOLD}  Results:{C_RESET}")
    print(f"    {C_GREEN}✓ Created:{C_RESET}   {fmt_num(run.succeeded):>10}")
    if run.failed:
        print(f"    {C_RED}✗ Failed:{C_RESET}    {fmt_num(run.failed):>10}")
    print(f"    {C_DIM}○ Skipped:{C_RESET}   {fmt_num(run.skipped):>10}")
    if run.cancelled:
        print(f"    {C_YELLOW}– Cancelled:{C_RESET} {fmt_num(run.cancelled):>10}")
    print(f"    {C_BOLD}━ Total:{C_RESET}     {fmt_num(run.total):>10}")
    print()
    print(f"  {C_DIM}Batch: {run.batch_id} • Duration: {fmt_duration(duration)} • "
          f"Rate: {fmt_rate(run.total, duration)}{C_RESET}")

    problems = [o for o in run.outcomes if o.status in (OutcomeStatus.FAILED, OutcomeStatus.SKIPPED)]
    if problems:
        print(f"\n{C_BOLD}  Problems:{C_RESET}")
        for outcome in problems[:20]:
            mark = STATUS_MARKS[outcome.status]
            if outcome.validation_errors:
                detail = "; ".join(outcome.validation_errors.values())
            else:
                detail = outcome.error.message if outcome.error else ""
            print(f"    {mark} Row {outcome.index + 1}: {detail}")
        if len(problems) > 20:
            print(f"    {C_DIM}… and {len(problems) - 20} more{C_RESET}")


async def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Bulk-create records from a CSV file",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python3 -m scripts.bulk_create --schema ../data/schemas/product.yaml --input products.csv
  python3 -m scripts.bulk_create --schema product.yaml --input products.csv --dry-run
  python3 -m scripts.bulk_create --schema product.yaml --input products.csv --require-valid --output run.json
        """
    )
    parser.add_argument("--schema", required=True, type=Path, help="YAML validation schema")
    parser.add_argument("--input", required=True, type=Path, help="CSV file, one record per row")
    parser.add_argument("--url", default=settings.SUBMIT_URL, help=f"Create endpoint (default: {settings.SUBMIT_URL})")
    parser.add_argument("--output", type=Path, help="Write the batch report as JSON")
    parser.add_argument("--dry-run", action="store_true", help="Validate only, submit nothing")
    parser.add_argument("--require-valid", action="store_true", help="Submit nothing unless every row is valid")
    parser.add_argument("--max-attempts", type=int, default=settings.RETRY_MAX_ATTEMPTS,
                        help=f"Attempts per record (default: {settings.RETRY_MAX_ATTEMPTS})")
    parser.add_argument("--failure-threshold", type=int, default=settings.BREAKER_FAILURE_THRESHOLD,
                        help=f"Consecutive failures before fast-failing (default: {settings.BREAKER_FAILURE_THRESHOLD})")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON logs on stderr")

    args = parser.parse_args(argv)
    configure_logging(settings.LOG_LEVEL, json_logs=args.json_logs or settings.LOG_JSON)

    try:
        dispatcher = BatchDispatcher(
            RetryPolicy(RetryConfig.from_settings(settings, max_attempts=args.max_attempts)),
            CircuitBreaker(args.url, CircuitBreakerConfig.from_settings(settings, failure_threshold=args.failure_threshold)),
        )
        schema = load_schema_file(args.schema)
        records = read_records(args.input)
    except (AppErrorException, OSError) as e:
        print(f"{C_RED}✗ {e}{C_RESET}")
        return 1

    print()
    print(f"{C_BOLD}{C_MAGENTA}╔{'═' * 58}╗{C_RESET}")
    print(f"{C_BOLD}{C_MAGENTA}║{'BULK CREATE':^58}║{C_RESET}")
    print(f"{C_BOLD}{C_MAGENTA}╚{'═' * 58}╝{C_RESET}")
    print()
    print(f"  {C_DIM}Schema:{C_RESET}   {schema.name} ({len(schema)} fields)")
    print(f"  {C_DIM}Input:{C_RESET}    {args.input} ({fmt_num(len(records))} rows)")
    if not args.dry_run:
        print(f"  {C_DIM}Endpoint:{C_RESET} {args.url}")

    if args.dry_run:
        errors = validate_batch(records, schema)
        print(f"\n  {C_GREEN}✓ {fmt_num(len(records) - len(errors))} valid{C_RESET}, "
              f"{C_RED}{fmt_num(len(errors))} invalid{C_RESET}")
        print_validation_errors(records, errors)
        return 1 if errors else 0

    cancel = asyncio.Event()
    try:
        asyncio.get_running_loop().add_signal_handler(signal.SIGINT, cancel.set)
    except NotImplementedError:
        pass  # no loop signal handlers on Windows; Ctrl-C aborts instead

    options = DispatchOptions(require_full_validity=args.require_valid, should_cancel=cancel.is_set)

    start = time.time()
    last_update = [0.0]

    def progress(event: ProgressEvent) -> None:
        now = time.time()
        if now - last_update[0] >= 0.1 or event.completed == event.total:
            last_update[0] = now
            bar = progress_bar(event.completed, event.total)
            rate = fmt_rate(event.completed, now - start)
            sys.stdout.write(f"\r    {bar} {fmt_num(event.completed):>6}/{fmt_num(event.total)} @ {rate}  ")
            sys.stdout.flush()

    print()
    try:
        async with HttpSubmitter(args.url) as submit:
            run = await dispatcher.run(records, schema, submit, options=options, on_progress=progress)
    except AppErrorException as e:
        print(f"  {C_RED}✗ {e}{C_RESET}")
        return 1
    clear_line()

    if run.aborted:
        print(f"  {C_YELLOW}⚠ {fmt_num(run.skipped)} invalid rows, nothing submitted{C_RESET}")
    if cancel.is_set():
        print(f"  {C_YELLOW}⚠ Cancelled by user{C_RESET}")
    print_summary(run)
    print(f"  {C_DIM}Breaker:  {dispatcher.breaker.state.value}{C_RESET}")

    if args.output:
        args.output.write_text(json.dumps(run.to_dict(), indent=2, default=str), encoding="utf-8")
        print(f"  {C_DIM}Report:   {args.output}{C_RESET}")
    print()

    clean = not run.aborted and run.failed == 0 and run.skipped == 0 and run.cancelled == 0
    return 0 if clean else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
