"""Subscription store: mutable reading progress, one subscription per line.

    id story_id frequency_days batch_size current_chapter last_update_epoch_day [start_chapter]

Fields are bare tokens separated by whitespace. start_chapter defaults to 0.
"""

from __future__ import annotations

import os
import tempfile
import threading
from pathlib import Path

from pydantic import ValidationError

from .errors import NotFoundError, StoreIOError, StoreParseError
from .flatfile import RawRecord, duplicate_ids, find_record, iter_records, read_lines
from .logging_config import get_logger
from .models import Subscription

logger = get_logger(__name__)

FIELDS = (
    "id",
    "story_id",
    "frequency_days",
    "batch_size",
    "current_chapter",
    "last_update_epoch_day",
    "start_chapter",
)
OPTIONAL_FIELDS = 1

_write_locks: dict[Path, threading.Lock] = {}
_write_locks_guard = threading.Lock()


def _tokenize(line: str) -> list[str]:
    return line.split()


def _write_lock(path: Path) -> threading.Lock:
    key = Path(os.path.abspath(path))
    with _write_locks_guard:
        return _write_locks.setdefault(key, threading.Lock())


def parse_subscription_record(path: Path, record: RawRecord) -> Subscription:
    """Build a Subscription from a tokenized line."""
    tokens = record.tokens
    if not len(FIELDS) - OPTIONAL_FIELDS <= len(tokens) <= len(FIELDS):
        raise StoreParseError(
            path,
            record.line_number,
            f"expected {len(FIELDS) - OPTIONAL_FIELDS} or {len(FIELDS)} fields, found {len(tokens)}",
        )

    values = dict(zip(FIELDS, tokens))
    try:
        for name in FIELDS[2:]:
            if name in values:
                values[name] = int(values[name])
        return Subscription(**values)
    except (ValueError, ValidationError) as exc:
        raise StoreParseError(path, record.line_number, str(exc)) from exc


def format_subscription(subscription: Subscription) -> str:
    """Canonical line for a subscription, without terminator."""
    return " ".join(str(getattr(subscription, name)) for name in FIELDS)


def find_subscription(path: Path, reading_id: str) -> Subscription:
    """Look up a subscription by id. First exact match wins.

    Raises:
        NotFoundError: no line carries reading_id
        StoreIOError: the file cannot be read
        StoreParseError: the matched line is malformed, or any line lacks an id
    """
    lines = read_lines(path)
    record = find_record(path, lines, _tokenize, reading_id)
    if record is None:
        raise NotFoundError("subscription", reading_id)
    return parse_subscription_record(path, record)


def _line_terminator(line: str) -> str:
    stripped = line.rstrip("\r\n")
    return line[len(stripped):]


def _atomic_write(path: Path, content: str) -> None:
    """Write content to a sibling temp file, then rename it over path."""
    directory = os.path.dirname(os.path.abspath(path))
    fd, tmp_name = tempfile.mkstemp(prefix=".dripfeed-", suffix=".tmp", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        if os.path.exists(path):
            os.chmod(tmp_name, os.stat(path).st_mode & 0o7777)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def save_subscription(path: Path, subscription: Subscription) -> None:
    """Rewrite the store with the subscription's line replaced in place.

    All other lines, malformed ones included, are copied unchanged.

    Raises:
        NotFoundError: the subscription id is not in the file (nothing is written)
        StoreIOError: the file cannot be read or replaced
    """
    with _write_lock(path):
        lines = read_lines(path)
        replacement = format_subscription(subscription)
        output: list[str] = []
        replaced = 0

        for line in lines:
            tokens = line.split()
            if tokens and tokens[0] == subscription.id:
                output.append(replacement + _line_terminator(line))
                replaced += 1
            else:
                output.append(line)

        if not replaced:
            raise NotFoundError("subscription", subscription.id)

        try:
            _atomic_write(path, "".join(output))
        except OSError as exc:
            raise StoreIOError(path, str(exc)) from exc

    logger.debug(f"Saved subscription {subscription.id} to {path}")


def validate_subscriptions(path: Path) -> list[StoreParseError]:
    """Fully parse every subscription line and return the problems found."""
    lines = read_lines(path)
    problems: list[StoreParseError] = []
    try:
        records = list(iter_records(path, lines, _tokenize))
    except StoreParseError as exc:
        return [exc]

    for record in records:
        try:
            parse_subscription_record(path, record)
        except StoreParseError as exc:
            problems.append(exc)

    for record in duplicate_ids(records):
        problems.append(
            StoreParseError(path, record.line_number, f"duplicate subscription id {record.identity}")
        )
    return problems
