"""Shared reading helpers for the line-oriented store files.

A record is one non-blank line; its identity is the first token.
Lines are kept with their original terminators so a rewrite can copy
untouched records byte-for-byte.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Iterator, List, NamedTuple

from .errors import StoreIOError, StoreParseError

Tokenizer = Callable[[str], List[str]]


class RawRecord(NamedTuple):
    line_number: int
    tokens: List[str]
    line: str

    @property
    def identity(self) -> str:
        return self.tokens[0]


def read_lines(path: Path) -> list[str]:
    """Return the file's lines with terminators preserved."""
    try:
        with open(path, "r", encoding="utf-8", newline="") as handle:
            return handle.read().splitlines(keepends=True)
    except UnicodeDecodeError as exc:
        raise StoreParseError(path, None, f"not valid UTF-8: {exc}") from exc
    except OSError as exc:
        raise StoreIOError(path, str(exc)) from exc


def iter_records(path: Path, lines: list[str], tokenize: Tokenizer) -> Iterator[RawRecord]:
    """Tokenize every non-blank line.

    Raises StoreParseError if a line cannot be tokenized or has no identity.
    """
    for index, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        try:
            tokens = tokenize(line)
        except ValueError as exc:
            raise StoreParseError(path, index, f"cannot tokenize line: {exc}") from exc
        if not tokens or not tokens[0]:
            raise StoreParseError(path, index, "could not get record id")
        yield RawRecord(index, tokens, line)


def find_record(path: Path, lines: list[str], tokenize: Tokenizer, key: str) -> RawRecord | None:
    """First record whose identity equals key.

    Every line is checked for an identity, including lines after the match.
    """
    match = None
    for record in iter_records(path, lines, tokenize):
        if match is None and record.identity == key:
            match = record
    return match


def duplicate_ids(records: list[RawRecord]) -> list[RawRecord]:
    """Records whose identity already appeared on an earlier line."""
    seen: set[str] = set()
    duplicates = []
    for record in records:
        if record.identity in seen:
            duplicates.append(record)
        seen.add(record.identity)
    return duplicates
