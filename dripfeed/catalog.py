"""Catalog store: the read-only story registry.

One story per line, tokenized with shell quoting rules:

    id title url_template leading_zeros [prologue_url]

Titles and URLs containing spaces must be quoted.
"""

from __future__ import annotations

import shlex
from pathlib import Path

from pydantic import ValidationError

from .errors import NotFoundError, StoreParseError
from .flatfile import RawRecord, duplicate_ids, find_record, iter_records, read_lines
from .logging_config import get_logger
from .models import CatalogEntry

logger = get_logger(__name__)

REQUIRED_FIELDS = 4
MAX_FIELDS = 5
# Shorter prologue values are treated as malformed and ignored.
MIN_PROLOGUE_LENGTH = 5


def _tokenize(line: str) -> list[str]:
    return shlex.split(line)


def parse_catalog_record(path: Path, record: RawRecord) -> CatalogEntry:
    """Build a CatalogEntry from a tokenized catalog line."""
    tokens = record.tokens
    if not REQUIRED_FIELDS <= len(tokens) <= MAX_FIELDS:
        raise StoreParseError(
            path,
            record.line_number,
            f"expected {REQUIRED_FIELDS} or {MAX_FIELDS} fields, found {len(tokens)}",
        )

    story_id, title, url_template, leading_zeros = tokens[:REQUIRED_FIELDS]
    prologue_url = tokens[4] if len(tokens) == MAX_FIELDS else None
    if prologue_url is not None and len(prologue_url) < MIN_PROLOGUE_LENGTH:
        prologue_url = None

    try:
        return CatalogEntry(
            id=story_id,
            title=title,
            url_template=url_template,
            leading_zeros=int(leading_zeros),
            prologue_url=prologue_url,
        )
    except (ValueError, ValidationError) as exc:
        raise StoreParseError(path, record.line_number, str(exc)) from exc


def find_story(path: Path, story_id: str) -> CatalogEntry:
    """Look up a story by id. First exact match wins.

    Raises:
        NotFoundError: no line carries story_id
        StoreIOError: the file cannot be read
        StoreParseError: the matched line is malformed, or any line lacks an id
    """
    lines = read_lines(path)
    record = find_record(path, lines, _tokenize, story_id)
    if record is None:
        raise NotFoundError("story", story_id)
    return parse_catalog_record(path, record)


def validate_catalog(path: Path) -> list[StoreParseError]:
    """Fully parse every catalog line and return the problems found."""
    lines = read_lines(path)
    problems: list[StoreParseError] = []
    records: list[RawRecord] = []
    try:
        records = list(iter_records(path, lines, _tokenize))
    except StoreParseError as exc:
        return [exc]

    for record in records:
        try:
            parse_catalog_record(path, record)
        except StoreParseError as exc:
            problems.append(exc)

    for record in duplicate_ids(records):
        problems.append(
            StoreParseError(path, record.line_number, f"duplicate story id {record.identity}")
        )

    if problems:
        logger.debug(f"Catalog {path}: {len(problems)} problem(s)")
    return problems
