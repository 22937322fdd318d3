"""Tests for the subscription store."""

import threading

import pytest

from dripfeed.errors import NotFoundError, StoreIOError, StoreParseError
from dripfeed.models import Subscription
from dripfeed.subscriptions import (
    find_subscription,
    format_subscription,
    save_subscription,
    validate_subscriptions,
)


def _write(tmp_path, content):
    path = tmp_path / "readings.data"
    path.write_bytes(content.encode("utf-8"))
    return path


def test_find_full_record(data_dir):
    sub = find_subscription(data_dir / "readings.data", "reading_lotm")
    assert sub == Subscription(
        id="reading_lotm",
        story_id="lotm",
        frequency_days=7,
        batch_size=3,
        current_chapter=20,
        last_update_epoch_day=19000,
        start_chapter=5,
    )


def test_start_chapter_defaults_to_zero(data_dir):
    sub = find_subscription(data_dir / "readings.data", "reading_legacy")
    assert sub.start_chapter == 0
    assert sub.current_chapter == 4


def test_unknown_subscription_raises_not_found(data_dir):
    with pytest.raises(NotFoundError) as excinfo:
        find_subscription(data_dir / "readings.data", "nobody")
    assert excinfo.value.kind == "subscription"


def test_missing_file_raises_io_error(tmp_path):
    with pytest.raises(StoreIOError):
        find_subscription(tmp_path / "readings.data", "reading_orv")


@pytest.mark.parametrize(
    "line",
    [
        "r1 orv 1 1 10",
        "r1 orv 1 1 10 19000 0 extra",
        "r1 orv one 1 10 19000",
        "r1 orv 0 1 10 19000",
        "r1 orv 1 1 3 19000 5",
    ],
)
def test_malformed_line_is_a_parse_error(tmp_path, line):
    path = _write(tmp_path, line + "\n")
    with pytest.raises(StoreParseError):
        find_subscription(path, "r1")


def test_malformed_foreign_line_does_not_block_lookup(tmp_path):
    path = _write(tmp_path, "r1 orv 1 1 10 19000\ngarbage line\n")
    assert find_subscription(path, "r1").current_chapter == 10


def test_format_is_canonical_order():
    sub = Subscription(
        id="r1",
        story_id="orv",
        frequency_days=2,
        batch_size=3,
        current_chapter=40,
        last_update_epoch_day=19005,
        start_chapter=1,
    )
    assert format_subscription(sub) == "r1 orv 2 3 40 19005 1"


def test_save_then_find_round_trip(data_dir):
    path = data_dir / "readings.data"
    sub = find_subscription(path, "reading_legacy")
    updated = sub.model_copy(update={"current_chapter": 9, "last_update_epoch_day": 19020})

    save_subscription(path, updated)

    assert find_subscription(path, "reading_legacy") == updated


def test_save_rewrites_only_matching_line(tmp_path):
    """Other lines, including malformed ones and CRLF endings, are kept byte-for-byte."""
    original = (
        "r1 orv 1 1 10 19000 0\r\n"
        "# not a record  \n"
        "r2   lotm  7 3 20 19000 5\n"
        "r3 lotm 2 1 4 19000"
    )
    path = _write(tmp_path, original)
    sub = find_subscription(path, "r2")

    save_subscription(path, sub.model_copy(update={"current_chapter": 23}))

    after = path.read_bytes().decode("utf-8")
    assert after == (
        "r1 orv 1 1 10 19000 0\r\n"
        "# not a record  \n"
        "r2 lotm 7 3 23 19000 5\n"
        "r3 lotm 2 1 4 19000"
    )


def test_save_unknown_id_leaves_file_untouched(data_dir):
    path = data_dir / "readings.data"
    before = path.read_bytes()
    ghost = Subscription(
        id="ghost",
        story_id="orv",
        frequency_days=1,
        batch_size=1,
        current_chapter=0,
        last_update_epoch_day=0,
    )

    with pytest.raises(NotFoundError):
        save_subscription(path, ghost)

    assert path.read_bytes() == before


def test_save_leaves_no_temp_files(data_dir):
    path = data_dir / "readings.data"
    sub = find_subscription(path, "reading_orv")
    save_subscription(path, sub.model_copy(update={"current_chapter": 11}))
    assert sorted(p.name for p in data_dir.iterdir()) == ["readings.data", "stories.conf"]


def test_validate_subscriptions(tmp_path):
    path = _write(
        tmp_path,
        "r1 orv 1 1 10 19000\n"
        "r2 orv 1 1\n"
        "r1 orv 1 1 10 19000\n",
    )
    problems = validate_subscriptions(path)
    assert [p.line_number for p in problems] == [2, 3]


def test_concurrent_saves_of_different_ids_keep_both_updates(data_dir):
    path = data_dir / "readings.data"
    orv = find_subscription(path, "reading_orv")
    lotm = find_subscription(path, "reading_lotm")
    start = threading.Barrier(2)

    def bump(sub, rounds=25):
        start.wait()
        for i in range(1, rounds + 1):
            save_subscription(
                path, sub.model_copy(update={"current_chapter": sub.current_chapter + i})
            )

    threads = [
        threading.Thread(target=bump, args=(orv,)),
        threading.Thread(target=bump, args=(lotm,)),
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert find_subscription(path, "reading_orv").current_chapter == 35
    assert find_subscription(path, "reading_lotm").current_chapter == 45
    assert find_subscription(path, "reading_legacy").current_chapter == 4
