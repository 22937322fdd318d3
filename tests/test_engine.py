"""Tests for the release engine."""

import threading
import time

import pytest

from dripfeed.engine import ReleaseEngine, current_epoch_day, needs_update
from dripfeed.errors import NotFoundError, StoreIOError, UpstreamError
from dripfeed.models import Subscription
from dripfeed.subscriptions import find_subscription

from conftest import TODAY


def _engine(config, source, today=TODAY):
    return ReleaseEngine(config, source, clock=lambda: today)


def _readings(config):
    return config.subscriptions_path.read_bytes()


def test_current_epoch_day_is_whole_days():
    assert current_epoch_day(0) == 0
    assert current_epoch_day(86399.9) == 0
    assert current_epoch_day(86400) == 1
    assert current_epoch_day(1_700_000_000) == 19675


def test_needs_update_boundary():
    sub = Subscription(
        id="r", story_id="s", frequency_days=7, batch_size=1,
        current_chapter=1, last_update_epoch_day=100,
    )
    assert needs_update(sub, 106) is False
    assert needs_update(sub, 107) is True


def test_advances_when_due_and_next_chapter_exists(test_config, source):
    before = _readings(test_config)

    plan = _engine(test_config, source).resolve("reading_lotm")

    assert plan.advanced is True
    assert plan.current_chapter == 23
    assert plan.subscription.last_update_epoch_day == TODAY
    source.exists.assert_called_once_with(plan.story, 21)

    stored = find_subscription(test_config.subscriptions_path, "reading_lotm")
    assert stored == plan.subscription

    changed = [
        (old, new)
        for old, new in zip(before.splitlines(), _readings(test_config).splitlines())
        if old != new
    ]
    assert changed == [(b"reading_lotm lotm 7 3 20 19000 5", b"reading_lotm lotm 7 3 23 19010 5")]


def test_not_due_is_a_pure_read(test_config, source):
    before = _readings(test_config)

    plan = _engine(test_config, source, today=19006).resolve("reading_lotm")

    assert plan.advanced is False
    assert plan.current_chapter == 20
    source.exists.assert_not_called()
    assert _readings(test_config) == before


def test_missing_next_chapter_does_not_advance(test_config, source):
    source.exists.return_value = False
    before = _readings(test_config)

    plan = _engine(test_config, source).resolve("reading_orv")

    assert plan.advanced is False
    assert plan.current_chapter == 10
    assert _readings(test_config) == before


def test_upstream_failure_propagates_without_write(test_config, source):
    source.exists.side_effect = UpstreamError("http://example.com", "connection refused")
    before = _readings(test_config)

    with pytest.raises(UpstreamError):
        _engine(test_config, source).resolve("reading_orv")
    assert _readings(test_config) == before


def test_progress_never_decreases(test_config, source):
    """Repeated resolves over successive days only ever move forward."""
    seen = []
    for day in range(TODAY, TODAY + 5):
        source.exists.return_value = day % 2 == 0
        seen.append(_engine(test_config, source, today=day).resolve("reading_orv").current_chapter)
    assert seen == sorted(seen)
    assert seen[-1] > 10


def test_same_day_second_resolve_does_not_advance_again(test_config, source):
    engine = _engine(test_config, source)
    first = engine.resolve("reading_orv")
    second = engine.resolve("reading_orv")
    assert first.current_chapter == 11
    assert second.current_chapter == 11
    assert second.advanced is False


def test_strict_batch_checks_whole_batch(strict_config, source):
    source.all_exist.return_value = False

    plan = _engine(strict_config, source).resolve("reading_lotm")

    assert plan.advanced is False
    source.all_exist.assert_called_once_with(plan.story, range(21, 24))
    source.exists.assert_not_called()


def test_preview_does_not_fetch_or_write(test_config, source):
    before = _readings(test_config)

    plan = _engine(test_config, source).resolve("reading_orv", advance=False)

    assert plan.current_chapter == 10
    source.exists.assert_not_called()
    assert _readings(test_config) == before


def test_window_is_inclusive(test_config, source):
    source.exists.return_value = False
    plan = _engine(test_config, source).resolve("reading_lotm")
    assert list(plan.window) == list(range(5, 21))


def test_unknown_subscription(test_config, source):
    with pytest.raises(NotFoundError):
        _engine(test_config, source).resolve("nobody")


def test_dangling_story_reference(test_config, source):
    with test_config.subscriptions_path.open("a") as handle:
        handle.write("reading_ghost ghost 1 1 1 0\n")

    with pytest.raises(NotFoundError) as excinfo:
        _engine(test_config, source).resolve("reading_ghost")
    assert excinfo.value.kind == "story"


def test_missing_store_is_io_error(test_config, source):
    test_config.subscriptions_path.unlink()
    with pytest.raises(StoreIOError):
        _engine(test_config, source).resolve("reading_orv")


def test_unknown_ids_leave_no_locks_behind(test_config, source):
    engine = _engine(test_config, source)
    for i in range(500):
        with pytest.raises(NotFoundError):
            engine.resolve(f"nobody-{i}")
    assert len(engine._locks) == 0


def test_lock_released_after_each_resolve(test_config, source):
    engine = _engine(test_config, source)
    engine.resolve("reading_orv")
    engine.resolve("reading_lotm")
    assert len(engine._locks) == 0


def test_concurrent_resolves_advance_once(test_config, source):
    """Several requests for one subscription on the same day advance it only once."""

    def slow_exists(story, chapter):
        time.sleep(0.2)
        return True

    source.exists.side_effect = slow_exists
    engine = _engine(test_config, source)
    plans = []
    errors = []

    def worker():
        try:
            plans.append(engine.resolve("reading_orv"))
        except Exception as exc:  # surfaced by the assertion below
            errors.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert sum(plan.advanced for plan in plans) == 1
    assert {plan.current_chapter for plan in plans} == {11}
    assert find_subscription(test_config.subscriptions_path, "reading_orv").current_chapter == 11
    assert len(engine._locks) == 0


def test_preview_needs_no_source(test_config):
    plan = ReleaseEngine(test_config).resolve("reading_lotm", advance=False)
    assert plan.current_chapter == 20


def test_advancing_without_source_is_rejected(test_config):
    with pytest.raises(ValueError):
        ReleaseEngine(test_config, clock=lambda: TODAY).resolve("reading_orv")
