"""Shared fixtures: a data directory with both store files and a config pointing at it."""

from pathlib import Path
from unittest.mock import Mock

import pytest

from dripfeed.config import DataConfig, DripfeedConfig, MonitoringConfig, ReleaseConfig
from dripfeed.logging_config import reset_logging
from dripfeed.source import ChapterSource

CATALOG = """\
orv "Omniscient Reader" "http://example.com/orv/chap_%s.xhtml" 5 http://example.com/orv/intro.xhtml
lotm "Lord of the Mysteries" "http://example.com/lotm/%s.html" 0
"""

READINGS = """\
reading_orv orv 1 1 10 19000 0
reading_lotm lotm 7 3 20 19000 5
reading_legacy lotm 2 1 4 19000
"""

TODAY = 19010


def make_config(data_dir: Path, **release) -> DripfeedConfig:
    return DripfeedConfig(
        data=DataConfig(directory=data_dir),
        monitoring=MonitoringConfig(enabled=False),
        release=ReleaseConfig(**release),
    )


@pytest.fixture
def data_dir(tmp_path):
    directory = tmp_path / "data"
    directory.mkdir()
    (directory / "stories.conf").write_text(CATALOG, encoding="utf-8")
    (directory / "readings.data").write_text(READINGS, encoding="utf-8")
    return directory


@pytest.fixture
def test_config(data_dir):
    return make_config(data_dir)


@pytest.fixture
def source():
    """A chapter source that reports every chapter as published."""
    fake = Mock(spec=ChapterSource)
    fake.exists.return_value = True
    fake.all_exist.return_value = True
    return fake


@pytest.fixture
def strict_config(data_dir):
    return make_config(data_dir, strict_batch=True)


@pytest.fixture(autouse=True)
def _detach_log_handlers():
    yield
    reset_logging()
