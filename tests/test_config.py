"""
Tests for YAML configuration loading.
"""

from pathlib import Path

import pytest

from slotbook.config import AppConfig, PageConfig
from slotbook.domain.exceptions import ConfigError

CONFIG_YAML = """
timezone: Europe/Berlin
fetch:
  timeout_seconds: 3
workflow:
  ttl_minutes: 30
  database_path: data/slotbook.sqlite3
pages:
  - ref: alice
    owner_name: Alice Example
    feed_urls:
      - https://calendar.example.com/alice.ics
      - https://calendar.example.com/alice.ics
      - webcal://calendar.example.com/private.ics
    availability:
      slot_duration_minutes: 45
      include_weekends: true
    mock_feeds:
      https://calendar.example.com/alice.ics: feeds/alice.ics
  - ref: Carol
    owner_name: Carol Example
"""


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadFromYaml:
    def test_full_config(self, tmp_path):
        config = AppConfig.load_from_yaml(_write(tmp_path, CONFIG_YAML))

        assert config.timezone == "Europe/Berlin"
        assert config.fetch.timeout_seconds == 3
        assert config.fetch.max_redirects == 5
        assert config.workflow.ttl_minutes == 30
        assert config.workflow.database_path == tmp_path / "data" / "slotbook.sqlite3"

        alice = config.get_page("alice")
        assert alice.feed_urls == [
            "https://calendar.example.com/alice.ics",
            "webcal://calendar.example.com/private.ics",
        ]
        assert alice.availability.slot_duration_minutes == 45
        assert alice.availability.include_weekends
        assert alice.availability.workday_start_hour == 9
        assert alice.mock_feeds["https://calendar.example.com/alice.ics"] == tmp_path / "feeds" / "alice.ics"

    def test_page_lookup_is_case_insensitive(self, tmp_path):
        config = AppConfig.load_from_yaml(_write(tmp_path, CONFIG_YAML))

        assert config.find_page("carol").owner_name == "Carol Example"
        assert config.find_page("dave") is None
        with pytest.raises(ConfigError, match="Unknown page"):
            config.get_page("dave")

    def test_empty_file_gives_defaults(self, tmp_path):
        config = AppConfig.load_from_yaml(_write(tmp_path, ""))

        assert config.timezone == "UTC"
        assert config.pages == []
        assert config.workflow.database_path is None

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            AppConfig.load_from_yaml(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        with pytest.raises(ValueError, match="Invalid YAML"):
            AppConfig.load_from_yaml(_write(tmp_path, "pages: [unclosed"))

    def test_root_must_be_mapping(self, tmp_path):
        with pytest.raises(ValueError, match="mapping"):
            AppConfig.load_from_yaml(_write(tmp_path, "- just\n- a list\n"))

    @pytest.mark.parametrize(
        "text",
        [
            "timezone: Mars/Olympus_Mons\n",
            "fetch:\n  timeout_seconds: 120\n",
            "workflow:\n  ttl_minutes: 0\n",
            "pages:\n  - ref: a\n    owner_name: A\n  - ref: A\n    owner_name: B\n",
            "pages:\n  - ref: '  '\n    owner_name: A\n",
            "pages:\n  - ref: a\n    owner_name: A\n    availability:\n      date_range_days: 365\n",
        ],
    )
    def test_invalid_values(self, tmp_path, text):
        with pytest.raises(ValueError):
            AppConfig.load_from_yaml(_write(tmp_path, text))


class TestPageConfig:
    def test_defaults(self):
        page = PageConfig(ref="alice", owner_name="Alice")

        assert page.feed_urls == []
        assert page.availability.date_range_days == 60
        assert page.availability.min_notice_hours == 8

    def test_at_most_five_feeds(self):
        urls = [f"https://calendar.example.com/{n}.ics" for n in range(6)]

        assert len(PageConfig(ref="alice", owner_name="Alice", feed_urls=urls[:5]).feed_urls) == 5
        with pytest.raises(ValueError, match="at most 5 feed URLs"):
            PageConfig(ref="alice", owner_name="Alice", feed_urls=urls)

    def test_duplicates_do_not_count_towards_limit(self):
        urls = [f"https://calendar.example.com/{n}.ics" for n in range(5)]

        page = PageConfig(ref="alice", owner_name="Alice", feed_urls=urls + urls[:2])

        assert page.feed_urls == urls
