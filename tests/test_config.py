"""Tests for board configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from roadmap_board.config import (
    get_collapse_config,
    get_ordering_config,
    get_priority_keywords,
    load_board_config,
)
from roadmap_board.constants import COLLAPSED_GROUPS_KEY, RENUMBER_ENV_VAR


def _write_config(project_dir: Path, text: str) -> None:
    state = project_dir / ".roadmap"
    state.mkdir(parents=True, exist_ok=True)
    (state / "config.yaml").write_text(text, encoding="utf-8")


class TestLoadBoardConfig:
    def test_missing_file(self, tmp_path: Path) -> None:
        assert load_board_config(tmp_path) == ({}, None)

    def test_valid_file(self, tmp_path: Path) -> None:
        _write_config(tmp_path, "ordering:\n  renumber_on_move: true\n")
        config, err = load_board_config(tmp_path)
        assert err is None
        assert config == {"ordering": {"renumber_on_move": True}}

    def test_invalid_yaml_reports_error(self, tmp_path: Path) -> None:
        _write_config(tmp_path, "ordering: [oops")
        config, err = load_board_config(tmp_path)
        assert config == {}
        assert err is not None and "config.yaml" in err

    def test_non_mapping_reports_error(self, tmp_path: Path) -> None:
        _write_config(tmp_path, "- just\n- a list\n")
        config, err = load_board_config(tmp_path)
        assert config == {}
        assert "expected object" in err


class TestOrderingConfig:
    def test_default_off(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv(RENUMBER_ENV_VAR, raising=False)
        assert get_ordering_config({}) == {"renumber_on_move": False}

    def test_file_value(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv(RENUMBER_ENV_VAR, raising=False)
        assert get_ordering_config({"ordering": {"renumber_on_move": True}})["renumber_on_move"] is True

    @pytest.mark.parametrize("value,expected", [("1", True), ("yes", True), ("ON", True), ("0", False), ("no", False)])
    def test_env_override(self, monkeypatch: pytest.MonkeyPatch, value: str, expected: bool) -> None:
        monkeypatch.setenv(RENUMBER_ENV_VAR, value)
        config = {"ordering": {"renumber_on_move": not expected}}
        assert get_ordering_config(config)["renumber_on_move"] is expected

    def test_blank_env_is_ignored(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(RENUMBER_ENV_VAR, "  ")
        assert get_ordering_config({"ordering": {"renumber_on_move": True}})["renumber_on_move"] is True


class TestPriorityKeywords:
    def test_absent(self) -> None:
        assert get_priority_keywords({}) is None
        assert get_priority_keywords({"grouping": "nope"}) is None

    def test_known_buckets_only(self) -> None:
        config = {"grouping": {"priority_keywords": {"high": ["P0", "Blocker", " "], "bogus": ["x"], "low": "p3"}}}
        assert get_priority_keywords(config) == {"high": ("p0", "blocker")}


class TestCollapseConfig:
    def test_default_key(self) -> None:
        assert get_collapse_config({})["storage_key"] == COLLAPSED_GROUPS_KEY
        assert get_collapse_config({"collapse": {"storage_key": ""}})["storage_key"] == COLLAPSED_GROUPS_KEY

    def test_custom_key(self) -> None:
        assert get_collapse_config({"collapse": {"storage_key": "k"}})["storage_key"] == "k"
