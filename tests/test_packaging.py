"""Test packaging metadata and installation extras."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]


def _load_pyproject() -> dict[str, Any]:
    tomllib = pytest.importorskip("tomllib")
    return tomllib.loads((PROJECT_ROOT / "pyproject.toml").read_text(encoding="utf-8"))


def test_pyproject_declares_test_extras() -> None:
    """Ensure `pyproject.toml` declares pytest under `[project.optional-dependencies].test`."""
    data = _load_pyproject()
    test_deps = data.get("project", {}).get("optional-dependencies", {}).get("test", [])
    normalized = {str(item).strip().lower() for item in test_deps}
    assert any(item.startswith("pytest") for item in normalized)
    assert any(item.startswith("httpx") for item in normalized)


def test_pyproject_declares_server_extras() -> None:
    data = _load_pyproject()
    server_deps = data["project"]["optional-dependencies"]["server"]
    names = {str(item).split(">")[0].split("=")[0].strip().lower() for item in server_deps}
    assert {"fastapi", "uvicorn"} <= names


def test_console_script_points_at_cli_main() -> None:
    data = _load_pyproject()
    assert data["project"]["scripts"]["roadmap-board"] == "roadmap_board.cli:main"
