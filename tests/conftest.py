"""Pytest fixtures shared across the dashboard tests."""

from __future__ import annotations

import json
from collections.abc import Sequence
from pathlib import Path

import pytest

from mobility.data import DataSource, FileMap, clear_remote_cache


@pytest.fixture(autouse=True)
def _fresh_remote_cache():
    """Remote responses are memoized per URL; start every test with an empty memo."""

    clear_remote_cache()
    yield
    clear_remote_cache()


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Return an empty local data folder."""

    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def write_json(data_dir: Path):
    """Return a helper writing a JSON payload at a path relative to `data_dir`."""

    def _write(relative_path: str, payload) -> Path:
        target = data_dir / relative_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps(payload), encoding="utf-8")
        return target

    return _write


@pytest.fixture
def make_source(data_dir: Path):
    """Return a factory for a DataSource reading only from `data_dir` (no remote defaults)."""

    def _make() -> DataSource:
        return DataSource(file_map=FileMap.from_directory(data_dir), context_url=None, default_url=None)

    return _make


def pytest_collection_modifyitems(items: Sequence[pytest.Item]) -> None:
    """Enforce that every test has exactly one speed marker (`unit` or `integration`)."""

    invalid: list[str] = []
    for item in items:
        has_unit = item.get_closest_marker("unit") is not None
        has_integration = item.get_closest_marker("integration") is not None
        if has_unit == has_integration:
            invalid.append(item.nodeid)

    if invalid:
        joined = "\n".join(f"- {nodeid}" for nodeid in invalid)
        raise pytest.UsageError(
            "Each test must have exactly one speed marker: `@pytest.mark.unit` or "
            "`@pytest.mark.integration`.\n"
            f"Offending tests:\n{joined}"
        )
