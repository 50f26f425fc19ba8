"""Tests for the pydantic run summary model."""

from __future__ import annotations

import json
from pathlib import Path

import pandas as pd
import pytest

from blackout_pipeline.models.report import (
    SCHEMA_VERSION,
    IncomeStats,
    RunSummary,
    StageCounts,
)


class TestIncomeStats:
    """Per-group income statistics."""

    def test_odd_count(self) -> None:
        stats = IncomeStats.from_series(pd.Series([30000.0, 10000.0, 20000.0]))
        assert stats.tract_count == 3
        assert stats.with_income == 3
        assert stats.median == 20000.0
        assert stats.mean == pytest.approx(20000.0)

    def test_even_count(self) -> None:
        stats = IncomeStats.from_series(pd.Series([10000.0, 40000.0]))
        assert stats.median == 25000.0

    def test_nulls_excluded_from_stats(self) -> None:
        stats = IncomeStats.from_series(pd.Series([float("nan"), None, 50000.0]))
        assert stats.tract_count == 3
        assert stats.with_income == 1
        assert stats.median == 50000.0

    def test_no_known_values(self) -> None:
        stats = IncomeStats.from_series(pd.Series([float("nan")]))
        assert stats.tract_count == 1
        assert stats.median is None
        assert stats.mean is None

    def test_empty(self) -> None:
        assert IncomeStats.from_series(pd.Series([], dtype="float64")) == IncomeStats()


class TestRunSummary:
    """Serialisation."""

    def test_defaults(self) -> None:
        summary = RunSummary()
        assert summary.schema_version == SCHEMA_VERSION
        assert summary.timestamp
        assert summary.counts == StageCounts()

    def test_schema_alias_in_json(self) -> None:
        payload = json.loads(RunSummary(counts=StageCounts(affected_cells=4)).to_json())
        assert payload["$schema"] == SCHEMA_VERSION
        assert payload["counts"]["affected_cells"] == 4
        assert payload["income"]["affected"]["median"] is None

    def test_explicit_timestamp_kept(self) -> None:
        summary = RunSummary(timestamp="2021-02-16T00:00:00+00:00")
        assert summary.timestamp == "2021-02-16T00:00:00+00:00"

    def test_write_creates_parents(self, tmp_path: Path) -> None:
        path = RunSummary().write(tmp_path / "runs" / "summary.json")
        assert path.exists()
        assert json.loads(path.read_text(encoding="utf-8"))["$schema"] == SCHEMA_VERSION
