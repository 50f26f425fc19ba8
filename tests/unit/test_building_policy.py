"""Tests for the residential building policy."""

from __future__ import annotations

import pandas as pd
import pytest

from blackout_pipeline.models.building_policy import BuildingPolicy


class TestWhereClause:
    """OGR SQL pre-filter."""

    def test_default_clause(self) -> None:
        assert BuildingPolicy().where_clause() == (
            "(type IS NULL AND name IS NULL) OR type IN "
            "('residential', 'apartments', 'house', 'static_caravan', 'detached')"
        )

    def test_allow_list_only(self) -> None:
        policy = BuildingPolicy(allowed_types=("house",), include_untyped_unnamed=False)
        assert policy.where_clause() == "type IN ('house')"

    def test_quotes_escaped(self) -> None:
        policy = BuildingPolicy(allowed_types=("o'brien",), include_untyped_unnamed=False)
        assert policy.where_clause() == "type IN ('o''brien')"

    def test_selects_nothing(self) -> None:
        policy = BuildingPolicy(allowed_types=(), include_untyped_unnamed=False)
        assert policy.where_clause() == ""


class TestMatches:
    """In-memory mask agrees with the clause."""

    @pytest.fixture()
    def frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            {
                "type": [None, "house", "commercial", None, "apartments"],
                "name": [None, None, "Mall", "Chapel", "Tower"],
            }
        )

    def test_default_policy(self, frame: pd.DataFrame) -> None:
        assert BuildingPolicy().matches(frame).tolist() == [True, True, False, False, True]

    def test_without_untyped(self, frame: pd.DataFrame) -> None:
        policy = BuildingPolicy(include_untyped_unnamed=False)
        assert policy.matches(frame).tolist() == [False, True, False, False, True]

    def test_missing_columns_treated_as_null(self) -> None:
        frame = pd.DataFrame({"osm_id": ["1", "2"]})
        assert BuildingPolicy().matches(frame).tolist() == [True, True]


class TestSerialisation:
    """to_dict / from_dict."""

    def test_round_trip(self) -> None:
        policy = BuildingPolicy(type_field="building", allowed_types=("house", "detached"))
        assert BuildingPolicy.from_dict(policy.to_dict()) == policy

    def test_allowed_types_must_be_list(self) -> None:
        with pytest.raises(TypeError, match="allowed_types"):
            BuildingPolicy.from_dict({"allowed_types": "house"})
