"""
Tests for the experiment registry.

These tests verify:
- Weight validation and its tolerance
- Active window handling
- Misconfigured definitions are logged and kept out of assignment
- Loading from raw definitions and JSON files
"""
import json
import logging
from datetime import datetime, timedelta, timezone

import pytest

from personalization.models.schemas.experiment import ExperimentConfig
from personalization.repositories.experiment_repo import ExperimentRegistry

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


class TestValidate:
    """Tests for weight validation."""

    @pytest.mark.parametrize(
        "weights",
        [
            (0.5, 0.5),
            (0.33, 0.33, 0.34),
            (1.0,),
            (0.5, 0.4995),
            (0.2, 0.2, 0.2, 0.2, 0.2),
            # exactly one tolerance below and above 1.0
            (0.5, 0.499),
            (0.3, 0.3, 0.399),
            (0.5, 0.501),
            (0.25, 0.751),
        ],
    )
    def test_weights_summing_to_one_are_valid(self, make_experiment, weights):
        experiment = ExperimentConfig.model_validate(make_experiment(weights=weights))
        assert ExperimentRegistry([]).validate(experiment) is True

    @pytest.mark.parametrize(
        "weights",
        [(0.5, 0.4), (0.5, 0.498), (0.6, 0.6), (0.33, 0.33, 0.33), (0.5, 0.502), (0.5, 0.4989)],
    )
    def test_other_sums_are_invalid(self, make_experiment, weights):
        experiment = ExperimentConfig.model_validate(make_experiment(weights=weights))
        assert ExperimentRegistry([]).validate(experiment) is False

    def test_boundary_sum_stays_active(self, make_experiment):
        registry = ExperimentRegistry.from_definitions([make_experiment("edge", weights=(0.5, 0.499))])

        assert registry.invalid_ids == set()
        assert [e.experiment_id for e in registry.list_enabled(NOW)] == ["edge"]

    def test_empty_variant_list_is_invalid(self, make_experiment):
        experiment = ExperimentConfig.model_validate(make_experiment(weights=()))
        assert ExperimentRegistry([]).validate(experiment) is False

    def test_invalid_experiment_is_logged_and_inactive(self, make_experiment, caplog):
        with caplog.at_level(logging.WARNING, logger="personalization"):
            registry = ExperimentRegistry.from_definitions([make_experiment("broken", weights=(0.5, 0.3))])

        assert "broken" in registry.invalid_ids
        assert "misconfigured" in caplog.text
        experiment = registry.find_by_id("broken")
        assert experiment is not None
        assert registry.is_active(experiment, NOW) is False
        assert registry.list_enabled(NOW) == []


class TestActiveWindow:
    """Tests for enabled flags and start/end instants."""

    def _registry(self, make_experiment, **overrides):
        return ExperimentRegistry.from_definitions([make_experiment("windowed", **overrides)])

    def test_no_window_is_active(self, make_experiment):
        registry = self._registry(make_experiment)
        assert [e.experiment_id for e in registry.list_enabled(NOW)] == ["windowed"]

    def test_disabled_is_never_active(self, make_experiment):
        registry = self._registry(make_experiment, enabled=False)
        assert registry.list_enabled(NOW) == []

    def test_start_only_is_active_from_start_onward(self, make_experiment):
        registry = self._registry(make_experiment, start_time=NOW.isoformat())
        experiment = registry.find_by_id("windowed")

        assert registry.is_active(experiment, NOW - timedelta(seconds=1)) is False
        assert registry.is_active(experiment, NOW) is True
        assert registry.is_active(experiment, NOW + timedelta(days=3650)) is True

    def test_end_only_is_active_until_end(self, make_experiment):
        registry = self._registry(make_experiment, end_time=NOW.isoformat())
        experiment = registry.find_by_id("windowed")

        assert registry.is_active(experiment, NOW - timedelta(days=3650)) is True
        assert registry.is_active(experiment, NOW) is True
        assert registry.is_active(experiment, NOW + timedelta(seconds=1)) is False

    def test_bounded_window(self, make_experiment):
        registry = self._registry(
            make_experiment,
            start_time=(NOW - timedelta(days=1)).isoformat(),
            end_time=(NOW + timedelta(days=1)).isoformat(),
        )
        experiment = registry.find_by_id("windowed")

        assert registry.is_active(experiment, NOW) is True
        assert registry.is_active(experiment, NOW + timedelta(days=2)) is False
        assert registry.is_active(experiment, NOW - timedelta(days=2)) is False

    def test_naive_instants_are_read_as_utc(self, make_experiment):
        registry = self._registry(make_experiment, start_time="2025-06-01T12:00:00")
        experiment = registry.find_by_id("windowed")

        assert registry.is_active(experiment, NOW) is True
        assert registry.is_active(experiment, NOW - timedelta(minutes=1)) is False


class TestLoading:
    """Tests for building registries from definitions."""

    def test_default_catalog(self):
        registry = ExperimentRegistry.default()

        assert len(registry.list_all()) == 5
        assert registry.invalid_ids == set()
        enabled = [e.experiment_id for e in registry.list_enabled(NOW)]
        assert enabled == ["homepage-cta", "calculator-layout", "ad-placement", "result-presentation"]

    def test_find_by_id_unknown_returns_none(self):
        assert ExperimentRegistry.default().find_by_id("nope") is None

    def test_malformed_definitions_are_skipped(self, make_experiment):
        duplicate_variants = make_experiment("dupes")
        duplicate_variants["variants"][1]["variant_id"] = "control"

        registry = ExperimentRegistry.from_definitions(
            [
                make_experiment("ok"),
                make_experiment("too-heavy", weights=(1.5,)),
                duplicate_variants,
                {"name": "no id"},
            ]
        )

        assert [e.experiment_id for e in registry.list_all()] == ["ok"]

    def test_duplicate_experiment_ids_keep_first(self, make_experiment):
        registry = ExperimentRegistry.from_definitions(
            [make_experiment("same", weights=(0.5, 0.5)), make_experiment("same", weights=(1.0,))]
        )

        assert len(registry.list_all()) == 1
        assert len(registry.find_by_id("same").variants) == 2

    def test_from_file(self, tmp_path, make_experiment):
        path = tmp_path / "experiments.json"
        path.write_text(json.dumps([make_experiment("from-file")]))

        registry = ExperimentRegistry.from_file(str(path))

        assert [e.experiment_id for e in registry.list_all()] == ["from-file"]

    def test_from_missing_file_falls_back_to_catalog(self, tmp_path):
        registry = ExperimentRegistry.from_file(str(tmp_path / "missing.json"))

        assert registry.find_by_id("homepage-cta") is not None

    def test_from_file_with_wrong_shape_falls_back_to_catalog(self, tmp_path):
        path = tmp_path / "experiments.json"
        path.write_text(json.dumps({"experiment_id": "not-a-list"}))

        registry = ExperimentRegistry.from_file(str(path))

        assert registry.find_by_id("homepage-cta") is not None
