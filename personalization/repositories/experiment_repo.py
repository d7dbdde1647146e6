import json
import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from pydantic import ValidationError

from personalization.core.catalog import DEFAULT_EXPERIMENTS
from personalization.models.schemas.experiment import ExperimentConfig

logger = logging.getLogger(__name__)

WEIGHT_TOLERANCE = 1e-3

# Absorbs float rounding so sums exactly at 1.0 +/- tolerance still pass
_ROUNDING_SLACK = 1e-9


def _as_utc(value: datetime) -> datetime:
    # Naive instants in experiment definitions are read as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ExperimentRegistry:
    """Read-only catalog of experiment definitions.

    Every definition is validated once, when the registry is built. A test
    that fails validation is logged and kept out of assignment; it is never
    reported to callers as an error.
    """

    def __init__(self, experiments: Iterable[ExperimentConfig], tolerance: float = WEIGHT_TOLERANCE):
        self.tolerance = tolerance
        self._experiments: List[ExperimentConfig] = []
        self.invalid_ids: set[str] = set()

        seen = set()
        for experiment in experiments:
            if experiment.experiment_id in seen:
                logger.warning(
                    "Duplicate experiment id %s ignored; the first definition wins",
                    experiment.experiment_id,
                )
                continue
            seen.add(experiment.experiment_id)
            self._experiments.append(experiment)

            if not self.validate(experiment):
                total = sum(v.weight for v in experiment.variants)
                logger.warning(
                    "Experiment %s is misconfigured (%d variants, weights sum to %.4f); treating it as inactive",
                    experiment.experiment_id,
                    len(experiment.variants),
                    total,
                )
                self.invalid_ids.add(experiment.experiment_id)

    @classmethod
    def from_definitions(cls, definitions: Iterable[dict], tolerance: float = WEIGHT_TOLERANCE) -> "ExperimentRegistry":
        """Builds a registry from raw dicts, skipping entries that fail schema parsing."""
        experiments = []
        for definition in definitions:
            try:
                experiments.append(ExperimentConfig.model_validate(definition))
            except ValidationError as e:
                logger.warning(
                    "Skipping malformed experiment definition %r: %s",
                    definition.get("experiment_id") if isinstance(definition, dict) else definition,
                    e,
                )
        return cls(experiments, tolerance=tolerance)

    @classmethod
    def from_file(cls, path: str, tolerance: float = WEIGHT_TOLERANCE) -> "ExperimentRegistry":
        """Loads definitions from a JSON list, falling back to the built-in catalog."""
        try:
            with open(path, encoding="utf-8") as fh:
                definitions = json.load(fh)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Could not load experiments from %s: %s; using built-in catalog", path, e)
            definitions = DEFAULT_EXPERIMENTS

        if not isinstance(definitions, list):
            logger.error("Experiments file %s must hold a JSON list; using built-in catalog", path)
            definitions = DEFAULT_EXPERIMENTS

        return cls.from_definitions(definitions, tolerance=tolerance)

    @classmethod
    def default(cls, tolerance: float = WEIGHT_TOLERANCE) -> "ExperimentRegistry":
        return cls.from_definitions(DEFAULT_EXPERIMENTS, tolerance=tolerance)

    def validate(self, experiment: ExperimentConfig) -> bool:
        """True iff the experiment has variants whose weights sum to 1.0 within tolerance."""
        if not experiment.variants:
            return False
        total = sum(v.weight for v in experiment.variants)
        return abs(total - 1.0) <= self.tolerance + _ROUNDING_SLACK

    def is_active(self, experiment: ExperimentConfig, now: Optional[datetime] = None) -> bool:
        if not experiment.enabled or experiment.experiment_id in self.invalid_ids:
            return False

        now = _as_utc(now or datetime.now(timezone.utc))
        if experiment.start_time and now < _as_utc(experiment.start_time):
            return False
        if experiment.end_time and now > _as_utc(experiment.end_time):
            return False
        return True

    def list_all(self) -> List[ExperimentConfig]:
        return list(self._experiments)

    def list_enabled(self, now: Optional[datetime] = None) -> List[ExperimentConfig]:
        """Experiments currently eligible for assignment, in declaration order."""
        return [e for e in self._experiments if self.is_active(e, now)]

    def find_by_id(self, experiment_id: str) -> Optional[ExperimentConfig]:
        for experiment in self._experiments:
            if experiment.experiment_id == experiment_id:
                return experiment
        return None
