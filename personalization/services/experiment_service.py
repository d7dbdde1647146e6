# services/experiment_service.py
import logging
from typing import Dict, List, Optional

from personalization.core.clock import Clock, utc_now
from personalization.models.schemas.experiment import ExperimentConfig, VariantConfig
from personalization.repositories.assignment_repo import AssignmentRepository
from personalization.repositories.experiment_repo import ExperimentRegistry
from personalization.services.bucketing import BucketingSource, hash_bucket

logger = logging.getLogger(__name__)


def allocate_variant(variants: List[VariantConfig], draw: float) -> VariantConfig:
    """
    Selects a variant by cumulative weight.

    Variants are walked in declared order; the first whose cumulative weight
    meets or exceeds ``draw`` wins.
    """
    if not variants:
        raise ValueError("Experiment has no variants.")

    cumulative_weight = 0.0
    for variant in variants:
        cumulative_weight += variant.weight
        if draw <= cumulative_weight:
            return variant

    # Float rounding can leave the total just under the draw
    return variants[-1]


class ExperimentService:
    def __init__(
        self,
        registry: ExperimentRegistry,
        assignment_repo: AssignmentRepository,
        bucketing: BucketingSource = hash_bucket,
        clock: Optional[Clock] = None,
    ):
        self.registry = registry
        self.assignment_repo = assignment_repo
        self.bucketing = bucketing
        self.clock = clock or utc_now

    def _active_experiment(self, experiment_id: str) -> Optional[ExperimentConfig]:
        experiment = self.registry.find_by_id(experiment_id)
        if experiment is None or not self.registry.is_active(experiment, self.clock()):
            return None
        return experiment

    def assign(self, experiment_id: str, visitor_id: str, default_variant_id: str) -> str:
        """
        Gets a visitor's variant, creating a stable assignment on first evaluation.

        1. Unknown, disabled, misconfigured or out-of-window experiments get the
           default variant; the store is not touched.
        2. An existing assignment is returned unchanged.
        3. Otherwise a single draw picks a variant, which is then persisted.
           If persistence fails the variant is still returned.
        """
        experiment = self._active_experiment(experiment_id)
        if experiment is None:
            logger.debug(
                "Experiment %s not active; visitor %s gets default %s",
                experiment_id,
                visitor_id,
                default_variant_id,
            )
            return default_variant_id

        existing_variant_id = self.assignment_repo.get_assignment(experiment_id, visitor_id)
        if existing_variant_id is not None:
            return existing_variant_id

        draw = self.bucketing(visitor_id, experiment_id)
        assigned_variant = allocate_variant(experiment.variants, draw)

        persisted = self.assignment_repo.create_assignment(
            experiment_id=experiment_id,
            visitor_id=visitor_id,
            variant_id=assigned_variant.variant_id,
        )
        logger.info(
            "Assigned visitor %s to %s/%s (draw=%.4f, persisted=%s)",
            visitor_id,
            experiment_id,
            assigned_variant.variant_id,
            draw,
            persisted,
        )
        return assigned_variant.variant_id

    def assign_all(self, visitor_id: str, default_variant_id: str = "control") -> Dict[str, str]:
        """Assigns the visitor to every currently active experiment."""
        return {
            experiment.experiment_id: self.assign(
                experiment.experiment_id, visitor_id, default_variant_id
            )
            for experiment in self.registry.list_enabled(self.clock())
        }

    def get_assignments(self, visitor_id: str) -> Dict[str, str]:
        return self.assignment_repo.get_assignments(visitor_id)

    def get_variant(self, experiment_id: str, visitor_id: str) -> Optional[str]:
        """The stored variant, if any. Never creates an assignment."""
        return self.assignment_repo.get_assignment(experiment_id, visitor_id)

    def is_variant(self, experiment_id: str, visitor_id: str, variant_id: str) -> bool:
        return self.get_variant(experiment_id, visitor_id) == variant_id

    def reset_assignments(self, visitor_id: str) -> bool:
        logger.info("Clearing all assignments for visitor %s", visitor_id)
        return self.assignment_repo.clear(visitor_id)
