"""Process-wide collaborators, wired once and injected into the routes."""
import logging
from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from .db import get_db
from .settings import config_settings
from .storage import DisabledStorage, InMemoryStorage, KeyValueStorage, SqlKeyValueStorage
from personalization.repositories.affinity_repo import AffinityGraph
from personalization.repositories.assignment_repo import AssignmentRepository
from personalization.repositories.experiment_repo import ExperimentRegistry
from personalization.services.bucketing import BucketingSource, hash_bucket, seeded_random_bucket
from personalization.services.event_service import EventSink, LoggingEventSink
from personalization.services.experiment_service import ExperimentService
from personalization.services.recommendation_service import RecommendationService

logger = logging.getLogger(__name__)


@lru_cache
def get_registry() -> ExperimentRegistry:
    if config_settings.EXPERIMENTS_FILE:
        logger.info("Loading experiments from %s", config_settings.EXPERIMENTS_FILE)
        return ExperimentRegistry.from_file(
            config_settings.EXPERIMENTS_FILE, tolerance=config_settings.WEIGHT_TOLERANCE
        )
    return ExperimentRegistry.default(tolerance=config_settings.WEIGHT_TOLERANCE)


@lru_cache
def get_affinity_graph() -> AffinityGraph:
    return AffinityGraph.default()


@lru_cache
def get_recommendation_service() -> RecommendationService:
    return RecommendationService(get_affinity_graph())


@lru_cache
def get_event_sink() -> EventSink:
    return LoggingEventSink()


@lru_cache
def _memory_storage() -> InMemoryStorage:
    return InMemoryStorage()


def get_storage(db: Session = Depends(get_db)) -> KeyValueStorage:
    """Storage for the current request, chosen by ``STORAGE_BACKEND``."""
    if not config_settings.PERSISTENCE_ENABLED:
        return DisabledStorage()
    if config_settings.STORAGE_BACKEND == "memory":
        return _memory_storage()
    return SqlKeyValueStorage(db)


def get_bucketing() -> BucketingSource:
    if config_settings.BUCKETING_SEED is not None:
        return seeded_random_bucket(config_settings.BUCKETING_SEED)
    return hash_bucket


def get_experiment_service(
    registry: ExperimentRegistry = Depends(get_registry),
    storage: KeyValueStorage = Depends(get_storage),
    bucketing: BucketingSource = Depends(get_bucketing),
) -> ExperimentService:
    return ExperimentService(registry, AssignmentRepository(storage), bucketing=bucketing)
