import logging
from contextlib import asynccontextmanager
from typing import List

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Path, Query, Response
from starlette import status

from personalization.core.auth import require_auth_token
from personalization.core.db import engine
from personalization.core.dependencies import (
    get_affinity_graph,
    get_event_sink,
    get_experiment_service,
    get_recommendation_service,
    get_registry,
    get_storage,
)
from personalization.core.logging import RequestLoggingMiddleware, configure_logging
from personalization.core.settings import config_settings
from personalization.core.storage import KeyValueStorage
from personalization.models.orm.base import Base
from personalization.models.schemas.experiment import (
    AssignmentModel,
    EventResponseModel,
    ExperimentConfig,
    ExperimentEventCreateModel,
    ExperimentResponseModel,
    VisitorAssignmentsModel,
)
from personalization.models.schemas.recommendation import (
    RecommendationRequestModel,
    RecommendationResponseModel,
    RelatedTool,
)
from personalization.models.schemas.usage import (
    ToolCountModel,
    UsageCreateModel,
    UsageEventModel,
    UsageHistoryResponseModel,
)
from personalization.repositories.affinity_repo import AffinityGraph
from personalization.repositories.experiment_repo import ExperimentRegistry
from personalization.repositories.usage_repo import UsageHistoryRepository
from personalization.services.event_service import EventService, EventSink
from personalization.services.experiment_service import ExperimentService
from personalization.services.recommendation_service import (
    RecommendationService,
    blend_history,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(config_settings)
    Base.metadata.create_all(bind=engine)
    logger.info("Personalization service started (env=%s)", config_settings.ENV)
    yield


app = FastAPI(
    title="Tool catalog personalization",
    description="Experiment assignment and related-tool recommendations",
    version="0.1.0",
    dependencies=[Depends(require_auth_token)],
    lifespan=lifespan,
)
app.add_middleware(RequestLoggingMiddleware)


def _experiment_response(registry: ExperimentRegistry, experiment: ExperimentConfig) -> ExperimentResponseModel:
    return ExperimentResponseModel(
        **experiment.model_dump(),
        active=registry.is_active(experiment),
        total_weight=sum(v.weight for v in experiment.variants),
    )


def _usage_repo(storage: KeyValueStorage) -> UsageHistoryRepository:
    return UsageHistoryRepository(storage, capacity=config_settings.USAGE_HISTORY_CAPACITY)


# --- Experiments ---


@app.get(
    "/experiments",
    response_model=List[ExperimentResponseModel],
    summary="List experiments currently eligible for assignment",
)
def get_experiments(
    include_inactive: bool = Query(False, description="Also list disabled and misconfigured experiments."),
    registry: ExperimentRegistry = Depends(get_registry),
):
    experiments = registry.list_all() if include_inactive else registry.list_enabled()
    return [_experiment_response(registry, e) for e in experiments]


@app.get("/experiments/{experiment_id}", response_model=ExperimentResponseModel)
def get_experiment(
    experiment_id: str = Path(..., description="The ID of the experiment."),
    registry: ExperimentRegistry = Depends(get_registry),
):
    experiment = registry.find_by_id(experiment_id)
    if experiment is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Experiment {experiment_id} not found.",
        )
    return _experiment_response(registry, experiment)


@app.get(
    "/experiments/{experiment_id}/assignment/{visitor_id}",
    response_model=AssignmentModel,
    status_code=status.HTTP_200_OK,
    summary="Get visitor assignment",
)
def get_visitor_variant_assignment(
    experiment_id: str = Path(..., description="The ID of the experiment."),
    visitor_id: str = Path(..., description="The ID of the visitor."),
    default_variant_id: str = Query("control", description="Returned when the experiment is not active."),
    experiment_service: ExperimentService = Depends(get_experiment_service),
):
    """
    Retrieves a visitor's variant assignment. If no assignment exists, a new,
    persistent assignment is generated from the variant weights.
    """
    variant_id = experiment_service.assign(experiment_id, visitor_id, default_variant_id)
    return AssignmentModel(experiment_id=experiment_id, visitor_id=visitor_id, variant_id=variant_id)


@app.post(
    "/experiments/{experiment_id}/events",
    response_model=EventResponseModel,
    summary="Track an experiment view or conversion.",
)
def post_experiment_event(
    event_data: ExperimentEventCreateModel,
    experiment_id: str = Path(..., description="The ID of the experiment."),
    experiment_service: ExperimentService = Depends(get_experiment_service),
    sink: EventSink = Depends(get_event_sink),
):
    event_service = EventService(experiment_service, sink)
    event = event_service.track(
        experiment_id, event_data.visitor_id, event_data.action, event_data.metadata
    )
    return EventResponseModel(tracked=event is not None, event=event)


# --- Visitors ---


@app.get("/visitors/{visitor_id}/assignments", response_model=VisitorAssignmentsModel)
def get_visitor_assignments(
    visitor_id: str,
    experiment_service: ExperimentService = Depends(get_experiment_service),
):
    return VisitorAssignmentsModel(
        visitor_id=visitor_id, assignments=experiment_service.get_assignments(visitor_id)
    )


@app.post("/visitors/{visitor_id}/assignments", response_model=VisitorAssignmentsModel)
def post_visitor_assignments(
    visitor_id: str,
    default_variant_id: str = Query("control"),
    experiment_service: ExperimentService = Depends(get_experiment_service),
):
    """Assigns the visitor to every active experiment."""
    assignments = experiment_service.assign_all(visitor_id, default_variant_id)
    return VisitorAssignmentsModel(visitor_id=visitor_id, assignments=assignments)


@app.delete("/visitors/{visitor_id}/assignments", status_code=status.HTTP_204_NO_CONTENT)
def delete_visitor_assignments(
    visitor_id: str,
    experiment_service: ExperimentService = Depends(get_experiment_service),
):
    experiment_service.reset_assignments(visitor_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post(
    "/visitors/{visitor_id}/usage",
    response_model=UsageEventModel,
    status_code=status.HTTP_201_CREATED,
    summary="Record a tool visit.",
)
def post_usage(
    usage_data: UsageCreateModel,
    visitor_id: str,
    storage: KeyValueStorage = Depends(get_storage),
):
    return _usage_repo(storage).record(visitor_id, usage_data.tool_id)


@app.get("/visitors/{visitor_id}/usage", response_model=UsageHistoryResponseModel)
def get_usage(visitor_id: str, storage: KeyValueStorage = Depends(get_storage)):
    return UsageHistoryResponseModel(visitor_id=visitor_id, events=_usage_repo(storage).history(visitor_id))


@app.get("/visitors/{visitor_id}/usage/recent", response_model=List[str])
def get_recent_usage(
    visitor_id: str,
    limit: int = Query(3, ge=1),
    storage: KeyValueStorage = Depends(get_storage),
):
    return _usage_repo(storage).recent_distinct(visitor_id, limit)


@app.get("/visitors/{visitor_id}/usage/frequent", response_model=List[ToolCountModel])
def get_frequent_usage(
    visitor_id: str,
    limit: int = Query(4, ge=1),
    storage: KeyValueStorage = Depends(get_storage),
):
    return _usage_repo(storage).frequent(visitor_id, limit)


# --- Recommendations ---


@app.get("/tools/related", response_model=List[RelatedTool])
def get_related_tools(
    tool_id: str = Query(..., description="Tool path, e.g. '/tip-calculator'."),
    graph: AffinityGraph = Depends(get_affinity_graph),
):
    return graph.related_to(tool_id)


@app.post("/recommendations", response_model=RecommendationResponseModel)
def post_recommendations(
    recommendation_request: RecommendationRequestModel,
    recommendation_service: RecommendationService = Depends(get_recommendation_service),
    storage: KeyValueStorage = Depends(get_storage),
):
    """
    Ranked related tools for a calculator page. Truncation to ``limit``
    happens here, after the optional history blend.
    """
    tool_id = recommendation_request.tool_id
    recommendations = recommendation_service.recommend(tool_id, recommendation_request.context)

    if recommendation_request.include_recent and recommendation_request.visitor_id:
        recent = _usage_repo(storage).recent_distinct(
            recommendation_request.visitor_id, config_settings.DEFAULT_RECOMMENDATION_LIMIT
        )
        recommendations = blend_history(recommendations, recent, exclude=tool_id)

    limit = recommendation_request.limit or config_settings.DEFAULT_RECOMMENDATION_LIMIT
    return RecommendationResponseModel(tool_id=tool_id, recommendations=recommendations[:limit])


if __name__ == "__main__":
    uvicorn.run("personalization.main:app", host="0.0.0.0", port=8000, reload=True)
