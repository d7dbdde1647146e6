# services/event_service.py
import logging
from typing import Any, Dict, Optional, Protocol

from personalization.core.clock import Clock, utc_now
from personalization.models.schemas.experiment import ExperimentEvent
from personalization.services.experiment_service import ExperimentService

logger = logging.getLogger(__name__)


class EventSink(Protocol):
    def send(self, event: ExperimentEvent) -> None: ...


class LoggingEventSink:
    """Writes experiment events to the ``personalization.analytics`` logger."""

    def __init__(self):
        self.logger = logging.getLogger("personalization.analytics")

    def send(self, event: ExperimentEvent) -> None:
        self.logger.info(
            "ab_test %s %s",
            event.action,
            event.label,
            extra={"extra_fields": {"category": "ab_test", **event.model_dump(mode="json")}},
        )


class EventService:
    def __init__(
        self,
        experiment_service: ExperimentService,
        sink: Optional[EventSink] = None,
        clock: Optional[Clock] = None,
    ):
        """Initializes the service with the assignment lookup and the analytics sink."""
        self.experiment_service = experiment_service
        self.sink = sink or LoggingEventSink()
        self.clock = clock or utc_now

    def track(
        self,
        experiment_id: str,
        visitor_id: str,
        action: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[ExperimentEvent]:
        """
        Records a view or conversion for the visitor's assigned variant.
        1. Finds the stored assignment; visitors without one emit nothing.
        2. Hands the event to the sink. Sink failures never reach the caller.
        """
        variant_id = self.experiment_service.get_variant(experiment_id, visitor_id)
        if variant_id is None:
            return None

        event = ExperimentEvent(
            experiment_id=experiment_id,
            variant_id=variant_id,
            visitor_id=visitor_id,
            action=action,
            label=f"{experiment_id}_{variant_id}",
            metadata=metadata or {},
            timestamp=self.clock(),
        )
        try:
            self.sink.send(event)
        except Exception:
            logger.exception("Analytics sink rejected %s event for %s", action, experiment_id)
        return event

    def track_view(self, experiment_id: str, visitor_id: str) -> Optional[ExperimentEvent]:
        return self.track(experiment_id, visitor_id, "view")

    def track_conversion(
        self, experiment_id: str, visitor_id: str, metadata: Optional[Dict[str, Any]] = None
    ) -> Optional[ExperimentEvent]:
        return self.track(experiment_id, visitor_id, "conversion", metadata)
