from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class VariantConfig(BaseModel):
    """Configuration for a single variant in an experiment."""

    model_config = ConfigDict(frozen=True)

    variant_id: str
    name: str
    weight: float = Field(
        ...,
        gt=0.0,
        le=1.0,
        description="Share of traffic for this variant; a test's weights sum to 1.",
    )
    description: Optional[str] = None


class ExperimentConfig(BaseModel):
    """Static definition of an experiment and its variants."""

    model_config = ConfigDict(frozen=True)

    experiment_id: str = Field(..., description="Unique ID for the experiment.")
    name: str
    description: str = ""
    enabled: bool = True
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    variants: List[VariantConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_unique_variant_ids(self):
        seen = set()
        for variant in self.variants:
            if variant.variant_id in seen:
                raise ValueError(
                    f"Duplicate variant id {variant.variant_id!r} in experiment {self.experiment_id!r}"
                )
            seen.add(variant.variant_id)
        return self


class ExperimentResponseModel(ExperimentConfig):
    active: bool = Field(..., description="Enabled, valid and inside its active window.")
    total_weight: float = Field(..., description="Sum of variant weights, should be 1.0.")


# --- Visitor Assignment ---


class AssignmentModel(BaseModel):
    """A visitor's variant for one experiment."""

    experiment_id: str
    visitor_id: str
    variant_id: str = Field(..., description="The id of the variant the visitor was assigned.")


class VisitorAssignmentsModel(BaseModel):
    visitor_id: str
    assignments: Dict[str, str] = Field(default_factory=dict, description="experiment_id -> variant_id")


# --- Event Tracking ---


class ExperimentEventCreateModel(BaseModel):
    """Schema for tracking an experiment view or conversion (API Input)."""

    visitor_id: str
    action: Literal["view", "conversion"]
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Flexible JSON object.")


class ExperimentEvent(BaseModel):
    """Event handed to the analytics sink."""

    experiment_id: str
    variant_id: str
    visitor_id: str
    action: Literal["view", "conversion"]
    label: str = Field(..., description="'<experiment_id>_<variant_id>'")
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime


class EventResponseModel(BaseModel):
    tracked: bool
    event: Optional[ExperimentEvent] = None
