from enum import Enum
from typing import Any, Dict, List, Optional, TypedDict, Union

from pydantic import BaseModel, ConfigDict, Field


class CalculationContext(TypedDict, total=False):
    """Result fields a calculator page passes along.

    Recognised keys: ``amount`` (loan), ``bmi`` (BMI), ``savings`` (discount).
    Any other key is ignored.
    """

    amount: Union[float, int, str]
    bmi: Union[float, int, str]
    savings: Union[float, int, str]


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class RelatedTool(BaseModel):
    """Curated directed edge from a source tool to ``tool_id``."""

    model_config = ConfigDict(frozen=True)

    tool_id: str
    reason: str


class Recommendation(BaseModel):
    tool_id: str
    reason: str
    priority: Priority


class RecommendationRequestModel(BaseModel):
    tool_id: str
    context: Optional[Dict[str, Any]] = Field(
        None, description="Calculation results; keys no rule reads are ignored."
    )
    limit: Optional[int] = Field(None, ge=1, description="Defaults to DEFAULT_RECOMMENDATION_LIMIT.")
    visitor_id: Optional[str] = None
    include_recent: bool = Field(
        False, description="Append the visitor's recently used tools after the ranked list."
    )


class RecommendationResponseModel(BaseModel):
    tool_id: str
    recommendations: List[Recommendation] = Field(default_factory=list)
