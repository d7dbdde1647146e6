from typing import List

from pydantic import BaseModel, Field


class UsageEventModel(BaseModel):
    """One tool visit; ``timestamp`` is epoch milliseconds."""

    tool_id: str
    timestamp: int


class UsageCreateModel(BaseModel):
    tool_id: str = Field(..., description="Tool path, e.g. '/tip-calculator'.")


class ToolCountModel(BaseModel):
    tool_id: str
    count: int


class UsageHistoryResponseModel(BaseModel):
    visitor_id: str
    events: List[UsageEventModel] = Field(default_factory=list, description="Newest first.")
