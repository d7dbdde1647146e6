"""Ranks related tools from the affinity graph and calculation results.

Static edges come first, ranked by curation order. Context rules can then
append tools the current result makes relevant. Priorities describe how
strongly to present an entry; they never reorder the list.
"""
import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from personalization.models.schemas.recommendation import Priority, Recommendation
from personalization.repositories.affinity_repo import AffinityGraph

logger = logging.getLogger(__name__)

_POSITION_PRIORITY = (Priority.HIGH, Priority.MEDIUM)


@dataclass(frozen=True)
class ContextRule:
    """Appends ``target_tool`` when ``field`` in the context exceeds ``threshold``
    on ``source_tool``'s page."""

    source_tool: str
    field: str
    threshold: float
    target_tool: str
    reason: str

    def fires(self, tool_id: str, context: Mapping[str, Any]) -> bool:
        if tool_id != self.source_tool or self.field not in context:
            return False
        value = context[self.field]
        if isinstance(value, bool):
            return False
        try:
            return float(value) > self.threshold
        except (TypeError, ValueError):
            return False


DEFAULT_CONTEXT_RULES = (
    ContextRule(
        source_tool="/loan-calculator",
        field="amount",
        threshold=100000,
        target_tool="/bmi-calculator",
        reason="Big purchase ahead - stay healthy during the journey",
    ),
    ContextRule(
        source_tool="/bmi-calculator",
        field="bmi",
        threshold=25,
        target_tool="/age-calculator",
        reason="Set age-based health goals",
    ),
    ContextRule(
        source_tool="/discount-calculator",
        field="savings",
        threshold=100,
        target_tool="/loan-calculator",
        reason="Put your savings toward a goal",
    ),
)


class RecommendationService:
    def __init__(self, graph: AffinityGraph, rules: Sequence[ContextRule] = DEFAULT_CONTEXT_RULES):
        self.graph = graph
        self.rules = tuple(rules)

    def recommend(
        self, tool_id: str, context: Optional[Mapping[str, Any]] = None
    ) -> List[Recommendation]:
        """Full deduplicated recommendation list for ``tool_id``; callers truncate."""
        recommendations = [
            Recommendation(
                tool_id=related.tool_id,
                reason=related.reason,
                priority=_POSITION_PRIORITY[index] if index < len(_POSITION_PRIORITY) else Priority.LOW,
            )
            for index, related in enumerate(self.graph.related_to(tool_id))
        ]

        if context:
            present = {r.tool_id for r in recommendations}
            for rule in self.rules:
                if rule.target_tool in present or not rule.fires(tool_id, context):
                    continue
                logger.debug("Context rule %s.%s fired for %s", rule.source_tool, rule.field, tool_id)
                recommendations.append(
                    Recommendation(tool_id=rule.target_tool, reason=rule.reason, priority=Priority.MEDIUM)
                )
                present.add(rule.target_tool)

        return recommendations


def blend_history(
    recommendations: List[Recommendation],
    recent_tool_ids: Iterable[str],
    exclude: Optional[str] = None,
) -> List[Recommendation]:
    """Appends recently used tools that aren't already recommended, at low priority."""
    blended = list(recommendations)
    present = {r.tool_id for r in blended}
    if exclude:
        present.add(exclude)
    for tool_id in recent_tool_ids:
        if tool_id in present:
            continue
        blended.append(Recommendation(tool_id=tool_id, reason="Recently used", priority=Priority.LOW))
        present.add(tool_id)
    return blended
