from typing import Dict, Iterable, List, Mapping, Tuple

from personalization.core.catalog import DEFAULT_RELATIONS
from personalization.models.schemas.recommendation import RelatedTool


class AffinityGraph:
    """Curated, directed relations between tools.

    Edge order is significant: index 0 is the strongest relation.
    """

    def __init__(self, relations: Mapping[str, Iterable[Tuple[str, str]]]):
        self._relations: Dict[str, Tuple[RelatedTool, ...]] = {
            source: tuple(RelatedTool(tool_id=target, reason=reason) for target, reason in edges)
            for source, edges in relations.items()
        }

    @classmethod
    def default(cls) -> "AffinityGraph":
        return cls(DEFAULT_RELATIONS)

    def related_to(self, tool_id: str) -> List[RelatedTool]:
        """Related tools for ``tool_id``; unknown tools have none."""
        return list(self._relations.get(tool_id, ()))
