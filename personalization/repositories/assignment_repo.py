import json
import logging
from typing import Dict, Optional

from personalization.core.storage import ASSIGNMENTS_SCOPE, KeyValueStorage, StorageError

logger = logging.getLogger(__name__)


class AssignmentRepository:
    """Per-visitor table of experiment_id -> variant_id.

    Storage failures are absorbed here: reads come back empty and writes
    report ``False``, so callers keep working without persistence.
    """

    def __init__(self, storage: KeyValueStorage):
        self.storage = storage

    def _load(self, visitor_id: str) -> Dict[str, str]:
        # Raises StorageError
        return self._decode(visitor_id, self.storage.get(ASSIGNMENTS_SCOPE, visitor_id))

    def _decode(self, visitor_id: str, raw: Optional[str]) -> Dict[str, str]:
        # Unreadable data is discarded.
        if raw is None:
            return {}

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error("Discarding unreadable assignments for visitor %s: %s", visitor_id, e)
            return {}

        if not isinstance(data, dict):
            logger.error("Discarding assignments for visitor %s: expected an object", visitor_id)
            return {}

        return {str(k): str(v) for k, v in data.items()}

    def get_assignments(self, visitor_id: str) -> Dict[str, str]:
        try:
            return self._load(visitor_id)
        except StorageError as e:
            logger.warning("Assignment store unavailable for visitor %s: %s", visitor_id, e)
            return {}

    def get_assignment(self, experiment_id: str, visitor_id: str) -> Optional[str]:
        """Retrieves the persisted variant id for a visitor in one experiment."""
        return self.get_assignments(visitor_id).get(experiment_id)

    def create_assignment(self, experiment_id: str, visitor_id: str, variant_id: str) -> bool:
        """
        Persists a new assignment and returns whether it was stored.
        Note: the ExperimentService must ensure this isn't a duplicate.
        """

        def add(raw: Optional[str]) -> str:
            assignments = self._decode(visitor_id, raw)
            assignments[experiment_id] = variant_id
            return json.dumps(assignments)

        try:
            self.storage.update(ASSIGNMENTS_SCOPE, visitor_id, add)
        except StorageError as e:
            logger.warning(
                "Could not persist assignment %s=%s for visitor %s: %s",
                experiment_id,
                variant_id,
                visitor_id,
                e,
            )
            return False
        return True

    def clear(self, visitor_id: str) -> bool:
        try:
            self.storage.remove(ASSIGNMENTS_SCOPE, visitor_id)
        except StorageError as e:
            logger.warning("Could not clear assignments for visitor %s: %s", visitor_id, e)
            return False
        return True
