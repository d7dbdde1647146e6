"""Key-value persistence capability behind the assignment and usage stores.

Values are JSON text. A backend either commits a write fully or raises
``StorageError``; repositories decide how to degrade. Read-modify-write goes
through ``update`` so concurrent requests for one visitor do not lose writes.
"""
import logging
import threading
from typing import Callable, Dict, Optional, Protocol, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from personalization.models.orm.storage_entry import StorageEntryORM

logger = logging.getLogger(__name__)

ASSIGNMENTS_SCOPE = "assignments"
USAGE_HISTORY_SCOPE = "usage-history"

# Receives the stored value (None when absent) and returns the value to store
Mutator = Callable[[Optional[str]], str]


class StorageError(Exception):
    """Raised when the backend cannot complete a read or write."""


class StorageUnavailableError(StorageError):
    """Raised when persistence is disabled or denied."""


class KeyValueStorage(Protocol):
    def get(self, scope: str, key: str) -> Optional[str]: ...

    def set(self, scope: str, key: str, value: str) -> None: ...

    def remove(self, scope: str, key: str) -> None: ...

    def update(self, scope: str, key: str, mutate: Mutator) -> str: ...


class InMemoryStorage:
    """Process-local storage; lost on restart."""

    def __init__(self):
        self._data: Dict[Tuple[str, str], str] = {}
        self._lock = threading.Lock()

    def get(self, scope: str, key: str) -> Optional[str]:
        return self._data.get((scope, key))

    def set(self, scope: str, key: str, value: str) -> None:
        with self._lock:
            self._data[(scope, key)] = value

    def remove(self, scope: str, key: str) -> None:
        with self._lock:
            self._data.pop((scope, key), None)

    def update(self, scope: str, key: str, mutate: Mutator) -> str:
        with self._lock:
            value = mutate(self._data.get((scope, key)))
            self._data[(scope, key)] = value
        return value


class DisabledStorage:
    """Storage that refuses every call, used when persistence is turned off."""

    def get(self, scope: str, key: str) -> Optional[str]:
        raise StorageUnavailableError("persistence is disabled")

    def set(self, scope: str, key: str, value: str) -> None:
        raise StorageUnavailableError("persistence is disabled")

    def remove(self, scope: str, key: str) -> None:
        raise StorageUnavailableError("persistence is disabled")

    def update(self, scope: str, key: str, mutate: Mutator) -> str:
        raise StorageUnavailableError("persistence is disabled")


class SqlKeyValueStorage:
    """Storage backed by the ``storage_entries`` table."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, scope: str, key: str) -> Optional[str]:
        try:
            stmt = select(StorageEntryORM.value).where(
                StorageEntryORM.scope == scope, StorageEntryORM.key == key
            )
            return self.db.scalars(stmt).one_or_none()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read {scope}/{key}: {e}") from e

    def set(self, scope: str, key: str, value: str) -> None:
        try:
            entry = self.db.get(StorageEntryORM, (scope, key))
            if entry is None:
                self.db.add(StorageEntryORM(scope=scope, key=key, value=value))
            else:
                entry.value = value
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError(f"Failed to write {scope}/{key}: {e}") from e

    def remove(self, scope: str, key: str) -> None:
        try:
            entry = self.db.get(StorageEntryORM, (scope, key))
            if entry is not None:
                self.db.delete(entry)
                self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError(f"Failed to remove {scope}/{key}: {e}") from e

    def update(self, scope: str, key: str, mutate: Mutator) -> str:
        """
        Reads, mutates and writes one entry in a single transaction.

        The row is locked with ``SELECT ... FOR UPDATE`` where the dialect
        supports it. When two requests race to create the same row, the loser
        sees an IntegrityError and retries once against the winner's value.
        """
        try:
            return self._update_once(scope, key, mutate)
        except IntegrityError:
            logger.info("Concurrent insert of %s/%s; retrying against the stored row", scope, key)

        try:
            return self._update_once(scope, key, mutate)
        except IntegrityError as e:
            raise StorageError(f"Failed to update {scope}/{key}: {e}") from e

    def _update_once(self, scope: str, key: str, mutate: Mutator) -> str:
        try:
            stmt = (
                select(StorageEntryORM)
                .where(StorageEntryORM.scope == scope, StorageEntryORM.key == key)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            entry = self.db.scalars(stmt).one_or_none()
            value = mutate(entry.value if entry is not None else None)
            if entry is None:
                self.db.add(StorageEntryORM(scope=scope, key=key, value=value))
            else:
                entry.value = value
            self.db.commit()
            return value
        except IntegrityError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError(f"Failed to update {scope}/{key}: {e}") from e
        except Exception:
            self.db.rollback()
            raise
