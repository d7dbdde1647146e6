"""Tests for the key-value storage backends."""
import json

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from personalization.core.storage import (
    ASSIGNMENTS_SCOPE,
    USAGE_HISTORY_SCOPE,
    DisabledStorage,
    InMemoryStorage,
    SqlKeyValueStorage,
    StorageError,
    StorageUnavailableError,
)
from personalization.models.orm.storage_entry import StorageEntryORM
from personalization.repositories.assignment_repo import AssignmentRepository


@pytest.fixture(params=["memory", "sql"])
def backend(request, db_session):
    if request.param == "memory":
        return InMemoryStorage()
    return SqlKeyValueStorage(db_session)


class TestKeyValueContract:
    def test_missing_key_is_none(self, backend):
        assert backend.get(ASSIGNMENTS_SCOPE, "visitor-1") is None

    def test_set_get_overwrite(self, backend):
        backend.set(ASSIGNMENTS_SCOPE, "visitor-1", "first")
        backend.set(ASSIGNMENTS_SCOPE, "visitor-1", "second")

        assert backend.get(ASSIGNMENTS_SCOPE, "visitor-1") == "second"

    def test_scopes_are_separate(self, backend):
        backend.set(ASSIGNMENTS_SCOPE, "visitor-1", "a")
        backend.set(USAGE_HISTORY_SCOPE, "visitor-1", "b")

        assert backend.get(ASSIGNMENTS_SCOPE, "visitor-1") == "a"
        assert backend.get(USAGE_HISTORY_SCOPE, "visitor-1") == "b"

    def test_remove(self, backend):
        backend.set(ASSIGNMENTS_SCOPE, "visitor-1", "a")
        backend.remove(ASSIGNMENTS_SCOPE, "visitor-1")
        backend.remove(ASSIGNMENTS_SCOPE, "never-set")

        assert backend.get(ASSIGNMENTS_SCOPE, "visitor-1") is None

    def test_update_sees_stored_value(self, backend):
        seen = []

        def append_b(raw):
            seen.append(raw)
            return (raw or "") + "b"

        assert backend.update(ASSIGNMENTS_SCOPE, "visitor-1", append_b) == "b"
        assert backend.update(ASSIGNMENTS_SCOPE, "visitor-1", append_b) == "bb"

        assert seen == [None, "b"]
        assert backend.get(ASSIGNMENTS_SCOPE, "visitor-1") == "bb"

    def test_failing_mutation_writes_nothing(self, backend):
        backend.set(ASSIGNMENTS_SCOPE, "visitor-1", "a")

        def explode(raw):
            raise ValueError("bad data")

        with pytest.raises(ValueError):
            backend.update(ASSIGNMENTS_SCOPE, "visitor-1", explode)
        assert backend.get(ASSIGNMENTS_SCOPE, "visitor-1") == "a"


class TestSqlKeyValueStorage:
    def test_rows_are_committed(self, db_session):
        SqlKeyValueStorage(db_session).set(ASSIGNMENTS_SCOPE, "visitor-1", '{"exp": "control"}')

        entry = db_session.get(StorageEntryORM, (ASSIGNMENTS_SCOPE, "visitor-1"))
        assert entry.value == '{"exp": "control"}'
        assert entry.updated_at is not None
        assert entry.to_dict()["key"] == "visitor-1"

    def test_assignment_table_layout(self, db_session):
        repo = AssignmentRepository(SqlKeyValueStorage(db_session))
        repo.create_assignment("homepage-cta", "visitor-1", "control")
        repo.create_assignment("ad-placement", "visitor-1", "variant-a")

        entry = db_session.get(StorageEntryORM, (ASSIGNMENTS_SCOPE, "visitor-1"))
        assert json.loads(entry.value) == {"homepage-cta": "control", "ad-placement": "variant-a"}

    def test_database_errors_become_storage_errors(self, db_session, monkeypatch):
        def broken(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("database is locked"))

        monkeypatch.setattr(db_session, "scalars", broken)
        monkeypatch.setattr(db_session, "get", broken)
        storage = SqlKeyValueStorage(db_session)

        with pytest.raises(StorageError):
            storage.get(ASSIGNMENTS_SCOPE, "visitor-1")
        with pytest.raises(StorageError):
            storage.set(ASSIGNMENTS_SCOPE, "visitor-1", "x")
        with pytest.raises(StorageError):
            storage.remove(ASSIGNMENTS_SCOPE, "visitor-1")
        with pytest.raises(StorageError):
            storage.update(ASSIGNMENTS_SCOPE, "visitor-1", lambda raw: "x")

    def test_insert_race_is_retried_against_the_stored_row(self, db_session, monkeypatch):
        real_commit = db_session.commit
        commits = []

        def conflict_first(*args, **kwargs):
            commits.append(1)
            if len(commits) == 1:
                raise IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))
            return real_commit(*args, **kwargs)

        monkeypatch.setattr(db_session, "commit", conflict_first)
        seen = []

        def mutate(raw):
            seen.append(raw)
            return "stored"

        storage = SqlKeyValueStorage(db_session)

        assert storage.update(ASSIGNMENTS_SCOPE, "visitor-1", mutate) == "stored"
        assert seen == [None, None]
        assert storage.get(ASSIGNMENTS_SCOPE, "visitor-1") == "stored"

    def test_repeated_insert_conflict_becomes_storage_error(self, db_session, monkeypatch):
        def always_conflict(*args, **kwargs):
            raise IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))

        monkeypatch.setattr(db_session, "commit", always_conflict)

        with pytest.raises(StorageError):
            SqlKeyValueStorage(db_session).update(ASSIGNMENTS_SCOPE, "visitor-1", lambda raw: "x")


class TestDisabledStorage:
    @pytest.mark.parametrize(
        "call",
        [
            lambda s: s.get(ASSIGNMENTS_SCOPE, "v"),
            lambda s: s.set(ASSIGNMENTS_SCOPE, "v", "x"),
            lambda s: s.remove(ASSIGNMENTS_SCOPE, "v"),
            lambda s: s.update(ASSIGNMENTS_SCOPE, "v", lambda raw: "x"),
        ],
    )
    def test_every_call_is_refused(self, call):
        with pytest.raises(StorageUnavailableError):
            call(DisabledStorage())
