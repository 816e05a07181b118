"""Common utilities for tests."""

from __future__ import annotations

import datetime
import unittest.mock
from typing import Any, Optional

from mockfirestore import CollectionReference, MockFirestore, Query
from mockfirestore.document import DocumentReference

START = datetime.datetime(2024, 5, 1, 12, 0, tzinfo=datetime.timezone.utc)


def patch_mockfirestore() -> None:
    """Apply monkeypatches to mockfirestore to support FieldFilter and transactions."""

    def collection_where(
        self: Any,
        field_path: Optional[str] = None,
        op_string: Optional[str] = None,
        value: Any = None,
        filter: Any = None,
    ) -> Any:
        if filter:
            return self._where(filter.field_path, filter.op_string, filter.value)
        return self._where(field_path, op_string, value)

    if not hasattr(CollectionReference, "_where"):
        CollectionReference._where = CollectionReference.where
        CollectionReference.where = collection_where

    def query_where(
        self: Any,
        field_path: Optional[str] = None,
        op_string: Optional[str] = None,
        value: Any = None,
        filter: Any = None,
    ) -> Any:
        if filter:
            return self._where(filter.field_path, filter.op_string, filter.value)
        return self._where(field_path, op_string, value)

    if not hasattr(Query, "_where"):
        Query._where = Query.where
        Query.where = query_where

    def doc_ref_eq(self: Any, other: Any) -> bool:
        if not isinstance(other, DocumentReference):
            return False
        return self._path == other._path

    if not hasattr(DocumentReference, "_orig_eq"):
        DocumentReference._orig_eq = DocumentReference.__eq__
        DocumentReference.__eq__ = doc_ref_eq
        # Defining __eq__ drops the inherited hash; get_all puts refs in a set.
        DocumentReference.__hash__ = lambda self: hash(tuple(self._path))

    # Transactional reads pass the transaction through.
    if not hasattr(DocumentReference, "_orig_get"):
        DocumentReference._orig_get = DocumentReference.get

        def doc_ref_get(self: Any, transaction: Any = None) -> Any:
            return self._orig_get()

        DocumentReference.get = doc_ref_get


class MockBatch:
    """Write batch that applies its writes on commit."""

    def __init__(self, db: Any) -> None:
        self.db = db
        self.writes: list[tuple[str, Any, Any, bool]] = []
        self.commit = unittest.mock.MagicMock(side_effect=self._real_commit)

    def set(self, ref: Any, data: Any, merge: bool = False) -> None:
        self.writes.append(("set", ref, data, merge))

    def update(self, ref: Any, data: Any) -> None:
        self.writes.append(("update", ref, data, False))

    def delete(self, ref: Any) -> None:
        self.writes.append(("delete", ref, None, False))

    def _real_commit(self) -> None:
        for op, ref, data, merge in self.writes:
            if op == "set":
                ref.set(data, merge=merge)
            elif op == "update":
                ref.update(data)
            else:
                ref.delete()


class MockTransaction:
    """Transaction whose writes land immediately.

    Use together with ``firestore.transactional`` patched to return the
    wrapped function unchanged.
    """

    def __init__(self) -> None:
        self.set_calls: list[tuple[Any, Any]] = []

    def set(self, ref: Any, data: Any, merge: bool = False) -> None:
        self.set_calls.append((ref, data))
        ref.set(data, merge=merge)

    def update(self, ref: Any, data: Any) -> None:
        ref.update(data)

    def delete(self, ref: Any) -> None:
        ref.delete()


def make_db() -> MockFirestore:
    """A patched MockFirestore with batch and transaction fakes attached."""
    patch_mockfirestore()
    db = MockFirestore()
    db.batch = unittest.mock.MagicMock(side_effect=lambda: MockBatch(db))
    db.transaction = unittest.mock.MagicMock(side_effect=MockTransaction)
    return db


def patch_transactional() -> Any:
    """Patch ``firestore.transactional`` to call the function directly."""
    return unittest.mock.patch(
        "firebase_admin.firestore.transactional", side_effect=lambda fn: fn
    )


class FakeClock:
    """Deterministic clock; each call moves time forward by ``step`` seconds."""

    def __init__(
        self, start: datetime.datetime = START, step: float = 0.0
    ) -> None:
        self.now = start
        self.step = datetime.timedelta(seconds=step)

    def __call__(self) -> datetime.datetime:
        current = self.now
        self.now = self.now + self.step
        return current

    def advance(self, seconds: float) -> None:
        self.now = self.now + datetime.timedelta(seconds=seconds)


def run_now(delay: float, function: Any) -> None:
    """Scheduler that runs the job immediately."""
    function()


class RecordingScheduler:
    """Scheduler that holds jobs until ``run_all`` is called."""

    def __init__(self) -> None:
        self.jobs: list[tuple[float, Any]] = []

    def __call__(self, delay: float, function: Any) -> None:
        self.jobs.append((delay, function))

    def run_all(self) -> None:
        jobs, self.jobs = self.jobs, []
        for _, function in jobs:
            function()


def add_profile(db: Any, uid: str, **fields: Any) -> None:
    data = {"name": fields.pop("name", f"User {uid}"), "username": uid.lower()}
    data.update(fields)
    db.collection("profile").document(uid).set(data)


def add_follow(db: Any, follower: str, followee: str) -> None:
    (
        db.collection("profile")
        .document(follower)
        .collection("following")
        .document(followee)
        .set({"followedAt": START, "isActive": True})
    )


def make_app(db: Any = None) -> Any:
    """A testing app over a mock database with timers and delays disabled.

    Requests authenticate with ``Authorization: Bearer <uid>`` once
    ``patch_verify_id_token`` is active.
    """
    from devlink import create_app

    db = db if db is not None else make_db()
    app = create_app({"TESTING": True}, db=db)
    app.extensions["devlink.requests"].scheduler = run_now
    app.extensions["devlink.aggregator"].scheduler = run_now
    app.extensions["devlink.presence"].timer_factory = unittest.mock.MagicMock()
    app.extensions["devlink.feed"].sleep = unittest.mock.MagicMock()
    return app


def patch_verify_id_token() -> Any:
    """Accept any bearer token and treat it as the caller's uid."""
    return unittest.mock.patch(
        "firebase_admin.auth.verify_id_token", side_effect=lambda token: {"uid": token}
    )


def bearer(uid: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {uid}"}
