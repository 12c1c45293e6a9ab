# Overview: Service-layer document store; named collections of schema-less records on top of the documents table.

"""
Document store

Capabilities consumed by the rest of the service:
- CRUD on named collections of schema-less records
- equality queries (evaluated after fetch)
- push-based subscriptions delivering the full collection snapshot
- atomic multi-document batches with per-document compare-and-set
- per-collection write guards that may refuse changes to stored documents

INVARIANTS:
- A WriteBatch applies every mutation or none of them.
- Listeners only ever see committed state, and always a full snapshot.
- Snapshots handed to callers are deep copies; mutating them never
  touches stored data.
"""

from __future__ import annotations

import copy
import uuid
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Iterable

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import Document
from .concurrency import lock_for_update


class StoreError(Exception):
    """Base class for document store failures."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class NotFoundError(StoreError):
    """Raised when a referenced document does not exist."""


class StoreUnavailableError(StoreError):
    """Raised when the underlying database call fails for any reason."""


class BatchConflictError(StoreError):
    """Raised when a batch precondition no longer holds at commit time."""


@dataclass(frozen=True)
class DocumentSnapshot:
    """Immutable, detached view of one stored document."""
    collection: str
    id: str
    data: dict
    version_id: int
    created_at: datetime | None = None

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)


SnapshotListener = Callable[[list[DocumentSnapshot]], None]

# (doc_id, current data, new data or None for a delete); raises StoreError to refuse
WriteGuard = Callable[[str, dict, "dict | None"], None]


def new_document_id() -> str:
    return uuid.uuid4().hex


def _snapshot(doc: Document) -> DocumentSnapshot:
    return DocumentSnapshot(
        collection=doc.collection,
        id=doc.doc_id,
        data=copy.deepcopy(doc.data or {}),
        version_id=doc.version_id,
        created_at=doc.created_at,
    )


@contextmanager
def _db_call(action: str):
    try:
        yield
    except StoreError:
        db.session.rollback()
        raise
    except IntegrityError as exc:
        # Another writer created the same key first
        db.session.rollback()
        raise BatchConflictError(f"Document store {action} conflicted with a concurrent write") from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StoreUnavailableError(f"Document store {action} failed") from exc


def _load(collection: str, doc_id: str, *, for_update: bool = False) -> Document | None:
    query = db.session.query(Document).filter_by(collection=collection, doc_id=doc_id)
    if for_update:
        query = lock_for_update(query)
    return query.populate_existing().first()


class Subscription:
    """Cancellation handle returned by DocumentStore.subscribe."""

    def __init__(self, store: "DocumentStore", collection: str, listener: SnapshotListener):
        self._store = store
        self.collection = collection
        self._listener = listener
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        self._store._remove_subscription(self)

    def deliver(self, snapshot: list[DocumentSnapshot]) -> None:
        if not self._active:
            return
        try:
            self._listener(snapshot)
        except Exception:
            # A broken listener must not fail the write that triggered it
            current_app.logger.exception("Snapshot listener failed for collection %s", self.collection)


@dataclass
class _BatchOp:
    kind: str
    collection: str
    doc_id: str
    data: dict | None = None
    expected_version: int | None = None


class WriteBatch:
    """
    Collects mutations and applies them in one database transaction.

    The *_if_version operations are compare-and-set: they only apply if the
    document still carries the version the caller observed. Any failed
    precondition rolls back the whole batch with BatchConflictError.
    """

    def __init__(self, store: "DocumentStore"):
        self._store = store
        self._ops: list[_BatchOp] = []
        self._committed = False

    def __len__(self) -> int:
        return len(self._ops)

    def add(self, collection: str, data: dict) -> str:
        doc_id = new_document_id()
        self._ops.append(_BatchOp("create", collection, doc_id, copy.deepcopy(data)))
        return doc_id

    def create(self, collection: str, doc_id: str, data: dict) -> "WriteBatch":
        """Create at a known id; conflicts if the id is already taken."""
        self._ops.append(_BatchOp("create", collection, doc_id, copy.deepcopy(data)))
        return self

    def set(self, collection: str, doc_id: str, data: dict) -> "WriteBatch":
        self._ops.append(_BatchOp("set", collection, doc_id, copy.deepcopy(data)))
        return self

    def update(self, collection: str, doc_id: str, patch: dict) -> "WriteBatch":
        self._ops.append(_BatchOp("update", collection, doc_id, copy.deepcopy(patch)))
        return self

    def update_if_version(self, collection: str, doc_id: str, expected_version: int, patch: dict) -> "WriteBatch":
        self._ops.append(_BatchOp("update", collection, doc_id, copy.deepcopy(patch), expected_version))
        return self

    def delete(self, collection: str, doc_id: str) -> "WriteBatch":
        self._ops.append(_BatchOp("delete", collection, doc_id))
        return self

    def delete_if_version(self, collection: str, doc_id: str, expected_version: int) -> "WriteBatch":
        self._ops.append(_BatchOp("delete", collection, doc_id, expected_version=expected_version))
        return self

    def _check_version(self, op: _BatchOp, doc: Document | None) -> None:
        if op.expected_version is None:
            return
        actual = doc.version_id if doc is not None else None
        if actual != op.expected_version:
            raise BatchConflictError(
                f"{op.collection}/{op.doc_id} changed since it was read",
                details={
                    "collection": op.collection,
                    "id": op.doc_id,
                    "expected_version": op.expected_version,
                    "actual_version": actual,
                },
            )

    def _apply(self, op: _BatchOp) -> None:
        doc = _load(op.collection, op.doc_id, for_update=True)

        if op.kind == "create":
            if doc is not None:
                raise BatchConflictError(
                    f"{op.collection}/{op.doc_id} already exists",
                    details={"collection": op.collection, "id": op.doc_id},
                )
            db.session.add(Document(collection=op.collection, doc_id=op.doc_id, data=op.data))
            return

        self._check_version(op, doc)

        if op.kind == "set":
            if doc is None:
                db.session.add(Document(collection=op.collection, doc_id=op.doc_id, data=op.data))
            else:
                self._store.check_write(doc, op.data)
                doc.data = op.data
        elif op.kind == "update":
            if doc is None:
                raise NotFoundError(f"{op.collection}/{op.doc_id} not found")
            merged = {**(doc.data or {}), **op.data}
            self._store.check_write(doc, merged)
            doc.data = merged
        elif op.kind == "delete":
            if doc is not None:
                self._store.check_write(doc, None)
                db.session.delete(doc)
        else:
            raise ValueError(f"Unknown batch operation {op.kind}")

    def commit(self) -> None:
        if self._committed:
            raise RuntimeError("WriteBatch already committed")
        self._committed = True
        if not self._ops:
            return

        touched: set[str] = set()
        try:
            for op in self._ops:
                self._apply(op)
                touched.add(op.collection)
            db.session.commit()
        except StoreError:
            db.session.rollback()
            raise
        except IntegrityError as exc:
            # A concurrent writer created one of our keys first
            db.session.rollback()
            raise BatchConflictError("Document created concurrently during batch commit") from exc
        except StaleDataError as exc:
            # Versioned UPDATE/DELETE matched no row: a concurrent writer won
            db.session.rollback()
            raise BatchConflictError("Document changed during batch commit") from exc
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StoreUnavailableError("Document store batch commit failed") from exc

        self._store.publish(touched)


class DocumentStore:
    """
    Flask extension exposing the document store.

    Subscriptions are registered per application in app.extensions, so
    independent apps (tests, CLI) never see each other's listeners.
    """

    EXTENSION_KEY = "document_store"

    def __init__(self):
        self._guards: dict[str, list[WriteGuard]] = defaultdict(list)

    def guard(self, collection: str, check: WriteGuard) -> None:
        """
        Register `check` to vet every change to an existing document of
        `collection`, both single writes and batch operations.
        """
        if check not in self._guards[collection]:
            self._guards[collection].append(check)

    def check_write(self, doc: Document, new_data: dict | None) -> None:
        for check in self._guards.get(doc.collection, ()):
            check(doc.doc_id, doc.data or {}, new_data)

    def init_app(self, app) -> None:
        app.extensions[self.EXTENSION_KEY] = {"subscriptions": defaultdict(list)}

    def _subscriptions(self) -> dict[str, list[Subscription]]:
        return current_app.extensions[self.EXTENSION_KEY]["subscriptions"]

    # -- reads -----------------------------------------------------------

    def get(self, collection: str, doc_id: str) -> DocumentSnapshot | None:
        with _db_call("read"):
            doc = _load(collection, doc_id)
            return _snapshot(doc) if doc is not None else None

    def list(self, collection: str) -> list[DocumentSnapshot]:
        """All documents of a collection in insertion order."""
        with _db_call("read"):
            docs = (
                db.session.query(Document)
                .filter_by(collection=collection)
                .order_by(Document.seq.asc())
                .populate_existing()
                .all()
            )
            return [_snapshot(d) for d in docs]

    def query(self, collection: str, **equals: Any) -> list[DocumentSnapshot]:
        """Equality filter on top-level fields; a missing field never matches."""
        _missing = object()
        return [
            snap for snap in self.list(collection)
            if all(snap.data.get(k, _missing) == v for k, v in equals.items())
        ]

    # -- single-document writes -------------------------------------------

    def add(self, collection: str, data: dict) -> DocumentSnapshot:
        with _db_call("write"):
            doc = Document(collection=collection, doc_id=new_document_id(), data=copy.deepcopy(data))
            db.session.add(doc)
            db.session.commit()
            snap = _snapshot(doc)
        self.publish({collection})
        return snap

    def set(self, collection: str, doc_id: str, data: dict) -> DocumentSnapshot:
        with _db_call("write"):
            doc = _load(collection, doc_id, for_update=True)
            if doc is None:
                doc = Document(collection=collection, doc_id=doc_id, data=copy.deepcopy(data))
                db.session.add(doc)
            else:
                self.check_write(doc, data)
                doc.data = copy.deepcopy(data)
            db.session.commit()
            snap = _snapshot(doc)
        self.publish({collection})
        return snap

    def update(self, collection: str, doc_id: str, patch: dict) -> DocumentSnapshot:
        with _db_call("write"):
            doc = _load(collection, doc_id, for_update=True)
            if doc is None:
                raise NotFoundError(f"{collection}/{doc_id} not found")
            merged = {**(doc.data or {}), **copy.deepcopy(patch)}
            self.check_write(doc, merged)
            doc.data = merged
            db.session.commit()
            snap = _snapshot(doc)
        self.publish({collection})
        return snap

    def delete(self, collection: str, doc_id: str) -> bool:
        with _db_call("write"):
            doc = _load(collection, doc_id, for_update=True)
            if doc is None:
                return False
            self.check_write(doc, None)
            db.session.delete(doc)
            db.session.commit()
        self.publish({collection})
        return True

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    # -- subscriptions ---------------------------------------------------

    def subscribe(
        self,
        collection: str,
        listener: SnapshotListener,
        *,
        deliver_initial: bool = True,
    ) -> Subscription:
        """
        Register `listener` for full snapshots of `collection`.

        The current snapshot is delivered immediately unless
        deliver_initial=False, then again after every committed change.
        """
        subscription = Subscription(self, collection, listener)
        self._subscriptions()[collection].append(subscription)
        if deliver_initial:
            subscription.deliver(self.list(collection))
        return subscription

    def _remove_subscription(self, subscription: Subscription) -> None:
        subs = self._subscriptions().get(subscription.collection, [])
        if subscription in subs:
            subs.remove(subscription)

    def publish(self, collections: Iterable[str]) -> None:
        registry = self._subscriptions()
        for collection in sorted(set(collections)):
            subs = list(registry.get(collection, ()))
            if not subs:
                continue
            snapshot = self.list(collection)
            for subscription in subs:
                subscription.deliver(snapshot)


store = DocumentStore()
