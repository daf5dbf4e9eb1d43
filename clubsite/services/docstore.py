"""Hierarchical document store backed by the ``document`` table.

Collections and documents alternate along a slash separated path
(``clubs/{ownerUid}/teams/{teamId}/players/{playerId}``). A document never owns
its subcollections: deleting ``clubs/u1/seasons/2024-25`` leaves
``clubs/u1/seasons/2024-25/roster/*`` in place, so cascades are always explicit.
"""

from __future__ import annotations

import copy
import re
import uuid
from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Any, Iterable, Iterator, Mapping, Sequence

from flask import current_app
from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError

from clubsite.models import Document

MAX_BATCH_OPERATIONS = 500

ASCENDING = "ASCENDING"
DESCENDING = "DESCENDING"

_MISSING = object()

# Top-level field names that can be compared inside SQL
_SQL_FIELD = re.compile(r"^[A-Za-z0-9_]+$")


class DocumentStoreError(Exception):
    """Base class for store level failures."""


class DocumentNotFound(DocumentStoreError):
    """Raised when updating a document that does not exist."""


class AlreadyExists(DocumentStoreError):
    """Raised when creating a document whose path is taken."""


class BatchTooLarge(DocumentStoreError):
    """Raised when a write batch grows past ``MAX_BATCH_OPERATIONS``."""


class _Sentinel:
    def __init__(self, name: str) -> None:
        self._name = name

    def __repr__(self) -> str:
        return self._name


DELETE_FIELD = _Sentinel("DELETE_FIELD")
SERVER_TIMESTAMP = _Sentinel("SERVER_TIMESTAMP")


class ArrayUnion:
    def __init__(self, *values: Any) -> None:
        self.values = list(values)


class ArrayRemove:
    def __init__(self, *values: Any) -> None:
        self.values = list(values)


class Increment:
    def __init__(self, amount: int | float) -> None:
        self.amount = amount


class FieldPath:
    """Field path whose parts may contain ``.`` or ``/``."""

    def __init__(self, *parts: str) -> None:
        if not parts or any(not isinstance(p, str) or p == "" for p in parts):
            raise ValueError("FieldPath parts must be non-empty strings")
        self.parts = tuple(parts)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, FieldPath) and other.parts == self.parts

    def __hash__(self) -> int:
        return hash(self.parts)

    def __repr__(self) -> str:
        return f"FieldPath{self.parts!r}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _split_path(path: str) -> list[str]:
    segments = path.strip("/").split("/")
    if any(segment == "" for segment in segments):
        raise ValueError(f"Invalid document store path: {path!r}")
    return segments


def _field_parts(field: str | tuple | FieldPath) -> tuple[str, ...]:
    if isinstance(field, FieldPath):
        return field.parts
    if isinstance(field, tuple):
        return field
    return tuple(field.split("."))


def _get_field(data: Mapping[str, Any], parts: Sequence[str]) -> Any:
    current: Any = data
    for part in parts:
        if not isinstance(current, Mapping) or part not in current:
            return _MISSING
        current = current[part]
    return current


def encode_value(value: Any) -> Any:
    """Convert a Python value into its JSON storable form."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if value is SERVER_TIMESTAMP:
        return utcnow().isoformat()
    if isinstance(value, Mapping):
        return {str(k): encode_value(v) for k, v in value.items() if v is not DELETE_FIELD}
    if isinstance(value, (list, tuple)):
        return [encode_value(v) for v in value]
    return value


def _transform(existing: Any, value: Any) -> Any:
    if isinstance(value, ArrayUnion):
        current = list(existing) if isinstance(existing, list) else []
        for item in encode_value(value.values):
            if item not in current:
                current.append(item)
        return current
    if isinstance(value, ArrayRemove):
        removed = encode_value(value.values)
        current = list(existing) if isinstance(existing, list) else []
        return [item for item in current if item not in removed]
    if isinstance(value, Increment):
        base = existing if isinstance(existing, (int, float)) and not isinstance(existing, bool) else 0
        return base + value.amount
    return encode_value(value)


def _apply_field_updates(data: Mapping[str, Any], fields: Mapping[Any, Any]) -> dict:
    result = copy.deepcopy(dict(data))
    for field, value in fields.items():
        parts = _field_parts(field)
        parent: Any = result
        for part in parts[:-1]:
            child = parent.get(part)
            if not isinstance(child, dict):
                if value is DELETE_FIELD:
                    parent = None
                    break
                child = {}
                parent[part] = child
            parent = child
        if parent is None:
            continue
        leaf = parts[-1]
        if value is DELETE_FIELD:
            parent.pop(leaf, None)
        else:
            parent[leaf] = _transform(parent.get(leaf, _MISSING), value)
    return result


def _merge(existing: Mapping[str, Any], incoming: Mapping[str, Any]) -> dict:
    result = copy.deepcopy(dict(existing))
    for key, value in incoming.items():
        if value is DELETE_FIELD:
            result.pop(key, None)
        elif isinstance(value, Mapping) and isinstance(result.get(key), dict):
            result[key] = _merge(result[key], value)
        else:
            result[key] = _transform(result.get(key, _MISSING), value)
    return result


def _fresh(data: Mapping[str, Any]) -> dict:
    return _merge({}, data)


def _sort_key(value: Any) -> tuple:
    if value is None:
        return (0, 0)
    if isinstance(value, bool):
        return (1, value)
    if isinstance(value, (int, float)):
        return (2, value)
    if isinstance(value, str):
        return (3, value)
    return (4, repr(value))


def _matches(data: Mapping[str, Any], field: tuple[str, ...], op: str, expected: Any) -> bool:
    actual = _get_field(data, field)
    if op == "array-contains":
        return isinstance(actual, list) and expected in actual
    if actual is _MISSING:
        return False
    if op == "==":
        return actual == expected
    if op == "!=":
        return actual != expected
    if op == "in":
        return actual in expected
    try:
        if op == "<":
            return actual < expected
        if op == "<=":
            return actual <= expected
        if op == ">":
            return actual > expected
        if op == ">=":
            return actual >= expected
    except TypeError:
        return False
    raise ValueError(f"Unsupported query operator: {op}")


class DocumentSnapshot:
    """Point in time view of a document (``exists`` is False when absent)."""

    def __init__(self, reference: "DocumentReference", data: dict | None) -> None:
        self.reference = reference
        self._data = data

    @property
    def id(self) -> str:
        return self.reference.id

    @property
    def exists(self) -> bool:
        return self._data is not None

    def to_dict(self) -> dict | None:
        if self._data is None:
            return None
        return copy.deepcopy(self._data)

    def get(self, field: str | tuple | FieldPath, default: Any = None) -> Any:
        if self._data is None:
            return default
        value = _get_field(self._data, _field_parts(field))
        return default if value is _MISSING else copy.deepcopy(value)

    def __repr__(self) -> str:
        return f"<DocumentSnapshot {self.reference.path} exists={self.exists}>"


class DocumentReference:
    def __init__(self, store: "DocumentStore", path: str) -> None:
        segments = _split_path(path)
        if len(segments) % 2 != 0:
            raise ValueError(f"Document path must have an even number of segments: {path!r}")
        self._store = store
        self.path = "/".join(segments)
        self.id = segments[-1]

    @property
    def parent(self) -> "CollectionReference":
        return CollectionReference(self._store, self.path.rsplit("/", 1)[0])

    def collection(self, name: str) -> "CollectionReference":
        return CollectionReference(self._store, f"{self.path}/{name}")

    def get(self) -> DocumentSnapshot:
        return self._store.get_all([self])[0]

    def set(self, data: Mapping[str, Any], merge: bool = False) -> None:
        batch = self._store.batch()
        batch.set(self, data, merge=merge)
        batch.commit()

    def create(self, data: Mapping[str, Any]) -> None:
        batch = self._store.batch()
        batch.create(self, data)
        batch.commit()

    def update(self, fields: Mapping[Any, Any]) -> None:
        batch = self._store.batch()
        batch.update(self, fields)
        batch.commit()

    def delete(self) -> None:
        batch = self._store.batch()
        batch.delete(self)
        batch.commit()

    def __eq__(self, other: object) -> bool:
        return isinstance(other, DocumentReference) and other.path == self.path

    def __hash__(self) -> int:
        return hash(self.path)

    def __repr__(self) -> str:
        return f"<DocumentReference {self.path}>"


class Query:
    def __init__(
        self,
        store: "DocumentStore",
        collection_path: str,
        filters: tuple = (),
        orders: tuple = (),
        limit: int | None = None,
    ) -> None:
        self._store = store
        self._collection_path = collection_path
        self._filters = filters
        self._orders = orders
        self._limit = limit

    def where(self, field: str | tuple | FieldPath, op: str, value: Any) -> "Query":
        condition = (_field_parts(field), op, encode_value(value))
        return Query(self._store, self._collection_path, self._filters + (condition,), self._orders, self._limit)

    def order_by(self, field: str | tuple | FieldPath, direction: str = ASCENDING) -> "Query":
        if direction not in (ASCENDING, DESCENDING):
            raise ValueError(f"Unknown sort direction: {direction}")
        order = (_field_parts(field), direction)
        return Query(self._store, self._collection_path, self._filters, self._orders + (order,), self._limit)

    def limit(self, count: int) -> "Query":
        if count < 0:
            raise ValueError("limit must be non-negative")
        return Query(self._store, self._collection_path, self._filters, self._orders, count)

    def _sql_equalities(self) -> list[tuple[str, Any]]:
        """``==`` filters on top-level fields compared against strings."""
        return [
            (field[0], value)
            for field, op, value in self._filters
            if op == "==" and len(field) == 1 and _SQL_FIELD.match(field[0]) and isinstance(value, str)
        ]

    def stream(self) -> Iterator[DocumentSnapshot]:
        # SQL narrows the candidates; every filter is still checked exactly below
        rows = self._store._scan(self._collection_path, self._sql_equalities())
        snapshots = []
        for row in rows:
            data = row.data or {}
            if all(_matches(data, field, op, value) for field, op, value in self._filters):
                # Ordering on a field excludes documents that lack it
                if all(_get_field(data, field) is not _MISSING for field, _ in self._orders):
                    snapshots.append(self._store._snapshot(row.path, data))
        for field, direction in reversed(self._orders):
            snapshots.sort(
                key=lambda snap, f=field: _sort_key(_get_field(snap._data, f)),
                reverse=direction == DESCENDING,
            )
        if self._limit is not None:
            snapshots = snapshots[: self._limit]
        return iter(snapshots)

    def get(self) -> list[DocumentSnapshot]:
        return list(self.stream())


class CollectionReference(Query):
    def __init__(self, store: "DocumentStore", path: str) -> None:
        segments = _split_path(path)
        if len(segments) % 2 != 1:
            raise ValueError(f"Collection path must have an odd number of segments: {path!r}")
        normalized = "/".join(segments)
        super().__init__(store, normalized)
        self.path = normalized
        self.id = segments[-1]

    @property
    def parent(self) -> DocumentReference | None:
        if "/" not in self.path:
            return None
        return DocumentReference(self._store, self.path.rsplit("/", 1)[0])

    def document(self, document_id: str | None = None) -> DocumentReference:
        if document_id is None:
            document_id = uuid.uuid4().hex[:20]
        if "/" in document_id or document_id == "":
            raise ValueError(f"Invalid document id: {document_id!r}")
        return DocumentReference(self._store, f"{self.path}/{document_id}")

    def __repr__(self) -> str:
        return f"<CollectionReference {self.path}>"


class WriteBatch:
    """Ordered write operations committed in one SQL transaction."""

    def __init__(self, store: "DocumentStore") -> None:
        self._store = store
        self._operations: list[tuple[str, DocumentReference, Any]] = []

    def _add(self, kind: str, reference: DocumentReference, payload: Any = None) -> "WriteBatch":
        if len(self._operations) >= self._store.max_batch_size:
            raise BatchTooLarge(f"A batch holds at most {self._store.max_batch_size} operations")
        self._operations.append((kind, reference, payload))
        return self

    def set(self, reference: DocumentReference, data: Mapping[str, Any], merge: bool = False) -> "WriteBatch":
        return self._add("merge" if merge else "set", reference, dict(data))

    def create(self, reference: DocumentReference, data: Mapping[str, Any]) -> "WriteBatch":
        return self._add("create", reference, dict(data))

    def update(self, reference: DocumentReference, fields: Mapping[Any, Any]) -> "WriteBatch":
        if not fields:
            raise ValueError("update() needs at least one field")
        return self._add("update", reference, dict(fields))

    def delete(self, reference: DocumentReference) -> "WriteBatch":
        return self._add("delete", reference)

    def __len__(self) -> int:
        return len(self._operations)

    def commit(self) -> None:
        self._store._commit(self._operations)
        self._operations = []


class Transaction(WriteBatch):
    """Read-then-write unit; reads lock rows where the dialect allows it."""

    def get(self, reference: DocumentReference) -> DocumentSnapshot:
        if self._operations:
            raise DocumentStoreError("Transactions must perform all reads before writes")
        row = self._store._session.execute(
            select(Document)
            .where(Document.path == reference.path)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return DocumentSnapshot(reference, copy.deepcopy(row.data) if row is not None else None)


class DocumentStore:
    """Entry point for collection and document references.

    Built once at startup with the application's SQLAlchemy handle and
    kept in ``app.extensions['docstore']``.
    """

    def __init__(self, database, max_batch_size: int = MAX_BATCH_OPERATIONS) -> None:
        if not 1 <= max_batch_size <= MAX_BATCH_OPERATIONS:
            raise ValueError(f"max_batch_size must be within 1..{MAX_BATCH_OPERATIONS}")
        self._db = database
        self.max_batch_size = max_batch_size

    @property
    def _session(self):
        return self._db.session

    def ping(self) -> None:
        """Run a trivial statement so a broken database fails at startup."""
        self._session.execute(text("SELECT 1"))
        self._session.rollback()

    def collection(self, path: str) -> CollectionReference:
        return CollectionReference(self, path)

    def document(self, path: str) -> DocumentReference:
        return DocumentReference(self, path)

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        txn = Transaction(self)
        try:
            yield txn
        except Exception:
            self._session.rollback()
            raise
        self._commit(txn._operations)

    def get_all(self, references: Iterable[DocumentReference]) -> list[DocumentSnapshot]:
        """Fetch several documents with one query, preserving input order."""
        references = list(references)
        if not references:
            return []
        paths = {ref.path for ref in references}
        rows = self._session.execute(
            select(Document)
            .where(Document.path.in_(paths))
            .execution_options(populate_existing=True)
        ).scalars()
        found = {row.path: row.data for row in rows}
        return [
            DocumentSnapshot(ref, copy.deepcopy(found[ref.path]) if ref.path in found else None)
            for ref in references
        ]

    def _scan(self, collection_path: str, equalities: Sequence[tuple[str, Any]] = ()) -> list[Document]:
        statement = select(Document).where(Document.collection_path == collection_path)
        for field, value in equalities:
            statement = statement.where(Document.data[field].as_string() == value)
        statement = statement.order_by(Document.doc_id)
        return list(
            self._session.execute(statement.execution_options(populate_existing=True)).scalars()
        )

    def _snapshot(self, path: str, data: Mapping[str, Any]) -> DocumentSnapshot:
        return DocumentSnapshot(DocumentReference(self, path), copy.deepcopy(dict(data)))

    def _commit(self, operations: Sequence[tuple[str, DocumentReference, Any]]) -> None:
        session = self._session
        try:
            for kind, reference, payload in operations:
                self._apply(session, kind, reference, payload)
                session.flush()
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            raise AlreadyExists(str(exc.orig)) from exc
        except Exception:
            session.rollback()
            raise

    def _apply(self, session, kind: str, reference: DocumentReference, payload: Any) -> None:
        row = session.get(Document, reference.path)
        if kind == "delete":
            if row is not None:
                session.delete(row)
            return
        if kind == "create":
            if row is not None:
                raise AlreadyExists(f"Document already exists: {reference.path}")
        if kind == "update":
            if row is None:
                raise DocumentNotFound(f"No document to update: {reference.path}")
            row.data = _apply_field_updates(row.data or {}, payload)
            return
        if kind == "merge" and row is not None:
            row.data = _merge(row.data or {}, payload)
            return
        if row is not None:
            row.data = _fresh(payload)
            return
        session.add(
            Document(
                path=reference.path,
                collection_path=reference.parent.path,
                doc_id=reference.id,
                data=_fresh(payload),
            )
        )


def get_store() -> DocumentStore:
    """Return the document store bound to the current application."""
    return current_app.extensions["docstore"]


__all__ = [
    "ASCENDING",
    "DESCENDING",
    "DELETE_FIELD",
    "SERVER_TIMESTAMP",
    "MAX_BATCH_OPERATIONS",
    "AlreadyExists",
    "ArrayRemove",
    "ArrayUnion",
    "BatchTooLarge",
    "CollectionReference",
    "DocumentNotFound",
    "DocumentReference",
    "DocumentSnapshot",
    "DocumentStore",
    "DocumentStoreError",
    "FieldPath",
    "Increment",
    "Query",
    "Transaction",
    "WriteBatch",
    "encode_value",
    "get_store",
    "utcnow",
]
