"""
Document store — the only persistence seam the goal core talks to.

Interface
---------
get(container, doc_id, partition_key)       -> dict        (NotFoundError)
put(container, document, if_match=None, if_none_match=False) -> dict
query(container, partition_key=None, predicate=None) -> list[dict]

Documents are plain JSON-serialisable dicts. Each one returned by the store
carries an `_etag`; passing it back as `if_match` turns `put` into a
conditional write that fails with ConcurrencyConflictError if another
writer got there first; `if_none_match=True` makes it create-only. Every
`put` commits on its own: there is no multi-document transaction.

`SqlDocumentStore` maps the interface onto the `documents` table through
an injected SQLAlchemy session. It is constructed explicitly per request
(see dreamtrack/routers/deps.py); nothing here is a module-level client.
"""
from __future__ import annotations

import copy
import json
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from dreamtrack.core.errors import (
    ConcurrencyConflictError,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
)
from dreamtrack.models.document import StoredDocument

logger = logging.getLogger(__name__)

ETAG_FIELD = "_etag"
DEFAULT_PARTITION_FIELD = "userId"

Predicate = Callable[[dict], bool]


class DocumentStore(ABC):
    """Partitioned key/value document store with simple filtered scans."""

    @abstractmethod
    def get(self, container: str, doc_id: str, partition_key: str) -> dict:
        ...

    @abstractmethod
    def put(
        self,
        container: str,
        document: dict,
        if_match: Optional[str] = None,
        if_none_match: bool = False,
    ) -> dict:
        ...

    @abstractmethod
    def query(
        self,
        container: str,
        partition_key: Optional[str] = None,
        predicate: Optional[Predicate] = None,
    ) -> list[dict]:
        ...

    def find(self, container: str, doc_id: str, partition_key: str) -> Optional[dict]:
        """`get` that returns None instead of raising NotFoundError."""
        try:
            return self.get(container, doc_id, partition_key)
        except NotFoundError:
            return None


class SqlDocumentStore(DocumentStore):

    def __init__(self, db: Session, partition_field: str = DEFAULT_PARTITION_FIELD):
        self._db = db
        self._partition_field = partition_field

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _decode(row: StoredDocument) -> dict:
        doc = json.loads(row.body)
        doc[ETAG_FIELD] = row.etag
        return doc

    @staticmethod
    def _encode(document: dict) -> str:
        body = {k: v for k, v in document.items() if k != ETAG_FIELD}
        return json.dumps(body, default=str)

    def _keys(self, document: dict) -> tuple[str, str]:
        doc_id = document.get("id")
        partition_key = document.get(self._partition_field)
        if not doc_id or not partition_key:
            raise ValidationError(
                message=f"Document needs both 'id' and '{self._partition_field}'.",
                details={"id": doc_id, self._partition_field: partition_key},
            )
        return str(doc_id), str(partition_key)

    def _unavailable(self, exc: Exception) -> StoreUnavailableError:
        self._db.rollback()
        logger.error("Document store call failed: %s", exc)
        return StoreUnavailableError()

    # ------------------------------------------------------------------
    # Interface
    # ------------------------------------------------------------------

    def get(self, container: str, doc_id: str, partition_key: str) -> dict:
        try:
            row = self._db.get(
                StoredDocument,
                (container, partition_key, doc_id),
                populate_existing=True,
            )
        except SQLAlchemyError as exc:
            raise self._unavailable(exc) from exc
        if row is None:
            raise NotFoundError(container, doc_id)
        return self._decode(row)

    def put(
        self,
        container: str,
        document: dict,
        if_match: Optional[str] = None,
        if_none_match: bool = False,
    ) -> dict:
        doc_id, partition_key = self._keys(document)
        body = self._encode(document)
        new_etag = uuid.uuid4().hex

        try:
            if if_match is not None:
                result = self._db.execute(
                    update(StoredDocument)
                    .where(
                        StoredDocument.container == container,
                        StoredDocument.partition_key == partition_key,
                        StoredDocument.doc_id == doc_id,
                        StoredDocument.etag == if_match,
                    )
                    .values(body=body, etag=new_etag)
                )
                if result.rowcount == 0:
                    self._db.rollback()
                    raise ConcurrencyConflictError(container, doc_id)
            else:
                row = self._db.get(StoredDocument, (container, partition_key, doc_id))
                if row is not None and if_none_match:
                    raise ConcurrencyConflictError(container, doc_id)
                if row is None:
                    self._db.add(StoredDocument(
                        container=container,
                        partition_key=partition_key,
                        doc_id=doc_id,
                        body=body,
                        etag=new_etag,
                    ))
                else:
                    row.body = body
                    row.etag = new_etag
            self._db.commit()
        except IntegrityError as exc:
            # Two first-writers raced on the same key
            self._db.rollback()
            raise ConcurrencyConflictError(container, doc_id) from exc
        except SQLAlchemyError as exc:
            raise self._unavailable(exc) from exc

        logger.debug("put %s/%s/%s etag=%s", container, partition_key, doc_id, new_etag)
        saved: dict[str, Any] = json.loads(body)
        saved[ETAG_FIELD] = new_etag
        return saved

    def query(
        self,
        container: str,
        partition_key: Optional[str] = None,
        predicate: Optional[Predicate] = None,
    ) -> list[dict]:
        stmt = select(StoredDocument).where(StoredDocument.container == container)
        if partition_key is not None:
            stmt = stmt.where(StoredDocument.partition_key == partition_key)
        stmt = (
            stmt.order_by(StoredDocument.partition_key, StoredDocument.doc_id)
            .execution_options(populate_existing=True)
        )
        try:
            rows = self._db.execute(stmt).scalars().all()
        except SQLAlchemyError as exc:
            raise self._unavailable(exc) from exc
        docs = [self._decode(r) for r in rows]
        if predicate is not None:
            docs = [d for d in docs if predicate(d)]
        return docs


# ---------------------------------------------------------------------------
# Optimistic read-modify-write
# ---------------------------------------------------------------------------

Mutator = Callable[[Optional[dict]], Optional[dict]]


def read_modify_write(
    store: DocumentStore,
    container: str,
    doc_id: str,
    partition_key: str,
    mutate: Mutator,
    retries: int = 3,
) -> Optional[dict]:
    """
    Apply `mutate` to the current document (None if absent) and write the
    result back conditionally. `mutate` returns the new document, or None to
    skip the write. On a lost race the cycle re-reads and re-applies, up to
    `retries` extra times, then ConcurrencyConflictError propagates.

    Returns the saved document, or the unchanged current one when skipped.
    """
    for attempt in range(retries + 1):
        current = store.find(container, doc_id, partition_key)
        updated = mutate(copy.deepcopy(current) if current is not None else None)
        if updated is None:
            return current
        try:
            if current is None:
                return store.put(container, updated, if_none_match=True)
            return store.put(container, updated, if_match=current[ETAG_FIELD])
        except ConcurrencyConflictError:
            if attempt >= retries:
                raise
            logger.info(
                "Write conflict on %s/%s, retrying (%d/%d)",
                container, doc_id, attempt + 1, retries,
            )
    return None
