"""
Document store over SQLAlchemy.

Exposes the small document API the image services consume: get / put /
destroy by id and revision, named attachments, and the ``by_tag`` index.
Every call runs in its own session and either commits fully or leaves the
store untouched. Writes are compare-and-swap on the revision token, so
concurrent writers see RevisionConflict instead of blocking each other.
"""
from typing import Any, Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from plm.database.db import Database
from plm.images.database.queries import (
    delete_document_if_rev,
    document_to_dict,
    get_attachment,
    get_document,
    get_document_ids_by_tag,
    get_documents_by_ids,
    insert_document,
    list_tags_with_usage,
    set_document_tags,
    strip_reserved_keys,
    update_document_if_rev,
    upsert_attachment,
)
from plm.images.errors import (
    NotFoundError,
    RevisionConflict,
    StoreReadError,
    StoreWriteError,
)
from plm.images.helpers import TAG_INDEX


class DocumentStore:
    def __init__(self, database: Database):
        self.database = database

    def get(self, doc_id: str) -> dict[str, Any]:
        try:
            with self.database.create_session() as session:
                doc = get_document(session, doc_id)
                if doc is None:
                    raise NotFoundError(f"Document {doc_id} not found")
                return document_to_dict(doc)
        except SQLAlchemyError as e:
            raise StoreReadError(f"failed to read document {doc_id}: {e}") from e

    def get_many(self, doc_ids: Sequence[str]) -> list[dict[str, Any]]:
        """Fetch several documents in one read. Missing ids are skipped."""
        try:
            with self.database.create_session() as session:
                return [document_to_dict(d) for d in get_documents_by_ids(session, doc_ids)]
        except SQLAlchemyError as e:
            raise StoreReadError(f"failed to read documents: {e}") from e

    def put(self, doc: dict[str, Any]) -> dict[str, str]:
        """
        Create or update a document.

        Without ``_id`` a new document is created. With ``_id`` the stored
        revision must equal ``_rev``; a stale or missing ``_rev`` raises
        RevisionConflict.
        """
        doc_id = doc.get("_id")
        rev = doc.get("_rev")
        body = strip_reserved_keys(doc)
        try:
            with self.database.create_session() as session:
                row = get_document(session, doc_id) if doc_id else None
                if row is None:
                    if rev:
                        raise RevisionConflict(f"Document {doc_id} does not exist at revision {rev}")
                    row = insert_document(session, body, doc_id=doc_id)
                    doc_id, new_rev = row.id, row.rev
                else:
                    new_rev = update_document_if_rev(session, doc_id, rev, body) if rev else None
                    if new_rev is None:
                        raise RevisionConflict(f"Document update conflict on {doc_id} (rev={rev})")
                set_document_tags(session, doc_id, body.get("tags") or [])
                session.commit()
        except IntegrityError as e:
            raise RevisionConflict(f"Document {doc_id} was created concurrently") from e
        except SQLAlchemyError as e:
            raise StoreWriteError(f"failed to write document {doc_id}: {e}") from e
        return {"id": doc_id, "rev": new_rev}

    def destroy(self, doc_id: str, rev: str) -> bool:
        try:
            with self.database.create_session() as session:
                if get_document(session, doc_id) is None:
                    raise NotFoundError(f"Document {doc_id} not found")
                if not delete_document_if_rev(session, doc_id, rev):
                    raise RevisionConflict(f"Document delete conflict on {doc_id} (rev={rev})")
                session.commit()
        except SQLAlchemyError as e:
            raise StoreWriteError(f"failed to delete document {doc_id}: {e}") from e
        return True

    def put_attachment(
        self,
        doc_id: str,
        rev: str,
        name: str,
        data: bytes,
        content_type: str,
    ) -> dict[str, str]:
        try:
            with self.database.create_session() as session:
                if get_document(session, doc_id) is None:
                    raise NotFoundError(f"Document {doc_id} not found")
                new_rev = update_document_if_rev(session, doc_id, rev)
                if new_rev is None:
                    raise RevisionConflict(f"Attachment conflict on {doc_id} (rev={rev})")
                upsert_attachment(
                    session,
                    document_id=doc_id,
                    name=name,
                    data=data,
                    content_type=content_type,
                )
                session.commit()
        except SQLAlchemyError as e:
            raise StoreWriteError(f"failed to attach {name} to {doc_id}: {e}") from e
        return {"id": doc_id, "rev": new_rev}

    def get_attachment(self, doc_id: str, name: str) -> tuple[bytes, str]:
        try:
            with self.database.create_session() as session:
                att = get_attachment(session, document_id=doc_id, name=name)
                if att is None:
                    raise NotFoundError(f"Attachment {name} of document {doc_id} not found")
                return bytes(att.data), att.content_type
        except SQLAlchemyError as e:
            raise StoreReadError(f"failed to read attachment {name} of {doc_id}: {e}") from e

    def query_index(self, index_name: str, key: str, class_name: str | None = None) -> list[str]:
        """Ids under ``key`` in the named index, optionally only documents of one class."""
        if index_name != TAG_INDEX:
            raise NotFoundError(f"Index {index_name} not found")
        try:
            with self.database.create_session() as session:
                return get_document_ids_by_tag(session, tag_name=key, class_name=class_name)
        except SQLAlchemyError as e:
            raise StoreReadError(f"index lookup {index_name}[{key!r}] failed: {e}") from e

    def tag_usage(
        self,
        prefix: str | None = None,
        limit: int = 100,
        offset: int = 0,
        order: str = "count_desc",
    ) -> tuple[list[tuple[str, int]], int]:
        try:
            with self.database.create_session() as session:
                return list_tags_with_usage(
                    session,
                    prefix=prefix,
                    limit=limit,
                    offset=offset,
                    order=order,
                )
        except SQLAlchemyError as e:
            raise StoreReadError(f"failed to list tags: {e}") from e
