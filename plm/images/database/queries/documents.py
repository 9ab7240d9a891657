import uuid
from typing import Any, Sequence

import sqlalchemy as sa
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from plm.images.database.models import Document
from plm.images.helpers import get_utc_now

MAX_BIND_PARAMS = 800


def _iter_chunks(seq, n: int):
    for i in range(0, len(seq), n):
        yield seq[i : i + n]


def next_revision(rev: str | None) -> str:
    """'3-abc...' -> '4-<new hex>'. A missing revision starts at 1."""
    generation = 0
    if rev:
        head = rev.split("-", 1)[0]
        generation = int(head) if head.isdigit() else 0
    return f"{generation + 1}-{uuid.uuid4().hex}"


def strip_reserved_keys(doc: dict[str, Any]) -> dict[str, Any]:
    """Drop underscore-prefixed keys (_id, _rev, _attachments...) from a body."""
    return {k: v for k, v in doc.items() if not k.startswith("_")}


def get_document(
    session: Session,
    doc_id: str,
) -> Document | None:
    return session.get(Document, doc_id)


def get_documents_by_ids(
    session: Session,
    doc_ids: Sequence[str],
) -> list[Document]:
    """Fetch documents with their attachment rows, in ascending id order."""
    if not doc_ids:
        return []
    found: list[Document] = []
    for chunk in _iter_chunks(list(doc_ids), MAX_BIND_PARAMS):
        found.extend(
            session.execute(
                select(Document)
                .where(Document.id.in_(chunk))
                .options(selectinload(Document.attachments))
            ).scalars().all()
        )
    return sorted(found, key=lambda d: d.id)


def insert_document(
    session: Session,
    body: dict[str, Any],
    doc_id: str | None = None,
) -> Document:
    now = get_utc_now()
    doc = Document(
        id=doc_id or str(uuid.uuid4()),
        rev=next_revision(None),
        class_name=str(body.get("class_name") or ""),
        body=body,
        created_at=now,
        updated_at=now,
    )
    session.add(doc)
    session.flush()
    return doc


def update_document_if_rev(
    session: Session,
    doc_id: str,
    expected_rev: str,
    body: dict[str, Any] | None = None,
) -> str | None:
    """
    Compare-and-swap write: only succeeds while the stored revision equals
    expected_rev. Returns the new revision, or None on a stale revision.
    Passing body=None bumps the revision without touching the body.
    """
    new_rev = next_revision(expected_rev)
    values: dict[str, Any] = {"rev": new_rev, "updated_at": get_utc_now()}
    if body is not None:
        values["body"] = body
        values["class_name"] = str(body.get("class_name") or "")
    result = session.execute(
        sa.update(Document)
        .where(Document.id == doc_id, Document.rev == expected_rev)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if int(result.rowcount or 0) != 1:
        return None
    return new_rev


def delete_document_if_rev(
    session: Session,
    doc_id: str,
    expected_rev: str,
) -> bool:
    doc = session.get(Document, doc_id)
    if doc is None or doc.rev != expected_rev:
        return False
    session.delete(doc)
    session.flush()
    return True


def document_to_dict(doc: Document) -> dict[str, Any]:
    """Render a stored document the way the store API returns it."""
    out: dict[str, Any] = dict(doc.body or {})
    out["_id"] = doc.id
    out["_rev"] = doc.rev
    if doc.attachments:
        out["_attachments"] = {
            a.name: {"content_type": a.content_type, "length": a.length, "stub": True}
            for a in doc.attachments
        }
    return out
