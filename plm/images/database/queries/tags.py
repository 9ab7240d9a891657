from typing import Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from plm.images.database.models import Document, DocumentTag
from plm.images.helpers import escape_sql_like_string, normalize_tags


def get_document_tags(session: Session, document_id: str) -> list[str]:
    return [
        tag_name for (tag_name,) in (
            session.execute(
                select(DocumentTag.tag_name)
                .where(DocumentTag.document_id == document_id)
                .order_by(DocumentTag.tag_name.asc())
            )
        ).all()
    ]


def set_document_tags(
    session: Session,
    document_id: str,
    tags: Sequence[str],
) -> dict:
    """Bring the index rows of one document in line with its tag list."""
    desired = normalize_tags(tags)

    current = set(get_document_tags(session, document_id))

    to_add = [t for t in desired if t not in current]
    to_remove = sorted(t for t in current if t not in desired)

    if to_add:
        session.add_all([DocumentTag(document_id=document_id, tag_name=t) for t in to_add])
        session.flush()

    if to_remove:
        session.execute(
            delete(DocumentTag)
            .where(DocumentTag.document_id == document_id, DocumentTag.tag_name.in_(to_remove))
        )
        session.flush()

    return {"added": to_add, "removed": to_remove, "total": desired}


def get_document_ids_by_tag(
    session: Session,
    tag_name: str,
    class_name: str | None = None,
) -> list[str]:
    """Ids of the documents whose tags contain tag_name exactly."""
    stmt = select(DocumentTag.document_id).where(DocumentTag.tag_name == tag_name)
    if class_name is not None:
        stmt = stmt.join(Document, Document.id == DocumentTag.document_id).where(
            Document.class_name == class_name
        )
    return [doc_id for (doc_id,) in session.execute(stmt.order_by(DocumentTag.document_id)).all()]


def list_tags_with_usage(
    session: Session,
    prefix: str | None = None,
    limit: int = 100,
    offset: int = 0,
    order: str = "count_desc",
) -> tuple[list[tuple[str, int]], int]:
    cnt = func.count(DocumentTag.document_id).label("cnt")
    q = select(DocumentTag.tag_name, cnt).group_by(DocumentTag.tag_name)
    total_q = select(func.count(func.distinct(DocumentTag.tag_name)))

    if prefix:
        escaped, esc = escape_sql_like_string(prefix.strip())
        q = q.where(DocumentTag.tag_name.like(escaped + "%", escape=esc))
        total_q = total_q.where(DocumentTag.tag_name.like(escaped + "%", escape=esc))

    if order == "name_asc":
        q = q.order_by(DocumentTag.tag_name.asc())
    else:
        q = q.order_by(cnt.desc(), DocumentTag.tag_name.asc())

    rows = (session.execute(q.limit(limit).offset(offset))).all()
    total = (session.execute(total_q)).scalar_one()

    return [(name, int(count or 0)) for (name, count) in rows], int(total or 0)
