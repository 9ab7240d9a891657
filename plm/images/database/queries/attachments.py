from sqlalchemy import select
from sqlalchemy.orm import Session, undefer

from plm.images.database.models import Attachment


def upsert_attachment(
    session: Session,
    document_id: str,
    name: str,
    data: bytes,
    content_type: str,
) -> tuple[Attachment, bool]:
    """Insert or replace a named attachment. Returns (attachment, created)."""
    att = session.get(Attachment, (document_id, name))
    created = att is None
    if created:
        att = Attachment(document_id=document_id, name=name)
        session.add(att)
    att.content_type = content_type
    att.data = data
    att.length = len(data)
    session.flush()
    return att, created


def get_attachment(
    session: Session,
    document_id: str,
    name: str,
) -> Attachment | None:
    return session.execute(
        select(Attachment)
        .where(Attachment.document_id == document_id, Attachment.name == name)
        .options(undefer(Attachment.data))
        .limit(1)
    ).scalar_one_or_none()
