# Re-export public API from query modules
# Pure atomic database queries only - no business logic or orchestration

from plm.images.database.queries.documents import (
    delete_document_if_rev,
    document_to_dict,
    get_document,
    get_documents_by_ids,
    insert_document,
    next_revision,
    strip_reserved_keys,
    update_document_if_rev,
)

from plm.images.database.queries.attachments import (
    get_attachment,
    upsert_attachment,
)

from plm.images.database.queries.tags import (
    get_document_ids_by_tag,
    get_document_tags,
    list_tags_with_usage,
    set_document_tags,
)

__all__ = [
    # documents.py
    "delete_document_if_rev",
    "document_to_dict",
    "get_document",
    "get_documents_by_ids",
    "insert_document",
    "next_revision",
    "strip_reserved_keys",
    "update_document_if_rev",
    # attachments.py
    "get_attachment",
    "upsert_attachment",
    # tags.py
    "get_document_ids_by_tag",
    "get_document_tags",
    "list_tags_with_usage",
    "set_document_tags",
]
