"""
Image management services - read, update and delete stored images.

- show: fetch the canonical stored image
- save_or_update: write mutable fields back under optimistic concurrency
- delete_image: remove an image and its attachments
- get_image_attachment: fetch a stub attachment's payload
"""
import logging
from typing import Any, Callable, TypeVar

from plm.config import ImageServiceConfig
from plm.images.database.store import DocumentStore
from plm.images.errors import ConcurrentUpdateConflict, NotFoundError, RevisionConflict
from plm.images.helpers import IMAGE_CLASS_NAME, build_image_url
from plm.images.services.schemas import MUTABLE_FIELDS, ImageDocument

T = TypeVar("T")


def image_from_document(config: ImageServiceConfig, doc: dict[str, Any]) -> ImageDocument:
    """Build an ImageDocument from a stored body, with its url for this config."""
    if doc.get("class_name") != IMAGE_CLASS_NAME:
        raise NotFoundError(f"Document {doc.get('_id')} is not an image")
    url = build_image_url(config.db.host, config.db.port, config.db.name, doc["_id"], doc["name"])
    return ImageDocument.from_document(doc, url=url)


def retry_on_conflict(
    operation: Callable[[int], T],
    max_attempts: int,
    tried: int = 0,
) -> T:
    """
    Call operation(attempt) until it stops raising RevisionConflict.

    ``tried`` is the number of attempts already spent by the caller. Once
    ``max_attempts`` attempts have failed, ConcurrentUpdateConflict is raised.
    """
    attempt = tried
    last: RevisionConflict | None = None
    while attempt < max_attempts:
        try:
            return operation(attempt)
        except RevisionConflict as e:
            last = e
            attempt += 1
            logging.info("Revision conflict (attempt %d of %d): %s", attempt, max_attempts, e)
    raise ConcurrentUpdateConflict(
        f"gave up after {attempt} attempts: {last}" if last else f"retry budget of {max_attempts} already spent",
        attempts=attempt,
    ) from last


def show(
    store: DocumentStore,
    config: ImageServiceConfig,
    oid: str,
) -> ImageDocument:
    return image_from_document(config, store.get(oid))


def save_or_update(
    store: DocumentStore,
    config: ImageServiceConfig,
    doc: ImageDocument,
    tried: int = 0,
    mutate: Callable[[ImageDocument], None] | None = None,
) -> ImageDocument:
    """
    Write the mutable fields of ``doc`` (tags, type, batch_id, variants) onto
    the stored image. The first attempt is made against ``doc.rev``; after a
    conflict the latest stored revision is fetched and the same field values
    are applied on top of it. Identity and ingestion fields are taken from the
    stored copy, never from ``doc``.

    With ``mutate``, every attempt instead applies ``mutate`` to the freshly
    fetched stored image and writes the result, so changes committed by other
    writers between attempts are kept.

    Refreshes ``doc.rev`` and returns the canonical stored image.
    """
    if not doc.oid:
        raise NotFoundError("image has no identity; save it before updating")

    changes = doc.mutable_fields()
    first_attempt = tried

    def _write(attempt: int) -> dict[str, str]:
        stored = store.get(doc.oid)
        if stored.get("class_name") != IMAGE_CLASS_NAME:
            raise NotFoundError(f"Document {doc.oid} is not an image")
        expected_rev = doc.rev if attempt == first_attempt and doc.rev else stored["_rev"]
        fields = changes
        if mutate is not None:
            latest = ImageDocument.from_document(stored)
            mutate(latest)
            fields = latest.mutable_fields()
        updated = {k: v for k, v in stored.items() if k != "_attachments"}
        updated["_rev"] = expected_rev
        for k in MUTABLE_FIELDS:
            updated[k] = fields[k]
        return store.put(updated)

    result = retry_on_conflict(_write, max_attempts=config.max_update_attempts, tried=tried)
    doc.rev = result["rev"]
    return show(store, config, doc.oid)


def delete_image(
    store: DocumentStore,
    config: ImageServiceConfig,
    oid: str,
) -> bool:
    image = show(store, config, oid)
    return retry_on_conflict(
        lambda attempt: store.destroy(oid, image.rev if attempt == 0 else store.get(oid)["_rev"]),
        max_attempts=config.max_update_attempts,
    )


def get_image_attachment(
    store: DocumentStore,
    config: ImageServiceConfig,
    oid: str,
    name: str,
) -> tuple[bytes, str]:
    image = show(store, config, oid)
    if name not in image.attachments:
        raise NotFoundError(f"Image {oid} has no attachment {name}")
    return store.get_attachment(oid, name)
