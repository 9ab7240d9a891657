import contextlib
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Iterator, Sequence

from plm.config import ImageServiceConfig
from plm.images.database.store import DocumentStore
from plm.images.errors import ImageFileError, ImageServiceError
from plm.images.helpers import build_image_url
from plm.images.services.image_management import show
from plm.images.services.metadata_extract import extract_image_metadata
from plm.images.services.schemas import AttachmentStub, ImageDocument, ImageSize


@contextlib.contextmanager
def _ingest_step(step: str) -> Iterator[None]:
    """Tag any service error escaping the block with the step that raised it."""
    try:
        yield
    except ImageServiceError as e:
        if e.step is None:
            e.step = step
        raise


def _read_image_bytes(file_path: str) -> bytes:
    try:
        with open(file_path, "rb") as f:
            return f.read()
    except OSError as e:
        raise ImageFileError(f"cannot read {file_path}: {e.strerror or e}") from e


def _discard_partial_document(store: DocumentStore, oid: str, rev: str) -> None:
    try:
        store.destroy(oid, rev)
    except ImageServiceError:
        logging.exception("Failed to remove partially ingested image %s", oid)


def save_image(
    store: DocumentStore,
    config: ImageServiceConfig,
    file_path: str | os.PathLike,
    retrieve_saved_image: bool = False,
) -> ImageDocument:
    """
    Ingest one image file: read, extract metadata and checksum, store the
    document, then attach the original bytes under the file's base name.

    Each step short-circuits the rest; the raised error names the failing
    step in ``.step``. When the attachment cannot be written, the freshly
    created document is removed again before the error propagates.
    """
    path = os.fspath(file_path)
    name = os.path.basename(path)

    with _ingest_step("read"):
        if not name:
            raise ImageFileError(f"not a file path: {path!r}")
        data = _read_image_bytes(path)

    with _ingest_step("extract"):
        meta = extract_image_metadata(data, gen_checksum=config.gen_checksums)

    with _ingest_step("build"):
        image = ImageDocument(
            name=name,
            format=meta.format,
            size=ImageSize(width=meta.width, height=meta.height),
            filesize=meta.filesize,
            checksum=meta.checksum,
            variants=[],
            tags=[],
            batch_id="",
            type="",
        )

    with _ingest_step("persist"):
        created = store.put(image.to_document())
        image.assign_oid(created["id"])
        image.rev = created["rev"]

    with _ingest_step("attach"):
        try:
            attached = store.put_attachment(
                image.oid,
                image.rev,
                name,
                data,
                meta.content_type,
            )
        except ImageServiceError:
            _discard_partial_document(store, image.oid, image.rev)
            raise
        image.rev = attached["rev"]
        image.attachments[name] = AttachmentStub(
            content_type=meta.content_type,
            stub=True,
            length=meta.size_bytes,
        )
        image.url = build_image_url(config.db.host, config.db.port, config.db.name, image.oid, name)

    logging.info(
        "Stored image %s as %s (%s, %s, %s)",
        path,
        image.oid,
        image.format,
        image.geometry,
        image.filesize,
    )

    if not retrieve_saved_image:
        return image

    with _ingest_step("retrieve"):
        return show(store, config, image.oid)


def save_images(
    store: DocumentStore,
    config: ImageServiceConfig,
    file_paths: Sequence[str | os.PathLike],
    retrieve_saved_image: bool = False,
    max_workers: int | None = None,
) -> list[ImageDocument]:
    """
    Ingest independent files in parallel. Results follow the input order.
    The first failure is raised once every submitted file has finished.
    """
    if not file_paths:
        return []
    workers = max(1, min(max_workers or config.query_workers, len(file_paths)))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = [
            pool.submit(save_image, store, config, p, retrieve_saved_image)
            for p in file_paths
        ]
    return [f.result() for f in futures]
