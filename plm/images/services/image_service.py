import os
from typing import Any, Iterable, Sequence

from plm.config import ImageServiceConfig
from plm.database.db import Database
from plm.images.database.store import DocumentStore
from plm.images.services import image_management, ingest, query, tagging
from plm.images.services.rules import RuleGroup
from plm.images.services.schemas import (
    AddTagsResult,
    ImageDocument,
    ListTagsResult,
    RemoveTagsResult,
)


class ImageService:
    """Binds one config and one store to the image operations."""

    def __init__(self, config: ImageServiceConfig, store: DocumentStore):
        self.config = config
        self.store = store

    @classmethod
    def from_config(cls, config: ImageServiceConfig, create_schema: bool = False) -> "ImageService":
        database = Database(config.db.url)
        if create_schema:
            database.create_all()
        return cls(config, DocumentStore(database))

    def save(self, file_path: str | os.PathLike, retrieve_saved_image: bool = False) -> ImageDocument:
        return ingest.save_image(self.store, self.config, file_path, retrieve_saved_image=retrieve_saved_image)

    def save_many(
        self,
        file_paths: Sequence[str | os.PathLike],
        retrieve_saved_image: bool = False,
        max_workers: int | None = None,
    ) -> list[ImageDocument]:
        return ingest.save_images(
            self.store,
            self.config,
            file_paths,
            retrieve_saved_image=retrieve_saved_image,
            max_workers=max_workers,
        )

    def save_or_update(self, doc: ImageDocument, tried: int = 0) -> ImageDocument:
        return image_management.save_or_update(self.store, self.config, doc, tried=tried)

    def show(self, oid: str) -> ImageDocument:
        return image_management.show(self.store, self.config, oid)

    def delete(self, oid: str) -> bool:
        return image_management.delete_image(self.store, self.config, oid)

    def get_attachment(self, oid: str, name: str) -> tuple[bytes, str]:
        return image_management.get_image_attachment(self.store, self.config, oid, name)

    def find_by_tags(self, rule_group: RuleGroup | dict[str, Any], limit: int | None = None) -> list[ImageDocument]:
        return query.find_by_tags(self.store, self.config, rule_group, limit=limit)

    def apply_tags(self, oid: str, tags: Iterable[str]) -> AddTagsResult:
        return tagging.apply_tags(self.store, self.config, oid, list(tags))

    def remove_tags(self, oid: str, tags: Iterable[str]) -> RemoveTagsResult:
        return tagging.remove_tags(self.store, self.config, oid, list(tags))

    def list_tags(
        self,
        prefix: str | None = None,
        limit: int = 100,
        offset: int = 0,
        order: str = "count_desc",
    ) -> ListTagsResult:
        return tagging.list_tags(self.store, prefix=prefix, limit=limit, offset=offset, order=order)
