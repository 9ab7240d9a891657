# Image services layer
# Business logic over the document store: ingestion, updates, tag queries
# Services take the store and config explicitly; each store call owns its session

from plm.images.services.ingest import (
    save_image,
    save_images,
)
from plm.images.services.image_management import (
    delete_image,
    get_image_attachment,
    retry_on_conflict,
    save_or_update,
    show,
)
from plm.images.services.query import find_by_tags
from plm.images.services.tagging import (
    apply_tags,
    remove_tags,
    list_tags,
)
from plm.images.services.image_service import ImageService

__all__ = [
    # ingest.py
    "save_image",
    "save_images",
    # image_management.py
    "delete_image",
    "get_image_attachment",
    "retry_on_conflict",
    "save_or_update",
    "show",
    # query.py
    "find_by_tags",
    # tagging.py
    "apply_tags",
    "remove_tags",
    "list_tags",
    # image_service.py
    "ImageService",
]
