from plm.config import ImageServiceConfig
from plm.images.database.store import DocumentStore
from plm.images.helpers import normalize_tags
from plm.images.services.image_management import save_or_update, show
from plm.images.services.schemas import (
    AddTagsResult,
    ImageDocument,
    ListTagsResult,
    RemoveTagsResult,
    TagUsage,
)


def apply_tags(
    store: DocumentStore,
    config: ImageServiceConfig,
    oid: str,
    tags: list[str],
) -> AddTagsResult:
    """
    Add tags to a stored image.
    Returns AddTagsResult with added, already_present and total_tags.
    The tags are added to whichever revision is current when the write lands.
    """
    image = show(store, config, oid)
    want = set(normalize_tags(tags))
    seen = {"current": set(image.tags_get())}

    if not want - seen["current"]:
        return AddTagsResult(added=[], already_present=sorted(want), total_tags=image.tags_get())

    def _add(latest: ImageDocument) -> None:
        seen["current"] = set(latest.tags_get())
        latest.tags_add(want)

    updated = save_or_update(store, config, image, mutate=_add)
    current = seen["current"]
    return AddTagsResult(
        added=sorted(want - current),
        already_present=sorted(want & current),
        total_tags=updated.tags_get(),
    )


def remove_tags(
    store: DocumentStore,
    config: ImageServiceConfig,
    oid: str,
    tags: list[str],
) -> RemoveTagsResult:
    """
    Remove tags from a stored image.
    Returns RemoveTagsResult with removed, not_present and total_tags.
    """
    image = show(store, config, oid)
    norm = set(normalize_tags(tags))
    seen = {"current": set(image.tags_get())}

    if not norm & seen["current"]:
        return RemoveTagsResult(removed=[], not_present=sorted(norm), total_tags=image.tags_get())

    def _remove(latest: ImageDocument) -> None:
        seen["current"] = set(latest.tags_get())
        latest.tags_remove(norm)

    updated = save_or_update(store, config, image, mutate=_remove)
    current = seen["current"]
    return RemoveTagsResult(
        removed=sorted(norm & current),
        not_present=sorted(norm - current),
        total_tags=updated.tags_get(),
    )


def list_tags(
    store: DocumentStore,
    prefix: str | None = None,
    limit: int = 100,
    offset: int = 0,
    order: str = "count_desc",
) -> ListTagsResult:
    """
    List tags with usage counts.
    Ordered by count (desc) then name, or by name when order is 'name_asc'.
    """
    limit = max(1, min(1000, limit))
    offset = max(0, offset)

    rows, total = store.tag_usage(prefix=prefix, limit=limit, offset=offset, order=order)
    return ListTagsResult(tags=[TagUsage(name, count) for name, count in rows], total=total)
