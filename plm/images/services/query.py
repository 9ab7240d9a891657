from concurrent.futures import ThreadPoolExecutor
from typing import Any

from plm.config import ImageServiceConfig
from plm.images.database.store import DocumentStore
from plm.images.helpers import IMAGE_CLASS_NAME, TAG_INDEX
from plm.images.services.image_management import image_from_document
from plm.images.services.rules import GroupOp, RuleGroup, parse_rule_group
from plm.images.services.schemas import ImageDocument


def _lookup_all(
    store: DocumentStore,
    config: ImageServiceConfig,
    keys: list[str],
) -> list[set[str]]:
    """One image-only index lookup per key, run concurrently; joins before returning."""
    workers = max(1, min(config.query_workers, len(keys)))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = [pool.submit(store.query_index, TAG_INDEX, k, IMAGE_CLASS_NAME) for k in keys]
    return [set(f.result()) for f in futures]


def combine_id_sets(group_op: GroupOp, id_sets: list[set[str]]) -> set[str]:
    if not id_sets:
        return set()
    if group_op is GroupOp.AND:
        return set.intersection(*id_sets)
    return set.union(*id_sets)


def find_by_tags(
    store: DocumentStore,
    config: ImageServiceConfig,
    rule_group: RuleGroup | dict[str, Any],
    limit: int | None = None,
) -> list[ImageDocument]:
    """
    Images matching a flat AND/OR group of tag equality rules.

    Each image appears once. Results come back in ascending id order, but
    callers should not rely on any particular order.
    """
    group = parse_rule_group(rule_group)
    if not group.rules:
        return []

    id_sets = _lookup_all(store, config, [r.data for r in group.rules])
    ids = sorted(combine_id_sets(group.group_op, id_sets))
    if limit is not None:
        ids = ids[: max(0, limit)]
    if not ids:
        return []

    return [image_from_document(config, doc) for doc in store.get_many(ids)]
