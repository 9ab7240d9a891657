"""Tests for tag queries over stored images."""
from unittest.mock import patch

import pytest

from plm.images.database.store import DocumentStore
from plm.images.errors import InvalidRuleGroup, StoreReadError
from plm.images.services import ImageService
from plm.images.services.query import combine_id_sets
from plm.images.services.rules import GroupOp, Rule, RuleGroup, parse_rule_group

TAGGED = {
    "eastwood": ["family", "friends", "trips"],
    "hopper": ["america", "friends", "zoo"],
    "jayz": ["f", "l", "family", "friends"],
}


@pytest.fixture
def tagged_images(image_service: ImageService, make_image) -> dict:
    images = {}
    for name, tags in TAGGED.items():
        image = image_service.save(make_image(f"{name}.png"))
        image.tags_add(tags)
        images[name] = image_service.save_or_update(image)
    return images


def _group(op: str, *tags: str) -> dict:
    return {"groupOp": op, "rules": [{"field": "tags", "op": "eq", "data": t} for t in tags]}


def _names(images) -> list[str]:
    return sorted(i.name.removesuffix(".png") for i in images)


class TestFindByTags:
    def test_and_intersects(self, image_service: ImageService, tagged_images):
        result = image_service.find_by_tags(_group("AND", "friends", "family"))
        assert _names(result) == ["eastwood", "jayz"]

    def test_and_without_common_document(self, image_service: ImageService, tagged_images):
        assert image_service.find_by_tags(_group("AND", "america", "trips")) == []

    def test_or_unions_without_duplicates(self, image_service: ImageService, tagged_images):
        result = image_service.find_by_tags(_group("OR", "friends", "family"))
        assert _names(result) == ["eastwood", "hopper", "jayz"]
        assert len({i.oid for i in result}) == len(result) == 3

    def test_single_rule(self, image_service: ImageService, tagged_images):
        assert _names(image_service.find_by_tags(_group("AND", "zoo"))) == ["hopper"]

    def test_unknown_tag(self, image_service: ImageService, tagged_images):
        assert image_service.find_by_tags(_group("OR", "nobody")) == []

    @pytest.mark.parametrize("op", ["AND", "OR"])
    def test_empty_rules(self, image_service: ImageService, tagged_images, op):
        assert image_service.find_by_tags({"groupOp": op, "rules": []}) == []

    def test_results_are_full_documents(self, image_service: ImageService, tagged_images):
        (jayz,) = image_service.find_by_tags(_group("AND", "l"))
        assert jayz == tagged_images["jayz"]
        assert jayz.url == tagged_images["jayz"].url
        assert jayz.attachments["jayz.png"].stub is True

    def test_limit(self, image_service: ImageService, tagged_images):
        assert len(image_service.find_by_tags(_group("OR", "friends"), limit=2)) == 2

    def test_accepts_model_and_lowercase_op(self, image_service: ImageService, tagged_images):
        group = RuleGroup(group_op=GroupOp.OR, rules=[Rule(field="tags", data="zoo")])
        assert _names(image_service.find_by_tags(group)) == ["hopper"]
        assert _names(image_service.find_by_tags(_group("or", "zoo"))) == ["hopper"]

    def test_skips_non_image_documents(self, image_service: ImageService, store: DocumentStore, tagged_images):
        store.put({"class_name": "plm.Note", "name": "note", "tags": ["family"]})
        assert _names(image_service.find_by_tags(_group("OR", "family"))) == ["eastwood", "jayz"]

    def test_limit_counts_only_images(self, image_service: ImageService, store: DocumentStore, tagged_images):
        store.put({"_id": "!note", "class_name": "plm.Note", "name": "note", "tags": ["family"]})
        (image,) = image_service.find_by_tags(_group("OR", "family"), limit=1)
        assert image.class_name == "plm.Image"

    def test_failed_lookup_fails_query(self, image_service: ImageService, store: DocumentStore, tagged_images):
        real_lookup = store.query_index

        def _lookup(index_name, key, class_name=None):
            if key == "family":
                raise StoreReadError("index unavailable")
            return real_lookup(index_name, key, class_name)

        with patch.object(store, "query_index", side_effect=_lookup):
            with pytest.raises(StoreReadError):
                image_service.find_by_tags(_group("OR", "friends", "family"))

    def test_reflects_tag_removal(self, image_service: ImageService, tagged_images):
        image_service.remove_tags(tagged_images["jayz"].oid, ["family"])
        assert _names(image_service.find_by_tags(_group("AND", "friends", "family"))) == ["eastwood"]


class TestRuleGroupValidation:
    @pytest.mark.parametrize(
        "raw",
        [
            {"groupOp": "XOR", "rules": []},
            {"groupOp": "AND", "rules": [{"field": "name", "op": "eq", "data": "x"}]},
            {"groupOp": "AND", "rules": [{"field": "tags", "op": "ne", "data": "x"}]},
            {"groupOp": "AND", "rules": [{"field": "tags", "op": "eq", "data": ""}]},
            {"groupOp": "AND", "rules": [{"field": "tags", "op": "eq", "data": 3}]},
            {"groupOp": "AND", "rules": [{"groupOp": "OR", "rules": [{"field": "tags", "op": "eq", "data": "x"}]}]},
            {"rules": []},
            ["not", "a", "mapping"],
        ],
        ids=["bad_group_op", "unindexed_field", "bad_op", "empty_data", "non_string_data", "nested", "missing_group_op", "not_mapping"],
    )
    def test_invalid(self, raw):
        with pytest.raises(InvalidRuleGroup):
            parse_rule_group(raw)

    def test_invalid_group_rejected_by_service(self, image_service: ImageService):
        with pytest.raises(InvalidRuleGroup):
            image_service.find_by_tags({"groupOp": "NOT", "rules": []})

    @pytest.mark.parametrize("op", ["eq", "=", "=="])
    def test_equality_aliases(self, op):
        group = parse_rule_group({"groupOp": "AND", "rules": [{"field": "tags", "op": op, "data": " family "}]})
        assert group.rules[0].op == "eq"
        assert group.rules[0].data == "family"

    def test_op_defaults_to_equality(self):
        group = parse_rule_group({"groupOp": "OR", "rules": [{"field": "tags", "data": "x"}]})
        assert group.group_op is GroupOp.OR
        assert group.rules[0].op == "eq"


class TestCombineIdSets:
    def test_and(self):
        assert combine_id_sets(GroupOp.AND, [{"a", "b"}, {"b", "c"}]) == {"b"}

    def test_or(self):
        assert combine_id_sets(GroupOp.OR, [{"a"}, {"b"}, {"a"}]) == {"a", "b"}

    def test_empty(self):
        assert combine_id_sets(GroupOp.AND, []) == set()
