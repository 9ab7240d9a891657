"""Tests for the document store API used by the image services."""
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from plm.images.database.store import DocumentStore
from plm.images.errors import NotFoundError, RevisionConflict, StoreReadError, StoreWriteError


class TestPutAndGet:
    def test_create_assigns_id_and_revision(self, store: DocumentStore):
        result = store.put({"class_name": "plm.Image", "name": "a.png", "tags": ["x"]})

        assert result["id"]
        assert result["rev"].startswith("1-")
        doc = store.get(result["id"])
        assert doc["_id"] == result["id"]
        assert doc["_rev"] == result["rev"]
        assert doc["name"] == "a.png"

    def test_update_requires_current_revision(self, store: DocumentStore):
        created = store.put({"name": "a.png"})

        updated = store.put({"_id": created["id"], "_rev": created["rev"], "name": "b.png"})
        assert updated["rev"].startswith("2-")

        with pytest.raises(RevisionConflict):
            store.put({"_id": created["id"], "_rev": created["rev"], "name": "c.png"})
        with pytest.raises(RevisionConflict):
            store.put({"_id": created["id"], "name": "c.png"})
        assert store.get(created["id"])["name"] == "b.png"

    def test_put_with_unknown_id_and_no_rev_creates(self, store: DocumentStore):
        result = store.put({"_id": "chosen", "name": "a.png"})
        assert result["id"] == "chosen"
        assert store.get("chosen")["name"] == "a.png"

    def test_put_with_unknown_id_and_rev_conflicts(self, store: DocumentStore):
        with pytest.raises(RevisionConflict):
            store.put({"_id": "ghost", "_rev": "3-abc", "name": "a.png"})

    def test_get_missing(self, store: DocumentStore):
        with pytest.raises(NotFoundError):
            store.get("missing")

    def test_reserved_keys_not_stored_in_body(self, store: DocumentStore):
        result = store.put({"name": "a.png", "_attachments": {"a.png": {"data": "AAAA"}}})
        doc = store.get(result["id"])
        assert "_attachments" not in doc

    def test_get_many_skips_missing(self, store: DocumentStore):
        a = store.put({"_id": "a", "name": "a.png"})
        b = store.put({"_id": "b", "name": "b.png"})
        docs = store.get_many(["b", "zzz", "a"])
        assert [d["_id"] for d in docs] == [a["id"], b["id"]]


class TestTagIndex:
    def test_index_follows_writes(self, store: DocumentStore):
        created = store.put({"name": "a.png", "tags": ["family", "trips"]})
        assert store.query_index("by_tag", "family") == [created["id"]]

        store.put({"_id": created["id"], "_rev": created["rev"], "name": "a.png", "tags": ["trips"]})

        assert store.query_index("by_tag", "family") == []
        assert store.query_index("by_tag", "trips") == [created["id"]]

    def test_index_filters_by_class(self, store: DocumentStore):
        image = store.put({"class_name": "plm.Image", "name": "a.png", "tags": ["family"]})
        note = store.put({"class_name": "plm.Note", "name": "n", "tags": ["family"]})

        assert sorted(store.query_index("by_tag", "family")) == sorted([image["id"], note["id"]])
        assert store.query_index("by_tag", "family", class_name="plm.Image") == [image["id"]]

    def test_unknown_index(self, store: DocumentStore):
        with pytest.raises(NotFoundError):
            store.query_index("by_colour", "red")

    def test_tag_usage(self, store: DocumentStore):
        store.put({"name": "a.png", "tags": ["a", "b"]})
        store.put({"name": "b.png", "tags": ["b"]})

        rows, total = store.tag_usage()
        assert rows == [("b", 2), ("a", 1)]
        assert total == 2


class TestAttachments:
    def test_put_attachment_bumps_revision(self, store: DocumentStore):
        created = store.put({"name": "a.png"})

        attached = store.put_attachment(created["id"], created["rev"], "a.png", b"\x89PNGdata", "image/PNG")

        assert attached["rev"].startswith("2-")
        doc = store.get(created["id"])
        assert doc["_rev"] == attached["rev"]
        assert doc["_attachments"] == {"a.png": {"content_type": "image/PNG", "length": 8, "stub": True}}
        assert store.get_attachment(created["id"], "a.png") == (b"\x89PNGdata", "image/PNG")

    def test_put_attachment_stale_revision(self, store: DocumentStore):
        created = store.put({"name": "a.png"})
        store.put({"_id": created["id"], "_rev": created["rev"], "name": "a.png"})

        with pytest.raises(RevisionConflict):
            store.put_attachment(created["id"], created["rev"], "a.png", b"x", "image/PNG")
        with pytest.raises(NotFoundError):
            store.get_attachment(created["id"], "a.png")

    def test_put_attachment_missing_document(self, store: DocumentStore):
        with pytest.raises(NotFoundError):
            store.put_attachment("missing", "1-a", "a.png", b"x", "image/PNG")


class TestDestroy:
    def test_destroy_removes_document_attachments_and_index(self, store: DocumentStore):
        created = store.put({"name": "a.png", "tags": ["family"]})
        attached = store.put_attachment(created["id"], created["rev"], "a.png", b"x", "image/PNG")

        assert store.destroy(created["id"], attached["rev"]) is True

        with pytest.raises(NotFoundError):
            store.get(created["id"])
        assert store.query_index("by_tag", "family") == []

    def test_destroy_stale_revision(self, store: DocumentStore):
        created = store.put({"name": "a.png"})
        store.put({"_id": created["id"], "_rev": created["rev"], "name": "a.png"})

        with pytest.raises(RevisionConflict):
            store.destroy(created["id"], created["rev"])

    def test_destroy_missing(self, store: DocumentStore):
        with pytest.raises(NotFoundError):
            store.destroy("missing", "1-a")


class TestStoreFailures:
    def test_read_failure_is_store_read_error(self, store: DocumentStore):
        with patch(
            "plm.images.database.store.get_document",
            side_effect=OperationalError("SELECT", {}, Exception("disk I/O error")),
        ):
            with pytest.raises(StoreReadError):
                store.get("anything")

    def test_write_failure_is_store_write_error(self, store: DocumentStore):
        with patch(
            "plm.images.database.store.insert_document",
            side_effect=OperationalError("INSERT", {}, Exception("database is locked")),
        ):
            with pytest.raises(StoreWriteError):
                store.put({"name": "a.png"})
