from dataclasses import dataclass, field
from typing import Any, Iterable, NamedTuple

from plm.images.helpers import IMAGE_CLASS_NAME, normalize_tags

MUTABLE_FIELDS = ("tags", "type", "batch_id", "variants")


@dataclass(frozen=True)
class ImageSize:
    width: int
    height: int

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"image size must be positive, got {self.width}x{self.height}")


@dataclass(frozen=True)
class AttachmentStub:
    """Descriptor of a binary payload fetched separately from the document."""

    content_type: str
    stub: bool = True
    length: int | None = None


class ImageDocument:
    """
    In-memory form of a persisted image record.

    ``geometry`` is derived from ``size``. Tags are held as a set and always
    read back sorted, so two documents with the same tags render the same
    regardless of the order they were added in. ``url`` is filled in at read
    time and never stored.
    """

    def __init__(
        self,
        name: str,
        format: str,
        size: ImageSize,
        filesize: str,
        checksum: str | None = None,
        oid: str | None = None,
        rev: str | None = None,
        attachments: dict[str, AttachmentStub] | None = None,
        variants: list[Any] | None = None,
        batch_id: str = "",
        type: str = "",
        tags: Iterable[str] | None = None,
        url: str = "",
        class_name: str = IMAGE_CLASS_NAME,
    ):
        if not name:
            raise ValueError("image name must be non-empty")
        self.name = name
        self.class_name = class_name
        self.format = format
        self.size = size
        self.filesize = filesize
        self.checksum = checksum
        self._oid = oid
        self.rev = rev
        self.attachments = dict(attachments or {})
        self.variants = list(variants or [])
        self.batch_id = batch_id or ""
        self.type = type or ""
        self._tags: set[str] = set(normalize_tags(tags))
        self.url = url

    @property
    def oid(self) -> str | None:
        return self._oid

    def assign_oid(self, oid: str) -> None:
        """Identity is set once, by the store, on first create."""
        if self._oid is not None and self._oid != oid:
            raise ValueError(f"image already has identity {self._oid}")
        self._oid = oid

    @property
    def geometry(self) -> str:
        return f"{self.size.width}x{self.size.height}"

    @property
    def tags(self) -> list[str]:
        return self.tags_get()

    def tags_add(self, tags: Iterable[str]) -> None:
        self._tags.update(normalize_tags(tags))

    def tags_remove(self, tags: Iterable[str]) -> None:
        self._tags.difference_update(normalize_tags(tags))

    def tags_get(self) -> list[str]:
        return sorted(self._tags)

    def mutable_fields(self) -> dict[str, Any]:
        return {
            "tags": self.tags_get(),
            "type": self.type,
            "batch_id": self.batch_id,
            "variants": list(self.variants),
        }

    def to_document(self) -> dict[str, Any]:
        """Body as handed to the store. Attachments and url are not part of it."""
        doc: dict[str, Any] = {
            "class_name": self.class_name,
            "name": self.name,
            "filesize": self.filesize,
            "format": self.format,
            "size": {"width": self.size.width, "height": self.size.height},
            "geometry": self.geometry,
            **self.mutable_fields(),
        }
        if self.checksum is not None:
            doc["checksum"] = self.checksum
        if self._oid is not None:
            doc["_id"] = self._oid
        if self.rev is not None:
            doc["_rev"] = self.rev
        return doc

    @classmethod
    def from_document(cls, doc: dict[str, Any], url: str = "") -> "ImageDocument":
        size = doc.get("size") or {}
        attachments = {
            name: AttachmentStub(
                content_type=meta.get("content_type", ""),
                stub=True,
                length=meta.get("length"),
            )
            for name, meta in (doc.get("_attachments") or {}).items()
        }
        return cls(
            name=doc["name"],
            format=doc.get("format", ""),
            size=ImageSize(width=int(size["width"]), height=int(size["height"])),
            filesize=doc.get("filesize", ""),
            checksum=doc.get("checksum"),
            oid=doc.get("_id"),
            rev=doc.get("_rev"),
            attachments=attachments,
            variants=doc.get("variants"),
            batch_id=doc.get("batch_id", ""),
            type=doc.get("type", ""),
            tags=doc.get("tags"),
            url=url,
            class_name=doc.get("class_name", IMAGE_CLASS_NAME),
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ImageDocument):
            return NotImplemented
        return (
            self.to_document() == other.to_document()
            and self.attachments == other.attachments
        )

    __hash__ = None

    def __repr__(self) -> str:
        return f"<ImageDocument oid={self._oid} name={self.name!r} geometry={self.geometry} tags={self.tags_get()}>"


@dataclass(frozen=True)
class AddTagsResult:
    added: list[str]
    already_present: list[str]
    total_tags: list[str]


@dataclass(frozen=True)
class RemoveTagsResult:
    removed: list[str]
    not_present: list[str]
    total_tags: list[str]


class TagUsage(NamedTuple):
    name: str
    count: int


@dataclass(frozen=True)
class ListTagsResult:
    tags: list[TagUsage] = field(default_factory=list)
    total: int = 0
