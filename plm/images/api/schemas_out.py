from typing import Any

from pydantic import BaseModel

from plm.images.services.schemas import ImageDocument


class ImageSizeOut(BaseModel):
    width: int
    height: int


class AttachmentOut(BaseModel):
    content_type: str
    stub: bool
    length: int | None = None


class ImageOut(BaseModel):
    oid: str
    rev: str | None = None
    name: str
    class_name: str
    filesize: str
    format: str
    size: ImageSizeOut
    geometry: str
    checksum: str | None = None
    attachments: dict[str, AttachmentOut]
    variants: list[Any]
    batch_id: str
    type: str
    tags: list[str]
    url: str

    @classmethod
    def from_image(cls, image: ImageDocument) -> "ImageOut":
        return cls(
            oid=image.oid,
            rev=image.rev,
            name=image.name,
            class_name=image.class_name,
            filesize=image.filesize,
            format=image.format,
            size=ImageSizeOut(width=image.size.width, height=image.size.height),
            geometry=image.geometry,
            checksum=image.checksum,
            attachments={
                name: AttachmentOut(content_type=a.content_type, stub=a.stub, length=a.length)
                for name, a in image.attachments.items()
            },
            variants=list(image.variants),
            batch_id=image.batch_id,
            type=image.type,
            tags=image.tags_get(),
            url=image.url,
        )


class ImagesList(BaseModel):
    images: list[ImageOut]
    total: int


class TagsAdd(BaseModel):
    added: list[str]
    already_present: list[str]
    total_tags: list[str]


class TagsRemove(BaseModel):
    removed: list[str]
    not_present: list[str]
    total_tags: list[str]


class TagUsageOut(BaseModel):
    name: str
    count: int


class TagsList(BaseModel):
    tags: list[TagUsageOut]
    total: int
    has_more: bool
