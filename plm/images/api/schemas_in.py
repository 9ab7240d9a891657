from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SaveImageBody(BaseModel):
    model_config = ConfigDict(extra="forbid")

    path: str = Field(min_length=1)
    retrieve_saved_image: bool = False


class UpdateImageBody(BaseModel):
    """Mutable fields only. Omitted fields keep their stored value."""

    model_config = ConfigDict(extra="forbid")

    rev: str | None = None
    tags: list[str] | None = None
    type: str | None = None
    batch_id: str | None = None
    variants: list[Any] | None = None


class TagsBody(BaseModel):
    model_config = ConfigDict(extra="forbid")

    tags: list[str] = Field(min_length=1)

    @field_validator("tags", mode="before")
    @classmethod
    def _split_csv(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [t for t in v.split(",")]
        return v


class ListTagsQuery(BaseModel):
    prefix: str | None = None
    limit: int = Field(default=100, ge=1, le=1000)
    offset: int = Field(default=0, ge=0)
    order: Literal["count_desc", "name_asc"] = "count_desc"


class FindByTagsQuery(BaseModel):
    limit: int | None = Field(default=None, ge=1)
