"""Tag schemas."""

from pydantic import BaseModel, ConfigDict, Field


class TagOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    slug: str
    color_hex: str


class TagSelection(TagOut):
    """A tag as offered for a folder or file, with whether it is attached."""

    selected: bool = False


class TagCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    color_hex: str | None = None


class TagUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    color_hex: str | None = None


class TagColor(BaseModel):
    color_hex: str


class TagAssignment(BaseModel):
    """Full replacement set of tags for a folder or file."""

    tag_ids: list[int] = []
