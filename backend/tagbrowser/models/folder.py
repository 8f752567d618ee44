"""Folder schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from tagbrowser.models.tag import TagOut


class FolderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    parent_id: int | None
    full_path: str
    created_at: datetime | None = None


class FolderListItem(FolderOut):
    has_children: bool = False
    tags: list[TagOut] = []


class FolderCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    parent_id: int | None = None


class FolderRename(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
