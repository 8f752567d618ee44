"""File schemas.

``storage_path`` stays server-side; clients address files by id.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from tagbrowser.models.tag import TagOut


class FileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    folder_id: int
    name: str
    size_bytes: int
    mime_type: str
    created_at: datetime | None = None


class FileListItem(FileOut):
    tags: list[TagOut] = []


class FileRename(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class UploadResult(BaseModel):
    ok: bool = True
    file_ids: list[int] = []
    created_tags: list[TagOut] = []
