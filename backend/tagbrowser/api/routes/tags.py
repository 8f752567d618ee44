"""Tag endpoints."""

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import JSONResponse

from tagbrowser.api.dependencies import DbSession
from tagbrowser.db.repositories import tag_repo
from tagbrowser.models.envelope import success_response
from tagbrowser.models.tag import TagColor, TagCreate, TagOut, TagUpdate
from tagbrowser.services import tag_service

router = APIRouter()


@router.get("")
async def list_tags(db: DbSession) -> dict:
    tags = await tag_repo.list_tags(db)
    return success_response([TagOut.model_validate(t).model_dump() for t in tags], count=len(tags))


@router.post("")
async def create_tag(body: TagCreate, db: DbSession) -> JSONResponse:
    """Create a tag, or return the existing one with the same slug (200 instead of 201)."""
    tag, created = await tag_service.get_or_create_tag(db, body.name, body.color_hex)
    await db.commit()
    return JSONResponse(
        status_code=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        content=success_response(TagOut.model_validate(tag).model_dump(), created=created),
    )


@router.patch("/{tag_id}")
async def update_tag(tag_id: int, body: TagUpdate, db: DbSession) -> dict:
    tag = await tag_service.update_tag(db, tag_id, name=body.name, color_hex=body.color_hex)
    return success_response(TagOut.model_validate(tag).model_dump())


@router.post("/{tag_id}/color")
async def set_tag_color(tag_id: int, body: TagColor, db: DbSession) -> dict:
    tag = await tag_service.update_tag(db, tag_id, color_hex=body.color_hex)
    return success_response(TagOut.model_validate(tag).model_dump())


@router.delete("/{tag_id}")
async def delete_tag(tag_id: int, db: DbSession) -> dict:
    """Delete a tag and detach it from every folder and file."""
    if not await tag_repo.delete_tag(db, tag_id):
        raise HTTPException(status_code=404, detail="Tag not found")
    return success_response({"deleted": True, "id": tag_id})
