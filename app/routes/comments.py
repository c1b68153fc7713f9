# app/routes/comments.py
"""FastAPI routes for the comment lifecycle."""

from dataclasses import asdict
from typing import Dict, Optional

from fastapi import APIRouter, Depends, Path, Query
from pydantic import BaseModel, Field

from app.routes.deps import get_current_user_id, get_is_admin
from app.services.comments import comment_service

router = APIRouter(prefix="/comments", tags=["comments"])


class CreateCommentRequest(BaseModel):
    target_type: str
    target_id: str = Field(..., min_length=1)
    content: str
    parent_id: Optional[str] = None


@router.post("", response_model=Dict, status_code=201)
async def create_comment(
    body: CreateCommentRequest,
    user_id: str = Depends(get_current_user_id),
) -> Dict:
    view = await comment_service.create(
        body.target_type, body.target_id, user_id, body.content, parent_id=body.parent_id
    )
    return view.to_dict()


@router.get("/{target_type}/{target_id}", response_model=Dict)
async def list_comments(
    target_type: str = Path(..., description="post or activity"),
    target_id: str = Path(..., min_length=1),
    parent_id: Optional[str] = Query(None, description="List replies of this comment"),
    cursor: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=50),
    include_replies: bool = Query(False),
) -> Dict:
    """
    List one level of a comment thread.

    Deleted comments that still have replies are returned with placeholder
    content and ``is_deleted`` set.
    """
    page = await comment_service.list(
        target_type,
        target_id,
        parent_id=parent_id,
        cursor=cursor,
        limit=limit,
        include_replies=include_replies,
    )
    return page.to_dict()


@router.get("/{target_type}/{target_id}/count", response_model=Dict)
async def comment_count(
    target_type: str = Path(...),
    target_id: str = Path(..., min_length=1),
) -> Dict:
    return {"count": await comment_service.count(target_type, target_id)}


@router.delete("/{comment_id}", response_model=Dict)
async def delete_comment(
    comment_id: str = Path(..., min_length=1),
    user_id: str = Depends(get_current_user_id),
    is_admin: bool = Depends(get_is_admin),
) -> Dict:
    result = await comment_service.delete(comment_id, user_id, is_admin=is_admin)
    return asdict(result)
