"""FastAPI routes for like, bookmark and follow interactions."""

from dataclasses import asdict
from typing import Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, Path, Query
from pydantic import BaseModel

from app.routes.deps import get_current_user_id, get_optional_user_id, get_request_id
from app.services.batch_status import batch_resolvers
from app.services.interactions import get_executor, page_dict

router = APIRouter(prefix="/interactions", tags=["interactions"])

KindParam = Literal["like", "bookmark", "follow"]


class EnsureRequest(BaseModel):
    desired: bool


@router.post("/{kind}/{target_type}/{target_id}/toggle", response_model=Dict)
async def toggle_interaction(
    kind: KindParam = Path(..., description="Interaction kind"),
    target_type: str = Path(..., description="post, activity or user"),
    target_id: str = Path(..., min_length=1),
    user_id: str = Depends(get_current_user_id),
    request_id: Optional[str] = Depends(get_request_id),
) -> Dict:
    """Flip the acting user's relation to the target."""
    status = await get_executor(kind).toggle(target_type, target_id, user_id, request_id=request_id)
    return asdict(status)


@router.put("/{kind}/{target_type}/{target_id}", response_model=Dict)
async def ensure_interaction(
    body: EnsureRequest,
    kind: KindParam = Path(...),
    target_type: str = Path(...),
    target_id: str = Path(..., min_length=1),
    user_id: str = Depends(get_current_user_id),
    request_id: Optional[str] = Depends(get_request_id),
) -> Dict:
    """Set the relation to the desired state; safe to retry."""
    status = await get_executor(kind).ensure(
        target_type, target_id, user_id, body.desired, request_id=request_id
    )
    return asdict(status)


@router.get("/{kind}/{target_type}", response_model=Dict)
async def batch_interaction_status(
    kind: KindParam = Path(...),
    target_type: str = Path(...),
    ids: List[str] = Query(default=[]),
    user_id: Optional[str] = Depends(get_optional_user_id),
) -> Dict:
    """Status and count for many targets of one type."""
    statuses = await batch_resolvers[kind].batch_status(target_type, ids, user_id)
    return {target_id: asdict(status) for target_id, status in statuses.items()}


@router.get("/{kind}/{target_type}/{target_id}", response_model=Dict)
async def interaction_status(
    kind: KindParam = Path(...),
    target_type: str = Path(...),
    target_id: str = Path(..., min_length=1),
    user_id: Optional[str] = Depends(get_optional_user_id),
) -> Dict:
    status = await get_executor(kind).status(target_type, target_id, user_id)
    return asdict(status)


@router.get("/{kind}/{target_type}/{target_id}/actors", response_model=Dict)
async def interaction_actors(
    kind: KindParam = Path(...),
    target_type: str = Path(...),
    target_id: str = Path(..., min_length=1),
    cursor: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=50),
) -> Dict:
    """Users holding the relation to the target, newest first."""
    page = await get_executor(kind).list_actors(target_type, target_id, cursor=cursor, limit=limit)
    return page_dict(page)
