"""Interview mate (persona) management endpoints."""

import asyncio
from typing import Any, Dict

from fastapi import APIRouter, Depends

from interviewmate.core.auth import AuthContext, require_auth
from interviewmate.core.errors import NotFoundError
from interviewmate.core.logging import get_logger
from interviewmate.core.schemas_chat import (
    InterviewMateCreate,
    InterviewMateResponse,
    InterviewMateUpdate,
)
from interviewmate.db import interview_mates as mates_db

logger = get_logger(__name__)

router = APIRouter()


async def _owned_mate(interview_mate_id: str, user_id: str) -> dict[str, Any]:
    mate = await asyncio.to_thread(mates_db.get_interview_mate, interview_mate_id)
    if not mate or str(mate.get("user_id")) != user_id:
        raise NotFoundError("Interview mate not found")
    return mate


@router.post("", response_model=InterviewMateResponse, status_code=201)
async def create_interview_mate(
    body: InterviewMateCreate,
    auth: AuthContext = Depends(require_auth),
) -> Dict[str, Any]:
    """Create an interview mate owned by the caller."""
    return await asyncio.to_thread(
        mates_db.create_interview_mate,
        user_id=auth.user_id,
        user_name=auth.first_name,
        **body.model_dump(),
    )


@router.get("")
async def list_interview_mates(auth: AuthContext = Depends(require_auth)) -> Dict[str, Any]:
    """List the caller's interview mates, newest first."""
    mates = await asyncio.to_thread(mates_db.list_interview_mates, auth.user_id)
    return {"interview_mates": mates, "total": len(mates)}


@router.get("/{interview_mate_id}", response_model=InterviewMateResponse)
async def get_interview_mate(
    interview_mate_id: str,
    auth: AuthContext = Depends(require_auth),
) -> Dict[str, Any]:
    """Get one of the caller's interview mates."""
    return await _owned_mate(interview_mate_id, auth.user_id)


@router.patch("/{interview_mate_id}", response_model=InterviewMateResponse)
async def update_interview_mate(
    interview_mate_id: str,
    body: InterviewMateUpdate,
    auth: AuthContext = Depends(require_auth),
) -> Dict[str, Any]:
    """Replace the editable fields of one of the caller's interview mates."""
    await _owned_mate(interview_mate_id, auth.user_id)
    updated = await asyncio.to_thread(
        mates_db.update_interview_mate,
        interview_mate_id,
        auth.user_id,
        **body.model_dump(),
    )
    if not updated:
        raise NotFoundError("Interview mate not found")
    return updated


@router.delete("/{interview_mate_id}")
async def delete_interview_mate(
    interview_mate_id: str,
    auth: AuthContext = Depends(require_auth),
) -> Dict[str, Any]:
    """Delete one of the caller's interview mates."""
    await _owned_mate(interview_mate_id, auth.user_id)
    if not await asyncio.to_thread(mates_db.delete_interview_mate, interview_mate_id, auth.user_id):
        raise NotFoundError("Interview mate not found")
    logger.info(f"Deleted interview mate {interview_mate_id}")
    return {"id": interview_mate_id, "deleted": True}
