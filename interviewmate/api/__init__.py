"""API router for v1 endpoints."""

from fastapi import APIRouter

from interviewmate.api import chat, interview_mates

router = APIRouter()

# Streamed chat, message history and message deletion
router.include_router(chat.router, tags=["chat"])

# Interview mate (persona) management
router.include_router(interview_mates.router, prefix="/interview-mates", tags=["interview_mates"])
