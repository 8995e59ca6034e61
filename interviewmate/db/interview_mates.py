"""Database operations for the interview_mates table."""

from typing import Any

from interviewmate.core.logging import get_logger
from interviewmate.db.supabase_client import get_supabase

logger = get_logger(__name__)


def get_interview_mate(interview_mate_id: str) -> dict[str, Any] | None:
    """
    Get an interview mate by ID.

    Args:
        interview_mate_id: Interview mate UUID

    Returns:
        Interview mate dict or None
    """
    supabase = get_supabase()
    response = (
        supabase.table("interview_mates")
        .select("*")
        .eq("id", str(interview_mate_id))
        .maybe_single()
        .execute()
    )
    return response.data if response else None


def list_interview_mates(user_id: str) -> list[dict[str, Any]]:
    """List interview mates created by a user, newest first."""
    supabase = get_supabase()
    response = (
        supabase.table("interview_mates")
        .select("*")
        .eq("user_id", str(user_id))
        .order("created_at", desc=True)
        .execute()
    )
    return response.data or []


def create_interview_mate(
    user_id: str,
    user_name: str,
    src: str,
    name: str,
    description: str,
    instruction: str,
    seed: str,
) -> dict[str, Any]:
    """Create a new interview mate owned by `user_id`."""
    supabase = get_supabase()
    data = {
        "user_id": str(user_id),
        "user_name": user_name,
        "src": src,
        "name": name,
        "description": description,
        "instruction": instruction,
        "seed": seed,
    }
    response = supabase.table("interview_mates").insert(data).execute()
    if not response.data:
        raise ValueError("No data returned from interview mate insert")

    logger.info(f"Created interview mate '{name}' for user {user_id}")
    return response.data[0]


def update_interview_mate(
    interview_mate_id: str,
    user_id: str,
    **updates: Any,
) -> dict[str, Any] | None:
    """
    Update an interview mate owned by `user_id`.

    Returns:
        Updated interview mate dict or None if not found
    """
    supabase = get_supabase()

    clean_updates = {k: v for k, v in updates.items() if v is not None}
    if not clean_updates:
        return get_interview_mate(interview_mate_id)

    response = (
        supabase.table("interview_mates")
        .update(clean_updates)
        .eq("id", str(interview_mate_id))
        .eq("user_id", str(user_id))
        .execute()
    )
    return response.data[0] if response.data else None


def delete_interview_mate(interview_mate_id: str, user_id: str) -> bool:
    """
    Delete an interview mate owned by `user_id`.

    Returns:
        True if deleted, False if not found
    """
    supabase = get_supabase()
    response = (
        supabase.table("interview_mates")
        .delete()
        .eq("id", str(interview_mate_id))
        .eq("user_id", str(user_id))
        .execute()
    )
    return bool(response.data)
