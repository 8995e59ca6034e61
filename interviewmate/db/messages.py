"""Database operations for the messages table."""

from typing import Any

from interviewmate.core.logging import get_logger
from interviewmate.db.supabase_client import get_supabase

logger = get_logger(__name__)


def create_message(
    content: str,
    role: str,
    user_id: str,
    interview_mate_id: str,
    model_name: str | None = None,
    transcript_entry_id: str | None = None,
) -> dict[str, Any]:
    """
    Create a chat message record.

    Args:
        content: Message text, without the transcript prefix
        role: "user" or "assistant"
        user_id: Owner of the conversation
        interview_mate_id: Persona the message belongs to
        model_name: Generation model of the conversation
        transcript_entry_id: Matching transcript entry, used on deletion

    Returns:
        Created message dict

    Raises:
        ValueError: If the insert returned no row
    """
    supabase = get_supabase()
    row: dict[str, Any] = {
        "content": content,
        "role": role,
        "user_id": str(user_id),
        "interview_mate_id": str(interview_mate_id),
    }
    if model_name:
        row["model_name"] = model_name
    if transcript_entry_id:
        row["transcript_entry_id"] = transcript_entry_id

    result = supabase.table("messages").insert(row).execute()
    if not result.data:
        raise ValueError("No data returned from message insert")
    return result.data[0]


def get_message(message_id: str) -> dict[str, Any] | None:
    """Get a message by ID, or None."""
    supabase = get_supabase()
    response = (
        supabase.table("messages")
        .select("*")
        .eq("id", str(message_id))
        .maybe_single()
        .execute()
    )
    return response.data if response else None


def list_messages(interview_mate_id: str, user_id: str, limit: int = 200) -> list[dict[str, Any]]:
    """List a user's messages with one interview mate, oldest first."""
    supabase = get_supabase()
    response = (
        supabase.table("messages")
        .select("*")
        .eq("interview_mate_id", str(interview_mate_id))
        .eq("user_id", str(user_id))
        .order("created_at")
        .limit(limit)
        .execute()
    )
    return response.data or []


def delete_message(message_id: str, user_id: str) -> bool:
    """
    Delete a message owned by `user_id`.

    Returns:
        True if deleted, False if not found
    """
    supabase = get_supabase()
    response = (
        supabase.table("messages")
        .delete()
        .eq("id", str(message_id))
        .eq("user_id", str(user_id))
        .execute()
    )
    deleted = bool(response.data)
    if deleted:
        logger.info(f"Deleted message {message_id}")
    return deleted
