"""Pydantic schemas for chat and interview mate endpoints."""

from pydantic import BaseModel, Field, field_validator


class ChatRequest(BaseModel):
    prompt: str = ""
    lang: str | None = Field(None, description="Response language code, e.g. 'fr'")


class DeleteMessageResponse(BaseModel):
    id: str
    deleted: bool = True
    transcript_entry_removed: bool = False


class InterviewMateCreate(BaseModel):
    """Fields required to create or replace an interview mate."""

    src: str
    name: str
    description: str
    instruction: str
    seed: str

    @field_validator("src", "name", "description", "instruction", "seed")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value


class InterviewMateUpdate(InterviewMateCreate):
    pass


class InterviewMateResponse(BaseModel):
    id: str
    user_id: str
    user_name: str | None = None
    src: str
    name: str
    description: str
    instruction: str
    seed: str
    created_at: str | None = None
    updated_at: str | None = None
