"""
Thread metadata models and request schemas.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ThreadRecord(BaseModel):
    """Relational metadata for a conversation thread."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., min_length=1, description="Thread identifier (also the checkpoint key)")
    title: str = Field(..., min_length=1, max_length=200)
    owner_id: str | None = Field(default=None, description="Opaque owner reference")
    is_named: bool = Field(default=False, description="Whether the user chose the title")
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class CreateThreadRequest(BaseModel):
    """Request body for an explicit "new thread" action."""

    model_config = ConfigDict(populate_by_name=True)

    thread_id: str | None = Field(default=None, alias="threadId", description="Client-chosen id (generated if omitted)")
    title: str | None = Field(default=None, max_length=200)


class RenameThreadRequest(BaseModel):
    """Request body for renaming a thread."""

    model_config = ConfigDict(populate_by_name=True)

    thread_id: str = Field(..., min_length=1, alias="threadId")
    title: str = Field(..., min_length=1, max_length=200)

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("title must not be blank")
        return stripped


class DeleteThreadRequest(BaseModel):
    """Request body for deleting a thread."""

    model_config = ConfigDict(populate_by_name=True)

    thread_id: str = Field(..., min_length=1, alias="threadId")


class ThreadResponse(BaseModel):
    """Thread as returned by the thread endpoints."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    owner_id: str | None = Field(default=None, alias="ownerId")
    is_named: bool = Field(default=False, alias="isNamed")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    @classmethod
    def from_record(cls, record: ThreadRecord) -> ThreadResponse:
        return cls(
            id=record.id,
            title=record.title,
            owner_id=record.owner_id,
            is_named=record.is_named,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


__all__ = [
    "CreateThreadRequest",
    "DeleteThreadRequest",
    "RenameThreadRequest",
    "ThreadRecord",
    "ThreadResponse",
]
