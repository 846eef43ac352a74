from __future__ import annotations

from pydantic import BaseModel, Field


class MyProfileResponse(BaseModel):
    id: str
    first_name: str | None
    last_name: str | None
    email: str
    is_admin: bool
    created_at: str | None = None
    completed_sections: int
    total_sections: int
    quiz_attempts: int
    quiz_passed: bool


class ProfileUpdateRequest(BaseModel):
    first_name: str | None = Field(default=None, max_length=200)
    last_name: str | None = Field(default=None, max_length=200)
