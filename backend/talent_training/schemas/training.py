from __future__ import annotations

from pydantic import BaseModel, Field


class SectionItem(BaseModel):
    id: str
    title: str
    description: str
    video_url: str
    duration: str
    status: str
    completion_date: str | None = None


class TrainingOverviewResponse(BaseModel):
    sections: list[SectionItem]
    completed_count: int
    total_sections: int
    completion_percentage: int
    quiz_available: bool
    quiz_passed: bool


class WatchProgressRequest(BaseModel):
    played_fraction: float = Field(ge=0.0, le=1.0)


class SectionProgressResponse(BaseModel):
    section_id: str
    status: str
    completed: bool
    completion_date: str | None
    quiz_available: bool
