from __future__ import annotations

from pydantic import BaseModel


class UserTrainingRow(BaseModel):
    user_id: str
    name: str
    email: str
    is_admin: bool
    completed_sections: int
    total_sections: int
    progress_percent: int
    attempts: int
    last_attempt_at: str | None
    passed: bool
    passed_at: str | None
    registered_at: str | None


class TrainingReportResponse(BaseModel):
    total: int
    completed: int
    items: list[UserTrainingRow]
