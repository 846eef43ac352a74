from __future__ import annotations

from pydantic import BaseModel


class QuizQuestionPublic(BaseModel):
    id: str
    question: str
    options: dict[str, str]


class QuizReviewItem(BaseModel):
    question_id: str
    question: str
    selected_answer: str
    selected_text: str | None
    correct_answer: str
    correct_text: str | None
    correct: bool


class QuizResultPublic(BaseModel):
    score: int
    passed: bool
    attempt_number: int
    correct: int
    total: int


class QuizSessionResponse(BaseModel):
    state: str
    attempt_number: int
    previous_attempts: int
    current_index: int
    total: int
    selected_answer: str | None = None
    questions: list[QuizQuestionPublic]
    result: QuizResultPublic | None = None
    review: list[QuizReviewItem] = []


class QuizAnswerRequest(BaseModel):
    answer: str | None = None


class QuizAttemptItem(BaseModel):
    attempt_number: int
    score: int
    passed: bool
    started_at: str | None
    completed_at: str | None


class QuizAttemptsResponse(BaseModel):
    latest_attempt_number: int
    passed: bool
    attempts: list[QuizAttemptItem]
