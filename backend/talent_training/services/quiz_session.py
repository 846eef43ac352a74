from __future__ import annotations

import enum
import logging
import random
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any

from talent_training.core.errors import SessionNotFoundError, ValidationError
from talent_training.models.attempt import QuizAttempt
from talent_training.models.quiz import AnswerOption, QuizQuestion
from talent_training.services.attempt_ledger import AttemptLedger
from talent_training.services.notifications import CompletionEvent, NotificationSink

log = logging.getLogger(__name__)

OPTION_TAGS = tuple(o.value for o in AnswerOption)


class SessionState(str, enum.Enum):
    not_started = "not_started"
    in_progress = "in_progress"
    submitted_passed = "submitted_passed"
    submitted_failed = "submitted_failed"


@dataclass
class UserQuizAnswer:
    question_id: str
    selected_answer: str
    correct: bool


@dataclass(frozen=True)
class QuizResult:
    score: int
    passed: bool
    attempt_number: int
    correct: int
    total: int


def compute_score(correct: int, total: int) -> int:
    """Integer percentage, rounded half up."""
    if total <= 0:
        raise ValidationError("quiz has no questions")
    return (200 * int(correct) + int(total)) // (2 * int(total))


def is_passing(score: int) -> bool:
    # Exact-match policy: only a perfect score passes.
    return int(score) == 100


def normalize_selection(selected: str | None) -> str:
    tag = (selected or "").strip().upper()
    if not tag:
        raise ValidationError("please select an answer")
    if tag not in OPTION_TAGS:
        raise ValidationError(f"answer must be one of {', '.join(OPTION_TAGS)}")
    return tag


class QuizSession:
    """One quiz attempt, owned by one user.

    not_started -> in_progress -> submitted_passed | submitted_failed;
    submitted_failed -> in_progress through retake(). Rejected calls raise
    ValidationError and leave the session untouched.
    """

    def __init__(
        self,
        *,
        participant: Any,
        questions: Sequence[QuizQuestion],
        attempt_number: int,
        ledger: AttemptLedger,
        notifier: NotificationSink | None = None,
        rng: random.Random | None = None,
    ):
        self.participant = participant
        self.questions: list[QuizQuestion] = list(questions)
        self.attempt_number = int(attempt_number)
        self.ledger = ledger
        self.notifier = notifier
        self._rng = rng or random.Random()

        self.state = SessionState.not_started
        self.index = 0
        self.answers: dict[int, UserQuizAnswer] = {}
        self.started_at: datetime | None = None
        self.result: QuizResult | None = None

    @property
    def user_id(self) -> uuid.UUID:
        return self.participant.id

    @property
    def total(self) -> int:
        return len(self.questions)

    @property
    def current_question(self) -> QuizQuestion | None:
        if self.state != SessionState.in_progress:
            return None
        return self.questions[self.index]

    def _require(self, *states: SessionState) -> None:
        if self.state not in states:
            raise ValidationError(f"not allowed while quiz is {self.state.value}")

    def _begin(self) -> None:
        self._rng.shuffle(self.questions)
        self.state = SessionState.in_progress
        self.index = 0
        self.answers = {}
        self.result = None
        self.started_at = datetime.utcnow()

    def start(self) -> None:
        self._require(SessionState.not_started)
        if not self.questions:
            raise ValidationError("quiz has no questions")
        self._begin()

    def selected_for_current(self) -> str | None:
        a = self.answers.get(self.index)
        return a.selected_answer if a else None

    def answer(self, selected: str | None) -> QuizResult | None:
        """Record the current question's answer and move on.

        Answering the last question submits the attempt and returns its result.
        """
        self._require(SessionState.in_progress)
        tag = normalize_selection(selected)

        q = self.questions[self.index]
        self.answers[self.index] = UserQuizAnswer(
            question_id=str(q.id),
            selected_answer=tag,
            correct=tag == (q.correct_answer or "").strip().upper(),
        )

        if self.index < self.total - 1:
            self.index += 1
            return None
        return self.submit()

    def previous(self) -> str | None:
        """Step back for review; the recorded answer is kept and returned."""
        self._require(SessionState.in_progress)
        if self.index == 0:
            raise ValidationError("already at the first question")
        self.index -= 1
        return self.selected_for_current()

    def submit(self) -> QuizResult:
        self._require(SessionState.in_progress)
        if len(self.answers) < self.total:
            raise ValidationError(f"answered {len(self.answers)} of {self.total} questions")

        correct = sum(1 for a in self.answers.values() if a.correct)
        score = compute_score(correct, self.total)
        passed = is_passing(score)
        completed_at = datetime.utcnow()

        # Another submission may have taken this number since the session started.
        self.attempt_number = max(self.attempt_number, self.ledger.latest_attempt_number(self.user_id) + 1)

        # StorageError propagates with the session still in progress, so submit can be retried.
        self.ledger.append(
            QuizAttempt(
                user_id=self.user_id,
                score=score,
                passed=passed,
                attempt_number=self.attempt_number,
                started_at=self.started_at or completed_at,
                completed_at=completed_at,
            )
        )

        self.result = QuizResult(
            score=score,
            passed=passed,
            attempt_number=self.attempt_number,
            correct=correct,
            total=self.total,
        )
        self.state = SessionState.submitted_passed if passed else SessionState.submitted_failed

        if passed:
            self._notify(completed_at)
        return self.result

    def _notify(self, completed_at: datetime) -> None:
        if self.notifier is None:
            return
        event = CompletionEvent(
            first_name=getattr(self.participant, "first_name", None) or "",
            last_name=getattr(self.participant, "last_name", None) or "",
            email=getattr(self.participant, "email", None) or "",
            attempt_count=self.attempt_number,
            completion_date=completed_at,
        )
        try:
            self.notifier.notify(event)
        except Exception:
            log.warning("notification sink raised for user %s; submission kept", self.user_id, exc_info=True)

    def retake(self) -> None:
        if self.state == SessionState.submitted_passed:
            raise ValidationError("quiz already passed")
        self._require(SessionState.submitted_failed)
        self.attempt_number += 1
        self._begin()

    def review(self) -> list[dict[str, Any]]:
        items = []
        for i, q in enumerate(self.questions):
            a = self.answers.get(i)
            if a is None:
                continue
            items.append(
                {
                    "question_id": str(q.id),
                    "question": q.question,
                    "selected_answer": a.selected_answer,
                    "selected_text": q.option_text(a.selected_answer),
                    "correct_answer": q.correct_answer,
                    "correct_text": q.option_text(q.correct_answer),
                    "correct": a.correct,
                }
            )
        return items

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": str(self.user_id),
            "question_ids": [str(q.id) for q in self.questions],
            "attempt_number": self.attempt_number,
            "state": self.state.value,
            "index": self.index,
            "answers": {str(i): asdict(a) for i, a in self.answers.items()},
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "result": asdict(self.result) if self.result else None,
        }

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        *,
        participant: Any,
        questions_by_id: Mapping[str, QuizQuestion],
        ledger: AttemptLedger,
        notifier: NotificationSink | None = None,
    ) -> "QuizSession":
        if str(data.get("user_id")) != str(participant.id):
            raise SessionNotFoundError("quiz session belongs to another user")

        qids = [str(x) for x in (data.get("question_ids") or [])]
        missing = [qid for qid in qids if qid not in questions_by_id]
        if not qids or missing:
            raise SessionNotFoundError("quiz questions changed; start the quiz again")

        try:
            s = cls(
                participant=participant,
                questions=[questions_by_id[qid] for qid in qids],
                attempt_number=int(data.get("attempt_number") or 1),
                ledger=ledger,
                notifier=notifier,
            )
            s.state = SessionState(str(data.get("state") or SessionState.not_started.value))
            s.index = max(0, min(int(data.get("index") or 0), len(qids) - 1))
            s.answers = {int(i): UserQuizAnswer(**a) for i, a in (data.get("answers") or {}).items()}
            started_at = data.get("started_at")
            s.started_at = datetime.fromisoformat(started_at) if started_at else None
            result = data.get("result")
            s.result = QuizResult(**result) if result else None
        except (TypeError, ValueError, AttributeError) as e:
            raise SessionNotFoundError("quiz session is corrupted") from e
        return s


def start_session(
    *,
    participant: Any,
    question_bank: Sequence[QuizQuestion],
    ledger: AttemptLedger,
    notifier: NotificationSink | None = None,
    rng: random.Random | None = None,
) -> QuizSession:
    session = QuizSession(
        participant=participant,
        questions=question_bank,
        attempt_number=ledger.latest_attempt_number(participant.id) + 1,
        ledger=ledger,
        notifier=notifier,
        rng=rng,
    )
    session.start()
    return session
