from __future__ import annotations

import uuid
from collections.abc import Callable
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from talent_training.core.errors import AccessDeniedError, SessionNotFoundError, StorageError, ValidationError
from talent_training.core.rate_limit import rate_limit
from talent_training.core.redis_client import get_redis
from talent_training.core.security import get_current_user
from talent_training.db.session import get_db
from talent_training.models.profile import Profile
from talent_training.models.quiz import QuizQuestion
from talent_training.schemas.quiz import QuizAnswerRequest, QuizAttemptsResponse, QuizSessionResponse
from talent_training.services.attempt_ledger import AttemptLedger
from talent_training.services.notifications import CompletionNotifier, NotificationSink
from talent_training.services.progress_gate import ProgressGate
from talent_training.services.quiz_session import QuizSession, SessionState, start_session
from talent_training.services.record_store import RecordStore
from talent_training.services.session_store import QuizSessionStore

router = APIRouter(prefix="/quiz", tags=["quiz"])


def get_notifier() -> NotificationSink:
    return CompletionNotifier()


def _session_payload(session: QuizSession) -> dict[str, Any]:
    failed = session.state == SessionState.submitted_failed
    return {
        "state": session.state.value,
        "attempt_number": session.attempt_number,
        "previous_attempts": session.attempt_number - 1,
        "current_index": session.index,
        "total": session.total,
        "selected_answer": session.selected_for_current(),
        "questions": [{"id": str(q.id), "question": q.question, "options": q.options()} for q in session.questions],
        "result": vars(session.result) if session.result else None,
        "review": session.review() if failed else [],
    }


def _restore(
    db: Session,
    user: Profile,
    data: dict[str, Any],
    ledger: AttemptLedger,
    notifier: NotificationSink,
) -> QuizSession:
    parsed: list[uuid.UUID] = []
    for qid in data.get("question_ids") or []:
        try:
            parsed.append(uuid.UUID(str(qid)))
        except ValueError:
            continue
    try:
        rows = list(db.scalars(select(QuizQuestion).where(QuizQuestion.id.in_(parsed)))) if parsed else []
    except SQLAlchemyError as e:
        raise HTTPException(status_code=503, detail="could not load quiz questions") from e

    return QuizSession.from_dict(
        data,
        participant=user,
        questions_by_id={str(q.id): q for q in rows},
        ledger=ledger,
        notifier=notifier,
    )


def _load_session(db: Session, user: Profile, sessions: QuizSessionStore, notifier: NotificationSink) -> QuizSession:
    data = sessions.load(user.id)
    if data is None:
        raise HTTPException(status_code=409, detail="quiz session not found or expired")
    try:
        return _restore(db, user, data, AttemptLedger(RecordStore(db)), notifier)
    except SessionNotFoundError as e:
        sessions.delete(user.id)
        raise HTTPException(status_code=409, detail=str(e)) from e


def _apply(sessions: QuizSessionStore, session: QuizSession, action: Callable[[], Any]) -> None:
    try:
        action()
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except StorageError as e:
        raise HTTPException(status_code=503, detail="could not record quiz attempt, please retry") from e
    finally:
        sessions.save(session)


@router.post("/start", response_model=QuizSessionResponse)
def start_quiz(
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
    notifier: NotificationSink = Depends(get_notifier),
    _: object = rate_limit(key_prefix="quiz_start", limit=30, window_seconds=60),
):
    store = RecordStore(db)
    ledger = AttemptLedger(store)
    try:
        ProgressGate(store, ledger=ledger).require_quiz_available(user.id)
    except AccessDeniedError as e:
        raise HTTPException(status_code=403, detail=str(e)) from e

    sessions = QuizSessionStore(get_redis())

    # Idempotent start: an unfinished session is resumed, not reshuffled.
    existing = sessions.load(user.id)
    if existing is not None and existing.get("state") == SessionState.in_progress.value:
        try:
            return _session_payload(_restore(db, user, existing, ledger, notifier))
        except SessionNotFoundError:
            sessions.delete(user.id)

    try:
        bank = store.query(QuizQuestion)
    except StorageError as e:
        raise HTTPException(status_code=503, detail="could not load quiz questions") from e
    if not bank:
        raise HTTPException(status_code=400, detail="quiz has no questions")

    session = start_session(participant=user, question_bank=bank, ledger=ledger, notifier=notifier)
    sessions.save(session)
    return _session_payload(session)


@router.get("/session", response_model=QuizSessionResponse)
def current_session(
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
    notifier: NotificationSink = Depends(get_notifier),
):
    sessions = QuizSessionStore(get_redis())
    return _session_payload(_load_session(db, user, sessions, notifier))


@router.post("/answer", response_model=QuizSessionResponse)
def answer_question(
    body: QuizAnswerRequest,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
    notifier: NotificationSink = Depends(get_notifier),
):
    sessions = QuizSessionStore(get_redis())
    session = _load_session(db, user, sessions, notifier)
    _apply(sessions, session, lambda: session.answer(body.answer))
    return _session_payload(session)


@router.post("/previous", response_model=QuizSessionResponse)
def previous_question(
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
    notifier: NotificationSink = Depends(get_notifier),
):
    sessions = QuizSessionStore(get_redis())
    session = _load_session(db, user, sessions, notifier)
    _apply(sessions, session, session.previous)
    return _session_payload(session)


@router.post("/submit", response_model=QuizSessionResponse)
def submit_quiz(
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
    notifier: NotificationSink = Depends(get_notifier),
    _: object = rate_limit(key_prefix="quiz_submit", limit=20, window_seconds=60),
):
    sessions = QuizSessionStore(get_redis())
    session = _load_session(db, user, sessions, notifier)
    _apply(sessions, session, session.submit)
    return _session_payload(session)


@router.post("/retake", response_model=QuizSessionResponse)
def retake_quiz(
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
    notifier: NotificationSink = Depends(get_notifier),
):
    sessions = QuizSessionStore(get_redis())
    session = _load_session(db, user, sessions, notifier)
    _apply(sessions, session, session.retake)
    return _session_payload(session)


@router.get("/attempts", response_model=QuizAttemptsResponse)
def list_attempts(db: Session = Depends(get_db), user: Profile = Depends(get_current_user)):
    ledger = AttemptLedger(RecordStore(db))
    history = ledger.history(user.id)
    return {
        "latest_attempt_number": history[0].attempt_number if history else 0,
        "passed": any(a.passed for a in history),
        "attempts": [
            {
                "attempt_number": a.attempt_number,
                "score": a.score,
                "passed": a.passed,
                "started_at": a.started_at.isoformat() if a.started_at else None,
                "completed_at": a.completed_at.isoformat() if a.completed_at else None,
            }
            for a in history
        ],
    }
