from __future__ import annotations

import logging
import uuid

from talent_training.core.errors import StorageError, ValidationError
from talent_training.models.attempt import QuizAttempt
from talent_training.services.record_store import RecordStore

log = logging.getLogger(__name__)


class AttemptLedger:
    """Append-only history of quiz attempts.

    Rows are never updated or deleted. Reads degrade to an empty history on
    storage failure; appends always propagate StorageError so a submission
    is known to be recorded or not.
    """

    def __init__(self, store: RecordStore):
        self.store = store

    def append(self, attempt: QuizAttempt) -> QuizAttempt:
        if attempt.attempt_number is None or int(attempt.attempt_number) < 1:
            raise ValidationError("attempt_number must be a positive integer")
        if not 0 <= int(attempt.score) <= 100:
            raise ValidationError("score must be between 0 and 100")

        saved = self.store.insert(attempt)
        log.info(
            "attempt %s recorded for user %s: score=%s passed=%s",
            saved.attempt_number,
            saved.user_id,
            saved.score,
            saved.passed,
        )
        return saved

    def history(self, user_id: uuid.UUID) -> list[QuizAttempt]:
        try:
            return self.store.query(QuizAttempt, user_id=user_id, order_by="attempt_number", descending=True)
        except StorageError:
            log.warning("attempt history read failed for user %s", user_id, exc_info=True)
            return []

    def latest(self, user_id: uuid.UUID) -> QuizAttempt | None:
        try:
            rows = self.store.query(
                QuizAttempt, user_id=user_id, order_by="attempt_number", descending=True, limit=1
            )
        except StorageError:
            log.warning("latest attempt read failed for user %s", user_id, exc_info=True)
            return None
        return rows[0] if rows else None

    def latest_attempt_number(self, user_id: uuid.UUID) -> int:
        latest = self.latest(user_id)
        return int(latest.attempt_number) if latest is not None else 0

    def passed_attempt(self, user_id: uuid.UUID) -> QuizAttempt | None:
        try:
            rows = self.store.query(
                QuizAttempt, user_id=user_id, passed=True, order_by="attempt_number", limit=1
            )
        except StorageError:
            log.warning("passed attempt read failed for user %s", user_id, exc_info=True)
            return None
        return rows[0] if rows else None

    def has_passed(self, user_id: uuid.UUID) -> bool:
        return self.passed_attempt(user_id) is not None
